"""
isort:skip_file
"""

# pylint: disable=unused-import

from . import (
    ao2mo,
    checkpoint,
    configurable,
    core,
    explicit_equations,
    helpers,
    indices,
    linear,
    matvec,
    operators,
    printing,
    solvers,
    utils,
)

__version__ = "0.1.0"
