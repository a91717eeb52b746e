"""Core types."""

from enum import Enum, IntEnum, unique
from typing import Optional


@unique
class SpinChannel(IntEnum):
    """Index of a spin channel in every per-channel container.

    A closed-shell (single determinant) reference only ever uses ``alph``.
    """

    alph = 0
    beta = 1


@unique
class Hamiltonian(Enum):
    """Specify which approximation for the orbital Hessian should be used.

    - RPA indicates the random phase approximation: the orbital Hessian is
      exact for the first-order polarization propagator.
    - TDA indicates the Tamm-Dancoff approximation: the B matrix is set to zero.
    """

    RPA = "rpa"
    TDA = "tda"


@unique
class Spin(Enum):
    """Specify whether the perturbation conserves spin (singlet) or flips spin
    (triplet).
    """

    singlet = "singlet"
    triplet = "triplet"


@unique
class ReadMode(IntEnum):
    """Where the starting response vectors of each operator come from.

    - none: form the uncoupled guess at every frequency
    - mo: read previously converged vectors in the MO (occ-virt) basis
    - ao: read previously converged vectors in the AO basis and transform
      them to the MO basis
    """

    none = 0
    mo = 1
    ao = 2


@unique
class Basis(Enum):
    """Basis tag used in checkpoint filenames."""

    mo = "mo"
    ao = "ao"


class ResponseError(Exception):
    """Base class for all errors raised while solving the response equations."""


class ConfigurationError(ResponseError, ValueError):
    """The caller asked for something that cannot be done: no frequencies, no
    operators, an unknown solver, a missing configuration key, ...
    """


class PreconditionError(ResponseError, ValueError):
    """The inputs break the contract of the caller: inconsistent occupations,
    wrong array shapes, mismatched spin channels.
    """


class NumericalError(ResponseError, ArithmeticError):
    """A linear-algebra step failed or produced non-finite values."""


class CheckpointError(ResponseError, OSError):
    """Reading or writing a checkpoint file failed."""

    def __init__(self, message: str, filename: str, operator_label: Optional[str] = None) -> None:
        if operator_label is not None:
            message = f"{message} (operator '{operator_label}', file '{filename}')"
        else:
            message = f"{message} (file '{filename}')"
        super().__init__(message)
        self.filename = filename
        self.operator_label = operator_label
