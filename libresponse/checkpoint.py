"""Reading and writing the vectors and matrices of a response calculation so
that it can be restarted.

Each file holds one array of doubles as text (see `utils.write_file_n`) and is
named ``<prefix><tag><label>_<basis>_<spin>.dat``, for example
``h2o_rspvecs_dipole_mo_alph.dat``.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np

from libresponse.core import Basis, CheckpointError, SpinChannel
from libresponse.utils import read_file_n, write_file_n

logger = logging.getLogger(__name__)

TAG_RSPVECS = "rspvecs_"
TAG_RSPVECS_UNCOUPLED = "rspvecs_uncoupled_"
TAG_RHSVECS = "rhsvecs_"
TAG_EDIFF = "ediff_"
SUFFIX = ".dat"


def make_filename(
    prefix: str,
    tag: str,
    channel: SpinChannel,
    label: Optional[str] = None,
    basis: Optional[Basis] = None,
) -> str:
    """Build a checkpoint filename; `label` and `basis` are left out for
    quantities that don't belong to an operator, such as the energy
    differences."""
    parts = [prefix, tag]
    if label is not None:
        parts.append(f"{label}_")
    if basis is not None:
        parts.append(f"{Basis(basis).value}_")
    parts.append(SpinChannel(channel).name)
    parts.append(SUFFIX)
    return "".join(parts)


def save_array(
    filename: Union[str, Path], arr: np.ndarray, operator_label: Optional[str] = None
) -> None:
    try:
        write_file_n(filename, arr)
    except OSError as e:
        raise CheckpointError(f"could not write checkpoint: {e}", str(filename), operator_label) from e
    logger.debug("wrote %s with shape %s", filename, arr.shape)


def load_array(
    filename: Union[str, Path],
    operator_label: Optional[str] = None,
    shape: Optional[Tuple[int, ...]] = None,
) -> np.ndarray:
    """Load an array, checking its shape if `shape` is given.

    Raises
    ------
    CheckpointError
        If the file can't be read, is malformed, or has the wrong shape.
    """
    try:
        arr = read_file_n(filename)
    except (OSError, ValueError, StopIteration) as e:
        raise CheckpointError(f"could not read checkpoint: {e}", str(filename), operator_label) from e
    if shape is not None and arr.shape != tuple(shape):
        raise CheckpointError(
            f"checkpoint has shape {arr.shape}, expected {tuple(shape)}",
            str(filename),
            operator_label,
        )
    logger.debug("read %s with shape %s", filename, arr.shape)
    return arr
