"""Utility functions that are not core to calculating physical values."""

from pathlib import Path
from typing import Tuple, Union

import numpy as np

from libresponse.core import PreconditionError


def repack_matrix_to_vector(mat: np.ndarray) -> np.ndarray:
    """Flatten a [virt, occ] matrix so that the virtual index is fast."""
    return np.reshape(mat, -1, order="F")


def repack_vector_to_matrix(vec: np.ndarray, shape: Tuple[int, ...]) -> np.ndarray:
    return vec.reshape(shape, order="F")


def fix_mocoeffs_shape(mocoeffs: Union[Tuple[np.ndarray, ...], np.ndarray]) -> np.ndarray:
    if isinstance(mocoeffs, tuple):
        # this will properly fall through to the else clause
        mocoeffs_new = fix_mocoeffs_shape(np.stack(mocoeffs, axis=0))
    # assume np.ndarray
    else:
        shape = mocoeffs.shape
        if len(shape) not in (2, 3):
            raise PreconditionError(
                f"MO coefficients must be a matrix or a stack of matrices, got shape {shape}"
            )
        if len(shape) == 2:
            mocoeffs_new = mocoeffs[np.newaxis]
        else:
            mocoeffs_new = mocoeffs
    return mocoeffs_new


def fix_fock_shape(fock: Union[Tuple[np.ndarray, ...], np.ndarray]) -> np.ndarray:
    """Same as `fix_mocoeffs_shape`, but the trailing two dimensions must be
    square."""
    fock_new = fix_mocoeffs_shape(fock)
    if fock_new.shape[1] != fock_new.shape[2]:
        raise PreconditionError(f"Fock matrices must be square, got shape {fock_new.shape}")
    return fock_new


def form_vec_energy_differences(moene_occ: np.ndarray, moene_virt: np.ndarray) -> np.ndarray:
    """Orbital energy differences :math:`\\epsilon_a - \\epsilon_i` packed
    so that the virtual index is fast."""
    return (moene_virt[np.newaxis, :] - moene_occ[:, np.newaxis]).reshape(-1)


def write_file_n(filename: Union[str, Path], arr: np.ndarray) -> None:
    """Write an array of doubles as text: the dimensions on the first line,
    then one element per line with the last index fastest."""
    arr = np.asarray(arr, dtype=float)
    with open(filename, "w") as fh:
        fh.write(" ".join(str(d) for d in arr.shape) + "\n")
        for element in arr.reshape(-1):
            fh.write(f"{element:.17e}\n")


def read_file_n(filename: Union[str, Path]) -> np.ndarray:
    """Read an array written by `write_file_n`; the number of dimensions is
    taken from the header."""
    elements = []
    with open(filename) as fh:
        dims = [int(x) for x in next(fh).split()]
        for line in fh:
            if line.strip():
                elements.append(float(line))
    n_elem = int(np.prod(dims)) if dims else 1
    if len(elements) != n_elem:
        raise ValueError(f"expected {n_elem} elements for shape {tuple(dims)}, found {len(elements)}")
    return np.reshape(np.array(elements, dtype=float), dims)


def read_file_occupations(filename: Union[Path, str]) -> np.ndarray:
    with open(filename) as fh:
        contents = fh.read().strip()
    tokens = contents.split()
    if len(tokens) != 4:
        raise PreconditionError(f"occupation file {filename} must contain 4 integers")
    nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = [int(x) for x in tokens]
    return np.asarray([nocc_alph, nvirt_alph, nocc_beta, nvirt_beta], dtype=int)
