"""Building blocks of the uncoupled (zeroth-order) response problem: orbital
energy-difference operators, fragment masking, and the uncoupled guess."""

from typing import Optional

import numpy as np

from libresponse.core import NumericalError, PreconditionError
from libresponse.utils import form_vec_energy_differences

# Denominators smaller than this in the uncoupled guess are treated as a
# frequency sitting on top of an orbital energy difference.
DENOMINATOR_THRESH = 1.0e-14


def form_ediff_terms(F: np.ndarray, S: np.ndarray, nocc: int, nvirt: int) -> np.ndarray:
    r"""Form the one-electron part of the orbital Hessian for orbitals that
    need not be orthogonal.

    The element :math:`\{ia,jb\}` is :math:`S_{ij} F_{ab} - F_{ij} S_{ab}`,
    where :math:`F` and :math:`S` are the MO-basis Fock and overlap
    matrices. For orthonormal canonical orbitals this is diagonal with the
    orbital energy differences :math:`\epsilon_{a} - \epsilon_{i}`. The
    virtual index is fast.

    Parameters
    ----------
    F : np.ndarray
        MO-basis Fock matrix, ``[norb, norb]``
    S : np.ndarray
        MO-basis overlap matrix, ``[norb, norb]``
    nocc : int
    nvirt : int

    Returns
    -------
    np.ndarray
        ``[nocc * nvirt, nocc * nvirt]``
    """
    norb = nocc + nvirt
    if F.shape != (norb, norb) or S.shape != (norb, norb):
        raise PreconditionError(
            f"MO Fock {F.shape} and overlap {S.shape} must both be {(norb, norb)}"
        )
    so = slice(0, nocc)
    sv = slice(nocc, norb)
    ediff = np.kron(S[so, so], F[sv, sv]) - np.kron(F[so, so], S[sv, sv])
    if not np.all(np.isfinite(ediff)):
        raise NumericalError("energy-difference operator contains non-finite values")
    return ediff


def form_ediff_terms_orthogonal(F: np.ndarray, nocc: int, nvirt: int) -> np.ndarray:
    """Same as `form_ediff_terms` for orthonormal canonical orbitals, where only
    the diagonal of the MO Fock matrix (the orbital energies) contributes."""
    moene = np.diag(F)
    return np.diag(form_vec_energy_differences(moene[:nocc], moene[nocc : nocc + nvirt]))


def make_masked_mat(
    mat: np.ndarray,
    indices: np.ndarray,
    fill_value: float = 0.0,
    diagonal_value: Optional[float] = None,
) -> np.ndarray:
    """Keep only the rows and columns of a square matrix that are in
    `indices`; everything else becomes `fill_value`.

    If `diagonal_value` is given, the diagonal elements of the excluded
    indices become that value instead, which keeps the matrix invertible
    when it is later used as a denominator.
    """
    assert len(mat.shape) == 2
    assert mat.shape[0] == mat.shape[1]
    dim = mat.shape[0]
    keep = np.zeros(dim, dtype=bool)
    keep[np.asarray(indices, dtype=int)] = True
    masked = np.full_like(mat, fill_value)
    masked[np.ix_(keep, keep)] = mat[np.ix_(keep, keep)]
    if diagonal_value is not None:
        excluded = np.flatnonzero(~keep)
        masked[excluded, excluded] = diagonal_value
    return masked


def make_masked_vec(vecs: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Zero every element along the last axis that isn't in `indices`."""
    keep = np.zeros(vecs.shape[-1], dtype=bool)
    keep[np.asarray(indices, dtype=int)] = True
    masked = np.zeros_like(vecs)
    masked[..., keep] = vecs[..., keep]
    return masked


def form_uncoupled_denominators(
    ediff: np.ndarray, frequency: float, indices: Optional[np.ndarray] = None
) -> np.ndarray:
    """The element-wise denominators of the uncoupled problem, the diagonal
    of the energy-difference operator shifted by the frequency."""
    denom = np.diag(ediff) - frequency
    active = np.ones(len(denom), dtype=bool)
    if indices is not None:
        active[:] = False
        active[np.asarray(indices, dtype=int)] = True
    small = active & (np.abs(denom) < DENOMINATOR_THRESH)
    if np.any(small):
        raise NumericalError(
            f"frequency {frequency} coincides with an orbital energy difference "
            f"(rotations {np.flatnonzero(small).tolist()})"
        )
    return denom


def form_uncoupled_guess(
    rhsvecs: np.ndarray,
    ediff: np.ndarray,
    frequency: float,
    indices: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Divide each gradient vector by the (frequency-shifted) orbital energy
    differences, restricted to `indices` if given."""
    denom = form_uncoupled_denominators(ediff, frequency, indices)
    if indices is None:
        return rhsvecs / denom
    guess = np.zeros_like(rhsvecs)
    idx = np.asarray(indices, dtype=int)
    guess[..., idx] = rhsvecs[..., idx] / denom[idx]
    return guess
