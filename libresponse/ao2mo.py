"""Tools for performing AO-to-MO transformations of one-electron quantities."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import scipy.linalg

from libresponse.core import NumericalError, PreconditionError
from libresponse.utils import repack_matrix_to_vector, repack_vector_to_matrix


def split_occ_virt(C: np.ndarray, nocc: int) -> Tuple[np.ndarray, np.ndarray]:
    """Slice the occupied and virtual blocks out of one spin channel's MO
    coefficients, which are ``[AO, MO]``."""
    assert len(C.shape) == 2
    return C[:, :nocc], C[:, nocc:]


def form_mo_overlap(C: np.ndarray, S: np.ndarray) -> np.ndarray:
    r"""Form :math:`\sigma = C^{T} S C`."""
    return C.T @ S @ C


def form_mo_fock(C: np.ndarray, F: np.ndarray) -> np.ndarray:
    r"""Form :math:`F^{MO} = C^{T} F^{AO} C`."""
    return C.T @ F @ C


def pinv(mat: np.ndarray, name: str = "matrix") -> np.ndarray:
    """Moore-Penrose pseudo-inverse that reports failure as a
    `NumericalError`."""
    try:
        mat_inv = scipy.linalg.pinv(mat)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise NumericalError(f"pseudo-inverse of {name} failed: {e}") from e
    if not np.all(np.isfinite(mat_inv)):
        raise NumericalError(f"pseudo-inverse of {name} is not finite")
    return mat_inv


def inv(mat: np.ndarray, name: str = "matrix") -> np.ndarray:
    try:
        mat_inv = scipy.linalg.inv(mat)
    except (np.linalg.LinAlgError, ValueError) as e:
        raise NumericalError(f"inverse of {name} failed: {e}") from e
    if not np.all(np.isfinite(mat_inv)):
        raise NumericalError(f"inverse of {name} is not finite")
    return mat_inv


def one_electron_mn_mats_to_ia_vecs(
    mn_mats: np.ndarray, C_occ: np.ndarray, C_virt: np.ndarray
) -> np.ndarray:
    r"""Transform a stack of AO-basis matrices :math:`M_{\mu\nu}` into
    occupied-virtual vectors :math:`(C_{v}^{T} M C_{o})_{ai}`, packed with the
    virtual index fast.

    The result has shape ``[ncomp, nocc * nvirt]``.
    """
    assert len(mn_mats.shape) == 3
    return np.stack(
        [repack_matrix_to_vector(C_virt.T @ mn_mat @ C_occ) for mn_mat in mn_mats], axis=0
    )


def ia_vecs_to_mn_mats(
    ia_vecs: np.ndarray, C_occ: np.ndarray, C_virt: np.ndarray, S: np.ndarray
) -> np.ndarray:
    r"""Take occupied-virtual vectors back to the AO basis as
    :math:`S C_{v} X C_{o}^{T} S`, the inverse of
    `one_electron_mn_mats_to_ia_vecs` for orthonormal MOs."""
    assert len(ia_vecs.shape) == 2
    nocc = C_occ.shape[1]
    nvirt = C_virt.shape[1]
    return np.stack(
        [
            S @ C_virt @ repack_vector_to_matrix(ia_vec, (nvirt, nocc)) @ C_occ.T @ S
            for ia_vec in ia_vecs
        ],
        axis=0,
    )


def project_mn_mats_to_ia_vecs(
    mn_mats: np.ndarray, C: np.ndarray, nocc: int, sigma_inv: np.ndarray
) -> np.ndarray:
    r"""Recover occupied-virtual vectors from AO-basis matrices written by
    `ia_vecs_to_mn_mats` when the MOs are not orthonormal.

    With :math:`\sigma^{+}` the (pseudo-)inverse of the MO overlap, the
    full-space rotation is :math:`\sigma^{+} C^{T} M C \sigma^{+}`, of which
    only the virtual-occupied block is kept.
    """
    assert len(mn_mats.shape) == 3
    vecs = []
    for mn_mat in mn_mats:
        full = sigma_inv @ (C.T @ mn_mat @ C) @ sigma_inv
        vecs.append(repack_matrix_to_vector(full[nocc:, :nocc]))
    return np.stack(vecs, axis=0)


@dataclass
class BasisTransform:
    """MO-basis quantities derived once per response calculation, one entry
    per spin channel in each list."""

    S: np.ndarray
    C: List[np.ndarray]
    C_occ: List[np.ndarray]
    C_virt: List[np.ndarray]
    nocc: List[int]
    nvirt: List[int]
    sigma: List[np.ndarray]
    fock: List[np.ndarray]
    do_canonical_orthogonalization: bool = False
    S_inv: Optional[np.ndarray] = None
    sigma_inv: List[np.ndarray] = field(default_factory=list)

    @property
    def nden(self) -> int:
        return len(self.C)

    def sigma_inverse(self, channel: int) -> np.ndarray:
        """The inverse of the MO overlap used to project AO-basis quantities
        back onto the MOs: the pseudo-inverse under canonical
        orthogonalization, otherwise the true inverse."""
        if self.do_canonical_orthogonalization:
            return self.sigma_inv[channel]
        return inv(self.sigma[channel], name=f"MO overlap (channel {channel})")


def form_basis_transform(
    C: np.ndarray,
    F: np.ndarray,
    S: Optional[np.ndarray],
    occupations: Sequence[int],
    do_canonical_orthogonalization: bool = False,
) -> BasisTransform:
    """Form the MO-basis overlap and Fock matrices for each spin channel and,
    if requested, the pseudo-inverses used by canonical orthogonalization.

    Parameters
    ----------
    C : np.ndarray
        MO coefficients, ``[nden, AO, MO]``.
    F : np.ndarray
        AO-basis Fock matrices, ``[nden, AO, AO]``.
    S : np.ndarray or None
        AO overlap; None means the AO basis is orthonormal.
    occupations : sequence of int
        ``[nocc_alph, nvirt_alph, nocc_beta, nvirt_beta]``
    """
    nden, nbasis, _ = C.shape
    if F.shape[0] != nden:
        raise PreconditionError(
            f"{nden} sets of MO coefficients but {F.shape[0]} Fock matrices"
        )
    if F.shape[1:] != (nbasis, nbasis):
        raise PreconditionError(f"Fock matrices have shape {F.shape[1:]}, expected {(nbasis, nbasis)}")
    if S is None:
        S = np.eye(nbasis)
    if S.shape != (nbasis, nbasis):
        raise PreconditionError(f"AO overlap has shape {S.shape}, expected {(nbasis, nbasis)}")
    nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = occupations
    nocc = [nocc_alph, nocc_beta][:nden]
    nvirt = [nvirt_alph, nvirt_beta][:nden]

    C_list, C_occ, C_virt, sigma, fock = [], [], [], [], []
    for s in range(nden):
        C_occ_s, C_virt_s = split_occ_virt(C[s], nocc[s])
        C_list.append(C[s])
        C_occ.append(C_occ_s)
        C_virt.append(C_virt_s)
        sigma.append(form_mo_overlap(C[s], S))
        fock.append(form_mo_fock(C[s], F[s]))

    transform = BasisTransform(
        S=S,
        C=C_list,
        C_occ=C_occ,
        C_virt=C_virt,
        nocc=nocc,
        nvirt=nvirt,
        sigma=sigma,
        fock=fock,
        do_canonical_orthogonalization=do_canonical_orthogonalization,
    )

    if do_canonical_orthogonalization:
        transform.S_inv = pinv(S, name="AO overlap")
        transform.sigma_inv = [
            pinv(sigma_s, name=f"MO overlap (channel {s})") for s, sigma_s in enumerate(sigma)
        ]
    return transform
