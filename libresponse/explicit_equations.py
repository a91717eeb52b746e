r"""Explicit equations for the two-electron (coupling) part of the orbital
Hessian using partially-transformed MO-basis two-electron integrals, *e.g.*,
:math:`(ia|jb), (ij|ab)`.

The orbital energy differences are *not* included: they are the
energy-difference operator, which is formed separately and may be masked or
non-diagonal. All blocks are ``[nocc * nvirt, nocc * nvirt]`` with the
virtual index fast.
"""

import numpy as np


def _check_ovov_oovv(TEI_MO_iajb: np.ndarray, TEI_MO_ijab: np.ndarray) -> None:
    shape_iajb = TEI_MO_iajb.shape
    shape_ijab = TEI_MO_ijab.shape
    assert len(shape_iajb) == len(shape_ijab) == 4
    assert shape_iajb[0] == shape_iajb[2] == shape_ijab[0] == shape_ijab[1]
    assert shape_iajb[1] == shape_iajb[3] == shape_ijab[2] == shape_ijab[3]


def _check_ovov(TEI_MO_iajb: np.ndarray) -> None:
    shape_iajb = TEI_MO_iajb.shape
    assert len(shape_iajb) == 4
    assert shape_iajb[0] == shape_iajb[2]
    assert shape_iajb[1] == shape_iajb[3]


def form_a_coupling_mo_singlet_partial(
    TEI_MO_iajb: np.ndarray, TEI_MO_ijab: np.ndarray
) -> np.ndarray:
    r"""Two-electron part of the A (CIS) matrix. [singlet]

    The equation for element :math:`\{ia,jb\}` is :math:`2(ia|jb) - (ij|ab)`.
    """
    _check_ovov_oovv(TEI_MO_iajb, TEI_MO_ijab)
    nocc, nvirt = TEI_MO_iajb.shape[:2]
    nov = nocc * nvirt

    A = 2 * TEI_MO_iajb
    A -= TEI_MO_ijab.swapaxes(1, 2)
    return A.reshape(nov, nov)


def form_a_coupling_mo_triplet_partial(TEI_MO_ijab: np.ndarray) -> np.ndarray:
    r"""Two-electron part of the A (CIS) matrix. [triplet]

    The equation for element :math:`\{ia,jb\}` is :math:`-(ij|ab)`.
    """
    nocc, _, nvirt, _ = TEI_MO_ijab.shape
    nov = nocc * nvirt
    return -TEI_MO_ijab.swapaxes(1, 2).reshape(nov, nov)


def form_b_coupling_mo_singlet_partial(TEI_MO_iajb: np.ndarray) -> np.ndarray:
    r"""B matrix for RPA. [singlet]

    The equation for element :math:`\{ia,jb\}` is :math:`2(ia|jb) - (ib|ja)`.
    """
    _check_ovov(TEI_MO_iajb)
    nocc, nvirt = TEI_MO_iajb.shape[:2]
    nov = nocc * nvirt

    B = 2 * TEI_MO_iajb
    B -= TEI_MO_iajb.swapaxes(1, 3)
    return B.reshape(nov, nov)


def form_b_coupling_mo_triplet_partial(TEI_MO_iajb: np.ndarray) -> np.ndarray:
    r"""B matrix for RPA. [triplet]

    The equation for element :math:`\{ia,jb\}` is :math:`-(ib|ja)`.
    """
    _check_ovov(TEI_MO_iajb)
    nocc, nvirt = TEI_MO_iajb.shape[:2]
    nov = nocc * nvirt
    return -TEI_MO_iajb.swapaxes(1, 3).reshape(nov, nov)


def form_a_coupling_mo_ss_partial(TEI_MO_iajb: np.ndarray, TEI_MO_ijab: np.ndarray) -> np.ndarray:
    r"""Same-spin part of the A (CIS) matrix for an unrestricted reference.

    The equation for element :math:`\{ia,jb\}` is :math:`(ia|jb) - (ij|ab)`.
    """
    _check_ovov_oovv(TEI_MO_iajb, TEI_MO_ijab)
    nocc, nvirt = TEI_MO_iajb.shape[:2]
    nov = nocc * nvirt

    A = TEI_MO_iajb.copy()
    A -= TEI_MO_ijab.swapaxes(1, 2)
    return A.reshape(nov, nov)


def form_b_coupling_mo_ss_partial(TEI_MO_iajb: np.ndarray) -> np.ndarray:
    r"""Same-spin part of the RPA B matrix for an unrestricted reference.

    The equation for element :math:`\{ia,jb\}` is :math:`(ia|jb) - (ib|ja)`.
    """
    _check_ovov(TEI_MO_iajb)
    nocc, nvirt = TEI_MO_iajb.shape[:2]
    nov = nocc * nvirt

    B = TEI_MO_iajb.copy()
    B -= TEI_MO_iajb.swapaxes(1, 3)
    return B.reshape(nov, nov)


def form_ab_coupling_mo_os_partial(TEI_MO_iajb_xxyy: np.ndarray) -> np.ndarray:
    r"""Opposite-spin part of both the A and B matrices for an unrestricted
    reference, :math:`(ia|jb)` with :math:`ia` of one spin and :math:`jb` of
    the other. The result is ``[nov_x, nov_y]``."""
    shape = TEI_MO_iajb_xxyy.shape
    assert len(shape) == 4
    nocc_x, nvirt_x, nocc_y, nvirt_y = shape
    return TEI_MO_iajb_xxyy.reshape(nocc_x * nvirt_x, nocc_y * nvirt_y).copy()
