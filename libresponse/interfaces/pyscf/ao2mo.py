"""Partial AO-to-MO transformations of two-electron integrals using pyscf,
in the layout `MatVecExplicit.from_mo_integrals` expects."""

from typing import Tuple

import numpy as np

import pyscf
from pyscf.ao2mo import general

from libresponse.interfaces.pyscf.utils import occupations_from_pyscf_mol
from libresponse.utils import fix_mocoeffs_shape


def _transform(mol: pyscf.gto.Mole, C_mo: Tuple[np.ndarray, ...], verbose: int) -> np.ndarray:
    shape = tuple(C.shape[1] for C in C_mo)
    return general(mol, C_mo, aosym="s4", compact=False, verbose=verbose).reshape(shape)


def form_tei_mo_partial(
    mol: pyscf.gto.Mole, C: np.ndarray, verbose: int = 0
) -> Tuple[np.ndarray, ...]:
    """Form :math:`(ia|jb)` and :math:`(ij|ab)`.

    For one set of MO coefficients this is ``(ovov, oovv)``; for two it is
    ``(ovov_aaaa, ovov_aabb, ovov_bbaa, ovov_bbbb, oovv_aaaa, oovv_bbbb)``.
    """
    C = fix_mocoeffs_shape(C)
    nocc_a, _, nocc_b, _ = occupations_from_pyscf_mol(mol, C)
    C_occ_a = C[0, :, :nocc_a]
    C_virt_a = C[0, :, nocc_a:]
    if C.shape[0] == 1:
        tei_mo_ovov = _transform(mol, (C_occ_a, C_virt_a, C_occ_a, C_virt_a), verbose)
        tei_mo_oovv = _transform(mol, (C_occ_a, C_occ_a, C_virt_a, C_virt_a), verbose)
        return (tei_mo_ovov, tei_mo_oovv)

    C_occ_b = C[1, :, :nocc_b]
    C_virt_b = C[1, :, nocc_b:]
    return (
        _transform(mol, (C_occ_a, C_virt_a, C_occ_a, C_virt_a), verbose),
        _transform(mol, (C_occ_a, C_virt_a, C_occ_b, C_virt_b), verbose),
        _transform(mol, (C_occ_b, C_virt_b, C_occ_a, C_virt_a), verbose),
        _transform(mol, (C_occ_b, C_virt_b, C_occ_b, C_virt_b), verbose),
        _transform(mol, (C_occ_a, C_occ_a, C_virt_a, C_virt_a), verbose),
        _transform(mol, (C_occ_b, C_occ_b, C_virt_b, C_virt_b), verbose),
    )
