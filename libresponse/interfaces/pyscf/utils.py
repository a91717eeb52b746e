from typing import Sequence

import numpy as np

import pyscf

from libresponse.utils import fix_mocoeffs_shape


def occupations_from_pyscf_mol(mol: pyscf.gto.Mole, C: np.ndarray) -> np.ndarray:
    norb = fix_mocoeffs_shape(C).shape[-1]
    nocc_a, nocc_b = mol.nelec
    nvirt_a, nvirt_b = norb - nocc_a, norb - nocc_b
    return np.asarray([nocc_a, nvirt_a, nocc_b, nvirt_b], dtype=int)


def fragment_occupations_from_counts(
    norb_frgm: Sequence[int], nocc_frgm_alph: Sequence[int], nocc_frgm_beta: Sequence[int]
) -> np.ndarray:
    """Build a fragment occupation table, one row per fragment with columns
    ``[fragment_id, norb, nocc_alph, nocc_beta]`` and one-based ids."""
    assert len(norb_frgm) == len(nocc_frgm_alph) == len(nocc_frgm_beta)
    nfrgm = len(norb_frgm)
    return np.column_stack(
        (np.arange(1, nfrgm + 1), norb_frgm, nocc_frgm_alph, nocc_frgm_beta)
    ).astype(int)


def fragment_occupations_from_mol(mol: pyscf.gto.Mole, C: np.ndarray) -> np.ndarray:
    """Treat the whole molecule as a single fragment."""
    nocc_a, nvirt_a, nocc_b, _ = occupations_from_pyscf_mol(mol, C)
    return fragment_occupations_from_counts([nocc_a + nvirt_a], [nocc_a], [nocc_b])
