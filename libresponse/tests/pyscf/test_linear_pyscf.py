import numpy as np

import pytest

pyscf = pytest.importorskip("pyscf")

from libresponse.interfaces.pyscf import integrals, molecules, utils  # noqa: E402
from libresponse.interfaces.pyscf.ao2mo import form_tei_mo_partial  # noqa: E402
from libresponse.interfaces.pyscf.matvec import MatVecPyscf  # noqa: E402
from libresponse.linear import solve_linear_response  # noqa: E402
from libresponse.matvec import MatVecExplicit  # noqa: E402
from libresponse.operators import Operator  # noqa: E402
from libresponse.solvers import make_solver_iterator  # noqa: E402

FREQUENCIES = [0.0, 0.0773178]


def _rhf(mol):
    mol.build()
    mf = pyscf.scf.RHF(mol)
    mf.kernel()
    return mf


def _dipole(mol) -> Operator:
    return Operator("dipole", integrals.IntegralsPyscf(mol).integrals(integrals.DIPOLE))


def _solve(mol, matvec, C, F, S, fragment_occupations=None, cfg=None, solver="exact"):
    occupations = utils.occupations_from_pyscf_mol(mol, C)
    if fragment_occupations is None:
        fragment_occupations = utils.fragment_occupations_from_mol(mol, C)
    return solve_linear_response(
        matvec,
        make_solver_iterator(solver),
        C,
        fragment_occupations,
        occupations,
        F,
        S,
        FREQUENCIES,
        [_dipole(mol)],
        cfg,
    )


def test_rhf_polarizability_pyscf() -> None:
    mol = molecules.molecule_water_sto3g()
    mf = _rhf(mol)
    C = mf.mo_coeff
    F = mf.get_fock()
    S = mf.get_ovlp()
    occupations = utils.occupations_from_pyscf_mol(mol, C)

    res_direct = _solve(mol, MatVecPyscf(mol, C, occupations), C, F, S)
    res_explicit = _solve(
        mol,
        MatVecExplicit.from_mo_integrals(form_tei_mo_partial(mol, C), occupations),
        C,
        F,
        S,
    )
    assert res_direct.all_converged
    np.testing.assert_allclose(res_direct.results, res_explicit.results, rtol=0, atol=1.0e-8)

    # the static polarizability tensor is symmetric with a positive diagonal
    static = res_direct.results[..., 0]
    np.testing.assert_allclose(static, static.T, atol=1.0e-8)
    assert np.all(np.diag(static) > 0.0)
    # and grows with the frequency below the first excitation
    assert np.all(np.diag(res_direct.results[..., 1]) > np.diag(static))

    res_diis = _solve(
        mol, MatVecPyscf(mol, C, occupations), C, F, S, cfg={"conv": 9}, solver="diis"
    )
    assert res_diis.all_converged
    np.testing.assert_allclose(res_diis.results, res_direct.results, rtol=0, atol=1.0e-6)


def test_rhf_as_two_channels_pyscf() -> None:
    mol = molecules.molecule_water_sto3g()
    mf = _rhf(mol)
    C = mf.mo_coeff
    F = mf.get_fock()
    S = mf.get_ovlp()
    occupations = utils.occupations_from_pyscf_mol(mol, C)
    res = _solve(mol, MatVecPyscf(mol, C, occupations), C, F, S)

    C2 = np.stack([C, C], axis=0)
    F2 = np.stack([F, F], axis=0)
    res2 = _solve(mol, MatVecPyscf(mol, C2, occupations), C2, F2, S)
    np.testing.assert_allclose(res2.results, 4 * res.results, rtol=1.0e-8, atol=1.0e-10)


def test_uhf_pyscf() -> None:
    mol = molecules.molecule_water_cation_sto3g()
    mol.build()
    mf = pyscf.scf.UHF(mol)
    mf.kernel()
    C = np.stack(mf.mo_coeff, axis=0)
    F = np.stack(mf.get_fock(), axis=0)
    S = mf.get_ovlp()
    occupations = utils.occupations_from_pyscf_mol(mol, C)

    res_direct = _solve(mol, MatVecPyscf(mol, C, occupations), C, F, S)
    res_explicit = _solve(
        mol,
        MatVecExplicit.from_mo_integrals(form_tei_mo_partial(mol, C), occupations),
        C,
        F,
        S,
    )
    np.testing.assert_allclose(res_direct.results, res_explicit.results, rtol=0, atol=1.0e-8)
    static = res_direct.results[..., 0]
    np.testing.assert_allclose(static, static.T, atol=1.0e-8)


def test_dimer_pooled_fragments_pyscf() -> None:
    # Pooling every fragment covers all rotations, so masking changes nothing.
    mol = molecules.molecule_water_dimer_sto3g()
    mf = _rhf(mol)
    C = mf.mo_coeff
    F = mf.get_fock()
    S = mf.get_ovlp()
    occupations = utils.occupations_from_pyscf_mol(mol, C)
    fragment_occupations = utils.fragment_occupations_from_counts([7, 7], [5, 5], [5, 5])
    matvec = MatVecPyscf(mol, C, occupations)

    res = _solve(mol, matvec, C, F, S)
    res_pooled = _solve(
        mol,
        matvec,
        C,
        F,
        S,
        fragment_occupations=fragment_occupations,
        cfg={"_mask_ediff_mo": True, "_mask_form_results_mo": True, "_frgm_response_idx": 0},
    )
    np.testing.assert_allclose(res_pooled.results, res.results, rtol=0, atol=1.0e-8)

    # a single fragment sees only part of the response
    res_frgm = _solve(
        mol,
        matvec,
        C,
        F,
        S,
        fragment_occupations=fragment_occupations,
        cfg={"_mask_ediff_mo": True, "_frgm_response_idx": 1},
    )
    assert not np.allclose(res_frgm.results, res.results)
