import numpy as np

import pytest

from libresponse.core import ConfigurationError, Hamiltonian, PreconditionError, Spin
from libresponse.matvec import MatVecExplicit, MatVecZero


def _mo_eri(nocc: int, nvirt: int, seed: int = 8) -> np.ndarray:
    """Random MO two-electron integrals with the full 8-fold permutational
    symmetry of real orbitals, built from a factorization."""
    rng = np.random.default_rng(seed)
    norb = nocc + nvirt
    B = rng.standard_normal((6, norb, norb))
    B = 0.1 * (B + B.transpose(0, 2, 1))
    return np.einsum("Ppq,Prs->pqrs", B, B)


def _partial(eri: np.ndarray, nocc: int):
    o = slice(0, nocc)
    v = slice(nocc, None)
    return eri[o, v, o, v].copy(), eri[o, o, v, v].copy()


def test_matvec_zero() -> None:
    trial_vectors = [np.ones((2, 6)), np.ones((2, 4))]
    products = MatVecZero().compute(trial_vectors, 0.1)
    assert len(products) == 2
    for product, trial in zip(products, trial_vectors):
        assert product.shape == trial.shape
        assert not np.any(product)


def test_explicit_restricted_elements() -> None:
    nocc, nvirt = 2, 3
    eri = _mo_eri(nocc, nvirt)
    tei_mo = _partial(eri, nocc)
    occupations = [nocc, nvirt, nocc, nvirt]

    rpa = MatVecExplicit.from_mo_integrals(tei_mo, occupations, Hamiltonian.RPA, Spin.singlet)
    tda = MatVecExplicit.from_mo_integrals(tei_mo, occupations, "tda", "singlet")
    tda_triplet = MatVecExplicit.from_mo_integrals(tei_mo, occupations, "tda", "triplet")
    rpa_triplet = MatVecExplicit.from_mo_integrals(tei_mo, occupations, "rpa", "triplet")

    for i in range(nocc):
        for a in range(nvirt):
            for j in range(nocc):
                for b in range(nvirt):
                    ia = (i * nvirt) + a
                    jb = (j * nvirt) + b
                    iajb = eri[i, nocc + a, j, nocc + b]
                    ijab = eri[i, j, nocc + a, nocc + b]
                    ibja = eri[i, nocc + b, j, nocc + a]
                    assert tda.blocks[0][0][ia, jb] == pytest.approx(2 * iajb - ijab)
                    assert rpa.blocks[0][0][ia, jb] == pytest.approx(4 * iajb - ijab - ibja)
                    assert tda_triplet.blocks[0][0][ia, jb] == pytest.approx(-ijab)
                    assert rpa_triplet.blocks[0][0][ia, jb] == pytest.approx(-ijab - ibja)

    np.testing.assert_allclose(rpa.blocks[0][0], rpa.blocks[0][0].T, atol=1.0e-14)

    trial = np.random.default_rng(9).standard_normal((3, nocc * nvirt))
    (product,) = rpa.compute([trial], 0.0)
    np.testing.assert_allclose(product, trial @ rpa.blocks[0][0].T)


def test_explicit_unrestricted_matches_restricted() -> None:
    # With identical alpha and beta orbitals, the same-spin plus
    # opposite-spin coupling is the restricted singlet coupling.
    nocc, nvirt = 2, 2
    eri = _mo_eri(nocc, nvirt, seed=10)
    ovov, oovv = _partial(eri, nocc)
    occupations = [nocc, nvirt, nocc, nvirt]

    for hamiltonian in Hamiltonian:
        restricted = MatVecExplicit.from_mo_integrals((ovov, oovv), occupations, hamiltonian)
        unrestricted = MatVecExplicit.from_mo_integrals(
            (ovov, ovov, ovov, ovov, oovv, oovv), occupations, hamiltonian
        )
        assert unrestricted.nden == 2
        np.testing.assert_allclose(
            unrestricted.blocks[0][0] + unrestricted.blocks[0][1],
            restricted.blocks[0][0],
            atol=1.0e-14,
        )
        trial = np.random.default_rng(11).standard_normal((2, nocc * nvirt))
        product_alph, product_beta = unrestricted.compute([trial, trial], 0.0)
        np.testing.assert_allclose(product_alph, product_beta)
        np.testing.assert_allclose(product_alph, restricted.compute([trial], 0.0)[0])


def test_explicit_errors() -> None:
    nocc, nvirt = 2, 2
    ovov, oovv = _partial(_mo_eri(nocc, nvirt), nocc)
    occupations = [nocc, nvirt, nocc, nvirt]
    with pytest.raises(ConfigurationError):
        MatVecExplicit.from_mo_integrals((ovov, oovv), occupations, "cis")
    with pytest.raises(ConfigurationError):
        MatVecExplicit.from_mo_integrals((ovov, oovv), occupations, "rpa", "quintet")
    with pytest.raises(ConfigurationError):
        MatVecExplicit.from_mo_integrals(
            (ovov, ovov, ovov, ovov, oovv, oovv), occupations, "rpa", "triplet"
        )
    with pytest.raises(PreconditionError):
        MatVecExplicit.from_mo_integrals((ovov,), occupations)
    with pytest.raises(PreconditionError):
        MatVecExplicit.from_mo_integrals((ovov, oovv), [nocc, nvirt + 1, nocc, nvirt + 1])
    with pytest.raises(PreconditionError):
        MatVecExplicit([[np.eye(2), np.eye(2)]])
    with pytest.raises(PreconditionError):
        MatVecExplicit([[np.eye(2)]]).compute([np.ones((1, 2)), np.ones((1, 2))], 0.0)
