import logging

import numpy as np

import pytest

from libresponse.configurable import Configurable
from libresponse.core import ConfigurationError, PreconditionError
from libresponse.indices import RestrictedIndices
from libresponse.matvec import MatVecExplicit, MatVecZero
from libresponse.operators import Operator
from libresponse.solvers import (
    DIIS,
    SolverIteratorDIIS,
    SolverIteratorExact,
    SolverIteratorKrylov,
    make_solver_iterator,
)
from libresponse.utils import form_vec_energy_differences

NOCC, NVIRT = 2, 3
NOV = NOCC * NVIRT
MOENE = np.array([-1.0, -0.6, 0.4, 0.9, 1.5])
FREQUENCY = 0.1
SOLVER_NAMES = ("diis", "krylov", "gmres", "exact")


def _coupling(seed: int = 20, scale: float = 0.05) -> np.ndarray:
    X = np.random.default_rng(seed).standard_normal((NOV, NOV))
    return scale * (X + X.T)


def _operators(nden: int = 1):
    ints = np.random.default_rng(21).standard_normal((3, NOCC + NVIRT, NOCC + NVIRT))
    ints = ints + ints.transpose(0, 2, 1)
    C = np.stack([np.eye(NOCC + NVIRT)] * nden, axis=0)
    dipole = Operator("dipole", ints)
    other = Operator("other", ints[:1] * 2.0)
    static = Operator("static", ints[1:2], do_response=False)
    operators = [dipole, other, static]
    for operator in operators:
        operator.form_rhs(C, [NOCC, NVIRT, NOCC, NVIRT])
    return C, operators


def _ediff() -> np.ndarray:
    return np.diag(form_vec_energy_differences(MOENE[:NOCC], MOENE[NOCC:]))


def _run(solver, operators, matvec, C, ediff_beta=None, maxiter=60, conv=1.0e-10, indices=None, cfg=None):
    if cfg is None:
        cfg = Configurable()
    solver.set_orbital_occupations(NOCC, NVIRT, NOCC, NVIRT)
    solver.set_fragment_occupations(np.array([[1, NOCC + NVIRT, NOCC, NOCC]]))
    ediff = _ediff()
    for operator in operators:
        for s in range(C.shape[0]):
            operator.form_guess_rspvec(ediff, FREQUENCY, s, None if indices is None else indices[s])
    solver.init(
        operators, cfg, matvec, C, ediff, ediff_beta, FREQUENCY, maxiter, conv, indices=indices
    )
    return solver.run()


@pytest.mark.parametrize("name", SOLVER_NAMES)
def test_solvers_match_dense_solve(name: str) -> None:
    G = _coupling()
    C, operators = _operators()
    infos = _run(make_solver_iterator(name), operators, MatVecExplicit([[G]]), C)

    lhs = _ediff() - (FREQUENCY * np.eye(NOV)) + G
    for operator in operators[:2]:
        ref = np.linalg.solve(lhs, operator.rhsvecs[0].T).T
        np.testing.assert_allclose(operator.rspvecs[0], ref, rtol=0, atol=1.0e-8)

    # operators that don't take part in the response keep the uncoupled guess
    static = operators[2]
    guess_static = static.rhsvecs[0] / (np.diag(_ediff()) - FREQUENCY)
    np.testing.assert_allclose(static.rspvecs[0], guess_static)

    assert [info.operator_label for info in infos] == ["dipole", "other"]
    for info in infos:
        assert info.converged
        assert info.frequency == FREQUENCY
        assert info.residual_norm < 1.0e-10


@pytest.mark.parametrize("name", SOLVER_NAMES)
def test_solvers_two_channels(name: str) -> None:
    G = _coupling()
    G_os = _coupling(seed=22, scale=0.02)
    blocks = [[G, G_os], [G_os.T, G]]
    C, operators = _operators(nden=2)
    ediff = _ediff()
    infos = _run(make_solver_iterator(name), operators, MatVecExplicit(blocks), C, ediff_beta=ediff)
    assert all(info.converged for info in infos)

    lhs = np.block(blocks) + np.kron(np.eye(2), ediff - (FREQUENCY * np.eye(NOV)))
    for operator in operators[:2]:
        rhs = np.concatenate(operator.rhsvecs, axis=1)
        ref = np.linalg.solve(lhs, rhs.T).T
        np.testing.assert_allclose(
            np.concatenate(operator.rspvecs, axis=1), ref, rtol=0, atol=1.0e-8
        )


@pytest.mark.parametrize("name", SOLVER_NAMES)
def test_solvers_restricted(name: str) -> None:
    G = _coupling()
    C, operators = _operators()
    active = np.array([0, 2, 5])
    indices = RestrictedIndices(alph=active, beta=active)
    _run(make_solver_iterator(name), operators, MatVecExplicit([[G]]), C, indices=indices)

    lhs = (_ediff() - (FREQUENCY * np.eye(NOV)) + G)[np.ix_(active, active)]
    inactive = np.setdiff1d(np.arange(NOV), active)
    for operator in operators[:2]:
        ref = np.linalg.solve(lhs, operator.rhsvecs[0][:, active].T).T
        np.testing.assert_allclose(operator.rspvecs[0][:, active], ref, rtol=0, atol=1.0e-8)
        assert not np.any(operator.rspvecs[0][:, inactive])


def test_zero_coupling_converges_immediately() -> None:
    C, operators = _operators()
    infos = _run(SolverIteratorDIIS(), operators, MatVecZero(), C, conv=1.0e-6)
    for info in infos:
        assert info.converged
        assert info.niter == 0


def test_non_convergence_is_reported(caplog) -> None:
    C, operators = _operators()
    with caplog.at_level(logging.WARNING, logger="libresponse"):
        infos = _run(SolverIteratorDIIS(), operators, MatVecExplicit([[_coupling()]]), C, maxiter=0)
    assert len(infos) == 2
    for info in infos:
        assert not info.converged
        assert info.niter == 0
        assert info.residual_norm > 1.0e-10
    assert "did not converge" in caplog.text


def test_make_solver_iterator() -> None:
    assert isinstance(make_solver_iterator("diis"), SolverIteratorDIIS)
    assert isinstance(make_solver_iterator("GMRES"), SolverIteratorKrylov)
    assert isinstance(make_solver_iterator("krylov"), SolverIteratorKrylov)
    assert isinstance(make_solver_iterator("exact"), SolverIteratorExact)
    with pytest.raises(ConfigurationError):
        make_solver_iterator("cg")


def test_init_errors() -> None:
    C, operators = _operators()
    solver = SolverIteratorDIIS()
    with pytest.raises(PreconditionError):
        solver.init(operators, Configurable(), MatVecZero(), C, _ediff(), None, 0.0, 10, 1.0e-6)
    solver.set_orbital_occupations(NOCC, NVIRT, NOCC, NVIRT)
    with pytest.raises(PreconditionError):
        solver.init(
            operators, Configurable(), MatVecZero(), C, np.eye(NOV + 1), None, 0.0, 10, 1.0e-6
        )


def test_diis_fixed_point() -> None:
    rng = np.random.default_rng(23)
    M = 0.1 * rng.standard_normal((4, 4))
    b = rng.standard_normal(4)
    x_exact = np.linalg.solve(np.eye(4) - M, b)
    diis = DIIS(max_vecs=4, start=2)

    # nothing is extrapolated before `start` vectors are stored
    x_first = M @ np.zeros(4) + b
    np.testing.assert_equal(diis.update(x_first, x_first), x_first)

    x = x_first
    for _ in range(30):
        x_new = M @ x + b
        x = diis.update(x_new, x_new - x)
    assert len(diis.x_list) <= 4
    np.testing.assert_allclose(x, x_exact, atol=1.0e-10)
