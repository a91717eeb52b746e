"""Iterative solution of the response equations for a batch of operators at
one frequency.

For each spin channel ``s`` the equations are

.. math::

    (\\Delta\\epsilon_{s} - \\omega) x_{s} + \\sum_{t} G_{st} x_{t} = b_{s}

where :math:`\\Delta\\epsilon_{s}` is the energy-difference operator and the
coupling :math:`G x` comes from a `MatVec`. When a restricted index set is
given, only the active rotations are solved for and every other element of
the response vectors is zero.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Type

import numpy as np
import scipy.linalg
import scipy.sparse.linalg

from libresponse.configurable import Configurable, set_defaults
from libresponse.core import ConfigurationError, NumericalError, PreconditionError, SpinChannel
from libresponse.helpers import DENOMINATOR_THRESH
from libresponse.indices import RestrictedIndices, fragment_table_columns
from libresponse.matvec import MatVec
from libresponse.operators import Operator
from libresponse.utils import fix_mocoeffs_shape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConvergenceInfo:
    """How the solve of one operator at one frequency ended."""

    operator_label: str
    frequency: float
    converged: bool
    niter: int
    residual_norm: float


class DIIS:
    """Pulay's direct inversion in the iterative subspace.

    Extrapolates a better vector from a history of vector/error pairs:
    :math:`x_{DIIS} = \\sum_{i} c_{i} x_{i}`, where :math:`\\sum_{i} c_{i} = 1`
    minimizes :math:`||\\sum_{i} c_{i} e_{i}||^{2}`.
    """

    def __init__(self, max_vecs: int = 8, start: int = 2) -> None:
        self.max_vecs = max(max_vecs, 1)
        self.start = start
        self.x_list: List[np.ndarray] = []
        self.e_list: List[np.ndarray] = []

    def reset(self) -> None:
        self.x_list = []
        self.e_list = []

    def update(self, x: np.ndarray, e: np.ndarray) -> np.ndarray:
        self.x_list.append(x.copy())
        self.e_list.append(e.ravel().copy())

        if len(self.x_list) > self.max_vecs:
            self.x_list.pop(0)
            self.e_list.pop(0)

        m = len(self.x_list)
        if m < max(self.start, 2):
            return x

        B = np.zeros((m + 1, m + 1))
        for i in range(m):
            for j in range(i + 1):
                B[i, j] = B[j, i] = np.dot(self.e_list[i], self.e_list[j])
        scale = np.abs(B[:m, :m]).max()
        if scale == 0.0:
            return x
        B[:m, :m] /= scale
        B[-1, :m] = -1.0
        B[:m, -1] = -1.0
        rhs = np.zeros(m + 1)
        rhs[-1] = -1.0

        try:
            coeffs = np.linalg.solve(B, rhs)[:m]
        except np.linalg.LinAlgError:
            # The history has become linearly dependent; start over from here.
            logger.debug("DIIS subspace is singular, resetting")
            self.reset()
            return x
        return sum(c * x_i for c, x_i in zip(coeffs, self.x_list))


class SolverIterator(ABC):
    """Converge the response vectors of a batch of operators at one frequency.

    Usage is ``set_orbital_occupations`` and ``set_fragment_occupations``
    once, then ``init`` followed by ``run`` for each frequency. ``run``
    overwrites ``rspvecs`` of every operator that has ``do_response`` set.
    """

    def __init__(self) -> None:
        self.occupations: Optional[List[int]] = None
        self.fragment_occupations: Optional[np.ndarray] = None

        self.operators: List[Operator] = []
        self.cfg = set_defaults(Configurable())
        self.matvec: Optional[MatVec] = None
        self.frequency = 0.0
        self.maxiter = 0
        self.conv = 0.0
        self.nden = 0
        self.nov: List[int] = []
        # Per channel, the flattened occ-virt indices being solved for.
        self.active: List[np.ndarray] = []
        self.shifted_ediff: List[np.ndarray] = []
        self.denominators = np.zeros(0)

    def set_orbital_occupations(
        self, nocc_alph: int, nvirt_alph: int, nocc_beta: int, nvirt_beta: int
    ) -> None:
        self.occupations = [int(nocc_alph), int(nvirt_alph), int(nocc_beta), int(nvirt_beta)]

    def set_fragment_occupations(self, fragment_occupations: np.ndarray) -> None:
        fragment_table_columns(fragment_occupations)
        self.fragment_occupations = np.asarray(fragment_occupations, dtype=int)

    def init(
        self,
        operators: Sequence[Operator],
        cfg: Configurable,
        matvec: MatVec,
        C: np.ndarray,
        ediff_alph: np.ndarray,
        ediff_beta: Optional[np.ndarray],
        frequency: float,
        maxiter: int,
        conv: float,
        indices: Optional[RestrictedIndices] = None,
    ) -> None:
        if self.occupations is None:
            raise PreconditionError("set_orbital_occupations must be called before init")
        self.operators = list(operators)
        self.cfg = set_defaults(Configurable(cfg.as_dict()))
        self.matvec = matvec
        self.frequency = float(frequency)
        self.maxiter = int(maxiter)
        self.conv = float(conv)

        self.nden = fix_mocoeffs_shape(C).shape[0]
        nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = self.occupations
        self.nov = [nocc_alph * nvirt_alph, nocc_beta * nvirt_beta][: self.nden]
        ediffs = [ediff_alph, ediff_beta][: self.nden]

        self.shifted_ediff = []
        self.active = []
        for s, (ediff, nov) in enumerate(zip(ediffs, self.nov)):
            if ediff is None or ediff.shape != (nov, nov):
                shape = None if ediff is None else ediff.shape
                raise PreconditionError(
                    f"energy differences for channel {SpinChannel(s).name} have shape {shape}, "
                    f"expected {(nov, nov)}"
                )
            self.shifted_ediff.append(ediff - (self.frequency * np.eye(nov)))
            if indices is None:
                self.active.append(np.arange(nov))
            else:
                self.active.append(np.asarray(indices[SpinChannel(s)], dtype=int))

        self.denominators = self.pack([np.diag(shifted) for shifted in self.shifted_ediff])
        small = np.abs(self.denominators) < DENOMINATOR_THRESH
        if np.any(small):
            raise NumericalError(
                f"frequency {self.frequency} makes {int(np.sum(small))} preconditioner denominators vanish"
            )

    @property
    def nactive(self) -> int:
        return sum(len(active) for active in self.active)

    @property
    def print_level(self) -> int:
        return self.cfg.get_param("print_level", "int")

    def pack(self, vecs: Sequence[np.ndarray]) -> np.ndarray:
        """Gather the active elements of per-channel vectors into one array,
        alpha first."""
        return np.concatenate(
            [np.asarray(vec)[..., active] for vec, active in zip(vecs, self.active)], axis=-1
        )

    def unpack(self, packed: np.ndarray) -> List[np.ndarray]:
        """Inverse of `pack`; inactive elements are zero."""
        vecs = []
        start = 0
        for nov, active in zip(self.nov, self.active):
            vec = np.zeros(packed.shape[:-1] + (nov,), dtype=packed.dtype)
            vec[..., active] = packed[..., start : start + len(active)]
            start += len(active)
            vecs.append(vec)
        return vecs

    def apply(self, packed: np.ndarray) -> np.ndarray:
        """Action of the full left-hand side on packed ``[nvec, nactive]``
        trial vectors."""
        trial_vectors = self.unpack(packed)
        coupling = self.matvec.compute(trial_vectors, self.frequency)
        products = [
            (trial @ shifted.T) + np.asarray(product)
            for trial, shifted, product in zip(trial_vectors, self.shifted_ediff, coupling)
        ]
        return self.pack(products)

    def solved_operators(self) -> List[Operator]:
        return [operator for operator in self.operators if operator.do_response]

    def residuals(self, operators: Sequence[Operator], xs: Sequence[np.ndarray]) -> List[np.ndarray]:
        """``b - A x`` for each operator, with one matrix-vector product for
        the whole batch."""
        if not operators:
            return []
        products = self.apply(np.concatenate(xs, axis=0))
        bounds = np.cumsum([x.shape[0] for x in xs])[:-1]
        return [
            self.pack(operator.rhsvecs) - product
            for operator, product in zip(operators, np.split(products, bounds, axis=0))
        ]

    @staticmethod
    def residual_norm(residual: np.ndarray) -> float:
        if residual.size == 0:
            return 0.0
        return float(np.max(np.abs(residual)))

    def finish(self, operator: Operator, x: np.ndarray, niter: int, residual_norm: float) -> ConvergenceInfo:
        operator.rspvecs = self.unpack(x)
        info = ConvergenceInfo(
            operator_label=operator.label,
            frequency=self.frequency,
            converged=residual_norm < self.conv,
            niter=niter,
            residual_norm=residual_norm,
        )
        if info.converged:
            if self.print_level >= 1:
                logger.info(
                    "operator %s converged in %d iterations (max residual %.3e)",
                    operator.label,
                    niter,
                    residual_norm,
                )
        else:
            logger.warning(
                "operator %s did not converge at frequency %f after %d iterations "
                "(max residual %.3e > %.3e)",
                operator.label,
                self.frequency,
                niter,
                residual_norm,
                self.conv,
            )
        return info

    @abstractmethod
    def run(self) -> List[ConvergenceInfo]:
        pass


class SolverIteratorDIIS(SolverIterator):
    """Jacobi iterations preconditioned by the diagonal of the
    energy-difference operator, accelerated by DIIS. Each operator keeps its
    own DIIS history, but all unconverged operators share each matrix-vector
    product."""

    def run(self) -> List[ConvergenceInfo]:
        max_vecs = self.cfg.get_param("diis_max_vecs", "unsigned")
        start = self.cfg.get_param("diis_start", "unsigned")

        pending = self.solved_operators()
        xs: Dict[int, np.ndarray] = {id(op): self.pack(op.rspvecs) for op in pending}
        diis = {id(op): DIIS(max_vecs, start) for op in pending}
        infos: Dict[int, ConvergenceInfo] = dict()

        for iteration in range(self.maxiter + 1):
            if not pending:
                break
            residuals = self.residuals(pending, [xs[id(op)] for op in pending])
            still_pending = []
            norms = []
            for operator, residual in zip(pending, residuals):
                norm = self.residual_norm(residual)
                norms.append(norm)
                if norm < self.conv or iteration == self.maxiter:
                    infos[id(operator)] = self.finish(operator, xs[id(operator)], iteration, norm)
                    continue
                step = residual / self.denominators
                xs[id(operator)] = diis[id(operator)].update(xs[id(operator)] + step, step)
                still_pending.append(operator)
            if self.print_level >= 1 and norms:
                logger.info(
                    "DIIS iteration %3d: %d operators left, maximum residual = %.8e",
                    iteration,
                    len(still_pending),
                    max(norms),
                )
            pending = still_pending

        return [infos[id(op)] for op in self.solved_operators()]


class SolverIteratorKrylov(SolverIterator):
    """Restarted GMRES from SciPy, one right-hand side at a time, with the
    diagonal of the energy-difference operator as the preconditioner."""

    def run(self) -> List[ConvergenceInfo]:
        n = self.nactive
        if n == 0:
            return [self.finish(op, self.pack(op.rspvecs), 0, 0.0) for op in self.solved_operators()]
        A = scipy.sparse.linalg.LinearOperator(
            (n, n), matvec=lambda v: self.apply(v.reshape(1, -1)).ravel(), dtype=float
        )
        M = scipy.sparse.linalg.LinearOperator(
            (n, n), matvec=lambda v: v.ravel() / self.denominators, dtype=float
        )

        infos = []
        for operator in self.solved_operators():
            rhs = self.pack(operator.rhsvecs)
            x = self.pack(operator.rspvecs).copy()
            niter = 0
            for component in range(rhs.shape[0]):
                counter = {"niter": 0}

                def callback(_, counter=counter):
                    counter["niter"] += 1

                solution, info = scipy.sparse.linalg.gmres(
                    A,
                    rhs[component],
                    x0=x[component],
                    rtol=0.0,
                    atol=0.1 * self.conv,
                    maxiter=max(self.maxiter, 1),
                    M=M,
                    callback=callback,
                    callback_type="pr_norm",
                )
                if info < 0:
                    raise NumericalError(f"GMRES breakdown for operator {operator.label}")
                x[component] = solution
                niter = max(niter, counter["niter"])
            norm = self.residual_norm(self.residuals([operator], [x])[0])
            infos.append(self.finish(operator, x, niter, norm))
        return infos


class SolverIteratorExact(SolverIterator):
    """Form the left-hand side explicitly by acting on unit vectors, then
    solve for every right-hand side at once. Only sensible for small
    rotation spaces."""

    def form_explicit_lhs(self) -> np.ndarray:
        n = self.nactive
        return self.apply(np.eye(n)).T

    def run(self) -> List[ConvergenceInfo]:
        operators = self.solved_operators()
        if not operators:
            return []
        if self.nactive == 0:
            return [self.finish(op, self.pack(op.rspvecs), 0, 0.0) for op in operators]
        lhs = self.form_explicit_lhs()
        rhs = np.concatenate([self.pack(operator.rhsvecs) for operator in operators], axis=0)
        try:
            solution = scipy.linalg.solve(lhs, rhs.T).T
        except (np.linalg.LinAlgError, ValueError) as e:
            raise NumericalError(f"explicit response equations could not be solved: {e}") from e
        bounds = np.cumsum([operator.ncomp for operator in operators])[:-1]
        xs = np.split(solution, bounds, axis=0)
        residuals = self.residuals(operators, xs)
        return [
            self.finish(operator, x, 1, self.residual_norm(residual))
            for operator, x, residual in zip(operators, xs, residuals)
        ]


SOLVERS: Dict[str, Type[SolverIterator]] = {
    "diis": SolverIteratorDIIS,
    "krylov": SolverIteratorKrylov,
    "gmres": SolverIteratorKrylov,
    "exact": SolverIteratorExact,
}


def make_solver_iterator(name: str) -> SolverIterator:
    """Pick a solver by the value of the ``solver`` parameter."""
    try:
        return SOLVERS[name.strip().lower()]()
    except KeyError as e:
        raise ConfigurationError(
            f"unknown solver '{name}', choose from {', '.join(sorted(SOLVERS))}"
        ) from e
