"""Driver for frequency-dependent linear response with orbitals that need
not be orthogonal, optionally restricted to the rotations of molecular
fragments."""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from libresponse import checkpoint
from libresponse.ao2mo import BasisTransform, form_basis_transform
from libresponse.configurable import Configurable, set_defaults
from libresponse.core import (
    ConfigurationError,
    PreconditionError,
    ReadMode,
    SpinChannel,
)
from libresponse.helpers import (
    form_ediff_terms,
    make_masked_mat,
    make_masked_vec,
)
from libresponse.indices import RestrictedIndices
from libresponse.matvec import MatVec
from libresponse.operators import Operator
from libresponse.printing import (
    format_results_with_labels,
    make_operator_component_vec,
    make_operator_imaginary_vec,
    make_operator_label_vec,
)
from libresponse.solvers import ConvergenceInfo, SolverIterator
from libresponse.utils import fix_fock_shape, fix_mocoeffs_shape

logger = logging.getLogger(__name__)

DASHES = "-" * 78


@dataclass
class LinearResponseResults:
    """Everything a call to `solve_linear_response` produces.

    `results` and `results_uncoupled` are ``[ntot, ntot, nfreq]``, rows being
    the property components and columns the response components.
    `imaginary_components` flags the components of imaginary operators.
    `convergence` has one list per frequency with one entry per solved
    operator.
    """

    results: np.ndarray
    results_uncoupled: np.ndarray
    frequencies: List[float]
    operator_labels: List[str]
    component_labels: List[str]
    imaginary_components: List[bool] = field(default_factory=list)
    convergence: List[List[ConvergenceInfo]] = field(default_factory=list)

    @property
    def all_converged(self) -> bool:
        return all(info.converged for infos in self.convergence for info in infos)


def _as_configurable(cfg: Union[Configurable, Mapping[str, Any], None]) -> Configurable:
    # Work on a copy so the caller's settings are never modified.
    if cfg is None:
        params = dict()
    elif isinstance(cfg, Configurable):
        params = cfg.as_dict()
    else:
        params = dict(cfg)
    return set_defaults(Configurable(params))


def validate_inputs(
    C: np.ndarray,
    occupations: Sequence[int],
    F: np.ndarray,
    S: Optional[np.ndarray],
    omega: Sequence[float],
    operators: Sequence[Operator],
    cfg: Configurable,
) -> Tuple[np.ndarray, np.ndarray, ReadMode]:
    """Check every input for consistency before any work is done.

    Returns the MO coefficients and Fock matrices with a leading spin axis,
    and the checkpoint read mode.

    Raises
    ------
    ConfigurationError
        For no frequencies, no operators, or a bad read mode.
    PreconditionError
        For inconsistent occupations or array shapes.
    """
    if len(omega) == 0:
        raise ConfigurationError("Supply one or more frequencies.")
    if len(operators) == 0:
        raise ConfigurationError("Supply one or more operators.")

    read_level = cfg.get_param("read", "int")
    try:
        read_mode = ReadMode(read_level)
    except ValueError as e:
        raise ConfigurationError(
            f"read = {read_level} is not one of {', '.join(str(int(mode)) for mode in ReadMode)}"
        ) from e

    if len(occupations) != 4:
        raise PreconditionError(
            f"occupations must have 4 entries [nocc_alph, nvirt_alph, nocc_beta, nvirt_beta], got {len(occupations)}"
        )
    if any(int(x) < 0 for x in occupations):
        raise PreconditionError(f"occupations must be non-negative, got {list(occupations)}")
    nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = [int(x) for x in occupations]

    C = fix_mocoeffs_shape(C)
    nden, nbasis, norb = C.shape
    if nden not in (1, 2):
        raise PreconditionError(f"expected 1 or 2 sets of MO coefficients, got {nden}")
    if norb != nocc_alph + nvirt_alph:
        raise PreconditionError(f"norb = {norb} but nocc_alph + nvirt_alph = {nocc_alph + nvirt_alph}")
    if norb != nocc_beta + nvirt_beta:
        raise PreconditionError(f"norb = {norb} but nocc_beta + nvirt_beta = {nocc_beta + nvirt_beta}")
    if nocc_alph == nocc_beta and nocc_alph * nvirt_alph != nocc_beta * nvirt_beta:
        raise PreconditionError("alpha and beta rotation spaces must match for equal occupations")

    F = fix_fock_shape(F)
    if F.shape[0] != nden:
        raise PreconditionError(f"{nden} sets of MO coefficients but {F.shape[0]} Fock matrices")
    if F.shape[1:] != (nbasis, nbasis):
        raise PreconditionError(f"Fock matrices have shape {F.shape[1:]}, expected {(nbasis, nbasis)}")
    if S is not None and S.shape != (nbasis, nbasis):
        raise PreconditionError(f"AO overlap has shape {S.shape}, expected {(nbasis, nbasis)}")

    for operator in operators:
        operator.check_ao_integrals(nbasis)

    return C, F, read_mode


def form_results(
    operators: Sequence[Operator], nden: int, indices: Optional[RestrictedIndices] = None
) -> np.ndarray:
    """Dot every property gradient with every response vector, one slice per
    spin channel.

    When `indices` is given, both sets of vectors are restricted to the
    active rotations before the dot product.

    Returns
    -------
    np.ndarray
        ``[ntot, ntot, nden]``
    """
    ntot = sum(operator.ncomp for operator in operators)
    results = np.zeros((ntot, ntot, nden))
    for s in range(nden):
        rhsvecs = np.concatenate([operator.rhsvecs[s] for operator in operators], axis=0)
        rspvecs = np.concatenate([operator.rspvecs[s] for operator in operators], axis=0)
        if indices is not None:
            rhsvecs = make_masked_vec(rhsvecs, indices[SpinChannel(s)])
            rspvecs = make_masked_vec(rspvecs, indices[SpinChannel(s)])
        results[..., s] = np.dot(rhsvecs, rspvecs.T)
    return results


def combine_channel_results(
    results_alph: np.ndarray, results_beta: Optional[np.ndarray] = None
) -> np.ndarray:
    """A single channel is reported as is; two channels are summed and
    doubled."""
    if results_beta is None:
        return results_alph.copy()
    return 2 * (results_alph + results_beta)


def _combine_slices(results_freq: np.ndarray) -> np.ndarray:
    if results_freq.shape[-1] == 1:
        return combine_channel_results(results_freq[..., 0])
    return combine_channel_results(results_freq[..., 0], results_freq[..., 1])


def _log_settings(
    occupations: Sequence[int], cfg: Configurable, omega: Sequence[float]
) -> None:
    nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = occupations
    lines = [
        DASHES,
        " Settings",
        f"  nocc_alph: {nocc_alph}",
        f"  nvirt_alph: {nvirt_alph}",
        f"  nocc_beta: {nocc_beta}",
        f"  nvirt_beta: {nvirt_beta}",
        f"  nov_alph: {nocc_alph * nvirt_alph}",
        f"  nov_beta: {nocc_beta * nvirt_beta}",
        f"  Solver: {cfg.get_param('solver')}",
        f"  Orbital Hessian: {cfg.get_param('hamiltonian').upper()}",
        f"  Operator spin type: {cfg.get_param('spin')}",
        f"  Max. iter: {cfg.get_param('maxiter', 'unsigned')}",
        f"  Convergence threshold: 10^{-cfg.get_param('conv', 'int')}",
        "  Frequencies: " + " ".join(str(frequency) for frequency in omega),
    ]
    logger.info("\n".join(lines))


def _log_transform(transform: BasisTransform) -> None:
    for s in range(transform.nden):
        name = SpinChannel(s).name
        logger.debug("sigma_%s\n%s", name, transform.sigma[s])
        logger.debug("F_%s\n%s", name, transform.fock[s])
    if transform.do_canonical_orthogonalization:
        logger.debug("S_inv\n%s", transform.S_inv)
        for s in range(transform.nden):
            logger.debug("sigma_inv_%s\n%s", SpinChannel(s).name, transform.sigma_inv[s])


def solve_linear_response(
    matvec: MatVec,
    solver_iterator: SolverIterator,
    C: np.ndarray,
    fragment_occupations: np.ndarray,
    occupations: Sequence[int],
    F: np.ndarray,
    S: Optional[np.ndarray],
    omega: Sequence[float],
    operators: Sequence[Operator],
    cfg: Union[Configurable, Mapping[str, Any], None] = None,
) -> LinearResponseResults:
    """Solve the linear response equations for every operator at every
    frequency.

    Parameters
    ----------
    matvec : MatVec
        Supplies the two-electron coupling of the orbital Hessian.
    solver_iterator : SolverIterator
        Converges the response vectors at each frequency.
    C : np.ndarray
        MO coefficients, ``[nden, AO, MO]`` or ``[AO, MO]``.
    fragment_occupations : np.ndarray
        One row per fragment, ``[fragment_id, norb, nocc_alph, nocc_beta]``.
    occupations : sequence of int
        ``[nocc_alph, nvirt_alph, nocc_beta, nvirt_beta]``
    F : np.ndarray
        AO-basis Fock matrices, one per set of MO coefficients.
    S : np.ndarray or None
        AO overlap matrix; None for an orthonormal AO basis.
    omega : sequence of float
        Frequencies, in the order of the last axis of the results.
    operators : sequence of Operator
        Operators with their AO integrals set. Their gradient and response
        vectors are overwritten.
    cfg : Configurable or mapping, optional

    Returns
    -------
    LinearResponseResults
    """
    cfg = _as_configurable(cfg)
    C, F, read_mode = validate_inputs(C, occupations, F, S, omega, operators, cfg)
    occupations = [int(x) for x in occupations]
    nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = occupations
    nden = C.shape[0]

    print_level = cfg.get_param("print_level", "int")
    maxiter = cfg.get_param("maxiter", "unsigned")
    conv = 10.0 ** (-cfg.get_param("conv", "int"))
    save_level = cfg.get_param("save", "int")
    prefix = cfg.get_param("prefix") if cfg.has_param("prefix") else ""
    mask_ediff_mo = cfg.get_param("_mask_ediff_mo", "bool")
    mask_form_results_mo = cfg.get_param("_mask_form_results_mo", "bool")

    operator_labels = make_operator_label_vec(operators)
    component_labels = make_operator_component_vec(operators)
    imaginary_components = make_operator_imaginary_vec(operators)

    if print_level >= 1:
        _log_settings(occupations, cfg, omega)

    transform = form_basis_transform(
        C,
        F,
        S,
        occupations,
        do_canonical_orthogonalization=cfg.get_param("_do_orthogonalization_canonical", "bool"),
    )
    if print_level >= 10:
        _log_transform(transform)

    indices = RestrictedIndices.from_fragment_occupations(
        fragment_occupations,
        frgm_response_idx=cfg.get_param("_frgm_response_idx", "int"),
        occupations=occupations,
    )
    if print_level >= 10:
        logger.debug("indices_mo_alph\n%s", indices.alph)
        logger.debug("indices_mo_beta\n%s", indices.beta)

    ediffs = []
    for s in range(nden):
        ediff = form_ediff_terms(
            transform.fock[s], transform.sigma[s], transform.nocc[s], transform.nvirt[s]
        )
        if mask_ediff_mo:
            ediff = make_masked_mat(
                ediff,
                indices[SpinChannel(s)],
                fill_value=0.0,
                diagonal_value=cfg.get_param("_mask_ediff_sentinel", "float"),
            )
        if print_level >= 10:
            logger.debug("ediff_%s\n%s", SpinChannel(s).name, ediff)
        if save_level > 0:
            checkpoint.save_array(
                checkpoint.make_filename(prefix, checkpoint.TAG_EDIFF, SpinChannel(s)), ediff
            )
        ediffs.append(ediff)
    ediff_alph = ediffs[0]
    ediff_beta = ediffs[1] if nden == 2 else None

    # Only the active rotations are solved for when the energy differences
    # are masked.
    solve_indices = indices if mask_ediff_mo else None
    results_indices = indices if mask_form_results_mo else None

    for operator in operators:
        operator.form_rhs(C, occupations)

    # Vectors read from disk are the starting point at every frequency.
    start_rspvecs = dict()
    for operator in operators:
        if operator.do_response and read_mode != ReadMode.none:
            operator.load_rspvecs(read_mode, prefix, transform)
            start_rspvecs[id(operator)] = [rspvecs.copy() for rspvecs in operator.rspvecs]

    solver_iterator.set_orbital_occupations(nocc_alph, nvirt_alph, nocc_beta, nvirt_beta)
    solver_iterator.set_fragment_occupations(fragment_occupations)

    ntot = len(component_labels)
    results = np.zeros((ntot, ntot, len(omega)))
    results_uncoupled = np.zeros((ntot, ntot, len(omega)))
    convergence = []

    for f, frequency in enumerate(omega):
        for operator in operators:
            if id(operator) in start_rspvecs:
                operator.rspvecs = [rspvecs.copy() for rspvecs in start_rspvecs[id(operator)]]
                continue
            for s in range(nden):
                channel = SpinChannel(s)
                operator.form_guess_rspvec(
                    ediffs[s],
                    frequency,
                    channel,
                    solve_indices[channel] if solve_indices is not None else None,
                )
            operator.save_to_disk(save_level, prefix, transform, uncoupled=True)

        results_uncoupled[..., f] = _combine_slices(
            form_results(operators, nden, results_indices)
        )
        if print_level >= 1:
            logger.info(
                "%s\n Uncoupled result (initial guess), frequency %s:\n%s",
                DASHES,
                frequency,
                format_results_with_labels(
                    results_uncoupled[..., f],
                    operator_labels,
                    component_labels,
                    imaginary=imaginary_components,
                ),
            )

        solver_iterator.init(
            operators,
            cfg,
            matvec,
            C,
            ediff_alph,
            ediff_beta,
            frequency,
            maxiter,
            conv,
            indices=solve_indices,
        )
        convergence.append(solver_iterator.run())

        results[..., f] = _combine_slices(form_results(operators, nden, results_indices))

        for operator in operators:
            operator.save_to_disk(save_level, prefix, transform)

    if print_level >= 1:
        for f, frequency in enumerate(omega):
            logger.info(
                "%s\n Final result, frequency %s:\n%s",
                DASHES,
                frequency,
                format_results_with_labels(
                    results[..., f],
                    operator_labels,
                    component_labels,
                    imaginary=imaginary_components,
                ),
            )

    return LinearResponseResults(
        results=results,
        results_uncoupled=results_uncoupled,
        frequencies=[float(frequency) for frequency in omega],
        operator_labels=operator_labels,
        component_labels=component_labels,
        imaginary_components=imaginary_components,
        convergence=convergence,
    )
