"""The action of the two-electron (coupling) part of the orbital Hessian on a
batch of trial vectors.

The response equations solved for each spin channel ``s`` are

.. math::

    (\\Delta\\epsilon_{s} - \\omega) x_{s} + \\sum_{t} G_{st} x_{t} = b_{s}

and a `MatVec` supplies :math:`\\sum_{t} G_{st} x_{t}`.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple, Union

import numpy as np

from libresponse.core import ConfigurationError, Hamiltonian, PreconditionError, Spin
from libresponse.explicit_equations import (
    form_a_coupling_mo_singlet_partial,
    form_a_coupling_mo_ss_partial,
    form_a_coupling_mo_triplet_partial,
    form_ab_coupling_mo_os_partial,
    form_b_coupling_mo_singlet_partial,
    form_b_coupling_mo_ss_partial,
    form_b_coupling_mo_triplet_partial,
)


def as_hamiltonian(hamiltonian: Union[Hamiltonian, str]) -> Hamiltonian:
    try:
        return Hamiltonian(hamiltonian)
    except ValueError as e:
        raise ConfigurationError(f"unknown hamiltonian '{hamiltonian}'") from e


def as_spin(spin: Union[Spin, str]) -> Spin:
    try:
        return Spin(spin)
    except ValueError as e:
        raise ConfigurationError(f"unknown spin '{spin}'") from e


class MatVec(ABC):
    """Compute the orbital Hessian coupling term for trial vectors.

    Implementations must be pure: the result depends only on the arguments
    and on state fixed at construction.
    """

    @abstractmethod
    def compute(self, trial_vectors: Sequence[np.ndarray], frequency: float) -> List[np.ndarray]:
        """
        Parameters
        ----------
        trial_vectors : sequence of np.ndarray
            One ``[nvec, nocc_s * nvirt_s]`` array per spin channel.
        frequency : float

        Returns
        -------
        list of np.ndarray
            Same shapes as `trial_vectors`.
        """


class MatVecZero(MatVec):
    """No coupling: the response is the uncoupled one."""

    def compute(self, trial_vectors: Sequence[np.ndarray], frequency: float) -> List[np.ndarray]:
        return [np.zeros_like(np.asarray(x, dtype=float)) for x in trial_vectors]


class MatVecExplicit(MatVec):
    """Coupling from explicitly stored blocks, ``blocks[s][t]`` being the
    ``[nov_s, nov_t]`` block between spin channels ``s`` and ``t``."""

    def __init__(self, blocks: Sequence[Sequence[np.ndarray]]) -> None:
        nden = len(blocks)
        if nden not in (1, 2):
            raise PreconditionError(f"expected 1 or 2 spin channels of blocks, got {nden}")
        for s in range(nden):
            if len(blocks[s]) != nden:
                raise PreconditionError("coupling blocks must be square in the spin channels")
            for t in range(nden):
                if blocks[s][t].shape[0] != blocks[s][s].shape[0]:
                    raise PreconditionError(f"coupling block ({s}, {t}) has the wrong number of rows")
                if blocks[s][t].shape[1] != blocks[t][t].shape[1]:
                    raise PreconditionError(f"coupling block ({s}, {t}) has the wrong number of columns")
        self.blocks = [[np.asarray(block) for block in row] for row in blocks]

    @property
    def nden(self) -> int:
        return len(self.blocks)

    def compute(self, trial_vectors: Sequence[np.ndarray], frequency: float) -> List[np.ndarray]:
        if len(trial_vectors) != self.nden:
            raise PreconditionError(
                f"{len(trial_vectors)} channels of trial vectors for {self.nden} channels of blocks"
            )
        products = []
        for s in range(self.nden):
            product = sum(
                np.asarray(trial_vectors[t]) @ self.blocks[s][t].T for t in range(self.nden)
            )
            products.append(product)
        return products

    @classmethod
    def from_mo_integrals(
        cls,
        tei_mo: Tuple[np.ndarray, ...],
        occupations: Sequence[int],
        hamiltonian: Union[Hamiltonian, str] = Hamiltonian.RPA,
        spin: Union[Spin, str] = Spin.singlet,
    ) -> "MatVecExplicit":
        """Build the coupling blocks from partially-transformed MO integrals.

        For a restricted reference `tei_mo` is ``(ovov, oovv)``; for an
        unrestricted one it is ``(ovov_aaaa, ovov_aabb, ovov_bbaa, ovov_bbbb,
        oovv_aaaa, oovv_bbbb)``. The RPA coupling is :math:`A + B`, the TDA
        coupling is :math:`A` alone.
        """
        hamiltonian = as_hamiltonian(hamiltonian)
        spin = as_spin(spin)
        nocc_alph, nvirt_alph, nocc_beta, nvirt_beta = occupations
        rpa = hamiltonian == Hamiltonian.RPA

        if len(tei_mo) == 2:
            tei_mo_ovov, tei_mo_oovv = tei_mo
            if tei_mo_ovov.shape != (nocc_alph, nvirt_alph, nocc_alph, nvirt_alph):
                raise PreconditionError(
                    f"(ia|jb) integrals have shape {tei_mo_ovov.shape}, which does not match the occupations"
                )
            if spin == Spin.singlet:
                G = form_a_coupling_mo_singlet_partial(tei_mo_ovov, tei_mo_oovv)
                if rpa:
                    G += form_b_coupling_mo_singlet_partial(tei_mo_ovov)
            else:
                G = form_a_coupling_mo_triplet_partial(tei_mo_oovv)
                if rpa:
                    G += form_b_coupling_mo_triplet_partial(tei_mo_ovov)
            return cls([[G]])

        if len(tei_mo) == 6:
            if spin != Spin.singlet:
                raise ConfigurationError("triplet coupling needs a restricted (single channel) reference")
            (
                tei_mo_ovov_aaaa,
                tei_mo_ovov_aabb,
                tei_mo_ovov_bbaa,
                tei_mo_ovov_bbbb,
                tei_mo_oovv_aaaa,
                tei_mo_oovv_bbbb,
            ) = tei_mo
            if tei_mo_ovov_aabb.shape != (nocc_alph, nvirt_alph, nocc_beta, nvirt_beta):
                raise PreconditionError(
                    f"(ia|JB) integrals have shape {tei_mo_ovov_aabb.shape}, which does not match the occupations"
                )
            G_aa = form_a_coupling_mo_ss_partial(tei_mo_ovov_aaaa, tei_mo_oovv_aaaa)
            G_bb = form_a_coupling_mo_ss_partial(tei_mo_ovov_bbbb, tei_mo_oovv_bbbb)
            G_ab = form_ab_coupling_mo_os_partial(tei_mo_ovov_aabb)
            G_ba = form_ab_coupling_mo_os_partial(tei_mo_ovov_bbaa)
            if rpa:
                G_aa += form_b_coupling_mo_ss_partial(tei_mo_ovov_aaaa)
                G_bb += form_b_coupling_mo_ss_partial(tei_mo_ovov_bbbb)
                G_ab *= 2
                G_ba *= 2
            return cls([[G_aa, G_ab], [G_ba, G_bb]])

        raise PreconditionError(
            f"expected 2 (restricted) or 6 (unrestricted) sets of MO integrals, got {len(tei_mo)}"
        )
