from typing import List, Optional, Sequence

import numpy as np

from libresponse import checkpoint
from libresponse.ao2mo import (
    BasisTransform,
    ia_vecs_to_mn_mats,
    one_electron_mn_mats_to_ia_vecs,
    project_mn_mats_to_ia_vecs,
)
from libresponse.core import Basis, PreconditionError, ReadMode, SpinChannel
from libresponse.helpers import form_uncoupled_guess
from libresponse.utils import fix_mocoeffs_shape

CARTESIAN_LABELS = ("x", "y", "z")


class Operator:
    """Handle property integrals, taking them from the AO basis to a
    representation of a right-hand side perturbation, and hold the response
    vectors for the current frequency."""

    def __init__(
        self,
        label: str = "",
        ao_integrals: Optional[np.ndarray] = None,
        *,
        do_response: bool = True,
        is_imaginary: bool = False,
        component_labels: Optional[Sequence[str]] = None,
    ) -> None:
        self.label = label
        self.do_response = do_response
        self.is_imaginary = is_imaginary
        self._component_labels = component_labels

        self.ao_integrals = ao_integrals
        # One entry per spin channel, each [ncomp, nocc * nvirt].
        self.rhsvecs: List[np.ndarray] = []
        self.rspvecs: List[np.ndarray] = []

    def __str__(self) -> str:
        return (
            f'Operator(label="{self.label}", do_response={self.do_response}, '
            f"is_imaginary={self.is_imaginary}, ncomp={self.ncomp})"
        )

    @property
    def ncomp(self) -> int:
        if self.ao_integrals is None:
            return 0
        return self.ao_integrals.shape[0]

    @property
    def component_labels(self) -> List[str]:
        if self._component_labels is not None:
            return list(self._component_labels)
        if self.ncomp == 3:
            return list(CARTESIAN_LABELS)
        return [str(i + 1) for i in range(self.ncomp)]

    def check_ao_integrals(self, nbasis: int) -> None:
        # First dimension is the number of components, next two are the
        # number of AOs.
        if not isinstance(self.ao_integrals, np.ndarray):
            raise PreconditionError(f"operator '{self.label}' has no AO integrals")
        shape = self.ao_integrals.shape
        if len(shape) != 3 or shape[0] < 1 or shape[1:] != (nbasis, nbasis):
            raise PreconditionError(
                f"operator '{self.label}' AO integrals have shape {shape}, "
                f"expected (ncomp, {nbasis}, {nbasis})"
            )

    def form_rhs(self, C: np.ndarray, occupations: Sequence[int]) -> None:
        """Form the property gradient of each spin channel,
        :math:`(C_{v}^{T} M C_{o})` with the virtual index fast."""
        C = fix_mocoeffs_shape(C)
        self.check_ao_integrals(C.shape[1])
        if len(occupations) != 4:
            raise PreconditionError("occupations must be [nocc_alph, nvirt_alph, nocc_beta, nvirt_beta]")
        nocc_alph, _, nocc_beta, _ = occupations
        nocc = [nocc_alph, nocc_beta]
        self.rhsvecs = []
        for channel in range(C.shape[0]):
            C_occ = C[channel, :, : nocc[channel]]
            C_virt = C[channel, :, nocc[channel] :]
            self.rhsvecs.append(one_electron_mn_mats_to_ia_vecs(self.ao_integrals, C_occ, C_virt))
        self.rspvecs = [np.zeros_like(rhsvecs) for rhsvecs in self.rhsvecs]

    def form_guess_rspvec(
        self,
        ediff: np.ndarray,
        frequency: float,
        channel: SpinChannel,
        indices: Optional[np.ndarray] = None,
    ) -> None:
        """Set the response vectors of one spin channel to the uncoupled
        result, ``rhs / (ediff - frequency)``."""
        self.rspvecs[channel] = form_uncoupled_guess(
            self.rhsvecs[channel], ediff, frequency, indices
        )

    def load_rspvecs(self, read_mode: ReadMode, prefix: str, transform: BasisTransform) -> None:
        """Replace the response vectors with ones from a previous calculation."""
        if read_mode == ReadMode.none:
            return
        for channel in range(transform.nden):
            nov = transform.nocc[channel] * transform.nvirt[channel]
            if read_mode == ReadMode.mo:
                filename = checkpoint.make_filename(
                    prefix, checkpoint.TAG_RSPVECS, SpinChannel(channel), self.label, Basis.mo
                )
                rspvecs = checkpoint.load_array(filename, self.label, (self.ncomp, nov))
            else:
                nbasis = transform.S.shape[0]
                filename = checkpoint.make_filename(
                    prefix, checkpoint.TAG_RSPVECS, SpinChannel(channel), self.label, Basis.ao
                )
                rspvecs_ao = checkpoint.load_array(filename, self.label, (self.ncomp, nbasis, nbasis))
                rspvecs = project_mn_mats_to_ia_vecs(
                    rspvecs_ao,
                    transform.C[channel],
                    transform.nocc[channel],
                    transform.sigma_inverse(channel),
                )
            self.rspvecs[channel] = rspvecs

    def save_to_disk(
        self, save_level: int, prefix: str, transform: BasisTransform, uncoupled: bool = False
    ) -> None:
        """Write the gradient and response vectors, the latter in both the MO
        and AO basis. Nothing is written if `save_level` is not positive."""
        if save_level <= 0:
            return
        tag = checkpoint.TAG_RSPVECS_UNCOUPLED if uncoupled else checkpoint.TAG_RSPVECS
        for channel in range(transform.nden):
            spin = SpinChannel(channel)
            if not uncoupled:
                checkpoint.save_array(
                    checkpoint.make_filename(prefix, checkpoint.TAG_RHSVECS, spin, self.label, Basis.mo),
                    self.rhsvecs[channel],
                    self.label,
                )
            checkpoint.save_array(
                checkpoint.make_filename(prefix, tag, spin, self.label, Basis.mo),
                self.rspvecs[channel],
                self.label,
            )
            checkpoint.save_array(
                checkpoint.make_filename(prefix, tag, spin, self.label, Basis.ao),
                ia_vecs_to_mn_mats(
                    self.rspvecs[channel],
                    transform.C_occ[channel],
                    transform.C_virt[channel],
                    transform.S,
                ),
                self.label,
            )
