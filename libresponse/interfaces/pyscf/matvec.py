"""Orbital Hessian coupling from Coulomb and exchange builds in pyscf, which
avoids storing any MO-basis two-electron integrals."""

from typing import List, Sequence, Union

import numpy as np

import pyscf
from pyscf import scf

from libresponse.core import ConfigurationError, Hamiltonian, PreconditionError, Spin
from libresponse.matvec import MatVec, as_hamiltonian, as_spin
from libresponse.utils import fix_mocoeffs_shape, repack_matrix_to_vector, repack_vector_to_matrix


class MatVecPyscf(MatVec):
    r"""Contract trial vectors with the two-electron part of the orbital
    Hessian through the AO-basis trial densities
    :math:`D = C_{v} X C_{o}^{T}`.

    For RPA the densities are symmetrized, :math:`D + D^{T}`, which gives
    the :math:`A + B` coupling; for TDA only :math:`A` is formed.
    """

    def __init__(
        self,
        mol: pyscf.gto.Mole,
        C: np.ndarray,
        occupations: Sequence[int],
        hamiltonian: Union[Hamiltonian, str] = Hamiltonian.RPA,
        spin: Union[Spin, str] = Spin.singlet,
    ) -> None:
        self.mol = mol
        self.C = fix_mocoeffs_shape(C)
        self.hamiltonian = as_hamiltonian(hamiltonian)
        self.spin = as_spin(spin)
        nocc_alph, _, nocc_beta, _ = occupations
        self.nocc = [nocc_alph, nocc_beta][: self.nden]
        if self.nden == 2 and self.spin != Spin.singlet:
            raise ConfigurationError("triplet coupling needs a restricted (single channel) reference")

    @property
    def nden(self) -> int:
        return self.C.shape[0]

    def _densities(self, s: int, trial_vectors: np.ndarray) -> np.ndarray:
        C_occ = self.C[s, :, : self.nocc[s]]
        C_virt = self.C[s, :, self.nocc[s] :]
        nvirt = C_virt.shape[1]
        dms = np.stack(
            [
                C_virt @ repack_vector_to_matrix(vec, (nvirt, self.nocc[s])) @ C_occ.T
                for vec in trial_vectors
            ],
            axis=0,
        )
        if self.hamiltonian == Hamiltonian.RPA:
            dms = dms + dms.transpose(0, 2, 1)
        return dms

    def compute(self, trial_vectors: Sequence[np.ndarray], frequency: float) -> List[np.ndarray]:
        if len(trial_vectors) != self.nden:
            raise PreconditionError(
                f"{len(trial_vectors)} channels of trial vectors for {self.nden} sets of MO coefficients"
            )
        nvec = trial_vectors[0].shape[0]
        if nvec == 0:
            return [np.zeros_like(np.asarray(x, dtype=float)) for x in trial_vectors]
        nbasis = self.C.shape[1]
        dms = np.stack([self._densities(s, trial_vectors[s]) for s in range(self.nden)], axis=0)
        hermi = 1 if self.hamiltonian == Hamiltonian.RPA else 0
        vj, vk = scf.hf.get_jk(self.mol, dms.reshape(-1, nbasis, nbasis), hermi=hermi)
        vj = np.asarray(vj).reshape(dms.shape)
        vk = np.asarray(vk).reshape(dms.shape)

        if self.nden == 1:
            if self.spin == Spin.singlet:
                potentials = [2 * vj[0] - vk[0]]
            else:
                potentials = [-vk[0]]
        else:
            vj_total = vj[0] + vj[1]
            potentials = [vj_total - vk[0], vj_total - vk[1]]

        products = []
        for s, potential in enumerate(potentials):
            C_occ = self.C[s, :, : self.nocc[s]]
            C_virt = self.C[s, :, self.nocc[s] :]
            products.append(
                np.stack(
                    [repack_matrix_to_vector(C_virt.T @ v @ C_occ) for v in potential], axis=0
                )
            )
        return products
