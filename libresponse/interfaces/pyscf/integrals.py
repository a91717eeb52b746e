from dataclasses import dataclass
from enum import Enum, unique
from typing import Dict

import numpy as np

import pyscf


@unique
class IntegralSymmetry(Enum):
    SYMMETRIC = "symmetric"
    ANTISYMMETRIC = "antisymmetric"


@dataclass(frozen=True)
class IntegralLabel:
    label: str
    comp: int = 1
    symmetry: IntegralSymmetry = IntegralSymmetry.SYMMETRIC


ANGMOM_COMMON_GAUGE = IntegralLabel("cint1e_cg_irxp_sph", 3)
DIPOLE = IntegralLabel("cint1e_r_sph", 3)
DIPVEL = IntegralLabel("cint1e_ipovlp_sph", 3)
KINETIC = IntegralLabel("int1e_kin")
NUCLEAR = IntegralLabel("int1e_nuc")
OVERLAP = IntegralLabel("int1e_ovlp")
SO_1e = IntegralLabel("int1e_prinvxp", 3, IntegralSymmetry.ANTISYMMETRIC)


class IntegralsPyscf:
    """One-electron AO integrals from pyscf, computed once per label.

    Integrals are always returned as ``[comp, AO, AO]``, which is what an
    `Operator` expects.
    """

    def __init__(self, pyscfmol: pyscf.gto.Mole) -> None:
        self.mol = pyscfmol
        self._cache: Dict[IntegralLabel, np.ndarray] = dict()

    def _compute(self, label: IntegralLabel) -> np.ndarray:
        if label.symmetry == IntegralSymmetry.ANTISYMMETRIC:
            return self.mol.intor_asymmetric(label.label, comp=label.comp)
        return self.mol.intor(label.label, comp=label.comp)

    def integrals(self, label: IntegralLabel) -> np.ndarray:
        if label not in self._cache:
            ints = np.asarray(self._compute(label))
            if ints.ndim == 2:
                ints = ints[np.newaxis]
            self._cache[label] = ints
        return self._cache[label]
