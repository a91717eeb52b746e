import pyscf


def molecule_water_sto3g(verbose: int = 0) -> pyscf.gto.Mole:
    mol = pyscf.gto.Mole()
    mol.verbose = verbose
    mol.output = None

    mol.basis = "sto-3g"
    mol.charge = 0
    mol.spin = 0

    mol.atom = """O         -1.81298        0.53384       -0.01233
H         -0.82365        0.49649        0.00870
H         -2.10234       -0.29131        0.45244
"""

    return mol


def molecule_water_cation_sto3g(verbose: int = 0) -> pyscf.gto.Mole:
    mol = molecule_water_sto3g(verbose)
    mol.charge = 1
    mol.spin = 1
    return mol


def molecule_water_dimer_sto3g(verbose: int = 0) -> pyscf.gto.Mole:
    """Two water molecules, the atoms of each listed together so that the
    AOs are ordered by fragment."""
    mol = pyscf.gto.Mole()
    mol.verbose = verbose
    mol.output = None

    mol.basis = "sto-3g"
    mol.charge = 0
    mol.spin = 0

    mol.atom = """O         -1.55100        -0.11452        0.00000
H         -1.93425         0.76250        0.00000
H         -0.59967         0.04071        0.00000
O          1.35062         0.11147        0.00000
H          1.68039        -0.37374       -0.75856
H          1.68039        -0.37374        0.75856
"""

    return mol
