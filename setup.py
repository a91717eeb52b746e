from setuptools import find_packages, setup

if __name__ == "__main__":
    setup(
        name="libresponse",
        author="Eric Berquist",
        version="0.1.0",
        description="Frequency-dependent linear response for non-orthogonal and fragment-restricted orbitals",
        python_requires=">=3.8",
        packages=find_packages(exclude=["*test*"]),
        install_requires=["numpy", "scipy>=1.12"],
        extras_require={
            "pyscf": ["pyscf"],
            "test": ["pytest", "pyscf"],
        },
    )
