from __future__ import annotations

from setuptools import find_packages, setup

setup(
    name="roscf",
    version="0.1.0",
    description="Restricted open-shell Hartree-Fock over irrep-blocked matrices, with ECP basis-set assembly",
    packages=find_packages(include=["roscf", "roscf.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "scipy",
        "numba",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
