from __future__ import annotations

"""Hartree-Fock (SCF) drivers.

This subpackage operates on already-built integrals in the SO basis (one
block per irrep). Two-electron contributions enter through a J/K builder,
so any integral backend can drive the ROHF loop.
"""

from .diis import DIISManager
from .jk import DenseJKBuilder, JKBuilder, dense_J_from_eri_mat_D, dense_K_from_eri_mat_D
from .occupation import find_occupation
from .rohf import (
    ROHF,
    SCFOptions,
    SCFResult,
    check_convergence,
    effective_fock,
    rohf,
    rohf_dense,
    rohf_density,
    rohf_energy,
)

__all__ = [
    "DIISManager",
    "DenseJKBuilder",
    "JKBuilder",
    "ROHF",
    "SCFOptions",
    "SCFResult",
    "check_convergence",
    "dense_J_from_eri_mat_D",
    "dense_K_from_eri_mat_D",
    "effective_fock",
    "find_occupation",
    "rohf",
    "rohf_dense",
    "rohf_density",
    "rohf_energy",
]
