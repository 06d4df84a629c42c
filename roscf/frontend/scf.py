from __future__ import annotations

"""Molecule-level ROHF entry point.

The molecule supplies the electron count (with ECP-adjusted nuclear
charges), the spin and the nuclear repulsion energy; the one- and
two-electron integrals in the SO basis are supplied by the caller.
"""

import logging
from typing import Any, Sequence

from roscf.hf.rohf import SCFOptions, SCFResult, rohf_dense

from .molecule import Molecule

logger = logging.getLogger(__name__)


def _nalpha_nbeta_from_mol(mol: Molecule) -> tuple[int, int]:
    nelec = int(mol.nelectron)
    spin = int(mol.spin)
    if nelec <= 0:
        raise ValueError("nelectron must be positive")
    if (nelec + spin) % 2 != 0 or (nelec - spin) % 2 != 0:
        raise ValueError("incompatible nelectron/spin parity (requires nelec±spin even)")
    nalpha = (nelec + spin) // 2
    nbeta = (nelec - spin) // 2
    if nalpha < 0 or nbeta < 0:
        raise ValueError("invalid nelectron/spin combination (negative nalpha/nbeta)")
    return int(nalpha), int(nbeta)


def run_rohf(
    mol: Molecule,
    S,
    hcore,
    eri_mat,
    *,
    sopi: Sequence[int] | None = None,
    irrep_labels: Sequence[str] | None = None,
    options: SCFOptions | None = None,
    require_convergence: bool = False,
    profile: dict | None = None,
    **option_overrides: Any,
) -> SCFResult:
    """Run ROHF for `mol` with dense SO-basis integrals.

    ``ndocc = nbeta`` and ``nsocc = nalpha - nbeta`` are derived from the
    molecule unless given explicitly (or fixed through `options`).
    """

    nalpha, nbeta = _nalpha_nbeta_from_mol(mol)
    if int(nalpha) < int(nbeta):
        raise ValueError("run_rohf requires spin >= 0 (nalpha >= nbeta)")
    if options is None:
        option_overrides.setdefault("ndocc", int(nbeta))
        option_overrides.setdefault("nsocc", int(nalpha) - int(nbeta))

    res = rohf_dense(
        S,
        hcore,
        eri_mat,
        sopi=sopi,
        enuc=float(mol.energy_nuc()),
        options=options,
        irrep_labels=irrep_labels,
        profile=profile,
        **option_overrides,
    )
    if require_convergence and not res.converged:
        raise RuntimeError(f"ROHF did not converge (status={res.status}, niter={res.niter})")
    logger.debug("run_rohf: nalpha=%d nbeta=%d E=%.12f", nalpha, nbeta, res.e_tot)
    return res


__all__ = ["run_rohf"]
