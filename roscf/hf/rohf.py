from __future__ import annotations

"""Restricted open-shell Hartree-Fock over irrep-blocked matrices.

Design goal
-----------
Keep the SCF driver independent of how two-electron integrals are produced.
`ROHF` takes already-built one-electron data in the SO basis

- Overlap S and core Hamiltonian H (BlockMatrix, or full arrays for C1)
- A J/K builder ``jk(Da, Db, C, nalphapi, nbetapi) -> (J, Ka, Kb)``

and drives the fixed-point loop

    save -> G -> F / Feff -> E -> DIIS -> C -> D -> convergence test

One orbital set is shared by both spins; `Ca`/`Cb` and
`epsilon_a`/`epsilon_b` are read-only views of the same storage.

Effective Fock matrix in the current MO basis (per irrep)::

             |  closed     open    virtual
    ---------+-----------------------------
    closed   |    Fc        Fb        Fc
    open     |    Fb        Fc        Fa
    virtual  |    Fc        Fa        Fc

with ``Fc = (Fa + Fb) / 2``.
"""

from dataclasses import dataclass, fields
import logging
import os
import time
from typing import Any, Mapping, Sequence

import numpy as np

from roscf.linalg.blocked import BlockMatrix, BlockVector, as_block_matrix

from .diis import DIISManager
from .jk import DenseJKBuilder, JKBuilder
from .occupation import find_occupation

logger = logging.getLogger(__name__)

_SCF_DEFAULT_MAXITER = max(1, int(os.environ.get("ROSCF_SCF_MAXITER", "100")))
_SCF_DEFAULT_DIIS_MAX_VECS = max(1, int(os.environ.get("ROSCF_SCF_DIIS_MAX_VECS", "10")))

STATUS_UNINITIALIZED = "uninitialized"
STATUS_INITIAL_GUESS = "initial_guess"
STATUS_ITERATING = "iterating"
STATUS_CONVERGED = "converged"
STATUS_DIVERGED = "diverged"
STATUS_MAX_ITERATIONS = "max_iterations"


def _tuple_or_none(x) -> tuple[int, ...] | None:
    if x is None:
        return None
    if isinstance(x, (int, np.integer)):
        return (int(x),)
    return tuple(int(v) for v in x)


@dataclass(frozen=True)
class SCFOptions:
    e_convergence: float = 1e-8
    d_convergence: float = 1e-8
    maxiter: int = _SCF_DEFAULT_MAXITER
    diis: bool = True
    diis_max_vecs: int = _SCF_DEFAULT_DIIS_MAX_VECS
    diis_start: int = 1
    diis_removal_policy: str = "largest_error"
    ndocc: int | None = None
    nsocc: int = 0
    docc: tuple[int, ...] | None = None
    socc: tuple[int, ...] | None = None
    print_level: int = 1
    print_mos: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "docc", _tuple_or_none(self.docc))
        object.__setattr__(self, "socc", _tuple_or_none(self.socc))
        object.__setattr__(self, "diis_removal_policy", str(self.diis_removal_policy).strip().lower())
        if not float(self.e_convergence) > 0.0 or not float(self.d_convergence) > 0.0:
            raise ValueError("e_convergence and d_convergence must be > 0")
        if int(self.maxiter) < 1:
            raise ValueError("maxiter must be >= 1")
        if int(self.diis_max_vecs) < 1:
            raise ValueError("diis_max_vecs must be >= 1")
        if int(self.diis_start) < 1:
            raise ValueError("diis_start must be >= 1")
        if self.diis_removal_policy not in ("largest_error", "oldest"):
            raise ValueError("diis_removal_policy must be 'largest_error' or 'oldest'")
        if self.ndocc is not None and int(self.ndocc) < 0:
            raise ValueError("ndocc must be >= 0")
        if int(self.nsocc) < 0:
            raise ValueError("nsocc must be >= 0")
        if self.ndocc is None and self.docc is None:
            raise ValueError("either ndocc or a per-irrep docc vector is required")

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "SCFOptions":
        """Build options from psi4-style names (E_CONVERGENCE, DIIS_MAX_VECS, PRINT, ...)."""

        aliases = {f.name: f.name for f in fields(cls)}
        aliases["print"] = "print_level"
        kwargs: dict[str, Any] = {}
        for key, val in options.items():
            k = str(key).strip().lower()
            if k not in aliases:
                raise ValueError(f"unknown SCF option {key!r}")
            kwargs[aliases[k]] = val
        return cls(**kwargs)


@dataclass(frozen=True)
class SCFResult:
    method: str
    status: str
    converged: bool
    niter: int
    e_tot: float
    e_elec: float
    e_nuc: float
    d_rms: float
    mo_energy: BlockVector
    mo_coeff: BlockMatrix
    mo_occ: BlockVector
    doccpi: tuple[int, ...]
    soccpi: tuple[int, ...]
    dm_alpha: BlockMatrix
    dm_beta: BlockMatrix
    fock_alpha: BlockMatrix
    fock_beta: BlockMatrix

    @property
    def dm_total(self) -> BlockMatrix:
        return self.dm_alpha + self.dm_beta


def effective_fock(
    moFa: BlockMatrix,
    moFb: BlockMatrix,
    doccpi: Sequence[int],
    soccpi: Sequence[int],
) -> BlockMatrix:
    """Assemble the ROHF effective Fock matrix from MO-basis alpha/beta Fock matrices."""

    Feff = (moFa + moFb) * 0.5
    Feff.name = "F effective (MO basis)"
    for h in range(Feff.nirrep):
        docc = int(doccpi[h])
        socc = int(soccpi[h])
        nmo = int(Feff.rowspi[h])
        for i in range(docc, docc + socc):
            # open/closed
            for j in range(0, docc):
                val = moFb.get(h, i, j)
                Feff.set(h, i, j, val)
                Feff.set(h, j, i, val)
            # open/virtual
            for j in range(docc + socc, nmo):
                val = moFa.get(h, i, j)
                Feff.set(h, i, j, val)
                Feff.set(h, j, i, val)
    return Feff


def rohf_density(
    C: BlockMatrix,
    doccpi: Sequence[int],
    soccpi: Sequence[int],
) -> tuple[BlockMatrix, BlockMatrix]:
    """Return (Da, Db): Db from doubly occupied columns, Da adds the singly occupied ones."""

    Da = []
    Db = []
    for h, c in enumerate(C.blocks):
        docc = int(doccpi[h])
        socc = int(soccpi[h])
        cd = c[:, :docc]
        cs = c[:, docc : docc + socc]
        db = cd @ cd.T
        Db.append(db)
        Da.append(db + cs @ cs.T)
    return BlockMatrix(Da, name="Alpha density matrix"), BlockMatrix(Db, name="Beta density matrix")


def rohf_energy(
    Da: BlockMatrix,
    Db: BlockMatrix,
    H: BlockMatrix,
    Fa: BlockMatrix,
    Fb: BlockMatrix,
    enuc: float = 0.0,
) -> float:
    """E = E_nuc + (Da.H + Db.H + Da.Fa + Db.Fb) / 2."""

    DH = Da.vector_dot(H) + Db.vector_dot(H)
    e_elec = 0.5 * (DH + Da.vector_dot(Fa) + Db.vector_dot(Fb))
    return float(enuc) + float(e_elec)


def check_convergence(
    e: float,
    e_old: float,
    Dt: BlockMatrix,
    Dt_old: BlockMatrix,
    e_convergence: float,
    d_convergence: float,
) -> tuple[bool, float]:
    """Return (converged, D_rms); both |dE| and RMS(dD) must be below threshold."""

    d_rms = (Dt - Dt_old).rms()
    converged = bool(abs(float(e) - float(e_old)) < float(e_convergence) and d_rms < float(d_convergence))
    return converged, float(d_rms)


def _time_ms_start() -> float:
    return time.perf_counter()


def _time_ms_end(handle: float) -> float:
    return float((time.perf_counter() - float(handle)) * 1000.0)


class ROHF:
    """ROHF SCF engine; one instance per calculation."""

    def __init__(
        self,
        S,
        H,
        jk: JKBuilder,
        *,
        enuc: float = 0.0,
        options: SCFOptions | None = None,
        irrep_labels: Sequence[str] | None = None,
        profile: dict | None = None,
        **option_overrides: Any,
    ):
        S = as_block_matrix(S, name="Overlap")
        H = as_block_matrix(H, S.rowspi, name="Core Hamiltonian")
        if S.rowspi != S.colspi:
            raise ValueError("S blocks must be square")
        if H.rowspi != S.rowspi or H.colspi != S.colspi:
            raise ValueError(f"H blocks {H.rowspi} do not match S blocks {S.rowspi}")
        if options is None:
            options = SCFOptions(**option_overrides)
        elif option_overrides:
            kwargs = {f.name: getattr(options, f.name) for f in fields(SCFOptions)}
            kwargs.update(option_overrides)
            options = SCFOptions(**kwargs)
        self.options = options

        self.S = S.symmetrize()
        self.H = H.symmetrize()
        self.jk = jk
        self.enuc = float(enuc)
        self.profile = profile
        self.nirrep = S.nirrep
        self.nsopi = S.rowspi
        self.nmopi = S.rowspi
        if irrep_labels is None:
            irrep_labels = ["A"] if self.nirrep == 1 else [f"Irrep{h + 1}" for h in range(self.nirrep)]
        if len(irrep_labels) != self.nirrep:
            raise ValueError("irrep_labels must have one entry per irrep")
        self.irrep_labels = tuple(str(x) for x in irrep_labels)

        # Symmetric orthogonalizer S^-1/2 and S^1/2.
        self.Shalf = self.S.power(-0.5)
        self.Sphalf = self.S.power(0.5)

        zeros = BlockMatrix.zeros
        self.Fa = zeros(self.nsopi, name="Alpha Fock Matrix")
        self.Fb = zeros(self.nsopi, name="Beta Fock Matrix")
        self.Feff = zeros(self.nmopi, name="F effective (MO basis)")
        self._C = zeros(self.nsopi, self.nmopi, name="Molecular orbitals")
        self._epsilon = BlockVector.zeros(self.nmopi, name="Orbital energies")
        self.Da = zeros(self.nsopi, name="Alpha density matrix")
        self.Db = zeros(self.nsopi, name="Beta density matrix")
        self.Dt = zeros(self.nsopi, name="Total density matrix")
        self.Dt_old = zeros(self.nsopi, name="Total density matrix (previous)")
        self.Ka = zeros(self.nsopi, name="K alpha")
        self.Kb = zeros(self.nsopi, name="K beta")
        self.Ga = zeros(self.nsopi, name="G alpha")
        self.Gb = zeros(self.nsopi, name="G beta")
        self.moFa = zeros(self.nmopi, name="MO Basis alpha Fock Matrix")
        self.moFb = zeros(self.nmopi, name="MO Basis beta Fock Matrix")
        self.doccpi: tuple[int, ...] = (0,) * self.nirrep
        self.soccpi: tuple[int, ...] = (0,) * self.nirrep

        self.E = 0.0
        self.Eold = 0.0
        self.Drms = 0.0
        self.iteration = 0
        self.state = STATUS_UNINITIALIZED
        self._diis: DIISManager | None = None
        self._Cp: BlockMatrix | None = None
        self._finalized = False

        if self.options.print_level >= 1:
            logger.info("  DIIS %s.", "enabled" if self.options.diis else "disabled")

    # Shared orbital set, read-only accessors.
    @property
    def Ca(self) -> BlockMatrix:
        return self._C.readonly_view()

    @property
    def Cb(self) -> BlockMatrix:
        return self._C.readonly_view()

    @property
    def epsilon_a(self) -> BlockVector:
        return self._epsilon.readonly_view()

    @property
    def epsilon_b(self) -> BlockVector:
        return self._epsilon.readonly_view()

    @property
    def nalphapi(self) -> tuple[int, ...]:
        return tuple(d + s for d, s in zip(self.doccpi, self.soccpi))

    @property
    def nbetapi(self) -> tuple[int, ...]:
        return tuple(self.doccpi)

    def _ndocc_nsocc(self) -> tuple[int, int]:
        opts = self.options
        ndocc = int(opts.ndocc) if opts.ndocc is not None else int(sum(opts.docc or ()))
        return ndocc, int(opts.nsocc)

    def _debug(self, M) -> None:
        if self.options.print_level > 3:
            logger.debug("\n%s", M.format(irrep_labels=self.irrep_labels))

    def find_occupation(self) -> None:
        ndocc, nsocc = self._ndocc_nsocc()
        self.doccpi, self.soccpi = find_occupation(
            self._epsilon, ndocc, nsocc, docc=self.options.docc, socc=self.options.socc
        )

    def form_initial_C(self) -> None:
        # Core-Hamiltonian guess in the orthonormalised basis.
        temp = self.H.transform(self.Shalf)
        evecs, eps = temp.diagonalize()
        self._epsilon = eps
        self._epsilon.name = "Orbital energies"
        self.find_occupation()
        self._C = self.Shalf.gemm(evecs)
        self._C.name = "Molecular orbitals"
        self.state = STATUS_INITIAL_GUESS
        self._debug(self._C)

    def form_initial_F(self) -> None:
        self.Fa = self.H.copy(name="Alpha Fock Matrix")
        self.Fb = self.H.copy(name="Beta Fock Matrix")

    def save_density_and_energy(self) -> None:
        self.Dt_old = self.Dt.copy(name="Total density matrix (previous)")
        self.Eold = self.E

    def form_G(self) -> None:
        t = _time_ms_start() if self.profile is not None else None
        J, Ka, Kb = self.jk(self.Da, self.Db, self.Ca, self.nalphapi, self.nbetapi)
        if self.profile is not None and t is not None:
            self.profile["scf"]["jk_ms"] += _time_ms_end(t)
        self.Ka = Ka
        self.Kb = Kb
        self.Ga = J - Ka
        self.Gb = J - Kb

    def form_F(self) -> None:
        self.Fa = self.H + self.Ga
        self.Fb = self.H + self.Gb
        self.Fa.name = "Alpha Fock Matrix"
        self.Fb.name = "Beta Fock Matrix"
        self.moFa = self.Fa.transform(self._C)
        self.moFb = self.Fb.transform(self._C)
        self.Feff = effective_fock(self.moFa, self.moFb, self.doccpi, self.soccpi)
        for M in (self.Fa, self.Fb, self.moFa, self.moFb, self.Feff):
            self._debug(M)

    def save_fock(self) -> None:
        """Push Feff and its off-diagonal error into the DIIS history.

        Both are moved from the current MO basis into the orthonormal
        S^1/2 basis so entries from different iterations are comparable.
        """

        if self._diis is None:
            self._diis = DIISManager(self.options.diis_max_vecs, self.options.diis_removal_policy)
        self._Cp = self.Sphalf.gemm(self._C)
        F = self.Feff.back_transform(self._Cp)
        err = self.Feff.copy()
        err.zero_diagonal()
        self._diis.push(F, err.back_transform(self._Cp))

    def diis(self) -> bool:
        """Replace Feff with the DIIS extrapolation; returns False on fallback."""

        if self._diis is None or self._Cp is None:
            return False
        t = _time_ms_start() if self.profile is not None else None
        try:
            F = self._diis.extrapolate()
        except np.linalg.LinAlgError:
            F = None
        ok = F is not None and F.is_finite()
        if ok:
            self.Feff = F.transform(self._Cp).symmetrize()
            self.Feff.name = "F effective (MO basis)"
        else:
            logger.warning("DIIS extrapolation failed at iteration %d; resetting DIIS history", self.iteration)
            self._diis.reset()
            if self.profile is not None:
                self.profile["scf"]["diis_fallbacks"] = int(self.profile["scf"].get("diis_fallbacks", 0)) + 1
        if self.profile is not None and t is not None:
            self.profile["scf"]["diis_ms"] += _time_ms_end(t)
        return bool(ok)

    def form_C(self) -> None:
        t = _time_ms_start() if self.profile is not None else None
        eigvec, eps = self.Feff.diagonalize()
        if self.profile is not None and t is not None:
            self.profile["scf"]["diag_ms"] += _time_ms_end(t)
        self._epsilon = eps
        self._epsilon.name = "Orbital energies"
        self.find_occupation()
        if self.options.print_level > 3:
            logger.debug("In ROHF.form_C:\n%s", eigvec.format(eps, self.irrep_labels))
        self._C = self._C.gemm(eigvec)
        self._C.name = "Molecular orbitals"
        self._debug(self._C)

    def form_D(self) -> None:
        self.Da, self.Db = rohf_density(self._C, self.doccpi, self.soccpi)
        self.Dt = self.Da + self.Db
        self.Dt.name = "Total density matrix"
        self._debug(self.Da)
        self._debug(self.Db)

    def compute_initial_E(self) -> float:
        return self.compute_E()

    def compute_E(self) -> float:
        return rohf_energy(self.Da, self.Db, self.H, self.Fa, self.Fb, self.enuc)

    def test_convergence(self) -> bool:
        converged, self.Drms = check_convergence(
            self.E,
            self.Eold,
            self.Dt,
            self.Dt_old,
            self.options.e_convergence,
            self.options.d_convergence,
        )
        return converged

    def compute_energy(self) -> SCFResult:
        """Run the SCF loop to convergence or until `maxiter` is exhausted."""

        if self._finalized:
            raise RuntimeError("this ROHF instance has already been run; create a new one")
        opts = self.options
        if self.profile is not None:
            prof = self.profile.setdefault("scf", {})
            prof.setdefault("jk_ms", 0.0)
            prof.setdefault("diag_ms", 0.0)
            prof.setdefault("diis_ms", 0.0)
            prof.setdefault("diis_fallbacks", 0)
            prof.setdefault("iters", 0)

        self.form_initial_C()
        self.form_initial_F()
        self.form_D()
        self.E = self.compute_initial_E()
        if opts.print_level >= 2:
            logger.info("  @ROHF iter %3d: %20.14f   (core guess)", 0, self.E)

        self.state = STATUS_ITERATING
        status = STATUS_MAX_ITERATIONS
        for iteration in range(1, int(opts.maxiter) + 1):
            self.iteration = iteration
            self.save_density_and_energy()
            self.form_G()
            self.form_F()
            self.E = self.compute_E()

            diis_applied = False
            if opts.diis:
                self.save_fock()
                if iteration >= int(opts.diis_start):
                    diis_applied = self.diis()

            self.form_C()
            self.form_D()
            converged = self.test_convergence()

            if opts.print_level >= 2:
                logger.info(
                    "  @ROHF iter %3d: %20.14f   %12.5e   %12.5e %s",
                    iteration,
                    self.E,
                    self.E - self.Eold,
                    self.Drms,
                    "DIIS" if diis_applied else "",
                )

            if not np.isfinite(self.E) or not self.Dt.is_finite():
                status = STATUS_DIVERGED
                break
            if converged:
                status = STATUS_CONVERGED
                break

        self.state = status
        if self.profile is not None:
            self.profile["scf"]["iters"] = int(self.iteration)

        if status == STATUS_CONVERGED:
            if opts.print_level >= 1:
                logger.info("  ROHF converged in %d iterations: E = %.12f", self.iteration, self.E)
        elif status == STATUS_DIVERGED:
            logger.warning("ROHF diverged at iteration %d (non-finite energy or density)", self.iteration)
        else:
            logger.warning(
                "ROHF did not converge in %d iterations (dE = %.3e, D_rms = %.3e)",
                self.iteration,
                self.E - self.Eold,
                self.Drms,
            )

        result = self._result()
        self.save_information()
        self.finalize()
        return result

    def _result(self) -> SCFResult:
        occ = []
        for h, n in enumerate(self.nmopi):
            o = np.zeros((n,), dtype=np.float64)
            o[: self.doccpi[h]] = 2.0
            o[self.doccpi[h] : self.doccpi[h] + self.soccpi[h]] = 1.0
            occ.append(o)
        return SCFResult(
            method="ROHF",
            status=self.state,
            converged=bool(self.state == STATUS_CONVERGED),
            niter=int(self.iteration),
            e_tot=float(self.E),
            e_elec=float(self.E - self.enuc),
            e_nuc=float(self.enuc),
            d_rms=float(self.Drms),
            mo_energy=self._epsilon.copy(),
            mo_coeff=self._C.copy(),
            mo_occ=BlockVector(occ, name="Occupations"),
            doccpi=tuple(self.doccpi),
            soccpi=tuple(self.soccpi),
            dm_alpha=self.Da.copy(),
            dm_beta=self.Db.copy(),
            fock_alpha=self.Fa.copy(),
            fock_beta=self.Fb.copy(),
        )

    def save_information(self) -> None:
        if self.options.print_level < 1:
            return
        labels = self.irrep_labels
        logger.info("  Final DOCC vector = (%s)", " ".join(f"{d:2d} {labels[h]:>3s}" for h, d in enumerate(self.doccpi)))
        logger.info("  Final SOCC vector = (%s)", " ".join(f"{s:2d} {labels[h]:>3s}" for h, s in enumerate(self.soccpi)))

        if self.options.print_mos:
            logger.info("  Molecular orbitals:\n%s", self._C.format(self._epsilon, labels))

        pairs = self._epsilon.sorted_pairs()
        ndocc = int(sum(self.doccpi))
        nsocc = int(sum(self.soccpi))

        def _fmt(chunk):
            rows = []
            for k in range(0, len(chunk), 4):
                rows.append("      " + "  ".join(f"{e:12.6f} {labels[h]:>3s}" for e, h in chunk[k : k + 4]))
            return "\n".join(rows)

        logger.info(
            "  Orbital energies (a.u.):\n    Doubly occupied orbitals\n%s\n    Singly occupied orbitals\n%s\n"
            "    Unoccupied orbitals\n%s",
            _fmt(pairs[:ndocc]),
            _fmt(pairs[ndocc : ndocc + nsocc]),
            _fmt(pairs[ndocc + nsocc :]),
        )

    def finalize(self) -> None:
        """Release per-iteration intermediates and the DIIS history."""

        self._diis = None
        self._Cp = None
        self.Feff = None
        self.Ka = None
        self.Kb = None
        self.Ga = None
        self.Gb = None
        self.Dt_old = None
        self.moFa = None
        self.moFb = None
        self._finalized = True


def rohf(
    S,
    hcore,
    jk: JKBuilder,
    *,
    enuc: float = 0.0,
    options: SCFOptions | None = None,
    irrep_labels: Sequence[str] | None = None,
    profile: dict | None = None,
    **option_overrides: Any,
) -> SCFResult:
    """Run one ROHF calculation with an injected J/K builder."""

    return ROHF(
        S,
        hcore,
        jk,
        enuc=enuc,
        options=options,
        irrep_labels=irrep_labels,
        profile=profile,
        **option_overrides,
    ).compute_energy()


def rohf_dense(
    S,
    hcore,
    eri_mat,
    *,
    sopi: Sequence[int] | None = None,
    enuc: float = 0.0,
    options: SCFOptions | None = None,
    irrep_labels: Sequence[str] | None = None,
    profile: dict | None = None,
    **option_overrides: Any,
) -> SCFResult:
    """ROHF with dense SO-basis ERIs in ordered-pair matrix form.

    `S`/`hcore` may be BlockMatrix objects or full arrays; with full arrays
    and `sopi` given, the irrep-diagonal blocks are extracted.
    """

    if isinstance(S, (BlockMatrix, list, tuple)):
        S_b = as_block_matrix(S, name="Overlap")
    else:
        S_arr = np.asarray(S, dtype=np.float64)
        S_b = as_block_matrix(S_arr, sopi if sopi is not None else (int(S_arr.shape[0]),), name="Overlap")
    H_b = as_block_matrix(hcore, S_b.rowspi, name="Core Hamiltonian")
    jk = DenseJKBuilder(eri_mat, S_b.rowspi, profile=profile)
    return rohf(
        S_b,
        H_b,
        jk,
        enuc=enuc,
        options=options,
        irrep_labels=irrep_labels,
        profile=profile,
        **option_overrides,
    )


__all__ = [
    "ROHF",
    "SCFOptions",
    "SCFResult",
    "effective_fock",
    "rohf",
    "rohf_dense",
    "rohf_density",
    "rohf_energy",
    "check_convergence",
]
