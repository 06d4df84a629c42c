"""End-to-end ROHF runs on H2/STO-3G at R = 1.4 bohr.

Integrals from Szabo & Ostlund, Modern Quantum Chemistry, section 3.5.2.
"""

from __future__ import annotations

import logging

import numpy as np
import pytest

R = 1.4
ENUC = 1.0 / R


def _h2_integrals(h22=None):
    S = np.array([[1.0, 0.6593], [0.6593, 1.0]])
    H = np.array([[-1.1204, -0.9584], [-0.9584, -1.1204]])
    if h22 is not None:
        H[1, 1] = float(h22)

    vals = {
        (0, 0, 0, 0): 0.7746,
        (1, 1, 1, 1): 0.7746,
        (0, 0, 1, 1): 0.5697,
        (1, 0, 0, 0): 0.4441,
        (1, 0, 1, 1): 0.4441,
        (1, 0, 1, 0): 0.2970,
    }
    g = np.zeros((2, 2, 2, 2))
    for (p, q, r, s), v in vals.items():
        for a, b, c, d in (
            (p, q, r, s),
            (q, p, r, s),
            (p, q, s, r),
            (q, p, s, r),
            (r, s, p, q),
            (s, r, p, q),
            (r, s, q, p),
            (s, r, q, p),
        ):
            g[a, b, c, d] = v
    return S, H, g.reshape(4, 4)


def _closed_shell_rhf(S, H, eri_mat, enuc, nocc=1, maxiter=500):
    """Plain Roothaan iterations, no acceleration."""
    import scipy.linalg

    n = S.shape[0]
    g = eri_mat.reshape(n, n, n, n)
    _, C = scipy.linalg.eigh(H, S)
    D = C[:, :nocc] @ C[:, :nocc].T
    e_old = 0.0
    e = 0.0
    for _ in range(maxiter):
        J = np.einsum("mnls,ls->mn", g, D)
        K = np.einsum("mlns,ls->mn", g, D)
        F = H + 2.0 * J - K
        e = enuc + float(np.sum(D * (H + F)))
        _, C = scipy.linalg.eigh(F, S)
        D = C[:, :nocc] @ C[:, :nocc].T
        if abs(e - e_old) < 1e-13:
            break
        e_old = e
    return e


def test_h2_sto3g_total_energy():
    """Closed-shell H2 reproduces the textbook energy (-1.1167 Eh)."""
    from roscf.hf import rohf_dense

    S, H, eri = _h2_integrals()
    res = rohf_dense(S, H, eri, enuc=ENUC, ndocc=1, nsocc=0)

    # Symmetry fixes the bonding orbital, so E is known in closed form.
    N2 = 1.0 / (2.0 * (1.0 + S[0, 1]))
    h = N2 * float(H.sum())
    J = N2 * N2 * float(eri.sum())
    expected = ENUC + 2.0 * h + J

    assert res.converged
    assert res.status == "converged"
    assert res.e_tot == pytest.approx(expected, abs=1e-8)
    assert res.e_tot == pytest.approx(-1.1167, abs=2e-4)
    assert res.e_nuc == pytest.approx(ENUC)
    assert res.doccpi == (1,)
    assert res.soccpi == (0,)
    assert np.allclose(res.mo_occ.blocks[0], [2.0, 0.0])


def test_closed_shell_limit_matches_independent_rhf():
    """With no open shells ROHF reduces to closed-shell HF."""
    from roscf.hf import rohf_dense

    S, H, eri = _h2_integrals(h22=-0.9)
    ref = _closed_shell_rhf(S, H, eri, ENUC)
    res = rohf_dense(S, H, eri, enuc=ENUC, ndocc=1, e_convergence=1e-11, d_convergence=1e-9)

    assert res.converged
    assert res.e_tot == pytest.approx(ref, abs=1e-8)
    assert np.allclose(res.dm_alpha.blocks[0], res.dm_beta.blocks[0])


def test_one_electron_energy_is_lowest_core_eigenvalue():
    """H2+ (one alpha electron): J and K cancel, E = Enuc + eps_min(H, S)."""
    import scipy.linalg

    from roscf.hf import rohf_dense

    S, H, eri = _h2_integrals()
    res = rohf_dense(S, H, eri, enuc=ENUC, ndocc=0, nsocc=1)
    eps = scipy.linalg.eigh(H, S, eigvals_only=True)

    assert res.converged
    assert res.soccpi == (1,)
    assert res.e_tot == pytest.approx(ENUC + eps[0], abs=1e-8)
    assert np.allclose(res.dm_beta.blocks[0], 0.0)


def test_all_orbitals_singly_occupied():
    """With every orbital singly occupied, Da = S^-1 whatever the orbitals."""
    from roscf.hf import rohf_dense

    S, H, eri = _h2_integrals()
    res = rohf_dense(S, H, eri, enuc=ENUC, ndocc=0, nsocc=2)

    Da = np.linalg.inv(S)
    g = eri.reshape(2, 2, 2, 2)
    J = np.einsum("mnls,ls->mn", g, Da)
    K = np.einsum("mlns,ls->mn", g, Da)
    expected = ENUC + float(np.sum(Da * H)) + 0.5 * float(np.sum(Da * (J - K)))

    assert res.converged
    assert np.allclose(res.dm_alpha.blocks[0], Da)
    assert res.e_tot == pytest.approx(expected, abs=1e-10)


def test_symmetry_adapted_h2_matches_c1():
    """The same molecule in a 2-irrep SO basis gives the same energy."""
    from roscf.hf import rohf_dense

    S, H, eri = _h2_integrals()
    U = np.array([[1.0, 1.0], [1.0, -1.0]]) / np.sqrt(2.0)
    S_so = U.T @ S @ U
    H_so = U.T @ H @ U
    g_so = np.einsum("pqrs,pi,qj,rk,sl->ijkl", eri.reshape(2, 2, 2, 2), U, U, U, U)

    c1 = rohf_dense(S, H, eri, enuc=ENUC, ndocc=1)
    so = rohf_dense(
        S_so, H_so, g_so.reshape(4, 4), sopi=(1, 1), enuc=ENUC, ndocc=1, irrep_labels=("Ag", "B1u")
    )

    assert so.converged
    assert so.e_tot == pytest.approx(c1.e_tot, abs=1e-10)
    assert so.doccpi == (1, 0)
    assert so.mo_energy.dimpi == (1, 1)
    assert sorted(so.mo_energy.to_array()) == pytest.approx(sorted(c1.mo_energy.to_array()), abs=1e-8)


def test_orbitals_are_shared_and_read_only():
    from roscf.hf import ROHF
    from roscf.hf.jk import DenseJKBuilder

    S, H, eri = _h2_integrals()
    engine = ROHF(S, H, DenseJKBuilder(eri, (2,)), enuc=ENUC, ndocc=1)
    res = engine.compute_energy()

    Ca = engine.Ca
    Cb = engine.Cb
    assert np.shares_memory(Ca.blocks[0], Cb.blocks[0])
    with pytest.raises(ValueError):
        Ca.blocks[0][0, 0] = 1.0
    assert np.allclose(Ca.blocks[0], res.mo_coeff.blocks[0])
    assert np.shares_memory(engine.epsilon_a.blocks[0], engine.epsilon_b.blocks[0])

    # Per-iteration intermediates are released once the run finishes.
    assert engine.Feff is None
    assert engine._diis is None
    with pytest.raises(RuntimeError):
        engine.compute_energy()


def test_max_iterations_is_reported_not_raised(caplog):
    from roscf.hf import rohf_dense

    S, H, eri = _h2_integrals(h22=-0.9)
    with caplog.at_level(logging.WARNING, logger="roscf.hf.rohf"):
        res = rohf_dense(S, H, eri, enuc=ENUC, ndocc=1, maxiter=1)

    assert not res.converged
    assert res.status == "max_iterations"
    assert res.niter == 1
    assert any("did not converge" in r.getMessage() for r in caplog.records)


def test_profile_and_custom_jk_builder():
    """Any callable with the JK signature can drive the loop."""
    from roscf.hf import rohf
    from roscf.hf.jk import DenseJKBuilder

    S, H, eri = _h2_integrals()
    dense = DenseJKBuilder(eri, (2,))
    calls = []

    def jk(Da, Db, C, nalphapi, nbetapi):
        calls.append((tuple(nalphapi), tuple(nbetapi)))
        return dense(Da, Db, C, nalphapi, nbetapi)

    profile: dict = {}
    res = rohf(S, H, jk, enuc=ENUC, ndocc=1, profile=profile)

    assert res.converged
    assert calls and calls[0] == ((1,), (1,))
    assert profile["scf"]["iters"] == res.niter == len(calls)
    for key in ("jk_ms", "diag_ms", "diis_ms"):
        assert profile["scf"][key] >= 0.0
    assert profile["scf"]["diis_fallbacks"] == 0


def test_without_diis_gives_same_energy():
    from roscf.hf import rohf_dense

    S, H, eri = _h2_integrals(h22=-0.9)
    a = rohf_dense(S, H, eri, enuc=ENUC, ndocc=1, e_convergence=1e-11, d_convergence=1e-9)
    b = rohf_dense(S, H, eri, enuc=ENUC, ndocc=1, diis=False, e_convergence=1e-11, d_convergence=1e-9, maxiter=300)
    assert a.converged and b.converged
    assert a.e_tot == pytest.approx(b.e_tot, abs=1e-8)


def test_run_rohf_from_molecule():
    from roscf.frontend import Molecule, run_rohf

    S, H, eri = _h2_integrals()
    mol = Molecule.from_atoms([("H", (0.0, 0.0, 0.0)), ("H", (0.0, 0.0, R))])
    res = run_rohf(mol, S, H, eri)
    assert res.converged
    assert res.e_nuc == pytest.approx(ENUC)
    assert res.doccpi == (1,)

    cation = Molecule.from_atoms([("H", (0.0, 0.0, 0.0)), ("H", (0.0, 0.0, R))], charge=1, spin=1)
    res = run_rohf(cation, S, H, eri)
    assert res.soccpi == (1,)

    with pytest.raises(RuntimeError):
        run_rohf(mol, S, H, eri, maxiter=1, require_convergence=True)
    with pytest.raises(ValueError):
        run_rohf(Molecule.from_atoms([("H", (0.0, 0.0, 0.0)), ("H", (0.0, 0.0, R))], spin=1), S, H, eri)


def _four_orbital_system():
    """Synthetic 4-orbital system with positive-definite pair-matrix ERIs."""
    rng = np.random.default_rng(11)
    n = 4
    S = np.eye(n) + 0.05 * (np.ones((n, n)) - np.eye(n))
    H = np.diag([-2.0, -1.2, 0.3, 0.9])
    off = 0.05 * rng.normal(size=(n, n))
    H = H + off + off.T
    B = 0.15 * rng.normal(size=(6, n, n))
    B = B + B.transpose(0, 2, 1)
    g = np.einsum("Ppq,Prs->pqrs", B, B)
    return S, H, g.reshape(n * n, n * n)


def test_open_shell_brillouin_conditions():
    """One closed, one open and two virtual orbitals: every ROHF rotation gradient vanishes."""
    from roscf.hf import rohf_dense

    S, H, eri = _four_orbital_system()
    res = rohf_dense(S, H, eri, ndocc=1, nsocc=1, e_convergence=1e-12, d_convergence=1e-10, maxiter=200)

    assert res.converged
    assert res.doccpi == (1,)
    assert res.soccpi == (1,)
    assert np.allclose(res.mo_occ.blocks[0], [2.0, 1.0, 0.0, 0.0])

    C = res.mo_coeff.blocks[0]
    assert np.allclose(C.T @ S @ C, np.eye(4), atol=1e-10)
    moFa = C.T @ res.fock_alpha.blocks[0] @ C
    moFb = C.T @ res.fock_beta.blocks[0] @ C
    Fc = 0.5 * (moFa + moFb)

    c, o, v = [0], [1], [2, 3]
    assert np.allclose(moFb[np.ix_(c, o)], 0.0, atol=1e-6)
    assert np.allclose(moFa[np.ix_(o, v)], 0.0, atol=1e-6)
    assert np.allclose(Fc[np.ix_(c, v)], 0.0, atol=1e-6)

    # Energy from the final density agrees with the reported one.
    g = eri.reshape(4, 4, 4, 4)
    Da = res.dm_alpha.blocks[0]
    Db = res.dm_beta.blocks[0]
    J = np.einsum("mnls,ls->mn", g, Da + Db)
    Fa = H + J - np.einsum("mlns,ls->mn", g, Da)
    Fb = H + J - np.einsum("mlns,ls->mn", g, Db)
    e = 0.5 * float(np.sum(Da * (H + Fa)) + np.sum(Db * (H + Fb)))
    assert res.e_tot == pytest.approx(e, abs=1e-8)
