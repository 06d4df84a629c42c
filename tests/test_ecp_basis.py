"""Tests for ECP basis-set assembly (pool layout, index tables, views)."""

from __future__ import annotations

import numpy as np
import pytest


def _shell(l, exps, coefs, ns, sub_l=None):
    from roscf.basis import ECPShellInfo

    if sub_l is None:
        sub_l = [l] * len(exps)
    return ECPShellInfo(l, coefs, exps, ns, sub_l)


def _mol():
    from roscf.frontend import Molecule

    mol = Molecule.from_atoms(
        [
            ("I1", (0.0, 0.0, 0.0)),
            ("H", (0.0, 0.0, 3.0)),
            ("I2", (0.0, 0.0, -3.0)),
            ("I1", (4.0, 0.0, 0.0)),
        ]
    )
    mol.set_basis_all_atoms("def2-svp", "BASIS")
    return mol


def _shell_map():
    return {
        "def2-svp": {
            "I1": [
                _shell(0, [10.0, 2.0], [1.5, -0.5], [2, 2]),
                _shell(2, [1.0], [0.3], [1]),
            ],
            "I2": [_shell(1, [4.0, 1.0, 0.25], [1.0, 2.0, 3.0], [2, 2, 2])],
        }
    }


def test_assembly_counts_and_index_tables():
    from roscf.basis import assemble_ecp_basis

    basis = assemble_ecp_basis("BASIS", _mol(), _shell_map())

    assert basis.natom == 4
    assert basis.nshell == 5
    assert list(basis.center_to_nshell) == [2, 0, 1, 2]
    assert list(basis.center_to_shell) == [0, 2, 2, 3]
    assert int(basis.center_to_nshell.sum()) == basis.nshell
    assert list(basis.n_prim_per_shell) == [2, 1, 3, 2, 1]
    assert basis.nprimitive == 9
    # s + d (cartesian) + p + s + d
    assert basis.nao == 1 + 6 + 3 + 1 + 6
    assert basis.nbf == basis.nao
    assert basis.max_am == 2
    assert basis.max_nprimitive == 3
    assert basis.puream is False
    assert basis.n_ecp_core() == 0

    assert np.all(np.diff(basis.shell_first_ao) >= 0)
    assert np.all(np.diff(basis.shell_first_basis_function) >= 0)
    for i, sh in enumerate(basis.shells):
        first = int(basis.shell_first_ao[i])
        assert np.all(basis.ao_to_shell[first : first + sh.ncartesian] == i)
        assert sh.start == int(basis.shell_first_basis_function[i])
        assert basis.shell_center[i] == sh.nc
        assert np.all(basis.function_center[sh.start : sh.start + sh.nfunction] == sh.nc)
        assert np.all(basis.function_to_shell[sh.start : sh.start + sh.nfunction] == i)


def test_primitive_pool_is_shared_between_atoms_with_same_label():
    """Two I1 atoms consume the same pool range; the pool holds each label once."""
    from roscf.basis import assemble_ecp_basis

    basis = assemble_ecp_basis("BASIS", _mol(), _shell_map())

    assert basis.n_uprimitive == 6
    assert basis.primitive_ranges[("def2-svp", "I1")] == (0, 3)
    assert basis.primitive_ranges[("def2-svp", "I2")] == (3, 6)
    assert list(basis.shell_prim_start) == [0, 2, 3, 0, 2]
    assert np.allclose(basis.uexponents, [10.0, 2.0, 1.0, 4.0, 1.0, 0.25])

    first, fourth = basis.shell(0), basis.shell(3)
    assert np.shares_memory(first.exp, basis.uexponents)
    assert np.shares_memory(first.exp, fourth.exp)
    assert np.shares_memory(fourth.center, basis.xyz)
    assert np.allclose(fourth.center, [4.0, 0.0, 0.0])
    with pytest.raises(ValueError):
        first.coef[0] = 0.0
    with pytest.raises(ValueError):
        basis.ao_to_shell[0] = 3


def test_atom_shells_round_trip():
    from roscf.basis import ECPShellInfo, assemble_ecp_basis

    smap = _shell_map()
    mol = _mol()
    basis = assemble_ecp_basis("BASIS", mol, smap)

    for atom, label in ((0, "I1"), (2, "I2"), (3, "I1")):
        back = basis.atom_shells(atom)
        original = smap["def2-svp"][label]
        assert len(back) == len(original)
        for b, o in zip(back, original):
            assert b.l == o.l
            assert np.array_equal(b.exp, o.exp)
            assert np.array_equal(b.coef, o.coef)
            assert np.array_equal(b.n, o.n)
            assert np.array_equal(b.sub_l, o.sub_l)
            assert b.nc == atom
            assert b == ECPShellInfo(o.l, o.coef, o.exp, o.n, o.sub_l, nc=atom, center=mol.xyz(atom), start=b.start)
    assert basis.atom_shells(1) == []
    with pytest.raises(KeyError):
        basis.atom_shells(4)


def test_atoms_without_ecp_and_empty_map():
    from roscf.basis import assemble_ecp_basis

    basis = assemble_ecp_basis("BASIS", _mol(), {})
    assert basis.nshell == 0
    assert basis.nao == 0
    assert basis.n_uprimitive == 0
    assert list(basis.center_to_nshell) == [0, 0, 0, 0]


class _TruncatingLabels(dict):
    """Label map whose lookup drops the last shell, desynchronising the two passes."""

    def get(self, key, default=None):
        value = super().get(key, default)
        return value[:-1] if value else value


def test_primitive_count_mismatch_raises():
    from roscf.basis import assemble_ecp_basis

    smap = _shell_map()
    smap["def2-svp"] = _TruncatingLabels(smap["def2-svp"])
    with pytest.raises(RuntimeError, match="nprimitive"):
        assemble_ecp_basis("BASIS", _mol(), smap)


def test_radial_evaluation_filters_by_sub_l():
    """Only primitives whose sub_l matches the requested l contribute."""
    from roscf.basis import assemble_ecp_basis
    from roscf.frontend import Molecule

    mixed = _shell(1, [2.0, 0.5], [3.0, -1.0], [2, 0], sub_l=[0, 1])
    mol = Molecule.from_atoms([("Br", (0.0, 0.0, 0.0))])
    mol.set_basis_all_atoms("ecp", "BASIS")
    basis = assemble_ecp_basis("BASIS", mol, {"ecp": {"Br": [mixed]}})

    r = 0.7
    u0 = 3.0 * r**2 * np.exp(-2.0 * r * r)
    u1 = -1.0 * np.exp(-0.5 * r * r)
    assert basis.evaluate(0, r, 0) == pytest.approx(u0)
    assert basis.evaluate(0, r, 1) == pytest.approx(u1)
    assert basis.evaluate(0, r, 2) == 0.0

    grid = np.linspace(0.0, 2.0, 5)
    vals = basis.shell(0).evaluate(grid, 0)
    assert vals.shape == grid.shape
    assert np.allclose(vals, 3.0 * grid**2 * np.exp(-2.0 * grid**2))


def test_shell_info_validation_and_copy():
    from roscf.basis import ECPShellInfo

    with pytest.raises(ValueError):
        ECPShellInfo(0, [1.0, 2.0], [1.0], [2, 2], [0, 0])
    with pytest.raises(ValueError):
        ECPShellInfo(-1, [1.0], [1.0], [2], [0])

    info = ECPShellInfo(3, [1.0], [0.5], [2], [3])
    assert info.nprimitive == 1
    assert info.ncartesian == 10
    assert info.nfunction == 10
    assert ECPShellInfo(3, [1.0], [0.5], [2], [3], pure=True).nfunction == 7

    moved = info.copy(nc=2, center=(1.0, 2.0, 3.0))
    assert moved.nc == 2
    assert np.allclose(moved.center, [1.0, 2.0, 3.0])
    assert np.array_equal(moved.exp, info.exp)
    assert moved != info
    assert info.copy() == info
