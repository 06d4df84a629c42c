from __future__ import annotations

"""Effective core potential (ECP) basis sets.

Input
-----
A nested shell map ``shell_map[basis][label] -> [ECPShellInfo, ...]`` and a
molecule exposing ``natm``, ``basis_on_atom(i, key)``, ``label(i)`` and
``xyz(i)``.

Output
------
`ECPBasisSet`: primitives of every (basis, label) pair are stored once in a
flat, read-only pool; every `ECPShell` holds numpy views into that pool, and
flat index tables map AOs / basis functions / shells to shells and centers.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, Mapping, Sequence

import numpy as np

from ._ecp_numba import evaluate_radial
from .cart import ncart, nsph

logger = logging.getLogger(__name__)


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


@dataclass(frozen=True, eq=False)
class ECPShellInfo:
    """Description of one ECP shell before it is placed in a basis set.

    Parameters
    ----------
    l : int
        Angular momentum of the shell.
    coef, exp : array_like
        Primitive coefficients and exponents (same length).
    n : array_like
        Radial power of each primitive.
    sub_l : array_like
        Angular momentum each primitive contributes to; primitives of one shell
        may belong to different angular momenta.
    nc : int
        Owning atom index.
    center : array_like
        Shell center (Bohr), shape ``(3,)``.
    start : int
        Index of the first basis function contributed by this shell.
    pure : bool
        Spherical (True) or Cartesian (False, default for ECP shells).
    """

    l: int
    coef: np.ndarray
    exp: np.ndarray
    n: np.ndarray
    sub_l: np.ndarray
    nc: int = 0
    center: np.ndarray = field(default_factory=lambda: np.zeros((3,), dtype=np.float64))
    start: int = 0
    pure: bool = False

    def __post_init__(self) -> None:
        if int(self.l) < 0:
            raise ValueError(f"angular momentum must be >= 0, got {self.l}")
        coef = np.asarray(self.coef, dtype=np.float64).ravel().copy()
        exp = np.asarray(self.exp, dtype=np.float64).ravel().copy()
        n = np.asarray(self.n, dtype=np.int32).ravel().copy()
        sub_l = np.asarray(self.sub_l, dtype=np.int32).ravel().copy()
        if not (coef.size == exp.size == n.size == sub_l.size):
            raise ValueError(
                "coef/exp/n/sub_l must have the same length, got "
                f"{coef.size}/{exp.size}/{n.size}/{sub_l.size}"
            )
        center = np.asarray(self.center, dtype=np.float64).reshape((3,)).copy()
        object.__setattr__(self, "l", int(self.l))
        object.__setattr__(self, "coef", _readonly(coef))
        object.__setattr__(self, "exp", _readonly(exp))
        object.__setattr__(self, "n", _readonly(n))
        object.__setattr__(self, "sub_l", _readonly(sub_l))
        object.__setattr__(self, "nc", int(self.nc))
        object.__setattr__(self, "center", _readonly(center))
        object.__setattr__(self, "start", int(self.start))
        object.__setattr__(self, "pure", bool(self.pure))

    @property
    def nprimitive(self) -> int:
        return int(self.exp.size)

    @property
    def ncartesian(self) -> int:
        return ncart(self.l)

    @property
    def nfunction(self) -> int:
        return nsph(self.l) if self.pure else ncart(self.l)

    def copy(self, nc: int | None = None, center: Any | None = None) -> "ECPShellInfo":
        """Return a copy, optionally re-centred on atom `nc` at `center`."""

        return ECPShellInfo(
            self.l,
            self.coef,
            self.exp,
            self.n,
            self.sub_l,
            nc=self.nc if nc is None else int(nc),
            center=self.center if center is None else center,
            start=self.start,
            pure=self.pure,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ECPShellInfo):
            return NotImplemented
        return (
            self.l == other.l
            and self.pure == other.pure
            and np.array_equal(self.exp, other.exp)
            and np.array_equal(self.coef, other.coef)
            and np.array_equal(self.n, other.n)
            and np.array_equal(self.sub_l, other.sub_l)
            and self.nc == other.nc
            and np.array_equal(self.center, other.center)
            and self.start == other.start
        )


@dataclass(frozen=True, eq=False)
class ECPShell:
    """An assembled ECP shell; array fields are views into the basis-set pool."""

    l: int
    coef: np.ndarray
    exp: np.ndarray
    n: np.ndarray
    sub_l: np.ndarray
    nc: int
    center: np.ndarray
    start: int
    pure: bool = False

    @property
    def nprimitive(self) -> int:
        return int(self.exp.size)

    @property
    def ncartesian(self) -> int:
        return ncart(self.l)

    @property
    def nfunction(self) -> int:
        return nsph(self.l) if self.pure else ncart(self.l)

    def evaluate(self, r, l: int):
        """Radial potential U_l(r) from the primitives whose sub_l equals `l`."""

        return evaluate_radial(r, int(l), self.exp, self.coef, self.n, self.sub_l)

    def info(self) -> ECPShellInfo:
        return ECPShellInfo(
            self.l, self.coef, self.exp, self.n, self.sub_l, nc=self.nc, center=self.center, start=self.start, pure=self.pure
        )


@dataclass(frozen=True)
class ECPBasisSet:
    """Flat ECP basis set.

    Notes
    -----
    - ``uexponents/ucoefficients/uns/usubls`` form the unique-primitive pool.
      ``primitive_ranges[(basis, label)] = (start, end)`` is the half-open pool
      range of that pair.
    - ``xyz`` holds the flattened atom coordinates, shape ``(3 * natom,)``;
      ``shells[i].center`` is a view into it.
    - All arrays are read-only; the object can be shared between calculations.
    """

    name: str
    key: str
    target: str
    natom: int
    nshell: int
    nprimitive: int
    nao: int
    nbf: int
    n_uprimitive: int
    max_am: int
    max_nprimitive: int
    puream: bool
    uexponents: np.ndarray
    ucoefficients: np.ndarray
    uns: np.ndarray
    usubls: np.ndarray
    primitive_ranges: Mapping[tuple[str, str], tuple[int, int]]
    shells: tuple[ECPShell, ...]
    n_prim_per_shell: np.ndarray
    shell_prim_start: np.ndarray
    shell_first_ao: np.ndarray
    shell_first_basis_function: np.ndarray
    shell_center: np.ndarray
    ao_to_shell: np.ndarray
    function_to_shell: np.ndarray
    function_center: np.ndarray
    center_to_nshell: np.ndarray
    center_to_shell: np.ndarray
    xyz: np.ndarray
    ncore_per_atom: np.ndarray

    def shell(self, i: int) -> ECPShell:
        return self.shells[int(i)]

    def atom_shells(self, atom: int) -> list[ECPShellInfo]:
        """Rebuild the shell descriptors of one atom from the flat representation."""

        atom = int(atom)
        if atom < 0 or atom >= int(self.natom):
            raise KeyError(f"atom index {atom} out of range")
        first = int(self.center_to_shell[atom])
        count = int(self.center_to_nshell[atom])
        return [self.shells[i].info() for i in range(first, first + count)]

    def n_ecp_core(self) -> int:
        return int(self.ncore_per_atom.sum())

    def evaluate(self, shell: int, r, l: int):
        return self.shells[int(shell)].evaluate(r, l)


def _build_primitive_pool(shell_map: Mapping[str, Mapping[str, Sequence[ECPShellInfo]]]):
    """Flatten every primitive of every (basis, label) pair into one pool."""

    uexps: list[float] = []
    ucoefs: list[float] = []
    uns: list[int] = []
    usubls: list[int] = []
    ranges: dict[tuple[str, str], tuple[int, int]] = {}
    for basis in sorted(shell_map):
        symbol_map = shell_map[basis]
        for label in sorted(symbol_map):
            start = len(uexps)
            for shell in symbol_map[label]:
                uexps.extend(shell.exp.tolist())
                ucoefs.extend(shell.coef.tolist())
                uns.extend(shell.n.tolist())
                usubls.extend(shell.sub_l.tolist())
            ranges[(str(basis), str(label))] = (start, len(uexps))
    return (
        _readonly(np.asarray(uexps, dtype=np.float64)),
        _readonly(np.asarray(ucoefs, dtype=np.float64)),
        _readonly(np.asarray(uns, dtype=np.int32)),
        _readonly(np.asarray(usubls, dtype=np.int32)),
        ranges,
    )


def _atom_shells(shell_map, basis: str, label: str) -> Sequence[ECPShellInfo]:
    symbol_map = shell_map.get(basis)
    if symbol_map is None:
        return ()
    shells = symbol_map.get(label)
    return () if shells is None else shells


def assemble_ecp_basis(
    basis_type: str,
    mol,
    shell_map: Mapping[str, Mapping[str, Sequence[ECPShellInfo]]],
    *,
    name: str | None = None,
    target: str = "",
    ncore_per_atom: Sequence[int] | None = None,
) -> ECPBasisSet:
    """Assemble an `ECPBasisSet` for `mol` from a nested shell map.

    Atoms whose (basis, label) pair is absent from `shell_map` carry no ECP
    shells. Raises RuntimeError if the primitives consumed by an atom do not
    match its precomputed pool range.
    """

    natom = int(mol.natm)
    uexps, ucoefs, uns, usubls, ranges = _build_primitive_pool(shell_map)

    # Sizing pass.
    nshell = 0
    nprimitive = 0
    nao = 0
    nbf = 0
    for a in range(natom):
        basis = mol.basis_on_atom(a, basis_type)
        label = mol.label(a)
        for shell in _atom_shells(shell_map, basis, label):
            nprimitive += shell.nprimitive
            nshell += 1
            nao += shell.ncartesian
            nbf += shell.nfunction

    n_prim_per_shell = np.zeros((nshell,), dtype=np.int32)
    shell_prim_start = np.zeros((nshell,), dtype=np.int32)
    shell_first_ao = np.zeros((nshell,), dtype=np.int32)
    shell_first_bf = np.zeros((nshell,), dtype=np.int32)
    shell_center = np.zeros((nshell,), dtype=np.int32)
    ao_to_shell = np.zeros((nao,), dtype=np.int32)
    function_to_shell = np.zeros((nbf,), dtype=np.int32)
    function_center = np.zeros((nbf,), dtype=np.int32)
    center_to_nshell = np.zeros((natom,), dtype=np.int32)
    center_to_shell = np.zeros((natom,), dtype=np.int32)
    xyz = np.zeros((3 * natom,), dtype=np.float64)
    for a in range(natom):
        xyz[3 * a : 3 * a + 3] = np.asarray(mol.xyz(a), dtype=np.float64).reshape((3,))
    _readonly(xyz)

    shells: list[ECPShell] = []
    shell_count = 0
    ao_count = 0
    bf_count = 0
    puream = False
    max_am = 0
    max_nprimitive = 0
    for a in range(natom):
        basis = mol.basis_on_atom(a, basis_type)
        label = mol.label(a)
        atom_shells = _atom_shells(shell_map, basis, label)
        ustart, uend = ranges.get((basis, label), (0, 0))
        center_to_nshell[a] = len(atom_shells)
        center_to_shell[a] = shell_count
        center = xyz[3 * a : 3 * a + 3]
        atom_nprim = 0
        for info in atom_shells:
            nprim = info.nprimitive
            p0 = ustart + atom_nprim
            p1 = p0 + nprim
            shell_first_ao[shell_count] = ao_count
            shell_first_bf[shell_count] = bf_count
            n_prim_per_shell[shell_count] = nprim
            shell_prim_start[shell_count] = p0
            shell_center[shell_count] = a
            max_nprimitive = max(max_nprimitive, nprim)
            max_am = max(max_am, info.l)
            puream = puream or info.pure
            shells.append(
                ECPShell(
                    l=info.l,
                    coef=ucoefs[p0:p1],
                    exp=uexps[p0:p1],
                    n=uns[p0:p1],
                    sub_l=usubls[p0:p1],
                    nc=a,
                    center=center,
                    start=bf_count,
                    pure=info.pure,
                )
            )
            for _ in range(info.nfunction):
                function_to_shell[bf_count] = shell_count
                function_center[bf_count] = a
                bf_count += 1
            for _ in range(info.ncartesian):
                ao_to_shell[ao_count] = shell_count
                ao_count += 1
            atom_nprim += nprim
            shell_count += 1
        if atom_nprim != uend - ustart:
            raise RuntimeError(
                f"Problem with nprimitive in basis set construction: atom {a} ({label!r}, basis {basis!r}) "
                f"consumed {atom_nprim} primitives, expected {uend - ustart}"
            )

    if ncore_per_atom is None:
        ncore = np.zeros((natom,), dtype=np.int32)
    else:
        ncore = np.asarray(ncore_per_atom, dtype=np.int32).reshape((-1,))
        if ncore.shape != (natom,):
            raise ValueError("ncore_per_atom must have one entry per atom")

    logger.debug(
        "ECP basis %s: %d shells, %d primitives (%d unique), nao=%d, nbf=%d",
        name or basis_type,
        nshell,
        nprimitive,
        int(uexps.size),
        nao,
        nbf,
    )

    return ECPBasisSet(
        name=str(name if name is not None else basis_type),
        key=str(basis_type),
        target=str(target),
        natom=natom,
        nshell=nshell,
        nprimitive=nprimitive,
        nao=nao,
        nbf=nbf,
        n_uprimitive=int(uexps.size),
        max_am=max_am,
        max_nprimitive=max_nprimitive,
        puream=bool(puream),
        uexponents=uexps,
        ucoefficients=ucoefs,
        uns=uns,
        usubls=usubls,
        primitive_ranges=dict(ranges),
        shells=tuple(shells),
        n_prim_per_shell=_readonly(n_prim_per_shell),
        shell_prim_start=_readonly(shell_prim_start),
        shell_first_ao=_readonly(shell_first_ao),
        shell_first_basis_function=_readonly(shell_first_bf),
        shell_center=_readonly(shell_center),
        ao_to_shell=_readonly(ao_to_shell),
        function_to_shell=_readonly(function_to_shell),
        function_center=_readonly(function_center),
        center_to_nshell=_readonly(center_to_nshell),
        center_to_shell=_readonly(center_to_shell),
        xyz=xyz,
        ncore_per_atom=_readonly(ncore),
    )


__all__ = ["ECPBasisSet", "ECPShell", "ECPShellInfo", "assemble_ecp_basis"]
