from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .periodic_table import atomic_number, element_from_label

_ANGSTROM_TO_BOHR = 1.8897259886


def _parse_atom_string(atom: str) -> list[tuple[str, np.ndarray]]:
    atoms: list[tuple[str, np.ndarray]] = []
    for frag in str(atom).replace("\n", ";").split(";"):
        frag = frag.strip()
        if not frag:
            continue
        tok = frag.split()
        if len(tok) != 4:
            raise ValueError(f"invalid atom fragment: {frag!r} (expected: 'Label x y z')")
        xyz = np.asarray([float(tok[1]), float(tok[2]), float(tok[3])], dtype=np.float64)
        atoms.append((tok[0], xyz))
    if not atoms:
        raise ValueError("no atoms parsed")
    return atoms


def _parse_atoms(atoms: Any) -> list[tuple[str, np.ndarray]]:
    if isinstance(atoms, str):
        return _parse_atom_string(atoms)
    if isinstance(atoms, (list, tuple)):
        out: list[tuple[str, np.ndarray]] = []
        for item in atoms:
            if isinstance(item, str):
                out.extend(_parse_atom_string(item))
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                out.append((str(item[0]), np.asarray(item[1], dtype=np.float64).reshape((3,))))
            else:
                raise ValueError(f"invalid atom entry: {item!r}")
        if not out:
            raise ValueError("no atoms parsed")
        return out
    raise TypeError("atoms must be an atom string or a list of (label, (x,y,z))")


@dataclass(eq=False)
class Molecule:
    """Molecule provider for ECP assembly and SCF.

    Atom labels (e.g. ``"I1"``) key the basis/ECP lookup; the element is the
    label with its numeric suffix removed. Nuclear charges start at the atomic
    number and are lowered when ECP core electrons are removed.
    """

    atoms_bohr: tuple[tuple[str, np.ndarray], ...]
    charge: int = 0
    spin: int = 0  # nalpha - nbeta
    basis: Any = None  # orbital basis name, assigned to every atom under key "BASIS"
    _Z: list[float] = field(default_factory=list, init=False, repr=False)
    _basis_sets: list[dict[str, str]] = field(default_factory=list, init=False, repr=False)
    _shell_hashes: list[dict[str, str]] = field(default_factory=list, init=False, repr=False)
    _ecp_ncore: list[int] = field(default_factory=list, init=False, repr=False)
    _label_index: dict[str, tuple[int, ...]] = field(default_factory=dict, init=False, repr=False)
    _enuc: float | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.atoms_bohr = tuple((str(lbl), np.asarray(xyz, dtype=np.float64).reshape((3,))) for lbl, xyz in self.atoms_bohr)
        self._Z = [float(atomic_number(lbl)) for lbl, _xyz in self.atoms_bohr]
        self._basis_sets = [{} for _ in self.atoms_bohr]
        self._shell_hashes = [{} for _ in self.atoms_bohr]
        self._ecp_ncore = [0 for _ in self.atoms_bohr]
        if isinstance(self.basis, str):
            self.set_basis_all_atoms(self.basis, "BASIS")
        self.update_geometry()

    @classmethod
    def from_atoms(
        cls,
        atoms: Any,
        *,
        unit: str = "Bohr",
        charge: int = 0,
        spin: int = 0,
        basis: Any = None,
    ) -> "Molecule":
        atoms_list = _parse_atoms(atoms)
        unit_norm = str(unit).strip().lower()
        if unit_norm in ("bohr", "a0", "au"):
            scale = 1.0
        elif unit_norm in ("angstrom", "ang", "a"):
            scale = _ANGSTROM_TO_BOHR
        else:
            raise ValueError("unit must be 'Bohr' or 'Angstrom'")
        atoms_bohr = tuple((lbl, xyz * scale) for lbl, xyz in atoms_list)
        return cls(atoms_bohr=atoms_bohr, charge=int(charge), spin=int(spin), basis=basis)

    def _check_atom(self, i: int) -> int:
        i = int(i)
        if i < 0 or i >= self.natm:
            raise KeyError(f"atom index {i} out of range (natm={self.natm})")
        return i

    @property
    def natm(self) -> int:
        return int(len(self.atoms_bohr))

    @property
    def elements(self) -> tuple[str, ...]:
        return tuple(element_from_label(lbl) for lbl, _ in self.atoms_bohr)

    @property
    def coords_bohr(self) -> np.ndarray:
        return np.asarray([xyz for _lbl, xyz in self.atoms_bohr], dtype=np.float64).reshape((self.natm, 3))

    def label(self, i: int) -> str:
        return str(self.atoms_bohr[self._check_atom(i)][0])

    def symbol(self, i: int) -> str:
        return element_from_label(self.label(i))

    def xyz(self, i: int) -> np.ndarray:
        return self.atoms_bohr[self._check_atom(i)][1].copy()

    def Z(self, i: int) -> float:
        return float(self._Z[self._check_atom(i)])

    def set_nuclear_charge(self, i: int, Z: float) -> None:
        self._Z[self._check_atom(i)] = float(Z)
        self._enuc = None

    # Basis bookkeeping.
    def set_basis_all_atoms(self, name: str, key: str = "BASIS") -> None:
        for d in self._basis_sets:
            d[str(key)] = str(name)

    def set_basis_by_label(self, label: str, name: str, key: str = "BASIS") -> None:
        for i in self.atoms_with_label(label):
            self._basis_sets[i][str(key)] = str(name)

    def basis_on_atom(self, i: int, key: str = "BASIS") -> str:
        i = self._check_atom(i)
        try:
            return self._basis_sets[i][str(key)]
        except KeyError:
            raise KeyError(f"no {key!r} basis assigned to atom {i} ({self.label(i)!r})") from None

    def set_shell_by_label(self, label: str, hash_: str, key: str = "BASIS") -> None:
        idx = self.atoms_with_label(label)
        if not idx:
            raise KeyError(f"no atom with label {label!r}")
        for i in idx:
            self._shell_hashes[i][str(key)] = str(hash_)

    def shell_hash(self, i: int, key: str = "BASIS") -> str | None:
        return self._shell_hashes[self._check_atom(i)].get(str(key))

    # ECP core electrons.
    def ecp_ncore(self, i: int) -> int:
        return int(self._ecp_ncore[self._check_atom(i)])

    def remove_core_electrons(self, i: int, ncore: int) -> None:
        """Lower the nuclear charge of atom `i` by `ncore`; allowed once per atom."""

        i = self._check_atom(i)
        ncore = int(ncore)
        if ncore < 0:
            raise ValueError("ncore must be >= 0")
        if ncore == 0:
            return
        if self._ecp_ncore[i] != 0:
            raise ValueError(f"ECP core electrons already removed from atom {i} ({self.label(i)!r})")
        Z = self.Z(i)
        if ncore > Z:
            raise ValueError(f"ECP core ({ncore}) exceeds the nuclear charge ({Z:g}) of atom {i}")
        self._ecp_ncore[i] = ncore
        self.set_nuclear_charge(i, Z - ncore)

    def atoms_with_label(self, label: str) -> tuple[int, ...]:
        return self._label_index.get(str(label), ())

    def update_geometry(self) -> None:
        """Refresh label lookup tables and the cached nuclear repulsion energy."""

        index: dict[str, list[int]] = {}
        for i, (lbl, xyz) in enumerate(self.atoms_bohr):
            if not np.all(np.isfinite(xyz)):
                raise ValueError(f"non-finite coordinates for atom {i}")
            index.setdefault(lbl, []).append(i)
        self._label_index = {k: tuple(v) for k, v in index.items()}
        self._enuc = self._nuclear_repulsion()

    @property
    def nelectron(self) -> int:
        zsum = int(round(sum(self._Z)))
        return int(zsum - int(self.charge))

    def _nuclear_repulsion(self) -> float:
        e = 0.0
        atoms = self.atoms_bohr
        for i in range(len(atoms)):
            ri = atoms[i][1]
            for j in range(i + 1, len(atoms)):
                Rij = float(np.linalg.norm(ri - atoms[j][1]))
                if Rij == 0.0:
                    raise ValueError("coincident nuclei")
                e += self._Z[i] * self._Z[j] / Rij
        return float(e)

    def energy_nuc(self) -> float:
        """Nuclear repulsion energy in Hartree with the current (effective) charges."""

        if self._enuc is None:
            self._enuc = self._nuclear_repulsion()
        return float(self._enuc)

    def as_dict(self) -> dict[str, Any]:
        return {
            "atoms_bohr": [(lbl, xyz.tolist()) for lbl, xyz in self.atoms_bohr],
            "charge": int(self.charge),
            "spin": int(self.spin),
            "basis": self.basis,
            "Z": list(self._Z),
            "ecp_ncore": list(self._ecp_ncore),
        }


__all__ = ["Molecule"]
