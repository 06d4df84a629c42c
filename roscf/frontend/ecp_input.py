from __future__ import annotations

"""Structured ECP input -> `ECPBasisSet`.

Input
-----
A payload dict (as produced by an external basis-set provider)::

    {
        "key": "BASIS",            # basis role the ECP is attached to
        "name": "def2-svp",        # basis name assigned to every atom
        "blend": "DEF2-SVP",       # target string
        "message": "...",          # free text, kept for reporting
        "ecp_shell_map": [
            [label, hash, ncore, [l, [exp, coef, n], [exp, coef, n], ...], ...],
            ...
        ],
    }

Every primitive of a shell gets ``sub_l == l``.

Text-format (Gaussian94) ECP parsing is not implemented.
"""

import logging
from typing import Any, Mapping, Sequence

import numpy as np

from roscf.basis.ecp import ECPBasisSet, ECPShellInfo, assemble_ecp_basis

logger = logging.getLogger(__name__)


def parse_gaussian94_ecp(symbol: str, lines: Sequence[str]) -> list[ECPShellInfo]:
    """Gaussian94 ECP text parser entry point; returns no shells."""

    logger.warning("Gaussian94 ECP text parsing is not implemented; no ECP shells read for %r", symbol)
    return []


def _parse_ecp_shell_entry(entry: Any) -> ECPShellInfo:
    """Parse ``[l, [exp, coef, n], ...]`` into an ECPShellInfo."""

    if not isinstance(entry, (list, tuple)) or len(entry) < 2:
        raise ValueError(f"invalid ECP shell entry: {entry!r}")
    if not isinstance(entry[0], (int, np.integer)) or isinstance(entry[0], bool):
        raise ValueError(f"ECP shell entry must start with an integer angular momentum: {entry!r}")
    am = int(entry[0])
    if am < 0:
        raise ValueError(f"negative angular momentum in ECP shell entry: {entry!r}")

    exps: list[float] = []
    coefs: list[float] = []
    ns: list[int] = []
    for prim in entry[1:]:
        if not isinstance(prim, (list, tuple)) or len(prim) != 3:
            raise ValueError(f"invalid ECP primitive (expected [exp, coef, n]): {prim!r}")
        exps.append(float(prim[0]))
        coefs.append(float(prim[1]))
        ns.append(int(prim[2]))
    return ECPShellInfo(am, coefs, exps, ns, [am] * len(exps))


def parse_ecp_shell_map(
    ecp_shell_map: Any,
) -> tuple[dict[str, list[ECPShellInfo]], dict[str, int], dict[str, str]]:
    """Parse per-atom ECP records into (shells, ncore, hash) dicts keyed by atom label."""

    if not isinstance(ecp_shell_map, (list, tuple)):
        raise TypeError("ecp_shell_map must be a list of per-atom records")
    if len(ecp_shell_map) == 0:
        raise ValueError("Empty ECP information being used to construct ECPBasisSet.")

    shells: dict[str, list[ECPShellInfo]] = {}
    ncore: dict[str, int] = {}
    hashes: dict[str, str] = {}
    for record in ecp_shell_map:
        if not isinstance(record, (list, tuple)) or len(record) < 3:
            raise ValueError(f"invalid ECP atom record (expected [label, hash, ncore, shells...]): {record!r}")
        label = str(record[0]).strip()
        if not label:
            raise ValueError("ECP atom record has an empty label")
        nc = int(record[2])
        if nc < 0:
            raise ValueError(f"negative core-electron count for {label!r}")
        shells[label] = [_parse_ecp_shell_entry(entry) for entry in record[3:]]
        ncore[label] = nc
        hashes[label] = str(record[1])
    return shells, ncore, hashes


class _PendingBasis:
    """Molecule view that reports `name` as every atom's `key` basis, without assigning it."""

    def __init__(self, mol, key: str, name: str):
        self._mol = mol
        self._key = str(key)
        self._name = str(name)

    @property
    def natm(self) -> int:
        return int(self._mol.natm)

    def basis_on_atom(self, i: int, key: str = "BASIS") -> str:
        if str(key) == self._key:
            return self._name
        return self._mol.basis_on_atom(i, key)

    def label(self, i: int) -> str:
        return self._mol.label(i)

    def xyz(self, i: int):
        return self._mol.xyz(i)


def _core_counts(mol, ncore_by_label: Mapping[str, int]) -> np.ndarray:
    """Per-atom ECP core counts, checked against each atom's current state."""

    ncore = np.zeros((int(mol.natm),), dtype=np.int32)
    for a in range(int(mol.natm)):
        nc = int(ncore_by_label.get(mol.label(a), 0))
        if nc == 0:
            continue
        if mol.ecp_ncore(a) != 0:
            raise ValueError(f"ECP core electrons already removed from atom {a} ({mol.label(a)!r})")
        if nc > mol.Z(a):
            raise ValueError(f"ECP core ({nc}) exceeds the nuclear charge ({mol.Z(a):g}) of atom {a}")
        ncore[a] = nc
    return ncore


def construct_ecp_from_dict(mol, payload: Mapping[str, Any]) -> ECPBasisSet:
    """Build an ECPBasisSet for `mol` from a structured payload.

    The payload is validated and the basis set assembled before `mol` is
    touched; a rejected payload leaves the molecule unchanged. On success the
    basis name is assigned to every atom under ``payload["key"]``, label
    hashes are recorded, each atom's nuclear charge is lowered by its ECP
    core-electron count, and ``mol.update_geometry()`` is called.
    """

    if not isinstance(payload, Mapping):
        raise TypeError("payload must be a mapping")
    try:
        key = str(payload["key"])
        name = str(payload["name"])
        ecp_shell_map = payload["ecp_shell_map"]
    except KeyError as e:
        raise ValueError(f"ECP payload is missing {e.args[0]!r}") from None
    target = str(payload.get("blend", ""))
    message = str(payload.get("message", ""))

    shells_by_label, ncore_by_label, hash_by_label = parse_ecp_shell_map(ecp_shell_map)
    for label in hash_by_label:
        if not mol.atoms_with_label(label):
            raise ValueError(f"ECP record for label {label!r} matches no atom in the molecule")
    ncore_per_atom = _core_counts(mol, ncore_by_label)

    shell_map = {name: shells_by_label}
    basis = assemble_ecp_basis(
        key, _PendingBasis(mol, key, name), shell_map, name=name, target=target, ncore_per_atom=ncore_per_atom
    )

    mol.set_basis_all_atoms(name, key)
    for label, hash_ in hash_by_label.items():
        mol.set_shell_by_label(label, hash_, key)
    for a in range(int(mol.natm)):
        mol.remove_core_electrons(a, int(ncore_per_atom[a]))
    mol.update_geometry()

    if message:
        logger.info("%s", message)
    logger.info(
        "ECP basis %s (%s): %d shells on %d atoms, %d core electrons removed",
        name,
        key,
        basis.nshell,
        int(np.count_nonzero(basis.center_to_nshell)),
        basis.n_ecp_core(),
    )
    return basis


__all__ = ["construct_ecp_from_dict", "parse_ecp_shell_map", "parse_gaussian94_ecp"]
