from __future__ import annotations

"""Front-end building blocks: molecules, ECP input and SCF entry points."""

from .ecp_input import construct_ecp_from_dict, parse_ecp_shell_map, parse_gaussian94_ecp
from .molecule import Molecule
from .periodic_table import atomic_number, element_from_label, element_symbol
from .scf import run_rohf

__all__ = [
    "Molecule",
    "atomic_number",
    "construct_ecp_from_dict",
    "element_from_label",
    "element_symbol",
    "parse_ecp_shell_map",
    "parse_gaussian94_ecp",
    "run_rohf",
]
