from __future__ import annotations

"""Basis-set containers (ECP shells and their flat packed form)."""

from .cart import ncart, nsph
from .ecp import ECPBasisSet, ECPShell, ECPShellInfo, assemble_ecp_basis

__all__ = ["ECPBasisSet", "ECPShell", "ECPShellInfo", "assemble_ecp_basis", "ncart", "nsph"]
