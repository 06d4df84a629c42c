from __future__ import annotations

"""Irrep-blocked dense linear algebra."""

from .blocked import BlockMatrix, BlockVector, as_block_matrix

__all__ = ["BlockMatrix", "BlockVector", "as_block_matrix"]
