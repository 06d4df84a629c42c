from __future__ import annotations

"""Irrep-blocked dense matrices and vectors.

A `BlockMatrix` is a plain value type: one dense numpy block per irrep plus
the row/column dimension tables. Blocks may be empty (dimension 0). All
arithmetic returns new objects; only `set`/`zero_diagonal` edit in place.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import numpy as np
from scipy.linalg import block_diag


def _dims(dims: Iterable[int]) -> tuple[int, ...]:
    out = tuple(int(d) for d in dims)
    if any(d < 0 for d in out):
        raise ValueError("block dimensions must be >= 0")
    return out


def _symmetrize(A):
    return 0.5 * (A + A.T)


@dataclass(eq=False)
class BlockVector:
    """One 1D float64 array per irrep."""

    blocks: list[np.ndarray]
    name: str = ""

    def __post_init__(self) -> None:
        self.blocks = [np.asarray(b, dtype=np.float64).reshape((-1,)) for b in self.blocks]

    @classmethod
    def zeros(cls, dimpi: Sequence[int], name: str = "") -> "BlockVector":
        return cls([np.zeros((d,), dtype=np.float64) for d in _dims(dimpi)], name=name)

    @property
    def nirrep(self) -> int:
        return int(len(self.blocks))

    @property
    def dimpi(self) -> tuple[int, ...]:
        return tuple(int(b.shape[0]) for b in self.blocks)

    def get(self, h: int, i: int) -> float:
        return float(self.blocks[int(h)][int(i)])

    def set(self, h: int, i: int, val: float) -> None:
        self.blocks[int(h)][int(i)] = float(val)

    def copy(self) -> "BlockVector":
        return BlockVector([b.copy() for b in self.blocks], name=self.name)

    def readonly_view(self) -> "BlockVector":
        out = object.__new__(BlockVector)
        out.name = self.name
        out.blocks = []
        for b in self.blocks:
            v = b.view()
            v.setflags(write=False)
            out.blocks.append(v)
        return out

    def to_array(self) -> np.ndarray:
        if not self.blocks:
            return np.zeros((0,), dtype=np.float64)
        return np.concatenate(self.blocks)

    def sorted_pairs(self) -> list[tuple[float, int]]:
        """Return (value, irrep) pairs over all irreps, ascending by value."""

        pairs = [(float(v), h) for h, b in enumerate(self.blocks) for v in b]
        pairs.sort()
        return pairs


@dataclass(eq=False)
class BlockMatrix:
    """Block-diagonal matrix indexed by irrep.

    ``blocks[h]`` has shape ``(rowspi[h], colspi[h])``.
    """

    blocks: list[np.ndarray]
    name: str = ""

    def __post_init__(self) -> None:
        blocks = []
        for b in self.blocks:
            a = np.array(b, dtype=np.float64)
            if a.ndim != 2:
                raise ValueError("every irrep block must be 2D")
            blocks.append(a)
        self.blocks = blocks

    @classmethod
    def zeros(cls, rowspi: Sequence[int], colspi: Sequence[int] | None = None, name: str = "") -> "BlockMatrix":
        rows = _dims(rowspi)
        cols = rows if colspi is None else _dims(colspi)
        if len(rows) != len(cols):
            raise ValueError("rowspi and colspi must have the same number of irreps")
        return cls([np.zeros((r, c), dtype=np.float64) for r, c in zip(rows, cols)], name=name)

    @classmethod
    def identity(cls, dimpi: Sequence[int], name: str = "") -> "BlockMatrix":
        return cls([np.eye(d, dtype=np.float64) for d in _dims(dimpi)], name=name)

    @classmethod
    def from_dense(cls, A, dimpi: Sequence[int], name: str = "") -> "BlockMatrix":
        """Extract the irrep-diagonal blocks of a full matrix in concatenated-irrep order."""

        A = np.asarray(A, dtype=np.float64)
        dims = _dims(dimpi)
        n = int(sum(dims))
        if A.shape != (n, n):
            raise ValueError(f"expected a ({n},{n}) matrix, got {tuple(A.shape)}")
        blocks = []
        off = 0
        for d in dims:
            blocks.append(A[off : off + d, off : off + d].copy())
            off += d
        return cls(blocks, name=name)

    @property
    def nirrep(self) -> int:
        return int(len(self.blocks))

    @property
    def rowspi(self) -> tuple[int, ...]:
        return tuple(int(b.shape[0]) for b in self.blocks)

    @property
    def colspi(self) -> tuple[int, ...]:
        return tuple(int(b.shape[1]) for b in self.blocks)

    @property
    def T(self) -> "BlockMatrix":
        return BlockMatrix([b.T for b in self.blocks], name=self.name)

    def _check_same_shape(self, other: "BlockMatrix") -> None:
        if self.rowspi != other.rowspi or self.colspi != other.colspi:
            raise ValueError(
                f"block shape mismatch: {self.rowspi}x{self.colspi} vs {other.rowspi}x{other.colspi}"
            )

    def copy(self, name: str | None = None) -> "BlockMatrix":
        return BlockMatrix([b.copy() for b in self.blocks], name=self.name if name is None else name)

    def readonly_view(self) -> "BlockMatrix":
        """Return a BlockMatrix sharing storage with `self` whose blocks cannot be written."""

        out = object.__new__(BlockMatrix)
        out.name = self.name
        out.blocks = []
        for b in self.blocks:
            v = b.view()
            v.setflags(write=False)
            out.blocks.append(v)
        return out

    def __add__(self, other: "BlockMatrix") -> "BlockMatrix":
        self._check_same_shape(other)
        return BlockMatrix([a + b for a, b in zip(self.blocks, other.blocks)])

    def __sub__(self, other: "BlockMatrix") -> "BlockMatrix":
        self._check_same_shape(other)
        return BlockMatrix([a - b for a, b in zip(self.blocks, other.blocks)])

    def __mul__(self, alpha: float) -> "BlockMatrix":
        return BlockMatrix([float(alpha) * b for b in self.blocks])

    __rmul__ = __mul__

    def __neg__(self) -> "BlockMatrix":
        return self * -1.0

    def __matmul__(self, other: "BlockMatrix") -> "BlockMatrix":
        return self.gemm(other)

    def get(self, h: int, i: int, j: int) -> float:
        return float(self.blocks[int(h)][int(i), int(j)])

    def set(self, h: int, i: int, j: int, val: float) -> None:
        self.blocks[int(h)][int(i), int(j)] = float(val)

    def gemm(self, other: "BlockMatrix", *, transa: bool = False, transb: bool = False, alpha: float = 1.0) -> "BlockMatrix":
        """Return ``alpha * op(self) @ op(other)`` irrep by irrep."""

        if self.nirrep != other.nirrep:
            raise ValueError("nirrep mismatch in gemm")
        out = []
        for a, b in zip(self.blocks, other.blocks):
            a = a.T if transa else a
            b = b.T if transb else b
            out.append(float(alpha) * (a @ b))
        return BlockMatrix(out)

    def transform(self, C: "BlockMatrix") -> "BlockMatrix":
        """Similarity transform ``C.T @ self @ C``."""

        return BlockMatrix([c.T @ a @ c for a, c in zip(self.blocks, C.blocks)])

    def back_transform(self, C: "BlockMatrix") -> "BlockMatrix":
        """Inverse-direction transform ``C @ self @ C.T``."""

        return BlockMatrix([c @ a @ c.T for a, c in zip(self.blocks, C.blocks)])

    def symmetrize(self) -> "BlockMatrix":
        return BlockMatrix([_symmetrize(b) for b in self.blocks], name=self.name)

    def zero_diagonal(self) -> None:
        for b in self.blocks:
            np.fill_diagonal(b, 0.0)

    def diagonalize(self) -> tuple["BlockMatrix", BlockVector]:
        """Eigen-decompose each (symmetrised) block; eigenvalues ascending."""

        vecs = []
        vals = []
        for b in self.blocks:
            if b.shape[0] != b.shape[1]:
                raise ValueError("diagonalize requires square blocks")
            if b.shape[0] == 0:
                vecs.append(np.zeros((0, 0), dtype=np.float64))
                vals.append(np.zeros((0,), dtype=np.float64))
                continue
            e, v = np.linalg.eigh(_symmetrize(b))
            vecs.append(v)
            vals.append(e)
        return BlockMatrix(vecs), BlockVector(vals)

    def power(self, a: float, *, eps: float = 1e-12) -> "BlockMatrix":
        """Return the symmetric matrix power of a positive definite matrix."""

        out = []
        for b in self.blocks:
            if b.shape[0] == 0:
                out.append(np.zeros((0, 0), dtype=np.float64))
                continue
            s, U = np.linalg.eigh(_symmetrize(b))
            if np.any(s <= eps):
                raise ValueError("matrix is not positive definite (small/negative eigenvalues)")
            out.append(U @ np.diag(s ** float(a)) @ U.T)
        return BlockMatrix(out)

    def vector_dot(self, other: "BlockMatrix") -> float:
        """Element-wise (Frobenius) dot product summed over all irreps."""

        self._check_same_shape(other)
        return float(sum(float(np.vdot(a, b)) for a, b in zip(self.blocks, other.blocks)))

    def rms(self) -> float:
        n = sum(int(b.size) for b in self.blocks)
        if n == 0:
            return 0.0
        ss = sum(float(np.vdot(b, b)) for b in self.blocks)
        return float(np.sqrt(ss / n))

    def is_finite(self) -> bool:
        return all(bool(np.all(np.isfinite(b))) for b in self.blocks)

    def to_dense(self) -> np.ndarray:
        """Assemble the full block-diagonal matrix (irreps concatenated)."""

        if not self.blocks:
            return np.zeros((0, 0), dtype=np.float64)
        return np.asarray(block_diag(*self.blocks), dtype=np.float64)

    def format(self, eigenvalues: BlockVector | None = None, irrep_labels: Sequence[str] | None = None) -> str:
        lines = [f"  ## {self.name or 'matrix'} ##"]
        for h, b in enumerate(self.blocks):
            label = irrep_labels[h] if irrep_labels is not None else str(h)
            lines.append(f"  Irrep: {label}  ({b.shape[0]} x {b.shape[1]})")
            if eigenvalues is not None and eigenvalues.blocks[h].size:
                lines.append("    eps " + " ".join(f"{v:12.6f}" for v in eigenvalues.blocks[h]))
            for row in b:
                lines.append("    " + " ".join(f"{v:12.6f}" for v in row))
        return "\n".join(lines)


def as_block_matrix(A: Any, dimpi: Sequence[int] | None = None, name: str = "") -> BlockMatrix:
    """Coerce a BlockMatrix, a list of blocks, or a full 2D array into a BlockMatrix."""

    if isinstance(A, BlockMatrix):
        return A
    if isinstance(A, (list, tuple)):
        return BlockMatrix(list(A), name=name)
    A = np.asarray(A, dtype=np.float64)
    if A.ndim != 2:
        raise TypeError("expected a BlockMatrix, a list of 2D blocks, or a 2D array")
    if dimpi is None:
        return BlockMatrix([A], name=name)
    return BlockMatrix.from_dense(A, dimpi, name=name)


__all__ = ["BlockMatrix", "BlockVector", "as_block_matrix"]
