from __future__ import annotations

"""Coulomb/exchange builders for the SCF drivers.

A JK builder is any callable with the signature::

    jk(Da, Db, C, nalphapi, nbetapi) -> (J, Ka, Kb)

where all matrices are `BlockMatrix` objects in the SO basis. ``J`` is the
Coulomb matrix of the total density ``Da + Db``; ``Ka``/``Kb`` are the
exchange matrices of ``Da``/``Db``. Builders must return complete matrices
or raise.

`DenseJKBuilder` contracts a full ordered-pair ERI matrix ``eri_mat[pq, rs]``
(``pq = p * nso + q``) whose SO indices run over the irreps in order.
"""

from typing import Protocol, Sequence

import numpy as np

from roscf.linalg.blocked import BlockMatrix


class JKBuilder(Protocol):
    def __call__(
        self,
        Da: BlockMatrix,
        Db: BlockMatrix,
        C: BlockMatrix,
        nalphapi: Sequence[int],
        nbetapi: Sequence[int],
    ) -> tuple[BlockMatrix, BlockMatrix, BlockMatrix]: ...


def _symmetrize(A):
    return 0.5 * (A + A.T)


def _as_eri_tensor(eri_mat, nso: int):
    if getattr(eri_mat, "ndim", None) != 2:
        raise ValueError("eri_mat must be a 2D square matrix")
    n2 = int(nso) * int(nso)
    if tuple(map(int, eri_mat.shape)) != (n2, n2):
        raise ValueError(f"eri_mat must have shape ({n2},{n2}), got {tuple(map(int, eri_mat.shape))}")
    return eri_mat.reshape((int(nso), int(nso), int(nso), int(nso)))


def dense_J_from_eri_mat_D(eri_mat, D):
    """Compute Coulomb matrix J from dense ERIs and density D."""

    eri_mat = np.asarray(eri_mat, dtype=np.float64)
    D = np.asarray(D, dtype=np.float64)
    if D.ndim != 2 or int(D.shape[0]) != int(D.shape[1]):
        raise ValueError("D must be a square 2D matrix")
    g = _as_eri_tensor(eri_mat, int(D.shape[0]))
    return _symmetrize(np.einsum("mnls,ls->mn", g, D, optimize=True))


def dense_K_from_eri_mat_D(eri_mat, D):
    """Compute exchange matrix K from dense ERIs and density D."""

    eri_mat = np.asarray(eri_mat, dtype=np.float64)
    D = np.asarray(D, dtype=np.float64)
    if D.ndim != 2 or int(D.shape[0]) != int(D.shape[1]):
        raise ValueError("D must be a square 2D matrix")
    g = _as_eri_tensor(eri_mat, int(D.shape[0]))
    # K_mn = sum_ls D_ls * (m l | n s)
    return _symmetrize(np.einsum("mlns,ls->mn", g, D, optimize=True))


class DenseJKBuilder:
    """J/Ka/Kb from a dense SO-basis ERI matrix."""

    def __init__(self, eri_mat, sopi: Sequence[int], *, profile: dict | None = None):
        self.sopi = tuple(int(d) for d in sopi)
        nso = int(sum(self.sopi))
        self.eri_mat = np.asarray(eri_mat, dtype=np.float64)
        _as_eri_tensor(self.eri_mat, nso)
        self.profile = profile

    def __call__(self, Da, Db, C, nalphapi, nbetapi):
        if Da.rowspi != self.sopi or Db.rowspi != self.sopi:
            raise ValueError(f"density blocks {Da.rowspi} do not match the ERI SO dimensions {self.sopi}")
        Da_full = Da.to_dense()
        Db_full = Db.to_dense()
        J = dense_J_from_eri_mat_D(self.eri_mat, Da_full + Db_full)
        Ka = dense_K_from_eri_mat_D(self.eri_mat, Da_full)
        Kb = dense_K_from_eri_mat_D(self.eri_mat, Db_full)
        if self.profile is not None:
            jk_prof = self.profile.setdefault("jk", {})
            jk_prof["calls"] = int(jk_prof.get("calls", 0)) + 1
        return (
            BlockMatrix.from_dense(J, self.sopi, name="J"),
            BlockMatrix.from_dense(Ka, self.sopi, name="K alpha"),
            BlockMatrix.from_dense(Kb, self.sopi, name="K beta"),
        )


__all__ = ["DenseJKBuilder", "JKBuilder", "dense_J_from_eri_mat_D", "dense_K_from_eri_mat_D"]
