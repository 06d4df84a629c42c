from __future__ import annotations

"""Bounded DIIS history over irrep-blocked matrices."""

import logging

import numpy as np

from roscf.linalg.blocked import BlockMatrix

logger = logging.getLogger(__name__)

_REMOVAL_POLICIES = ("largest_error", "oldest")


class DIISManager:
    """Pulay DIIS over (vector, error) pairs of BlockMatrix objects.

    Once `max_vec` entries are stored, a new entry replaces either the
    stored entry with the largest error norm (``"largest_error"``) or the
    oldest one (``"oldest"``).
    """

    def __init__(self, max_vec: int = 10, removal_policy: str = "largest_error"):
        if int(max_vec) < 1:
            raise ValueError("max_vec must be >= 1")
        policy = str(removal_policy).strip().lower()
        if policy not in _REMOVAL_POLICIES:
            raise ValueError(f"removal_policy must be one of {_REMOVAL_POLICIES}, got {removal_policy!r}")
        self.max_vec = int(max_vec)
        self.removal_policy = policy
        self._F: list[BlockMatrix] = []
        self._e: list[BlockMatrix] = []
        self._err_norm: list[float] = []

    def __len__(self) -> int:
        return len(self._F)

    def reset(self) -> None:
        self._F.clear()
        self._e.clear()
        self._err_norm.clear()

    def push(self, F: BlockMatrix, e: BlockMatrix) -> None:
        F = F.copy()
        e = e.copy()
        norm = float(np.sqrt(e.vector_dot(e)))
        if len(self._F) < self.max_vec:
            self._F.append(F)
            self._e.append(e)
            self._err_norm.append(norm)
            return
        if self.removal_policy == "oldest":
            idx = 0
        else:
            idx = int(np.argmax(self._err_norm))
        del self._F[idx]
        del self._e[idx]
        del self._err_norm[idx]
        self._F.append(F)
        self._e.append(e)
        self._err_norm.append(norm)

    def extrapolate(self) -> BlockMatrix:
        """Return the DIIS-extrapolated vector.

        Linearly dependent error vectors (a singular B matrix) get the
        minimum-norm coefficients; LinAlgError propagates if the SVD fails.
        """

        if not self._F:
            raise ValueError("DIIS history is empty")
        if len(self._F) < 2:
            return self._F[-1].copy()
        n = len(self._F)

        G = np.empty((n, n), dtype=np.float64)
        for i in range(n):
            for j in range(i, n):
                G[i, j] = G[j, i] = self._e[i].vector_dot(self._e[j])

        scale = float(np.max(np.abs(np.diag(G))))
        if scale == 0.0:
            # All errors vanish: nothing to extrapolate.
            return self._F[-1].copy()
        G /= scale

        B = np.empty((n + 1, n + 1), dtype=np.float64)
        B[:n, :n] = G
        B[:n, n] = -1.0
        B[n, :n] = -1.0
        B[n, n] = 0.0

        rhs = np.zeros((n + 1,), dtype=np.float64)
        rhs[n] = -1.0
        coeff = np.linalg.lstsq(B, rhs, rcond=None)[0][:n]
        logger.debug("DIIS coefficients: %s", np.array2string(coeff, precision=6))

        out = self._F[0] * float(coeff[0])
        for c, F in zip(coeff[1:], self._F[1:]):
            out = out + F * float(c)
        return out


__all__ = ["DIISManager"]
