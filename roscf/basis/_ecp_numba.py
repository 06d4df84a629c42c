from __future__ import annotations

"""Numba kernels for semilocal ECP radial potentials.

Each primitive i contributes ``r**n_i * c_i * exp(-a_i * r**2)`` to the radial
potential of its own sub angular momentum ``sub_l[i]``; one storage shell can
therefore carry several target angular momenta.
"""

import math

import numpy as np

import numba as nb  # type: ignore


@nb.njit(cache=True)
def ecp_radial_value(r, l, exps, coefs, ns, sub_ls):
    value = 0.0
    r2 = r * r
    for i in range(exps.shape[0]):
        if sub_ls[i] == l:
            value += (r ** ns[i]) * coefs[i] * math.exp(-exps[i] * r2)
    return value


@nb.njit(cache=True)
def ecp_radial_grid(r, l, exps, coefs, ns, sub_ls, out):
    for k in range(r.shape[0]):
        out[k] = ecp_radial_value(r[k], l, exps, coefs, ns, sub_ls)


def evaluate_radial(r, l: int, exps: np.ndarray, coefs: np.ndarray, ns: np.ndarray, sub_ls: np.ndarray):
    """Evaluate U_l at a scalar radius or on a 1D radial grid."""

    exps = np.ascontiguousarray(exps, dtype=np.float64)
    coefs = np.ascontiguousarray(coefs, dtype=np.float64)
    ns = np.ascontiguousarray(ns, dtype=np.int64)
    sub_ls = np.ascontiguousarray(sub_ls, dtype=np.int64)
    if np.ndim(r) == 0:
        return float(ecp_radial_value(float(r), int(l), exps, coefs, ns, sub_ls))
    grid = np.ascontiguousarray(r, dtype=np.float64).ravel()
    out = np.empty_like(grid)
    ecp_radial_grid(grid, int(l), exps, coefs, ns, sub_ls, out)
    return out.reshape(np.shape(r))


__all__ = ["ecp_radial_grid", "ecp_radial_value", "evaluate_radial"]
