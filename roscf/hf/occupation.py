from __future__ import annotations

"""Per-irrep orbital occupations."""

from typing import Sequence

from roscf.linalg.blocked import BlockVector


def _fixed(occ: Sequence[int], nirrep: int, what: str) -> tuple[int, ...]:
    out = tuple(int(x) for x in occ)
    if len(out) != int(nirrep):
        raise ValueError(f"{what} must have one entry per irrep ({nirrep}), got {len(out)}")
    if any(x < 0 for x in out):
        raise ValueError(f"{what} entries must be >= 0")
    return out


def find_occupation(
    mo_energy: BlockVector,
    ndocc: int,
    nsocc: int,
    *,
    docc: Sequence[int] | None = None,
    socc: Sequence[int] | None = None,
) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """Return (doccpi, soccpi).

    Without fixed occupations, orbitals of all irreps are ordered by ascending
    energy (ties broken by irrep index, then orbital index); the lowest
    `ndocc` become doubly occupied and the next `nsocc` singly occupied.
    """

    nirrep = mo_energy.nirrep
    nmopi = mo_energy.dimpi
    ndocc = int(ndocc)
    nsocc = int(nsocc)
    if ndocc < 0 or nsocc < 0:
        raise ValueError("ndocc/nsocc must be >= 0")

    if docc is not None or socc is not None:
        doccpi = _fixed(docc, nirrep, "docc") if docc is not None else (0,) * nirrep
        soccpi = _fixed(socc, nirrep, "socc") if socc is not None else (0,) * nirrep
    else:
        if ndocc + nsocc > sum(nmopi):
            raise ValueError(f"ndocc + nsocc ({ndocc + nsocc}) exceeds the number of orbitals ({sum(nmopi)})")
        order = sorted(
            ((float(e), h, i) for h, blk in enumerate(mo_energy.blocks) for i, e in enumerate(blk)),
        )
        d = [0] * nirrep
        s = [0] * nirrep
        for _e, h, _i in order[:ndocc]:
            d[h] += 1
        for _e, h, _i in order[ndocc : ndocc + nsocc]:
            s[h] += 1
        doccpi, soccpi = tuple(d), tuple(s)

    for h in range(nirrep):
        if doccpi[h] + soccpi[h] > nmopi[h]:
            raise ValueError(f"irrep {h}: docc + socc ({doccpi[h] + soccpi[h]}) exceeds nmo ({nmopi[h]})")
    return doccpi, soccpi


__all__ = ["find_occupation"]
