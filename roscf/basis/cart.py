from __future__ import annotations


def ncart(l: int) -> int:
    """Return the number of Cartesian components ``(l + 1) * (l + 2) / 2`` for angular momentum `l`."""

    if l < 0:
        raise ValueError("l must be >= 0")
    return (l + 1) * (l + 2) // 2


def nsph(l: int) -> int:
    """Return the number of real solid harmonics ``2 * l + 1`` for angular momentum `l`."""

    if l < 0:
        raise ValueError("l must be >= 0")
    return 2 * l + 1


__all__ = ["ncart", "nsph"]
