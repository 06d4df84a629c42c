from __future__ import annotations

"""Minimal periodic table helpers (symbol <-> atomic number)."""

import re

_SYMBOLS: tuple[str | None, ...] = (None,) + tuple(
    """
    H He Li Be B C N O F Ne Na Mg Al Si P S Cl Ar K Ca Sc Ti V Cr Mn Fe Co Ni Cu Zn
    Ga Ge As Se Br Kr Rb Sr Y Zr Nb Mo Tc Ru Rh Pd Ag Cd In Sn Sb Te I Xe Cs Ba La Ce
    Pr Nd Pm Sm Eu Gd Tb Dy Ho Er Tm Yb Lu Hf Ta W Re Os Ir Pt Au Hg Tl Pb Bi Po At Rn
    Fr Ra Ac Th Pa U Np Pu Am Cm Bk Cf Es Fm Md No Lr Rf Db Sg Bh Hs Mt Ds Rg Cn Nh Fl
    Mc Lv Ts Og
    """.split()
)

_SYMBOL_TO_Z = {s.upper(): i for i, s in enumerate(_SYMBOLS) if s is not None}

_LABEL_RE = re.compile(r"^([A-Za-z]{1,2})(?:[_\-]?\d\w*)?$")


def element_from_label(label: str) -> str:
    """Strip a numeric atom-label suffix ("I1", "Fe_2") and normalise the symbol."""

    m = _LABEL_RE.match(str(label).strip())
    if m is not None and m.group(1).upper() in _SYMBOL_TO_Z:
        return str(_SYMBOLS[_SYMBOL_TO_Z[m.group(1).upper()]])
    raise ValueError(f"unknown element label: {label!r}")


def atomic_number(symbol: str) -> int:
    key = element_from_label(symbol).upper()
    return int(_SYMBOL_TO_Z[key])


def element_symbol(z: int) -> str:
    z = int(z)
    if z <= 0 or z >= len(_SYMBOLS):
        raise ValueError(f"atomic number out of range: {z}")
    return str(_SYMBOLS[z])


__all__ = ["atomic_number", "element_from_label", "element_symbol"]
