"""
Reference tables for ions and atomic levels.

The tables are built once at start-up and shared read-only by every part of
the update; the numpy views handed out by :class:`AtomicData` are flagged
non-writeable.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from plasmaeq.core.constants import M_H_G


@dataclass(frozen=True)
class Level:
    """
    Represents one atomic level (configuration).

    Attributes
    ----------
    g : float
        Statistical weight
    ex : float
        Excitation energy in eV, measured from the ground state of the neutral
    nion : int
        Index of the owning ion
    """

    g: float
    ex: float
    nion: int


@dataclass(frozen=True)
class Ion:
    """
    Represents one ionization stage of an element.

    Attributes
    ----------
    z : int
        Atomic number
    istate : int
        Ionization stage (1=neutral, 2=singly ionized, etc.)
    g : float
        Statistical weight of the ground state
    ip : float
        Ionization potential to the next stage in eV
    nlte : int
        Number of explicit (non-LTE) levels
    first_nlte_level : int
        Index into the level table of the first non-LTE level (the ground)
    first_levden : int
        Start of this ion's block in every cell's ``levden`` vector
    nlevels : int
        Number of levels in the full level list
    firstlevel : int
        Index into the level table of the first full-list level
    macro_info : bool
        Ion is treated as a macro-atom
    has_superlevel : bool
        Upper levels of this ion may be collapsed into a superlevel
    """

    z: int
    istate: int
    g: float
    ip: float = 0.0
    nlte: int = 0
    first_nlte_level: int = -1
    first_levden: int = -1
    nlevels: int = 0
    firstlevel: int = -1
    macro_info: bool = False
    has_superlevel: bool = False

    @property
    def last_nlte_level(self) -> int:
        return self.first_nlte_level + self.nlte - 1


@dataclass(frozen=True)
class Element:
    """
    Chemical element and the contiguous block of ions it owns.

    Attributes
    ----------
    name : str
        Element symbol
    z : int
        Atomic number
    abundance : float
        Number abundance relative to hydrogen
    firstion : int
        Index of the element's first (neutral) ion
    nions : int
        Number of ions of this element
    atomic_mass : float
        Mass in units of the hydrogen mass
    """

    name: str
    z: int
    abundance: float
    firstion: int
    nions: int
    atomic_mass: float = 1.0


class AtomicData:
    """
    Immutable ion, level and element tables.

    Parameters
    ----------
    ions : Sequence[Ion]
        Ion table
    levels : Sequence[Level]
        Level table; the ground state of each ion comes first in its block
    elements : Sequence[Element], optional
        Element table
    """

    def __init__(
        self,
        ions: Sequence[Ion],
        levels: Sequence[Level],
        elements: Optional[Sequence[Element]] = None,
    ):
        self.ions: Tuple[Ion, ...] = tuple(ions)
        self.levels: Tuple[Level, ...] = tuple(levels)
        self.elements: Tuple[Element, ...] = tuple(elements or ())

        self.g = np.array([level.g for level in self.levels], dtype=np.float64)
        self.ex = np.array([level.ex for level in self.levels], dtype=np.float64)
        self.g.setflags(write=False)
        self.ex.setflags(write=False)

        self.nlte_total = max((ion.first_levden + ion.nlte for ion in self.ions if ion.nlte > 0), default=0)
        self._check()

    def _check(self) -> None:
        nlevels = len(self.levels)
        for nion, ion in enumerate(self.ions):
            for first, count, label in (
                (ion.first_nlte_level, ion.nlte, "nlte"),
                (ion.firstlevel, ion.nlevels, "full"),
            ):
                if count == 0:
                    continue
                if first < 0 or first + count > nlevels:
                    raise ValueError(f"Ion {nion}: {label} level range out of bounds")
                owners = {self.levels[m].nion for m in range(first, first + count)}
                if owners != {nion}:
                    raise ValueError(f"Ion {nion}: {label} levels belong to ions {sorted(owners)}")
            if ion.nlte > 0 and ion.first_levden < 0:
                raise ValueError(f"Ion {nion}: first_levden not set")
            if ion.has_superlevel and ion.nlte < 2:
                raise ValueError(f"Ion {nion}: a superlevel needs at least two non-LTE levels")
        for element in self.elements:
            if element.firstion + element.nions > len(self.ions):
                raise ValueError(f"Element {element.name}: ion range out of bounds")

    @property
    def nions(self) -> int:
        return len(self.ions)

    @property
    def nlevels(self) -> int:
        return len(self.levels)

    @property
    def rho2nh(self) -> float:
        """Conversion from mass density (g cm^-3) to hydrogen number density."""
        if not self.elements:
            return 1.0 / M_H_G
        mass = sum(element.abundance * element.atomic_mass for element in self.elements)
        return 1.0 / (M_H_G * mass)

    def nlte_levels(self, nion: int) -> range:
        ion = self.ions[nion]
        return range(ion.first_nlte_level, ion.first_nlte_level + ion.nlte)

    def ion_levels(self, nion: int) -> range:
        ion = self.ions[nion]
        return range(ion.firstlevel, ion.firstlevel + ion.nlevels)

    def levden_slice(self, nion: int) -> slice:
        ion = self.ions[nion]
        return slice(ion.first_levden, ion.first_levden + ion.nlte)

    def nlte_ions(self) -> List[int]:
        return [nion for nion, ion in enumerate(self.ions) if ion.nlte > 0]

    def superlevel_ions(self) -> List[int]:
        return [nion for nion, ion in enumerate(self.ions) if ion.has_superlevel]
