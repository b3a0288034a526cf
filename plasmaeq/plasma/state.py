"""
Plasma cell state representations.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

import numpy as np

from plasmaeq.atomic.structures import AtomicData
from plasmaeq.core.constants import KB_EV
from plasmaeq.core.logging_config import get_logger

logger = get_logger("plasma.state")

# Values of PlasmaCell.inwind
W_ALL_INWIND = 0
W_PART_INWIND = 1

# Directions carried by the band flux estimators
NUM_FLUX_DIRECTIONS = 4


@dataclass
class SuperlevelState:
    """
    Superlevel bookkeeping for one cell.

    Attributes
    ----------
    lte_pops : np.ndarray
        LTE population of each level relative to its ion's ground state,
        indexed by level (only entries of superlevel ions are meaningful)
    threshold : np.ndarray
        Per ion, the first level index that belongs to the superlevel
    norm : np.ndarray
        Per ion, sum of ``lte_pops[n] / g[n]`` over the superlevel's levels
    """

    lte_pops: np.ndarray
    threshold: np.ndarray
    norm: np.ndarray

    @classmethod
    def empty(cls, atomic: AtomicData) -> "SuperlevelState":
        threshold = np.full(atomic.nions, -1, dtype=np.int64)
        for nion in atomic.superlevel_ions():
            threshold[nion] = atomic.ions[nion].last_nlte_level
        return cls(
            lte_pops=np.zeros(atomic.nlevels),
            threshold=threshold,
            norm=np.zeros(atomic.nions),
        )


@dataclass
class PlasmaCell:
    """
    State of one plasma cell.

    A cell is written only by the worker that owns it during the Local
    Update; after reconciliation every worker holds an identical copy.

    Attributes
    ----------
    nplasma : int
        Index of this cell in the plasma grid
    nwind : int
        Index of the wind (geometry) cell this plasma cell belongs to
    t_r, t_e : float
        Radiation and electron temperature in K
    t_r_old, t_e_old : float
        Temperatures before the current update
    w : float
        Dilution factor of the radiation field
    ne : float
        Electron density in cm^-3
    rho : float
        Mass density in g cm^-3
    vol : float
        Volume in cm^3
    density : np.ndarray
        Ion number densities in cm^-3
    partition : np.ndarray
        Partition function of each ion
    levden : np.ndarray
        Fractional populations of the non-LTE levels of every ion
    """

    nplasma: int
    nwind: int = 0
    t_r: float = 0.0
    t_e: float = 0.0
    t_r_old: float = 0.0
    t_e_old: float = 0.0
    w: float = 1.0
    ne: float = 0.0
    rho: float = 0.0
    vol: float = 0.0
    ntot: int = 0
    inwind: int = W_ALL_INWIND

    density: np.ndarray = field(default_factory=lambda: np.zeros(0))
    partition: np.ndarray = field(default_factory=lambda: np.zeros(0))
    levden: np.ndarray = field(default_factory=lambda: np.zeros(0))

    # heating and absorption estimators
    heat_tot: float = 0.0
    heat_photo: float = 0.0
    heat_auger: float = 0.0
    heat_ff: float = 0.0
    heat_lines: float = 0.0
    heat_comp: float = 0.0
    heat_ind_comp: float = 0.0
    heat_ch_ex: float = 0.0
    heat_shock: float = 0.0
    abs_tot: float = 0.0
    abs_photo: float = 0.0
    abs_auger: float = 0.0

    # cooling and luminosity
    cool_tot: float = 0.0
    lum_tot: float = 0.0
    lum_ff: float = 0.0
    cool_rr: float = 0.0
    lum_rr: float = 0.0
    lum_lines: float = 0.0
    cool_comp: float = 0.0
    cool_dr: float = 0.0
    cool_di: float = 0.0
    cool_adiabatic: float = 0.0

    # snapshots of cooling and luminosity taken at the end of an update
    cool_tot_ioniz: float = 0.0
    lum_tot_ioniz: float = 0.0
    lum_ff_ioniz: float = 0.0
    cool_rr_ioniz: float = 0.0
    lum_rr_ioniz: float = 0.0
    lum_lines_ioniz: float = 0.0
    cool_comp_ioniz: float = 0.0
    cool_dr_ioniz: float = 0.0
    cool_di_ioniz: float = 0.0
    cool_adiabatic_ioniz: float = 0.0

    # band fluxes
    F_vis: np.ndarray = field(default_factory=lambda: np.zeros(NUM_FLUX_DIRECTIONS))
    F_UV: np.ndarray = field(default_factory=lambda: np.zeros(NUM_FLUX_DIRECTIONS))
    F_Xray: np.ndarray = field(default_factory=lambda: np.zeros(NUM_FLUX_DIRECTIONS))
    F_vis_persistent: np.ndarray = field(default_factory=lambda: np.zeros(NUM_FLUX_DIRECTIONS))
    F_UV_persistent: np.ndarray = field(default_factory=lambda: np.zeros(NUM_FLUX_DIRECTIONS))
    F_Xray_persistent: np.ndarray = field(default_factory=lambda: np.zeros(NUM_FLUX_DIRECTIONS))

    # rate estimators
    ioniz: np.ndarray = field(default_factory=lambda: np.zeros(0))
    recomb: np.ndarray = field(default_factory=lambda: np.zeros(0))
    recomb_simple: np.ndarray = field(default_factory=lambda: np.zeros(0))
    recomb_simple_upweight: np.ndarray = field(default_factory=lambda: np.zeros(0))

    superlevel: Optional[SuperlevelState] = None
    kpkt_rates_known: bool = False
    matrix_rates_known: bool = False
    converged: bool = False

    @classmethod
    def empty(cls, nplasma: int, atomic: AtomicData, nphot: int = 0, **kwargs) -> "PlasmaCell":
        """
        Allocate a cell whose arrays are sized for the given atomic data.

        Parameters
        ----------
        nplasma : int
            Cell index
        atomic : AtomicData
            Reference tables
        nphot : int
            Number of photoionization edges with recombination estimators
        **kwargs
            Scalar attributes to set (t_e, t_r, ne, ...)
        """
        cell = cls(
            nplasma=nplasma,
            nwind=kwargs.pop("nwind", nplasma),
            density=np.zeros(atomic.nions),
            partition=np.array([ion.g for ion in atomic.ions], dtype=np.float64),
            levden=np.zeros(atomic.nlte_total),
            ioniz=np.zeros(atomic.nions),
            recomb=np.zeros(atomic.nions),
            recomb_simple=np.zeros(nphot),
            recomb_simple_upweight=np.ones(nphot),
            superlevel=SuperlevelState.empty(atomic),
            **kwargs,
        )
        return cell

    @property
    def t_e_eV(self) -> float:
        """Electron temperature in eV."""
        return self.t_e * KB_EV

    @property
    def t_r_eV(self) -> float:
        """Radiation temperature in eV."""
        return self.t_r * KB_EV

    def validate(self) -> bool:
        """
        Validate cell state.

        Returns
        -------
        bool
            True if valid

        Raises
        ------
        ValueError
            If the cell state is invalid
        """
        if self.t_e <= 0 or self.t_r <= 0:
            raise ValueError(f"Cell {self.nplasma}: temperatures must be positive")

        if self.ne < 0 or self.rho < 0:
            raise ValueError(f"Cell {self.nplasma}: densities must be non-negative")

        if self.w < 0:
            raise ValueError(f"Cell {self.nplasma}: dilution factor must be non-negative")

        if np.any(self.levden < 0):
            raise ValueError(f"Cell {self.nplasma}: negative level density")

        return True


class PlasmaGrid:
    """
    The owned array of plasma cells together with the shared reference tables.

    Parameters
    ----------
    cells : Sequence[PlasmaCell]
        Cells, with ``cells[i].nplasma == i``
    atomic : AtomicData
        Read-only reference tables shared by all cells
    """

    def __init__(self, cells: Sequence[PlasmaCell], atomic: AtomicData):
        self.cells: List[PlasmaCell] = list(cells)
        self.atomic = atomic
        for i, cell in enumerate(self.cells):
            if cell.nplasma != i:
                raise ValueError(f"Cell at position {i} has nplasma={cell.nplasma}")
        logger.debug(f"Created PlasmaGrid with {len(self.cells)} cells, {atomic.nions} ions")

    @classmethod
    def create(cls, ncells: int, atomic: AtomicData, nphot: int = 0, **kwargs) -> "PlasmaGrid":
        """Allocate ``ncells`` empty cells sharing the same scalar settings."""
        cells = [PlasmaCell.empty(n, atomic, nphot, **dict(kwargs)) for n in range(ncells)]
        return cls(cells, atomic)

    def __len__(self) -> int:
        return len(self.cells)

    def __getitem__(self, n: int) -> PlasmaCell:
        return self.cells[n]

    def __iter__(self) -> Iterator[PlasmaCell]:
        return iter(self.cells)
