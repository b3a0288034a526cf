"""
The distributed statistical-equilibrium update of the wind.

One call to :meth:`WindUpdater.update_all_cells` runs one equilibrium cycle:

1. Normalize: fix up raw Monte Carlo estimators while the temperatures are
   still those the estimators were gathered at.
2. Partition: split the cell range into one contiguous shard per worker.
3. Local Update: each worker updates the cells of its own shard.
4. Reconcile: every worker broadcasts its shard so that all workers end
   up with the same cells.
5. Post-process: persistent fluxes, temperature-change tracking, boundary
   densities, heating checks and sums, cooling snapshots, convergence and
   diagnostics, all computed identically on every worker.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence

import numpy as np
import pandas as pd

from plasmaeq.core.abc import Communicator, DenseSolverBackend, WindPhysics
from plasmaeq.core.config import UpdateConfig
from plasmaeq.core.errors import ErrorCounter
from plasmaeq.core.factory import init_matrix_backend_from_config
from plasmaeq.core.logging_config import get_logger
from plasmaeq.parallel.comm import SerialCommunicator
from plasmaeq.parallel.reconcile import (
    PLASMA_UPDATE_FIELDS,
    RECOMB_ESTIMATOR_FIELDS,
    SUPERLEVEL_FIELDS,
    reconcile_cells,
)
from plasmaeq.parallel.sharding import get_parallel_nrange
from plasmaeq.plasma.state import W_PART_INWIND, PlasmaGrid, SuperlevelState
from plasmaeq.plasma.superlevel import choose_superlevel_deactivation, setup_cell_superlevels
from plasmaeq.wind.diagnostics import cell_summary_frame, check_convergence
from plasmaeq.wind.physics import SimpleWindPhysics

logger = get_logger("wind.update")

HEATING_FIELDS = (
    "heat_tot",
    "heat_photo",
    "heat_auger",
    "heat_ff",
    "heat_lines",
    "heat_comp",
    "heat_ind_comp",
    "heat_ch_ex",
)

IONIZ_SNAPSHOT_FIELDS = (
    "cool_tot",
    "lum_tot",
    "lum_ff",
    "cool_rr",
    "lum_rr",
    "lum_lines",
    "cool_comp",
    "cool_dr",
    "cool_di",
    "cool_adiabatic",
)

# alpha_sp modes: plain rate, upweighted rate, energy-weighted rate
ALPHA_SP_RATE = 0
ALPHA_SP_UPWEIGHT = 1
ALPHA_SP_ENERGY = 2

AlphaSp = Callable[[object, int, int], float]


@dataclass
class WindUpdateSummary:
    """
    What one update cycle did, identical on every worker.

    Attributes
    ----------
    cycle : int
        Equilibrium cycle number
    nmin, nmax : int
        This worker's shard
    updated : int
        Cells updated locally
    skipped : int
        Shard cells skipped because they are only partly in the wind
    received : int
        Cells received from other workers
    dt_r, dt_e : float
        Largest signed change in t_r and t_e over all cells
    nmax_r, nmax_e : int
        Cells where those changes happened
    t_r_ave, t_e_ave : float
        Mean temperatures after the update
    t_r_ave_old, t_e_ave_old : float
        Mean temperatures before the update
    heating : dict
        Grid totals of each heating term
    cooling : dict
        Grid totals of each cooling and luminosity term
    nconverged : int
        Number of converged cells
    errors : dict
        Counts of numerical problems recorded so far on this worker
    group_errors : int
        Numerical problems recorded by all workers during this cycle
    cells : pd.DataFrame
        Per-cell diagnostic table
    """

    cycle: int
    nmin: int
    nmax: int
    updated: int = 0
    skipped: int = 0
    received: int = 0
    dt_r: float = 0.0
    dt_e: float = 0.0
    nmax_r: int = -1
    nmax_e: int = -1
    t_r_ave: float = 0.0
    t_e_ave: float = 0.0
    t_r_ave_old: float = 0.0
    t_e_ave_old: float = 0.0
    heating: Dict[str, float] = field(default_factory=dict)
    cooling: Dict[str, float] = field(default_factory=dict)
    nconverged: int = 0
    errors: Dict[str, int] = field(default_factory=dict)
    group_errors: int = 0
    cells: Optional[pd.DataFrame] = None


class WindUpdater:
    """
    Drives the equilibrium cycle over a plasma grid on one worker.

    Every worker of a group builds its own updater over its own full copy
    of the grid and calls the same methods in the same order.

    Parameters
    ----------
    grid : PlasmaGrid
        This worker's copy of the cells
    config : UpdateConfig
        Run settings
    comm : Communicator, optional
        Worker group; serial if omitted
    physics : WindPhysics, optional
        External physics collaborator; :class:`SimpleWindPhysics` if omitted
    backend : DenseSolverBackend, optional
        Dense solver handed to physics that needs one. If omitted, the
        process-wide backend named by ``config.matrix_backend`` is
        initialized.
    errors : ErrorCounter, optional
        Counter for numerical problems. If omitted, the updater keeps its
        own counter capped at ``config.max_repeated_warnings``.

    Attributes
    ----------
    rng : np.random.Generator
        Sampling source seeded from ``config.seed``

    Raises
    ------
    ConfigurationError
        If the settings are invalid or the configured backend cannot be
        initialized
    """

    def __init__(
        self,
        grid: PlasmaGrid,
        config: UpdateConfig,
        comm: Optional[Communicator] = None,
        physics: Optional[WindPhysics] = None,
        backend: Optional[DenseSolverBackend] = None,
        errors: Optional[ErrorCounter] = None,
    ):
        config.validate()
        self.grid = grid
        self.config = config
        self.comm = comm if comm is not None else SerialCommunicator()
        if errors is None:
            errors = ErrorCounter(max_repeats=config.max_repeated_warnings)
        self.errors = errors
        self.backend = backend if backend is not None else init_matrix_backend_from_config(config)
        self.physics = physics if physics is not None else SimpleWindPhysics(self.errors, self.backend)
        self.rng = np.random.default_rng(config.seed)

        self.nmin, self.nmax, self.ndo = get_parallel_nrange(
            self.comm.rank, len(grid), self.comm.size
        )
        logger.debug(
            f"rank {self.comm.rank}/{self.comm.size}: cells [{self.nmin}, {self.nmax})"
        )

    @property
    def macro_active(self) -> bool:
        return self.config.rt_mode_macro and not self.config.macro_simple

    def normalize(self) -> None:
        """Normalise macro-atom estimators of every cell and forget cached rates."""
        if not self.macro_active:
            return
        for cell in self.grid:
            self.physics.normalise_macro_estimators(cell)
            cell.kpkt_rates_known = False
            cell.matrix_rates_known = False

    def local_update(self, cycle: int, summary: WindUpdateSummary) -> None:
        """Update the cells of this worker's shard."""
        atomic = self.grid.atomic
        for n in range(self.nmin, self.nmax):
            cell = self.grid[n]

            if self.config.partial_cells == "extend" and cell.inwind == W_PART_INWIND:
                summary.skipped += 1
                continue

            if cell.ntot < self.config.min_photons_per_cell:
                logger.info(
                    f"Cell {n:4d} (wind cell {cell.nwind}) vol {cell.vol:8.2e} "
                    f"has only {cell.ntot:4d} photons"
                )

            self.physics.normalise_simple_estimators(cell)

            # adiabatic cooling uses the temperature before this update
            cell.cool_adiabatic = self.physics.adiabatic_cooling(cell)
            cell.heat_shock = self.physics.shock_heating(cell)

            cell.t_r_old = cell.t_r
            cell.t_e_old = cell.t_e

            if atomic.superlevel_ions():
                setup_cell_superlevels(cell, atomic, cycle, self.config)

            self.physics.ion_abundances(cell, self.config.ioniz_mode, atomic, self.config)
            summary.updated += 1

    def reconcile(self) -> int:
        """Exchange the locally updated fields with every other worker."""
        received = reconcile_cells(
            self.grid.cells, self.comm, self.nmin, self.nmax, PLASMA_UPDATE_FIELDS
        )
        atomic = self.grid.atomic
        if atomic.superlevel_ions():
            # cells built by hand may not carry superlevel state yet
            for cell in self.grid:
                if cell.superlevel is None:
                    cell.superlevel = SuperlevelState.empty(atomic)
            reconcile_cells(self.grid.cells, self.comm, self.nmin, self.nmax, SUPERLEVEL_FIELDS)
        return received

    def choose_deactivation(self, n: int, uplvl: int) -> int:
        """Sample the level a transition out of a superlevel of cell ``n`` leaves from."""
        return choose_superlevel_deactivation(self.grid[n], uplvl, self.grid.atomic, self.rng)

    def update_persistent_fluxes(self) -> None:
        """Fold the latest band fluxes into the persistent estimates."""
        scale = self.config.flux_persist_scale
        for cell in self.grid:
            for band in ("F_vis", "F_UV", "F_Xray"):
                latest = getattr(cell, band)
                persistent = getattr(cell, f"{band}_persistent")
                persistent[:] = (1.0 - scale) * persistent + scale * latest

    def track_temperatures(self, summary: WindUpdateSummary) -> None:
        """Record the largest temperature changes and the mean temperatures."""
        cells = self.grid.cells
        for cell in cells:
            if abs(cell.t_r - cell.t_r_old) > abs(summary.dt_r):
                summary.dt_r = cell.t_r - cell.t_r_old
                summary.nmax_r = cell.nplasma
            if abs(cell.t_e - cell.t_e_old) > abs(summary.dt_e):
                summary.dt_e = cell.t_e - cell.t_e_old
                summary.nmax_e = cell.nplasma

        if cells:
            summary.t_r_ave = float(np.mean([cell.t_r for cell in cells]))
            summary.t_e_ave = float(np.mean([cell.t_e for cell in cells]))
            summary.t_r_ave_old = float(np.mean([cell.t_r_old for cell in cells]))
            summary.t_e_ave_old = float(np.mean([cell.t_e_old for cell in cells]))

    def heating_sums(self) -> Dict[str, float]:
        """Sum the heating terms, reporting cells with non-finite values."""
        sums = {name: 0.0 for name in HEATING_FIELDS}
        sums["abs_photo"] = 0.0
        sums["abs_auger"] = 0.0
        for cell in self.grid:
            for name in sums:
                value = getattr(cell, name)
                if not np.isfinite(value):
                    self.errors.record(
                        "wind_update:sane_check",
                        "wind_update: sane_check cell %d %s is %e",
                        cell.nplasma,
                        name,
                        value,
                    )
                    continue
                sums[name] += value
        return sums

    def snapshot_cooling(self) -> None:
        """Keep the cooling and luminosity of this update in the ``*_ioniz`` fields."""
        for cell in self.grid:
            for name in IONIZ_SNAPSHOT_FIELDS:
                setattr(cell, f"{name}_ioniz", getattr(cell, name))

    def log_summary(self, summary: WindUpdateSummary) -> None:
        if summary.nmax_r >= 0:
            logger.info(
                f"Max change in t_r {summary.dt_r:6.0f} at cell {summary.nmax_r:4d}; "
                f"ave change {summary.t_r_ave - summary.t_r_ave_old:6.0f} "
                f"from {summary.t_r_ave_old:6.0f} to {summary.t_r_ave:6.0f}"
            )
        else:
            logger.info("t_r did not change in any cells this cycle")
        if summary.nmax_e >= 0:
            logger.info(
                f"Max change in t_e {summary.dt_e:6.0f} at cell {summary.nmax_e:4d}; "
                f"ave change {summary.t_e_ave - summary.t_e_ave_old:6.0f} "
                f"from {summary.t_e_ave_old:6.0f} to {summary.t_e_ave:6.0f}"
            )
        else:
            logger.info("t_e did not change in any cells this cycle")

        heating = summary.heating
        logger.info(
            f"Heating: total {heating.get('heat_tot', 0.0):8.2e} photo {heating.get('heat_photo', 0.0):8.2e} "
            f"ff {heating.get('heat_ff', 0.0):8.2e} comp {heating.get('heat_comp', 0.0):8.2e} "
            f"lines {heating.get('heat_lines', 0.0):8.2e} auger {heating.get('heat_auger', 0.0):8.2e}"
        )

    def update_all_cells(self, cycle: int) -> WindUpdateSummary:
        """
        Run one equilibrium cycle.

        Parameters
        ----------
        cycle : int
            Equilibrium cycle number, 0 for the first

        Returns
        -------
        WindUpdateSummary
            Same values on every worker apart from the shard bounds and the
            local counters

        Raises
        ------
        ReconciliationError
            If the workers fall out of step during reconciliation
        ConfigurationError
            If the configured nebular mode is unknown, or a rate solve finds
            the solver backend uninitialized
        """
        summary = WindUpdateSummary(cycle=cycle, nmin=self.nmin, nmax=self.nmax)
        errors_before = self.errors.total()

        self.normalize()
        self.local_update(cycle, summary)
        summary.received = self.reconcile()

        self.update_persistent_fluxes()
        self.track_temperatures(summary)
        self.physics.extend_density(self.grid)

        summary.heating = self.heating_sums()
        summary.cooling = dict(self.physics.cooling_sums(self.grid) or {})
        self.snapshot_cooling()

        summary.nconverged = check_convergence(self.grid.cells, self.config.convergence_epsilon)
        summary.errors = self.errors.summary()
        summary.group_errors = int(
            self.comm.allreduce_sum(float(self.errors.total() - errors_before))
        )
        summary.cells = cell_summary_frame(self.grid.cells)

        self.log_summary(summary)
        return summary

    def wind_rad_init(
        self,
        cycle: int,
        alpha_sp: Optional[AlphaSp] = None,
        macro_edges: Optional[Sequence[bool]] = None,
    ) -> int:
        """
        Reset the radiation estimators at the start of an ionization cycle.

        Heating, absorption, cooling and rate estimators are zeroed on every
        cell, and the persistent fluxes too on the first cycle. Recombination
        estimators are then computed for this worker's shard with
        ``alpha_sp(cell, edge, mode)`` and shared with the other workers.

        Parameters
        ----------
        cycle : int
            Equilibrium cycle number
        alpha_sp : callable, optional
            Spontaneous recombination rate of an edge in a cell; estimators
            are left at their reset values if omitted
        macro_edges : sequence of bool, optional
            Per edge, whether it belongs to a macro-atom ion; such edges get
            no simple-atom estimator while macro-atom transfer is active

        Returns
        -------
        int
            Number of cells received from other workers
        """
        for cell in self.grid:
            cell.ntot = 0
            for name in HEATING_FIELDS + ("abs_tot", "abs_photo", "abs_auger"):
                setattr(cell, name, 0.0)
            for name in IONIZ_SNAPSHOT_FIELDS:
                if name != "cool_adiabatic":
                    setattr(cell, name, 0.0)
            for band in ("F_vis", "F_UV", "F_Xray"):
                getattr(cell, band)[:] = 0.0
                if cycle == 0:
                    getattr(cell, f"{band}_persistent")[:] = 0.0
            cell.ioniz[:] = 0.0
            cell.recomb[:] = 0.0
            if self.config.rt_mode_macro:
                cell.kpkt_rates_known = False

        for n in range(self.nmin, self.nmax):
            cell = self.grid[n]
            for j in range(cell.recomb_simple.size):
                macro = macro_edges is not None and bool(macro_edges[j])
                if alpha_sp is None or (macro and self.macro_active):
                    cell.recomb_simple[j] = 0.0
                    cell.recomb_simple_upweight[j] = 1.0
                    continue
                rate = alpha_sp(cell, j, ALPHA_SP_ENERGY)
                cell.recomb_simple[j] = rate
                if rate > 0.0:
                    cell.recomb_simple_upweight[j] = alpha_sp(cell, j, ALPHA_SP_UPWEIGHT) / rate
                else:
                    cell.recomb_simple_upweight[j] = 1.0

        return reconcile_cells(
            self.grid.cells, self.comm, self.nmin, self.nmax, RECOMB_ESTIMATOR_FIELDS
        )
