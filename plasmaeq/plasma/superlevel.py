"""
Superlevels: collapsing the near-LTE upper levels of an ion.

When the upper levels of an ion sit close to their LTE populations relative
to the ground state, they can be treated as one aggregate level. Per cell
and per ion this module:

1. computes the LTE ratio of each level to the ground state at the cell's
   electron temperature,
2. searches down from the top level for the lowest level still within a
   factor F of LTE (the threshold),
3. sums ``lte_pops[n] / g[n]`` over the levels from the threshold upwards
   (the normalization),

and, when a transition leaves the superlevel, samples which member level
it leaves from, with probability proportional to ``lte_pops[n] / g[n]``.
"""

from typing import Iterable, Optional

import numpy as np

from plasmaeq.atomic.structures import AtomicData
from plasmaeq.core.config import UpdateConfig
from plasmaeq.core.constants import KB_EV, MAXRAND
from plasmaeq.core.errors import SuperlevelError
from plasmaeq.core.logging_config import get_logger
from plasmaeq.plasma.state import PlasmaCell, PlasmaGrid, SuperlevelState

logger = get_logger("plasma.superlevel")


def _departure_in_band(
    cell: PlasmaCell,
    atomic: AtomicData,
    state: SuperlevelState,
    nion: int,
    level: int,
    factor: float,
) -> bool:
    """
    Whether ``level`` lies strictly within a factor ``factor`` of LTE.

    The departure coefficient compares the LTE ratio of the level to the
    ground state with the ratio found in the cell's current populations.
    A level whose current population (or the ground's) is zero or not
    finite counts as out of band.
    """
    ion = atomic.ions[nion]
    ground_den = cell.levden[ion.first_levden]
    level_den = cell.levden[ion.first_levden + (level - ion.first_nlte_level)]
    if not (np.isfinite(ground_den) and np.isfinite(level_den)):
        return False
    if ground_den <= 0.0 or level_den <= 0.0:
        return False

    dep_coef = state.lte_pops[level] / (level_den / ground_den)
    return 1.0 / factor < dep_coef < factor


def get_superlevel_threshold(
    cell: PlasmaCell,
    nion: int,
    atomic: AtomicData,
    state: SuperlevelState,
    cycle: int,
    factor: float,
    floor: int,
) -> int:
    """
    Find the first level of an ion that belongs to its superlevel.

    On the first cycle there are no populations to compare against, so the
    superlevel is just the top level. Later cycles step down from the top
    level while the level is within the LTE band and is more than ``floor``
    levels above the ground. The search then steps back up to the last level
    that was accepted. When a step ends the walk for both reasons at once
    (band exit and floor reached) the result is the same: the level above
    the one where the walk stopped.

    Parameters
    ----------
    cell : PlasmaCell
        Cell holding the previous cycle's level populations
    nion : int
        Ion index
    atomic : AtomicData
        Reference tables
    state : SuperlevelState
        State whose ``lte_pops`` have been filled for this cell
    cycle : int
        Equilibrium cycle number, 0 for the first
    factor : float
        LTE departure factor F (> 1)
    floor : int
        Minimum distance of the threshold from the ground

    Returns
    -------
    int
        Level index in ``[first_nlte_level, first_nlte_level + nlte - 1]``
    """
    ion = atomic.ions[nion]
    ground = ion.first_nlte_level
    last = ion.last_nlte_level

    if cycle == 0:
        return last

    threshold = last
    while (threshold - ground) > floor and _departure_in_band(
        cell, atomic, state, nion, threshold, factor
    ):
        threshold -= 1

    return min(threshold + 1, last)


def setup_cell_superlevels(
    cell: PlasmaCell, atomic: AtomicData, cycle: int, config: UpdateConfig
) -> SuperlevelState:
    """
    Compute LTE ratios, thresholds and normalizations for one cell.

    Parameters
    ----------
    cell : PlasmaCell
        Cell to update; ``cell.superlevel`` is replaced
    atomic : AtomicData
        Reference tables
    cycle : int
        Equilibrium cycle number
    config : UpdateConfig
        Supplies the departure factor and the threshold floor

    Returns
    -------
    SuperlevelState
        The new state, also stored on the cell
    """
    state = cell.superlevel if cell.superlevel is not None else SuperlevelState.empty(atomic)
    kt = KB_EV * cell.t_e

    for nion in atomic.superlevel_ions():
        ion = atomic.ions[nion]
        ground = ion.first_nlte_level
        top = ground + ion.nlte

        state.lte_pops[ground] = 1.0
        if kt > 0.0:
            state.lte_pops[ground + 1 : top] = (atomic.g[ground + 1 : top] / atomic.g[ground]) * np.exp(
                -(atomic.ex[ground + 1 : top] - atomic.ex[ground]) / kt
            )
        else:
            state.lte_pops[ground + 1 : top] = 0.0

        threshold = get_superlevel_threshold(
            cell,
            nion,
            atomic,
            state,
            cycle,
            config.lte_departure_factor,
            config.lowest_superlevel_threshold,
        )
        state.threshold[nion] = threshold
        # summed in the same order as the sampling walk
        state.norm[nion] = float(sum(state.lte_pops[threshold:top] / atomic.g[threshold:top]))

    cell.superlevel = state
    return state


def setup_superlevels(
    grid: PlasmaGrid,
    cycle: int,
    config: UpdateConfig,
    cells: Optional[Iterable[int]] = None,
) -> None:
    """
    Set up superlevels in every cell of a grid, or in a subset of cells.

    Parameters
    ----------
    grid : PlasmaGrid
        Cells and reference tables
    cycle : int
        Equilibrium cycle number
    config : UpdateConfig
        Superlevel controls
    cells : iterable of int, optional
        Cell indices to update; all cells if omitted
    """
    if not grid.atomic.superlevel_ions():
        return

    indices = range(len(grid)) if cells is None else cells
    for n in indices:
        setup_cell_superlevels(grid[n], grid.atomic, cycle, config)


def choose_superlevel_deactivation(
    cell: PlasmaCell, uplvl: int, atomic: AtomicData, rng: np.random.Generator
) -> int:
    """
    Choose which member level a transition out of a superlevel leaves from.

    Each level from the threshold up to the top of the ion is chosen with
    probability proportional to ``lte_pops[n] / g[n]``.

    Parameters
    ----------
    cell : PlasmaCell
        Cell whose superlevel state is sampled
    uplvl : int
        Any level of the ion (selects the ion)
    atomic : AtomicData
        Reference tables
    rng : np.random.Generator
        Random number source

    Returns
    -------
    int
        Chosen level index, at or above the threshold

    Raises
    ------
    SuperlevelError
        If the cell has no superlevel state, or the walk runs off the end
        of the ion's levels without reaching the drawn value (inconsistent
        normalization)
    """
    state = cell.superlevel
    nion = atomic.levels[uplvl].nion
    if state is None:
        raise SuperlevelError(
            f"choose_superlevel_deactivation: cell {cell.nplasma} ion {nion}: no superlevel state"
        )
    ion = atomic.ions[nion]
    ground = ion.first_nlte_level
    threshold = int(state.threshold[nion])

    z = (rng.integers(0, MAXRAND) + 0.5) / MAXRAND
    target = z * state.norm[nion]

    run_tot = 0.0
    n = threshold
    while run_tot < target and n < ground + ion.nlte:
        run_tot += state.lte_pops[n] / atomic.g[n]
        n += 1

    if run_tot < target:
        raise SuperlevelError(
            f"choose_superlevel_deactivation: cell {cell.nplasma} ion {nion}: "
            f"walk exhausted at {run_tot:.4e} < {target:.4e} (threshold {threshold})"
        )

    # the walk overshoots by one unless it never moved
    if n > threshold:
        n -= 1

    return n
