"""
Level populations of the non-LTE levels of each ion.

The populations are Boltzmann populations relative to the ground state,
normalised by the ion's partition function, and are stored in the cell's
``levden`` vector. :func:`equilibrium_state` computes partition functions
and populations together and only commits them when both pass the sanity
checks.
"""

from typing import Optional

import numpy as np

from plasmaeq.atomic.structures import AtomicData
from plasmaeq.core.errors import ErrorCounter, get_error_counter
from plasmaeq.core.logging_config import get_logger
from plasmaeq.plasma.partition import boltzmann_terms, compute_partition_functions, mode_parameters
from plasmaeq.plasma.state import PlasmaCell

logger = get_logger("plasma.populations")


def get_boltzmann_populations(
    levden: np.ndarray,
    nion: int,
    atomic: AtomicData,
    w: float,
    t: float,
    z: float,
    start: int,
) -> None:
    """
    Fill the Boltzmann populations of ion ``nion`` into ``levden``.

    Parameters
    ----------
    levden : np.ndarray
        Output array; ``levden[start:start + nlte]`` is written
    nion : int
        Ion index
    atomic : AtomicData
        Reference tables
    w : float
        Dilution factor (1 gives LTE, 0 leaves only the ground state)
    t : float
        Temperature in K
    z : float
        Partition function of the ion
    start : int
        Offset of the ion's block in ``levden``; ``ion.first_levden`` when
        writing into a cell, 0 when writing into a scratch array
    """
    ion = atomic.ions[nion]
    terms = boltzmann_terms(atomic, ion.first_nlte_level, ion.nlte, t, w)
    levden[start : start + ion.nlte] = terms / z


def _skips_ion(atomic: AtomicData, nion: int, macro_ioniz_mode: bool) -> bool:
    ion = atomic.ions[nion]
    if ion.nlte <= 0:
        return True
    # macro-atom populations come from their own rate solve
    return bool(ion.macro_info and macro_ioniz_mode)


def compute_levels(
    atomic: AtomicData,
    partition: np.ndarray,
    t: float,
    weight: float,
    levden: np.ndarray,
    macro_ioniz_mode: bool = True,
) -> np.ndarray:
    """
    Level populations of every eligible ion, written over a copy of ``levden``.

    Ions without non-LTE levels, and macro-atom ions when
    ``macro_ioniz_mode`` is set, keep the entries they had in ``levden``.
    """
    result = np.array(levden, dtype=np.float64, copy=True)
    for nion in range(atomic.nions):
        if _skips_ion(atomic, nion, macro_ioniz_mode):
            continue
        get_boltzmann_populations(
            result, nion, atomic, weight, t, partition[nion], atomic.ions[nion].first_levden
        )
    return result


def levels(
    cell: PlasmaCell, mode: int, atomic: AtomicData, macro_ioniz_mode: bool = True
) -> None:
    """
    Calculate the level populations of a cell from its partition functions.

    Parameters
    ----------
    cell : PlasmaCell
        Cell whose ``levden`` is updated in place, using ``cell.partition``
    mode : int
        A :class:`~plasmaeq.plasma.partition.NebularMode` value
    atomic : AtomicData
        Reference tables
    macro_ioniz_mode : bool
        Leave macro-atom ions untouched
    """
    t, weight = mode_parameters(cell, mode)
    cell.levden = compute_levels(atomic, cell.partition, t, weight, cell.levden, macro_ioniz_mode)


def check_equilibrium_state(
    atomic: AtomicData, partition: np.ndarray, levden: np.ndarray
) -> Optional[str]:
    """
    Sanity-check partition functions and level populations.

    Returns
    -------
    str or None
        Description of the first problem found, or None if the state is sane
    """
    for nion, ion in enumerate(atomic.ions):
        z = partition[nion]
        if not np.isfinite(z):
            return f"ion {nion}: partition function {z} is not finite"
        g_ground = atomic.g[ion.firstlevel] if ion.nlevels > 0 else ion.g
        if ion.nlevels == 0 and ion.nlte > 0:
            g_ground = atomic.g[ion.first_nlte_level]
        if z < g_ground * (1.0 - 1e-12):
            return f"ion {nion}: partition function {z:.6e} below ground weight {g_ground:.6e}"

    bad = np.flatnonzero(~np.isfinite(levden) | (levden < 0.0))
    if bad.size:
        n = int(bad[0])
        return f"levden[{n}] = {levden[n]:.6e} is negative or not finite"
    return None


def equilibrium_state(
    cell: PlasmaCell,
    mode: int,
    atomic: AtomicData,
    macro_ioniz_mode: bool = True,
    errors: Optional[ErrorCounter] = None,
) -> bool:
    """
    Compute partition functions and level populations for one cell.

    Both are computed into scratch arrays and committed only if they pass
    :func:`check_equilibrium_state`. Otherwise the problem is reported
    through the error counter and the cell keeps its previous values.

    Parameters
    ----------
    cell : PlasmaCell
        Cell to update
    mode : int
        A :class:`~plasmaeq.plasma.partition.NebularMode` value
    atomic : AtomicData
        Reference tables
    macro_ioniz_mode : bool
        Leave macro-atom ion populations untouched
    errors : ErrorCounter, optional
        Where numerical problems are counted; defaults to the process-wide one

    Returns
    -------
    bool
        True if the cell was updated

    Raises
    ------
    ConfigurationError
        If the mode is unknown
    """
    t, weight = mode_parameters(cell, mode)

    partition = compute_partition_functions(atomic, t, weight)
    levden = compute_levels(atomic, partition, t, weight, cell.levden, macro_ioniz_mode)

    problem = check_equilibrium_state(atomic, partition, levden)
    if problem is not None:
        errors = errors if errors is not None else get_error_counter()
        errors.record(
            "equilibrium_state",
            "equilibrium_state: cell %d mode %d t=%.4e w=%.4e: %s; keeping previous values",
            cell.nplasma,
            int(mode),
            t,
            weight,
            problem,
        )
        return False

    cell.partition = partition
    cell.levden = levden
    return True
