"""
Partition function evaluation logic.

Partition functions are weighted Boltzmann sums over an ion's levels,
relative to its ground state. The same term helper,
:func:`boltzmann_terms`, is used for the level populations in
:mod:`plasmaeq.plasma.populations`, so a partition function and the populations
derived from it can never disagree on the formula.
"""

from enum import IntEnum
from typing import Tuple

import numpy as np

from plasmaeq.atomic.structures import AtomicData
from plasmaeq.core.constants import KB_EV
from plasmaeq.core.errors import ConfigurationError
from plasmaeq.core.logging_config import get_logger
from plasmaeq.plasma.state import PlasmaCell

logger = get_logger("plasma.partition")


class NebularMode(IntEnum):
    """How temperature and dilution are taken from a cell."""

    TR = 0  # LTE using t_r
    TE = 1  # LTE using t_e
    ML93 = 2  # dilute blackbody at t_r with weight w
    NLTE_SIM = 3  # t_e, LTE weights
    LTE_GROUND = 4  # everything in the ground state


def mode_parameters(cell: PlasmaCell, mode: int) -> Tuple[float, float]:
    """
    Temperature and radiative weight used for a nebular mode.

    Parameters
    ----------
    cell : PlasmaCell
        Cell providing t_r, t_e and w
    mode : int
        A :class:`NebularMode` value

    Returns
    -------
    t : float
        Temperature in K
    weight : float
        Weight applied to excited levels (1 for LTE, 0 for ground state only)

    Raises
    ------
    ConfigurationError
        If the mode is unknown
    """
    if mode == NebularMode.TR:
        return cell.t_r, 1.0
    if mode == NebularMode.TE:
        return cell.t_e, 1.0
    if mode == NebularMode.ML93:
        return cell.t_r, cell.w
    if mode == NebularMode.NLTE_SIM:
        return cell.t_e, 1.0
    if mode == NebularMode.LTE_GROUND:
        return cell.t_e, 0.0
    raise ConfigurationError(f"Unknown nebular mode {mode}")


def boltzmann_terms(
    atomic: AtomicData, first: int, count: int, t: float, weight: float
) -> np.ndarray:
    """
    Weighted Boltzmann factors of a contiguous block of levels.

    The first level of the block is taken to be the ground state. Its term
    is its statistical weight; every other level contributes
    ``weight * g_n * exp(-(E_n - E_ground) / kT)``.

    Parameters
    ----------
    atomic : AtomicData
        Reference tables
    first : int
        Level index of the ground state
    count : int
        Number of levels in the block
    t : float
        Temperature in K
    weight : float
        Weight applied to excited levels

    Returns
    -------
    np.ndarray
        One term per level
    """
    g = atomic.g[first : first + count]
    ex = atomic.ex[first : first + count]

    terms = np.empty(count, dtype=np.float64)
    terms[0] = g[0]
    if count > 1:
        if t > 0.0:
            kt = KB_EV * t
            terms[1:] = weight * g[1:] * np.exp(-(ex[1:] - ex[0]) / kt)
        else:
            terms[1:] = 0.0
    return terms


def ion_partition_function(atomic: AtomicData, nion: int, t: float, weight: float) -> float:
    """
    Partition function of a single ion.

    Full level data is preferred, then the reduced non-LTE levels, and the
    bare ground-state weight when the ion has neither.
    """
    ion = atomic.ions[nion]
    if ion.nlevels > 0:
        return float(np.sum(boltzmann_terms(atomic, ion.firstlevel, ion.nlevels, t, weight)))
    if ion.nlte > 0:
        return float(np.sum(boltzmann_terms(atomic, ion.first_nlte_level, ion.nlte, t, weight)))
    return float(ion.g)


def compute_partition_functions(atomic: AtomicData, t: float, weight: float) -> np.ndarray:
    """Partition functions of every ion at temperature ``t`` and weight ``weight``."""
    return np.array(
        [ion_partition_function(atomic, nion, t, weight) for nion in range(atomic.nions)],
        dtype=np.float64,
    )


def partition_functions(cell: PlasmaCell, mode: int, atomic: AtomicData) -> np.ndarray:
    """
    Calculate the partition functions of every ion in a cell.

    Parameters
    ----------
    cell : PlasmaCell
        Cell whose temperatures select the Boltzmann factors
    mode : int
        A :class:`NebularMode` value
    atomic : AtomicData
        Reference tables

    Returns
    -------
    np.ndarray
        Partition function per ion. The cell is not modified; see
        :func:`plasmaeq.plasma.populations.equilibrium_state` for the update that
        stores partition functions and level populations together.
    """
    t, weight = mode_parameters(cell, mode)
    return compute_partition_functions(atomic, t, weight)


def partition_functions_pair(
    cell: PlasmaCell, upper_ion: int, atomic: AtomicData, t: float, weight: float
) -> None:
    """
    Recompute the partition functions of an ion pair at a given temperature.

    Used by pairwise ionization calculations, where the Saha equation is
    applied to two adjacent ions at a temperature other than the cell's.
    The results are stored in ``cell.partition`` for ``upper_ion - 1`` and
    ``upper_ion``.
    """
    if upper_ion < 1 or upper_ion >= atomic.nions:
        raise IndexError(f"upper_ion {upper_ion} has no lower partner")

    for nion in (upper_ion - 1, upper_ion):
        cell.partition[nion] = ion_partition_function(atomic, nion, t, weight)
