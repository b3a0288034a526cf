"""
Saha ionization balance and the LTE reference state of a cell.

The LTE reference state is what a cell's populations would be in full LTE
at its radiation temperature. It is computed by a pure function from the
cell's scalar fields and never touches the cell itself, so it can be used
for departure coefficients while the cell is being updated.
"""

from dataclasses import dataclass
from typing import Protocol

import numpy as np

from plasmaeq.atomic.structures import AtomicData
from plasmaeq.core.constants import KB_EV, SAHA_CONST_CM3
from plasmaeq.core.logging_config import get_logger
from plasmaeq.plasma.populations import compute_levels
from plasmaeq.plasma.partition import compute_partition_functions

logger = get_logger("plasma.saha")


class CellScalars(Protocol):
    """Scalar fields of a cell read by :func:`lte_reference_state`."""

    t_r: float
    t_e: float
    ne: float
    rho: float


@dataclass(frozen=True)
class LteReference:
    """
    LTE partition functions, ion densities and level populations of a cell.

    Attributes
    ----------
    partition : np.ndarray
        Partition function per ion at t_r
    density : np.ndarray
        Ion number densities in cm^-3
    levden : np.ndarray
        Level populations as fractions of each ion
    """

    partition: np.ndarray
    density: np.ndarray
    levden: np.ndarray


def saha_ion_fractions(
    atomic: AtomicData, nelem: int, partition: np.ndarray, t: float, ne: float
) -> np.ndarray:
    """
    Ion fractions of one element from the Saha equation.

    Successive stages are related by

        n_{i+1} n_e / n_i = SAHA_CONST * T^1.5 * (U_{i+1} / U_i) * exp(-IP_i / T)

    with T in eV. The chain is evaluated in log space so that strongly
    ionized or strongly neutral conditions do not overflow.

    Parameters
    ----------
    atomic : AtomicData
        Reference tables
    nelem : int
        Element index
    partition : np.ndarray
        Partition function per ion
    t : float
        Temperature in K
    ne : float
        Electron density in cm^-3

    Returns
    -------
    np.ndarray
        Fraction of the element in each of its ions; sums to 1

    Raises
    ------
    ValueError
        If the temperature or electron density is not positive
    """
    if t <= 0.0 or ne <= 0.0:
        raise ValueError(f"Saha equation needs positive t and ne (t={t}, ne={ne})")

    element = atomic.elements[nelem]
    t_ev = KB_EV * t
    first = element.firstion

    log_n = np.zeros(element.nions)
    for k in range(1, element.nions):
        lower = atomic.ions[first + k - 1]
        log_ratio = (
            np.log(SAHA_CONST_CM3 / ne)
            + 1.5 * np.log(t_ev)
            + np.log(partition[first + k] / partition[first + k - 1])
            - lower.ip / t_ev
        )
        log_n[k] = log_n[k - 1] + log_ratio

    log_n -= np.max(log_n)
    fractions = np.exp(log_n)
    return fractions / np.sum(fractions)


def saha_densities(
    atomic: AtomicData, partition: np.ndarray, t: float, ne: float, nh: float
) -> np.ndarray:
    """
    Ion number densities of every element from the Saha equation.

    Ions that belong to no element are left at zero.

    Parameters
    ----------
    atomic : AtomicData
        Reference tables
    partition : np.ndarray
        Partition function per ion
    t : float
        Temperature in K
    ne : float
        Electron density in cm^-3
    nh : float
        Hydrogen number density in cm^-3

    Returns
    -------
    np.ndarray
        Ion number densities in cm^-3
    """
    density = np.zeros(atomic.nions)
    for nelem, element in enumerate(atomic.elements):
        fractions = saha_ion_fractions(atomic, nelem, partition, t, ne)
        density[element.firstion : element.firstion + element.nions] = (
            fractions * nh * element.abundance
        )
    return density


def lte_reference_state(scalars: CellScalars, atomic: AtomicData) -> LteReference:
    """
    Compute the LTE state of a cell at its radiation temperature.

    Parameters
    ----------
    scalars : CellScalars
        Any object with ``t_r``, ``t_e``, ``ne`` and ``rho``; a
        :class:`~plasmaeq.plasma.state.PlasmaCell` will do
    atomic : AtomicData
        Reference tables

    Returns
    -------
    LteReference
        Fresh arrays; the input is not modified
    """
    t = scalars.t_r
    partition = compute_partition_functions(atomic, t, 1.0)
    density = saha_densities(atomic, partition, t, scalars.ne, scalars.rho * atomic.rho2nh)
    levden = compute_levels(
        atomic, partition, t, 1.0, np.zeros(atomic.nlte_total), macro_ioniz_mode=False
    )
    return LteReference(partition=partition, density=density, levden=levden)


def get_lte_matom_populations(
    scalars: CellScalars, nelem: int, atomic: AtomicData
) -> np.ndarray:
    """
    LTE level populations of one element as fractions of the whole element.

    Used for departure coefficients of macro-atom levels. Entries of ions
    outside the element are zero.

    Parameters
    ----------
    scalars : CellScalars
        Cell scalar fields
    nelem : int
        Element index
    atomic : AtomicData
        Reference tables

    Returns
    -------
    np.ndarray
        Array of length ``atomic.nlte_total``
    """
    reference = lte_reference_state(scalars, atomic)
    element = atomic.elements[nelem]
    element_density = scalars.rho * atomic.rho2nh * element.abundance
    if element_density <= 0.0:
        raise ValueError(f"Element {element.name} has no density in this cell")

    result = np.zeros(atomic.nlte_total)
    for nion in range(element.firstion, element.firstion + element.nions):
        if atomic.ions[nion].nlte <= 0:
            continue
        ion_fraction = reference.density[nion] / element_density
        span = atomic.levden_slice(nion)
        result[span] = reference.levden[span] * ion_fraction
    return result
