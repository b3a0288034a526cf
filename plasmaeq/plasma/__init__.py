"""
Plasma cell state and the per-cell statistical-equilibrium update.

This module provides:
- Cell state (PlasmaCell, PlasmaGrid, SuperlevelState)
- Partition functions and level populations for each nebular mode
- Saha ionization balance and the LTE reference state
- Matrix-based ionization balance
- Superlevel setup and sampling
"""

from plasmaeq.plasma.state import PlasmaCell, PlasmaGrid, SuperlevelState
from plasmaeq.plasma.partition import (
    NebularMode,
    mode_parameters,
    partition_functions,
    partition_functions_pair,
)
from plasmaeq.plasma.populations import get_boltzmann_populations, levels, equilibrium_state
from plasmaeq.plasma.saha import (
    LteReference,
    saha_ion_fractions,
    lte_reference_state,
    get_lte_matom_populations,
)
from plasmaeq.plasma.ionization import solve_ion_populations
from plasmaeq.plasma.superlevel import (
    setup_superlevels,
    setup_cell_superlevels,
    get_superlevel_threshold,
    choose_superlevel_deactivation,
)

__all__ = [
    "PlasmaCell",
    "PlasmaGrid",
    "SuperlevelState",
    "NebularMode",
    "mode_parameters",
    "partition_functions",
    "partition_functions_pair",
    "get_boltzmann_populations",
    "levels",
    "equilibrium_state",
    "LteReference",
    "saha_ion_fractions",
    "lte_reference_state",
    "get_lte_matom_populations",
    "solve_ion_populations",
    "setup_superlevels",
    "setup_cell_superlevels",
    "get_superlevel_threshold",
    "choose_superlevel_deactivation",
]
