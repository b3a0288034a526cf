"""
plasmaeq: distributed statistical-equilibrium updates for plasma cells

Computes partition functions, level populations and ionization states for
the cells of a radiative-transfer simulation, with superlevel reduction of
near-LTE levels, a dense solver that runs on the CPU or an accelerator, and
reconciliation of cell state across cooperating workers.
"""

__version__ = "0.1.0"
__author__ = "TheFermiSea"

# Core imports for convenience
from plasmaeq.core import constants

__all__ = [
    "constants",
]
