"""
The wind update: one statistical-equilibrium cycle over every plasma cell.

This module provides:
- The update orchestrator and its per-cycle summary
- Default physics collaborators
- Convergence checks and diagnostic tables
"""

from plasmaeq.wind.update import WindUpdater, WindUpdateSummary
from plasmaeq.wind.physics import SimpleWindPhysics
from plasmaeq.wind.diagnostics import check_convergence, cell_summary_frame

__all__ = [
    "WindUpdater",
    "WindUpdateSummary",
    "SimpleWindPhysics",
    "check_convergence",
    "cell_summary_frame",
]
