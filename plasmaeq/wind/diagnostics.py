"""
Convergence checks and per-cell diagnostic tables.
"""

from typing import Sequence

import numpy as np
import pandas as pd

from plasmaeq.core.logging_config import get_logger
from plasmaeq.plasma.state import PlasmaCell

logger = get_logger("wind.diagnostics")


def check_convergence(cells: Sequence[PlasmaCell], epsilon: float) -> int:
    """
    Mark cells whose temperatures changed by less than ``epsilon``.

    A cell is converged when both t_r and t_e moved by a fraction below
    ``epsilon`` of their new value during the last update.

    Parameters
    ----------
    cells : Sequence[PlasmaCell]
        Cells to check; ``converged`` is set on each
    epsilon : float
        Fractional change threshold

    Returns
    -------
    int
        Number of converged cells
    """
    nconverged = 0
    for cell in cells:
        converged = True
        for new, old in ((cell.t_r, cell.t_r_old), (cell.t_e, cell.t_e_old)):
            if new <= 0.0 or abs(new - old) / new >= epsilon:
                converged = False
                break
        cell.converged = converged
        nconverged += int(converged)

    if cells:
        logger.info(
            f"{nconverged} of {len(cells)} cells converged "
            f"({100.0 * nconverged / len(cells):.1f}%) at epsilon={epsilon}"
        )
    return nconverged


def cell_summary_frame(cells: Sequence[PlasmaCell]) -> pd.DataFrame:
    """
    One row per cell with its temperatures, densities and energy terms.

    Returns
    -------
    pd.DataFrame
        Indexed by ``nplasma``
    """
    rows = []
    for cell in cells:
        rows.append(
            {
                "nplasma": cell.nplasma,
                "nwind": cell.nwind,
                "inwind": cell.inwind,
                "ntot": cell.ntot,
                "t_r": cell.t_r,
                "t_e": cell.t_e,
                "dt_r": cell.t_r - cell.t_r_old,
                "dt_e": cell.t_e - cell.t_e_old,
                "w": cell.w,
                "ne": cell.ne,
                "rho": cell.rho,
                "heat_tot": cell.heat_tot,
                "cool_tot": cell.cool_tot,
                "lum_tot": cell.lum_tot,
                "total_ion_density": float(np.sum(cell.density)),
                "converged": cell.converged,
            }
        )

    columns = [
        "nplasma",
        "nwind",
        "inwind",
        "ntot",
        "t_r",
        "t_e",
        "dt_r",
        "dt_e",
        "w",
        "ne",
        "rho",
        "heat_tot",
        "cool_tot",
        "lum_tot",
        "total_ion_density",
        "converged",
    ]
    return pd.DataFrame(rows, columns=columns).set_index("nplasma")
