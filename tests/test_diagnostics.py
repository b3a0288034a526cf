"""
Tests for convergence checks and the per-cell diagnostic table.
"""

import pytest
import numpy as np
import pandas as pd

from plasmaeq.wind.diagnostics import cell_summary_frame, check_convergence


def test_check_convergence(make_grid):
    """Both temperatures must settle for a cell to count as converged."""
    grid = make_grid(4)
    for cell in grid:
        cell.t_r_old = cell.t_r
        cell.t_e_old = cell.t_e
    grid[1].t_e_old = 0.5 * grid[1].t_e
    grid[2].t_r_old = 0.99 * grid[2].t_r
    grid[3].t_r = 0.0

    assert check_convergence(grid.cells, 0.05) == 2
    assert [cell.converged for cell in grid] == [True, False, True, False]


def test_check_convergence_epsilon(make_grid):
    """A tighter threshold converges fewer cells."""
    grid = make_grid(1)
    grid[0].t_r_old = 0.99 * grid[0].t_r
    grid[0].t_e_old = grid[0].t_e
    assert check_convergence(grid.cells, 0.05) == 1
    assert check_convergence(grid.cells, 0.001) == 0


def test_check_convergence_empty():
    """No cells, nothing converged."""
    assert check_convergence([], 0.05) == 0


def test_cell_summary_frame(make_grid):
    """One row per cell, indexed by nplasma."""
    grid = make_grid(3)
    grid[1].density[:] = 2.0
    grid[2].t_e_old = grid[2].t_e - 50.0

    frame = cell_summary_frame(grid.cells)

    assert isinstance(frame, pd.DataFrame)
    assert list(frame.index) == [0, 1, 2]
    assert frame.index.name == "nplasma"
    assert frame.loc[1, "total_ion_density"] == 2.0 * len(grid[1].density)
    assert frame.loc[2, "dt_e"] == 50.0
    assert np.all(frame["t_e"] == 10000.0)
    for column in ("t_r", "ne", "heat_tot", "cool_tot", "converged"):
        assert column in frame.columns


def test_cell_summary_frame_empty():
    """An empty grid gives an empty table with the usual columns."""
    frame = cell_summary_frame([])
    assert len(frame) == 0
    assert "t_e" in frame.columns


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
