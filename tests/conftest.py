"""
Pytest configuration and shared fixtures for plasmaeq tests.

This module provides:
- Automatic JAX CPU backend configuration
- A small synthetic atomic data set (hydrogen with a superlevel, helium
  with a macro-atom neutral)
- Factory fixtures for cells, grids and configurations
"""

import os
import pytest
import tempfile
from pathlib import Path

# Force JAX to use CPU backend before any JAX imports
os.environ.setdefault("JAX_PLATFORMS", "cpu")

from plasmaeq.atomic.structures import AtomicData, Element, Ion, Level
from plasmaeq.core.config import UpdateConfig
from plasmaeq.core.errors import ErrorCounter
from plasmaeq.core.factory import finish_matrix_backend
from plasmaeq.plasma.state import PlasmaCell, PlasmaGrid

H_IP = 13.598
HE_IP = (24.587, 54.418)

# Scalar settings shared by the synthetic cells
CELL_DEFAULTS = {
    "t_e": 10000.0,
    "t_r": 12000.0,
    "w": 0.5,
    "ne": 1.0e10,
    "rho": 1.0e-13,
    "vol": 1.0e30,
    "ntot": 1000,
}


def build_atomic_data():
    """
    Hydrogen and helium with 14 non-LTE levels in total.

    Ion table:

    - 0: H I, levels n=1..10, superlevel enabled
    - 1: H II, one level
    - 2: He I, three levels, macro-atom
    - 3: He II, no level data (bare ground weight)
    - 4: He III, no level data
    """
    levels = []
    for n in range(1, 11):
        levels.append(Level(g=2.0 * n * n, ex=H_IP * (1.0 - 1.0 / (n * n)), nion=0))
    levels.append(Level(g=1.0, ex=H_IP, nion=1))
    levels.append(Level(g=1.0, ex=0.0, nion=2))
    levels.append(Level(g=3.0, ex=19.82, nion=2))
    levels.append(Level(g=1.0, ex=20.62, nion=2))

    ions = [
        Ion(
            z=1,
            istate=1,
            g=2.0,
            ip=H_IP,
            nlte=10,
            first_nlte_level=0,
            first_levden=0,
            nlevels=10,
            firstlevel=0,
            has_superlevel=True,
        ),
        Ion(z=1, istate=2, g=1.0, nlte=1, first_nlte_level=10, first_levden=10, nlevels=1, firstlevel=10),
        Ion(
            z=2,
            istate=1,
            g=1.0,
            ip=HE_IP[0],
            nlte=3,
            first_nlte_level=11,
            first_levden=11,
            nlevels=3,
            firstlevel=11,
            macro_info=True,
        ),
        Ion(z=2, istate=2, g=2.0, ip=HE_IP[1]),
        Ion(z=2, istate=3, g=1.0),
    ]

    elements = [
        Element(name="H", z=1, abundance=1.0, firstion=0, nions=2, atomic_mass=1.008),
        Element(name="He", z=2, abundance=0.1, firstion=2, nions=3, atomic_mass=4.0026),
    ]
    return AtomicData(ions, levels, elements)


@pytest.fixture(autouse=True)
def release_matrix_backend():
    """Make sure no test leaks an active process-wide backend."""
    finish_matrix_backend()
    yield
    finish_matrix_backend()


@pytest.fixture
def atomic_data():
    """Shared synthetic atomic tables."""
    return build_atomic_data()


@pytest.fixture
def make_cell(atomic_data):
    """
    Factory fixture for plasma cells.

    Returns a function that allocates a cell with the default scalar
    settings, overridden by keyword arguments.
    """

    def _create(nplasma: int = 0, nphot: int = 0, **kwargs) -> PlasmaCell:
        settings = dict(CELL_DEFAULTS)
        settings.update(kwargs)
        return PlasmaCell.empty(nplasma, atomic_data, nphot, **settings)

    return _create


@pytest.fixture
def cell(make_cell):
    """A single cell at the default conditions."""
    return make_cell()


@pytest.fixture
def make_grid(atomic_data):
    """
    Factory fixture for plasma grids.

    Every call returns an independent grid, so each worker of a group can
    hold its own copy.
    """

    def _create(ncells: int = 6, nphot: int = 0, **kwargs) -> PlasmaGrid:
        settings = dict(CELL_DEFAULTS)
        settings.update(kwargs)
        return PlasmaGrid.create(ncells, atomic_data, nphot, **settings)

    return _create


@pytest.fixture
def update_config():
    """Default update settings with a fixed seed."""
    return UpdateConfig(seed=42)


@pytest.fixture
def error_counter():
    """A fresh error counter, separate from the process-wide one."""
    return ErrorCounter(max_repeats=10)


@pytest.fixture
def sample_config_dict():
    """Create a sample configuration dictionary."""
    return {
        "update": {
            "matrix_backend": "cpu",
            "ioniz_mode": 2,
            "macro_ioniz_mode": True,
            "lte_departure_factor": 2.0,
            "lowest_superlevel_threshold": 5,
            "partial_cells": "extend",
            "flux_persist_scale": 0.25,
            "convergence_epsilon": 0.05,
            "seed": 7,
        }
    }


@pytest.fixture
def temp_config_file(sample_config_dict):
    """Create a temporary YAML config file."""
    import yaml

    config_fd, config_path = tempfile.mkstemp(suffix=".yaml")
    os.close(config_fd)  # Close file descriptor to prevent leaks

    with open(config_path, "w") as f:
        yaml.dump(sample_config_dict, f)

    yield config_path

    Path(config_path).unlink()
