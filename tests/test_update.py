"""
Tests for the wind update orchestrator.
"""

import pytest
import logging
import numpy as np

from plasmaeq.core.abc import WindPhysics
from plasmaeq.core.config import UpdateConfig
from plasmaeq.core.errors import ConfigurationError, ErrorCounter, get_error_counter
from plasmaeq.core.factory import active_backend
from plasmaeq.matrix import CpuBackend, JaxBackend
from plasmaeq.parallel.comm import InProcessGroup
from plasmaeq.parallel.reconcile import PLASMA_UPDATE_FIELDS, SUPERLEVEL_FIELDS
from plasmaeq.parallel.sharding import get_parallel_nrange
from plasmaeq.plasma.partition import compute_partition_functions
from plasmaeq.plasma.state import W_PART_INWIND
from plasmaeq.wind import SimpleWindPhysics, WindUpdater

TWO_ION_RATES = np.array([[-2.0, 1.0], [2.0, -1.0]])


class HeatingPhysics(SimpleWindPhysics):
    """Raises t_e by 200 K per cell index during the ion update."""

    def ion_abundances(self, cell, mode, atomic, config):
        super().ion_abundances(cell, mode, atomic, config)
        cell.t_e += 200.0 * cell.nplasma


class CountingPhysics(SimpleWindPhysics):
    """Counts macro normalisations and adds fixed adiabatic and shock terms."""

    def __init__(self, errors=None):
        super().__init__(errors)
        self.macro_calls = 0

    def normalise_macro_estimators(self, cell):
        self.macro_calls += 1

    def adiabatic_cooling(self, cell):
        return 1.5

    def shock_heating(self, cell):
        return 2.5


def scalar_and_array_fields(cell, fields):
    values = [getattr(cell, name) for name in fields.scalars]
    for path in fields.arrays:
        obj = cell
        for part in path.split("."):
            obj = getattr(obj, part)
        values.append(obj.copy())
    return values


def assert_same_state(a, b):
    for fields in (PLASMA_UPDATE_FIELDS, SUPERLEVEL_FIELDS):
        for va, vb in zip(scalar_and_array_fields(a, fields), scalar_and_array_fields(b, fields)):
            assert np.array_equal(va, vb)


def test_simple_physics_satisfies_protocol():
    """The default collaborator implements the physics protocol."""
    assert isinstance(SimpleWindPhysics(), WindPhysics)


def test_invalid_config_rejected(make_grid):
    """The updater validates its configuration up front."""
    with pytest.raises(ConfigurationError):
        WindUpdater(make_grid(2), UpdateConfig(ioniz_mode=9))


def test_serial_cycle(make_grid, atomic_data, update_config, error_counter):
    """One serial cycle updates every cell."""
    grid = make_grid(6)
    summary = WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)

    assert summary.updated == 6
    assert summary.skipped == 0
    assert summary.received == 0
    assert (summary.nmin, summary.nmax) == (0, 6)

    nh = grid[0].rho * atomic_data.rho2nh
    expected_z = compute_partition_functions(atomic_data, grid[0].t_e, 1.0)
    for cell in grid:
        assert np.allclose(cell.partition, expected_z)
        assert np.isclose(cell.density[0:2].sum(), nh)
        assert np.isclose(cell.density[2:5].sum(), 0.1 * nh)
        assert cell.t_e_old == cell.t_e
        assert cell.superlevel.threshold[0] == 9
        assert cell.converged

    assert summary.nmax_e == -1
    assert summary.nconverged == 6
    assert len(summary.cells) == 6
    assert summary.cells.index.name == "nplasma"


def test_cooling_snapshot_and_sums(make_grid, update_config, error_counter):
    """Cooling totals are summed and kept in the *_ioniz fields."""
    grid = make_grid(4)
    grid[2].cool_tot = 5.0
    grid[3].cool_tot = 1.0
    grid[2].lum_lines = 3.0

    summary = WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)

    assert grid[2].cool_tot_ioniz == 5.0
    assert grid[2].lum_lines_ioniz == 3.0
    assert summary.cooling["cool_tot"] == 6.0
    assert summary.cooling["lum_lines"] == 3.0


def test_persistent_fluxes(make_grid, update_config, error_counter):
    """Persistent fluxes move a share of the way to the latest estimate."""
    grid = make_grid(2)
    grid[0].F_vis[:] = [1.0, 2.0, 3.0, 4.0]
    grid[1].F_UV_persistent[:] = 4.0

    WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)

    assert np.allclose(grid[0].F_vis_persistent, [0.5, 1.0, 1.5, 2.0])
    assert np.allclose(grid[1].F_UV_persistent, 2.0)


def test_heating_sums_skip_non_finite(make_grid, update_config, error_counter):
    """A NaN heating term is reported and left out of the total."""
    grid = make_grid(4)
    grid[1].heat_tot = 2.0
    grid[2].heat_tot = np.nan
    grid[3].heat_photo = 1.5
    grid[3].abs_photo = 0.5

    summary = WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)

    assert summary.heating["heat_tot"] == 2.0
    assert summary.heating["heat_photo"] == 1.5
    assert summary.heating["abs_photo"] == 0.5
    assert error_counter.count("wind_update:sane_check") == 1
    assert summary.errors["wind_update:sane_check"] == 1
    assert summary.group_errors == 1


def test_partial_cells_extend(make_grid, update_config, error_counter):
    """Partly-in-wind cells are skipped and take densities from a neighbour."""
    grid = make_grid(6)
    grid[2].inwind = W_PART_INWIND
    untouched = grid[2].partition.copy()
    update_config.partial_cells = "extend"

    summary = WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)

    assert summary.skipped == 1
    assert summary.updated == 5
    assert np.array_equal(grid[2].partition, untouched)
    assert np.array_equal(grid[2].density, grid[1].density)
    assert grid[2].density is not grid[1].density
    assert summary.nconverged == 5


def test_partial_cells_include(make_grid, update_config, error_counter):
    """In 'include' mode partly-in-wind cells are updated like the rest."""
    grid = make_grid(3)
    grid[1].inwind = W_PART_INWIND
    summary = WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)
    assert summary.updated == 3
    assert grid[1].density.sum() > 0.0


def test_temperature_tracking(make_grid, update_config, error_counter):
    """The largest change and the averages are reported; convergence follows."""
    grid = make_grid(6)
    physics = HeatingPhysics(error_counter)
    summary = WindUpdater(grid, update_config, physics=physics, errors=error_counter).update_all_cells(0)

    assert summary.dt_e == 1000.0
    assert summary.nmax_e == 5
    assert summary.nmax_r == -1
    assert summary.t_e_ave_old == 10000.0
    assert np.isclose(summary.t_e_ave, 10500.0)
    assert summary.nconverged == 3
    assert [cell.converged for cell in grid] == [True, True, True, False, False, False]


def test_macro_normalisation(make_grid, error_counter):
    """Macro estimators are normalised on every cell and cached rates dropped."""
    grid = make_grid(5)
    for cell in grid:
        cell.kpkt_rates_known = True
        cell.matrix_rates_known = True
    physics = CountingPhysics(error_counter)
    config = UpdateConfig(rt_mode_macro=True)

    WindUpdater(grid, config, physics=physics, errors=error_counter).update_all_cells(0)

    assert physics.macro_calls == 5
    assert not any(cell.kpkt_rates_known or cell.matrix_rates_known for cell in grid)


def test_macro_simple_skips_normalisation(make_grid, error_counter):
    """With every ion treated as simple there is nothing to normalise."""
    grid = make_grid(3)
    physics = CountingPhysics(error_counter)
    config = UpdateConfig(rt_mode_macro=True, macro_simple=True)
    WindUpdater(grid, config, physics=physics, errors=error_counter).update_all_cells(0)
    assert physics.macro_calls == 0


def test_adiabatic_and_shock_terms(make_grid, update_config, error_counter):
    """Collaborator terms are stored and snapshotted."""
    grid = make_grid(2)
    physics = CountingPhysics(error_counter)
    WindUpdater(grid, update_config, physics=physics, errors=error_counter).update_all_cells(0)
    for cell in grid:
        assert cell.cool_adiabatic == 1.5
        assert cell.cool_adiabatic_ioniz == 1.5
        assert cell.heat_shock == 2.5


def test_low_photon_cells_reported(make_grid, update_config, error_counter, caplog):
    """Cells with few photons are logged."""
    grid = make_grid(2, ntot=10)
    with caplog.at_level(logging.INFO, logger="plasmaeq"):
        WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)
    assert caplog.text.count("photons") == 2


def test_rate_matrix_densities(make_grid, atomic_data, update_config, error_counter):
    """Hydrogen densities come from the rate solve; helium stays on Saha."""

    def rates(cell, nelem):
        return TWO_ION_RATES if nelem == 0 else None

    grid = make_grid(2)
    physics = SimpleWindPhysics(error_counter, backend=CpuBackend(), rate_matrix=rates)
    WindUpdater(grid, update_config, physics=physics, errors=error_counter).update_all_cells(0)

    nh = grid[0].rho * atomic_data.rho2nh
    assert np.allclose(grid[0].density[0:2], [nh / 3.0, 2.0 * nh / 3.0])
    assert np.isclose(grid[0].density[2:5].sum(), 0.1 * nh)


def test_rate_matrix_failure_keeps_previous_densities(make_grid, atomic_data, update_config, error_counter):
    """A singular rate matrix is counted and the element keeps last cycle's densities."""

    def rates(cell, nelem):
        return np.zeros((2, 2)) if nelem == 0 else None

    grid = make_grid(1)
    grid[0].density[:] = 42.0
    physics = SimpleWindPhysics(error_counter, backend=CpuBackend(), rate_matrix=rates)
    WindUpdater(grid, update_config, physics=physics, errors=error_counter).update_all_cells(0)

    nh = grid[0].rho * atomic_data.rho2nh
    assert error_counter.count("solve_ion_populations") == 1
    assert np.all(grid[0].density[0:2] == 42.0)
    # helium has no rate matrix and still follows Saha
    assert np.isclose(grid[0].density[2:5].sum(), 0.1 * nh)


def test_uninitialized_backend_aborts_update(make_grid, update_config, error_counter):
    """A rate solve on a backend that was never started is a configuration error."""

    def rates(cell, nelem):
        return TWO_ION_RATES if nelem == 0 else None

    grid = make_grid(2)
    physics = SimpleWindPhysics(error_counter, backend=JaxBackend(), rate_matrix=rates)
    updater = WindUpdater(grid, update_config, physics=physics, errors=error_counter)

    with pytest.raises(ConfigurationError, match="before initialization"):
        updater.update_all_cells(0)
    assert error_counter.count("solve_ion_populations") == 0


def test_rate_matrix_without_process_backend(cell, atomic_data, update_config, error_counter):
    """Without an explicit backend the process-wide one must have been initialized."""

    def rates(cell, nelem):
        return TWO_ION_RATES if nelem == 0 else None

    physics = SimpleWindPhysics(error_counter, rate_matrix=rates)
    assert active_backend() is None
    with pytest.raises(ConfigurationError):
        physics.ion_abundances(cell, update_config.ioniz_mode, atomic_data, update_config)


def test_updater_initializes_configured_backend(make_grid, error_counter):
    """The backend named in the settings becomes the process-wide backend."""
    updater = WindUpdater(make_grid(2), UpdateConfig(matrix_backend="cpu"), errors=error_counter)
    assert active_backend() is not None
    assert active_backend().name == "cpu"
    assert updater.backend is active_backend()
    assert updater.physics.backend is updater.backend


def test_missing_gpu_platform_aborts(make_grid, error_counter):
    """An accelerator that cannot be bound stops the run before any update."""
    config = UpdateConfig(matrix_backend="gpu", gpu_platform="no-such-platform")
    with pytest.raises(ConfigurationError, match="failed to initialize"):
        WindUpdater(make_grid(2), config, errors=error_counter)
    assert active_backend() is None


def test_explicit_backend_not_activated(make_grid, error_counter):
    """A backend handed to the updater is used as is."""
    backend = CpuBackend()
    updater = WindUpdater(make_grid(2), UpdateConfig(), backend=backend, errors=error_counter)
    assert updater.backend is backend
    assert active_backend() is None


def test_sampling_seeded_from_config(make_grid):
    """Deactivation draws repeat for the same seed."""
    draws = []
    for _ in range(2):
        grid = make_grid(2)
        updater = WindUpdater(grid, UpdateConfig(seed=11), errors=ErrorCounter())
        updater.update_all_cells(0)
        updater.update_all_cells(1)
        draws.append([updater.choose_deactivation(0, 0) for _ in range(25)])
        threshold = int(grid[0].superlevel.threshold[0])

    assert draws[0] == draws[1]
    assert all(threshold <= level <= 9 for level in draws[0])


def test_skipped_cells_without_superlevel_state(make_grid, update_config, error_counter):
    """Cells that were never set up still take part in the superlevel exchange."""
    grid = make_grid(4)
    grid[2].inwind = W_PART_INWIND
    grid[2].superlevel = None
    update_config.partial_cells = "extend"

    summary = WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)

    assert summary.skipped == 1
    assert grid[2].superlevel is not None
    assert grid[2].superlevel.threshold[0] == 9


def test_updater_owns_error_counter(make_grid, error_counter):
    """The repeat cap applies to the updater's own counter only."""
    updater = WindUpdater(make_grid(1), UpdateConfig(max_repeated_warnings=3))
    assert updater.errors.max_repeats == 3
    assert updater.errors is not get_error_counter()

    WindUpdater(make_grid(1), UpdateConfig(max_repeated_warnings=3), errors=error_counter)
    assert error_counter.max_repeats == 10


def test_group_error_count(make_grid):
    """Problems recorded by one worker are counted on every worker."""
    group = InProcessGroup(2, timeout=30.0)

    def worker(comm):
        grid = make_grid(4)
        grid[1].ne = 0.0
        return WindUpdater(grid, UpdateConfig(), comm=comm, errors=ErrorCounter()).update_all_cells(0)

    summaries = group.run(worker)
    assert [summary.group_errors for summary in summaries] == [1, 1]
    assert summaries[0].errors["ion_abundances"] == 1
    assert "ion_abundances" not in summaries[1].errors


def test_zero_electron_density_keeps_densities(make_grid, update_config, error_counter):
    """Saha needs free electrons; without them densities are left alone."""
    grid = make_grid(1, ne=0.0)
    WindUpdater(grid, update_config, errors=error_counter).update_all_cells(0)
    assert np.all(grid[0].density == 0.0)
    assert error_counter.count("ion_abundances") == 1


def test_parallel_matches_serial(make_grid, update_config):
    """Three workers over two cycles end with the serial result on every worker."""
    ncells = 7

    serial = make_grid(ncells)
    serial[3].inwind = W_PART_INWIND
    updater = WindUpdater(serial, update_config, errors=ErrorCounter())
    updater.update_all_cells(0)
    updater.update_all_cells(1)

    group = InProcessGroup(3, timeout=30.0)

    def worker(comm):
        grid = make_grid(ncells)
        grid[3].inwind = W_PART_INWIND
        worker_updater = WindUpdater(grid, update_config, comm=comm, errors=ErrorCounter())
        worker_updater.update_all_cells(0)
        return grid, worker_updater.update_all_cells(1)

    results = group.run(worker)
    for rank, (grid, summary) in enumerate(results):
        _, _, ndo = get_parallel_nrange(rank, ncells, 3)
        assert summary.received == ncells - ndo
        assert summary.updated == ndo
        for cell, reference in zip(grid, serial):
            assert_same_state(cell, reference)

    # the second cycle moved the superlevel thresholds below the top level
    assert serial[0].superlevel.threshold[0] < 9


def test_wind_rad_init(make_grid, error_counter):
    """Estimators are reset and recombination estimators computed per edge."""
    config = UpdateConfig(rt_mode_macro=True)
    grid = make_grid(3, nphot=3)
    for cell in grid:
        cell.ntot = 50
        cell.heat_tot = 5.0
        cell.cool_tot = 4.0
        cell.cool_adiabatic = 3.0
        cell.F_vis[:] = 1.0
        cell.F_vis_persistent[:] = 2.0
        cell.ioniz[:] = 1.0
        cell.kpkt_rates_known = True

    def alpha_sp(cell, edge, mode):
        return cell.nplasma * (edge + 1) * (mode + 1) * 1e-13

    updater = WindUpdater(grid, config, errors=error_counter)
    assert updater.wind_rad_init(2, alpha_sp, macro_edges=[False, True, False]) == 0

    for cell in grid:
        assert cell.ntot == 0
        assert cell.heat_tot == 0.0
        assert cell.cool_tot == 0.0
        assert cell.cool_adiabatic == 3.0
        assert np.all(cell.F_vis == 0.0)
        assert np.all(cell.F_vis_persistent == 2.0)
        assert np.all(cell.ioniz == 0.0)
        assert not cell.kpkt_rates_known
        assert cell.recomb_simple[1] == 0.0
        assert cell.recomb_simple_upweight[1] == 1.0

    assert np.all(grid[0].recomb_simple == 0.0)
    assert np.all(grid[0].recomb_simple_upweight == 1.0)
    assert np.isclose(grid[2].recomb_simple[2], 2 * 3 * 3 * 1e-13)
    assert np.isclose(grid[2].recomb_simple_upweight[0], 2.0 / 3.0)

    updater.wind_rad_init(0, alpha_sp)
    assert np.all(grid[1].F_vis_persistent == 0.0)


def test_wind_rad_init_shares_estimators(make_grid):
    """Every worker ends with the recombination estimators of every cell."""
    ncells = 5

    def alpha_sp(cell, edge, mode):
        return (cell.nplasma + 1) * (edge + 1) * (mode + 1) * 1e-13

    group = InProcessGroup(2, timeout=30.0)

    def worker(comm):
        grid = make_grid(ncells, nphot=2)
        received = WindUpdater(grid, UpdateConfig(), comm=comm, errors=ErrorCounter()).wind_rad_init(
            0, alpha_sp
        )
        return grid, received

    results = group.run(worker)
    assert [received for _, received in results] == [2, 3]
    for grid, _ in results:
        for cell in grid:
            expected = [(cell.nplasma + 1) * (edge + 1) * 3 * 1e-13 for edge in range(2)]
            assert np.allclose(cell.recomb_simple, expected)
            assert np.allclose(cell.recomb_simple_upweight, 2.0 / 3.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
