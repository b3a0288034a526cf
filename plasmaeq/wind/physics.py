"""
Default physics collaborators for the wind update.

:class:`SimpleWindPhysics` satisfies :class:`~plasmaeq.core.abc.WindPhysics`
with the simplest choices that keep the update self-consistent: estimators
are taken as already normalised, there is no adiabatic cooling or shock
heating, ion densities follow the Saha equation at the mode's temperature,
and cells partly outside the wind take their densities from the nearest cell
fully inside it. When a rate-matrix source is given, ion densities come
from the matrix solve instead. An element whose solve fails keeps its
previous densities. Simulations with real rate physics supply their own
collaborator.
"""

from typing import Callable, Dict, Optional

import numpy as np

from plasmaeq.atomic.structures import AtomicData, Element
from plasmaeq.core.abc import DenseSolverBackend
from plasmaeq.core.config import UpdateConfig
from plasmaeq.core.errors import ConfigurationError, ErrorCounter, get_error_counter
from plasmaeq.core.logging_config import get_logger
from plasmaeq.matrix.base import MatrixStatus, error_string
from plasmaeq.plasma.ionization import solve_ion_populations
from plasmaeq.plasma.partition import mode_parameters
from plasmaeq.plasma.populations import equilibrium_state
from plasmaeq.plasma.saha import saha_densities
from plasmaeq.plasma.state import W_ALL_INWIND, W_PART_INWIND, PlasmaCell, PlasmaGrid

logger = get_logger("wind.physics")

COOLING_COMPONENTS = (
    "cool_tot",
    "lum_tot",
    "lum_ff",
    "cool_rr",
    "lum_rr",
    "lum_lines",
    "cool_comp",
    "cool_dr",
    "cool_di",
    "cool_adiabatic",
)


class SimpleWindPhysics:
    """
    Saha ionization with Boltzmann level populations.

    Parameters
    ----------
    errors : ErrorCounter, optional
        Where numerical problems are counted; defaults to the process-wide one
    backend : DenseSolverBackend, optional
        Solver for the rate-matrix path; the process-wide backend if omitted
    rate_matrix : callable, optional
        ``rate_matrix(cell, nelem)`` returning the ionization rate matrix of
        an element in a cell, or None to use Saha for that element
    """

    def __init__(
        self,
        errors: Optional[ErrorCounter] = None,
        backend: Optional[DenseSolverBackend] = None,
        rate_matrix: Optional[Callable[[PlasmaCell, int], Optional[np.ndarray]]] = None,
    ):
        self.errors = errors if errors is not None else get_error_counter()
        self.backend = backend
        self.rate_matrix = rate_matrix

    def normalise_macro_estimators(self, cell: PlasmaCell) -> None:
        pass

    def normalise_simple_estimators(self, cell: PlasmaCell) -> None:
        pass

    def adiabatic_cooling(self, cell: PlasmaCell) -> float:
        return 0.0

    def shock_heating(self, cell: PlasmaCell) -> float:
        return 0.0

    def ion_abundances(
        self, cell: PlasmaCell, mode: int, atomic: AtomicData, config: UpdateConfig
    ) -> None:
        """
        Update partition functions, level populations and ion densities.

        Ion densities are only recomputed when the partition functions were
        accepted. Elements with a rate matrix take the matrix solution and
        the rest take Saha densities, which need a positive temperature and
        electron density. An element whose computation fails keeps its
        previous densities.

        Raises
        ------
        ConfigurationError
            If a rate matrix is supplied but the solver backend is not
            initialized
        """
        if not equilibrium_state(cell, mode, atomic, config.macro_ioniz_mode, self.errors):
            return
        if not atomic.elements:
            return

        t, _ = mode_parameters(cell, mode)
        nh = cell.rho * atomic.rho2nh
        density = cell.density.copy()
        saha = None

        for nelem, element in enumerate(atomic.elements):
            span = slice(element.firstion, element.firstion + element.nions)
            rates = self.rate_matrix(cell, nelem) if self.rate_matrix is not None else None

            if rates is not None:
                values = self._solve_element(cell, element, rates, nh * element.abundance)
            else:
                if saha is None:
                    saha = self._saha_densities(cell, atomic, t, nh)
                values = None if saha is None else saha[span]

            if values is not None:
                density[span] = values

        cell.density = density

    def _saha_densities(
        self, cell: PlasmaCell, atomic: AtomicData, t: float, nh: float
    ) -> Optional[np.ndarray]:
        if t <= 0.0 or cell.ne <= 0.0:
            self.errors.record(
                "ion_abundances",
                "ion_abundances: cell %d has t=%.4e ne=%.4e; keeping previous ion densities",
                cell.nplasma,
                t,
                cell.ne,
            )
            return None
        return saha_densities(atomic, cell.partition, t, cell.ne, nh)

    def _solve_element(
        self, cell: PlasmaCell, element: Element, rates: np.ndarray, total: float
    ) -> Optional[np.ndarray]:
        """
        Rate-matrix densities of one element, or None to keep the old ones.

        Raises
        ------
        ConfigurationError
            If the solver backend was never initialized or failed to start
        """
        result = solve_ion_populations(rates, total, self.backend)
        if result.ok:
            return result.value
        if result.status in (MatrixStatus.BACKEND_NOT_INITIALIZED, MatrixStatus.BACKEND_INIT_FAILED):
            raise ConfigurationError(
                f"solve_ion_populations: cell {cell.nplasma} element {element.name}: "
                f"{error_string(result.status)}"
            )
        self.errors.record(
            "solve_ion_populations",
            "solve_ion_populations: cell %d element %s: %s; keeping previous ion densities",
            cell.nplasma,
            element.name,
            error_string(result.status),
        )
        return None

    def extend_density(self, grid: PlasmaGrid) -> None:
        """Copy ion densities into partly-in-wind cells from the nearest full cell."""
        inside = [cell.nplasma for cell in grid if cell.inwind == W_ALL_INWIND]
        if not inside:
            return
        for cell in grid:
            if cell.inwind != W_PART_INWIND:
                continue
            source = min(inside, key=lambda n: abs(n - cell.nplasma))
            cell.density = grid[source].density.copy()

    def cooling_sums(self, grid: PlasmaGrid) -> Dict[str, float]:
        return {name: float(sum(getattr(cell, name) for cell in grid)) for name in COOLING_COMPONENTS}
