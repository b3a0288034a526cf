"""
Abstract base classes and protocols for extensibility.

ABCs are used for core interfaces (DenseSolverBackend, Communicator) that must
be inherited. Protocols are used for structural typing of the external
physics collaborators, which may implement the interface without explicit
inheritance.
"""

from abc import ABC, abstractmethod
from typing import Optional, Protocol, TYPE_CHECKING, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from plasmaeq.atomic.structures import AtomicData
    from plasmaeq.core.config import UpdateConfig
    from plasmaeq.matrix.base import MatrixResult
    from plasmaeq.plasma.state import PlasmaCell, PlasmaGrid


class DenseSolverBackend(ABC):
    """
    Abstract interface for dense linear solvers.

    One instance is selected per process. Backends report every failure
    through :class:`~plasmaeq.matrix.base.MatrixStatus` and never raise for
    numerical problems.

    Attributes
    ----------
    name : str
        Registry name of the backend
    thread_safe : bool
        Whether ``solve`` and ``invert`` may be called from several threads at
        once. Backends that own a device context set this to False and
        serialize their calls internally.
    """

    name: str = "abstract"
    thread_safe: bool = True

    @abstractmethod
    def init(self) -> "MatrixResult":
        """Acquire any resources; called once before the first solve."""
        pass

    @abstractmethod
    def finish(self) -> None:
        """Release resources acquired by :meth:`init`."""
        pass

    @abstractmethod
    def solve(self, a: np.ndarray, b: np.ndarray, n: int) -> "MatrixResult":
        """Solve ``a @ x = b`` for an ``n`` x ``n`` matrix."""
        pass

    @abstractmethod
    def invert(self, a: np.ndarray, n: int) -> "MatrixResult":
        """Invert an ``n`` x ``n`` matrix."""
        pass


class Communicator(ABC):
    """
    Abstract interface for the collective operations used by reconciliation.

    Every member of the group must call every collective in the same order.
    """

    @property
    @abstractmethod
    def rank(self) -> int:
        """Index of this worker in the group."""
        pass

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of workers in the group."""
        pass

    @abstractmethod
    def bcast_buffer(self, buf: np.ndarray, root: int) -> np.ndarray:
        """
        Broadcast a float64 buffer from ``root`` to every worker.

        On the root the buffer is sent; elsewhere it is overwritten with the
        root's contents. The filled buffer is returned on every worker.
        """
        pass

    @abstractmethod
    def barrier(self) -> None:
        """Block until every worker has reached the barrier."""
        pass

    @abstractmethod
    def allreduce_sum(self, value: float) -> float:
        """Sum a scalar over all workers."""
        pass


@runtime_checkable
class WindPhysics(Protocol):
    """
    Protocol for the physics collaborators called by the wind update.

    These are the parts of a simulation that lie outside the statistical
    equilibrium core: estimator normalization, rate formulas, ionization
    solvers and the geometry of the wind.
    """

    def normalise_macro_estimators(self, cell: "PlasmaCell") -> None:
        """Normalise macro-atom Monte Carlo estimators of a cell."""
        ...

    def normalise_simple_estimators(self, cell: "PlasmaCell") -> None:
        """Normalise simple-atom Monte Carlo estimators of a cell."""
        ...

    def adiabatic_cooling(self, cell: "PlasmaCell") -> float:
        """Adiabatic cooling rate of a cell at its current t_e."""
        ...

    def shock_heating(self, cell: "PlasmaCell") -> float:
        """Shock heating rate of a cell."""
        ...

    def ion_abundances(
        self, cell: "PlasmaCell", mode: int, atomic: "AtomicData", config: "UpdateConfig"
    ) -> None:
        """Update ion densities, partition functions and level populations."""
        ...

    def extend_density(self, grid: "PlasmaGrid") -> None:
        """Fill densities of boundary cells outside the active domain."""
        ...

    def cooling_sums(self, grid: "PlasmaGrid") -> Optional[dict]:
        """Global cooling and luminosity totals, keyed by component."""
        ...
