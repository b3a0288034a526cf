"""
Factory for creating dense solver backends, and the process-wide backend.

Exactly one backend is active in a process. It is chosen once at start-up
with :func:`init_matrix_backend` and released with
:func:`finish_matrix_backend`; in between, :func:`solve_matrix` and
:func:`invert_matrix` dispatch to it so callers never need to know which
backend is in use.
"""

import threading
from typing import Dict, Optional, Type

import numpy as np

from plasmaeq.core.abc import DenseSolverBackend
from plasmaeq.core.errors import ConfigurationError
from plasmaeq.core.logging_config import get_logger
from plasmaeq.matrix.base import MatrixResult, MatrixStatus, error_string
from plasmaeq.matrix.cpu import CpuBackend
from plasmaeq.matrix.gpu import JaxBackend

logger = get_logger("core.factory")


class MatrixBackendFactory:
    """Factory for creating dense solver backend instances."""

    _backends: Dict[str, Type[DenseSolverBackend]] = {}

    @classmethod
    def register(cls, name: str, backend_class: Type[DenseSolverBackend]) -> None:
        """
        Register a backend class.

        Parameters
        ----------
        name : str
            Backend name
        backend_class : Type[DenseSolverBackend]
            Backend class
        """
        cls._backends[name] = backend_class
        logger.debug(f"Registered matrix backend: {name}")

    @classmethod
    def create(cls, name: str, **kwargs) -> DenseSolverBackend:
        """
        Create a backend instance.

        Parameters
        ----------
        name : str
            Backend name
        **kwargs
            Additional arguments for the backend constructor

        Returns
        -------
        DenseSolverBackend
            Backend instance (not yet initialized)

        Raises
        ------
        ConfigurationError
            If backend name is not registered
        """
        if name not in cls._backends:
            available = ", ".join(cls._backends.keys())
            raise ConfigurationError(f"Unknown matrix backend: {name}. Available: {available}")

        backend_class = cls._backends[name]
        return backend_class(**kwargs)

    @classmethod
    def list_backends(cls) -> list:
        """List available backend names."""
        return list(cls._backends.keys())


# Register default implementations
MatrixBackendFactory.register("cpu", CpuBackend)
MatrixBackendFactory.register("gpu", JaxBackend)


_active_backend: Optional[DenseSolverBackend] = None
_backend_lock = threading.Lock()


def init_matrix_backend(name: str = "cpu", **kwargs) -> DenseSolverBackend:
    """
    Create, initialize and activate the process-wide backend.

    Parameters
    ----------
    name : str
        Registered backend name
    **kwargs
        Passed to the backend constructor (e.g. ``platform`` for 'gpu')

    Returns
    -------
    DenseSolverBackend
        The active backend

    Raises
    ------
    ConfigurationError
        If the name is unknown, a different backend is already active, or
        the backend fails to initialize
    """
    global _active_backend

    with _backend_lock:
        if _active_backend is not None:
            if _active_backend.name == name:
                return _active_backend
            raise ConfigurationError(
                f"Matrix backend '{_active_backend.name}' is already active; "
                f"call finish_matrix_backend() before selecting '{name}'"
            )

        backend = MatrixBackendFactory.create(name, **kwargs)
        result = backend.init()
        if not result.ok:
            raise ConfigurationError(
                f"Matrix backend '{name}' failed to initialize: {error_string(result.status)}"
            )

        _active_backend = backend
        logger.info(f"Matrix backend: {name}")
        return backend


def init_matrix_backend_from_config(config) -> DenseSolverBackend:
    """
    Activate the backend named by an :class:`~plasmaeq.core.config.UpdateConfig`.

    The 'gpu' backend is bound to ``config.gpu_platform``.

    Raises
    ------
    ConfigurationError
        As for :func:`init_matrix_backend`
    """
    if config.matrix_backend == "gpu":
        return init_matrix_backend("gpu", platform=config.gpu_platform)
    return init_matrix_backend(config.matrix_backend)


def finish_matrix_backend() -> None:
    """Release the process-wide backend, if any."""
    global _active_backend
    with _backend_lock:
        if _active_backend is not None:
            _active_backend.finish()
            logger.debug(f"Finished matrix backend: {_active_backend.name}")
        _active_backend = None


def active_backend() -> Optional[DenseSolverBackend]:
    """Return the active backend, or None before initialization."""
    return _active_backend


def solve_matrix(a: np.ndarray, b: np.ndarray, n: int) -> MatrixResult:
    """Solve ``a @ x = b`` with the active backend."""
    if _active_backend is None:
        return MatrixResult.failure(MatrixStatus.BACKEND_NOT_INITIALIZED)
    return _active_backend.solve(a, b, n)


def invert_matrix(a: np.ndarray, n: int) -> MatrixResult:
    """Invert ``a`` with the active backend."""
    if _active_backend is None:
        return MatrixResult.failure(MatrixStatus.BACKEND_NOT_INITIALIZED)
    return _active_backend.invert(a, n)


def get_matrix_error_string(code: int) -> str:
    """Describe a status code returned by any backend."""
    return error_string(code)
