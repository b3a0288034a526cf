"""
Core utilities.

This module provides:
- Physical constants
- Configuration and logging
- Error classes and counted warnings
- Abstract base classes
- Factory patterns and the process-wide solver backend
"""

from plasmaeq.core import constants
from plasmaeq.core import config
from plasmaeq.core import logging_config
from plasmaeq.core.errors import (
    PlasmaEqError,
    ConfigurationError,
    ReconciliationError,
    NumericalError,
    SuperlevelError,
    ErrorCounter,
    get_error_counter,
)
from plasmaeq.core.abc import DenseSolverBackend, Communicator, WindPhysics
from plasmaeq.core.factory import (
    MatrixBackendFactory,
    init_matrix_backend,
    init_matrix_backend_from_config,
    finish_matrix_backend,
    active_backend,
    solve_matrix,
    invert_matrix,
    get_matrix_error_string,
)

__all__ = [
    # Modules
    "constants",
    "config",
    "logging_config",
    # Errors
    "PlasmaEqError",
    "ConfigurationError",
    "ReconciliationError",
    "NumericalError",
    "SuperlevelError",
    "ErrorCounter",
    "get_error_counter",
    # Abstract base classes
    "DenseSolverBackend",
    "Communicator",
    "WindPhysics",
    # Factories
    "MatrixBackendFactory",
    "init_matrix_backend",
    "init_matrix_backend_from_config",
    "finish_matrix_backend",
    "active_backend",
    "solve_matrix",
    "invert_matrix",
    "get_matrix_error_string",
]
