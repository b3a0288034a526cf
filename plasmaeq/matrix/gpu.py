"""
Accelerator dense solver backend built on JAX.

The backend binds one JAX device when :meth:`JaxBackend.init` is called and
keeps it for the life of the process. Calls are serialized with a lock, so
one instance may be shared between threads, but calls never overlap on the
device.
"""

import threading
from typing import Optional

import numpy as np

try:
    import jax
    import jax.numpy as jnp
    from jax.scipy import linalg as jax_linalg

    HAS_JAX = True
except ImportError:
    HAS_JAX = False
    jax = None
    jnp = None
    jax_linalg = None

from plasmaeq.core.abc import DenseSolverBackend
from plasmaeq.core.logging_config import get_logger
from plasmaeq.matrix.base import (
    MatrixResult,
    MatrixStatus,
    as_square,
    check_system,
    pivots_singular,
)

logger = get_logger("matrix.gpu")


class JaxBackend(DenseSolverBackend):
    """
    LU-decomposition solver running on a JAX device.

    Parameters
    ----------
    platform : str
        JAX platform to bind ('gpu', 'cuda', 'rocm', 'tpu' or 'cpu')
    device_index : int
        Which device of the platform to use
    """

    name = "gpu"
    thread_safe = False

    def __init__(self, platform: str = "gpu", device_index: int = 0):
        self.platform = platform
        self.device_index = device_index
        self.device = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self.device is not None

    def init(self) -> MatrixResult:
        """
        Select the device and enable 64-bit arithmetic.

        Returns
        -------
        MatrixResult
            BACKEND_INIT_FAILED if JAX is missing or the platform has no
            device at ``device_index``
        """
        with self._lock:
            if self.device is not None:
                return MatrixResult(value=None)

            if not HAS_JAX:
                logger.error("JAX is not installed. Install with: pip install jax jaxlib")
                return MatrixResult.failure(MatrixStatus.BACKEND_INIT_FAILED)

            jax.config.update("jax_enable_x64", True)
            try:
                devices = jax.devices(self.platform)
                self.device = devices[self.device_index]
            except (RuntimeError, IndexError) as e:
                logger.error(f"No JAX device {self.platform}:{self.device_index}: {e}")
                return MatrixResult.failure(MatrixStatus.BACKEND_INIT_FAILED)

            logger.info(f"JAX matrix backend bound to {self.device}")
            return MatrixResult(value=None)

    def finish(self) -> None:
        with self._lock:
            if self.device is not None:
                logger.debug(f"Releasing JAX matrix backend on {self.device}")
            self.device = None

    def _factor(self, matrix: np.ndarray, n: int):
        lu, piv = jax_linalg.lu_factor(jax.device_put(jnp.asarray(matrix), self.device))
        if pivots_singular(np.asarray(jnp.diag(lu)), n):
            return None
        return lu, piv

    def _run(self, matrix: np.ndarray, rhs: np.ndarray, n: int) -> MatrixResult:
        with self._lock:
            if self.device is None:
                return MatrixResult.failure(MatrixStatus.BACKEND_NOT_INITIALIZED)
            try:
                factors = self._factor(matrix, n)
                if factors is None:
                    return MatrixResult.failure(MatrixStatus.SINGULAR)
                x = jax_linalg.lu_solve(factors, jax.device_put(jnp.asarray(rhs), self.device))
                result = np.asarray(x, dtype=np.float64)
            except (RuntimeError, ValueError, TypeError) as e:
                logger.error(f"JAX solve failed: {e}")
                return MatrixResult.failure(MatrixStatus.BACKEND_FAILURE)

        if not np.all(np.isfinite(result)):
            return MatrixResult.failure(MatrixStatus.SINGULAR)
        return MatrixResult(value=result)

    def solve(self, a: np.ndarray, b: np.ndarray, n: int) -> MatrixResult:
        """Solve ``a @ x = b`` on the bound device."""
        if not self.initialized:
            return MatrixResult.failure(MatrixStatus.BACKEND_NOT_INITIALIZED)
        matrix, vector, status = check_system(a, b, n)
        if status != MatrixStatus.SUCCESS:
            return MatrixResult.failure(status)
        return self._run(matrix, vector, n)

    def invert(self, a: np.ndarray, n: int) -> MatrixResult:
        """Invert a matrix on the bound device by solving against the identity."""
        if not self.initialized:
            return MatrixResult.failure(MatrixStatus.BACKEND_NOT_INITIALIZED)
        matrix, status = as_square(a, n)
        if status != MatrixStatus.SUCCESS:
            return MatrixResult.failure(status)
        return self._run(matrix, np.eye(n), n)


def jax_available(platform: Optional[str] = None) -> bool:
    """Whether JAX is installed and, if given, ``platform`` has a device."""
    if not HAS_JAX:
        return False
    if platform is None:
        return True
    try:
        return len(jax.devices(platform)) > 0
    except RuntimeError:
        return False
