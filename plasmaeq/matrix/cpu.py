"""
CPU dense solver backend built on LAPACK LU factorization through scipy.
"""

import warnings

import numpy as np
from scipy import linalg

from plasmaeq.core.abc import DenseSolverBackend
from plasmaeq.core.logging_config import get_logger
from plasmaeq.matrix.base import (
    MatrixResult,
    MatrixStatus,
    as_square,
    check_system,
    pivots_singular,
)

logger = get_logger("matrix.cpu")


class CpuBackend(DenseSolverBackend):
    """
    LU-decomposition solver running on the host.

    Stateless between calls, so it is safe to use from several threads.
    """

    name = "cpu"
    thread_safe = True

    def init(self) -> MatrixResult:
        logger.debug("CPU matrix backend ready")
        return MatrixResult(value=None, status=MatrixStatus.SUCCESS)

    def finish(self) -> None:
        pass

    def _factor(self, matrix: np.ndarray, n: int):
        with warnings.catch_warnings():
            # singular matrices are reported through the pivots instead
            warnings.simplefilter("ignore", linalg.LinAlgWarning)
            warnings.simplefilter("ignore", RuntimeWarning)
            lu, piv = linalg.lu_factor(matrix, check_finite=False)
        if pivots_singular(np.diag(lu), n):
            return None
        return lu, piv

    def solve(self, a: np.ndarray, b: np.ndarray, n: int) -> MatrixResult:
        """
        Solve ``a @ x = b``.

        Parameters
        ----------
        a : np.ndarray
            ``n`` x ``n`` matrix, or its ``n * n`` entries in row-major order
        b : np.ndarray
            Right-hand side of length ``n``
        n : int
            System size

        Returns
        -------
        MatrixResult
            Solution vector on success
        """
        matrix, vector, status = check_system(a, b, n)
        if status != MatrixStatus.SUCCESS:
            return MatrixResult.failure(status)

        try:
            factors = self._factor(matrix, n)
            if factors is None:
                return MatrixResult.failure(MatrixStatus.SINGULAR)
            x = linalg.lu_solve(factors, vector, check_finite=False)
        except (linalg.LinAlgError, ValueError) as e:
            logger.debug(f"LU solve failed: {e}")
            return MatrixResult.failure(MatrixStatus.SINGULAR)

        if not np.all(np.isfinite(x)):
            return MatrixResult.failure(MatrixStatus.SINGULAR)
        return MatrixResult(value=x)

    def invert(self, a: np.ndarray, n: int) -> MatrixResult:
        """Invert an ``n`` x ``n`` matrix by solving against the identity."""
        matrix, status = as_square(a, n)
        if status != MatrixStatus.SUCCESS:
            return MatrixResult.failure(status)

        try:
            factors = self._factor(matrix, n)
            if factors is None:
                return MatrixResult.failure(MatrixStatus.SINGULAR)
            inverse = linalg.lu_solve(factors, np.eye(n), check_finite=False)
        except (linalg.LinAlgError, ValueError) as e:
            logger.debug(f"LU inversion failed: {e}")
            return MatrixResult.failure(MatrixStatus.SINGULAR)

        if not np.all(np.isfinite(inverse)):
            return MatrixResult.failure(MatrixStatus.SINGULAR)
        return MatrixResult(value=inverse)
