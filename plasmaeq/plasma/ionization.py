"""
Matrix-based ionization balance.

The rate matrix is supplied by an external collaborator: entry ``[i, j]`` is
the rate at which ion ``j`` feeds ion ``i``, with the total loss rate of ion
``j`` on the diagonal as a negative number. In steady state
``rate_matrix @ n = 0``; one equation is redundant and is replaced by
particle conservation.
"""

from typing import Optional

import numpy as np

from plasmaeq.core.abc import DenseSolverBackend
from plasmaeq.core.factory import solve_matrix
from plasmaeq.core.logging_config import get_logger
from plasmaeq.matrix.base import MatrixResult, MatrixStatus

logger = get_logger("plasma.ionization")


def conservation_system(rate_matrix: np.ndarray, total: float):
    """
    Build the linear system with the last row replaced by conservation.

    Returns
    -------
    a : np.ndarray
        Copy of the rate matrix with its last row set to ones
    b : np.ndarray
        Zero vector with ``total`` in its last entry
    """
    a = np.array(rate_matrix, dtype=np.float64, copy=True)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"rate matrix must be square, got shape {a.shape}")
    a[-1, :] = 1.0
    b = np.zeros(a.shape[0])
    b[-1] = total
    return a, b


def solve_ion_populations(
    rate_matrix: np.ndarray,
    total: float,
    backend: Optional[DenseSolverBackend] = None,
) -> MatrixResult:
    """
    Solve for steady-state ion densities.

    Parameters
    ----------
    rate_matrix : np.ndarray
        Square rate matrix over the ions of one element
    total : float
        Total number density of the element in cm^-3
    backend : DenseSolverBackend, optional
        Backend to use; the process-wide backend if omitted

    Returns
    -------
    MatrixResult
        Ion densities on success. A solution with significantly negative
        densities is reported as SINGULAR so the caller skips the cell.
    """
    a, b = conservation_system(rate_matrix, total)
    n = a.shape[0]

    if backend is None:
        result = solve_matrix(a, b, n)
    else:
        result = backend.solve(a, b, n)

    if not result.ok:
        return result

    densities = result.value
    if np.any(densities < -1e-10 * abs(total)):
        logger.debug(f"Negative ion densities from rate solve: {densities}")
        return MatrixResult.failure(MatrixStatus.SINGULAR)

    return MatrixResult(value=np.clip(densities, 0.0, None))
