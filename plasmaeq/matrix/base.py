"""
Status codes, results and input checks shared by the dense solver backends.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple, Union

import numpy as np


class MatrixStatus(IntEnum):
    """Outcome of a dense solve or inversion."""

    SUCCESS = 0
    SINGULAR = 1
    DIMENSION_MISMATCH = 2
    NON_FINITE_INPUT = 3
    BACKEND_INIT_FAILED = 4
    BACKEND_NOT_INITIALIZED = 5
    BACKEND_FAILURE = 6


_ERROR_STRINGS = {
    MatrixStatus.SUCCESS: "success",
    MatrixStatus.SINGULAR: "matrix is singular or nearly singular",
    MatrixStatus.DIMENSION_MISMATCH: "matrix and vector dimensions do not match the system size",
    MatrixStatus.NON_FINITE_INPUT: "matrix or vector contains NaN or infinite values",
    MatrixStatus.BACKEND_INIT_FAILED: "solver backend failed to initialize (accelerator unavailable)",
    MatrixStatus.BACKEND_NOT_INITIALIZED: "solver backend used before initialization",
    MatrixStatus.BACKEND_FAILURE: "solver backend raised an internal error",
}


def error_string(code: Union[int, MatrixStatus]) -> str:
    """
    Human-readable description of a matrix status code.

    Parameters
    ----------
    code : int or MatrixStatus
        Status code returned by any backend

    Returns
    -------
    str
        Description; unknown codes are reported as such rather than raising
    """
    try:
        return _ERROR_STRINGS[MatrixStatus(code)]
    except ValueError:
        return f"unknown matrix error code {code}"


@dataclass
class MatrixResult:
    """
    Result of a solve or inversion.

    Attributes
    ----------
    value : np.ndarray or None
        Solution vector, or inverse matrix; None unless ``status`` is SUCCESS
    status : MatrixStatus
        Outcome code
    """

    value: Optional[np.ndarray]
    status: MatrixStatus = MatrixStatus.SUCCESS

    @property
    def ok(self) -> bool:
        return self.status == MatrixStatus.SUCCESS

    @classmethod
    def failure(cls, status: MatrixStatus) -> "MatrixResult":
        return cls(value=None, status=status)


def as_square(a, n: int) -> Tuple[Optional[np.ndarray], MatrixStatus]:
    """
    Coerce ``a`` to an ``n`` x ``n`` float64 array.

    Accepts a 2-D array of the right shape or a flat row-major array of
    ``n * n`` entries. The input is never modified.
    """
    arr = np.asarray(a, dtype=np.float64)
    if n <= 0:
        return None, MatrixStatus.DIMENSION_MISMATCH
    if arr.ndim == 1 and arr.size == n * n:
        arr = arr.reshape(n, n)
    if arr.shape != (n, n):
        return None, MatrixStatus.DIMENSION_MISMATCH
    if not np.all(np.isfinite(arr)):
        return None, MatrixStatus.NON_FINITE_INPUT
    return arr, MatrixStatus.SUCCESS


def as_vector(b, n: int) -> Tuple[Optional[np.ndarray], MatrixStatus]:
    """Coerce ``b`` to a length-``n`` float64 vector."""
    arr = np.asarray(b, dtype=np.float64).ravel()
    if arr.size != n:
        return None, MatrixStatus.DIMENSION_MISMATCH
    if not np.all(np.isfinite(arr)):
        return None, MatrixStatus.NON_FINITE_INPUT
    return arr, MatrixStatus.SUCCESS


def check_system(a, b, n: int) -> Tuple[Optional[np.ndarray], Optional[np.ndarray], MatrixStatus]:
    """Validate a linear system, returning the coerced matrix and vector."""
    matrix, status = as_square(a, n)
    if status != MatrixStatus.SUCCESS:
        return None, None, status
    vector, status = as_vector(b, n)
    if status != MatrixStatus.SUCCESS:
        return None, None, status
    return matrix, vector, MatrixStatus.SUCCESS


def pivots_singular(diagonal: np.ndarray, n: int) -> bool:
    """
    Whether the pivots of an LU factorization mark the matrix as singular.

    A zero pivot is singular outright. A pivot that is negligible next to
    the largest one (ratio below ``n * eps``) is treated as singular too.
    """
    pivots = np.abs(diagonal)
    largest = np.max(pivots)
    if largest == 0.0 or np.min(pivots) == 0.0:
        return True
    return np.min(pivots) / largest < n * np.finfo(np.float64).eps
