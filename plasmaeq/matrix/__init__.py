"""
Dense linear solvers.

This module provides:
- Status codes and error strings shared by all backends
- CPU backend (scipy LU)
- Accelerator backend (JAX LU)
"""

from plasmaeq.matrix.base import MatrixStatus, MatrixResult, error_string
from plasmaeq.matrix.cpu import CpuBackend
from plasmaeq.matrix.gpu import JaxBackend, HAS_JAX

__all__ = [
    "MatrixStatus",
    "MatrixResult",
    "error_string",
    "CpuBackend",
    "JaxBackend",
    "HAS_JAX",
]
