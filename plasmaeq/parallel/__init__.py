"""
Distribution of the cell grid across workers.

This module provides:
- Shard ranges for each worker
- Communicators (MPI, serial, in-process threads)
- Reconciliation of updated cells between workers
"""

from plasmaeq.parallel.sharding import get_parallel_nrange, all_ranges
from plasmaeq.parallel.comm import (
    SerialCommunicator,
    MPICommunicator,
    InProcessGroup,
    get_communicator,
    HAS_MPI,
)
from plasmaeq.parallel.reconcile import (
    CellFieldSet,
    PLASMA_UPDATE_FIELDS,
    SUPERLEVEL_FIELDS,
    RECOMB_ESTIMATOR_FIELDS,
    reconcile_cells,
)

__all__ = [
    "get_parallel_nrange",
    "all_ranges",
    "SerialCommunicator",
    "MPICommunicator",
    "InProcessGroup",
    "get_communicator",
    "HAS_MPI",
    "CellFieldSet",
    "PLASMA_UPDATE_FIELDS",
    "SUPERLEVEL_FIELDS",
    "RECOMB_ESTIMATOR_FIELDS",
    "reconcile_cells",
]
