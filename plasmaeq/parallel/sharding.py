"""
Splitting the plasma cell range between workers.
"""

from typing import List, Tuple

from plasmaeq.core.logging_config import get_logger

logger = get_logger("parallel.sharding")


def get_parallel_nrange(rank: int, ntotal: int, nprocs: int) -> Tuple[int, int, int]:
    """
    Contiguous range of cells handled by one worker.

    The first ``ntotal % nprocs`` workers take one cell more than the rest.
    The result depends only on the three arguments, so every worker can
    compute every other worker's range.

    Parameters
    ----------
    rank : int
        Worker index, ``0 <= rank < nprocs``
    ntotal : int
        Number of cells
    nprocs : int
        Number of workers

    Returns
    -------
    nmin : int
        First cell of the range
    nmax : int
        One past the last cell of the range
    ndo : int
        Number of cells in the range (may be zero)
    """
    if nprocs < 1:
        raise ValueError(f"nprocs must be positive, got {nprocs}")
    if not 0 <= rank < nprocs:
        raise ValueError(f"rank {rank} out of range for {nprocs} workers")
    if ntotal < 0:
        raise ValueError(f"ntotal must be non-negative, got {ntotal}")

    num_mpi_cells = ntotal // nprocs
    num_mpi_extra = ntotal - nprocs * num_mpi_cells

    if rank < num_mpi_extra:
        nmin = rank * (num_mpi_cells + 1)
        nmax = nmin + num_mpi_cells + 1
    else:
        nmin = num_mpi_extra * (num_mpi_cells + 1) + (rank - num_mpi_extra) * num_mpi_cells
        nmax = nmin + num_mpi_cells

    return nmin, nmax, nmax - nmin


def all_ranges(ntotal: int, nprocs: int) -> List[Tuple[int, int, int]]:
    """Ranges of every worker, in rank order."""
    return [get_parallel_nrange(rank, ntotal, nprocs) for rank in range(nprocs)]


def max_shard_size(ntotal: int, nprocs: int) -> int:
    """Size of the largest shard, ``ceil(ntotal / nprocs)``."""
    return -(-ntotal // nprocs)
