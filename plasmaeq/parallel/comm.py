"""
Communicators for the collective operations of the wind update.

Three implementations share the :class:`~plasmaeq.core.abc.Communicator`
interface:

- :class:`MPICommunicator` wraps an mpi4py communicator, one worker per
  process.
- :class:`SerialCommunicator` is a group of one.
- :class:`InProcessGroup` runs a group of workers as threads of a single
  process, exchanging buffers through shared memory. It is used for
  single-host runs and to exercise the reconciliation in tests.
"""

import threading
from typing import Any, Callable, List, Optional

import numpy as np

try:
    from mpi4py import MPI

    HAS_MPI = True
except ImportError:
    HAS_MPI = False
    MPI = None

from plasmaeq.core.abc import Communicator
from plasmaeq.core.errors import ReconciliationError
from plasmaeq.core.logging_config import get_logger, set_log_rank

logger = get_logger("parallel.comm")


class SerialCommunicator(Communicator):
    """A group containing only this process."""

    @property
    def rank(self) -> int:
        return 0

    @property
    def size(self) -> int:
        return 1

    def bcast_buffer(self, buf: np.ndarray, root: int) -> np.ndarray:
        if root != 0:
            raise ReconciliationError(f"broadcast root {root} outside a group of one")
        return buf

    def barrier(self) -> None:
        pass

    def allreduce_sum(self, value: float) -> float:
        return value


class MPICommunicator(Communicator):
    """
    Collective operations over an mpi4py communicator.

    Parameters
    ----------
    comm : mpi4py.MPI.Comm, optional
        Communicator to use; ``MPI.COMM_WORLD`` if omitted
    """

    def __init__(self, comm: Optional[Any] = None):
        if not HAS_MPI:
            raise ImportError("mpi4py is required for MPI runs. Install with: pip install mpi4py")
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self._rank = self.comm.Get_rank()
        self._size = self.comm.Get_size()

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self._size

    def bcast_buffer(self, buf: np.ndarray, root: int) -> np.ndarray:
        try:
            self.comm.Bcast([buf, MPI.DOUBLE], root=root)
        except MPI.Exception as e:
            raise ReconciliationError(f"MPI broadcast from rank {root} failed: {e}") from e
        return buf

    def barrier(self) -> None:
        self.comm.Barrier()

    def allreduce_sum(self, value: float) -> float:
        return self.comm.allreduce(value, op=MPI.SUM)


class _GroupState:
    """Memory shared by the members of an :class:`InProcessGroup`."""

    def __init__(self, size: int, timeout: Optional[float]):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=timeout)
        self.slot: Optional[np.ndarray] = None
        self.values: List[float] = [0.0] * size


class InProcessCommunicator(Communicator):
    """One member of an :class:`InProcessGroup`."""

    def __init__(self, state: _GroupState, rank: int):
        self._state = state
        self._rank = rank

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self._state.size

    def _wait(self) -> None:
        try:
            self._state.barrier.wait()
        except threading.BrokenBarrierError as e:
            raise ReconciliationError(
                f"rank {self._rank}: in-process group broken or timed out"
            ) from e

    def bcast_buffer(self, buf: np.ndarray, root: int) -> np.ndarray:
        if self._rank == root:
            self._state.slot = np.array(buf, copy=True)
        self._wait()
        if self._rank != root:
            sent = self._state.slot
            if sent is None or sent.shape != buf.shape:
                self._state.barrier.abort()
                raise ReconciliationError(
                    f"rank {self._rank}: broadcast buffer shape mismatch from root {root}"
                )
            buf[...] = sent
        # nobody may refill the slot until every member has read it
        self._wait()
        return buf

    def barrier(self) -> None:
        self._wait()

    def allreduce_sum(self, value: float) -> float:
        self._state.values[self._rank] = value
        self._wait()
        total = float(sum(self._state.values))
        self._wait()
        return total


class InProcessGroup:
    """
    A group of workers running as threads of one process.

    Parameters
    ----------
    size : int
        Number of workers
    timeout : float, optional
        Seconds a worker waits at a collective before the group is declared
        broken; None waits forever
    """

    def __init__(self, size: int, timeout: Optional[float] = None):
        if size < 1:
            raise ValueError(f"group size must be positive, got {size}")
        self._state = _GroupState(size, timeout)
        self.communicators = [InProcessCommunicator(self._state, rank) for rank in range(size)]

    @property
    def size(self) -> int:
        return self._state.size

    def abort(self) -> None:
        """Break the group so that every waiting worker fails."""
        self._state.barrier.abort()

    def run(self, target: Callable[[Communicator], Any]) -> List[Any]:
        """
        Run ``target(comm)`` on every worker and collect the results.

        If any worker raises, the group is aborted so the others do not
        wait forever, and the first exception raised is re-raised.

        Returns
        -------
        list
            Return value of each worker, in rank order
        """
        results: List[Any] = [None] * self.size
        errors: List[Exception] = []
        lock = threading.Lock()

        def worker(comm: InProcessCommunicator) -> None:
            try:
                set_log_rank(comm.rank)
                results[comm.rank] = target(comm)
            except Exception as e:
                with lock:
                    errors.append(e)
                self.abort()

        threads = [
            threading.Thread(target=worker, args=(comm,), name=f"plasmaeq-rank-{comm.rank}")
            for comm in self.communicators
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # later errors are the other workers seeing the broken group
        if errors:
            raise errors[0]
        return results


def get_communicator() -> Communicator:
    """
    Communicator for the current process.

    MPI is used when mpi4py is installed and the process was launched with
    more than one rank; otherwise the run is serial.
    """
    if HAS_MPI and MPI.COMM_WORLD.Get_size() > 1:
        logger.info(f"Using MPI with {MPI.COMM_WORLD.Get_size()} ranks")
        return MPICommunicator()
    return SerialCommunicator()
