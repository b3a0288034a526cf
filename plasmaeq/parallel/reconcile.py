"""
Reconciling cell state after each worker has updated its own shard.

Every worker broadcasts the fields it changed for its cells, one worker per
round, and unpacks what the others send into its own copy of the grid.
After ``size`` rounds every worker holds identical cells.

Each round's buffer is a flat float64 array laid out as::

    [producer rank, cell count, (cell index, field values...) * max shard]

The buffer size depends only on the number of cells, the number of
workers and the field set, so it is the same on every worker and in every
round. Integers and flags travel as float64, which is exact for values
below 2**53.
"""

from dataclasses import dataclass, fields as dataclass_fields
from typing import List, Sequence, Tuple

import numpy as np

from plasmaeq.core.abc import Communicator
from plasmaeq.core.errors import ReconciliationError
from plasmaeq.core.logging_config import get_logger
from plasmaeq.parallel.sharding import get_parallel_nrange, max_shard_size
from plasmaeq.plasma.state import PlasmaCell

logger = get_logger("parallel.reconcile")

HEADER_SIZE = 2

_SCALAR_TYPES = {f.name: f.type for f in dataclass_fields(PlasmaCell)}


@dataclass(frozen=True)
class CellFieldSet:
    """
    The cell attributes transferred by one reconciliation.

    Attributes may be dotted paths into a nested object, such as
    ``superlevel.threshold``.

    Attributes
    ----------
    name : str
        Label used in log messages
    scalars : tuple of str
        Scalar attributes (float, int or bool)
    arrays : tuple of str
        numpy array attributes
    """

    name: str
    scalars: Tuple[str, ...] = ()
    arrays: Tuple[str, ...] = ()

    def array_lengths(self, cell: PlasmaCell) -> List[int]:
        return [int(np.size(_get(cell, path))) for path in self.arrays]

    def record_size(self, cell: PlasmaCell) -> int:
        """Length of one packed cell: index, scalars, then arrays."""
        return 1 + len(self.scalars) + sum(self.array_lengths(cell))


PLASMA_UPDATE_FIELDS = CellFieldSet(
    name="plasma",
    scalars=(
        "ne",
        "rho",
        "vol",
        "t_r",
        "t_e",
        "t_r_old",
        "t_e_old",
        "w",
        "ntot",
        "inwind",
        "heat_tot",
        "heat_photo",
        "heat_auger",
        "heat_ff",
        "heat_lines",
        "heat_comp",
        "heat_ind_comp",
        "heat_ch_ex",
        "heat_shock",
        "abs_tot",
        "abs_photo",
        "abs_auger",
        "cool_tot",
        "lum_tot",
        "lum_ff",
        "cool_rr",
        "lum_rr",
        "lum_lines",
        "cool_comp",
        "cool_dr",
        "cool_di",
        "cool_adiabatic",
        "kpkt_rates_known",
        "matrix_rates_known",
    ),
    arrays=(
        "density",
        "partition",
        "levden",
        "ioniz",
        "recomb",
        "F_vis",
        "F_UV",
        "F_Xray",
    ),
)

SUPERLEVEL_FIELDS = CellFieldSet(
    name="superlevel",
    arrays=("superlevel.lte_pops", "superlevel.threshold", "superlevel.norm"),
)

RECOMB_ESTIMATOR_FIELDS = CellFieldSet(
    name="recomb",
    arrays=("recomb_simple", "recomb_simple_upweight"),
)


def _get(obj, path: str):
    for part in path.split("."):
        obj = getattr(obj, part)
        if obj is None:
            raise ReconciliationError(f"cell field {path} is not allocated")
    return obj


def _set_scalar(obj, path: str, value: float) -> None:
    kind = _SCALAR_TYPES.get(path, float)
    *parents, leaf = path.split(".")
    for part in parents:
        obj = getattr(obj, part)
    if kind is bool:
        setattr(obj, leaf, bool(value))
    elif kind is int:
        setattr(obj, leaf, int(value))
    else:
        setattr(obj, leaf, float(value))


def pack_cell(cell: PlasmaCell, fields: CellFieldSet, out: np.ndarray) -> None:
    """Write one cell's record into ``out``, which has ``record_size`` entries."""
    out[0] = cell.nplasma
    pos = 1
    for path in fields.scalars:
        out[pos] = float(_get(cell, path))
        pos += 1
    for path in fields.arrays:
        values = np.ravel(_get(cell, path))
        out[pos : pos + values.size] = values
        pos += values.size


def unpack_cell(cell: PlasmaCell, fields: CellFieldSet, record: np.ndarray) -> None:
    """Overwrite a cell's fields with a packed record."""
    pos = 1
    for path in fields.scalars:
        _set_scalar(cell, path, record[pos])
        pos += 1
    for path in fields.arrays:
        target = _get(cell, path)
        target[...] = record[pos : pos + target.size].reshape(target.shape)
        pos += target.size


def reconcile_cells(
    cells: Sequence[PlasmaCell],
    comm: Communicator,
    nmin: int,
    nmax: int,
    fields: CellFieldSet,
) -> int:
    """
    Share each worker's updated cells with every other worker.

    Every worker must call this with the same cells, field set and group.
    Each runs ``comm.size`` broadcast rounds, including rounds in which the
    producer has no cells.

    Parameters
    ----------
    cells : Sequence[PlasmaCell]
        This worker's copy of the whole grid
    comm : Communicator
        Worker group
    nmin, nmax : int
        This worker's own range, as returned by
        :func:`~plasmaeq.parallel.sharding.get_parallel_nrange`
    fields : CellFieldSet
        Fields to transfer

    Returns
    -------
    int
        Number of cells received from other workers

    Raises
    ------
    ReconciliationError
        If this worker's range disagrees with the shared partition, a cell
        lacks one of the fields, or a received header does not match the
        round's producer and range
    """
    ntotal = len(cells)
    size = comm.size
    rank = comm.rank

    expected = get_parallel_nrange(rank, ntotal, size)
    if (nmin, nmax) != expected[:2]:
        raise ReconciliationError(
            f"rank {rank}: range [{nmin}, {nmax}) differs from partition [{expected[0]}, {expected[1]})"
        )

    # fail before the first round, while no worker is inside a broadcast
    for cell in cells:
        for path in fields.arrays:
            _get(cell, path)

    if ntotal == 0:
        record = 1
    else:
        record = fields.record_size(cells[0])
    nslots = max_shard_size(ntotal, size)
    buf = np.zeros(HEADER_SIZE + nslots * record, dtype=np.float64)

    received = 0
    for root in range(size):
        root_min, root_max, root_ndo = get_parallel_nrange(root, ntotal, size)
        buf[:] = 0.0

        if root == rank:
            buf[0] = rank
            buf[1] = root_ndo
            for slot, n in enumerate(range(root_min, root_max)):
                start = HEADER_SIZE + slot * record
                pack_cell(cells[n], fields, buf[start : start + record])

        comm.bcast_buffer(buf, root)

        if root == rank:
            continue

        if int(buf[0]) != root or int(buf[1]) != root_ndo:
            raise ReconciliationError(
                f"rank {rank}: {fields.name} round {root} header "
                f"(producer {buf[0]:.0f}, {buf[1]:.0f} cells) expected (producer {root}, {root_ndo} cells)"
            )

        for slot in range(root_ndo):
            start = HEADER_SIZE + slot * record
            chunk = buf[start : start + record]
            n = int(chunk[0])
            if not root_min <= n < root_max:
                raise ReconciliationError(
                    f"rank {rank}: {fields.name} round {root} carried cell {n} "
                    f"outside [{root_min}, {root_max})"
                )
            unpack_cell(cells[n], fields, chunk)
            received += 1

    logger.debug(f"rank {rank}: reconciled {fields.name} fields, {received} cells received")
    return received
