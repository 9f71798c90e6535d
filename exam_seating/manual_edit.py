"""
Single-seat reassignment on a completed run.

The occupancy check and the write happen under a per-run lock, and the
``uq_allocation_seat`` constraint rejects anything that slips past it from
another process. Adjacency is not re-checked after a manual move.
"""

import logging
import threading
import weakref

from sqlalchemy.exc import IntegrityError

from exam_seating.db_models import AllocationDB, HallDB
from exam_seating.errors import NotFound, OutOfBounds, RunStateError, SeatOccupied
from exam_seating.layouts import in_bounds, seat_number
from exam_seating.models import RunStatus

logger = logging.getLogger(__name__)

# a run's lock lives only while some edit holds a reference to it
_run_locks = weakref.WeakValueDictionary()
_run_locks_guard = threading.Lock()


def run_lock(run_id):
    with _run_locks_guard:
        lock = _run_locks.get(run_id)
        if lock is None:
            lock = _run_locks[run_id] = threading.Lock()
        return lock


def _seat_taken(db, run_id, hall_id, row, column, allocation_id):
    return (
        db.query(AllocationDB.id)
        .filter(AllocationDB.allocation_run_id == run_id)
        .filter(AllocationDB.hall_id == hall_id)
        .filter(AllocationDB.row == row)
        .filter(AllocationDB.column == column)
        .filter(AllocationDB.id != allocation_id)
        .first()
    ) is not None


def _occupied(run_id, hall_id, row, column):
    return SeatOccupied(
        f"Seat ({row}, {column}) in hall {hall_id} is already occupied in run {run_id}",
        details={"hall_id": hall_id, "row": row, "column": column},
    )


def reassign(db, allocation_id, hall_id, row, column):
    allocation = db.get(AllocationDB, allocation_id)
    if allocation is None:
        raise NotFound(f"Allocation {allocation_id} not found", code="ALLOCATION_NOT_FOUND")

    run = allocation.allocation_run
    if run.status != RunStatus.COMPLETED.value:
        raise RunStateError(
            f"Allocation run {run.id} is {run.status}; only completed runs can be edited",
            details={"status": run.status},
            code="RUN_NOT_COMPLETED",
        )

    hall = db.get(HallDB, hall_id)
    if hall is None:
        raise NotFound(f"Hall {hall_id} not found", code="HALL_NOT_FOUND")

    if not in_bounds(row, column, hall.rows, hall.columns):
        raise OutOfBounds(
            f"Invalid seat position ({row}, {column}) for hall {hall.name}",
            details={"rows": hall.rows, "columns": hall.columns},
        )

    run_id = run.id
    with run_lock(run_id):
        if _seat_taken(db, run_id, hall.id, row, column, allocation.id):
            raise _occupied(run_id, hall.id, row, column)

        allocation.hall_id = hall.id
        allocation.row = row
        allocation.column = column
        allocation.seat_number = seat_number(row, column, hall.rows, hall.columns, run.seat_numbering)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise _occupied(run_id, hall_id, row, column) from None

    db.refresh(allocation)
    logger.info(
        "Allocation %s moved to hall %s row %s column %s (seat %s)",
        allocation.id,
        hall.id,
        row,
        column,
        allocation.seat_number,
    )
    return allocation
