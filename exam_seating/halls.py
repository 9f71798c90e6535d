"""Read-only hall views: the seating chart of a run and capacity totals."""

from exam_seating.db_models import AllocationDB, HallDB
from exam_seating.errors import NotFound
from exam_seating.layouts import seat_number
from exam_seating.models import SeatNumbering
from exam_seating.orchestrator import get_run


def hall_grid(db, hall_id, run_id=None):
    """
    Seating chart of a hall as ``rows`` lists of ``columns`` cells.

    Without a run every cell is empty and numbered row-major. With a run the
    cells are numbered with the run's scheme and filled from its allocations.
    """
    hall = db.get(HallDB, hall_id)
    if hall is None:
        raise NotFound(f"Hall {hall_id} not found", code="HALL_NOT_FOUND")

    numbering = SeatNumbering.ROW_MAJOR.value
    allocations = []
    if run_id is not None:
        run = get_run(db, run_id)
        numbering = run.seat_numbering
        allocations = (
            db.query(AllocationDB)
            .filter(AllocationDB.allocation_run_id == run.id)
            .filter(AllocationDB.hall_id == hall.id)
            .all()
        )

    grid = []
    for r in range(1, hall.rows + 1):
        grid.append([
            {
                "row": r,
                "column": c,
                "seat_number": seat_number(r, c, hall.rows, hall.columns, numbering),
                "allocation_id": None,
                "stu_id": None,
            }
            for c in range(1, hall.columns + 1)
        ])

    for a in allocations:
        cell = grid[a.row - 1][a.column - 1]
        cell["allocation_id"] = a.id
        cell["stu_id"] = a.student.stu_id

    return grid


def hall_stats(db):
    halls = db.query(HallDB).all()
    active = [h.capacity for h in halls if h.is_active]
    return {
        "total_halls": len(halls),
        "active_halls": len(active),
        "total_capacity": sum(active),
        "average_capacity": sum(active) / len(active) if active else 0,
    }
