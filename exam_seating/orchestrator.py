"""
Lifecycle of allocation runs.

A run is created ``pending`` with a fresh seed, moved to ``running`` when
``execute`` picks it up, and ends ``completed`` or ``failed`` exactly once.
Allocations and conflicts are only written for completed runs; a failed run
keeps its failure code and nothing else.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from exam_seating.allocator import allocate_students
from exam_seating.cohorts import get_classifier, tag_students
from exam_seating.config import ASYNC_THRESHOLD
from exam_seating.database import SessionLocal
from exam_seating.db_models import (
    AllocationDB,
    AllocationRunDB,
    ExamDB,
    ExamRegistrationDB,
    HallDB,
    SeatConflictDB,
    StudentDB,
)
from exam_seating.errors import AllocationError, EmptyRoster, NoActiveHalls, NotFound, RunStateError
from exam_seating.layouts import enumerate_seats, total_capacity
from exam_seating.models import Mode, RunStatus, SeatNumbering, Strictness
from exam_seating.shuffler import new_seed, shuffle

logger = logging.getLogger(__name__)


@dataclass
class RunSettings:
    mode: str = Mode.AUTO.value
    seat_numbering: Optional[str] = None  # None: use the exam's default
    adjacency_strictness: str = Strictness.HARD.value
    notes: Optional[str] = None


@dataclass
class ExecutionResult:
    run_id: int
    allocations: List[AllocationDB] = field(default_factory=list)
    conflicts: List[SeatConflictDB] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


def _now():
    return datetime.now(timezone.utc)


def get_run(db, run_id):
    run = db.get(AllocationRunDB, run_id)
    if run is None:
        raise NotFound(f"Allocation run {run_id} not found", code="RUN_NOT_FOUND")
    return run


def list_runs(db, exam_id):
    return (
        db.query(AllocationRunDB)
        .filter(AllocationRunDB.exam_id == exam_id)
        .order_by(AllocationRunDB.created_at.desc(), AllocationRunDB.id.desc())
        .all()
    )


def create_run(db, exam_id, settings=None, created_by=None):
    settings = settings or RunSettings()

    exam = db.get(ExamDB, exam_id)
    if exam is None:
        raise NotFound(f"Exam {exam_id} not found", code="EXAM_NOT_FOUND")

    run = AllocationRunDB(
        exam_id=exam.id,
        created_by=created_by,
        shuffle_seed=new_seed(),
        mode=Mode(settings.mode).value,
        seat_numbering=SeatNumbering(settings.seat_numbering or exam.seat_numbering).value,
        adjacency_strictness=Strictness(settings.adjacency_strictness).value,
        notes=settings.notes,
        status=RunStatus.PENDING.value,
    )
    db.add(run)
    db.commit()
    db.refresh(run)

    logger.info("Created allocation run %s for exam %s", run.id, exam.id)
    return run


def regenerate(db, run_id, created_by=None):
    """New pending run with the same exam and settings but a fresh seed."""
    old = get_run(db, run_id)

    run = AllocationRunDB(
        exam_id=old.exam_id,
        created_by=created_by,
        shuffle_seed=new_seed(),
        mode=old.mode,
        seat_numbering=old.seat_numbering,
        adjacency_strictness=old.adjacency_strictness,
        notes=f"Regenerated from run #{old.id}",
        status=RunStatus.PENDING.value,
    )
    db.add(run)
    db.commit()
    db.refresh(run)

    logger.info("Regenerated allocation run %s as run %s", old.id, run.id)
    return run


def roster_size(db, exam_id):
    return db.query(ExamRegistrationDB).filter(ExamRegistrationDB.exam_id == exam_id).count()


def load_roster(db, exam_id):
    return (
        db.query(StudentDB)
        .join(ExamRegistrationDB, ExamRegistrationDB.student_id == StudentDB.id)
        .filter(ExamRegistrationDB.exam_id == exam_id)
        .order_by(StudentDB.stu_id, StudentDB.id)
        .all()
    )


def execute(db, run_id, lookahead=None):
    """
    Seat the run's roster and persist the outcome.

    Returns an ExecutionResult on success. Any AllocationError marks the run
    failed (with its code) and is re-raised for the caller to report.
    """
    run = get_run(db, run_id)
    if run.status != RunStatus.PENDING.value:
        raise RunStateError(
            f"Allocation run {run.id} is {run.status}, only pending runs can be executed",
            details={"status": run.status},
            code="RUN_NOT_PENDING",
        )

    run.status = RunStatus.RUNNING.value
    db.commit()
    logger.info("Allocation run %s started", run.id)

    try:
        result = _allocate(db, run, lookahead)
    except AllocationError as exc:
        db.rollback()
        _mark_failed(db, run, exc)
        logger.warning("Allocation run %s failed: %s %s", run.id, exc.code, exc.message)
        raise
    except Exception as exc:
        db.rollback()
        _mark_failed(db, run, AllocationError(str(exc), code="INTERNAL_ERROR"))
        logger.exception("Allocation run %s crashed", run.id)
        raise

    logger.info(
        "Allocation run %s completed: %d seated, %d conflicts",
        run.id,
        len(result.allocations),
        len(result.conflicts),
    )
    return result


def _allocate(db, run, lookahead):
    halls = db.query(HallDB).filter(HallDB.is_active.is_(True)).all()
    if not halls:
        raise NoActiveHalls("No active halls available for allocation. Add or activate a hall.")

    students = load_roster(db, run.exam_id)
    if not students:
        raise EmptyRoster(f"No students registered for exam {run.exam_id}")

    classifier = get_classifier(run.exam.separation)
    candidates = shuffle(tag_students(students, classifier), run.shuffle_seed)
    seats = enumerate_seats(halls, run.seat_numbering)

    plan = allocate_students(candidates, seats, run.adjacency_strictness, lookahead)

    allocations = []
    for placement in plan.placements:
        allocations.append(
            AllocationDB(
                allocation_run=run,
                exam_id=run.exam_id,
                student_id=placement.candidate.student_id,
                hall_id=placement.seat.hall_id,
                row=placement.seat.row,
                column=placement.seat.column,
                seat_number=placement.seat.seat_number,
                cohort_key=placement.candidate.key,
            )
        )

    conflicts = []
    for c in plan.conflicts:
        first, second = plan.placements[c.first], plan.placements[c.second]
        conflicts.append(
            SeatConflictDB(
                allocation=allocations[c.first],
                conflicting_allocation=allocations[c.second],
                conflict_type=c.conflict_type.value,
                resolved=False,
                details={
                    "cohort": first.candidate.key,
                    "positions": [
                        {"hall_id": p.seat.hall_id, "row": p.seat.row, "column": p.seat.column}
                        for p in (first, second)
                    ],
                },
            )
        )

    db.add_all(allocations)
    db.add_all(conflicts)
    db.flush()

    distribution = Counter(a.cohort_key or "none" for a in allocations)
    metadata = {
        "total_students": len(allocations),
        "total_conflicts": len(conflicts),
        "unresolved_conflicts": len(conflicts),
        "halls_used": len({a.hall_id for a in allocations}),
        "capacity_total": total_capacity(halls),
        "capacity_used": len(allocations),
        "class_distribution": dict(sorted(distribution.items())),
        "seat_numbering_used": run.seat_numbering,
        "adjacency_strictness": run.adjacency_strictness,
        "lookahead": plan.lookahead,
    }

    run.run_metadata = metadata
    run.status = RunStatus.COMPLETED.value
    run.completed_at = _now()
    db.commit()

    return ExecutionResult(run_id=run.id, allocations=allocations, conflicts=conflicts, metadata=metadata)


def _mark_failed(db, run, exc):
    run.status = RunStatus.FAILED.value
    run.failure_code = exc.code
    run.failure_message = exc.message
    run.completed_at = _now()
    run.run_metadata = {"failure": exc.to_detail()}
    db.commit()


def run_summary(run):
    """Status view of a run for polling clients."""
    return {
        "id": run.id,
        "status": run.status,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "failure": (
            {"code": run.failure_code, "message": run.failure_message}
            if run.failure_code
            else None
        ),
        "metadata": run.run_metadata or {},
    }


def should_run_async(size, requested=None):
    if requested is not None:
        return requested
    return size > ASYNC_THRESHOLD


def execute_in_background(run_id, session_factory=SessionLocal):
    """Worker entry point: same ``execute``, its own session."""
    db = session_factory()
    try:
        result = execute(db, run_id)
        logger.info("Background allocation run %s seated %d students", run_id, len(result.allocations))
    except AllocationError as exc:
        # already recorded on the run
        logger.warning("Background allocation run %s failed: %s", run_id, exc.code)
    except Exception:
        logger.exception("Background allocation run %s crashed", run_id)
        raise
    finally:
        db.close()


def dispatch(db, run, queue=None, requested_async=None, session_factory=SessionLocal):
    """
    Run inline, or hand the run to ``queue`` (anything with ``add_task``).

    Returns the ExecutionResult for inline runs and None when queued.
    """
    if queue is not None and should_run_async(roster_size(db, run.exam_id), requested_async):
        queue.add_task(execute_in_background, run.id, session_factory)
        logger.info("Allocation run %s queued for background execution", run.id)
        return None
    return execute(db, run.id)


def list_conflicts(db, run_id, unresolved_only=False):
    get_run(db, run_id)

    query = (
        db.query(SeatConflictDB)
        .join(AllocationDB, SeatConflictDB.allocation_id == AllocationDB.id)
        .filter(AllocationDB.allocation_run_id == run_id)
    )
    if unresolved_only:
        query = query.filter(SeatConflictDB.resolved.is_(False))
    return query.order_by(SeatConflictDB.id).all()


def resolve_conflict(db, conflict_id, reason=None):
    conflict = db.get(SeatConflictDB, conflict_id)
    if conflict is None:
        raise NotFound(f"Seat conflict {conflict_id} not found", code="CONFLICT_NOT_FOUND")

    conflict.resolved = True
    conflict.reason = reason
    db.commit()
    db.refresh(conflict)
    return conflict


def get_student_allocation(db, exam_id, stu_id):
    """Seat of a student in the latest completed run of an exam."""
    student = db.query(StudentDB).filter(StudentDB.stu_id == stu_id).first()
    if student is None:
        raise NotFound(f"Student {stu_id} not found", code="STUDENT_NOT_FOUND")

    run = (
        db.query(AllocationRunDB)
        .filter(AllocationRunDB.exam_id == exam_id)
        .filter(AllocationRunDB.status == RunStatus.COMPLETED.value)
        .order_by(AllocationRunDB.completed_at.desc(), AllocationRunDB.id.desc())
        .first()
    )
    if run is None:
        raise NotFound("No allocation found for this exam", code="RUN_NOT_FOUND")

    allocation = (
        db.query(AllocationDB)
        .filter(AllocationDB.allocation_run_id == run.id)
        .filter(AllocationDB.student_id == student.id)
        .first()
    )
    if allocation is None:
        raise NotFound("Student not allocated in this exam", code="ALLOCATION_NOT_FOUND")
    return allocation
