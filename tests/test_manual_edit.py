import gc
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from exam_seating import manual_edit, orchestrator
from exam_seating.database import Base
from exam_seating.db_models import AllocationDB, AllocationRunDB, ExamDB, ExamRegistrationDB, HallDB, StudentDB
from exam_seating.errors import NotFound, OutOfBounds, RunStateError, SeatOccupied
from exam_seating.manual_edit import reassign, run_lock
from exam_seating.orchestrator import RunSettings


@pytest.fixture
def completed_run(db, make_hall, make_exam):
    hall = make_hall("Main", rows=2, columns=3)
    exam = make_exam(["X", "Y", "Z"])
    run = orchestrator.create_run(db, exam.id, RunSettings(seat_numbering="column_major"))
    orchestrator.execute(db, run.id)
    return run, hall


def seat_of(run, row, column):
    return next(a for a in run.allocations if a.row == row and a.column == column)


def test_reassign_onto_occupied_seat(db, completed_run):
    run, hall = completed_run
    a = seat_of(run, 1, 1)
    b = next(x for x in run.allocations if x.id != a.id)

    with pytest.raises(SeatOccupied) as exc:
        reassign(db, b.id, hall.id, 1, 1)

    assert exc.value.code == "SEAT_OCCUPIED"
    db.refresh(b)
    assert (b.row, b.column) != (1, 1)


def test_reassign_to_free_seat_recomputes_number(db, completed_run):
    run, hall = completed_run
    taken = {(a.row, a.column) for a in run.allocations}
    free = next((r, c) for r in range(1, 3) for c in range(1, 4) if (r, c) not in taken)
    moved = run.allocations[0]

    result = reassign(db, moved.id, hall.id, *free)

    assert (result.row, result.column) == free
    # column-major numbering on a 2-row hall
    assert result.seat_number == (free[1] - 1) * 2 + free[0]


def test_reassign_to_own_seat_is_allowed(db, completed_run):
    run, hall = completed_run
    a = run.allocations[0]
    assert reassign(db, a.id, hall.id, a.row, a.column).id == a.id


@pytest.mark.parametrize("row,column", [(0, 1), (3, 1), (1, 4), (1, -2)])
def test_reassign_out_of_bounds(db, completed_run, row, column):
    run, hall = completed_run
    with pytest.raises(OutOfBounds):
        reassign(db, run.allocations[0].id, hall.id, row, column)


def test_reassign_across_halls(db, completed_run, make_hall):
    run, _ = completed_run
    annex = make_hall("Annex", rows=1, columns=1)

    moved = reassign(db, run.allocations[0].id, annex.id, 1, 1)

    assert moved.hall_id == annex.id
    assert moved.seat_number == 1


def test_reassign_unknown_targets(db, completed_run):
    run, hall = completed_run
    with pytest.raises(NotFound) as exc:
        reassign(db, 999, hall.id, 1, 1)
    assert exc.value.code == "ALLOCATION_NOT_FOUND"

    with pytest.raises(NotFound) as exc:
        reassign(db, run.allocations[0].id, 999, 1, 1)
    assert exc.value.code == "HALL_NOT_FOUND"


def test_reassign_requires_completed_run(db, make_hall, make_exam):
    hall = make_hall()
    exam = make_exam(["X"])
    run = orchestrator.create_run(db, exam.id)
    student_id = exam.registrations[0].student_id
    stray = AllocationDB(
        allocation_run_id=run.id, exam_id=exam.id, student_id=student_id,
        hall_id=hall.id, row=1, column=1, seat_number=1,
    )
    db.add(stray)
    db.commit()

    with pytest.raises(RunStateError) as exc:
        reassign(db, stray.id, hall.id, 2, 2)
    assert exc.value.code == "RUN_NOT_COMPLETED"
    assert db.get(AllocationRunDB, run.id).status == "pending"


def test_run_lock_is_shared_per_run():
    assert run_lock(1) is run_lock(1)
    assert run_lock(1) is not run_lock(2)


def test_unused_run_locks_are_dropped():
    lock = run_lock(77)
    assert manual_edit._run_locks.get(77) is lock

    del lock
    gc.collect()
    assert 77 not in manual_edit._run_locks


def test_constraint_rejects_seat_the_check_missed(db, completed_run, monkeypatch):
    run, hall = completed_run
    a = seat_of(run, 1, 1)
    b = next(x for x in run.allocations if x.id != a.id)
    before = (b.hall_id, b.row, b.column, b.seat_number)
    monkeypatch.setattr(manual_edit, "_seat_taken", lambda *args: False)

    with pytest.raises(SeatOccupied):
        reassign(db, b.id, hall.id, 1, 1)

    db.refresh(b)
    assert (b.hall_id, b.row, b.column, b.seat_number) == before


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'seating.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_concurrent_moves_to_one_seat(file_session_factory):
    db = file_session_factory()
    hall = HallDB(name="Main", rows=2, columns=3)
    exam = ExamDB(exam_name="Mathematics", separation="department", seat_numbering="row_major")
    for stu_id, dept in ((1, "X"), (2, "Y"), (3, "Z")):
        student = StudentDB(stu_id=stu_id, stu_name=f"Student {stu_id}", year=1, dept=dept, section="A")
        exam.registrations.append(ExamRegistrationDB(student=student))
    db.add_all([hall, exam])
    db.commit()
    run = orchestrator.create_run(db, exam.id)
    orchestrator.execute(db, run.id)
    run_id, hall_id = run.id, hall.id
    db.close()

    for _ in range(10):
        db = file_session_factory()
        allocations = db.query(AllocationDB).filter(AllocationDB.allocation_run_id == run_id).all()
        taken = {(a.row, a.column) for a in allocations}
        free = next((r, c) for r in range(1, 3) for c in range(1, 4) if (r, c) not in taken)
        movers = [a.id for a in allocations[:2]]
        db.close()

        barrier = threading.Barrier(2)
        outcomes = []

        def move(allocation_id):
            session = file_session_factory()
            try:
                barrier.wait()
                reassign(session, allocation_id, hall_id, *free)
                outcomes.append("ok")
            except SeatOccupied:
                outcomes.append("occupied")
            finally:
                session.close()

        threads = [threading.Thread(target=move, args=(i,)) for i in movers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["occupied", "ok"]

        db = file_session_factory()
        seated = (
            db.query(AllocationDB)
            .filter(AllocationDB.allocation_run_id == run_id)
            .filter(AllocationDB.row == free[0], AllocationDB.column == free[1])
            .count()
        )
        db.close()
        assert seated == 1
