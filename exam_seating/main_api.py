import logging
from typing import List, Literal, Optional

from fastapi import BackgroundTasks, Body, Depends, FastAPI, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from exam_seating import orchestrator
from exam_seating.cohorts import get_classifier
from exam_seating.config import STUDENTS_FILE, configure_logging
from exam_seating.database import Base, SessionLocal, engine, get_db
from exam_seating.db_models import ExamDB, ExamRegistrationDB, HallDB, StudentDB
from exam_seating.errors import AllocationError
from exam_seating.halls import hall_grid, hall_stats
from exam_seating.manual_edit import reassign
from exam_seating.orchestrator import RunSettings
from exam_seating.roster_import import import_students, load_students

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title = "Exam Seat Allocator API")

Base.metadata.create_all(bind = engine)


def get_session_factory():
    return SessionLocal


@app.exception_handler(AllocationError)
async def allocation_error_handler(request, exc: AllocationError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


def _iso(value):
    return value.isoformat() if value is not None else None


def _run_dict(run):
    return {
        "id": run.id,
        "exam_id": run.exam_id,
        "status": run.status,
        "mode": run.mode,
        "seat_numbering": run.seat_numbering,
        "adjacency_strictness": run.adjacency_strictness,
        "shuffle_seed": run.shuffle_seed,
        "notes": run.notes,
        "created_by": run.created_by,
        "created_at": _iso(run.created_at),
        "completed_at": _iso(run.completed_at),
        "failure": (
            {"code": run.failure_code, "message": run.failure_message}
            if run.failure_code
            else None
        ),
        "metadata": run.run_metadata or {},
    }


def _allocation_dict(a):
    return {
        "id": a.id,
        "student_id": a.student_id,
        "stu_id": a.student.stu_id,
        "stu_name": a.student.stu_name,
        "hall_id": a.hall_id,
        "hall_name": a.hall.name,
        "row": a.row,
        "column": a.column,
        "seat_number": a.seat_number,
        "cohort_key": a.cohort_key,
    }


def _conflict_dict(c):
    return {
        "id": c.id,
        "allocation_id": c.allocation_id,
        "conflicting_allocation_id": c.conflicting_allocation_id,
        "type": c.conflict_type,
        "resolved": c.resolved,
        "reason": c.reason,
        "details": c.details,
    }


@app.get("/")
def root():
    return {"message": "Exam Seat Allocator API is running !"}


class HallCreate(BaseModel):
    name: str
    rows: int = Field(..., ge=1)
    columns: int = Field(..., ge=1)
    is_active: bool = True
    teachers_needed: int = Field(0, ge=0)
    notes: Optional[str] = None


class HallUpdate(BaseModel):
    is_active: Optional[bool] = None
    teachers_needed: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


def _hall_dict(h):
    return {
        "id": h.id,
        "name": h.name,
        "rows": h.rows,
        "columns": h.columns,
        "capacity": h.capacity,
        "is_active": h.is_active,
        "teachers_needed": h.teachers_needed,
        "notes": h.notes,
    }


@app.post("/halls", status_code=201)
def create_hall(req: HallCreate, db: Session = Depends(get_db)):
    existing = db.query(HallDB).filter(HallDB.name == req.name).first()
    if existing:
        raise HTTPException(status_code=409, detail={"code": "HALL_EXISTS", "message": f"Hall {req.name} already exists"})

    hall = HallDB(
        name=req.name,
        rows=req.rows,
        columns=req.columns,
        is_active=req.is_active,
        teachers_needed=req.teachers_needed,
        notes=req.notes,
    )
    db.add(hall)
    db.commit()
    db.refresh(hall)
    return _hall_dict(hall)


@app.get("/halls")
def get_halls(db: Session = Depends(get_db)):
    halls = db.query(HallDB).order_by(HallDB.name, HallDB.id).all()
    return [_hall_dict(h) for h in halls]


@app.get("/halls/stats")
def get_hall_stats(db: Session = Depends(get_db)):
    return hall_stats(db)


@app.get("/halls/{hall_id}/grid")
def get_hall_grid(hall_id: int, allocation_run_id: Optional[int] = None, db: Session = Depends(get_db)):
    grid = hall_grid(db, hall_id, allocation_run_id)
    return {"hall": _hall_dict(db.get(HallDB, hall_id)), "allocation_run_id": allocation_run_id, "grid": grid}


@app.patch("/halls/{hall_id}")
def update_hall(hall_id: int, req: HallUpdate, db: Session = Depends(get_db)):
    hall = db.get(HallDB, hall_id)
    if not hall:
        raise HTTPException(status_code=404, detail={"code": "HALL_NOT_FOUND", "message": "Hall not found"})

    if req.is_active is not None:
        hall.is_active = req.is_active
    if req.teachers_needed is not None:
        hall.teachers_needed = req.teachers_needed
    if req.notes is not None:
        hall.notes = req.notes
    db.commit()
    db.refresh(hall)
    return _hall_dict(hall)


@app.get("/students")
def get_students(db: Session = Depends(get_db)):
    students = db.query(StudentDB).order_by(StudentDB.stu_id).all()
    return [
        {
            "stu_id": s.stu_id,
            "stu_name": s.stu_name,
            "year": s.year,
            "dept": s.dept,
            "section": s.section,
        }
        for s in students
    ]


@app.post("/students/import")
def import_students_from_sheet(path: Optional[str] = Body(None, embed=True), db: Session = Depends(get_db)):
    file_path = path or STUDENTS_FILE

    try:
        students = load_students(file_path)
    except (OSError, ValueError) as e:
        raise HTTPException(status_code=400, detail={"code": "IMPORT_FAILED", "message": f"Sheet read failed: {e}"})

    inserted, skipped = import_students(db, students)
    logger.info("Imported %d students from %s (%d skipped)", inserted, file_path, skipped)

    return {
        "message": "Student import completed",
        "inserted": inserted,
        "skipped_duplicates": skipped,
    }


class ExamCreate(BaseModel):
    exam_name: str
    exam_date: Optional[str] = None
    session: Optional[str] = None
    seat_numbering: Literal["row_major", "column_major"] = "row_major"
    separation: str = "class_department"
    stu_ids: List[int] = []


@app.post("/exams", status_code=201)
def create_exam(req: ExamCreate, db: Session = Depends(get_db)):
    try:
        get_classifier(req.separation)
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"code": "UNKNOWN_SEPARATION", "message": str(e)})

    wanted = sorted(set(req.stu_ids))
    students = db.query(StudentDB).filter(StudentDB.stu_id.in_(wanted)).all() if wanted else []
    missing = sorted(set(wanted) - {s.stu_id for s in students})
    if missing:
        raise HTTPException(
            status_code=422,
            detail={"code": "STUDENT_NOT_FOUND", "message": "Unknown students in roster", "stu_ids": missing},
        )

    exam = ExamDB(
        exam_name=req.exam_name,
        exam_date=req.exam_date,
        session=req.session,
        seat_numbering=req.seat_numbering,
        separation=req.separation,
    )
    exam.registrations = [ExamRegistrationDB(student_id=s.id) for s in students]
    db.add(exam)
    db.commit()
    db.refresh(exam)

    return {"id": exam.id, "exam_name": exam.exam_name, "registered": len(students)}


class GenerateRequest(BaseModel):
    exam_id: int
    mode: Literal["auto", "manual"] = "auto"
    seat_numbering: Optional[Literal["row_major", "column_major"]] = None
    adjacency_strictness: Literal["hard", "soft"] = "hard"
    notes: Optional[str] = None
    run_async: Optional[bool] = Field(None, alias="async")
    created_by: Optional[str] = None


def _dispatch(db, run, background_tasks, requested_async, session_factory, response):
    result = orchestrator.dispatch(db, run, background_tasks, requested_async, session_factory)

    if result is None:
        response.status_code = 202
        return {
            "message": "Allocation job queued. Poll the run status.",
            "allocation_run_id": run.id,
            "status": run.status,
            "is_async": True,
        }

    return {
        "message": "Allocation completed",
        "allocation_run_id": run.id,
        "status": "completed",
        "is_async": False,
        "result": result.metadata,
    }


@app.post("/allocations/generate")
def generate_allocation(
    req: GenerateRequest,
    background_tasks: BackgroundTasks,
    response: Response,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    settings = RunSettings(
        mode=req.mode,
        seat_numbering=req.seat_numbering,
        adjacency_strictness=req.adjacency_strictness,
        notes=req.notes,
    )
    run = orchestrator.create_run(db, req.exam_id, settings, created_by=req.created_by)
    return _dispatch(db, run, background_tasks, req.run_async, session_factory, response)


@app.post("/allocations/runs/{run_id}/regenerate")
def regenerate_allocation(
    run_id: int,
    background_tasks: BackgroundTasks,
    response: Response,
    run_async: Optional[bool] = Query(None, alias="async"),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    run = orchestrator.regenerate(db, run_id)
    return _dispatch(db, run, background_tasks, run_async, session_factory, response)


@app.get("/allocations/exams/{exam_id}/runs")
def list_allocation_runs(exam_id: int, db: Session = Depends(get_db)):
    runs = orchestrator.list_runs(db, exam_id)
    return {"runs": [dict(_run_dict(r), allocations_count=len(r.allocations)) for r in runs]}


@app.get("/allocations/runs/{run_id}")
def get_allocation_run(run_id: int, db: Session = Depends(get_db)):
    run = orchestrator.get_run(db, run_id)
    conflicts = orchestrator.list_conflicts(db, run_id)
    return {
        "run": _run_dict(run),
        "allocations": [_allocation_dict(a) for a in run.allocations],
        "conflicts": [_conflict_dict(c) for c in conflicts],
    }


@app.get("/allocations/runs/{run_id}/status")
def check_status(run_id: int, db: Session = Depends(get_db)):
    return orchestrator.run_summary(orchestrator.get_run(db, run_id))


@app.get("/allocations/runs/{run_id}/conflicts")
def get_conflicts(run_id: int, unresolved_only: bool = False, db: Session = Depends(get_db)):
    conflicts = orchestrator.list_conflicts(db, run_id)
    unresolved = [c for c in conflicts if not c.resolved]
    shown = unresolved if unresolved_only else conflicts
    return {
        "conflicts": [_conflict_dict(c) for c in shown],
        "total": len(conflicts),
        "unresolved": len(unresolved),
    }


@app.post("/allocations/conflicts/{conflict_id}/resolve")
def resolve_conflict(conflict_id: int, reason: Optional[str] = Body(None, embed=True), db: Session = Depends(get_db)):
    conflict = orchestrator.resolve_conflict(db, conflict_id, reason)
    return _conflict_dict(conflict)


class ReassignRequest(BaseModel):
    allocation_id: int
    new_hall_id: int
    new_row: int
    new_column: int


@app.post("/allocations/reassign")
def reassign_student(req: ReassignRequest, db: Session = Depends(get_db)):
    allocation = reassign(db, req.allocation_id, req.new_hall_id, req.new_row, req.new_column)
    return {
        "message": "Student reassigned successfully",
        "allocation": _allocation_dict(allocation),
    }


@app.get("/public/seat-lookup")
def seat_lookup(exam_id: int, stu_id: int, db: Session = Depends(get_db)):
    allocation = orchestrator.get_student_allocation(db, exam_id, stu_id)
    return {
        "stu_id": allocation.student.stu_id,
        "stu_name": allocation.student.stu_name,
        "hall": allocation.hall.name,
        "row": allocation.row,
        "column": allocation.column,
        "seat_number": allocation.seat_number,
        "allocation_run_id": allocation.allocation_run_id,
    }
