import os

# keep the module-level engine off disk while the package is imported
os.environ.setdefault("SEAT_ALLOCATOR_DATABASE_URL", "sqlite://")

import itertools

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from exam_seating.database import Base
from exam_seating.db_models import ExamDB, ExamRegistrationDB, HallDB, StudentDB


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_hall(db):
    def _make(name="H1", rows=2, columns=2, is_active=True):
        hall = HallDB(name=name, rows=rows, columns=columns, is_active=is_active)
        db.add(hall)
        db.commit()
        return hall

    return _make


@pytest.fixture
def make_exam(db):
    """Exam whose roster has one student per entry of ``cohorts`` (the dept)."""
    numbers = itertools.count(1001)

    def _make(cohorts, separation="department", seat_numbering="row_major"):
        exam = ExamDB(exam_name="Mathematics", separation=separation, seat_numbering=seat_numbering)
        for dept in cohorts:
            stu_id = next(numbers)
            student = StudentDB(stu_id=stu_id, stu_name=f"Student {stu_id}", year=1, dept=dept, section="A")
            exam.registrations.append(ExamRegistrationDB(student=student))
        db.add(exam)
        db.commit()
        return exam

    return _make
