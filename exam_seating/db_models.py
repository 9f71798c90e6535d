from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from exam_seating.database import Base
from exam_seating.models import Mode, RunStatus, SeatNumbering, Strictness


def _now():
    return datetime.now(timezone.utc)


class StudentDB(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key = True, index = True)
    stu_id = Column(Integer, unique = True, nullable = False)
    stu_name = Column(String, nullable = False)
    year = Column(Integer, nullable = False)
    dept = Column(String, nullable=False)
    section = Column(String, nullable=True)
    phone = Column(String, nullable=True)


class ExamDB(Base):
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    exam_name = Column(String, nullable=False)
    exam_date = Column(String, nullable=True)
    session = Column(String, nullable=True)

    # defaults picked up by new allocation runs
    seat_numbering = Column(String, nullable=False, default=SeatNumbering.ROW_MAJOR.value)
    separation = Column(String, nullable=False, default="class_department")

    registrations = relationship("ExamRegistrationDB", back_populates="exam", cascade="all, delete-orphan")


class ExamRegistrationDB(Base):
    __tablename__ = "exam_registrations"
    __table_args__ = (UniqueConstraint("exam_id", "student_id", name="uq_registration_student"),)

    id = Column(Integer, primary_key=True, index=True)

    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    subject_code = Column(String, nullable=True)

    exam = relationship("ExamDB", back_populates="registrations")
    student = relationship("StudentDB")


class HallDB(Base):
    __tablename__ = "halls"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    rows = Column(Integer, nullable=False)
    columns = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # seats to keep free for supervisors; informational only
    teachers_needed = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    @property
    def capacity(self):
        return self.rows * self.columns


class AllocationRunDB(Base):
    __tablename__ = "allocation_runs"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_now)

    shuffle_seed = Column(String(64), nullable=False)
    mode = Column(String, nullable=False, default=Mode.AUTO.value)
    seat_numbering = Column(String, nullable=False, default=SeatNumbering.ROW_MAJOR.value)
    adjacency_strictness = Column(String, nullable=False, default=Strictness.HARD.value)
    notes = Column(Text, nullable=True)

    status = Column(String, nullable=False, default=RunStatus.PENDING.value, index=True)
    completed_at = Column(DateTime, nullable=True)
    failure_code = Column(String, nullable=True)
    failure_message = Column(Text, nullable=True)
    run_metadata = Column("metadata", JSON, nullable=True)

    exam = relationship("ExamDB")
    allocations = relationship(
        "AllocationDB",
        back_populates="allocation_run",
        cascade="all, delete-orphan",
        order_by="AllocationDB.id",
    )


class AllocationDB(Base):
    __tablename__ = "allocations"
    __table_args__ = (
        UniqueConstraint("allocation_run_id", "hall_id", "row_no", "col_no", name="uq_allocation_seat"),
        UniqueConstraint("allocation_run_id", "student_id", name="uq_allocation_student"),
    )

    id = Column(Integer, primary_key=True, index=True)

    allocation_run_id = Column(Integer, ForeignKey("allocation_runs.id"), nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    hall_id = Column(Integer, ForeignKey("halls.id"), nullable=False)
    row = Column("row_no", Integer, nullable=False)
    column = Column("col_no", Integer, nullable=False)
    seat_number = Column(Integer, nullable=False)
    cohort_key = Column(String, nullable=True)

    allocation_run = relationship("AllocationRunDB", back_populates="allocations")
    student = relationship("StudentDB")
    hall = relationship("HallDB")
    conflicts = relationship(
        "SeatConflictDB",
        foreign_keys="SeatConflictDB.allocation_id",
        back_populates="allocation",
        cascade="all, delete-orphan",
    )


class SeatConflictDB(Base):
    __tablename__ = "seat_conflicts"

    id = Column(Integer, primary_key=True, index=True)

    allocation_id = Column(Integer, ForeignKey("allocations.id"), nullable=False, index=True)
    conflicting_allocation_id = Column(Integer, ForeignKey("allocations.id"), nullable=False)
    conflict_type = Column(String, nullable=False)
    details = Column(JSON, nullable=True)
    resolved = Column(Boolean, nullable=False, default=False)
    reason = Column(Text, nullable=True)

    allocation = relationship("AllocationDB", foreign_keys=[allocation_id], back_populates="conflicts")
    conflicting_allocation = relationship("AllocationDB", foreign_keys=[conflicting_allocation_id])
