from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Mode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class SeatNumbering(str, Enum):
    ROW_MAJOR = "row_major"
    COLUMN_MAJOR = "column_major"


class Strictness(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ConflictType(str, Enum):
    SIDE = "same_cohort_side"
    FRONT_BACK = "same_cohort_front_back"


class Student:
    def __init__(self, stu_id, stu_name, year, dept, section=None, phone=None):
        self.stu_id = stu_id
        self.stu_name = stu_name
        self.year = year
        self.dept = dept
        self.section = section
        self.phone = phone

    def __repr__(self):
        return f"Student({self.stu_id}, {self.stu_name})"


class Hall:
    def __init__(self, id, name, rows, columns, is_active=True, teachers_needed=0):
        if rows < 1 or columns < 1:
            raise ValueError(f"Hall {name} needs at least one row and one column")
        self.id = id
        self.name = name
        self.rows = rows
        self.columns = columns
        self.is_active = is_active
        self.teachers_needed = teachers_needed

    @property
    def capacity(self):
        return self.rows * self.columns

    def __repr__(self):
        return f"Hall({self.name}, {self.rows}x{self.columns})"


@dataclass(frozen=True)
class Seat:
    hall_id: int
    hall_name: str
    row: int
    column: int
    seat_number: int

    @property
    def position(self):
        return (self.hall_id, self.row, self.column)


@dataclass(frozen=True)
class Candidate:
    """A roster entry as the solver sees it: who, and which cohort they belong to."""
    student_id: int
    key: Optional[str]
