from pathlib import Path

import pandas as pd

from exam_seating.db_models import StudentDB
from exam_seating.models import Hall, Student

STUDENT_COLUMNS = {"stu_id", "stu_name", "year", "dept", "section"}
HALL_COLUMNS = {"name", "rows", "columns"}


def read_table(file_path):
    if Path(file_path).suffix.lower() in (".xlsx", ".xls"):
        return pd.read_excel(file_path)
    return pd.read_csv(file_path)


def _require(df, required, what):
    if not required.issubset(df.columns):
        missing = sorted(required - set(df.columns))
        raise ValueError(f"{what} sheet is missing columns: {missing}")


def _optional(row, name, default=None):
    value = row.get(name, default)
    if pd.isna(value):
        return default
    return value


def _flag(value):
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "no", "n")
    return bool(value)


def load_students(file_path):
    df = read_table(file_path)
    _require(df, STUDENT_COLUMNS, "Student")

    students = []
    for _, row in df.iterrows():
        students.append(
            Student(
                stu_id = int(row["stu_id"]),
                stu_name = str(row["stu_name"]),
                year = int(row["year"]),
                dept = str(row["dept"]),
                section = _optional(row, "section"),
                phone = _optional(row, "phone"),
            )
        )
    return students


def load_halls(file_path):
    df = read_table(file_path)
    _require(df, HALL_COLUMNS, "Hall")

    halls = []
    for i, row in df.iterrows():
        halls.append(
            Hall(
                id=i + 1,
                name=str(row["name"]),
                rows=int(row["rows"]),
                columns=int(row["columns"]),
                is_active=_flag(_optional(row, "is_active", True)),
                teachers_needed=int(_optional(row, "teachers_needed", 0)),
            )
        )
    return halls


def import_students(db, students):
    """Insert students not yet known by stu_id. Returns (inserted, skipped)."""
    inserted = 0
    skipped = 0
    seen = set()

    for s in students:
        existing = db.query(StudentDB).filter(StudentDB.stu_id == s.stu_id).first()
        if existing or s.stu_id in seen:
            skipped += 1
            continue
        seen.add(s.stu_id)

        db.add(
            StudentDB(
                stu_id=s.stu_id,
                stu_name=s.stu_name,
                year=s.year,
                dept=s.dept,
                section=None if s.section is None else str(s.section),
                phone=None if s.phone is None else str(s.phone),
            )
        )
        inserted += 1

    db.commit()
    return inserted, skipped
