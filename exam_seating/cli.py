"""Seat a roster from spreadsheets without touching the database."""

import argparse
import logging
import sys

from exam_seating.allocator import allocate_students
from exam_seating.cohorts import available_policies, get_classifier, tag_students
from exam_seating.config import configure_logging
from exam_seating.errors import AllocationError, NoActiveHalls
from exam_seating.layouts import enumerate_seats
from exam_seating.models import SeatNumbering, Strictness
from exam_seating.roster_import import load_halls, load_students
from exam_seating.shuffler import new_seed, shuffle

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(prog="exam-seating", description=__doc__)
    parser.add_argument("students", help="student sheet (.xlsx or .csv)")
    parser.add_argument("halls", help="hall sheet (.xlsx or .csv)")
    parser.add_argument("--seed", help="shuffle seed; a new one is generated when omitted")
    parser.add_argument("--numbering", choices=[n.value for n in SeatNumbering], default=SeatNumbering.ROW_MAJOR.value)
    parser.add_argument("--strictness", choices=[s.value for s in Strictness], default=Strictness.HARD.value)
    parser.add_argument("--separation", choices=available_policies(), default="class_department")
    parser.add_argument("--lookahead", type=int, default=None, help="soft mode search window")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        students = load_students(args.students)
        halls = [h for h in load_halls(args.halls) if h.is_active]
    except (OSError, ValueError) as e:
        print(f"INVALID_INPUT: {e}", file=sys.stderr)
        return 1

    seed = args.seed or new_seed()

    by_id = {s.stu_id: s for s in students}
    candidates = shuffle(
        tag_students(sorted(students, key=lambda s: s.stu_id), get_classifier(args.separation), id_attr="stu_id"),
        seed,
    )
    seats = enumerate_seats(halls, args.numbering)
    logger.info("Seating %d students in %d halls with seed %s", len(students), len(halls), seed)

    try:
        if not halls:
            raise NoActiveHalls("No active halls in sheet")
        plan = allocate_students(candidates, seats, args.strictness, args.lookahead)
    except AllocationError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1

    print(f"\n--- Seat Allocation (seed {seed}) ---")
    for p in plan.placements:
        s = by_id[p.candidate.student_id]
        print(
            f"{s.stu_id} {s.stu_name} -> Hall {p.seat.hall_name} | Seat {p.seat.seat_number} "
            f"| Row {p.seat.row} | Column {p.seat.column}"
        )

    print(f"\n{len(plan.placements)} seated, {len(plan.conflicts)} adjacency conflicts")
    for c in plan.conflicts:
        a, b = plan.placements[c.first], plan.placements[c.second]
        print(f"  {c.conflict_type.value}: {a.candidate.student_id} / {b.candidate.student_id} ({a.candidate.key})")

    return 0


if __name__ == "__main__":
    sys.exit(main())
