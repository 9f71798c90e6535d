"""
Seat allocation solver.

Greedy fill in seat order with a bounded lookahead: when the student at the
head of the queue would sit next to someone from the same cohort, the first
later student who would not is swapped to the front. Hard mode searches the
whole remaining queue and refuses to return a plan with any conflict left;
soft mode only looks a few students ahead and records what it could not
avoid.
"""

from dataclasses import dataclass, field
from typing import List

from exam_seating.config import SOFT_LOOKAHEAD
from exam_seating.errors import CapacityExceeded, UnresolvedHardConflicts
from exam_seating.layouts import adjacency_type, neighbour_index
from exam_seating.models import Candidate, ConflictType, Seat, Strictness


@dataclass(frozen=True)
class Placement:
    candidate: Candidate
    seat: Seat


@dataclass(frozen=True)
class PlannedConflict:
    # indexes into AllocationPlan.placements, earlier seat first
    first: int
    second: int
    conflict_type: ConflictType


@dataclass
class AllocationPlan:
    placements: List[Placement] = field(default_factory=list)
    conflicts: List[PlannedConflict] = field(default_factory=list)
    strictness: Strictness = Strictness.HARD
    lookahead: int = 0


def _clashes(key, blocked):
    return key is not None and key in blocked


def allocate_students(candidates, seats, strictness=Strictness.HARD, lookahead=None):
    """
    Seat ``candidates`` (already shuffled) into ``seats`` (in fill order).

    Raises CapacityExceeded when there are more students than seats, and
    UnresolvedHardConflicts when hard mode ends with any adjacency conflict.
    """
    strictness = Strictness(strictness)

    if len(candidates) > len(seats):
        raise CapacityExceeded(
            f"Insufficient capacity: {len(candidates)} students need seats "
            f"but only {len(seats)} available. Add more halls or reduce the roster.",
            details={"students": len(candidates), "seats": len(seats)},
        )

    queue = list(candidates)
    if strictness is Strictness.HARD:
        window = len(queue)
    else:
        window = SOFT_LOOKAHEAD if lookahead is None else lookahead

    neighbours = neighbour_index(seats)
    filled = {}  # seat index -> placement index
    plan = AllocationPlan(strictness=strictness, lookahead=window)

    for seat_idx, seat in enumerate(seats):
        head = len(plan.placements)
        if head >= len(queue):
            break

        placed = [filled[j] for j in neighbours[seat_idx] if j in filled]
        blocked = {plan.placements[p].candidate.key for p in placed}

        if _clashes(queue[head].key, blocked):
            for k in range(head + 1, min(len(queue), head + 1 + window)):
                if not _clashes(queue[k].key, blocked):
                    queue[head], queue[k] = queue[k], queue[head]
                    break

        candidate = queue[head]
        plan.placements.append(Placement(candidate=candidate, seat=seat))
        filled[seat_idx] = head

        if candidate.key is None:
            continue
        for p in placed:
            other = plan.placements[p]
            if other.candidate.key == candidate.key:
                plan.conflicts.append(
                    PlannedConflict(first=p, second=head, conflict_type=adjacency_type(other.seat, seat))
                )

    if strictness is Strictness.HARD and plan.conflicts:
        raise UnresolvedHardConflicts(
            f"Could not separate all cohorts: {len(plan.conflicts)} adjacent pairs share a cohort. "
            "Switch to soft mode, add halls, or seat manually.",
            details={"unresolved_conflicts": len(plan.conflicts)},
        )

    return plan


def detect_conflicts(placements):
    """Every adjacent same-cohort pair in a finished list of placements."""
    by_position = {p.seat.position: i for i, p in enumerate(placements)}
    conflicts = []

    for i, placement in enumerate(placements):
        key = placement.candidate.key
        if key is None:
            continue
        seat = placement.seat
        # only look forward/right so each pair is reported once
        for d_row, d_col in ((0, 1), (1, 0)):
            j = by_position.get((seat.hall_id, seat.row + d_row, seat.column + d_col))
            if j is not None and placements[j].candidate.key == key:
                first, second = sorted((i, j))
                conflicts.append(
                    PlannedConflict(first=first, second=second, conflict_type=adjacency_type(seat, placements[j].seat))
                )

    return sorted(conflicts, key=lambda c: (c.second, c.first))
