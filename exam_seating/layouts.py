"""
Seat geometry: numbering schemes, adjacency, and the fill order of a run.

Everything here is a pure function of hall dimensions, so the same halls
always produce the same seat universe.
"""

from exam_seating.models import ConflictType, Seat, SeatNumbering


def in_bounds(row, column, rows, columns):
    return 1 <= row <= rows and 1 <= column <= columns


def seat_number(row, column, rows, columns, numbering=SeatNumbering.ROW_MAJOR):
    """Display number of a seat. Raises ValueError for seats outside the grid."""
    if not in_bounds(row, column, rows, columns):
        raise ValueError(f"Seat ({row}, {column}) is outside a {rows}x{columns} hall")

    numbering = SeatNumbering(numbering)
    if numbering is SeatNumbering.COLUMN_MAJOR:
        return (column - 1) * rows + row
    return (row - 1) * columns + column


def is_adjacent(a, b):
    # front/back/left/right only, diagonals are allowed to share a cohort
    if a.hall_id != b.hall_id:
        return False
    return abs(a.row - b.row) + abs(a.column - b.column) == 1


def adjacency_type(a, b):
    if a.row == b.row:
        return ConflictType.SIDE
    return ConflictType.FRONT_BACK


def generate_layout(hall, numbering=SeatNumbering.ROW_MAJOR):
    seats = []

    for row in range(1, hall.rows + 1):
        for column in range(1, hall.columns + 1):
            seats.append(
                Seat(
                    hall_id=hall.id,
                    hall_name=hall.name,
                    row=row,
                    column=column,
                    seat_number=seat_number(row, column, hall.rows, hall.columns, numbering),
                )
            )

    seats.sort(key=lambda s: s.seat_number)
    return seats


def order_halls(halls):
    return sorted(halls, key=lambda h: (h.name, h.id))


def enumerate_seats(halls, numbering=SeatNumbering.ROW_MAJOR):
    """All seats of the given halls in fill order."""
    seats = []
    for hall in order_halls(halls):
        seats.extend(generate_layout(hall, numbering))
    return seats


def neighbour_index(seats):
    """For each seat index, the indexes of its adjacent seats in the same list."""
    by_position = {seat.position: i for i, seat in enumerate(seats)}
    neighbours = []

    for seat in seats:
        found = []
        for d_row, d_col in ((-1, 0), (1, 0), (0, -1), (0, 1)):
            j = by_position.get((seat.hall_id, seat.row + d_row, seat.column + d_col))
            if j is not None:
                found.append(j)
        neighbours.append(sorted(found))

    return neighbours


def total_capacity(halls):
    return sum(h.rows * h.columns for h in halls)
