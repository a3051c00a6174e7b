"""Pure seat selection: which seats to offer a party given current occupancy."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple
import re

from errors import InsufficientSeats

SEAT_LABEL_PATTERN = re.compile(r'^([A-Za-z])-(\d{1,3})$')
SEAT_SEPARATOR = ', '


class RowLayout(NamedTuple):
    """Detached view of an active seat_layout row."""
    row_label: str
    seat_count: int
    display_order: int


@dataclass(frozen=True, order=True)
class SeatId:
    """A seat ordered by its row's display order, then its index in the row."""
    display_order: int
    row_label: str
    index: int

    @property
    def key(self) -> Tuple[str, int]:
        return self.row_label, self.index

    def __str__(self) -> str:
        return f"{self.row_label}-{self.index:02d}"


def parse_seat_label(label: str) -> Optional[Tuple[str, int]]:
    """Turn ``"B-07"`` into ``("B", 7)``; returns None for anything else."""
    match = SEAT_LABEL_PATTERN.match(label.strip())
    if not match:
        return None
    return match.group(1), int(match.group(2))


def canonical_seat_label(label: str) -> str:
    """``"A-1"`` and ``"A-01"`` both become ``"A-01"``; unparseable labels are kept as written."""
    key = parse_seat_label(label)
    if key is None:
        return label.strip()
    return f"{key[0]}-{key[1]:02d}"


def split_seat_number(seat_number: Optional[str]) -> List[str]:
    """Split a persisted seat_number value into its seat labels."""
    if not seat_number:
        return []
    return [part.strip() for part in seat_number.split(',') if part.strip()]


def join_seats(seats: Iterable[SeatId]) -> str:
    return SEAT_SEPARATOR.join(str(seat) for seat in seats)


def build_seat_space(rows: Sequence[RowLayout]) -> List[SeatId]:
    """Every seat of the given rows, in display order then index."""
    ordered_rows = sorted(rows, key=lambda row: row.display_order)
    return [
        SeatId(row.display_order, row.row_label, index)
        for row in ordered_rows
        for index in range(1, row.seat_count + 1)
    ]


def available_seats(rows: Sequence[RowLayout], occupied: Iterable[str]) -> List[SeatId]:
    taken = {key for key in map(parse_seat_label, occupied) if key is not None}
    return [seat for seat in build_seat_space(rows) if seat.key not in taken]


def find_consecutive_run(available: Sequence[SeatId], size: int) -> Optional[List[SeatId]]:
    """Earliest run of ``size`` adjacent free seats, scanning rows in display order."""
    by_row: Dict[Tuple[int, str], List[SeatId]] = {}
    for seat in available:
        by_row.setdefault((seat.display_order, seat.row_label), []).append(seat)

    for row_key in sorted(by_row):
        row_seats = sorted(by_row[row_key], key=lambda seat: seat.index)
        for start in range(len(row_seats) - size + 1):
            window = row_seats[start:start + size]
            if all(b.index - a.index == 1 for a, b in zip(window, window[1:])):
                return window
    return None


def allocate_seats(requested: int, rows: Sequence[RowLayout], occupied: Iterable[str]) -> List[SeatId]:
    """Choose ``requested`` seats or raise InsufficientSeats.

    A single attendee gets the lowest free seat. A larger party gets the first
    row that can seat it side by side; when no row can, it gets the first free
    seats in layout order, which may be split across rows.
    """
    if requested < 1:
        raise ValueError("requested seat count must be at least 1")

    free = available_seats(rows, occupied)
    if len(free) < requested:
        raise InsufficientSeats(requested, len(free))

    if requested == 1:
        return free[:1]

    run = find_consecutive_run(free, requested)
    if run is not None:
        return run

    # TODO: parties split across rows here; pending product review of whether to refuse instead
    return free[:requested]
