import re
from collections import defaultdict
from datetime import date
from typing import Iterable

BOOK_PREFIX = "B"
FIRST_BOOK_NUMBER = 10001
BORROWING_PREFIX = "BR"
RESERVATION_PREFIX = "RS"

_BOOK_NO = re.compile(r"B(\d+)")

def pad_number(value: int | str, length: int) -> str:
    return str(value).zfill(length)

def generate_auto_number(prefix: str, year: int, sequence: int, pad: int = 3) -> str:
    return f"{prefix}{year}{pad_number(sequence, pad)}"

def next_book_number(existing: Iterable[str | None]) -> str:
    """Next catalog number after the highest well-formed ``B<digits>`` in ``existing``."""
    numbers = []
    for raw in existing:
        m = _BOOK_NO.fullmatch((raw or "").strip())
        if m:
            numbers.append(int(m.group(1)))
    if not numbers:
        return f"{BOOK_PREFIX}{FIRST_BOOK_NUMBER}"
    return f"{BOOK_PREFIX}{max(numbers) + 1}"

def borrowing_number(year: int, sequence: int) -> str:
    return generate_auto_number(BORROWING_PREFIX, year, sequence, pad=4)

def reservation_number(year: int, sequence: int) -> str:
    return generate_auto_number(RESERVATION_PREFIX, year, sequence, pad=4)

class SequenceCounter:
    """Per-key monotonically increasing counters, starting at 1.

    Numbers produced from these are suggestions only; the server assigns the
    number that is actually stored.
    """

    def __init__(self, start: dict[str, int] | None = None):
        self._values: dict[str, int] = defaultdict(int, start or {})

    def next(self, key: str) -> int:
        self._values[key] += 1
        return self._values[key]

    def current(self, key: str) -> int:
        return self._values.get(key, 0)

    def suggest_borrowing_number(self, today: date | None = None) -> str:
        year = (today or date.today()).year
        return borrowing_number(year, self.next(BORROWING_PREFIX))

    def suggest_reservation_number(self, today: date | None = None) -> str:
        year = (today or date.today()).year
        return reservation_number(year, self.next(RESERVATION_PREFIX))
