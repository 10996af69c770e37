"""Date arithmetic and late-fee accrual.

Everything here is pure: no I/O, no clock reads unless the caller leaves
``now`` unset.

Fees accrue in whole weeks, rounding up, so a borrowing returned one day
late is charged the same as one returned seven days late. Both the day
count and the week count use the ceiling; do not change either to a floor
or a round, the billing side computes the same numbers.
"""
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

DEFAULT_WEEKLY_FEE = 100
_DAY = timedelta(days=1)
_CENT = Decimal("0.01")

def parse_iso_date(value: str | date | None) -> date | datetime | None:
    """``"2024-01-15"`` -> date, ``"2024-01-15T10:00:00Z"`` -> datetime, empty -> None."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    text = value.strip()
    if "T" in text or " " in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    return date.fromisoformat(text)

def add_days(value: str | date, days: int) -> date | datetime:
    return parse_iso_date(value) + timedelta(days=days)

def _as_datetime(value) -> datetime:
    v = parse_iso_date(value)
    if isinstance(v, datetime):
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v
    return datetime.combine(v, time.min)

def days_late(due_date, end) -> int:
    """Whole days, rounded up, between ``due_date`` and ``end``; 0 when not late."""
    delta = _as_datetime(end) - _as_datetime(due_date)
    if delta <= timedelta(0):
        return 0
    return math.ceil(delta / _DAY)

def calculate_late_fee(due_date, return_date=None, weekly_fee=DEFAULT_WEEKLY_FEE, *, now=None):
    """Late fee for a borrowing due on ``due_date``.

    The period ends at ``return_date`` or, for an open borrowing, at ``now``
    (today's date when ``due_date`` is a plain date, the current time when it
    is a datetime).
    """
    if not due_date:
        return 0
    if return_date:
        end = return_date
    elif now is not None:
        end = now
    else:
        end = datetime.now() if isinstance(due_date, datetime) else date.today()
    late = days_late(due_date, end)
    if late == 0:
        return 0
    weeks_late = math.ceil(late / 7)
    return weeks_late * weekly_fee

def is_overdue(borrowing, today: date | None = None) -> bool:
    # status compares by value, so plain strings work as well as the enum
    if borrowing.status == "RETURNED":
        return False
    return borrowing.due_date < (today or date.today())

def round_money(value) -> Decimal:
    """Two-decimal rounding, applied to aggregates only, never per borrowing."""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)
