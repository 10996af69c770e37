from datetime import date
from typing import Iterable

from circulation.fees import is_overdue, round_money
from circulation.models import Book, Borrowing, BorrowingStatus, Reservation, ReservationStatus
from circulation.schemas import LibraryStats

def compute_stats(
    books: Iterable[Book],
    borrowings: Iterable[Borrowing],
    reservations: Iterable[Reservation],
    today: date | None = None,
) -> LibraryStats:
    books = list(books)
    borrowings = list(borrowings)
    reservations = list(reservations)
    today = today or date.today()

    total_books = len(books)
    available_books = sum(1 for b in books if b.availability)
    active = [b for b in borrowings if b.status is BorrowingStatus.ACTIVE]
    # without borrowing records, fall back to what the catalog says is out
    borrowed_books = len(active) or max(total_books - available_books, 0)
    pending = sum(1 for r in reservations if r.status is ReservationStatus.PENDING)
    available_copies = sum(b.available_copies for b in books)
    # copies out on loan still belong to the collection
    total_copies = available_copies + sum(b.quantity for b in active)

    paid = sum((b.late_fee for b in borrowings if b.status is BorrowingStatus.RETURNED), start=0)
    owed = sum((b.late_fee for b in borrowings if b.status is not BorrowingStatus.RETURNED), start=0)
    fined_members = {
        b.member_id for b in borrowings
        if b.status is not BorrowingStatus.RETURNED and b.late_fee > 0
    }

    return LibraryStats(
        total_books=total_books,
        available_books=available_books,
        unavailable_books=total_books - available_books,
        total_copies=total_copies,
        available_copies=available_copies,
        borrowed_books=borrowed_books,
        reserved_books=pending,
        total_reservations=len(reservations),
        active_reservations=pending,
        overdue_books=sum(1 for b in borrowings if is_overdue(b, today)),
        total_fines=round_money(paid + owed),
        paid_fines=round_money(paid),
        pending_fines=round_money(owed),
        members_with_fines=len(fined_members),
    )

def filter_borrowings(
    items: Iterable[Borrowing],
    status: BorrowingStatus | None = None,
    search: str = "",
) -> list[Borrowing]:
    """Status filter plus a case-insensitive match on book id, member id or borrow date."""
    out = [b for b in items if status is None or b.status is status]
    needle = search.strip().lower()
    if needle:
        out = [
            b for b in out
            if needle in b.book_id.lower()
            or needle in b.member_id.lower()
            or needle in b.borrow_date.isoformat()
        ]
    return out
