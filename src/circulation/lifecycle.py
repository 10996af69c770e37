"""Borrowing and reservation state transitions.

Borrowings go ACTIVE -> RETURNED. Reservations go PENDING -> RECEIVED or
PENDING -> CANCELLED. Nothing leaves a terminal state.

Every function here is pure. It validates the transition, then returns new
objects holding the intended result (the entity plus the book with its
adjusted inventory where copies move). Inputs are never mutated, so a
rejected transition leaves the caller's objects exactly as they were. The
engine sends the returned objects to the server.
"""
from datetime import date
from decimal import Decimal

from circulation.errors import BookUnavailableError, InvalidTransitionError
from circulation.fees import add_days, calculate_late_fee, DEFAULT_WEEKLY_FEE
from circulation.models import (
    Book, Borrowing, BorrowingStatus, Reservation, ReservationStatus
)
from circulation.schemas import BorrowingUpdate

DEFAULT_LOAN_DAYS = 14

def create_borrowing(
    member_id: str,
    book: Book,
    quantity: int = 1,
    borrow_date: date | None = None,
    due_date: date | None = None,
    *,
    loan_days: int = DEFAULT_LOAN_DAYS,
) -> tuple[Borrowing, Book]:
    if quantity < 1:
        raise BookUnavailableError(f"Quantity must be at least 1, got {quantity}.", code="INVALID_QUANTITY")
    if not book.availability or quantity > book.available_copies:
        raise BookUnavailableError(
            f"Book {book.id} is unavailable: {book.available_copies} cop(ies) left, {quantity} requested."
        )
    start = borrow_date or date.today()
    borrowing = Borrowing(
        member_id=member_id,
        book_id=book.id,
        borrow_date=start,
        due_date=due_date or add_days(start, loan_days),
        status=BorrowingStatus.ACTIVE,
        late_fee=0,
        quantity=quantity,
    )
    return borrowing, book.adjust_copies(-quantity)

def ensure_returnable(borrowing: Borrowing) -> None:
    if borrowing.status is not BorrowingStatus.ACTIVE:
        raise InvalidTransitionError(
            f"Borrowing {borrowing.borrowing_number or borrowing.id} was already returned.",
            code="ALREADY_RETURNED",
        )

def return_borrowing(
    borrowing: Borrowing,
    book: Book,
    return_date: date | None = None,
    weekly_fee=DEFAULT_WEEKLY_FEE,
) -> tuple[Borrowing, Book]:
    ensure_returnable(borrowing)
    if book.id != borrowing.book_id:
        raise InvalidTransitionError(
            f"Borrowing {borrowing.id} is for book {borrowing.book_id}, not {book.id}.",
            code="BOOK_MISMATCH",
        )
    returned_on = return_date or date.today()
    returned = borrowing.model_copy(update={
        "return_date": returned_on,
        "late_fee": Decimal(str(calculate_late_fee(borrowing.due_date, returned_on, weekly_fee))),
        "status": BorrowingStatus.RETURNED,
    })
    return returned, book.adjust_copies(borrowing.quantity)

def check_borrowing_edit(borrowing: Borrowing, update: BorrowingUpdate) -> None:
    """A plain edit must not return a borrowing or reopen a returned one.

    While a borrowing is active its book and quantity are the copies taken
    off the shelf, and the return puts exactly those back. Editing them
    would leave inventory out of step, so they are fixed until the return.
    """
    if borrowing.status is BorrowingStatus.ACTIVE and update.return_date is not None:
        raise InvalidTransitionError(
            "Set a return date by returning the borrowing, not by editing it.",
            code="STATUS_CHANGE_NOT_ALLOWED",
        )
    if borrowing.status is BorrowingStatus.ACTIVE and (
        update.book_id != borrowing.book_id or update.quantity != borrowing.quantity
    ):
        raise InvalidTransitionError(
            f"Borrowing {borrowing.borrowing_number or borrowing.id} is out: return it and borrow again "
            "to change the book or the number of copies.",
            code="LOANED_COPIES_LOCKED",
        )
    if borrowing.status is BorrowingStatus.RETURNED and update.return_date is None:
        raise InvalidTransitionError(
            "A returned borrowing cannot be reopened.",
            code="STATUS_CHANGE_NOT_ALLOWED",
        )

def create_reservation(member_id: str, book_id: str, reservation_date: date | None = None) -> Reservation:
    # no availability check, reserving an unavailable book is the point
    return Reservation(
        member_id=member_id,
        book_id=book_id,
        reservation_date=reservation_date or date.today(),
        status=ReservationStatus.PENDING,
    )

def _close(reservation: Reservation, target: ReservationStatus) -> Reservation:
    if reservation.status.is_terminal:
        raise InvalidTransitionError(
            f"Reservation {reservation.reservation_number or reservation.id} is already "
            f"{reservation.status.value}.",
            code="RESERVATION_CLOSED",
        )
    return reservation.model_copy(update={"status": target})

def receive_reservation(reservation: Reservation) -> Reservation:
    return _close(reservation, ReservationStatus.RECEIVED)

def cancel_reservation(reservation: Reservation) -> Reservation:
    return _close(reservation, ReservationStatus.CANCELLED)
