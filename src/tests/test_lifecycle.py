from datetime import date
from decimal import Decimal

import pytest

from circulation import lifecycle
from circulation.errors import BookUnavailableError, InvalidTransitionError
from circulation.models import Book, BorrowingStatus, ReservationStatus
from circulation.schemas import BorrowingUpdate

JAN_1 = date(2024, 1, 1)

def _book(copies=3):
    return Book(id="bk1", book_no="B10001", title="Dune", available_copies=copies)

def test_create_borrowing_two_of_three():
    book = _book(3)
    borrowing, after = lifecycle.create_borrowing("MEM001", book, 2, JAN_1)
    assert borrowing.status is BorrowingStatus.ACTIVE
    assert borrowing.late_fee == 0
    assert borrowing.due_date == date(2024, 1, 15)
    assert borrowing.return_date is None
    assert after.available_copies == 1
    assert after.availability is True
    # input untouched
    assert book.available_copies == 3

def test_create_borrowing_custom_due_date_and_loan_days():
    borrowing, _ = lifecycle.create_borrowing("MEM001", _book(), 1, JAN_1, date(2024, 2, 1))
    assert borrowing.due_date == date(2024, 2, 1)
    borrowing, _ = lifecycle.create_borrowing("MEM001", _book(), 1, JAN_1, loan_days=7)
    assert borrowing.due_date == date(2024, 1, 8)

@pytest.mark.parametrize("copies, quantity", [(3, 4), (0, 1), (2, 0), (2, -1)])
def test_create_borrowing_rejected_without_side_effect(copies, quantity):
    book = _book(copies)
    with pytest.raises(BookUnavailableError):
        lifecycle.create_borrowing("MEM001", book, quantity, JAN_1)
    assert book.available_copies == copies
    assert book.availability is (copies > 0)

def test_borrow_then_return_restores_copies():
    book = _book(3)
    borrowing, lent = lifecycle.create_borrowing("MEM001", book, 2, JAN_1)
    returned, restocked = lifecycle.return_borrowing(borrowing, lent, date(2024, 1, 25), 100)
    assert restocked.available_copies == 3
    assert returned.status is BorrowingStatus.RETURNED
    assert returned.return_date == date(2024, 1, 25)
    assert returned.late_fee == Decimal("200")

def test_return_on_time_has_no_fee():
    borrowing, lent = lifecycle.create_borrowing("MEM001", _book(), 1, JAN_1)
    returned, _ = lifecycle.return_borrowing(borrowing, lent, date(2024, 1, 15), 100)
    assert returned.late_fee == 0

def test_return_twice_rejected():
    borrowing, lent = lifecycle.create_borrowing("MEM001", _book(), 1, JAN_1)
    returned, restocked = lifecycle.return_borrowing(borrowing, lent, date(2024, 1, 10))
    with pytest.raises(InvalidTransitionError) as exc:
        lifecycle.return_borrowing(returned, restocked, date(2024, 1, 11))
    assert exc.value.code == "ALREADY_RETURNED"

def test_return_with_wrong_book_rejected():
    borrowing, _ = lifecycle.create_borrowing("MEM001", _book(), 1, JAN_1)
    with pytest.raises(InvalidTransitionError) as exc:
        lifecycle.return_borrowing(borrowing, Book(id="other", available_copies=1), date(2024, 1, 10))
    assert exc.value.code == "BOOK_MISMATCH"

def test_edit_cannot_change_status():
    borrowing, lent = lifecycle.create_borrowing("MEM001", _book(), 1, JAN_1)
    sneaky = BorrowingUpdate.from_borrowing(borrowing, return_date=date(2024, 1, 5))
    with pytest.raises(InvalidTransitionError):
        lifecycle.check_borrowing_edit(borrowing, sneaky)

    returned, _ = lifecycle.return_borrowing(borrowing, lent, date(2024, 1, 5))
    reopen = BorrowingUpdate(member_id="MEM001", book_id="bk1", borrow_date=JAN_1, due_date=date(2024, 1, 15))
    with pytest.raises(InvalidTransitionError):
        lifecycle.check_borrowing_edit(returned, reopen)

    lifecycle.check_borrowing_edit(returned, BorrowingUpdate.from_borrowing(returned, due_date=date(2024, 1, 20)))

def test_reservation_lifecycle():
    reservation = lifecycle.create_reservation("MEM001", "bk1", JAN_1)
    assert reservation.status is ReservationStatus.PENDING
    received = lifecycle.receive_reservation(reservation)
    assert received.status is ReservationStatus.RECEIVED
    assert reservation.status is ReservationStatus.PENDING

@pytest.mark.parametrize("transition", [lifecycle.receive_reservation, lifecycle.cancel_reservation])
@pytest.mark.parametrize("terminal", [ReservationStatus.RECEIVED, ReservationStatus.CANCELLED])
def test_terminal_reservations_stay_terminal(transition, terminal):
    closed = lifecycle.create_reservation("MEM001", "bk1", JAN_1).model_copy(update={"status": terminal})
    with pytest.raises(InvalidTransitionError) as exc:
        transition(closed)
    assert exc.value.code == "RESERVATION_CLOSED"

@pytest.mark.parametrize("changes", [{"quantity": 1}, {"quantity": 3}, {"book_id": "bk2"}])
def test_active_borrowing_keeps_book_and_quantity(changes):
    borrowing, lent = lifecycle.create_borrowing("MEM001", _book(), 2, JAN_1)
    with pytest.raises(InvalidTransitionError) as exc:
        lifecycle.check_borrowing_edit(borrowing, BorrowingUpdate.from_borrowing(borrowing, **changes))
    assert exc.value.code == "LOANED_COPIES_LOCKED"

    # once returned, the copies are back on the shelf and the record can be corrected
    returned, _ = lifecycle.return_borrowing(borrowing, lent, date(2024, 1, 5))
    lifecycle.check_borrowing_edit(returned, BorrowingUpdate.from_borrowing(returned, **changes))
