from datetime import date
from typing import Annotated
from decimal import Decimal
from pydantic import BaseModel, Field, model_validator

from circulation.models import (
    Borrowing, BorrowingStatus, Reservation, ReservationStatus, WireModel
)

Key = Annotated[str, Field(min_length=1)]

class BorrowingDraft(WireModel):
    member_id: Key
    book_id: Key
    borrow_date: date
    due_date: date
    status: BorrowingStatus = BorrowingStatus.ACTIVE
    quantity: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _due_after_borrow(self):
        if self.due_date < self.borrow_date:
            raise ValueError("dueDate must not be before borrowDate")
        return self

    @classmethod
    def from_borrowing(cls, b: Borrowing) -> "BorrowingDraft":
        return cls(
            member_id=b.member_id, book_id=b.book_id,
            borrow_date=b.borrow_date, due_date=b.due_date,
            status=b.status, quantity=b.quantity,
        )

class BorrowingUpdate(WireModel):
    member_id: Key
    book_id: Key
    borrow_date: date
    due_date: date
    return_date: date | None = None
    quantity: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _dates_in_order(self):
        if self.due_date < self.borrow_date:
            raise ValueError("dueDate must not be before borrowDate")
        if self.return_date and self.return_date < self.borrow_date:
            raise ValueError("returnDate must not be before borrowDate")
        return self

    @classmethod
    def from_borrowing(cls, b: Borrowing, **changes) -> "BorrowingUpdate":
        data = dict(
            member_id=b.member_id, book_id=b.book_id,
            borrow_date=b.borrow_date, due_date=b.due_date,
            return_date=b.return_date, quantity=b.quantity,
        )
        data.update({k: v for k, v in changes.items() if v is not None})
        return cls(**data)

class ReservationDraft(WireModel):
    member_id: Key
    book_id: Key
    reservation_date: date
    status: ReservationStatus = ReservationStatus.PENDING

    @classmethod
    def from_reservation(cls, r: Reservation) -> "ReservationDraft":
        return cls(member_id=r.member_id, book_id=r.book_id,
                   reservation_date=r.reservation_date, status=r.status)

class ReservationUpdate(WireModel):
    member_id: Key
    book_id: Key
    reservation_date: date | None = None
    status: ReservationStatus

    @classmethod
    def from_reservation(cls, r: Reservation, **changes) -> "ReservationUpdate":
        data = dict(member_id=r.member_id, book_id=r.book_id,
                    reservation_date=r.reservation_date, status=r.status)
        data.update({k: v for k, v in changes.items() if v is not None})
        return cls(**data)

class LibraryStats(BaseModel):
    total_books: int = 0
    available_books: int = 0
    unavailable_books: int = 0
    total_copies: int = 0
    available_copies: int = 0
    borrowed_books: int = 0
    reserved_books: int = 0
    total_reservations: int = 0
    active_reservations: int = 0
    overdue_books: int = 0
    total_fines: Decimal = Decimal("0.00")
    paid_fines: Decimal = Decimal("0.00")
    pending_fines: Decimal = Decimal("0.00")
    members_with_fines: int = 0
