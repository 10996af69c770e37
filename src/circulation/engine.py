from __future__ import annotations
import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

import pydantic

from circulation import lifecycle
from circulation.api.client import LibraryApiClient
from circulation.config import settings
from circulation.errors import (
    CirculationError, ConflictError, InventoryError, MalformedResponseError,
    NotAuthenticatedError, ValidationError,
)
from circulation.events import EventBus, EventKind
from circulation.fees import calculate_late_fee, is_overdue
from circulation.models import Book, Borrowing, Member, Reservation
from circulation.numbering import next_book_number
from circulation.schemas import (
    BorrowingDraft, BorrowingUpdate, LibraryStats, ReservationDraft, ReservationUpdate
)
from circulation.session import Session
from circulation.stats import compute_stats

logger = logging.getLogger(__name__)

def _payload(build):
    """Build a request DTO, turning field validation failures into ValidationError."""
    try:
        return build()
    except pydantic.ValidationError as e:
        raise ValidationError(str(e)) from e

class CirculationEngine:
    """Borrowing and reservation workflows against the library API.

    The server owns ``availableCopies``; this engine reads it, checks the
    request locally, then writes the intended change. A transition that
    touches inventory is either applied in full or undone before the error
    reaches the caller.
    """

    def __init__(
        self,
        api: LibraryApiClient,
        events: Optional[EventBus] = None,
        *,
        weekly_fee: int = settings.WEEKLY_LATE_FEE,
        loan_days: int = settings.DEFAULT_LOAN_DAYS,
        verify_server_fees: bool = settings.VERIFY_SERVER_FEES,
        today: Callable[[], date] = date.today,
    ):
        self.api = api
        self.events = events or EventBus()
        self.weekly_fee = weekly_fee
        self.loan_days = loan_days
        self.verify_server_fees = verify_server_fees
        self.today = today

    # Borrowings

    async def borrow_book(
        self,
        *,
        member_id: str,
        book_id: str,
        quantity: int = 1,
        borrow_date: date | None = None,
        due_date: date | None = None,
    ) -> tuple[Borrowing, Book]:
        book = await self.api.get_book(book_id)
        intended, updated_book = lifecycle.create_borrowing(
            member_id, book, quantity,
            borrow_date or self.today(), due_date,
            loan_days=self.loan_days,
        )
        draft = _payload(lambda: BorrowingDraft.from_borrowing(intended))

        try:
            created = await self.api.create_borrowing(draft)
        except MalformedResponseError as e:
            # the POST may have landed even though the response is unusable
            await self._discard_unconfirmed_borrowing(e.payload)
            raise
        try:
            saved_book = await self.api.update_book(updated_book)
        except CirculationError as e:
            await self._undo_borrowing(created)
            if isinstance(e, ConflictError):
                raise
            raise InventoryError(
                f"Could not take {quantity} cop(ies) of book {book_id}; borrowing not recorded."
            ) from e

        logger.info("[engine] %s borrowed %sx %s as %s (due %s)",
                    member_id, quantity, book_id, created.borrowing_number, created.due_date)
        await self.events.emit(EventKind.BORROWING_CREATED, created)
        await self.events.emit(EventKind.BOOK_INVENTORY_CHANGED, saved_book)
        return created, saved_book

    async def _undo_borrowing(self, created: Borrowing) -> None:
        try:
            await self.api.delete_borrowing(created.id)
        except CirculationError:
            logger.exception("[engine] could not remove borrowing %s after failed inventory update", created.id)

    async def _discard_unconfirmed_borrowing(self, payload) -> None:
        created_id = payload.get("id") if isinstance(payload, dict) else None
        if not created_id:
            logger.error("[engine] unreadable create response without an id; the server may hold a stray borrowing")
            return
        try:
            await self.api.delete_borrowing(created_id)
        except CirculationError:
            logger.exception("[engine] could not remove unconfirmed borrowing %s", created_id)

    async def return_borrowing(self, borrowing: Borrowing) -> tuple[Borrowing, Book]:
        lifecycle.ensure_returnable(borrowing)
        book = await self.api.get_book(borrowing.book_id)
        _, updated_book = lifecycle.return_borrowing(
            borrowing, book, self.today(), self.weekly_fee
        )

        try:
            returned = await self.api.return_borrowing(borrowing.id)
        except MalformedResponseError:
            await self._undo_return(borrowing)
            raise
        self._check_fee(returned)
        try:
            saved_book = await self.api.update_book(updated_book)
        except CirculationError as e:
            await self._undo_return(borrowing)
            if isinstance(e, ConflictError):
                raise
            raise InventoryError(
                f"Could not restock book {borrowing.book_id}; return of {borrowing.id} rolled back."
            ) from e

        logger.info("[engine] borrowing %s returned, late fee %s", returned.borrowing_number, returned.late_fee)
        await self.events.emit(EventKind.BORROWING_RETURNED, returned)
        await self.events.emit(EventKind.BOOK_INVENTORY_CHANGED, saved_book)
        return returned, saved_book

    async def _undo_return(self, original: Borrowing) -> None:
        try:
            await self.api.update_borrowing(original.id, BorrowingUpdate.from_borrowing(original))
        except CirculationError:
            logger.exception("[engine] could not reopen borrowing %s after failed restock", original.id)

    def _check_fee(self, returned: Borrowing) -> None:
        if not self.verify_server_fees:
            return
        expected = Decimal(str(calculate_late_fee(returned.due_date, returned.return_date, self.weekly_fee)))
        if returned.late_fee != expected:
            logger.warning("[engine] server fee %s for borrowing %s differs from expected %s",
                           returned.late_fee, returned.id, expected)

    async def update_borrowing(
        self,
        borrowing: Borrowing,
        *,
        member_id: str | None = None,
        book_id: str | None = None,
        borrow_date: date | None = None,
        due_date: date | None = None,
        quantity: int | None = None,
    ) -> Borrowing:
        update = _payload(lambda: BorrowingUpdate.from_borrowing(
            borrowing, member_id=member_id, book_id=book_id,
            borrow_date=borrow_date, due_date=due_date, quantity=quantity,
        ))
        lifecycle.check_borrowing_edit(borrowing, update)
        updated = await self.api.update_borrowing(borrowing.id, update)
        await self.events.emit(EventKind.BORROWING_UPDATED, updated)
        return updated

    async def delete_borrowing(self, borrowing: Borrowing) -> None:
        # deleting is not returning: inventory is left as it is
        if borrowing.is_active:
            logger.warning("[engine] deleting active borrowing %s; %s cop(ies) of %s are not restocked",
                           borrowing.id, borrowing.quantity, borrowing.book_id)
        await self.api.delete_borrowing(borrowing.id)
        await self.events.emit(EventKind.BORROWING_DELETED, borrowing)

    async def list_borrowings(self, member_id: str | None = None) -> list[Borrowing]:
        return await self.api.list_borrowings(member_id)

    async def overdue_borrowings(self) -> list[Borrowing]:
        today = self.today()
        return [b for b in await self.api.list_borrowings() if is_overdue(b, today)]

    # Reservations

    async def reserve_book(
        self, *, member_id: str, book_id: str, reservation_date: date | None = None
    ) -> Reservation:
        intended = lifecycle.create_reservation(member_id, book_id, reservation_date or self.today())
        draft = _payload(lambda: ReservationDraft.from_reservation(intended))
        created = await self.api.create_reservation(draft)
        logger.info("[engine] %s reserved %s as %s", member_id, book_id, created.reservation_number)
        await self.events.emit(EventKind.RESERVATION_CREATED, created)
        return created

    async def receive_reservation(self, reservation: Reservation) -> Reservation:
        """Mark a pending reservation as collected.

        This does not create the borrowing or touch inventory; staff record
        the loan separately with :meth:`borrow_book`. Subscribers to
        ``RESERVATION_RECEIVED`` are told so they can refresh or follow up.
        """
        lifecycle.receive_reservation(reservation)
        received = await self.api.receive_reservation(reservation.id)
        await self.events.emit(EventKind.RESERVATION_RECEIVED, received)
        return received

    async def cancel_reservation(self, reservation: Reservation) -> Reservation:
        cancelled = lifecycle.cancel_reservation(reservation)
        update = _payload(lambda: ReservationUpdate.from_reservation(cancelled))
        saved = await self.api.update_reservation(reservation.id, update)
        await self.events.emit(EventKind.RESERVATION_CANCELLED, saved)
        return saved

    async def update_reservation(
        self,
        reservation: Reservation,
        *,
        member_id: str | None = None,
        book_id: str | None = None,
        reservation_date: date | None = None,
    ) -> Reservation:
        # status only moves through receive/cancel
        update = _payload(lambda: ReservationUpdate.from_reservation(
            reservation, member_id=member_id, book_id=book_id, reservation_date=reservation_date,
        ))
        saved = await self.api.update_reservation(reservation.id, update)
        await self.events.emit(EventKind.RESERVATION_UPDATED, saved)
        return saved

    async def delete_reservation(self, reservation: Reservation) -> None:
        await self.api.delete_reservation(reservation.id)
        await self.events.emit(EventKind.RESERVATION_DELETED, reservation)

    async def list_reservations(self, member_id: str | None = None) -> list[Reservation]:
        return await self.api.list_reservations(member_id)

    # Catalog, members, dashboard

    async def suggest_book_number(self) -> str:
        books = await self.api.list_books()
        return next_book_number(b.book_no for b in books)

    async def resolve_member(self, session: Session) -> Member:
        if session.member is not None:
            return session.member
        if not session.is_authenticated:
            raise NotAuthenticatedError("No user is logged in.")
        member = await self.api.get_member_by_user(session.user.id)
        session.attach_member(member)
        return member

    async def member_overview(self, session: Session) -> tuple[list[Borrowing], list[Reservation]]:
        member = await self.resolve_member(session)
        borrowings, reservations = await asyncio.gather(
            self.api.list_borrowings(member.key),
            self.api.list_reservations(member.key),
        )
        # the server filter is advisory, keep only this member's records
        return (
            [b for b in borrowings if b.member_id == member.key],
            [r for r in reservations if r.member_id == member.key],
        )

    async def dashboard_stats(self) -> LibraryStats:
        books, borrowings, reservations = await asyncio.gather(
            self.api.list_books(),
            self.api.list_borrowings(),
            self.api.list_reservations(),
        )
        return compute_stats(books, borrowings, reservations, today=self.today())
