import logging
from typing import Any, Optional
import httpx
import pydantic

from circulation.config import settings
from circulation.errors import ApiError, ConflictError, MalformedResponseError, NotFoundError, TransportError
from circulation.models import Book, Borrowing, Member, Reservation
from circulation.schemas import (
    BorrowingDraft, BorrowingUpdate, ReservationDraft, ReservationUpdate
)

logger = logging.getLogger(__name__)

class LibraryApiClient:
    """Async client for the library REST API (books, members, borrowings, reservations).

    Each call is a single request: no retries, no caching. A non-2xx
    response raises with the response body text (or the status reason when
    the body is empty); 204 and empty bodies come back as ``None``.
    """

    def __init__(
        self,
        base_url: str = settings.LIBRARY_API_BASE_URL,
        timeout: float = settings.LIBRARY_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self):
        await self._http.aclose()

    async def __aenter__(self) -> "LibraryApiClient":
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def _request(self, method: str, path: str, *, json: Any = None, params: dict | None = None) -> Any:
        try:
            resp = await self._http.request(method, path, json=json, params=params)
        except httpx.RequestError as e:
            logger.warning("[api] %s %s failed: %s", method, path, e)
            raise TransportError(f"{method} {path}: {e}") from e

        if resp.is_error:
            message = resp.text or resp.reason_phrase
            logger.info("[api] %s %s -> %s %s", method, path, resp.status_code, message[:200])
            if resp.status_code == 404:
                raise NotFoundError(message, status_code=404)
            if resp.status_code == 409:
                raise ConflictError(message, status_code=409)
            raise ApiError(message, status_code=resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"{method} {path}: malformed JSON response", payload=resp.text) from e

    @staticmethod
    def _member_filter(member_id: str | None) -> dict | None:
        return {"memberId": member_id} if member_id else None

    @staticmethod
    def _parse(model, data: Any, where: str):
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            logger.warning("[api] %s returned an unexpected %s: %s", where, model.__name__, e)
            raise MalformedResponseError(f"{where}: response is not a valid {model.__name__}", payload=data) from e

    def _parse_list(self, model, data: Any, where: str) -> list:
        if data is None:
            return []
        if not isinstance(data, list):
            raise MalformedResponseError(f"{where}: expected a list of {model.__name__}", payload=data)
        return [self._parse(model, it, where) for it in data]

    # Borrowings

    async def list_borrowings(self, member_id: str | None = None) -> list[Borrowing]:
        data = await self._request("GET", "/borrowings", params=self._member_filter(member_id))
        return self._parse_list(Borrowing, data, "GET /borrowings")

    async def create_borrowing(self, draft: BorrowingDraft) -> Borrowing:
        data = await self._request("POST", "/borrowings", json=draft.to_wire())
        return self._parse(Borrowing, data, "POST /borrowings")

    async def update_borrowing(self, borrowing_id: str, update: BorrowingUpdate) -> Borrowing:
        data = await self._request("PUT", f"/borrowings/{borrowing_id}", json=update.to_wire())
        return self._parse(Borrowing, data, f"PUT /borrowings/{borrowing_id}")

    async def return_borrowing(self, borrowing_id: str) -> Borrowing:
        data = await self._request("POST", f"/borrowings/{borrowing_id}/return")
        return self._parse(Borrowing, data, f"POST /borrowings/{borrowing_id}/return")

    async def delete_borrowing(self, borrowing_id: str) -> None:
        await self._request("DELETE", f"/borrowings/{borrowing_id}")

    # Reservations

    async def list_reservations(self, member_id: str | None = None) -> list[Reservation]:
        data = await self._request("GET", "/reservations", params=self._member_filter(member_id))
        return self._parse_list(Reservation, data, "GET /reservations")

    async def create_reservation(self, draft: ReservationDraft) -> Reservation:
        data = await self._request("POST", "/reservations", json=draft.to_wire())
        return self._parse(Reservation, data, "POST /reservations")

    async def update_reservation(self, reservation_id: str, update: ReservationUpdate) -> Reservation:
        data = await self._request("PUT", f"/reservations/{reservation_id}", json=update.to_wire())
        return self._parse(Reservation, data, f"PUT /reservations/{reservation_id}")

    async def receive_reservation(self, reservation_id: str) -> Reservation:
        data = await self._request("POST", f"/reservations/{reservation_id}/receive")
        return self._parse(Reservation, data, f"POST /reservations/{reservation_id}/receive")

    async def delete_reservation(self, reservation_id: str) -> None:
        await self._request("DELETE", f"/reservations/{reservation_id}")

    # Books

    async def list_books(self) -> list[Book]:
        data = await self._request("GET", "/books")
        return self._parse_list(Book, data, "GET /books")

    async def get_book(self, book_id: str) -> Book:
        data = await self._request("GET", f"/books/{book_id}")
        return self._parse(Book, data, f"GET /books/{book_id}")

    async def update_book(self, book: Book) -> Book:
        data = await self._request("PUT", f"/books/{book.id}", json=book.to_wire())
        return self._parse(Book, data, f"PUT /books/{book.id}") if data else book

    # Members

    async def get_member_by_user(self, user_id: str) -> Member:
        where = f"GET /members/user/{user_id}"
        payload = await self._request("GET", f"/members/user/{user_id}") or {}
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"{where}: expected a response envelope", payload=payload)
        if not payload.get("success") or not payload.get("data"):
            raise NotFoundError(payload.get("message") or "Member information not found", status_code=404)
        return self._parse(Member, payload["data"], where)
