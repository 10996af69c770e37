import json
import math
from datetime import date
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio

from circulation.api.client import LibraryApiClient
from circulation.engine import CirculationEngine
from circulation.events import EventBus

START = date(2024, 1, 1)
BASE_URL = "http://library.test/api"

class FakeLibraryServer:
    """In-memory stand-in for the library REST API, served through httpx.MockTransport."""

    def __init__(self, today: date):
        self.today = today
        self.weekly_fee = 100
        self.books: dict[str, dict] = {}
        self.members: dict[str, dict] = {}
        self.borrowings: dict[str, dict] = {}
        self.reservations: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self._failures: dict[tuple[str, str], tuple[int, str]] = {}
        self._manglers: dict[tuple[str, str], Callable[[dict], Any]] = {}
        self._seq = {"BR": 0, "RS": 0}

    # setup helpers

    def add_book(self, book_id: str, copies: int, book_no: str | None = None, **extra) -> dict:
        self.books[book_id] = {
            "id": book_id, "bookNo": book_no, "title": f"Title {book_id}", "author": "Anon",
            "availableCopies": copies, "availability": copies > 0, "edition": "1st", **extra,
        }
        return self.books[book_id]

    def add_member(self, user_id: str, member_id: str) -> dict:
        self.members[user_id] = {"id": f"m-{user_id}", "memberId": member_id, "userId": user_id,
                                 "firstName": "Ada", "lastName": "Lovelace"}
        return self.members[user_id]

    def fail_next(self, method: str, path: str, status: int, body: str = "") -> None:
        self._failures[(method, path)] = (status, body)

    def mangle_next(self, method: str, path: str, transform: Callable[[dict], Any]) -> None:
        """Apply the next matching request normally but answer with ``transform(body)``."""
        self._manglers[(method, path)] = transform

    def called(self, method: str, path: str) -> bool:
        return (method, path) in self.calls

    # server rules

    def _next_number(self, prefix: str) -> str:
        self._seq[prefix] += 1
        return f"{prefix}{self.today.year}{self._seq[prefix]:04d}"

    def _fee(self, due: str | None, returned: str | None) -> int:
        if not due:
            return 0
        end = date.fromisoformat(returned) if returned else self.today
        days = (end - date.fromisoformat(due)).days
        if days <= 0:
            return 0
        return math.ceil(days / 7) * self.weekly_fee

    def _save_borrowing(self, bid: str, body: dict) -> dict:
        body["status"] = "RETURNED" if body.get("returnDate") else "ACTIVE"
        body["lateFee"] = self._fee(body.get("dueDate"), body.get("returnDate"))
        self.borrowings[bid] = body
        return body

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path.removeprefix("/api")
        self.calls.append((method, path))
        if (method, path) in self._failures:
            status, text = self._failures.pop((method, path))
            return httpx.Response(status, text=text)
        response = self._route(request, method, path)
        if (method, path) in self._manglers:
            transform = self._manglers.pop((method, path))
            return httpx.Response(response.status_code, json=transform(response.json()))
        return response

    def _route(self, request: httpx.Request, method: str, path: str) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        parts = path.strip("/").split("/")
        member_filter = request.url.params.get("memberId")
        resource = parts[0]

        if resource == "books":
            if len(parts) == 1:
                return httpx.Response(200, json=list(self.books.values()))
            book = self.books.get(parts[1])
            if book is None:
                return httpx.Response(404, text="Book not found")
            if method == "PUT":
                self.books[parts[1]] = body
                return httpx.Response(200, json=body)
            return httpx.Response(200, json=book)

        if resource == "members":
            member = self.members.get(parts[2])
            if member is None:
                return httpx.Response(200, json={"success": False, "message": "Member not found"})
            return httpx.Response(200, json={"success": True, "message": "ok", "data": member})

        if resource == "borrowings":
            if len(parts) == 1 and method == "GET":
                items = [b for b in self.borrowings.values()
                         if not member_filter or b["memberId"] == member_filter]
                return httpx.Response(200, json=items)
            if len(parts) == 1 and method == "POST":
                number = self._next_number("BR")
                bid = f"br-{self._seq['BR']}"
                body.update(id=bid, borrowingNumber=number)
                return httpx.Response(200, json=self._save_borrowing(bid, body))
            existing = self.borrowings.get(parts[1])
            if existing is None:
                return httpx.Response(404)
            if method == "DELETE":
                del self.borrowings[parts[1]]
                return httpx.Response(204)
            if method == "PUT":
                merged = {**existing, **body}
                return httpx.Response(200, json=self._save_borrowing(parts[1], merged))
            if parts[-1] == "return":
                existing["returnDate"] = self.today.isoformat()
                return httpx.Response(200, json=self._save_borrowing(parts[1], existing))

        if resource == "reservations":
            if len(parts) == 1 and method == "GET":
                items = [r for r in self.reservations.values()
                         if not member_filter or r["memberId"] == member_filter]
                return httpx.Response(200, json=items)
            if len(parts) == 1 and method == "POST":
                number = self._next_number("RS")
                rid = f"rs-{self._seq['RS']}"
                body.update(id=rid, reservationNumber=number)
                body.setdefault("status", "PENDING")
                self.reservations[rid] = body
                return httpx.Response(200, json=body)
            existing = self.reservations.get(parts[1])
            if existing is None:
                return httpx.Response(404)
            if method == "DELETE":
                del self.reservations[parts[1]]
                return httpx.Response(204)
            if method == "PUT":
                existing.update(body)
                return httpx.Response(200, json=existing)
            if parts[-1] == "receive":
                if existing.get("status") not in (None, "PENDING"):
                    return httpx.Response(400)
                existing["status"] = "RECEIVED"
                return httpx.Response(200, json=existing)

        return httpx.Response(405, text=f"No route for {method} {path}")

@pytest.fixture
def server():
    return FakeLibraryServer(today=START)

@pytest_asyncio.fixture
async def api(server):
    client = LibraryApiClient(BASE_URL, transport=httpx.MockTransport(server.handle))
    try:
        yield client
    finally:
        await client.aclose()

@pytest.fixture
def bus():
    return EventBus()

@pytest.fixture
def engine(api, bus, server):
    return CirculationEngine(api, bus, weekly_fee=100, loan_days=14, today=lambda: server.today)
