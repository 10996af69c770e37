import enum
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

class EventKind(str, enum.Enum):
    BORROWING_CREATED = "borrowing:created"
    BORROWING_UPDATED = "borrowing:updated"
    BORROWING_RETURNED = "borrowing:returned"
    BORROWING_DELETED = "borrowing:deleted"
    RESERVATION_CREATED = "reservation:created"
    RESERVATION_UPDATED = "reservation:updated"
    RESERVATION_RECEIVED = "reservation:received"
    RESERVATION_CANCELLED = "reservation:cancelled"
    RESERVATION_DELETED = "reservation:deleted"
    BOOK_INVENTORY_CHANGED = "book:inventory-changed"

@dataclass
class Event:
    kind: EventKind
    payload: Any = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

Handler = Callable[[Event], Awaitable[None] | None]

class EventBus:
    """In-process publish/subscribe for circulation transitions.

    Handlers run in subscription order; coroutine handlers are awaited.
    A handler that raises is logged and skipped, the transition that
    produced the event has already completed.
    """

    def __init__(self):
        self._handlers: dict[EventKind, list[Handler]] = {}

    def subscribe(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(kind, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(kind, [])
            if handler in handlers:
                handlers.remove(handler)
        return unsubscribe

    def subscribe_many(self, kinds, handler: Handler) -> Callable[[], None]:
        undo = [self.subscribe(k, handler) for k in kinds]

        def unsubscribe() -> None:
            for u in undo:
                u()
        return unsubscribe

    async def publish(self, event: Event) -> None:
        for handler in list(self._handlers.get(event.kind, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("[events] handler %r failed on %s", handler, event.kind.value)

    async def emit(self, kind: EventKind, payload: Any = None) -> None:
        await self.publish(Event(kind=kind, payload=payload))
