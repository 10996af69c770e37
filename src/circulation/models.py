import enum
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from circulation.errors import BookUnavailableError

class BorrowingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"

def infer_borrow_status(return_date) -> BorrowingStatus:
    return BorrowingStatus.RETURNED if return_date else BorrowingStatus.ACTIVE

class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not ReservationStatus.PENDING

def _date_only(v):
    # The API mixes LocalDate ("2024-01-01") and full ISO timestamps.
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, str) and "T" in v:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
    return v

class WireModel(BaseModel):
    """Entity as it travels over the REST API: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

class Book(WireModel):
    # Unknown catalog fields (edition, image, createdAt...) survive a read-modify-write.
    model_config = ConfigDict(extra="allow")

    id: str
    book_no: str | None = None
    title: str = ""
    author: str | None = None
    genre: str | None = None
    year: int | None = None
    language: str | None = None
    location: str | None = None
    available_copies: int = Field(default=0, ge=0)
    availability: bool = False

    @field_validator("available_copies", mode="before")
    @classmethod
    def _none_is_zero(cls, v):
        return 0 if v is None else v

    @model_validator(mode="after")
    def _derive_availability(self):
        self.availability = self.available_copies > 0
        return self

    def adjust_copies(self, delta: int) -> "Book":
        """Return a copy with ``available_copies`` moved by ``delta`` and availability recomputed."""
        remaining = self.available_copies + delta
        if remaining < 0:
            raise BookUnavailableError(
                f"Book {self.id} has {self.available_copies} cop(ies) available, cannot take {-delta}."
            )
        return self.model_copy(update={"available_copies": remaining, "availability": remaining > 0})

class Borrowing(WireModel):
    id: str | None = None
    borrowing_number: str | None = None
    member_id: str
    book_id: str
    borrow_date: date
    due_date: date
    return_date: date | None = None
    status: BorrowingStatus = BorrowingStatus.ACTIVE
    late_fee: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: int = Field(default=1, ge=1)

    coerce_dates = field_validator("borrow_date", "due_date", "return_date", mode="before")(_date_only)

    @field_validator("late_fee", mode="before")
    @classmethod
    def _fee_default(cls, v):
        return 0 if v is None else v

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_default(cls, v):
        return 1 if v is None else v

    @property
    def is_active(self) -> bool:
        return self.status is BorrowingStatus.ACTIVE

class Reservation(WireModel):
    id: str | None = None
    reservation_number: str | None = None
    member_id: str
    book_id: str
    reservation_date: date | None = None
    status: ReservationStatus = ReservationStatus.PENDING

    coerce_dates = field_validator("reservation_date", mode="before")(_date_only)

    @field_validator("status", mode="before")
    @classmethod
    def _status_default(cls, v):
        # the server treats a missing status as pending
        return ReservationStatus.PENDING if v is None else v

class Member(WireModel):
    model_config = ConfigDict(extra="allow")

    id: str
    member_id: str | None = None
    user_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None

    @property
    def key(self) -> str:
        """Identifier borrowings and reservations are filed under."""
        return self.member_id or self.id

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)
