class CirculationError(Exception):
    """Base for everything the circulation engine raises.

    ``code`` is a stable machine-readable string, ``message`` a human one.
    """

    code = "CIRCULATION_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return f"{self.message} ({self.code})"


# Local validation: raised before any network call is made.

class ValidationError(CirculationError):
    code = "INVALID_PAYLOAD"

class BookUnavailableError(ValidationError):
    code = "BOOK_UNAVAILABLE"

class InvalidTransitionError(ValidationError):
    code = "INVALID_TRANSITION"

class NotAuthenticatedError(ValidationError):
    code = "NOT_AUTHENTICATED"


# Remote boundary.

class TransportError(CirculationError):
    code = "TRANSPORT_ERROR"

class MalformedResponseError(TransportError):
    """A 2xx response whose body does not have the expected shape.

    The request may still have taken effect on the server; ``payload`` is
    the decoded body so callers can find what was written.
    """

    def __init__(self, message: str, payload=None):
        super().__init__(message)
        self.payload = payload

class ApiError(CirculationError):
    code = "API_ERROR"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message, code)
        self.status_code = status_code

class NotFoundError(ApiError):
    code = "NOT_FOUND"

class ConflictError(ApiError):
    """Authoritative state diverged from what the caller assumed; re-fetch and decide again."""
    code = "CONFLICT"


class InventoryError(CirculationError):
    """The inventory step of a transition could not be confirmed and the transition was rolled back."""
    code = "INVENTORY_NOT_CONFIRMED"
