from dataclasses import dataclass

from circulation.errors import NotAuthenticatedError
from circulation.models import Member

@dataclass
class SessionUser:
    id: str
    name: str | None = None
    email: str | None = None
    role: str = "MEMBER"

class Session:
    """Who is using the engine right now.

    Created once per login and passed to the calls that act on behalf of the
    logged-in member.
    """

    def __init__(self):
        self.user: SessionUser | None = None
        self.member: Member | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.role.upper() == "ADMIN"

    def login(self, user: SessionUser, member: Member | None = None) -> None:
        self.user = user
        self.member = member

    def attach_member(self, member: Member) -> None:
        if self.user is None:
            raise NotAuthenticatedError("Log in before attaching a member.")
        self.member = member

    def logout(self) -> None:
        self.user = None
        self.member = None

    @property
    def member_key(self) -> str:
        if self.user is None:
            raise NotAuthenticatedError("No user is logged in.")
        if self.member is None:
            raise NotAuthenticatedError(
                f"User {self.user.id} has no member profile.", code="MEMBER_NOT_RESOLVED"
            )
        return self.member.key
