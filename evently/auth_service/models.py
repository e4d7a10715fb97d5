"""
Session and profile models for the authentication service.

A Profile is the application-owned `users` row that extends an Account.
The SessionView is the read-only projection every page gates on.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

PROFILE_TABLE = "users"
PROFILE_KEY = "auth_user_id"


class Role(str, Enum):
    ATTENDEE = "attendee"
    ORGANIZER = "organizer"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        """Return the Role for `value`, or None if it is not a known role."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str
    role: Optional[Role] = None
    organization_name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None

    def with_role(self, role: Role) -> "User":
        return replace(self, role=role)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value if self.role else None,
            "organization_name": self.organization_name,
            "bio": self.bio,
            "profile_picture_url": self.profile_picture_url,
        }


@dataclass(frozen=True)
class SessionView:
    user: Optional[User] = None
    role: Optional[Role] = None
    is_loading: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user.to_dict() if self.user else None,
            "role": self.role.value if self.role else None,
            "is_loading": self.is_loading,
        }


@dataclass(frozen=True)
class ProfileDraft:
    """Sign-up form data."""
    email: str
    name: str = ""
    organization_name: Optional[str] = None
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None


def local_part(email: str) -> str:
    """'ana@example.com' -> 'ana'"""
    return email.split("@", 1)[0]


def user_from_profile(email: str, row: Dict[str, Any]) -> User:
    """Merge the account email with a profile row (storage names -> app names)."""
    return User(
        id=str(row[PROFILE_KEY]),
        email=email or row.get("email") or "",
        name=row.get("name") or local_part(email),
        role=Role.parse(row.get("role")),
        organization_name=row.get("organization_name"),
        bio=row.get("bio"),
        profile_picture_url=row.get("profile_picture_url"),
    )


def orphan_user(account_id: str, email: str) -> User:
    """Minimal user for an account that has no profile row yet."""
    return User(id=account_id, email=email, name=local_part(email))


def profile_record(account_id: str, draft: ProfileDraft, role: Role) -> Dict[str, Any]:
    """
    Build the profile row inserted at sign-up.

    Organization fields are kept only for organizers.
    """
    is_organizer = role is Role.ORGANIZER
    return {
        PROFILE_KEY: account_id,
        "email": draft.email,
        "name": draft.name or local_part(draft.email),
        "role": role.value,
        "organization_name": draft.organization_name if is_organizer else None,
        "bio": draft.bio if is_organizer else None,
        "profile_picture_url": draft.profile_picture_url,
    }
