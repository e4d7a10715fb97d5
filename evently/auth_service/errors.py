"""
Error taxonomy for authentication operations.

Controller operations return these inside an AuthResult instead of raising,
so views can show `str(error)` directly.
"""

from dataclasses import dataclass
from typing import Optional


class AuthError(Exception):
    """Base class; `str(error)` is always a human-readable message."""

    default_message = "Authentication failed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(AuthError):
    default_message = "A required field is missing."


class CredentialError(AuthError):
    default_message = "Invalid email or password."


class AccountCreationError(AuthError):
    default_message = "Could not create the account."


class ProfileCreationError(AuthError):
    default_message = "Your account was created but the profile could not be saved. Please sign up again."


class ProfileFetchError(AuthError):
    default_message = "Could not load your profile."


class ProfileUpdateError(AuthError):
    default_message = "Could not update your profile."


class RoleUpdateError(AuthError):
    default_message = "Could not update your role."


class SignOutError(AuthError):
    default_message = "Could not sign out."


@dataclass(frozen=True)
class AuthResult:
    error: Optional[AuthError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


OK = AuthResult()
