"""Exception hierarchy for the member desk.

Every failure a turn can hit maps onto one of these classes. Handlers catch
the recoverable ones and re-prompt; ``StorageError`` is left to the turn
driver, which answers with a generic retry message.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class MemberDeskError(Exception):
    """Base class for all member desk errors.

    Attributes:
        message: Human-readable description (never contains secrets).
        recoverable: Whether the user can fix the problem by answering again.
    """

    recoverable: bool = True

    def __init__(self, message: str, recoverable: Optional[bool] = None) -> None:
        self.message = message
        if recoverable is not None:
            self.recoverable = recoverable
        super().__init__(message)


class ResolutionFailure(MemberDeskError):
    """Tenant, credentials or OTP could not be pulled out of the text."""


class ValidationFailure(MemberDeskError):
    """A value was extracted but is malformed or a required field is missing."""

    def __init__(self, field: str, message: str = "") -> None:
        self.field = field
        super().__init__(message or f"{field} is missing or invalid")


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class LoanErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"


class UpstreamAuthError(MemberDeskError):
    """The tenant authentication API rejected or failed the request."""

    def __init__(
        self,
        kind: AuthErrorKind,
        status_code: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message or f"authentication failed ({kind.value}, status={status_code})")


class UpstreamDataError(MemberDeskError):
    """The tenant loan API rejected or failed the request."""

    def __init__(
        self,
        kind: LoanErrorKind,
        status_code: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        super().__init__(message or f"loan lookup failed ({kind.value}, status={status_code})")


class StorageError(MemberDeskError):
    """The session store could not persist a record."""

    recoverable = False


class GenerationError(MemberDeskError):
    """The text-generation collaborator failed or returned nothing usable."""
