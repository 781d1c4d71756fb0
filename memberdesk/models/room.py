"""Pydantic model tracking a room's verification state through the conversation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

LOAN_LOOKUP_INTENT = "loan-lookup"


class AuthStatus(str, Enum):
    NEED_TENANT = "NEED_TENANT"
    NEED_CREDENTIALS = "NEED_CREDENTIALS"
    NEED_OTP = "NEED_OTP"
    AUTHENTICATED = "AUTHENTICATED"
    FAILED = "FAILED"


class Credentials(BaseModel):
    """Email + employee number pair; either half may still be missing."""

    email: Optional[str] = None
    employee_number: Optional[str] = None

    def merged_with(self, newer: "Credentials") -> "Credentials":
        """Combine with a newer extraction. Newer values win only when set."""
        return Credentials(
            email=newer.email or self.email,
            employee_number=newer.employee_number or self.employee_number,
        )


class RoomSession(BaseModel):
    """Persisted authentication state for one conversation room.

    Fields are filled in progressively as the member names their
    cooperative, supplies credentials and confirms the OTP. The store
    always replaces the whole record; there is no partial update.
    """

    room_id: str
    status: AuthStatus = AuthStatus.NEED_TENANT

    # Tenant selection
    tenant: Optional[str] = None
    tenant_display_name: Optional[str] = None

    # Credentials gathered across turns, then the verified pair
    partial_credentials: Optional[Credentials] = Field(default=None, repr=False)
    credentials: Optional[Credentials] = Field(default=None, repr=False)

    # Secrets issued by the tenant API
    otp_expected: Optional[str] = Field(default=None, repr=False)
    auth_token: Optional[str] = Field(default=None, repr=False)

    pending_intent: Optional[str] = None
    last_error: Optional[str] = None

    # Set when the expiry policy overwrote the session
    previous_status: Optional[AuthStatus] = None
    timed_out: bool = False

    otp_issued_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    reset_at: Optional[datetime] = None

    # Annotation on the default session returned after a failed read
    storage_error: Optional[str] = None

    updated_at: Optional[datetime] = None

    @property
    def is_persisted(self) -> bool:
        return self.updated_at is not None

    @property
    def employee_number(self) -> Optional[str]:
        return self.credentials.employee_number if self.credentials else None
