"""Masking helpers so secrets and PII never reach log output in plaintext."""

from __future__ import annotations

from typing import Any

from memberdesk.models.room import RoomSession

REDACTED = "[REDACTED]"


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


def mask_email(email: str | None) -> str:
    """Keep the first two characters of the local part, mask the rest.

    ``"jane.doe@coop.org"`` becomes ``"ja******@coop.org"``.
    """
    if not email:
        return ""

    if email.count("@") != 1:
        return email[:2] + "*" * (len(email) - 2) if len(email) > 4 else email

    name, domain = email.split("@")
    if len(name) <= 2:
        return email
    return f"{name[:2]}{'*' * min(len(name) - 2, 6)}@{domain}"


def redact_session(session: RoomSession) -> dict[str, Any]:
    """Return a log-safe dict view of a session."""
    data = session.model_dump(mode="json")
    for key in ("otp_expected", "auth_token"):
        if data.get(key):
            data[key] = REDACTED
    for key in ("partial_credentials", "credentials"):
        creds = data.get(key)
        if creds:
            data[key] = {
                "email": mask_email(creds.get("email")) or None,
                "employee_number": (
                    redact_pii(creds["employee_number"]) if creds.get("employee_number") else None
                ),
            }
    return data
