"""Context snippets describing supported cooperatives and a room's
verification status. Both are plain text, safe to show or log."""

from __future__ import annotations

from memberdesk.models.room import RoomSession
from memberdesk.redaction import mask_email, redact_pii
from memberdesk.store.base import SessionStore
from memberdesk.tenants import TenantResolver


def cooperatives_listing(resolver: TenantResolver) -> str:
    names = "\n".join(f"- {name}" for name in resolver.canonical_names())
    return (
        "# Available Cooperatives\n"
        "The following cooperatives are currently supported:\n"
        f"{names}\n"
    )


def describe_session(session: RoomSession) -> str:
    if not session.is_persisted:
        return "User is not authenticated. No authentication state found."

    lines = ["# Authentication Status", f"Current status: {session.status.value}"]
    if session.tenant:
        lines.append(f"Cooperative: {session.tenant_display_name or session.tenant} ({session.tenant})")
    if session.credentials:
        lines.append(f"Email: {mask_email(session.credentials.email)}")
        if session.credentials.employee_number:
            lines.append(f"Employee #: {redact_pii(session.credentials.employee_number)}")
    if session.pending_intent:
        lines.append(f"Pending: {session.pending_intent}")
    if session.verified_at:
        lines.append(f"Verified at: {session.verified_at.isoformat()}")
    if session.timed_out and session.previous_status:
        lines.append(f"Timed out while in: {session.previous_status.value}")
    if session.last_error:
        lines.append(f"Last error: {session.last_error}")
    return "\n".join(lines) + "\n"


async def auth_status_summary(store: SessionStore, room_id: str) -> str:
    session = await store.get(room_id)
    if session.storage_error:
        return f"Error retrieving authentication status: {session.storage_error}"
    return describe_session(session)
