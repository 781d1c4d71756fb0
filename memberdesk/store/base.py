"""Abstract base class for room session stores.

Any persistence backend implements ``_load``/``_save`` plus the sweep
helpers. The public ``get``/``put`` contract lives here so every backend
behaves the same way:

  get   never raises. A failed read yields a default NEED_TENANT session
        annotated with ``storage_error``.
  put   stamps ``updated_at`` and replaces the whole record. Raises
        ``StorageError`` when the write fails.

There is no compare-and-swap. Two turns in the same room that overlap
their read-modify-write can overwrite each other; the last write wins.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from memberdesk.errors import StorageError
from memberdesk.models.room import RoomSession
from memberdesk.redaction import redact_session

log = logging.getLogger("memberdesk.store")

TABLE_NAME = "auth_state"


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class SessionStore(ABC):
    """Per-room session persistence with whole-record replace semantics."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    async def get(self, room_id: str) -> RoomSession:
        """Return the latest session for ``room_id`` or a fresh default."""
        try:
            session = await self._load(room_id)
        except Exception as exc:
            log.error("Error reading session for room %s: %s", room_id, exc)
            return RoomSession(room_id=room_id, storage_error=str(exc))

        if session is None:
            log.debug("No session stored for room %s, using default", room_id)
            return RoomSession(room_id=room_id)
        return session

    async def put(self, room_id: str, session: RoomSession) -> RoomSession:
        """Persist a full replacement of the room's session.

        Returns the stamped copy that was written.
        """
        stamped = session.model_copy(update={
            "room_id": room_id,
            "updated_at": self._clock(),
            "storage_error": None,
        })
        log.debug("Writing session for room %s: %s", room_id, redact_session(stamped))

        try:
            await self._save(stamped)
        except Exception as exc:
            log.error("Error writing session for room %s: %s", room_id, exc)
            raise StorageError(f"could not persist session for room {room_id}") from exc
        return stamped

    # ── Backend interface ────────────────────────────────────────

    @abstractmethod
    async def _load(self, room_id: str) -> Optional[RoomSession]:
        """Return the stored session or None when the room has no record."""

    @abstractmethod
    async def _save(self, session: RoomSession) -> None:
        """Insert or replace the record for ``session.room_id``."""

    @abstractmethod
    async def list_sessions(self) -> list[RoomSession]:
        """Return every stored session. Used by the background sweep."""

    @abstractmethod
    async def delete(self, room_id: str) -> bool:
        """Physically remove a room's record.

        Only the sweep calls this; normal flow overwrites instead.
        Returns True if a record was removed.
        """
