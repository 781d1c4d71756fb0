"""In-process session store. Records are kept serialized so callers never
share mutable objects with the store."""

from __future__ import annotations

from typing import Optional

from memberdesk.models.room import RoomSession
from memberdesk.store.base import SessionStore


class InMemorySessionStore(SessionStore):

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._records: dict[str, str] = {}

    async def _load(self, room_id: str) -> Optional[RoomSession]:
        raw = self._records.get(room_id)
        if raw is None:
            return None
        return RoomSession.model_validate_json(raw)

    async def _save(self, session: RoomSession) -> None:
        self._records[session.room_id] = session.model_dump_json()

    async def list_sessions(self) -> list[RoomSession]:
        return [RoomSession.model_validate_json(raw) for raw in self._records.values()]

    async def delete(self, room_id: str) -> bool:
        return self._records.pop(room_id, None) is not None

    def __len__(self) -> int:
        return len(self._records)
