"""SQLite-backed session store.

One row per room in the ``auth_state`` table holding the session as JSON.
sqlite3 is blocking, so every call runs in the default thread pool.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import closing
from functools import partial
from pathlib import Path
from typing import Any, Optional

from memberdesk.models.room import RoomSession
from memberdesk.store.base import TABLE_NAME, SessionStore

log = logging.getLogger("memberdesk.store.sqlite")


class SqliteSessionStore(SessionStore):

    def __init__(self, path: str | Path, **kwargs) -> None:
        super().__init__(**kwargs)
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._create_table()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        return conn

    def _create_table(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                    room_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    content TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        log.info("Session table ready at %s", self._path)

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a blocking sqlite call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def _select_one(self, room_id: str) -> Optional[str]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT content FROM {TABLE_NAME} WHERE room_id = ?", (room_id,)
            ).fetchone()
        return row["content"] if row else None

    def _upsert(self, room_id: str, status: str, content: str, updated_at: str) -> None:
        with closing(self._connect()) as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {TABLE_NAME} (room_id, status, content, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (room_id, status, content, updated_at),
            )
            conn.commit()

    def _select_all(self) -> list[str]:
        with closing(self._connect()) as conn:
            rows = conn.execute(f"SELECT content FROM {TABLE_NAME}").fetchall()
        return [row["content"] for row in rows]

    def _delete(self, room_id: str) -> int:
        with closing(self._connect()) as conn:
            cursor = conn.execute(f"DELETE FROM {TABLE_NAME} WHERE room_id = ?", (room_id,))
            conn.commit()
            return cursor.rowcount

    # ------------------------------------------------------------------
    # SessionStore interface
    # ------------------------------------------------------------------

    async def _load(self, room_id: str) -> Optional[RoomSession]:
        content = await self._run_in_executor(self._select_one, room_id)
        if content is None:
            return None
        return RoomSession.model_validate_json(content)

    async def _save(self, session: RoomSession) -> None:
        await self._run_in_executor(
            self._upsert,
            session.room_id,
            session.status.value,
            session.model_dump_json(),
            session.updated_at.isoformat() if session.updated_at else "",
        )

    async def list_sessions(self) -> list[RoomSession]:
        contents = await self._run_in_executor(self._select_all)
        return [RoomSession.model_validate_json(content) for content in contents]

    async def delete(self, room_id: str) -> bool:
        removed = await self._run_in_executor(self._delete, room_id)
        return removed > 0
