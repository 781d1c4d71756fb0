"""Session expiry and the background sweep.

A verification that stalls halfway should not linger forever: a member who
walks away while the OTP is outstanding must start over. Thresholds depend
on how far along the flow the room is. AUTHENTICATED rooms never expire.

The sweeper runs the same check across every stored room on a fixed
cadence, and physically deletes records nobody has touched for a day.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from memberdesk.models.room import AuthStatus, RoomSession
from memberdesk.store.base import SessionStore

log = logging.getLogger("memberdesk.expiry")

DEFAULT_THRESHOLDS: dict[AuthStatus, timedelta] = {
    AuthStatus.NEED_OTP: timedelta(minutes=15),
    AuthStatus.NEED_CREDENTIALS: timedelta(minutes=20),
    AuthStatus.NEED_TENANT: timedelta(minutes=30),
    AuthStatus.FAILED: timedelta(minutes=30),
}
FALLBACK_THRESHOLD = timedelta(minutes=30)


@dataclass
class ExpiryPolicy:
    thresholds: dict[AuthStatus, timedelta] = field(
        default_factory=lambda: dict(DEFAULT_THRESHOLDS)
    )

    def threshold_for(self, status: AuthStatus) -> timedelta:
        return self.thresholds.get(status, FALLBACK_THRESHOLD)

    def is_expired(self, session: RoomSession, now: Optional[datetime] = None) -> bool:
        """True when the session has sat in its phase longer than allowed.

        Never-persisted (default) sessions and AUTHENTICATED ones never expire.
        """
        if session.status == AuthStatus.AUTHENTICATED or not session.is_persisted:
            return False
        now = now or datetime.now(tz=timezone.utc)
        return now - session.updated_at > self.threshold_for(session.status)


def expired_session(session: RoomSession) -> RoomSession:
    """Fresh NEED_TENANT record remembering what the room was doing.

    Secrets and partial credentials are dropped; the pending intent is not
    kept either, the member is starting over.
    """
    return RoomSession(
        room_id=session.room_id,
        status=AuthStatus.NEED_TENANT,
        previous_status=session.status,
        timed_out=True,
    )


@dataclass
class SweepResult:
    scanned: int = 0
    expired: int = 0
    purged: int = 0


class SessionSweeper:
    """Periodic cleanup of stale room sessions.

    Typical lifecycle::

        sweeper = SessionSweeper(store, ExpiryPolicy())
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        store: SessionStore,
        policy: ExpiryPolicy,
        interval_seconds: float = 3600,
        purge_after: timedelta = timedelta(hours=24),
    ) -> None:
        self._store = store
        self._policy = policy
        self._interval = interval_seconds
        self._purge_after = purge_after
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: Optional[datetime] = None) -> SweepResult:
        """Single pass over every stored room."""
        now = now or datetime.now(tz=timezone.utc)
        result = SweepResult()

        for session in await self._store.list_sessions():
            result.scanned += 1
            if session.status == AuthStatus.AUTHENTICATED or session.updated_at is None:
                continue

            age = now - session.updated_at
            if age > self._purge_after:
                if await self._store.delete(session.room_id):
                    result.purged += 1
                continue

            # Already expired and untouched since; leave it to age out to the purge
            if session.timed_out and session.status == AuthStatus.NEED_TENANT:
                continue

            if self._policy.is_expired(session, now):
                await self._store.put(session.room_id, expired_session(session))
                result.expired += 1

        log.info(
            "Sweep done: scanned=%d expired=%d purged=%d",
            result.scanned, result.expired, result.purged,
        )
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception as exc:
                log.error("Session sweep failed: %s", exc)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        log.info("Session sweeper started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info("Session sweeper stopped")
