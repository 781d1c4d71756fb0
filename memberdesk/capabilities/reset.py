"""Reset: wipe the room's verification state and start over."""

from __future__ import annotations

import logging

from memberdesk.capabilities.base import CapabilityHandler, TurnContext
from memberdesk.extraction import ExtractionAdapter
from memberdesk.models.room import RoomSession
from memberdesk.router import Capability
from memberdesk.store.base import SessionStore, utcnow

log = logging.getLogger("memberdesk.capabilities.reset")

RESET_REPLY = (
    "I've reset our conversation. Let's start fresh! If you need help with your "
    "cooperative account or loan information, just let me know."
)

RESET_PROMPT = """\
Generate a friendly response letting the user know you've reset their session and authentication data.
Let them know they can start fresh and ask about their cooperative account or loan information.
Keep it conversational and brief.
"""


class ResetHandler(CapabilityHandler):
    capability = Capability.RESET

    def __init__(self, store: SessionStore, extractor: ExtractionAdapter) -> None:
        self._store = store
        self._extractor = extractor

    async def handle(self, ctx: TurnContext) -> None:
        log.info("Resetting session for room %s (was %s)", ctx.room_id, ctx.session.status.value)
        await self._store.put(ctx.room_id, RoomSession(room_id=ctx.room_id, reset_at=utcnow()))
        await ctx.emit(await self._extractor.compose_reply(RESET_PROMPT, RESET_REPLY))
