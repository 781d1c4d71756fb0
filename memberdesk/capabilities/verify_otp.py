"""OTP verification. The router only sends pure-digit messages here, and
only while the room is waiting for a code."""

from __future__ import annotations

import logging
from typing import Optional

from memberdesk.capabilities.base import CapabilityHandler, Continuation, TurnContext
from memberdesk.errors import ResolutionFailure
from memberdesk.extraction import ExtractionAdapter
from memberdesk.models.room import AuthStatus
from memberdesk.router import Capability
from memberdesk.store.base import SessionStore, utcnow

log = logging.getLogger("memberdesk.capabilities.verify_otp")

VERIFIED_REPLY = (
    "Authentication successful! You're now logged in and can check your loan information "
    "or perform other account-related actions. How can I help you today?"
)
VERIFIED_RESUMING_REPLY = (
    "You've been successfully authenticated! I'll now check your loan information."
)
OTP_MISMATCH_REPLY = (
    "The verification code you provided doesn't match what we sent. Please check your "
    "email and try again. If you don't see it, check your spam folder."
)
OTP_UNREADABLE_REPLY = (
    "I couldn't identify a valid verification code in your message. Please enter only "
    "the 6-digit numerical code sent to your email."
)


class VerifyOtpHandler(CapabilityHandler):
    capability = Capability.VERIFY_OTP

    def __init__(
        self,
        store: SessionStore,
        extractor: ExtractionAdapter,
        continuations: Optional[dict[str, Continuation]] = None,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._continuations = continuations if continuations is not None else {}

    async def handle(self, ctx: TurnContext) -> None:
        session = ctx.session
        if session.status != AuthStatus.NEED_OTP:
            log.warning("Room %s not awaiting a code (status %s)", ctx.room_id, session.status.value)
            return

        try:
            entered = await self._extractor.extract_otp(ctx.text)
        except ResolutionFailure:
            await ctx.emit(OTP_UNREADABLE_REPLY)
            return

        # Exact string comparison: "007" is not "7"
        if entered != session.otp_expected:
            log.warning("OTP mismatch for room %s", ctx.room_id)
            await ctx.emit(OTP_MISMATCH_REPLY)
            return

        verified = await self._store.put(ctx.room_id, session.model_copy(update={
            "status": AuthStatus.AUTHENTICATED,
            "verified_at": utcnow(),
            "last_error": None,
        }))
        log.info("OTP verified for room %s", ctx.room_id)

        continuation = self._continuations.get(verified.pending_intent) if verified.pending_intent else None
        if continuation is None:
            await ctx.emit(VERIFIED_REPLY)
            return

        await ctx.emit(VERIFIED_RESUMING_REPLY)
        await continuation(ctx, verified)
