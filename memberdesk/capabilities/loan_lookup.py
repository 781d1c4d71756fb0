"""Loan lookup for verified members.

Unverified rooms are sent into the verification flow with the loan intent
remembered; ``resume`` is the continuation that runs once the OTP checks
out. Any failure from the loan API drops the room back to NEED_TENANT with
the intent still pending, so the answer arrives after re-verification.
"""

from __future__ import annotations

import logging

from memberdesk.capabilities.base import CapabilityHandler, TurnContext
from memberdesk.errors import LoanErrorKind, UpstreamDataError
from memberdesk.extraction import ExtractionAdapter
from memberdesk.loans import render_loan_response
from memberdesk.models.loan import LoanInfoType
from memberdesk.models.room import LOAN_LOOKUP_INTENT, AuthStatus, RoomSession
from memberdesk.router import Capability
from memberdesk.store.base import SessionStore
from memberdesk.tenant_api import TenantApiClient

log = logging.getLogger("memberdesk.capabilities.loan_lookup")

VERIFY_FIRST_REPLY = (
    "To check your loan information, I'll need to verify your identity first. "
    "Which cooperative do you belong to? (e.g., Fusion, CTLS, Octics)"
)

ACCESS_LOST_REPLY = (
    "I'm having trouble accessing your account information. Let's try authenticating again. "
    "You can also say 'reset' or 'start over' if you'd like to begin fresh."
)

LOOKUP_FAILED_REPLY = (
    "I encountered an error while retrieving your loan information. Let me try again. "
    "Which cooperative do you belong to?"
)

ACCESS_LOST_PROMPT = """\
Generate a helpful response for a user whose loan lookup failed because their session expired or access was refused.
Inform them politely that you'll need to restart the authentication process and ask which cooperative they belong to.
Mention they can say "reset" or "start over" if they want to try again with different cooperative information.
Keep it conversational and helpful, under 100 words.
"""


class LoanLookupHandler(CapabilityHandler):
    capability = Capability.LOAN_LOOKUP

    def __init__(
        self,
        store: SessionStore,
        tenant_api: TenantApiClient,
        extractor: ExtractionAdapter,
    ) -> None:
        self._store = store
        self._tenant_api = tenant_api
        self._extractor = extractor

    async def handle(self, ctx: TurnContext) -> None:
        session = ctx.session
        if session.status != AuthStatus.AUTHENTICATED:
            log.info("Room %s not verified, starting verification for loan request", ctx.room_id)
            await self._store.put(ctx.room_id, RoomSession(
                room_id=ctx.room_id,
                pending_intent=LOAN_LOOKUP_INTENT,
            ))
            await ctx.emit(VERIFY_FIRST_REPLY)
            return

        info_type = await self._extractor.classify_loan_query(ctx.text)
        log.info("Room %s loan query type: %s", ctx.room_id, info_type.value)
        await self._lookup(ctx, session, info_type)

    async def resume(self, ctx: TurnContext, session: RoomSession) -> None:
        """Continuation for a loan question asked before verification."""
        log.info("Resuming pending loan lookup for room %s", ctx.room_id)
        await self._lookup(ctx, session, LoanInfoType.DETAILS)

    async def _lookup(self, ctx: TurnContext, session: RoomSession, info_type: LoanInfoType) -> None:
        try:
            if not (session.tenant and session.employee_number and session.auth_token):
                raise UpstreamDataError(
                    LoanErrorKind.UNAUTHORIZED, message="verified session is missing tenant or token",
                )
            data = await self._tenant_api.fetch_loan_info(
                session.tenant, session.employee_number, session.auth_token,
            )
        except UpstreamDataError as exc:
            await self._restart_verification(ctx, exc)
            return

        reply = await render_loan_response(data, info_type, self._extractor)
        if session.pending_intent is not None:
            await self._store.put(ctx.room_id, session.model_copy(update={"pending_intent": None}))
        await ctx.emit(reply)

    async def _restart_verification(self, ctx: TurnContext, exc: UpstreamDataError) -> None:
        log.warning("Loan lookup failed for room %s: %s", ctx.room_id, exc.message)
        await self._store.put(ctx.room_id, RoomSession(
            room_id=ctx.room_id,
            pending_intent=LOAN_LOOKUP_INTENT,
            last_error=exc.message,
        ))

        if exc.kind == LoanErrorKind.UNAUTHORIZED:
            await ctx.emit(await self._extractor.compose_reply(ACCESS_LOST_PROMPT, ACCESS_LOST_REPLY))
        else:
            await ctx.emit(LOOKUP_FAILED_REPLY)
