"""The verification state machine.

    NEED_TENANT ──> NEED_CREDENTIALS ──> NEED_OTP ──> AUTHENTICATED
         ^
         └──────────── FAILED (any unexpected error) ───────

Each turn handles one step for the room's current status. OTP digits are
not handled here (see verify_otp); this handler only reminds the member to
enter the code. Every transition is persisted before the reply that
announces it is emitted.
"""

from __future__ import annotations

import logging
from typing import Optional

from memberdesk.capabilities.base import CapabilityHandler, Continuation, TurnContext
from memberdesk.errors import (
    AuthErrorKind,
    ResolutionFailure,
    StorageError,
    UpstreamAuthError,
    ValidationFailure,
)
from memberdesk.extraction import ExtractionAdapter, validate_credentials
from memberdesk.models.room import (
    LOAN_LOOKUP_INTENT,
    AuthStatus,
    Credentials,
    RoomSession,
)
from memberdesk.redaction import mask_email
from memberdesk.router import Capability, has_loan_keyword
from memberdesk.store.base import SessionStore, utcnow
from memberdesk.tenant_api import TenantApiClient
from memberdesk.tenants import TenantResolver

log = logging.getLogger("memberdesk.capabilities.authenticate")

# ── Replies ──────────────────────────────────────────────────────

TENANT_CONFIRMED_REPLY = (
    "Thank you! I've identified you as a member of {name}. Please provide your email "
    "address and employee number so I can verify your identity."
)
TENANT_UNKNOWN_REPLY = (
    "I couldn't identify which cooperative you're referring to. Please specify which "
    "cooperative you belong to, for example: {examples}, etc."
)
WELCOME_REPLY = (
    "To help you, I'll need to authenticate you first. Which cooperative do you belong to? "
    "(e.g., Fusion, CTLS, Octics)"
)
WELCOME_LOAN_REPLY = (
    "To check your loan information, I'll need to verify your identity first. "
    "Which cooperative do you belong to? (e.g., Fusion, CTLS, Octics)"
)
CREDENTIALS_UNREADABLE_REPLY = (
    "I couldn't properly extract your information. Please provide both your email and "
    "employee number clearly, like this:\n\nEmail: your@email.com\nEmployee #: ABC12345"
)
MISSING_EMAIL_REPLY = "I'll need your email address to continue. Could you please provide it?"
MISSING_EMPLOYEE_NUMBER_REPLY = (
    "I also need your employee number to verify your identity. Could you provide that as well?"
)
OTP_SENT_REPLY = (
    "An OTP verification code has been sent to your email {email}. Please check your inbox "
    "and provide the 6-digit code to verify your identity."
)
ENTER_CODE_REPLY = "Please enter the 6-digit verification code sent to your email."
ALREADY_VERIFIED_REPLY = (
    "You're already authenticated! How can I help you today? You can check your loan "
    "information or other account details."
)
RESTART_REPLY = (
    "Let's try authenticating again. Which cooperative do you belong to? If you'd like to "
    "start fresh, just say 'reset' or 'start over'."
)
FLOW_ERROR_REPLY = (
    "I ran into a problem while verifying your identity. Send any message to start again, "
    "or say 'reset' for a fresh start."
)

AUTH_REJECTED_PREFIX = "I couldn't authenticate you with the provided information. "
AUTH_REJECTED_REPLIES: dict[AuthErrorKind, str] = {
    AuthErrorKind.NOT_FOUND: (
        AUTH_REJECTED_PREFIX
        + "The employee details you provided weren't found in our records. Please check and try again."
    ),
    AuthErrorKind.INVALID_CREDENTIALS: (
        AUTH_REJECTED_PREFIX
        + "Your credentials seem invalid. Please verify your email and employee number."
    ),
    AuthErrorKind.UNKNOWN: AUTH_REJECTED_PREFIX + "Please verify your details and try again.",
}

# ── Phrasing prompts ─────────────────────────────────────────────

RESTART_PROMPT = """\
Generate a friendly response to a user whose authentication has failed.
Let them know we're going to try again and ask which cooperative they belong to.
Suggest they can also say "reset" or "start over" if they want to try again with a fresh start.
Keep it conversational and helpful.
"""

MISSING_EMAIL_PROMPT = """\
Create a friendly response asking the user for their email address.
The user has provided some information but is missing a valid email address.
Keep it conversational and brief.
"""

MISSING_EMPLOYEE_NUMBER_PROMPT = """\
Create a friendly response asking the user for their employee number.
The user has provided their email ({email}) but not their employee number.
Mention that this is needed to verify their identity within the {tenant} system.
Keep it conversational and brief.
"""


class AuthenticationFlow(CapabilityHandler):
    capability = Capability.AUTHENTICATE

    def __init__(
        self,
        store: SessionStore,
        resolver: TenantResolver,
        extractor: ExtractionAdapter,
        tenant_api: TenantApiClient,
        continuations: Optional[dict[str, Continuation]] = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._extractor = extractor
        self._tenant_api = tenant_api
        self._continuations = continuations if continuations is not None else {}

    async def handle(self, ctx: TurnContext) -> None:
        session = ctx.session
        log.info("Room %s: verification step for status %s", ctx.room_id, session.status.value)

        try:
            session = self._remember_loan_question(ctx, session)

            if session.status == AuthStatus.FAILED:
                await self._restart(ctx, session)
            elif session.status == AuthStatus.NEED_TENANT:
                await self._select_tenant(ctx, session)
            elif session.status == AuthStatus.NEED_CREDENTIALS:
                await self._collect_credentials(ctx, session)
            elif session.status == AuthStatus.NEED_OTP:
                await self._keep_pending(ctx, session)
                await ctx.emit(ENTER_CODE_REPLY)
            else:
                await self._after_verification(ctx, session)
        except StorageError:
            raise
        except Exception as exc:
            log.exception("Verification flow failed for room %s", ctx.room_id)
            await self._mark_failed(ctx, session, exc)

    # ── Steps ────────────────────────────────────────────────────

    def _remember_loan_question(self, ctx: TurnContext, session: RoomSession) -> RoomSession:
        """A loan question asked mid-verification is answered once it completes.

        Only marks the session; the step that follows writes it.
        """
        if session.status == AuthStatus.AUTHENTICATED or session.pending_intent is not None:
            return session
        if not has_loan_keyword(ctx.text):
            return session
        log.info("Room %s: loan question during verification, keeping it pending", ctx.room_id)
        return session.model_copy(update={"pending_intent": LOAN_LOOKUP_INTENT})

    async def _keep_pending(self, ctx: TurnContext, session: RoomSession) -> None:
        """Persist a newly remembered loan question on steps that change nothing else."""
        if session.pending_intent != ctx.session.pending_intent:
            await self._store.put(ctx.room_id, session)

    async def _select_tenant(self, ctx: TurnContext, session: RoomSession) -> None:
        match = await self._identify_tenant(ctx.text)
        if match is None:
            if not ctx.session.is_persisted:
                # First contact: open the flow instead of complaining
                session = await self._store.put(ctx.room_id, session)
                reply = WELCOME_LOAN_REPLY if session.pending_intent else WELCOME_REPLY
                await ctx.emit(reply)
                return
            await self._keep_pending(ctx, session)
            examples = ", ".join(self._resolver.example_names(5))
            await ctx.emit(TENANT_UNKNOWN_REPLY.format(examples=examples))
            return

        display_name, tenant_id = match
        await self._store.put(ctx.room_id, session.model_copy(update={
            "status": AuthStatus.NEED_CREDENTIALS,
            "tenant": tenant_id,
            "tenant_display_name": display_name,
            "previous_status": None,
            "timed_out": False,
            "last_error": None,
        }))
        log.info("Room %s: tenant %s selected", ctx.room_id, tenant_id)
        await ctx.emit(TENANT_CONFIRMED_REPLY.format(name=display_name))

    async def _identify_tenant(self, text: str) -> Optional[tuple[str, str]]:
        """Literal key in the text, then the resolver, then the model."""
        found = self._resolver.find_in_text(text)
        if found:
            return found

        tenant_id = self._resolver.resolve(text)
        if tenant_id is None:
            try:
                answer = await self._extractor.extract_tenant(text, self._resolver.canonical_names())
            except ResolutionFailure as exc:
                log.info("No cooperative identified: %s", exc.message)
                return None
            tenant_id = self._resolver.resolve(answer)

        if tenant_id is None:
            return None
        return self._resolver.display_name(tenant_id), tenant_id

    async def _collect_credentials(self, ctx: TurnContext, session: RoomSession) -> None:
        try:
            extracted = await self._extractor.extract_credentials(ctx.text)
        except ResolutionFailure as exc:
            log.warning("Room %s: credentials not extractable (%s)", ctx.room_id, exc.message)
            await self._keep_pending(ctx, session)
            await ctx.emit(CREDENTIALS_UNREADABLE_REPLY)
            return

        merged = (session.partial_credentials or Credentials()).merged_with(extracted)
        try:
            validate_credentials(merged)
        except ValidationFailure as exc:
            await self._store.put(ctx.room_id, session.model_copy(update={"partial_credentials": merged}))
            await ctx.emit(await self._missing_field_reply(exc.field, merged, session))
            return

        if not session.tenant:
            raise ResolutionFailure("credentials collected before a tenant was selected")

        try:
            grant = await self._tenant_api.authenticate(merged.email, merged.employee_number, session.tenant)
        except UpstreamAuthError as exc:
            await self._store.put(ctx.room_id, session.model_copy(update={
                "partial_credentials": merged,
                "last_error": exc.message,
            }))
            await ctx.emit(AUTH_REJECTED_REPLIES[exc.kind])
            return

        await self._store.put(ctx.room_id, session.model_copy(update={
            "status": AuthStatus.NEED_OTP,
            "credentials": merged,
            "partial_credentials": None,
            "otp_expected": grant.otp,
            "auth_token": grant.token,
            "otp_issued_at": utcnow(),
            "last_error": None,
        }))
        await ctx.emit(OTP_SENT_REPLY.format(email=mask_email(merged.email)))

    async def _missing_field_reply(self, field: str, creds: Credentials, session: RoomSession) -> str:
        if field == "email":
            return await self._extractor.compose_reply(MISSING_EMAIL_PROMPT, MISSING_EMAIL_REPLY)
        prompt = MISSING_EMPLOYEE_NUMBER_PROMPT.format(
            email=mask_email(creds.email),
            tenant=session.tenant_display_name or "cooperative",
        )
        return await self._extractor.compose_reply(prompt, MISSING_EMPLOYEE_NUMBER_REPLY)

    async def _after_verification(self, ctx: TurnContext, session: RoomSession) -> None:
        continuation = self._continuations.get(session.pending_intent) if session.pending_intent else None
        if continuation is not None:
            log.info("Room %s: running pending %s", ctx.room_id, session.pending_intent)
            await continuation(ctx, session)
            return
        if session.pending_intent is not None:
            log.warning("Room %s: dropping unknown pending intent %r", ctx.room_id, session.pending_intent)
            await self._store.put(ctx.room_id, session.model_copy(update={"pending_intent": None}))
        await ctx.emit(ALREADY_VERIFIED_REPLY)

    async def _restart(self, ctx: TurnContext, session: RoomSession) -> None:
        await self._store.put(ctx.room_id, RoomSession(
            room_id=ctx.room_id,
            pending_intent=session.pending_intent,
        ))
        await ctx.emit(await self._extractor.compose_reply(RESTART_PROMPT, RESTART_REPLY))

    async def _mark_failed(self, ctx: TurnContext, session: RoomSession, exc: Exception) -> None:
        await self._store.put(ctx.room_id, RoomSession(
            room_id=ctx.room_id,
            status=AuthStatus.FAILED,
            pending_intent=session.pending_intent,
            last_error=str(exc) or type(exc).__name__,
        ))
        await ctx.emit(FLOW_ERROR_REPLY)
