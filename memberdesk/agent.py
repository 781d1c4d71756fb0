"""Turn driver: one inbound message is one turn.

For each message the agent:
  1. Loads the room's session from the store
  2. Overwrites it with a fresh NEED_TENANT record if it has gone stale
  3. Asks the router which capability handles the message
  4. Runs that handler, collecting the ``{text}`` replies it emits

A storage failure anywhere in the turn ends it with a generic retry
message. The session is whatever was last written successfully.

Typical use::

    agent = build_agent(settings)
    result = await agent.handle_message("room-1", "I'm from Fusion")
    for reply in result.replies:
        print(reply.text)
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel

from memberdesk.capabilities import (
    AuthenticationFlow,
    CapabilityHandler,
    LoanLookupHandler,
    ResetHandler,
    TurnContext,
    VerifyOtpHandler,
)
from memberdesk.errors import StorageError
from memberdesk.expiry import ExpiryPolicy, expired_session
from memberdesk.extraction import ExtractionAdapter
from memberdesk.llm import TextGenerator, build_text_generator
from memberdesk.models.room import LOAN_LOOKUP_INTENT
from memberdesk.router import Capability, IntentRouter
from memberdesk.store import SessionStore, build_session_store
from memberdesk.tenant_api import TenantApiClient
from memberdesk.tenants import TenantResolver

log = logging.getLogger("memberdesk.agent")

STORAGE_RETRY_REPLY = (
    "Sorry, something went wrong on our side and I couldn't save your progress. "
    "Please send your last message again in a moment."
)

ReplyCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class Reply(BaseModel):
    text: str


class TurnResult(BaseModel):
    room_id: str
    capability: Optional[Capability] = None
    rule: str = ""
    handled: bool = False
    replies: list[Reply] = []


class MemberAgent:
    """Routes each room message to exactly one capability handler."""

    def __init__(
        self,
        store: SessionStore,
        router: IntentRouter,
        handlers: dict[Capability, CapabilityHandler],
        policy: Optional[ExpiryPolicy] = None,
        on_reply: Optional[ReplyCallback] = None,
    ) -> None:
        self._store = store
        self._router = router
        self._handlers = handlers
        self._policy = policy or ExpiryPolicy()
        self._on_reply = on_reply

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def policy(self) -> ExpiryPolicy:
        return self._policy

    async def handle_message(self, room_id: str, text: str) -> TurnResult:
        replies: list[Reply] = []

        async def emit(reply_text: str) -> None:
            reply = Reply(text=reply_text)
            replies.append(reply)
            if self._on_reply is not None:
                await self._on_reply(room_id, reply.model_dump())

        capability: Optional[Capability] = None
        rule = ""
        try:
            session = await self._store.get(room_id)
            if session.storage_error:
                raise StorageError(f"could not read session for room {room_id}")

            if self._policy.is_expired(session):
                log.info(
                    "Session for room %s expired in %s, starting over",
                    room_id, session.status.value,
                )
                session = await self._store.put(room_id, expired_session(session))

            decision = self._router.route(text, session)
            capability, rule = decision.capability, decision.rule
            if capability is not None:
                handler = self._handlers[capability]
                await handler.handle(TurnContext(room_id=room_id, text=text, session=session, emit=emit))
        except StorageError as exc:
            log.error("Turn failed for room %s: %s", room_id, exc.message)
            await emit(STORAGE_RETRY_REPLY)

        return TurnResult(
            room_id=room_id,
            capability=capability,
            rule=rule,
            handled=capability is not None,
            replies=replies,
        )


def build_agent(
    settings,
    store: Optional[SessionStore] = None,
    generator: Optional[TextGenerator] = None,
    tenant_transport: httpx.AsyncBaseTransport | None = None,
    on_reply: Optional[ReplyCallback] = None,
) -> MemberAgent:
    """Wire the default collaborators from application settings."""
    store = store if store is not None else build_session_store(settings.session_db_path)
    extractor = ExtractionAdapter(generator if generator is not None else build_text_generator(settings))
    tenant_api = TenantApiClient(
        base_url=settings.tenant_api_url,
        secret=settings.tenant_api_secret,
        secret_header=settings.tenant_api_secret_header,
        timeout=settings.tenant_api_timeout,
        transport=tenant_transport,
    )
    resolver = TenantResolver()

    loan_lookup = LoanLookupHandler(store, tenant_api, extractor)
    continuations = {LOAN_LOOKUP_INTENT: loan_lookup.resume}

    handlers: dict[Capability, CapabilityHandler] = {
        Capability.RESET: ResetHandler(store, extractor),
        Capability.VERIFY_OTP: VerifyOtpHandler(store, extractor, continuations),
        Capability.AUTHENTICATE: AuthenticationFlow(store, resolver, extractor, tenant_api, continuations),
        Capability.LOAN_LOOKUP: loan_lookup,
    }
    return MemberAgent(
        store=store,
        router=IntentRouter(),
        handlers=handlers,
        policy=ExpiryPolicy(),
        on_reply=on_reply,
    )
