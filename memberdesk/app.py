"""FastAPI application, the HTTP surface for the member desk.

Endpoints:

  POST /rooms/{room_id}/messages   One chat turn: {text} in, replies out
  GET  /health                     Health check
  GET  /tenants                    Supported cooperatives
  GET  /admin/rooms/{room_id}      Redacted session state (admin)
  POST /admin/sweep                Run the expiry sweep now (admin)

The agent owns all conversation logic; this module only validates input
and serialises the turn result.
"""

from __future__ import annotations

# Load .env into os.environ early so settings and any library that reads
# the environment directly see the same values.
from dotenv import load_dotenv
load_dotenv()

import logging
import re
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

# Configure root logger early so all memberdesk.* loggers have a handler
# and are visible when run via `uvicorn --factory memberdesk.app:create_app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-28s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from memberdesk import __version__
from memberdesk.agent import MemberAgent, TurnResult, build_agent
from memberdesk.auth import require_admin_token
from memberdesk.config import settings
from memberdesk.expiry import SessionSweeper
from memberdesk.providers import cooperatives_listing, describe_session
from memberdesk.redaction import redact_session
from memberdesk.tenants import TenantResolver

log = logging.getLogger("memberdesk.app")

_START_TIME = time.time()

_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def _validate_id(value: str) -> str:
    """Reject ids that could be used for injection or path traversal."""
    if not _ID_PATTERN.match(value):
        raise HTTPException(status_code=400, detail="Invalid room id")
    return value


class MessageIn(BaseModel):
    text: str = Field(min_length=1, max_length=4000)


def create_app(
    agent: Optional[MemberAgent] = None,
    sweeper: Optional[SessionSweeper] = None,
    resolver: Optional[TenantResolver] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators are built from settings unless passed in; tests pass
    their own agent wired to fakes.
    """
    if agent is None:
        for warning in settings.validate_startup():
            log.warning(warning)
        agent = build_agent(settings)

    if sweeper is None:
        sweeper = SessionSweeper(
            agent.store,
            agent.policy,
            interval_seconds=settings.sweep_interval_seconds,
            purge_after=timedelta(hours=settings.purge_after_hours),
        )
    resolver = resolver or TenantResolver()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.sweep_enabled:
            sweeper.start()
        yield
        await sweeper.stop()

    app = FastAPI(
        title="Member Desk",
        description="Cooperative member verification and loan enquiries over chat",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.agent = agent
    app.state.sweeper = sweeper

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check, confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime, "sweeper": sweeper.running})

    # ── Chat turns ─────────────────────────────────────────────

    @app.post("/rooms/{room_id}/messages", response_model=TurnResult)
    async def post_message(room_id: str, message: MessageIn) -> TurnResult:
        """Run one turn for the room and return every reply it produced."""
        _validate_id(room_id)
        result = await agent.handle_message(room_id, message.text)
        log.info(
            "Room %s turn: capability=%s handled=%s replies=%d",
            room_id,
            result.capability.value if result.capability else None,
            result.handled,
            len(result.replies),
        )
        return result

    # ── Cooperatives ───────────────────────────────────────────

    @app.get("/tenants")
    async def list_tenants() -> JSONResponse:
        table = resolver.table
        return JSONResponse({
            "tenants": [{"name": name, "tenant_id": tenant_id} for name, tenant_id in table.items()],
            "count": len(table),
            "text": cooperatives_listing(resolver),
        })

    # ── Admin ──────────────────────────────────────────────────

    @app.get("/admin/rooms/{room_id}", dependencies=[Depends(require_admin_token)])
    async def get_room(room_id: str) -> JSONResponse:
        """Return the room's session with secrets masked."""
        _validate_id(room_id)
        session = await agent.store.get(room_id)
        if session.storage_error:
            return JSONResponse({"error": "Session store unavailable"}, status_code=503)
        if not session.is_persisted:
            return JSONResponse({"error": "Room not found"}, status_code=404)
        return JSONResponse({
            "session": redact_session(session),
            "summary": describe_session(session),
        })

    @app.post("/admin/sweep", dependencies=[Depends(require_admin_token)])
    async def run_sweep() -> JSONResponse:
        """Expire and purge stale sessions immediately."""
        result = await sweeper.run_once()
        return JSONResponse({
            "scanned": result.scanned,
            "expired": result.expired,
            "purged": result.purged,
        })

    return app


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "memberdesk.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
