"""Operator access to the room inspection and sweep endpoints.

Room views expose session state (redacted, but still member data), so
they sit behind a shared operator key sent as a bearer token. Without a
configured key the endpoints are closed, unless the service runs with
DEBUG on a developer machine.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from memberdesk.config import settings

log = logging.getLogger("memberdesk.auth")

_operator_bearer = HTTPBearer(auto_error=False)

NO_OPERATOR_KEY_DETAIL = "Room inspection is disabled: no ADMIN_API_KEY is configured."
BAD_OPERATOR_TOKEN_DETAIL = "A valid operator bearer token is required."


def operator_token_matches(presented: Optional[str], key: str) -> bool:
    if not presented:
        return False
    return hmac.compare_digest(presented.encode(), key.encode())


async def require_admin_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_operator_bearer),
) -> None:
    """Gate for /admin routes. 403 when no key is set, 401 on a bad token."""
    key = settings.admin_api_key
    if not key:
        if settings.debug:
            log.debug("Operator key unset, admin route open in debug mode")
            return
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NO_OPERATOR_KEY_DETAIL)

    presented = credentials.credentials if credentials is not None else None
    if operator_token_matches(presented, key):
        return

    log.warning("Operator request refused (%s token)", "no" if presented is None else "bad")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=BAD_OPERATOR_TOKEN_DETAIL,
        headers={"WWW-Authenticate": "Bearer"},
    )
