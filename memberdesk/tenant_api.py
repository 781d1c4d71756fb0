"""Client for the cooperative tenant REST API.

Two calls:

  POST {base}/authenticate-client   {email, employee_number, tenant}
       -> {"data": {"otp": ..., "token": ...}}
  GET  {base}/client-loan-info?tenant=&employee_number=
       (Authorization: Bearer <token>) -> loan record(s)

Every request carries the shared-secret header. Failures are classified
into ``UpstreamAuthError`` / ``UpstreamDataError`` kinds so the state
machine can pick the right apology without looking at status codes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from memberdesk.errors import (
    AuthErrorKind,
    LoanErrorKind,
    UpstreamAuthError,
    UpstreamDataError,
)
from memberdesk.models.loan import LoanRecord
from memberdesk.redaction import mask_email, redact_pii

log = logging.getLogger("memberdesk.tenant_api")

AUTH_STATUS_KINDS: dict[int, AuthErrorKind] = {
    401: AuthErrorKind.INVALID_CREDENTIALS,
    404: AuthErrorKind.NOT_FOUND,
}

LOAN_STATUS_KINDS: dict[int, LoanErrorKind] = {
    401: LoanErrorKind.UNAUTHORIZED,
    403: LoanErrorKind.UNAUTHORIZED,
}


@dataclass
class AuthGrant:
    otp: str = field(repr=False)
    token: str = field(repr=False)


class TenantApiClient:

    def __init__(
        self,
        base_url: str,
        secret: str,
        secret_header: str = "fsn-hash",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._secret = secret
        self._secret_header = secret_header
        self._timeout = timeout
        self._transport = transport

    def _headers(self, token: str | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            self._secret_header: self._secret,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self._timeout, transport=self._transport,
        )

    async def authenticate(self, email: str, employee_number: str, tenant: str) -> AuthGrant:
        """Ask the tenant to issue an OTP for these credentials."""
        log.info(
            "Authenticating %s / %s with tenant %s",
            mask_email(email), redact_pii(employee_number), tenant,
        )
        body = {"email": email, "employee_number": employee_number, "tenant": tenant}

        try:
            async with self._client() as client:
                resp = await client.post("/authenticate-client", json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            log.error("Auth API unreachable: %s", exc)
            raise UpstreamAuthError(AuthErrorKind.UNKNOWN, message="authentication service unreachable") from exc

        log.info("Auth API response status: %s", resp.status_code)
        if not resp.is_success:
            kind = AUTH_STATUS_KINDS.get(resp.status_code, AuthErrorKind.UNKNOWN)
            log.warning("Auth API error %s (%s)", resp.status_code, kind.value)
            raise UpstreamAuthError(kind, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamAuthError(
                AuthErrorKind.UNKNOWN, resp.status_code, "authentication response is not JSON",
            ) from exc

        payload = data.get("data") if isinstance(data, dict) else None
        otp = payload.get("otp") if isinstance(payload, dict) else None
        token = payload.get("token") if isinstance(payload, dict) else None
        if otp in (None, "") or not token:
            log.error("Auth API response missing otp or token")
            raise UpstreamAuthError(
                AuthErrorKind.UNKNOWN, resp.status_code, "authentication response missing otp or token",
            )

        log.info("Authentication accepted, OTP issued for tenant %s", tenant)
        return AuthGrant(otp=str(otp), token=str(token))

    async def fetch_loan_info(self, tenant: str, employee_number: str, token: str) -> LoanRecord:
        """Fetch the member's loan record(s). The payload shape is tenant-defined."""
        params = {"tenant": tenant, "employee_number": employee_number}
        log.info("Fetching loan info for %s at tenant %s", redact_pii(employee_number), tenant)

        try:
            async with self._client() as client:
                resp = await client.get(
                    "/client-loan-info", params=params, headers=self._headers(token),
                )
        except httpx.HTTPError as exc:
            log.error("Loan API unreachable: %s", exc)
            raise UpstreamDataError(LoanErrorKind.UNKNOWN, message="loan service unreachable") from exc

        log.info("Loan API response status: %s", resp.status_code)
        if not resp.is_success:
            kind = LOAN_STATUS_KINDS.get(resp.status_code, LoanErrorKind.UNKNOWN)
            log.warning("Loan API error %s (%s)", resp.status_code, kind.value)
            raise UpstreamDataError(kind, status_code=resp.status_code)

        try:
            data: Any = resp.json()
        except ValueError as exc:
            log.error("Failed to parse loan data JSON")
            raise UpstreamDataError(
                LoanErrorKind.UNKNOWN, resp.status_code, "loan response is not JSON",
            ) from exc
        return data
