"""Shared fakes for the member desk tests.

The text generator and the tenant API are the two external services; both
are replaced here so every test runs offline and deterministically.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import pytest

from memberdesk.agent import MemberAgent, build_agent
from memberdesk.config import Settings
from memberdesk.llm import ModelSize, TextGenerator
from memberdesk.store import InMemorySessionStore

TENANT_API_URL = "https://tenant.test/api/bot"


class FakeTextGenerator(TextGenerator):
    """Answers by matching a substring of the instruction.

    ``answers`` is a list of ``(needle, answer)``; the first needle found in
    the instruction wins. An Exception answer is raised instead of returned.
    Anything unmatched gets ``default``.
    """

    def __init__(self, answers: Optional[list[tuple[str, Any]]] = None, default: str = "") -> None:
        self.answers = list(answers or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    def on(self, needle: str, answer: Any) -> "FakeTextGenerator":
        self.answers.insert(0, (needle, answer))
        return self

    async def generate(self, instruction, *, stop=None, size=ModelSize.SMALL) -> str:
        self.calls.append({"instruction": instruction, "stop": stop, "size": size})
        for needle, answer in self.answers:
            if needle in instruction:
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return self.default


class TenantBackend:
    """In-process stand-in for the tenant REST API."""

    def __init__(self) -> None:
        self.auth_status = 200
        self.auth_body: Any = {"data": {"otp": "123456", "token": "tok-abc"}}
        self.loan_status = 200
        self.loan_body: Any = {
            "loanAmount": 250000,
            "loanStatus": "active",
            "nextPaymentDate": "2025-03-25T00:00:00Z",
        }
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/authenticate-client"):
            return httpx.Response(self.auth_status, json=self.auth_body)
        if request.url.path.endswith("/client-loan-info"):
            return httpx.Response(self.loan_status, json=self.loan_body)
        return httpx.Response(404, json={"message": "not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def last_auth_body(self) -> dict:
        return json.loads(self.calls_to("/authenticate-client")[-1].content)


class MutableClock:
    """Store clock that can be moved into the past to age records."""

    def __init__(self) -> None:
        self.offset = timedelta(0)

    def __call__(self) -> datetime:
        return datetime.now(tz=timezone.utc) + self.offset


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        tenant_api_url=TENANT_API_URL,
        tenant_api_secret="s3cret-hash",
        session_db_path="",
        admin_api_key="admin-key",
    )


@pytest.fixture
def generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def backend() -> TenantBackend:
    return TenantBackend()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def agent(test_settings, store, generator, backend) -> MemberAgent:
    return build_agent(
        test_settings,
        store=store,
        generator=generator,
        tenant_transport=backend.transport,
    )
