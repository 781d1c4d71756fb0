"""Structured extraction from free-text member messages.

Wraps the text generator with prompts that pull one thing out of a message
(a cooperative name, credentials, OTP digits, the kind of loan question).
Unambiguous input skips the model entirely: a bare email, a bare employee
number or a pure-digit code is taken as-is.

Model answers are never trusted to be well-formed. JSON answers are
fence-stripped and parsed with explicit error handling; anything unusable
becomes a ``ResolutionFailure`` for the caller to re-prompt on.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from memberdesk.errors import GenerationError, ResolutionFailure, ValidationFailure
from memberdesk.llm import ModelSize, TextGenerator
from memberdesk.models.loan import LoanInfoType, parse_info_type
from memberdesk.models.room import Credentials
from memberdesk.redaction import mask_email, redact_pii

log = logging.getLogger("memberdesk.extraction")

UNKNOWN_TENANT = "UNKNOWN"
NO_OTP = "NO_OTP"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DIGITS_RE = re.compile(r"^\d+$")
# A lone token like FUS00005 or NSCDC/123; must contain a digit.
_EMPLOYEE_TOKEN_RE = re.compile(r"^(?=[A-Za-z0-9/_-]*\d)[A-Za-z0-9/_-]{2,32}$")
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value))


def is_numeric(text: str) -> bool:
    return bool(_DIGITS_RE.match(text.strip()))


def validate_credentials(creds: Credentials) -> Credentials:
    """Raise ``ValidationFailure`` naming the first missing or bad field."""
    if not is_valid_email(creds.email):
        raise ValidationFailure("email")
    if not creds.employee_number:
        raise ValidationFailure("employee_number")
    return creds


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text without stray fences."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.replace("```json", "").replace("```", "").strip()


def parse_json_response(text: str) -> Any:
    """Parse a model answer as JSON. Raises ``ResolutionFailure`` when it isn't."""
    cleaned = strip_code_fences(text or "")
    if not cleaned:
        raise ResolutionFailure("empty model answer")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Prose around an object: take the outermost braces
    match = re.search(r"\{[\s\S]*\}", cleaned)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    raise ResolutionFailure("model answer is not valid JSON")


def is_usable_reply(text: str | None) -> bool:
    """A phrased reply must be non-blank prose, not JSON or a code block."""
    if not text or not text.strip():
        return False
    stripped = text.strip()
    if "```" in stripped:
        return False
    if stripped[0] in "{[" and stripped[-1] in "}]":
        return False
    return True


def _clean_field(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    if not cleaned or cleaned.lower() in ("null", "none", "n/a"):
        return None
    return cleaned


# ── Prompts ──────────────────────────────────────────────────────

TENANT_PROMPT = """\
Extract the cooperative name from the following user message. Only respond with the exact cooperative name.
If no cooperative name is mentioned, respond with "{unknown}".

Available cooperatives are: {candidates}

User message: "{text}"
"""

CREDENTIALS_PROMPT = """\
Extract the email and employee number from the following user message.
The email should be a valid email format (user@domain.com).
The employee number is typically in formats like: FUS00005, NSCDC123, etc.
Respond in strict JSON format ONLY: {{"email": string, "employee_number": string}}
If either field is missing or invalid, set it to null.

Examples:
- "my email is test@example.com and ID is FUS123" => {{"email": "test@example.com", "employee_number": "FUS123"}}
- "here's my info: FUS00005 test@coop.com" => {{"email": "test@coop.com", "employee_number": "FUS00005"}}
- "email: user@test.com" => {{"email": "user@test.com", "employee_number": null}}

User message: "{text}"
"""

OTP_PROMPT = """\
Extract the OTP (numerical code) from the following user message.
Respond with just the numbers, nothing else.
If no OTP is found, respond with "{no_otp}".

User message: "{text}"
"""

LOAN_TYPE_PROMPT = """\
Determine what specific loan information the user is asking about from their message.
Respond with one of the following categories ONLY (no explanation):
- STATUS (if asking about approval status, pending, etc.)
- AMOUNT (if asking about loan amount, balance, etc.)
- PAYMENT (if asking about payments, due dates, etc.)
- ELIGIBILITY (if asking about qualification, can they get a loan, etc.)
- HISTORY (if asking about past loans, loan history, etc.)
- DETAILS (for any general loan information)

Examples:
- "What's the status of my loan?" -> STATUS
- "How much do I owe?" -> AMOUNT
- "When is my next payment due?" -> PAYMENT
- "Can I apply for another loan?" -> ELIGIBILITY
- "Show me my previous loans" -> HISTORY
- "Tell me about my loan" -> DETAILS

User message: "{text}"
"""


class ExtractionAdapter:
    """Prompted extraction on top of a ``TextGenerator``."""

    def __init__(self, generator: TextGenerator) -> None:
        self._generator = generator

    async def generate_text(
        self,
        instruction: str,
        stop: Optional[list[str]] = None,
        size: ModelSize = ModelSize.SMALL,
    ) -> str:
        return await self._generator.generate(instruction, stop=stop, size=size)

    async def extract_tenant(self, text: str, candidates: list[str]) -> str:
        """Ask the model which cooperative the message names.

        Returns the model's raw answer for the resolver to normalise.
        """
        prompt = TENANT_PROMPT.format(
            unknown=UNKNOWN_TENANT, candidates=", ".join(candidates), text=text,
        )
        try:
            answer = (await self.generate_text(prompt, stop=["\n"])).strip().strip("\"'.")
        except GenerationError as exc:
            raise ResolutionFailure("tenant extraction unavailable") from exc

        log.info("Extracted cooperative name: %r", answer)
        if not answer or answer.upper() == UNKNOWN_TENANT:
            raise ResolutionFailure("no cooperative named in message")
        return answer

    async def extract_credentials(self, text: str) -> Credentials:
        """Pull ``{email, employee_number}`` out of a message; either may be None."""
        stripped = text.strip()
        if EMAIL_RE.match(stripped):
            return Credentials(email=stripped)
        if _EMPLOYEE_TOKEN_RE.match(stripped):
            return Credentials(employee_number=stripped)

        try:
            answer = await self.generate_text(CREDENTIALS_PROMPT.format(text=text))
        except GenerationError as exc:
            raise ResolutionFailure("credential extraction unavailable") from exc

        data = parse_json_response(answer)
        if not isinstance(data, dict):
            raise ResolutionFailure("credential answer is not an object")

        creds = Credentials(
            email=_clean_field(data.get("email")),
            employee_number=_clean_field(data.get("employee_number")),
        )
        log.info(
            "Parsed credentials - email: %s, employee #: %s",
            mask_email(creds.email) or "-",
            redact_pii(creds.employee_number) if creds.employee_number else "-",
        )
        return creds

    async def extract_otp(self, text: str) -> str:
        stripped = text.strip()
        if _DIGITS_RE.match(stripped):
            return stripped

        try:
            answer = (await self.generate_text(OTP_PROMPT.format(no_otp=NO_OTP, text=text), stop=["\n"])).strip()
        except GenerationError as exc:
            raise ResolutionFailure("otp extraction unavailable") from exc

        if answer == NO_OTP or not _DIGITS_RE.match(answer):
            raise ResolutionFailure("no verification code in message")
        return answer

    async def classify_loan_query(self, text: str) -> LoanInfoType:
        try:
            answer = await self.generate_text(LOAN_TYPE_PROMPT.format(text=text), stop=["\n"])
        except GenerationError as exc:
            log.warning("Loan query classification failed, using DETAILS: %s", exc)
            return LoanInfoType.DETAILS

        info_type = parse_info_type(answer)
        log.debug("Loan query %r classified as %s", text, info_type.value)
        return info_type

    async def compose_reply(
        self,
        instruction: str,
        fallback: str,
        size: ModelSize = ModelSize.SMALL,
    ) -> str:
        """Phrase a reply with the model; use ``fallback`` if that goes wrong."""
        try:
            reply = await self.generate_text(instruction, size=size)
        except GenerationError as exc:
            log.warning("Reply generation failed, using fixed text: %s", exc)
            return fallback
        return reply.strip() if is_usable_reply(reply) else fallback
