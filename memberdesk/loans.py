"""Loan record normalisation and rendering.

Tenants return loan data in whatever shape their system uses. Nothing here
assumes a schema: values are classified by substrings of their key names
("date", "amount", "status", ...). The rendered answer comes from the large
model when it cooperates and from fixed sentences when it doesn't.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from memberdesk.extraction import ExtractionAdapter, is_usable_reply
from memberdesk.llm import ModelSize
from memberdesk.models.loan import LoanInfoType, LoanRecord, parse_info_type

log = logging.getLogger("memberdesk.loans")

__all__ = [
    "INVALID_LOAN",
    "NO_LOAN_MESSAGE",
    "LoanInfoType",
    "canonical_timestamp",
    "is_empty_loan_data",
    "parse_info_type",
    "render_fallback",
    "render_loan_response",
    "sanitize_loan_data",
    "sanitize_loan_object",
]

NO_LOAN_MESSAGE = (
    "I checked your account, but you don't currently have any active loans in our system. "
    "If you believe this is incorrect or would like to inquire about loan eligibility, "
    "please contact your cooperative's support team for assistance."
)

INVALID_LOAN = {"error": "Invalid loan data"}
NOT_SPECIFIED = "not specified"
CURRENCY = "₦"  # Naira

_DATE_HINTS = ("date", "time")
_AMOUNT_HINTS = ("amount", "payment", "balance")
_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


def is_empty_loan_data(data: Any) -> bool:
    """No record at all, an empty container, or a wrapper holding only empties."""
    if data is None:
        return True
    if isinstance(data, (list, dict)) and not data:
        return True
    if isinstance(data, dict):
        return all(value is None or (isinstance(value, (list, dict)) and not value) for value in data.values())
    return False


# ── Sanitising ───────────────────────────────────────────────────


def _parse_datetime(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def canonical_timestamp(value: str) -> str:
    """``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC, or ``value`` untouched if unparsable."""
    parsed = _parse_datetime(value)
    if parsed is None:
        return value
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if _NUMERIC_RE.match(cleaned):
            return float(cleaned)
    return None


def _sanitize_value(key: str, value: Any) -> Any:
    lowered = key.lower()

    if isinstance(value, dict):
        return sanitize_loan_object(value)
    if isinstance(value, list):
        return [sanitize_loan_object(item) if isinstance(item, dict) else item for item in value]

    if isinstance(value, str) and any(hint in lowered for hint in _DATE_HINTS):
        return canonical_timestamp(value)

    if any(hint in lowered for hint in _AMOUNT_HINTS):
        number = _to_number(value)
        if number is not None:
            return f"{number:.2f}"

    return value


def sanitize_loan_object(loan: Any) -> dict[str, Any]:
    if not isinstance(loan, dict):
        return dict(INVALID_LOAN)

    sanitized: dict[str, Any] = {}
    for key, value in loan.items():
        if value is None:
            continue
        sanitized[key] = _sanitize_value(str(key), value)
    return sanitized


def sanitize_loan_data(data: LoanRecord) -> LoanRecord:
    if isinstance(data, list):
        return [sanitize_loan_object(item) for item in data]
    return sanitize_loan_object(data)


# ── Rendering ────────────────────────────────────────────────────

FOCUS_BY_TYPE: dict[LoanInfoType, str] = {
    LoanInfoType.STATUS: (
        "- Loan approval status (approved, pending, denied)\n"
        "- Current stage in the loan lifecycle\n"
        "- Any pending requirements or actions needed"
    ),
    LoanInfoType.AMOUNT: (
        "- Total loan amount approved\n"
        "- Current outstanding balance\n"
        "- Principal and interest breakdown if available"
    ),
    LoanInfoType.PAYMENT: (
        "- Next payment due date\n"
        "- Payment amount due\n"
        "- Payment history summary\n"
        "- Payment instructions if available"
    ),
    LoanInfoType.ELIGIBILITY: (
        "- Current eligibility status for loans\n"
        "- Eligibility criteria if available\n"
        "- Suggestions for improving eligibility if applicable"
    ),
    LoanInfoType.HISTORY: (
        "- Previous loan summary\n"
        "- Payment history highlights\n"
        "- Overall account standing"
    ),
    LoanInfoType.DETAILS: (
        "- Comprehensive overview of the loan\n"
        "- Key dates (approval, disbursement, maturity)\n"
        "- Current balance and payment information\n"
        "- Interest rate and loan terms"
    ),
}

LOAN_PROMPT = """\
You are a financial assistant helping a cooperative member understand their loan information.
Below is their loan data from the cooperative system:

{data}

The member is specifically asking about: {info_type}

Write a helpful, clear response that addresses their specific question. Follow these guidelines:
1. Be specific with numbers, dates, and status information
2. Format currency values with the {currency} symbol and proper formatting (e.g., {currency}50,000.00)
3. Use a warm, supportive tone
4. Present dates in a readable format (e.g., "March 25, 2025" instead of ISO format)
5. If the information they're asking about isn't available, politely explain that

Based on their request type ({info_type}), focus on:
{focus}

Start with a brief greeting and end with a helpful offer or suggestion.
Keep your response under 150 words, clear and focused.
"""


def build_loan_prompt(sanitized: LoanRecord, info_type: LoanInfoType) -> str:
    return LOAN_PROMPT.format(
        data=json.dumps(sanitized, indent=2, ensure_ascii=False),
        info_type=info_type.value,
        currency=CURRENCY,
        focus=FOCUS_BY_TYPE[info_type],
    )


def _first_record(data: Any) -> dict[str, Any]:
    if isinstance(data, dict):
        return data
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict):
                return item
    return {}


def _readable_date(value: Any) -> str:
    parsed = _parse_datetime(value) if isinstance(value, str) else None
    if parsed is None:
        return str(value)
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def _find_amount(record: dict[str, Any]) -> str:
    for key, value in record.items():
        if "amount" in key.lower() and value:
            number = _to_number(value)
            if number is not None:
                return f"{CURRENCY}{number:,.2f}"
    return NOT_SPECIFIED


def _find_status(record: dict[str, Any]) -> str:
    for key, value in record.items():
        if "status" in key.lower() and value:
            return str(value)
    return NOT_SPECIFIED


def _find_next_payment(record: dict[str, Any]) -> str:
    for key, value in record.items():
        lowered = key.lower()
        is_next_payment = "next" in lowered and "payment" in lowered
        is_due_date = "due" in lowered and "date" in lowered
        if (is_next_payment or is_due_date) and value:
            return _readable_date(value)
    return NOT_SPECIFIED


def render_fallback(data: LoanRecord, info_type: LoanInfoType) -> str:
    """Fixed-template answer built from a heuristic key scan."""
    record = _first_record(data)
    amount = _find_amount(record)
    status = _find_status(record)
    next_payment = _find_next_payment(record)

    lead = "I found your loan information."
    templates = {
        LoanInfoType.STATUS: f"{lead} Your current loan status is {status}.",
        LoanInfoType.AMOUNT: f"{lead} Your loan amount is {amount}.",
        LoanInfoType.PAYMENT: f"{lead} Your next payment is due on {next_payment}.",
        LoanInfoType.ELIGIBILITY: (
            f"{lead} Based on your current status, please contact your cooperative "
            "for specific eligibility details."
        ),
        LoanInfoType.HISTORY: f"{lead} Please contact your cooperative for detailed loan history.",
        LoanInfoType.DETAILS: (
            f"{lead} Your loan amount is {amount}, with status {status}, "
            f"and next payment due on {next_payment}."
        ),
    }
    return templates[info_type]


async def render_loan_response(
    data: LoanRecord,
    info_type: LoanInfoType,
    extractor: ExtractionAdapter,
) -> str:
    """Turn loan data into a member-facing answer for ``info_type``."""
    if is_empty_loan_data(data):
        log.info("No loan data available for member")
        return NO_LOAN_MESSAGE

    sanitized = sanitize_loan_data(data)
    prompt = build_loan_prompt(sanitized, info_type)

    try:
        reply = await extractor.generate_text(prompt, size=ModelSize.LARGE)
    except Exception as exc:
        log.error("Loan response generation failed, using fallback: %s", exc)
        return render_fallback(sanitized, info_type)

    if not is_usable_reply(reply):
        log.warning("Unusable loan response from model, using fallback")
        return render_fallback(sanitized, info_type)

    log.debug("Generated loan response (%d chars)", len(reply))
    return reply.strip()
