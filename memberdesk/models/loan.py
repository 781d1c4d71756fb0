"""Loan query categories."""

from __future__ import annotations

from enum import Enum
from typing import Any, Union

# Tenant loan payloads are schemaless: one object or a list of them.
LoanRecord = Union[dict[str, Any], list[Any]]


class LoanInfoType(str, Enum):
    STATUS = "STATUS"
    AMOUNT = "AMOUNT"
    PAYMENT = "PAYMENT"
    ELIGIBILITY = "ELIGIBILITY"
    HISTORY = "HISTORY"
    DETAILS = "DETAILS"


def parse_info_type(raw: str | None) -> LoanInfoType:
    """Map free text onto a LoanInfoType; anything unrecognised is DETAILS."""
    if not raw:
        return LoanInfoType.DETAILS
    cleaned = raw.strip().strip(".\"'`*- ").upper()
    try:
        return LoanInfoType(cleaned)
    except ValueError:
        return LoanInfoType.DETAILS
