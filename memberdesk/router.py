"""Intent routing: exactly one capability handles each message.

Four capabilities compete for messages. Each has a claim predicate, and
several can claim the same text ("reset my login", "login to see my
loan"). ``ROUTING_RULES`` settles it: rules are tried top-down and the
first one that matches picks the capability. A rule may pick nobody,
which is how stray numbers outside the OTP phase are dropped.

  numeric-otp        pure digits while NEED_OTP        -> verify_otp
  numeric-unclaimed  pure digits otherwise             -> nobody
  reset              reset keywords                    -> reset
  in-flow            mid-verification, or pending work -> authenticate
  auth-keyword       auth words, no loan terms         -> authenticate
  loan-keyword       loan words                        -> loan_lookup
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from memberdesk.extraction import is_numeric
from memberdesk.models.room import AuthStatus, RoomSession

log = logging.getLogger("memberdesk.router")


class Capability(str, Enum):
    RESET = "reset"
    VERIFY_OTP = "verify_otp"
    AUTHENTICATE = "authenticate"
    LOAN_LOOKUP = "loan_lookup"


RESET_KEYWORDS = (
    "reset", "restart", "start over", "clear", "begin again",
    "start fresh", "start new", "new session", "log out", "sign out",
    "forget me", "clean slate", "wipe", "from scratch", "re-do",
    "try again from beginning", "reboot", "fresh start",
)

AUTH_KEYWORDS = (
    "login", "authenticate", "verify", "identity", "sign in",
    "credentials", "account access",
)

LOAN_KEYWORDS = (
    "loan", "borrow", "credit", "debt", "owe", "payment",
    "balance", "due", "repayment", "interest", "principal",
    "check my", "view my", "show my", "get my", "tell me about my",
)

# Auth requests that also name one of these are really loan questions
AUTH_DEFERRAL_KEYWORDS = ("loan", "borrow", "credit", "payment", "balance")

# Emails can contain anything ("clear.view@coop.org"); never match inside one.
_EMAIL_TOKEN_RE = re.compile(r"\S+@\S+")


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern:
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})(?:s|es|ed|ing)?\b", re.IGNORECASE)


_RESET_RE = _keyword_pattern(RESET_KEYWORDS)
_AUTH_RE = _keyword_pattern(AUTH_KEYWORDS)
_LOAN_RE = _keyword_pattern(LOAN_KEYWORDS)
_AUTH_DEFERRAL_RE = _keyword_pattern(AUTH_DEFERRAL_KEYWORDS)


def _searchable(text: str) -> str:
    return _EMAIL_TOKEN_RE.sub(" ", text)


def has_reset_keyword(text: str) -> bool:
    return bool(_RESET_RE.search(_searchable(text)))


def has_auth_keyword(text: str) -> bool:
    return bool(_AUTH_RE.search(_searchable(text)))


def has_loan_keyword(text: str) -> bool:
    return bool(_LOAN_RE.search(_searchable(text)))


def defers_to_loans(text: str) -> bool:
    return bool(_AUTH_DEFERRAL_RE.search(_searchable(text)))


def in_flow(session: RoomSession) -> bool:
    """Verification is under way, or a verified room has work waiting."""
    if session.status != AuthStatus.AUTHENTICATED:
        return True
    return session.pending_intent is not None


# ── Claim predicates ─────────────────────────────────────────────


def claims_verify_otp(text: str, session: RoomSession) -> bool:
    return is_numeric(text) and session.status == AuthStatus.NEED_OTP


def claims_reset(text: str, session: RoomSession) -> bool:
    return has_reset_keyword(text)


def claims_authenticate(text: str, session: RoomSession) -> bool:
    if is_numeric(text):
        return False
    if in_flow(session):
        return True
    return has_auth_keyword(text) and not defers_to_loans(text)


def claims_loan_lookup(text: str, session: RoomSession) -> bool:
    if is_numeric(text):
        return False
    return has_loan_keyword(text)


CLAIMS: dict[Capability, Callable[[str, RoomSession], bool]] = {
    Capability.RESET: claims_reset,
    Capability.VERIFY_OTP: claims_verify_otp,
    Capability.AUTHENTICATE: claims_authenticate,
    Capability.LOAN_LOOKUP: claims_loan_lookup,
}


# ── Rule table ───────────────────────────────────────────────────


@dataclass(frozen=True)
class RoutingRule:
    name: str
    matches: Callable[[str, RoomSession], bool]
    capability: Optional[Capability]


ROUTING_RULES: tuple[RoutingRule, ...] = (
    RoutingRule("numeric-otp", claims_verify_otp, Capability.VERIFY_OTP),
    RoutingRule("numeric-unclaimed", lambda text, session: is_numeric(text), None),
    RoutingRule("reset", claims_reset, Capability.RESET),
    RoutingRule("in-flow", lambda text, session: in_flow(session), Capability.AUTHENTICATE),
    RoutingRule(
        "auth-keyword",
        lambda text, session: has_auth_keyword(text) and not defers_to_loans(text),
        Capability.AUTHENTICATE,
    ),
    RoutingRule("loan-keyword", claims_loan_lookup, Capability.LOAN_LOOKUP),
)


@dataclass(frozen=True)
class RouteDecision:
    capability: Optional[Capability]
    rule: str

    @property
    def handled(self) -> bool:
        return self.capability is not None


class IntentRouter:

    def __init__(self, rules: tuple[RoutingRule, ...] = ROUTING_RULES) -> None:
        self._rules = rules

    def route(self, text: str, session: RoomSession) -> RouteDecision:
        """Pick the single capability that handles ``text``."""
        for rule in self._rules:
            if rule.matches(text, session):
                capability = rule.capability
                log.info(
                    "Room %s: rule %s -> %s (status %s)",
                    session.room_id, rule.name,
                    capability.value if capability else "nobody", session.status.value,
                )
                return RouteDecision(capability, rule.name)

        log.debug("Room %s: no capability claims the message", session.room_id)
        return RouteDecision(None, "unclaimed")

    @staticmethod
    def claimants(text: str, session: RoomSession) -> list[Capability]:
        """Every capability whose own predicate claims ``text``, before precedence."""
        return [cap for cap, claims in CLAIMS.items() if claims(text, session)]
