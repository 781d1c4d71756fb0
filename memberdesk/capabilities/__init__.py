"""Capability handlers the router dispatches to."""

from .authenticate import AuthenticationFlow
from .base import CapabilityHandler, Continuation, TurnContext
from .loan_lookup import LoanLookupHandler
from .reset import ResetHandler
from .verify_otp import VerifyOtpHandler

__all__ = [
    "AuthenticationFlow",
    "CapabilityHandler",
    "Continuation",
    "LoanLookupHandler",
    "ResetHandler",
    "TurnContext",
    "VerifyOtpHandler",
]
