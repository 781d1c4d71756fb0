from .loan import LoanInfoType, LoanRecord, parse_info_type
from .room import LOAN_LOOKUP_INTENT, AuthStatus, Credentials, RoomSession

__all__ = [
    "AuthStatus",
    "Credentials",
    "LOAN_LOOKUP_INTENT",
    "LoanInfoType",
    "LoanRecord",
    "RoomSession",
    "parse_info_type",
]
