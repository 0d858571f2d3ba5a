from .users import User
from .cached_conversions import CachedConversion
from .postback_history import PostbackAttempt
from .conversion_logs import ConversionLog
from .settlement_claims import SettlementClaim
from .enums import UserRole, TriggerPath, AuditAction, ClaimStatus, CONFIRMED_SUCCESS_ACTIONS

__all__ = [
    "User",
    "CachedConversion",
    "PostbackAttempt",
    "ConversionLog",
    "SettlementClaim",
    "UserRole",
    "TriggerPath",
    "AuditAction",
    "ClaimStatus",
    "CONFIRMED_SUCCESS_ACTIONS",
]
