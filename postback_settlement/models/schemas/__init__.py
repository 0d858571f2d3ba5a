from .base import ResponseBase
from .settlement import PostbackAttemptRead, ConversionLogRead, SettlementStatus

__all__ = [
    "ResponseBase",
    "PostbackAttemptRead",
    "ConversionLogRead",
    "SettlementStatus",
]
