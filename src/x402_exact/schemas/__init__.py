from .bases import CanonicalModel, VerificationStatus, BaseVerificationResult
from .https import (
    EXACT_SCHEME,
    PaymentQuote,
    Server402ResponsePayload,
    PaymentAuthorization,
    ExactPayload,
    PaymentPayload,
    SettlementResponse,
    FacilitatorRequest,
    FacilitatorVerifyResponse,
)
from .versions import ProtocolVersion, SUPPORTED_VERSIONS

__all__ = [
    "CanonicalModel",
    "VerificationStatus",
    "BaseVerificationResult",
    "EXACT_SCHEME",
    "PaymentQuote",
    "Server402ResponsePayload",
    "PaymentAuthorization",
    "ExactPayload",
    "PaymentPayload",
    "SettlementResponse",
    "FacilitatorRequest",
    "FacilitatorVerifyResponse",
    "ProtocolVersion",
    "SUPPORTED_VERSIONS",
]
