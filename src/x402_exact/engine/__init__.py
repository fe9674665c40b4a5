from .exceptions import (
    X402Error,
    QuoteMalformed,
    UnsupportedQuote,
    SignatureDenied,
    PaymentLimitExceeded,
    PaymentRejected,
    RequestFailed,
    EnvelopeDecodeError,
    ConfigurationError,
    FacilitatorError,
    SettlementError,
    InvalidTransition,
)
from .states import PaymentFlow, PaymentState

__all__ = [
    "X402Error",
    "QuoteMalformed",
    "UnsupportedQuote",
    "SignatureDenied",
    "PaymentLimitExceeded",
    "PaymentRejected",
    "RequestFailed",
    "EnvelopeDecodeError",
    "ConfigurationError",
    "FacilitatorError",
    "SettlementError",
    "InvalidTransition",
    "PaymentFlow",
    "PaymentState",
]
