"""
x402 exact-scheme payments for httpx clients and FastAPI servers.

Client:
    async with Http402Client(signer=LocalAccountSigner()) as client:
        response = await client.get("https://api.example.com/paid")

Gate:
    app = Http402Server(pay_to="0x...", network="eip155:8453")

    @app.get("/paid")
    @app.payment_required("$0.001")
    async def paid(request, payment):
        return {"ok": True}
"""

from .adapters.evm import EVMSettler, LocalAccountSigner, TypedDataSigner, verify_exact_payment
from .clients import Http402Client, PaymentOutcome, parse_quote
from .encoding import (
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    decode_payment_header,
    decode_settlement_header,
    encode_payment_header,
    encode_settlement_header,
)
from .engine.exceptions import (
    X402Error,
    QuoteMalformed,
    UnsupportedQuote,
    SignatureDenied,
    PaymentLimitExceeded,
    PaymentRejected,
    RequestFailed,
    EnvelopeDecodeError,
    ConfigurationError,
)
from .engine.states import PaymentFlow, PaymentState
from .schemas.https import PaymentAuthorization, PaymentPayload, PaymentQuote, SettlementResponse
from .servers import FacilitatorClient, Http402Server, NonceStore

__version__ = "0.1.0"

__all__ = [
    "EVMSettler",
    "LocalAccountSigner",
    "TypedDataSigner",
    "verify_exact_payment",
    "Http402Client",
    "PaymentOutcome",
    "parse_quote",
    "PAYMENT_HEADER",
    "PAYMENT_RESPONSE_HEADER",
    "decode_payment_header",
    "decode_settlement_header",
    "encode_payment_header",
    "encode_settlement_header",
    "X402Error",
    "QuoteMalformed",
    "UnsupportedQuote",
    "SignatureDenied",
    "PaymentLimitExceeded",
    "PaymentRejected",
    "RequestFailed",
    "EnvelopeDecodeError",
    "ConfigurationError",
    "PaymentFlow",
    "PaymentState",
    "PaymentAuthorization",
    "PaymentPayload",
    "PaymentQuote",
    "SettlementResponse",
    "FacilitatorClient",
    "Http402Server",
    "NonceStore",
]
