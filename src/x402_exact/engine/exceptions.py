"""
Exception and Error Definitions Module

Defines the exception hierarchy for the x402 payment flow. The four client
outcomes a caller has to tell apart (not a paid endpoint, malformed quote,
declined signature, rejected payment) each get their own class so UI code
can branch on type alone.

Exception Hierarchy:
    X402Error (root)
    ├── QuoteMalformed
    │   └── UnsupportedQuote
    ├── SignatureDenied
    │   └── PaymentLimitExceeded
    ├── PaymentRejected
    ├── RequestFailed
    ├── EnvelopeDecodeError
    ├── ConfigurationError
    ├── FacilitatorError
    └── SettlementError
    InvalidTransition
"""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    import httpx


class X402Error(Exception):
    """
    Root exception class for all project-specific exceptions.

    Client-side errors carry the flow context they were raised in:

    Attributes:
        state: Terminal ``PaymentState`` reached by the flow, if any
        quote: ``PaymentQuote`` being processed, if one was parsed
        response: Last ``httpx.Response`` received, if any
    """

    def __init__(
        self,
        message: str = "",
        *,
        state: Any = None,
        quote: Any = None,
        response: Optional["httpx.Response"] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.state = state
        self.quote = quote
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None


class QuoteMalformed(X402Error):
    """
    Raised when a 402 body cannot be turned into a payment quote.

    This includes scenarios such as:
    - Body is not valid JSON
    - Neither ``accepts`` nor a top-level ``amount`` is present
    - An ``accepts`` entry fails schema validation

    Permanent: retrying without a server-side fix gives the same result.
    """
    pass


class UnsupportedQuote(QuoteMalformed):
    """
    Raised when a quote parses but cannot be paid by this client.

    This includes scenarios such as:
    - Scheme other than ``exact``
    - Unknown network identifier
    - Display-only quote without ``payTo`` or ``asset``
    """
    pass


class SignatureDenied(X402Error):
    """
    Raised when the signer declines or fails to sign the authorization.

    This includes scenarios such as:
    - User rejected the signature request
    - Key unavailable or wallet locked
    - Signer returned an unusable result

    Retryable by explicit user action.
    """
    pass


class PaymentLimitExceeded(SignatureDenied):
    """
    Raised when the quoted amount exceeds the client's configured ``max_value``.

    Attributes:
        required: Quoted amount in base units
        limit: Configured maximum in base units
    """

    def __init__(self, message: str = "", *, required: int = 0, limit: int = 0, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.required = required
        self.limit = limit


class PaymentRejected(X402Error):
    """
    Raised when the server refuses a signed payment.

    Covers a second 402 (stale or expired authorization, insufficient funds,
    facilitator rejection) and any other non-2xx answer to the paid request.
    Retryable by re-quoting.

    Attributes:
        reason: Server-provided ``error`` text when available
    """

    def __init__(self, message: str = "", *, reason: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.reason = reason


class RequestFailed(X402Error):
    """
    Raised on transport errors, timeouts, or non-402 non-2xx statuses.

    Unrelated to payment state; retryable per normal HTTP semantics.
    """
    pass


class EnvelopeDecodeError(X402Error):
    """
    Raised when an ``X-PAYMENT`` or ``X-PAYMENT-RESPONSE`` header cannot be decoded.

    This includes scenarios such as:
    - Invalid base64
    - Decoded bytes are not UTF-8 JSON
    - JSON does not match the envelope schema
    """
    pass


class ConfigurationError(X402Error):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing ``payTo`` address for the gate
    - Missing private key for local signing or settlement
    - Unsupported network or asset configuration
    """
    pass


class FacilitatorError(X402Error):
    """
    Raised when the facilitator service cannot be reached or answers non-200.

    Attributes:
        endpoint: Facilitator endpoint that was called (``verify`` or ``settle``)
    """

    def __init__(self, message: str = "", *, endpoint: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.endpoint = endpoint


class SettlementError(X402Error):
    """
    Raised when on-chain settlement cannot be submitted or reverts.

    Attributes:
        tx_hash: Transaction hash if the transaction was broadcast
    """

    def __init__(self, message: str = "", *, tx_hash: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash


class InvalidTransition(Exception):
    """
    Raised when the payment state machine is asked for an illegal transition.

    Attributes:
        current_state: State the flow was in
        target_state: State that was requested
    """

    def __init__(self, current_state: Any, target_state: Any) -> None:
        super().__init__(f"Invalid payment state transition: {current_state} -> {target_state}")
        self.current_state = current_state
        self.target_state = target_state
