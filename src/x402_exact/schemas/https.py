"""
HTTP Wire Schema Models for the x402 exact scheme

This module defines the Pydantic models exchanged over HTTP between a paying
client, a payment gate and a facilitator. Field names follow the x402 v1 wire
format (camelCase aliases); every integer that ends up in a signature is
carried as a decimal string.

The main payment flow consists of:
1. Client requests a resource, gate answers 402 with ``Server402ResponsePayload``
2. Client picks a ``PaymentQuote`` from ``accepts`` and signs a ``PaymentAuthorization``
3. Client retries with ``X-PAYMENT: base64(PaymentPayload)``
4. Gate verifies (optionally settles) and answers 2xx with ``X-PAYMENT-RESPONSE``
"""

import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field, field_validator

from .bases import CanonicalModel
from .versions import ProtocolVersion

EXACT_SCHEME = "exact"

_UINT_PATTERN = re.compile(r"^[0-9]+$")
_BYTES32_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


def _coerce_uint_string(value: Any) -> Any:
    """Accept ints for convenience but always store the decimal string form."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


def _require_uint_string(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not _UINT_PATTERN.match(value):
        raise ValueError(f"{field_name} must be a base-10 unsigned integer string, got {value!r}")
    return value


# ============================================================================
# Step 1: Gate's 402 Payment Required Response
# ============================================================================

class PaymentQuote(CanonicalModel):
    """One acceptable payment option from the ``accepts`` array of a 402 response.

    Immutable once issued: the client echoes ``asset``, ``payTo`` and the
    amount back in its authorization, the gate compares against the same object.

    Attributes:
        scheme: Payment scheme tag, ``"exact"``.
        network: Chain identifier (``"eip155:8453"`` or a v1 alias like ``"base"``).
        asset: Token contract address, also the EIP-712 ``verifyingContract``.
        pay_to: Destination address for funds.
        max_amount_required: Amount in token base units (integer string).
        description: Human-readable description of the resource.
        mime_type: MIME type of the resource response.
        resource: URL of the protected resource.
        max_timeout_seconds: Upper bound the gate allows for the paid round trip.
        extra: Scheme-specific data; ``name``/``version`` of the token's EIP-712 domain.

    A quote built from the top-level ``amount`` fallback has no ``pay_to`` or
    ``asset`` and can only be displayed, not paid.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    scheme: str = Field(default=EXACT_SCHEME)
    network: str
    asset: Optional[str] = None
    pay_to: Optional[str] = Field(default=None, alias="payTo")
    max_amount_required: str = Field(..., alias="maxAmountRequired")
    description: str = ""
    mime_type: str = Field(default="", alias="mimeType")
    resource: Optional[str] = None
    max_timeout_seconds: Optional[int] = Field(default=None, alias="maxTimeoutSeconds")
    output_schema: Optional[Dict[str, Any]] = Field(default=None, alias="outputSchema")
    extra: Optional[Dict[str, Any]] = None

    @field_validator("max_amount_required", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Any:
        return _coerce_uint_string(value)

    @field_validator("max_amount_required")
    @classmethod
    def _check_amount(cls, value: str) -> str:
        return _require_uint_string(value, "maxAmountRequired")

    @property
    def amount(self) -> int:
        """Required amount in base units."""
        return int(self.max_amount_required)

    @property
    def is_display_only(self) -> bool:
        return not self.pay_to or not self.asset

    def display_amount(self, decimals: Optional[int] = None) -> Decimal:
        """Human-readable amount, e.g. ``Decimal("1.000000")`` for ``"1000000"``.

        Display only; the signed value always uses ``max_amount_required``.
        """
        from ..adapters.evm.constants import get_token_decimals, value_to_amount

        if decimals is None:
            decimals = get_token_decimals(self.network, self.asset)
        return value_to_amount(value=self.max_amount_required, decimals=decimals)


class Server402ResponsePayload(CanonicalModel):
    """Body of a 402 Payment Required response.

    Attributes:
        x402_version: Protocol version the gate speaks.
        error: Why payment is required (missing header, rejected payment, ...).
        accepts: Acceptable payment options; clients use the first by default.
        description: Optional top-level description (fallback for old servers).
        amount: Optional top-level human amount (fallback for old servers).
    """
    x402_version: int = Field(default=ProtocolVersion.V1, alias="x402Version")
    error: str = ""
    accepts: List[PaymentQuote] = Field(default_factory=list)
    description: Optional[str] = None
    amount: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_display_amount(cls, value: Any) -> Any:
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value


# ============================================================================
# Step 2: Client's signed authorization
# ============================================================================

class PaymentAuthorization(CanonicalModel):
    """ERC-3009 ``TransferWithAuthorization`` fields as carried on the wire.

    ``from`` is a Python keyword, so the attribute is ``from_`` and the alias
    is ``from``. Integer fields are decimal strings.
    """
    from_: str = Field(..., alias="from")
    to: str
    value: str
    valid_after: str = Field(..., alias="validAfter")
    valid_before: str = Field(..., alias="validBefore")
    nonce: str

    @field_validator("value", "valid_after", "valid_before", mode="before")
    @classmethod
    def _coerce_uints(cls, value: Any) -> Any:
        return _coerce_uint_string(value)

    @field_validator("value", "valid_after", "valid_before")
    @classmethod
    def _check_uints(cls, value: str, info) -> str:
        return _require_uint_string(value, info.field_name)

    @field_validator("nonce")
    @classmethod
    def _check_nonce(cls, value: str) -> str:
        if not _BYTES32_PATTERN.match(value):
            raise ValueError("nonce must be a 0x-prefixed 32-byte hex string")
        return value


class ExactPayload(CanonicalModel):
    """``payload`` member of the exact-scheme envelope."""
    signature: str
    authorization: PaymentAuthorization


class PaymentPayload(CanonicalModel):
    """The ``X-PAYMENT`` envelope.

    Example:
        {
            "x402Version": 1,
            "scheme": "exact",
            "network": "eip155:8453",
            "payload": {"signature": "0x...", "authorization": {...}}
        }
    """
    x402_version: int = Field(default=ProtocolVersion.V1, alias="x402Version")
    scheme: str = Field(default=EXACT_SCHEME)
    network: str
    payload: ExactPayload

    @property
    def authorization(self) -> PaymentAuthorization:
        return self.payload.authorization

    @property
    def signature(self) -> str:
        return self.payload.signature


# ============================================================================
# Step 3: Settlement and facilitator messages
# ============================================================================

class SettlementResponse(CanonicalModel):
    """Settlement outcome returned base64-encoded in ``X-PAYMENT-RESPONSE``."""
    success: bool
    error_reason: Optional[str] = Field(default=None, alias="errorReason")
    transaction: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None


class FacilitatorRequest(CanonicalModel):
    """Body posted to a facilitator's ``/verify`` and ``/settle`` endpoints."""
    x402_version: int = Field(default=ProtocolVersion.V1, alias="x402Version")
    payment_payload: PaymentPayload = Field(..., alias="paymentPayload")
    payment_requirements: PaymentQuote = Field(..., alias="paymentRequirements")


class FacilitatorVerifyResponse(CanonicalModel):
    """Answer of a facilitator's ``/verify`` endpoint."""
    is_valid: bool = Field(..., alias="isValid")
    invalid_reason: Optional[str] = Field(default=None, alias="invalidReason")
    payer: Optional[str] = None
