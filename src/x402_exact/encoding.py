"""
Header envelope codec.

``X-PAYMENT`` and ``X-PAYMENT-RESPONSE`` both carry base64 of compact UTF-8
JSON. Decoding accepts standard and URL-safe alphabets with or without
padding; encoding always emits standard padded base64.
"""

import base64
import binascii
import json
from typing import Type, TypeVar

from pydantic import ValidationError

from .engine.exceptions import EnvelopeDecodeError
from .schemas.bases import CanonicalModel
from .schemas.https import PaymentPayload, SettlementResponse

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

_ModelT = TypeVar("_ModelT", bound=CanonicalModel)


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: str) -> bytes:
    cleaned = "".join(data.split())
    padded = cleaned + "=" * (-len(cleaned) % 4)
    if "-" in padded or "_" in padded:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    return base64.b64decode(padded, validate=True)


def _encode_model(model: CanonicalModel) -> str:
    return _b64encode(model.to_canonical_json().encode("utf-8"))


def _decode_model(value: str, model_cls: Type[_ModelT], header: str) -> _ModelT:
    if not isinstance(value, str) or not value.strip():
        raise EnvelopeDecodeError(f"{header} header is empty")
    try:
        raw = _b64decode(value)
    except (binascii.Error, ValueError) as exc:
        raise EnvelopeDecodeError(f"{header} header is not valid base64") from exc
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EnvelopeDecodeError(f"{header} header is not valid JSON") from exc
    if not isinstance(data, dict):
        raise EnvelopeDecodeError(f"{header} header must decode to a JSON object")
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise EnvelopeDecodeError(f"{header} header has an invalid shape: {exc.error_count()} error(s)") from exc


def encode_payment_header(payload: PaymentPayload) -> str:
    """Encode a signed envelope for the ``X-PAYMENT`` header."""
    return _encode_model(payload)


def decode_payment_header(value: str) -> PaymentPayload:
    """
    Decode an ``X-PAYMENT`` header value.

    Raises:
        EnvelopeDecodeError: On bad base64, bad JSON or a mismatching shape.
    """
    return _decode_model(value, PaymentPayload, PAYMENT_HEADER)


def encode_settlement_header(settlement: SettlementResponse) -> str:
    """Encode a settlement result for the ``X-PAYMENT-RESPONSE`` header."""
    return _encode_model(settlement)


def decode_settlement_header(value: str) -> SettlementResponse:
    """
    Decode an ``X-PAYMENT-RESPONSE`` header value.

    Raises:
        EnvelopeDecodeError: On bad base64, bad JSON or a mismatching shape.
    """
    return _decode_model(value, SettlementResponse, PAYMENT_RESPONSE_HEADER)
