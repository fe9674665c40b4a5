"""
Quote interpretation.

Turns a 402 response body into a ``PaymentQuote``. Servers that speak x402
send an ``accepts`` list; older ones only send a top-level ``amount`` and
``description``, which yields a quote that can be shown but not paid.
"""

import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from eth_utils import is_address
from pydantic import ValidationError

from ..adapters.evm.constants import (
    DEFAULT_TOKEN_DECIMALS,
    amount_to_value,
    normalize_network,
)
from ..engine.exceptions import QuoteMalformed, UnsupportedQuote
from ..schemas.https import EXACT_SCHEME, PaymentQuote, Server402ResponsePayload

# Network used for display-only fallback quotes.
FALLBACK_NETWORK = "eip155:8453"

Body = Union[httpx.Response, bytes, str, Dict[str, Any]]


def _load_body(body: Body) -> Dict[str, Any]:
    if isinstance(body, httpx.Response):
        body = body.content
    if isinstance(body, (bytes, str)):
        try:
            body = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise QuoteMalformed("402 body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise QuoteMalformed("402 body must be a JSON object")
    return body


def parse_402_payload(body: Body) -> Server402ResponsePayload:
    """
    Parse a 402 body, keeping every ``accepts`` option.

    Raises:
        QuoteMalformed: If the body is not JSON, has neither ``accepts`` nor
            ``amount``, or an option fails validation.
    """
    data = _load_body(body)
    accepts = data.get("accepts")
    if not accepts and data.get("amount") is None:
        raise QuoteMalformed("402 body has neither 'accepts' nor 'amount'")
    if accepts is not None and not isinstance(accepts, list):
        raise QuoteMalformed("'accepts' must be a list")
    try:
        return Server402ResponsePayload.model_validate(data)
    except ValidationError as exc:
        raise QuoteMalformed(f"Invalid 402 body: {exc.error_count()} validation error(s)") from exc


def select_quote(
    accepts: Sequence[PaymentQuote],
    *,
    network: Optional[str] = None,
    scheme: str = EXACT_SCHEME,
) -> PaymentQuote:
    """
    Pick a quote from ``accepts``.

    Without a ``network`` preference this is ``accepts[0]``, matching what
    x402 servers expect. With one, the first option on that network using
    ``scheme`` wins.

    Raises:
        QuoteMalformed: If ``accepts`` is empty.
        UnsupportedQuote: If no option matches the preference.
    """
    if not accepts:
        raise QuoteMalformed("'accepts' is empty")
    if network is None:
        return accepts[0]

    wanted = normalize_network(network)
    for quote in accepts:
        try:
            if quote.scheme == scheme and normalize_network(quote.network) == wanted:
                return quote
        except ValueError:
            continue
    raise UnsupportedQuote(f"No '{scheme}' option for network {network}")


def _fallback_quote(payload: Server402ResponsePayload) -> PaymentQuote:
    try:
        value = amount_to_value(amount=payload.amount, decimals=DEFAULT_TOKEN_DECIMALS)
    except ValueError as exc:
        raise QuoteMalformed(f"Invalid top-level amount {payload.amount!r}") from exc
    return PaymentQuote(
        network=FALLBACK_NETWORK,
        max_amount_required=str(value),
        description=payload.description or "",
    )


def parse_quote(body: Body, *, network: Optional[str] = None) -> PaymentQuote:
    """
    Parse a 402 body into the quote to pay.

    Example:
        quote = parse_quote(response)
        quote.max_amount_required  # "1000000"
        display_amount(quote)      # Decimal("1.000000")

    Raises:
        QuoteMalformed: See ``parse_402_payload``.
    """
    payload = parse_402_payload(body)
    if payload.accepts:
        return select_quote(payload.accepts, network=network)
    return _fallback_quote(payload)


def ensure_payable(quote: PaymentQuote) -> PaymentQuote:
    """
    Check that this client can pay ``quote``.

    Raises:
        UnsupportedQuote: On a display-only quote, a non-exact scheme, an
            unknown network or invalid addresses.
    """
    if quote.scheme != EXACT_SCHEME:
        raise UnsupportedQuote(f"Unsupported scheme '{quote.scheme}'", quote=quote)
    if quote.is_display_only:
        raise UnsupportedQuote("Quote has no payTo/asset and cannot be paid", quote=quote)
    try:
        normalize_network(quote.network)
    except ValueError as exc:
        raise UnsupportedQuote(str(exc), quote=quote) from exc
    for label, address in (("payTo", quote.pay_to), ("asset", quote.asset)):
        if not is_address(address):
            raise UnsupportedQuote(f"Invalid {label} address {address!r}", quote=quote)
    return quote


def display_amount(quote: PaymentQuote, decimals: Optional[int] = None) -> Decimal:
    """Human-readable amount of ``quote``; never use it to build a signed value."""
    return quote.display_amount(decimals)


def format_payment_amount(amount: Union[Decimal, str, int, float], symbol: str = "USDC") -> str:
    """
    Format an amount for UI text.

    Example:
        format_payment_amount(Decimal("1.000000"))  # "$1.00 USDC"
    """
    quantized = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"${quantized} {symbol}"


def list_quotes(body: Body) -> List[PaymentQuote]:
    """All options of a 402 body, for callers implementing their own selection."""
    return list(parse_402_payload(body).accepts)
