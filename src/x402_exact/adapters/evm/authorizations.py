"""
ERC-3009 Authorization Builder

Pure construction of the ``TransferWithAuthorization`` fields a payer signs in
answer to an exact-scheme quote. No signing and no I/O happens here.
"""

import secrets
import time
from typing import Optional

from eth_utils import is_address, to_checksum_address

from ...engine.exceptions import UnsupportedQuote
from ...schemas.https import PaymentAuthorization, PaymentQuote

#: Seconds between ``validAfter`` and ``validBefore``.
AUTHORIZATION_VALIDITY_SECONDS: int = 300


def generate_nonce() -> str:
    """Return a fresh ``0x``-prefixed bytes32 nonce from the OS CSPRNG."""
    return "0x" + secrets.token_bytes(32).hex()


def build_authorization(
    quote: PaymentQuote,
    payer: str,
    *,
    now: Optional[int] = None,
    validity_seconds: int = AUTHORIZATION_VALIDITY_SECONDS,
) -> PaymentAuthorization:
    """
    Build the authorization that pays ``quote`` exactly.

    Args:
        quote: Payable quote (``pay_to`` and ``asset`` set).
        payer: Address of the signing key; checksummed in the result.
        now: Unix seconds to anchor the validity window; wall clock when omitted.
        validity_seconds: Window length, 300 unless a caller overrides it.

    Returns:
        ``PaymentAuthorization`` with ``value == quote.max_amount_required``,
        ``to == quote.pay_to`` and a fresh nonce.

    Raises:
        ValueError: If ``payer`` is empty or not an address.
        UnsupportedQuote: If the quote has no ``pay_to``.
    """
    if not payer or not is_address(payer):
        raise ValueError(f"Invalid payer address: {payer!r}")
    if not quote.pay_to:
        raise UnsupportedQuote("Quote has no payTo address", quote=quote)
    if validity_seconds <= 0:
        raise ValueError("validity_seconds must be positive")

    issued_at = int(time.time()) if now is None else int(now)

    return PaymentAuthorization(
        from_=to_checksum_address(payer),
        to=quote.pay_to,
        value=quote.max_amount_required,
        valid_after=str(issued_at),
        valid_before=str(issued_at + validity_seconds),
        nonce=generate_nonce(),
    )
