"""
Client module for x402 payments.

Provides an httpx client that pays exact-scheme quotes automatically, plus the
quote parsing helpers it is built on.
"""

from .http_client import Http402Client, PaymentOutcome
from .quotes import (
    display_amount,
    ensure_payable,
    format_payment_amount,
    list_quotes,
    parse_402_payload,
    parse_quote,
    select_quote,
)

__all__ = [
    "Http402Client",
    "PaymentOutcome",
    "display_amount",
    "ensure_payable",
    "format_payment_amount",
    "list_quotes",
    "parse_402_payload",
    "parse_quote",
    "select_quote",
]
