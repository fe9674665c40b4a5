"""
Tests for 402 body interpretation.
"""
import json
from decimal import Decimal

import httpx
import pytest

from x402_exact.clients.quotes import (
    display_amount,
    ensure_payable,
    format_payment_amount,
    list_quotes,
    parse_402_payload,
    parse_quote,
    select_quote,
)
from x402_exact.engine.exceptions import QuoteMalformed, UnsupportedQuote

from test_mocks import MOCK_UNKNOWN_TOKEN, create_402_body, create_mock_quote


def test_parse_minimal_quote():
    body = {
        "accepts": [{
            "scheme": "exact",
            "network": "eip155:8453",
            "asset": "0xTOKEN",
            "payTo": "0xPAY",
            "maxAmountRequired": "1000000",
        }],
        "description": "Market data",
    }
    quote = parse_quote(body)

    assert quote.to_dict() == {
        "scheme": "exact",
        "network": "eip155:8453",
        "asset": "0xTOKEN",
        "payTo": "0xPAY",
        "maxAmountRequired": "1000000",
        "description": "",
        "mimeType": "",
    }
    assert display_amount(quote) == Decimal("1.00")
    assert format_payment_amount(display_amount(quote)) == "$1.00 USDC"
    # Placeholder addresses parse, but cannot be paid.
    with pytest.raises(UnsupportedQuote):
        ensure_payable(quote)


def test_parse_quote_picks_first_option():
    first = create_mock_quote()
    second = create_mock_quote(network="eip155:84532", max_amount_required="5")
    body = create_402_body(first)
    body["accepts"].append(second.to_dict())

    assert parse_quote(body) == first
    assert len(list_quotes(body)) == 2


def test_parse_quote_from_response_bytes_and_str():
    body = create_402_body()
    response = httpx.Response(402, json=body)

    assert parse_quote(response).amount == 1000000
    assert parse_quote(json.dumps(body)).amount == 1000000
    assert parse_quote(json.dumps(body).encode()).amount == 1000000


def test_network_preference():
    body = create_402_body()
    body["accepts"].append(create_mock_quote(network="base-sepolia", max_amount_required="7").to_dict())

    assert parse_quote(body, network="eip155:84532").max_amount_required == "7"
    with pytest.raises(UnsupportedQuote):
        parse_quote(body, network="polygon")


def test_select_quote_empty():
    with pytest.raises(QuoteMalformed):
        select_quote([])


def test_fallback_to_top_level_amount():
    quote = parse_quote({"amount": "1.00", "description": "Premium data"})

    assert quote.max_amount_required == "1000000"
    assert quote.description == "Premium data"
    assert quote.is_display_only
    assert format_payment_amount(display_amount(quote)) == "$1.00 USDC"


def test_fallback_amount_must_be_numeric():
    with pytest.raises(QuoteMalformed):
        parse_quote({"amount": "lots"})


@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        "[]",
        {},
        {"accepts": []},
        {"accepts": "exact"},
        {"accepts": [{"scheme": "exact"}]},
        {"accepts": [{"network": "base", "maxAmountRequired": "1.5"}]},
    ],
)
def test_malformed_bodies(body):
    with pytest.raises(QuoteMalformed):
        parse_quote(body)


def test_parse_402_payload_keeps_error_text():
    payload = parse_402_payload(create_402_body(error="Payment expired"))
    assert payload.error == "Payment expired"
    assert payload.x402_version == 1


def test_ensure_payable_accepts_complete_quote():
    quote = create_mock_quote()
    assert ensure_payable(quote) is quote


@pytest.mark.parametrize(
    "overrides",
    [
        {"scheme": "upto"},
        {"pay_to": None},
        {"asset": None},
        {"network": "solana-mainnet"},
        {"pay_to": "0x1234"},
        {"asset": "usdc"},
    ],
)
def test_ensure_payable_rejects(overrides):
    with pytest.raises(UnsupportedQuote):
        ensure_payable(create_mock_quote(**overrides))


def test_display_amount_uses_registry_decimals():
    quote = create_mock_quote(max_amount_required="1500")
    assert display_amount(quote) == Decimal("0.0015")

    unknown = create_mock_quote(asset=MOCK_UNKNOWN_TOKEN, max_amount_required="1500")
    assert display_amount(unknown, decimals=3) == Decimal("1.5")


def test_format_payment_amount_rounds_half_up():
    assert format_payment_amount(Decimal("0.005")) == "$0.01 USDC"
    assert format_payment_amount("12.344", symbol="EURC") == "$12.34 EURC"
    assert format_payment_amount(3) == "$3.00 USDC"
