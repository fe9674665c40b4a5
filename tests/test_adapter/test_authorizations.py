import re

import pytest

from x402_exact.adapters.evm.authorizations import (
    AUTHORIZATION_VALIDITY_SECONDS,
    build_authorization,
    generate_nonce,
)
from x402_exact.engine.exceptions import UnsupportedQuote

from test_mocks import MOCK_PAYER_ADDRESS, MOCK_PAY_TO_ADDRESS, create_mock_quote


def test_authorization_pays_exactly_the_quote():
    quote = create_mock_quote(max_amount_required="1234567")
    auth = build_authorization(quote, MOCK_PAYER_ADDRESS, now=1_700_000_000)

    assert auth.from_ == MOCK_PAYER_ADDRESS
    assert auth.to == MOCK_PAY_TO_ADDRESS
    assert auth.value == "1234567"
    assert auth.valid_after == "1700000000"
    assert auth.valid_before == str(1_700_000_000 + AUTHORIZATION_VALIDITY_SECONDS)


def test_validity_window_is_300_seconds():
    auth = build_authorization(create_mock_quote(), MOCK_PAYER_ADDRESS)
    assert AUTHORIZATION_VALIDITY_SECONDS == 300
    assert int(auth.valid_before) - int(auth.valid_after) == 300


def test_payer_is_checksummed():
    auth = build_authorization(create_mock_quote(), MOCK_PAYER_ADDRESS.lower())
    assert auth.from_ == MOCK_PAYER_ADDRESS


def test_invalid_payer_rejected():
    with pytest.raises(ValueError):
        build_authorization(create_mock_quote(), "not-an-address")
    with pytest.raises(ValueError):
        build_authorization(create_mock_quote(), "")


def test_quote_without_pay_to_rejected():
    quote = create_mock_quote(pay_to=None)
    with pytest.raises(UnsupportedQuote):
        build_authorization(quote, MOCK_PAYER_ADDRESS)


def test_nonce_format():
    assert re.fullmatch(r"0x[0-9a-f]{64}", generate_nonce())


def test_nonces_do_not_collide():
    nonces = {build_authorization(create_mock_quote(), MOCK_PAYER_ADDRESS).nonce for _ in range(500)}
    assert len(nonces) == 500
