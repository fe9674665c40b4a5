import base64
import json

import pytest

from x402_exact.encoding import (
    decode_payment_header,
    decode_settlement_header,
    encode_payment_header,
    encode_settlement_header,
)
from x402_exact.engine.exceptions import EnvelopeDecodeError
from x402_exact.schemas.https import SettlementResponse

from test_mocks import MOCK_TX_HASH, create_signed_payment


def _b64(obj) -> str:
    return base64.b64encode(json.dumps(obj).encode()).decode()


def test_payment_header_wire_format():
    payment = create_signed_payment(now=1_700_000_000)
    header = encode_payment_header(payment)

    data = json.loads(base64.b64decode(header))
    assert data["x402Version"] == 1
    assert data["scheme"] == "exact"
    assert data["network"] == "eip155:8453"
    authorization = data["payload"]["authorization"]
    assert set(authorization) == {"from", "to", "value", "validAfter", "validBefore", "nonce"}
    assert authorization["value"] == "1000000"
    assert authorization["validAfter"] == "1700000000"
    assert data["payload"]["signature"] == payment.signature

    assert decode_payment_header(header) == payment


def test_encoding_is_deterministic():
    payment = create_signed_payment()
    assert encode_payment_header(payment) == encode_payment_header(payment)


def test_decode_accepts_urlsafe_and_unpadded():
    payment = create_signed_payment()
    raw = payment.to_canonical_json().encode()

    urlsafe = base64.urlsafe_b64encode(raw).decode().rstrip("=")
    assert decode_payment_header(urlsafe) == payment


def test_decode_rejects_stray_characters_in_urlsafe_header():
    payment = create_signed_payment()
    urlsafe = base64.urlsafe_b64encode(payment.to_canonical_json().encode()).decode().rstrip("=")
    # A random 32-byte nonce makes the URL-safe alphabet all but certain to appear.
    assert "-" in urlsafe or "_" in urlsafe

    with pytest.raises(EnvelopeDecodeError, match="not valid base64"):
        decode_payment_header(urlsafe[:8] + "!!**" + urlsafe[8:])


def test_settlement_header():
    settlement = SettlementResponse(
        success=True,
        transaction=MOCK_TX_HASH,
        network="eip155:8453",
        payer="0x2c7536E3605D9C16a7a3D7b1898e529396a65c23",
    )
    header = encode_settlement_header(settlement)
    assert json.loads(base64.b64decode(header))["transaction"] == MOCK_TX_HASH
    assert decode_settlement_header(header) == settlement

    failed = decode_settlement_header(_b64({"success": False, "errorReason": "insufficient_funds"}))
    assert failed.error_reason == "insufficient_funds"


@pytest.mark.parametrize(
    "value",
    [
        "",
        "   ",
        "!!!not base64!!!",
        base64.b64encode(b"\xff\xfe\xfd").decode(),
        base64.b64encode(b"{not json").decode(),
        _b64(["a", "list"]),
        _b64({"x402Version": 1, "scheme": "exact"}),
        _b64({"network": "eip155:8453", "payload": {"signature": "0x", "authorization": {"from": "0x1"}}}),
    ],
)
def test_decode_payment_header_rejects(value):
    with pytest.raises(EnvelopeDecodeError):
        decode_payment_header(value)


def test_nonce_must_be_bytes32():
    payment = create_signed_payment()
    data = payment.to_dict()
    data["payload"]["authorization"]["nonce"] = "0x1234"

    with pytest.raises(EnvelopeDecodeError):
        decode_payment_header(_b64(data))
