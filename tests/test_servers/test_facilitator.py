import json

import httpx
import pytest

from x402_exact.engine.exceptions import FacilitatorError
from x402_exact.servers.facilitator import FacilitatorClient

from test_mocks import MOCK_PAYER_ADDRESS, MOCK_TX_HASH, create_mock_quote, create_signed_payment

FACILITATOR_URL = "https://facilitator.example.com/"


def make_facilitator(handler) -> FacilitatorClient:
    return FacilitatorClient(
        FACILITATOR_URL,
        headers={"Authorization": "Bearer test"},
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_verify_posts_payment_and_requirements():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"isValid": True, "payer": MOCK_PAYER_ADDRESS})

    quote = create_mock_quote()
    payment = create_signed_payment(quote)
    result = await make_facilitator(handler).verify(payment, quote)

    assert result.is_valid
    assert result.payer == MOCK_PAYER_ADDRESS

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://facilitator.example.com/verify"
    assert request.headers["authorization"] == "Bearer test"
    body = json.loads(request.content)
    assert body["x402Version"] == 1
    assert body["paymentPayload"]["payload"]["signature"] == payment.signature
    assert body["paymentRequirements"]["payTo"] == quote.pay_to


@pytest.mark.asyncio
async def test_verify_invalid_reason():
    def handler(request):
        return httpx.Response(200, json={"isValid": False, "invalidReason": "insufficient_funds"})

    quote = create_mock_quote()
    result = await make_facilitator(handler).verify(create_signed_payment(quote), quote)

    assert not result.is_valid
    assert result.invalid_reason == "insufficient_funds"


@pytest.mark.asyncio
async def test_settle():
    def handler(request):
        assert request.url.path == "/settle"
        return httpx.Response(200, json={
            "success": True,
            "transaction": MOCK_TX_HASH,
            "network": "eip155:8453",
            "payer": MOCK_PAYER_ADDRESS,
        })

    quote = create_mock_quote()
    settlement = await make_facilitator(handler).settle(create_signed_payment(quote), quote)

    assert settlement.success
    assert settlement.transaction == MOCK_TX_HASH


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="down"),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json=["list"]),
        httpx.Response(200, json={"unexpected": True}),
    ],
)
async def test_verify_failures_raise(response):
    quote = create_mock_quote()
    with pytest.raises(FacilitatorError) as exc_info:
        await make_facilitator(lambda request: response).verify(create_signed_payment(quote), quote)
    assert exc_info.value.endpoint == "verify"


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    quote = create_mock_quote()
    with pytest.raises(FacilitatorError) as exc_info:
        await make_facilitator(handler).settle(create_signed_payment(quote), quote)
    assert exc_info.value.endpoint == "settle"


def test_url_from_environment(monkeypatch):
    monkeypatch.setenv("X402_FACILITATOR_URL", "http://localhost:3000/")
    assert FacilitatorClient().url == "http://localhost:3000"

    monkeypatch.delenv("X402_FACILITATOR_URL")
    assert FacilitatorClient().url == "https://x402.org/facilitator"
