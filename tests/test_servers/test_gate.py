"""
End-to-end tests for Http402Server.

The gate runs in-process behind httpx.ASGITransport; the client side is either
a plain httpx client (to hand-craft headers) or Http402Client.
"""
import asyncio
import base64

import httpx
import pytest
from fastapi.responses import PlainTextResponse

from x402_exact.adapters.evm.settlement import EVMSettler
from x402_exact.adapters.evm.signatures import LocalAccountSigner
from x402_exact.clients.http_client import Http402Client
from x402_exact.clients.quotes import parse_quote
from x402_exact.encoding import (
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    decode_settlement_header,
    encode_payment_header,
)
from x402_exact.engine.events import VerifyFailedEvent
from x402_exact.engine.exceptions import ConfigurationError, PaymentRejected
from x402_exact.engine.states import PaymentState
from x402_exact.schemas.bases import VerificationStatus
from x402_exact.servers.apps import Http402Server
from x402_exact.servers.facilitator import FacilitatorClient
from x402_exact.servers.security import NonceStore

from test_mocks import (
    MOCK_GATE_PRIVATE_KEY,
    MOCK_PAYER_ADDRESS,
    MOCK_PAYER_PRIVATE_KEY,
    MOCK_PAY_TO_ADDRESS,
    MOCK_TX_HASH,
    MOCK_USDC_BASE,
    create_mock_web3,
    create_signed_payment,
)

BASE_URL = "http://testserver"


def make_gate(**kwargs) -> Http402Server:
    app = Http402Server(pay_to=MOCK_PAY_TO_ADDRESS, network="eip155:8453", **kwargs)

    @app.get("/paid")
    @app.payment_required("$1.00", description="Premium data")
    async def paid(request, payment):
        return {"payer": payment.authorization.from_}

    @app.get("/report")
    @app.payment_required(2500, mime_type="text/plain")
    async def report(request, payment):
        return PlainTextResponse("quarterly numbers")

    @app.get("/free")
    async def free():
        return {"free": True}

    return app


def plain_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL)


def paying_client(app, **kwargs) -> Http402Client:
    return Http402Client(
        signer=LocalAccountSigner(MOCK_PAYER_PRIVATE_KEY),
        transport=httpx.ASGITransport(app=app),
        base_url=BASE_URL,
        **kwargs,
    )


# ========================================================================
# Quote issuance
# ========================================================================

@pytest.mark.asyncio
async def test_unpaid_request_gets_quote():
    async with plain_client(make_gate()) as client:
        response = await client.get("/paid")

    assert response.status_code == 402
    body = response.json()
    assert body["x402Version"] == 1
    assert body["error"] == "X-PAYMENT header is required"
    assert len(body["accepts"]) == 1

    quote = body["accepts"][0]
    assert quote["scheme"] == "exact"
    assert quote["network"] == "eip155:8453"
    assert quote["asset"] == MOCK_USDC_BASE
    assert quote["payTo"] == MOCK_PAY_TO_ADDRESS
    assert quote["maxAmountRequired"] == "1000000"
    assert quote["resource"] == "http://testserver/paid"
    assert quote["description"] == "Premium data"
    assert quote["mimeType"] == "application/json"
    assert quote["maxTimeoutSeconds"] == 60
    assert quote["extra"] == {"name": "USD Coin", "version": "2"}


@pytest.mark.asyncio
async def test_integer_price_is_base_units():
    async with plain_client(make_gate()) as client:
        response = await client.get("/report")

    quote = response.json()["accepts"][0]
    assert quote["maxAmountRequired"] == "2500"
    assert quote["mimeType"] == "text/plain"


@pytest.mark.asyncio
async def test_free_route_untouched():
    async with plain_client(make_gate()) as client:
        response = await client.get("/free")

    assert response.status_code == 200
    assert response.json() == {"free": True}


def test_build_quote_configuration_errors(monkeypatch):
    monkeypatch.delenv("EVM_ADDRESS", raising=False)
    with pytest.raises(ConfigurationError):
        Http402Server().build_quote("$1")

    app = Http402Server(pay_to=MOCK_PAY_TO_ADDRESS)
    with pytest.raises(ConfigurationError):
        app.build_quote("$1", network="solana")
    with pytest.raises(ConfigurationError):
        app.build_quote("$1", network="eip155:10")  # no registered USDC
    with pytest.raises(ConfigurationError):
        app.build_quote("one dollar")


def test_build_quote_for_alias_network():
    app = Http402Server(pay_to=MOCK_PAY_TO_ADDRESS, network="base-sepolia")
    quote = app.build_quote("0.01")

    assert quote.asset == "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
    assert quote.extra == {"name": "USDC", "version": "2"}
    assert quote.max_amount_required == "10000"


# ========================================================================
# Verification
# ========================================================================

@pytest.mark.asyncio
async def test_client_pays_through_gate():
    async with paying_client(make_gate()) as client:
        outcome = await client.fetch("GET", "/paid")

    assert outcome.response.status_code == 200
    assert outcome.response.json() == {"payer": MOCK_PAYER_ADDRESS}
    assert outcome.state is PaymentState.FULFILLED
    assert outcome.quote.resource == "http://testserver/paid"
    assert outcome.settlement is None


@pytest.mark.asyncio
async def test_route_may_return_response_object():
    async with paying_client(make_gate()) as client:
        response = await client.get("/report")

    assert response.status_code == 200
    assert response.text == "quarterly numbers"


@pytest.mark.asyncio
async def test_replayed_payment_is_rejected():
    app = make_gate()
    async with plain_client(app) as client:
        quote = parse_quote(await client.get("/paid"))
        header = encode_payment_header(create_signed_payment(quote))

        first = await client.get("/paid", headers={PAYMENT_HEADER: header})
        second = await client.get("/paid", headers={PAYMENT_HEADER: header})

    assert first.status_code == 200
    assert second.status_code == 402
    assert second.json()["error"] == "Authorization nonce has already been used"
    assert len(app.nonce_store) == 1


@pytest.mark.asyncio
async def test_gates_sharing_a_nonce_store_reject_cross_replay():
    shared = NonceStore()
    first_app = make_gate(nonce_store=shared)
    second_app = make_gate(nonce_store=shared)
    assert first_app.nonce_store is shared
    assert second_app.nonce_store is shared

    async with plain_client(first_app) as client:
        quote = parse_quote(await client.get("/paid"))
        header = encode_payment_header(create_signed_payment(quote))
        first = await client.get("/paid", headers={PAYMENT_HEADER: header})

    async with plain_client(second_app) as client:
        replayed = await client.get("/paid", headers={PAYMENT_HEADER: header})

    assert first.status_code == 200
    assert replayed.status_code == 402
    assert replayed.json()["error"] == "Authorization nonce has already been used"
    assert len(shared) == 1


@pytest.mark.asyncio
async def test_wrong_amount_is_rejected():
    async with plain_client(make_gate()) as client:
        quote = parse_quote(await client.get("/paid"))
        header = encode_payment_header(create_signed_payment(quote, value="1"))
        response = await client.get("/paid", headers={PAYMENT_HEADER: header})

    assert response.status_code == 402
    assert "maxAmountRequired" in response.json()["error"]
    assert response.json()["accepts"][0]["maxAmountRequired"] == "1000000"


@pytest.mark.asyncio
async def test_undecodable_header_is_bad_request():
    garbage = base64.b64encode(b"{not json").decode()
    async with plain_client(make_gate()) as client:
        response = await client.get("/paid", headers={PAYMENT_HEADER: garbage})

    assert response.status_code == 400
    assert response.json() == {"x402Version": 1, "error": "X-PAYMENT header is not valid JSON"}


@pytest.mark.asyncio
async def test_rejection_hook_is_called():
    app = make_gate()
    rejected = []

    @app.hook(VerifyFailedEvent)
    async def on_rejected(event, deps):
        rejected.append(event.status)

    async with plain_client(app) as client:
        quote = parse_quote(await client.get("/paid"))
        header = encode_payment_header(create_signed_payment(quote, to=MOCK_PAYER_ADDRESS))
        await client.get("/paid", headers={PAYMENT_HEADER: header})

    # Hooks run on the chain task, which may finish after the 402 is sent.
    await asyncio.sleep(0.05)
    assert rejected == [VerificationStatus.RECIPIENT_MISMATCH]


# ========================================================================
# Settlement
# ========================================================================

@pytest.mark.asyncio
async def test_local_settlement_sets_response_header():
    web3 = create_mock_web3()
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=web3, poll_interval=0)

    async with paying_client(make_gate(settler=settler)) as client:
        outcome = await client.fetch("GET", "/paid")

    assert outcome.response.status_code == 200
    assert outcome.settlement is not None
    assert outcome.settlement.success
    assert outcome.settlement.transaction == MOCK_TX_HASH
    assert outcome.settlement.payer == MOCK_PAYER_ADDRESS
    assert decode_settlement_header(outcome.response.headers[PAYMENT_RESPONSE_HEADER]) == outcome.settlement
    assert len(web3.eth.sent) == 1


@pytest.mark.asyncio
async def test_failed_settlement_rejects_payment():
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=create_mock_web3(receipt_status=0), poll_interval=0)

    async with paying_client(make_gate(settler=settler)) as client:
        with pytest.raises(PaymentRejected) as exc_info:
            await client.get("/paid")

    assert exc_info.value.status_code == 402
    assert exc_info.value.reason == "Transaction reverted"


@pytest.mark.asyncio
async def test_settlement_can_be_disabled_with_settler():
    web3 = create_mock_web3()
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=web3, poll_interval=0)

    async with paying_client(make_gate(settler=settler, enable_settlement=False)) as client:
        outcome = await client.fetch("GET", "/paid")

    assert outcome.settlement is None
    assert web3.eth.sent == []


# ========================================================================
# Facilitator
# ========================================================================

def facilitator_for(verify_body, settle_body=None, status_code=200) -> FacilitatorClient:
    def handler(request):
        if request.url.path.endswith("/verify"):
            return httpx.Response(status_code, json=verify_body)
        return httpx.Response(status_code, json=settle_body)

    return FacilitatorClient("https://facilitator.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_facilitator_verifies_and_settles():
    facilitator = facilitator_for(
        {"isValid": True, "payer": MOCK_PAYER_ADDRESS},
        {"success": True, "transaction": MOCK_TX_HASH, "network": "eip155:8453", "payer": MOCK_PAYER_ADDRESS},
    )

    async with paying_client(make_gate(facilitator=facilitator)) as client:
        outcome = await client.fetch("GET", "/paid")

    assert outcome.response.status_code == 200
    assert outcome.settlement.transaction == MOCK_TX_HASH


@pytest.mark.asyncio
async def test_facilitator_rejection():
    facilitator = facilitator_for({"isValid": False, "invalidReason": "insufficient_funds"})

    async with paying_client(make_gate(facilitator=facilitator)) as client:
        with pytest.raises(PaymentRejected) as exc_info:
            await client.get("/paid")

    assert exc_info.value.reason == "insufficient_funds"


@pytest.mark.asyncio
async def test_facilitator_outage():
    facilitator = facilitator_for({"error": "down"}, status_code=503)

    async with paying_client(make_gate(facilitator=facilitator)) as client:
        with pytest.raises(PaymentRejected) as exc_info:
            await client.get("/paid")

    assert exc_info.value.reason.startswith("Facilitator verification failed")
