"""
Tests for on-chain settlement with the gate's own key.

Uses a minimal AsyncWeb3 stand-in; no RPC endpoint is contacted.
"""
import pytest

from x402_exact.adapters.evm.settlement import EVMSettler, get_erc3009_abi, transfer_arguments
from x402_exact.engine.exceptions import ConfigurationError
from x402_exact.schemas.https import ExactPayload, PaymentPayload

from test_mocks import (
    MOCK_GATE_ADDRESS,
    MOCK_GATE_PRIVATE_KEY,
    MOCK_PAYER_ADDRESS,
    MOCK_PAY_TO_ADDRESS,
    MOCK_TX_HASH,
    MOCK_USDC_BASE,
    create_mock_quote,
    create_mock_web3,
    create_signed_payment,
)


def test_abi_describes_transfer_with_authorization():
    abi = get_erc3009_abi()
    assert abi[0]["name"] == "transferWithAuthorization"
    assert [arg["name"] for arg in abi[0]["inputs"]] == [
        "from", "to", "value", "validAfter", "validBefore", "nonce", "v", "r", "s",
    ]


def test_transfer_arguments():
    payment = create_signed_payment(now=1_700_000_000)
    args = transfer_arguments(payment)

    assert args[0] == MOCK_PAYER_ADDRESS
    assert args[1] == MOCK_PAY_TO_ADDRESS
    assert args[2:5] == (1000000, 1_700_000_000, 1_700_000_300)
    assert args[5] == bytes.fromhex(payment.authorization.nonce[2:])
    assert args[6] in (27, 28)
    assert len(args[7]) == 32 and len(args[8]) == 32


def test_settler_requires_key(monkeypatch):
    monkeypatch.delenv("EVM_PRIVATE_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        EVMSettler()


def test_settler_account():
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=create_mock_web3())
    assert settler.wallet_address == MOCK_GATE_ADDRESS


@pytest.mark.asyncio
async def test_settle_success():
    web3 = create_mock_web3()
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=web3, poll_interval=0)
    quote = create_mock_quote()
    payment = create_signed_payment(quote)

    settlement = await settler.settle(payment, quote)

    assert settlement.success is True
    assert settlement.transaction == MOCK_TX_HASH
    assert settlement.network == quote.network
    assert settlement.payer == MOCK_PAYER_ADDRESS
    assert web3.eth.contract_address == MOCK_USDC_BASE
    assert web3.eth.calls == [transfer_arguments(payment)]
    assert len(web3.eth.sent) == 1


@pytest.mark.asyncio
async def test_settle_reverted_transaction():
    web3 = create_mock_web3(receipt_status=0)
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=web3, poll_interval=0)
    quote = create_mock_quote()

    settlement = await settler.settle(create_signed_payment(quote), quote)

    assert settlement.success is False
    assert settlement.error_reason == "Transaction reverted"
    assert settlement.transaction == MOCK_TX_HASH


@pytest.mark.asyncio
async def test_settle_estimate_failure_is_reported():
    web3 = create_mock_web3(revert_on_estimate=True)
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=web3, poll_interval=0)
    quote = create_mock_quote()

    settlement = await settler.settle(create_signed_payment(quote), quote)

    assert settlement.success is False
    assert "Failed to build transaction" in settlement.error_reason
    assert settlement.transaction is None
    assert web3.eth.sent == []


@pytest.mark.asyncio
async def test_settle_unusable_signature():
    web3 = create_mock_web3()
    settler = EVMSettler(MOCK_GATE_PRIVATE_KEY, web3=web3, poll_interval=0)
    quote = create_mock_quote()
    signed = create_signed_payment(quote)
    payment = PaymentPayload(
        network=signed.network,
        payload=ExactPayload(signature="0xSIG", authorization=signed.authorization),
    )

    settlement = await settler.settle(payment, quote)

    assert settlement.success is False
    assert web3.eth.sent == []
