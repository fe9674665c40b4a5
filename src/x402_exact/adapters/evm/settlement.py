"""
EVM Settlement

Submits a verified exact-scheme authorization on-chain by calling the token's
ERC-3009 ``transferWithAuthorization`` from the gate's own account. Used when
the gate settles payments itself instead of delegating to a facilitator.
"""

import asyncio
from typing import Any, Dict, List, Optional

from eth_account import Account
from eth_utils import to_bytes, to_checksum_address, to_hex
from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from ...engine.exceptions import ConfigurationError, SettlementError
from ...schemas.https import PaymentPayload, PaymentQuote, SettlementResponse
from .constants import get_private_key_from_env, get_rpc_url
from .signatures import split_signature


def get_erc3009_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-3009 ``transferWithAuthorization``.

    Example::

        contract = web3.eth.contract(address=token_address, abi=get_erc3009_abi())
        tx = contract.functions.transferWithAuthorization(
            from_addr, to_addr, value,
            valid_after, valid_before, nonce_bytes32,
            v, r_bytes32, s_bytes32,
        ).build_transaction({...})
    """
    return [
        {
            "name": "transferWithAuthorization",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "from",        "type": "address"},
                {"name": "to",          "type": "address"},
                {"name": "value",       "type": "uint256"},
                {"name": "validAfter",  "type": "uint256"},
                {"name": "validBefore", "type": "uint256"},
                {"name": "nonce",       "type": "bytes32"},
                {"name": "v",           "type": "uint8"},
                {"name": "r",           "type": "bytes32"},
                {"name": "s",           "type": "bytes32"},
            ],
            "outputs": [],
        },
    ]


def transfer_arguments(payment: PaymentPayload) -> tuple:
    """
    Positional arguments of ``transferWithAuthorization`` for ``payment``.

    Raises:
        ValueError: If the signature is not a 65-byte ECDSA signature.
    """
    authorization = payment.authorization
    v, r, s = split_signature(payment.signature)
    return (
        to_checksum_address(authorization.from_),
        to_checksum_address(authorization.to),
        int(authorization.value),
        int(authorization.valid_after),
        int(authorization.valid_before),
        to_bytes(hexstr=authorization.nonce),
        v,
        r,
        s,
    )


class EVMSettler:
    """
    Settles ERC-3009 authorizations with the gate's key.

    The gate account pays gas; the token moves from the payer to ``payTo``.

    Args:
        private_key: Gate key; ``EVM_PRIVATE_KEY`` is used when omitted.
        rpc_url: Fixed RPC endpoint; otherwise ``EVM_RPC_URL`` or the
            registry's public endpoint for the quote's network.
        request_timeout: HTTP timeout for RPC calls, in seconds.
        web3: Pre-built ``AsyncWeb3`` instance, mainly for tests.

    Raises:
        ConfigurationError: If no key is available.
    """

    def __init__(
        self,
        private_key: Optional[str] = None,
        *,
        rpc_url: Optional[str] = None,
        request_timeout: int = 60,
        max_attempts: int = 60,
        poll_interval: float = 2.0,
        web3: Optional[AsyncWeb3] = None,
    ) -> None:
        resolved_pk = private_key or get_private_key_from_env()
        if not resolved_pk:
            raise ConfigurationError(
                "Private key not provided. Either pass 'private_key' or set EVM_PRIVATE_KEY."
            )
        self.account = Account.from_key(resolved_pk)
        self.wallet_address = to_checksum_address(self.account.address)
        self._rpc_url = rpc_url
        self._request_timeout = request_timeout
        self._max_attempts = max_attempts
        self._poll_interval = poll_interval
        self._web3 = web3

    def _get_web3_instance(self, network: str) -> AsyncWeb3:
        if self._web3 is not None:
            return self._web3
        rpc_url = self._rpc_url or get_rpc_url(network)
        if not rpc_url:
            raise ConfigurationError(f"No RPC endpoint known for network {network}")
        return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": self._request_timeout},
        ))

    async def settle(self, payment: PaymentPayload, quote: PaymentQuote) -> SettlementResponse:
        """
        Execute ``transferWithAuthorization`` for a verified payment.

        Returns:
            ``SettlementResponse`` with the transaction hash on success. Errors
            are reported in ``error_reason`` rather than raised.
        """
        payer = payment.authorization.from_
        try:
            web3 = self._get_web3_instance(quote.network)
            raw_transaction = await self._construct_transaction(payment, quote, web3)
            tx_hash = await self._send_and_confirm(raw_transaction, web3)
        except (ConfigurationError, SettlementError, ValueError) as exc:
            logger.warning(f"Settlement failed for {payer}: {exc}")
            return SettlementResponse(
                success=False,
                error_reason=str(exc),
                transaction=getattr(exc, "tx_hash", None),
                network=quote.network,
                payer=payer,
            )

        logger.info(f"Settled payment from {payer} in {tx_hash}")
        return SettlementResponse(success=True, transaction=tx_hash, network=quote.network, payer=payer)

    async def _construct_transaction(
        self,
        payment: PaymentPayload,
        quote: PaymentQuote,
        web3: AsyncWeb3,
    ) -> bytes:
        """Build and sign the ``transferWithAuthorization`` call."""
        if not quote.asset:
            raise ConfigurationError("Quote has no asset to settle against")
        contract = web3.eth.contract(address=to_checksum_address(quote.asset), abi=get_erc3009_abi())
        tx_fn = contract.functions.transferWithAuthorization(*transfer_arguments(payment))

        try:
            gas_estimate = await tx_fn.estimate_gas({"from": self.wallet_address})
            gas_price = await web3.eth.gas_price
            tx_nonce = await web3.eth.get_transaction_count(self.wallet_address)
            tx_dict = await tx_fn.build_transaction({
                "from": self.wallet_address,
                "gas": int(gas_estimate * 1.1),
                "gasPrice": gas_price,
                "nonce": tx_nonce,
            })
        except Exception as exc:
            raise SettlementError(f"Failed to build transaction: {exc}") from exc

        signed_tx = self.account.sign_transaction(tx_dict)
        return signed_tx.raw_transaction

    async def _send_and_confirm(self, raw_transaction: bytes, web3: AsyncWeb3) -> str:
        """
        Broadcast a signed transaction and poll for its receipt.

        Returns:
            The transaction hash as ``0x`` hex.

        Raises:
            SettlementError: On broadcast failure, timeout or a reverted receipt.
        """
        try:
            tx_hash_hex = to_hex(await web3.eth.send_raw_transaction(raw_transaction))
        except Exception as exc:
            raise SettlementError(f"Failed to broadcast transaction: {exc}") from exc

        receipt = None
        for _ in range(self._max_attempts):
            try:
                receipt = await web3.eth.get_transaction_receipt(tx_hash_hex)
                if receipt:
                    break
            except TransactionNotFound:
                pass  # pending
            await asyncio.sleep(self._poll_interval)

        if not receipt:
            raise SettlementError("Transaction confirmation timed out", tx_hash=tx_hash_hex)
        if receipt.get("status") != 1:
            raise SettlementError("Transaction reverted", tx_hash=tx_hash_hex)
        return tx_hash_hex
