"""
EVM Off-Chain Signing Utilities

EIP-712 signing of ERC-3009 ``transferWithAuthorization`` through an injected
signer. Key custody stays with the caller: anything exposing ``address`` and
``sign_typed_data(domain, types, primary_type, message)`` can pay, whether it
is a local key, a hardware wallet bridge or a custodial wallet API.

Exported helpers
----------------
resolve_domain
    Derive the token's EIP-712 domain from a quote.

sign_authorization
    Hand the typed data to a signer and normalize what comes back into a
    ``0x`` hex signature.

split_signature
    Split a 65-byte signature into ``(v, r, s)`` for on-chain submission.
"""

import inspect
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from eth_account import Account
from eth_utils import is_hex, to_bytes, to_hex
from loguru import logger

from ...engine.exceptions import ConfigurationError, SignatureDenied, UnsupportedQuote
from ...schemas.https import PaymentAuthorization, PaymentQuote
from .constants import (
    DEFAULT_DOMAIN_NAME,
    DEFAULT_DOMAIN_VERSION,
    get_asset_config,
    get_chain_id,
    get_private_key_from_env,
)
from .standards import (
    EIP712_DOMAIN_TYPE,
    PRIMARY_TYPE,
    TRANSFER_WITH_AUTHORIZATION_TYPES,
    EIP712Domain,
    ERC3009TypedData,
    TransferWithAuthorizationMessage,
)


@runtime_checkable
class TypedDataSigner(Protocol):
    """
    Signing capability injected into the payment client.

    ``sign_typed_data`` may be sync or async and may return a hex string,
    bytes, a mapping with a ``signature`` key or any object exposing a
    ``.signature`` attribute. Raising means the user or key declined.
    """

    @property
    def address(self) -> str: ...

    def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        primary_type: str,
        message: Dict[str, Any],
    ) -> Any: ...


class LocalAccountSigner:
    """
    In-process signer backed by an ``eth_account`` key.

    Args:
        private_key: Hex private key; ``EVM_PRIVATE_KEY`` is used when omitted.

    Raises:
        ConfigurationError: If no key is available.
    """

    def __init__(self, private_key: Optional[str] = None) -> None:
        key = private_key or get_private_key_from_env()
        if not key:
            raise ConfigurationError("No private key given and EVM_PRIVATE_KEY is not set")
        self._account = Account.from_key(key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        primary_type: str,
        message: Dict[str, Any],
    ) -> str:
        full_message = {
            "types": {"EIP712Domain": EIP712_DOMAIN_TYPE, **types},
            "primaryType": primary_type,
            "domain": domain,
            "message": _bytes32_fields_to_bytes(types.get(primary_type, []), message),
        }
        signed = Account.sign_typed_data(self._account.key, full_message=full_message)
        return to_hex(signed.signature)

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address})"


def _bytes32_fields_to_bytes(fields: List[Dict[str, str]], message: Dict[str, Any]) -> Dict[str, Any]:
    converted = dict(message)
    for field in fields:
        name = field["name"]
        if field["type"] == "bytes32" and isinstance(converted.get(name), str):
            converted[name] = to_bytes(hexstr=converted[name])
    return converted


def resolve_domain(quote: PaymentQuote) -> EIP712Domain:
    """
    Build the EIP-712 domain for the quote's token.

    ``name``/``version`` come from ``quote.extra`` when the gate supplied them,
    otherwise from the asset registry, otherwise ``"USD Coin"``/``"2"``.

    Raises:
        UnsupportedQuote: If the quote has no asset or an unknown network.
    """
    if not quote.asset:
        raise UnsupportedQuote("Quote has no asset address", quote=quote)
    try:
        chain_id = get_chain_id(quote.network)
    except ValueError as exc:
        raise UnsupportedQuote(str(exc), quote=quote) from exc

    extra = quote.extra or {}
    registered = get_asset_config(quote.network, quote.asset)
    name = extra.get("name") or (registered.name if registered else DEFAULT_DOMAIN_NAME)
    version = extra.get("version") or (registered.version if registered else DEFAULT_DOMAIN_VERSION)

    return EIP712Domain(
        name=str(name),
        version=str(version),
        chainId=chain_id,
        verifyingContract=quote.asset,
    )


def build_typed_data(authorization: PaymentAuthorization, domain: EIP712Domain) -> ERC3009TypedData:
    """Wrap an authorization in its full EIP-712 envelope."""
    return ERC3009TypedData(
        domain=domain,
        message=TransferWithAuthorizationMessage.from_authorization(authorization),
    )


def normalize_signature(result: Any) -> str:
    """
    Reduce whatever a signer returned to a ``0x`` hex string.

    Raises:
        SignatureDenied: If nothing usable was returned.
    """
    if isinstance(result, (bytes, bytearray)):
        if not result:
            raise SignatureDenied("Signer returned an empty signature")
        return to_hex(bytes(result))

    if isinstance(result, str):
        signature = result.strip()
        if not signature:
            raise SignatureDenied("Signer returned an empty signature")
        if not signature.startswith("0x") and is_hex(signature):
            signature = "0x" + signature
        return signature

    if isinstance(result, Mapping) and "signature" in result:
        return normalize_signature(result["signature"])

    nested = getattr(result, "signature", None)
    if nested is not None:
        return normalize_signature(nested)

    raise SignatureDenied(f"Signer returned an unusable result of type {type(result).__name__}")


async def sign_authorization(
    signer: TypedDataSigner,
    authorization: PaymentAuthorization,
    domain: EIP712Domain,
) -> str:
    """
    Sign ``authorization`` under ``domain`` with the injected ``signer``.

    Returns:
        The signature as a ``0x``-prefixed hex string.

    Raises:
        SignatureDenied: If the signer raises or returns nothing usable.
    """
    message = TransferWithAuthorizationMessage.from_authorization(authorization)
    try:
        result = signer.sign_typed_data(
            domain.to_dict(),
            TRANSFER_WITH_AUTHORIZATION_TYPES,
            PRIMARY_TYPE,
            message.to_dict(),
        )
        if inspect.isawaitable(result):
            result = await result
    except SignatureDenied:
        raise
    except Exception as exc:
        logger.info(f"Signer declined authorization: {exc}")
        raise SignatureDenied(f"Signer declined: {exc}") from exc

    return normalize_signature(result)


def split_signature(signature: str) -> Tuple[int, bytes, bytes]:
    """
    Split a 65-byte ``r || s || v`` signature.

    ``v`` is normalized to 27/28 as ``transferWithAuthorization`` expects.

    Raises:
        ValueError: If the signature is not 65 bytes of hex.
    """
    try:
        raw = to_bytes(hexstr=signature)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Signature is not hex: {exc}") from exc
    if len(raw) != 65:
        raise ValueError(f"Signature must be 65 bytes, got {len(raw)}")

    r, s, v = raw[:32], raw[32:64], raw[64]
    if v < 27:
        v += 27
    return v, r, s
