from .authorizations import AUTHORIZATION_VALIDITY_SECONDS, build_authorization, generate_nonce
from .constants import (
    EVM_CHAINS,
    NETWORK_ALIASES,
    EvmAssetConfig,
    EvmChainConfig,
    amount_to_value,
    get_asset_config,
    get_chain_config,
    get_chain_id,
    normalize_network,
    parse_price,
    value_to_amount,
)
from .schemas import EVMVerificationResult
from .settlement import EVMSettler, get_erc3009_abi
from .signatures import (
    LocalAccountSigner,
    TypedDataSigner,
    normalize_signature,
    resolve_domain,
    sign_authorization,
    split_signature,
)
from .standards import (
    TRANSFER_WITH_AUTHORIZATION_TYPES,
    EIP712Domain,
    ERC3009TypedData,
    TransferWithAuthorizationMessage,
)
from .verifies import recover_authorizer, verify_exact_payment

__all__ = [
    "AUTHORIZATION_VALIDITY_SECONDS",
    "build_authorization",
    "generate_nonce",
    "EVM_CHAINS",
    "NETWORK_ALIASES",
    "EvmAssetConfig",
    "EvmChainConfig",
    "amount_to_value",
    "get_asset_config",
    "get_chain_config",
    "get_chain_id",
    "normalize_network",
    "parse_price",
    "value_to_amount",
    "EVMVerificationResult",
    "EVMSettler",
    "get_erc3009_abi",
    "LocalAccountSigner",
    "TypedDataSigner",
    "normalize_signature",
    "resolve_domain",
    "sign_authorization",
    "split_signature",
    "TRANSFER_WITH_AUTHORIZATION_TYPES",
    "EIP712Domain",
    "ERC3009TypedData",
    "TransferWithAuthorizationMessage",
    "recover_authorizer",
    "verify_exact_payment",
]
