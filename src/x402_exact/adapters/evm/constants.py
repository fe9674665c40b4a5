"""
EVM Chain Configuration Management

Static registry of the EVM networks and stable-coin assets the exact scheme
is used with, plus the environment-driven configuration shared by client and
gate (keys, pay-to address, facilitator and RPC URLs).

Networks are keyed by CAIP-2 identifier (``eip155:<chain_id>``). The short
names used by x402 v1 servers (``"base"``, ``"base-sepolia"``, ...) are
accepted everywhere a network is expected.
"""

import os
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Union

import dotenv
from pydantic import BaseModel, Field

dotenv.load_dotenv()

#: Decimals assumed for display when the asset is not in the registry.
DEFAULT_TOKEN_DECIMALS: int = 6

#: EIP-712 domain used when neither the quote nor the registry names the token.
DEFAULT_DOMAIN_NAME: str = "USD Coin"
DEFAULT_DOMAIN_VERSION: str = "2"

DEFAULT_FACILITATOR_URL: str = "https://x402.org/facilitator"


class EvmAssetConfig(BaseModel):
    """Token asset configuration."""
    symbol: str
    address: str = Field(..., description="Token contract address")
    name: str = Field(..., description="EIP-712 domain name of the token")
    decimals: int = Field(..., description="Token decimals")
    version: str = Field(..., description="EIP-712 domain version of the token")


class EvmChainConfig(BaseModel):
    """EVM blockchain network configuration."""
    caip2: str
    chain_id: int
    network: str = Field(..., description="x402 v1 short network name")
    name: str = Field(..., description="Human-readable network name")
    public_rpc_url: str = Field(..., description="Public RPC endpoint")
    explorer_url: str = Field(..., description="Block explorer URL")
    assets: Dict[str, EvmAssetConfig] = Field(default_factory=dict, description="Supported assets")


_EVM_CHAINS_DATA: Dict = {
    "eip155:8453": {
        "network": "base",
        "name": "Base Mainnet",
        "public_rpc_url": "https://mainnet.base.org",
        "explorer_url": "https://basescan.org",
        "assets": {
            "USDC": {
                "address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
                "name": "USD Coin",
                "decimals": 6,
                "version": "2"
            }
        }
    },
    "eip155:84532": {
        "network": "base-sepolia",
        "name": "Base Sepolia Testnet",
        "public_rpc_url": "https://sepolia.base.org",
        "explorer_url": "https://sepolia.basescan.org",
        "assets": {
            "USDC": {
                "address": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
                "name": "USDC",
                "decimals": 6,
                "version": "2"
            }
        }
    },
    "eip155:1": {
        "network": "ethereum",
        "name": "Ethereum Mainnet",
        "public_rpc_url": "https://eth.llamarpc.com",
        "explorer_url": "https://etherscan.io",
        "assets": {
            "USDC": {
                "address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
                "name": "USD Coin",
                "decimals": 6,
                "version": "2"
            }
        }
    },
    "eip155:11155111": {
        "network": "sepolia",
        "name": "Sepolia Testnet",
        "public_rpc_url": "https://ethereum-sepolia-rpc.publicnode.com",
        "explorer_url": "https://sepolia.etherscan.io",
        "assets": {
            "USDC": {
                "address": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
                "name": "USDC",
                "decimals": 6,
                "version": "2"
            }
        }
    },
    "eip155:137": {
        "network": "polygon",
        "name": "Polygon Mainnet",
        "public_rpc_url": "https://polygon-rpc.com",
        "explorer_url": "https://polygonscan.com",
        "assets": {
            "USDC": {
                "address": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
                "name": "USD Coin",
                "decimals": 6,
                "version": "2"
            }
        }
    },
    "eip155:43114": {
        "network": "avalanche",
        "name": "Avalanche C-Chain",
        "public_rpc_url": "https://api.avax.network/ext/bc/C/rpc",
        "explorer_url": "https://snowtrace.io",
        "assets": {
            "USDC": {
                "address": "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E",
                "name": "USD Coin",
                "decimals": 6,
                "version": "2"
            }
        }
    },
}


def _build_chain_configs() -> Dict[str, EvmChainConfig]:
    configs = {}
    for caip2, data in _EVM_CHAINS_DATA.items():
        assets = {
            symbol: EvmAssetConfig(symbol=symbol, **asset)
            for symbol, asset in data["assets"].items()
        }
        configs[caip2] = EvmChainConfig(
            caip2=caip2,
            chain_id=int(caip2.split(":")[1]),
            network=data["network"],
            name=data["name"],
            public_rpc_url=data["public_rpc_url"],
            explorer_url=data["explorer_url"],
            assets=assets,
        )
    return configs


EVM_CHAINS: Dict[str, EvmChainConfig] = _build_chain_configs()

#: x402 v1 short names -> CAIP-2
NETWORK_ALIASES: Dict[str, str] = {config.network: caip2 for caip2, config in EVM_CHAINS.items()}


def normalize_network(network: str) -> str:
    """
    Resolve a network identifier to its CAIP-2 form.

    Accepts ``"eip155:8453"``, ``"eip155-8453"`` and registered short names
    such as ``"base"``. Unknown ``eip155`` identifiers are passed through in
    canonical form so callers can still derive a chain id from them.

    Raises:
        ValueError: If ``network`` is empty or neither an alias nor ``eip155:<id>``.
    """
    if not isinstance(network, str) or not network.strip():
        raise ValueError(f"Invalid network: expected non-empty string, got {network!r}")

    candidate = network.strip()
    if candidate.lower() in NETWORK_ALIASES:
        return NETWORK_ALIASES[candidate.lower()]

    parts = candidate.replace("-", ":").split(":")
    if len(parts) != 2 or parts[0] != "eip155":
        raise ValueError(
            f"Invalid network '{network}'. "
            f"Expected 'eip155:<chain_id>' or one of {sorted(NETWORK_ALIASES)}"
        )
    try:
        chain_id = int(parts[1])
    except ValueError as exc:
        raise ValueError(f"Invalid chain id in network '{network}'") from exc
    if chain_id <= 0:
        raise ValueError(f"Chain id must be positive in network '{network}'")
    return f"eip155:{chain_id}"


def get_chain_id(network: str) -> int:
    """Numeric EIP-155 chain id for ``network`` (CAIP-2 or alias)."""
    return int(normalize_network(network).split(":")[1])


def get_chain_config(network: str) -> Optional[EvmChainConfig]:
    """Registry entry for ``network``, or None when the chain is not registered."""
    try:
        return EVM_CHAINS.get(normalize_network(network))
    except ValueError:
        return None


def get_asset_config(network: str, address: str) -> Optional[EvmAssetConfig]:
    """Find a registered asset on ``network`` by contract address (case-insensitive)."""
    config = get_chain_config(network)
    if config is None or not address:
        return None
    for asset in config.assets.values():
        if asset.address.lower() == address.lower():
            return asset
    return None


def get_default_asset(network: str, symbol: str = "USDC") -> Optional[EvmAssetConfig]:
    """Registered asset ``symbol`` on ``network``, USDC by default."""
    config = get_chain_config(network)
    if config is None:
        return None
    return config.assets.get(symbol.upper())


def get_token_decimals(network: Optional[str], address: Optional[str]) -> int:
    """Decimals of a registered asset, falling back to ``DEFAULT_TOKEN_DECIMALS``."""
    if network and address:
        asset = get_asset_config(network, address)
        if asset is not None:
            return asset.decimals
    return DEFAULT_TOKEN_DECIMALS


def get_private_key_from_env() -> Optional[str]:
    """
    Load the EVM private key from ``EVM_PRIVATE_KEY``.

    Used by ``LocalAccountSigner`` (payer side) and ``EVMSettler`` (gate side)
    when no key is passed explicitly.
    """
    return os.getenv("EVM_PRIVATE_KEY")


def get_pay_to_from_env() -> Optional[str]:
    """Receiving address for the gate, from ``EVM_ADDRESS``."""
    return os.getenv("EVM_ADDRESS")


def get_facilitator_url_from_env() -> str:
    """Facilitator base URL from ``X402_FACILITATOR_URL``, defaulting to the public facilitator."""
    return os.getenv("X402_FACILITATOR_URL") or DEFAULT_FACILITATOR_URL


def get_rpc_url(network: str) -> Optional[str]:
    """
    RPC endpoint for settlement on ``network``.

    ``EVM_RPC_URL`` overrides the registry's public endpoint.
    """
    override = os.getenv("EVM_RPC_URL")
    if override:
        return override
    config = get_chain_config(network)
    return config.public_rpc_url if config else None


def amount_to_value(*, amount: Union[float, int, str, Decimal], decimals: int) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    Args:
        amount: Human-readable amount (e.g. "1.23" for USDC). Accepts float/int/str/Decimal.
        decimals: Token decimals (e.g. 6 for USDC).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        # str() first so 0.1 does not turn into 0.1000000000000000055...
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if not dec_amount.is_finite() or dec_amount < 0:
        raise ValueError(f"amount must be a non-negative finite number, got {amount!r}")

    scaled = dec_amount * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    return int(scaled)


def value_to_amount(*, value: Union[int, str, Decimal], decimals: int) -> Decimal:
    """Convert a smallest-unit integer `value` into a human-readable `Decimal` amount.

    Display only: the result must never be fed back into a signed value.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if not dec_value.is_finite() or dec_value < 0:
        raise ValueError("value must be non-negative")

    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    return dec_value.scaleb(-decimals)


def parse_price(price: Union[int, str, Decimal], *, decimals: int = DEFAULT_TOKEN_DECIMALS) -> int:
    """
    Turn a route price into base units.

    * ``int``: already base units.
    * ``"$0.001"`` or ``"0.001"`` or ``Decimal("0.001")``: token units.

    Example:
        parse_price("$0.001")  # 1000 for a 6-decimals token
    """
    if isinstance(price, bool):
        raise ValueError(f"Invalid price: {price!r}")
    if isinstance(price, int):
        if price < 0:
            raise ValueError("price must be non-negative")
        return price
    if isinstance(price, str):
        price = price.strip().lstrip("$").replace(",", "")
    return amount_to_value(amount=price, decimals=decimals)
