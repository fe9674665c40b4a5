from dataclasses import dataclass, field
from typing import Any, Dict, List

from eth_utils import to_bytes

from ...schemas.https import PaymentAuthorization


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass
class EIP712Domain:
    """
    EIP-712 domain separator.
    Binds a signature to one token contract on one chain.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


EIP712_DOMAIN_TYPE: List[Dict[str, str]] = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

# Field order is part of the type hash.
TRANSFER_WITH_AUTHORIZATION_TYPES: Dict[str, List[Dict[str, str]]] = {
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}

PRIMARY_TYPE = "TransferWithAuthorization"


# -----------------------------
# EIP-3009: Transfer With Authorization
# -----------------------------


@dataclass
class TransferWithAuthorizationMessage:
    """
    Represents the message payload for EIP-3009 "TransferWithAuthorization".

    The EIP defines the field name `from` which is a Python reserved word;
    this class uses `authorizer` as the attribute name and maps it to `from`
    in `to_dict()`. Unlike the wire model, integers here are real ints, as
    EIP-712 encoders expect.

    Attributes:
        authorizer: Address of the account authorizing the transfer (maps to `from`).
        recipient: Address receiving the tokens (maps to `to`).
        value: Amount of tokens to transfer (uint256).
        validAfter: Unix timestamp after which the authorization becomes valid.
        validBefore: Unix timestamp before which the authorization expires.
        nonce: A unique nonce (bytes32 hex string) preventing replay.
    """
    authorizer: str
    recipient: str
    value: int
    validAfter: int
    validBefore: int
    nonce: str

    @classmethod
    def from_authorization(cls, authorization: PaymentAuthorization) -> "TransferWithAuthorizationMessage":
        """Convert the decimal-string wire form into typed message fields."""
        return cls(
            authorizer=authorization.from_,
            recipient=authorization.to,
            value=int(authorization.value),
            validAfter=int(authorization.valid_after),
            validBefore=int(authorization.valid_before),
            nonce=authorization.nonce,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a dictionary representation for external signers.

        The nonce stays a hex string here, which is what wallets implementing
        ``eth_signTypedData_v4`` expect.
        """
        return {
            "from": self.authorizer,
            "to": self.recipient,
            "value": self.value,
            "validAfter": self.validAfter,
            "validBefore": self.validBefore,
            "nonce": self.nonce,
        }

    def to_eip712_message(self) -> Dict[str, Any]:
        """Same as ``to_dict`` with the nonce as raw bytes for ``eth_account``."""
        message = self.to_dict()
        message["nonce"] = to_bytes(hexstr=self.nonce)
        return message


@dataclass
class ERC3009TypedData:
    """Full EIP-712 document for one TransferWithAuthorization, types included."""
    domain: EIP712Domain
    message: TransferWithAuthorizationMessage

    primary_type: str = PRIMARY_TYPE

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": list(EIP712_DOMAIN_TYPE),
            **{name: list(fields) for name, fields in TRANSFER_WITH_AUTHORIZATION_TYPES.items()},
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        """Layout accepted by ``Account.sign_typed_data(full_message=...)``."""
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_eip712_message(),
        }
