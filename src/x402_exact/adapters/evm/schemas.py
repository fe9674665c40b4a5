from typing import Literal, Optional

from pydantic import Field

from ...schemas.bases import BaseVerificationResult


class EVMVerificationResult(BaseVerificationResult):
    """
    Result of verifying an exact-scheme ERC-3009 authorization.

    Attributes:
        verification_type: Always ``"evm"``.
        payer:             ``from`` address of the authorization.
        receiver:          ``to`` address of the authorization.
        authorized_amount: Transfer amount in the token's smallest unit.
        nonce:             bytes32 nonce, used as replay-cache key with ``payer``.
        valid_before:      Expiry of the authorization (unix seconds).
    """

    verification_type: Literal["evm"] = Field(default="evm", description="Verification type identifier")
    payer: Optional[str] = Field(None, description="Authorizer address that produced the signature")
    receiver: Optional[str] = Field(None, description="Destination address")
    authorized_amount: Optional[int] = Field(None, ge=0, description="Transfer amount in the token's smallest unit")
    nonce: Optional[str] = Field(None, description="Authorization nonce")
    valid_before: Optional[int] = Field(None, description="Authorization expiry (unix seconds)")
