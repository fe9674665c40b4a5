"""
Base Schema Models for the x402 exact-scheme package

This module defines the base classes every wire and result model inherits
from. Wire models use camelCase aliases on the network and snake_case
attributes in Python; ``CanonicalModel`` makes the two interchangeable and
gives every model one deterministic JSON form.

Core Classes:
    - CanonicalModel: Pydantic base model with canonical (sorted, compact) JSON output
    - VerificationStatus: Outcome codes of a payment verification
    - BaseVerificationResult: Abstract verification result model

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from abc import ABC
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Pydantic base model with canonical JSON serialization.

    Models are dumped by alias, so a field declared as
    ``pay_to: str = Field(alias="payTo")`` is written as ``payTo`` on the wire
    while staying ``pay_to`` in Python. Both names are accepted on input.

    Example:
        class MyModel(CanonicalModel):
            pay_to: str = Field(alias="payTo")

        MyModel(pay_to="0xabc").to_canonical_json()  # '{"payTo":"0xabc"}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert the model to a canonical JSON string.

        Keys are sorted and separators carry no whitespace, so two equal
        models always produce byte-identical output.

        Returns:
            str: Compact JSON with sorted keys, using wire (alias) names.
        """
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the model to its wire dictionary (aliases, JSON-safe values).

        Returns:
            Dict[str, Any]: Dictionary with all non-null fields.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class VerificationStatus(str, Enum):
    """
    Enumeration of possible verification result statuses.

    Attributes:
        SUCCESS: Authorization is valid and may be settled
        INVALID_SIGNATURE: Signature is malformed or the signer is not ``from``
        INVALID_PAYLOAD: Envelope does not match the quote (scheme, network, version)
        RECIPIENT_MISMATCH: Authorization ``to`` differs from the quote's ``payTo``
        AMOUNT_MISMATCH: Authorization ``value`` differs from ``maxAmountRequired``
        NOT_YET_VALID: Current time is before ``validAfter``
        EXPIRED: Current time is after ``validBefore``
        REPLAY_ATTACK: Nonce was already consumed
        FACILITATOR_REJECTED: Remote facilitator declined the payment
        UNKNOWN_ERROR: Unexpected error during verification
    """
    SUCCESS = "success"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_PAYLOAD = "invalid_payload"
    RECIPIENT_MISMATCH = "recipient_mismatch"
    AMOUNT_MISMATCH = "amount_mismatch"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    REPLAY_ATTACK = "replay_attack"
    FACILITATOR_REJECTED = "facilitator_rejected"
    UNKNOWN_ERROR = "unknown_error"


class BaseVerificationResult(CanonicalModel, ABC):
    """
    Abstract base class for payment verification results.

    Attributes:
        verification_type: Type of verification (e.g., "evm")
        status: Verification result status (VerificationStatus enum)
        is_valid: Boolean indicating if verification was successful
        message: Human-readable status message
        error_details: Detailed error information if verification failed
        verified_at: Timestamp when verification was performed
    """

    verification_type: str = Field(..., description="Type of verification (e.g., evm)")
    status: VerificationStatus = Field(..., description="Verification result status")
    is_valid: bool = Field(..., description="Whether the payment is valid")
    message: str = Field(..., description="Human-readable status message")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Detailed error information")
    verified_at: datetime = Field(default_factory=datetime.now, description="Verification timestamp")

    def is_success(self) -> bool:
        """
        Check if verification was successful.

        Returns:
            bool: True if verification was successful, False otherwise.
        """
        return self.is_valid and self.status == VerificationStatus.SUCCESS

    def get_error_message(self) -> Optional[str]:
        """
        Get a formatted error message, or None when verification passed.

        Example:
            result = verify_exact_payment(payment, quote)
            if not result.is_success():
                logger.warning(result.get_error_message())
        """
        if self.is_success():
            return None

        error_msg = f"Verification failed: {self.message}"
        if self.error_details:
            details_str = json.dumps(self.error_details, sort_keys=True, default=str)
            error_msg += f" Details: {details_str}"
        return error_msg
