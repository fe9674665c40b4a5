"""
EVM Signature Verification Helpers

Off-chain verification of exact-scheme payments: the gate compares the
decoded ``X-PAYMENT`` envelope with the quote it issued and recovers the
EIP-712 signer. All cryptographic operations are performed in-process using
``eth_account``; nothing here touches the chain.

Replay protection is not part of this module: a valid result carries
``payer``/``nonce``/``valid_before`` so the caller can consume the nonce in
its own store.
"""

import time
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import is_address, to_bytes

from ...engine.exceptions import QuoteMalformed
from ...schemas.bases import VerificationStatus
from ...schemas.https import EXACT_SCHEME, PaymentPayload, PaymentQuote
from ...schemas.versions import SUPPORTED_VERSIONS
from .constants import normalize_network
from .schemas import EVMVerificationResult
from .signatures import build_typed_data, resolve_domain


def recover_authorizer(payment: PaymentPayload, quote: PaymentQuote) -> str:
    """
    Recover the address that signed ``payment`` under the quote's token domain.

    Raises:
        ValueError: If the signature or typed data cannot be decoded.
    """
    domain = resolve_domain(quote)
    typed_data = build_typed_data(payment.authorization, domain)
    signable = encode_typed_data(full_message=typed_data.to_dict())
    return Account.recover_message(signable, signature=to_bytes(hexstr=payment.signature))


def verify_exact_payment(
    payment: PaymentPayload,
    quote: PaymentQuote,
    *,
    current_time: Optional[int] = None,
    leeway: int = 0,
) -> EVMVerificationResult:
    """
    Verify an exact-scheme payment against the quote it answers.

    Performs the following checks in order, returning on the first failure:

    1. **Envelope** -- supported ``x402Version``, ``exact`` scheme, same network.
    2. **Address format** -- ``from`` and ``to`` are EVM addresses.
    3. **Recipient** -- ``to`` equals the quote's ``payTo`` (case-insensitive).
    4. **Amount** -- ``value`` equals ``maxAmountRequired``.
    5. **Time window** -- ``validAfter - leeway <= now <= validBefore + leeway``.
    6. **ECDSA recovery** -- the EIP-712 signer equals ``from``.

    Args:
        payment:      Decoded ``X-PAYMENT`` envelope.
        quote:        Quote the gate issued for this resource.
        current_time: Unix seconds used for the window check; wall clock when omitted.
        leeway:       Clock skew tolerated on both window edges, in seconds.

    Returns:
        ``EVMVerificationResult``; ``is_valid=True`` only when every check passes.

    Example::

        result = verify_exact_payment(decode_payment_header(header), quote)
        if not result.is_success():
            logger.warning(result.get_error_message())
    """
    now = int(current_time) if current_time is not None else int(time.time())
    authorization = payment.authorization

    def _fail(
        status: VerificationStatus,
        message: str,
        error_details: Optional[Dict[str, Any]] = None,
    ) -> EVMVerificationResult:
        return EVMVerificationResult(
            status=status,
            is_valid=False,
            message=message,
            error_details=error_details,
            payer=authorization.from_,
            receiver=authorization.to,
            authorized_amount=int(authorization.value),
            nonce=authorization.nonce,
            valid_before=int(authorization.valid_before),
        )

    # ------------------------------------------------------------------
    # 1. Envelope
    # ------------------------------------------------------------------
    if payment.x402_version not in SUPPORTED_VERSIONS:
        return _fail(
            VerificationStatus.INVALID_PAYLOAD,
            f"Unsupported x402Version {payment.x402_version}.",
            {"x402Version": payment.x402_version},
        )

    if payment.scheme != EXACT_SCHEME or payment.scheme != quote.scheme:
        return _fail(
            VerificationStatus.INVALID_PAYLOAD,
            f"Scheme mismatch: payment={payment.scheme} quote={quote.scheme}.",
            {"scheme": payment.scheme},
        )

    try:
        networks_match = normalize_network(payment.network) == normalize_network(quote.network)
    except ValueError as exc:
        return _fail(VerificationStatus.INVALID_PAYLOAD, f"Invalid network: {exc}", {"network": payment.network})
    if not networks_match:
        return _fail(
            VerificationStatus.INVALID_PAYLOAD,
            f"Network mismatch: payment={payment.network} quote={quote.network}.",
            {"network": payment.network, "expected": quote.network},
        )

    # ------------------------------------------------------------------
    # 2. Address format
    # ------------------------------------------------------------------
    for label, address in (("from", authorization.from_), ("to", authorization.to)):
        if not is_address(address):
            return _fail(
                VerificationStatus.INVALID_PAYLOAD,
                f"Invalid {label} address format.",
                {label: address},
            )

    # ------------------------------------------------------------------
    # 3. Recipient
    # ------------------------------------------------------------------
    if not quote.pay_to or authorization.to.lower() != quote.pay_to.lower():
        return _fail(
            VerificationStatus.RECIPIENT_MISMATCH,
            "Authorization recipient does not match payTo.",
            {"to": authorization.to, "payTo": quote.pay_to},
        )

    # ------------------------------------------------------------------
    # 4. Amount
    # ------------------------------------------------------------------
    if int(authorization.value) != quote.amount:
        return _fail(
            VerificationStatus.AMOUNT_MISMATCH,
            f"Authorized value {authorization.value} != maxAmountRequired {quote.max_amount_required}.",
            {"value": authorization.value, "maxAmountRequired": quote.max_amount_required},
        )

    # ------------------------------------------------------------------
    # 5. Time window (inclusive)
    # ------------------------------------------------------------------
    valid_after = int(authorization.valid_after)
    valid_before = int(authorization.valid_before)
    if now < valid_after - leeway:
        return _fail(
            VerificationStatus.NOT_YET_VALID,
            f"Authorization not yet valid: current_time={now} < valid_after={valid_after}.",
            {"current_time": now, "valid_after": valid_after},
        )

    if now > valid_before + leeway:
        return _fail(
            VerificationStatus.EXPIRED,
            f"Authorization has expired: current_time={now} > valid_before={valid_before}.",
            {"current_time": now, "valid_before": valid_before},
        )

    # ------------------------------------------------------------------
    # 6. Signature verification
    # ------------------------------------------------------------------
    try:
        recovered = recover_authorizer(payment, quote)
    except QuoteMalformed as exc:
        return _fail(VerificationStatus.INVALID_PAYLOAD, f"Quote cannot be verified: {exc.message}")
    except Exception as exc:
        return _fail(
            VerificationStatus.INVALID_SIGNATURE,
            f"Signature recovery failed: {exc}",
            {"error": str(exc)},
        )

    if recovered.lower() != authorization.from_.lower():
        return _fail(
            VerificationStatus.INVALID_SIGNATURE,
            "Signature invalid: signer does not match authorizer.",
            {"expected": authorization.from_, "recovered": recovered},
        )

    # ------------------------------------------------------------------
    # All checks passed.
    # ------------------------------------------------------------------
    return EVMVerificationResult(
        status=VerificationStatus.SUCCESS,
        is_valid=True,
        message="Authorization valid: signer verified as authorizer.",
        payer=authorization.from_,
        receiver=authorization.to,
        authorized_amount=int(authorization.value),
        nonce=authorization.nonce,
        valid_before=valid_before,
    )
