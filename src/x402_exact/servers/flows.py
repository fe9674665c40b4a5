"""
Built-in event handlers for the exact-scheme payment gate.

Implements the core flow: header decoding -> verification and replay check ->
optional settlement. Handlers never raise; every problem becomes an event the
gate turns into a 400 or 402 response.
"""

from loguru import logger

from ..adapters.evm.verifies import verify_exact_payment
from ..encoding import PAYMENT_HEADER, decode_payment_header
from ..engine.events import (
    AuthorizationSuccessEvent,
    Dependencies,
    EventBus,
    Http402PaymentEvent,
    InvalidPaymentEvent,
    RequestInitEvent,
    SettleFailedEvent,
    SettleSuccessEvent,
    VerifyFailedEvent,
    VerifyRequestEvent,
    VerifySuccessEvent,
)
from ..engine.exceptions import EnvelopeDecodeError, FacilitatorError
from ..schemas.bases import VerificationStatus
from ..schemas.https import SettlementResponse


# ==================== Event Handlers ====================

async def handle_request_init(
    event: RequestInitEvent,
    deps: Dependencies
) -> Http402PaymentEvent | InvalidPaymentEvent | VerifyRequestEvent:
    """Decode the ``X-PAYMENT`` header, or ask for payment when it is absent."""
    if not event.payment_header:
        return Http402PaymentEvent(
            reason=f"{PAYMENT_HEADER} header is required",
            quote=event.quote,
        )

    try:
        payment = decode_payment_header(event.payment_header)
    except EnvelopeDecodeError as e:
        logger.info(f"Rejecting undecodable payment header: {e.message}")
        return InvalidPaymentEvent(reason=e.message)

    return VerifyRequestEvent(payment=payment, quote=event.quote)


async def handle_verify_request(
    event: VerifyRequestEvent,
    deps: Dependencies
) -> VerifySuccessEvent | VerifyFailedEvent:
    """Verify the signed payment, ask the facilitator if any, then burn the nonce."""
    try:
        result = verify_exact_payment(event.payment, event.quote, leeway=deps.leeway)
        if not result.is_success():
            logger.warning(f"Payment rejected: {result.get_error_message()}")
            return VerifyFailedEvent(error_message=result.message, status=result.status, quote=event.quote)

        if deps.facilitator is not None:
            remote = await deps.facilitator.verify(event.payment, event.quote)
            if not remote.is_valid:
                logger.warning(f"Facilitator rejected payment: {remote.invalid_reason}")
                return VerifyFailedEvent(
                    error_message=remote.invalid_reason or "Facilitator rejected payment",
                    status=VerificationStatus.FACILITATOR_REJECTED,
                    quote=event.quote,
                )

        if deps.nonce_store is not None:
            fresh = await deps.nonce_store.consume(result.payer, result.nonce, result.valid_before)
            if not fresh:
                logger.warning(f"Replayed nonce {result.nonce} from {result.payer}")
                return VerifyFailedEvent(
                    error_message="Authorization nonce has already been used",
                    status=VerificationStatus.REPLAY_ATTACK,
                    quote=event.quote,
                )

        return VerifySuccessEvent(verification_result=result, payment=event.payment, quote=event.quote)

    except FacilitatorError as e:
        return VerifyFailedEvent(
            error_message=f"Facilitator verification failed: {e.message}",
            status=VerificationStatus.UNKNOWN_ERROR,
            quote=event.quote,
        )
    except Exception as e:
        logger.exception("Unexpected error during payment verification")
        return VerifyFailedEvent(
            error_message=f"Payment verification failed: {e}",
            status=VerificationStatus.UNKNOWN_ERROR,
            quote=event.quote,
        )


async def handle_authorize(
    event: VerifySuccessEvent,
    deps: Dependencies
) -> AuthorizationSuccessEvent:
    """Let the request through right after verification."""
    return AuthorizationSuccessEvent(payment=event.payment, verification_result=event.verification_result)


async def handle_settlement(
    event: VerifySuccessEvent,
    deps: Dependencies
) -> SettleSuccessEvent | SettleFailedEvent:
    """Settle through the facilitator, or on-chain with the local settler."""
    try:
        if deps.facilitator is not None:
            settlement: SettlementResponse = await deps.facilitator.settle(event.payment, event.quote)
        elif deps.settler is not None:
            settlement = await deps.settler.settle(event.payment, event.quote)
        else:
            return SettleFailedEvent(error_message="No settlement backend configured", quote=event.quote)
    except Exception as e:
        logger.exception("Settlement raised")
        return SettleFailedEvent(error_message=f"Settlement failed: {e}", quote=event.quote)

    if settlement.success:
        return SettleSuccessEvent(
            settlement=settlement,
            payment=event.payment,
            verification_result=event.verification_result,
        )
    return SettleFailedEvent(error_message=settlement.error_reason or "Settlement failed", quote=event.quote)


async def handle_settle_success(
    event: SettleSuccessEvent,
    deps: Dependencies
) -> AuthorizationSuccessEvent:
    """Let the request through once the transfer is settled."""
    return AuthorizationSuccessEvent(
        payment=event.payment,
        verification_result=event.verification_result,
        settlement=event.settlement,
    )


# ==================== Event Bus Setup ====================

def setup_event_bus(enable_settlement: bool = False) -> EventBus:
    """Initialize event bus with built-in handlers.

    Args:
        enable_settlement: Settle before serving the resource. Otherwise the
            request goes through as soon as the payment verifies.
    """
    event_bus = EventBus()

    event_bus.subscribe(RequestInitEvent, handle_request_init)
    event_bus.subscribe(VerifyRequestEvent, handle_verify_request)

    if enable_settlement:
        event_bus.subscribe(VerifySuccessEvent, handle_settlement)
        event_bus.subscribe(SettleSuccessEvent, handle_settle_success)
    else:
        event_bus.subscribe(VerifySuccessEvent, handle_authorize)

    return event_bus
