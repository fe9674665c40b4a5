"""
Client payment state machine.

Each paid call walks ``IDLE -> QUOTING -> AWAITING_SIGNATURE -> PAYING ->
FULFILLED`` or stops in one of the error states. Error states are terminal for
the call: getting out of them takes an explicit ``reset()`` and a new request,
never an automatic retry.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from loguru import logger

from .exceptions import InvalidTransition


class PaymentState(str, Enum):
    IDLE = "idle"
    QUOTING = "quoting"
    AWAITING_SIGNATURE = "awaiting_signature"
    PAYING = "paying"
    FULFILLED = "fulfilled"
    QUOTE_MALFORMED = "quote_malformed"
    SIGNATURE_DENIED = "signature_denied"
    PAYMENT_REJECTED = "payment_rejected"
    REQUEST_FAILED = "request_failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def is_error(self) -> bool:
        return self.is_terminal and self is not PaymentState.FULFILLED


TERMINAL_STATES: FrozenSet[PaymentState] = frozenset({
    PaymentState.FULFILLED,
    PaymentState.QUOTE_MALFORMED,
    PaymentState.SIGNATURE_DENIED,
    PaymentState.PAYMENT_REJECTED,
    PaymentState.REQUEST_FAILED,
})

TRANSITIONS: Dict[PaymentState, FrozenSet[PaymentState]] = {
    PaymentState.IDLE: frozenset({PaymentState.QUOTING}),
    PaymentState.QUOTING: frozenset({
        PaymentState.FULFILLED,
        PaymentState.AWAITING_SIGNATURE,
        PaymentState.QUOTE_MALFORMED,
        PaymentState.REQUEST_FAILED,
    }),
    PaymentState.AWAITING_SIGNATURE: frozenset({
        PaymentState.PAYING,
        PaymentState.SIGNATURE_DENIED,
        PaymentState.QUOTE_MALFORMED,
    }),
    PaymentState.PAYING: frozenset({
        PaymentState.FULFILLED,
        PaymentState.PAYMENT_REJECTED,
        PaymentState.REQUEST_FAILED,
    }),
}


class PaymentFlow:
    """
    State of a single quote -> sign -> retry sequence.

    Not shared between calls; ``Http402Client`` creates one per request.

    Attributes:
        state: Current state.
        history: Every state entered, starting with ``IDLE``.
        error: Message of the failure that ended the flow, if any.
    """

    def __init__(self) -> None:
        self.state: PaymentState = PaymentState.IDLE
        self.history: List[PaymentState] = [PaymentState.IDLE]
        self.error: Optional[str] = None

    def can_transition(self, target: PaymentState) -> bool:
        return target in TRANSITIONS.get(self.state, frozenset())

    def transition(self, target: PaymentState, error: Optional[str] = None) -> PaymentState:
        """
        Move to ``target``.

        Raises:
            InvalidTransition: If ``target`` is not reachable from the current state.
        """
        if not self.can_transition(target):
            raise InvalidTransition(self.state, target)
        logger.debug(f"payment flow {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)
        if error is not None:
            self.error = error
        return target

    def reset(self) -> None:
        """Return a finished flow to ``IDLE`` so it can run again."""
        if not self.state.is_terminal:
            raise InvalidTransition(self.state, PaymentState.IDLE)
        self.state = PaymentState.IDLE
        self.history = [PaymentState.IDLE]
        self.error = None

    @property
    def is_done(self) -> bool:
        return self.state.is_terminal

    @property
    def path(self) -> Tuple[PaymentState, ...]:
        return tuple(self.history)

    def __repr__(self) -> str:
        return f"PaymentFlow(state={self.state.value})"
