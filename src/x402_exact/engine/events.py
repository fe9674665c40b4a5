"""
Event-driven system with typed events and clear data flow.

Events carry their own data, handlers return next events, and dependencies
are injected separately from business data.

Gate flow:
    RequestInitEvent
      -> Http402PaymentEvent | InvalidPaymentEvent | VerifyRequestEvent
    VerifyRequestEvent
      -> VerifySuccessEvent | VerifyFailedEvent
    VerifySuccessEvent
      -> AuthorizationSuccessEvent                      (verify only)
      -> SettleSuccessEvent | SettleFailedEvent         (with settlement)
    SettleSuccessEvent
      -> AuthorizationSuccessEvent
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncGenerator, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict

from ..adapters.evm.schemas import EVMVerificationResult
from ..schemas.bases import VerificationStatus
from ..schemas.https import PaymentPayload, PaymentQuote, SettlementResponse

if TYPE_CHECKING:
    from ..adapters.evm.settlement import EVMSettler
    from ..servers.facilitator import FacilitatorClient
    from ..servers.security import NonceStore

# ==================== Base Event ====================

class BaseEvent(ABC):
    """Base class for all events in the system."""

    @abstractmethod
    def __repr__(self) -> str:
        """String representation of the event."""
        pass


# ==================== Trigger Events (External) ====================

class RequestInitEvent(BaseModel, BaseEvent):
    """External trigger: a request hit a paid route."""
    payment_header: Optional[str]
    quote: PaymentQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"RequestInitEvent(has_payment={self.payment_header is not None})"


class VerifyRequestEvent(BaseModel, BaseEvent):
    """Decoded payment ready to be checked against the quote."""
    payment: PaymentPayload
    quote: PaymentQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"VerifyRequestEvent(payer={self.payment.authorization.from_})"


# ==================== Result Events ====================

class AuthorizationSuccessEvent(BaseModel, BaseEvent):
    """Result: payment accepted, the route handler may run."""
    payment: PaymentPayload
    verification_result: Optional[EVMVerificationResult] = None
    settlement: Optional[SettlementResponse] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"AuthorizationSuccessEvent(payer={self.payment.authorization.from_}, settled={self.settlement is not None})"


class Http402PaymentEvent(BaseModel, BaseEvent):
    """Result: payment required - 402 response payload."""
    reason: str
    quote: PaymentQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"Http402PaymentEvent(reason={self.reason})"


class InvalidPaymentEvent(BaseModel, BaseEvent):
    """Result: ``X-PAYMENT`` could not be decoded - 400 response."""
    reason: str

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"InvalidPaymentEvent(reason={self.reason})"


class VerifySuccessEvent(BaseModel, BaseEvent):
    """Result: Payment verification succeeded."""
    verification_result: EVMVerificationResult
    payment: PaymentPayload  # Pass to settlement
    quote: PaymentQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"VerifySuccessEvent(payer={self.verification_result.payer})"


class VerifyFailedEvent(BaseModel, BaseEvent):
    """Result: Payment verification failed; the quote is re-issued."""
    error_message: str
    status: VerificationStatus = VerificationStatus.UNKNOWN_ERROR
    quote: PaymentQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"VerifyFailedEvent(status={self.status.value}, error={self.error_message})"


class SettleSuccessEvent(BaseModel, BaseEvent):
    """Result: Settlement succeeded."""
    settlement: SettlementResponse
    payment: PaymentPayload
    verification_result: Optional[EVMVerificationResult] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"SettleSuccessEvent(transaction={self.settlement.transaction})"


class SettleFailedEvent(BaseModel, BaseEvent):
    """Result: Settlement failed; the quote is re-issued."""
    error_message: str
    quote: PaymentQuote

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return f"SettleFailedEvent(error={self.error_message})"


class BreakEvent(BaseModel, BaseEvent):
    """Internal event to break the event chain."""
    break_reason: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def __repr__(self) -> str:
        return "BreakEvent()"


# ==================== Dependencies Container ====================

@dataclass(frozen=True)
class Dependencies:
    """Container for infrastructure dependencies (read-only)."""
    nonce_store: Optional["NonceStore"] = None
    facilitator: Optional["FacilitatorClient"] = None
    settler: Optional["EVMSettler"] = None
    leeway: int = 0


# ==================== Event Bus ====================

EventHandlerFunc = Callable[[BaseEvent, Dependencies], Awaitable[Optional[BaseEvent]]]
EventHookFunc = Callable[[BaseEvent, Dependencies], Awaitable[None]]


class EventBus:
    """Routes gate events to the coroutines registered for their exact type."""

    def __init__(self) -> None:
        self._subscribers: Dict[type, list[EventHandlerFunc]] = {}
        self._hooks: Dict[type, list[EventHookFunc]] = {}

    def subscribe(self, event_class: type[BaseEvent], handler: EventHandlerFunc) -> None:
        """
        Add a handler whose return value continues the chain.

        A handler returns the next event, or None to end its branch. Several
        handlers on one event type run concurrently, so a verified payment can
        fan out to authorization and settlement at the same time.

        Raises:
            TypeError: handler is not declared with ``async def``.
        """
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler must be a coroutine function, got {type(handler).__name__}")

        self._subscribers.setdefault(event_class, []).append(handler)

    def hook(self, event_class: type[BaseEvent], hook_func: EventHookFunc) -> None:
        """Add an observer that sees the event before any handler; its return value is ignored."""
        if not inspect.iscoroutinefunction(hook_func):
            raise TypeError(f"Hook must be a coroutine function, got {type(hook_func).__name__}")

        self._hooks.setdefault(event_class, []).append(hook_func)

    async def dispatch(self, event: BaseEvent, deps: Dependencies) -> AsyncGenerator[Optional[BaseEvent], None]:
        """
        Await every hook for ``type(event)``, then yield handler results in completion order.

        Nothing is yielded when the type has no handlers.
        """
        hooks = self._hooks.get(type(event), [])
        await asyncio.gather(*(hook(event, deps) for hook in hooks))

        handlers = self._subscribers.get(type(event), [])
        if not handlers:
            return

        for pending in asyncio.as_completed([handler(event, deps) for handler in handlers]):
            yield await pending
