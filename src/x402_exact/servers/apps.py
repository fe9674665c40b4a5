"""
x402 Payment Gate - Event-driven FastAPI wrapper.

Protects routes with the exact scheme: requests without a valid ``X-PAYMENT``
header get a 402 quote, requests with one are verified (and optionally
settled) before the route handler runs.
"""

from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Union

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from loguru import logger

from ..adapters.evm.constants import (
    get_asset_config,
    get_default_asset,
    get_pay_to_from_env,
    get_token_decimals,
    normalize_network,
    parse_price,
)
from ..adapters.evm.settlement import EVMSettler
from ..encoding import PAYMENT_HEADER, PAYMENT_RESPONSE_HEADER, encode_settlement_header
from ..engine.events import (
    AuthorizationSuccessEvent,
    BaseEvent,
    Dependencies,
    EventBus,
    Http402PaymentEvent,
    InvalidPaymentEvent,
    RequestInitEvent,
    SettleFailedEvent,
    VerifyFailedEvent,
)
from ..engine.exceptions import ConfigurationError
from ..engine.executors import EventChain
from ..schemas.https import EXACT_SCHEME, PaymentQuote, Server402ResponsePayload
from ..schemas.versions import ProtocolVersion
from .facilitator import FacilitatorClient
from .flows import setup_event_bus
from .security import NonceStore

Price = Union[int, str, Decimal]


class Http402Server(FastAPI):
    """FastAPI server with x402 exact-scheme payment gating."""

    def __init__(
        self,
        pay_to: Optional[str] = None,
        network: str = "eip155:8453",
        asset: Optional[str] = None,
        facilitator: Optional[FacilitatorClient] = None,
        settler: Optional[EVMSettler] = None,
        nonce_store: Optional[NonceStore] = None,
        enable_settlement: Optional[bool] = None,
        leeway: int = 0,
        **fastapi_kwargs
    ):
        """Initialize the payment gate.

        Args:
            pay_to: Address receiving payments; ``EVM_ADDRESS`` when omitted.
            network: Default network of issued quotes.
            asset: Token contract; the network's registered USDC when omitted.
            facilitator: Remote verify/settle service.
            settler: Local on-chain settler, used when there is no facilitator.
            nonce_store: Replay cache (default: new in-memory store).
            enable_settlement: Settle before serving. Defaults to True when a
                facilitator or settler is configured.
            leeway: Clock skew tolerated on the authorization window, in seconds.
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.pay_to = pay_to or get_pay_to_from_env()
        self.network = network
        self.asset = asset
        if enable_settlement is None:
            enable_settlement = facilitator is not None or settler is not None

        self.nonce_store = nonce_store if nonce_store is not None else NonceStore(leeway=leeway)
        self.depends = Dependencies(
            nonce_store=self.nonce_store,
            facilitator=facilitator,
            settler=settler,
            leeway=leeway,
        )
        self.event_bus: EventBus = setup_event_bus(enable_settlement=enable_settlement)

        super().__init__(**fastapi_kwargs)

    def subscribe(self, event_class: type[BaseEvent], handler: Callable) -> None:
        """Register event handler.

        Args:
            event_class: Event type to handle
            handler: Async function(event, deps) -> Optional[BaseEvent]

        Example:
            ```python
            async def my_handler(event: SettleSuccessEvent, deps: Dependencies):
                await ledger.record(event.settlement.transaction)

            app.subscribe(SettleSuccessEvent, my_handler)
            ```
        """
        self.event_bus.subscribe(event_class, handler)

    def add_hook(self, event_class: type[BaseEvent], hook: Callable) -> None:
        """Register event hook for side effects.

        Args:
            event_class: Event type to hook into
            hook: Async function(event, deps) -> None
        """
        self.event_bus.hook(event_class, hook)

    def hook(self, event_class: type[BaseEvent]) -> Callable:
        """Decorator for registering event hooks.

        Example:
            @app.hook(VerifyFailedEvent)
            async def on_rejected(event, deps):
                metrics.increment(event.status.value)
        """
        def decorator(hook_func: Callable) -> Callable:
            self.event_bus.hook(event_class, hook_func)
            return hook_func
        return decorator

    def build_quote(
        self,
        price: Price,
        *,
        description: str = "",
        mime_type: str = "application/json",
        network: Optional[str] = None,
        asset: Optional[str] = None,
        pay_to: Optional[str] = None,
        max_timeout_seconds: int = 60,
        resource: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> PaymentQuote:
        """Build the quote issued for a route.

        ``price`` is ``"$0.001"`` or a ``Decimal`` in token units, or an ``int``
        in base units.

        Raises:
            ConfigurationError: If there is no ``payTo``, no known asset, or the price is invalid.
        """
        network = network or self.network
        pay_to = pay_to or self.pay_to
        if not pay_to:
            raise ConfigurationError("No payTo address: pass pay_to or set EVM_ADDRESS")
        try:
            normalize_network(network)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        asset_address = asset or self.asset
        registered = (
            get_asset_config(network, asset_address) if asset_address else get_default_asset(network)
        )
        if asset_address is None:
            if registered is None:
                raise ConfigurationError(f"No default asset for network {network}; pass asset")
            asset_address = registered.address

        if extra is None and registered is not None:
            extra = {"name": registered.name, "version": registered.version}

        try:
            amount = parse_price(price, decimals=get_token_decimals(network, asset_address))
        except ValueError as e:
            raise ConfigurationError(f"Invalid price {price!r}: {e}") from e

        return PaymentQuote(
            scheme=EXACT_SCHEME,
            network=network,
            asset=asset_address,
            pay_to=pay_to,
            max_amount_required=str(amount),
            description=description,
            mime_type=mime_type,
            resource=resource,
            max_timeout_seconds=max_timeout_seconds,
            extra=extra,
        )

    def payment_required(self, price: Price, **quote_kwargs) -> Callable:
        """Decorator to protect routes with payment verification.

        Returns 402 when payment is missing or rejected, 400 when ``X-PAYMENT``
        cannot be decoded, otherwise awaits ``route_handler(request, payment)``.
        Dict results are sent as JSON; ``X-PAYMENT-RESPONSE`` is attached
        when the payment was settled.

        Example:
            ```python
            @app.get("/data")
            @app.payment_required("$0.001", description="Market data")
            async def get_data(request, payment):
                return {"payer": payment.authorization.from_}
            ```
        """
        quote_template = self.build_quote(price, **quote_kwargs)

        def decorator(route_handler: Callable) -> Callable:
            async def wrapper(request: Request):
                quote = quote_template
                if quote.resource is None:
                    quote = quote.model_copy(update={"resource": str(request.url)})

                event_chain = EventChain(self.event_bus, self.depends)
                executor = event_chain.execute(
                    initial_event=RequestInitEvent(
                        payment_header=request.headers.get(PAYMENT_HEADER),
                        quote=quote,
                    )
                )
                async for event in executor:
                    if isinstance(event, Http402PaymentEvent):
                        return self._payment_required_response(event.reason, event.quote)

                    if isinstance(event, (VerifyFailedEvent, SettleFailedEvent)):
                        return self._payment_required_response(event.error_message, event.quote)

                    if isinstance(event, InvalidPaymentEvent):
                        return JSONResponse(
                            status_code=400,
                            content={"x402Version": int(ProtocolVersion.V1), "error": event.reason},
                        )

                    if isinstance(event, AuthorizationSuccessEvent):
                        return await self._serve(route_handler, request, event)

                return JSONResponse(
                    status_code=500,
                    content={"error": "Payment verification failed"}
                )

            wrapper.__name__ = getattr(route_handler, "__name__", "paid_route")
            wrapper.__doc__ = route_handler.__doc__
            return wrapper

        return decorator

    @staticmethod
    def _payment_required_response(reason: str, quote: PaymentQuote) -> JSONResponse:
        body = Server402ResponsePayload(error=reason, accepts=[quote])
        return JSONResponse(status_code=402, content=body.to_dict())

    @staticmethod
    async def _serve(route_handler: Callable, request: Request, event: AuthorizationSuccessEvent) -> Response:
        result = await route_handler(request, event.payment)
        response = result if isinstance(result, Response) else JSONResponse(content=jsonable_encoder(result))

        if event.settlement is not None:
            response.headers[PAYMENT_RESPONSE_HEADER] = encode_settlement_header(event.settlement)
        logger.info(f"Served paid request from {event.payment.authorization.from_}")
        return response
