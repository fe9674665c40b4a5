"""
HTTP 402 Payment Flow Client

Provides a drop-in ``httpx.AsyncClient`` that pays for resources answering
402 Payment Required with an exact-scheme quote: it signs an ERC-3009
authorization through the injected signer and retries once with ``X-PAYMENT``.
"""

from dataclasses import dataclass
from typing import Any, Dict, NoReturn, Optional

import httpx
from loguru import logger

from ..adapters.evm.authorizations import build_authorization
from ..adapters.evm.constants import get_private_key_from_env
from ..adapters.evm.signatures import (
    LocalAccountSigner,
    TypedDataSigner,
    resolve_domain,
    sign_authorization,
)
from ..encoding import (
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    decode_settlement_header,
    encode_payment_header,
)
from ..engine.exceptions import (
    EnvelopeDecodeError,
    PaymentLimitExceeded,
    PaymentRejected,
    QuoteMalformed,
    RequestFailed,
    SignatureDenied,
    X402Error,
)
from ..engine.states import PaymentFlow, PaymentState
from ..schemas.https import ExactPayload, PaymentPayload, PaymentQuote, SettlementResponse
from .quotes import ensure_payable, parse_quote

# httpx.AsyncClient.request arguments taken by send() rather than build_request()
_SEND_ONLY_KWARGS = ("auth", "follow_redirects")


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of a completed call.

    Attributes:
        response: Final response (the free one, or the paid retry).
        flow: State machine of the call, ending in ``FULFILLED``.
        quote: Quote that was paid, None if the resource was free.
        settlement: Decoded ``X-PAYMENT-RESPONSE`` when the gate sent one.
    """
    response: httpx.Response
    flow: PaymentFlow
    quote: Optional[PaymentQuote] = None
    settlement: Optional[SettlementResponse] = None

    @property
    def state(self) -> PaymentState:
        return self.flow.state

    @property
    def paid(self) -> bool:
        return self.quote is not None


def _signer_from_env() -> Optional[TypedDataSigner]:
    if get_private_key_from_env():
        return LocalAccountSigner()
    return None


def _error_reason(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        reason = body.get("error") or body.get("detail")
        return str(reason) if reason else None
    return None


class Http402Client(httpx.AsyncClient):
    """
    Extended httpx.AsyncClient with automatic 402 payment handling.

    On a 402 the client:
    1. Parses the quote (``accepts[0]`` unless ``network`` narrows it)
    2. Builds a 300-second ERC-3009 authorization for exactly the quoted amount
    3. Has the signer sign it
    4. Retries the identical request once with ``X-PAYMENT``

    A second 402 is not retried: re-signing needs a fresh caller action.
    Failures raise the ``X402Error`` subclass matching the terminal state.

    Fully compatible with httpx.AsyncClient - supports all methods, properties,
    and can be used as an async context manager.

    Usage:
        ```python
        async with Http402Client(signer=LocalAccountSigner(key), max_value=1_000_000) as client:
            response = await client.get("https://api.example.com/data")
        ```
    """

    def __init__(
        self,
        signer: Optional[TypedDataSigner] = None,
        *,
        max_value: Optional[int] = None,
        network: Optional[str] = None,
        **kwargs
    ):
        """
        Initialize client with an optional signer.

        Args:
            signer: Signing capability; a ``LocalAccountSigner`` is created from
                ``EVM_PRIVATE_KEY`` when omitted and the variable is set.
            max_value: Refuse to sign quotes above this many base units.
            network: Preferred network when a quote offers several options.
            **kwargs: All standard httpx.AsyncClient arguments (timeout, headers, etc.)
        """
        super().__init__(**kwargs)
        self._signer = signer if signer is not None else _signer_from_env()
        self._max_value = max_value
        self._network = network

    @property
    def signer(self) -> Optional[TypedDataSigner]:
        return self._signer

    # =========================================================================
    # Override httpx.AsyncClient.request to add 402 handling
    # =========================================================================

    async def request(
        self,
        method: str,
        url: httpx._types.URLTypes,
        **kwargs
    ) -> httpx.Response:
        """
        Execute HTTP request with automatic 402 handling.

        Overrides httpx.AsyncClient.request() to intercept 402 responses.
        All other httpx methods (get, post, etc.) automatically use this.

        Returns:
            The 2xx response of the free or paid request.

        Raises:
            QuoteMalformed, SignatureDenied, PaymentRejected, RequestFailed
        """
        outcome = await self.fetch(method, url, **kwargs)
        return outcome.response

    async def fetch(
        self,
        method: str,
        url: httpx._types.URLTypes,
        **kwargs
    ) -> PaymentOutcome:
        """
        Same as ``request`` but returns the whole ``PaymentOutcome``.

        Flow:
            IDLE -> QUOTING -> (FULFILLED | AWAITING_SIGNATURE) -> PAYING -> FULFILLED
        """
        flow = PaymentFlow()
        flow.transition(PaymentState.QUOTING)

        response = await self._send(flow, method, url, kwargs)

        if response.is_success:
            flow.transition(PaymentState.FULFILLED)
            return PaymentOutcome(response=response, flow=flow)

        if response.status_code != 402:
            self._fail(flow, PaymentState.REQUEST_FAILED, RequestFailed(
                f"{method} {url} failed with status {response.status_code}",
                response=response,
            ))

        try:
            quote = ensure_payable(parse_quote(response, network=self._network))
        except QuoteMalformed as exc:
            exc.response = response
            self._fail(flow, PaymentState.QUOTE_MALFORMED, exc)

        flow.transition(PaymentState.AWAITING_SIGNATURE)
        header_value = await self._authorize(flow, quote, response)

        flow.transition(PaymentState.PAYING)
        paid_response = await self._send(flow, method, url, kwargs, payment=header_value, quote=quote)

        if paid_response.is_success:
            flow.transition(PaymentState.FULFILLED)
            settlement = self._read_settlement(paid_response)
            logger.info(f"Payment accepted for {method} {url}")
            return PaymentOutcome(response=paid_response, flow=flow, quote=quote, settlement=settlement)

        reason = _error_reason(paid_response)
        self._fail(flow, PaymentState.PAYMENT_REJECTED, PaymentRejected(
            f"Payment rejected with status {paid_response.status_code}: {reason or 'no reason given'}",
            reason=reason,
            quote=quote,
            response=paid_response,
        ))

    # =========================================================================
    # Core 402 Handling Logic
    # =========================================================================

    async def _send(
        self,
        flow: PaymentFlow,
        method: str,
        url: httpx._types.URLTypes,
        kwargs: Dict[str, Any],
        payment: Optional[str] = None,
        quote: Optional[PaymentQuote] = None,
    ) -> httpx.Response:
        """
        Send one request of the flow with ``X-PAYMENT`` set to ``payment``, or absent.

        The header is fixed on the built request so client-level defaults
        cannot leak a stale payment into either attempt.
        """
        build_kwargs = dict(kwargs)
        send_kwargs = {key: build_kwargs.pop(key) for key in _SEND_ONLY_KWARGS if key in build_kwargs}
        try:
            request = self.build_request(method, url, **build_kwargs)
            self._set_payment_header(request, payment)
            return await self.send(request, **send_kwargs)
        except httpx.TransportError as exc:
            self._fail(flow, PaymentState.REQUEST_FAILED, RequestFailed(
                f"{method} {url} failed: {exc!r}", quote=quote,
            ), cause=exc)


    async def _authorize(
        self,
        flow: PaymentFlow,
        quote: PaymentQuote,
        response: httpx.Response,
    ) -> str:
        """
        Build, sign and encode the authorization for ``quote``.

        Returns:
            The ``X-PAYMENT`` header value.
        """
        if self._max_value is not None and quote.amount > self._max_value:
            self._fail(flow, PaymentState.SIGNATURE_DENIED, PaymentLimitExceeded(
                f"Quote of {quote.max_amount_required} exceeds max_value {self._max_value}",
                required=quote.amount,
                limit=self._max_value,
                quote=quote,
                response=response,
            ))
        if self._signer is None:
            self._fail(flow, PaymentState.SIGNATURE_DENIED, SignatureDenied(
                "No signer configured", quote=quote, response=response,
            ))

        try:
            domain = resolve_domain(quote)
        except QuoteMalformed as exc:
            exc.response = response
            self._fail(flow, PaymentState.QUOTE_MALFORMED, exc)

        try:
            payer = self._signer.address
        except Exception as exc:
            self._fail(flow, PaymentState.SIGNATURE_DENIED, SignatureDenied(
                f"Signer address unavailable: {exc}", quote=quote, response=response,
            ), cause=exc)

        try:
            authorization = build_authorization(quote, payer)
            signature = await sign_authorization(self._signer, authorization, domain)
        except SignatureDenied as exc:
            exc.quote, exc.response = quote, response
            self._fail(flow, PaymentState.SIGNATURE_DENIED, exc)
        except ValueError as exc:
            self._fail(flow, PaymentState.SIGNATURE_DENIED, SignatureDenied(
                f"Signer address unusable: {exc}", quote=quote, response=response,
            ), cause=exc)

        logger.info(
            f"Signed payment of {quote.max_amount_required} to {quote.pay_to} "
            f"on {quote.network} from {authorization.from_}"
        )
        payload = PaymentPayload(
            network=quote.network,
            payload=ExactPayload(signature=signature, authorization=authorization),
        )
        return encode_payment_header(payload)

    def _read_settlement(self, response: httpx.Response) -> Optional[SettlementResponse]:
        value = response.headers.get(PAYMENT_RESPONSE_HEADER)
        if not value:
            return None
        try:
            return decode_settlement_header(value)
        except EnvelopeDecodeError as exc:
            logger.warning(f"Ignoring unreadable {PAYMENT_RESPONSE_HEADER} header: {exc}")
            return None

    def _fail(
        self,
        flow: PaymentFlow,
        state: PaymentState,
        error: X402Error,
        cause: Optional[BaseException] = None,
    ) -> NoReturn:
        flow.transition(state, error=error.message)
        error.state = state
        if state is PaymentState.PAYMENT_REJECTED:
            logger.warning(error.message)
        else:
            logger.info(f"Payment flow ended in {state.value}: {error.message}")
        if cause is not None:
            raise error from cause
        raise error

    # =========================================================================
    # Utility Methods
    # =========================================================================

    @staticmethod
    def _set_payment_header(request: httpx.Request, value: Optional[str]) -> None:
        """
        Leave ``request`` with exactly one ``X-PAYMENT`` (or none when ``value`` is None).

        Example: {"Accept": "application/json"} -> {"Accept": ..., "X-PAYMENT": "eyJ4..."}
        """
        if PAYMENT_HEADER in request.headers:
            del request.headers[PAYMENT_HEADER]
        if value is not None:
            request.headers[PAYMENT_HEADER] = value
