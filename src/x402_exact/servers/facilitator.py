"""
Facilitator client.

A facilitator verifies and settles exact-scheme payments on behalf of a gate
that does not hold keys or talk to the chain itself.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from ..adapters.evm.constants import get_facilitator_url_from_env
from ..engine.exceptions import FacilitatorError
from ..schemas.https import (
    FacilitatorRequest,
    FacilitatorVerifyResponse,
    PaymentPayload,
    PaymentQuote,
    SettlementResponse,
)


class FacilitatorClient:
    """
    Async client for ``POST {url}/verify`` and ``POST {url}/settle``.

    Args:
        url: Facilitator base URL; ``X402_FACILITATOR_URL`` or the public
            facilitator when omitted.
        timeout: Request timeout in seconds.
        headers: Extra headers, e.g. an API key.
        transport: Optional httpx transport, for tests.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = (url or get_facilitator_url_from_env()).rstrip("/")
        self._timeout = timeout
        self._headers = headers or {}
        self._transport = transport

    async def verify(self, payment: PaymentPayload, quote: PaymentQuote) -> FacilitatorVerifyResponse:
        """
        Ask the facilitator whether ``payment`` satisfies ``quote``.

        Raises:
            FacilitatorError: On transport errors, non-200 answers or an unexpected body.
        """
        data = await self._post("verify", payment, quote)
        try:
            return FacilitatorVerifyResponse.model_validate(data)
        except ValidationError as exc:
            raise FacilitatorError("Unexpected verify response", endpoint="verify") from exc

    async def settle(self, payment: PaymentPayload, quote: PaymentQuote) -> SettlementResponse:
        """
        Ask the facilitator to execute ``payment`` on-chain.

        Raises:
            FacilitatorError: On transport errors, non-200 answers or an unexpected body.
        """
        data = await self._post("settle", payment, quote)
        try:
            return SettlementResponse.model_validate(data)
        except ValidationError as exc:
            raise FacilitatorError("Unexpected settle response", endpoint="settle") from exc

    async def _post(self, endpoint: str, payment: PaymentPayload, quote: PaymentQuote) -> Dict[str, Any]:
        body = FacilitatorRequest(payment_payload=payment, payment_requirements=quote).to_dict()
        url = f"{self.url}/{endpoint}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise FacilitatorError(f"Facilitator {endpoint} request failed: {exc!r}", endpoint=endpoint) from exc

        if response.status_code != 200:
            logger.warning(f"Facilitator {endpoint} answered {response.status_code}")
            raise FacilitatorError(
                f"Facilitator {endpoint} failed with status {response.status_code}: {response.text}",
                endpoint=endpoint,
                response=response,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise FacilitatorError(f"Facilitator {endpoint} returned invalid JSON", endpoint=endpoint) from exc
        if not isinstance(data, dict):
            raise FacilitatorError(f"Facilitator {endpoint} returned a non-object body", endpoint=endpoint)
        return data
