"""Thin async client for the Adyen Checkout REST API.

Only the calls the payment provider needs are exposed. Transport failures
(timeouts, connection errors) propagate as ``httpx`` exceptions; non-2xx
responses are raised as ``AdyenApiError`` carrying Adyen's ``errorCode``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx

CHECKOUT_API_VERSION = "v71"
TEST_CHECKOUT_URL = f"https://checkout-test.adyen.com/{CHECKOUT_API_VERSION}"
LIVE_CHECKOUT_URL_TEMPLATE = (
    "https://{prefix}-checkout-live.adyenpayments.com/checkout/" + CHECKOUT_API_VERSION
)


class AdyenEnvironment(str, Enum):
    TEST = "TEST"
    LIVE = "LIVE"


class AdyenApiError(Exception):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str = "",
        detail: str | None = None,
        psp_reference: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.detail = detail or message
        self.psp_reference = psp_reference


def checkout_base_url(environment: AdyenEnvironment | str, live_endpoint_prefix: str | None = None) -> str:
    env = AdyenEnvironment(str(environment).upper())
    if env == AdyenEnvironment.TEST:
        return TEST_CHECKOUT_URL
    if not live_endpoint_prefix:
        raise ValueError("A live endpoint prefix is required for the LIVE Adyen environment")
    return LIVE_CHECKOUT_URL_TEMPLATE.format(prefix=live_endpoint_prefix)


class AdyenCheckoutClient:
    def __init__(
        self,
        *,
        api_key: str,
        environment: AdyenEnvironment | str = AdyenEnvironment.TEST,
        live_endpoint_prefix: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = checkout_base_url(environment, live_endpoint_prefix)
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers(),
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, json=json, params=params)

        if response.status_code >= 400:
            raise self._error_from_response(response)

        try:
            payload = response.json()
        except ValueError as err:
            raise AdyenApiError(
                "Adyen returned invalid JSON",
                status_code=response.status_code,
            ) from err

        if not isinstance(payload, dict):
            raise AdyenApiError(
                "Adyen returned an unexpected payload",
                status_code=response.status_code,
            )
        return payload

    @staticmethod
    def _error_from_response(response: httpx.Response) -> AdyenApiError:
        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            return AdyenApiError(
                f"Adyen request failed with HTTP {response.status_code}",
                status_code=response.status_code,
                detail=response.text or None,
            )

        message = str(body.get("message") or f"Adyen request failed with HTTP {response.status_code}")
        return AdyenApiError(
            message,
            status_code=response.status_code,
            code=str(body.get("errorCode") or ""),
            detail=message,
            psp_reference=body.get("pspReference"),
        )

    async def create_session(self, request: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/sessions", json=request)

    async def get_session_result(self, session_id: str, session_result: str | None) -> dict[str, Any]:
        params = {"sessionResult": session_result} if session_result else None
        return await self._request("GET", f"/sessions/{quote(session_id, safe='')}", params=params)

    async def capture_authorised_payment(self, psp_reference: str, request: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/payments/{quote(psp_reference, safe='')}/captures", json=request)

    async def refund_captured_payment(self, psp_reference: str, request: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/payments/{quote(psp_reference, safe='')}/refunds", json=request)

    async def refund_or_cancel_payment(self, psp_reference: str, request: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/payments/{quote(psp_reference, safe='')}/reversals", json=request)
