from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from core.errors import AppException, ErrorCode
from schemas.cart_schema import LineItemIn
from services import pricing_service


def _route_pricing_calls(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.AsyncClient

    def _client(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(pricing_service.httpx, "AsyncClient", _client)


@pytest.mark.asyncio
async def test_placeholder_price_is_used_without_pricing_service(monkeypatch: pytest.MonkeyPatch):
    priced = await pricing_service.compute_line_item_price(
        LineItemIn(variant_id="variant_1", quantity=2), currency_code="eur"
    )

    assert priced.variant_id == "variant_1"
    assert priced.quantity == 2
    assert Decimal(100) <= priced.unit_price <= Decimal(999)


@pytest.mark.asyncio
async def test_pricing_service_url_is_called_per_item(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PRICING_SERVICE_URL", "http://pricing.local/price")
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        return httpx.Response(200, json={"unit_price": "12.50" if body["variant_id"] == "variant_1" else 3})

    _route_pricing_calls(monkeypatch, handler)

    priced = await pricing_service.compute_line_item_prices(
        [
            LineItemIn(variant_id="variant_1", quantity=1, metadata={"engraving": "A"}),
            LineItemIn(variant_id="variant_2", quantity=4),
        ],
        currency_code="eur",
    )

    assert [item.unit_price for item in priced] == [Decimal("12.50"), Decimal(3)]
    assert {body["variant_id"] for body in seen} == {"variant_1", "variant_2"}
    assert all(body["currency_code"] == "eur" for body in seen)


@pytest.mark.asyncio
async def test_pricing_service_http_error_is_bad_gateway(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PRICING_SERVICE_URL", "http://pricing.local/price")
    _route_pricing_calls(monkeypatch, lambda request: httpx.Response(500, json={"error": "boom"}))

    with pytest.raises(AppException) as exc_info:
        await pricing_service.compute_line_item_price(LineItemIn(variant_id="variant_1", quantity=1), currency_code="eur")

    assert exc_info.value.status_code == 502
    assert exc_info.value.detail["code"] == ErrorCode.PRICING_PROVIDER_ERROR.value  # type: ignore[index]


@pytest.mark.asyncio
async def test_pricing_service_invalid_price_is_bad_gateway(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PRICING_SERVICE_URL", "http://pricing.local/price")
    _route_pricing_calls(monkeypatch, lambda request: httpx.Response(200, json={"price": 10}))

    with pytest.raises(AppException) as exc_info:
        await pricing_service.compute_line_item_price(LineItemIn(variant_id="variant_1", quantity=1), currency_code="eur")

    assert exc_info.value.status_code == 502
