from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.store import carts_route
from core.errors import resource_not_found
from schemas.cart_schema import CartOut, LineItemIn, LineItemOut


def _build_app() -> FastAPI:
    app = FastAPI()
    app.include_router(carts_route.router, prefix="/store")
    return app


def _cart_with(items: list[LineItemOut]) -> CartOut:
    return CartOut(id="cart_1", currency_code="eur", items=items, created_at=100, updated_at=100)


def test_line_items_calculated_price_returns_cart(monkeypatch: pytest.MonkeyPatch):
    async def _stub_add(cart_id: str, items: list[LineItemIn]):
        assert cart_id == "cart_1"
        assert [(item.variant_id, item.quantity) for item in items] == [("variant_1", 2)]
        return _cart_with(
            [LineItemOut(variant_id="variant_1", quantity=2, unit_price=Decimal("250"), is_custom_price=True)]
        )

    monkeypatch.setattr(carts_route, "add_items_with_calculated_price", _stub_add)
    client = TestClient(_build_app())

    response = client.post(
        "/store/carts/cart_1/line-items-calculated-price",
        json={"items": [{"variant_id": "variant_1", "quantity": 2}]},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    cart = payload["data"]["cart"]
    assert cart["id"] == "cart_1"
    assert cart["items"][0]["is_custom_price"] is True
    assert Decimal(str(cart["total"])) == Decimal("500")


def test_line_items_calculated_price_rejects_empty_items():
    client = TestClient(_build_app())

    response = client.post("/store/carts/cart_1/line-items-calculated-price", json={"items": []})

    assert response.status_code == 422


def test_line_items_calculated_price_missing_cart(monkeypatch: pytest.MonkeyPatch):
    async def _stub_add(cart_id: str, items: list[LineItemIn]):
        raise resource_not_found("Cart", cart_id)

    monkeypatch.setattr(carts_route, "add_items_with_calculated_price", _stub_add)
    client = TestClient(_build_app())

    response = client.post(
        "/store/carts/cart_missing/line-items-calculated-price",
        json={"items": [{"variant_id": "variant_1", "quantity": 1}]},
    )

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "RESOURCE_NOT_FOUND"


def test_create_cart_returns_created(monkeypatch: pytest.MonkeyPatch):
    async def _stub_create(payload):
        assert payload.currency_code == "eur"
        assert payload.shipping_address.country_code == "nl"
        return _cart_with([])

    monkeypatch.setattr(carts_route, "create_cart", _stub_create)
    client = TestClient(_build_app())

    response = client.post("/store/carts", json={"currency_code": "EUR", "shipping_address": {"country_code": "NL"}})

    assert response.status_code == 201
    assert response.json()["data"]["cart"]["currency_code"] == "eur"


def test_publishable_key_is_enforced_when_configured(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PUBLISHABLE_API_KEYS", "pk_store")

    async def _stub_get(cart_id: str):
        return _cart_with([])

    monkeypatch.setattr(carts_route, "get_cart_or_404", _stub_get)
    client = TestClient(_build_app())

    rejected = client.get("/store/carts/cart_1")
    wrong = client.get("/store/carts/cart_1", headers={"x-publishable-api-key": "pk_other"})
    accepted = client.get("/store/carts/cart_1", headers={"x-publishable-api-key": "pk_store"})

    assert rejected.status_code == 400
    assert rejected.json()["detail"]["code"] == "AUTH_PUBLISHABLE_KEY_INVALID"
    assert wrong.status_code == 400
    assert accepted.status_code == 200
