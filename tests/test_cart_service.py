from __future__ import annotations

from decimal import Decimal

import pytest

from core.errors import AppException, ErrorCode
from schemas.cart_schema import CartOut, LineItemIn, LineItemOut, PricedLineItemIn
from services import cart_service


def _cart(**overrides) -> CartOut:
    payload = {"id": "cart_1", "currency_code": "eur", "created_at": 100, "updated_at": 100}
    payload.update(overrides)
    return CartOut(**payload)


class _CartStore:
    def __init__(self, cart: CartOut | None) -> None:
        self.cart = cart
        self.removed: list[str] = []

    async def get_cart_by_id(self, cart_id: str):
        return self.cart if self.cart and self.cart.id == cart_id else None

    async def add_line_items(self, cart_id: str, items: list[LineItemOut]):
        if self.cart is None or self.cart.completed_at is not None:
            return None
        self.cart = self.cart.model_copy(update={"items": [*self.cart.items, *items]})
        return self.cart

    async def remove_line_items(self, cart_id: str, item_ids: list[str]):
        self.removed.extend(item_ids)
        assert self.cart is not None
        self.cart = self.cart.model_copy(update={"items": [i for i in self.cart.items if i.id not in item_ids]})
        return self.cart


def _install(monkeypatch: pytest.MonkeyPatch, store: _CartStore, *, refresh=None) -> list[str]:
    refreshed: list[str] = []

    async def _refresh(cart_id: str):
        refreshed.append(cart_id)
        if refresh is not None:
            await refresh(cart_id)
        return []

    monkeypatch.setattr(cart_service, "get_cart_by_id", store.get_cart_by_id)
    monkeypatch.setattr(cart_service, "add_line_items", store.add_line_items)
    monkeypatch.setattr(cart_service, "remove_line_items", store.remove_line_items)
    monkeypatch.setattr(cart_service, "refresh_payment_sessions_for_cart", _refresh)
    return refreshed


@pytest.mark.asyncio
async def test_add_to_cart_workflow_adds_custom_price_items_and_refreshes_sessions(monkeypatch: pytest.MonkeyPatch):
    store = _CartStore(_cart())
    refreshed = _install(monkeypatch, store)

    cart = await cart_service.add_to_cart_workflow(
        cart_id="cart_1",
        items=[PricedLineItemIn(variant_id="variant_1", quantity=2, unit_price=Decimal("150"))],
    )

    assert len(cart.items) == 1
    item = cart.items[0]
    assert item.is_custom_price is True
    assert item.unit_price == Decimal("150")
    assert item.id.startswith("cali_")
    assert cart.total == Decimal("300")
    assert refreshed == ["cart_1"]


@pytest.mark.asyncio
async def test_add_to_cart_workflow_rejects_missing_cart(monkeypatch: pytest.MonkeyPatch):
    _install(monkeypatch, _CartStore(None))

    with pytest.raises(AppException) as exc_info:
        await cart_service.add_to_cart_workflow(
            cart_id="cart_missing",
            items=[PricedLineItemIn(variant_id="variant_1", quantity=1, unit_price=Decimal("1"))],
        )

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_add_to_cart_workflow_rejects_completed_cart(monkeypatch: pytest.MonkeyPatch):
    _install(monkeypatch, _CartStore(_cart(completed_at=200)))

    with pytest.raises(AppException) as exc_info:
        await cart_service.add_to_cart_workflow(
            cart_id="cart_1",
            items=[PricedLineItemIn(variant_id="variant_1", quantity=1, unit_price=Decimal("1"))],
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["code"] == ErrorCode.CART_NOT_EDITABLE.value  # type: ignore[index]


@pytest.mark.asyncio
async def test_add_to_cart_workflow_compensates_when_session_refresh_fails(monkeypatch: pytest.MonkeyPatch):
    store = _CartStore(_cart())

    async def _failing_refresh(cart_id: str):
        raise RuntimeError("gateway unavailable")

    _install(monkeypatch, store, refresh=_failing_refresh)

    with pytest.raises(RuntimeError):
        await cart_service.add_to_cart_workflow(
            cart_id="cart_1",
            items=[PricedLineItemIn(variant_id="variant_1", quantity=1, unit_price=Decimal("5"))],
        )

    assert len(store.removed) == 1
    assert store.cart is not None
    assert store.cart.items == []


@pytest.mark.asyncio
async def test_add_items_with_calculated_price_prices_then_rereads_cart(monkeypatch: pytest.MonkeyPatch):
    store = _CartStore(_cart())
    _install(monkeypatch, store)

    async def _stub_prices(items: list[LineItemIn], *, currency_code: str):
        assert currency_code == "eur"
        return [PricedLineItemIn(**item.model_dump(), unit_price=Decimal("420")) for item in items]

    monkeypatch.setattr(cart_service, "compute_line_item_prices", _stub_prices)

    cart = await cart_service.add_items_with_calculated_price(
        "cart_1",
        [LineItemIn(variant_id="variant_1", quantity=1), LineItemIn(variant_id="variant_2", quantity=3)],
    )

    assert [item.variant_id for item in cart.items] == ["variant_1", "variant_2"]
    assert all(item.is_custom_price for item in cart.items)
    assert cart.total == Decimal("1680")
