from __future__ import annotations

import structlog
from fastapi import status

from core.errors import AppException, ErrorCode, resource_not_found
from core.logging import BusinessEvents
from repositories.cart_repo import add_line_items, create_cart as create_cart_record, get_cart_by_id, remove_line_items
from schemas.cart_schema import CartCreate, CartOut, LineItemIn, LineItemOut, PricedLineItemIn
from services.payment_service import refresh_payment_sessions_for_cart
from services.pricing_service import compute_line_item_prices

log = structlog.get_logger(__name__)


def cart_not_editable(cart_id: str) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        code=ErrorCode.CART_NOT_EDITABLE,
        message="Cart is already completed",
        details={"cart_id": cart_id},
    )


async def create_cart(payload: CartCreate) -> CartOut:
    cart = await create_cart_record(payload)
    log.info(BusinessEvents.CART_CREATED, cart_id=cart.id, currency=cart.currency_code)
    return cart


async def get_cart_or_404(cart_id: str) -> CartOut:
    cart = await get_cart_by_id(cart_id)
    if cart is None:
        raise resource_not_found("Cart", cart_id)
    return cart


async def add_to_cart_workflow(*, cart_id: str, items: list[PricedLineItemIn]) -> CartOut:
    """Add priced items as custom-price line items.

    Open payment sessions on the cart are cancelled afterwards because the
    total changed. If that step fails the new line items are pulled again.
    """
    cart = await get_cart_or_404(cart_id)
    if cart.completed_at is not None:
        raise cart_not_editable(cart_id)

    line_items = [
        LineItemOut(
            variant_id=item.variant_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            is_custom_price=True,
            metadata=item.metadata,
        )
        for item in items
    ]

    updated = await add_line_items(cart_id, line_items)
    if updated is None:
        # completed (or deleted) between the read and the write
        raise cart_not_editable(cart_id)

    try:
        await refresh_payment_sessions_for_cart(cart_id)
    except Exception:
        await remove_line_items(cart_id, [item.id for item in line_items])
        raise

    log.info(BusinessEvents.CART_LINE_ITEMS_ADDED, cart_id=cart_id, items=len(line_items))
    return updated


async def add_items_with_calculated_price(cart_id: str, items: list[LineItemIn]) -> CartOut:
    cart = await get_cart_or_404(cart_id)
    priced = await compute_line_item_prices(items, currency_code=cart.currency_code)
    await add_to_cart_workflow(cart_id=cart_id, items=priced)
    return await get_cart_or_404(cart_id)
