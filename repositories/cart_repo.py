from __future__ import annotations

import time

from pymongo import ReturnDocument

from core.database import db
from schemas.cart_schema import CartCreate, CartOut, CartStored, LineItemOut

_CART_INDEXES_READY = False


async def _ensure_cart_indexes() -> None:
    global _CART_INDEXES_READY
    if _CART_INDEXES_READY:
        return
    await db.carts.create_index("customer_id", name="idx_cart_customer_id", sparse=True)
    await db.carts.create_index("items.variant_id", name="idx_cart_item_variant_id")
    _CART_INDEXES_READY = True


async def create_cart(payload: CartCreate) -> CartOut:
    await _ensure_cart_indexes()
    cart = CartStored(**payload.model_dump())
    document = cart.model_dump(mode="json", exclude={"id"})
    document["_id"] = cart.id
    await db.carts.insert_one(document)
    stored = await db.carts.find_one({"_id": cart.id})
    return CartOut(**stored)  # type: ignore


async def get_cart_by_id(cart_id: str) -> CartOut | None:
    await _ensure_cart_indexes()
    row = await db.carts.find_one({"_id": cart_id})
    if row is None:
        return None
    return CartOut(**row)


async def add_line_items(cart_id: str, items: list[LineItemOut]) -> CartOut | None:
    await _ensure_cart_indexes()
    row = await db.carts.find_one_and_update(
        {"_id": cart_id, "completed_at": None},
        {
            "$push": {"items": {"$each": [item.model_dump(mode="json") for item in items]}},
            "$set": {"updated_at": int(time.time())},
        },
        return_document=ReturnDocument.AFTER,
    )
    if row is None:
        return None
    return CartOut(**row)


async def remove_line_items(cart_id: str, item_ids: list[str]) -> CartOut | None:
    await _ensure_cart_indexes()
    row = await db.carts.find_one_and_update(
        {"_id": cart_id},
        {
            "$pull": {"items": {"id": {"$in": item_ids}}},
            "$set": {"updated_at": int(time.time())},
        },
        return_document=ReturnDocument.AFTER,
    )
    if row is None:
        return None
    return CartOut(**row)
