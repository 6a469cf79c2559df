from __future__ import annotations

import time
from typing import Any

from pymongo import ReturnDocument

from core.database import db
from schemas.payment_schema import PaymentSessionCreate, PaymentSessionOut

_PAYMENT_SESSION_INDEXES_READY = False


async def _ensure_payment_session_indexes() -> None:
    global _PAYMENT_SESSION_INDEXES_READY
    if _PAYMENT_SESSION_INDEXES_READY:
        return
    await db.payment_sessions.create_index("cart_id", name="idx_payment_session_cart_id")
    await db.payment_sessions.create_index(
        [("provider_id", 1), ("status", 1)],
        name="idx_payment_session_provider_status",
    )
    _PAYMENT_SESSION_INDEXES_READY = True


async def create_payment_session(payload: PaymentSessionCreate) -> PaymentSessionOut:
    await _ensure_payment_session_indexes()
    document = payload.model_dump(mode="json", exclude={"id"})
    document["_id"] = payload.id
    await db.payment_sessions.insert_one(document)
    stored = await db.payment_sessions.find_one({"_id": payload.id})
    return PaymentSessionOut(**stored)  # type: ignore


async def get_payment_session_by_id(session_id: str) -> PaymentSessionOut | None:
    await _ensure_payment_session_indexes()
    row = await db.payment_sessions.find_one({"_id": session_id})
    if row is None:
        return None
    return PaymentSessionOut(**row)


async def update_payment_session(session_id: str, changes: dict[str, Any]) -> PaymentSessionOut | None:
    await _ensure_payment_session_indexes()
    update = {**changes, "updated_at": int(time.time())}
    row = await db.payment_sessions.find_one_and_update(
        {"_id": session_id},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if row is None:
        return None
    return PaymentSessionOut(**row)


async def list_payment_sessions_by_cart(cart_id: str, statuses: list[str] | None = None) -> list[PaymentSessionOut]:
    await _ensure_payment_session_indexes()
    query: dict[str, Any] = {"cart_id": cart_id}
    if statuses:
        query["status"] = {"$in": statuses}
    cursor = db.payment_sessions.find(query).sort("created_at", 1)
    return [PaymentSessionOut(**row) async for row in cursor]


async def record_refund(session_id: str, *, reference: str, amount_minor: int) -> PaymentSessionOut | None:
    """Add a refund to ``refunded_amount_minor`` once per gateway refund reference."""
    await _ensure_payment_session_indexes()
    row = await db.payment_sessions.find_one_and_update(
        {"_id": session_id, "refund_references": {"$ne": reference}},
        {
            "$inc": {"refunded_amount_minor": int(amount_minor)},
            "$addToSet": {"refund_references": reference},
            "$set": {"updated_at": int(time.time())},
        },
        return_document=ReturnDocument.AFTER,
    )
    if row is None:
        row = await db.payment_sessions.find_one({"_id": session_id})
        if row is None:
            return None
    return PaymentSessionOut(**row)
