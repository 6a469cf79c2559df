from __future__ import annotations

import time
from decimal import Decimal
from typing import Any
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field

from core.payments.types import PaymentSessionStatus


def _new_session_id() -> str:
    return f"payses_{uuid4().hex}"


class PaymentSessionIn(BaseModel):
    provider_id: str | None = None
    context: dict[str, Any] | None = None


class AuthorizeIn(BaseModel):
    context: dict[str, Any] | None = None


class RefreshIn(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)


class RefundIn(BaseModel):
    amount_minor: int = Field(gt=0)


class PaymentSessionCreate(BaseModel):
    id: str = Field(default_factory=_new_session_id)
    cart_id: str
    provider_id: str
    amount: Decimal
    currency_code: str
    status: PaymentSessionStatus = PaymentSessionStatus.PENDING
    data: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] | None = None
    created_at: int = Field(default_factory=lambda: int(time.time()))
    updated_at: int = Field(default_factory=lambda: int(time.time()))


class PaymentSessionOut(BaseModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    cart_id: str
    provider_id: str
    amount: Decimal
    currency_code: str
    status: PaymentSessionStatus
    data: dict[str, Any]
    context: dict[str, Any] | None = None
    captured_at: int | None = None
    canceled_at: int | None = None
    refunded_amount_minor: int = 0
    refund_references: list[str] = Field(default_factory=list)
    created_at: int
    updated_at: int


class WebhookResultOut(BaseModel):
    provider_id: str
    action: str
    session_id: str | None = None
    status: PaymentSessionStatus | None = None
