from __future__ import annotations

import time
from decimal import Decimal
from typing import Any
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field, computed_field, field_validator


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


class AddressIn(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    address_1: str | None = None
    address_2: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    phone: str | None = None
    country_code: str | None = Field(default=None, min_length=2, max_length=2)

    @field_validator("country_code")
    @classmethod
    def normalize_country_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower()


class CartCreate(BaseModel):
    currency_code: str = Field(min_length=3, max_length=3)
    email: str | None = None
    region_id: str | None = None
    customer_id: str | None = None
    shipping_address: AddressIn | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("currency_code")
    @classmethod
    def normalize_currency_code(cls, value: str) -> str:
        return value.strip().lower()


class LineItemIn(BaseModel):
    variant_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    metadata: dict[str, Any] | None = None


class PricedLineItemIn(LineItemIn):
    unit_price: Decimal = Field(ge=0)


class CalculatedPriceItemsIn(BaseModel):
    items: list[LineItemIn] = Field(min_length=1)


class LineItemOut(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("cali"))
    variant_id: str
    quantity: int
    unit_price: Decimal
    is_custom_price: bool = False
    metadata: dict[str, Any] | None = None
    created_at: int = Field(default_factory=lambda: int(time.time()))

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class CartStored(BaseModel):
    id: str = Field(default_factory=lambda: _new_id("cart"), validation_alias=AliasChoices("_id", "id"))
    currency_code: str
    email: str | None = None
    region_id: str | None = None
    customer_id: str | None = None
    shipping_address: AddressIn | None = None
    metadata: dict[str, Any] | None = None
    items: list[LineItemOut] = Field(default_factory=list)
    completed_at: int | None = None
    created_at: int = Field(default_factory=lambda: int(time.time()))
    updated_at: int = Field(default_factory=lambda: int(time.time()))


class CartOut(CartStored):
    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal(0))
