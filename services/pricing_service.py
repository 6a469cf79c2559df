from __future__ import annotations

import asyncio
import random
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog
from fastapi import status

from core.errors import AppException, ErrorCode
from core.logging import BusinessEvents
from core.settings import get_settings
from schemas.cart_schema import LineItemIn, PricedLineItemIn

log = structlog.get_logger(__name__)

PLACEHOLDER_PRICE_MIN = 100
PLACEHOLDER_PRICE_MAX = 999
PRICING_CONCURRENCY_LIMIT = 10


def _placeholder_price() -> Decimal:
    return Decimal(random.randint(PLACEHOLDER_PRICE_MIN, PLACEHOLDER_PRICE_MAX))


async def _fetch_price(url: str, item: LineItemIn, *, currency_code: str, timeout: float) -> Decimal:
    request_body: dict[str, Any] = {
        "variant_id": item.variant_id,
        "quantity": item.quantity,
        "currency_code": currency_code,
        "metadata": item.metadata or {},
    }
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=request_body)
            response.raise_for_status()
    except httpx.HTTPStatusError as err:
        raise AppException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            code=ErrorCode.PRICING_PROVIDER_ERROR,
            message="Pricing provider HTTP error",
            details={"status_code": err.response.status_code, "variant_id": item.variant_id},
        ) from err
    except httpx.HTTPError as err:
        raise AppException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            code=ErrorCode.PRICING_PROVIDER_ERROR,
            message="Pricing provider request failed",
            details={"error": str(err), "variant_id": item.variant_id},
        ) from err

    try:
        payload = response.json()
        unit_price = Decimal(str(payload["unit_price"]))
    except (ValueError, KeyError, TypeError, InvalidOperation) as err:
        raise AppException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            code=ErrorCode.PRICING_PROVIDER_ERROR,
            message="Pricing provider returned an invalid price",
            details={"variant_id": item.variant_id},
        ) from err

    if unit_price < 0:
        raise AppException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            code=ErrorCode.PRICING_PROVIDER_ERROR,
            message="Pricing provider returned a negative price",
            details={"variant_id": item.variant_id, "unit_price": str(unit_price)},
        )
    return unit_price


async def compute_line_item_price(item: LineItemIn, *, currency_code: str) -> PricedLineItemIn:
    """Ask the external pricing service for the unit price of one item."""
    settings = get_settings()
    if settings.pricing_service_url:
        unit_price = await _fetch_price(
            settings.pricing_service_url,
            item,
            currency_code=currency_code,
            timeout=settings.payment_http_timeout_seconds,
        )
    else:
        unit_price = _placeholder_price()

    return PricedLineItemIn(**item.model_dump(), unit_price=unit_price)


async def compute_line_item_prices(items: list[LineItemIn], *, currency_code: str) -> list[PricedLineItemIn]:
    semaphore = asyncio.Semaphore(PRICING_CONCURRENCY_LIMIT)

    async def _priced(item: LineItemIn) -> PricedLineItemIn:
        async with semaphore:
            return await compute_line_item_price(item, currency_code=currency_code)

    priced = await asyncio.gather(*(_priced(item) for item in items))
    log.info(
        BusinessEvents.CART_LINE_ITEMS_PRICED,
        items=len(priced),
        currency=currency_code,
    )
    return list(priced)
