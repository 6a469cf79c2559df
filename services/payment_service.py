from __future__ import annotations

import json
import time
from typing import Any
from uuid import uuid4

import structlog
from fastapi import status

from core.currency import get_smallest_unit
from core.errors import AppException, ErrorCode, payment_provider_error, resource_not_found
from core.logging import BusinessEvents
from core.payments import (
    REFUND_REFERENCE_KEY,
    InitiatePaymentInput,
    PaymentActions,
    PaymentContext,
    PaymentManager,
    PaymentProviderError,
    PaymentSessionStatus,
    ProviderWebhookPayload,
)
from core.payments.provider import PaymentProvider
from repositories.cart_repo import get_cart_by_id
from repositories.payment_session_repo import (
    create_payment_session as create_payment_session_record,
    get_payment_session_by_id,
    list_payment_sessions_by_cart,
    record_refund,
    update_payment_session,
)
from schemas.payment_schema import PaymentSessionCreate, PaymentSessionOut, WebhookResultOut

log = structlog.get_logger(__name__)

WEBHOOK_ACTION_STATUS_MAP: dict[PaymentActions, PaymentSessionStatus] = {
    PaymentActions.AUTHORIZED: PaymentSessionStatus.AUTHORIZED,
    PaymentActions.SUCCESSFUL: PaymentSessionStatus.CAPTURED,
    PaymentActions.FAILED: PaymentSessionStatus.ERROR,
    PaymentActions.CANCELED: PaymentSessionStatus.CANCELED,
    PaymentActions.REQUIRES_MORE: PaymentSessionStatus.REQUIRES_MORE,
}

# Statuses a session may hold when a webhook moves it to the key status.
WEBHOOK_ALLOWED_PREVIOUS_STATUSES: dict[PaymentSessionStatus, set[PaymentSessionStatus]] = {
    PaymentSessionStatus.REQUIRES_MORE: {
        PaymentSessionStatus.PENDING,
        PaymentSessionStatus.REQUIRES_MORE,
    },
    PaymentSessionStatus.AUTHORIZED: {
        PaymentSessionStatus.PENDING,
        PaymentSessionStatus.REQUIRES_MORE,
        PaymentSessionStatus.AUTHORIZED,
    },
    PaymentSessionStatus.CAPTURED: {
        PaymentSessionStatus.PENDING,
        PaymentSessionStatus.REQUIRES_MORE,
        PaymentSessionStatus.AUTHORIZED,
        PaymentSessionStatus.ERROR,
        PaymentSessionStatus.CAPTURED,
    },
    PaymentSessionStatus.ERROR: {
        PaymentSessionStatus.PENDING,
        PaymentSessionStatus.REQUIRES_MORE,
        PaymentSessionStatus.AUTHORIZED,
        PaymentSessionStatus.ERROR,
    },
    PaymentSessionStatus.CANCELED: {
        PaymentSessionStatus.PENDING,
        PaymentSessionStatus.REQUIRES_MORE,
        PaymentSessionStatus.AUTHORIZED,
        PaymentSessionStatus.ERROR,
        PaymentSessionStatus.CANCELED,
    },
}

OPEN_SESSION_STATUSES = [
    PaymentSessionStatus.PENDING.value,
    PaymentSessionStatus.REQUIRES_MORE.value,
]


def _epoch() -> int:
    return int(time.time())


def _get_payment_manager() -> PaymentManager:
    try:
        return PaymentManager.get_instance()
    except RuntimeError as err:
        raise AppException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=ErrorCode.PAYMENT_PROVIDER_NOT_CONFIGURED,
            message="Payment providers are not configured",
            details=str(err),
        ) from err


def _get_provider(provider_id: str | None) -> PaymentProvider:
    manager = _get_payment_manager()
    try:
        return manager.get_provider(provider_id)
    except ValueError as err:
        raise AppException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=ErrorCode.PAYMENT_PROVIDER_NOT_CONFIGURED,
            message=str(err),
            details={"provider_id": provider_id, "available": manager.provider_ids},
        ) from err


def _raise_for_provider_error(provider_id: str, result: Any) -> None:
    if isinstance(result, PaymentProviderError):
        raise payment_provider_error(
            provider_id=provider_id,
            error=result.error,
            code=result.code,
            detail=result.detail,
        )


def _invalid_state(session: PaymentSessionOut, operation: str, allowed: list[PaymentSessionStatus]) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        code=ErrorCode.PAYMENT_SESSION_INVALID_STATE,
        message=f"Cannot {operation} a payment session with status '{session.status.value}'",
        details={"session_id": session.id, "allowed": [item.value for item in allowed]},
    )


def _log_ignored_webhook(provider_id: str, session: PaymentSessionOut, action: PaymentActions, *, reason: str) -> None:
    log.warning(
        BusinessEvents.PAYMENT_WEBHOOK_REJECTED,
        provider=provider_id,
        session_id=session.id,
        status=session.status.value,
        action=action.value,
        reason=reason,
    )


async def _save(session_id: str, changes: dict[str, Any]) -> PaymentSessionOut:
    updated = await update_payment_session(session_id, changes)
    if updated is None:
        raise resource_not_found("PaymentSession", session_id)
    return updated


async def get_payment_session(session_id: str) -> PaymentSessionOut:
    session = await get_payment_session_by_id(session_id)
    if session is None:
        raise resource_not_found("PaymentSession", session_id)
    return session


async def create_payment_session(
    *, cart_id: str, provider_id: str | None = None, context: dict[str, Any] | None = None
) -> PaymentSessionOut:
    cart = await get_cart_by_id(cart_id)
    if cart is None:
        raise resource_not_found("Cart", cart_id)

    provider = _get_provider(provider_id)
    record = PaymentSessionCreate(
        cart_id=cart.id,
        provider_id=provider.provider_name,
        amount=cart.total,
        currency_code=cart.currency_code,
        context=context,
    )

    extra = dict(context or {})
    shipping_address = cart.shipping_address.model_dump() if cart.shipping_address else None
    result = await provider.initiate_payment(
        InitiatePaymentInput(
            amount=cart.total,
            currency_code=cart.currency_code,
            context=PaymentContext(
                session_id=record.id,
                shipping_address=extra.pop("shipping_address", None) or shipping_address,
                email=extra.pop("email", None) or cart.email,
                customer_id=extra.pop("customer_id", None) or cart.customer_id,
                extra=extra,
            ),
        )
    )
    _raise_for_provider_error(provider.provider_name, result)

    record.data = dict(result.data)
    return await create_payment_session_record(record)


async def authorize_payment_session(session_id: str, *, context: dict[str, Any] | None = None) -> PaymentSessionOut:
    session = await get_payment_session(session_id)
    allowed = [PaymentSessionStatus.PENDING, PaymentSessionStatus.REQUIRES_MORE, PaymentSessionStatus.AUTHORIZED]
    if session.status not in allowed:
        raise _invalid_state(session, "authorize", allowed)

    provider = _get_provider(session.provider_id)
    result = await provider.authorize_payment(session.data, context or session.context)
    _raise_for_provider_error(session.provider_id, result)

    log.info(
        BusinessEvents.PAYMENT_AUTHORIZE,
        provider=session.provider_id,
        session_id=session.id,
        status=result.status.value,
    )
    return await _save(session.id, {"status": result.status.value, "data": {**session.data, **result.data}})


async def refresh_payment_session(session_id: str, *, data: dict[str, Any] | None = None) -> PaymentSessionOut:
    """Merge storefront-supplied keys (e.g. ``sessionResult``) and re-read the gateway status."""
    session = await get_payment_session(session_id)
    if session.status in {PaymentSessionStatus.CAPTURED, PaymentSessionStatus.CANCELED}:
        raise _invalid_state(
            session,
            "refresh",
            [PaymentSessionStatus.PENDING, PaymentSessionStatus.REQUIRES_MORE, PaymentSessionStatus.AUTHORIZED],
        )

    merged = {**session.data, **(data or {})}
    provider = _get_provider(session.provider_id)
    result = await provider.update_payment(merged)
    _raise_for_provider_error(session.provider_id, result)

    return await _save(session.id, {"status": result.status.value, "data": {**merged, **result.data}})


async def capture_payment_session(session_id: str) -> PaymentSessionOut:
    session = await get_payment_session(session_id)
    if session.status != PaymentSessionStatus.AUTHORIZED:
        raise _invalid_state(session, "capture", [PaymentSessionStatus.AUTHORIZED])

    provider = _get_provider(session.provider_id)
    result = await provider.capture_payment(session.data)
    _raise_for_provider_error(session.provider_id, result)

    return await _save(
        session.id,
        {
            "status": PaymentSessionStatus.CAPTURED.value,
            "data": {**session.data, **result},
            "captured_at": _epoch(),
        },
    )


async def refund_payment_session(session_id: str, *, amount_minor: int) -> PaymentSessionOut:
    session = await get_payment_session(session_id)
    if session.status != PaymentSessionStatus.CAPTURED:
        raise _invalid_state(session, "refund", [PaymentSessionStatus.CAPTURED])

    captured_minor = get_smallest_unit(session.amount, session.currency_code)
    if session.refunded_amount_minor + amount_minor > captured_minor:
        raise AppException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=ErrorCode.VALIDATION_FAILED,
            message="Refund amount exceeds the captured amount",
            details={
                "session_id": session.id,
                "captured_amount_minor": captured_minor,
                "refunded_amount_minor": session.refunded_amount_minor,
                "requested_amount_minor": amount_minor,
            },
        )

    provider = _get_provider(session.provider_id)
    result = await provider.refund_payment(session.data, amount_minor)
    _raise_for_provider_error(session.provider_id, result)

    refunds = [*session.data.get("refunds", []), result]
    await _save(session.id, {"data": {**session.data, "refunds": refunds}})
    reference = str(result.get(REFUND_REFERENCE_KEY) or f"refund_{uuid4().hex}")
    updated = await record_refund(session.id, reference=reference, amount_minor=amount_minor)
    if updated is None:
        raise resource_not_found("PaymentSession", session.id)
    return updated


async def cancel_payment_session(session_id: str) -> PaymentSessionOut:
    session = await get_payment_session(session_id)
    if session.status == PaymentSessionStatus.CANCELED:
        return session
    if session.status == PaymentSessionStatus.CAPTURED:
        raise _invalid_state(
            session,
            "cancel",
            [PaymentSessionStatus.PENDING, PaymentSessionStatus.REQUIRES_MORE, PaymentSessionStatus.AUTHORIZED],
        )

    provider = _get_provider(session.provider_id)
    result = await provider.cancel_payment(session.data)
    _raise_for_provider_error(session.provider_id, result)

    return await _save(
        session.id,
        {
            "status": PaymentSessionStatus.CANCELED.value,
            "data": {**session.data, **result},
            "canceled_at": _epoch(),
        },
    )


async def refresh_payment_sessions_for_cart(cart_id: str) -> list[PaymentSessionOut]:
    """Drop the cart's open sessions; their amount no longer matches the cart total."""
    refreshed: list[PaymentSessionOut] = []
    for session in await list_payment_sessions_by_cart(cart_id, statuses=OPEN_SESSION_STATUSES):
        provider = _get_provider(session.provider_id)
        result = await provider.delete_payment(session.data)
        _raise_for_provider_error(session.provider_id, result)
        refreshed.append(
            await _save(
                session.id,
                {
                    "status": PaymentSessionStatus.CANCELED.value,
                    "data": {**session.data, **result},
                    "canceled_at": _epoch(),
                },
            )
        )
    return refreshed


async def process_webhook(*, provider_id: str, body: bytes, headers: dict[str, str]) -> WebhookResultOut:
    provider = _get_provider(provider_id)
    try:
        data = json.loads(body or b"{}")
    except (ValueError, UnicodeDecodeError) as err:
        raise AppException(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCode.PAYMENT_WEBHOOK_INVALID,
            message="Webhook body is not valid JSON",
            details=str(err),
        ) from err
    if not isinstance(data, dict):
        raise AppException(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=ErrorCode.PAYMENT_WEBHOOK_INVALID,
            message="Webhook body must be a JSON object",
        )

    log.info(BusinessEvents.PAYMENT_WEBHOOK_RECEIVED, provider=provider.provider_name)
    outcome = await provider.get_webhook_action_and_data(
        ProviderWebhookPayload(provider_id=provider.provider_name, data=data, raw_data=body, headers=headers)
    )

    result = WebhookResultOut(provider_id=provider.provider_name, action=outcome.action.value)
    if outcome.data is None or outcome.action in {PaymentActions.NOT_SUPPORTED, PaymentActions.PENDING}:
        return result

    session_id = outcome.data.session_id
    session = await get_payment_session_by_id(session_id)
    if session is None:
        log.warning(
            BusinessEvents.PAYMENT_WEBHOOK_REJECTED,
            provider=provider.provider_name,
            session_id=session_id,
            reason="unknown_session",
        )
        return result
    result.session_id = session.id
    result.status = session.status

    if outcome.action == PaymentActions.REFUNDED:
        if session.status != PaymentSessionStatus.CAPTURED or not outcome.data.reference:
            _log_ignored_webhook(provider.provider_name, session, outcome.action, reason="refund_not_applicable")
            return result
        amount_minor = (
            get_smallest_unit(outcome.data.amount, session.currency_code)
            if outcome.data.amount is not None
            else 0
        )
        updated = await record_refund(session.id, reference=outcome.data.reference, amount_minor=amount_minor)
        result.status = (updated or session).status
        return result

    new_status = WEBHOOK_ACTION_STATUS_MAP[outcome.action]
    if session.status not in WEBHOOK_ALLOWED_PREVIOUS_STATUSES[new_status]:
        _log_ignored_webhook(provider.provider_name, session, outcome.action, reason="invalid_transition")
        return result

    changes: dict[str, Any] = {"status": new_status.value}
    if outcome.data.session_data:
        changes["data"] = {**session.data, **outcome.data.session_data}
    if new_status == PaymentSessionStatus.CAPTURED and session.captured_at is None:
        changes["captured_at"] = _epoch()
    if new_status == PaymentSessionStatus.CANCELED and session.canceled_at is None:
        changes["canceled_at"] = _epoch()
    updated = await _save(session.id, changes)
    result.status = updated.status
    return result
