from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.admin import payment_sessions_route as admin_route
from api.hooks import payment_webhooks_route
from api.store import payment_sessions_route as store_route
from core.errors import payment_provider_error
from core.payments.types import PaymentSessionStatus
from schemas.payment_schema import PaymentSessionOut, WebhookResultOut
from security.encrypting_jwt import create_jwt_token


def _session(**overrides) -> PaymentSessionOut:
    payload = {
        "id": "payses_1",
        "cart_id": "cart_1",
        "provider_id": "adyen",
        "amount": Decimal("10.00"),
        "currency_code": "eur",
        "status": PaymentSessionStatus.PENDING,
        "data": {"id": "CS-1", "sessionData": "blob"},
        "created_at": 100,
        "updated_at": 100,
    }
    payload.update(overrides)
    return PaymentSessionOut(**payload)


def _build_app() -> FastAPI:
    app = FastAPI()
    app.include_router(store_route.router, prefix="/store")
    app.include_router(admin_route.router, prefix="/admin")
    app.include_router(payment_webhooks_route.router, prefix="/hooks")
    return app


def _admin_headers(actor_type: str = "user") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt_token('user_1', actor_type=actor_type)}"}


def test_initiate_payment_session_for_cart(monkeypatch: pytest.MonkeyPatch):
    async def _stub_create(*, cart_id: str, provider_id: str | None, context):
        assert cart_id == "cart_1"
        assert provider_id == "adyen"
        return _session()

    monkeypatch.setattr(store_route, "create_payment_session", _stub_create)
    client = TestClient(_build_app())

    response = client.post("/store/carts/cart_1/payment-sessions", json={"provider_id": "adyen"})

    assert response.status_code == 201
    session = response.json()["data"]["payment_session"]
    assert session["id"] == "payses_1"
    assert session["data"]["sessionData"] == "blob"


def test_initiate_surfaces_provider_precondition_error(monkeypatch: pytest.MonkeyPatch):
    async def _stub_create(**kwargs):
        raise payment_provider_error(provider_id="adyen", error="No shipping address", code="NoShippingAddress")

    monkeypatch.setattr(store_route, "create_payment_session", _stub_create)
    client = TestClient(_build_app())

    response = client.post("/store/carts/cart_1/payment-sessions", json={})

    assert response.status_code == 422
    assert response.json()["detail"]["details"]["code"] == "NoShippingAddress"


def test_refresh_passes_session_result(monkeypatch: pytest.MonkeyPatch):
    async def _stub_refresh(session_id: str, *, data):
        assert data == {"sessionResult": "res-blob"}
        return _session(status=PaymentSessionStatus.AUTHORIZED)

    monkeypatch.setattr(store_route, "refresh_payment_session", _stub_refresh)
    client = TestClient(_build_app())

    response = client.post("/store/payment-sessions/payses_1/refresh", json={"data": {"sessionResult": "res-blob"}})

    assert response.status_code == 200
    assert response.json()["data"]["payment_session"]["status"] == "authorized"


def test_admin_capture_requires_admin_token(monkeypatch: pytest.MonkeyPatch):
    async def _stub_capture(session_id: str):
        return _session(status=PaymentSessionStatus.CAPTURED)

    monkeypatch.setattr(admin_route, "capture_payment_session", _stub_capture)
    client = TestClient(_build_app())

    missing = client.post("/admin/payment-sessions/payses_1/capture")
    customer = client.post("/admin/payment-sessions/payses_1/capture", headers=_admin_headers("customer"))
    forged = client.post("/admin/payment-sessions/payses_1/capture", headers={"Authorization": "Bearer not-a-jwt"})
    admin = client.post("/admin/payment-sessions/payses_1/capture", headers=_admin_headers())

    assert missing.status_code in {401, 403}
    assert customer.status_code == 401
    assert forged.status_code == 401
    assert forged.json()["detail"]["code"] == "AUTH_INVALID_TOKEN"
    assert admin.status_code == 200
    assert admin.json()["data"]["payment_session"]["status"] == "captured"


def test_admin_refund_validates_amount(monkeypatch: pytest.MonkeyPatch):
    calls: list[int] = []

    async def _stub_refund(session_id: str, *, amount_minor: int):
        calls.append(amount_minor)
        return _session(status=PaymentSessionStatus.CAPTURED, refunded_amount_minor=amount_minor)

    monkeypatch.setattr(admin_route, "refund_payment_session", _stub_refund)
    client = TestClient(_build_app())

    invalid = client.post("/admin/payment-sessions/payses_1/refund", json={"amount_minor": 0}, headers=_admin_headers())
    valid = client.post("/admin/payment-sessions/payses_1/refund", json={"amount_minor": 400}, headers=_admin_headers())

    assert invalid.status_code == 422
    assert valid.status_code == 200
    assert valid.json()["data"]["payment_session"]["refunded_amount_minor"] == 400
    assert calls == [400]


def test_webhook_route_forwards_raw_body_and_lowercased_headers(monkeypatch: pytest.MonkeyPatch):
    seen: dict = {}

    async def _stub_process(*, provider_id: str, body: bytes, headers: dict[str, str]):
        seen.update(provider_id=provider_id, body=body, signature=headers.get("stripe-signature"))
        return WebhookResultOut(provider_id=provider_id, action="captured", session_id="payses_1")

    monkeypatch.setattr(payment_webhooks_route, "process_webhook", _stub_process)
    client = TestClient(_build_app())

    response = client.post(
        "/hooks/payment/stripe",
        content=b'{"type":"payment_intent.succeeded"}',
        headers={"Stripe-Signature": "t=1,v1=abc", "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["action"] == "captured"
    assert seen == {"provider_id": "stripe", "body": b'{"type":"payment_intent.succeeded"}', "signature": "t=1,v1=abc"}
