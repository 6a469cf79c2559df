from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

import structlog

from core.logging import BusinessEvents
from core.payments.types import (
    REFUND_REFERENCE_KEY,
    InitiatePaymentInput,
    PaymentActions,
    PaymentProviderError,
    PaymentProviderName,
    PaymentSessionStatus,
    ProviderSessionResponse,
    ProviderStatusResponse,
    ProviderWebhookPayload,
    WebhookActionResult,
)

log = structlog.get_logger(__name__)


def _epoch() -> int:
    return int(time.time())


class SystemPaymentProvider:
    """Manual provider: no gateway, payments are settled outside the platform."""

    provider_name = PaymentProviderName.SYSTEM.value

    @staticmethod
    def validate_options(options: Any) -> None:
        return None

    async def initiate_payment(
        self, payload: InitiatePaymentInput
    ) -> ProviderSessionResponse | PaymentProviderError:
        log.info(
            BusinessEvents.PAYMENT_INITIATE,
            provider=self.provider_name,
            session_id=payload.context.session_id,
        )
        return ProviderSessionResponse(
            data={
                "session_id": payload.context.session_id,
                "currency_code": payload.currency_code.lower(),
                "amount": str(payload.amount),
                "created_at": _epoch(),
            }
        )

    async def retrieve_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        return dict(data or {})

    async def authorize_payment(
        self, data: dict[str, Any], context: dict[str, Any] | None = None
    ) -> ProviderStatusResponse | PaymentProviderError:
        return ProviderStatusResponse(status=PaymentSessionStatus.AUTHORIZED, data=dict(data or {}))

    async def update_payment(self, data: dict[str, Any]) -> ProviderStatusResponse | PaymentProviderError:
        return ProviderStatusResponse(status=PaymentSessionStatus.AUTHORIZED, data=dict(data or {}))

    async def capture_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        return {**(data or {}), "captured_at": _epoch()}

    async def refund_payment(
        self, data: dict[str, Any], refund_amount: int
    ) -> dict[str, Any] | PaymentProviderError:
        return {
            "amount_minor": int(refund_amount),
            "refunded_at": _epoch(),
            REFUND_REFERENCE_KEY: f"sysref_{uuid4().hex}",
        }

    async def cancel_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        return dict(data or {})

    async def delete_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        return await self.cancel_payment(data)

    async def get_webhook_action_and_data(self, payload: ProviderWebhookPayload) -> WebhookActionResult:
        return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)
