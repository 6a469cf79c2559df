from __future__ import annotations

from typing import Any, Protocol

from core.payments.types import (
    InitiatePaymentInput,
    PaymentProviderError,
    ProviderSessionResponse,
    ProviderStatusResponse,
    ProviderWebhookPayload,
    WebhookActionResult,
)


class PaymentProvider(Protocol):
    """Lifecycle contract every payment gateway integration implements.

    Apart from ``validate_options``, no method raises for gateway, transport or
    precondition failures: each returns either its result or a
    ``PaymentProviderError``.

    ``refund_payment`` results carry the gateway id of the refund under
    ``REFUND_REFERENCE_KEY`` so a refund reported again by webhook is counted
    once.
    """

    provider_name: str

    @staticmethod
    def validate_options(options: Any) -> None:
        ...

    async def initiate_payment(
        self, payload: InitiatePaymentInput
    ) -> ProviderSessionResponse | PaymentProviderError:
        ...

    async def retrieve_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        ...

    async def authorize_payment(
        self, data: dict[str, Any], context: dict[str, Any] | None = None
    ) -> ProviderStatusResponse | PaymentProviderError:
        ...

    async def update_payment(self, data: dict[str, Any]) -> ProviderStatusResponse | PaymentProviderError:
        ...

    async def capture_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        ...

    async def refund_payment(
        self, data: dict[str, Any], refund_amount: int
    ) -> dict[str, Any] | PaymentProviderError:
        ...

    async def cancel_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        ...

    async def delete_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        ...

    async def get_webhook_action_and_data(self, payload: ProviderWebhookPayload) -> WebhookActionResult:
        ...
