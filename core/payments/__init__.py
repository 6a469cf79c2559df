from core.payments.manager import PaymentManager
from core.payments.types import (
    REFUND_REFERENCE_KEY,
    InitiatePaymentInput,
    PaymentActions,
    PaymentConfigurationError,
    PaymentContext,
    PaymentProviderError,
    PaymentProviderName,
    PaymentSessionStatus,
    ProviderSessionResponse,
    ProviderStatusResponse,
    ProviderWebhookPayload,
    WebhookActionData,
    WebhookActionResult,
)

__all__ = [
    "InitiatePaymentInput",
    "PaymentActions",
    "PaymentConfigurationError",
    "PaymentContext",
    "PaymentManager",
    "PaymentProviderError",
    "PaymentProviderName",
    "PaymentSessionStatus",
    "REFUND_REFERENCE_KEY",
    "ProviderSessionResponse",
    "ProviderStatusResponse",
    "ProviderWebhookPayload",
    "WebhookActionData",
    "WebhookActionResult",
]
