from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class PaymentProviderName(str, Enum):
    ADYEN = "adyen"
    STRIPE = "stripe"
    SYSTEM = "system"


class PaymentSessionStatus(str, Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REQUIRES_MORE = "requires_more"
    CANCELED = "canceled"
    ERROR = "error"


class PaymentActions(str, Enum):
    AUTHORIZED = "authorized"
    SUCCESSFUL = "captured"
    REFUNDED = "refunded"
    CANCELED = "canceled"
    FAILED = "failed"
    PENDING = "pending"
    REQUIRES_MORE = "requires_more"
    NOT_SUPPORTED = "not_supported"


# Key under which refund_payment results carry the gateway id of the refund.
REFUND_REFERENCE_KEY = "refund_reference"


class PaymentConfigurationError(ValueError):
    """Raised at startup when a provider is missing a required option."""


@dataclass(frozen=True)
class PaymentProviderError:
    error: str
    code: str = ""
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class PaymentContext:
    session_id: str
    shipping_address: dict[str, Any] | None = None
    email: str | None = None
    customer_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def country_code(self) -> str | None:
        if not self.shipping_address:
            return None
        code = self.shipping_address.get("country_code")
        if not code:
            return None
        return str(code).strip().upper() or None


@dataclass(frozen=True)
class InitiatePaymentInput:
    amount: Decimal
    currency_code: str
    context: PaymentContext


@dataclass(frozen=True)
class ProviderSessionResponse:
    data: dict[str, Any]


@dataclass(frozen=True)
class ProviderStatusResponse:
    status: PaymentSessionStatus
    data: dict[str, Any]


@dataclass(frozen=True)
class ProviderWebhookPayload:
    provider_id: str
    data: dict[str, Any]
    raw_data: bytes
    headers: dict[str, str]


@dataclass(frozen=True)
class WebhookActionData:
    """What a gateway event says about one session.

    ``reference`` is the gateway id of the event itself (the refund reference
    for refunds). ``session_data`` holds keys to merge into the stored session
    data, such as the payment reference learned on authorisation.
    """

    session_id: str
    amount: Decimal | None = None
    reference: str | None = None
    session_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookActionResult:
    action: PaymentActions
    data: WebhookActionData | None = None


def build_error(message: str, err: BaseException | PaymentProviderError) -> PaymentProviderError:
    """Fold an exception (or a nested provider error) into a ``PaymentProviderError``."""
    if isinstance(err, PaymentProviderError):
        return PaymentProviderError(
            error=message,
            code=err.code,
            detail=f"{err.error}\n{err.detail}" if err.detail else err.error,
        )

    code = getattr(err, "code", None)
    detail = getattr(err, "detail", None)
    return PaymentProviderError(
        error=message,
        code=str(code) if code else "",
        detail=str(detail) if detail else str(err),
    )
