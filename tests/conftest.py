from __future__ import annotations

import os

import pytest

os.environ.setdefault("ENV", "test")
os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "storefront_test")

from core.payments.manager import PaymentManager  # noqa: E402
from core.settings import get_settings  # noqa: E402

_PROVIDER_ENV_VARS = (
    "PAYMENT_PROVIDERS",
    "PAYMENT_DEFAULT_PROVIDER",
    "PUBLISHABLE_API_KEYS",
    "PRICING_SERVICE_URL",
    "ADYEN_API_KEY",
    "ADYEN_MERCHANT_ACCOUNT",
    "ADYEN_RETURN_URL",
    "ADYEN_ENVIRONMENT",
    "ADYEN_LIVE_ENDPOINT_PREFIX",
    "ADYEN_HMAC_KEY",
    "STRIPE_API_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "PAYMENT_HTTP_TIMEOUT_SECONDS",
    "LOG_FORMAT",
    "JWT_SECRET",
    "COOKIE_SECRET",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    for name in _PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    PaymentManager.reset()
    yield
    get_settings.cache_clear()
    PaymentManager.reset()
