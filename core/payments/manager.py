from __future__ import annotations

from threading import Lock

import structlog

from core.logging import BusinessEvents
from core.payments.adyen_provider import AdyenOptions, AdyenPaymentProvider
from core.payments.provider import PaymentProvider
from core.payments.stripe_provider import StripeOptions, StripePaymentProvider
from core.payments.system_provider import SystemPaymentProvider
from core.settings import Settings, get_settings

log = structlog.get_logger(__name__)


def build_providers(settings: Settings) -> dict[str, PaymentProvider]:
    providers: dict[str, PaymentProvider] = {}

    for provider_id in settings.payment_providers:
        if provider_id == "adyen":
            providers["adyen"] = AdyenPaymentProvider(
                AdyenOptions(
                    api_key=settings.adyen_api_key,
                    merchant_account=settings.adyen_merchant_account,
                    return_url=settings.adyen_return_url,
                    environment=settings.adyen_environment,
                    live_endpoint_prefix=settings.adyen_live_endpoint_prefix,
                    hmac_key=settings.adyen_hmac_key,
                    timeout_seconds=settings.payment_http_timeout_seconds,
                )
            )
        elif provider_id == "stripe":
            providers["stripe"] = StripePaymentProvider(
                StripeOptions(
                    api_key=settings.stripe_api_key,
                    webhook_secret=settings.stripe_webhook_secret,
                    capture=settings.stripe_capture,
                )
            )
        elif provider_id == "system":
            providers["system"] = SystemPaymentProvider()

    return providers


class PaymentManager:
    _instance: "PaymentManager | None" = None
    _lock = Lock()

    def __init__(self, providers: dict[str, PaymentProvider], default_provider: str) -> None:
        self._providers = providers
        self._default_provider = default_provider

    @classmethod
    def configure(cls, providers: dict[str, PaymentProvider], default_provider: str | None = None) -> "PaymentManager":
        if not providers:
            raise RuntimeError(
                "At least one payment provider must be configured. "
                "Set PAYMENT_PROVIDERS to a list drawn from adyen, stripe, system."
            )

        default_provider = (default_provider or "").lower()
        if default_provider not in providers:
            default_provider = next(iter(providers.keys()))

        with cls._lock:
            cls._instance = cls(providers=providers, default_provider=default_provider)
            for provider_id in providers:
                log.info(
                    BusinessEvents.PAYMENT_PROVIDER_REGISTERED,
                    provider=provider_id,
                    default=provider_id == default_provider,
                )
            return cls._instance

    @classmethod
    def configure_from_settings(cls) -> "PaymentManager":
        settings = get_settings()
        return cls.configure(build_providers(settings), settings.payment_default_provider)

    @classmethod
    def get_instance(cls) -> "PaymentManager":
        if cls._instance is None:
            return cls.configure_from_settings()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._instance = None

    @property
    def provider_ids(self) -> list[str]:
        return list(self._providers.keys())

    @property
    def default_provider(self) -> str:
        return self._default_provider

    def get_provider(self, provider: str | None = None) -> PaymentProvider:
        key = (provider or self._default_provider).lower()
        if key not in self._providers:
            raise ValueError(f"Unsupported payment provider '{provider}'")
        return self._providers[key]
