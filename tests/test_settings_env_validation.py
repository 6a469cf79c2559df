from __future__ import annotations

import pytest

from core import settings as settings_module


def _set_minimal_valid_env(monkeypatch: pytest.MonkeyPatch) -> None:
    values = {
        "ENV": "development",
        "MONGO_URL": "mongodb://localhost:27017",
        "DB_NAME": "storefront",
        "PAYMENT_PROVIDERS": "adyen,system",
        "PAYMENT_DEFAULT_PROVIDER": "adyen",
        "ADYEN_API_KEY": "AQE-test-key",
        "ADYEN_MERCHANT_ACCOUNT": "StoreECOM",
        "ADYEN_RETURN_URL": "http://localhost:8000/checkout/return",
        "ADYEN_ENVIRONMENT": "TEST",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)


def test_minimal_env_is_valid(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)

    assert settings_module.collect_missing_required_env_vars() == []
    assert settings_module.collect_invalid_env_values() == []


def test_collect_missing_required_env_vars_includes_base_and_adyen_keys(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("DB_NAME", raising=False)
    monkeypatch.delenv("ADYEN_MERCHANT_ACCOUNT", raising=False)

    missing = settings_module.collect_missing_required_env_vars()

    assert "DB_NAME" in missing
    assert "ADYEN_MERCHANT_ACCOUNT" in missing


def test_live_adyen_requires_endpoint_prefix(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("ADYEN_ENVIRONMENT", "LIVE")

    assert "ADYEN_LIVE_ENDPOINT_PREFIX" in settings_module.collect_missing_required_env_vars()

    monkeypatch.setenv("ADYEN_LIVE_ENDPOINT_PREFIX", "1797a841fbb37ca7-AdyenDemo")
    assert settings_module.collect_missing_required_env_vars() == []


def test_collect_missing_required_env_vars_switches_by_payment_provider(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("PAYMENT_PROVIDERS", "stripe")
    monkeypatch.setenv("PAYMENT_DEFAULT_PROVIDER", "stripe")
    monkeypatch.delenv("ADYEN_API_KEY", raising=False)

    missing = settings_module.collect_missing_required_env_vars()

    assert "STRIPE_API_KEY" in missing
    assert "ADYEN_API_KEY" not in missing


def test_production_requires_jwt_and_cookie_secrets(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("ENV", "production")

    missing = settings_module.collect_missing_required_env_vars()

    assert "JWT_SECRET" in missing
    assert "COOKIE_SECRET" in missing


def test_production_adyen_requires_webhook_hmac_key(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("ENV", "production")

    assert "ADYEN_HMAC_KEY" in settings_module.collect_missing_required_env_vars()

    monkeypatch.setenv("ADYEN_HMAC_KEY", "44782DEF547AAA06C910C43932B1EB0C71FC68D9D0C057550C48EC2ACF6BA056")
    assert "ADYEN_HMAC_KEY" not in settings_module.collect_missing_required_env_vars()


def test_validate_required_environment_raises_with_missing_and_invalid_values(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("PAYMENT_DEFAULT_PROVIDER", "stripe")
    monkeypatch.setenv("PAYMENT_HTTP_TIMEOUT_SECONDS", "-1")
    monkeypatch.setenv("ADYEN_ENVIRONMENT", "STAGING")
    monkeypatch.delenv("ADYEN_RETURN_URL", raising=False)

    with pytest.raises(RuntimeError) as exc_info:
        settings_module.validate_required_environment()

    message = str(exc_info.value)
    assert "Missing required environment variables" in message
    assert "- ADYEN_RETURN_URL" in message
    assert "Invalid environment values" in message
    assert "PAYMENT_DEFAULT_PROVIDER must be one of the enabled PAYMENT_PROVIDERS" in message
    assert "PAYMENT_HTTP_TIMEOUT_SECONDS must be a positive number" in message
    assert "ADYEN_ENVIRONMENT must be one of: TEST, LIVE" in message


def test_unknown_payment_provider_is_invalid(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("PAYMENT_PROVIDERS", "adyen,paypal")

    invalid = settings_module.collect_invalid_env_values()

    assert "PAYMENT_PROVIDERS must be a list drawn from: adyen, stripe, system" in invalid


def test_get_settings_builds_frozen_settings(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("STORE_CORS", "http://localhost:8000, http://localhost:3000")
    monkeypatch.setenv("ADMIN_CORS", "http://localhost:3000,http://localhost:7001")
    monkeypatch.setenv("PUBLISHABLE_API_KEYS", "pk_1,pk_2")

    settings = settings_module.get_settings()

    assert settings.payment_providers == ("adyen", "system")
    assert settings.payment_default_provider == "adyen"
    assert settings.publishable_api_keys == ("pk_1", "pk_2")
    assert settings.cors_origins == ("http://localhost:8000", "http://localhost:3000", "http://localhost:7001")
    assert settings.jwt_secret == "supersecret"
    assert settings.payment_http_timeout_seconds == 15.0
    with pytest.raises(AttributeError):
        settings.env = "production"  # type: ignore[misc]
