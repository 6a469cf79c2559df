from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_PAYMENT_PROVIDERS = {"adyen", "stripe", "system"}
SUPPORTED_ADYEN_ENVIRONMENTS = {"TEST", "LIVE"}
DEFAULT_PAYMENT_HTTP_TIMEOUT_SECONDS = 15.0


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in {"1", "true", "yes"}


def _enabled_payment_providers() -> tuple[str, ...]:
    return tuple(item.lower() for item in _split_csv(_env("PAYMENT_PROVIDERS") or "system"))


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    for var_name in ("MONGO_URL", "DB_NAME"):
        if _env(var_name) is None:
            missing.append(var_name)

    providers = _enabled_payment_providers()
    if "adyen" in providers:
        for var_name in ("ADYEN_API_KEY", "ADYEN_MERCHANT_ACCOUNT", "ADYEN_RETURN_URL"):
            if _env(var_name) is None:
                missing.append(var_name)
        if (_env("ADYEN_ENVIRONMENT") or "TEST").upper() == "LIVE":
            if _env("ADYEN_LIVE_ENDPOINT_PREFIX") is None:
                missing.append("ADYEN_LIVE_ENDPOINT_PREFIX")
    if "stripe" in providers and _env("STRIPE_API_KEY") is None:
        missing.append("STRIPE_API_KEY")

    if (_env("ENV") or "development").lower() == "production":
        for var_name in ("JWT_SECRET", "COOKIE_SECRET"):
            if _env(var_name) is None:
                missing.append(var_name)
        if "adyen" in providers and _env("ADYEN_HMAC_KEY") is None:
            missing.append("ADYEN_HMAC_KEY")

    return sorted(set(missing))


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    providers = _enabled_payment_providers()
    unknown = [name for name in providers if name not in SUPPORTED_PAYMENT_PROVIDERS]
    if unknown or not providers:
        invalid_values.append("PAYMENT_PROVIDERS must be a list drawn from: adyen, stripe, system")

    default_provider = _env("PAYMENT_DEFAULT_PROVIDER")
    if default_provider is not None and default_provider.lower() not in providers:
        invalid_values.append("PAYMENT_DEFAULT_PROVIDER must be one of the enabled PAYMENT_PROVIDERS")

    adyen_environment = (_env("ADYEN_ENVIRONMENT") or "TEST").upper()
    if adyen_environment not in SUPPORTED_ADYEN_ENVIRONMENTS:
        invalid_values.append("ADYEN_ENVIRONMENT must be one of: TEST, LIVE")

    timeout = _env("PAYMENT_HTTP_TIMEOUT_SECONDS")
    if timeout is not None:
        try:
            parsed_timeout = float(timeout)
            if parsed_timeout <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append("PAYMENT_HTTP_TIMEOUT_SECONDS must be a positive number")

    log_format = _env("LOG_FORMAT")
    if log_format is not None and log_format.lower() not in {"json", "console"}:
        invalid_values.append("LOG_FORMAT must be one of: json, console")

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    mongo_url: str
    db_name: str
    jwt_secret: str
    cookie_secret: str
    store_cors: tuple[str, ...]
    admin_cors: tuple[str, ...]
    auth_cors: tuple[str, ...]
    publishable_api_keys: tuple[str, ...]
    debug_include_error_details: bool
    payment_providers: tuple[str, ...]
    payment_default_provider: str
    payment_http_timeout_seconds: float
    adyen_api_key: str | None
    adyen_merchant_account: str | None
    adyen_return_url: str | None
    adyen_environment: str
    adyen_live_endpoint_prefix: str | None
    adyen_hmac_key: str | None
    stripe_api_key: str | None
    stripe_webhook_secret: str | None
    stripe_capture: bool
    pricing_service_url: str | None

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def cors_origins(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(self.store_cors + self.admin_cors + self.auth_cors))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    payment_providers = _enabled_payment_providers()
    default_provider = (_env("PAYMENT_DEFAULT_PROVIDER") or payment_providers[0]).lower()

    return Settings(
        env=os.getenv("ENV", "development"),
        mongo_url=_env("MONGO_URL") or "",
        db_name=_env("DB_NAME") or "",
        jwt_secret=_env("JWT_SECRET") or "supersecret",
        cookie_secret=_env("COOKIE_SECRET") or "supersecret",
        store_cors=_split_csv(os.getenv("STORE_CORS")),
        admin_cors=_split_csv(os.getenv("ADMIN_CORS")),
        auth_cors=_split_csv(os.getenv("AUTH_CORS")),
        publishable_api_keys=_split_csv(os.getenv("PUBLISHABLE_API_KEYS")),
        debug_include_error_details=_flag("DEBUG_INCLUDE_ERROR_DETAILS"),
        payment_providers=payment_providers,
        payment_default_provider=default_provider,
        payment_http_timeout_seconds=float(
            _env("PAYMENT_HTTP_TIMEOUT_SECONDS") or DEFAULT_PAYMENT_HTTP_TIMEOUT_SECONDS
        ),
        adyen_api_key=_env("ADYEN_API_KEY"),
        adyen_merchant_account=_env("ADYEN_MERCHANT_ACCOUNT"),
        adyen_return_url=_env("ADYEN_RETURN_URL"),
        adyen_environment=(_env("ADYEN_ENVIRONMENT") or "TEST").upper(),
        adyen_live_endpoint_prefix=_env("ADYEN_LIVE_ENDPOINT_PREFIX"),
        adyen_hmac_key=_env("ADYEN_HMAC_KEY"),
        stripe_api_key=_env("STRIPE_API_KEY"),
        stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
        stripe_capture=_flag("STRIPE_CAPTURE"),
        pricing_service_url=_env("PRICING_SERVICE_URL"),
    )
