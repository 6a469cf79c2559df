from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.currency import get_amount_from_smallest_unit, get_smallest_unit
from core.logging import BusinessEvents
from core.payments.adyen_client import AdyenCheckoutClient, AdyenEnvironment
from core.payments.types import (
    REFUND_REFERENCE_KEY,
    InitiatePaymentInput,
    PaymentActions,
    PaymentConfigurationError,
    PaymentProviderError,
    PaymentProviderName,
    PaymentSessionStatus,
    ProviderSessionResponse,
    ProviderStatusResponse,
    ProviderWebhookPayload,
    WebhookActionData,
    WebhookActionResult,
    build_error,
)

log = structlog.get_logger(__name__)

SESSION_DATA_SCHEMA_VERSION = 1

# Keys are lower-cased with spaces, dashes and underscores removed.
ADYEN_SESSION_STATUS_MAP: dict[str, PaymentSessionStatus] = {
    "paymentpending": PaymentSessionStatus.PENDING,
    "canceled": PaymentSessionStatus.CANCELED,
    "completed": PaymentSessionStatus.AUTHORIZED,
    "refused": PaymentSessionStatus.ERROR,
}

ADYEN_WEBHOOK_EVENT_MAP: dict[str, PaymentActions] = {
    "AUTHORISATION": PaymentActions.AUTHORIZED,
    "CAPTURE": PaymentActions.SUCCESSFUL,
    "CAPTURE_FAILED": PaymentActions.FAILED,
    "REFUND": PaymentActions.REFUNDED,
    "CANCELLATION": PaymentActions.CANCELED,
    "CANCEL_OR_REFUND": PaymentActions.CANCELED,
}


@dataclass(frozen=True)
class AdyenOptions:
    api_key: str | None
    merchant_account: str | None
    return_url: str | None
    environment: str = AdyenEnvironment.TEST.value
    live_endpoint_prefix: str | None = None
    hmac_key: str | None = None
    timeout_seconds: float = 15.0


class AdyenAmount(BaseModel):
    currency: str
    value: int


class AdyenSessionData(BaseModel):
    """Typed view over the session blob the engine persists for Adyen."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    schema_version: int = SESSION_DATA_SCHEMA_VERSION
    id: str | None = None
    session_data: str | None = Field(default=None, alias="sessionData")
    session_result: str | None = Field(default=None, alias="sessionResult")
    reference: str | None = None
    psp_reference: str | None = Field(default=None, alias="pspReference")
    amount: AdyenAmount | None = None
    merchant_account: str | None = Field(default=None, alias="merchantAccount")


def map_session_status(raw_status: Any) -> PaymentSessionStatus:
    key = str(raw_status or "").replace(" ", "").replace("_", "").replace("-", "").lower()
    return ADYEN_SESSION_STATUS_MAP.get(key, PaymentSessionStatus.PENDING)


def notification_hmac_signature(item: dict[str, Any], hmac_key: str) -> str:
    amount = item.get("amount")
    if not isinstance(amount, dict):
        amount = {}
    signing_fields = [
        item.get("pspReference"),
        item.get("originalReference"),
        item.get("merchantAccountCode"),
        item.get("merchantReference"),
        amount.get("value"),
        amount.get("currency"),
        item.get("eventCode"),
        item.get("success"),
    ]
    signing_string = ":".join("" if value is None else str(value) for value in signing_fields)
    digest = hmac.new(bytes.fromhex(hmac_key), signing_string.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def authorised_psp_reference(session_result: dict[str, Any]) -> str | None:
    """Payment reference of the authorised attempt listed in a session result, if any."""
    payments = session_result.get("payments")
    if not isinstance(payments, list):
        return None
    for payment in payments:
        if not isinstance(payment, dict) or not payment.get("pspReference"):
            continue
        if str(payment.get("resultCode") or "").lower() == "authorised":
            return str(payment["pspReference"])
    return None


class AdyenPaymentProvider:
    provider_name = PaymentProviderName.ADYEN.value

    @staticmethod
    def validate_options(options: AdyenOptions) -> None:
        for option_name in ("api_key", "merchant_account", "return_url"):
            if not getattr(options, option_name, None):
                raise PaymentConfigurationError(
                    f"Required option `{option_name}` is missing for the Adyen payment provider"
                )

        environment = str(options.environment or "").upper()
        if environment not in {env.value for env in AdyenEnvironment}:
            raise PaymentConfigurationError(
                f"Option `environment` must be TEST or LIVE for the Adyen payment provider, got {options.environment!r}"
            )
        if environment == AdyenEnvironment.LIVE.value and not options.live_endpoint_prefix:
            raise PaymentConfigurationError(
                "Option `live_endpoint_prefix` is required when the Adyen environment is LIVE"
            )

    def __init__(self, options: AdyenOptions, *, client: AdyenCheckoutClient | None = None) -> None:
        self.validate_options(options)
        self._options = options
        self._client = client or AdyenCheckoutClient(
            api_key=options.api_key or "",
            environment=options.environment.upper(),
            live_endpoint_prefix=options.live_endpoint_prefix,
            timeout=options.timeout_seconds,
        )

    @property
    def options(self) -> AdyenOptions:
        return self._options

    def _error(self, message: str, err: BaseException | PaymentProviderError, **log_fields: Any) -> PaymentProviderError:
        provider_error = build_error(message, err)
        log.warning(
            BusinessEvents.PAYMENT_PROVIDER_ERROR,
            provider=self.provider_name,
            error=provider_error.error,
            code=provider_error.code,
            detail=provider_error.detail,
            **log_fields,
        )
        return provider_error

    @staticmethod
    def _parse_session_data(data: dict[str, Any]) -> AdyenSessionData | PaymentProviderError:
        try:
            return AdyenSessionData.model_validate(data or {})
        except ValidationError as err:
            return PaymentProviderError(
                error="Adyen session data does not match the expected shape",
                code="InvalidSessionData",
                detail=str(err),
            )

    async def initiate_payment(
        self, payload: InitiatePaymentInput
    ) -> ProviderSessionResponse | PaymentProviderError:
        message = "An error occurred in initiate_payment during the creation of the Adyen session"
        context = payload.context
        country_code = context.country_code

        if not country_code:
            return self._error(
                message,
                PaymentProviderError(
                    error="No shipping address found on cart",
                    code="NoShippingAddress",
                ),
                session_id=context.session_id,
            )

        try:
            request = {
                "reference": context.session_id,
                "amount": {
                    "currency": payload.currency_code.upper(),
                    "value": get_smallest_unit(payload.amount, payload.currency_code),
                },
                "merchantAccount": self._options.merchant_account,
                "countryCode": country_code,
                "returnUrl": self._options.return_url,
            }
            if context.email:
                request["shopperEmail"] = context.email
            if context.customer_id:
                request["shopperReference"] = context.customer_id

            log.info(
                BusinessEvents.PAYMENT_INITIATE,
                provider=self.provider_name,
                session_id=context.session_id,
                amount=request["amount"]["value"],
                currency=request["amount"]["currency"],
            )
            session_response = await self._client.create_session(request)
        except Exception as err:
            return self._error(message, err, session_id=context.session_id)

        return ProviderSessionResponse(data=dict(session_response))

    async def retrieve_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        session = self._parse_session_data(data)
        if isinstance(session, PaymentProviderError):
            return session
        if not session.id:
            return PaymentProviderError(
                error="An error occurred in retrieve_payment",
                code="InvalidSessionData",
                detail="Adyen session data is missing the session id",
            )

        try:
            return await self._client.get_session_result(session.id, session.session_result)
        except Exception as err:
            return self._error("An error occurred in retrieve_payment", err, adyen_session_id=session.id)

    async def _retrieve_status(self, data: dict[str, Any]) -> ProviderStatusResponse | PaymentProviderError:
        session = await self.retrieve_payment(data)
        if isinstance(session, PaymentProviderError):
            return session

        data = dict(data or {})
        psp_reference = authorised_psp_reference(session)
        if psp_reference:
            data["pspReference"] = psp_reference
        return ProviderStatusResponse(status=map_session_status(session.get("status")), data=data)

    async def authorize_payment(
        self, data: dict[str, Any], context: dict[str, Any] | None = None
    ) -> ProviderStatusResponse | PaymentProviderError:
        result = await self._retrieve_status(data)
        if isinstance(result, PaymentProviderError):
            return result

        log.info(BusinessEvents.PAYMENT_AUTHORIZE, provider=self.provider_name, status=result.status.value)
        return result

    async def update_payment(self, data: dict[str, Any]) -> ProviderStatusResponse | PaymentProviderError:
        return await self._retrieve_status(data)

    async def capture_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        message = "An error occurred in capture_payment during the capture of the Adyen session"
        session = self._parse_session_data(data)
        if isinstance(session, PaymentProviderError):
            return session
        if not session.psp_reference or session.amount is None:
            return PaymentProviderError(
                error=message,
                code="InvalidSessionData",
                detail="Capturing requires a pspReference and an amount in the session data",
            )

        psp_reference = session.psp_reference
        try:
            log.info(
                BusinessEvents.PAYMENT_CAPTURE,
                provider=self.provider_name,
                psp_reference=psp_reference,
                amount=session.amount.value,
                currency=session.amount.currency,
            )
            response = await self._client.capture_authorised_payment(
                psp_reference,
                {
                    "amount": {"currency": session.amount.currency, "value": session.amount.value},
                    "merchantAccount": self._options.merchant_account,
                },
            )
        except Exception as err:
            return self._error(message, err, psp_reference=psp_reference)

        return {**response, "pspReference": psp_reference}

    async def refund_payment(
        self, data: dict[str, Any], refund_amount: int
    ) -> dict[str, Any] | PaymentProviderError:
        message = "An error occurred in refund_payment during the refund of the Adyen session"
        session = self._parse_session_data(data)
        if isinstance(session, PaymentProviderError):
            return session
        if not session.psp_reference or session.amount is None:
            return PaymentProviderError(
                error=message,
                code="InvalidSessionData",
                detail="Refunding requires a pspReference and an amount in the session data",
            )

        psp_reference = session.psp_reference
        try:
            log.info(
                BusinessEvents.PAYMENT_REFUND,
                provider=self.provider_name,
                psp_reference=psp_reference,
                amount=refund_amount,
                currency=session.amount.currency,
            )
            response = await self._client.refund_captured_payment(
                psp_reference,
                {
                    "amount": {"currency": session.amount.currency, "value": int(refund_amount)},
                    "merchantAccount": self._options.merchant_account,
                },
            )
        except Exception as err:
            return self._error(message, err, psp_reference=psp_reference)

        # The response pspReference identifies the refund, the REFUND webhook reports the same one.
        return {
            **response,
            "paymentPspReference": psp_reference,
            REFUND_REFERENCE_KEY: response.get("pspReference"),
        }

    async def cancel_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        psp_reference = (data or {}).get("pspReference")
        if not psp_reference:
            return {}

        try:
            log.info(BusinessEvents.PAYMENT_CANCEL, provider=self.provider_name, psp_reference=psp_reference)
            response = await self._client.refund_or_cancel_payment(
                psp_reference,
                {"merchantAccount": self._options.merchant_account},
            )
        except Exception as err:
            return self._error(
                "An error occurred in cancel_payment during the cancellation of the Adyen session",
                err,
                psp_reference=psp_reference,
            )

        return {**response, "pspReference": psp_reference}

    async def delete_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        return await self.cancel_payment(data)

    def _verify_notification(self, item: dict[str, Any]) -> bool:
        if not self._options.hmac_key:
            return False
        additional_data = item.get("additionalData")
        provided = additional_data.get("hmacSignature") if isinstance(additional_data, dict) else None
        if not provided:
            return False
        try:
            expected = notification_hmac_signature(item, self._options.hmac_key)
        except (ValueError, binascii.Error):
            return False
        return hmac.compare_digest(expected, str(provided))

    def _reject(self, reason: str, **log_fields: Any) -> WebhookActionResult:
        log.warning(BusinessEvents.PAYMENT_WEBHOOK_REJECTED, provider=self.provider_name, reason=reason, **log_fields)
        return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)

    async def get_webhook_action_and_data(self, payload: ProviderWebhookPayload) -> WebhookActionResult:
        items = payload.data.get("notificationItems")
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            return self._reject("malformed_notification")

        item = items[0].get("NotificationRequestItem")
        if not isinstance(item, dict):
            return self._reject("malformed_notification")

        # Unsigned notifications are never trusted.
        if not self._options.hmac_key:
            return self._reject("hmac_key_not_configured", psp_reference=item.get("pspReference"))
        if not self._verify_notification(item):
            return self._reject("invalid_hmac_signature", psp_reference=item.get("pspReference"))

        event_code = str(item.get("eventCode") or "").upper()
        action = ADYEN_WEBHOOK_EVENT_MAP.get(event_code)
        session_id = item.get("merchantReference")
        if action is None or not session_id:
            return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)

        succeeded = str(item.get("success", "")).lower() == "true"
        if not succeeded:
            if action not in {PaymentActions.AUTHORIZED, PaymentActions.SUCCESSFUL}:
                return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)
            action = PaymentActions.FAILED

        amount = None
        raw_amount = item.get("amount")
        if raw_amount is not None and not isinstance(raw_amount, dict):
            return self._reject("malformed_amount", psp_reference=item.get("pspReference"))
        if raw_amount and raw_amount.get("currency") and raw_amount.get("value") is not None:
            try:
                amount = get_amount_from_smallest_unit(raw_amount["value"], raw_amount["currency"])
            except (TypeError, ValueError):
                return self._reject("malformed_amount", psp_reference=item.get("pspReference"))

        psp_reference = str(item["pspReference"]) if item.get("pspReference") else None
        session_data: dict[str, Any] = {}
        if action == PaymentActions.AUTHORIZED and psp_reference:
            session_data["pspReference"] = psp_reference

        return WebhookActionResult(
            action=action,
            data=WebhookActionData(
                session_id=str(session_id),
                amount=amount,
                reference=psp_reference,
                session_data=session_data,
            ),
        )
