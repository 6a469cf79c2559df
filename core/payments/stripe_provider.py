from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import structlog
from starlette.concurrency import run_in_threadpool

from core.currency import get_amount_from_smallest_unit, get_smallest_unit
from core.logging import BusinessEvents
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

STRIPE_INTENT_STATUS_MAP: dict[str, PaymentSessionStatus] = {
    "requires_payment_method": PaymentSessionStatus.PENDING,
    "requires_confirmation": PaymentSessionStatus.PENDING,
    "processing": PaymentSessionStatus.PENDING,
    "requires_action": PaymentSessionStatus.REQUIRES_MORE,
    "requires_capture": PaymentSessionStatus.AUTHORIZED,
    "succeeded": PaymentSessionStatus.CAPTURED,
    "canceled": PaymentSessionStatus.CANCELED,
}

STRIPE_WEBHOOK_EVENT_MAP: dict[str, PaymentActions] = {
    "payment_intent.amount_capturable_updated": PaymentActions.AUTHORIZED,
    "payment_intent.succeeded": PaymentActions.SUCCESSFUL,
    "payment_intent.payment_failed": PaymentActions.FAILED,
    "payment_intent.canceled": PaymentActions.CANCELED,
    "refund.created": PaymentActions.REFUNDED,
}


@dataclass(frozen=True)
class StripeOptions:
    api_key: str | None
    webhook_secret: str | None = None
    capture: bool = False


def _to_dict(stripe_object: Any) -> dict[str, Any]:
    return json.loads(json.dumps(stripe_object, default=str))


class StripePaymentProvider:
    provider_name = PaymentProviderName.STRIPE.value

    @staticmethod
    def validate_options(options: StripeOptions) -> None:
        if not options.api_key:
            raise PaymentConfigurationError("Required option `api_key` is missing for the Stripe payment provider")

    def __init__(self, options: StripeOptions) -> None:
        self.validate_options(options)
        try:
            import stripe
        except ModuleNotFoundError as err:
            raise RuntimeError("stripe package is required for StripePaymentProvider") from err

        self._stripe = stripe
        self._stripe.api_key = options.api_key
        self._options = options

    def _error(self, message: str, err: BaseException | PaymentProviderError) -> PaymentProviderError:
        provider_error = build_error(message, err)
        log.warning(
            BusinessEvents.PAYMENT_PROVIDER_ERROR,
            provider=self.provider_name,
            error=provider_error.error,
            code=provider_error.code,
            detail=provider_error.detail,
        )
        return provider_error

    async def initiate_payment(
        self, payload: InitiatePaymentInput
    ) -> ProviderSessionResponse | PaymentProviderError:
        context = payload.context
        try:
            amount = get_smallest_unit(payload.amount, payload.currency_code)
            log.info(
                BusinessEvents.PAYMENT_INITIATE,
                provider=self.provider_name,
                session_id=context.session_id,
                amount=amount,
                currency=payload.currency_code.lower(),
            )
            intent = await run_in_threadpool(
                self._stripe.PaymentIntent.create,
                amount=amount,
                currency=payload.currency_code.lower(),
                capture_method="automatic" if self._options.capture else "manual",
                metadata={"session_id": context.session_id},
                receipt_email=context.email,
                idempotency_key=context.session_id,
            )
        except Exception as err:
            return self._error("An error occurred in initiate_payment during the creation of the Stripe intent", err)

        return ProviderSessionResponse(data=_to_dict(intent))

    async def retrieve_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        intent_id = (data or {}).get("id")
        if not intent_id:
            return PaymentProviderError(
                error="An error occurred in retrieve_payment",
                code="InvalidSessionData",
                detail="Stripe session data is missing the payment intent id",
            )
        try:
            intent = await run_in_threadpool(self._stripe.PaymentIntent.retrieve, intent_id)
        except Exception as err:
            return self._error("An error occurred in retrieve_payment", err)
        return _to_dict(intent)

    async def _retrieve_status(self, data: dict[str, Any]) -> tuple[PaymentSessionStatus, dict[str, Any]] | PaymentProviderError:
        intent = await self.retrieve_payment(data)
        if isinstance(intent, PaymentProviderError):
            return intent
        status = STRIPE_INTENT_STATUS_MAP.get(str(intent.get("status") or ""), PaymentSessionStatus.PENDING)
        return status, intent

    async def authorize_payment(
        self, data: dict[str, Any], context: dict[str, Any] | None = None
    ) -> ProviderStatusResponse | PaymentProviderError:
        result = await self._retrieve_status(data)
        if isinstance(result, PaymentProviderError):
            return result
        status, intent = result
        log.info(BusinessEvents.PAYMENT_AUTHORIZE, provider=self.provider_name, status=status.value)
        return ProviderStatusResponse(status=status, data=intent)

    async def update_payment(self, data: dict[str, Any]) -> ProviderStatusResponse | PaymentProviderError:
        result = await self._retrieve_status(data)
        if isinstance(result, PaymentProviderError):
            return result
        status, intent = result
        return ProviderStatusResponse(status=status, data=intent)

    async def capture_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        intent_id = (data or {}).get("id")
        try:
            log.info(BusinessEvents.PAYMENT_CAPTURE, provider=self.provider_name, intent_id=intent_id)
            intent = await run_in_threadpool(self._stripe.PaymentIntent.capture, intent_id)
        except Exception as err:
            return self._error("An error occurred in capture_payment during the capture of the Stripe intent", err)
        return _to_dict(intent)

    async def refund_payment(
        self, data: dict[str, Any], refund_amount: int
    ) -> dict[str, Any] | PaymentProviderError:
        intent_id = (data or {}).get("id")
        try:
            log.info(BusinessEvents.PAYMENT_REFUND, provider=self.provider_name, intent_id=intent_id, amount=refund_amount)
            refund = await run_in_threadpool(
                self._stripe.Refund.create,
                payment_intent=intent_id,
                amount=int(refund_amount),
            )
        except Exception as err:
            return self._error("An error occurred in refund_payment during the refund of the Stripe intent", err)
        result = _to_dict(refund)
        return {**result, REFUND_REFERENCE_KEY: result.get("id")}

    async def cancel_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        intent_id = (data or {}).get("id")
        if not intent_id:
            return {}
        try:
            log.info(BusinessEvents.PAYMENT_CANCEL, provider=self.provider_name, intent_id=intent_id)
            intent = await run_in_threadpool(self._stripe.PaymentIntent.cancel, intent_id)
        except Exception as err:
            return self._error("An error occurred in cancel_payment during the cancellation of the Stripe intent", err)
        return _to_dict(intent)

    async def delete_payment(self, data: dict[str, Any]) -> dict[str, Any] | PaymentProviderError:
        return await self.cancel_payment(data)

    async def get_webhook_action_and_data(self, payload: ProviderWebhookPayload) -> WebhookActionResult:
        signature = payload.headers.get("stripe-signature") or payload.headers.get("Stripe-Signature")
        if not signature or not self._options.webhook_secret:
            log.warning(BusinessEvents.PAYMENT_WEBHOOK_REJECTED, provider=self.provider_name, reason="missing_signature")
            return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)

        try:
            event = self._stripe.Webhook.construct_event(
                payload=payload.raw_data,
                sig_header=signature,
                secret=self._options.webhook_secret,
            )
        except Exception as err:
            log.warning(
                BusinessEvents.PAYMENT_WEBHOOK_REJECTED,
                provider=self.provider_name,
                reason="invalid_signature",
                error=str(err),
            )
            return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)

        action = STRIPE_WEBHOOK_EVENT_MAP.get(event["type"])
        if action is None:
            return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)

        stripe_object = event["data"]["object"]
        if action == PaymentActions.REFUNDED:
            session_id = await self._session_id_for_refund(stripe_object)
            raw_amount = stripe_object.get("amount")
        else:
            session_id = (stripe_object.get("metadata") or {}).get("session_id")
            raw_amount = (
                stripe_object.get("amount_received") if action == PaymentActions.SUCCESSFUL else stripe_object.get("amount")
            )
        if not session_id:
            return WebhookActionResult(action=PaymentActions.NOT_SUPPORTED)

        amount = None
        if raw_amount is not None and stripe_object.get("currency"):
            amount = get_amount_from_smallest_unit(raw_amount, stripe_object["currency"])

        return WebhookActionResult(
            action=action,
            data=WebhookActionData(session_id=str(session_id), amount=amount, reference=stripe_object.get("id")),
        )

    async def _session_id_for_refund(self, refund: dict[str, Any]) -> str | None:
        """Refunds carry no session metadata; the session lives on their PaymentIntent."""
        intent_id = refund.get("payment_intent")
        if not intent_id:
            return None
        try:
            intent = await run_in_threadpool(self._stripe.PaymentIntent.retrieve, intent_id)
        except Exception as err:
            log.warning(
                BusinessEvents.PAYMENT_WEBHOOK_REJECTED,
                provider=self.provider_name,
                reason="payment_intent_lookup_failed",
                intent_id=intent_id,
                error=str(err),
            )
            return None
        return (_to_dict(intent).get("metadata") or {}).get("session_id")
