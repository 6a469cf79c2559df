from fastapi import APIRouter, Request

from core.response_envelope import document_response
from services.payment_service import process_webhook

router = APIRouter(prefix="/payment", tags=["Payment Webhooks"])


@router.post("/{provider_id}")
@document_response(message="Webhook processed", response_codes={400: "Invalid webhook body"})
async def payment_webhook(provider_id: str, request: Request):
    """
    Receive payment webhooks for a specific provider.

    Accepted `provider_id` path values:
    - `adyen`
    - `stripe`
    """
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}
    return await process_webhook(provider_id=provider_id, body=body, headers=headers)
