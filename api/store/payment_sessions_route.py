from fastapi import APIRouter, Depends, status

from core.response_envelope import document_response
from schemas.payment_schema import AuthorizeIn, PaymentSessionIn, RefreshIn
from security.publishable_key import verify_publishable_key
from services.payment_service import (
    authorize_payment_session,
    create_payment_session,
    refresh_payment_session,
)

router = APIRouter(tags=["Store Payment Sessions"], dependencies=[Depends(verify_publishable_key)])

PROVIDER_ERROR_CODES = {
    422: "Provider rejected the request (e.g. missing shipping address)",
    502: "Payment gateway error",
}


@router.post("/carts/{cart_id}/payment-sessions")
@document_response(
    message="Payment session created",
    status_code=status.HTTP_201_CREATED,
    response_codes={404: "Cart not found", **PROVIDER_ERROR_CODES},
)
async def initiate_payment_session(cart_id: str, payload: PaymentSessionIn):
    session = await create_payment_session(
        cart_id=cart_id,
        provider_id=payload.provider_id,
        context=payload.context,
    )
    return {"payment_session": session}


@router.post("/payment-sessions/{session_id}/authorize")
@document_response(
    message="Payment session authorized",
    response_codes={404: "Payment session not found", 409: "Invalid session state", **PROVIDER_ERROR_CODES},
)
async def authorize_session(session_id: str, payload: AuthorizeIn | None = None):
    context = payload.context if payload else None
    return {"payment_session": await authorize_payment_session(session_id, context=context)}


@router.post("/payment-sessions/{session_id}/refresh")
@document_response(
    message="Payment session refreshed",
    response_codes={404: "Payment session not found", 409: "Invalid session state", **PROVIDER_ERROR_CODES},
)
async def refresh_session(session_id: str, payload: RefreshIn):
    """
    Merge storefront-supplied session keys (for Adyen, `sessionResult` from the
    drop-in redirect) into the stored data and re-read the gateway status.
    """
    return {"payment_session": await refresh_payment_session(session_id, data=payload.data)}
