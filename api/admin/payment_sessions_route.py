from fastapi import APIRouter, Depends

from core.response_envelope import document_response
from schemas.payment_schema import RefundIn
from security.auth import verify_admin_token
from services.payment_service import (
    cancel_payment_session,
    capture_payment_session,
    get_payment_session,
    refund_payment_session,
)

router = APIRouter(
    prefix="/payment-sessions",
    tags=["Admin Payment Sessions"],
    dependencies=[Depends(verify_admin_token)],
)


@router.get("/{session_id}")
@document_response(message="Payment session fetched", response_codes={401: "Unauthorized", 404: "Not found"})
async def fetch_payment_session(session_id: str):
    return {"payment_session": await get_payment_session(session_id)}


@router.post("/{session_id}/capture")
@document_response(
    message="Payment captured",
    response_codes={401: "Unauthorized", 409: "Session is not authorized", 502: "Payment gateway error"},
)
async def capture_session(session_id: str):
    return {"payment_session": await capture_payment_session(session_id)}


@router.post("/{session_id}/refund")
@document_response(
    message="Payment refunded",
    response_codes={
        401: "Unauthorized",
        409: "Session is not captured",
        422: "Refund exceeds captured amount",
        502: "Payment gateway error",
    },
)
async def refund_session(session_id: str, payload: RefundIn):
    return {"payment_session": await refund_payment_session(session_id, amount_minor=payload.amount_minor)}


@router.post("/{session_id}/cancel")
@document_response(
    message="Payment canceled",
    response_codes={401: "Unauthorized", 409: "Session already captured", 502: "Payment gateway error"},
)
async def cancel_session(session_id: str):
    return {"payment_session": await cancel_payment_session(session_id)}
