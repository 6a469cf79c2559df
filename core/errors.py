from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
    AUTH_PUBLISHABLE_KEY_INVALID = "AUTH_PUBLISHABLE_KEY_INVALID"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CART_NOT_EDITABLE = "CART_NOT_EDITABLE"
    PRICING_PROVIDER_ERROR = "PRICING_PROVIDER_ERROR"
    PAYMENT_PROVIDER_ERROR = "PAYMENT_PROVIDER_ERROR"
    PAYMENT_PROVIDER_NOT_CONFIGURED = "PAYMENT_PROVIDER_NOT_CONFIGURED"
    PAYMENT_SESSION_INVALID_STATE = "PAYMENT_SESSION_INVALID_STATE"
    PAYMENT_WEBHOOK_INVALID = "PAYMENT_WEBHOOK_INVALID"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# Provider error codes that describe a problem with the request rather than the gateway.
CLIENT_SIDE_PROVIDER_ERROR_CODES = frozenset({"NoShippingAddress", "InvalidSessionData"})


def auth_invalid_token(details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        code=ErrorCode.AUTH_INVALID_TOKEN,
        message="Invalid token",
        details=details,
    )


def publishable_key_invalid() -> AppException:
    return AppException(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.AUTH_PUBLISHABLE_KEY_INVALID,
        message="A valid publishable key is required to proceed with the request",
    )


def resource_not_found(resource: str, resource_id: str | None = None) -> AppException:
    details = {"resource": resource}
    if resource_id:
        details["resource_id"] = resource_id
    return AppException(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.RESOURCE_NOT_FOUND,
        message=f"{resource} not found",
        details=details,
    )


def payment_provider_error(*, provider_id: str, error: str, code: str = "", detail: str = "") -> AppException:
    status_code = (
        status.HTTP_422_UNPROCESSABLE_ENTITY
        if code in CLIENT_SIDE_PROVIDER_ERROR_CODES
        else status.HTTP_502_BAD_GATEWAY
    )
    return AppException(
        status_code=status_code,
        code=ErrorCode.PAYMENT_PROVIDER_ERROR,
        message=error,
        details={"provider_id": provider_id, "code": code, "detail": detail},
    )
