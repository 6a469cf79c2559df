from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.responses import Response

_RESPONSE_DOC_ATTR = "__response_doc_config__"
_DEFAULT_ERROR_CODE = "HTTP_EXCEPTION"


@dataclass(frozen=True)
class ResponseDocConfig:
    message: str
    status_code: int
    description: str
    success_example: Any | None = None
    response_codes: dict[int, str] = field(default_factory=dict)


def _envelope(success: bool, message: str, data: Any, request_id: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": success, "message": message, "data": data}
    if request_id:
        payload["requestId"] = request_id
    return payload


def success_payload(data: Any, message: str = "Success", *, request_id: str | None = None) -> dict[str, Any]:
    return _envelope(True, message, data, request_id)


def error_payload(message: str, data: Any = None, *, request_id: str | None = None) -> dict[str, Any]:
    return _envelope(False, message, data, request_id)


def error_response(
    *,
    status_code: int,
    message: str,
    data: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=jsonable_encoder(error_payload(message, data, request_id=request_id)),
    )


def _parse_http_exception_detail(detail: Any) -> tuple[str, dict[str, Any]]:
    """Split an ``HTTPException.detail`` into the envelope message and ``{code, details}``."""
    if isinstance(detail, dict):
        message = detail.get("message")
        if isinstance(message, str) and message.strip():
            return message, {"code": detail.get("code", _DEFAULT_ERROR_CODE), "details": detail.get("details")}
        nested = detail.get("detail")
        if isinstance(nested, str) and nested.strip():
            return nested, {"code": _DEFAULT_ERROR_CODE, "details": detail}
        return "Request failed", {"code": _DEFAULT_ERROR_CODE, "details": detail}

    if detail is None:
        return "Request failed", {"code": _DEFAULT_ERROR_CODE, "details": None}
    return str(detail), {"code": _DEFAULT_ERROR_CODE, "details": None}


def _request_id_from_call(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str | None:
    for value in (*kwargs.values(), *args):
        if isinstance(value, Request):
            return getattr(value.state, "request_id", None)
    return None


def http_exception_response(exc: HTTPException, request: Request | None = None) -> JSONResponse:
    message, data = _parse_http_exception_detail(exc.detail)
    return error_response(
        status_code=exc.status_code,
        message=message,
        data=data,
        headers=exc.headers,
        request_id=getattr(request.state, "request_id", None) if request is not None else None,
    )


def document_response(
    *,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
    description: str = "Successful response",
    success_example: Any | None = None,
    response_codes: dict[int, str] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap a route's return value in the ``{success, message, data, requestId}`` envelope."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        config = ResponseDocConfig(
            message=message,
            status_code=status_code,
            description=description,
            success_example=success_example,
            response_codes=dict(response_codes or {}),
        )

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, Response):
                return result

            return JSONResponse(
                status_code=status_code,
                content=jsonable_encoder(
                    success_payload(result, message, request_id=_request_id_from_call(args, kwargs))
                ),
            )

        setattr(wrapper, _RESPONSE_DOC_ATTR, config)
        return wrapper

    return decorator


def apply_response_documentation(app: FastAPI) -> None:
    """Copy each ``document_response`` config onto its route's OpenAPI responses."""
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        config = getattr(route.endpoint, _RESPONSE_DOC_ATTR, None)
        if not isinstance(config, ResponseDocConfig):
            continue

        route.status_code = config.status_code
        responses = dict(route.responses or {})

        success_entry = dict(responses.get(config.status_code, {}))
        success_entry.setdefault("description", config.description)
        success_entry.setdefault(
            "content",
            {"application/json": {"example": success_payload(config.success_example, config.message)}},
        )
        responses[config.status_code] = success_entry

        for code, code_description in config.response_codes.items():
            entry = dict(responses.get(code, {}))
            entry.setdefault("description", code_description)
            responses[code] = entry

        route.responses = responses

    app.openapi_schema = None
