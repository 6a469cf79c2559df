from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from core.errors import AppException, ErrorCode
from core.response_envelope import (
    apply_response_documentation,
    document_response,
    error_payload,
    http_exception_response,
    success_payload,
)


def test_success_payload_includes_request_id():
    payload = success_payload(data={"value": 1}, message="ok", request_id="req-123")
    assert payload == {"success": True, "message": "ok", "data": {"value": 1}, "requestId": "req-123"}


def test_error_payload_includes_request_id():
    payload = error_payload(message="failed", data={"code": "X"}, request_id="req-999")
    assert payload["success"] is False
    assert payload["data"]["code"] == "X"
    assert payload["requestId"] == "req-999"


def test_http_exception_response_unpacks_app_exception():
    exc = AppException(
        status_code=502,
        code=ErrorCode.PAYMENT_PROVIDER_ERROR,
        message="An error occurred in capture_payment",
        details={"provider_id": "adyen", "code": "", "detail": "timeout"},
    )

    response = http_exception_response(exc)

    assert response.status_code == 502
    assert b'"code":"PAYMENT_PROVIDER_ERROR"' in response.body
    assert b'"message":"An error occurred in capture_payment"' in response.body


def test_document_response_wraps_route_result_and_sets_status():
    app = FastAPI()

    @app.post("/things")
    @document_response(message="Thing created", status_code=201, response_codes={409: "Duplicate"})
    async def create_thing(request: Request):
        request.state.request_id = "req-1"
        return {"id": "thing_1"}

    apply_response_documentation(app)
    client = TestClient(app)

    response = client.post("/things")

    assert response.status_code == 201
    assert response.json() == {
        "success": True,
        "message": "Thing created",
        "data": {"id": "thing_1"},
        "requestId": "req-1",
    }
    responses = app.openapi()["paths"]["/things"]["post"]["responses"]
    assert "201" in responses
    assert responses["409"]["description"] == "Duplicate"
