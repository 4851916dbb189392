"""Tests for error handling and response envelopes.

Verifies:
- Error envelope shape is correct
- Every error code maps to correct HTTP status
- Unknown routes and methods use the error envelope
- Unknown exceptions return E_INTERNAL with 500 and leak nothing
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from imagestore.errors import (
    ERROR_CODE_TO_STATUS,
    ApiError,
    ApiErrorCode,
    InvalidRequestError,
)
from imagestore.responses import error_response, success_response, unhandled_exception_handler


class TestEnvelopes:
    """Tests for success and error envelope format."""

    def test_error_response_has_correct_shape(self):
        response = error_response(ApiErrorCode.E_IMAGE_NOT_FOUND, "Image not found")

        assert response == {"error": {"code": "E_IMAGE_NOT_FOUND", "message": "Image not found"}}

    def test_error_response_includes_explicit_request_id(self):
        response = error_response(ApiErrorCode.E_INTERNAL, "boom", request_id="req-1")

        assert response["error"]["request_id"] == "req-1"

    def test_success_response_wraps_data(self):
        assert success_response({"key": "images/a.png"}) == {"data": {"key": "images/a.png"}}

    def test_success_response_with_none(self):
        assert success_response(None) == {"data": None}


class TestErrorCodeToStatus:
    """Tests for error code to HTTP status mapping."""

    def test_all_error_codes_have_status_mapping(self):
        for code in ApiErrorCode:
            assert code in ERROR_CODE_TO_STATUS, f"Missing status mapping for {code}"

    @pytest.mark.parametrize(
        "code,expected_status",
        [
            (ApiErrorCode.E_NOT_FOUND, 404),
            (ApiErrorCode.E_IMAGE_NOT_FOUND, 404),
            (ApiErrorCode.E_INVALID_REQUEST, 400),
            (ApiErrorCode.E_INVALID_CONTENT_TYPE, 400),
            (ApiErrorCode.E_FILE_TOO_LARGE, 400),
            (ApiErrorCode.E_INVALID_KEY, 400),
            (ApiErrorCode.E_STORAGE_CONFLICT, 409),
            (ApiErrorCode.E_INTERNAL, 500),
            (ApiErrorCode.E_STORAGE_ERROR, 500),
            (ApiErrorCode.E_UPLOAD_FAILED, 500),
            (ApiErrorCode.E_STORAGE_UNAVAILABLE, 503),
            (ApiErrorCode.E_NAME_EXHAUSTED, 503),
        ],
    )
    def test_error_code_maps_to_correct_status(self, code: ApiErrorCode, expected_status: int):
        assert ERROR_CODE_TO_STATUS[code] == expected_status


class TestApiErrorClass:
    """Tests for ApiError exception classes."""

    def test_api_error_has_code_message_and_status(self):
        error = ApiError(ApiErrorCode.E_STORAGE_UNAVAILABLE, "Storage is unavailable")

        assert error.code == ApiErrorCode.E_STORAGE_UNAVAILABLE
        assert error.message == "Storage is unavailable"
        assert error.status_code == 503

    def test_invalid_request_error_defaults(self):
        error = InvalidRequestError()

        assert error.code == ApiErrorCode.E_INVALID_REQUEST
        assert error.status_code == 400


class TestFrameworkErrors:
    """Tests for framework-raised errors rendered by the app."""

    def test_unknown_route_returns_envelope(self, client: TestClient):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_NOT_FOUND"

    def test_wrong_method_returns_envelope(self, client: TestClient):
        response = client.put("/health")

        assert response.status_code == 405
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"


class TestUnhandledExceptionHandling:
    """Tests for unhandled exception handling."""

    @pytest.fixture
    def crash_client(self) -> TestClient:
        test_app = FastAPI()

        @test_app.get("/crash")
        def crash_endpoint():
            raise RuntimeError("SECRET_INTERNAL_DETAIL")

        test_app.add_exception_handler(Exception, unhandled_exception_handler)
        return TestClient(test_app, raise_server_exceptions=False)

    def test_unhandled_exception_returns_500_with_e_internal(self, crash_client):
        response = crash_client.get("/crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "E_INTERNAL"
        assert response.json()["error"]["message"] == "Internal server error"

    def test_unhandled_exception_does_not_leak_details(self, crash_client):
        response = crash_client.get("/crash")

        assert "SECRET_INTERNAL_DETAIL" not in response.text
