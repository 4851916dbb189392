"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_IMAGE_NOT_FOUND = "E_IMAGE_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_CONTENT_TYPE = "E_INVALID_CONTENT_TYPE"
    E_FILE_TOO_LARGE = "E_FILE_TOO_LARGE"
    E_INVALID_KEY = "E_INVALID_KEY"

    # Conflict errors (409)
    E_STORAGE_CONFLICT = "E_STORAGE_CONFLICT"

    # Server errors
    E_INTERNAL = "E_INTERNAL"  # 500
    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500
    E_UPLOAD_FAILED = "E_UPLOAD_FAILED"  # 500
    E_STORAGE_UNAVAILABLE = "E_STORAGE_UNAVAILABLE"  # 503
    E_NAME_EXHAUSTED = "E_NAME_EXHAUSTED"  # 503


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_IMAGE_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_CONTENT_TYPE: 400,
    ApiErrorCode.E_FILE_TOO_LARGE: 400,
    ApiErrorCode.E_INVALID_KEY: 400,
    ApiErrorCode.E_STORAGE_CONFLICT: 409,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_STORAGE_ERROR: 500,
    ApiErrorCode.E_UPLOAD_FAILED: 500,
    ApiErrorCode.E_STORAGE_UNAVAILABLE: 503,
    ApiErrorCode.E_NAME_EXHAUSTED: 503,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)
