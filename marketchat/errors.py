"""API error definitions.

Every error carries a machine-readable code and a human-readable message;
the HTTP status is derived from the code.
"""

from enum import Enum


class ApiErrorCode(str, Enum):

    # 401
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # 403
    E_FORBIDDEN = "E_FORBIDDEN"

    # 404
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"
    E_LISTING_NOT_FOUND = "E_LISTING_NOT_FOUND"

    # 400
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_ID = "E_INVALID_ID"
    E_SELF_CONVERSATION = "E_SELF_CONVERSATION"
    E_COUNTERPARTY_MISMATCH = "E_COUNTERPARTY_MISMATCH"
    E_SCOPE_REQUIRED = "E_SCOPE_REQUIRED"
    E_SCOPE_NOT_SUPPORTED = "E_SCOPE_NOT_SUPPORTED"
    E_INVALID_TEXT = "E_INVALID_TEXT"

    # 409
    E_CONFLICT = "E_CONFLICT"

    # 500
    E_INTERNAL = "E_INTERNAL"


ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_NOT_FOUND: 404,
    ApiErrorCode.E_USER_NOT_FOUND: 404,
    ApiErrorCode.E_LISTING_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_ID: 400,
    ApiErrorCode.E_SELF_CONVERSATION: 400,
    ApiErrorCode.E_COUNTERPARTY_MISMATCH: 400,
    ApiErrorCode.E_SCOPE_REQUIRED: 400,
    ApiErrorCode.E_SCOPE_NOT_SUPPORTED: 400,
    ApiErrorCode.E_INVALID_TEXT: 400,
    ApiErrorCode.E_CONFLICT: 409,
    ApiErrorCode.E_INTERNAL: 500,
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


class ValidationError(ApiError):
    """Malformed or missing input the caller can fix."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"):
        super().__init__(code, message)


class InvalidIdentifier(ValidationError):

    def __init__(self, message: str = "Invalid identifier"):
        super().__init__(ApiErrorCode.E_INVALID_ID, message)


class SelfConversation(ValidationError):

    def __init__(self, message: str = "Cannot start a conversation with yourself"):
        super().__init__(ApiErrorCode.E_SELF_CONVERSATION, message)


class NotFoundError(ApiError):

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class ConflictError(ApiError):
    """A uniqueness race could not be resolved by re-reading the winner."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_CONFLICT, message: str = "Conflict"):
        super().__init__(code, message)


class UnauthenticatedError(ApiError):

    def __init__(self, message: str = "Authentication required"):
        super().__init__(ApiErrorCode.E_UNAUTHENTICATED, message)
