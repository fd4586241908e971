import enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ErrorCode(str, enum.Enum):
    CONNECTION_ERROR = "CONNECTION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    OPERATION_FAILED = "OPERATION_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Error codes the caller may reasonably retry
RETRYABLE_CODES = frozenset({
    ErrorCode.CONNECTION_ERROR,
    ErrorCode.TIMEOUT_ERROR,
    ErrorCode.RATE_LIMITED,
    ErrorCode.SERVER_ERROR,
})


class PyUnraidInvalidConfigurationParameter(ValueError):
    pass


class UnraidApiError(Exception):
    """
    Classified failure raised by the query executor.

    Args:
        code      = ErrorCode describing the failure
        message   = Human readable description
        details   = Optional diagnostic data (status code, raw GraphQL errors, validation issues)
        retryable = Override the retry hint (defaults to the hint implied by the code)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None,
                 retryable: Optional[bool] = None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details = dict(details) if details else {}
        self.retryable = self.code in RETRYABLE_CODES if retryable is None else retryable
        self.timestamp = datetime.now(timezone.utc)

    def __repr__(self):
        return f"UnraidApiError(code={self.code.value}, message={self.message!r}, retryable={self.retryable})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code.value,
            'message': self.message,
            'details': self.details,
            'retryable': self.retryable,
            'timestamp': self.timestamp.isoformat(),
        }
