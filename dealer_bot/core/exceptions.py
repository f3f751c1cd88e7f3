"""
Custom Exception Hierarchy

Structured exceptions rendered by the API exception handlers as
``{"error": {"code", "message", "details"}}``.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    ALREADY_EXISTS = "ERR_1003"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"
    RATE_LIMITED = "ERR_1006"

    # Conversation errors (2xxx)
    CONVERSATION_NOT_FOUND = "ERR_2001"
    CONVERSATION_ALREADY_ACTIVE = "ERR_2002"
    INVALID_PHONE = "ERR_2003"

    # Campaign errors (3xxx)
    CAMPAIGN_INVALID_TEMPLATE = "ERR_3001"
    CAMPAIGN_NO_CONTACTS = "ERR_3002"
    CAMPAIGN_NOT_FOUND = "ERR_3003"

    # External service errors (5xxx)
    SMS_TRANSPORT_ERROR = "ERR_5001"
    TELEGRAM_ERROR = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"

    # State machine errors (6xxx)
    INVALID_STAGE_TRANSITION = "ERR_6001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails at the boundary"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class ConversationAlreadyActiveError(AppException):
    """Raised when an opening SMS targets a phone mid-conversation"""

    def __init__(self, phone: str):
        super().__init__(
            message=(
                "This customer already has an active conversation. "
                "Continue it from the conversation list."
            ),
            error_code=ErrorCode.CONVERSATION_ALREADY_ACTIVE,
            status_code=409,
            details={"phone": phone},
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name


class _HttpServiceError(ExternalServiceException):
    """External HTTP API error buildable from a failed response"""

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "_HttpServiceError":
        """Build an error from an HTTP response (e.g. httpx.Response)."""
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class SmsTransportError(_HttpServiceError):
    """Raised when the SMS/voice transport rejects or fails a request"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="twilio",
            message=f"SMS transport error: {message}",
            error_code=ErrorCode.SMS_TRANSPORT_ERROR,
            details=details
        )


class TelegramError(_HttpServiceError):
    """Raised when the Telegram Bot API fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="telegram",
            message=f"Telegram API error: {message}",
            error_code=ErrorCode.TELEGRAM_ERROR,
            details=details
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )


class InvalidStageTransitionError(AppException):
    """Raised when a dialogue step would move the funnel backwards"""

    def __init__(self, current_stage: str, target_stage: str, rule: str | None = None):
        super().__init__(
            message=f"Invalid transition from '{current_stage}' to '{target_stage}'",
            error_code=ErrorCode.INVALID_STAGE_TRANSITION,
            status_code=500,
            details={
                "current_stage": current_stage,
                "target_stage": target_stage,
                "rule": rule,
            }
        )
