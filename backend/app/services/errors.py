"""
入住业务错误类型
服务层抛出 CheckinError，路由层统一转换为 HTTP 响应
"""
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException


class ErrorCategory(str, Enum):
    """错误分类"""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    GONE = "gone"
    UNAUTHORIZED = "unauthorized"
    VALIDATION = "validation"
    INTERNAL = "internal"


class CheckinErrorKind(str, Enum):
    """机器可读的错误码"""
    BOOKING_NOT_FOUND = "booking_not_found"
    SESSION_NOT_FOUND = "session_not_found"
    ALREADY_CHECKED_IN = "already_checked_in"
    CHECKIN_ALREADY_INITIATED = "checkin_already_initiated"
    NOT_CHECKED_IN = "not_checked_in"
    BOOKING_CHECKED_OUT = "booking_checked_out"
    INVALID_OR_EXPIRED_CODE = "invalid_or_expired_code"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    INVALID_FORMAT = "invalid_format"
    MISSING_CUSTOMER = "missing_customer"
    MISSING_ROOM = "missing_room"
    MISSING_CONTACT_EMAIL = "missing_contact_email"
    VALIDATION = "validation_error"
    INTERNAL = "internal_error"
    FINALIZE_FAILED = "finalize_failed"
    CHECKOUT_FAILED = "checkout_failed"


# 错误码 -> (分类, HTTP 状态码)
ERROR_TABLE: Dict[CheckinErrorKind, tuple] = {
    CheckinErrorKind.BOOKING_NOT_FOUND: (ErrorCategory.NOT_FOUND, 404),
    CheckinErrorKind.SESSION_NOT_FOUND: (ErrorCategory.NOT_FOUND, 404),
    CheckinErrorKind.ALREADY_CHECKED_IN: (ErrorCategory.CONFLICT, 409),
    CheckinErrorKind.CHECKIN_ALREADY_INITIATED: (ErrorCategory.CONFLICT, 409),
    CheckinErrorKind.NOT_CHECKED_IN: (ErrorCategory.CONFLICT, 409),
    CheckinErrorKind.BOOKING_CHECKED_OUT: (ErrorCategory.GONE, 410),
    CheckinErrorKind.INVALID_OR_EXPIRED_CODE: (ErrorCategory.UNAUTHORIZED, 401),
    CheckinErrorKind.INVALID_OR_EXPIRED_TOKEN: (ErrorCategory.UNAUTHORIZED, 401),
    CheckinErrorKind.INVALID_FORMAT: (ErrorCategory.VALIDATION, 400),
    CheckinErrorKind.MISSING_CUSTOMER: (ErrorCategory.VALIDATION, 422),
    CheckinErrorKind.MISSING_ROOM: (ErrorCategory.VALIDATION, 422),
    CheckinErrorKind.MISSING_CONTACT_EMAIL: (ErrorCategory.VALIDATION, 422),
    CheckinErrorKind.VALIDATION: (ErrorCategory.VALIDATION, 422),
    CheckinErrorKind.INTERNAL: (ErrorCategory.INTERNAL, 500),
    CheckinErrorKind.FINALIZE_FAILED: (ErrorCategory.INTERNAL, 500),
    CheckinErrorKind.CHECKOUT_FAILED: (ErrorCategory.INTERNAL, 500),
}

# 默认提示（401 / 410 的提示不区分入住码是否存在）
DEFAULT_MESSAGES: Dict[CheckinErrorKind, str] = {
    CheckinErrorKind.BOOKING_NOT_FOUND: "Booking not found",
    CheckinErrorKind.SESSION_NOT_FOUND: "Check-in session not found",
    CheckinErrorKind.ALREADY_CHECKED_IN: "Booking is already checked in",
    CheckinErrorKind.CHECKIN_ALREADY_INITIATED: "An active check-in session already exists for this booking",
    CheckinErrorKind.NOT_CHECKED_IN: "Booking is not checked in",
    CheckinErrorKind.BOOKING_CHECKED_OUT: "Booking has already been checked out",
    CheckinErrorKind.INVALID_OR_EXPIRED_CODE: "Invalid or expired check-in code",
    CheckinErrorKind.INVALID_OR_EXPIRED_TOKEN: "Invalid or expired token",
    CheckinErrorKind.INVALID_FORMAT: "Invalid request format",
    CheckinErrorKind.MISSING_CUSTOMER: "Booking has no customer",
    CheckinErrorKind.MISSING_ROOM: "Booking has no room assigned",
    CheckinErrorKind.MISSING_CONTACT_EMAIL: "Customer has no email address",
    CheckinErrorKind.VALIDATION: "Validation failed",
    CheckinErrorKind.INTERNAL: "Internal error",
    CheckinErrorKind.FINALIZE_FAILED: "Failed to finalize check-in",
    CheckinErrorKind.CHECKOUT_FAILED: "Failed to check out",
}


class CheckinError(Exception):
    """
    入住业务错误

    Attributes:
        kind: 错误码
        message: 面向调用方的提示
    """

    def __init__(self, kind: CheckinErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        super().__init__(self.message)

    @property
    def category(self) -> ErrorCategory:
        return ERROR_TABLE[self.kind][0]

    @property
    def status_code(self) -> int:
        return ERROR_TABLE[self.kind][1]

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.kind.value, "message": self.message}

    def __repr__(self) -> str:
        return f"CheckinError({self.kind.value!r}, {self.message!r})"


def to_http_exception(error: CheckinError) -> HTTPException:
    """CheckinError -> HTTPException"""
    return HTTPException(status_code=error.status_code, detail=error.to_dict())
