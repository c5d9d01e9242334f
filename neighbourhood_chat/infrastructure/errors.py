# neighbourhood_chat/infrastructure/errors.py
"""Error classification shared by every layer.

Interactors raise :class:`ChatError` with an explicit code. Anything else that
escapes (SQLAlchemy, Redis, asyncio timeouts) is classified by
:func:`classify_error`, so the HTTP boundary and the retry logic in
``db_wrapper`` can make the same decisions from one table.
"""
import logging
import traceback
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError
from redis import exceptions as redis_exceptions
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
)
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger("neighbourhood_chat.errors")


class ErrorCategory(str, Enum):
    VALIDATION = "VALIDATION"
    INPUT = "INPUT"
    AUTHENTICATION = "AUTHENTICATION"
    AUTHORIZATION = "AUTHORIZATION"
    BUSINESS_LOGIC = "BUSINESS_LOGIC"
    CONNECTION = "CONNECTION"
    RESOURCE = "RESOURCE"


class ErrorSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ErrorKind(str, Enum):
    REQUEST_SHAPE = "request_shape"
    IDENTIFIER_FORMAT = "identifier_format"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    TRANSIENT = "transient_infrastructure"
    INTERNAL = "internal_invariant"


USER_FRIENDLY_MESSAGES = {
    "VALIDATION_ERROR": "Invalid request parameters",
    "EMPTY_MESSAGE_CONTENT": "Message content cannot be empty",
    "INVALID_GROUP_ID": "Invalid group ID format",
    "INVALID_REPLY_ID": "Invalid reply message ID format",
    "INVALID_MESSAGE_ID": "Invalid message ID format",
    "INVALID_CONTENT_ID": "Invalid content ID format",
    "REPLY_MESSAGE_NOT_FOUND": "The message you are replying to is no longer available",
    "INVALID_FORWARD_DATA": "Invalid forwarded message data",
    "INVALID_ATTACHMENT_DATA": "Each attachment needs a URL or a filename",
    "GROUP_ACCESS_DENIED": "Not a member of this group or group not found",
    "MESSAGE_ACCESS_DENIED": "Not authorized to access this message",
    "ADMIN_REQUIRED": "Administrator privileges are required",
    "AUTHENTICATION_REQUIRED": "Authentication is required",
    "INVALID_TOKEN": "Invalid or expired token",
    "INACTIVE_USER": "This account is inactive",
    "USER_NO_NEIGHBOURHOOD": "User must be assigned to a neighbourhood to create groups",
    "DUPLICATE_GROUP_NAME": "A group with this name already exists in your neighbourhood",
    "GROUP_NOT_FOUND": "Group not found or not joinable",
    "ALREADY_MEMBER": "Already a member of this group",
    "NOT_A_MEMBER": "You are not a member of this group",
    "MESSAGE_NOT_FOUND": "Message not found",
    "ALREADY_REPORTED": "You have already reported this message",
    "CONTENT_NOT_FOUND": "Content not found",
    "CONTENT_NOT_FLAGGED": "Content is not flagged",
    "INVALID_CONTENT_TYPE": "Invalid content type",
    "INVALID_MODERATION_ACTION": "Invalid moderation action",
    "MODERATION_REASON_REQUIRED": "A reason is required for this moderation action",
    "CONCURRENT_MODIFICATION": "The item was changed by someone else, please try again",
    "DUPLICATE_KEY": "This item already exists",
    "DATABASE_TIMEOUT": "The service is taking too long to respond, please try again",
    "DATABASE_CONNECTION_ERROR": "The service is temporarily unavailable, please try again",
    "REQUEST_TIMEOUT": "The request took too long, please try again",
    "INTERNAL_ERROR": "An error occurred while processing your request",
}

CATEGORY_MESSAGES = {
    ErrorCategory.VALIDATION: "Invalid request parameters",
    ErrorCategory.INPUT: "Invalid input",
    ErrorCategory.AUTHENTICATION: "Authentication is required",
    ErrorCategory.AUTHORIZATION: "You are not allowed to perform this action",
    ErrorCategory.BUSINESS_LOGIC: "An error occurred while processing your request",
    ErrorCategory.CONNECTION: "The service is temporarily unavailable, please try again",
    ErrorCategory.RESOURCE: "The service is temporarily unavailable, please try again",
}

CATEGORY_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.INPUT: 400,
    ErrorCategory.AUTHENTICATION: 401,
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.CONNECTION: 503,
    ErrorCategory.RESOURCE: 503,
}

NEVER_RETRY = {
    ErrorCategory.VALIDATION,
    ErrorCategory.INPUT,
    ErrorCategory.AUTHENTICATION,
    ErrorCategory.AUTHORIZATION,
}


@dataclass
class ErrorClassification:
    code: str
    category: ErrorCategory
    severity: ErrorSeverity
    kind: ErrorKind
    retryable: bool
    user_friendly_message: str
    reason: str = ""
    validation_errors: list[dict[str, Any]] | None = None
    status_code: int | None = None

    @property
    def http_status(self) -> int:
        if self.status_code is not None:
            return self.status_code
        return CATEGORY_STATUS.get(self.category, 500)


class ChatError(Exception):
    def __init__(
        self,
        message: str,
        *,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        kind: ErrorKind | None = None,
        retryable: bool | None = None,
        user_message: str | None = None,
        status_code: int | None = None,
        metadata: dict[str, Any] | None = None,
        validation_errors: list[dict[str, Any]] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.metadata = metadata or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        self.classification = ErrorClassification(
            code=code,
            category=category,
            severity=severity,
            kind=kind or _default_kind(category),
            retryable=retryable if retryable is not None else category == ErrorCategory.CONNECTION,
            user_friendly_message=user_message
            or USER_FRIENDLY_MESSAGES.get(code)
            or CATEGORY_MESSAGES[category],
            reason=message,
            validation_errors=validation_errors,
            status_code=status_code,
        )

    @property
    def code(self) -> str:
        return self.classification.code

    @property
    def category(self) -> ErrorCategory:
        return self.classification.category

    @property
    def retryable(self) -> bool:
        return self.classification.retryable


def _default_kind(category: ErrorCategory) -> ErrorKind:
    return {
        ErrorCategory.VALIDATION: ErrorKind.REQUEST_SHAPE,
        ErrorCategory.INPUT: ErrorKind.REQUEST_SHAPE,
        ErrorCategory.AUTHENTICATION: ErrorKind.AUTHENTICATION,
        ErrorCategory.AUTHORIZATION: ErrorKind.AUTHORIZATION,
        ErrorCategory.BUSINESS_LOGIC: ErrorKind.BUSINESS_RULE,
        ErrorCategory.CONNECTION: ErrorKind.TRANSIENT,
        ErrorCategory.RESOURCE: ErrorKind.TRANSIENT,
    }[category]


# Constructors for the errors raised most often. Each returns, never raises.

def validation_error(code: str, message: str, **metadata) -> ChatError:
    return ChatError(
        message, code=code, category=ErrorCategory.VALIDATION, metadata=metadata
    )


def invalid_id_error(code: str, message: str, **metadata) -> ChatError:
    return ChatError(
        message,
        code=code,
        category=ErrorCategory.VALIDATION,
        kind=ErrorKind.IDENTIFIER_FORMAT,
        metadata=metadata,
    )


def access_denied_error(code: str, message: str, **metadata) -> ChatError:
    return ChatError(
        message, code=code, category=ErrorCategory.AUTHORIZATION, metadata=metadata
    )


def not_found_error(code: str, message: str, **metadata) -> ChatError:
    return ChatError(
        message,
        code=code,
        category=ErrorCategory.BUSINESS_LOGIC,
        kind=ErrorKind.NOT_FOUND,
        status_code=404,
        metadata=metadata,
    )


def business_rule_error(code: str, message: str, status_code: int = 400, **metadata) -> ChatError:
    return ChatError(
        message,
        code=code,
        category=ErrorCategory.BUSINESS_LOGIC,
        status_code=status_code,
        metadata=metadata,
    )


def classify_error(exc: BaseException) -> ErrorClassification:
    if isinstance(exc, ChatError):
        return exc.classification
    return enhance_error(exc).classification


def enhance_error(exc: BaseException) -> ChatError:
    """Wrap any exception into a classified :class:`ChatError`."""
    if isinstance(exc, ChatError):
        return exc

    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, IntegrityError):
        return ChatError(
            message,
            code="DUPLICATE_KEY",
            category=ErrorCategory.VALIDATION,
            kind=ErrorKind.DUPLICATE,
            retryable=False,
            cause=exc,
        )
    if isinstance(exc, StaleDataError):
        return ChatError(
            message,
            code="CONCURRENT_MODIFICATION",
            category=ErrorCategory.BUSINESS_LOGIC,
            retryable=True,
            status_code=409,
            cause=exc,
        )
    if isinstance(exc, (TimeoutError, redis_exceptions.TimeoutError)):
        return ChatError(
            message,
            code="DATABASE_TIMEOUT",
            category=ErrorCategory.CONNECTION,
            severity=ErrorSeverity.HIGH,
            retryable=True,
            cause=exc,
        )
    if isinstance(
        exc,
        (
            OperationalError,
            InterfaceError,
            DisconnectionError,
            ConnectionError,
            redis_exceptions.ConnectionError,
        ),
    ) or (isinstance(exc, DBAPIError) and exc.connection_invalidated):
        return ChatError(
            message,
            code="DATABASE_CONNECTION_ERROR",
            category=ErrorCategory.CONNECTION,
            severity=ErrorSeverity.HIGH,
            retryable=True,
            cause=exc,
        )
    if isinstance(exc, ValidationError):
        return ChatError(
            "Request validation failed",
            code="VALIDATION_ERROR",
            category=ErrorCategory.VALIDATION,
            validation_errors=exc.errors(
                include_url=False, include_context=False, include_input=False
            ),
            cause=exc,
        )
    if isinstance(exc, MemoryError):
        return ChatError(
            message,
            code="RESOURCE_EXHAUSTED",
            category=ErrorCategory.RESOURCE,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            cause=exc,
        )
    if isinstance(exc, (ValueError, TypeError)):
        return ChatError(
            message,
            code="INVALID_INPUT",
            category=ErrorCategory.INPUT,
            severity=ErrorSeverity.LOW,
            cause=exc,
        )
    return ChatError(
        message,
        code="INTERNAL_ERROR",
        category=ErrorCategory.BUSINESS_LOGIC,
        severity=ErrorSeverity.CRITICAL,
        kind=ErrorKind.INTERNAL,
        retryable=False,
        status_code=500,
        cause=exc,
    )


def log_classified_error(
    error: BaseException, context: dict[str, Any] | None = None, operation: str = "Chat operation"
) -> ChatError:
    enhanced = enhance_error(error)
    classification = enhanced.classification
    context = context or {}

    log_line = (
        f"{operation} failed: [{classification.category.value}/{classification.code}] "
        f"{enhanced.message} (severity={classification.severity.value}, "
        f"retryable={classification.retryable}, user={context.get('userId', 'unknown')}, "
        f"group={context.get('groupId', 'N/A')})"
    )
    if classification.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
        logger.error(log_line, exc_info=enhanced.cause or enhanced)
    elif classification.severity == ErrorSeverity.MEDIUM:
        logger.warning(log_line)
    else:
        logger.info(log_line)

    if classification.severity == ErrorSeverity.CRITICAL:
        logger.critical(
            "=== CRITICAL CHAT ERROR ALERT ===\n"
            f"Operation: {operation}\n"
            f"User ID: {context.get('userId') or 'unknown'}\n"
            f"Group ID: {context.get('groupId') or 'N/A'}\n"
            f"Error Category: {classification.category.value}\n"
            f"Error Type: {classification.kind.value}\n"
            f"Retryable: {classification.retryable}\n"
            f"Time: {datetime.now(UTC).isoformat()}\n"
            "================================"
        )
    return enhanced


def build_error_response(
    error: BaseException,
    context: dict[str, Any] | None = None,
    operation: str = "Chat operation",
    debug: bool = False,
) -> tuple[int, dict[str, Any]]:
    """Log ``error`` and return ``(status_code, body)`` for the client."""
    enhanced = log_classified_error(error, context, operation)
    classification = enhanced.classification
    context = context or {}

    body: dict[str, Any] = {
        "message": classification.user_friendly_message,
        "code": classification.code,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if classification.retryable:
        body["retryable"] = True
        body["retryAfter"] = 1
    if classification.validation_errors:
        body["details"] = classification.validation_errors

    if debug:
        original = enhanced.cause or enhanced
        body["debug"] = {
            "originalMessage": str(original),
            "stack": "".join(
                traceback.format_exception(type(original), original, original.__traceback__)
            ),
            "classification": {
                "type": classification.kind.value,
                "category": classification.category.value,
                "severity": classification.severity.value,
                "reason": classification.reason,
            },
            "context": {
                "operation": operation,
                "userId": context.get("userId"),
                "groupId": context.get("groupId"),
                "method": context.get("method"),
                "path": context.get("path"),
            },
        }
    return classification.http_status, body
