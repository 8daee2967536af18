"""
Error handling framework for poker-sync.

This module provides:
- Hierarchical exception classes
- Error context preservation
- Structured error payloads for logging
- Decorators for isolating handler failures
"""

from typing import Optional, Dict, Any, List, Type, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import traceback
from contextlib import contextmanager
import inspect
import functools

from .logging import get_logger


logger = get_logger("poker-sync.errors")


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    STORAGE = "storage"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    room_id: Optional[str] = None
    player_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None


class PokerSyncError(Exception):
    """Base exception for all poker-sync errors."""

    code: str = "POKER_SYNC_ERROR"
    default_message: str = "An error occurred in poker-sync"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN
    is_retryable: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        **kwargs
    ):
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause
        self.kwargs = kwargs

        if not self.context.stack_trace and cause is not None:
            self.context.stack_trace = "".join(
                traceback.format_exception(type(cause), cause, cause.__traceback__)
            )

        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "category": self.category.value,
                "is_retryable": self.is_retryable,
                "suggestions": self.get_suggestions(),
                "context": {
                    "timestamp": self.context.timestamp.isoformat(),
                    "room_id": self.context.room_id,
                    "player_id": self.context.player_id,
                    "component": self.context.component,
                    "operation": self.context.operation,
                    "metadata": self.context.metadata
                }
            }
        }


class ConfigurationError(PokerSyncError):
    """Configuration errors."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Verify POKER_SYNC_* environment variables",
        ]


class ValidationError(PokerSyncError):
    """Input validation errors."""
    code = "VALIDATION_ERROR"
    default_message = "Validation error"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING

    def __init__(self, field: str, value: Any, constraint: str, **kwargs):
        self.field = field
        self.value = value
        self.constraint = constraint
        message = f"Validation failed for field '{field}': {constraint}"
        super().__init__(message, **kwargs)

    def get_suggestions(self) -> List[str]:
        return [
            f"Check the value of field '{self.field}'",
            f"Ensure it meets the constraint: {self.constraint}"
        ]


class TransportError(PokerSyncError):
    """Relay transport errors."""
    code = "TRANSPORT_ERROR"
    default_message = "Relay transport error"
    category = ErrorCategory.TRANSPORT
    is_retryable = True


class SubscriptionError(TransportError):
    """Channel did not reach the subscribed state."""
    code = "SUBSCRIPTION_ERROR"
    default_message = "Channel subscription failed"

    def __init__(self, topic: str, status: str, **kwargs):
        self.topic = topic
        self.status = status
        super().__init__(f"Channel {topic} reported status {status}", **kwargs)


class MalformedEventError(PokerSyncError):
    """Broadcast or presence payload that cannot be interpreted."""
    code = "MALFORMED_EVENT"
    default_message = "Malformed relay event"
    category = ErrorCategory.PROTOCOL
    severity = ErrorSeverity.WARNING

    def __init__(self, event: str, payload: Any, reason: str, **kwargs):
        self.event = event
        self.payload = payload
        self.reason = reason
        super().__init__(f"Malformed '{event}' event: {reason}", **kwargs)


class IdentityError(PokerSyncError):
    """Device identity storage errors."""
    code = "IDENTITY_ERROR"
    default_message = "Unable to load or persist the device identity"
    category = ErrorCategory.STORAGE

    def get_suggestions(self) -> List[str]:
        return [
            "Check permissions of the identity file directory",
            "Set identity.path to a writable location",
        ]


def _log_at(severity: ErrorSeverity, event: str, **kwargs) -> None:
    getattr(logger, severity.value)(event, **kwargs)


def handle_errors(
    *error_classes: Type[Exception],
    fallback: Optional[Callable] = None,
    reraise: bool = True,
    log_level: ErrorSeverity = ErrorSeverity.ERROR
):
    """
    Decorator for handling errors in functions.

    Args:
        error_classes: Exception classes to catch
        fallback: Fallback function to call on error
        reraise: Whether to reraise the exception
        log_level: Logging level for errors
    """
    error_classes = error_classes or (Exception,)

    def decorator(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except error_classes as e:
                _log_at(
                    log_level,
                    f"error_in_{func.__name__}",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True
                )

                if fallback:
                    if inspect.iscoroutinefunction(fallback):
                        return await fallback(*args, **kwargs)
                    return fallback(*args, **kwargs)

                if reraise:
                    raise

                return None

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except error_classes as e:
                _log_at(
                    log_level,
                    f"error_in_{func.__name__}",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True
                )

                if fallback:
                    return fallback(*args, **kwargs)

                if reraise:
                    raise

                return None

        return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper

    return decorator


@contextmanager
def error_context(
    component: str,
    operation: str,
    reraise: bool = True,
    **metadata
):
    """
    Context manager for error handling with context.

    Args:
        component: Component name
        operation: Operation name
        reraise: Whether to reraise exceptions
        **metadata: Additional context metadata
    """
    context = ErrorContext(
        component=component,
        operation=operation,
        metadata=metadata
    )

    try:
        yield context
    except PokerSyncError as e:
        e.context.component = e.context.component or component
        e.context.operation = e.context.operation or operation
        e.context.metadata.update(metadata)
        logger.error("poker_sync_error_in_context", error=e.to_dict())
        if reraise:
            raise
    except Exception as e:
        wrapped = PokerSyncError(
            message=str(e),
            context=context,
            cause=e
        )
        logger.error(
            "unexpected_error_in_context",
            error=wrapped.to_dict(),
            exc_info=True
        )
        if reraise:
            raise wrapped from e


__all__ = [
    'PokerSyncError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'ConfigurationError',
    'ValidationError',
    'TransportError',
    'SubscriptionError',
    'MalformedEventError',
    'IdentityError',
    'handle_errors',
    'error_context',
]
