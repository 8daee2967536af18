"""
Tests for the error handling framework.
"""

import pytest

from poker_sync.utils.errors import (
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    MalformedEventError,
    PokerSyncError,
    SubscriptionError,
    TransportError,
    ValidationError,
    error_context,
    handle_errors,
)


class TestErrorHierarchy:
    """Test exception classes."""

    def test_to_dict(self):
        """Test errors serialize with their context."""
        error = ConfigurationError(
            "bad deck",
            context=ErrorContext(room_id="abc123", component="config", metadata={"k": 1}),
        )

        data = error.to_dict()["error"]

        assert data["code"] == "CONFIG_ERROR"
        assert data["message"] == "bad deck"
        assert data["category"] == ErrorCategory.CONFIGURATION.value
        assert data["context"]["room_id"] == "abc123"
        assert data["context"]["metadata"] == {"k": 1}
        assert data["suggestions"]

    def test_default_message(self):
        """Test errors fall back to their default message."""
        assert str(TransportError()) == "Relay transport error"
        assert TransportError().is_retryable

    def test_subscription_error(self):
        """Test subscription failures carry topic and status."""
        cause = RuntimeError("socket closed")

        error = SubscriptionError("room:abc123", "TIMED_OUT", cause=cause)

        assert isinstance(error, TransportError)
        assert error.topic == "room:abc123"
        assert "TIMED_OUT" in error.message
        assert error.cause is cause
        assert "socket closed" in error.context.stack_trace

    def test_validation_error(self):
        """Test validation errors describe the failed field."""
        error = ValidationError("value", "7", "must be one of 1, 2")

        assert error.severity == ErrorSeverity.WARNING
        assert "value" in error.message
        assert any("must be one of" in s for s in error.get_suggestions())

    def test_malformed_event(self):
        """Test malformed events keep the offending payload."""
        error = MalformedEventError("vote", "garbage", "expected an object")

        assert error.event == "vote"
        assert error.payload == "garbage"
        assert error.reason == "expected an object"
        assert error.category == ErrorCategory.PROTOCOL


class TestHandleErrors:
    """Test the handle_errors decorator."""

    def test_sync_swallow(self):
        """Test errors are swallowed when reraise is off."""
        @handle_errors(KeyError, reraise=False)
        def lookup():
            raise KeyError("missing")

        assert lookup() is None

    def test_sync_reraise(self):
        """Test errors propagate by default."""
        @handle_errors(KeyError)
        def lookup():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            lookup()

    def test_unlisted_errors_propagate(self):
        """Test only the listed classes are handled."""
        @handle_errors(KeyError, reraise=False)
        def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            explode()

    def test_fallback(self):
        """Test the fallback receives the original arguments."""
        @handle_errors(ZeroDivisionError, fallback=lambda x: -x, log_level=ErrorSeverity.WARNING)
        def invert(x):
            return 1 / 0

        assert invert(4) == -4

    @pytest.mark.asyncio
    async def test_async_fallback(self):
        """Test coroutine functions and coroutine fallbacks are supported."""
        async def fallback(x):
            return "fallback"

        @handle_errors(RuntimeError, fallback=fallback)
        async def work(x):
            raise RuntimeError("boom")

        assert await work(1) == "fallback"

    def test_preserves_metadata(self):
        """Test wrapped functions keep their name."""
        @handle_errors()
        def named():
            return 1

        assert named.__name__ == "named"
        assert named() == 1


class TestErrorContext:
    """Test the error_context manager."""

    def test_enriches_poker_sync_errors(self):
        """Test component and operation are filled in."""
        with pytest.raises(TransportError) as exc_info:
            with error_context("relay", "send", topic="room:abc123"):
                raise TransportError("down")

        context = exc_info.value.context
        assert context.component == "relay"
        assert context.operation == "send"
        assert context.metadata["topic"] == "room:abc123"

    def test_wraps_unexpected_errors(self):
        """Test foreign exceptions are wrapped."""
        with pytest.raises(PokerSyncError) as exc_info:
            with error_context("room", "join"):
                raise RuntimeError("boom")

        assert exc_info.value.message == "boom"
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_suppress(self):
        """Test errors can be logged without reraising."""
        with error_context("room", "leave", reraise=False):
            raise TransportError("down")
