"""Tests for the exception hierarchy and error reporting."""

import pytest
from pydantic import BaseModel, ValidationError
from structlog.testing import capture_logs

from tracklayer.utils.env import env_bool, env_int, env_str
from tracklayer.utils.exceptions import (
    AdapterDispatchError,
    EventValidationError,
    QueueOverflowError,
    TrackLayerError,
)
from tracklayer.utils.reporting import LoggingErrorReporter


class Sample(BaseModel):
    count: int


class TestExceptions:
    """Tests for TrackLayerError subclasses."""

    def test_to_dict(self):
        """Errors serialize with code, message and details."""
        error = AdapterDispatchError("posthog", "track", original_error="timeout")

        assert error.to_dict() == {
            "error": True,
            "error_code": "ADAPTER_DISPATCH_ERROR",
            "message": "Adapter 'posthog' failed during track",
            "details": {"adapter": "posthog", "operation": "track", "original_error": "timeout"},
        }

    def test_default_code(self):
        """The base error defaults to INTERNAL_ERROR without details."""
        error = TrackLayerError("boom")

        assert error.error_code == "INTERNAL_ERROR"
        assert "details" not in error.to_dict()

    def test_validation_from_pydantic(self):
        """Pydantic errors are flattened into field errors."""
        with pytest.raises(ValidationError) as exc_info:
            Sample(count="many")

        error = EventValidationError.from_pydantic(exc_info.value)

        assert error.errors[0]["field"] == "count"
        assert error.details["errors"] == error.errors

    def test_queue_overflow(self):
        """Overflow carries the evicted key."""
        error = QueueOverflowError(1000, "dedup_1")
        assert error.details == {"max_size": 1000, "evicted_dedup_id": "dedup_1"}


class TestLoggingErrorReporter:
    """Tests for the default error reporter."""

    def test_tracklayer_error(self):
        """TrackLayer errors are logged with their dict form and extras."""
        with capture_logs() as logs:
            reporter = LoggingErrorReporter()
            reporter.capture_exception(QueueOverflowError(10), {"operation": "flush"})

        entry = logs[0]
        assert entry["event"] == "Exception captured"
        assert entry["log_level"] == "error"
        assert entry["error_code"] == "QUEUE_OVERFLOW"
        assert entry["operation"] == "flush"

    def test_other_error(self):
        """Other exceptions are logged by type name."""
        with capture_logs() as logs:
            LoggingErrorReporter().capture_exception(RuntimeError("down"))

        assert logs[0]["error_code"] == "RuntimeError"
        assert logs[0]["message"] == "down"


class TestEnv:
    """Tests for environment parsing helpers."""

    def test_env_bool(self, monkeypatch):
        """Truthy strings parse as True; blanks fall back to the default."""
        monkeypatch.setenv("TRACKLAYER_FLAG", "Yes")
        assert env_bool("TRACKLAYER_FLAG", False) is True

        monkeypatch.setenv("TRACKLAYER_FLAG", "0")
        assert env_bool("TRACKLAYER_FLAG", True) is False

        monkeypatch.setenv("TRACKLAYER_FLAG", "")
        assert env_bool("TRACKLAYER_FLAG", True) is True

    def test_env_int_and_str(self, monkeypatch):
        """Missing variables use defaults."""
        monkeypatch.setenv("TRACKLAYER_NUMBER", "42")

        assert env_int("TRACKLAYER_NUMBER", 1) == 42
        assert env_int("TRACKLAYER_MISSING", 1) == 1
        assert env_str("TRACKLAYER_MISSING", "fallback") == "fallback"
