"""Error reporting sink for failures caught at the tracking boundary."""

from typing import Any, Protocol

import structlog

from tracklayer.utils.exceptions import TrackLayerError

logger = structlog.get_logger()


class ErrorReporter(Protocol):
    """Anything that can receive a caught exception (Sentry, Rollbar, ...)."""

    def capture_exception(self, exc: BaseException, extra: dict[str, Any] | None = None) -> None: ...


class LoggingErrorReporter:
    """Default reporter: writes captured exceptions to the structured log."""

    def __init__(self):
        self.logger = logger.bind(service="error_reporter")

    def capture_exception(self, exc: BaseException, extra: dict[str, Any] | None = None) -> None:
        if isinstance(exc, TrackLayerError):
            fields = exc.to_dict()
        else:
            fields = {"error_code": type(exc).__name__, "message": str(exc)}

        self.logger.error("Exception captured", **fields, **(extra or {}))
