"""Custom exception classes for tracklayer.

None of these escape the public tracking surface. They are raised inside
the core, caught at the component boundary, and turned into log entries,
error-reporter captures, or retry/drop decisions.
"""


class TrackLayerError(Exception):
    """Base exception for all tracklayer errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict | None = None,
    ):
        """Initialize TrackLayerError.

        Args:
            message: Human-readable error message.
            error_code: Machine-readable error code.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert exception to a dictionary for logging and reporting."""
        result = {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class EventValidationError(TrackLayerError):
    """Raised when an enriched event is missing required fields."""

    def __init__(
        self,
        message: str = "Invalid event data",
        missing_fields: list[str] | None = None,
        errors: list[dict] | None = None,
    ):
        """Initialize EventValidationError.

        Args:
            message: Error message.
            missing_fields: Required fields that were empty or absent.
            errors: Field-level errors (from pydantic).
        """
        self.missing_fields = missing_fields or []
        self.errors = errors or []
        details: dict = {}
        if self.missing_fields:
            details["missing_fields"] = self.missing_fields
        if self.errors:
            details["errors"] = self.errors
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details or None,
        )

    @classmethod
    def from_pydantic(cls, exc: Exception) -> "EventValidationError":
        """Create EventValidationError from a pydantic ValidationError."""
        errors = []
        if hasattr(exc, "errors"):
            for error in exc.errors():
                errors.append(
                    {
                        "field": ".".join(str(loc) for loc in error.get("loc", [])),
                        "message": error.get("msg", "Invalid value"),
                        "type": error.get("type", "unknown"),
                    }
                )
        return cls(message="Invalid event data", errors=errors)


class AdapterDispatchError(TrackLayerError):
    """Raised when one adapter call fails during fan-out."""

    def __init__(
        self,
        adapter: str,
        operation: str,
        original_error: str | None = None,
    ):
        """Initialize AdapterDispatchError."""
        self.adapter = adapter
        self.operation = operation
        super().__init__(
            message=f"Adapter '{adapter}' failed during {operation}",
            error_code="ADAPTER_DISPATCH_ERROR",
            details={
                "adapter": adapter,
                "operation": operation,
                "original_error": original_error,
            },
        )


class AdapterNotConfiguredError(TrackLayerError):
    """Raised when an adapter is called without the credentials it needs."""

    def __init__(self, adapter: str, message: str | None = None):
        """Initialize AdapterNotConfiguredError."""
        self.adapter = adapter
        super().__init__(
            message=message or f"Adapter '{adapter}' is not properly configured",
            error_code="ADAPTER_NOT_CONFIGURED",
            details={"adapter": adapter},
        )


class QueueOverflowError(TrackLayerError):
    """Raised internally when the offline queue is at capacity."""

    def __init__(self, max_size: int, evicted_dedup_id: str | None = None):
        """Initialize QueueOverflowError."""
        self.max_size = max_size
        self.evicted_dedup_id = evicted_dedup_id
        super().__init__(
            message=f"Offline queue full ({max_size}), oldest entry evicted",
            error_code="QUEUE_OVERFLOW",
            details={"max_size": max_size, "evicted_dedup_id": evicted_dedup_id},
        )


class StorageError(TrackLayerError):
    """Raised when a durable store read or write fails."""

    def __init__(
        self,
        operation: str,
        key: str,
        original_error: str | None = None,
    ):
        """Initialize StorageError."""
        self.operation = operation
        self.key = key
        super().__init__(
            message=f"Storage {operation} failed for key '{key}'",
            error_code="STORAGE_ERROR",
            details={
                "operation": operation,
                "key": key,
                "original_error": original_error,
            },
        )


class StorageQuotaExceeded(TrackLayerError):
    """Raised by a backend when a write would exceed its quota."""

    def __init__(self, quota_bytes: int, requested_bytes: int):
        """Initialize StorageQuotaExceeded."""
        super().__init__(
            message=f"Storage quota of {quota_bytes} bytes exceeded",
            error_code="STORAGE_QUOTA_EXCEEDED",
            details={
                "quota_bytes": quota_bytes,
                "requested_bytes": requested_bytes,
            },
        )


class ListenerError(TrackLayerError):
    """Raised when a registered event listener fails."""

    def __init__(self, listener: str, original_error: str | None = None):
        """Initialize ListenerError."""
        self.listener = listener
        super().__init__(
            message=f"Event listener '{listener}' failed",
            error_code="LISTENER_ERROR",
            details={"listener": listener, "original_error": original_error},
        )
