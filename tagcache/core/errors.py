"""Custom error types for the cache library."""

from typing import Optional, Dict, Any
from enum import Enum
from datetime import datetime, timezone


class ErrorCategory(Enum):
    """Categories of errors for better handling."""
    BACKEND = "backend"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    BACKPRESSURE = "backpressure"
    LIFECYCLE = "lifecycle"


class TagCacheError(Exception):
    """Base exception for cache errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.BACKEND,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            "error": self.message,
            "type": type(self).__name__,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
        }


class CacheError(TagCacheError):
    """Backend read, write or serialization failure.

    Never fatal: callers degrade to cache-miss behavior.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        details = {}
        if key is not None:
            details["key"] = key
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            category=ErrorCategory.BACKEND,
            details=details,
            recoverable=True,
        )
        self.key = key
        self.operation = operation


class InvalidKeyError(TagCacheError):
    """A key (or key segment) failed normalization or validation."""

    def __init__(self, message: str, segment: Optional[Any] = None):
        details = {}
        if segment is not None:
            # Never echo the raw segment, it may be a secret.
            details["segment_type"] = type(segment).__name__
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            details=details,
            recoverable=False,
        )


class InvalidTagError(InvalidKeyError):
    """A tag is empty, too long or contains whitespace."""


class UnknownProfileError(TagCacheError):
    """A TTL profile name is not registered."""

    def __init__(self, profile: str):
        super().__init__(
            message=f"Unknown TTL profile: {profile!r}",
            category=ErrorCategory.CONFIGURATION,
            details={"profile": profile},
            recoverable=False,
        )
        self.profile = profile


class InvalidTTLError(TagCacheError):
    """TTL values violate 0 <= stale <= revalidate <= expire."""

    def __init__(self, message: str, **values: Any):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            details=dict(values),
            recoverable=False,
        )


class QueueFullError(TagCacheError):
    """Write-behind queue is at capacity even after a flush."""

    def __init__(self, capacity: int, key: Optional[str] = None):
        details: Dict[str, Any] = {"capacity": capacity}
        if key is not None:
            details["key"] = key
        super().__init__(
            message=f"Write-behind queue is full (capacity {capacity})",
            category=ErrorCategory.BACKPRESSURE,
            details=details,
            recoverable=True,
        )
        self.capacity = capacity


class ServiceNotInitializedError(TagCacheError):
    """Raised when accessing a service that hasn't been initialized."""

    def __init__(self, service_name: str):
        super().__init__(
            message=(
                f"Service '{service_name}' has not been initialized. "
                f"Call container.initialize() first."
            ),
            category=ErrorCategory.LIFECYCLE,
            details={"service": service_name},
            recoverable=False,
        )
        self.service_name = service_name


class ConfigurationError(TagCacheError):
    """Settings name an unsupported backend or inconsistent values."""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            details={"setting": setting} if setting else {},
            recoverable=False,
        )
        self.setting = setting
