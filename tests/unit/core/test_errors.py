"""Tests for the cache error taxonomy."""

import pytest

from tagcache.core.errors import (
    CacheError,
    ConfigurationError,
    ErrorCategory,
    InvalidKeyError,
    InvalidTagError,
    InvalidTTLError,
    QueueFullError,
    ServiceNotInitializedError,
    TagCacheError,
    UnknownProfileError,
)


class TestErrorHierarchy:
    """Tests for categories and recoverability."""

    @pytest.mark.parametrize(
        "error,category,recoverable",
        [
            (CacheError("down", key="k", operation="get"), ErrorCategory.BACKEND, True),
            (InvalidKeyError("bad"), ErrorCategory.VALIDATION, False),
            (InvalidTagError("bad"), ErrorCategory.VALIDATION, False),
            (InvalidTTLError("bad", ttl=0), ErrorCategory.VALIDATION, False),
            (UnknownProfileError("fortnight"), ErrorCategory.CONFIGURATION, False),
            (ConfigurationError("bad", setting="cache_backend"), ErrorCategory.CONFIGURATION, False),
            (QueueFullError(10), ErrorCategory.BACKPRESSURE, True),
            (ServiceNotInitializedError("cache"), ErrorCategory.LIFECYCLE, False),
        ],
    )
    def test_category_and_recoverable(self, error, category, recoverable):
        """Test each error carries its category and recoverability."""
        assert isinstance(error, TagCacheError)
        assert error.category is category
        assert error.recoverable is recoverable

    def test_tag_error_is_key_error(self):
        """Test InvalidTagError can be caught as InvalidKeyError."""
        assert issubclass(InvalidTagError, InvalidKeyError)


class TestErrorSerialization:
    """Tests for to_dict()."""

    def test_cache_error_to_dict(self):
        """Test CacheError exports key and operation."""
        data = CacheError("Redis GET failed", key="app:k", operation="get").to_dict()

        assert data["error"] == "Redis GET failed"
        assert data["type"] == "CacheError"
        assert data["category"] == "backend"
        assert data["details"] == {"key": "app:k", "operation": "get"}
        assert data["recoverable"] is True
        assert "timestamp" in data

    def test_invalid_key_error_hides_value(self):
        """Test InvalidKeyError records only the segment type."""
        error = InvalidKeyError("looks like a credential", "sk-live-secret")

        assert error.details == {"segment_type": "str"}
        assert "sk-live-secret" not in str(error.to_dict())

    def test_queue_full_details(self):
        """Test QueueFullError exports capacity and key."""
        error = QueueFullError(5, key="app:k")

        assert error.capacity == 5
        assert error.details == {"capacity": 5, "key": "app:k"}
        assert "capacity 5" in str(error)

    def test_invalid_ttl_details(self):
        """Test InvalidTTLError keeps the offending values."""
        error = InvalidTTLError("bad", stale=10, revalidate=5, expire=60)
        assert error.details == {"stale": 10, "revalidate": 5, "expire": 60}
