"""Tests for settings and logging setup."""

import json
import logging

import pytest

from tagcache.core.config import Settings
from tagcache.core.logging import JSONLineFormatter, LOGGER_NAMESPACE, get_logger, setup_logging


@pytest.fixture
def restore_tagcache_logger():
    """Restore the library logger after setup_logging changes it."""
    logger = logging.getLogger(LOGGER_NAMESPACE)
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        """Test defaults match the documented values."""
        monkeypatch.delenv("TAGCACHE_CACHE_BACKEND", raising=False)
        settings = Settings(_env_file=None)

        assert settings.cache_backend == "memory"
        assert settings.cache_namespace == "app"
        assert settings.max_key_length == 200
        assert settings.default_ttl is None
        assert settings.write_behind_flush_interval == 5.0
        assert settings.write_behind_max_retries == 3
        assert settings.write_behind_max_queue_size == 1000

    def test_env_prefix(self, monkeypatch):
        """Test TAGCACHE_-prefixed variables override defaults."""
        monkeypatch.setenv("TAGCACHE_CACHE_BACKEND", "redis")
        monkeypatch.setenv("TAGCACHE_WRITE_BEHIND_MAX_RETRIES", "5")
        monkeypatch.setenv("TAGCACHE_DEFAULT_TTL", "300")

        settings = Settings(_env_file=None)

        assert settings.cache_backend == "redis"
        assert settings.write_behind_max_retries == 5
        assert settings.default_ttl == 300

    def test_ttl_profiles_from_env(self, monkeypatch):
        """Test profile overrides can be given as JSON."""
        monkeypatch.setenv(
            "TAGCACHE_TTL_PROFILES", '{"catalog": {"stale": 1, "revalidate": 2, "expire": 3}}'
        )

        settings = Settings(_env_file=None)

        assert settings.ttl_profiles == {"catalog": {"stale": 1, "revalidate": 2, "expire": 3}}


class TestLogging:
    """Tests for setup_logging and get_logger."""

    def test_get_logger_name(self):
        """Test module loggers live under the tagcache namespace."""
        assert get_logger("tagcache.cache.tagged_cache").name == "tagcache.cache.tagged_cache"

    def test_setup_text(self, restore_tagcache_logger):
        """Test text format installs one handler at the configured level."""
        setup_logging(Settings(_env_file=None, log_level="debug", log_format="text"))

        assert restore_tagcache_logger.level == logging.DEBUG
        assert len(restore_tagcache_logger.handlers) == 1
        assert not isinstance(restore_tagcache_logger.handlers[0].formatter, JSONLineFormatter)

    def test_setup_json(self, restore_tagcache_logger):
        """Test json format uses the JSON line formatter."""
        setup_logging(Settings(_env_file=None, log_level="WARNING", log_format="json"))

        assert restore_tagcache_logger.level == logging.WARNING
        assert isinstance(restore_tagcache_logger.handlers[0].formatter, JSONLineFormatter)

    def test_setup_is_repeatable(self, restore_tagcache_logger):
        """Test calling setup twice does not stack handlers."""
        setup_logging(Settings(_env_file=None))
        setup_logging(Settings(_env_file=None))

        assert len(restore_tagcache_logger.handlers) == 1

    def test_json_line_format(self):
        """Test records render as single-line JSON."""
        record = logging.LogRecord(
            name="tagcache.test",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="Write-behind for key %s dropped",
            args=("app:k",),
            exc_info=None,
        )

        payload = json.loads(JSONLineFormatter().format(record))

        assert payload["level"] == "ERROR"
        assert payload["logger"] == "tagcache.test"
        assert payload["message"] == "Write-behind for key app:k dropped"
