"""
Tests for configuration loading, logging setup and the adapter singleton.
"""

import logging
import pytest
from unittest.mock import MagicMock, patch

from src.common.config import Config
from src.common.logger import StorageLogger, get_logger, setup_logging
from src.storage import StorageAdapter
from src.storage.config import StorageConfig, get_storage_adapter, reset_storage_adapter
from src.storage.watcher import ConfigsListener


class TestConfigValidate:
    """Tests for Config.validate()."""

    def test_valid_configuration(self):
        """Should pass with a URI and defaults."""
        with patch.object(Config, "MONGODB_URI", "mongodb://test"):
            Config.validate()

    def test_missing_uri(self):
        """Should list the missing setting."""
        with patch.object(Config, "MONGODB_URI", ""):
            with pytest.raises(ValueError, match="MONGODB_URI"):
                Config.validate()

    @pytest.mark.parametrize("timeout", ["abc", "0", "-5", ""])
    def test_bad_timeout(self, timeout):
        """Should reject timeouts that are not positive integers."""
        with patch.object(Config, "MONGODB_URI", "mongodb://test"), \
                patch.object(Config, "MONGO_TIMEOUT", timeout):
            with pytest.raises(ValueError, match="MONGO_TIMEOUT"):
                Config.validate()

    def test_bad_log_format(self):
        """Should reject unknown log formats."""
        with patch.object(Config, "MONGODB_URI", "mongodb://test"), \
                patch.object(Config, "LOG_FORMAT", "xml"):
            with pytest.raises(ValueError, match="LOG_FORMAT"):
                Config.validate()


class TestStorageConfig:
    """Tests for StorageConfig.from_env()."""

    def test_from_env_minimal(self):
        """Should fill defaults when only the URI is set."""
        with patch.dict("os.environ", {"MONGODB_URI": "mongodb://test"}, clear=True):
            config = StorageConfig.from_env()

        assert config.mongodb_uri == "mongodb://test"
        assert config.database == "health"
        assert config.timeout_ms == 500
        assert config.watch_configs is True
        assert config.seed_app_versions is True

    def test_from_env_full(self):
        """Should read every setting."""
        env = {
            "MONGODB_URI": "mongodb://test",
            "MONGODB_DATABASE": "health_prod",
            "MONGO_TIMEOUT": "2000",
            "WATCH_CONFIGS": "false",
            "SEED_APP_VERSIONS": "FALSE",
        }
        with patch.dict("os.environ", env, clear=True):
            config = StorageConfig.from_env()

        assert config.database == "health_prod"
        assert config.timeout_ms == 2000
        assert config.watch_configs is False
        assert config.seed_app_versions is False

    def test_from_env_missing_uri(self):
        """Should raise ValueError when MONGODB_URI is not set."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="MONGODB_URI"):
                StorageConfig.from_env()

    @pytest.mark.parametrize("timeout", ["soon", "0", "-1"])
    def test_from_env_invalid_timeout(self, timeout, caplog):
        """Should fall back to the default timeout with a warning."""
        env = {"MONGODB_URI": "mongodb://test", "MONGO_TIMEOUT": timeout}
        with patch.dict("os.environ", env, clear=True):
            with caplog.at_level(logging.WARNING):
                config = StorageConfig.from_env()

        assert config.timeout_ms == 500
        assert "Invalid MONGO_TIMEOUT" in caplog.text


class TestStorageAdapterSingleton:
    """Tests for get_storage_adapter() / reset_storage_adapter()."""

    @pytest.fixture(autouse=True)
    def reset_singleton(self):
        reset_storage_adapter()
        yield
        reset_storage_adapter()

    def test_returns_adapter(self, mock_mongodb):
        """Should build the MongoClient from the environment."""
        adapter = get_storage_adapter()

        assert isinstance(adapter, StorageAdapter)
        mock_mongodb.assert_called_once_with(
            "mongodb://test",
            serverSelectionTimeoutMS=500,
            timeoutMS=500,
            tz_aware=True,
        )

    def test_singleton(self, mock_mongodb):
        """Should return the same instance and connect once."""
        first = get_storage_adapter()
        second = get_storage_adapter()

        assert first is second
        assert mock_mongodb.call_count == 1

    def test_reset_closes_client(self, mock_mongodb):
        """Should close the client and build a new adapter afterwards."""
        first = get_storage_adapter()
        reset_storage_adapter()

        mock_mongodb.return_value.close.assert_called_once()
        assert get_storage_adapter() is not first

    def test_starts_with_configured_flags(self, monkeypatch):
        """Should seed and watch as WATCH_CONFIGS / SEED_APP_VERSIONS say."""
        monkeypatch.setenv("WATCH_CONFIGS", "true")
        monkeypatch.setenv("SEED_APP_VERSIONS", "false")
        listener = MagicMock(spec=ConfigsListener)

        with patch.object(StorageAdapter, "start") as start:
            adapter = get_storage_adapter(listener=listener)

        start.assert_called_once_with(seed_app_versions=False, watch_configs=True)
        assert adapter._watcher is not None

    def test_start_disabled(self):
        """Should leave seeding and watching to the caller with start=False."""
        with patch.object(StorageAdapter, "start") as start:
            adapter = get_storage_adapter(start=False)

        start.assert_not_called()
        assert adapter._watcher is None

    def test_missing_uri(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError):
                get_storage_adapter()


class TestLogging:
    """Tests for the logging helpers."""

    def test_operation_prefix(self, caplog):
        """Should prefix messages with the operation and collection."""
        log = get_logger("tests.logging", operation="delete_county", collection="counties")

        with caplog.at_level(logging.INFO, logger="tests.logging"):
            log.info("done")

        assert isinstance(log, StorageLogger)
        assert "[op:delete_county] [counties] done" in caplog.text

    def test_no_prefix(self, caplog):
        log = get_logger("tests.logging.plain")

        with caplog.at_level(logging.INFO, logger="tests.logging.plain"):
            log.info("plain message")

        assert caplog.records[-1].getMessage() == "plain message"

    def test_debug_mode_sets_level(self):
        log = get_logger("tests.logging.debug", debug_mode=True)

        assert log.level == logging.DEBUG

    def test_setup_logging_quiets_pymongo(self):
        """Should install one stdout handler and raise pymongo to WARNING."""
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(level="INFO", format="json")

            assert len(root.handlers) == 1
            assert root.level == logging.INFO
            assert logging.getLogger("pymongo").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
