"""
Storage Configuration and Factory

Provides the StorageConfig loaded from the environment and the singleton
StorageAdapter built from it.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from .adapter import StorageAdapter
from .database import DatabaseClient
from .watcher import ConfigsListener

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "health"
DEFAULT_TIMEOUT_MS = 500


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class StorageConfig:
    """
    Configuration for the storage engine.

    Loaded from environment variables with sensible defaults.
    """
    mongodb_uri: str
    database: str = DEFAULT_DATABASE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    watch_configs: bool = True
    seed_app_versions: bool = True

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - MONGODB_URI (required): MongoDB connection string
        - MONGODB_DATABASE: Database name (default: health)
        - MONGO_TIMEOUT: Per-operation timeout in milliseconds (default: 500)
        - WATCH_CONFIGS: Watch the configs collection (true/false)
        - SEED_APP_VERSIONS: Seed default app versions on start (true/false)

        Returns:
            StorageConfig instance

        Raises:
            ValueError: If MONGODB_URI is not set
        """
        mongodb_uri = os.getenv("MONGODB_URI")
        if not mongodb_uri:
            raise ValueError("MONGODB_URI environment variable is required")

        timeout_str = os.getenv("MONGO_TIMEOUT", str(DEFAULT_TIMEOUT_MS))
        try:
            timeout_ms = int(timeout_str)
            if timeout_ms <= 0:
                raise ValueError(timeout_str)
        except ValueError:
            logger.warning(f"Invalid MONGO_TIMEOUT '{timeout_str}', defaulting to {DEFAULT_TIMEOUT_MS}")
            timeout_ms = DEFAULT_TIMEOUT_MS

        return cls(
            mongodb_uri=mongodb_uri,
            database=os.getenv("MONGODB_DATABASE", DEFAULT_DATABASE),
            timeout_ms=timeout_ms,
            watch_configs=_env_flag("WATCH_CONFIGS"),
            seed_app_versions=_env_flag("SEED_APP_VERSIONS"),
        )


# Singleton adapter instance
_adapter_instance: Optional[StorageAdapter] = None


def get_storage_adapter(
    listener: Optional[ConfigsListener] = None,
    start: bool = True,
) -> StorageAdapter:
    """
    Get the storage adapter instance.

    Builds the DatabaseClient from StorageConfig.from_env() on first use and
    shares it afterwards (MongoClient is thread-safe and pools connections).
    The first call also starts the adapter as configured: app versions are
    seeded when SEED_APP_VERSIONS is set, and the configs collection is
    watched when WATCH_CONFIGS is set and a listener is given.

    Args:
        listener: Notified on configs changes (first call only)
        start: Set False to skip seeding and watching (maintenance scripts)

    Returns:
        StorageAdapter

    Raises:
        ValueError: If MongoDB URI is not configured
    """
    global _adapter_instance

    if _adapter_instance is None:
        config = StorageConfig.from_env()
        database = DatabaseClient(
            mongodb_uri=config.mongodb_uri,
            database=config.database,
            timeout_ms=config.timeout_ms,
        )
        database.connect()
        adapter = StorageAdapter(database, listener=listener)
        if start:
            adapter.start(
                seed_app_versions=config.seed_app_versions,
                watch_configs=config.watch_configs,
            )
        _adapter_instance = adapter
        logger.info(f"Initialized storage adapter (database: {config.database})")

    return _adapter_instance


def reset_storage_adapter() -> None:
    """
    Reset the adapter singleton.

    Used for testing or when configuration changes.
    """
    global _adapter_instance

    if _adapter_instance is not None:
        _adapter_instance.stop()

    _adapter_instance = None
    logger.info("Storage adapter singleton reset")
