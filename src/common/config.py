"""
Configuration loader for the health storage engine.

Loads all settings from environment variables (.env file).
Validates required settings and provides type-safe access.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """
    Centralized configuration for the storage engine.

    All values loaded from environment variables - NO SECRETS IN CODE.
    """

    # ===== MongoDB =====
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "health")

    # Per-operation deadline in milliseconds, applied to every store call
    MONGO_TIMEOUT: str = os.getenv("MONGO_TIMEOUT", "500")

    # ===== Startup behaviour =====
    # Insert the default app versions when the collection is empty
    SEED_APP_VERSIONS: bool = os.getenv("SEED_APP_VERSIONS", "true").lower() == "true"

    # ===== Logging =====
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "simple")  # simple | json
    DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "false").lower() == "true"

    @classmethod
    def validate(cls) -> None:
        """
        Validate that all required configuration is present.
        Raises ValueError if critical settings are missing.
        """
        required_settings = {
            "MONGODB_URI": cls.MONGODB_URI,
            "MONGODB_DATABASE": cls.MONGODB_DATABASE,
        }

        missing = [name for name, value in required_settings.items() if not value]

        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .env file."
            )

        if not cls.MONGO_TIMEOUT.isdigit() or int(cls.MONGO_TIMEOUT) <= 0:
            raise ValueError(
                f"MONGO_TIMEOUT must be a positive number of milliseconds, got '{cls.MONGO_TIMEOUT}'"
            )

        if cls.LOG_FORMAT not in ("simple", "json"):
            raise ValueError(f"LOG_FORMAT must be 'simple' or 'json', got '{cls.LOG_FORMAT}'")
