"""
localkv Configuration Settings

This module contains all configuration constants for the localkv server.
Values can be overridden through environment variables or CLI flags.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Server configuration settings."""

    # Network settings
    HOST: str = os.environ.get("LOCALKV_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("LOCALKV_PORT", "6379"))

    # Persistence settings
    FILENAME: str = os.environ.get("LOCALKV_FILENAME", "persist.db")
    SAVE_INTERVAL: int = int(os.environ.get("LOCALKV_SAVE_INTERVAL", "10"))  # 0 disables periodic saves

    # TTL settings
    EXPIRE_INTERVAL: int = int(os.environ.get("LOCALKV_EXPIRE_INTERVAL", "5"))  # Seconds between sweeps

    # Command settings
    DEFAULT_SCAN_COUNT: int = 10

    # Connection settings
    READ_BUFFER_SIZE: int = 4096

    # Logging settings
    DEBUG: bool = os.environ.get("LOCALKV_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("LOCALKV_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
