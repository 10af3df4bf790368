"""Configuration module for localkv."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
