"""Persistence module for localkv."""

from .engine import PersistenceEngine

__all__ = ["PersistenceEngine"]
