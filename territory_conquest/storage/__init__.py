"""Persistence adapters."""

from .memory import InMemoryStore
from .snapshot import load_store

__all__ = ["InMemoryStore", "load_store"]
