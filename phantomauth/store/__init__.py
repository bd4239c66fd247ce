"""
Shared state storage.
"""

from .base import KeyValueStore
from .memory import MemoryStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
]
