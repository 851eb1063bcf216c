"""
Key-value storage backends for the CMP core
"""

from .base import KeyValueStore
from .file import FileStorage
from .memory import InMemoryStorage

__all__ = [
    "KeyValueStore",
    "FileStorage",
    "InMemoryStorage",
]
