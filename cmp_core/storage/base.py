"""
Key-value store contract for the CMP core
Read / write / append with at-most-one-writer per key
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional


class KeyValueStore(ABC):
    """Durable JSON key-value store.

    Implementations must make each write atomically visible (no reader ever
    sees a half-written value) and serialize writers per key.
    """

    @abstractmethod
    def read(self, key: str) -> Optional[Any]:
        """Return the decoded value, None when the key is absent.

        Raises StorageReadError when the stored bytes cannot be decoded.
        """

    @abstractmethod
    def write(self, key: str, data: Any) -> None:
        """Replace the value; raises StorageWriteError on failure"""

    @abstractmethod
    def append(self, key: str, data: Any) -> None:
        """Append one JSON line; raises StorageWriteError on failure"""

    @abstractmethod
    def read_lines(self, key: str, limit: int = 0, offset: int = 0) -> List[Any]:
        """Read appended JSON lines, skipping undecodable ones"""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether a key holds a value"""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key; absent keys count as deleted"""
