"""
In-memory key-value store for tests and isolated contexts
"""

import copy
import json
from typing import Any, Dict, List, Optional

from .base import KeyValueStore
from ..exceptions import StorageReadError, StorageWriteError


class InMemoryStorage(KeyValueStore):
    """Stores values as JSON text so corruption and encode errors behave like the file store"""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.lines: Dict[str, List[str]] = {}
        self.fail_writes = False

    def read(self, key: str) -> Optional[Any]:
        if key not in self.values:
            return None
        try:
            return json.loads(self.values[key])
        except json.JSONDecodeError as e:
            raise StorageReadError(key, f"invalid JSON: {e.msg}") from e

    def write(self, key: str, data: Any) -> None:
        if self.fail_writes:
            raise StorageWriteError(key, "writes disabled")
        try:
            self.values[key] = json.dumps(copy.deepcopy(data))
        except (TypeError, ValueError) as e:
            raise StorageWriteError(key, f"JSON encode error: {e}") from e

    def write_raw(self, key: str, text: str) -> None:
        """Store undecoded text, used to simulate corrupt values"""
        self.values[key] = text

    def append(self, key: str, data: Any) -> None:
        if self.fail_writes:
            raise StorageWriteError(key, "writes disabled")
        try:
            line = json.dumps(data)
        except (TypeError, ValueError) as e:
            raise StorageWriteError(key, f"JSON encode error: {e}") from e
        self.lines.setdefault(key, []).append(line)

    def read_lines(self, key: str, limit: int = 0, offset: int = 0) -> List[Any]:
        result: List[Any] = []
        for line in self.lines.get(key, [])[offset:]:
            try:
                result.append(json.loads(line))
            except json.JSONDecodeError:
                continue
            if limit > 0 and len(result) >= limit:
                break
        return result

    def exists(self, key: str) -> bool:
        return key in self.values or key in self.lines

    def delete(self, key: str) -> bool:
        self.values.pop(key, None)
        self.lines.pop(key, None)
        return True
