"""
File-backed key-value store
Atomic JSON writes via temp file + rename, JSONL appends under a per-key lock
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from .base import KeyValueStore
from ..exceptions import StorageReadError, StorageWriteError

logger = structlog.get_logger(__name__)


class FileStorage(KeyValueStore):
    """JSON files under a base directory, one file per key"""

    def __init__(self, base_path: str = "data"):
        self.base_path = Path(base_path).resolve()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _resolve(self, key: str) -> Path:
        path = (self.base_path / key.lstrip("/")).resolve()
        if self.base_path != path and self.base_path not in path.parents:
            raise StorageWriteError(key, "key escapes the storage directory")
        return path

    def read(self, key: str) -> Optional[Any]:
        path = self._resolve(key)
        if not path.exists():
            return None

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageReadError(key, str(e)) from e

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise StorageReadError(key, f"invalid JSON: {e.msg}") from e

    def write(self, key: str, data: Any) -> None:
        path = self._resolve(key)

        try:
            payload = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageWriteError(key, f"JSON encode error: {e}") from e

        with self._lock_for(key):
            tmp_name = None
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=str(path.parent), prefix=path.name + ".tmp."
                )
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except OSError as e:
                if tmp_name and os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                logger.error("Atomic write failed", key=key, error=str(e))
                raise StorageWriteError(key, str(e)) from e

    def append(self, key: str, data: Any) -> None:
        path = self._resolve(key)

        try:
            line = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise StorageWriteError(key, f"JSON encode error: {e}") from e

        with self._lock_for(key):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as e:
                logger.error("Append failed", key=key, error=str(e))
                raise StorageWriteError(key, str(e)) from e

    def read_lines(self, key: str, limit: int = 0, offset: int = 0) -> List[Any]:
        path = self._resolve(key)
        if not path.exists():
            return []

        lines: List[Any] = []
        try:
            with path.open("r", encoding="utf-8") as handle:
                for line_num, line in enumerate(handle):
                    if line_num < offset:
                        continue
                    stripped = line.strip()
                    if not stripped:
                        continue
                    try:
                        lines.append(json.loads(stripped))
                    except json.JSONDecodeError:
                        logger.warning("Skipping undecodable line", key=key, line=line_num)
                        continue
                    if limit > 0 and len(lines) >= limit:
                        break
        except OSError as e:
            raise StorageReadError(key, str(e)) from e

        return lines

    def exists(self, key: str) -> bool:
        return self._resolve(key).exists()

    def delete(self, key: str) -> bool:
        path = self._resolve(key)
        with self._lock_for(key):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageWriteError(key, str(e)) from e
        return True
