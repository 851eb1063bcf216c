"""
Override store for manual category corrections
Checked by the matcher before any automatic classification
"""

import hashlib
import json
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from ..corpus.models import Category
from ..exceptions import OverrideStoreCorruptError, StorageError, ValidationError
from ..storage.base import KeyValueStore

logger = structlog.get_logger(__name__)

OVERRIDES_VERSION = "1.0.0"


def override_key(name: str, domain: Optional[str] = None) -> str:
    """Lowercased ``name`` or ``name@domain``"""
    key = name.strip().lower()
    if domain:
        key += "@" + domain.strip().lower()
    return key


class Override(BaseModel):
    """A manual classification for one exact name[@domain] key"""
    name: str
    domain: str = ""
    category: Category
    reason: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def key(self) -> str:
        return override_key(self.name, self.domain)


class OverrideStore:
    """Overrides persisted as a single JSON document in the key-value store"""

    def __init__(self, storage: KeyValueStore, key: str):
        self.storage = storage
        self.key = key
        self._reported: set = set()

    def _decode(self, data: Any) -> Dict[str, Override]:
        if not isinstance(data, dict) or not isinstance(data.get("overrides", {}), dict):
            raise OverrideStoreCorruptError(self.key, "unexpected document shape")
        try:
            return {k: Override(**v) for k, v in data.get("overrides", {}).items()}
        except (TypeError, ValueError) as e:
            raise OverrideStoreCorruptError(self.key, str(e)) from e

    def load(self, strict: bool = False) -> Dict[str, Override]:
        """All overrides keyed by override key.

        A missing document is an empty set. A corrupt one raises
        OverrideStoreCorruptError when ``strict``; otherwise it is logged the
        first time that payload is seen and treated as empty.
        """
        try:
            data = self.storage.read(self.key)
            if data is None:
                return {}
            return self._decode(data)
        except (StorageError, OverrideStoreCorruptError) as e:
            if strict:
                if isinstance(e, OverrideStoreCorruptError):
                    raise
                raise OverrideStoreCorruptError(self.key, e.message) from e
            self._report_corruption(e)
            return {}

    def _report_corruption(self, error: Exception) -> None:
        payload = f"{error}|{getattr(error, 'details', '')}"
        fingerprint = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        if fingerprint in self._reported:
            return
        self._reported.add(fingerprint)
        logger.error("Override store corrupt, treating as empty", key=self.key, error=str(error))

    def get(self, name: str, domain: Optional[str] = None) -> Optional[Override]:
        return self.load().get(override_key(name, domain))

    def list_overrides(self) -> List[Override]:
        return list(self.load().values())

    def _save(self, overrides: Dict[str, Override]) -> None:
        document = {
            "version": OVERRIDES_VERSION,
            "overrides": {k: json.loads(v.model_dump_json()) for k, v in overrides.items()},
            "lastModified": datetime.now(UTC).isoformat(),
        }
        self.storage.write(self.key, document)

    def add_override(self, name: str, domain: Optional[str], category: str,
                     reason: str = "") -> Override:
        """Add or replace the override for name[@domain]"""
        if not name or not name.strip():
            raise ValidationError("Override name must not be empty", field="name")
        try:
            normalized = Category(category)
        except ValueError:
            raise ValidationError(f"Unknown category: {category}", field="category",
                                  details={"valid_categories": [c.value for c in Category]})

        overrides = self.load()
        override = Override(name=name, domain=domain or "", category=normalized, reason=reason)
        overrides[override.key] = override
        self._save(overrides)

        logger.info("Stored override", key=override.key, category=normalized.value)
        return override

    def remove_override(self, name: str, domain: Optional[str] = None) -> bool:
        overrides = self.load()
        key = override_key(name, domain)
        if key not in overrides:
            return False
        del overrides[key]
        self._save(overrides)
        logger.info("Removed override", key=key)
        return True
