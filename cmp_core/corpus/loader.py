"""
Corpus ingestion for the CMP core
Downloads, parses and caches the Open Cookie Database, then swaps the index
"""

import csv
import io
from datetime import datetime, timedelta, UTC
from typing import Any, Dict, List, Optional

import requests
import structlog

from .index import CorpusIndex, IndexHolder
from .models import CorpusRecord, normalize_category
from ..config import CMPConfig
from ..constants import CorpusColumns, Events
from ..events import EventBus
from ..exceptions import CorpusUnavailableError, StorageError
from ..storage.base import KeyValueStore

logger = structlog.get_logger(__name__)

CACHE_VERSION = "1.0.0"


def parse_csv(text: str) -> List[CorpusRecord]:
    """Parse Open Cookie Database CSV into records.

    Rows shorter than the header and rows without a name are skipped. A
    source without the name column cannot be ingested at all.
    """
    reader = csv.reader(io.StringIO(text))
    try:
        headers = [h.strip() for h in next(reader)]
    except StopIteration:
        raise CorpusUnavailableError("empty corpus source")
    except csv.Error as e:
        raise CorpusUnavailableError(f"unreadable header: {e}")

    if CorpusColumns.NAME not in headers:
        raise CorpusUnavailableError(f"missing column '{CorpusColumns.NAME}'")

    records: List[CorpusRecord] = []
    malformed = 0
    try:
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            if len(row) < len(headers):
                malformed += 1
                continue

            raw = dict(zip(headers, row))
            name = raw.get(CorpusColumns.NAME, "").strip()
            if not name:
                malformed += 1
                continue

            records.append(CorpusRecord(
                id=raw.get(CorpusColumns.ID, ""),
                platform=raw.get(CorpusColumns.PLATFORM, ""),
                category=normalize_category(raw.get(CorpusColumns.CATEGORY, "")),
                name=name,
                domain=raw.get(CorpusColumns.DOMAIN, "").strip(),
                description=raw.get(CorpusColumns.DESCRIPTION, ""),
                retention=raw.get(CorpusColumns.RETENTION, ""),
                data_controller=raw.get(CorpusColumns.DATA_CONTROLLER, ""),
                privacy_portal=raw.get(CorpusColumns.PRIVACY_PORTAL, ""),
                is_wildcard=raw.get(CorpusColumns.WILDCARD, "0").strip() == "1",
            ))
    except csv.Error as e:
        raise CorpusUnavailableError(f"malformed CSV: {e}")

    if malformed:
        logger.warning("Skipped malformed corpus rows", count=malformed)

    return records


class CorpusLoader:
    """Refreshes the reference corpus and publishes it through an IndexHolder"""

    def __init__(self, storage: KeyValueStore, holder: IndexHolder,
                 config: CMPConfig, bus: Optional[EventBus] = None,
                 session: Optional[requests.Session] = None):
        self.storage = storage
        self.holder = holder
        self.config = config
        self.bus = bus
        self.session = session or requests.Session()
        self.last_updated: Optional[datetime] = None

    def _cache_is_fresh(self, cached: Dict[str, Any]) -> bool:
        last_updated = cached.get("lastUpdated")
        if not last_updated:
            return False
        try:
            stamp = datetime.fromisoformat(last_updated)
        except ValueError:
            return False
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=UTC)
        return datetime.now(UTC) - stamp < timedelta(days=self.config.corpus_max_age_days)

    def _read_cache(self) -> Optional[Dict[str, Any]]:
        try:
            cached = self.storage.read(self.config.corpus_cache_key)
        except StorageError as e:
            logger.warning("Corpus cache unreadable", error=str(e))
            return None
        return cached if isinstance(cached, dict) else None

    def _index_from_cache(self, cached: Dict[str, Any]) -> Optional[CorpusIndex]:
        try:
            records = [CorpusRecord(**r) for r in cached.get("records", [])]
            last_updated = datetime.fromisoformat(cached.get("lastUpdated", ""))
        except (TypeError, ValueError) as e:
            logger.warning("Corpus cache records invalid", error=str(e))
            return None
        if not records:
            return None
        self.last_updated = last_updated
        return CorpusIndex.build(records)

    def _publish(self, index: CorpusIndex, source: str) -> CorpusIndex:
        self.holder.replace(index)
        logger.info("Corpus index replaced", source=source, records=len(index))
        if self.bus:
            self.bus.emit(Events.CORPUS_REFRESHED, source=source, stats=index.stats())
        return index

    def fetch(self) -> str:
        """Download the raw CSV source"""
        try:
            response = self.session.get(self.config.corpus_url,
                                        timeout=self.config.corpus_fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise CorpusUnavailableError(str(e), source=self.config.corpus_url) from e
        return response.text

    def refresh(self, force: bool = False) -> CorpusIndex:
        """Rebuild the index from cache or source.

        Raises CorpusUnavailableError when nothing could be ingested; the
        previously published index then stays authoritative.
        """
        if not force:
            cached = self._read_cache()
            if cached and self._cache_is_fresh(cached):
                index = self._index_from_cache(cached)
                if index is not None:
                    return self._publish(index, "cache")

        records = parse_csv(self.fetch())
        if not records:
            raise CorpusUnavailableError("source contained no records",
                                         source=self.config.corpus_url)

        now = datetime.now(UTC)
        index = CorpusIndex.build(records)
        cache = {
            "version": CACHE_VERSION,
            "lastUpdated": now.isoformat(),
            "source": self.config.corpus_url,
            "stats": index.stats(),
            "records": [r.to_cache() for r in index.records],
        }
        try:
            self.storage.write(self.config.corpus_cache_key, cache)
        except StorageError as e:
            logger.warning("Failed to cache corpus", error=str(e))

        self.last_updated = now
        return self._publish(index, self.config.corpus_url)

    def load(self) -> bool:
        """Page-load path: make an index available without ever raising"""
        if self.holder.current is not None:
            return True
        try:
            self.refresh()
            return True
        except CorpusUnavailableError as e:
            cached = self._read_cache()
            index = self._index_from_cache(cached) if cached else None
            if index is not None:
                logger.warning("Corpus refresh failed, using stale cache",
                               error=e.message, last_updated=cached.get("lastUpdated"))
                self._publish(index, "stale-cache")
                return True
            logger.error("Corpus unavailable, lookups degrade to none", error=e.message)
            return False

    def stats(self) -> Optional[Dict[str, Any]]:
        index = self.holder.current
        return index.stats() if index is not None else None
