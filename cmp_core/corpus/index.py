"""
Reference corpus index
Name, domain and wildcard lookup tables built from a flat record set
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Tuple, Any

import structlog

from .models import CorpusRecord

logger = structlog.get_logger(__name__)


def compile_wildcard(pattern: str) -> Pattern[str]:
    """Compile a cookie-name pattern: ``*`` is zero or more chars, ``?`` exactly one"""
    parts = []
    for char in pattern.lower():
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


@dataclass(frozen=True)
class WildcardEntry:
    pattern: str
    regex: Pattern[str]
    position: int


@dataclass(frozen=True)
class CorpusIndex:
    """Immutable lookup tables over an ordered record sequence.

    ``by_name`` and ``by_domain`` map lowercased keys to record positions in
    input order; ``wildcards`` keeps wildcard records in registration order.
    """
    records: Tuple[CorpusRecord, ...]
    by_name: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    by_domain: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    wildcards: Tuple[WildcardEntry, ...] = ()

    @classmethod
    def build(cls, records: Iterable[CorpusRecord]) -> "CorpusIndex":
        kept: List[CorpusRecord] = []
        by_name: Dict[str, List[int]] = {}
        by_domain: Dict[str, List[int]] = {}
        wildcards: List[WildcardEntry] = []
        skipped = 0

        for record in records:
            name = record.name.strip().lower()
            if not name:
                skipped += 1
                logger.warning("Skipping corpus record without name", record_id=record.id)
                continue

            position = len(kept)
            kept.append(record)

            if record.is_wildcard:
                wildcards.append(WildcardEntry(name, compile_wildcard(name), position))
            else:
                by_name.setdefault(name, []).append(position)

            domain = record.domain.strip().lower()
            if domain:
                by_domain.setdefault(domain, []).append(position)

        logger.info("Built corpus index", records=len(kept), wildcards=len(wildcards),
                    skipped=skipped)

        return cls(
            records=tuple(kept),
            by_name={k: tuple(v) for k, v in by_name.items()},
            by_domain={k: tuple(v) for k, v in by_domain.items()},
            wildcards=tuple(wildcards),
        )

    def __len__(self) -> int:
        return len(self.records)

    def name_candidates(self, name: str) -> List[CorpusRecord]:
        return [self.records[i] for i in self.by_name.get(name, ())]

    def domain_candidates(self, domain: str) -> List[CorpusRecord]:
        return [self.records[i] for i in self.by_domain.get(domain, ())]

    def stats(self) -> Dict[str, Any]:
        """Record totals per category"""
        by_category: Dict[str, int] = {}
        for record in self.records:
            by_category[record.category.value] = by_category.get(record.category.value, 0) + 1
        return {"total": len(self.records), "by_category": by_category}

    def search(self, query: str, limit: int = 50) -> List[CorpusRecord]:
        """Case-insensitive substring search over name, domain, description and platform"""
        if not query:
            return []

        needle = query.lower()
        results: List[CorpusRecord] = []
        for record in self.records:
            if len(results) >= limit:
                break
            fields = (record.name, record.domain, record.description, record.platform)
            if any(needle in value.lower() for value in fields):
                results.append(record)
        return results


class IndexHolder:
    """Holds the authoritative index; replacement is a single reference swap"""

    def __init__(self, index: Optional[CorpusIndex] = None):
        self._index = index

    @property
    def current(self) -> Optional[CorpusIndex]:
        return self._index

    def replace(self, index: CorpusIndex) -> None:
        self._index = index
