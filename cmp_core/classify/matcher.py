"""
Category matcher for cookies and scripts
Resolves a name/domain pair to a category with a deterministic precedence
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import structlog

from .overrides import Override, OverrideStore, override_key
from ..corpus.index import CorpusIndex, IndexHolder
from ..corpus.models import Category, CorpusRecord

logger = structlog.get_logger(__name__)


class Confidence(str, Enum):
    """Basis of a classification, strongest first"""
    OVERRIDE = "override"
    EXACT = "exact"
    WILDCARD = "wildcard"
    DOMAIN = "domain"
    NONE = "none"


@dataclass(frozen=True)
class ClassificationResult:
    category: Category
    confidence: Confidence
    matched: Optional[Union[CorpusRecord, Override]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": self.confidence.value,
            "matched": self.matched.model_dump(mode="json") if self.matched else None,
        }


UNMATCHED = ClassificationResult(Category.UNCATEGORIZED, Confidence.NONE)


def domain_matches(domain: str, pattern: str) -> bool:
    """Check whether ``domain`` falls under ``pattern``.

    ``.example.com`` matches any name ending in it; ``example.com`` matches
    itself and its subdomains.
    """
    domain = domain.lower()
    pattern = pattern.lower()
    if not pattern:
        return False
    if domain == pattern:
        return True
    if pattern.startswith("."):
        return domain.endswith(pattern)
    return domain.endswith("." + pattern)


class CategoryMatcher:
    """Classifies names against overrides and the current corpus index.

    Lookups read the index reference once per call and never mutate it, so
    the matcher is safe to call concurrently and repeatedly.
    """

    def __init__(self, holder: IndexHolder, overrides: Optional[OverrideStore] = None):
        self.holder = holder
        self.overrides = overrides

    def classify(self, name: str, domain: Optional[str] = None) -> ClassificationResult:
        name = (name or "").strip().lower()
        domain = (domain or "").strip().lower()

        if self.overrides is not None and name:
            override = self.overrides.load().get(override_key(name, domain or None))
            if override is not None:
                return ClassificationResult(override.category, Confidence.OVERRIDE, override)

        index = self.holder.current
        if index is None:
            return UNMATCHED

        result = (
            self._match_exact(index, name, domain)
            or self._match_wildcard(index, name, domain)
            or self._match_domain(index, domain)
        )
        return result or UNMATCHED

    def _match_exact(self, index: CorpusIndex, name: str,
                     domain: str) -> Optional[ClassificationResult]:
        candidates = index.name_candidates(name)
        if not candidates:
            return None

        chosen = candidates[0]
        if domain:
            for record in candidates:
                if domain_matches(domain, record.domain):
                    chosen = record
                    break

        return ClassificationResult(chosen.category, Confidence.EXACT, chosen)

    def _match_wildcard(self, index: CorpusIndex, name: str,
                        domain: str) -> Optional[ClassificationResult]:
        if not name:
            return None

        for entry in index.wildcards:
            if not entry.regex.fullmatch(name):
                continue
            record = index.records[entry.position]
            if domain and record.domain and not domain_matches(domain, record.domain):
                continue
            return ClassificationResult(record.category, Confidence.WILDCARD, record)

        return None

    def _match_domain(self, index: CorpusIndex, domain: str) -> Optional[ClassificationResult]:
        if not domain:
            return None
        candidates = index.domain_candidates(domain)
        if not candidates:
            return None
        return ClassificationResult(candidates[0].category, Confidence.DOMAIN, candidates[0])
