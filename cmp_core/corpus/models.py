"""
Reference corpus data models
Cookie / script records and category normalization
"""

from enum import Enum
from typing import Dict, Any

from pydantic import BaseModel, Field

from ..constants import CATEGORY_MAP


class Category(str, Enum):
    """Canonical privacy categories"""
    NECESSARY = "necessary"
    PREFERENCES = "preferences"
    ANALYTICS = "analytics"
    MARKETING = "marketing"
    UNCATEGORIZED = "uncategorized"


def normalize_category(raw: str) -> Category:
    """Map a source category label onto a canonical category.

    Exact (case-insensitive) lookup first, then case-insensitive substring
    matching in map order. Unknown labels become ``uncategorized``.
    """
    value = (raw or "").strip()
    if not value:
        return Category.UNCATEGORIZED

    lower = value.lower()
    for label, category in CATEGORY_MAP.items():
        if lower == label.lower():
            return Category(category)

    for label, category in CATEGORY_MAP.items():
        if label.lower() in lower:
            return Category(category)

    try:
        return Category(lower)
    except ValueError:
        return Category.UNCATEGORIZED


class CorpusRecord(BaseModel):
    """A known cookie or script identifier with its privacy category"""
    id: str = Field(default="")
    platform: str = Field(default="")
    category: Category = Field(default=Category.UNCATEGORIZED)
    name: str = Field(..., description="Cookie name, may carry * / ? wildcard tokens")
    domain: str = Field(default="")
    is_wildcard: bool = Field(default=False)
    description: str = Field(default="")
    retention: str = Field(default="")
    data_controller: str = Field(default="")
    privacy_portal: str = Field(default="")

    model_config = {"frozen": True}

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
