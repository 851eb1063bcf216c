"""
Reference corpus for cookie and script categorization
"""

from .models import Category, CorpusRecord, normalize_category
from .index import CorpusIndex, IndexHolder, compile_wildcard
from .loader import CorpusLoader, parse_csv

__all__ = [
    "Category",
    "CorpusRecord",
    "normalize_category",
    "CorpusIndex",
    "IndexHolder",
    "compile_wildcard",
    "CorpusLoader",
    "parse_csv",
]
