"""
Cookie and script classification
Override store and precedence-ordered category matcher
"""

from .overrides import Override, OverrideStore, override_key
from .matcher import CategoryMatcher, ClassificationResult, Confidence, domain_matches

__all__ = [
    "Override",
    "OverrideStore",
    "override_key",
    "CategoryMatcher",
    "ClassificationResult",
    "Confidence",
    "domain_matches",
]
