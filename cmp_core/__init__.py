"""
CMP Core
Cookie and script categorization with consent-gated activation
"""

__version__ = "0.1.0"

from .config import CMPConfig, get_config, update_config

from .corpus import Category, CorpusRecord, CorpusIndex, IndexHolder, CorpusLoader, normalize_category
from .classify import CategoryMatcher, ClassificationResult, Confidence, OverrideStore, domain_matches
from .consent import (
    ConsentDecision, ConsentReceipt, ConsentState, ConsentLogger, ConsentManager,
    ReceiptStorage, InMemoryReceiptStorage,
)
from .gate import ActivationGate, ElementState, GatedElement, Document, MutationStream, ScriptElement
from .events import Event, EventBus
from .context import ConsentContext
from .storage import KeyValueStore, FileStorage, InMemoryStorage
from .exceptions import (
    CMPError, CorpusUnavailableError, OverrideStoreCorruptError,
    DecisionPersistError, ReceiptLogError, StorageError, ValidationError,
)

__all__ = [
    # Config
    "CMPConfig",
    "get_config",
    "update_config",

    # Corpus
    "Category",
    "CorpusRecord",
    "CorpusIndex",
    "IndexHolder",
    "CorpusLoader",
    "normalize_category",

    # Classification
    "CategoryMatcher",
    "ClassificationResult",
    "Confidence",
    "OverrideStore",
    "domain_matches",

    # Consent
    "ConsentDecision",
    "ConsentReceipt",
    "ConsentState",
    "ConsentLogger",
    "ConsentManager",
    "ReceiptStorage",
    "InMemoryReceiptStorage",

    # Gate
    "ActivationGate",
    "ElementState",
    "GatedElement",
    "Document",
    "MutationStream",
    "ScriptElement",

    # Wiring
    "Event",
    "EventBus",
    "ConsentContext",

    # Storage
    "KeyValueStore",
    "FileStorage",
    "InMemoryStorage",

    # Errors
    "CMPError",
    "CorpusUnavailableError",
    "OverrideStoreCorruptError",
    "DecisionPersistError",
    "ReceiptLogError",
    "StorageError",
    "ValidationError",
]
