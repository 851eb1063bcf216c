"""
Consent context for the CMP core
Explicit wiring of corpus, matcher, consent state and gate for one page
"""

from typing import Optional

import requests
import structlog

from .classify.matcher import CategoryMatcher, ClassificationResult
from .classify.overrides import OverrideStore
from .config import CMPConfig
from .constants import Events
from .consent.receipts import ConsentLogger, ReceiptStorage
from .consent.state import ConsentState
from .corpus.index import IndexHolder
from .corpus.loader import CorpusLoader
from .events import EventBus
from .gate.dom import Document, MutationStream
from .gate.gate import ActivationGate, Executor
from .storage.base import KeyValueStore
from .storage.file import FileStorage
from .utils.logging import configure_logging

logger = structlog.get_logger(__name__)


class ConsentContext:
    """Everything one page needs, with no shared module state.

    Build several contexts side by side and they never see each other's
    index, overrides, decision or gated elements.
    """

    def __init__(self, config: CMPConfig, storage: KeyValueStore,
                 receipt_storage: Optional[ReceiptStorage] = None,
                 executor: Optional[Executor] = None,
                 http_session: Optional[requests.Session] = None):
        self.config = config
        self.storage = storage
        self.bus = EventBus()

        self.index = IndexHolder()
        self.corpus = CorpusLoader(storage, self.index, config, bus=self.bus,
                                   session=http_session)
        self.overrides = OverrideStore(storage, config.overrides_key)
        self.matcher = CategoryMatcher(self.index, self.overrides)

        self.receipts = ConsentLogger(receipt_storage) if receipt_storage is not None else None
        self.consent = ConsentState(storage, self.bus, config, receipt_sink=self.receipts)
        self.gate = ActivationGate(self.consent, self.bus, config,
                                   matcher=self.matcher, executor=executor)

        self.document: Optional[Document] = None
        self.stream: Optional[MutationStream] = None
        self.initialized = False

    @classmethod
    def create(cls, config: Optional[CMPConfig] = None,
               storage: Optional[KeyValueStore] = None,
               receipt_storage: Optional[ReceiptStorage] = None,
               executor: Optional[Executor] = None,
               http_session: Optional[requests.Session] = None) -> "ConsentContext":
        config = config or CMPConfig()
        configure_logging(config.log_level)
        if storage is None:
            storage = FileStorage(config.data_dir)
        if receipt_storage is None:
            receipt_storage = ReceiptStorage(config.receipt_database_url)
        return cls(config, storage, receipt_storage=receipt_storage,
                   executor=executor, http_session=http_session)

    def classify(self, name: str, domain: Optional[str] = None) -> ClassificationResult:
        return self.matcher.classify(name, domain)

    def start(self, document: Document, auto_flush: bool = False,
              load_corpus: bool = True) -> MutationStream:
        """Initialize for a page: corpus, stored decision, existing and future scripts"""
        if self.initialized:
            logger.warning("Consent context already initialized")
            return self.stream

        if load_corpus:
            self.corpus.load()
        self.consent.load()

        self.document = document
        self.stream = MutationStream(document, auto_flush=auto_flush)
        self.gate.start(document, self.stream)

        self.initialized = True
        self.bus.emit(Events.INITIALIZED, needs_prompt=self.consent.needs_prompt())
        return self.stream

    def teardown(self) -> None:
        self.gate.stop()
        if self.stream is not None:
            self.stream.close()
            self.stream = None
        self.document = None
        self.initialized = False
