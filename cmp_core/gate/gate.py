"""
Activation gate for consent-gated scripts
Defers or activates newly discovered script elements based on consent
"""

import weakref
from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlparse

import structlog

from .dom import Document, MutationRecord, MutationStream, ScriptElement
from ..classify.matcher import CategoryMatcher
from ..config import CMPConfig
from ..constants import Categories, EXECUTABLE_SCRIPT_TYPES, Events, Markers
from ..corpus.models import Category, normalize_category
from ..events import EventBus

if TYPE_CHECKING:
    from ..consent.models import ConsentDecision
    from ..consent.state import ConsentState

logger = structlog.get_logger(__name__)

Executor = Callable[[ScriptElement], None]


class ElementState(str, Enum):
    PENDING = "pending"
    BLOCKED = "blocked"
    ACTIVE = "active"


@dataclass(eq=False)
class GatedElement:
    """A discovered script and its one-time classification"""
    element: ScriptElement
    category: str
    original_attributes: Tuple[Tuple[str, str], ...]
    content_snapshot: str
    sequence: int
    state: ElementState = ElementState.PENDING


def _log_executor(element: ScriptElement) -> None:
    logger.debug("Executing script", src=element.get_attribute("src"))


class ActivationGate:
    """Per-element state machine: pending -> blocked | active, blocked -> active.

    Active is terminal. Revoking consent never re-blocks anything; it only
    affects elements discovered later and is reported as requiring a reload.
    """

    def __init__(self, consent: "ConsentState", bus: EventBus, config: CMPConfig,
                 matcher: Optional[CategoryMatcher] = None,
                 executor: Optional[Executor] = None):
        self.consent = consent
        self.bus = bus
        self.config = config
        self.matcher = matcher
        self.executor = executor or _log_executor

        self.document: Optional[Document] = None
        self.stream: Optional[MutationStream] = None
        self._blocked: List[GatedElement] = []
        self._seen: "weakref.WeakSet[ScriptElement]" = weakref.WeakSet()
        self._produced: "weakref.WeakSet[ScriptElement]" = weakref.WeakSet()
        self._detached: "weakref.WeakKeyDictionary[ScriptElement, GatedElement]" = (
            weakref.WeakKeyDictionary()
        )
        self._active_categories: Set[str] = set()
        self._sequence = count()

        consent.bind_gate(self)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start(self, document: Document, stream: Optional[MutationStream] = None) -> None:
        """Gate scripts already in the document, then follow its mutations"""
        self.document = document
        for element in list(document.scripts()):
            self.discover(element)

        if stream is not None:
            self.stream = stream
            stream.observe(self.handle_records)

        logger.info("Activation gate started", blocked=len(self._blocked))

    def stop(self) -> None:
        """Page teardown: stop observing and drop every tracked element"""
        if self.stream is not None:
            self.stream.disconnect(self.handle_records)
            self.stream = None
        self._blocked.clear()
        self._detached.clear()
        self.document = None

    # ------------------------------------------------------------------
    # observation
    # ------------------------------------------------------------------

    def handle_records(self, records: Iterable[MutationRecord]) -> None:
        for record in records:
            for node in record.removed:
                self._forget(node)
            for node in record.added:
                if node.tag == "script" and node not in self._produced:
                    self.discover(node)

    def _forget(self, node: ScriptElement) -> None:
        """Stop tracking a removed placeholder until it is inserted again"""
        for gated in self._blocked:
            if gated.element is node:
                self._blocked.remove(gated)
                self._detached[node] = gated
                return

    def _reattach(self, gated: GatedElement) -> None:
        if self.consent.is_permitted(gated.category):
            self._activate(gated)
            return
        self._blocked.append(gated)
        self._blocked.sort(key=lambda g: g.sequence)

    def discover(self, element: ScriptElement) -> Optional[GatedElement]:
        """Classify and gate an element exactly once.

        Returns the GatedElement on first discovery, the tracked entry for an
        element that is still blocked, and None for one already active.
        """
        if element in self._seen:
            detached = self._detached.pop(element, None)
            if detached is not None:
                self._reattach(detached)
                return detached
            return self._find_blocked(element)
        self._seen.add(element)

        marker = element.get_attribute(self.config.category_attribute)
        marker = marker.strip().lower() if marker is not None else ""

        gated = GatedElement(
            element=element,
            category=Categories.NECESSARY,
            original_attributes=tuple(element.attributes),
            content_snapshot=element.text,
            sequence=next(self._sequence),
        )

        if not marker or marker == Categories.NECESSARY or not self.config.blocking_enabled:
            gated.state = ElementState.ACTIVE
            if element.is_executable():
                self._execute(element, marker or None)
            self.bus.emit(Events.ELEMENT_ACTIVATED, category=marker or None,
                          sequence=gated.sequence, gated=False)
            return gated

        gated.category = self._classify(element, marker)

        if self.consent.is_permitted(gated.category):
            self._activate(gated)
        else:
            self._block(gated)
        return gated

    def _find_blocked(self, element: ScriptElement) -> Optional[GatedElement]:
        for gated in self._blocked:
            if gated.element is element:
                return gated
        return None

    def _classify(self, element: ScriptElement, marker: str) -> str:
        """Explicit markers win; ``auto`` asks the corpus; failures fail closed"""
        try:
            if marker in Categories.ALL:
                return marker
            if marker == Markers.AUTO:
                return self._classify_from_corpus(element)
            return normalize_category(marker).value
        except Exception as e:
            logger.error("Classification failed, blocking as uncategorized",
                         marker=marker, error=str(e))
            return Category.UNCATEGORIZED.value

    def _classify_from_corpus(self, element: ScriptElement) -> str:
        name = element.get_attribute(self.config.cookie_name_attribute)
        if self.matcher is None or not name:
            return Category.UNCATEGORIZED.value
        result = self.matcher.classify(name, _host_of(element.get_attribute("src")))
        return result.category.value

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    def _block(self, gated: GatedElement) -> None:
        element = gated.element
        element.set_attribute("type", self.config.placeholder_type)
        element.set_attribute(self.config.blocked_attribute, "true")
        gated.state = ElementState.BLOCKED
        self._blocked.append(gated)

        logger.info("Blocked script", category=gated.category, sequence=gated.sequence)
        self.bus.emit(Events.ELEMENT_BLOCKED, category=gated.category, sequence=gated.sequence)

    def executable_attributes(self, gated: GatedElement) -> List[Tuple[str, str]]:
        """Original attributes in order, minus the blocked marker and any inert type"""
        blocked_attr = self.config.blocked_attribute.lower()
        attributes = []
        for name, value in gated.original_attributes:
            lowered = name.lower()
            if lowered == blocked_attr:
                continue
            if lowered == "type" and value.strip().lower() not in EXECUTABLE_SCRIPT_TYPES:
                continue
            attributes.append((name, value))
        return attributes

    def _activate(self, gated: GatedElement) -> None:
        element = gated.element
        attributes = self.executable_attributes(gated)

        if gated.state == ElementState.PENDING and attributes == list(element.attributes):
            runnable = element
        else:
            runnable = ScriptElement(tag=element.tag, attributes=attributes,
                                     text=gated.content_snapshot)
            self._produced.add(runnable)
            self._seen.add(runnable)

        # must be active before the swap; the placeholder removal record then detaches nothing
        gated.element = runnable
        gated.state = ElementState.ACTIVE
        self._active_categories.add(gated.category)
        if runnable is not element and element.parent is not None:
            element.parent.replace(element, runnable)

        self._execute(runnable, gated.category)

        logger.info("Activated script", category=gated.category, sequence=gated.sequence)
        self.bus.emit(Events.ELEMENT_ACTIVATED, category=gated.category,
                      sequence=gated.sequence, gated=True)

    def _execute(self, element: ScriptElement, category: Optional[str]) -> None:
        """Hand an element to the executor; a throwing script does not stop the gate"""
        try:
            self.executor(element)
        except Exception:
            logger.exception("Script execution failed", category=category,
                             src=element.get_attribute("src"))

    def reevaluate(self, decision: Optional["ConsentDecision"],
                   previous: Optional["ConsentDecision"] = None) -> List[GatedElement]:
        """Activate blocked elements the new decision permits, in discovery order"""
        activated: List[GatedElement] = []
        if decision is not None:
            for gated in list(self._blocked):
                if gated not in self._blocked or gated.state != ElementState.BLOCKED:
                    continue
                if not decision.allows(gated.category):
                    continue
                self._blocked.remove(gated)
                self._activate(gated)
                activated.append(gated)

        revoked = sorted(
            category for category in self._active_categories
            if category != Categories.NECESSARY
            and (previous is None or previous.allows(category))
            and (decision is None or not decision.allows(category))
        )
        if revoked:
            logger.warning("Consent revoked for running scripts, reload required",
                           categories=revoked)
            self.bus.emit(Events.RELOAD_REQUIRED, categories=revoked)

        return activated

    # ------------------------------------------------------------------
    # introspection
    # ------------------------------------------------------------------

    @property
    def blocked(self) -> List[GatedElement]:
        return list(self._blocked)

    @property
    def active_categories(self) -> Set[str]:
        return set(self._active_categories)


def _host_of(src: Optional[str]) -> Optional[str]:
    if not src:
        return None
    parsed = urlparse(src if "//" in src else "//" + src)
    return parsed.hostname
