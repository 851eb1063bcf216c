"""
Minimal document model for the activation gate
Ordered script elements and an insertion observation stream
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional, Tuple

import structlog

from ..constants import EXECUTABLE_SCRIPT_TYPES

logger = structlog.get_logger(__name__)


@dataclass(eq=False)
class ScriptElement:
    """An element with ordered attributes and verbatim inline content"""
    tag: str = "script"
    attributes: List[Tuple[str, str]] = field(default_factory=list)
    text: str = ""
    parent: Optional["Document"] = field(default=None, repr=False)

    def __post_init__(self):
        self.tag = self.tag.lower()
        self.attributes = [(name, value) for name, value in self.attributes]

    def get_attribute(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for attr, value in self.attributes:
            if attr.lower() == wanted:
                return value
        return None

    def has_attribute(self, name: str) -> bool:
        return self.get_attribute(name) is not None

    def set_attribute(self, name: str, value: str) -> None:
        """Replace in place, keeping position; append when absent"""
        wanted = name.lower()
        for i, (attr, _) in enumerate(self.attributes):
            if attr.lower() == wanted:
                self.attributes[i] = (attr, value)
                return
        self.attributes.append((name, value))

    def remove_attribute(self, name: str) -> None:
        wanted = name.lower()
        self.attributes = [(a, v) for a, v in self.attributes if a.lower() != wanted]

    @property
    def script_type(self) -> str:
        return (self.get_attribute("type") or "").strip().lower()

    def is_executable(self) -> bool:
        return self.tag == "script" and self.script_type in EXECUTABLE_SCRIPT_TYPES


@dataclass
class MutationRecord:
    """Child-list change delivered to observers"""
    added: List[ScriptElement] = field(default_factory=list)
    removed: List[ScriptElement] = field(default_factory=list)


MutationCallback = Callable[[List[MutationRecord]], None]


class Document:
    """Flat ordered list of elements that reports insertions and removals"""

    def __init__(self, children: Optional[List[ScriptElement]] = None):
        self.children: List[ScriptElement] = []
        self._streams: List["MutationStream"] = []
        for child in children or []:
            child.parent = self
            self.children.append(child)

    def _notify(self, record: MutationRecord) -> None:
        for stream in list(self._streams):
            stream.enqueue(record)

    def insert(self, element: ScriptElement, index: Optional[int] = None) -> ScriptElement:
        element.parent = self
        if index is None:
            self.children.append(element)
        else:
            self.children.insert(index, element)
        self._notify(MutationRecord(added=[element]))
        return element

    def replace(self, old: ScriptElement, new: ScriptElement) -> ScriptElement:
        position = self.children.index(old)
        self.children[position] = new
        old.parent = None
        new.parent = self
        self._notify(MutationRecord(added=[new], removed=[old]))
        return new

    def remove(self, element: ScriptElement) -> None:
        self.children.remove(element)
        element.parent = None
        self._notify(MutationRecord(removed=[element]))

    def query(self, tag: str = "script") -> List[ScriptElement]:
        return [c for c in self.children if c.tag == tag.lower()]

    def scripts(self) -> List[ScriptElement]:
        return self.query("script")


class MutationStream:
    """Ordered delivery of a document's mutation records.

    Records queue up as the document changes and are handed to observers in
    the order they happened, either on ``flush()`` or by the polling loop in
    ``run()``. With ``auto_flush`` every change is delivered immediately.
    Records produced while observers run are delivered after the current one.
    """

    def __init__(self, document: Document, auto_flush: bool = False):
        self.document = document
        self.auto_flush = auto_flush
        self._queue: Deque[MutationRecord] = deque()
        self._observers: List[MutationCallback] = []
        self._flushing = False
        document._streams.append(self)

    def observe(self, callback: MutationCallback) -> None:
        if callback not in self._observers:
            self._observers.append(callback)

    def disconnect(self, callback: Optional[MutationCallback] = None) -> None:
        if callback is None:
            self._observers.clear()
        elif callback in self._observers:
            self._observers.remove(callback)

    def close(self) -> None:
        self.disconnect()
        self._queue.clear()
        if self in self.document._streams:
            self.document._streams.remove(self)

    def enqueue(self, record: MutationRecord) -> None:
        self._queue.append(record)
        if self.auto_flush:
            self.flush()

    @property
    def pending(self) -> int:
        return len(self._queue)

    def flush(self) -> int:
        """Deliver queued records one at a time; returns how many were delivered"""
        if self._flushing:
            return 0

        delivered = 0
        self._flushing = True
        try:
            while self._queue:
                record = self._queue.popleft()
                for observer in list(self._observers):
                    observer([record])
                delivered += 1
        finally:
            self._flushing = False
        return delivered

    async def run(self, interval: float = 0.05, stop: Optional[asyncio.Event] = None) -> None:
        """Polling loop for hosts without a native tree watcher"""
        logger.debug("Mutation polling started", interval=interval)
        while stop is None or not stop.is_set():
            self.flush()
            await asyncio.sleep(interval)
        self.flush()
        logger.debug("Mutation polling stopped")
