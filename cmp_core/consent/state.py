"""
Consent state for the CMP core
Current decision, its durable copy, and the transition that drives the gate
"""

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

import structlog

from .models import ConsentDecision, ConsentReceipt
from .receipts import ConsentLogger
from ..config import CMPConfig
from ..constants import Categories, Events
from ..events import EventBus
from ..exceptions import CMPError, DecisionPersistError, StorageError
from ..storage.base import KeyValueStore
from ..utils.ids import generate_session_id

if TYPE_CHECKING:
    from ..gate.gate import ActivationGate

logger = structlog.get_logger(__name__)


class ConsentState:
    """Source of truth for gating.

    ``set`` is the only transition that moves the activation gate. It
    persists first, then notifies once, then re-evaluates the gate; a failed
    write raises DecisionPersistError before anything else happens.
    """

    def __init__(self, storage: KeyValueStore, bus: EventBus, config: CMPConfig,
                 receipt_sink: Optional[ConsentLogger] = None,
                 session_id: Optional[str] = None):
        self.storage = storage
        self.bus = bus
        self.config = config
        self.receipt_sink = receipt_sink
        self.session_id = session_id or generate_session_id()
        self._decision: Optional[ConsentDecision] = None
        self._loaded = False
        self._gate: Optional["ActivationGate"] = None

    def bind_gate(self, gate: "ActivationGate") -> None:
        self._gate = gate

    def load(self) -> Optional[ConsentDecision]:
        """Read the stored decision; unreadable data counts as no decision"""
        self._loaded = True
        try:
            data = self.storage.read(self.config.consent_key)
        except StorageError as e:
            logger.error("Stored consent unreadable", error=e.message)
            self._decision = None
            return None

        if data is None:
            self._decision = None
            return None

        try:
            self._decision = ConsentDecision(**data)
        except (TypeError, ValueError) as e:
            logger.error("Stored consent invalid", error=str(e))
            self._decision = None
        else:
            logger.info("Loaded existing consent", consent=self._decision.state)
        return self._decision

    def get(self) -> Optional[ConsentDecision]:
        if not self._loaded:
            self.load()
        return self._decision

    def is_permitted(self, category: str) -> bool:
        if category == Categories.NECESSARY:
            return True
        decision = self.get()
        return decision is not None and decision.allows(category)

    def needs_prompt(self) -> bool:
        """True while the visitor has not decided yet"""
        return self.get() is None

    def set(self, decision: Union[ConsentDecision, Mapping[str, bool]],
            session_id: Optional[str] = None,
            metadata: Optional[Dict[str, Any]] = None) -> ConsentDecision:
        """Apply a new decision: persist, notify, re-evaluate, then log a receipt"""
        if isinstance(decision, ConsentDecision):
            state = dict(decision.state)
        else:
            state = dict(decision)
        new = ConsentDecision(state=state, version=self.config.widget_version)
        previous = self.get()

        try:
            self.storage.write(self.config.consent_key, new.model_dump())
        except StorageError as e:
            logger.error("Failed to persist consent", error=e.message)
            raise DecisionPersistError(e.message, categories=sorted(new.state)) from e

        self._decision = new
        self._loaded = True
        logger.info("Consent saved", consent=new.state)

        self.bus.emit(Events.CONSENT_CHANGED, consent=dict(new.state),
                      previous=dict(previous.state) if previous else None)

        if self._gate is not None:
            self._gate.reevaluate(new, previous)

        self._send_receipt(new, session_id, metadata)
        return new

    def _send_receipt(self, decision: ConsentDecision, session_id: Optional[str],
                      metadata: Optional[Dict[str, Any]]) -> None:
        if self.receipt_sink is None:
            return

        receipt = ConsentReceipt(
            timestamp=decision.timestamp,
            session_id=session_id or self.session_id,
            consent_state=dict(decision.state),
            widget_version=self.config.widget_version,
            policy_version=self.config.policy_version,
            metadata={"site_id": self.config.site_id, **(metadata or {})},
        )
        try:
            if not self.receipt_sink.log(receipt):
                logger.warning("Consent receipt not recorded", session_id=receipt.session_id)
        except CMPError as e:
            logger.warning("Consent receipt rejected", error=e.message)

    def apply_do_not_track(self, enabled: bool) -> Optional[ConsentDecision]:
        """Record reject-all for Do Not Track visitors who have not decided"""
        if not (enabled and self.config.respect_do_not_track and self.needs_prompt()):
            return None
        logger.info("Do Not Track set, rejecting optional categories")
        return self.set(ConsentDecision.all_rejected(), metadata={"reason": "do_not_track"})

    def reset(self) -> None:
        """Forget the decision; scripts already running keep running"""
        previous = self.get()
        try:
            self.storage.delete(self.config.consent_key)
        except StorageError as e:
            raise DecisionPersistError(e.message) from e

        self._decision = None
        self._loaded = True
        logger.info("Consent reset")

        self.bus.emit(Events.CONSENT_CHANGED, consent=None,
                      previous=dict(previous.state) if previous else None)
        if self._gate is not None:
            self._gate.reevaluate(None, previous)
