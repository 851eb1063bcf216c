from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel, Field

from .models import ConsentDecision
from .state import ConsentState
from ..constants import Categories


logger = structlog.get_logger(__name__)


class ConsentUpdateRequest(BaseModel):
    consent_state: Dict[str, bool]
    session_id: Optional[str] = None
    widget_version: Optional[str] = None
    policy_version: Optional[str] = None
    site_id: str = "default"
    jurisdiction: str = "unknown"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ConsentManager:
    def __init__(self, state: ConsentState):
        self.state = state

    def _summary(self, decision: Optional[ConsentDecision]) -> Dict[str, Any]:
        return {
            "consent": dict(decision.state) if decision else None,
            "timestamp": decision.timestamp if decision else None,
            "granted": decision.granted_categories() if decision else [Categories.NECESSARY],
            "needs_prompt": decision is None,
            "session_id": self.state.session_id,
        }

    async def update_consent(self, consent_data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            payload = ConsentUpdateRequest(**consent_data)
        except Exception as exc:
            logger.error("Invalid consent update payload", error=str(exc))
            raise

        unknown = sorted(c for c in payload.consent_state if c not in Categories.ALL)
        metadata = {
            **payload.metadata,
            "site_id": payload.site_id,
            "jurisdiction": payload.jurisdiction,
        }
        if payload.widget_version:
            metadata["client_widget_version"] = payload.widget_version
        if payload.policy_version:
            metadata["client_policy_version"] = payload.policy_version

        decision = self.state.set(
            payload.consent_state,
            session_id=payload.session_id,
            metadata=metadata,
        )

        result = self._summary(decision)
        result["unknown_categories"] = unknown
        return result

    async def accept_all(self) -> Dict[str, Any]:
        return self._summary(self.state.set(ConsentDecision.all_granted()))

    async def reject_all(self) -> Dict[str, Any]:
        return self._summary(self.state.set(ConsentDecision.all_rejected()))

    async def get_consent(self) -> Dict[str, Any]:
        return self._summary(self.state.get())
