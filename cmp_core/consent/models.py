"""
Consent data models for the CMP core
Current per-category decision and the receipt handed to the external log
"""

from datetime import datetime, UTC
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field, field_validator

from ..constants import Categories, WIDGET_VERSION
from ..utils.ids import generate_receipt_id


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ConsentDecision(BaseModel):
    """The visitor's current choice per category.

    ``necessary`` is always true; a false value is coerced rather than
    rejected.
    """
    state: Dict[str, bool] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=_now_iso)
    version: str = Field(default=WIDGET_VERSION)

    @field_validator("state")
    @classmethod
    def _force_necessary(cls, value: Dict[str, bool]) -> Dict[str, bool]:
        state = {str(k).strip().lower(): bool(v) for k, v in value.items()}
        state[Categories.NECESSARY] = True
        return state

    @classmethod
    def all_granted(cls, categories: Iterable[str] = Categories.CONSENTABLE) -> "ConsentDecision":
        return cls(state={c: True for c in categories})

    @classmethod
    def all_rejected(cls, categories: Iterable[str] = Categories.CONSENTABLE) -> "ConsentDecision":
        return cls(state={c: False for c in categories})

    def allows(self, category: str) -> bool:
        if category == Categories.NECESSARY:
            return True
        return self.state.get(category, False)

    def granted_categories(self) -> List[str]:
        return [c for c, allowed in self.state.items() if allowed]


class ConsentReceipt(BaseModel):
    """Proof-of-consent entry for the append-only receipt log"""
    id: str = Field(default_factory=generate_receipt_id)
    timestamp: str = Field(default_factory=_now_iso, description="ISO-8601")
    session_id: str = Field(..., description="Opaque, already anonymized by the caller")
    consent_state: Dict[str, bool]
    widget_version: str = Field(default=WIDGET_VERSION)
    policy_version: str = Field(default="1.0.0")
    metadata: Dict[str, Any] = Field(default_factory=dict)
