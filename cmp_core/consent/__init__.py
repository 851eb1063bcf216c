"""
Consent management for the CMP core
Current decision, receipt log and host-facing manager
"""

from .models import ConsentDecision, ConsentReceipt
from .receipts import ConsentLogger, ReceiptStorage, InMemoryReceiptStorage
from .state import ConsentState
from .manager import ConsentManager, ConsentUpdateRequest

__all__ = [
    "ConsentDecision",
    "ConsentReceipt",
    "ConsentLogger",
    "ReceiptStorage",
    "InMemoryReceiptStorage",
    "ConsentState",
    "ConsentManager",
    "ConsentUpdateRequest",
]
