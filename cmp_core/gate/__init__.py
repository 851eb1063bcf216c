"""
Consent-gated script activation
Document model, mutation stream and the activation gate state machine
"""

from .dom import Document, MutationRecord, MutationStream, ScriptElement
from .gate import ActivationGate, ElementState, GatedElement
from .html import document_from_html, render_element, scan_html

__all__ = [
    "Document",
    "MutationRecord",
    "MutationStream",
    "ScriptElement",
    "ActivationGate",
    "ElementState",
    "GatedElement",
    "document_from_html",
    "render_element",
    "scan_html",
]
