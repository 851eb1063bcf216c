"""
Utility functions for the CMP core
ID generation and logging setup
"""

from .ids import generate_session_id, generate_receipt_id
from .logging import configure_logging

__all__ = [
    "generate_session_id",
    "generate_receipt_id",
    "configure_logging",
]
