"""
ID generation utilities for the CMP core
Anonymous session identifiers and receipt ids
"""

import uuid
import secrets


def generate_session_id() -> str:
    """Generate an anonymous consent session ID"""
    return f"sess_{secrets.token_urlsafe(24)}"


def generate_receipt_id() -> str:
    """Generate consent receipt ID"""
    return f"receipt_{uuid.uuid4()}"
