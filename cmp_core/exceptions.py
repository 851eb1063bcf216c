"""
Custom Exceptions for the CMP core

Provides a unified exception hierarchy for corpus ingestion, override
storage, consent persistence, receipt logging and the key-value store.
"""

from typing import Optional, Dict, Any, List


class CMPError(Exception):
    """
    Base exception for all CMP core errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CMP_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for host callers"""
        result: Dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# CORPUS ERRORS
# =============================================================================

class CorpusError(CMPError):
    """Base exception for reference corpus errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "CORPUS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class CorpusUnavailableError(CorpusError):
    """Raised when a corpus refresh cannot fetch or parse its source"""

    def __init__(
        self,
        reason: str,
        source: Optional[str] = None
    ):
        details: Dict[str, Any] = {"reason": reason}
        if source:
            details["source"] = source
        super().__init__(
            message=f"Cookie corpus unavailable: {reason}",
            error_code="CORPUS_UNAVAILABLE",
            details=details
        )


# =============================================================================
# OVERRIDE ERRORS
# =============================================================================

class OverrideStoreCorruptError(CMPError):
    """Raised when the persisted override set cannot be decoded"""

    def __init__(
        self,
        key: str,
        reason: Optional[str] = None
    ):
        details: Dict[str, Any] = {"key": key}
        if reason:
            details["reason"] = reason
        super().__init__(
            message=f"Override store is corrupt: {key}",
            error_code="OVERRIDE_STORE_CORRUPT",
            details=details
        )


# =============================================================================
# CONSENT ERRORS
# =============================================================================

class ConsentError(CMPError):
    """Base exception for consent-related errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "CONSENT_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class DecisionPersistError(ConsentError):
    """Raised when a consent decision could not be stored durably"""

    def __init__(
        self,
        reason: str,
        categories: Optional[List[str]] = None
    ):
        details: Dict[str, Any] = {"reason": reason}
        if categories:
            details["categories"] = categories
        super().__init__(
            message=f"Failed to persist consent decision: {reason}",
            error_code="DECISION_PERSIST_FAILED",
            details=details
        )


class ReceiptLogError(ConsentError):
    """Raised when a consent receipt cannot be written"""

    def __init__(
        self,
        message: str = "Failed to write consent receipt",
        session_id: Optional[str] = None
    ):
        details: Dict[str, Any] = {}
        if session_id:
            details["session_id"] = session_id
        super().__init__(message, "RECEIPT_LOG_ERROR", details)


# =============================================================================
# STORAGE ERRORS
# =============================================================================

class StorageError(CMPError):
    """Base exception for key-value store errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "STORAGE_ERROR",
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(message, error_code, details)


class StorageReadError(StorageError):
    """Raised when a stored value cannot be read or decoded"""

    def __init__(self, key: str, reason: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__(
            message=f"Cannot read key: {key}",
            error_code="STORAGE_READ_ERROR",
            key=key,
            details=details
        )


class StorageWriteError(StorageError):
    """Raised when a value cannot be written"""

    def __init__(self, key: str, reason: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__(
            message=f"Cannot write key: {key}",
            error_code="STORAGE_WRITE_ERROR",
            key=key,
            details=details
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(CMPError):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", details)
