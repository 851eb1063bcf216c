"""
Constants for the CMP core

Canonical cookie categories, matcher confidences, element marker
attributes and event names shared across the package.
"""

from typing import Dict, Final, Tuple


SERVICE_NAME: Final[str] = "cmp-core"
WIDGET_VERSION: Final[str] = "1.0.0"

# =============================================================================
# CATEGORIES
# =============================================================================

class Categories:
    """Canonical privacy categories"""
    NECESSARY: Final[str] = "necessary"
    PREFERENCES: Final[str] = "preferences"
    ANALYTICS: Final[str] = "analytics"
    MARKETING: Final[str] = "marketing"
    UNCATEGORIZED: Final[str] = "uncategorized"

    ALL: Final[Tuple[str, ...]] = (
        NECESSARY, PREFERENCES, ANALYTICS, MARKETING, UNCATEGORIZED
    )

    # Categories a visitor is asked about; uncategorized is never offered
    CONSENTABLE: Final[Tuple[str, ...]] = (
        NECESSARY, PREFERENCES, ANALYTICS, MARKETING
    )


# Source category labels (Open Cookie Database) to canonical categories.
# Order matters for the substring fallback.
CATEGORY_MAP: Final[Dict[str, str]] = {
    "Strictly Necessary": Categories.NECESSARY,
    "Functional": Categories.PREFERENCES,
    "Performance": Categories.ANALYTICS,
    "Targeting/Advertising": Categories.MARKETING,
    "Analytics": Categories.ANALYTICS,
    "Marketing": Categories.MARKETING,
    "Preferences": Categories.PREFERENCES,
    "Necessary": Categories.NECESSARY,
}


# =============================================================================
# ELEMENT MARKERS
# =============================================================================

class Markers:
    """Attributes used on gated script elements"""
    CATEGORY: Final[str] = "data-category"
    BLOCKED: Final[str] = "data-blocked"
    COOKIE_NAME: Final[str] = "data-cookie"
    AUTO: Final[str] = "auto"
    PLACEHOLDER_TYPE: Final[str] = "text/plain"


# MIME types a browser treats as runnable script
EXECUTABLE_SCRIPT_TYPES: Final[Tuple[str, ...]] = (
    "",
    "text/javascript",
    "application/javascript",
    "application/ecmascript",
    "text/ecmascript",
    "module",
)


# =============================================================================
# EVENTS
# =============================================================================

class Events:
    """Event bus topics"""
    INITIALIZED: Final[str] = "cmp:initialized"
    CONSENT_CHANGED: Final[str] = "cmp:consent-changed"
    ELEMENT_BLOCKED: Final[str] = "cmp:element-blocked"
    ELEMENT_ACTIVATED: Final[str] = "cmp:element-activated"
    RELOAD_REQUIRED: Final[str] = "cmp:reload-required"
    CORPUS_REFRESHED: Final[str] = "cmp:corpus-refreshed"


# =============================================================================
# STORAGE KEYS
# =============================================================================

class StorageKeys:
    """Default keys in the key-value store"""
    CORPUS_CACHE: Final[str] = "cookies/database.json"
    OVERRIDES: Final[str] = "cookies/overrides.json"
    CONSENT: Final[str] = "consent/current.json"


# Open Cookie Database CSV headers
class CorpusColumns:
    ID: Final[str] = "ID"
    PLATFORM: Final[str] = "Platform"
    CATEGORY: Final[str] = "Category"
    NAME: Final[str] = "Cookie / Data Key name"
    DOMAIN: Final[str] = "Domain"
    DESCRIPTION: Final[str] = "Description"
    RETENTION: Final[str] = "Retention period"
    DATA_CONTROLLER: Final[str] = "Data Controller"
    PRIVACY_PORTAL: Final[str] = "User Privacy & GDPR Rights Portals"
    WILDCARD: Final[str] = "Wildcard match"
