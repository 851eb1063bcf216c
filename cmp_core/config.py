"""
Configuration management for the CMP core
Corpus source, storage locations, marker names and consent versions
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field

from .constants import Markers, StorageKeys, WIDGET_VERSION


class CMPConfig(BaseSettings):
    """Categorization and consent-gating settings"""

    # Storage
    data_dir: str = Field(default="data", description="Base directory of the file store")
    receipt_database_url: str = Field(default="sqlite:///consent_receipts.db")

    # Reference corpus
    corpus_url: str = Field(
        default=(
            "https://raw.githubusercontent.com/jkwakman/Open-Cookie-Database/"
            "refs/heads/master/open-cookie-database.csv"
        )
    )
    corpus_cache_key: str = Field(default=StorageKeys.CORPUS_CACHE)
    corpus_max_age_days: int = Field(default=7, description="Cached corpus lifetime")
    corpus_fetch_timeout: float = Field(default=30.0)

    # Overrides & consent keys
    overrides_key: str = Field(default=StorageKeys.OVERRIDES)
    consent_key: str = Field(default=StorageKeys.CONSENT)

    # Gating
    blocking_enabled: bool = Field(default=True)
    category_attribute: str = Field(default=Markers.CATEGORY)
    blocked_attribute: str = Field(default=Markers.BLOCKED)
    cookie_name_attribute: str = Field(default=Markers.COOKIE_NAME)
    placeholder_type: str = Field(default=Markers.PLACEHOLDER_TYPE)
    respect_do_not_track: bool = Field(default=False)

    # Receipts
    widget_version: str = Field(default=WIDGET_VERSION)
    policy_version: str = Field(default="1.0.0")
    site_id: str = Field(default="default")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = {"env_prefix": "CMP_", "case_sensitive": False}


# Host-level configuration instance
_config: Optional[CMPConfig] = None


def get_config() -> CMPConfig:
    """Get the host-level configuration instance"""
    global _config
    if _config is None:
        _config = CMPConfig()
    return _config


def update_config(**kwargs) -> CMPConfig:
    """Update host-level configuration with new values"""
    config = get_config()
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
    return config
