"""
Backend configuration management
Database, payload encryption, token and payment settings
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class BackendSettings(BaseSettings):
    """Runtime settings, read from ``CONSENT_*`` environment variables"""

    # Storage
    database_url: str = Field(default="sqlite:///consent_backend.db")
    lock_timeout_ms: int = Field(
        default=5000,
        description="Bounded wait on contended rows before a transient failure",
    )

    # Payload encryption
    aes_secret_key: str = Field(default="change-me", description="Consent payload secret")

    # Access tokens
    jwt_secret: str = Field(default="change-me-too")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expiry_minutes: int = Field(default=60)

    # Payments
    currency: str = Field(default="eur")
    payment_publishable_key: Optional[str] = Field(default=None)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Environment-specific overrides
    debug_mode: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    model_config = {"env_prefix": "CONSENT_", "case_sensitive": False}


@lru_cache(maxsize=1)
def get_settings() -> BackendSettings:
    """Settings for the running process; only the app assembly should call this"""
    return BackendSettings()
