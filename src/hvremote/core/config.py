# ═══════════════════════════════════════════════════════════════
# HVRemote - Settings
# Process-wide defaults loaded from the environment
# ═══════════════════════════════════════════════════════════════

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    HVRemote settings.

    Values come from environment variables prefixed with ``HVREMOTE_``
    (e.g. ``HVREMOTE_POOL_MAX_SIZE=10``) or from a local ``.env`` file.
    Connection configs built by the transport factory take their
    defaults from here.
    """
    model_config = SettingsConfigDict(
        env_prefix="HVREMOTE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR, CRITICAL")
    log_format: str = Field(default="console", description="console or json")

    # Timeouts (seconds)
    dial_timeout: int = Field(default=30, ge=1, le=3600, description="Connection/dial timeout")
    command_timeout: int = Field(default=300, ge=1, le=86400, description="Per-command deadline")

    # Pooled transport
    pool_max_size: int = Field(default=5, ge=1, le=100, description="Maximum pooled sessions per host")
    pool_borrow_timeout: float = Field(default=60.0, gt=0, description="Maximum wait for a pooled session")

    # File transfer
    upload_chunk_size: int = Field(
        default=1500, ge=64,
        description="Raw bytes per command when uploading through command-line base64 chunks",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get the cached settings instance.

    Returns:
        Settings loaded from the environment
    """
    return Settings()
