"""
Configuration management for pat-download.
Loads environment variables and provides centralized access to OPS settings.
"""

from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PatDownloadConfig(BaseSettings):
    """
    Centralized configuration for pat-download.
    Loads from environment variables and .env file.
    """

    # === EPO OPS Credentials ===
    epo_consumer_key: str = Field(default="", alias="EPO_CONSUMER_KEY")
    epo_consumer_secret: str = Field(default="", alias="EPO_CONSUMER_SECRET")

    # === EPO OPS Endpoints ===
    epo_ops_base_url: str = Field(
        default="https://ops.epo.org/3.2/rest-services",
        alias="EPO_OPS_BASE_URL",
    )
    epo_ops_auth_url: str = Field(
        default="https://ops.epo.org/3.2/auth/accesstoken",
        alias="EPO_OPS_AUTH_URL",
    )
    epo_request_timeout_seconds: float = Field(
        default=30.0,
        alias="EPO_REQUEST_TIMEOUT_SECONDS",
    )

    # === Application Configuration ===
    log_level: str = Field(default="WARNING", alias="LOG_LEVEL")
    output_dir: Path = Field(default=Path("."), alias="OUTPUT_DIR")
    strict_match: bool = Field(default=True, alias="STRICT_MATCH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_epo_configured(self) -> bool:
        """Check if EPO OPS consumer credentials are configured."""
        return bool(self.epo_consumer_key and self.epo_consumer_secret)

    def ensure_output_directory(self) -> Path:
        """Create the output directory if it doesn't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir


# Singleton instance
_config: PatDownloadConfig | None = None


def get_config() -> PatDownloadConfig:
    """
    Get the application configuration singleton.
    Initializes on first call.
    """
    global _config
    if _config is None:
        _config = PatDownloadConfig()
    return _config


def reload_config() -> PatDownloadConfig:
    """Force reload of configuration from environment."""
    global _config
    _config = PatDownloadConfig()
    return _config
