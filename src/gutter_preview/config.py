"""Configuration management using pydantic-settings.

Loads from environment variables and .env file.
"""

import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_storage_path() -> str:
    return str(Path(tempfile.gettempdir()) / "gutter-preview")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Attributes:
        storage_path: Directory where fetched, copied and recolored images are stored.
        fetch_timeout: HTTP timeout for remote image fetching in seconds.
        max_download_bytes: Largest response body accepted for a remote image.
        max_line_length: Lines longer than this are never scanned for references.
        watch_interval: Polling interval in seconds for source file change detection.
        url_detection_patterns: Extra regular expressions accepting references whose
            extension is not a known image extension.
        host: Server bind address.
        port: Server bind port.
        debug: Force DEBUG logging regardless of log_level.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Output logs in JSON format for production.

    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Resource cache
    storage_path: str = Field(default_factory=_default_storage_path)
    fetch_timeout: int = 30
    max_download_bytes: int = 10 * 1024 * 1024
    watch_interval: float = 1.0

    # Recognition
    max_line_length: int = 20000
    url_detection_patterns: list[str] = Field(default_factory=list)

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def storage_dir(self) -> Path:
        """Return the storage directory as a Path object.

        Returns:
            Path: Path to the directory holding materialized images.

        """
        return Path(self.storage_path)


# Global settings instance
settings = Settings()
