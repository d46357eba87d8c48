"""Configuration management for the Termbook backend."""

from __future__ import annotations

import logging
import os
from pathlib import Path


class AppSettings:
    # Service Info
    service_name: str = "termbook-backend"

    # Server
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", 8000))

    # Storage
    data_dir: Path = Path(
        os.getenv("TERMBOOK_DATA_DIR", str(Path(__file__).resolve().parent / "storage"))
    )
    store_backend: str = os.getenv("TERMBOOK_STORE", "json")
    remote_url: str = os.getenv("TERMBOOK_REMOTE_URL", "")
    remote_key: str = os.getenv("TERMBOOK_REMOTE_KEY", "")
    remote_table: str = os.getenv("TERMBOOK_REMOTE_TABLE", "terms")
    remote_timeout: float = float(os.getenv("TERMBOOK_REMOTE_TIMEOUT", 10))

    # Language model
    anthropic_api_key: str = os.getenv("ANTHROPIC_API_KEY", "")
    extract_model: str = os.getenv("TERMBOOK_EXTRACT_MODEL", "claude-sonnet-4-20250514")
    enhance_model: str = os.getenv("TERMBOOK_ENHANCE_MODEL", "claude-3-haiku-20240307")
    extract_max_tokens: int = 4096
    enhance_max_tokens: int = 2000
    enhance_batch_size: int = int(os.getenv("TERMBOOK_ENHANCE_BATCH_SIZE", 5))
    transcript_max_chars: int = int(os.getenv("TERMBOOK_TRANSCRIPT_MAX_CHARS", 200000))

    # Logging
    log_level: str = os.getenv("TERMBOOK_LOG_LEVEL", "INFO")


settings = AppSettings()


def configure_logging(level: str | None = None) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
