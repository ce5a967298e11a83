"""Application settings, all loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ConfigurationError if ANTHROPIC_API_KEY is missing
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from core.errors import ConfigurationError

#: Storage backends understood by ``core.store.open_store``.
STORE_BACKENDS: frozenset[str] = frozenset(["json", "sqlite", "memory"])

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5001"))
    )

    # ── Storage ─────────────────────────────────────────────────────────────
    store_backend: str = field(
        default_factory=lambda: os.environ.get("STORE_BACKEND", "json").lower()
    )
    data_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("DATA_DIR", str(DEFAULT_DATA_DIR)))
    )

    # ── AI Model ────────────────────────────────────────────────────────────
    #: Seconds before a recommendation request is abandoned as failed.
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30"))
    )
    recommendation_model: str = "claude-haiku-4-5"
    temperature: float = 0.7
    max_tokens: int = 2048

    def validate(self) -> None:
        """Raise ``ConfigurationError`` if any required setting is missing."""
        if not self.anthropic_api_key:
            raise ConfigurationError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Copy .env.example to .env and add your key."
            )
        if self.store_backend not in STORE_BACKENDS:
            raise ConfigurationError(
                f"Unknown STORE_BACKEND {self.store_backend!r}; "
                f"expected one of {sorted(STORE_BACKENDS)}."
            )
        if self.request_timeout <= 0:
            raise ConfigurationError("REQUEST_TIMEOUT must be a positive number of seconds.")
