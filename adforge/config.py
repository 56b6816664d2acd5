"""
Configuration Management
========================

Handles loading runtime settings from environment variables and config files.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///.adforge/adforge.db"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"
CONFIG_FILENAME = "adforge_config.json"

# Environment variable -> settings field
ENV_OVERRIDES: dict[str, str] = {
    "ADFORGE_MODEL": "default_model",
    "ANTHROPIC_API_KEY": "api_key",
    "ADFORGE_DATABASE_URL": "database_url",
    "ADFORGE_REDIS_URL": "redis_url",
    "ADFORGE_MODEL_TIMEOUT": "model_timeout",
    "ADFORGE_TOOL_TIMEOUT": "tool_timeout",
    "ADFORGE_CACHE_TIMEOUT": "cache_timeout",
    "ADFORGE_MAX_TOKENS": "max_tokens",
}


@dataclass
class AdForgeSettings:
    """Process-wide runtime settings."""
    default_model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    database_url: str = DEFAULT_DATABASE_URL
    redis_url: str = DEFAULT_REDIS_URL

    # Per-call time bounds (seconds)
    model_timeout: float = 120.0
    tool_timeout: float = 60.0
    cache_timeout: float = 2.0

    max_tokens: int = 4096

    @property
    def has_model_credential(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "AdForgeSettings":
        """
        Load settings from multiple sources in precedence order:
        1. Environment variables
        2. Local config file (adforge_config.json)
        3. Default values
        """
        config: dict[str, Any] = {}

        path = Path(config_path) if config_path else Path(CONFIG_FILENAME)
        if path.exists():
            try:
                with open(path, "r") as f:
                    config.update(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load config file %s: %s", path, e)

        for env_name, field_name in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                config[field_name] = value

        return cls.from_dict(config)

    @classmethod
    def from_dict(cls, data: dict) -> "AdForgeSettings":
        """Create from dictionary, coercing numeric fields and ignoring unknown keys."""
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            if f.name.endswith("_timeout"):
                value = float(value)
            elif f.name == "max_tokens":
                value = int(value)
            kwargs[f.name] = value
        return cls(**kwargs)

    def to_dict(self, redact: bool = True) -> dict:
        """Convert to dictionary (API key redacted by default)."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if redact and data.get("api_key"):
            data["api_key"] = "***"
        return data
