"""Configuration management for intentcrowd.

Handles:
- Database and model file locations
- Rater quota, confidence threshold and promotion weight
- HTTP bind address

Config file location:
- Linux/Mac: ~/.config/intentcrowd/config.json
- Windows: %LOCALAPPDATA%/intentcrowd/config.json

Environment variables (INTENTCROWD_*) override the file.
"""

import json
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional
import logging

from .storage.models import DEFAULT_MAX_ASSIGNMENTS
from .training.consensus import DEFAULT_PROMOTION_WEIGHT
from .training.intake import DEFAULT_CONFIDENCE_THRESHOLD

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Get platform-specific config directory."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", "~"))
    elif sys.platform == "darwin":
        base = Path("~/Library/Application Support")
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config"))

    return base.expanduser() / "intentcrowd"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.json"
ENV_PREFIX = "INTENTCROWD_"


@dataclass
class Config:
    """intentcrowd configuration."""

    # None means the per-user data directory
    db_path: Optional[str] = None
    model_path: Optional[str] = None

    # Crowd-training policy
    max_assignments: int = DEFAULT_MAX_ASSIGNMENTS
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    promotion_weight: int = DEFAULT_PROMOTION_WEIGHT

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def load(cls) -> "Config":
        """Load config from file + environment."""
        config = cls()

        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    config = cls._from_dict(json.load(f))
            except Exception as e:
                logger.warning(f"Failed to load config: {e}")

        for f in fields(cls):
            value = os.environ.get(ENV_PREFIX + f.name.upper())
            if value:
                config.set(f.name, value)

        return config

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        config = cls()
        for f in fields(cls):
            if data.get(f.name) is not None:
                config.set(f.name, data[f.name])
        return config

    def set(self, key: str, value) -> None:
        """
        Set a field from a string or native value.

        Raises:
            KeyError: Unknown key.
            ValueError: Value can't be converted or is out of range.
        """
        if key not in {f.name for f in fields(self)}:
            raise KeyError(key)

        if key in ("max_assignments", "promotion_weight", "port"):
            value = int(value)
            if value < 1:
                raise ValueError(f"{key} must be at least 1")
        elif key == "confidence_threshold":
            value = float(value)
            if not 0.0 <= value <= 1.0:
                raise ValueError("confidence_threshold must be between 0 and 1")
        else:
            value = str(value)

        setattr(self, key, value)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def save(self):
        """Save config to file."""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)

        with open(CONFIG_FILE, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Config saved to {CONFIG_FILE}")

    def resolve_db_path(self) -> str:
        """Database path, falling back to the default location."""
        if self.db_path:
            return self.db_path

        from .storage.database import get_default_db_path

        return get_default_db_path()

    def resolve_model_path(self) -> str:
        """Model path; defaults to model.json next to the database."""
        if self.model_path:
            return self.model_path
        return str(Path(self.resolve_db_path()).with_name("model.json"))
