"""Runtime configuration — environment-driven agent config and user settings."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from email_ai.processing.types import Tone

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def parse_bool(value: str) -> bool:
    """Parse a yes/no style string.  Raises ValueError on anything else."""
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; defaulting to %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; defaulting to %s", name, raw, default)
        return default


@dataclass
class Settings:
    """User-facing toggles, persisted in the state database.

    Read-only to the sync core: the controller and processor read a fresh
    copy at the start of every cycle / message.
    """

    auto_sync: bool = True
    auto_apply_labels: bool = True
    auto_draft: bool = True
    enable_translation: bool = True
    default_tone: str = Tone.PROFESSIONAL.value
    sync_interval_seconds: int = 60

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Build Settings from a stored dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def with_value(self, key: str, raw: str) -> Settings:
        """Return a copy with ``key`` set from its string form (CLI input).

        Raises:
            KeyError: unknown setting name.
            ValueError: value does not parse for that setting.
        """
        current = self.to_dict()
        if key not in current:
            raise KeyError(key)
        if isinstance(current[key], bool):
            value: Any = parse_bool(raw)
        elif isinstance(current[key], int):
            value = int(raw)
            if value <= 0:
                raise ValueError(f"{key} must be positive")
        elif key == "default_tone":
            value = Tone(raw.strip().lower()).value
        else:
            value = raw
        current[key] = value
        return Settings.from_dict(current)


@dataclass
class AgentConfig:
    """Process-level tunables, read from environment variables."""

    db_path: Path = field(default_factory=lambda: Path("data/email_ai.db"))
    max_results_per_sync: int = 10
    stage_timeout_seconds: float = 30.0
    initial_delay_seconds: int = 60
    dedup_capacity: int = 1000
    custom_label_capacity: int = 500
    priority_capacity: int = 500
    ai_backend: str = "auto"
    anthropic_api_key: str = ""
    model: str = "claude-haiku-4-5-20251001"
    label_prefix: str = ""

    @classmethod
    def from_env(cls) -> AgentConfig:
        """Build AgentConfig from environment variables."""
        return cls(
            db_path=Path(os.environ.get("EMAIL_AI_DB_PATH", "data/email_ai.db")),
            max_results_per_sync=_env_int("MAX_RESULTS_PER_SYNC", 10),
            stage_timeout_seconds=_env_float("STAGE_TIMEOUT_SECONDS", 30.0),
            initial_delay_seconds=_env_int("INITIAL_DELAY_SECONDS", 60),
            dedup_capacity=_env_int("DEDUP_CAPACITY", 1000),
            custom_label_capacity=_env_int("CUSTOM_LABEL_CAPACITY", 500),
            priority_capacity=_env_int("PRIORITY_CAPACITY", 500),
            ai_backend=os.environ.get("AI_BACKEND", "auto").strip().lower(),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            model=os.environ.get("ANTHROPIC_MODEL", "claude-haiku-4-5-20251001"),
            label_prefix=os.environ.get("LABEL_PREFIX", ""),
        )

    def category_label(self, category_name: str) -> str:
        """Gmail label name for a category, honouring LABEL_PREFIX."""
        if not self.label_prefix:
            return category_name
        return f"{self.label_prefix.rstrip('/')}/{category_name}"
