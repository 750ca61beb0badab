"""Project configuration.

Convention-based discovery: a project keeps a ``.cardweave/`` directory whose
``config.json`` tunes the engine. Every key is optional; missing keys take the
defaults below.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, TypedDict

logger = logging.getLogger(__name__)

CARDWEAVE_DIR_NAME = ".cardweave"
CONFIG_FILENAME = "config.json"

_VALID_GROUPS = frozenset({"always", "optional", "hidden"})


class EngineConfig(TypedDict, total=False):
    """Shape of .cardweave/config.json."""

    max_rank_length: int
    log_level: str
    default_field_group: str


DEFAULT_CONFIG = EngineConfig(max_rank_length=64, log_level="INFO", default_field_group="always")


def find_cardweave_root(start: Path | None = None) -> Path:
    """Return the nearest ``.cardweave/`` directory at or above *start* (default cwd).

    Raises:
        FileNotFoundError: If no enclosing directory holds one.
    """
    origin = (start or Path.cwd()).resolve()
    found = next((d / CARDWEAVE_DIR_NAME for d in (origin, *origin.parents) if (d / CARDWEAVE_DIR_NAME).is_dir()), None)
    if found is None:
        msg = f"No {CARDWEAVE_DIR_NAME}/ directory found in {origin} or any parent"
        raise FileNotFoundError(msg)
    return found


def _clean(raw: dict[str, Any]) -> EngineConfig:
    """Drop unknown or ill-typed keys, warning about each."""
    config = EngineConfig(**DEFAULT_CONFIG)
    value = raw.get("max_rank_length")
    if value is not None:
        if isinstance(value, int) and not isinstance(value, bool) and value >= 8:
            config["max_rank_length"] = value
        else:
            logger.warning("Ignoring max_rank_length=%r (must be an integer >= 8)", value)
    value = raw.get("log_level")
    if value is not None:
        if isinstance(value, str) and logging.getLevelName(value.upper()) != f"Level {value.upper()}":
            config["log_level"] = value.upper()
        else:
            logger.warning("Ignoring unknown log_level=%r", value)
    value = raw.get("default_field_group")
    if value is not None:
        if value in _VALID_GROUPS:
            config["default_field_group"] = value
        else:
            logger.warning("Ignoring default_field_group=%r (must be one of %s)", value, sorted(_VALID_GROUPS))
    for key in sorted(set(raw) - set(DEFAULT_CONFIG)):
        logger.warning("Unknown config key '%s' ignored", key)
    return config


def read_config(cardweave_dir: Path) -> EngineConfig:
    """Read .cardweave/config.json. Returns defaults if missing or corrupt."""
    config_path = cardweave_dir / CONFIG_FILENAME
    if not config_path.exists():
        return EngineConfig(**DEFAULT_CONFIG)
    try:
        raw = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return EngineConfig(**DEFAULT_CONFIG)
    if not isinstance(raw, dict):
        logger.warning("%s must contain a JSON object, using defaults", config_path)
        return EngineConfig(**DEFAULT_CONFIG)
    return _clean(raw)


def write_config(cardweave_dir: Path, config: dict[str, Any] | EngineConfig) -> EngineConfig:
    """Clean *config* and write it to .cardweave/config.json.

    Unknown or invalid keys are dropped (with a warning) and missing keys take
    their defaults, so the file always holds a complete config. Returns what
    was written.
    """
    cleaned = _clean(dict(config))
    cardweave_dir.mkdir(parents=True, exist_ok=True)
    (cardweave_dir / CONFIG_FILENAME).write_text(json.dumps(cleaned, indent=2, sort_keys=True) + "\n")
    return cleaned
