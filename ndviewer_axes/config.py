"""Defaults and JSON-backed settings."""

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

# Constants
POSITION_STEP = 1  # Axis position step for forward/backward commands
POSITION_STEP_FAST = 10  # Step used when the fast modifier (alt) is held
EVENT_DRAIN_INTERVAL_MS = 16  # Qt timer interval for deferred notifications
PLANE_CACHE_MAX_MEMORY_BYTES = 256 * 1024 * 1024  # 256MB for computed plane cache
REORDER_MAX_BYTES: Optional[int] = None  # None = no capacity guard on reorder
REORDER_PARALLEL_CHUNK_BYTES = 64 * 1024 * 1024  # Target chunk for threaded reorder

SETTINGS_FILENAME = "ndviewer_axes.json"


@dataclass(frozen=True)
class Settings:
    position_step: int = POSITION_STEP
    position_step_fast: int = POSITION_STEP_FAST
    event_drain_interval_ms: int = EVENT_DRAIN_INTERVAL_MS
    plane_cache_max_memory_bytes: int = PLANE_CACHE_MAX_MEMORY_BYTES
    reorder_max_bytes: Optional[int] = REORDER_MAX_BYTES
    reorder_parallel_chunk_bytes: int = REORDER_PARALLEL_CHUNK_BYTES


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Read settings from a JSON file.

    ``path`` may point at the file itself or at a directory containing
    ``ndviewer_axes.json``. Keys that are not settings fields are ignored.

    Args:
        path: JSON file or directory. ``None`` returns the defaults.

    Returns:
        Settings with values from the file layered over the defaults. If the
        file is missing or unreadable the defaults are returned.
    """
    settings = Settings()
    if path is None:
        return settings

    path = Path(path)
    if path.is_dir():
        path = path / SETTINGS_FILENAME
    if not path.exists():
        logger.debug("No settings file at %s, using defaults", path)
        return settings

    try:
        with open(path, "r") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Failed to read settings from %s: %s", path, e)
        return settings

    if not isinstance(raw, dict):
        logger.warning("Settings file %s does not contain an object", path)
        return settings

    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            logger.debug("Ignoring unknown setting %r", key)
            continue
        if key == "reorder_max_bytes" and value is None:
            values[key] = None
            continue
        try:
            values[key] = int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer setting %s=%r", key, value)

    return replace(settings, **values)
