"""
Configuration loader (``recurring_config.loader``).

Loads a YAML file and parses it into a ``StartupConfig``.  The document
is either the settings mapping itself or a mapping with a single
``startup`` key holding it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Non-mapping document or unknown keys  -> ``ValueError``.
* Bad cron expression  -> ``InvalidCronExpressionError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from recurring_kernel.logging_config import get_logger

from recurring_config.schema import StartupConfig

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(
            f"{path}: expected a mapping at the top level, got {type(data).__name__}"
        )
    return data


def load_startup_config(path: str | Path) -> StartupConfig:
    """Parse ``path`` into a StartupConfig."""
    path = Path(path)
    data = load_yaml_file(path)
    if set(data) == {"startup"}:
        data = data["startup"] or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: 'startup' must be a mapping")

    config = StartupConfig.from_mapping(data)
    logger.info(
        "startup_config_loaded",
        extra={"path": str(path), **config.to_dict()},
    )
    return config
