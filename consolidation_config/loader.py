"""
Settings loader (``consolidation_config.loader``).

Responsibility
--------------
Reads a YAML settings file and parses it into a frozen
``ConsolidationSettings``.  Callers go through
``consolidation_config.get_active_settings()``; this module is the parsing
half of it and is used directly only by tests.

Invariants enforced
-------------------
* Required keys raise ``KeyError`` when missing; no silent defaults for
  ``config_id``, ``version`` or ``database.url``.
* Unknown option names raise ``ValueError``.
* ``compute_checksum`` is a deterministic SHA-256 over the canonical JSON
  form of the parsed document.

Failure modes
-------------
* Missing file -> ``FileNotFoundError``.
* Malformed YAML -> ``yaml.YAMLError``.
* Wrong types / ranges -> ``ValueError`` from the schema dataclasses.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from consolidation_config.schema import ConsolidationSettings
from consolidation_engines.ic_matching import MatchingConfig
from consolidation_services._consolidation_types import ConsolidationOptions


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(
    data: dict[str, Any], database_url_override: str | None = None
) -> ConsolidationSettings:
    """
    Build settings from a parsed YAML document.

    ``database_url_override`` replaces ``database.url`` when given.
    """
    consolidation = data.get("consolidation") or {}
    return ConsolidationSettings(
        config_id=data["config_id"],
        version=int(data["version"]),
        database_url=database_url_override or data["database"]["url"],
        log_level=str((data.get("logging") or {}).get("level", "INFO")).upper(),
        default_options=ConsolidationOptions.from_dict(consolidation.get("default_options")),
        matching=MatchingConfig.from_dict(consolidation.get("matching") or {}),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path, database_url_override: str | None = None) -> ConsolidationSettings:
    return parse_settings(load_yaml_file(path), database_url_override)
