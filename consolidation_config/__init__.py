"""
consolidation_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_settings()`` is the only way to obtain settings at runtime.
    It reads the YAML settings file, applies the
    ``CONSOLIDATION_DATABASE_URL`` environment override, and returns a frozen
    ``ConsolidationSettings``.  No other component reads settings files or
    environment variables.

Architecture position:
    Configuration -- sits above consolidation_kernel / consolidation_engines
    and beside consolidation_services.  The kernel never imports from here.

Failure modes:
    - FileNotFoundError: the settings file does not exist.
    - KeyError / ValueError: required keys missing or values out of range.

Audit relevance:
    Every call emits CONSOLIDATION_CONFIG_TRACE with the config id, version
    and checksum, tying each run's log stream to the settings that governed it.
"""

from __future__ import annotations

import os
from pathlib import Path

from consolidation_config.loader import compute_checksum, load_settings
from consolidation_config.schema import ConsolidationSettings
from consolidation_kernel.logging_config import get_logger

_logger = get_logger("config")

DATABASE_URL_ENV = "CONSOLIDATION_DATABASE_URL"

_DEFAULT_SETTINGS_FILE = Path(__file__).parent / "sets" / "default.yaml"


def get_active_settings(settings_file: Path | None = None) -> ConsolidationSettings:
    """The ONLY public settings entrypoint.

    Args:
        settings_file: YAML file to load.  Defaults to
            consolidation_config/sets/default.yaml.
    """
    path = settings_file or _DEFAULT_SETTINGS_FILE
    override = os.environ.get(DATABASE_URL_ENV) or None
    settings = load_settings(path, database_url_override=override)

    _logger.info(
        "CONSOLIDATION_CONFIG_TRACE",
        extra={
            "trace_type": "CONSOLIDATION_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "database_url_overridden": override is not None,
        },
    )
    return settings


__all__ = [
    "DATABASE_URL_ENV",
    "ConsolidationSettings",
    "compute_checksum",
    "get_active_settings",
    "load_settings",
]
