"""
ConsolidationSettings schema.

The runtime settings artifact produced from a YAML settings file.  Frozen:
a settings value is read once and passed explicitly to whatever needs it
(engine factory, orchestrator, logging setup).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from consolidation_engines.ic_matching import MatchingConfig
from consolidation_services._consolidation_types import ConsolidationOptions

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ConsolidationSettings:
    config_id: str
    version: int
    database_url: str
    log_level: str = "INFO"
    default_options: ConsolidationOptions = field(default_factory=ConsolidationOptions)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS}, got {self.log_level!r}")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)
