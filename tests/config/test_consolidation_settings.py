"""
Runtime settings tests.

Verifies:
- The shipped default settings load with the documented defaults
- The database URL environment override
- Checksums are deterministic and change with content
- Invalid settings are rejected
- An orchestrator picks up tolerances and default options from settings
"""

from decimal import Decimal

import pytest
import yaml

from consolidation_config import (
    DATABASE_URL_ENV,
    compute_checksum,
    get_active_settings,
    load_settings,
)
from consolidation_config.loader import parse_settings
from consolidation_services import ConsolidationOptions, ConsolidationRunOrchestrator

MINIMAL = {
    "config_id": "test",
    "version": 2,
    "database": {"url": "sqlite:///:memory:"},
}


def _write(tmp_path, data) -> object:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultSettings:

    def test_default_file_loads(self, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)

        settings = get_active_settings()

        assert settings.config_id == "default"
        assert settings.version == 1
        assert settings.database_url.startswith("postgresql://")
        assert settings.log_level == "INFO"
        assert settings.default_options == ConsolidationOptions()
        assert settings.matching.date_tolerance_days == 3
        assert settings.matching.amount_tolerance_percent == Decimal("0")
        assert len(settings.checksum) == 64

    def test_database_url_override(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///override.db")

        assert get_active_settings().database_url == "sqlite:///override.db"

    def test_config_trace_logged(self, monkeypatch, captured_logs):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)

        settings = get_active_settings()

        trace = [r for r in captured_logs() if r["message"] == "CONSOLIDATION_CONFIG_TRACE"]
        assert trace[0]["checksum"] == settings.checksum
        assert trace[0]["database_url_overridden"] is False


class TestLoadSettings:

    def test_minimal_file(self, tmp_path):
        settings = load_settings(_write(tmp_path, MINIMAL))

        assert settings.config_id == "test"
        assert settings.version == 2
        assert settings.default_options == ConsolidationOptions()

    def test_custom_options_and_tolerances(self, tmp_path):
        data = dict(
            MINIMAL,
            logging={"level": "debug"},
            consolidation={
                "default_options": {"continue_on_warnings": False},
                "matching": {"date_tolerance_days": 5, "amount_tolerance_percent": "2.5"},
            },
        )

        settings = load_settings(_write(tmp_path, data))

        assert settings.log_level == "DEBUG"
        assert settings.log_level_number == 10
        assert not settings.default_options.continue_on_warnings
        assert settings.matching.date_tolerance_days == 5
        assert settings.matching.amount_tolerance_percent == Decimal("2.5")

    def test_override_argument(self, tmp_path):
        settings = load_settings(_write(tmp_path, MINIMAL), database_url_override="sqlite:///x.db")

        assert settings.database_url == "sqlite:///x.db"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")


class TestChecksum:

    def test_deterministic(self):
        assert compute_checksum({"a": 1, "b": [1, 2]}) == compute_checksum({"b": [1, 2], "a": 1})

    def test_changes_with_content(self):
        assert parse_settings(MINIMAL).checksum != parse_settings(dict(MINIMAL, version=3)).checksum


class TestInvalidSettings:

    def test_missing_required_key(self):
        with pytest.raises(KeyError):
            parse_settings({"config_id": "x", "version": 1})

    def test_empty_database_url(self):
        with pytest.raises(ValueError):
            parse_settings(dict(MINIMAL, database={"url": ""}))

    def test_unknown_log_level(self):
        with pytest.raises(ValueError):
            parse_settings(dict(MINIMAL, logging={"level": "chatty"}))

    def test_unknown_option(self):
        with pytest.raises(ValueError):
            parse_settings(dict(MINIMAL, consolidation={"default_options": {"dry_run": True}}))

    def test_quoted_boolean_option(self, tmp_path):
        data = dict(MINIMAL, consolidation={"default_options": {"skip_validation": "false"}})

        with pytest.raises(ValueError, match="skip_validation"):
            load_settings(_write(tmp_path, data))

    def test_negative_tolerance(self):
        with pytest.raises(ValueError):
            parse_settings(dict(MINIMAL, consolidation={"matching": {"date_tolerance_days": -1}}))


class TestOrchestratorFromSettings:

    def test_tolerances_applied(self, session, clock, two_company_group, add_ic, test_actor_id):
        from consolidation_services import RunStatus

        settings = parse_settings(
            dict(
                MINIMAL,
                consolidation={
                    "default_options": {"continue_on_warnings": True},
                    "matching": {"date_tolerance_days": 0},
                },
            )
        )
        orchestrator = ConsolidationRunOrchestrator.from_settings(session, settings, clock)

        run = orchestrator.run(two_company_group["group"].id, "2026-03", actor_id=test_actor_id)

        # The two sides are booked a day apart, so nothing matches
        assert run.status == RunStatus.COMPLETED
        codes = [i.code for i in run.validation_result.issues]
        assert codes.count("IC_UNMATCHED") == 2
