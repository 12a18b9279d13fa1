"""Settings tests: defaults and environment overrides."""
from unittest.mock import patch

from encounter_export.config import Settings, configure_logging


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.record_timezone == "UTC"
    assert settings.export_max_seconds == 0


def test_environment_override(monkeypatch):
    monkeypatch.setenv("RECORD_TIMEZONE", "America/Chicago")
    monkeypatch.setenv("EXPORT_MAX_SECONDS", "300")

    settings = Settings(_env_file=None)

    assert settings.record_timezone == "America/Chicago"
    assert settings.export_max_seconds == 300


def test_configure_logging_explicit_level():
    with patch("encounter_export.config.logging.basicConfig") as basic_config:
        configure_logging("debug")

    assert basic_config.call_args.kwargs["level"] == "DEBUG"
