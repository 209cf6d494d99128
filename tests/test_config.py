"""
Settings parsing and validation.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from leasegate.config import Settings


def test_defaults_and_durations(monkeypatch):
    monkeypatch.delenv("LEASEGATE_STALE_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("LEASEGATE_SWEEP_INTERVAL_SECONDS", raising=False)
    settings = Settings(_env_file=None)

    assert settings.database_url.startswith("sqlite+aiosqlite://")
    assert settings.stale_timeout == timedelta(seconds=30)
    assert settings.sweep_interval == timedelta(seconds=60)


def test_patterns_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("LEASEGATE_IDENTIFIER_PATTERNS", "vm-[1-5], gw-1")
    assert Settings(_env_file=None).identifier_patterns == ["vm-[1-5]", "gw-1"]


def test_patterns_from_json_env(monkeypatch):
    monkeypatch.setenv("LEASEGATE_IDENTIFIER_PATTERNS", '["vm-[1-5]", "gw-1"]')
    assert Settings(_env_file=None).identifier_patterns == ["vm-[1-5]", "gw-1"]


def test_rejects_sync_database_url():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, database_url="sqlite:///leasegate.db")


@pytest.mark.parametrize("field", ["stale_timeout_seconds", "sweep_interval_seconds"])
def test_rejects_non_positive_durations(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


def test_rejects_out_of_range_port():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, port=70000)
