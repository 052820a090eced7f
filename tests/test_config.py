from __future__ import annotations

import pytest

from app.core.config import Settings
from app.core.db import to_async_url


def test_settings_read_booking_rules_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TIMEZONE", "Europe/London")
    monkeypatch.setenv("DEFAULT_SLOT_DURATION_MINUTES", "20")
    monkeypatch.setenv("MAX_APPOINTMENTS_PER_PATIENT_PER_DAY", "2")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test,,")

    settings = Settings(_env_file=None)
    assert settings.timezone == "Europe/London"
    assert settings.default_slot_duration_minutes == 20
    assert settings.max_appointments_per_patient_per_day == 2
    assert settings.cors_origins_list == ["http://a.test", "http://b.test"]


def test_postgres_urls_are_pointed_at_asyncpg() -> None:
    url = to_async_url("postgresql://u:p@db.example.com/hospital?sslmode=require&channel_binding=require&application_name=api")
    assert url == "postgresql+asyncpg://u:p@db.example.com/hospital?application_name=api"


def test_other_urls_pass_through() -> None:
    assert to_async_url("sqlite+aiosqlite:///./dev.db") == "sqlite+aiosqlite:///./dev.db"
