"""Tests for settings."""

from lyubi.config import Settings, get_settings


def test_defaults(lyubi_home):
    settings = Settings()

    assert settings.supabase_url is None
    assert settings.activities_table == "activities"
    assert settings.records_table == "records"
    assert settings.notice_seconds == 4.0
    assert settings.home == lyubi_home
    assert settings.cache_path == lyubi_home / "cache.db"
    assert not settings.is_online


def test_env_prefix(monkeypatch, tmp_path):
    monkeypatch.setenv("LYUBI_SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("LYUBI_SUPABASE_KEY", "anon-key")
    monkeypatch.setenv("LYUBI_RECORDS_TABLE", "time_records")
    monkeypatch.setenv("LYUBI_NOTICE_SECONDS", "2.5")

    settings = Settings()

    assert settings.is_online
    assert settings.records_table == "time_records"
    assert settings.notice_seconds == 2.5


def test_url_without_key_is_offline():
    assert not Settings(supabase_url="https://demo.supabase.co").is_online


def test_get_settings_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
