from datetime import datetime, timedelta, timezone
from pathlib import Path

from core import settings
from datetime_utils import ensure_utc, hours_ago, to_rfc3339_utc


def test_linux_data_dir_with_xdg():
    env = {"XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/tmp/xdg") / settings.APP_NAME


def test_linux_data_dir_default_home():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={},
        home=Path("/home/test"),
    )
    assert result == Path("/home/test/.local/share") / settings.APP_NAME


def test_macos_data_dir():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="darwin",
        env={},
        home=Path("/Users/test"),
    )
    assert result == Path("/Users/test/Library/Application Support") / settings.APP_NAME


def test_windows_data_dir_appdata():
    env = {"APPDATA": "C:/Users/test/AppData/Roaming"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="win32",
        env=env,
        home=Path("C:/Users/test"),
    )
    assert result == Path(env["APPDATA"]) / settings.APP_NAME


def test_runtime_paths_inside_data_dir():
    assert settings.DB_PATH.parent == settings.DATA_DIR
    assert settings.SYNC.log_path.parent == settings.LOG_DIR
    assert settings.LOG_DIR.parent == settings.DATA_DIR


def test_sync_defaults():
    assert settings.SYNC.max_retries == 3
    assert settings.SYNC.batch_size == 10
    assert settings.SYNC.completed_retention_hours == 24


def test_supabase_settings_read_environment(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
    partial = settings.SupabaseSettings()
    assert partial.url == "https://abc.supabase.co"
    assert partial.enabled is False

    monkeypatch.setenv("SUPABASE_KEY", "anon")
    assert settings.SupabaseSettings().enabled is True


def test_probe_target_from_url():
    assert settings.probe_target("https://abc.supabase.co") == ("abc.supabase.co", 443)
    assert settings.probe_target("http://localhost:54321") == ("localhost", 54321)
    assert settings.probe_target("") == ("", 443)
    pinned = settings.ConnectivitySettings(probe_host="1.1.1.1", probe_port=53)
    assert pinned.target("https://abc.supabase.co") == ("1.1.1.1", 53)


def test_datetime_helpers():
    naive = datetime(2024, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo is timezone.utc
    now = datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)
    assert hours_ago(24, now=now) == now - timedelta(hours=24)
    stamp = datetime(2024, 1, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)
    assert to_rfc3339_utc(stamp) == "2024-01-01T12:00:00.250000Z"
    assert to_rfc3339_utc(None) is None
