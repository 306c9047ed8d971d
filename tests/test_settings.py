"""
Tests for configuration loading.
"""
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from crm_admin.config import settings as settings_module
from crm_admin.config.settings import get_settings, load_env, mask_secret
from crm_admin.errors import ConfigError


def test_reads_primary_variables():
    s = get_settings({
        "SUPABASE_URL": "https://abc.supabase.co/",
        "SUPABASE_SERVICE_ROLE_KEY": "secret-key",
        "SUPABASE_ANON_KEY": "anon",
        "CRM_ADMIN_TENANT": "medex",
        "CRM_ADMIN_TIMEOUT": "12.5",
    })
    assert s.url == "https://abc.supabase.co"
    assert s.service_key == "secret-key"
    assert s.anon_key == "anon"
    assert s.tenant == "medex"
    assert s.timeout == 12.5


def test_falls_back_to_vite_names():
    s = get_settings({
        "VITE_SUPABASE_URL": "https://abc.supabase.co",
        "VITE_SUPABASE_SERVICE_ROLE_KEY": "k",
        "VITE_SUPABASE_ANON_KEY": "a",
    })
    assert s.url == "https://abc.supabase.co"
    assert s.service_key == "k"
    assert s.anon_key == "a"
    assert s.tenant is None
    assert s.timeout == 30


def test_reports_every_missing_variable():
    with pytest.raises(ConfigError) as exc:
        get_settings({})
    assert "SUPABASE_URL" in str(exc.value)
    assert "SUPABASE_SERVICE_ROLE_KEY" in str(exc.value)


def test_blank_values_count_as_missing():
    with pytest.raises(ConfigError):
        get_settings({"SUPABASE_URL": "  ", "SUPABASE_SERVICE_ROLE_KEY": "k"})


@pytest.mark.parametrize("env", [
    {"SUPABASE_URL": "abc.supabase.co", "SUPABASE_SERVICE_ROLE_KEY": "k"},
    {"SUPABASE_URL": "https://a", "SUPABASE_SERVICE_ROLE_KEY": "k", "CRM_ADMIN_TIMEOUT": "soon"},
    {"SUPABASE_URL": "https://a", "SUPABASE_SERVICE_ROLE_KEY": "k", "CRM_ADMIN_TIMEOUT": "0"},
])
def test_malformed_values(env):
    with pytest.raises(ConfigError):
        get_settings(env)


def test_reads_os_environ_by_default(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "env-key")
    assert get_settings().url == "https://env.supabase.co"


def test_load_env_uses_first_existing_file(tmp_path, monkeypatch):
    monkeypatch.setattr(settings_module, "PROJECT_ROOT", tmp_path / "missing")
    monkeypatch.setattr(settings_module.Path, "home", classmethod(lambda cls: tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("SUPABASE_URL=https://dotenv.supabase.co\n")
    (tmp_path / ".env.local").write_text("SUPABASE_URL=https://local.supabase.co\n")
    loader = MagicMock()
    monkeypatch.setattr(settings_module, "load_dotenv", loader)

    assert load_env() is True
    loader.assert_called_once_with(Path.cwd() / ".env")


def test_load_env_without_files(tmp_path, monkeypatch):
    monkeypatch.setattr(settings_module, "PROJECT_ROOT", tmp_path / "missing")
    monkeypatch.setattr(settings_module.Path, "home", classmethod(lambda cls: tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    assert load_env() is False


def test_mask_secret():
    assert mask_secret("eyJhbGciOiJIUzI1NiIs") == "eyJhbGci..."
    assert mask_secret("short") == "***"
    assert mask_secret(None) == "(not set)"
