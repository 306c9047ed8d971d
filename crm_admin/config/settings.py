#!/usr/bin/env python3
"""
Configuration loading.

Credentials come from the environment (optionally populated from a .env file).
Nothing is ever read from source: there are no default endpoints or keys.

Variables:
    SUPABASE_URL                 Backend endpoint (fallback: VITE_SUPABASE_URL)
    SUPABASE_SERVICE_ROLE_KEY    Privileged key (fallback: VITE_SUPABASE_SERVICE_ROLE_KEY)
    SUPABASE_ANON_KEY            Optional anonymous key for auth.check-password (fallback: VITE_SUPABASE_ANON_KEY)
    CRM_ADMIN_TENANT             Optional default tenant
    CRM_ADMIN_TIMEOUT            Request timeout in seconds (default: 30)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from crm_admin.errors import ConfigError

# =============================================================================
# CONFIGURATION
# =============================================================================

SCRIPT_DIR = Path(__file__).parent
PACKAGE_DIR = SCRIPT_DIR.parent
PROJECT_ROOT = PACKAGE_DIR.parent

DEFAULT_TIMEOUT = 30


@dataclass
class Settings:
    url: str
    service_key: str
    anon_key: Optional[str] = None
    tenant: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT


# =============================================================================
# CREDENTIAL LOADING
# =============================================================================


def load_env() -> bool:
    """Load environment variables from the first .env file found."""
    env_paths = [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / ".env.local",
        Path.cwd() / ".env",
        Path.cwd() / ".env.local",
        Path.home() / ".crm-admin" / ".env",
    ]
    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path)
            return True
    return False


def _first(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if value and value.strip():
            return value.strip()
    return None


def get_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment, reporting every missing variable."""
    if env is None:
        env = os.environ

    url = _first(env, "SUPABASE_URL", "VITE_SUPABASE_URL")
    service_key = _first(env, "SUPABASE_SERVICE_ROLE_KEY", "VITE_SUPABASE_SERVICE_ROLE_KEY")

    missing = []
    if not url:
        missing.append("SUPABASE_URL")
    if not service_key:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    if not url.startswith(("http://", "https://")):
        raise ConfigError(f"SUPABASE_URL must start with http:// or https:// (got '{url}')")

    timeout_raw = _first(env, "CRM_ADMIN_TIMEOUT")
    timeout = DEFAULT_TIMEOUT
    if timeout_raw:
        try:
            timeout = float(timeout_raw)
        except ValueError:
            raise ConfigError(f"CRM_ADMIN_TIMEOUT must be a number (got '{timeout_raw}')")
        if timeout <= 0:
            raise ConfigError("CRM_ADMIN_TIMEOUT must be greater than zero")

    return Settings(
        url=url.rstrip("/"),
        service_key=service_key,
        anon_key=_first(env, "SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"),
        tenant=_first(env, "CRM_ADMIN_TENANT"),
        timeout=timeout,
    )


def mask_secret(value: Optional[str]) -> str:
    """Show only the first characters of a credential."""
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "***"
    return f"{value[:8]}..."
