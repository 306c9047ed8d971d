"""
Pytest configuration and shared fixtures.

The HTTP layer is faked at the requests.Session seam: tests register
responses per (method, path) and inspect the calls the client made.
"""
import json as jsonlib
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import pytest

from crm_admin.client.supabase_client import SupabaseClient

BASE_URL = "https://example.supabase.co"
SERVICE_KEY = "service-role-key-0123456789"


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, headers: Optional[dict] = None, text: Optional[str] = None):
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {}
        if text is not None:
            self.text = text
        elif json_data is not None:
            self.text = jsonlib.dumps(json_data)
        else:
            self.text = ""
        self.content = self.text.encode()
        self.reason = "OK" if status_code < 400 else "Error"

    def json(self):
        if self._json is None:
            return jsonlib.loads(self.text)
        return self._json


@dataclass
class Call:
    method: str
    path: str
    params: Any = None
    json: Any = None
    data: Any = None
    headers: dict = field(default_factory=dict)

    def param(self, name: str):
        """Value of a query parameter (list-of-tuples or dict params)."""
        if self.params is None:
            return None
        items = self.params.items() if isinstance(self.params, dict) else self.params
        for key, value in items:
            if key == name:
                return value
        return None


class FakeSession:
    """Records requests and replays registered responses."""

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, method: str, path: str, *responses):
        """Queue responses for a route; the last one repeats."""
        self.routes.append((method, path, list(responses)))

    def request(self, method, url, headers=None, timeout=None, params=None, json=None, data=None):
        path = urlparse(url).path
        call = Call(method, path, params=params, json=json, data=data, headers=headers or {})
        self.calls.append(call)
        for route_method, route_path, responses in self.routes:
            if route_method == method and route_path == path and responses:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if callable(response):
                    return response(call)
                return response
        raise AssertionError(f"Unexpected request: {method} {path} params={params}")

    def calls_to(self, method: str, path: str = None) -> list:
        return [c for c in self.calls if c.method == method and (path is None or c.path == path)]


def rows(*records, status=200):
    return FakeResponse(status, list(records))


def count(total: int):
    return FakeResponse(200, headers={"Content-Range": f"0-{max(total - 1, 0)}/{total}" if total else "*/0"})


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return SupabaseClient(BASE_URL, SERVICE_KEY, timeout=5, session=session)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep real credentials out of unit tests."""
    for name in (
        "SUPABASE_URL",
        "VITE_SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "VITE_SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_ANON_KEY",
        "VITE_SUPABASE_ANON_KEY",
        "CRM_ADMIN_TENANT",
        "CRM_ADMIN_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
