#!/usr/bin/env python3
"""
Backend API client.

Thin wrapper over the three services the tooling talks to:

- Record store     /rest/v1           (PostgREST tables)
- Identity admin   /auth/v1/admin     (auth accounts, service-role only)
- Identity         /auth/v1/token     (password sign-in, anon key)
- Blob storage     /storage/v1        (buckets and objects)

Every non-2xx response raises SupabaseError with the service's own code,
message, details and hint. No retries.
"""

from typing import Any, Iterable, Optional
from urllib.parse import quote

import requests

from crm_admin.client.filters import Filter
from crm_admin.errors import SupabaseError

REST_PATH = "/rest/v1"
AUTH_PATH = "/auth/v1"
AUTH_ADMIN_PATH = f"{AUTH_PATH}/admin"
STORAGE_PATH = "/storage/v1"

DEFAULT_PAGE_SIZE = 100
# Hosted PostgREST caps every response at max-rows (1000 by default).
MAX_ROWS = 1000


class SupabaseClient:
    """Service-role client for table, auth admin and storage calls."""

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30,
        session: requests.Session = None,
        anon_key: Optional[str] = None,
        page_size: int = MAX_ROWS,
    ):
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.anon_key = anon_key
        self.timeout = timeout
        self.page_size = page_size
        self.session = session or requests.Session()

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, service: str, method: str, path: str, headers: Optional[dict] = None, **kwargs) -> requests.Response:
        response = self.session.request(
            method,
            f"{self.url}{path}",
            headers=self._headers(headers),
            timeout=self.timeout,
            **kwargs,
        )
        if not 200 <= response.status_code < 300:
            raise SupabaseError.from_response(service, response)
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    # =========================================================================
    # RECORD STORE
    # =========================================================================

    def select(
        self,
        table: str,
        filters: Iterable[Filter] = (),
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list:
        """Return rows of a table matching every filter.

        Without a limit, pages with limit/offset until a short page comes
        back, so tables larger than the server's max-rows are read in full.
        """
        params = [("select", columns)]
        params.extend(f.to_param() for f in filters)
        if order:
            params.append(("order", order))

        if limit is not None:
            params.append(("limit", str(limit)))
            response = self._request("rest", "GET", f"{REST_PATH}/{table}", params=params)
            return self._json(response) or []

        all_rows = []
        offset = 0

        while True:
            page_params = params + [("limit", str(self.page_size)), ("offset", str(offset))]
            response = self._request("rest", "GET", f"{REST_PATH}/{table}", params=page_params)
            page = self._json(response) or []
            all_rows.extend(page)

            if len(page) < self.page_size:
                break
            offset += self.page_size

        return all_rows

    def count(self, table: str, filters: Iterable[Filter] = ()) -> int:
        """Exact row count for a filter, read from the Content-Range header."""
        params = [("select", "*")]
        params.extend(f.to_param() for f in filters)

        response = self._request(
            "rest", "HEAD", f"{REST_PATH}/{table}",
            headers={"Prefer": "count=exact"},
            params=params,
        )
        content_range = response.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1]
        if not total.isdigit():
            raise SupabaseError("rest", response.status_code, f"Unexpected Content-Range: '{content_range}'")
        return int(total)

    def insert(self, table: str, rows) -> list:
        """Insert one row (dict) or many (list of dicts); returns inserted rows."""
        response = self._request(
            "rest", "POST", f"{REST_PATH}/{table}",
            headers={"Prefer": "return=representation"},
            json=rows,
        )
        return self._json(response) or []

    def update(self, table: str, values: dict, filters: Iterable[Filter]) -> list:
        """Update matching rows; returns the updated rows."""
        filters = list(filters)
        if not filters:
            raise ValueError(f"Refusing to update every row of '{table}': at least one filter is required")

        response = self._request(
            "rest", "PATCH", f"{REST_PATH}/{table}",
            headers={"Prefer": "return=representation"},
            params=[f.to_param() for f in filters],
            json=values,
        )
        return self._json(response) or []

    def delete(self, table: str, filters: Iterable[Filter]) -> list:
        """Delete matching rows; returns the deleted rows."""
        filters = list(filters)
        if not filters:
            raise ValueError(f"Refusing to delete every row of '{table}': at least one filter is required")

        response = self._request(
            "rest", "DELETE", f"{REST_PATH}/{table}",
            headers={"Prefer": "return=representation"},
            params=[f.to_param() for f in filters],
        )
        return self._json(response) or []

    # =========================================================================
    # IDENTITY ADMIN
    # =========================================================================

    def list_auth_users(self, per_page: int = DEFAULT_PAGE_SIZE) -> list:
        """List all auth accounts (handles pagination)."""
        all_users = []
        page = 1

        while True:
            response = self._request(
                "auth", "GET", f"{AUTH_ADMIN_PATH}/users",
                params={"page": page, "per_page": per_page},
            )
            data = self._json(response) or {}
            users = data.get("users", [])
            all_users.extend(users)

            if len(users) < per_page:
                break
            page += 1

        return all_users

    def get_auth_user(self, user_id: str) -> dict:
        response = self._request("auth", "GET", f"{AUTH_ADMIN_PATH}/users/{user_id}")
        return self._json(response) or {}

    def find_auth_user(self, email: str) -> Optional[dict]:
        """Find an auth account by email (case-insensitive)."""
        wanted = email.strip().lower()
        for user in self.list_auth_users():
            if (user.get("email") or "").lower() == wanted:
                return user
        return None

    def create_auth_user(self, attributes: dict) -> dict:
        response = self._request("auth", "POST", f"{AUTH_ADMIN_PATH}/users", json=attributes)
        return self._json(response) or {}

    def update_auth_user(self, user_id: str, attributes: dict) -> dict:
        response = self._request("auth", "PUT", f"{AUTH_ADMIN_PATH}/users/{user_id}", json=attributes)
        return self._json(response) or {}

    def delete_auth_user(self, user_id: str) -> None:
        self._request("auth", "DELETE", f"{AUTH_ADMIN_PATH}/users/{user_id}")

    def sign_in_with_password(self, email: str, password: str) -> dict:
        """Password grant as an end user would sign in (anon key, not service role)."""
        key = self.anon_key or self.service_key
        response = self._request(
            "auth", "POST", f"{AUTH_PATH}/token",
            headers={"apikey": key, "Authorization": f"Bearer {key}"},
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._json(response) or {}

    # =========================================================================
    # BLOB STORAGE
    # =========================================================================

    def list_buckets(self) -> list:
        response = self._request("storage", "GET", f"{STORAGE_PATH}/bucket")
        return self._json(response) or []

    def get_bucket(self, bucket_id: str) -> Optional[dict]:
        """Return bucket metadata, or None when the bucket does not exist."""
        for bucket in self.list_buckets():
            if bucket.get("id") == bucket_id or bucket.get("name") == bucket_id:
                return bucket
        return None

    def create_bucket(
        self,
        bucket_id: str,
        public: bool = False,
        allowed_mime_types: Optional[list] = None,
        file_size_limit: Optional[int] = None,
    ) -> dict:
        payload = {"id": bucket_id, "name": bucket_id, "public": public}
        if allowed_mime_types:
            payload["allowed_mime_types"] = allowed_mime_types
        if file_size_limit:
            payload["file_size_limit"] = file_size_limit

        response = self._request("storage", "POST", f"{STORAGE_PATH}/bucket", json=payload)
        return self._json(response) or {}

    def list_objects(self, bucket: str, prefix: str = "", limit: int = DEFAULT_PAGE_SIZE) -> list:
        payload = {
            "prefix": prefix,
            "limit": limit,
            "offset": 0,
            "sortBy": {"column": "name", "order": "asc"},
        }
        response = self._request("storage", "POST", f"{STORAGE_PATH}/object/list/{bucket}", json=payload)
        return self._json(response) or []

    def upload_object(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> dict:
        response = self._request(
            "storage", "POST", f"{STORAGE_PATH}/object/{bucket}/{quote(path)}",
            headers={
                "Content-Type": content_type,
                "x-upsert": "true" if upsert else "false",
            },
            data=data,
        )
        return self._json(response) or {}

    def remove_objects(self, bucket: str, paths: list) -> list:
        response = self._request(
            "storage", "DELETE", f"{STORAGE_PATH}/object/{bucket}",
            json={"prefixes": list(paths)},
        )
        return self._json(response) or []
