"""
Error types shared by the client, the action runner and the CLI.

Remote failures are never reinterpreted: SupabaseError carries the status,
code, message, details and hint exactly as the service returned them.
classify() and suggest_remedy() only add a coarse kind and an operator hint.
"""

from typing import Optional

import requests


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


class ActionAbort(Exception):
    """Raised when an action must stop before (or instead of) a remote call."""
    pass


class SupabaseError(Exception):
    """A non-2xx response from one of the backend services."""

    def __init__(
        self,
        service: str,
        status: int,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.service = service
        self.status = status
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint

    def __str__(self):
        prefix = f"{self.service} {self.status}"
        if self.code:
            prefix += f" [{self.code}]"
        return f"{prefix}: {self.message}"

    @classmethod
    def from_response(cls, service: str, response: requests.Response) -> "SupabaseError":
        """Build an error from any of the REST, auth or storage body shapes."""
        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            text = response.text or response.reason or "No response body"
            return cls(service, response.status_code, text)

        # PostgREST: {code, message, details, hint}
        # GoTrue: {code, error_code, msg, error, error_description}
        # Storage: {statusCode, error, message}
        code = body.get("error_code") or body.get("code")
        if code is None and service == "storage":
            code = body.get("error")
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or response.text
        )
        return cls(
            service,
            response.status_code,
            str(message),
            code=str(code) if code is not None else None,
            details=body.get("details"),
            hint=body.get("hint"),
        )

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "status": self.status,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "hint": self.hint,
        }


# =============================================================================
# CLASSIFICATION
# =============================================================================

NOT_FOUND_CODES = {"PGRST116", "PGRST205", "42P01", "user_not_found", "Bucket not found", "not_found"}
PERMISSION_CODES = {"42501", "PGRST301", "PGRST302", "not_admin", "bad_jwt", "Unauthorized", "invalid_credentials", "invalid_grant"}
CONSTRAINT_CODES = {"23505", "23503", "23502", "23514", "email_exists", "Duplicate"}

REMEDIES = {
    "PGRST116": "No row (or more than one row) matched. Check the filter values and tenant.",
    "PGRST204": "Column not found in the schema cache. Check the column name or reload the schema.",
    "PGRST205": "Table not found in the schema cache. Run the table migration or reload the schema.",
    "42P01": "Table does not exist. Run the migration that creates it.",
    "42501": "Row-level security blocked the request. Use the service-role key or add a policy.",
    "23505": "Unique constraint violated. A record with this key already exists.",
    "23503": "Foreign key violated. Delete or create the referenced record first.",
    "42P10": "ON CONFLICT target has no matching unique constraint.",
    "user_not_found": "No auth account with that id. List accounts with auth.list.",
    "email_exists": "An auth account with this email already exists. Use auth.update instead.",
    "invalid_credentials": "Email or password is wrong. Reset it with auth.update -s password=...",
    "email_not_confirmed": "Account exists but the email is unconfirmed. Set it with auth.update -s email_confirm=true.",
}


def classify(error: SupabaseError) -> str:
    """Coarse kind for a remote error. The message itself is left untouched."""
    if error.code in NOT_FOUND_CODES or error.status == 404:
        return "not_found"
    if error.code in PERMISSION_CODES or error.status in (401, 403):
        return "permission_denied"
    if error.code in CONSTRAINT_CODES or error.status == 409:
        return "constraint_violation"
    if error.status in (400, 406, 422):
        return "invalid_request"
    return "remote_error"


def suggest_remedy(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    return REMEDIES.get(code)
