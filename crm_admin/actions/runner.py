#!/usr/bin/env python3
"""
Administrative Action Runner

################################################################################
# Runs exactly one named action against the backend.
#
# Mutating actions default to DRY_RUN: reads happen, writes are only described.
# Live writes need execute=True (the CLI's --execute flag).
#
# Remote errors are reported verbatim. There is no retry and no rollback: an
# action that fails partway leaves whatever the completed calls produced.
################################################################################

A handler receives an ActionContext and the ActionResult it fills in. After a
live write it may return a verifier: a no-argument callable that re-reads the
remote state and returns True when the write is visible.
"""

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import requests

from crm_admin.client.filters import Filter
from crm_admin.client.supabase_client import SupabaseClient
from crm_admin.errors import ActionAbort, SupabaseError, classify

# =============================================================================
# RESULT
# =============================================================================


@dataclass
class ActionResult:
    action: str
    success: bool = False
    affected: int = 0
    records: list = field(default_factory=list)
    dry_run: bool = False
    verified: Optional[bool] = None
    error: Optional[dict] = None
    notes: list = field(default_factory=list)
    started_utc: Optional[str] = None
    finished_utc: Optional[str] = None

    def fail(self, kind: str, message: str, **extra):
        self.success = False
        self.error = {
            "kind": kind,
            "status": extra.get("status"),
            "code": extra.get("code"),
            "message": message,
            "details": extra.get("details"),
            "hint": extra.get("hint"),
        }

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# REGISTRY
# =============================================================================


@dataclass
class ActionSpec:
    name: str
    handler: Callable
    description: str
    mutates: bool


ACTIONS = {}


def action(name: str, mutates: bool = False):
    """Register a handler under an action name."""

    def decorator(func):
        doc = (func.__doc__ or "").strip()
        ACTIONS[name] = ActionSpec(
            name=name,
            handler=func,
            description=doc.splitlines()[0] if doc else "",
            mutates=mutates,
        )
        return func

    return decorator


def list_actions() -> list:
    return [(spec.name, spec.description, spec.mutates) for spec in sorted(ACTIONS.values(), key=lambda s: s.name)]


# =============================================================================
# CONTEXT
# =============================================================================


class ActionContext:
    """Parameters, client and mode for a single action run."""

    def __init__(
        self,
        client: SupabaseClient,
        params: Optional[dict] = None,
        tenant: Optional[str] = None,
        execute: bool = False,
        verify: bool = True,
        echo: bool = True,
    ):
        self.client = client
        self.params = params or {}
        self.tenant = tenant
        self.execute = execute
        self.verify = verify
        self.echo = echo
        self.notes = []

    @property
    def dry_run(self) -> bool:
        return not self.execute

    def log(self, message: str):
        self.notes.append(message)
        if self.echo:
            print(f"  {message}")

    def get(self, key: str, default: Any = None) -> Any:
        value = self.params.get(key)
        if value is None or value == "":
            return default
        return value

    def require(self, key: str) -> Any:
        value = self.get(key)
        if value is None:
            raise ActionAbort(f"Missing required parameter: {key}")
        return value

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "y", "on"):
            return True
        if text in ("0", "false", "no", "n", "off"):
            return False
        raise ActionAbort(f"Parameter {key} must be true or false (got '{value}')")

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ActionAbort(f"Parameter {key} must be an integer (got '{value}')")

    def get_list(self, key: str) -> list:
        """Comma-separated string or list parameter."""
        value = self.get(key)
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if str(v).strip()]
        return [v.strip() for v in str(value).split(",") if v.strip()]

    def where(self) -> list:
        filters = []
        for expr in self.params.get("where") or []:
            if isinstance(expr, Filter):
                filters.append(expr)
            else:
                try:
                    filters.append(Filter.parse(expr))
                except ValueError as e:
                    raise ActionAbort(str(e))
        return filters

    def values(self) -> dict:
        return dict(self.params.get("set") or {})

    def tenant_or_abort(self) -> str:
        tenant = self.get("tenant") or self.tenant
        if not tenant:
            raise ActionAbort("No tenant given. Pass --tenant or set CRM_ADMIN_TENANT.")
        return tenant


# =============================================================================
# RUNNER
# =============================================================================


def run_action(
    name: str,
    params: Optional[dict],
    client: SupabaseClient,
    tenant: Optional[str] = None,
    execute: bool = False,
    verify: bool = True,
    verify_delay: float = 0,
    echo: bool = True,
) -> ActionResult:
    """Run one named action and return its structured result."""
    result = ActionResult(action=name)
    result.started_utc = datetime.now(timezone.utc).isoformat()

    spec = ACTIONS.get(name)
    if spec is None:
        result.fail("invalid_request", f"Unknown action: {name}. Available: {', '.join(sorted(ACTIONS))}")
        result.finished_utc = datetime.now(timezone.utc).isoformat()
        return result

    ctx = ActionContext(client, params, tenant=tenant, execute=execute or not spec.mutates, verify=verify, echo=echo)
    result.dry_run = spec.mutates and not execute

    try:
        verifier = spec.handler(ctx, result)
        if result.error is None:
            result.success = True

        if verifier is not None and result.success and not result.dry_run and verify:
            if verify_delay > 0:
                ctx.log(f"Waiting {verify_delay:g}s before verification...")
                time.sleep(verify_delay)
            ctx.log("Verifying...")
            if verifier():
                result.verified = True
                ctx.log("[PASS] Verified")
            else:
                result.verified = False
                result.fail("verification_failed", "Follow-up read does not reflect the change")
                ctx.log("[FAIL] Verification failed")

    except SupabaseError as e:
        result.fail(classify(e), e.message, status=e.status, code=e.code, details=e.details, hint=e.hint)
        ctx.log(f"ERROR: {e}")

    except (ActionAbort, ValueError) as e:
        result.fail("invalid_request", str(e))
        ctx.log(f"ABORTED: {e}")

    except requests.RequestException as e:
        result.fail("remote_error", f"Request failed: {e}")
        ctx.log(f"ERROR: {e}")

    result.notes = ctx.notes
    result.finished_utc = datetime.now(timezone.utc).isoformat()
    return result
