"""
Auth account actions (identity admin API).

Auth accounts live outside the application tables: deleting a users row does
not delete the account, and vice versa.
"""

from typing import Optional

from crm_admin.actions.runner import ActionContext, ActionResult, action
from crm_admin.errors import ActionAbort, SupabaseError, classify

# Attributes the admin API takes at the top level; everything else from -s
# is stored in user_metadata.
TOP_LEVEL_ATTRIBUTES = {"email", "password", "phone", "email_confirm", "phone_confirm", "ban_duration", "role"}

REDACTED_ATTRIBUTES = {"password"}


def _redact(attributes: dict) -> dict:
    return {k: ("***" if k in REDACTED_ATTRIBUTES else v) for k, v in attributes.items()}


def _describe(auth_user: dict) -> str:
    return (
        f"{auth_user.get('email')} id={auth_user.get('id')} "
        f"created={auth_user.get('created_at')} last_sign_in={auth_user.get('last_sign_in_at') or 'Never'}"
    )


def resolve_auth_user(ctx: ActionContext) -> Optional[dict]:
    """Look up the account named by -p id=... or -p email=..."""
    user_id = ctx.get("id")
    email = ctx.get("email")
    if user_id:
        return ctx.client.get_auth_user(user_id)
    if email:
        return ctx.client.find_auth_user(email)
    raise ActionAbort("Pass -p email=... or -p id=...")


def _gone(ctx: ActionContext, user_id: str) -> bool:
    try:
        ctx.client.get_auth_user(user_id)
    except SupabaseError as e:
        return e.status == 404
    return False


@action("auth.list")
def list_auth_users(ctx: ActionContext, result: ActionResult):
    """List all auth accounts."""
    users = ctx.client.list_auth_users()
    result.records = users
    result.affected = len(users)
    ctx.log(f"Found {len(users)} auth account(s)")
    for i, auth_user in enumerate(users, 1):
        ctx.log(f"  {i}. {_describe(auth_user)}")


@action("auth.show")
def show_auth_user(ctx: ActionContext, result: ActionResult):
    """Show one auth account by email or id."""
    auth_user = resolve_auth_user(ctx)
    if not auth_user:
        result.fail("not_found", f"No auth account for {ctx.get('email')}")
        return None
    result.records = [auth_user]
    result.affected = 1
    ctx.log(_describe(auth_user))


@action("auth.create", mutates=True)
def create_auth_user(ctx: ActionContext, result: ActionResult):
    """Create an auth account."""
    email = ctx.require("email")
    password = ctx.require("password")

    existing = ctx.client.find_auth_user(email)
    if existing:
        result.records = [existing]
        result.fail("constraint_violation", f"Auth account already exists for {email} (id={existing.get('id')})")
        return None

    attributes = {
        "email": email,
        "password": password,
        "email_confirm": ctx.get_bool("email_confirm", True),
    }
    metadata = ctx.values()
    if metadata:
        attributes["user_metadata"] = metadata

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would create auth account {_redact(attributes)}")
        result.affected = 1
        return None

    created = ctx.client.create_auth_user(attributes)
    result.records = [created]
    result.affected = 1
    ctx.log(f"Created auth account {created.get('id')} for {email}")

    def verify():
        fetched = ctx.client.get_auth_user(created["id"])
        return (fetched.get("email") or "").lower() == email.lower()

    return verify


@action("auth.update", mutates=True)
def update_auth_user(ctx: ActionContext, result: ActionResult):
    """Update an auth account's attributes or metadata."""
    values = ctx.values()
    if not values:
        raise ActionAbort("Nothing to update: pass attributes with -s KEY=VALUE")

    auth_user = resolve_auth_user(ctx)
    if not auth_user:
        result.fail("not_found", f"No auth account for {ctx.get('email')}")
        return None

    attributes = {k: v for k, v in values.items() if k in TOP_LEVEL_ATTRIBUTES}
    metadata = {k: v for k, v in values.items() if k not in TOP_LEVEL_ATTRIBUTES}
    if metadata:
        merged = dict(auth_user.get("user_metadata") or {})
        merged.update(metadata)
        attributes["user_metadata"] = merged

    ctx.log(f"Account: {_describe(auth_user)}")
    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would update {_redact(attributes)}")
        result.records = [auth_user]
        result.affected = 1
        return None

    updated = ctx.client.update_auth_user(auth_user["id"], attributes)
    result.records = [updated]
    result.affected = 1
    ctx.log(f"Updated auth account {auth_user['id']}")

    def verify():
        fetched = ctx.client.get_auth_user(auth_user["id"])
        if "email" in attributes and (fetched.get("email") or "").lower() != str(attributes["email"]).lower():
            return False
        fetched_metadata = fetched.get("user_metadata") or {}
        return all(fetched_metadata.get(k) == v for k, v in metadata.items())

    return verify


@action("auth.delete", mutates=True)
def delete_auth_user(ctx: ActionContext, result: ActionResult):
    """Delete an auth account."""
    auth_user = resolve_auth_user(ctx)
    if not auth_user:
        result.fail("not_found", f"No auth account for {ctx.get('email')}")
        return None

    result.records = [auth_user]
    ctx.log(f"Account: {_describe(auth_user)}")
    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would delete auth account {auth_user['id']}")
        result.affected = 1
        return None

    ctx.client.delete_auth_user(auth_user["id"])
    result.affected = 1
    ctx.log(f"Deleted auth account {auth_user['id']}")

    def verify():
        return _gone(ctx, auth_user["id"])

    return verify


@action("auth.check-password")
def check_password(ctx: ActionContext, result: ActionResult):
    """Try a password sign-in the way the app's login form does."""
    email = ctx.require("email")
    password = ctx.require("password")

    if not ctx.client.anon_key:
        ctx.log("[WARN] No anon key configured; signing in with the service-role key")

    try:
        session = ctx.client.sign_in_with_password(email, password)
    except SupabaseError as e:
        ctx.log(f"[FAIL] Sign-in rejected: {e}")
        result.fail(classify(e), e.message, status=e.status, code=e.code, details=e.details, hint=e.hint)
        return None

    # Tokens stay out of the result and the audit trail.
    user = session.get("user") or {}
    result.records = [{
        "id": user.get("id"),
        "email": user.get("email"),
        "last_sign_in_at": user.get("last_sign_in_at"),
    }]
    result.affected = 1
    ctx.log(f"[PASS] Signed in as {user.get('email')} (id={user.get('id')})")
