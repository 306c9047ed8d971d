"""
User record actions.

All lookups go through the application's users table and are scoped to a
tenant (tenant_id). users.show also pulls the settings row, the profile row
and the matching auth account so one command answers "does this user exist,
and where".

Two repairs round it out: users.sync-last-login rewrites last_login from the
audit log, and users.migrate-id re-keys a users row to its auth account id.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from crm_admin.actions.runner import ActionContext, ActionResult, action
from crm_admin.client.filters import any_of, eq, is_in
from crm_admin.errors import SupabaseError

USERS_TABLE = "users"
SETTINGS_TABLE = "user_settings"
PROFILES_TABLE = "user_profiles"

LIST_COLUMNS = "id,email,name,role,tenant_id,is_active,created_at,last_login"


def find_users(ctx: ActionContext, email: str, tenant: str = None) -> list:
    filters = [eq("email", email)]
    if tenant:
        filters.append(eq("tenant_id", tenant))
    return ctx.client.select(USERS_TABLE, filters)


def describe_user(user: dict) -> str:
    name = user.get("name") or "Unknown Name"
    active = "active" if user.get("is_active") else "inactive"
    return f"{user.get('email')} - {name} ({user.get('role')}, {active}, tenant={user.get('tenant_id')})"


@action("users.list")
def list_users(ctx: ActionContext, result: ActionResult):
    """List users in a tenant."""
    tenant = ctx.tenant_or_abort()
    filters = [eq("tenant_id", tenant)]
    if not ctx.get_bool("include_inactive", True):
        filters.append(eq("is_active", True))

    users = ctx.client.select(
        USERS_TABLE,
        filters,
        columns=ctx.get("columns", LIST_COLUMNS),
        order="email.asc",
    )
    result.records = users
    result.affected = len(users)

    if not users:
        ctx.log(f"No users found in tenant '{tenant}'")
        return None

    ctx.log(f"Found {len(users)} user(s) in tenant '{tenant}':")
    for i, user in enumerate(users, 1):
        ctx.log(f"  {i}. {describe_user(user)}")


@action("users.show")
def show_user(ctx: ActionContext, result: ActionResult):
    """Show a user's record, settings, profile and auth account."""
    email = ctx.require("email")
    tenant = ctx.get("tenant") or ctx.tenant

    users = find_users(ctx, email, tenant)
    scope = f"tenant '{tenant}'" if tenant else "any tenant"
    if not users:
        ctx.log(f"No users row for {email} in {scope}")
    for user in users:
        ctx.log(f"users: {describe_user(user)}")
        ctx.log(f"  id: {user.get('id')}")
        ctx.log(f"  created: {user.get('created_at') or 'Unknown'}")
        ctx.log(f"  last login: {user.get('last_login') or 'Never'}")

        for table in (SETTINGS_TABLE, PROFILES_TABLE):
            try:
                rows = ctx.client.select(table, [eq("user_id", user["id"])])
            except SupabaseError as e:
                ctx.log(f"  {table}: ERROR {e}")
                continue
            ctx.log(f"  {table}: {len(rows)} row(s)")
            user[table] = rows

    auth_user = ctx.client.find_auth_user(email)
    if auth_user:
        ctx.log(f"auth: {auth_user.get('id')} (last sign in: {auth_user.get('last_sign_in_at') or 'Never'})")
    else:
        ctx.log(f"auth: no account for {email}")

    for user in users:
        user["auth_user"] = auth_user
    result.records = users
    result.affected = len(users)


def _set_active(ctx: ActionContext, result: ActionResult, target: bool):
    email = ctx.require("email")
    tenant = ctx.tenant_or_abort()

    users = find_users(ctx, email, tenant)
    if not users:
        result.fail("not_found", f"No user {email} in tenant '{tenant}'")
        return None
    if len(users) > 1:
        result.fail("invalid_request", f"{len(users)} users match {email} in tenant '{tenant}'")
        return None

    user = users[0]
    ctx.log(f"Found: {describe_user(user)}")
    result.records = [user]

    if user.get("is_active") is target:
        ctx.log(f"is_active is already {target}; nothing to do")
        result.affected = 0
        return None

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would set is_active = {target} for {email}")
        result.affected = 1
        return None

    updated = ctx.client.update(USERS_TABLE, {"is_active": target}, [eq("id", user["id"])])
    result.records = updated
    result.affected = len(updated)
    ctx.log(f"Updated is_active = {target}")

    def verify():
        rows = ctx.client.select(USERS_TABLE, [eq("id", user["id"])], columns="id,is_active")
        return len(rows) == 1 and rows[0].get("is_active") is target

    return verify


@action("users.activate", mutates=True)
def activate_user(ctx: ActionContext, result: ActionResult):
    """Set is_active = true for a user."""
    return _set_active(ctx, result, True)


@action("users.deactivate", mutates=True)
def deactivate_user(ctx: ActionContext, result: ActionResult):
    """Set is_active = false for a user."""
    return _set_active(ctx, result, False)


@action("users.move-tenant", mutates=True)
def move_user_tenant(ctx: ActionContext, result: ActionResult):
    """Correct a user's tenant_id."""
    email = ctx.require("email")
    to_tenant = ctx.require("to_tenant")
    from_tenant = ctx.get("from_tenant")

    users = find_users(ctx, email)
    if not users:
        result.fail("not_found", f"No user {email} in any tenant")
        return None

    ctx.log(f"Found {len(users)} row(s) for {email}: tenant_id = {[u.get('tenant_id') for u in users]}")
    result.records = users

    if from_tenant:
        to_move = [u for u in users if u.get("tenant_id") == from_tenant]
    else:
        to_move = [u for u in users if u.get("tenant_id") != to_tenant]

    if not to_move:
        if any(u.get("tenant_id") == to_tenant for u in users):
            ctx.log(f"Already correct: tenant_id = '{to_tenant}', skipping")
            result.affected = 0
            return None
        result.fail("invalid_request", f"{email} is not in tenant '{from_tenant}'")
        return None

    if len(to_move) > 1:
        result.fail("invalid_request", f"{len(to_move)} rows for {email} would move; pass from_tenant to pick one")
        return None

    user = to_move[0]
    old_tenant = user.get("tenant_id")

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would change tenant_id '{old_tenant}' -> '{to_tenant}' for {email}")
        result.affected = 1
        return None

    updated = ctx.client.update(USERS_TABLE, {"tenant_id": to_tenant}, [eq("id", user["id"])])
    result.records = updated
    result.affected = len(updated)
    ctx.log(f"Updated tenant_id to '{to_tenant}'")

    def verify():
        rows = ctx.client.select(USERS_TABLE, [eq("id", user["id"])], columns="id,tenant_id")
        if len(rows) != 1 or rows[0].get("tenant_id") != to_tenant:
            return False
        # No longer visible under the old tenant.
        return ctx.client.count(USERS_TABLE, [eq("email", email), eq("tenant_id", old_tenant)]) == 0

    return verify


# =============================================================================
# LAST LOGIN REPAIR
# =============================================================================

AUDIT_TABLE = "audit_logs"
LOGIN_ACTIONS = ("LOGIN", "AUTHENTICATION_SUCCESS", "USER_LOGIN")

FRACTION_PATTERN = re.compile(r"\.(\d+)")


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a timestamptz as returned by the API; None when missing or unreadable."""
    if not value:
        return None
    text = str(value).strip().replace(" ", "T", 1).replace("Z", "+00:00")
    # fromisoformat wants exactly 6 fraction digits on older interpreters
    text = FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def newest_login(ctx: ActionContext, user: dict) -> Optional[str]:
    """created_at of the user's most recent successful login in the audit log."""
    who = eq("user_id", user["id"])
    if user.get("email"):
        who = any_of(who, eq("metadata->>email", user["email"]))

    logs = ctx.client.select(
        AUDIT_TABLE,
        [who, is_in("action", LOGIN_ACTIONS), eq("outcome", "SUCCESS")],
        columns="created_at",
        order="created_at.desc",
        limit=1,
    )
    return logs[0].get("created_at") if logs else None


@action("users.sync-last-login", mutates=True)
def sync_last_login(ctx: ActionContext, result: ActionResult):
    """Set users.last_login from the newest successful login in audit_logs."""
    tenant = ctx.get("tenant") or ctx.tenant
    email = ctx.get("email")

    filters = []
    if tenant:
        filters.append(eq("tenant_id", tenant))
    if email:
        filters.append(eq("email", email))
    if not ctx.get_bool("include_inactive", False):
        filters.append(eq("is_active", True))

    users = ctx.client.select(USERS_TABLE, filters, columns="id,email,last_login", order="email.asc")
    ctx.log(f"Checking login history for {len(users)} user(s)...")

    plan = []
    for user in users:
        newest = newest_login(ctx, user)
        if newest is None:
            ctx.log(f"  {user.get('email')}: no login history, skipped")
            continue
        current = user.get("last_login")
        if parse_timestamp(current) == parse_timestamp(newest):
            ctx.log(f"  {user.get('email')}: already {current}")
            continue
        ctx.log(f"  {user.get('email')}: {current or 'NULL'} -> {newest}")
        plan.append({"id": user["id"], "email": user.get("email"), "current": current, "new": newest})

    result.records = plan
    result.affected = len(plan)
    if not plan:
        ctx.log("Every last_login already matches the audit log")
        return None

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would update last_login for {len(plan)} user(s)")
        return None

    updated = []
    failures = 0
    for entry in plan:
        try:
            ctx.client.update(USERS_TABLE, {"last_login": entry["new"]}, [eq("id", entry["id"])])
            updated.append(entry)
            ctx.log(f"  [OK] {entry['email']}")
        except SupabaseError as e:
            failures += 1
            ctx.log(f"  [WARN] {entry['email']}: {e}")

    result.affected = len(updated)
    if failures:
        result.fail("remote_error", f"{failures} of {len(plan)} last_login update(s) failed")
        return None

    def verify():
        expected = {entry["id"]: parse_timestamp(entry["new"]) for entry in updated}
        rows = ctx.client.select(USERS_TABLE, [is_in("id", list(expected))], columns="id,last_login")
        found = {row["id"]: parse_timestamp(row.get("last_login")) for row in rows}
        return found == expected

    return verify


# =============================================================================
# USER ID MIGRATION
# =============================================================================


@action("users.migrate-id", mutates=True)
def migrate_user_id(ctx: ActionContext, result: ActionResult):
    """Re-key a users row to its auth account id and repoint settings and profiles."""
    email = ctx.require("email")
    tenant = ctx.get("tenant") or ctx.tenant

    users = find_users(ctx, email, tenant)
    scope = f"tenant '{tenant}'" if tenant else "any tenant"
    if not users:
        result.fail("not_found", f"No user {email} in {scope}")
        return None
    if len(users) > 1:
        result.fail("invalid_request", f"{len(users)} users match {email} in {scope}; pass --tenant")
        return None

    user = users[0]
    old_id = user["id"]
    result.records = [user]
    ctx.log(f"Step 1: users row {describe_user(user)} id={old_id}")

    new_id = ctx.get("new_id")
    if not new_id:
        auth_user = ctx.client.find_auth_user(email)
        if not auth_user:
            result.fail("not_found", f"No auth account for {email}; pass -p new_id=...")
            return None
        new_id = auth_user["id"]
    ctx.log(f"Step 2: target id {new_id}")

    if new_id == old_id:
        ctx.log("Already keyed to that id; nothing to do")
        result.affected = 0
        return None

    if ctx.client.select(USERS_TABLE, [eq("id", new_id)], columns="id,email"):
        result.fail("constraint_violation", f"A users row with id {new_id} already exists")
        return None

    settings_count = ctx.client.count(SETTINGS_TABLE, [eq("user_id", old_id)])
    try:
        profiles_count = ctx.client.count(PROFILES_TABLE, [eq("user_id", old_id)])
    except SupabaseError as e:
        ctx.log(f"  {PROFILES_TABLE}: not checked ({e})")
        profiles_count = None

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would insert users row {new_id} copied from {old_id}")
        ctx.log(f"DRY_RUN: would repoint {settings_count} {SETTINGS_TABLE} row(s)")
        if profiles_count is not None:
            ctx.log(f"DRY_RUN: would repoint {profiles_count} {PROFILES_TABLE} row(s)")
        ctx.log(f"DRY_RUN: would delete users row {old_id}")
        result.affected = 1
        return None

    ctx.log("Step 3: creating users row with the new id...")
    inserted = ctx.client.insert(USERS_TABLE, {**user, "id": new_id})

    ctx.log(f"Step 4: repointing {SETTINGS_TABLE}...")
    if settings_count:
        moved = ctx.client.update(SETTINGS_TABLE, {"user_id": new_id}, [eq("user_id", old_id)])
        ctx.log(f"  {len(moved)} row(s)")

    if profiles_count:
        ctx.log(f"Step 5: repointing {PROFILES_TABLE}...")
        try:
            moved = ctx.client.update(PROFILES_TABLE, {"user_id": new_id}, [eq("user_id", old_id)])
            ctx.log(f"  {len(moved)} row(s)")
        except SupabaseError as e:
            ctx.log(f"  [WARN] {PROFILES_TABLE}: {e}")

    ctx.log(f"Step 6: deleting users row {old_id}...")
    ctx.client.delete(USERS_TABLE, [eq("id", old_id)])

    result.records = inserted
    result.affected = 1

    def verify():
        rows = ctx.client.select(USERS_TABLE, [eq("id", new_id)], columns="id,email")
        if len(rows) != 1 or (rows[0].get("email") or "").lower() != email.lower():
            return False
        if ctx.client.count(USERS_TABLE, [eq("id", old_id)]) != 0:
            return False
        if ctx.client.count(SETTINGS_TABLE, [eq("user_id", old_id)]) != 0:
            return False
        if profiles_count:
            return ctx.client.count(PROFILES_TABLE, [eq("user_id", old_id)]) == 0
        return True

    return verify
