"""
Tenant-wide cleanup actions.

tenant.purge removes a tenant's users together with their dependent rows
(profiles, settings) and, on request, their auth accounts. Dependent-row
failures are reported and counted; the purge carries on. A failure deleting
the users rows themselves stops it. Nothing is rolled back.
"""

from crm_admin.actions.runner import ActionContext, ActionResult, action
from crm_admin.actions.users import PROFILES_TABLE, SETTINGS_TABLE, USERS_TABLE
from crm_admin.client.filters import eq, is_in, not_null
from crm_admin.errors import SupabaseError

FAILED_LOGINS_TABLE = "failed_login_attempts"

DEPENDENT_TABLES = [PROFILES_TABLE, SETTINGS_TABLE]


@action("tenant.purge", mutates=True)
def purge_tenant(ctx: ActionContext, result: ActionResult):
    """Delete all users of a tenant with their profiles and settings."""
    tenant = ctx.tenant_or_abort()
    include_auth = ctx.get_bool("include_auth", False)

    ctx.log(f"1. Fetching users in tenant '{tenant}'...")
    users = ctx.client.select(USERS_TABLE, [eq("tenant_id", tenant)], columns="id,email,name,role")
    if not users:
        ctx.log("No users found - already clean")
        result.affected = 0
        return None

    ctx.log(f"Found {len(users)} user(s):")
    for i, user in enumerate(users, 1):
        ctx.log(f"  {i}. {user.get('email')} - {user.get('name')} ({user.get('role')})")

    user_ids = [u["id"] for u in users]
    emails = {(u.get("email") or "").lower() for u in users}

    if ctx.dry_run:
        for table in DEPENDENT_TABLES:
            count = ctx.client.count(table, [is_in("user_id", user_ids)])
            ctx.log(f"DRY_RUN: would delete {count} row(s) from {table}")
        ctx.log(f"DRY_RUN: would delete {len(users)} row(s) from {USERS_TABLE}")
        if include_auth:
            ctx.log(f"DRY_RUN: would delete auth accounts for {len(emails)} email(s)")
        result.records = users
        result.affected = len(users)
        return None

    summary = []
    failures = 0
    step = 2
    for table in DEPENDENT_TABLES:
        ctx.log(f"{step}. Deleting from {table}...")
        deleted_rows = 0
        for user in users:
            try:
                deleted_rows += len(ctx.client.delete(table, [eq("user_id", user["id"])]))
                ctx.log(f"  [OK] {user.get('email')}")
            except SupabaseError as e:
                failures += 1
                ctx.log(f"  [WARN] {user.get('email')}: {e}")
        summary.append({"table": table, "deleted": deleted_rows})
        step += 1

    ctx.log(f"{step}. Deleting from {USERS_TABLE}...")
    deleted_users = ctx.client.delete(USERS_TABLE, [eq("tenant_id", tenant)])
    summary.append({"table": USERS_TABLE, "deleted": len(deleted_users)})
    ctx.log(f"  Deleted {len(deleted_users)} user(s)")
    step += 1

    if include_auth:
        ctx.log(f"{step}. Deleting auth accounts...")
        deleted_auth = 0
        for auth_user in ctx.client.list_auth_users():
            if (auth_user.get("email") or "").lower() not in emails:
                continue
            try:
                ctx.client.delete_auth_user(auth_user["id"])
                deleted_auth += 1
                ctx.log(f"  [OK] {auth_user.get('email')}")
            except SupabaseError as e:
                failures += 1
                ctx.log(f"  [WARN] {auth_user.get('email')}: {e}")
        summary.append({"table": "auth.users", "deleted": deleted_auth})

    if failures:
        ctx.log(f"{failures} dependent deletion(s) failed (see warnings above)")

    result.records = summary
    result.affected = len(deleted_users)

    def verify():
        return ctx.client.count(USERS_TABLE, [eq("tenant_id", tenant)]) == 0

    return verify


@action("login-attempts.clear", mutates=True)
def clear_login_attempts(ctx: ActionContext, result: ActionResult):
    """Delete failed login attempts (all, or for one email)."""
    email = ctx.get("email")
    table = ctx.get("table", FAILED_LOGINS_TABLE)
    filters = [eq("email", email)] if email else [not_null("id")]

    total = ctx.client.count(table, filters)
    scope = email or "all emails"
    ctx.log(f"{total} failed login attempt(s) for {scope}")
    if total == 0:
        result.affected = 0
        return None

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would delete {total} row(s) from {table}")
        result.affected = total
        return None

    deleted = ctx.client.delete(table, filters)
    result.affected = len(deleted)
    ctx.log(f"Cleared {len(deleted)} row(s) from {table}")

    def verify():
        return ctx.client.count(table, filters) == 0

    return verify
