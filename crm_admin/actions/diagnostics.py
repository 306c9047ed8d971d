"""
Read-only diagnostics.

diag.tenant-isolation: how users are spread across tenants, and which rows
    have no tenant at all (those leak into every tenant-less query).
diag.storage: is the branding bucket there and public, and is the settings
    table reachable through the API.
"""

from collections import Counter

from crm_admin.actions.runner import ActionContext, ActionResult, action
from crm_admin.actions.users import USERS_TABLE
from crm_admin.errors import SupabaseError, classify, suggest_remedy

DEFAULT_BUCKET = "company-logos"
DEFAULT_SETTINGS_TABLE = "company_settings"


@action("diag.tenant-isolation")
def tenant_isolation(ctx: ActionContext, result: ActionResult):
    """Count users per tenant and flag rows with no tenant."""
    tenant = ctx.get("tenant") or ctx.tenant

    rows = ctx.client.select(USERS_TABLE, columns="id,email,tenant_id", order="email.asc")
    per_tenant = Counter(row.get("tenant_id") for row in rows)

    ctx.log(f"{len(rows)} user row(s) across {len(per_tenant)} tenant value(s):")
    for tenant_id, count in sorted(per_tenant.items(), key=lambda kv: str(kv[0])):
        ctx.log(f"  {tenant_id if tenant_id is not None else '(none)'}: {count}")

    records = [{"tenant_id": t, "users": c} for t, c in per_tenant.items()]

    if tenant:
        visible = [row.get("email") for row in rows if row.get("tenant_id") == tenant]
        ctx.log(f"Visible in tenant '{tenant}': {len(visible)}")
        for email in visible:
            ctx.log(f"  - {email}")
        records.append({"tenant_id": tenant, "emails": visible})

    result.records = records
    result.affected = len(rows)

    orphans = [row.get("email") for row in rows if not row.get("tenant_id")]
    if orphans:
        for email in orphans:
            ctx.log(f"  [FAIL] no tenant_id: {email}")
        result.fail("constraint_violation", f"{len(orphans)} user row(s) have no tenant_id")
    else:
        ctx.log("[PASS] Every user row has a tenant_id")


@action("diag.storage")
def storage_diagnostic(ctx: ActionContext, result: ActionResult):
    """Check the branding bucket and the settings table."""
    bucket_id = ctx.get("bucket", DEFAULT_BUCKET)
    table = ctx.get("table", DEFAULT_SETTINGS_TABLE)
    checks = []

    ctx.log(f"TEST 1: {table} table")
    try:
        rows = ctx.client.select(table, limit=1)
        ctx.log(f"  [PASS] {table} reachable")
        if rows:
            ctx.log(f"  Columns: {', '.join(sorted(rows[0]))}")
        checks.append({"check": f"table:{table}", "passed": True})
    except SupabaseError as e:
        ctx.log(f"  [FAIL] {e}")
        remedy = suggest_remedy(e.code)
        if remedy:
            ctx.log(f"  Suggested fix: {remedy}")
        checks.append({"check": f"table:{table}", "passed": False, "code": e.code, "message": e.message})
        if result.error is None:
            result.fail(classify(e), e.message, status=e.status, code=e.code, details=e.details, hint=e.hint)

    ctx.log(f"TEST 2: {bucket_id} bucket")
    bucket = ctx.client.get_bucket(bucket_id)
    if bucket is None:
        ctx.log(f"  [FAIL] bucket '{bucket_id}' does not exist (create it with storage.ensure-bucket)")
        checks.append({"check": f"bucket:{bucket_id}", "passed": False})
        if result.error is None:
            result.fail("not_found", f"Bucket '{bucket_id}' does not exist")
    else:
        ctx.log(f"  [PASS] bucket exists (public: {bucket.get('public')}, created: {bucket.get('created_at')})")
        checks.append({"check": f"bucket:{bucket_id}", "passed": True, "public": bucket.get("public")})
        if not bucket.get("public"):
            ctx.log("  [WARN] bucket is not public; logo URLs will not load without signed URLs")

    result.records = checks
    result.affected = len(checks)
