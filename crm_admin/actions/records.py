"""
Generic record store actions: select, count, insert, update, delete.

Every action takes a table name and -w filter expressions. update and delete
refuse to run without a filter.
"""

from crm_admin.actions.runner import ActionContext, ActionResult, action
from crm_admin.client.filters import is_in
from crm_admin.errors import ActionAbort

PREVIEW_ROWS = 20


def _describe(filters) -> str:
    return " AND ".join(str(f) for f in filters) or "(no filter)"


def _same(actual, expected) -> bool:
    # Text columns come back as strings even when -s coerced the value to a number.
    if actual == expected:
        return True
    if actual is None or expected is None or isinstance(expected, (bool, dict, list)):
        return False
    return str(actual) == str(expected)


@action("records.select")
def select_records(ctx: ActionContext, result: ActionResult):
    """Read rows from a table matching the filters."""
    table = ctx.require("table")
    filters = ctx.where()

    ctx.log(f"SELECT {ctx.get('columns', '*')} FROM {table} WHERE {_describe(filters)}")
    rows = ctx.client.select(
        table,
        filters,
        columns=ctx.get("columns", "*"),
        order=ctx.get("order"),
        limit=ctx.get_int("limit"),
    )
    result.records = rows
    result.affected = len(rows)
    ctx.log(f"Found {len(rows)} row(s)")


@action("records.count")
def count_records(ctx: ActionContext, result: ActionResult):
    """Count rows in a table matching the filters."""
    table = ctx.require("table")
    filters = ctx.where()

    total = ctx.client.count(table, filters)
    result.affected = total
    result.records = [{"table": table, "count": total}]
    ctx.log(f"{table}: {total} row(s) WHERE {_describe(filters)}")


@action("records.insert", mutates=True)
def insert_record(ctx: ActionContext, result: ActionResult):
    """Insert one row built from the -s values."""
    table = ctx.require("table")
    row = ctx.values()
    if not row:
        raise ActionAbort("Nothing to insert: pass column values with -s COL=VALUE")

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would insert into {table}: {row}")
        result.records = [row]
        result.affected = 1
        return None

    inserted = ctx.client.insert(table, row)
    result.records = inserted
    result.affected = len(inserted)
    ctx.log(f"Inserted {len(inserted)} row(s) into {table}")

    ids = [r["id"] for r in inserted if r.get("id") is not None]
    if not ids:
        ctx.log("Inserted rows have no id column; skipping verification")
        return None

    def verify():
        return ctx.client.count(table, [is_in("id", ids)]) == len(ids)

    return verify


@action("records.update", mutates=True)
def update_records(ctx: ActionContext, result: ActionResult):
    """Set -s column values on every row matching the filters."""
    table = ctx.require("table")
    filters = ctx.where()
    values = ctx.values()
    if not filters:
        raise ActionAbort("records.update requires at least one -w filter")
    if not values:
        raise ActionAbort("Nothing to update: pass column values with -s COL=VALUE")

    matching = ctx.client.select(table, filters)
    ctx.log(f"{len(matching)} row(s) in {table} match {_describe(filters)}")
    if not matching:
        result.affected = 0
        return None

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would set {values} on {len(matching)} row(s)")
        result.records = matching[:PREVIEW_ROWS]
        result.affected = len(matching)
        return None

    updated = ctx.client.update(table, values, filters)
    result.records = updated
    result.affected = len(updated)
    ctx.log(f"Updated {len(updated)} row(s)")

    ids = [r["id"] for r in updated if r.get("id") is not None]
    if not ids:
        return None

    def verify():
        rows = ctx.client.select(table, [is_in("id", ids)])
        if len(rows) != len(ids):
            return False
        return all(_same(row.get(col), value) for row in rows for col, value in values.items())

    return verify


@action("records.delete", mutates=True)
def delete_records(ctx: ActionContext, result: ActionResult):
    """Delete every row matching the filters."""
    table = ctx.require("table")
    filters = ctx.where()
    if not filters:
        raise ActionAbort("records.delete requires at least one -w filter")

    total = ctx.client.count(table, filters)
    ctx.log(f"{total} row(s) in {table} match {_describe(filters)}")
    if total == 0:
        result.affected = 0
        return None

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would delete {total} row(s) from {table}")
        result.affected = total
        return None

    deleted = ctx.client.delete(table, filters)
    result.records = deleted[:PREVIEW_ROWS]
    result.affected = len(deleted)
    ctx.log(f"Deleted {len(deleted)} row(s)")

    def verify():
        return ctx.client.count(table, filters) == 0

    return verify
