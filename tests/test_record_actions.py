"""
Tests for the generic records.* actions.
"""
from conftest import count, rows
from crm_admin.actions import run_action


def run(client, name, params, **kwargs):
    kwargs.setdefault("echo", False)
    return run_action(name, params, client, **kwargs)


def test_select_passes_options(client, session):
    session.add("GET", "/rest/v1/users", rows({"id": "1"}, {"id": "2"}))
    result = run(client, "records.select", {
        "table": "users", "where": ["tenant_id=medex"], "columns": "id", "order": "id.desc", "limit": "2",
    })
    assert result.success is True
    assert result.affected == 2
    call = session.calls[0]
    assert call.param("tenant_id") == "eq.medex"
    assert call.param("limit") == "2"


def test_insert_live_verifies_by_id(client, session):
    session.add("POST", "/rest/v1/notes", rows({"id": 10, "body": "hi"}, status=201))
    session.add("HEAD", "/rest/v1/notes", count(1))

    result = run(client, "records.insert", {"table": "notes", "set": {"body": "hi"}}, execute=True)

    assert result.success is True
    assert result.verified is True
    assert session.calls_to("HEAD")[0].param("id") == "in.(10)"


def test_insert_requires_values(client, session):
    result = run(client, "records.insert", {"table": "notes"}, execute=True)
    assert result.error["kind"] == "invalid_request"
    assert session.calls == []


def test_update_requires_filter(client, session):
    result = run(client, "records.update", {"table": "users", "set": {"is_active": True}}, execute=True)
    assert result.error["kind"] == "invalid_request"
    assert session.calls == []


def test_update_with_no_matches_is_a_noop(client, session):
    session.add("GET", "/rest/v1/users", rows())
    result = run(client, "records.update", {"table": "users", "where": ["email=x@y.com"], "set": {"is_active": True}}, execute=True)
    assert result.success is True
    assert result.affected == 0
    assert session.calls_to("PATCH") == []


def test_update_live_then_verify(client, session):
    session.add(
        "GET", "/rest/v1/users",
        rows({"id": "u1", "is_active": False}),
        rows({"id": "u1", "is_active": True}),
    )
    session.add("PATCH", "/rest/v1/users", rows({"id": "u1", "is_active": True}))

    result = run(client, "records.update", {"table": "users", "where": ["id=u1"], "set": {"is_active": True}}, execute=True)

    assert result.success is True
    assert result.affected == 1
    assert result.verified is True
    assert session.calls_to("PATCH")[0].json == {"is_active": True}


def test_update_verification_failure(client, session):
    session.add(
        "GET", "/rest/v1/users",
        rows({"id": "u1", "is_active": False}),
        rows({"id": "u1", "is_active": False}),
    )
    session.add("PATCH", "/rest/v1/users", rows({"id": "u1", "is_active": True}))

    result = run(client, "records.update", {"table": "users", "where": ["id=u1"], "set": {"is_active": True}}, execute=True)

    assert result.success is False
    assert result.verified is False
    assert result.error["kind"] == "verification_failed"


def test_update_verification_tolerates_text_columns(client, session):
    session.add("GET", "/rest/v1/users", rows({"id": "u1", "code": "1"}), rows({"id": "u1", "code": "42"}))
    session.add("PATCH", "/rest/v1/users", rows({"id": "u1", "code": "42"}))

    result = run(client, "records.update", {"table": "users", "where": ["id=u1"], "set": {"code": 42}}, execute=True)

    assert result.verified is True


def test_delete_dry_run_counts_only(client, session):
    session.add("HEAD", "/rest/v1/user_settings", count(4))
    result = run(client, "records.delete", {"table": "user_settings", "where": ["user_id=u1"]})
    assert result.success is True
    assert result.dry_run is True
    assert result.affected == 4
    assert session.calls_to("DELETE") == []


def test_delete_live_verifies_zero_remaining(client, session):
    session.add("HEAD", "/rest/v1/user_settings", count(2), count(0))
    session.add("DELETE", "/rest/v1/user_settings", rows({"id": 1}, {"id": 2}))

    result = run(client, "records.delete", {"table": "user_settings", "where": ["user_id=u1"]}, execute=True)

    assert result.success is True
    assert result.affected == 2
    assert result.verified is True


def test_delete_requires_filter(client, session):
    result = run(client, "records.delete", {"table": "users"}, execute=True)
    assert result.error["kind"] == "invalid_request"
    assert session.calls == []
