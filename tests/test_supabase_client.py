"""
Tests for the backend API client against a fake session.
"""
import pytest

from conftest import SERVICE_KEY, FakeResponse, count, rows
from crm_admin.client.filters import Filter, eq
from crm_admin.errors import SupabaseError


def test_select_sends_auth_headers_and_filters(client, session):
    session.add("GET", "/rest/v1/users", rows({"id": "u1", "email": "a@b.com"}))

    result = client.select("users", [eq("tenant_id", "medex")], columns="id,email", order="email.asc", limit=5)

    assert result == [{"id": "u1", "email": "a@b.com"}]
    call = session.calls[0]
    assert call.headers["apikey"] == SERVICE_KEY
    assert call.headers["Authorization"] == f"Bearer {SERVICE_KEY}"
    assert call.param("select") == "id,email"
    assert call.param("tenant_id") == "eq.medex"
    assert call.param("order") == "email.asc"
    assert call.param("limit") == "5"


def test_count_reads_content_range(client, session):
    session.add("HEAD", "/rest/v1/users", count(7))
    assert client.count("users", [Filter.parse("is_active=true")]) == 7
    assert session.calls[0].headers["Prefer"] == "count=exact"


def test_count_of_empty_table(client, session):
    session.add("HEAD", "/rest/v1/users", count(0))
    assert client.count("users") == 0


def test_count_with_bad_header_raises(client, session):
    session.add("HEAD", "/rest/v1/users", FakeResponse(200, headers={}))
    with pytest.raises(SupabaseError):
        client.count("users")


def test_insert_update_delete_request_representation(client, session):
    session.add("POST", "/rest/v1/notes", rows({"id": 1, "body": "x"}, status=201))
    session.add("PATCH", "/rest/v1/notes", rows({"id": 1, "body": "y"}))
    session.add("DELETE", "/rest/v1/notes", rows({"id": 1}))

    assert client.insert("notes", {"body": "x"}) == [{"id": 1, "body": "x"}]
    assert client.update("notes", {"body": "y"}, [eq("id", 1)]) == [{"id": 1, "body": "y"}]
    assert client.delete("notes", [eq("id", 1)]) == [{"id": 1}]

    post, patch, delete = session.calls
    assert post.json == {"body": "x"}
    assert patch.json == {"body": "y"}
    assert patch.params == [("id", "eq.1")]
    assert delete.params == [("id", "eq.1")]
    assert all(c.headers["Prefer"] == "return=representation" for c in session.calls)


@pytest.mark.parametrize("method", ["update", "delete"])
def test_unfiltered_writes_never_reach_the_network(client, session, method):
    with pytest.raises(ValueError):
        if method == "update":
            client.update("users", {"is_active": False}, [])
        else:
            client.delete("users", [])
    assert session.calls == []


def test_postgrest_error_is_surfaced_verbatim(client, session):
    session.add("GET", "/rest/v1/users", FakeResponse(400, {
        "code": "PGRST204",
        "message": "Could not find the 'colour' column of 'users' in the schema cache",
        "details": None,
        "hint": "Perhaps you meant 'color'",
    }))
    with pytest.raises(SupabaseError) as exc:
        client.select("users")
    err = exc.value
    assert err.service == "rest"
    assert err.status == 400
    assert err.code == "PGRST204"
    assert err.message == "Could not find the 'colour' column of 'users' in the schema cache"
    assert err.hint == "Perhaps you meant 'color'"


def test_auth_error_shape(client, session):
    session.add("GET", "/auth/v1/admin/users/abc", FakeResponse(404, {
        "code": 404, "error_code": "user_not_found", "msg": "User not found",
    }))
    with pytest.raises(SupabaseError) as exc:
        client.get_auth_user("abc")
    assert exc.value.code == "user_not_found"
    assert exc.value.message == "User not found"


def test_storage_error_shape(client, session):
    session.add("POST", "/storage/v1/object/list/nope", FakeResponse(400, {
        "statusCode": "404", "error": "Bucket not found", "message": "Bucket not found",
    }))
    with pytest.raises(SupabaseError) as exc:
        client.list_objects("nope")
    assert exc.value.service == "storage"
    assert exc.value.code == "Bucket not found"


def test_non_json_error_body(client, session):
    session.add("GET", "/rest/v1/users", FakeResponse(502, text="Bad Gateway"))
    with pytest.raises(SupabaseError) as exc:
        client.select("users")
    assert exc.value.message == "Bad Gateway"
    assert exc.value.code is None


def test_list_auth_users_paginates(client, session):
    page1 = FakeResponse(200, {"users": [{"id": "1", "email": "a@x.com"}, {"id": "2", "email": "b@x.com"}]})
    page2 = FakeResponse(200, {"users": [{"id": "3", "email": "C@x.com"}]})
    session.add("GET", "/auth/v1/admin/users", page1, page2)

    users = client.list_auth_users(per_page=2)

    assert [u["id"] for u in users] == ["1", "2", "3"]
    assert [c.param("page") for c in session.calls] == [1, 2]


def test_find_auth_user_is_case_insensitive(client, session):
    session.add("GET", "/auth/v1/admin/users", FakeResponse(200, {"users": [{"id": "3", "email": "C@x.com"}]}))
    assert client.find_auth_user("c@X.com")["id"] == "3"
    assert client.find_auth_user("missing@x.com") is None


def test_auth_write_calls(client, session):
    session.add("POST", "/auth/v1/admin/users", FakeResponse(200, {"id": "new"}))
    session.add("PUT", "/auth/v1/admin/users/new", FakeResponse(200, {"id": "new", "email": "n@x.com"}))
    session.add("DELETE", "/auth/v1/admin/users/new", FakeResponse(200, {}))

    assert client.create_auth_user({"email": "n@x.com", "password": "pw"})["id"] == "new"
    assert client.update_auth_user("new", {"email": "n@x.com"})["email"] == "n@x.com"
    client.delete_auth_user("new")
    assert [c.method for c in session.calls] == ["POST", "PUT", "DELETE"]


def test_storage_calls(client, session):
    session.add("GET", "/storage/v1/bucket", FakeResponse(200, [{"id": "company-logos", "name": "company-logos", "public": True}]))
    session.add("POST", "/storage/v1/bucket", FakeResponse(200, {"name": "avatars"}))
    session.add("POST", "/storage/v1/object/company-logos/tenant%20a/logo.png", FakeResponse(200, {"Key": "company-logos/tenant a/logo.png"}))
    session.add("DELETE", "/storage/v1/object/company-logos", FakeResponse(200, [{"name": "logo.png"}]))

    assert client.get_bucket("company-logos")["public"] is True
    assert client.get_bucket("avatars") is None
    client.create_bucket("avatars", public=False, allowed_mime_types=["image/png"], file_size_limit=1024)
    client.upload_object("company-logos", "tenant a/logo.png", b"\x89PNG", content_type="image/png", upsert=True)
    assert client.remove_objects("company-logos", ["logo.png"]) == [{"name": "logo.png"}]

    create = session.calls_to("POST", "/storage/v1/bucket")[0]
    assert create.json == {
        "id": "avatars", "name": "avatars", "public": False,
        "allowed_mime_types": ["image/png"], "file_size_limit": 1024,
    }
    upload = session.calls_to("POST", "/storage/v1/object/company-logos/tenant%20a/logo.png")[0]
    assert upload.data == b"\x89PNG"
    assert upload.headers["Content-Type"] == "image/png"
    assert upload.headers["x-upsert"] == "true"
    remove = session.calls_to("DELETE")[0]
    assert remove.json == {"prefixes": ["logo.png"]}


def test_select_pages_past_the_server_row_cap(session):
    from conftest import BASE_URL
    from crm_admin.client.supabase_client import SupabaseClient

    table = [{"id": i, "tenant_id": "medex"} for i in range(5)]

    def page(call):
        offset, limit = int(call.param("offset")), int(call.param("limit"))
        return rows(*table[offset:offset + limit])

    session.add("GET", "/rest/v1/users", page)
    paged = SupabaseClient(BASE_URL, SERVICE_KEY, session=session, page_size=2)

    assert paged.select("users", [eq("tenant_id", "medex")], order="id.asc") == table
    assert [c.param("offset") for c in session.calls] == ["0", "2", "4"]
    assert all(c.param("limit") == "2" for c in session.calls)
    assert all(c.param("tenant_id") == "eq.medex" for c in session.calls)


def test_select_stops_after_an_exactly_full_last_page(session):
    from conftest import BASE_URL
    from crm_admin.client.supabase_client import SupabaseClient

    session.add("GET", "/rest/v1/users", rows({"id": 1}, {"id": 2}), rows())
    paged = SupabaseClient(BASE_URL, SERVICE_KEY, session=session, page_size=2)

    assert paged.select("users") == [{"id": 1}, {"id": 2}]
    assert len(session.calls) == 2


def test_select_with_limit_is_a_single_request(client, session):
    session.add("GET", "/rest/v1/users", rows({"id": 1}))
    client.select("users", limit=1)
    assert len(session.calls) == 1
    assert session.calls[0].param("offset") is None
