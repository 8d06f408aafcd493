from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from frame.api import routes
from frame.api.handlers import register_exception_handlers
from frame.security.rate_limiter import SlidingWindowRateLimiter
from frame.security.tokens import issue_access_token


def _bearer(**claims) -> dict[str, str]:
    token, _ = issue_access_token(**claims)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def root_headers():
    return _bearer(subject="admin-1", scope="admin", name="Ada Admin", groups=["root"])


@pytest.fixture
def admin_headers():
    return _bearer(subject="admin-2", scope="admin", name="Bob Admin", groups=["sales"])


@pytest.fixture
def api_client(service, status_service, monkeypatch):
    """Provide a FastAPI test client over in-memory collections."""
    app = FastAPI()
    app.include_router(routes.router)
    register_exception_handlers(app)
    app.state.account_service = service
    app.state.status_service = status_service

    monkeypatch.setattr(routes, "rate_limiter", SlidingWindowRateLimiter(max_requests=100, window_seconds=60))

    with TestClient(app) as client:
        yield client


def _create(client, headers, name="Jane Q Doe") -> dict:
    response = client.post("/api/accounts", json={"name": name}, headers=headers)
    assert response.status_code == 201
    return response.json()


def test_create_and_fetch_account(api_client, root_headers):
    created = _create(api_client, root_headers)

    response = api_client.get(f"/api/accounts/{created['_id']}", headers=root_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == {"first": "Jane", "middle": "Q", "last": "Doe"}
    assert body["user"] is None
    assert body["notes"] == []
    assert body["status"] == {"current": None, "log": []}


def test_missing_account_reports_not_found(api_client, root_headers):
    response = api_client.get("/api/accounts/missing", headers=root_headers)

    assert response.status_code == 404
    assert response.json() == {"error": {"kind": "not_found", "message": "Account not found."}}


def test_requests_without_valid_token_are_rejected(api_client):
    missing = api_client.get("/api/accounts")
    garbage = api_client.get("/api/accounts", headers={"Authorization": "Bearer not-a-jwt"})

    assert missing.status_code == 401
    assert missing.json()["error"]["kind"] == "unauthorized"
    assert garbage.status_code == 401


def test_account_scope_cannot_use_admin_routes(api_client):
    headers = _bearer(subject="user-1", scope="account", account_id="abc")

    response = api_client.get("/api/accounts", headers=headers)

    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "forbidden"


def test_delete_requires_root_group(api_client, root_headers, admin_headers):
    created = _create(api_client, root_headers)

    denied = api_client.delete(f"/api/accounts/{created['_id']}", headers=admin_headers)
    deleted = api_client.delete(f"/api/accounts/{created['_id']}", headers=root_headers)
    again = api_client.delete(f"/api/accounts/{created['_id']}", headers=root_headers)

    assert denied.status_code == 403
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Success."}
    assert again.status_code == 404


def test_update_account_validates_name(api_client, admin_headers):
    created = _create(api_client, admin_headers)

    bad = api_client.put(
        f"/api/accounts/{created['_id']}",
        json={"name": {"first": "Jane", "last": ""}},
        headers=admin_headers,
    )
    good = api_client.put(
        f"/api/accounts/{created['_id']}",
        json={"name": {"first": "Janet", "middle": "", "last": "Doe"}},
        headers=admin_headers,
    )

    assert bad.status_code == 422
    assert good.status_code == 200
    assert good.json()["name"] == {"first": "Janet", "middle": "", "last": "Doe"}


def test_link_conflict_unlink_relink_flow(api_client, admin_headers, add_user):
    jane = _create(api_client, admin_headers, "Jane Q Doe")
    other = _create(api_client, admin_headers, "John Roe")
    user_id = add_user("janed")

    linked = api_client.put(f"/api/accounts/{jane['_id']}/user", json={"username": "JaneD"}, headers=admin_headers)
    conflict = api_client.put(f"/api/accounts/{other['_id']}/user", json={"username": "janed"}, headers=admin_headers)
    unlinked = api_client.delete(f"/api/accounts/{jane['_id']}/user", headers=admin_headers)
    relinked = api_client.put(f"/api/accounts/{other['_id']}/user", json={"username": "janed"}, headers=admin_headers)

    assert linked.status_code == 200
    assert linked.json()["user"] == {"id": user_id, "username": "janed"}
    assert conflict.status_code == 409
    assert conflict.json()["error"] == {
        "kind": "conflict",
        "message": "User is linked to an account. Unlink first.",
    }
    assert unlinked.status_code == 200
    assert unlinked.json()["user"] is None
    assert relinked.status_code == 200
    assert relinked.json()["user"]["id"] == user_id


def test_link_unknown_user(api_client, admin_headers):
    created = _create(api_client, admin_headers)

    response = api_client.put(f"/api/accounts/{created['_id']}/user", json={"username": "ghost"}, headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "User not found."


def test_notes_and_status_are_stamped_with_admin(api_client, root_headers):
    created = _create(api_client, root_headers)
    status_resp = api_client.post("/api/statuses", json={"pivot": "Account", "name": "Happy"}, headers=root_headers)

    noted = api_client.post(
        f"/api/accounts/{created['_id']}/notes", json={"data": "called in"}, headers=root_headers
    )
    first = api_client.post(
        f"/api/accounts/{created['_id']}/status", json={"status": "account-happy"}, headers=root_headers
    )
    second = api_client.post(
        f"/api/accounts/{created['_id']}/status", json={"status": "account-happy"}, headers=root_headers
    )
    missing = api_client.post(
        f"/api/accounts/{created['_id']}/status", json={"status": "account-nope"}, headers=root_headers
    )

    assert status_resp.status_code == 201
    assert status_resp.json() == {"_id": "account-happy", "name": "Happy", "pivot": "Account"}
    assert noted.json()["notes"][0]["adminCreated"] == {"id": "admin-1", "name": "Ada Admin"}
    assert first.status_code == 200
    body = second.json()
    assert len(body["status"]["log"]) == 2
    assert body["status"]["current"] == body["status"]["log"][-1]
    assert missing.status_code == 404
    assert missing.json()["error"]["message"] == "Status not found."


def test_list_accounts_paginates_and_validates_sort(api_client, admin_headers):
    for name in ("Ann Bee", "Cid Dee", "Eve Fay"):
        _create(api_client, admin_headers, name)

    page = api_client.get("/api/accounts", params={"limit": 2, "page": 2}, headers=admin_headers)
    bad_sort = api_client.get("/api/accounts", params={"sort": "_option2"}, headers=admin_headers)
    bad_limit = api_client.get("/api/accounts", params={"limit": 0}, headers=admin_headers)

    assert page.status_code == 200
    body = page.json()
    assert [account["name"]["first"] for account in body["data"]] == ["Eve"]
    assert body["pages"]["total"] == 2
    assert body["pages"]["hasPrev"] is True
    assert body["items"] == {"limit": 2, "begin": 3, "end": 3, "total": 3}
    assert bad_sort.status_code == 400
    assert bad_sort.json()["error"]["kind"] == "validation"
    assert bad_limit.status_code == 422


def test_my_account_is_bound_to_token(api_client, admin_headers):
    created = _create(api_client, admin_headers)
    _create(api_client, admin_headers, "Someone Else")
    headers = _bearer(subject="user-janed", scope="account", account_id=created["_id"])

    fetched = api_client.get("/api/accounts/my", headers=headers)
    updated = api_client.put(
        "/api/accounts/my",
        json={"name": {"first": "Janet", "middle": "", "last": "Doe"}},
        headers=headers,
    )
    as_admin = api_client.get("/api/accounts/my", headers=admin_headers)

    assert fetched.status_code == 200
    assert set(fetched.json()) == {"_id", "name", "user", "timeCreated"}
    assert fetched.json()["_id"] == created["_id"]
    assert updated.json()["name"]["first"] == "Janet"
    assert as_admin.status_code == 403


def test_mutating_routes_respect_rate_limits(api_client, admin_headers, monkeypatch):
    monkeypatch.setattr(routes, "rate_limiter", SlidingWindowRateLimiter(max_requests=2, window_seconds=60))

    first = api_client.post("/api/accounts", json={"name": "A B"}, headers=admin_headers)
    second = api_client.post("/api/accounts", json={"name": "C D"}, headers=admin_headers)
    third = api_client.post("/api/accounts", json={"name": "E F"}, headers=admin_headers)
    listing = api_client.get("/api/accounts", headers=admin_headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert third.status_code == 429
    assert third.json()["detail"] == "rate limited"
    assert listing.status_code == 200


def test_status_catalog_routes(api_client, root_headers, admin_headers):
    api_client.post("/api/statuses", json={"pivot": "Account", "name": "Happy"}, headers=root_headers)
    duplicate = api_client.post("/api/statuses", json={"pivot": "Account", "name": "Happy"}, headers=root_headers)
    listing = api_client.get("/api/statuses", headers=admin_headers)
    denied = api_client.delete("/api/statuses/account-happy", headers=admin_headers)
    deleted = api_client.delete("/api/statuses/account-happy", headers=root_headers)
    gone = api_client.get("/api/statuses/account-happy", headers=root_headers)

    assert duplicate.status_code == 409
    assert [item["_id"] for item in listing.json()["data"]] == ["account-happy"]
    assert denied.status_code == 403
    assert deleted.json() == {"message": "Success."}
    assert gone.status_code == 404


def test_account_body_uses_document_keys(api_client, root_headers):
    created = _create(api_client, root_headers)
    api_client.post("/api/statuses", json={"pivot": "Account", "name": "Happy"}, headers=root_headers)
    api_client.post(f"/api/accounts/{created['_id']}/notes", json={"data": "called in"}, headers=root_headers)

    response = api_client.post(
        f"/api/accounts/{created['_id']}/status", json={"status": "account-happy"}, headers=root_headers
    )
    listing = api_client.get("/api/accounts", headers=root_headers)

    body = response.json()
    assert set(body) == {"_id", "name", "user", "notes", "status", "timeCreated"}
    assert set(body["notes"][0]) == {"adminCreated", "data", "timeCreated"}
    assert set(body["status"]["current"]) == {"id", "name", "timeCreated", "adminCreated"}
    assert set(listing.json()["pages"]) == {"current", "prev", "hasPrev", "next", "hasNext", "total"}
