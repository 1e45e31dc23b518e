import inspect

import settings
from auth import create_access_token, get_current_user, require_admin
from conftest import API, ADMIN_PASSWORD


def test_login_sets_http_only_cookie(client):
    resp = client.post(f"{API}/auth/login", json={"email": settings.ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    user = resp.json()["data"]
    assert user["email"] == settings.ADMIN_EMAIL
    assert user["role"] == "super_admin"
    assert "passwordHash" not in user

    set_cookie = resp.headers["set-cookie"].lower()
    assert settings.AUTH_COOKIE_NAME in set_cookie
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie

    # the cookie alone authenticates
    me = client.get(f"{API}/auth/me")
    assert me.status_code == 200
    assert me.json()["data"]["name"] == "Kiln Owner"


def test_wrong_password_and_unknown_user_look_the_same(client):
    for email, password in ((settings.ADMIN_EMAIL, "wrong"), ("nobody@example.com", ADMIN_PASSWORD)):
        resp = client.post(f"{API}/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Invalid credentials"}


def test_bearer_header_is_accepted(client, super_admin_headers):
    resp = client.get(f"{API}/auth/me", headers=super_admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["role"] == "super_admin"


def test_invalid_tokens_are_rejected(client, db):
    assert client.get(f"{API}/auth/me").status_code == 401
    assert client.get(f"{API}/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401

    forged = create_access_token({"sub": "65a000000000000000000000"})
    resp = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Unauthorized"


def test_deactivated_admin_loses_access(client, db, admin_headers):
    db["user"].update_one({"email": "desk@example.com"}, {"$set": {"is_active": False}})
    assert client.get(f"{API}/auth/me", headers=admin_headers).status_code == 401


def test_logout_clears_cookie(client):
    client.post(f"{API}/auth/login", json={"email": settings.ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    resp = client.post(f"{API}/auth/logout")
    assert resp.status_code == 200
    assert client.get(f"{API}/auth/me").status_code == 401


def test_admin_ping(client, admin_headers):
    resp = client.get(f"{API}/admin/ping", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "desk@example.com"


def test_auth_dependencies_run_in_threadpool():
    # they query Mongo synchronously, so they must not be coroutines
    assert not inspect.iscoroutinefunction(get_current_user)
    assert not inspect.iscoroutinefunction(require_admin)
