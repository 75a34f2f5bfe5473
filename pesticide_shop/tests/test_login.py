from werkzeug.security import generate_password_hash
from pesticide_shop.models import User
from pesticide_shop.db import get_session


def _add_user(username="tester", password="secret", is_admin=False):
    with get_session() as db:
        db.add(
            User(
                username=username,
                password=generate_password_hash(password),
                is_admin=is_admin,
            )
        )


def test_login_route_authenticates_user(client, app):
    _add_user()

    resp = client.post(
        "/login", data={"username": "tester", "password": "secret"}
    )
    assert resp.status_code == 302
    with client.session_transaction() as sess:
        assert sess["username"] == "tester"
        assert sess["is_admin"] is False


def test_login_marks_admin_session(client, app):
    _add_user("boss", "secret", is_admin=True)

    client.post("/login", data={"username": "boss", "password": "secret"})
    with client.session_transaction() as sess:
        assert sess["is_admin"] is True


def test_login_rejects_wrong_password(client, app):
    _add_user()

    resp = client.post(
        "/login", data={"username": "tester", "password": "wrong"}
    )
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/login")
    with client.session_transaction() as sess:
        assert "username" not in sess


def test_login_follows_local_next_only(client, app):
    _add_user()

    resp = client.post(
        "/login?next=/customers", data={"username": "tester", "password": "secret"}
    )
    assert resp.headers["Location"].endswith("/customers")

    client.get("/logout")
    resp = client.post(
        "/login?next=//evil.example.com",
        data={"username": "tester", "password": "secret"},
    )
    assert "evil.example.com" not in resp.headers["Location"]


def test_anonymous_user_is_redirected(client):
    resp = client.get("/products")
    assert resp.status_code == 302
    assert "/login" in resp.headers["Location"]


def test_anonymous_json_request_gets_401(client):
    resp = client.post("/cashier/process_transaction", json={"items": []})
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_logout_clears_session(client, login):
    resp = client.get("/logout")
    assert resp.status_code == 302
    with client.session_transaction() as sess:
        assert "username" not in sess


def test_heartbeat_needs_no_login(client):
    resp = client.post("/api/heartbeat")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "alive"
