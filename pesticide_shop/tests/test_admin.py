from datetime import date

from werkzeug.security import check_password_hash, generate_password_hash

from pesticide_shop import admin
from pesticide_shop.db import create_default_user_if_needed, get_session
from pesticide_shop.domain import daily_inventory
from pesticide_shop.models import CustomerTransaction, User


def _add_user(username, is_admin=False):
    with get_session() as db:
        user = User(
            username=username,
            password=generate_password_hash("secret"),
            is_admin=is_admin,
        )
        db.add(user)
        db.flush()
        return user.id


def test_users_page_requires_admin(client, login):
    resp = client.get("/admin/users")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")


def test_users_page_lists_users(client, admin_login):
    _add_user("owner", is_admin=True)

    resp = client.get("/admin/users")

    assert resp.status_code == 200
    assert "owner" in resp.get_data(as_text=True)


def test_add_user(client, admin_login):
    resp = client.post(
        "/admin/users/add",
        data={"username": "clerk", "password": "pw123", "is_admin": "y"},
    )

    assert resp.status_code == 302
    with get_session() as db:
        user = db.query(User).filter_by(username="clerk").one()
        assert user.is_admin
        assert check_password_hash(user.password, "pw123")


def test_add_duplicate_user_is_refused(client, admin_login):
    _add_user("clerk")

    client.post("/admin/users/add", data={"username": "clerk", "password": "other"})

    with get_session() as db:
        assert db.query(User).filter_by(username="clerk").count() == 1


def test_delete_user(client, admin_login):
    _add_user("owner", is_admin=True)
    clerk_id = _add_user("clerk")

    client.post(f"/admin/users/{clerk_id}/delete")

    with get_session() as db:
        assert db.get(User, clerk_id) is None


def test_last_user_cannot_be_deleted(client, admin_login):
    owner_id = _add_user("owner", is_admin=True)

    client.post(f"/admin/users/{owner_id}/delete")

    with get_session() as db:
        assert db.get(User, owner_id) is not None


def test_reset_statistics(app, sale):
    today = date.today()
    assert daily_inventory.get_by_date(today).total_sales > 0

    count = admin.reset_statistics("tester")

    assert count == 1
    with get_session() as db:
        assert db.query(CustomerTransaction).count() == 0
    assert daily_inventory.get_by_date(today).total_sales == 0


def test_reset_statistics_view_requires_admin(client, login, sale):
    client.post("/admin/reset_statistics")

    with get_session() as db:
        assert db.query(CustomerTransaction).count() == 1


def test_reset_statistics_view(client, admin_login, sale):
    resp = client.post("/admin/reset_statistics")

    assert resp.status_code == 302
    with get_session() as db:
        assert db.query(CustomerTransaction).count() == 0


def test_create_default_user_if_needed(app):
    create_default_user_if_needed(app)
    create_default_user_if_needed(app)

    with get_session() as db:
        users = db.query(User).filter_by(username="admin").all()
        assert len(users) == 1
        assert users[0].is_admin
        assert check_password_hash(users[0].password, "admin-test")
