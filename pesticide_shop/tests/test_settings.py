import re

from pesticide_shop.config import settings
from pesticide_shop.env_info import ENV_INFO
from pesticide_shop.settings_store import settings_store


def _extract_input(html, name):
    pattern = re.compile(
        rf"<input[^>]*name=\"{re.escape(name)}\"[^>]*>", re.IGNORECASE | re.DOTALL
    )
    match = pattern.search(html)
    assert match is not None, f"Input for {name} not found in HTML"
    return match.group(0)


def test_settings_are_typed(app):
    assert settings.LOW_STOCK_THRESHOLD == 5
    assert settings.INVOICES_PAGE_SIZE == 10
    assert settings.CURRENCY == "EGP"


def test_settings_list_visible_keys(client, login):
    resp = client.get("/settings")
    assert resp.status_code == 200
    text = resp.get_data(as_text=True)
    for key in ("LOW_STOCK_THRESHOLD", "CURRENCY", "SHOP_PHONES"):
        assert ENV_INFO[key][0] in text
    assert 'name="DB_PATH"' not in text


def test_sensitive_values_render_as_password(client, login):
    html = client.get("/settings").get_data(as_text=True)
    for key in ["SECRET_KEY", "WHATSAPP_API_TOKEN", "DEFAULT_ADMIN_PASSWORD"]:
        field_html = _extract_input(html, key)
        assert "type=\"password\"" in field_html.lower()


def test_settings_post_updates_store(client, login):
    values = settings_store.as_ordered_dict()
    values["LOW_STOCK_THRESHOLD"] = "8"
    values["CURRENCY"] = "USD"

    resp = client.post("/settings", data=values)

    assert resp.status_code == 302
    stored = settings_store.as_ordered_dict()
    assert stored["CURRENCY"] == "USD"
    assert settings.LOW_STOCK_THRESHOLD == 8


def test_settings_post_rejects_non_numeric_threshold(client, login):
    values = settings_store.as_ordered_dict()
    values["LOW_STOCK_THRESHOLD"] = "many"

    client.post("/settings", data=values)

    assert settings.LOW_STOCK_THRESHOLD == 5


def test_store_persists_to_database(app):
    from pesticide_shop.db import sqlite_connect

    settings_store.update({"SHOP_WEBSITE": "https://pests.example.com"})

    with sqlite_connect(settings.DB_PATH) as conn:
        row = conn.execute(
            "SELECT value FROM app_settings WHERE key = 'SHOP_WEBSITE'"
        ).fetchone()
    assert row[0] == "https://pests.example.com"

    settings_store.reload()
    assert settings.SHOP_WEBSITE == "https://pests.example.com"
