import types

import pytest
import requests

from pesticide_shop import notifications
from pesticide_shop.domain import invoices
from pesticide_shop.settings_store import settings_store


def test_whatsapp_phone_adds_country_code():
    assert notifications.whatsapp_phone("010-1234 5678") == "201012345678"
    assert notifications.whatsapp_phone("+201012345678") == "201012345678"


def test_whatsapp_message_lists_items(sale):
    invoice = invoices.get_invoice(sale["invoice_id"])

    message = notifications.whatsapp_message(invoice)

    assert "*Invoice:* 0001" in message
    assert "- *Bug Spray*" in message
    assert "Quantity: 3" in message
    assert "*Total:* 300.00 EGP" in message
    assert "*Remaining:* 100.00 EGP" in message
    assert "https://shop.example.com" in message


def test_whatsapp_url_is_encoded():
    url = notifications.whatsapp_url("01012345678", "Total: 10 & more")
    assert url == "https://wa.me/201012345678?text=Total%3A%2010%20%26%20more"


def test_send_whatsapp_disabled_without_relay(sale):
    invoice = invoices.get_invoice(sale["invoice_id"])
    assert notifications.send_whatsapp(invoice) is False


def test_send_whatsapp_posts_to_relay(sale, monkeypatch):
    settings_store.update(
        {"WHATSAPP_API_URL": "https://relay.example.com/send", "WHATSAPP_API_TOKEN": "tok"}
    )
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append((url, headers, json))
        return types.SimpleNamespace(status_code=201)

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    invoice = invoices.get_invoice(sale["invoice_id"])

    assert notifications.send_whatsapp(invoice) is True
    url, headers, payload = calls[0]
    assert url == "https://relay.example.com/send"
    assert headers["Authorization"] == "Bearer tok"
    assert payload["to"] == "201012345678"


def test_send_whatsapp_handles_network_errors(sale, monkeypatch):
    settings_store.update({"WHATSAPP_API_URL": "https://relay.example.com/send"})

    def failing_post(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(notifications.requests, "post", failing_post)
    invoice = invoices.get_invoice(sale["invoice_id"])

    assert notifications.send_whatsapp(invoice) is False


@pytest.mark.usefixtures("login")
def test_send_whatsapp_view(client, sale, monkeypatch):
    monkeypatch.setattr(notifications, "send_whatsapp", lambda invoice: True)

    resp = client.post(f"/invoices/{sale['invoice_id']}/send_whatsapp")

    assert resp.status_code == 302
