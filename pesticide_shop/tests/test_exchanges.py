from datetime import date
from decimal import Decimal

import pytest

from pesticide_shop.db import get_session
from pesticide_shop.domain import catalog, daily_inventory, exchanges
from pesticide_shop.errors import InsufficientStockError, NotFoundError, ValidationError
from pesticide_shop.models import Product


def _stock(product_id):
    with get_session() as db:
        return db.get(Product, product_id).quantity


def test_exchange_for_dearer_product_leaves_balance(sale, product, other_product):
    invoice = exchanges.create_exchange(
        "0001", product.id, other_product.id, 1, reason="Wrong product", user="tester"
    )

    assert invoice.invoice_number == "EXC-0001"
    assert invoice.type == "exchange"
    assert invoice.status == "sent"
    assert invoice.total_amount == Decimal("50.00")
    assert invoice.remaining_amount == Decimal("50.00")
    assert _stock(product.id) == 18
    assert _stock(other_product.id) == 9

    tracking = exchanges.list_exchanges()[0]
    assert tracking.price_difference == Decimal("50.00")
    assert tracking.old_product.name == "Bug Spray"
    assert tracking.new_product.name == "Ant Powder"


def test_exchange_for_cheaper_product_is_refunded(customer, product, other_product):
    from pesticide_shop.domain import cashier

    cashier.process_transaction(
        cashier.TransactionRequest.from_dict(
            {
                "customer_id": customer.id,
                "amount_paid": "300",
                "items": [{"product_id": other_product.id, "quantity": 2, "price": "150"}],
            }
        )
    )

    invoice = exchanges.create_exchange("0001", other_product.id, product.id, 2)

    assert invoice.status == "paid"
    assert invoice.total_amount == Decimal("100.00")
    assert invoice.remaining_amount == Decimal("0.00")


def test_exchange_shows_in_daily_snapshot(sale, product, other_product):
    exchanges.create_exchange("0001", product.id, other_product.id, 1)

    snap = daily_inventory.live_snapshot(date.today())
    assert snap.exchanges_count == 1
    assert snap.exchanges_value == Decimal("100.00")
    assert snap.returns_count == 0


def test_exchange_limits(sale, product, other_product):
    with pytest.raises(ValidationError):
        exchanges.create_exchange("0001", product.id, other_product.id, 4)
    with pytest.raises(ValidationError):
        exchanges.create_exchange("0001", other_product.id, product.id, 1)
    with pytest.raises(NotFoundError):
        exchanges.create_exchange("9999", product.id, other_product.id, 1)

    catalog.update_product(other_product.id, quantity=1)
    with pytest.raises(InsufficientStockError):
        exchanges.create_exchange("0001", product.id, other_product.id, 2)
    assert _stock(product.id) == 17


def test_multi_exchange_sums_differences(customer, product, other_product, category):
    from pesticide_shop.domain import cashier

    cheap = catalog.create_product("Mosquito Coil", category.id, "50", quantity=10)
    cashier.process_transaction(
        cashier.TransactionRequest.from_dict(
            {
                "customer_id": customer.id,
                "items": [{"product_id": product.id, "quantity": 3, "price": "100"}],
            }
        )
    )

    invoice = exchanges.multi_exchange(
        "0001",
        [
            {"old_product_id": product.id, "new_product_id": other_product.id, "quantity": 1},
            {"old_product_id": product.id, "new_product_id": cheap.id, "quantity": 2},
        ],
    )

    assert invoice.invoice_number.startswith("EXC-")
    assert invoice.total_amount == Decimal("50.00")
    assert invoice.status == "paid"
    assert len(exchanges.list_exchanges()) == 2
    with pytest.raises(ValidationError):
        exchanges.multi_exchange("0001", [])


def test_delete_exchange_keeps_stock(sale, product, other_product):
    exchanges.create_exchange("0001", product.id, other_product.id, 1)
    tracking = exchanges.list_exchanges()[0]

    exchanges.delete_exchange(tracking.id)

    assert exchanges.list_exchanges() == []
    assert _stock(other_product.id) == 9
    with pytest.raises(NotFoundError):
        exchanges.delete_exchange(tracking.id)


def test_invoice_items_for_exchange(sale, product, other_product):
    exchanges.create_exchange("0001", product.id, other_product.id, 1)

    items = exchanges.invoice_items_for_exchange("0001")["items"]
    assert items[0]["exchanged_quantity"] == 1
    assert items[0]["available_quantity"] == 2


@pytest.mark.usefixtures("login")
def test_exchange_views(client, sale, product, other_product):
    assert client.get("/exchanges/").status_code == 200

    resp = client.post(
        "/exchanges/multi",
        json={
            "original_invoice_number": "0001",
            "items": [
                {
                    "old_product_id": product.id,
                    "new_product_id": other_product.id,
                    "quantity": 1,
                }
            ],
        },
    )
    payload = resp.get_json()
    assert payload["success"] is True
    assert payload["remaining_amount"] == 50.0

    tracking = exchanges.list_exchanges()[0]
    assert client.get(f"/exchanges/{tracking.id}").status_code == 200

    resp = client.post("/exchanges/multi", json={"items": [{"quantity": "x"}]})
    assert resp.status_code == 400


def test_exchange_on_closed_day_leaves_its_figures(sale, product, other_product):
    today = date.today()
    daily_inventory.close_day(today, "tester")

    invoice = exchanges.create_exchange("0001", product.id, other_product.id, 1, user="tester")

    assert invoice.invoice_number == "EXC-0001"
    assert _stock(other_product.id) == 9
    inventory = daily_inventory.get_by_date(today)
    assert inventory.status == "closed"
    assert inventory.total_sales == Decimal("300.00")
