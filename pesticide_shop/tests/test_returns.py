from datetime import date
from decimal import Decimal

import pytest

from pesticide_shop.db import get_session
from pesticide_shop.domain import daily_inventory, returns
from pesticide_shop.errors import NotFoundError, ValidationError
from pesticide_shop.models import CustomerTransaction, Invoice, Product


def _stock(product_id):
    with get_session() as db:
        return db.get(Product, product_id).quantity


def test_create_return_books_negative_invoice(sale, product):
    invoice = returns.create_return("0001", product.id, 2, reason="Damaged", user="tester")

    assert invoice.invoice_number == "RTN-0001"
    assert invoice.type == "return"
    assert invoice.original_invoice_number == "0001"
    assert invoice.total_amount == Decimal("-200.00")
    assert _stock(product.id) == 19

    with get_session() as db:
        txn = (
            db.query(CustomerTransaction)
            .filter(CustomerTransaction.quantity < 0)
            .one()
        )
        assert txn.total_price == Decimal("-200.00")
        assert "RTN-0001" in txn.notes

    assert returns.returns_summary() == {"count": 1, "quantity": 2}
    inventory = daily_inventory.get_by_date(date.today())
    assert inventory.total_sales == Decimal("100.00")
    assert inventory.net_profit == Decimal("40.00")


def test_return_numbers_are_unique(sale, product):
    first = returns.create_return("0001", product.id, 1)
    second = returns.create_return("0001", product.id, 1)

    assert first.invoice_number == "RTN-0001"
    assert second.invoice_number == "RTN-0001-2"


def test_return_uses_discounted_price(customer, product):
    from pesticide_shop.domain import cashier

    cashier.process_transaction(
        cashier.TransactionRequest.from_dict(
            {
                "customer_id": customer.id,
                "items": [
                    {"product_id": product.id, "quantity": 2, "price": "100", "discount": "15"}
                ],
            }
        )
    )

    invoice = returns.create_return("0001", product.id, 1)
    assert invoice.total_amount == Decimal("-85.00")


def test_return_limits(sale, product, other_product):
    returns.create_return("0001", product.id, 2)

    items = returns.invoice_items_for_return("0001")["items"]
    assert items[0]["returned_quantity"] == 2
    assert items[0]["available_quantity"] == 1

    with pytest.raises(ValidationError):
        returns.create_return("0001", product.id, 2)
    with pytest.raises(ValidationError):
        returns.create_return("0001", other_product.id, 1)
    with pytest.raises(NotFoundError):
        returns.create_return("9999", product.id, 1)


def test_multi_return_uses_one_invoice(customer, product, other_product):
    from pesticide_shop.domain import cashier

    cashier.process_transaction(
        cashier.TransactionRequest.from_dict(
            {
                "customer_id": customer.id,
                "items": [
                    {"product_id": product.id, "quantity": 2, "price": "100"},
                    {"product_id": other_product.id, "quantity": 2, "price": "150"},
                ],
            }
        )
    )

    invoice = returns.multi_return(
        "0001",
        [
            {"product_id": product.id, "quantity": 1},
            {"product_id": other_product.id, "quantity": 2},
            {"product_id": product.id, "quantity": 0},
        ],
    )

    assert invoice.invoice_number.startswith("RTN-")
    assert invoice.total_amount == Decimal("-400.00")
    assert returns.returns_summary() == {"count": 2, "quantity": 3}
    with pytest.raises(ValidationError):
        returns.multi_return("0001", [{"product_id": product.id, "quantity": 0}])


def test_delete_return_reverses_stock_and_day(sale, product):
    returns.create_return("0001", product.id, 2)
    tracking = returns.list_returns()[0]

    returns.delete_return(tracking.id)

    assert _stock(product.id) == 17
    assert returns.list_returns() == []
    with get_session() as db:
        assert db.query(Invoice).filter(Invoice.invoice_number == "RTN-0001").count() == 0
    inventory = daily_inventory.get_by_date(date.today())
    assert inventory.total_sales == Decimal("300.00")


def test_delete_all_returns(sale, product):
    returns.create_return("0001", product.id, 1)
    returns.create_return("0001", product.id, 1)

    assert returns.delete_all() == 2
    assert returns.delete_all() == 0
    assert _stock(product.id) == 17


@pytest.mark.usefixtures("login")
def test_return_views(client, sale, product):
    assert client.get("/returns/").status_code == 200
    resp = client.get("/returns/invoice_items?invoice_number=0001")
    assert resp.get_json()["items"][0]["available_quantity"] == 3
    assert client.get("/returns/invoice_items?invoice_number=nope").status_code == 404

    resp = client.post(
        "/returns/create",
        data={"original_invoice_number": "0001", "product_id": str(product.id), "quantity": "1"},
    )
    assert resp.status_code == 302
    tracking = returns.list_returns()[0]
    assert client.get(f"/returns/{tracking.id}").status_code == 200

    resp = client.post(
        "/returns/multi",
        json={
            "original_invoice_number": "0001",
            "items": [{"product_id": product.id, "quantity": 5}],
        },
    )
    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


@pytest.mark.usefixtures("login")
def test_delete_all_returns_requires_admin(client, sale, product):
    returns.create_return("0001", product.id, 1)

    client.post("/returns/delete_all")
    assert len(returns.list_returns()) == 1


@pytest.mark.usefixtures("admin_login")
def test_admin_can_delete_all_returns(client, sale, product):
    returns.create_return("0001", product.id, 1)

    resp = client.post("/returns/delete_all")
    assert resp.status_code == 302
    assert returns.list_returns() == []


def test_return_on_closed_day_leaves_its_figures(sale, product):
    today = date.today()
    daily_inventory.close_day(today, "tester")

    invoice = returns.create_return("0001", product.id, 1, user="tester")

    assert invoice.total_amount == Decimal("-100.00")
    assert _stock(product.id) == 18
    inventory = daily_inventory.get_by_date(today)
    assert inventory.status == "closed"
    assert inventory.total_sales == Decimal("300.00")
