from decimal import Decimal

import pytest

from pesticide_shop.db import get_session
from pesticide_shop.domain import cashier
from pesticide_shop.domain.cashier import TransactionRequest
from pesticide_shop.errors import (
    DuplicateError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from pesticide_shop.models import (
    CustomerTransaction,
    ExchangeTracking,
    Invoice,
    Product,
    ReturnTracking,
)


def _request(**data):
    data.setdefault("cashier_name", "tester")
    return TransactionRequest.from_dict(data)


def _stock(product_id):
    with get_session() as db:
        return db.get(Product, product_id).quantity


def test_sale_books_invoice_and_stock(sale, product, customer):
    assert sale["success"] is True
    assert sale["invoice_number"] == "0001"
    assert sale["order_number"] == "0001"
    assert sale["total_amount"] == 300.0
    assert sale["amount_paid"] == 200.0
    assert sale["remaining_amount"] == 100.0
    assert sale["has_sales"] is True
    assert sale["has_returns"] is False
    assert sale["whatsapp_url"].startswith("https://wa.me/201012345678?text=")
    assert _stock(product.id) == 17

    with get_session() as db:
        invoice = db.query(Invoice).filter_by(invoice_number="0001").one()
        assert invoice.type == "sale"
        assert invoice.customer_id == customer.id
        assert len(invoice.items) == 1
        txn = db.query(CustomerTransaction).one()
        assert txn.amount_paid == Decimal("200.00")


def test_numbers_are_sequential(sale):
    assert cashier.generate_numbers() == {"invoice_number": "0002", "order_number": "0002"}
    assert cashier.invoice_number_exists("0001")
    assert not cashier.order_number_exists("0002")


def test_payment_is_spread_pro_rata(customer, product, other_product):
    result = cashier.process_transaction(
        _request(
            customer_id=customer.id,
            amount_paid="200",
            items=[
                {"product_id": product.id, "quantity": 1, "price": "100"},
                {"product_id": other_product.id, "quantity": 2, "price": "150"},
            ],
        )
    )

    assert result["total_amount"] == 400.0
    with get_session() as db:
        paid = [
            t.amount_paid
            for t in db.query(CustomerTransaction).order_by(CustomerTransaction.id)
        ]
    assert paid == [Decimal("50.00"), Decimal("150.00")]


def test_discount_is_per_unit(customer, product):
    result = cashier.process_transaction(
        _request(
            customer_id=customer.id,
            amount_paid="180",
            items=[{"product_id": product.id, "quantity": 2, "price": "100", "discount": "10"}],
        )
    )

    assert result["total_amount"] == 180.0
    with get_session() as db:
        invoice = db.get(Invoice, result["invoice_id"])
        assert invoice.discount == Decimal("20.00")


def test_new_customer_is_created_from_request(product):
    result = cashier.process_transaction(
        _request(
            customer_name="Walk-in Farmer",
            customer_phone="01111111111",
            items=[{"product_id": product.id, "quantity": 1, "price": "100"}],
        )
    )

    assert result["customer_name"] == "Walk-in Farmer"


def test_known_phone_without_customer_id_is_refused(customer, product):
    with pytest.raises(DuplicateError):
        cashier.process_transaction(
            _request(
                customer_name="Another Name",
                customer_phone="01012345678",
                items=[{"product_id": product.id, "quantity": 1, "price": "100"}],
            )
        )


def test_insufficient_stock_rolls_back(customer, product, other_product):
    with pytest.raises(InsufficientStockError):
        cashier.process_transaction(
            _request(
                customer_id=customer.id,
                items=[
                    {"product_id": product.id, "quantity": 2, "price": "100"},
                    {"product_id": other_product.id, "quantity": 11, "price": "150"},
                ],
            )
        )

    assert _stock(product.id) == 20
    with get_session() as db:
        assert db.query(Invoice).count() == 0


def test_empty_basket_and_unknown_values_are_refused(customer, product):
    with pytest.raises(ValidationError):
        cashier.process_transaction(_request(customer_id=customer.id, items=[]))
    with pytest.raises(ValidationError):
        _request(customer_id=customer.id, invoice_status="lost", items=[])
    with pytest.raises(NotFoundError):
        cashier.process_transaction(
            _request(customer_id=customer.id, items=[{"product_id": 999, "quantity": 1}])
        )


def test_duplicate_invoice_number_is_refused(sale, customer, product):
    with pytest.raises(DuplicateError):
        cashier.process_transaction(
            _request(
                customer_id=customer.id,
                invoice_number="0001",
                items=[{"product_id": product.id, "quantity": 1, "price": "100"}],
            )
        )


def test_return_against_original_invoice(sale, customer, product):
    result = cashier.process_transaction(
        _request(
            customer_id=customer.id,
            original_invoice_number="0001",
            items=[{"product_id": product.id, "quantity": -2, "price": "100"}],
        )
    )

    assert result["has_returns"] is True
    assert result["total_amount"] == -200.0
    assert result["remaining_amount"] == 0.0
    assert _stock(product.id) == 19
    with get_session() as db:
        invoice = db.get(Invoice, result["invoice_id"])
        assert invoice.type == "return"
        tracking = db.query(ReturnTracking).one()
        assert tracking.returned_quantity == 2
        assert tracking.original_invoice_number == "0001"


def test_return_cannot_exceed_original_quantity(sale, customer, product):
    cashier.process_transaction(
        _request(
            customer_id=customer.id,
            original_invoice_number="0001",
            items=[{"product_id": product.id, "quantity": -2, "price": "100"}],
        )
    )

    with pytest.raises(ValidationError):
        cashier.process_transaction(
            _request(
                customer_id=customer.id,
                original_invoice_number="0001",
                items=[{"product_id": product.id, "quantity": -2, "price": "100"}],
            )
        )
    with pytest.raises(NotFoundError):
        cashier.process_transaction(
            _request(
                customer_id=customer.id,
                original_invoice_number="9999",
                items=[{"product_id": product.id, "quantity": -1, "price": "100"}],
            )
        )


def test_mixed_basket_records_exchange(sale, customer, product, other_product):
    result = cashier.process_transaction(
        _request(
            customer_id=customer.id,
            original_invoice_number="0001",
            amount_paid="50",
            items=[
                {"product_id": product.id, "quantity": -1, "price": "100"},
                {"product_id": other_product.id, "quantity": 1, "price": "150"},
            ],
        )
    )

    assert result["has_exchange"] is True
    assert result["total_amount"] == 50.0
    assert _stock(product.id) == 18
    assert _stock(other_product.id) == 9
    with get_session() as db:
        exchange = db.query(ExchangeTracking).one()
        assert exchange.old_product_id == product.id
        assert exchange.new_product_id == other_product.id
        assert exchange.price_difference == Decimal("50.00")


def test_search_invoices_for_return_lists_available_items(sale, product):
    found = cashier.search_invoices_for_return("0001")

    assert len(found) == 1
    assert found[0]["items"][0]["available_for_return"] == 3
    with pytest.raises(ValidationError):
        cashier.search_invoices_for_return("  ")


@pytest.mark.usefixtures("login")
def test_process_transaction_endpoint(client, customer, product):
    resp = client.post(
        "/cashier/process_transaction",
        json={
            "customer_id": customer.id,
            "amount_paid": 100,
            "items": [{"product_id": product.id, "quantity": 1, "price": 100}],
        },
    )

    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["success"] is True
    with get_session() as db:
        invoice = db.get(Invoice, payload["invoice_id"])
        assert invoice.cashier_name == "tester"


@pytest.mark.usefixtures("login")
def test_process_transaction_endpoint_reports_errors(client, customer, product):
    resp = client.post(
        "/cashier/process_transaction",
        json={
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 50, "price": 100}],
        },
    )

    assert resp.status_code == 400
    assert "Insufficient stock" in resp.get_json()["message"]


@pytest.mark.usefixtures("login")
def test_cashier_lookup_endpoints(client, product, sale):
    assert client.get("/cashier/").status_code == 200
    resp = client.get(f"/cashier/product_by_qr?code={product.qr_code}")
    assert resp.get_json()["product"]["id"] == product.id
    assert client.get("/cashier/product_by_qr?code=nope").status_code == 404
    assert client.get("/cashier/generate_numbers").get_json()["invoice_number"] == "0002"
    assert client.get("/cashier/check_invoice_number?number=0001").get_json()["exists"] is True
    resp = client.get("/cashier/search_invoices_for_return?q=0001")
    assert resp.get_json()["invoices"][0]["invoice_number"] == "0001"


def test_repeated_return_lines_share_the_original_quantity(sale, customer, product):
    with pytest.raises(ValidationError):
        cashier.process_transaction(
            _request(
                customer_id=customer.id,
                original_invoice_number="0001",
                items=[
                    {"product_id": product.id, "quantity": -2, "price": "100"},
                    {"product_id": product.id, "quantity": -2, "price": "100"},
                ],
            )
        )

    assert _stock(product.id) == 17
    with get_session() as db:
        assert db.query(ReturnTracking).count() == 0

    cashier.process_transaction(
        _request(
            customer_id=customer.id,
            original_invoice_number="0001",
            items=[
                {"product_id": product.id, "quantity": -1, "price": "100"},
                {"product_id": product.id, "quantity": -2, "price": "100"},
            ],
        )
    )
    assert _stock(product.id) == 20


@pytest.mark.parametrize(
    "item, extra",
    [
        ({"price": "abc"}, {}),
        ({"price": "NaN"}, {}),
        ({"price": "-100"}, {}),
        ({"price": "100", "discount": "150"}, {}),
        ({"price": "100", "discount": "-5"}, {}),
        ({"price": "100"}, {"amount_paid": "-10"}),
        ({"price": "100"}, {"shipping_cost": "free"}),
    ],
)
def test_malformed_amounts_are_refused(customer, product, item, extra):
    with pytest.raises(ValidationError):
        _request(
            customer_id=customer.id,
            items=[dict(item, product_id=product.id, quantity=1)],
            **extra,
        )


@pytest.mark.usefixtures("login")
def test_process_transaction_endpoint_rejects_bad_price(client, customer, product):
    resp = client.post(
        "/cashier/process_transaction",
        json={
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 1, "price": "abc"}],
        },
    )

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Price must be a number"
    assert _stock(product.id) == 20


def test_shipping_cost_stays_out_of_totals(customer, product):
    result = cashier.process_transaction(
        _request(
            customer_id=customer.id,
            amount_paid="100",
            shipping_cost="30",
            shipping_type="cairo",
            items=[{"product_id": product.id, "quantity": 2, "price": "100"}],
        )
    )

    with get_session() as db:
        invoice = db.get(Invoice, result["invoice_id"])
        assert invoice.total_amount == Decimal("200.00")
        assert invoice.remaining_amount == Decimal("100.00")
        assert invoice.shipping_cost == Decimal("30.00")
        transactions = db.query(CustomerTransaction).all()
        assert transactions
        assert all(t.shipping_cost == Decimal("0.00") for t in transactions)


def test_return_invoice_drops_shipping_cost(sale, customer, product):
    result = cashier.process_transaction(
        _request(
            customer_id=customer.id,
            original_invoice_number="0001",
            shipping_cost="30",
            items=[{"product_id": product.id, "quantity": -1, "price": "100"}],
        )
    )

    with get_session() as db:
        invoice = db.get(Invoice, result["invoice_id"])
        assert invoice.type == "return"
        assert invoice.total_amount == Decimal("-100.00")
        assert invoice.shipping_cost == Decimal("0.00")
