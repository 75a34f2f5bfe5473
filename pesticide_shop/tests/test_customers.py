from decimal import Decimal

import pytest

from pesticide_shop.db import get_session
from pesticide_shop.domain import customers
from pesticide_shop.errors import DuplicateError, InsufficientStockError, ValidationError
from pesticide_shop.models import Product


def _stock(product_id):
    with get_session() as db:
        return db.get(Product, product_id).quantity


def test_create_customer_requires_name_and_phone():
    with pytest.raises(ValidationError):
        customers.create_customer(name="No Phone", phone_number="")


def test_duplicate_phone_is_refused(customer):
    with pytest.raises(DuplicateError):
        customers.create_customer(name="Someone Else", phone_number="01012345678")


def test_find_by_phone_matches_additional_phone(customer):
    customers.update_customer(
        customer.id, name="Ahmed Ali", phone_number="01012345678", additional_phone="01199999999"
    )

    assert customers.find_by_phone("01199999999").id == customer.id
    assert customers.find_by_phone("") is None


def test_list_customers_filters_by_search_type(customer):
    customers.create_customer(name="Mona Hassan", phone_number="01200000000", governorate="Giza")

    by_name = customers.list_customers("Mona", "name")
    assert [row["customer"].name for row in by_name] == ["Mona Hassan"]
    by_address = customers.list_customers("Giza", "address")
    assert len(by_address) == 1
    assert customers.list_customers("0101", "phone")[0]["customer"].id == customer.id


def test_add_sale_transaction_moves_stock_and_balance(customer, product):
    txn = customers.add_transaction(customer.id, product.id, 4, "400", "150")

    assert txn.price == Decimal("100.00")
    assert _stock(product.id) == 16
    balance = customers.customer_details(customer.id)["balance"]
    assert balance.total_purchases == Decimal("400.00")
    assert balance.total_paid == Decimal("150.00")
    assert balance.remaining == Decimal("250.00")
    assert balance.status == "stable"


def test_manual_return_is_stored_negative(customer, product):
    txn = customers.add_transaction(customer.id, product.id, -2, "200")

    assert txn.total_price == Decimal("-200.00")
    assert _stock(product.id) == 22


def test_add_transaction_validates_amounts(customer, product):
    with pytest.raises(ValidationError):
        customers.add_transaction(customer.id, product.id, 0, "100")
    with pytest.raises(ValidationError):
        customers.add_transaction(customer.id, product.id, 1, "0")
    with pytest.raises(ValidationError):
        customers.add_transaction(customer.id, product.id, 1, "100", "150")
    with pytest.raises(InsufficientStockError):
        customers.add_transaction(customer.id, product.id, 21, "2100")
    assert _stock(product.id) == 20


def test_edit_transaction_adjusts_stock_by_difference(customer, product):
    txn = customers.add_transaction(customer.id, product.id, 2, "200")

    customers.edit_transaction(txn.id, 5, "500", "500")

    assert _stock(product.id) == 15
    balance = customers.customer_details(customer.id)["balance"]
    assert balance.status == "paid"


def test_delete_transaction_restores_stock(customer, product):
    txn = customers.add_transaction(customer.id, product.id, 3, "300")

    assert customers.delete_transaction(txn.id) == customer.id
    assert _stock(product.id) == 20


def test_delete_all_transactions(customer, product):
    customers.add_transaction(customer.id, product.id, 1, "100")
    customers.add_transaction(customer.id, product.id, 1, "100")

    assert customers.delete_all_transactions(customer.id) == 2
    assert customers.customer_details(customer.id)["transactions"] == []


def test_delete_customer_removes_invoices(customer, sale):
    assert customers.delete_customer(customer.id) == "Ahmed Ali"
    assert customers.get_customer(customer.id) is None


@pytest.mark.usefixtures("login")
def test_customer_pages(client, customer, sale):
    assert client.get("/customers").status_code == 200
    assert client.get(f"/customers/{customer.id}").status_code == 200
    assert client.get("/customers/999").status_code == 404

    resp = client.get("/api/customers/by_phone?phone=01012345678")
    assert resp.status_code == 200


@pytest.mark.usefixtures("login")
def test_add_customer_view(client):
    resp = client.post(
        "/customers/add",
        data={"name": "Sara Nabil", "phone_number": "01555555555"},
    )

    assert resp.status_code == 302
    assert customers.find_by_phone("01555555555").name == "Sara Nabil"
