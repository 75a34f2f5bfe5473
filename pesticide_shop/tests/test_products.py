from decimal import Decimal

import pandas as pd
import pytest

from pesticide_shop.db import get_session
from pesticide_shop.domain import catalog
from pesticide_shop.errors import NotFoundError, ValidationError
from pesticide_shop.models import Product


def test_create_product_assigns_code_and_cost(product):
    assert product.qr_code == f"P{product.id:06d}"
    assert product.cost_price == Decimal("3.00")
    assert product.price == Decimal("100.00")


def test_create_product_keeps_given_qr_code(category):
    created = catalog.create_product("Weed Killer", category.id, "75", qr_code="WK-1")
    assert created.qr_code == "WK-1"
    assert catalog.find_by_qr("WK-1")["name"] == "Weed Killer"


def test_create_product_validates_fields(category):
    with pytest.raises(ValidationError):
        catalog.create_product("", category.id, "10")
    with pytest.raises(ValidationError):
        catalog.create_product("Bad size", category.id, "10", size="HUGE")
    with pytest.raises(ValidationError):
        catalog.create_product("Negative", category.id, "10", quantity=-1)
    with pytest.raises(NotFoundError):
        catalog.create_product("Orphan", 999, "10")


def test_find_by_qr_falls_back_to_id(product):
    found = catalog.find_by_qr(str(product.id))
    assert found["id"] == product.id
    assert found["category"] == "Insecticides"
    assert catalog.find_by_qr("missing") is None


def test_search_hides_out_of_stock_by_default(category, product):
    catalog.create_product("Bug Trap", category.id, "30", quantity=0)

    names = [p["name"] for p in catalog.search_products("Bug")]
    assert names == ["Bug Spray"]
    names = [p["name"] for p in catalog.search_products("Bug", include_out_of_stock=True)]
    assert names == ["Bug Spray", "Bug Trap"]


def test_update_product_recomputes_cost(product):
    catalog.update_product(product.id, quantity=10, carton_price="50")

    with get_session() as db:
        stored = db.get(Product, product.id)
        assert stored.quantity == 10
        assert stored.cost_price == Decimal("5.00")


def test_get_quantity_reports_stock_status(category):
    low = catalog.create_product("Gel", category.id, "20", quantity=3)
    empty = catalog.create_product("Fogger", category.id, "20", quantity=0)

    assert catalog.get_quantity(low.id)["stock_status"] == "low"
    assert catalog.get_quantity(empty.id)["stock_label"] == "Out of stock"


def test_low_stock_count_uses_threshold(category):
    catalog.create_product("Gel", category.id, "20", quantity=5)
    catalog.create_product("Fogger", category.id, "20", quantity=6)

    assert catalog.low_stock_count() == 1


def test_delete_category_in_use_is_refused(category, product):
    with pytest.raises(ValidationError):
        catalog.delete_category(category.id)


def test_delete_product_removes_transactions(product, sale):
    result = catalog.delete_product(product.id)

    assert result == {"name": "Bug Spray", "transactions": 1}
    assert catalog.get_product(product.id) is None


def test_popular_products_ranks_invoiced_quantity(product, other_product, sale):
    popular = catalog.popular_products()
    assert popular[0]["id"] == product.id
    assert popular[0]["total_sold"] == 3


def test_import_from_dataframe_creates_and_updates(product):
    df = pd.DataFrame(
        [
            {
                "Name": "Bug Spray XL",
                "Category": "Insecticides",
                "Color": "",
                "Size": "",
                "Quantity": 8,
                "Price": 120,
                "Carton price": 70,
                "QR code": product.qr_code,
            },
            {
                "Name": "Copper Fungicide",
                "Category": "Fungicides",
                "Color": "Blue",
                "Size": "",
                "Quantity": 12,
                "Price": 55,
                "Carton price": None,
                "QR code": "",
            },
        ]
    )

    result = catalog.import_from_dataframe(df)

    assert result == {"created": 1, "updated": 1}
    updated = catalog.get_product(product.id)
    assert updated.name == "Bug Spray XL"
    assert updated.quantity == 8
    names = [c.name for c in catalog.list_categories()]
    assert "Fungicides" in names


@pytest.mark.usefixtures("login")
def test_add_product_view(client, category):
    resp = client.post(
        "/products/add",
        data={
            "name": "Snail Pellets",
            "category_id": str(category.id),
            "quantity": "7",
            "price": "45",
            "carton_price": "",
            "color": "",
            "size": "",
            "qr_code": "",
            "notes": "",
        },
    )

    assert resp.status_code == 302
    names = [p.name for p in catalog.list_products()]
    assert names == ["Snail Pellets"]


@pytest.mark.usefixtures("login")
def test_product_pages_render(client, product):
    assert client.get("/products").status_code == 200
    assert client.get(f"/products/{product.id}").status_code == 200
    assert client.get("/products/999").status_code == 404
    resp = client.get(f"/products/{product.id}/quantity")
    assert resp.get_json()["quantity"] == 20


@pytest.mark.usefixtures("login")
def test_categories_api(client, category):
    assert client.get("/categories").status_code == 200
    resp = client.get("/api/categories")
    assert resp.status_code == 200
