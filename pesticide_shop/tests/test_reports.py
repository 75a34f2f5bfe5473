from decimal import Decimal

import pytest

from pesticide_shop.domain import reports, returns


def test_annual_summary_nets_returns(sale, product):
    returns.create_return("0001", product.id, 1)

    summary = reports.annual_summary(page=1, page_size=10)
    figures = summary.figures

    assert figures.gross_sales == Decimal("300.00")
    assert figures.returns_value == Decimal("100.00")
    assert figures.regular_returns_value == Decimal("100.00")
    assert figures.net_sales == Decimal("200.00")
    assert figures.total_cost == Decimal("240.00")
    assert figures.net_profit == Decimal("80.00")
    assert figures.profit_margin == Decimal("40.00")
    assert figures.outstanding == Decimal("100.00")
    assert figures.quantity_sold == 3
    assert figures.quantity_returned == 1
    assert summary.inventory_value == Decimal("1800.00")
    assert summary.inventory_quantity == 18
    assert summary.first_transaction is not None


def test_annual_summary_pages_products(category):
    from pesticide_shop.domain import catalog

    for index in range(3):
        catalog.create_product(f"Product {index}", category.id, "10", quantity=1)

    summary = reports.annual_summary(page=2, page_size=2)
    assert summary.products_count == 3
    assert summary.inventory.pages == 2
    assert [p.name for p in summary.inventory.products] == ["Product 2"]
    assert summary.inventory.has_prev


def test_product_breakdown(sale, product, other_product, customer):
    from pesticide_shop.domain import customers

    customers.add_transaction(customer.id, other_product.id, 4, "600")

    rows = reports.product_breakdown()
    assert [r["product"] for r in rows] == ["Ant Powder", "Bug Spray"]
    assert rows[0]["profit"] == Decimal("240.00")
    assert rows[1]["quantity_sold"] == 3


def test_dashboard_and_home_stats(sale):
    stats = reports.dashboard_stats()
    assert stats.invoices_count == 1
    assert stats.customers_count == 1
    assert stats.activities

    home = reports.home_stats()
    assert home["total_sales"] == Decimal("300.00")
    assert home["orders"] == 1


@pytest.mark.usefixtures("login")
def test_report_pages(client, sale):
    assert client.get("/").status_code == 200
    assert client.get("/annual_inventory").status_code == 200
    assert client.get("/dashboard").status_code == 200
    resp = client.get("/api/dashboard")
    data = resp.get_json()
    assert data["gross_sales"] == 300.0
    assert data["invoices_count"] == 1
