from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from pesticide_shop.domain import customers, daily_inventory, financial


def test_sale_updates_today(sale, product):
    inventory = daily_inventory.get_by_date(date.today())

    assert inventory.status == "active"
    assert inventory.total_sales == Decimal("300.00")
    assert inventory.total_cost == Decimal("180.00")
    assert inventory.net_profit == Decimal("120.00")
    assert inventory.total_payments == Decimal("200.00")
    assert inventory.total_debts == Decimal("100.00")
    assert inventory.transactions_count == 1
    assert inventory.total_quantity_sold == 3

    summary = inventory.product_summaries[0]
    assert summary.starting_quantity == 20
    assert summary.ending_quantity == 17


def test_live_snapshot_matches_stored_figures(sale):
    snap = daily_inventory.live_snapshot(date.today())

    assert snap.total_sales == Decimal("300.00")
    assert snap.net_profit == Decimal("120.00")
    assert snap.profit_margin == Decimal("40.00")
    assert snap.average_transaction_value == Decimal("300.00")
    data = snap.to_dict()
    assert data["total_payments"] == 200.0
    assert data["customers_count"] == 1


def test_profit_skips_products_without_carton_price(customer, category):
    from pesticide_shop.domain import catalog

    no_cost = catalog.create_product("Sticky Trap", category.id, "30", quantity=5)
    customers.add_transaction(customer.id, no_cost.id, 2, "60", "60")

    snap = daily_inventory.live_snapshot(date.today())
    assert snap.total_sales == Decimal("60.00")
    assert snap.net_profit == Decimal("0.00")


def test_snapshot_separates_returns_and_exchanges(customer, product):
    customers.add_transaction(customer.id, product.id, 5, "500", "500")
    customers.add_transaction(customer.id, product.id, -1, "100")

    snap = daily_inventory.live_snapshot(date.today())
    assert snap.returns_count == 1
    assert snap.returns_value == Decimal("100.00")
    assert snap.exchanges_count == 0
    assert snap.total_sales == Decimal("400.00")


def test_closed_day_ignores_new_transactions(sale, customer, product):
    today = date.today()
    closed = daily_inventory.close_day(today, "tester")
    assert closed.status == "closed"
    assert closed.responsible_user == "tester"
    assert daily_inventory.is_day_closed(today)

    customers.add_transaction(customer.id, product.id, 1, "100", "100")
    assert daily_inventory.get_by_date(today).total_sales == Decimal("300.00")

    reopened = daily_inventory.reopen_day(today, "tester")
    assert reopened.status == "active"
    assert daily_inventory.recalculate(today).total_sales == Decimal("400.00")


def test_reopen_missing_day_returns_none():
    assert daily_inventory.reopen_day(date(2000, 1, 1)) is None
    assert not daily_inventory.is_day_closed(date(2000, 1, 1))


def test_recalculate_rebuilds_from_transactions(customer, product):
    yesterday = datetime.now() - timedelta(days=1)
    customers.add_transaction(customer.id, product.id, 2, "200", "50", when=yesterday)

    inventory = daily_inventory.recalculate(yesterday.date())
    assert inventory.total_sales == Decimal("200.00")
    assert inventory.total_payments == Decimal("50.00")
    assert len(inventory.sale_transactions) == 1

    assert daily_inventory.recalculate_all() == 1


def test_compare_and_calendar(customer, product):
    today = datetime.now()
    customers.add_transaction(customer.id, product.id, 1, "100", when=today - timedelta(days=1))
    customers.add_transaction(customer.id, product.id, 3, "300", when=today)

    result = daily_inventory.compare(today.date() - timedelta(days=1), today.date())
    assert len(result["days"]) == 2
    assert result["totals"]["total_sales"] == Decimal("400.00")
    assert result["best_day"].inventory_date == today.date()

    days = daily_inventory.calendar(today.year, today.month)
    assert days[today.day - 1]["inventory"] is not None

    data = daily_inventory.summary_data(today.date() - timedelta(days=1), today.date())
    assert [row["total_sales"] for row in data] == [100.0, 300.0]


def test_top_products_and_customers(sale, customer, product, other_product):
    customers.add_transaction(customer.id, other_product.id, 5, "750")

    top = daily_inventory.top_products(date.today())
    assert [s.product_id for s in top] == [other_product.id, product.id]
    assert daily_inventory.top_customers(date.today())[0].customer_id == customer.id


def test_financial_return_adjusts_today(sale, customer, product):
    from pesticide_shop.db import get_session
    from pesticide_shop.models import Product

    with get_session() as db:
        stored = db.get(Product, product.id)
        financial.apply_return(db, stored, customer.id, 1, "100", "RTN-0001", "tester")

    inventory = daily_inventory.get_by_date(date.today())
    assert inventory.total_sales == Decimal("200.00")
    assert inventory.net_profit == Decimal("80.00")
    assert "RTN-0001" in inventory.notes


def test_financial_return_refuses_closed_day(sale, customer, product):
    from pesticide_shop.db import get_session
    from pesticide_shop.errors import DayClosedError
    from pesticide_shop.models import Product

    daily_inventory.close_day(date.today(), "tester")

    with pytest.raises(DayClosedError):
        with get_session() as db:
            stored = db.get(Product, product.id)
            financial.apply_return(db, stored, customer.id, 1, "100", "RTN-0001", "tester")

    inventory = daily_inventory.get_by_date(date.today())
    assert inventory.total_sales == Decimal("300.00")
    assert not inventory.notes or "RTN-0001" not in inventory.notes


def test_recalculate_profits_counts_stored_days(sale):
    today = date.today()
    assert financial.recalculate_profits(today - timedelta(days=3), today) == 1


@pytest.mark.usefixtures("login")
def test_daily_inventory_pages(client, sale):
    today = date.today().isoformat()
    assert client.get("/daily_inventory/").status_code == 200
    assert client.get(f"/daily_inventory/{today}").status_code == 200
    assert client.get("/daily_inventory/calendar").status_code == 200
    assert client.get("/daily_inventory/compare").status_code == 200
    resp = client.get(f"/daily_inventory/api/{today}/snapshot")
    assert resp.get_json()["total_sales"] == 300.0
    resp = client.get(f"/daily_inventory/api/{today}/transactions")
    assert resp.get_json()[0]["quantity"] == 3


@pytest.mark.usefixtures("login")
def test_close_and_reopen_views(client, sale):
    today = date.today()
    resp = client.post(f"/daily_inventory/{today.isoformat()}/close")
    assert resp.status_code == 302
    assert daily_inventory.is_day_closed(today)

    client.post(f"/daily_inventory/{today.isoformat()}/reopen")
    assert not daily_inventory.is_day_closed(today)
