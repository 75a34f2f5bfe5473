from datetime import date
from io import BytesIO

import pandas as pd
import pytest

from pesticide_shop.domain import catalog, exports


def test_write_workbook_trims_sheet_names():
    buffer = exports.write_workbook(
        {"A sheet name well over thirty-one characters": pd.DataFrame([{"a": 1}])}
    )

    sheets = pd.read_excel(buffer, sheet_name=None)
    assert list(sheets) == ["A sheet name well over thirty-o"]


def test_daily_workbook_sheets(sale):
    sheets = pd.read_excel(exports.daily_workbook(date.today()), sheet_name=None)

    assert list(sheets) == ["Summary", "Transactions", "Products", "Customers"]
    summary = dict(zip(sheets["Summary"]["Item"], sheets["Summary"]["Value"]))
    assert float(summary["Total sales"]) == 300.0
    assert sheets["Transactions"]["Quantity"].tolist() == [3]


def test_detailed_workbook_has_returns_and_exchanges(sale):
    sheets = pd.read_excel(
        exports.detailed_daily_workbook(date.today()), sheet_name=None
    )

    assert "Returns" in sheets
    assert "Exchanges" in sheets
    assert "Financial summary" in sheets


def test_invoices_workbook(sale):
    sheets = pd.read_excel(exports.invoices_workbook(date.today()), sheet_name=None)

    assert sheets["Invoices"]["Invoice"].astype(str).str.zfill(4).tolist() == ["0001"]
    assert sheets["Items"]["Quantity"].tolist() == [3]


def test_invoices_workbook_without_invoices(app):
    sheets = pd.read_excel(exports.invoices_workbook(date(2000, 1, 1)), sheet_name=None)

    assert list(sheets) == ["No invoices"]


def test_products_workbook_round_trips_through_import(product):
    frame = pd.read_excel(exports.products_workbook())
    assert frame.columns.tolist() == catalog.EXPORT_COLUMNS

    frame.loc[0, "Quantity"] = 42
    result = catalog.import_from_dataframe(frame)

    assert result == {"created": 0, "updated": 1}
    assert catalog.get_product(product.id).quantity == 42


def test_annual_workbooks(sale):
    assert list(pd.read_excel(exports.annual_workbook(), sheet_name=None)) == [
        "Annual summary",
        "Inventory",
    ]
    sheets = pd.read_excel(exports.annual_detailed_workbook(), sheet_name=None)
    assert sheets["Products"]["Product"].tolist() == ["Bug Spray"]


@pytest.mark.usefixtures("login")
def test_export_routes(client, sale):
    today = date.today().isoformat()
    for url in (
        "/products/export",
        f"/daily_inventory/{today}/export",
        f"/daily_inventory/{today}/export_detailed",
        f"/daily_inventory/{today}/export_invoices",
        "/annual_inventory/export",
        "/annual_inventory/export_detailed",
    ):
        resp = client.get(url)
        assert resp.status_code == 200
        assert resp.mimetype == exports.XLSX_MIMETYPE


@pytest.mark.usefixtures("login")
def test_import_route(client, category):
    frame = pd.DataFrame(
        [{"Name": "Neem Oil", "Category": "Organics", "Quantity": 4, "Price": 80}]
    )
    buffer = BytesIO()
    frame.to_excel(buffer, index=False)
    buffer.seek(0)

    resp = client.post(
        "/products/import",
        data={"file": (buffer, "products.xlsx")},
        content_type="multipart/form-data",
    )

    assert resp.status_code == 302
    assert [p.name for p in catalog.list_products()] == ["Neem Oil"]
