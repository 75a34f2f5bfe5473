"""Excel workbooks built with pandas on top of openpyxl."""

from __future__ import annotations

import logging
from datetime import date
from io import BytesIO
from typing import Dict, List

import pandas as pd

from ..constants import INVENTORY_STATUSES, INVOICE_STATUSES, INVOICE_TYPES
from ..models import CustomerTransaction
from . import catalog, daily_inventory, invoices, reports
from .daily_inventory import is_exchange_note

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _autosize(worksheet) -> None:
    for column_cells in worksheet.columns:
        length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column_cells)
        worksheet.column_dimensions[column_cells[0].column_letter].width = min(length + 2, 50)


def write_workbook(sheets: Dict[str, pd.DataFrame]) -> BytesIO:
    """Write each frame to its own sheet and return the rewound buffer."""
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        for name, frame in sheets.items():
            frame.to_excel(writer, sheet_name=name[:31], index=False)
            _autosize(writer.sheets[name[:31]])
    output.seek(0)
    return output


def _transaction_rows(transactions: List[CustomerTransaction]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Time": txn.date.strftime("%H:%M:%S"),
                "Customer": txn.customer.name if txn.customer else "",
                "Product": txn.product.name if txn.product else "",
                "Quantity": txn.quantity,
                "Unit price": float(txn.price),
                "Discount": float(txn.discount),
                "Total": float(txn.total_price),
                "Paid": float(txn.amount_paid),
                "Remaining": float(txn.remaining),
                "Notes": txn.notes or "",
            }
            for txn in transactions
        ],
        columns=[
            "Time",
            "Customer",
            "Product",
            "Quantity",
            "Unit price",
            "Discount",
            "Total",
            "Paid",
            "Remaining",
            "Notes",
        ],
    )


def _summary_frame(day: date) -> pd.DataFrame:
    inventory = daily_inventory.get_by_date(day)
    snap = daily_inventory.live_snapshot(day)
    rows = [
        ("Date", day.isoformat()),
        (
            "Status",
            INVENTORY_STATUSES.get(inventory.status, inventory.status) if inventory else "Not created",
        ),
        ("Total sales", float(snap.total_sales)),
        ("Total cost", float(snap.total_cost)),
        ("Net profit", float(snap.net_profit)),
        ("Profit margin %", float(snap.profit_margin)),
        ("Discounts", float(snap.total_discounts)),
        ("Payments", float(snap.total_payments)),
        ("Debts", float(snap.total_debts)),
        ("Transactions", snap.transactions_count),
        ("Customers", snap.customers_count),
        ("Products sold", snap.products_sold_count),
        ("Quantity sold", snap.total_quantity_sold),
    ]
    if inventory is not None and inventory.responsible_user:
        rows.append(("Closed by", inventory.responsible_user))
    return pd.DataFrame(rows, columns=["Item", "Value"])


def _product_frame(day: date) -> pd.DataFrame:
    inventory = daily_inventory.get_by_date(day)
    summaries = inventory.product_summaries if inventory else []
    return pd.DataFrame(
        [
            {
                "Product": s.product.name if s.product else "",
                "Quantity sold": s.total_quantity_sold,
                "Sales value": float(s.total_sales_value),
                "Discounts": float(s.total_discounts),
                "Net sales": float(s.net_sales_value),
                "Cost": float(s.total_cost_value),
                "Profit": float(s.net_profit),
                "Start quantity": s.starting_quantity,
                "End quantity": s.ending_quantity,
            }
            for s in summaries
        ],
        columns=[
            "Product",
            "Quantity sold",
            "Sales value",
            "Discounts",
            "Net sales",
            "Cost",
            "Profit",
            "Start quantity",
            "End quantity",
        ],
    )


def _customer_frame(day: date) -> pd.DataFrame:
    inventory = daily_inventory.get_by_date(day)
    summaries = inventory.customer_summaries if inventory else []
    return pd.DataFrame(
        [
            {
                "Customer": s.customer.name if s.customer else "",
                "Transactions": s.transactions_count,
                "Purchases": float(s.total_purchases),
                "Payments": float(s.total_payments),
                "Debt": float(s.debt_amount),
                "Last transaction": s.last_transaction_time.strftime("%H:%M:%S")
                if s.last_transaction_time
                else "",
            }
            for s in summaries
        ],
        columns=["Customer", "Transactions", "Purchases", "Payments", "Debt", "Last transaction"],
    )


def daily_workbook(day: date) -> BytesIO:
    transactions = daily_inventory.transactions_for_day(day)
    return write_workbook(
        {
            "Summary": _summary_frame(day),
            "Transactions": _transaction_rows(transactions),
            "Products": _product_frame(day),
            "Customers": _customer_frame(day),
        }
    )


def detailed_daily_workbook(day: date) -> BytesIO:
    """Daily workbook plus returns, exchanges and a financial breakdown."""
    transactions = daily_inventory.transactions_for_day(day)
    snap = daily_inventory.live_snapshot(day)
    negatives = [t for t in transactions if t.quantity < 0]
    returns = [t for t in negatives if not is_exchange_note(t.notes)]
    exchanges = [t for t in negatives if is_exchange_note(t.notes)]
    gross = sum(float(t.total_price) for t in transactions if t.quantity > 0)
    financial = pd.DataFrame(
        [
            ("Gross sales", gross),
            ("Returns", float(snap.returns_value)),
            ("Exchanges", float(snap.exchanges_value)),
            ("Net sales", float(snap.total_sales)),
            ("Discounts", float(snap.total_discounts)),
            ("Cost", float(snap.total_cost)),
            ("Net profit", float(snap.net_profit)),
            ("Payments", float(snap.total_payments)),
            ("Outstanding", float(snap.total_debts)),
            ("Average transaction", float(snap.average_transaction_value)),
        ],
        columns=["Item", "Value"],
    )
    return write_workbook(
        {
            "Summary": _summary_frame(day),
            "Transactions": _transaction_rows(transactions),
            "Products": _product_frame(day),
            "Customers": _customer_frame(day),
            "Returns": _transaction_rows(returns),
            "Exchanges": _transaction_rows(exchanges),
            "Financial summary": financial,
        }
    )


def invoices_workbook(day: date) -> BytesIO:
    day_invoices = invoices.invoices_for_day(day)
    if not day_invoices:
        return write_workbook(
            {
                "No invoices": pd.DataFrame(
                    [{"Message": f"No invoices on {day.isoformat()}"}]
                )
            }
        )
    header_rows = []
    item_rows = []
    per_customer: Dict[str, Dict[str, float]] = {}
    for invoice in day_invoices:
        customer = invoice.customer.name if invoice.customer else ""
        header_rows.append(
            {
                "Invoice": invoice.invoice_number,
                "Order": invoice.order_number,
                "Time": invoice.invoice_date.strftime("%H:%M"),
                "Customer": customer,
                "Phone": invoice.customer.phone_number if invoice.customer else "",
                "Type": INVOICE_TYPES.get(invoice.type, invoice.type),
                "Status": INVOICE_STATUSES.get(invoice.status, invoice.status),
                "Total": float(invoice.total_amount),
                "Discount": float(invoice.discount),
                "Shipping": float(invoice.shipping_cost),
                "Paid": float(invoice.amount_paid),
                "Remaining": float(invoice.remaining_amount),
                "Payment method": invoice.payment_method or "",
                "Cashier": invoice.cashier_name or "",
            }
        )
        for item in invoice.items:
            item_rows.append(
                {
                    "Invoice": invoice.invoice_number,
                    "Product": item.product.name if item.product else "",
                    "Color": item.color or "",
                    "Size": item.size or "",
                    "Quantity": item.quantity,
                    "Unit price": float(item.unit_price),
                    "Discount": float(item.discount),
                    "Total": float(item.total_price),
                }
            )
        entry = per_customer.setdefault(customer, {"Invoices": 0, "Total": 0.0, "Paid": 0.0, "Remaining": 0.0})
        entry["Invoices"] += 1
        entry["Total"] += float(invoice.total_amount)
        entry["Paid"] += float(invoice.amount_paid)
        entry["Remaining"] += float(invoice.remaining_amount)
    customers = pd.DataFrame(
        [{"Customer": name, **values} for name, values in per_customer.items()]
    )
    return write_workbook(
        {
            "Invoices": pd.DataFrame(header_rows),
            "Items": pd.DataFrame(item_rows),
            "Customers": customers,
        }
    )


def _annual_frame(summary: reports.AnnualSummary) -> pd.DataFrame:
    figures = summary.figures
    return pd.DataFrame(
        [
            ("Gross sales", float(figures.gross_sales)),
            ("Returns", float(figures.returns_value)),
            ("Regular returns", float(figures.regular_returns_value)),
            ("Exchanges", float(figures.exchanges_value)),
            ("Net sales", float(figures.net_sales)),
            ("Discounts", float(figures.total_discounts)),
            ("Cost", float(figures.total_cost)),
            ("Net profit", float(figures.net_profit)),
            ("Profit margin %", float(figures.profit_margin)),
            ("Outstanding", float(figures.outstanding)),
            ("Quantity sold", figures.quantity_sold),
            ("Quantity returned", figures.quantity_returned),
            ("Inventory value", float(summary.inventory_value)),
            ("Units in stock", summary.inventory_quantity),
            ("Products", summary.products_count),
        ],
        columns=["Item", "Value"],
    )


def annual_workbook() -> BytesIO:
    summary = reports.annual_summary(page=1, page_size=1)
    return write_workbook(
        {"Annual summary": _annual_frame(summary), "Inventory": catalog.export_frame()}
    )


def annual_detailed_workbook() -> BytesIO:
    summary = reports.annual_summary(page=1, page_size=1)
    products = pd.DataFrame(
        [
            {
                "Product": row["product"],
                "Quantity sold": row["quantity_sold"],
                "Quantity returned": row["quantity_returned"],
                "Sales": float(row["sales"]),
                "Returns": float(row["returns"]),
                "Cost": float(row["cost"]),
                "Profit": float(row["profit"]),
                "Stock": row["stock"],
            }
            for row in reports.product_breakdown()
        ],
        columns=[
            "Product",
            "Quantity sold",
            "Quantity returned",
            "Sales",
            "Returns",
            "Cost",
            "Profit",
            "Stock",
        ],
    )
    return write_workbook(
        {
            "Annual summary": _annual_frame(summary),
            "Products": products,
            "Inventory": catalog.export_frame(),
        }
    )


def products_workbook() -> BytesIO:
    return write_workbook({"Products": catalog.export_frame()})


__all__ = [
    "XLSX_MIMETYPE",
    "annual_detailed_workbook",
    "annual_workbook",
    "daily_workbook",
    "detailed_daily_workbook",
    "invoices_workbook",
    "products_workbook",
    "write_workbook",
]
