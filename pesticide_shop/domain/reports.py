"""Whole-history figures for the annual inventory page and the dashboard."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from ..db import get_session, to_decimal
from ..models import Customer, CustomerTransaction, Invoice, Product
from .activity import recent_activities
from .daily_inventory import is_exchange_note

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _dec(value) -> Decimal:
    return Decimal(value or 0)


def _margin(profit: Decimal, sales: Decimal) -> Decimal:
    if not sales:
        return ZERO
    return to_decimal(profit / sales * 100)


@dataclass
class SalesFigures:
    """Totals computed over a set of customer transactions."""

    gross_sales: Decimal = ZERO
    returns_value: Decimal = ZERO
    regular_returns_value: Decimal = ZERO
    exchanges_value: Decimal = ZERO
    total_discounts: Decimal = ZERO
    total_cost: Decimal = ZERO
    net_profit: Decimal = ZERO
    outstanding: Decimal = ZERO
    quantity_sold: int = 0
    quantity_returned: int = 0
    transactions_count: int = 0
    sales_count: int = 0
    returns_count: int = 0

    @property
    def net_sales(self) -> Decimal:
        return to_decimal(self.gross_sales - self.returns_value)

    @property
    def profit_margin(self) -> Decimal:
        return _margin(self.net_profit, self.net_sales)

    @property
    def average_selling_price(self) -> Decimal:
        if not self.quantity_sold:
            return ZERO
        return to_decimal(self.gross_sales / self.quantity_sold)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            name: float(getattr(self, name)) if isinstance(getattr(self, name), Decimal) else getattr(self, name)
            for name in self.__dataclass_fields__
        }
        data["net_sales"] = float(self.net_sales)
        data["profit_margin"] = float(self.profit_margin)
        data["average_selling_price"] = float(self.average_selling_price)
        return data


def sales_figures(transactions) -> SalesFigures:
    figures = SalesFigures()
    for txn in transactions:
        qty = txn.quantity
        total = _dec(txn.total_price)
        carton = txn.product.unit_cost if txn.product is not None else ZERO
        figures.transactions_count += 1
        figures.total_cost += carton * abs(qty)
        if carton > 0:
            figures.net_profit += (_dec(txn.price) - carton) * qty
        if qty > 0:
            figures.sales_count += 1
            figures.gross_sales += total
            figures.quantity_sold += qty
            figures.total_discounts += _dec(txn.discount) * qty
            figures.outstanding += total - _dec(txn.amount_paid)
        elif qty < 0:
            figures.returns_count += 1
            figures.quantity_returned += abs(qty)
            figures.returns_value += abs(total)
            if is_exchange_note(txn.notes):
                figures.exchanges_value += abs(total)
            else:
                figures.regular_returns_value += abs(total)
    for name in (
        "gross_sales",
        "returns_value",
        "regular_returns_value",
        "exchanges_value",
        "total_discounts",
        "total_cost",
        "net_profit",
        "outstanding",
    ):
        setattr(figures, name, to_decimal(getattr(figures, name)))
    return figures


def _all_transactions(db) -> List[CustomerTransaction]:
    return (
        db.query(CustomerTransaction)
        .options(joinedload(CustomerTransaction.product))
        .order_by(CustomerTransaction.date.asc(), CustomerTransaction.id.asc())
        .all()
    )


@dataclass
class InventoryPage:
    products: List[Product]
    page: int
    page_size: int
    total: int

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size)) if self.page_size else 1

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


@dataclass
class AnnualSummary:
    figures: SalesFigures
    inventory_value: Decimal
    inventory_quantity: int
    products_count: int
    inventory: InventoryPage
    first_transaction: Any = None
    last_transaction: Any = None


def _inventory_totals(db):
    value, quantity, count = db.query(
        func.coalesce(func.sum(Product.price * Product.quantity), 0),
        func.coalesce(func.sum(Product.quantity), 0),
        func.count(Product.id),
    ).one()
    return to_decimal(value), int(quantity or 0), int(count or 0)


def annual_summary(page: int = 1, page_size: int = 10) -> AnnualSummary:
    """All-time sales figures plus a page of the stock valuation table."""
    page = max(page, 1)
    with get_session() as db:
        transactions = _all_transactions(db)
        inventory_value, inventory_quantity, products_count = _inventory_totals(db)
        products = (
            db.query(Product)
            .options(joinedload(Product.category))
            .order_by(Product.name.asc(), Product.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
    return AnnualSummary(
        figures=sales_figures(transactions),
        inventory_value=inventory_value,
        inventory_quantity=inventory_quantity,
        products_count=products_count,
        inventory=InventoryPage(products, page, page_size, products_count),
        first_transaction=transactions[0].date if transactions else None,
        last_transaction=transactions[-1].date if transactions else None,
    )


def product_breakdown() -> List[Dict[str, Any]]:
    """Per-product all-time sold, returned and profit figures."""
    rows: Dict[int, Dict[str, Any]] = {}
    with get_session() as db:
        for txn in _all_transactions(db):
            product = txn.product
            row = rows.setdefault(
                txn.product_id,
                {
                    "product": product.name if product else f"#{txn.product_id}",
                    "category_id": product.category_id if product else None,
                    "quantity_sold": 0,
                    "quantity_returned": 0,
                    "sales": ZERO,
                    "returns": ZERO,
                    "cost": ZERO,
                    "profit": ZERO,
                    "stock": product.quantity if product else 0,
                },
            )
            qty = txn.quantity
            total = _dec(txn.total_price)
            carton = product.unit_cost if product else ZERO
            row["cost"] += carton * abs(qty)
            if carton > 0:
                row["profit"] += (_dec(txn.price) - carton) * qty
            if qty > 0:
                row["quantity_sold"] += qty
                row["sales"] += total
            else:
                row["quantity_returned"] += abs(qty)
                row["returns"] += abs(total)
    result = []
    for row in rows.values():
        for key in ("sales", "returns", "cost", "profit"):
            row[key] = to_decimal(row[key])
        result.append(row)
    return sorted(result, key=lambda r: r["sales"], reverse=True)


@dataclass
class DashboardStats:
    figures: SalesFigures
    inventory_value: Decimal
    products_count: int
    out_of_stock_count: int
    customers_count: int
    invoices_count: int
    activities: List[Any] = field(default_factory=list)


def dashboard_stats() -> DashboardStats:
    with get_session() as db:
        figures = sales_figures(_all_transactions(db))
        inventory_value, _quantity, products_count = _inventory_totals(db)
        out_of_stock = db.query(Product).filter(Product.quantity <= 0).count()
        customers_count = db.query(Customer).count()
        invoices_count = db.query(Invoice).count()
    return DashboardStats(
        figures=figures,
        inventory_value=inventory_value,
        products_count=products_count,
        out_of_stock_count=out_of_stock,
        customers_count=customers_count,
        invoices_count=invoices_count,
        activities=recent_activities(5),
    )


def home_stats() -> Dict[str, Any]:
    with get_session() as db:
        total_sales = (
            db.query(func.coalesce(func.sum(CustomerTransaction.total_price), 0)).scalar()
        )
        return {
            "customers": db.query(Customer).count(),
            "products": db.query(Product).count(),
            "invoices": db.query(Invoice).count(),
            "orders": db.query(Invoice).filter(Invoice.order_number != "").count(),
            "total_sales": to_decimal(total_sales),
        }


__all__ = [
    "AnnualSummary",
    "DashboardStats",
    "InventoryPage",
    "SalesFigures",
    "annual_summary",
    "dashboard_stats",
    "home_stats",
    "product_breakdown",
    "sales_figures",
]
