"""Daily inventory snapshots built from customer transactions.

Every customer transaction is folded into the inventory of its day: a copy
is kept as a :class:`DailySaleTransaction`, the per-product and per-customer
summaries are updated and the day totals are re-aggregated from those
summaries.  A closed day ignores new transactions until it is reopened or
explicitly recalculated.
"""

from __future__ import annotations

import calendar as _calendar
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import joinedload, selectinload

from ..constants import (
    EXCHANGE_NOTE_MARKER,
    INVENTORY_ACTIVE,
    INVENTORY_CLOSED,
)
from ..db import get_session, to_decimal
from ..metrics import DAILY_CLOSINGS_TOTAL
from ..models import (
    CustomerTransaction,
    DailyCustomerSummary,
    DailyInventory,
    DailyProductSummary,
    DailySaleTransaction,
    Product,
)
from ..utils import day_bounds
from .activity import add_activity

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _dec(value) -> Decimal:
    return Decimal(value or 0)


def _with_details(query):
    return query.options(
        selectinload(DailyInventory.product_summaries).joinedload(
            DailyProductSummary.product
        ),
        selectinload(DailyInventory.customer_summaries).joinedload(
            DailyCustomerSummary.customer
        ),
        selectinload(DailyInventory.sale_transactions).joinedload(
            DailySaleTransaction.product
        ),
        selectinload(DailyInventory.sale_transactions).joinedload(
            DailySaleTransaction.customer
        ),
    )


def _day_transactions(db, day: date) -> List[CustomerTransaction]:
    start, end = day_bounds(day)
    return (
        db.query(CustomerTransaction)
        .options(
            joinedload(CustomerTransaction.product),
            joinedload(CustomerTransaction.customer),
        )
        .filter(CustomerTransaction.date >= start, CustomerTransaction.date <= end)
        .order_by(CustomerTransaction.date.asc(), CustomerTransaction.id.asc())
        .all()
    )


def get_or_create(db, day: date) -> DailyInventory:
    """Return the inventory of ``day`` creating an active one if needed."""
    inventory = db.query(DailyInventory).filter_by(inventory_date=day).first()
    if inventory is None:
        start, end = day_bounds(day)
        inventory = DailyInventory(
            inventory_date=day,
            start_time=start,
            end_time=end,
            status=INVENTORY_ACTIVE,
            total_sales=ZERO,
            total_cost=ZERO,
            net_profit=ZERO,
            total_discounts=ZERO,
            total_payments=ZERO,
            total_debts=ZERO,
            transactions_count=0,
            customers_count=0,
            products_sold_count=0,
            total_quantity_sold=0,
            created_at=datetime.now(),
        )
        db.add(inventory)
        db.flush()
        logger.info("Created daily inventory for %s", day.isoformat())
    return inventory


def get_by_date(day: date) -> Optional[DailyInventory]:
    with get_session() as db:
        return _with_details(db.query(DailyInventory)).filter_by(
            inventory_date=day
        ).first()


def get_by_id(inventory_id: int) -> Optional[DailyInventory]:
    with get_session() as db:
        return _with_details(db.query(DailyInventory)).filter_by(
            id=inventory_id
        ).first()


def get_range(start: date, end: date) -> List[DailyInventory]:
    with get_session() as db:
        return (
            db.query(DailyInventory)
            .filter(
                DailyInventory.inventory_date >= start,
                DailyInventory.inventory_date <= end,
            )
            .order_by(DailyInventory.inventory_date.asc())
            .all()
        )


def _update_product_summary(
    db, inventory: DailyInventory, txn: CustomerTransaction, product: Product
) -> None:
    summary = (
        db.query(DailyProductSummary)
        .filter_by(daily_inventory_id=inventory.id, product_id=txn.product_id)
        .first()
    )
    if summary is None:
        summary = DailyProductSummary(
            daily_inventory_id=inventory.id,
            product_id=txn.product_id,
            total_quantity_sold=0,
            total_sales_value=ZERO,
            total_cost_value=ZERO,
            total_discounts=ZERO,
            net_sales_value=ZERO,
            net_profit=ZERO,
            transactions_count=0,
            starting_quantity=(product.quantity or 0) + txn.quantity,
            ending_quantity=product.quantity or 0,
        )
        db.add(summary)

    qty = txn.quantity
    price = _dec(txn.price)
    carton = product.unit_cost

    if qty > 0:
        summary.total_quantity_sold += qty
        summary.total_discounts = to_decimal(
            _dec(summary.total_discounts) + _dec(txn.discount) * qty
        )
    summary.total_sales_value = to_decimal(_dec(summary.total_sales_value) + price * qty)
    summary.total_cost_value = to_decimal(_dec(summary.total_cost_value) + carton * qty)
    summary.net_sales_value = to_decimal(
        _dec(summary.net_sales_value) + _dec(txn.total_price)
    )
    if carton > 0:
        summary.net_profit = to_decimal(
            _dec(summary.net_profit) + (price - carton) * qty
        )
    summary.transactions_count += 1
    summary.ending_quantity = product.quantity or 0
    db.flush()


def _update_customer_summary(
    db, inventory: DailyInventory, txn: CustomerTransaction
) -> None:
    summary = (
        db.query(DailyCustomerSummary)
        .filter_by(daily_inventory_id=inventory.id, customer_id=txn.customer_id)
        .first()
    )
    if summary is None:
        summary = DailyCustomerSummary(
            daily_inventory_id=inventory.id,
            customer_id=txn.customer_id,
            transactions_count=0,
            total_purchases=ZERO,
            total_payments=ZERO,
            debt_amount=ZERO,
        )
        db.add(summary)

    summary.transactions_count += 1
    summary.total_purchases = to_decimal(
        _dec(summary.total_purchases) + _dec(txn.total_price)
    )
    # Payments booked together with shipping are carrier collections.
    paid = _dec(txn.amount_paid)
    if _dec(txn.shipping_cost) == 0 and paid > 0:
        summary.total_payments = to_decimal(_dec(summary.total_payments) + paid)
    summary.debt_amount = to_decimal(
        _dec(summary.total_purchases) - _dec(summary.total_payments)
    )
    summary.last_transaction_time = txn.date
    db.flush()


def refresh_totals(db, inventory: DailyInventory) -> None:
    """Re-aggregate the day totals from its summaries."""
    db.flush()
    products = (
        db.query(DailyProductSummary).filter_by(daily_inventory_id=inventory.id).all()
    )
    customers = (
        db.query(DailyCustomerSummary).filter_by(daily_inventory_id=inventory.id).all()
    )
    inventory.total_sales = to_decimal(sum((_dec(p.net_sales_value) for p in products), ZERO))
    inventory.total_cost = to_decimal(sum((_dec(p.total_cost_value) for p in products), ZERO))
    inventory.net_profit = to_decimal(sum((_dec(p.net_profit) for p in products), ZERO))
    inventory.total_discounts = to_decimal(
        sum((_dec(p.total_discounts) for p in products), ZERO)
    )
    inventory.total_payments = to_decimal(
        sum((_dec(c.total_payments) for c in customers), ZERO)
    )
    inventory.total_debts = to_decimal(sum((_dec(c.debt_amount) for c in customers), ZERO))
    inventory.transactions_count = sum(p.transactions_count for p in products)
    inventory.customers_count = len(customers)
    inventory.products_sold_count = sum(1 for p in products if p.total_quantity_sold > 0)
    inventory.total_quantity_sold = sum(p.total_quantity_sold for p in products)
    inventory.updated_at = datetime.now()


def apply_transaction(db, txn: CustomerTransaction, *, force: bool = False) -> bool:
    """Fold ``txn`` into its day inside an existing session.

    Returns ``False`` when the day is closed and ``force`` is not set.
    """
    day = txn.date.date() if isinstance(txn.date, datetime) else txn.date
    inventory = get_or_create(db, day)
    if inventory.status == INVENTORY_CLOSED and not force:
        logger.warning(
            "Daily inventory %s is closed, transaction %s not processed",
            day.isoformat(),
            txn.id,
        )
        return False

    product = db.get(Product, txn.product_id)
    if product is None:
        logger.warning("Transaction %s references missing product %s", txn.id, txn.product_id)
        return False

    db.add(
        DailySaleTransaction(
            daily_inventory_id=inventory.id,
            customer_id=txn.customer_id,
            product_id=txn.product_id,
            quantity=txn.quantity,
            unit_price=to_decimal(txn.price),
            total_price=to_decimal(txn.total_price),
            discount=to_decimal(txn.discount),
            amount_paid=to_decimal(txn.amount_paid),
            cost_price=to_decimal(product.unit_cost),
            transaction_time=txn.date,
            original_transaction_id=txn.id,
            notes=txn.notes,
        )
    )
    db.flush()
    if txn.quantity:
        _update_product_summary(db, inventory, txn, product)
    _update_customer_summary(db, inventory, txn)
    refresh_totals(db, inventory)
    return True


def process_transaction(transaction_id: int) -> bool:
    """Process a committed customer transaction in its own session."""
    with get_session() as db:
        txn = db.get(CustomerTransaction, transaction_id)
        if txn is None:
            logger.warning("Transaction %s not found for daily inventory", transaction_id)
            return False
        return apply_transaction(db, txn)


def process_transactions_safely(transaction_ids) -> int:
    """Best-effort processing used after a sale has been committed."""
    processed = 0
    for transaction_id in transaction_ids:
        try:
            if process_transaction(transaction_id):
                processed += 1
        except Exception as exc:
            logger.error(
                "Daily inventory update failed for transaction %s: %s",
                transaction_id,
                exc,
            )
    return processed


def recalculate_in(db, day: date) -> DailyInventory:
    inventory = get_or_create(db, day)
    for model in (DailySaleTransaction, DailyProductSummary, DailyCustomerSummary):
        db.query(model).filter_by(daily_inventory_id=inventory.id).delete(
            synchronize_session=False
        )
    db.flush()
    db.expire(inventory, ["sale_transactions", "product_summaries", "customer_summaries"])
    for txn in _day_transactions(db, day):
        apply_transaction(db, txn, force=True)
    refresh_totals(db, inventory)
    return inventory


def recalculate(day: date) -> DailyInventory:
    """Rebuild the snapshot of ``day`` from its customer transactions."""
    with get_session() as db:
        inventory = recalculate_in(db, day)
        logger.info(
            "Recalculated daily inventory %s: %s transactions",
            day.isoformat(),
            inventory.transactions_count,
        )
    return get_by_date(day)


def recalculate_days_safely(days) -> None:
    for day in sorted(set(days)):
        try:
            recalculate(day)
        except Exception as exc:
            logger.error("Recalculation of %s failed: %s", day, exc)


def recalculate_all() -> int:
    """Recompute every stored day directly from its transactions."""
    with get_session() as db:
        inventories = db.query(DailyInventory).all()
        for inventory in inventories:
            snap = _snapshot_from(_day_transactions(db, inventory.inventory_date))
            inventory.total_sales = snap.total_sales
            inventory.total_cost = snap.total_cost
            inventory.net_profit = snap.net_profit
            inventory.total_discounts = snap.total_discounts
            inventory.total_payments = snap.total_payments
            inventory.total_debts = snap.total_debts
            inventory.transactions_count = snap.transactions_count
            inventory.customers_count = snap.customers_count
            inventory.products_sold_count = snap.products_sold_count
            inventory.total_quantity_sold = snap.total_quantity_sold
            inventory.updated_at = datetime.now()
        return len(inventories)


def close_day(day: date, user: Optional[str] = None) -> DailyInventory:
    """Close ``day`` and rebuild its snapshot.

    A failing rebuild is logged; the day stays closed with its previous
    figures.
    """
    with get_session() as db:
        inventory = get_or_create(db, day)
        inventory.status = INVENTORY_CLOSED
        inventory.updated_at = datetime.now()
        inventory.responsible_user = user or "System"
        add_activity(
            db,
            "close",
            "daily_inventory",
            day.isoformat(),
            f"Daily inventory closed by {inventory.responsible_user}",
            user,
        )
    DAILY_CLOSINGS_TOTAL.inc()
    try:
        recalculate(day)
    except Exception as exc:
        logger.exception("Recalculation after closing %s failed: %s", day, exc)
    return get_by_date(day)


def reopen_day(day: date, user: Optional[str] = None) -> Optional[DailyInventory]:
    with get_session() as db:
        inventory = db.query(DailyInventory).filter_by(inventory_date=day).first()
        if inventory is None:
            return None
        inventory.status = INVENTORY_ACTIVE
        inventory.updated_at = datetime.now()
        add_activity(
            db, "reopen", "daily_inventory", day.isoformat(), "Daily inventory reopened", user
        )
    return get_by_date(day)


def is_day_closed(day: date) -> bool:
    with get_session() as db:
        inventory = db.query(DailyInventory).filter_by(inventory_date=day).first()
        return inventory is not None and inventory.status == INVENTORY_CLOSED


def previous_day(day: date) -> Optional[DailyInventory]:
    return get_by_date(day - timedelta(days=1))


def total_sales_in_range(start: date, end: date) -> Decimal:
    return to_decimal(sum((_dec(i.total_sales) for i in get_range(start, end)), ZERO))


def top_products(day: date, count: int = 10) -> List[DailyProductSummary]:
    inventory = get_by_date(day)
    if inventory is None:
        return []
    return sorted(
        inventory.product_summaries,
        key=lambda s: s.total_quantity_sold,
        reverse=True,
    )[:count]


def top_customers(day: date, count: int = 10) -> List[DailyCustomerSummary]:
    inventory = get_by_date(day)
    if inventory is None:
        return []
    return sorted(
        inventory.customer_summaries,
        key=lambda s: _dec(s.total_purchases),
        reverse=True,
    )[:count]


@dataclass
class DaySnapshot:
    """Figures computed straight from a day's transactions."""

    total_sales: Decimal = ZERO
    total_cost: Decimal = ZERO
    net_profit: Decimal = ZERO
    total_discounts: Decimal = ZERO
    total_payments: Decimal = ZERO
    total_debts: Decimal = ZERO
    returns_value: Decimal = ZERO
    exchanges_value: Decimal = ZERO
    returns_count: int = 0
    exchanges_count: int = 0
    transactions_count: int = 0
    customers_count: int = 0
    products_sold_count: int = 0
    total_quantity_sold: int = 0

    @property
    def profit_margin(self) -> Decimal:
        if not self.total_sales:
            return ZERO
        return to_decimal(self.net_profit / self.total_sales * 100)

    @property
    def average_transaction_value(self) -> Decimal:
        if not self.transactions_count:
            return ZERO
        return to_decimal(self.total_sales / self.transactions_count)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            key: float(value) if isinstance(value, Decimal) else value
            for key, value in asdict(self).items()
        }
        data["profit_margin"] = float(self.profit_margin)
        data["average_transaction_value"] = float(self.average_transaction_value)
        return data


def is_exchange_note(notes: Optional[str]) -> bool:
    return bool(notes) and EXCHANGE_NOTE_MARKER.lower() in notes.lower()


def _snapshot_from(transactions: List[CustomerTransaction]) -> DaySnapshot:
    snap = DaySnapshot()
    customers = set()
    products = set()
    for txn in transactions:
        qty = txn.quantity
        total = _dec(txn.total_price)
        paid = _dec(txn.amount_paid)
        carton = txn.product.unit_cost if txn.product is not None else ZERO
        customers.add(txn.customer_id)
        if qty:
            snap.transactions_count += 1
        snap.total_sales += total
        snap.total_cost += carton * abs(qty)
        if carton > 0:
            snap.net_profit += (_dec(txn.price) - carton) * qty
        if _dec(txn.shipping_cost) == 0 and paid > 0:
            snap.total_payments += paid
        if qty > 0:
            products.add(txn.product_id)
            snap.total_quantity_sold += qty
            snap.total_discounts += _dec(txn.discount) * qty
            snap.total_debts += total - paid
        elif qty < 0:
            if is_exchange_note(txn.notes):
                snap.exchanges_value += abs(total)
                snap.exchanges_count += 1
            else:
                snap.returns_value += abs(total)
                snap.returns_count += 1
    snap.customers_count = len(customers)
    snap.products_sold_count = len(products)
    for field in (
        "total_sales",
        "total_cost",
        "net_profit",
        "total_discounts",
        "total_payments",
        "total_debts",
        "returns_value",
        "exchanges_value",
    ):
        setattr(snap, field, to_decimal(getattr(snap, field)))
    return snap


def live_snapshot(day: date) -> DaySnapshot:
    with get_session() as db:
        return _snapshot_from(_day_transactions(db, day))


def transactions_for_day(day: date) -> List[CustomerTransaction]:
    with get_session() as db:
        return _day_transactions(db, day)


def calendar(year: int, month: int) -> List[Dict[str, Any]]:
    """One entry per day of the month with its stored inventory, if any."""
    days_in_month = _calendar.monthrange(year, month)[1]
    first = date(year, month, 1)
    last = date(year, month, days_in_month)
    stored = {inv.inventory_date: inv for inv in get_range(first, last)}
    return [
        {"date": first + timedelta(days=offset), "inventory": stored.get(first + timedelta(days=offset))}
        for offset in range(days_in_month)
    ]


def compare(start: date, end: date) -> Dict[str, Any]:
    inventories = get_range(start, end)
    totals = {
        "total_sales": to_decimal(sum((_dec(i.total_sales) for i in inventories), ZERO)),
        "total_cost": to_decimal(sum((_dec(i.total_cost) for i in inventories), ZERO)),
        "net_profit": to_decimal(sum((_dec(i.net_profit) for i in inventories), ZERO)),
        "total_payments": to_decimal(sum((_dec(i.total_payments) for i in inventories), ZERO)),
        "total_debts": to_decimal(sum((_dec(i.total_debts) for i in inventories), ZERO)),
        "transactions_count": sum(i.transactions_count for i in inventories),
    }
    best = max(inventories, key=lambda i: _dec(i.total_sales), default=None)
    return {"days": inventories, "totals": totals, "best_day": best}


def summary_data(start: date, end: date) -> List[Dict[str, Any]]:
    return [
        {
            "date": inv.inventory_date.isoformat(),
            "total_sales": float(inv.total_sales or 0),
            "net_profit": float(inv.net_profit or 0),
            "total_payments": float(inv.total_payments or 0),
            "total_debts": float(inv.total_debts or 0),
            "transactions_count": inv.transactions_count,
            "status": inv.status,
        }
        for inv in get_range(start, end)
    ]


__all__ = [
    "DaySnapshot",
    "apply_transaction",
    "calendar",
    "close_day",
    "compare",
    "get_by_date",
    "get_by_id",
    "get_or_create",
    "get_range",
    "is_day_closed",
    "is_exchange_note",
    "live_snapshot",
    "previous_day",
    "process_transaction",
    "process_transactions_safely",
    "recalculate",
    "recalculate_all",
    "recalculate_days_safely",
    "recalculate_in",
    "refresh_totals",
    "reopen_day",
    "summary_data",
    "top_customers",
    "top_products",
    "total_sales_in_range",
    "transactions_for_day",
]
