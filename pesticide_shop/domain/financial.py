"""
Adjustments of the daily figures after returns and exchanges.

Returns and exchanges are booked on the day they happen, so the adjustments
always target today's inventory:
- the product summaries lose the returned quantity and value
- the customer summary loses the refunded amount
- the day totals are re-aggregated
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from ..constants import INVENTORY_CLOSED
from ..db import get_session, to_decimal
from ..errors import DayClosedError
from ..models import (
    DailyCustomerSummary,
    DailyInventory,
    DailyProductSummary,
    Product,
)
from . import daily_inventory
from .activity import add_activity

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _dec(value) -> Decimal:
    return Decimal(value or 0)


def _product_summary(db, inventory: DailyInventory, product: Product) -> DailyProductSummary:
    summary = (
        db.query(DailyProductSummary)
        .filter_by(daily_inventory_id=inventory.id, product_id=product.id)
        .first()
    )
    if summary is None:
        summary = DailyProductSummary(
            daily_inventory_id=inventory.id,
            product_id=product.id,
            total_quantity_sold=0,
            total_sales_value=ZERO,
            total_cost_value=ZERO,
            total_discounts=ZERO,
            net_sales_value=ZERO,
            net_profit=ZERO,
            transactions_count=0,
            starting_quantity=product.quantity or 0,
            ending_quantity=product.quantity or 0,
        )
        db.add(summary)
        db.flush()
    return summary


def _customer_summary(db, inventory: DailyInventory, customer_id: int) -> DailyCustomerSummary:
    summary = (
        db.query(DailyCustomerSummary)
        .filter_by(daily_inventory_id=inventory.id, customer_id=customer_id)
        .first()
    )
    if summary is None:
        summary = DailyCustomerSummary(
            daily_inventory_id=inventory.id,
            customer_id=customer_id,
            transactions_count=0,
            total_purchases=ZERO,
            total_payments=ZERO,
            debt_amount=ZERO,
        )
        db.add(summary)
        db.flush()
    return summary


def _shift_product(db, inventory, product: Product, quantity: int, unit_price: Decimal) -> None:
    """Move ``quantity`` units of ``product`` in or out of the day figures.

    A negative ``quantity`` takes units back (a return).
    """
    summary = _product_summary(db, inventory, product)
    value = unit_price * quantity
    summary.total_quantity_sold = max(summary.total_quantity_sold + quantity, 0)
    summary.total_sales_value = to_decimal(_dec(summary.total_sales_value) + value)
    summary.net_sales_value = to_decimal(_dec(summary.net_sales_value) + value)
    carton = product.unit_cost
    if carton > 0:
        summary.total_cost_value = to_decimal(_dec(summary.total_cost_value) + carton * quantity)
        summary.net_profit = to_decimal(
            _dec(summary.net_profit) + (unit_price - carton) * quantity
        )
    summary.ending_quantity = product.quantity or 0


def _shift_customer(db, inventory, customer_id: int, amount: Decimal) -> None:
    summary = _customer_summary(db, inventory, customer_id)
    summary.total_purchases = to_decimal(_dec(summary.total_purchases) + amount)
    summary.debt_amount = to_decimal(_dec(summary.debt_amount) + amount)
    summary.last_transaction_time = datetime.now()


def _append_note(inventory: DailyInventory, text: str) -> None:
    inventory.notes = f"{inventory.notes} | {text}" if inventory.notes else text


def _open_inventory(db, day: date) -> DailyInventory:
    inventory = daily_inventory.get_or_create(db, day)
    if inventory.status == INVENTORY_CLOSED:
        raise DayClosedError(f"Daily inventory {day.isoformat()} is closed")
    return inventory


def apply_return(
    db,
    product: Product,
    customer_id: int,
    quantity: int,
    unit_price,
    invoice_number: str,
    user: Optional[str] = None,
    day: Optional[date] = None,
) -> None:
    """Book a return of ``quantity`` units inside an existing session.

    Raises :class:`DayClosedError` before touching a closed day.
    """
    inventory = _open_inventory(db, day or date.today())
    unit_price = _dec(unit_price)
    _shift_product(db, inventory, product, -quantity, unit_price)
    _shift_customer(db, inventory, customer_id, -(unit_price * quantity))
    _append_note(inventory, f"Return {invoice_number}: {quantity} x {product.name}")
    daily_inventory.refresh_totals(db, inventory)
    add_activity(
        db,
        "financial_update",
        "return",
        invoice_number,
        f"Returned {quantity} x {product.name} at {to_decimal(unit_price)}",
        user,
    )
    logger.info("Daily figures adjusted after return %s", invoice_number)


def apply_exchange(
    db,
    old_product: Product,
    new_product: Product,
    customer_id: int,
    quantity: int,
    old_unit_price,
    invoice_number: str,
    user: Optional[str] = None,
    day: Optional[date] = None,
) -> Decimal:
    """Book an exchange inside an existing session.

    Returns the price difference charged to the customer.
    """
    inventory = _open_inventory(db, day or date.today())
    old_price = _dec(old_unit_price)
    new_price = _dec(new_product.price)
    _shift_product(db, inventory, old_product, -quantity, old_price)
    _shift_product(db, inventory, new_product, quantity, new_price)
    difference = to_decimal((new_price - old_price) * quantity)
    _shift_customer(db, inventory, customer_id, difference)
    _append_note(
        inventory,
        f"Exchange {invoice_number}: {quantity} x {old_product.name} -> {new_product.name}",
    )
    daily_inventory.refresh_totals(db, inventory)
    add_activity(
        db,
        "financial_update",
        "exchange",
        invoice_number,
        f"Exchanged {quantity} x {old_product.name} for {new_product.name}, "
        f"difference {difference}",
        user,
    )
    return difference


def recalculate_profits(start: date, end: date) -> int:
    """Recompute net profit of every stored day in the range."""
    updated = 0
    with get_session() as db:
        day = start
        while day <= end:
            inventory = db.query(DailyInventory).filter_by(inventory_date=day).first()
            if inventory is not None:
                snap = daily_inventory._snapshot_from(
                    daily_inventory._day_transactions(db, day)
                )
                inventory.total_cost = snap.total_cost
                inventory.net_profit = snap.net_profit
                inventory.updated_at = datetime.now()
                updated += 1
            day += timedelta(days=1)
    logger.info("Recalculated profits for %s days", updated)
    return updated


__all__ = ["apply_exchange", "apply_return", "recalculate_profits"]
