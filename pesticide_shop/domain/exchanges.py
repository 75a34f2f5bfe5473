"""Exchanges of sold goods for other products.

An exchange takes units of an invoiced product back into stock and hands out
the same number of units of another product under an ``EXC-`` invoice.  The
price difference is charged when the new product is dearer and refunded
otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import joinedload

from ..constants import (
    EXCHANGE_INVOICE_PREFIX,
    EXCHANGE_NOTE_MARKER,
    STATUS_PAID,
    STATUS_SENT,
    TYPE_EXCHANGE,
)
from ..db import get_session, to_decimal
from ..errors import DayClosedError, InsufficientStockError, NotFoundError, ValidationError
from ..metrics import EXCHANGES_TOTAL, STOCK_ERRORS_TOTAL
from ..models import CustomerTransaction, ExchangeTracking, Invoice, InvoiceItem, Product
from . import catalog, financial
from .activity import add_activity
from .returns import load_original, original_line, paid_unit_price, unique_invoice_number

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class ExchangeLine:
    old_product_id: int
    new_product_id: int
    quantity: int


def exchanged_quantity(db, invoice_number: str, product_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(ExchangeTracking.exchanged_quantity), 0))
        .filter(
            ExchangeTracking.original_invoice_number == invoice_number,
            ExchangeTracking.old_product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def invoice_items_for_exchange(invoice_number: str) -> Dict[str, Any]:
    with get_session() as db:
        invoice = load_original(db, invoice_number)
        items = []
        for line in invoice.items:
            if line.quantity <= 0:
                continue
            exchanged = exchanged_quantity(db, invoice.invoice_number, line.product_id)
            items.append(
                {
                    "product_id": line.product_id,
                    "product_name": line.product.name if line.product else "",
                    "original_quantity": abs(line.quantity),
                    "exchanged_quantity": exchanged,
                    "available_quantity": max(abs(line.quantity) - exchanged, 0),
                    "unit_price": float(line.unit_price),
                    "paid_unit_price": float(paid_unit_price(line)),
                }
            )
        return {
            "invoice_number": invoice.invoice_number,
            "customer_id": invoice.customer_id,
            "items": items,
        }


def _book_line(
    db,
    original: Invoice,
    invoice: Invoice,
    line: ExchangeLine,
    reason: Optional[str],
    notes: Optional[str],
    user: Optional[str],
) -> ExchangeTracking:
    if line.quantity <= 0:
        raise ValidationError("Exchanged quantity must be at least 1")
    source = original_line(original, line.old_product_id)
    available = abs(source.quantity) - exchanged_quantity(
        db, original.invoice_number, line.old_product_id
    )
    if line.quantity > available:
        raise ValidationError(
            f"Cannot exchange {line.quantity} units, only {available} left on invoice "
            f"{original.invoice_number}"
        )
    old_product = db.get(Product, line.old_product_id)
    new_product = db.get(Product, line.new_product_id)
    if old_product is None or new_product is None:
        raise NotFoundError("Product not found")
    if new_product.quantity < line.quantity:
        STOCK_ERRORS_TOTAL.inc()
        raise InsufficientStockError(new_product.name, new_product.quantity, line.quantity)

    qty = line.quantity
    difference = to_decimal((Decimal(new_product.price) - Decimal(old_product.price)) * qty)
    old_price = paid_unit_price(source)
    new_price = to_decimal(new_product.price)
    now = datetime.now()

    tracking = ExchangeTracking(
        original_invoice_number=original.invoice_number,
        exchange_invoice_number=invoice.invoice_number,
        old_product_id=old_product.id,
        new_product_id=new_product.id,
        exchanged_quantity=qty,
        price_difference=difference,
        exchange_reason=reason,
        exchange_date=now,
        notes=notes,
        created_by=user or "System",
        created_at=now,
    )
    db.add(tracking)
    invoice.items.append(
        InvoiceItem(
            product_id=old_product.id,
            quantity=-qty,
            unit_price=old_price,
            discount=ZERO,
            total_price=to_decimal(-old_price * qty),
            notes="Exchanged item (out)",
        )
    )
    invoice.items.append(
        InvoiceItem(
            product_id=new_product.id,
            quantity=qty,
            unit_price=new_price,
            discount=ZERO,
            total_price=to_decimal(new_price * qty),
            notes="Replacement item (in)",
        )
    )
    new_total = to_decimal(new_price * qty)
    db.add_all(
        [
            CustomerTransaction(
                customer_id=original.customer_id,
                product_id=old_product.id,
                quantity=-qty,
                price=old_price,
                discount=ZERO,
                total_price=to_decimal(-old_price * qty),
                shipping_cost=ZERO,
                amount_paid=ZERO,
                date=now,
                notes=f"{EXCHANGE_NOTE_MARKER} {qty} x {old_product.name} out ({invoice.invoice_number})",
            ),
            CustomerTransaction(
                customer_id=original.customer_id,
                product_id=new_product.id,
                quantity=qty,
                price=new_price,
                discount=ZERO,
                total_price=new_total,
                shipping_cost=ZERO,
                amount_paid=difference if difference > 0 else new_total,
                date=now,
                notes=f"{EXCHANGE_NOTE_MARKER} {qty} x {new_product.name} in ({invoice.invoice_number})",
            ),
        ]
    )
    old_product.quantity += qty
    new_product.quantity -= qty
    db.flush()
    try:
        financial.apply_exchange(
            db,
            old_product,
            new_product,
            original.customer_id,
            qty,
            old_price,
            invoice.invoice_number,
            user,
        )
    except DayClosedError as exc:
        logger.warning(
            "Exchange %s left out of the daily figures: %s", invoice.invoice_number, exc
        )
    return tracking


def _settle(invoice: Invoice, difference: Decimal) -> None:
    """Charge a positive difference, refund a negative one."""
    invoice.total_amount = to_decimal(abs(difference))
    if difference <= 0:
        invoice.status = STATUS_PAID
        invoice.amount_paid = to_decimal(abs(difference))
        invoice.remaining_amount = ZERO
    else:
        invoice.status = STATUS_SENT
        invoice.amount_paid = ZERO
        invoice.remaining_amount = to_decimal(difference)


def _exchange_invoice(db, original: Invoice, number: str, reason, notes, user) -> Invoice:
    now = datetime.now()
    invoice = Invoice(
        invoice_number=unique_invoice_number(db, number),
        order_number=f"{EXCHANGE_INVOICE_PREFIX}{original.order_number or original.invoice_number}",
        customer_id=original.customer_id,
        invoice_date=now,
        total_amount=ZERO,
        amount_paid=ZERO,
        remaining_amount=ZERO,
        status=STATUS_PAID,
        type=TYPE_EXCHANGE,
        order_origin=original.order_origin,
        original_invoice_number=original.invoice_number,
        return_reason=reason,
        cashier_name=user or "System",
        notes=notes,
        created_at=now,
    )
    db.add(invoice)
    db.flush()
    return invoice


def create_exchange(
    original_invoice_number: str,
    old_product_id: int,
    new_product_id: int,
    quantity: int,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    user: Optional[str] = None,
) -> Invoice:
    with get_session() as db:
        original = load_original(db, original_invoice_number)
        base = f"{EXCHANGE_INVOICE_PREFIX}{original.order_number or original.invoice_number}"
        invoice = _exchange_invoice(db, original, base, reason, notes, user)
        tracking = _book_line(
            db,
            original,
            invoice,
            ExchangeLine(old_product_id, new_product_id, quantity),
            reason,
            notes,
            user,
        )
        _settle(invoice, Decimal(tracking.price_difference))
        old_name = db.get(Product, old_product_id).name
        new_name = db.get(Product, new_product_id).name
        if not invoice.notes:
            invoice.notes = f"Exchange {quantity} x {old_name} for {new_name}"
        add_activity(
            db,
            "exchange",
            "invoice",
            original.invoice_number,
            f"Exchanged {quantity} x {old_name} for {new_name} on {invoice.invoice_number}",
            user,
        )
    EXCHANGES_TOTAL.inc()
    catalog.refresh_low_stock_gauge()
    logger.info("Exchange %s booked against %s", invoice.invoice_number, original_invoice_number)
    return invoice


def multi_exchange(
    original_invoice_number: str,
    items: Iterable[Dict[str, Any]],
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    user: Optional[str] = None,
) -> Invoice:
    """Exchange several (old, new, quantity) triples under one invoice."""
    lines = [
        ExchangeLine(
            int(item["old_product_id"]),
            int(item["new_product_id"]),
            int(item["quantity"]),
        )
        for item in items
        if int(item.get("quantity") or 0) > 0
    ]
    if not lines:
        raise ValidationError("Add at least one product to exchange")
    with get_session() as db:
        original = load_original(db, original_invoice_number)
        number = f"{EXCHANGE_INVOICE_PREFIX}{datetime.now():%Y%m%d%H%M%S}"
        invoice = _exchange_invoice(db, original, number, reason, notes, user)
        difference = ZERO
        for line in lines:
            tracking = _book_line(db, original, invoice, line, reason, notes, user)
            difference += Decimal(tracking.price_difference)
        _settle(invoice, difference)
        if not invoice.notes:
            invoice.notes = f"Exchange of {len(lines)} products"
        add_activity(
            db,
            "exchange",
            "invoice",
            original.invoice_number,
            f"Exchanged {len(lines)} products on {invoice.invoice_number}",
            user,
        )
    EXCHANGES_TOTAL.inc(len(lines))
    catalog.refresh_low_stock_gauge()
    return invoice


def delete_exchange(tracking_id: int, user: Optional[str] = None) -> None:
    """Remove the tracking row only; stock and invoices stay as booked."""
    with get_session() as db:
        tracking = db.get(ExchangeTracking, tracking_id)
        if tracking is None:
            raise NotFoundError("Exchange not found")
        number = tracking.exchange_invoice_number
        db.delete(tracking)
        add_activity(db, "delete", "exchange", number, "Exchange tracking deleted", user)


def delete_all(user: Optional[str] = None) -> int:
    with get_session() as db:
        count = db.query(ExchangeTracking).delete()
        if count:
            add_activity(db, "delete", "exchange", "all", f"Deleted {count} exchanges", user)
    return count


def list_exchanges() -> List[ExchangeTracking]:
    with get_session() as db:
        return (
            db.query(ExchangeTracking)
            .options(
                joinedload(ExchangeTracking.old_product),
                joinedload(ExchangeTracking.new_product),
            )
            .order_by(ExchangeTracking.exchange_date.desc(), ExchangeTracking.id.desc())
            .all()
        )


def get_exchange(tracking_id: int) -> Optional[ExchangeTracking]:
    with get_session() as db:
        return (
            db.query(ExchangeTracking)
            .options(
                joinedload(ExchangeTracking.old_product),
                joinedload(ExchangeTracking.new_product),
            )
            .filter_by(id=tracking_id)
            .first()
        )


__all__ = [
    "ExchangeLine",
    "create_exchange",
    "delete_all",
    "delete_exchange",
    "exchanged_quantity",
    "get_exchange",
    "invoice_items_for_exchange",
    "list_exchanges",
    "multi_exchange",
]
