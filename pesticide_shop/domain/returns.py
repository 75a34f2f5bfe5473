"""Returns booked against an original invoice.

A return puts goods back into stock, issues a ``RTN-`` invoice with a
negative line, records a negative customer transaction and a
:class:`ReturnTracking` row, then adjusts today's figures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from ..constants import RETURN_INVOICE_PREFIX, STATUS_PAID, TYPE_RETURN
from ..db import get_session, to_decimal
from ..errors import DayClosedError, NotFoundError, ValidationError
from ..metrics import RETURNS_TOTAL
from ..models import CustomerTransaction, Invoice, InvoiceItem, Product, ReturnTracking
from . import catalog, daily_inventory, financial
from .activity import add_activity
from .cashier import returned_quantity

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class ReturnLine:
    product_id: int
    quantity: int


def load_original(db, invoice_number: str) -> Invoice:
    invoice = (
        db.query(Invoice)
        .options(selectinload(Invoice.items).joinedload(InvoiceItem.product))
        .filter(Invoice.invoice_number == (invoice_number or "").strip())
        .first()
    )
    if invoice is None:
        raise NotFoundError(f"Original invoice {invoice_number} not found")
    return invoice


def original_line(invoice: Invoice, product_id: int) -> InvoiceItem:
    line = next(
        (i for i in invoice.items if i.product_id == product_id and i.quantity > 0),
        None,
    )
    if line is None:
        raise ValidationError("The product is not on the original invoice")
    return line


def paid_unit_price(line: InvoiceItem) -> Decimal:
    """Price the customer actually paid per unit, discount deducted."""
    return to_decimal(Decimal(line.unit_price) - Decimal(line.discount or 0))


def unique_invoice_number(db, base: str) -> str:
    number, suffix = base, 2
    while db.query(Invoice.id).filter(Invoice.invoice_number == number).first():
        number = f"{base}-{suffix}"
        suffix += 1
    return number


def invoice_items_for_return(invoice_number: str) -> Dict[str, Any]:
    """Per original line: quantity sold, already returned and still returnable."""
    with get_session() as db:
        invoice = load_original(db, invoice_number)
        items = []
        for line in invoice.items:
            if line.quantity <= 0:
                continue
            returned = returned_quantity(db, invoice.invoice_number, line.product_id)
            items.append(
                {
                    "product_id": line.product_id,
                    "product_name": line.product.name if line.product else "",
                    "original_quantity": abs(line.quantity),
                    "returned_quantity": returned,
                    "available_quantity": max(abs(line.quantity) - returned, 0),
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
    return_invoice: Invoice,
    line: ReturnLine,
    reason: Optional[str],
    notes: Optional[str],
    user: Optional[str],
) -> ReturnTracking:
    if line.quantity <= 0:
        raise ValidationError("Returned quantity must be at least 1")
    source = original_line(original, line.product_id)
    available = abs(source.quantity) - returned_quantity(
        db, original.invoice_number, line.product_id
    )
    if line.quantity > available:
        raise ValidationError(
            f"Cannot return {line.quantity} units, only {available} left on invoice "
            f"{original.invoice_number}"
        )
    product = db.get(Product, line.product_id)
    if product is None:
        raise NotFoundError("Product not found")

    price = paid_unit_price(source)
    total = to_decimal(-price * line.quantity)
    now = datetime.now()
    tracking = ReturnTracking(
        original_invoice_number=original.invoice_number,
        return_invoice_number=return_invoice.invoice_number,
        product_id=product.id,
        returned_quantity=line.quantity,
        return_reason=reason,
        return_date=now,
        notes=notes,
        created_by=user or "System",
        created_at=now,
    )
    db.add(tracking)
    return_invoice.items.append(
        InvoiceItem(
            product_id=product.id,
            quantity=-line.quantity,
            unit_price=price,
            discount=ZERO,
            total_price=total,
            color=source.color,
            size=source.size,
            notes="Returned item",
        )
    )
    db.add(
        CustomerTransaction(
            customer_id=original.customer_id,
            product_id=product.id,
            quantity=-line.quantity,
            price=price,
            discount=ZERO,
            total_price=total,
            shipping_cost=ZERO,
            amount_paid=ZERO,
            date=now,
            color=source.color,
            size=source.size,
            notes=f"Return {line.quantity} x {product.name} ({return_invoice.invoice_number})",
        )
    )
    product.quantity += line.quantity
    db.flush()
    try:
        financial.apply_return(
            db,
            product,
            original.customer_id,
            line.quantity,
            price,
            return_invoice.invoice_number,
            user,
        )
    except DayClosedError as exc:
        logger.warning(
            "Return %s left out of the daily figures: %s", return_invoice.invoice_number, exc
        )
    return tracking


def _return_invoice(db, original: Invoice, number: str, reason, notes, user) -> Invoice:
    now = datetime.now()
    invoice = Invoice(
        invoice_number=unique_invoice_number(db, number),
        order_number=f"{RETURN_INVOICE_PREFIX}{original.order_number or original.invoice_number}",
        customer_id=original.customer_id,
        invoice_date=now,
        total_amount=ZERO,
        amount_paid=ZERO,
        remaining_amount=ZERO,
        status=STATUS_PAID,
        type=TYPE_RETURN,
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


def _close_totals(invoice: Invoice) -> None:
    total = to_decimal(sum((Decimal(i.total_price) for i in invoice.items), ZERO))
    invoice.total_amount = total
    invoice.amount_paid = total
    invoice.remaining_amount = ZERO


def create_return(
    original_invoice_number: str,
    product_id: int,
    quantity: int,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    user: Optional[str] = None,
) -> Invoice:
    """Return ``quantity`` units of one product from an original invoice."""
    with get_session() as db:
        original = load_original(db, original_invoice_number)
        base = f"{RETURN_INVOICE_PREFIX}{original.order_number or original.invoice_number}"
        invoice = _return_invoice(db, original, base, reason, notes, user)
        tracking = _book_line(
            db, original, invoice, ReturnLine(product_id, quantity), reason, notes, user
        )
        _close_totals(invoice)
        product_name = db.get(Product, product_id).name
        if not invoice.notes:
            invoice.notes = f"Return {quantity} x {product_name}"
        add_activity(
            db,
            "return",
            "invoice",
            original.invoice_number,
            f"Returned {tracking.returned_quantity} x {product_name} on {invoice.invoice_number}",
            user,
        )
    RETURNS_TOTAL.inc()
    catalog.refresh_low_stock_gauge()
    logger.info("Return %s booked against %s", invoice.invoice_number, original_invoice_number)
    return invoice


def multi_return(
    original_invoice_number: str,
    items: Iterable[Dict[str, Any]],
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    user: Optional[str] = None,
) -> Invoice:
    """Return several products under a single return invoice."""
    lines = [
        ReturnLine(int(item["product_id"]), int(item["quantity"]))
        for item in items
        if int(item.get("quantity") or 0) > 0
    ]
    if not lines:
        raise ValidationError("Select at least one product to return")
    with get_session() as db:
        original = load_original(db, original_invoice_number)
        number = f"{RETURN_INVOICE_PREFIX}{datetime.now():%Y%m%d%H%M%S}"
        invoice = _return_invoice(db, original, number, reason, notes, user)
        for line in lines:
            _book_line(db, original, invoice, line, reason, notes, user)
        _close_totals(invoice)
        if not invoice.notes:
            invoice.notes = f"Return of {len(lines)} products"
        add_activity(
            db,
            "return",
            "invoice",
            original.invoice_number,
            f"Returned {len(lines)} products on {invoice.invoice_number}",
            user,
        )
    RETURNS_TOTAL.inc(len(lines))
    catalog.refresh_low_stock_gauge()
    return invoice


def _delete_in(db, tracking: ReturnTracking) -> set:
    """Undo one return and report the days that need recalculation."""
    days = set()
    product = db.get(Product, tracking.product_id)
    if product is not None:
        product.quantity = max(product.quantity - tracking.returned_quantity, 0)

    number = tracking.return_invoice_number
    if number:
        transactions = (
            db.query(CustomerTransaction)
            .filter(
                CustomerTransaction.product_id == tracking.product_id,
                CustomerTransaction.notes.contains(f"({number})"),
            )
            .all()
        )
        for txn in transactions:
            days.add(txn.date.date())
            db.delete(txn)
        invoice = (
            db.query(Invoice)
            .options(selectinload(Invoice.items))
            .filter(Invoice.invoice_number == number)
            .first()
        )
        if invoice is not None:
            for item in [i for i in invoice.items if i.product_id == tracking.product_id]:
                invoice.items.remove(item)
            if not invoice.items:
                db.delete(invoice)
    db.delete(tracking)
    return days


def delete_return(tracking_id: int, user: Optional[str] = None) -> None:
    with get_session() as db:
        tracking = db.get(ReturnTracking, tracking_id)
        if tracking is None:
            raise NotFoundError("Return not found")
        number = tracking.return_invoice_number
        days = _delete_in(db, tracking)
        add_activity(db, "delete", "return", number, "Return deleted and stock reversed", user)
    daily_inventory.recalculate_days_safely(days)
    catalog.refresh_low_stock_gauge()


def multi_delete(tracking_ids: Iterable[int], user: Optional[str] = None) -> int:
    ids = [int(i) for i in tracking_ids]
    if not ids:
        raise ValidationError("Select at least one return")
    days = set()
    with get_session() as db:
        rows = db.query(ReturnTracking).filter(ReturnTracking.id.in_(ids)).all()
        for tracking in rows:
            days |= _delete_in(db, tracking)
        add_activity(db, "delete", "return", None, f"Deleted {len(rows)} returns", user)
    daily_inventory.recalculate_days_safely(days)
    catalog.refresh_low_stock_gauge()
    return len(rows)


def delete_all(user: Optional[str] = None) -> int:
    with get_session() as db:
        ids = [i for (i,) in db.query(ReturnTracking.id).all()]
    if not ids:
        return 0
    return multi_delete(ids, user)


def list_returns() -> List[ReturnTracking]:
    with get_session() as db:
        return (
            db.query(ReturnTracking)
            .options(joinedload(ReturnTracking.product))
            .order_by(ReturnTracking.return_date.desc(), ReturnTracking.id.desc())
            .all()
        )


def get_return(tracking_id: int) -> Optional[ReturnTracking]:
    with get_session() as db:
        return (
            db.query(ReturnTracking)
            .options(joinedload(ReturnTracking.product))
            .filter_by(id=tracking_id)
            .first()
        )


def returns_summary() -> Dict[str, int]:
    with get_session() as db:
        count, quantity = db.query(
            func.count(ReturnTracking.id),
            func.coalesce(func.sum(ReturnTracking.returned_quantity), 0),
        ).one()
        return {"count": int(count or 0), "quantity": int(quantity or 0)}


__all__ = [
    "ReturnLine",
    "create_return",
    "delete_all",
    "delete_return",
    "get_return",
    "invoice_items_for_return",
    "list_returns",
    "load_original",
    "multi_delete",
    "multi_return",
    "original_line",
    "paid_unit_price",
    "returns_summary",
    "unique_invoice_number",
]
