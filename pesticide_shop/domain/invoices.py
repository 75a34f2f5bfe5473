from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import joinedload, selectinload

from ..config import settings
from ..constants import (
    INVOICE_STATUSES,
    SHIPPING_TYPES,
    STATUS_PAID,
    STATUS_PARTIALLY_PAID,
)
from ..db import get_session, to_decimal
from ..errors import NotFoundError, ValidationError
from ..models import Customer, CustomerTransaction, Invoice, InvoiceItem
from ..utils import day_bounds
from . import daily_inventory
from .activity import add_activity

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
PAYMENT_NOTE = "Additional payment for invoice {number}"


@dataclass
class InvoiceRow:
    """An invoice with per-direction item figures for listings."""

    invoice: Invoice
    sales_items_count: int
    returns_items_count: int
    sales_amount: Decimal
    returns_amount: Decimal

    @classmethod
    def build(cls, invoice: Invoice) -> "InvoiceRow":
        sales = [i for i in invoice.items if i.quantity > 0]
        returns = [i for i in invoice.items if i.quantity < 0]
        return cls(
            invoice=invoice,
            sales_items_count=len(sales),
            returns_items_count=len(returns),
            sales_amount=to_decimal(sum((Decimal(i.total_price) for i in sales), ZERO)),
            returns_amount=to_decimal(abs(sum((Decimal(i.total_price) for i in returns), ZERO))),
        )


@dataclass
class InvoicePage:
    rows: List[InvoiceRow]
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


def _filtered_query(
    db,
    search: str = "",
    status: str = "",
    type_: str = "",
    origin: str = "",
    payment_method: str = "",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    query = (
        db.query(Invoice)
        .outerjoin(Customer, Invoice.customer_id == Customer.id)
        .options(
            joinedload(Invoice.customer),
            selectinload(Invoice.items).joinedload(InvoiceItem.product),
        )
    )
    search = (search or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(
            or_(
                Invoice.invoice_number.ilike(like),
                Invoice.order_number.ilike(like),
                Customer.name.ilike(like),
                Customer.phone_number.ilike(like),
            )
        )
    if status:
        query = query.filter(Invoice.status == status)
    if type_:
        query = query.filter(Invoice.type == type_)
    if origin:
        query = query.filter(Invoice.order_origin == origin)
    if payment_method:
        query = query.filter(Invoice.payment_method == payment_method)
    if date_from:
        query = query.filter(Invoice.invoice_date >= day_bounds(date_from)[0])
    if date_to:
        query = query.filter(Invoice.invoice_date <= day_bounds(date_to)[1])
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc())


def list_invoices(
    search: str = "",
    status: str = "",
    type_: str = "",
    origin: str = "",
    payment_method: str = "",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    page_size: Optional[int] = None,
) -> InvoicePage:
    page_size = page_size or settings.INVOICES_PAGE_SIZE
    page = max(page, 1)
    with get_session() as db:
        query = _filtered_query(
            db, search, status, type_, origin, payment_method, date_from, date_to
        )
        total = query.order_by(None).count()
        invoices = query.offset((page - 1) * page_size).limit(page_size).all()
        return InvoicePage([InvoiceRow.build(i) for i in invoices], page, page_size, total)


def orders(
    search: str = "",
    status: str = "",
    type_: str = "",
    origin: str = "",
    payment_method: str = "",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[InvoiceRow]:
    with get_session() as db:
        query = _filtered_query(
            db, search, status, type_, origin, payment_method, date_from, date_to
        )
        return [InvoiceRow.build(i) for i in query.all()]


def customer_orders(customer_id: int) -> List[InvoiceRow]:
    with get_session() as db:
        invoices = (
            db.query(Invoice)
            .options(selectinload(Invoice.items).joinedload(InvoiceItem.product))
            .filter(Invoice.customer_id == customer_id)
            .order_by(Invoice.created_at.desc())
            .all()
        )
        return [InvoiceRow.build(i) for i in invoices]


def get_invoice(key: Union[int, str]) -> Optional[Invoice]:
    """Fetch an invoice by id or by invoice number with items and customer."""
    with get_session() as db:
        query = db.query(Invoice).options(
            joinedload(Invoice.customer),
            selectinload(Invoice.items).joinedload(InvoiceItem.product),
        )
        if isinstance(key, int):
            return query.filter(Invoice.id == key).first()
        return query.filter(Invoice.invoice_number == key).first()


def require_invoice(key: Union[int, str]) -> Invoice:
    invoice = get_invoice(key)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def payment_methods() -> List[str]:
    with get_session() as db:
        rows = db.query(Invoice.payment_method).distinct().all()
        return sorted(value for (value,) in rows if value)


def update_status(invoice_id: int, status: str, user: Optional[str] = None) -> Invoice:
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"Unknown invoice status {status}")
    with get_session() as db:
        invoice = db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        previous = invoice.status
        invoice.status = status
        invoice.updated_at = datetime.now()
        add_activity(
            db,
            "update_status",
            "invoice",
            invoice.invoice_number,
            f"{INVOICE_STATUSES.get(previous, previous)} -> {INVOICE_STATUSES[status]}",
            user,
        )
    return invoice


def _book_payment(db, invoice: Invoice, amount: Decimal) -> Optional[CustomerTransaction]:
    """Record an extra payment as a zero-quantity customer transaction dated now."""
    product_id = next((item.product_id for item in invoice.items if item.product_id), None)
    if invoice.customer_id is None or product_id is None:
        logger.warning(
            "Invoice %s has no customer or product, payment kept on the invoice only",
            invoice.invoice_number,
        )
        return None
    txn = CustomerTransaction(
        customer_id=invoice.customer_id,
        product_id=product_id,
        quantity=0,
        price=ZERO,
        total_price=ZERO,
        discount=ZERO,
        shipping_cost=ZERO,
        amount_paid=amount,
        date=datetime.now(),
        notes=PAYMENT_NOTE.format(number=invoice.invoice_number),
    )
    db.add(txn)
    db.flush()
    return txn


def update_payment(
    invoice_id: int,
    additional_amount,
    shipping_type: Optional[str] = None,
    user: Optional[str] = None,
) -> Invoice:
    amount = to_decimal(additional_amount)
    if amount <= 0:
        raise ValidationError("Additional amount must be greater than zero")
    if shipping_type and shipping_type not in SHIPPING_TYPES:
        raise ValidationError(f"Unknown shipping type {shipping_type}")
    with get_session() as db:
        invoice = db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        invoice.amount_paid = to_decimal(Decimal(invoice.amount_paid) + amount)
        payment = _book_payment(db, invoice, amount)
        if shipping_type:
            invoice.shipping_type = shipping_type
        invoice.remaining_amount = to_decimal(
            Decimal(invoice.total_amount) - Decimal(invoice.amount_paid)
        )
        if invoice.remaining_amount <= 0:
            invoice.status = STATUS_PAID
        elif invoice.amount_paid > 0:
            invoice.status = STATUS_PARTIALLY_PAID
        invoice.updated_at = datetime.now()
        add_activity(
            db,
            "update_payment",
            "invoice",
            invoice.invoice_number,
            f"Additional payment {amount}",
            user,
        )
    if payment is not None:
        daily_inventory.process_transactions_safely([payment.id])
    return invoice


def delete_invoice(invoice_id: int, user: Optional[str] = None) -> str:
    """Delete an invoice and its items; stock is not restored."""
    with get_session() as db:
        invoice = db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        number = invoice.invoice_number
        add_activity(
            db,
            "critical_delete",
            "invoice",
            number,
            f"Deleted invoice {number}, total {invoice.total_amount}",
            user,
        )
        db.delete(invoice)
    logger.warning("Invoice %s deleted by %s", number, user or "System")
    return number


def delete_all_invoices(user: Optional[str] = None) -> int:
    with get_session() as db:
        invoices = db.query(Invoice).all()
        for invoice in invoices:
            db.delete(invoice)
        if invoices:
            add_activity(
                db,
                "critical_delete",
                "invoice",
                "all",
                f"Deleted all invoices ({len(invoices)})",
                user,
            )
    logger.warning("All %s invoices deleted by %s", len(invoices), user or "System")
    return len(invoices)


def invoices_for_day(day: date) -> List[Invoice]:
    start, end = day_bounds(day)
    with get_session() as db:
        return (
            db.query(Invoice)
            .options(
                joinedload(Invoice.customer),
                selectinload(Invoice.items).joinedload(InvoiceItem.product),
            )
            .filter(Invoice.invoice_date >= start, Invoice.invoice_date <= end)
            .order_by(Invoice.invoice_date.asc())
            .all()
        )


def invoice_json(invoice: Invoice) -> Dict[str, Any]:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "order_number": invoice.order_number,
        "customer": invoice.customer.name if invoice.customer else "",
        "invoice_date": invoice.invoice_date.isoformat(),
        "status": invoice.status,
        "type": invoice.type,
        "total_amount": float(invoice.total_amount),
        "amount_paid": float(invoice.amount_paid),
        "remaining_amount": float(invoice.remaining_amount),
    }


__all__ = [
    "InvoicePage",
    "InvoiceRow",
    "customer_orders",
    "delete_all_invoices",
    "delete_invoice",
    "get_invoice",
    "invoice_json",
    "invoices_for_day",
    "list_invoices",
    "orders",
    "payment_methods",
    "require_invoice",
    "update_payment",
    "update_status",
]
