"""
Point-of-sale processing.

A cashier request carries a customer and a basket of items.  Positive
quantities are sales, negative ones are returns; a basket mixing both is
an exchange.  The whole request is booked in one session:

- customer lookup or creation
- return limits against the original invoice
- stock movements and one customer transaction per item
- the invoice with its items
- payment distribution over the transactions
- return and exchange tracking rows

Daily inventory bookkeeping follows the commit and is best-effort.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from ..constants import (
    DEFAULT_ORDER_ORIGIN,
    INVOICE_STATUSES,
    INVOICE_TYPES,
    ORDER_ORIGINS,
    SHIPPING_TYPES,
    STATUS_PAID,
    TYPE_RETURN,
    TYPE_SALE,
)
from ..db import get_session, to_decimal
from ..errors import DuplicateError, InsufficientStockError, NotFoundError, ValidationError
from ..metrics import INVOICES_CREATED_TOTAL, RETURNS_TOTAL, EXCHANGES_TOTAL, STOCK_ERRORS_TOTAL
from ..models import (
    Customer,
    CustomerTransaction,
    ExchangeTracking,
    Invoice,
    InvoiceItem,
    Product,
    ReturnTracking,
)
from ..utils import to_int
from . import catalog, daily_inventory
from .activity import add_activity

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _amount(data: Dict[str, Any], key: str, label: str) -> Decimal:
    try:
        value = to_decimal(data.get(key))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(f"{label} must be a number") from exc
    if not value.is_finite():
        raise ValidationError(f"{label} must be a number")
    return value


@dataclass
class TransactionItem:
    """One basket line; a negative quantity returns goods."""
    product_id: int = 0
    product_name: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: int = 0
    price: Decimal = ZERO
    discount: Decimal = ZERO
    notes: Optional[str] = None

    @property
    def net_unit_price(self) -> Decimal:
        return self.price - self.discount

    @property
    def total_price(self) -> Decimal:
        return to_decimal(self.net_unit_price * self.quantity)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionItem":
        price = _amount(data, "price", "Price")
        discount = _amount(data, "discount", "Discount")
        if price < 0:
            raise ValidationError("Price cannot be negative")
        if discount < 0 or discount > price:
            raise ValidationError("Discount must be between zero and the price")
        return cls(
            product_id=to_int(data.get("product_id")),
            product_name=data.get("product_name") or None,
            color=data.get("color") or None,
            size=data.get("size") or None,
            quantity=to_int(data.get("quantity")),
            price=price,
            discount=discount,
            notes=data.get("notes") or None,
        )


@dataclass
class TransactionRequest:
    customer_id: int = 0
    customer_name: str = ""
    customer_phone: str = ""
    customer_additional_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_governorate: Optional[str] = None
    customer_district: Optional[str] = None
    customer_detailed_address: Optional[str] = None
    customer_address: Optional[str] = None
    amount_paid: Decimal = ZERO
    invoice_number: Optional[str] = None
    order_number: Optional[str] = None
    policy_number: Optional[str] = None
    invoice_status: str = STATUS_PAID
    order_origin: str = DEFAULT_ORDER_ORIGIN
    payment_method: Optional[str] = None
    shipping_cost: Decimal = ZERO
    shipping_type: Optional[str] = None
    invoice_type: str = TYPE_SALE
    original_invoice_number: Optional[str] = None
    notes: Optional[str] = None
    cashier_name: Optional[str] = None
    items: List[TransactionItem] = field(default_factory=list)

    @property
    def return_items(self) -> List[TransactionItem]:
        return [i for i in self.items if i.quantity < 0]

    @property
    def sale_items(self) -> List[TransactionItem]:
        return [i for i in self.items if i.quantity > 0]

    @property
    def involves_return(self) -> bool:
        return bool(self.return_items) or self.invoice_type == TYPE_RETURN

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionRequest":
        def text(key):
            value = data.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        status = text("invoice_status") or STATUS_PAID
        origin = text("order_origin") or DEFAULT_ORDER_ORIGIN
        invoice_type = text("invoice_type") or TYPE_SALE
        shipping_type = text("shipping_type")
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"Unknown invoice status {status}")
        if origin not in ORDER_ORIGINS:
            raise ValidationError(f"Unknown order origin {origin}")
        if invoice_type not in INVOICE_TYPES:
            raise ValidationError(f"Unknown invoice type {invoice_type}")
        if shipping_type and shipping_type not in SHIPPING_TYPES:
            raise ValidationError(f"Unknown shipping type {shipping_type}")
        amount_paid = _amount(data, "amount_paid", "Amount paid")
        shipping_cost = _amount(data, "shipping_cost", "Shipping cost")
        if amount_paid < 0:
            raise ValidationError("Amount paid cannot be negative")
        if shipping_cost < 0:
            raise ValidationError("Shipping cost cannot be negative")
        return cls(
            customer_id=to_int(data.get("customer_id")),
            customer_name=text("customer_name") or "",
            customer_phone=text("customer_phone") or "",
            customer_additional_phone=text("customer_additional_phone"),
            customer_email=text("customer_email"),
            customer_governorate=text("customer_governorate"),
            customer_district=text("customer_district"),
            customer_detailed_address=text("customer_detailed_address"),
            customer_address=text("customer_address"),
            amount_paid=amount_paid,
            invoice_number=text("invoice_number"),
            order_number=text("order_number"),
            policy_number=text("policy_number"),
            invoice_status=status,
            order_origin=origin,
            payment_method=text("payment_method"),
            shipping_cost=shipping_cost,
            shipping_type=shipping_type,
            invoice_type=invoice_type,
            original_invoice_number=text("original_invoice_number"),
            notes=text("notes"),
            cashier_name=text("cashier_name"),
            items=[TransactionItem.from_dict(i) for i in data.get("items") or []],
        )


# ----------------------------------------------------------------------
# Lookups and numbering
# ----------------------------------------------------------------------
def find_product(db, product_id: int, product_name: Optional[str] = None) -> Optional[Product]:
    if product_id:
        return db.get(Product, product_id)
    if product_name:
        return db.query(Product).filter(Product.name == product_name).first()
    return None


def _next_number(values) -> str:
    numbers = [int(v) for v in values if v and v.isdigit()]
    return f"{max(numbers, default=0) + 1:04d}"


def next_invoice_number(db) -> str:
    return _next_number(v for (v,) in db.query(Invoice.invoice_number).all())


def next_order_number(db) -> str:
    return _next_number(v for (v,) in db.query(Invoice.order_number).all())


def generate_numbers() -> Dict[str, str]:
    with get_session() as db:
        return {
            "invoice_number": next_invoice_number(db),
            "order_number": next_order_number(db),
        }


def invoice_number_exists(number: str) -> bool:
    with get_session() as db:
        return db.query(Invoice).filter(Invoice.invoice_number == number).first() is not None


def order_number_exists(number: str) -> bool:
    with get_session() as db:
        return db.query(Invoice).filter(Invoice.order_number == number).first() is not None


# ----------------------------------------------------------------------
# Steps of a transaction
# ----------------------------------------------------------------------
def validate_or_create_customer(db, request: TransactionRequest) -> Customer:
    if request.customer_id > 0:
        customer = db.get(Customer, request.customer_id)
        if customer is not None:
            return customer

    if request.customer_phone:
        customer = (
            db.query(Customer)
            .filter(Customer.phone_number == request.customer_phone)
            .first()
        )
        if customer is not None:
            if request.customer_id == 0:
                raise DuplicateError(
                    f"Phone number {request.customer_phone} is already registered "
                    f"to {customer.name}"
                )
            return customer

    if not request.customer_name or not request.customer_phone:
        raise ValidationError("Customer name and phone number are required")

    customer = Customer(
        name=request.customer_name,
        phone_number=request.customer_phone,
        additional_phone=request.customer_additional_phone,
        email=request.customer_email,
        governorate=request.customer_governorate,
        district=request.customer_district,
        detailed_address=request.customer_detailed_address,
        address=request.customer_address,
        created_at=datetime.now(),
    )
    db.add(customer)
    db.flush()
    add_activity(db, "create", "customer", customer.name, "Created from the cashier", request.cashier_name)
    logger.info("Created customer %s from the cashier", customer.name)
    return customer


def returned_quantity(db, invoice_number: str, product_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(ReturnTracking.returned_quantity), 0))
        .filter(
            ReturnTracking.original_invoice_number == invoice_number,
            ReturnTracking.product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def validate_return_request(db, request: TransactionRequest) -> None:
    """Refuse returns that exceed what the original invoice still holds."""
    if not request.original_invoice_number:
        return
    original = (
        db.query(Invoice)
        .options(selectinload(Invoice.items).joinedload(InvoiceItem.product))
        .filter(Invoice.invoice_number == request.original_invoice_number)
        .first()
    )
    if original is None:
        raise NotFoundError(
            f"Original invoice {request.original_invoice_number} not found"
        )
    pending: Dict[int, int] = {}
    for item in request.return_items:
        line = next(
            (
                i
                for i in original.items
                if i.product_id == item.product_id
                or (i.product is not None and item.product_name and i.product.name == item.product_name)
            ),
            None,
        )
        label = item.product_name or f"#{item.product_id}"
        if line is None:
            raise ValidationError(f"Product {label} is not on the original invoice")
        # earlier lines of this basket count against the same original line
        previous = returned_quantity(db, original.invoice_number, line.product_id)
        previous += pending.get(line.product_id, 0)
        requested = abs(item.quantity)
        if previous + requested > abs(line.quantity):
            raise ValidationError(
                f"Cannot return {requested} of {label}: "
                f"{abs(line.quantity) - previous} left on the original invoice"
            )
        pending[line.product_id] = pending.get(line.product_id, 0) + requested


def _assign_numbers(db, request: TransactionRequest) -> None:
    if request.invoice_number:
        if db.query(Invoice).filter_by(invoice_number=request.invoice_number).first():
            raise DuplicateError(f"Invoice number {request.invoice_number} already exists")
    else:
        request.invoice_number = next_invoice_number(db)
    if request.order_number:
        if db.query(Invoice).filter_by(order_number=request.order_number).first():
            raise DuplicateError(f"Order number {request.order_number} already exists")
    else:
        request.order_number = next_order_number(db)


def _item_notes(item: TransactionItem) -> Optional[str]:
    parts = []
    if item.color:
        parts.append(f"Color: {item.color}")
    if item.size:
        parts.append(f"Size: {item.size}")
    notes = item.notes or ""
    if parts:
        notes = f"{notes} | {' - '.join(parts)}" if notes else " - ".join(parts)
    return notes or None


def process_items(
    db, request: TransactionRequest, customer: Customer
) -> List[CustomerTransaction]:
    """Move stock and create one customer transaction per basket line."""
    transactions = []
    now = datetime.now()
    for item in request.items:
        if item.quantity == 0:
            raise ValidationError("Item quantity must not be zero")
        product = find_product(db, item.product_id, item.product_name)
        if product is None:
            raise NotFoundError(f"Product not found: {item.product_name or item.product_id}")
        item.product_id = product.id
        item.product_name = item.product_name or product.name
        if item.quantity > 0:
            if product.quantity < item.quantity:
                STOCK_ERRORS_TOTAL.inc()
                raise InsufficientStockError(product.name, product.quantity, item.quantity)
            product.quantity -= item.quantity
        else:
            product.quantity += abs(item.quantity)
        txn = CustomerTransaction(
            customer_id=customer.id,
            product_id=product.id,
            quantity=item.quantity,
            price=to_decimal(item.price),
            discount=to_decimal(item.discount),
            total_price=item.total_price,
            shipping_cost=ZERO,
            amount_paid=ZERO,
            shipping_type=request.shipping_type,
            date=now,
            color=item.color or product.color,
            size=item.size or product.size,
            notes=_item_notes(item),
        )
        db.add(txn)
        transactions.append(txn)
    db.flush()
    return transactions


def _invoice_notes(request: TransactionRequest) -> str:
    if request.return_items and request.sale_items:
        notes = ["Operation: sale and return"]
    elif request.return_items:
        notes = ["Operation: return"]
    else:
        notes = ["Operation: sale"]
    if request.original_invoice_number:
        notes.append(f"Linked to invoice: {request.original_invoice_number}")
    if request.notes:
        notes.append(f"Notes: {request.notes}")
    item_notes = [f"{i.product_name}: {i.notes}" for i in request.items if i.notes]
    if item_notes:
        notes.append(f"Details: {', '.join(item_notes)}")
    return " | ".join(notes)


def create_invoice(
    db,
    request: TransactionRequest,
    customer: Customer,
    transactions: List[CustomerTransaction],
) -> Invoice:
    total = to_decimal(sum((Decimal(t.total_price) for t in transactions), ZERO))
    discount = to_decimal(
        sum((item.discount * abs(item.quantity) for item in request.items), ZERO)
    )
    if total < 0:
        amount_paid, remaining, invoice_type = total, ZERO, TYPE_RETURN
    else:
        amount_paid = to_decimal(request.amount_paid)
        remaining = to_decimal(total - amount_paid)
        invoice_type = request.invoice_type
    now = datetime.now()
    invoice = Invoice(
        invoice_number=request.invoice_number,
        order_number=request.order_number,
        policy_number=request.policy_number,
        customer_id=customer.id,
        invoice_date=now,
        total_amount=total,
        discount=discount,
        shipping_cost=to_decimal(request.shipping_cost) if total >= 0 else ZERO,
        shipping_type=request.shipping_type,
        amount_paid=amount_paid,
        remaining_amount=remaining,
        status=request.invoice_status,
        type=invoice_type,
        order_origin=request.order_origin,
        payment_method=request.payment_method,
        notes=_invoice_notes(request),
        original_invoice_number=request.original_invoice_number,
        cashier_name=request.cashier_name,
        created_at=now,
    )
    for txn in transactions:
        invoice.items.append(
            InvoiceItem(
                product_id=txn.product_id,
                quantity=txn.quantity,
                unit_price=txn.price,
                discount=txn.discount,
                total_price=txn.total_price,
                color=txn.color,
                size=txn.size,
                notes=txn.notes,
            )
        )
    db.add(invoice)
    db.flush()
    return invoice


def distribute_payment(transactions: List[CustomerTransaction], amount_paid) -> None:
    """Spread ``amount_paid`` over the transactions pro rata to their totals.

    The last transaction absorbs rounding so the parts add up exactly.
    """
    if not transactions:
        return
    amount_paid = to_decimal(amount_paid)
    net_total = sum((Decimal(t.total_price) for t in transactions), ZERO)
    allocated = ZERO
    for index, txn in enumerate(transactions):
        if net_total > 0:
            if index == len(transactions) - 1:
                txn.amount_paid = to_decimal(amount_paid - allocated)
            else:
                share = to_decimal(Decimal(txn.total_price) / net_total * amount_paid)
                txn.amount_paid = share
                allocated += share
        else:
            txn.amount_paid = to_decimal(txn.total_price)
        txn.shipping_cost = ZERO


def save_return_tracking(db, request: TransactionRequest) -> List[ReturnTracking]:
    rows = []
    for item in request.return_items:
        row = ReturnTracking(
            original_invoice_number=request.original_invoice_number or "",
            product_id=item.product_id,
            returned_quantity=abs(item.quantity),
            return_invoice_number=request.invoice_number,
            return_date=datetime.now(),
            return_reason=request.notes or "Product return",
            created_by=request.cashier_name or "System",
            created_at=datetime.now(),
        )
        db.add(row)
        rows.append(row)
    return rows


def save_exchange_tracking(db, request: TransactionRequest) -> List[ExchangeTracking]:
    """Pair returned lines with sold lines in basket order."""
    rows = []
    if not request.return_items or not request.sale_items:
        return rows
    for returned, sold in zip(request.return_items, request.sale_items):
        row = ExchangeTracking(
            original_invoice_number=request.original_invoice_number or "",
            exchange_invoice_number=request.invoice_number,
            old_product_id=returned.product_id,
            new_product_id=sold.product_id,
            exchanged_quantity=min(abs(returned.quantity), sold.quantity),
            price_difference=to_decimal(
                sold.price * sold.quantity - returned.price * abs(returned.quantity)
            ),
            exchange_reason=request.notes or "Product exchange",
            exchange_date=datetime.now(),
            created_by=request.cashier_name or "System",
            created_at=datetime.now(),
        )
        db.add(row)
        rows.append(row)
    return rows


def _result_message(request: TransactionRequest) -> str:
    returned, sold = request.return_items, request.sale_items
    if returned and sold:
        return f"Transaction completed: {len(returned)} returned items exchanged for {len(sold)} items"
    if returned:
        return f"Transaction completed: {len(returned)} items returned to stock"
    return f"Transaction completed: {len(sold)} items sold"


def process_transaction(request: TransactionRequest) -> Dict[str, Any]:
    """Book a full cashier request and return a summary for the client."""
    from . import invoices
    from .. import notifications

    if not request.items:
        raise ValidationError("The basket is empty")

    with get_session() as db:
        customer = validate_or_create_customer(db, request)
        if request.involves_return:
            validate_return_request(db, request)
        _assign_numbers(db, request)
        transactions = process_items(db, request, customer)
        invoice = create_invoice(db, request, customer, transactions)
        distribute_payment(transactions, invoice.amount_paid)
        returns = save_return_tracking(db, request)
        exchanges = save_exchange_tracking(db, request)
        add_activity(
            db,
            "create",
            "invoice",
            invoice.invoice_number,
            f"{INVOICE_TYPES[invoice.type]} for {customer.name}, total {invoice.total_amount}",
            request.cashier_name,
        )
        transaction_ids = [t.id for t in transactions]
        invoice_id = invoice.id
        customer_id = customer.id
        customer_name = customer.name

    daily_inventory.process_transactions_safely(transaction_ids)
    INVOICES_CREATED_TOTAL.labels(type=invoice.type).inc()
    if returns:
        RETURNS_TOTAL.inc(len(returns))
    if exchanges:
        EXCHANGES_TOTAL.inc(len(exchanges))
    catalog.refresh_low_stock_gauge()
    logger.info(
        "Cashier invoice %s booked for %s: %s items, total %s",
        invoice.invoice_number,
        customer_name,
        len(transaction_ids),
        invoice.total_amount,
    )

    stored = invoices.get_invoice(invoice_id)
    message = notifications.whatsapp_message(stored)
    return {
        "success": True,
        "message": _result_message(request),
        "invoice_id": invoice_id,
        "invoice_number": invoice.invoice_number,
        "order_number": invoice.order_number,
        "total_amount": float(invoice.total_amount),
        "amount_paid": float(invoice.amount_paid),
        "remaining_amount": float(invoice.remaining_amount),
        "customer_id": customer_id,
        "customer_name": customer_name,
        "items_count": len(request.items),
        "has_returns": bool(request.return_items),
        "has_sales": bool(request.sale_items),
        "has_exchange": bool(request.return_items and request.sale_items),
        "whatsapp_url": notifications.whatsapp_url(stored.customer.phone_number, message),
    }


# ----------------------------------------------------------------------
# Return lookups
# ----------------------------------------------------------------------
def search_invoices_for_return(term: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Invoices matching ``term`` that still have items left to return."""
    term = (term or "").strip()
    if not term:
        raise ValidationError("Invoice number is required")
    with get_session() as db:
        invoices = (
            db.query(Invoice)
            .options(
                joinedload(Invoice.customer),
                selectinload(Invoice.items).joinedload(InvoiceItem.product),
            )
            .filter(Invoice.invoice_number.contains(term))
            .order_by(Invoice.created_at.desc())
            .limit(limit)
            .all()
        )
        result = []
        for invoice in invoices:
            items = []
            for item in invoice.items:
                returned = returned_quantity(db, invoice.invoice_number, item.product_id)
                available = item.quantity - returned
                if available <= 0:
                    continue
                items.append(
                    {
                        "product_id": item.product_id,
                        "product_name": item.product.name if item.product else "",
                        "original_quantity": item.quantity,
                        "returned_quantity": returned,
                        "available_for_return": available,
                        "unit_price": float(item.unit_price),
                        "discount": float(item.discount),
                        "total_price": float(item.unit_price * available),
                    }
                )
            if items:
                result.append(
                    {
                        "id": invoice.id,
                        "invoice_number": invoice.invoice_number,
                        "customer_name": invoice.customer.name if invoice.customer else "",
                        "customer_id": invoice.customer_id,
                        "total_amount": float(invoice.total_amount),
                        "invoice_date": invoice.invoice_date.strftime("%Y-%m-%d"),
                        "status": invoice.status,
                        "items": items,
                    }
                )
        return result


def return_trackings(invoice_number: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    with get_session() as db:
        query = db.query(ReturnTracking)
        if invoice_number:
            query = query.filter(
                (ReturnTracking.original_invoice_number == invoice_number)
                | (ReturnTracking.return_invoice_number == invoice_number)
            )
        rows = query.order_by(ReturnTracking.created_at.desc()).limit(limit).all()
        return [
            {
                "id": r.id,
                "original_invoice_number": r.original_invoice_number,
                "return_invoice_number": r.return_invoice_number,
                "product_id": r.product_id,
                "returned_quantity": r.returned_quantity,
                "return_date": r.return_date.strftime("%Y-%m-%d %H:%M") if r.return_date else "",
                "return_reason": r.return_reason,
                "created_by": r.created_by,
            }
            for r in rows
        ]


__all__ = [
    "TransactionItem",
    "TransactionRequest",
    "create_invoice",
    "distribute_payment",
    "find_product",
    "generate_numbers",
    "invoice_number_exists",
    "next_invoice_number",
    "next_order_number",
    "order_number_exists",
    "process_items",
    "process_transaction",
    "return_trackings",
    "returned_quantity",
    "save_exchange_tracking",
    "save_return_tracking",
    "search_invoices_for_return",
    "validate_or_create_customer",
    "validate_return_request",
]
