from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import joinedload, selectinload

from ..db import get_session, to_decimal
from ..errors import DuplicateError, InsufficientStockError, NotFoundError, ValidationError
from ..metrics import STOCK_ERRORS_TOTAL
from ..models import (
    Customer,
    CustomerTransaction,
    DailyCustomerSummary,
    DailySaleTransaction,
    Invoice,
    Product,
    account_status,
)
from . import daily_inventory
from .activity import add_activity

logger = logging.getLogger(__name__)

SEARCH_TYPES = ("all", "name", "phone", "address")

CUSTOMER_FIELDS = (
    "name",
    "phone_number",
    "additional_phone",
    "email",
    "governorate",
    "district",
    "detailed_address",
    "address",
)


@dataclass
class CustomerBalance:
    total_purchases: Decimal
    total_paid: Decimal

    @property
    def remaining(self) -> Decimal:
        return to_decimal(self.total_purchases - self.total_paid)

    @property
    def status(self) -> str:
        return account_status(self.remaining)

    def to_dict(self) -> Dict:
        return {
            "total_purchases": float(self.total_purchases),
            "total_paid": float(self.total_paid),
            "remaining": float(self.remaining),
            "status": self.status,
        }


def balance_of(customer: Customer) -> CustomerBalance:
    purchases = sum((Decimal(t.total_price or 0) for t in customer.transactions), Decimal("0"))
    paid = sum((Decimal(t.amount_paid or 0) for t in customer.transactions), Decimal("0"))
    return CustomerBalance(to_decimal(purchases), to_decimal(paid))


def _search_filter(term: str, search_type: str):
    like = f"%{term}%"
    by_name = Customer.name.ilike(like)
    by_phone = or_(Customer.phone_number.ilike(like), Customer.additional_phone.ilike(like))
    by_address = or_(
        Customer.governorate.ilike(like),
        Customer.district.ilike(like),
        Customer.detailed_address.ilike(like),
        Customer.address.ilike(like),
    )
    if search_type == "name":
        return by_name
    if search_type == "phone":
        return by_phone
    if search_type == "address":
        return by_address
    return or_(by_name, by_phone, by_address, Customer.email.ilike(like))


def list_customers(term: str = "", search_type: str = "all") -> List[Dict]:
    """Customers with their balances, newest first."""
    with get_session() as db:
        query = db.query(Customer).options(selectinload(Customer.transactions))
        term = (term or "").strip()
        if term:
            if search_type not in SEARCH_TYPES:
                search_type = "all"
            query = query.filter(_search_filter(term, search_type))
        customers = query.order_by(Customer.created_at.desc(), Customer.id.desc()).all()
        return [{"customer": c, "balance": balance_of(c)} for c in customers]


def get_customer(customer_id: int) -> Optional[Customer]:
    with get_session() as db:
        return db.get(Customer, customer_id)


def customer_details(customer_id: int) -> Dict:
    with get_session() as db:
        customer = (
            db.query(Customer)
            .options(
                selectinload(Customer.transactions).joinedload(CustomerTransaction.product)
            )
            .filter_by(id=customer_id)
            .first()
        )
        if customer is None:
            raise NotFoundError("Customer not found")
        transactions = sorted(customer.transactions, key=lambda t: t.date, reverse=True)
        return {
            "customer": customer,
            "transactions": transactions,
            "balance": balance_of(customer),
        }


def _clean_fields(fields: Dict) -> Dict:
    cleaned = {}
    for key in CUSTOMER_FIELDS:
        if key in fields:
            value = fields[key]
            cleaned[key] = value.strip() if isinstance(value, str) else value
            if cleaned[key] == "":
                cleaned[key] = None
    return cleaned


def _check_phone(db, phone: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Customer).filter(Customer.phone_number == phone)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first() is not None:
        raise DuplicateError(f"Phone number {phone} is already registered")


def create_customer(user: Optional[str] = None, **fields) -> Customer:
    data = _clean_fields(fields)
    if not data.get("name"):
        raise ValidationError("Customer name is required")
    if not data.get("phone_number"):
        raise ValidationError("Phone number is required")
    with get_session() as db:
        _check_phone(db, data["phone_number"])
        customer = Customer(created_at=datetime.now(), **data)
        db.add(customer)
        add_activity(db, "create", "customer", customer.name, f"Phone {customer.phone_number}", user)
    logger.info("Created customer %s", customer.name)
    return customer


def update_customer(customer_id: int, user: Optional[str] = None, **fields) -> Customer:
    data = _clean_fields(fields)
    if "name" in data and not data["name"]:
        raise ValidationError("Customer name is required")
    if "phone_number" in data and not data["phone_number"]:
        raise ValidationError("Phone number is required")
    with get_session() as db:
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        if data.get("phone_number"):
            _check_phone(db, data["phone_number"], exclude_id=customer_id)
        for key, value in data.items():
            setattr(customer, key, value)
        add_activity(db, "update", "customer", customer.name, None, user)
    return customer


def delete_customer(customer_id: int, user: Optional[str] = None) -> str:
    """Delete a customer with transactions, invoices and daily rows."""
    with get_session() as db:
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        name = customer.name
        db.query(DailyCustomerSummary).filter_by(customer_id=customer_id).delete()
        db.query(DailySaleTransaction).filter_by(customer_id=customer_id).delete()
        for invoice in db.query(Invoice).filter_by(customer_id=customer_id).all():
            db.delete(invoice)
        db.delete(customer)
        add_activity(db, "delete", "customer", name, "Customer and related records deleted", user)
    logger.info("Deleted customer %s", name)
    return name


def find_by_phone(phone: str) -> Optional[Customer]:
    phone = (phone or "").strip()
    if not phone:
        return None
    with get_session() as db:
        return (
            db.query(Customer)
            .filter(or_(Customer.phone_number == phone, Customer.additional_phone == phone))
            .first()
        )


def customer_dict(customer: Customer) -> Dict:
    return {
        "id": customer.id,
        "name": customer.name,
        "phone_number": customer.phone_number,
        "additional_phone": customer.additional_phone or "",
        "email": customer.email or "",
        "governorate": customer.governorate or "",
        "district": customer.district or "",
        "detailed_address": customer.detailed_address or "",
        "address": customer.full_address,
    }


def customers_json(term: str = "", limit: int = 20) -> List[Dict]:
    with get_session() as db:
        query = db.query(Customer)
        term = (term or "").strip()
        if term:
            query = query.filter(_search_filter(term, "all"))
        return [customer_dict(c) for c in query.order_by(Customer.name.asc()).limit(limit)]


# ----------------------------------------------------------------------
# Manual transactions
# ----------------------------------------------------------------------
def _validate_amounts(quantity: int, total_price: Decimal, amount_paid: Decimal) -> None:
    if quantity == 0:
        raise ValidationError("Quantity must not be zero")
    if total_price <= 0:
        raise ValidationError("Total price must be greater than zero")
    if amount_paid < 0:
        raise ValidationError("Amount paid cannot be negative")
    if amount_paid > total_price:
        raise ValidationError("Amount paid cannot exceed the total price")


def add_transaction(
    customer_id: int,
    product_id: int,
    quantity: int,
    total_price,
    amount_paid=0,
    when: Optional[datetime] = None,
    shipping_type: Optional[str] = None,
    user: Optional[str] = None,
) -> CustomerTransaction:
    """Record a manual sale (positive quantity) or return (negative).

    ``total_price`` is entered as a positive amount; returns are stored with
    a negative total so balances net out.
    """
    total = to_decimal(total_price)
    paid = to_decimal(amount_paid)
    _validate_amounts(quantity, total, paid)
    with get_session() as db:
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if quantity > 0 and product.quantity < quantity:
            STOCK_ERRORS_TOTAL.inc()
            raise InsufficientStockError(product.name, product.quantity, quantity)
        old_quantity = product.quantity
        product.quantity -= quantity
        txn = CustomerTransaction(
            customer_id=customer_id,
            product_id=product_id,
            quantity=quantity,
            price=to_decimal(total / abs(quantity)),
            discount=Decimal("0.00"),
            total_price=total if quantity > 0 else -total,
            amount_paid=paid if quantity > 0 else -paid,
            shipping_cost=Decimal("0.00"),
            shipping_type=shipping_type,
            date=when or datetime.now(),
        )
        db.add(txn)
        operation = "sale" if quantity > 0 else "return"
        add_activity(
            db,
            "transaction",
            "customer",
            customer.name,
            f"Manual {operation}: {product.name} x {abs(quantity)}, "
            f"stock {old_quantity} -> {product.quantity}",
            user,
        )
    daily_inventory.process_transactions_safely([txn.id])
    return txn


def edit_transaction(
    transaction_id: int,
    quantity: int,
    total_price,
    amount_paid,
    when: Optional[datetime] = None,
    shipping_type: Optional[str] = None,
    user: Optional[str] = None,
) -> CustomerTransaction:
    total = to_decimal(total_price)
    paid = to_decimal(amount_paid)
    _validate_amounts(quantity, total, paid)
    with get_session() as db:
        txn = db.get(CustomerTransaction, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        product = db.get(Product, txn.product_id)
        if product is None:
            raise NotFoundError("Product not found")
        difference = quantity - txn.quantity
        if difference > 0 and product.quantity < difference:
            STOCK_ERRORS_TOTAL.inc()
            raise InsufficientStockError(product.name, product.quantity, difference)
        product.quantity -= difference
        old_day = txn.date.date()
        txn.quantity = quantity
        txn.price = to_decimal(total / abs(quantity))
        txn.total_price = total if quantity > 0 else -total
        txn.amount_paid = paid if quantity > 0 else -paid
        if when is not None:
            txn.date = when
        if shipping_type is not None:
            txn.shipping_type = shipping_type or None
        add_activity(
            db,
            "update",
            "customer_transaction",
            product.name,
            f"Quantity change {difference:+d}, stock now {product.quantity}",
            user,
        )
    daily_inventory.recalculate_days_safely({old_day, txn.date.date()})
    return txn


def delete_transaction(transaction_id: int, user: Optional[str] = None) -> int:
    """Delete one transaction reversing its stock effect.

    Returns the customer id for redirects.
    """
    with get_session() as db:
        txn = db.get(CustomerTransaction, transaction_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        product = db.get(Product, txn.product_id)
        if product is not None:
            if txn.quantity > 0:
                product.quantity += txn.quantity
            elif product.quantity >= abs(txn.quantity):
                product.quantity -= abs(txn.quantity)
        customer_id = txn.customer_id
        day = txn.date.date()
        db.query(DailySaleTransaction).filter_by(original_transaction_id=txn.id).delete()
        db.delete(txn)
        add_activity(
            db,
            "delete",
            "customer_transaction",
            product.name if product else str(txn.product_id),
            f"Deleted transaction of {txn.quantity} units",
            user,
        )
    daily_inventory.recalculate_days_safely([day])
    return customer_id


def delete_all_transactions(customer_id: int, user: Optional[str] = None) -> int:
    with get_session() as db:
        customer = db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        transactions = list(customer.transactions)
        days = {t.date.date() for t in transactions}
        for txn in transactions:
            db.delete(txn)
        if transactions:
            add_activity(
                db,
                "delete",
                "customer_transactions",
                customer.name,
                f"Deleted {len(transactions)} transactions",
                user,
            )
    daily_inventory.recalculate_days_safely(days)
    return len(transactions)


def get_transaction(transaction_id: int) -> Optional[CustomerTransaction]:
    with get_session() as db:
        return (
            db.query(CustomerTransaction)
            .options(
                joinedload(CustomerTransaction.product),
                joinedload(CustomerTransaction.customer),
            )
            .filter_by(id=transaction_id)
            .first()
        )



__all__ = [
    "CustomerBalance",
    "SEARCH_TYPES",
    "add_transaction",
    "balance_of",
    "create_customer",
    "customer_details",
    "customer_dict",
    "customers_json",
    "delete_all_transactions",
    "delete_customer",
    "delete_transaction",
    "edit_transaction",
    "find_by_phone",
    "get_customer",
    "get_transaction",
    "list_customers",
    "update_customer",
]
