from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from .constants import (
    ACCOUNT_DUE,
    ACCOUNT_PAID,
    ACCOUNT_STABLE,
    DEFAULT_ORDER_ORIGIN,
    INVENTORY_ACTIVE,
    LOW_STOCK_LEVEL,
    STABLE_BALANCE_LIMIT,
    STATUS_PAID,
    STOCK_AVAILABLE,
    STOCK_LOW,
    STOCK_OUT,
    TYPE_SALE,
)

Base = declarative_base()

ZERO = Decimal("0.00")


def _percent(part, whole) -> Decimal:
    if not whole:
        return ZERO
    return (Decimal(part or 0) / Decimal(whole) * 100).quantize(Decimal("0.01"))


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("idx_products_qr_code", "qr_code"),
        Index("idx_products_category_id", "category_id"),
    )
    id = Column(Integer, primary_key=True)
    qr_code = Column(String(100), nullable=False, default="")
    name = Column(String(200), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    color = Column(String(50), nullable=False, default="")
    size = Column(String(20))
    quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    cost_price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    carton_price = Column(Numeric(10, 2))
    date_added = Column(DateTime, default=datetime.now)
    notes = Column(String(500))

    category = relationship("Category", back_populates="products")

    @property
    def product_code(self) -> str:
        return f"P{self.id or 0:06d}"

    @property
    def stock_status(self) -> str:
        qty = self.quantity or 0
        if qty <= 0:
            return STOCK_OUT
        if qty <= LOW_STOCK_LEVEL:
            return STOCK_LOW
        return STOCK_AVAILABLE

    @property
    def total_value(self) -> Decimal:
        return Decimal(self.price or 0) * (self.quantity or 0)

    @property
    def unit_cost(self) -> Decimal:
        """Wholesale cost used for profit figures, zero when unknown."""
        return Decimal(self.carton_price or 0)


class Customer(Base):
    __tablename__ = "customers"
    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    phone_number = Column(String(20), nullable=False, unique=True)
    additional_phone = Column(String(20))
    governorate = Column(String(50))
    district = Column(String(100))
    detailed_address = Column(String(200))
    email = Column(String(100))
    address = Column(String(200))
    created_at = Column(DateTime, default=datetime.now)

    transactions = relationship(
        "CustomerTransaction",
        back_populates="customer",
        cascade="all, delete-orphan",
    )
    invoices = relationship("Invoice", back_populates="customer")

    @property
    def full_address(self) -> str:
        parts = [self.governorate, self.district, self.detailed_address]
        joined = " - ".join(p for p in parts if p)
        return joined or (self.address or "")


def account_status(remaining) -> str:
    """Classify a customer balance."""
    remaining = Decimal(remaining or 0)
    if remaining <= 0:
        return ACCOUNT_PAID
    if remaining <= STABLE_BALANCE_LIMIT:
        return ACCOUNT_STABLE
    return ACCOUNT_DUE


class CustomerTransaction(Base):
    __tablename__ = "customer_transactions"
    __table_args__ = (
        Index("idx_customer_transactions_date", "date"),
        Index("idx_customer_transactions_customer_id", "customer_id"),
        Index("idx_customer_transactions_product_id", "product_id"),
    )
    id = Column(Integer, primary_key=True)
    customer_id = Column(
        Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    discount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=ZERO)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=ZERO)
    date = Column(DateTime, nullable=False, default=datetime.now)
    color = Column(String(50))
    size = Column(String(20))
    shipping_type = Column(String(20))
    notes = Column(String(500))

    customer = relationship("Customer", back_populates="transactions")
    product = relationship("Product")

    @property
    def remaining(self) -> Decimal:
        return Decimal(self.total_price or 0) - Decimal(self.amount_paid or 0)


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        Index("idx_invoices_invoice_date", "invoice_date"),
        Index("idx_invoices_customer_id", "customer_id"),
    )
    id = Column(Integer, primary_key=True)
    invoice_number = Column(String(50), nullable=False, unique=True)
    order_number = Column(String(50), nullable=False, default="")
    policy_number = Column(String(50))
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    invoice_date = Column(DateTime, nullable=False, default=datetime.now)
    due_date = Column(DateTime)
    total_amount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    discount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=ZERO)
    shipping_type = Column(String(20))
    amount_paid = Column(Numeric(10, 2), nullable=False, default=ZERO)
    remaining_amount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    status = Column(String(20), nullable=False, default=STATUS_PAID)
    type = Column(String(20), nullable=False, default=TYPE_SALE)
    order_origin = Column(String(20), nullable=False, default=DEFAULT_ORDER_ORIGIN)
    payment_method = Column(String(50))
    notes = Column(Text)
    original_invoice_number = Column(String(50))
    return_reason = Column(String(500))
    cashier_name = Column(String(100))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime)

    customer = relationship("Customer", back_populates="invoices")
    items = relationship(
        "InvoiceItem", back_populates="invoice", cascade="all, delete-orphan"
    )

    @property
    def grand_total(self) -> Decimal:
        """Shipping is shown on the invoice but never added to its total."""
        return Decimal(self.total_amount or 0)


class InvoiceItem(Base):
    __tablename__ = "invoice_items"
    id = Column(Integer, primary_key=True)
    invoice_id = Column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    discount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    color = Column(String(50))
    size = Column(String(20))
    notes = Column(String(500))

    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")


class ReturnTracking(Base):
    __tablename__ = "return_trackings"
    __table_args__ = (
        Index("idx_return_trackings_original", "original_invoice_number", "product_id"),
    )
    id = Column(Integer, primary_key=True)
    original_invoice_number = Column(String(50), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    returned_quantity = Column(Integer, nullable=False)
    return_invoice_number = Column(String(50), nullable=False, default="")
    return_date = Column(DateTime, default=datetime.now)
    return_reason = Column(String(500))
    notes = Column(String(500))
    created_by = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.now)

    product = relationship("Product")


class ExchangeTracking(Base):
    __tablename__ = "exchange_trackings"
    __table_args__ = (
        Index(
            "idx_exchange_trackings_original",
            "original_invoice_number",
            "old_product_id",
        ),
    )
    id = Column(Integer, primary_key=True)
    original_invoice_number = Column(String(50), nullable=False)
    exchange_invoice_number = Column(String(50), nullable=False, default="")
    old_product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    new_product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    exchanged_quantity = Column(Integer, nullable=False)
    price_difference = Column(Numeric(10, 2), nullable=False, default=ZERO)
    exchange_reason = Column(String(500))
    exchange_date = Column(DateTime, default=datetime.now)
    notes = Column(String(500))
    created_by = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.now)

    old_product = relationship("Product", foreign_keys=[old_product_id])
    new_product = relationship("Product", foreign_keys=[new_product_id])


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (Index("idx_activity_logs_timestamp", "timestamp"),)
    id = Column(Integer, primary_key=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=False, default="")
    entity_name = Column(String(200))
    details = Column(Text)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)
    user = Column(String(100))


class DailyInventory(Base):
    __tablename__ = "daily_inventories"
    id = Column(Integer, primary_key=True)
    inventory_date = Column(Date, nullable=False, unique=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    total_sales = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_cost = Column(Numeric(10, 2), nullable=False, default=ZERO)
    net_profit = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_discounts = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_payments = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_debts = Column(Numeric(10, 2), nullable=False, default=ZERO)
    transactions_count = Column(Integer, nullable=False, default=0)
    customers_count = Column(Integer, nullable=False, default=0)
    products_sold_count = Column(Integer, nullable=False, default=0)
    total_quantity_sold = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=INVENTORY_ACTIVE)
    notes = Column(String(1000))
    responsible_user = Column(String(100))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime)

    sale_transactions = relationship(
        "DailySaleTransaction",
        back_populates="daily_inventory",
        cascade="all, delete-orphan",
    )
    product_summaries = relationship(
        "DailyProductSummary",
        back_populates="daily_inventory",
        cascade="all, delete-orphan",
    )
    customer_summaries = relationship(
        "DailyCustomerSummary",
        back_populates="daily_inventory",
        cascade="all, delete-orphan",
    )

    @property
    def profit_margin(self) -> Decimal:
        return _percent(self.net_profit, self.total_sales)

    @property
    def payment_percentage(self) -> Decimal:
        return _percent(self.total_payments, self.total_sales)

    @property
    def average_transaction_value(self) -> Decimal:
        if not self.transactions_count:
            return ZERO
        return (Decimal(self.total_sales or 0) / self.transactions_count).quantize(
            Decimal("0.01")
        )


class DailySaleTransaction(Base):
    __tablename__ = "daily_sale_transactions"
    id = Column(Integer, primary_key=True)
    daily_inventory_id = Column(
        Integer,
        ForeignKey("daily_inventories.id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    discount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=ZERO)
    cost_price = Column(Numeric(10, 2), nullable=False, default=ZERO)
    transaction_time = Column(DateTime, nullable=False)
    original_transaction_id = Column(Integer)
    notes = Column(String(500))

    daily_inventory = relationship("DailyInventory", back_populates="sale_transactions")
    customer = relationship("Customer")
    product = relationship("Product")


class DailyProductSummary(Base):
    __tablename__ = "daily_product_summaries"
    __table_args__ = (
        Index("idx_daily_product_summaries_inv_product", "daily_inventory_id", "product_id"),
    )
    id = Column(Integer, primary_key=True)
    daily_inventory_id = Column(
        Integer,
        ForeignKey("daily_inventories.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    total_quantity_sold = Column(Integer, nullable=False, default=0)
    total_sales_value = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_cost_value = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_discounts = Column(Numeric(10, 2), nullable=False, default=ZERO)
    net_sales_value = Column(Numeric(10, 2), nullable=False, default=ZERO)
    net_profit = Column(Numeric(10, 2), nullable=False, default=ZERO)
    transactions_count = Column(Integer, nullable=False, default=0)
    starting_quantity = Column(Integer, nullable=False, default=0)
    ending_quantity = Column(Integer, nullable=False, default=0)

    daily_inventory = relationship("DailyInventory", back_populates="product_summaries")
    product = relationship("Product")


class DailyCustomerSummary(Base):
    __tablename__ = "daily_customer_summaries"
    __table_args__ = (
        Index("idx_daily_customer_summaries_inv_customer", "daily_inventory_id", "customer_id"),
    )
    id = Column(Integer, primary_key=True)
    daily_inventory_id = Column(
        Integer,
        ForeignKey("daily_inventories.id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    transactions_count = Column(Integer, nullable=False, default=0)
    total_purchases = Column(Numeric(10, 2), nullable=False, default=ZERO)
    total_payments = Column(Numeric(10, 2), nullable=False, default=ZERO)
    debt_amount = Column(Numeric(10, 2), nullable=False, default=ZERO)
    last_transaction_time = Column(DateTime)

    daily_inventory = relationship("DailyInventory", back_populates="customer_summaries")
    customer = relationship("Customer")


class AppSetting(Base):
    __tablename__ = "app_settings"
    key = Column(String, primary_key=True)
    value = Column(Text)
    updated_at = Column(String)
