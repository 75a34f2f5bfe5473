ALL_SIZES = [str(size) for size in range(32, 45)] + [
    "XS",
    "S",
    "M",
    "L",
    "XL",
    "XXL",
    "XXXL",
    "One Size",
]

# Products at or below this quantity are flagged as low stock.
LOW_STOCK_LEVEL = 10

# Customers owing more than this are marked as "due".
STABLE_BALANCE_LIMIT = 1000

STOCK_OUT = "out_of_stock"
STOCK_LOW = "low"
STOCK_AVAILABLE = "available"

STOCK_LABELS = {
    STOCK_OUT: "Out of stock",
    STOCK_LOW: "Low stock",
    STOCK_AVAILABLE: "Available",
}

ACCOUNT_PAID = "paid"
ACCOUNT_STABLE = "stable"
ACCOUNT_DUE = "due"

# Invoice statuses
STATUS_DRAFT = "draft"
STATUS_SENT = "sent"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"
STATUS_CANCELLED = "cancelled"
STATUS_PARTIALLY_PAID = "partially_paid"
STATUS_PENDING = "pending"
STATUS_UNDER_DELIVERY = "under_delivery"
STATUS_NOT_DELIVERED = "not_delivered"
STATUS_DELIVERED = "delivered"

INVOICE_STATUSES = {
    STATUS_DRAFT: "Draft",
    STATUS_SENT: "Sent",
    STATUS_PAID: "Paid",
    STATUS_OVERDUE: "Overdue",
    STATUS_CANCELLED: "Cancelled",
    STATUS_PARTIALLY_PAID: "Partially paid",
    STATUS_PENDING: "Pending",
    STATUS_UNDER_DELIVERY: "Under delivery",
    STATUS_NOT_DELIVERED: "Not delivered",
    STATUS_DELIVERED: "Delivered",
}

# Invoice types
TYPE_SALE = "sale"
TYPE_EXCHANGE = "exchange"
TYPE_RETURN = "return"
TYPE_MAINTENANCE = "maintenance"
TYPE_ESTIMATE = "estimate"

INVOICE_TYPES = {
    TYPE_SALE: "Sale",
    TYPE_EXCHANGE: "Exchange",
    TYPE_RETURN: "Return",
    TYPE_MAINTENANCE: "Maintenance",
    TYPE_ESTIMATE: "Estimate",
}

ORDER_ORIGINS = {
    "website": "Website",
    "instagram": "Instagram",
    "facebook": "Facebook",
    "whatsapp": "WhatsApp",
    "phone": "Phone",
    "walk_in": "Walk-in",
    "physical_store": "Physical store",
    "other": "Other",
}
DEFAULT_ORDER_ORIGIN = "physical_store"

SHIPPING_TYPES = {
    "bosta": "Bosta",
    "cairo": "Cairo",
    "no_shipping": "No shipping",
}

# Daily inventory statuses
INVENTORY_ACTIVE = "active"
INVENTORY_COMPLETED = "completed"
INVENTORY_CLOSED = "closed"
INVENTORY_CANCELLED = "cancelled"

INVENTORY_STATUSES = {
    INVENTORY_ACTIVE: "Active",
    INVENTORY_COMPLETED: "Completed",
    INVENTORY_CLOSED: "Closed",
    INVENTORY_CANCELLED: "Cancelled",
}

# Customer transaction notes carrying this word belong to an exchange,
# not a plain return.
EXCHANGE_NOTE_MARKER = "Exchange"

RETURN_INVOICE_PREFIX = "RTN-"
EXCHANGE_INVOICE_PREFIX = "EXC-"
