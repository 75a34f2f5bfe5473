"""Domain layer modules for shop operations."""

__all__ = [
    "activity",
    "catalog",
    "customers",
    "cashier",
    "invoices",
    "daily_inventory",
    "financial",
    "returns",
    "exchanges",
    "reports",
    "exports",
]
