"""Prometheus metrics for shop operations."""

from prometheus_client import Counter, Gauge


INVOICES_CREATED_TOTAL = Counter(
    "shop_invoices_created_total",
    "Invoices created, by invoice type.",
    ["type"],
)
RETURNS_TOTAL = Counter(
    "shop_returns_total",
    "Returned items recorded against original invoices.",
)
EXCHANGES_TOTAL = Counter(
    "shop_exchanges_total",
    "Exchanges recorded against original invoices.",
)
DAILY_CLOSINGS_TOTAL = Counter(
    "shop_daily_closings_total",
    "Daily inventories closed.",
)
STOCK_ERRORS_TOTAL = Counter(
    "shop_stock_errors_total",
    "Operations refused because of insufficient stock.",
)
LOW_STOCK_PRODUCTS = Gauge(
    "shop_low_stock_products",
    "Products at or below the low stock threshold.",
)
