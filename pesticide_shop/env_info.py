ENV_INFO = {
    "SECRET_KEY": ("Secret key", "Flask session signing key"),
    "DB_PATH": ("Database path", "Location of the SQLite database file"),
    "LOG_LEVEL": ("Log level", "Logging level for the application (DEBUG, INFO, ...)"),
    "LOG_FILE": ("Log file", "Optional path of the application log file"),
    "FLASK_DEBUG": ("Flask debug", "Set to 1 to enable Flask debug mode"),
    "LOW_STOCK_THRESHOLD": (
        "Low stock threshold",
        "Products at or below this quantity count as low stock",
    ),
    "INVOICES_PAGE_SIZE": ("Invoices per page", "Page size of the invoice list"),
    "ANNUAL_PAGE_SIZE": (
        "Annual report page size",
        "Products per page in the annual inventory value table",
    ),
    "CURRENCY": ("Currency", "Currency label printed on invoices and messages"),
    "SHOP_PHONES": ("Shop phones", "Contact numbers printed in customer messages"),
    "SHOP_WEBSITE": ("Shop website", "Website printed in customer messages"),
    "WHATSAPP_API_URL": (
        "WhatsApp API URL",
        "Endpoint of a WhatsApp Business relay; empty to only build wa.me links",
    ),
    "WHATSAPP_API_TOKEN": ("WhatsApp API token", "Bearer token for the relay"),
    "DEFAULT_ADMIN_PASSWORD": (
        "Default admin password",
        "Password given to the admin account created on first start",
    ),
}
