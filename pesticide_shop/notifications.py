import logging
from decimal import Decimal
from urllib.parse import quote

import requests

from .config import settings
from .utils import digits_only

logger = logging.getLogger(__name__)

WHATSAPP_BASE_URL = "https://wa.me"


def _money(value) -> str:
    return f"{Decimal(value or 0):,.2f} {settings.CURRENCY}"


def whatsapp_phone(phone: str) -> str:
    """Normalise a phone number for wa.me links.

    Local Egyptian numbers start with ``0``; the country code replaces it.
    """
    digits = digits_only(phone)
    if digits.startswith("0"):
        digits = "20" + digits[1:]
    return digits


def whatsapp_message(invoice) -> str:
    """Plain-text invoice summary for sharing over WhatsApp."""
    customer = invoice.customer
    lines = [
        f"Hello *{customer.name if customer else 'dear customer'}*!",
        "",
        f"*Invoice:* {invoice.invoice_number}",
        f"*Date:* {invoice.invoice_date:%d/%m/%Y}",
    ]
    if invoice.order_number:
        lines.append(f"*Order:* {invoice.order_number}")
    lines += ["", "*Items:*"]
    for item in invoice.items:
        name = item.product.name if item.product else "Unknown product"
        lines.append(f"- *{name}*")
        details = []
        if item.color:
            details.append(f"Color: {item.color}")
        if item.size:
            details.append(f"Size: {item.size}")
        if details:
            lines.append("  " + " - ".join(details))
        lines.append(f"  Quantity: {item.quantity}")
        lines.append(f"  Unit price: {_money(item.unit_price)}")
        if item.discount:
            lines.append(f"  Discount per unit: {_money(item.discount)}")
        lines.append(f"  Net: {_money(item.total_price)}")
    lines.append("")
    if invoice.discount:
        lines.append(f"*Total discount:* {_money(invoice.discount)}")
    if invoice.shipping_cost:
        lines.append(f"*Shipping:* {_money(invoice.shipping_cost)}")
    lines.append(f"*Total:* {_money(invoice.total_amount)}")
    lines.append(f"*Paid:* {_money(invoice.amount_paid)}")
    lines.append(f"*Remaining:* {_money(invoice.remaining_amount)}")
    if invoice.payment_method:
        lines.append(f"*Payment method:* {invoice.payment_method}")
    if invoice.notes:
        lines.append(f"*Notes:* {invoice.notes}")
    if settings.SHOP_PHONES:
        lines += ["", "*Contact us:*", settings.SHOP_PHONES]
    if settings.SHOP_WEBSITE:
        lines.append(f"*Website:* {settings.SHOP_WEBSITE}")
    return "\n".join(lines)


def whatsapp_url(phone: str, message: str) -> str:
    return f"{WHATSAPP_BASE_URL}/{whatsapp_phone(phone)}?text={quote(message, safe='')}"


def send_whatsapp(invoice) -> bool:
    """Send the invoice summary through the configured API relay."""
    if not settings.WHATSAPP_API_URL or invoice.customer is None:
        return False
    headers = {"Content-Type": "application/json"}
    if settings.WHATSAPP_API_TOKEN:
        headers["Authorization"] = f"Bearer {settings.WHATSAPP_API_TOKEN}"
    payload = {
        "to": whatsapp_phone(invoice.customer.phone_number),
        "message": whatsapp_message(invoice),
    }
    try:
        resp = requests.post(
            settings.WHATSAPP_API_URL, headers=headers, json=payload, timeout=30
        )
        logger.info("WhatsApp relay response: %s", resp.status_code)
        return resp.status_code in (200, 201, 202)
    except requests.RequestException as exc:
        logger.error("WhatsApp send failed: %s", exc)
        return False
