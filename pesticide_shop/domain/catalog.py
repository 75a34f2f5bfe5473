from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import pandas as pd
from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload

from ..config import settings
from ..constants import ALL_SIZES, STOCK_LABELS
from ..db import get_session, to_decimal
from ..errors import NotFoundError, ValidationError
from ..metrics import LOW_STOCK_PRODUCTS
from ..models import (
    Category,
    CustomerTransaction,
    DailyInventory,
    DailyProductSummary,
    DailySaleTransaction,
    ExchangeTracking,
    InvoiceItem,
    Product,
    ReturnTracking,
)
from ..utils import day_bounds, to_int

logger = logging.getLogger(__name__)


def _clean_text(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    text = str(value).strip()
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    return text


def product_dict(product: Product) -> Dict:
    return {
        "id": product.id,
        "code": product.product_code,
        "qr_code": product.qr_code,
        "name": product.name,
        "category": product.category.name if product.category else None,
        "category_id": product.category_id,
        "color": product.color,
        "size": product.size,
        "quantity": product.quantity,
        "price": float(product.price or 0),
        "carton_price": float(product.carton_price) if product.carton_price is not None else None,
        "stock_status": product.stock_status,
        "stock_label": STOCK_LABELS[product.stock_status],
    }


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------
def list_categories(active_only: bool = False) -> List[Category]:
    with get_session() as db:
        query = db.query(Category)
        if active_only:
            query = query.filter(Category.is_active.is_(True))
        return query.order_by(Category.name.asc()).all()


def category_counts() -> Dict[int, int]:
    with get_session() as db:
        rows = (
            db.query(Product.category_id, func.count(Product.id))
            .group_by(Product.category_id)
            .all()
        )
        return {category_id: count for category_id, count in rows}


def get_category(category_id: int) -> Optional[Category]:
    with get_session() as db:
        return (
            db.query(Category)
            .options(joinedload(Category.products))
            .filter_by(id=category_id)
            .first()
        )


def create_category(name: str, description: str = "", is_active: bool = True) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    with get_session() as db:
        category = Category(
            name=name,
            description=description or None,
            is_active=is_active,
            created_at=datetime.now(),
        )
        db.add(category)
    logger.info("Created category %s", name)
    return category


def update_category(category_id: int, name: str, description: str = "", is_active: bool = True):
    name = (name or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    with get_session() as db:
        category = db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")
        category.name = name
        category.description = description or None
        category.is_active = is_active
    return category


def delete_category(category_id: int) -> str:
    with get_session() as db:
        category = db.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category not found")
        in_use = db.query(Product).filter_by(category_id=category_id).count()
        if in_use:
            raise ValidationError(
                f"Category {category.name} still has {in_use} products"
            )
        name = category.name
        db.delete(category)
    return name


def _get_or_create_category(db, name: str) -> Category:
    name = name.strip() or "General"
    category = db.query(Category).filter(func.lower(Category.name) == name.lower()).first()
    if category is None:
        category = Category(name=name, is_active=True, created_at=datetime.now())
        db.add(category)
        db.flush()
    return category


# ----------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------
def _validate_product_fields(name, category_id, size, quantity, price):
    if not (name or "").strip():
        raise ValidationError("Product name is required")
    if not category_id:
        raise ValidationError("Category is required")
    if size and size not in ALL_SIZES:
        raise ValidationError(f"Unknown size {size}")
    if to_int(quantity) < 0:
        raise ValidationError("Quantity cannot be negative")
    if to_decimal(price) < 0:
        raise ValidationError("Price cannot be negative")


def _cost_price(carton_price, quantity) -> Decimal:
    if carton_price is None or quantity <= 0:
        return Decimal("0.00")
    return to_decimal(Decimal(carton_price) / quantity)


def create_product(
    name: str,
    category_id: int,
    price,
    quantity: int = 0,
    carton_price=None,
    color: str = "",
    size: Optional[str] = None,
    qr_code: str = "",
    notes: Optional[str] = None,
) -> Product:
    _validate_product_fields(name, category_id, size, quantity, price)
    quantity = to_int(quantity)
    carton = to_decimal(carton_price) if carton_price not in (None, "") else None
    with get_session() as db:
        if db.get(Category, category_id) is None:
            raise NotFoundError("Category not found")
        product = Product(
            name=name.strip(),
            category_id=category_id,
            price=to_decimal(price),
            quantity=quantity,
            carton_price=carton,
            cost_price=_cost_price(carton, quantity),
            color=color or "",
            size=size or None,
            qr_code=(qr_code or "").strip(),
            notes=notes or None,
            date_added=datetime.now(),
        )
        db.add(product)
        db.flush()
        if not product.qr_code:
            product.qr_code = product.product_code
    logger.info("Created product %s (%s)", product.name, product.qr_code)
    return product


def update_product(product_id: int, **fields) -> Product:
    with get_session() as db:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        _validate_product_fields(
            fields.get("name", product.name),
            fields.get("category_id", product.category_id),
            fields.get("size", product.size),
            fields.get("quantity", product.quantity),
            fields.get("price", product.price),
        )
        old_quantity = product.quantity
        for key in ("name", "color", "size", "notes", "qr_code", "category_id"):
            if key in fields:
                setattr(product, key, fields[key] if fields[key] != "" else None)
        if not product.qr_code:
            product.qr_code = product.product_code
        if product.color is None:
            product.color = ""
        if "price" in fields:
            product.price = to_decimal(fields["price"])
        if "quantity" in fields:
            product.quantity = to_int(fields["quantity"])
        if "carton_price" in fields:
            carton = fields["carton_price"]
            product.carton_price = to_decimal(carton) if carton not in (None, "") else None
        product.cost_price = _cost_price(product.carton_price, product.quantity)
        if old_quantity != product.quantity:
            logger.info(
                "Stock of %s changed from %s to %s by edit",
                product.name,
                old_quantity,
                product.quantity,
            )
    return product


def delete_product(product_id: int) -> Dict:
    """Delete a product together with every row that references it."""
    with get_session() as db:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        transactions = db.query(CustomerTransaction).filter_by(product_id=product_id).count()
        db.query(DailyProductSummary).filter_by(product_id=product_id).delete()
        db.query(DailySaleTransaction).filter_by(product_id=product_id).delete()
        db.query(InvoiceItem).filter_by(product_id=product_id).delete()
        db.query(ExchangeTracking).filter(
            or_(
                ExchangeTracking.old_product_id == product_id,
                ExchangeTracking.new_product_id == product_id,
            )
        ).delete(synchronize_session=False)
        db.query(ReturnTracking).filter_by(product_id=product_id).delete()
        db.query(CustomerTransaction).filter_by(product_id=product_id).delete()
        name = product.name
        db.delete(product)
    logger.info("Deleted product %s with %s transactions", name, transactions)
    return {"name": name, "transactions": transactions}


def get_product(product_id: int) -> Optional[Product]:
    with get_session() as db:
        return (
            db.query(Product)
            .options(joinedload(Product.category))
            .filter_by(id=product_id)
            .first()
        )


def list_products() -> List[Product]:
    with get_session() as db:
        return (
            db.query(Product)
            .options(joinedload(Product.category))
            .order_by(Product.name.asc())
            .all()
        )


def get_quantity(product_id: int) -> Dict:
    with get_session() as db:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        return {
            "id": product.id,
            "quantity": product.quantity,
            "stock_status": product.stock_status,
            "stock_label": STOCK_LABELS[product.stock_status],
        }


def find_by_qr(code: str) -> Optional[Dict]:
    """Look a product up by QR code, falling back to its numeric id."""
    code = (code or "").strip()
    if not code:
        return None
    with get_session() as db:
        query = db.query(Product).options(joinedload(Product.category))
        product = query.filter(Product.qr_code == code).first()
        if product is None and code.isdigit():
            product = query.filter(Product.id == int(code)).first()
        return product_dict(product) if product else None


def search_products(term: str = "", include_out_of_stock: bool = False, limit: int = 20) -> List[Dict]:
    with get_session() as db:
        query = db.query(Product).options(joinedload(Product.category))
        term = (term or "").strip()
        if term:
            conditions = [
                Product.name.ilike(f"%{term}%"),
                Product.qr_code.ilike(f"%{term}%"),
            ]
            if term.isdigit():
                conditions.append(Product.id == int(term))
            query = query.filter(or_(*conditions))
        if not include_out_of_stock:
            query = query.filter(Product.quantity > 0)
        products = query.order_by(Product.name.asc()).limit(limit).all()
        return [product_dict(p) for p in products]


def advanced_search(
    term: str = "",
    category: str = "",
    color: str = "",
    size: str = "",
    limit: int = 50,
) -> List[Dict]:
    with get_session() as db:
        query = db.query(Product).outerjoin(Category).options(joinedload(Product.category))
        if term:
            conditions = [Product.name.ilike(f"%{term}%")]
            if term.isdigit():
                conditions.append(Product.id == int(term))
            query = query.filter(or_(*conditions))
        if category:
            query = query.filter(Category.name.ilike(f"%{category}%"))
        if color:
            query = query.filter(
                or_(Product.name.ilike(f"%{color}%"), Product.color.ilike(f"%{color}%"))
            )
        if size:
            query = query.filter(
                or_(Product.name.ilike(f"%{size}%"), Product.size.ilike(f"%{size}%"))
            )
        products = query.order_by(Product.name.asc()).limit(limit).all()
        return [product_dict(p) for p in products]


def products_by_category(
    category: str = "", include_out_of_stock: bool = True, limit: int = 20
) -> List[Dict]:
    with get_session() as db:
        query = db.query(Product).join(Category).options(joinedload(Product.category))
        if category:
            query = query.filter(Category.name.ilike(f"%{category}%"))
        if not include_out_of_stock:
            query = query.filter(Product.quantity > 0)
        products = query.order_by(Product.name.asc()).limit(limit).all()
        return [product_dict(p) for p in products]


def products_grouped_by_category() -> Dict[str, List[Dict]]:
    grouped: Dict[str, List[Dict]] = {}
    for product in list_products():
        key = product.category.name if product.category else "General"
        grouped.setdefault(key, []).append(product_dict(product))
    return grouped


def popular_products(limit: int = 6) -> List[Dict]:
    """Best sellers by invoiced quantity, newest in-stock products otherwise."""
    with get_session() as db:
        rows = (
            db.query(InvoiceItem.product_id, func.sum(InvoiceItem.quantity).label("sold"))
            .group_by(InvoiceItem.product_id)
            .order_by(func.sum(InvoiceItem.quantity).desc())
            .limit(limit)
            .all()
        )
        result = []
        for product_id, sold in rows:
            product = (
                db.query(Product)
                .options(joinedload(Product.category))
                .filter_by(id=product_id)
                .first()
            )
            if product is None:
                continue
            data = product_dict(product)
            data["total_sold"] = int(sold or 0)
            result.append(data)
        if result:
            return result
        fallback = (
            db.query(Product)
            .options(joinedload(Product.category))
            .filter(Product.quantity > 0)
            .order_by(Product.id.desc())
            .limit(limit)
            .all()
        )
        return [dict(product_dict(p), total_sold=0) for p in fallback]


def low_stock_count() -> int:
    threshold = settings.LOW_STOCK_THRESHOLD
    with get_session() as db:
        return db.query(Product).filter(Product.quantity <= threshold).count()


def refresh_low_stock_gauge() -> int:
    count = low_stock_count()
    LOW_STOCK_PRODUCTS.set(count)
    return count


def recalculate_cost_prices() -> int:
    """Refresh unit costs from carton prices and re-cost every stored day."""
    updated = 0
    with get_session() as db:
        for product in db.query(Product).all():
            if product.carton_price is not None and product.quantity > 0:
                product.cost_price = _cost_price(product.carton_price, product.quantity)
                updated += 1
            else:
                product.cost_price = Decimal("0.00")
        db.flush()
        for inventory in db.query(DailyInventory).all():
            start, end = day_bounds(inventory.inventory_date)
            transactions = (
                db.query(CustomerTransaction)
                .options(joinedload(CustomerTransaction.product))
                .filter(CustomerTransaction.date >= start, CustomerTransaction.date <= end)
                .all()
            )
            total_cost = sum(
                (Decimal(t.product.cost_price or 0) * abs(t.quantity) for t in transactions),
                Decimal("0.00"),
            )
            inventory.total_cost = to_decimal(total_cost)
            has_cost = any(Decimal(t.product.cost_price or 0) > 0 for t in transactions)
            inventory.net_profit = (
                to_decimal(Decimal(inventory.total_sales or 0) - total_cost)
                if has_cost
                else Decimal("0.00")
            )
            inventory.updated_at = datetime.now()
    logger.info("Recalculated cost prices for %s products", updated)
    return updated


# ----------------------------------------------------------------------
# Excel
# ----------------------------------------------------------------------
EXPORT_COLUMNS = ["Name", "Category", "Color", "Size", "Quantity", "Price", "Carton price", "QR code"]


def export_frame() -> pd.DataFrame:
    rows = []
    for product in list_products():
        rows.append(
            {
                "Name": product.name,
                "Category": product.category.name if product.category else "",
                "Color": product.color,
                "Size": product.size or "",
                "Quantity": product.quantity,
                "Price": float(product.price or 0),
                "Carton price": float(product.carton_price) if product.carton_price is not None else None,
                "QR code": product.qr_code,
            }
        )
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def import_from_dataframe(df: pd.DataFrame) -> Dict[str, int]:
    """Create or update products from an Excel sheet, keyed by QR code."""
    created = updated = 0
    with get_session() as db:
        for _, row in df.iterrows():
            name = _clean_text(row.get("Name"))
            if not name:
                continue
            qr_code = _clean_text(row.get("QR code"))
            category = _get_or_create_category(db, _clean_text(row.get("Category")))
            size = _clean_text(row.get("Size")) or None
            if size and size not in ALL_SIZES:
                logger.warning("Unknown size %s for %s ignored", size, name)
                size = None
            quantity = to_int(row.get("Quantity")) if not pd.isna(row.get("Quantity")) else 0
            price_raw = row.get("Price")
            price = to_decimal(0 if price_raw is None or pd.isna(price_raw) else price_raw)
            carton_raw = row.get("Carton price")
            carton = None if carton_raw is None or pd.isna(carton_raw) else to_decimal(carton_raw)

            product = None
            if qr_code:
                product = db.query(Product).filter_by(qr_code=qr_code).first()
            if product is None:
                product = Product(name=name, qr_code=qr_code, date_added=datetime.now())
                db.add(product)
                created += 1
            else:
                updated += 1
            product.name = name
            product.category_id = category.id
            product.color = _clean_text(row.get("Color"))
            product.size = size
            product.quantity = quantity
            product.price = price
            product.carton_price = carton
            product.cost_price = _cost_price(carton, quantity)
            db.flush()
            if not product.qr_code:
                product.qr_code = product.product_code
    logger.info("Imported products: %s created, %s updated", created, updated)
    return {"created": created, "updated": updated}


__all__ = [
    "EXPORT_COLUMNS",
    "advanced_search",
    "category_counts",
    "create_category",
    "create_product",
    "delete_category",
    "delete_product",
    "export_frame",
    "find_by_qr",
    "get_category",
    "get_product",
    "get_quantity",
    "import_from_dataframe",
    "list_categories",
    "list_products",
    "low_stock_count",
    "popular_products",
    "product_dict",
    "products_by_category",
    "products_grouped_by_category",
    "recalculate_cost_prices",
    "refresh_low_stock_gauge",
    "search_products",
    "update_category",
    "update_product",
]
