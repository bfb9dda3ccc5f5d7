# backend/kasir/services/products_service.py
"""
Products Service

Product master data CRUD. Pricing fields (discount, wholesale tiers,
variations) are validated here so the pricing resolver can trust them.

STOCK AUDIT:
- create logs an Initial entry per tracked stock (product or variation)
- edits that change a tracked stock log an Adjustment entry
"""
from __future__ import annotations

import copy

from ..extensions import db
from ..models import Product
from kasir.time_utils import utcnow
from . import sync_service
from .errors import ValidationError, NotFoundError
from .inventory_service import (
    aggregate_variation_stock,
    log_stock_change,
    STOCK_ADJUSTMENT,
    STOCK_INITIAL,
)
from .pricing_service import normalize_discount

PRODUCT_MUTABLE_FIELDS = {
    "name", "barcode", "category", "price", "purchasePrice", "stock",
    "discount", "wholesalePrices", "variations",
}


class ProductError(ValidationError):
    pass


def _as_number(value, field: str, *, allow_none: bool = False, minimum: float | None = 0):
    if value is None or value == "":
        if allow_none:
            return None
        raise ProductError(f"{field} is required")
    if isinstance(value, bool):
        raise ProductError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ProductError(f"{field} must be a number")
    if minimum is not None and number < minimum:
        raise ProductError(f"{field} must be >= {minimum}")
    return number


def _as_stock(value, field: str = "stock") -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ProductError(f"{field} must be an integer")
    try:
        stock = int(value)
    except (TypeError, ValueError):
        raise ProductError(f"{field} must be an integer")
    if stock != value and not isinstance(value, str):
        raise ProductError(f"{field} must be an integer")
    if stock < 0:
        raise ProductError(f"{field} must be >= 0")
    return stock


def validate_wholesale_prices(tiers, field: str = "wholesalePrices") -> list[dict]:
    """Canonical tier list: [{"min": int>=1, "max": int|None, "price": number>=0}]."""
    if tiers is None:
        return []
    if not isinstance(tiers, list):
        raise ProductError(f"{field} must be a list")

    cleaned = []
    for i, tier in enumerate(tiers):
        if not isinstance(tier, dict):
            raise ProductError(f"{field}[{i}] must be an object")
        min_qty = _as_stock(tier.get("min"), f"{field}[{i}].min")
        if not min_qty:
            raise ProductError(f"{field}[{i}].min must be >= 1")
        max_qty = _as_stock(tier.get("max"), f"{field}[{i}].max")
        if max_qty is not None and max_qty < min_qty:
            raise ProductError(f"{field}[{i}].max must be >= min")
        price = _as_number(tier.get("price"), f"{field}[{i}].price")
        cleaned.append({"min": min_qty, "max": max_qty, "price": price})
    return cleaned


def validate_variations(variations) -> list[dict]:
    if variations is None:
        return []
    if not isinstance(variations, list):
        raise ProductError("variations must be a list")

    cleaned = []
    for i, v in enumerate(variations):
        if not isinstance(v, dict):
            raise ProductError(f"variations[{i}] must be an object")
        name = (v.get("name") or "").strip()
        if not name:
            raise ProductError(f"variations[{i}].name is required")
        cleaned.append({
            "name": name,
            "price": _as_number(v.get("price"), f"variations[{i}].price"),
            "purchasePrice": _as_number(v.get("purchasePrice") or 0, f"variations[{i}].purchasePrice"),
            "stock": _as_stock(v.get("stock"), f"variations[{i}].stock"),
            "wholesalePrices": validate_wholesale_prices(
                v.get("wholesalePrices"), f"variations[{i}].wholesalePrices"
            ),
        })
    return cleaned


def _check_barcode_free(barcode: str | None, product_id: int | None = None) -> None:
    if not barcode:
        return
    q = db.session.query(Product).filter(Product.barcode == barcode)
    if product_id is not None:
        q = q.filter(Product.id != product_id)
    if q.first():
        raise ProductError("Barcode already used by another product", details={"barcode": barcode})


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def find_by_barcode(barcode: str) -> Product | None:
    return db.session.query(Product).filter_by(barcode=barcode).first()


def list_products(
    search: str | None = None,
    category: str | None = None,
    low_stock_threshold: int | None = None,
) -> list[Product]:
    q = db.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter((Product.name.ilike(like)) | (Product.barcode.ilike(like)))
    if category:
        q = q.filter(Product.category == category)
    if low_stock_threshold is not None:
        q = q.filter(Product.stock.isnot(None), Product.stock <= low_stock_threshold)
    return q.order_by(Product.name.asc()).all()


def create_product(data: dict, user_id: int | None = None, user_name: str | None = None) -> Product:
    name = (data.get("name") or "").strip()
    if not name:
        raise ProductError("name is required")

    barcode = (data.get("barcode") or "").strip() or None
    _check_barcode_free(barcode)

    variations = validate_variations(data.get("variations"))
    stock = aggregate_variation_stock(variations) if variations else _as_stock(data.get("stock"))

    product = Product(
        name=name,
        barcode=barcode,
        category=data.get("category"),
        price=_as_number(data.get("price", 0), "price"),
        purchase_price=_as_number(data.get("purchasePrice") or 0, "purchasePrice"),
        stock=stock,
        discount=normalize_discount(data.get("discount"), data.get("discountPercentage")),
        wholesale_prices=validate_wholesale_prices(data.get("wholesalePrices")),
        variations=variations,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.session.add(product)
    db.session.flush()

    entries = []
    if variations:
        for v in variations:
            entries.append(log_stock_change(
                product_id=product.id, product_name=name, variation_name=v["name"],
                old_stock=0, new_stock=v["stock"], type=STOCK_INITIAL, reason="Produk Baru",
                user_id=user_id, user_name=user_name, commit=False,
            ))
    else:
        entries.append(log_stock_change(
            product_id=product.id, product_name=name,
            old_stock=0, new_stock=stock, type=STOCK_INITIAL, reason="Produk Baru",
            user_id=user_id, user_name=user_name, commit=False,
        ))
    db.session.commit()

    sync_service.queue_action(sync_service.CREATE_PRODUCT, product.to_dict())
    for entry in entries:
        if entry is not None:
            sync_service.queue_action(sync_service.CREATE_STOCK_LOG, entry.to_dict())
    return product


def update_product(product_id: int, patch: dict, user_id: int | None = None, user_name: str | None = None) -> Product:
    product = get_product(product_id)
    entries = []

    for key in patch:
        if key not in PRODUCT_MUTABLE_FIELDS:
            raise ProductError(f"Field {key} is not editable")

    if "name" in patch:
        name = (patch.get("name") or "").strip()
        if not name:
            raise ProductError("name is required")
        product.name = name
    if "barcode" in patch:
        barcode = (patch.get("barcode") or "").strip() or None
        _check_barcode_free(barcode, product_id=product.id)
        product.barcode = barcode
    if "category" in patch:
        product.category = patch["category"]
    if "price" in patch:
        product.price = _as_number(patch["price"], "price")
    if "purchasePrice" in patch:
        product.purchase_price = _as_number(patch["purchasePrice"] or 0, "purchasePrice")
    if "discount" in patch:
        product.discount = normalize_discount(patch["discount"])
    if "wholesalePrices" in patch:
        product.wholesale_prices = validate_wholesale_prices(patch["wholesalePrices"])

    if "variations" in patch:
        old_by_name = {v.get("name"): v for v in copy.deepcopy(product.variations or [])}
        variations = validate_variations(patch["variations"])
        for v in variations:
            old = old_by_name.get(v["name"])
            if old is not None:
                entries.append(log_stock_change(
                    product_id=product.id, product_name=product.name, variation_name=v["name"],
                    old_stock=old.get("stock"), new_stock=v["stock"], type=STOCK_ADJUSTMENT,
                    reason="Edit produk", user_id=user_id, user_name=user_name, commit=False,
                ))
        product.variations = variations
        if variations:
            product.stock = aggregate_variation_stock(variations)

    if "stock" in patch and not product.variations:
        new_stock = _as_stock(patch["stock"])
        entries.append(log_stock_change(
            product_id=product.id, product_name=product.name,
            old_stock=product.stock, new_stock=new_stock, type=STOCK_ADJUSTMENT,
            reason="Edit produk", user_id=user_id, user_name=user_name, commit=False,
        ))
        product.stock = new_stock

    product.updated_at = utcnow()
    db.session.commit()

    sync_service.queue_action(sync_service.UPDATE_PRODUCT, product.to_dict())
    for entry in entries:
        if entry is not None:
            sync_service.queue_action(sync_service.CREATE_STOCK_LOG, entry.to_dict())
    return product


def delete_product(product_id: int) -> None:
    product = get_product(product_id)
    payload = product.to_dict()
    db.session.delete(product)
    db.session.commit()
    sync_service.queue_action(sync_service.DELETE_PRODUCT, payload)
