# Overview: Service-layer operations for stock; stock mutations paired with stock history entries.

"""
Stock primitives

Every stock mutation is paired with an append-only StockHistory entry.

RULES:
- stock None means unlimited; unlimited units are never changed or logged
- entries with no net change are suppressed
- when a product has variations, product.stock is the sum of the tracked
  variation stocks (None if every variation is unlimited)
"""

from __future__ import annotations

import copy

from flask import current_app
from sqlalchemy.orm.attributes import flag_modified

from ..extensions import db
from ..models import Product, StockHistory
from kasir.time_utils import utcnow
from . import sync_service
from .errors import NotFoundError, ValidationError


STOCK_SALE = "sale"
STOCK_RETURN = "return"
STOCK_ADJUSTMENT = "Adjustment"
STOCK_INITIAL = "Initial"


class StockError(ValidationError):
    pass


def aggregate_variation_stock(variations: list[dict]) -> int | None:
    tracked = [v.get("stock") for v in variations if v.get("stock") is not None]
    if not tracked:
        return None
    return sum(tracked)


def log_stock_change(
    *,
    product_id: int,
    product_name: str | None,
    old_stock: int | None,
    new_stock: int | None,
    type: str,
    reason: str | None = None,
    variation_name: str | None = None,
    user_id: int | None = None,
    user_name: str | None = None,
    commit: bool = True,
) -> StockHistory | None:
    """
    Append a stock history entry. Returns None when the entry is suppressed
    (unlimited stock or zero change).
    """
    if old_stock is None or new_stock is None:
        return None
    change_amount = new_stock - old_stock
    if change_amount == 0:
        return None

    entry = StockHistory(
        product_id=product_id,
        product_name=product_name,
        variation_name=variation_name,
        old_stock=old_stock,
        new_stock=new_stock,
        change_amount=change_amount,
        type=type,
        reason=reason,
        user_id=user_id,
        user_name=user_name or "System",
        date=utcnow(),
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def apply_stock_delta(
    product: Product,
    delta: int,
    *,
    variation_index: int | None = None,
    type: str,
    reason: str | None = None,
    user_id: int | None = None,
    user_name: str | None = None,
    clamp_at_zero: bool = False,
) -> StockHistory | None:
    """
    Change stock of a product (or one of its variations) by delta and stage
    the matching history entry. Does not commit.

    Returns the staged StockHistory, or None if the unit is unlimited or the
    change is zero.
    """
    if variation_index is not None:
        variations = copy.deepcopy(product.variations or [])
        if variation_index < 0 or variation_index >= len(variations):
            raise NotFoundError(
                f"Variation {variation_index} of product {product.id} not found",
                details={"product_id": product.id, "variation_index": variation_index},
            )
        variation = variations[variation_index]
        old_stock = variation.get("stock")
        if old_stock is None:
            return None
        new_stock = old_stock + delta
        if clamp_at_zero:
            new_stock = max(0, new_stock)
        variation["stock"] = new_stock
        product.variations = variations
        flag_modified(product, "variations")
        product.stock = aggregate_variation_stock(variations)
        variation_name = variation.get("name")
    else:
        old_stock = product.stock
        if old_stock is None:
            return None
        new_stock = old_stock + delta
        if clamp_at_zero:
            new_stock = max(0, new_stock)
        product.stock = new_stock
        variation_name = None

    if new_stock < 0:
        current_app.logger.warning(
            "Stock of product %s%s went negative (%s) after %s",
            product.id,
            f" variation {variation_index}" if variation_index is not None else "",
            new_stock,
            type,
        )

    product.updated_at = utcnow()
    return log_stock_change(
        product_id=product.id,
        product_name=product.name,
        variation_name=variation_name,
        old_stock=old_stock,
        new_stock=new_stock,
        type=type,
        reason=reason,
        user_id=user_id,
        user_name=user_name,
        commit=False,
    )


def queue_stock_sync(product: Product, entry: StockHistory | None) -> None:
    """Queue the product update and its history entry after a committed stock change."""
    if entry is not None:
        sync_service.queue_action(sync_service.CREATE_STOCK_LOG, entry.to_dict())
    sync_service.queue_action(sync_service.UPDATE_PRODUCT, product.to_dict())


def adjust_stock(
    product_id: int,
    delta: int,
    *,
    variation_index: int | None = None,
    reason: str | None = None,
    user_id: int | None = None,
    user_name: str | None = None,
) -> Product:
    """
    Manual quick adjustment (+/- buttons). Clamped at zero; unlimited stock
    is left untouched.
    """
    if delta == 0:
        raise StockError("Adjustment must be non-zero")

    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")

    entry = apply_stock_delta(
        product,
        delta,
        variation_index=variation_index,
        type=STOCK_ADJUSTMENT,
        reason=reason or "Tombol Cepat",
        user_id=user_id,
        user_name=user_name,
        clamp_at_zero=True,
    )
    db.session.commit()
    queue_stock_sync(product, entry)
    return product


def list_stock_history(product_id: int | None = None, limit: int | None = None) -> list[StockHistory]:
    q = db.session.query(StockHistory)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    q = q.order_by(StockHistory.date.desc(), StockHistory.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()
