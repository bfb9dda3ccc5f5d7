from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


class Product(db.Model):
    """
    Sellable product master data.

    PRICING FIELDS (JSON, stored in the same shape the POS client uses):
    - discount: {"type": "percentage"|"fixed", "value": number} or null
    - wholesale_prices: [{"min": int, "max": int|null, "price": number}, ...]
    - variations: [{"name", "price", "purchasePrice", "stock", "wholesalePrices"}, ...]

    STOCK: null means unlimited/untracked. When variations exist, each
    variation carries its own stock and `stock` is the aggregate of the
    tracked variation stocks.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    barcode = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(128), nullable=True, index=True)

    price = db.Column(db.Float, nullable=False, default=0)
    purchase_price = db.Column(db.Float, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=True)

    discount = db.Column(db.JSON, nullable=True)
    wholesale_prices = db.Column(db.JSON, nullable=False, default=list)
    variations = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def has_variations(self) -> bool:
        return bool(self.variations)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "category": self.category,
            "price": self.price,
            "purchasePrice": self.purchase_price,
            "stock": self.stock,
            "discount": self.discount,
            "wholesalePrices": self.wholesale_prices or [],
            "variations": self.variations or [],
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Fee(db.Model):
    """
    Fee or tax definition.

    Fees are snapshotted by value into carts and transactions; editing or
    deleting a definition never changes historical transactions.
    """
    __tablename__ = "fees"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # percentage, fixed
    value = db.Column(db.Float, nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_tax = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "value": self.value,
            "isDefault": self.is_default,
            "isTax": self.is_tax,
            "createdAt": to_utc_z(self.created_at),
        }
