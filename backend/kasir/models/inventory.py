from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


class StockHistory(db.Model):
    """
    Append-only audit trail of stock quantity changes.

    TYPES:
    - sale: decremented by a settled transaction
    - return: restored by a returned line or voided transaction
    - Adjustment: manual correction
    - Initial: opening stock of a new product

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.Index("ix_stock_history_product_date", "product_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)
    variation_name = db.Column(db.String(128), nullable=True)

    old_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)
    change_amount = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, nullable=True)
    user_name = db.Column(db.String(128), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product_name,
            "variationName": self.variation_name,
            "oldStock": self.old_stock,
            "newStock": self.new_stock,
            "changeAmount": self.change_amount,
            "type": self.type,
            "reason": self.reason,
            "userId": self.user_id,
            "userName": self.user_name,
            "date": to_utc_z(self.date),
        }
