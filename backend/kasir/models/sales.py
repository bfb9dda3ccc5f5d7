from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Settled sale record.

    IMMUTABLE once created, except through the return path, which removes a
    line and recomputes every derived field. Items and fees are frozen
    snapshots (JSON) so later product or fee edits never change history.

    SIGN CONVENTION: negative `change` is the amount still owed by the
    customer (only possible for PIUTANG).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_customer_date", "customer_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    fees = db.Column(db.JSON, nullable=False, default=list)

    subtotal = db.Column(db.Float, nullable=False, default=0)  # sum(basePrice * qty), before discount
    total_discount = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)  # rounded lines + rounded fees
    donation = db.Column(db.Integer, nullable=False, default=0)
    grand_total = db.Column(db.Integer, nullable=False, default=0)
    cash_paid = db.Column(db.Float, nullable=False, default=0)
    change = db.Column(db.Float, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, index=True)  # TUNAI, QRIS, PIUTANG

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    user_name = db.Column(db.String(128), nullable=True)

    points_earned = db.Column(db.Integer, nullable=False, default=0)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": self.items or [],
            "subtotal": self.subtotal,
            "totalDiscount": self.total_discount,
            "fees": self.fees or [],
            "total": self.total,
            "donation": self.donation,
            "grandTotal": self.grand_total,
            "cashPaid": self.cash_paid,
            "change": self.change,
            "paymentMethod": self.payment_method,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "userId": self.user_id,
            "userName": self.user_name,
            "date": to_utc_z(self.date),
            "pointsEarned": self.points_earned,
        }


class PendingTransaction(db.Model):
    """Held cart snapshot waiting to be resumed."""
    __tablename__ = "pending_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cart = db.Column(db.JSON, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart": self.cart,
            "timestamp": to_utc_z(self.timestamp),
        }


class SettlementEffect(db.Model):
    """
    Idempotency record for one post-settlement unit of work.

    EFFECT KEYS:
    - points: loyalty accrual for the transaction's customer
    - ledger: debit posting for an underpaid PIUTANG sale
    - stock:<line key>: stock decrement for one transaction line, keyed by
      product and variation so it survives a return re-indexing the items

    Written in the same commit as the mutation it records, so a retried
    pipeline skips work that already landed.
    """
    __tablename__ = "settlement_effects"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "effect_key", name="uq_settlement_effects_txn_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, nullable=False, index=True)
    effect_key = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="APPLIED")
    detail = db.Column(db.String(255), nullable=True)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transactionId": self.transaction_id,
            "effectKey": self.effect_key,
            "status": self.status,
            "detail": self.detail,
            "appliedAt": to_utc_z(self.applied_at),
        }
