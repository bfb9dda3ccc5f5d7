from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


class Contact(db.Model):
    """
    Customer or supplier.

    Points are only meaningful for customers and only change through loyalty
    accrual at settlement or an explicit reset.
    """
    __tablename__ = "contacts"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_contacts_barcode"),
        db.Index("ix_contacts_type_name", "type", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="customer", index=True)  # customer, supplier
    phone = db.Column(db.String(32), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    points = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "phone": self.phone,
            "barcode": self.barcode,
            "address": self.address,
            "notes": self.notes,
            "points": self.points,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class LedgerEntry(db.Model):
    """
    Debt ledger line for a contact (running balance, not double-entry).

    TYPES:
    - debit: increases what the contact owes (receivable for a customer)
    - credit: decreases it (a payment)

    Balance = sum(debit) - sum(credit).
    """
    __tablename__ = "ledgers"
    __table_args__ = (
        db.Index("ix_ledgers_contact_date", "contact_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, nullable=True, index=True)

    amount = db.Column(db.Float, nullable=False)
    type = db.Column(db.String(8), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    contact = db.relationship("Contact", backref=db.backref("ledger_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contactId": self.contact_id,
            "transactionId": self.transaction_id,
            "amount": self.amount,
            "type": self.type,
            "description": self.description,
            "date": to_utc_z(self.date),
            "dueDate": to_utc_z(self.due_date) if self.due_date else None,
            "userId": self.user_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
