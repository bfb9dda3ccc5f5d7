# Overview: Service-layer operations for the debt ledger; running balances per contact.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Contact, LedgerEntry
from kasir.time_utils import utcnow
from . import sync_service
from .errors import ValidationError, NotFoundError
"""
Debt ledger invariants

- Balance of a contact = sum(debit) - sum(credit). Positive balance on a
  customer is a receivable (they owe the store).
- Amounts are always positive; direction lives in `type`.
- due_date is only meaningful on debit entries.
- Deleting an entry only changes the recomputed balance; nothing cascades.
"""


LEDGER_DEBIT = "debit"
LEDGER_CREDIT = "credit"
VALID_LEDGER_TYPES = (LEDGER_DEBIT, LEDGER_CREDIT)


class LedgerError(ValidationError):
    pass


def add_ledger_entry(
    *,
    contact_id: int,
    amount: float,
    type: str,
    description: str,
    due_date: datetime | None = None,
    user_id: int | None = None,
    transaction_id: int | None = None,
    commit: bool = True,
) -> LedgerEntry:
    """
    Record a debit (what the contact owes grows) or credit (payment).

    Raises:
        LedgerError: amount not positive, empty description, unknown type
        NotFoundError: contact does not exist
    """
    if type not in VALID_LEDGER_TYPES:
        raise LedgerError(f"Invalid ledger type: {type}. Must be one of {list(VALID_LEDGER_TYPES)}")
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise LedgerError("Amount must be a number")
    if amount <= 0:
        raise LedgerError("Amount must be greater than 0")
    description = (description or "").strip()
    if not description:
        raise LedgerError("Description is required")

    contact = db.session.get(Contact, contact_id)
    if not contact:
        raise NotFoundError(f"Contact {contact_id} not found")

    now = utcnow()
    entry = LedgerEntry(
        contact_id=contact.id,
        transaction_id=transaction_id,
        amount=amount,
        type=type,
        description=description,
        date=now,
        due_date=due_date if type == LEDGER_DEBIT else None,
        user_id=user_id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
        sync_service.queue_action(sync_service.CREATE_LEDGER, entry.to_dict())
    return entry


def get_entry(entry_id: int) -> LedgerEntry:
    entry = db.session.get(LedgerEntry, entry_id)
    if not entry:
        raise NotFoundError(f"Ledger entry {entry_id} not found")
    return entry


def update_due_date(entry_id: int, due_date: datetime | None) -> LedgerEntry:
    entry = get_entry(entry_id)
    if due_date is not None and entry.type != LEDGER_DEBIT:
        raise LedgerError("Due dates can only be set on debit entries")
    entry.due_date = due_date
    entry.updated_at = utcnow()
    db.session.commit()
    sync_service.queue_action(sync_service.UPDATE_LEDGER, entry.to_dict())
    return entry


def delete_ledger_entry(entry_id: int) -> None:
    entry = get_entry(entry_id)
    payload = entry.to_dict()
    db.session.delete(entry)
    db.session.commit()
    sync_service.queue_action(sync_service.DELETE_LEDGER, payload)


def list_entries(contact_id: int) -> list[LedgerEntry]:
    return (
        db.session.query(LedgerEntry)
        .filter_by(contact_id=contact_id)
        .order_by(LedgerEntry.date.desc(), LedgerEntry.id.desc())
        .all()
    )


def get_balance(contact_id: int) -> float:
    rows = (
        db.session.query(LedgerEntry.type, func.coalesce(func.sum(LedgerEntry.amount), 0))
        .filter(LedgerEntry.contact_id == contact_id)
        .group_by(LedgerEntry.type)
        .all()
    )
    totals = {entry_type: float(total) for entry_type, total in rows}
    return totals.get(LEDGER_DEBIT, 0.0) - totals.get(LEDGER_CREDIT, 0.0)


def list_due_soon(days: int | None = None, now: datetime | None = None) -> list[dict]:
    """Debit entries due on or before now + days (overdue ones included)."""
    if days is None:
        days = current_app.config.get("KASIR_DUE_SOON_DAYS", 3)
    cutoff = (now or utcnow()) + timedelta(days=days)

    rows = (
        db.session.query(LedgerEntry, Contact)
        .join(Contact, Contact.id == LedgerEntry.contact_id)
        .filter(
            LedgerEntry.type == LEDGER_DEBIT,
            LedgerEntry.due_date.isnot(None),
            LedgerEntry.due_date <= cutoff,
        )
        .order_by(LedgerEntry.due_date.asc())
        .all()
    )
    return [{**entry.to_dict(), "contactName": contact.name} for entry, contact in rows]
