# Overview: Service-layer operations for contacts (customers and suppliers) and loyalty points.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Contact, LedgerEntry
from kasir.time_utils import utcnow
from . import sync_service
from .errors import ValidationError, NotFoundError


CONTACT_CUSTOMER = "customer"
CONTACT_SUPPLIER = "supplier"
VALID_CONTACT_TYPES = (CONTACT_CUSTOMER, CONTACT_SUPPLIER)

MIN_SEARCH_LENGTH = 2

CONTACT_FIELDS = ("name", "type", "phone", "barcode", "address", "notes")


class ContactError(ValidationError):
    pass


def get_contact(contact_id: int) -> Contact:
    contact = db.session.get(Contact, contact_id)
    if not contact:
        raise NotFoundError(f"Contact {contact_id} not found")
    return contact


def list_contacts(type: str | None = None, query: str | None = None) -> list[Contact]:
    q = db.session.query(Contact)
    if type:
        q = q.filter_by(type=type)
    if query:
        like = f"%{query.strip()}%"
        q = q.filter(
            (Contact.name.ilike(like)) | (Contact.phone.ilike(like)) | (Contact.barcode.ilike(like))
        )
    return q.order_by(Contact.name.asc()).all()


def _clean(data: dict) -> dict:
    cleaned = {}
    for field in CONTACT_FIELDS:
        if field in data:
            value = data[field]
            cleaned[field] = value.strip() if isinstance(value, str) else value
    return cleaned


def _validate_unique(name: str, phone: str | None, barcode: str | None, contact_id: int | None = None) -> None:
    """(name, phone) is unique case-insensitively; barcode is unique if present."""
    q = db.session.query(Contact).filter(func.lower(Contact.name) == name.lower())
    if contact_id is not None:
        q = q.filter(Contact.id != contact_id)
    for other in q.all():
        if (other.phone or "").strip() == (phone or ""):
            raise ContactError("A contact with the same name and phone already exists")

    if barcode:
        q = db.session.query(Contact).filter(Contact.barcode == barcode)
        if contact_id is not None:
            q = q.filter(Contact.id != contact_id)
        if q.first():
            raise ContactError("Barcode already used by another contact", details={"barcode": barcode})


def create_contact(data: dict) -> Contact:
    fields = _clean(data)
    name = fields.get("name") or ""
    if not name:
        raise ContactError("Contact name is required")
    contact_type = fields.get("type") or CONTACT_CUSTOMER
    if contact_type not in VALID_CONTACT_TYPES:
        raise ContactError(f"Invalid contact type: {contact_type}")

    phone = fields.get("phone") or None
    barcode = fields.get("barcode") or None
    _validate_unique(name, phone, barcode)

    contact = Contact(
        name=name,
        type=contact_type,
        phone=phone,
        barcode=barcode,
        address=fields.get("address") or None,
        notes=fields.get("notes") or None,
        points=0,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.session.add(contact)
    db.session.commit()
    sync_service.queue_action(sync_service.CREATE_CONTACT, contact.to_dict())
    return contact


def update_contact(contact_id: int, data: dict) -> Contact:
    """Edit contact details. Points are preserved; they only change via accrual or reset."""
    contact = get_contact(contact_id)
    fields = _clean(data)

    name = fields.get("name", contact.name) or ""
    if not name:
        raise ContactError("Contact name is required")
    contact_type = fields.get("type", contact.type)
    if contact_type not in VALID_CONTACT_TYPES:
        raise ContactError(f"Invalid contact type: {contact_type}")
    phone = fields.get("phone", contact.phone) or None
    barcode = fields.get("barcode", contact.barcode) or None
    _validate_unique(name, phone, barcode, contact_id=contact.id)

    contact.name = name
    contact.type = contact_type
    contact.phone = phone
    contact.barcode = barcode
    if "address" in fields:
        contact.address = fields["address"] or None
    if "notes" in fields:
        contact.notes = fields["notes"] or None
    contact.updated_at = utcnow()
    db.session.commit()
    sync_service.queue_action(sync_service.UPDATE_CONTACT, contact.to_dict())
    return contact


def delete_contact(contact_id: int) -> None:
    """Delete a contact together with its ledger entries."""
    contact = get_contact(contact_id)
    payload = contact.to_dict()
    db.session.query(LedgerEntry).filter_by(contact_id=contact.id).delete()
    db.session.delete(contact)
    db.session.commit()
    sync_service.queue_action(sync_service.DELETE_CONTACT, payload)


def add_points(contact_id: int, points: int, commit: bool = True) -> Contact:
    if points < 0:
        raise ContactError("Points to add must be >= 0")
    contact = get_contact(contact_id)
    contact.points = (contact.points or 0) + points
    contact.updated_at = utcnow()
    if commit:
        db.session.commit()
    return contact


def reset_points(contact_id: int) -> Contact:
    contact = get_contact(contact_id)
    contact.points = 0
    contact.updated_at = utcnow()
    db.session.commit()
    sync_service.queue_action(sync_service.UPDATE_CONTACT, contact.to_dict())
    return contact


def search_customers(query: str | None) -> list[Contact]:
    """
    Customer lookup for the cart.

    - fewer than 2 characters: no results
    - exact barcode match: only that customer (scanner auto-select)
    - otherwise: name / phone / barcode substring, case-insensitive
    """
    if not query or len(query.strip()) < MIN_SEARCH_LENGTH:
        return []
    term = query.strip()

    exact = db.session.query(Contact).filter_by(type=CONTACT_CUSTOMER, barcode=term).first()
    if exact:
        return [exact]

    return list_contacts(type=CONTACT_CUSTOMER, query=term)
