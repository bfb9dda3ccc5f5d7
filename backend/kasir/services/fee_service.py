# Overview: Service-layer operations for fee and tax definitions.

from __future__ import annotations

from ..extensions import db
from ..models import Fee
from kasir.time_utils import utcnow
from . import sync_service
from .errors import ValidationError, NotFoundError


FEE_PERCENTAGE = "percentage"
FEE_FIXED = "fixed"
VALID_FEE_TYPES = (FEE_PERCENTAGE, FEE_FIXED)

TAX_NAME_MARKERS = ("pajak", "ppn")


class FeeError(ValidationError):
    pass


def looks_like_tax(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in TAX_NAME_MARKERS)


def create_fee(
    name: str,
    type: str,
    value: float,
    is_default: bool = False,
    is_tax: bool | None = None,
) -> Fee:
    name = (name or "").strip()
    if not name:
        raise FeeError("Fee name is required")
    if type not in VALID_FEE_TYPES:
        raise FeeError(f"Invalid fee type: {type}. Must be one of {list(VALID_FEE_TYPES)}")
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise FeeError("Fee value must be a number")
    if value < 0:
        raise FeeError("Fee value must be >= 0")

    fee = Fee(
        name=name,
        type=type,
        value=value,
        is_default=bool(is_default),
        is_tax=looks_like_tax(name) if is_tax is None else bool(is_tax),
        created_at=utcnow(),
    )
    db.session.add(fee)
    db.session.commit()
    sync_service.queue_action(sync_service.CREATE_FEE, fee.to_dict())
    return fee


def list_fees() -> list[Fee]:
    return db.session.query(Fee).order_by(Fee.id.asc()).all()


def list_default_fees() -> list[Fee]:
    return db.session.query(Fee).filter_by(is_default=True).order_by(Fee.id.asc()).all()


def get_fee(fee_id: int) -> Fee:
    fee = db.session.get(Fee, fee_id)
    if not fee:
        raise NotFoundError(f"Fee {fee_id} not found")
    return fee


def delete_fee(fee_id: int) -> None:
    fee = get_fee(fee_id)
    payload = fee.to_dict()
    db.session.delete(fee)
    db.session.commit()
    sync_service.queue_action(sync_service.DELETE_FEE, payload)


def fee_snapshot(fee: Fee) -> dict:
    """Value copy of a fee for a cart or transaction."""
    return {
        "id": fee.id,
        "name": fee.name,
        "type": fee.type,
        "value": fee.value,
        "isDefault": fee.is_default,
        "isTax": fee.is_tax,
    }
