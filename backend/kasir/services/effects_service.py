# Overview: Post-settlement effects pipeline; points, debt posting and stock decrement per transaction.

"""
Post-Settlement Effects

WHY: The transaction record is the point of no return. Everything after it
(points, receivable, stock) is best-effort: a failure is logged and
reported, never rolled back into the sale.

PIPELINE (in order): points -> ledger -> stock

IDEMPOTENCY:
- each unit of work has an effect key: "points", "ledger", "stock:<lineKey>"
- lineKey is "<productId>" or "<productId>:<variationIndex>", not a list
  position; returns remove lines from the record
- the SettlementEffect row is committed together with its mutation
- re-running the pipeline for a transaction skips keys already recorded,
  so retry_effects() can be called any number of times

Each step catches its own failures (per line for stock) and keeps going.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import Contact, Product, SettlementEffect, Transaction
from kasir.time_utils import utcnow
from . import settings_service, sync_service
from .inventory_service import STOCK_SALE, apply_stock_delta, queue_stock_sync
from .ledger_service import LEDGER_DEBIT, add_ledger_entry
from .cart_service import make_line_id
from .errors import NotFoundError


STATUS_APPLIED = "applied"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"
STATUS_PARTIAL = "partial"

EFFECT_POINTS = "points"
EFFECT_LEDGER = "ledger"
EFFECT_STOCK = "stock"
EFFECT_STOCK_PREFIX = "stock:"

PAYMENT_DEBT = "PIUTANG"


@dataclass
class StepResult:
    name: str
    status: str
    detail: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"name": self.name, "status": self.status, "detail": self.detail, "errors": self.errors}


@dataclass
class EffectsReport:
    transaction_id: int
    steps: list[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.status in (STATUS_APPLIED, STATUS_SKIPPED) for step in self.steps)

    @property
    def failed_steps(self) -> list[str]:
        return [step.name for step in self.steps if step.status in (STATUS_FAILED, STATUS_PARTIAL)]

    def step(self, name: str) -> StepResult | None:
        for s in self.steps:
            if s.name == name:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "transactionId": self.transaction_id,
            "ok": self.ok,
            "steps": [step.to_dict() for step in self.steps],
        }


def line_key(item: dict) -> str:
    """
    Stable identity of a transaction line: "<productId>" or
    "<productId>:<variationIndex>". Lines are merged by that identity in the
    cart, so it is unique within a transaction and unaffected by returns.
    """
    return item.get("lineKey") or make_line_id(item.get("productId"), item.get("variationIndex"))


def stock_effect_key(item: dict) -> str:
    return f"{EFFECT_STOCK_PREFIX}{line_key(item)}"


def is_applied(transaction_id: int, effect_key: str) -> bool:
    return (
        db.session.query(SettlementEffect.id)
        .filter_by(transaction_id=transaction_id, effect_key=effect_key)
        .first()
        is not None
    )


def stock_was_decremented(transaction_id: int, item: dict) -> bool:
    """
    Whether the sale actually took this line's stock.

    Lines without a lineKey were written before stock effects were tracked
    and are assumed decremented at sale time.
    """
    if not item.get("lineKey"):
        return True
    return is_applied(transaction_id, stock_effect_key(item))


def _record(transaction_id: int, effect_key: str, detail: str | None = None) -> SettlementEffect:
    """Stage the idempotency row; committed with the mutation it describes."""
    effect = SettlementEffect(
        transaction_id=transaction_id,
        effect_key=effect_key,
        detail=detail,
        applied_at=utcnow(),
    )
    db.session.add(effect)
    return effect


def list_effects(transaction_id: int) -> list[SettlementEffect]:
    return (
        db.session.query(SettlementEffect)
        .filter_by(transaction_id=transaction_id)
        .order_by(SettlementEffect.id.asc())
        .all()
    )


# =============================================================================
# Steps
# =============================================================================

def accrue_points(transaction: Transaction) -> StepResult:
    """
    Loyalty accrual: floor(total / pointValuePerPoint) points when the point
    system is on, a customer is attached and total >= pointMinPurchase.
    """
    try:
        if is_applied(transaction.id, EFFECT_POINTS):
            return StepResult(EFFECT_POINTS, STATUS_SKIPPED, "already applied")
        if not settings_service.get_setting(settings_service.POINT_SYSTEM_ENABLED):
            return StepResult(EFFECT_POINTS, STATUS_SKIPPED, "point system disabled")
        if not transaction.customer_id:
            return StepResult(EFFECT_POINTS, STATUS_SKIPPED, "no customer")

        min_purchase = settings_service.get_setting(settings_service.POINT_MIN_PURCHASE) or 0
        value_per_point = settings_service.get_setting(settings_service.POINT_VALUE_PER_POINT) or 0
        if value_per_point <= 0:
            return StepResult(EFFECT_POINTS, STATUS_SKIPPED, "point value not configured")
        if transaction.total < min_purchase:
            return StepResult(EFFECT_POINTS, STATUS_SKIPPED, "below minimum purchase")

        points = int(transaction.total // value_per_point)
        if points <= 0:
            return StepResult(EFFECT_POINTS, STATUS_SKIPPED, "no points earned")

        customer = db.session.get(Contact, transaction.customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {transaction.customer_id} not found")
        customer.points = (customer.points or 0) + points
        customer.updated_at = utcnow()
        transaction.points_earned = points
        _record(transaction.id, EFFECT_POINTS, f"+{points} points")
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Point accrual failed for transaction %s", transaction.id)
        return StepResult(EFFECT_POINTS, STATUS_FAILED, errors=[str(e)])

    sync_service.queue_action(sync_service.UPDATE_CONTACT, customer.to_dict())
    sync_service.queue_action(sync_service.UPDATE_TRANSACTION, transaction.to_dict())
    return StepResult(EFFECT_POINTS, STATUS_APPLIED, f"+{points} points")


def post_debt(transaction: Transaction) -> StepResult:
    """Underpaid PIUTANG sale: debit the customer for |change|."""
    try:
        if is_applied(transaction.id, EFFECT_LEDGER):
            return StepResult(EFFECT_LEDGER, STATUS_SKIPPED, "already applied")
        if transaction.payment_method != PAYMENT_DEBT or transaction.change >= 0:
            return StepResult(EFFECT_LEDGER, STATUS_SKIPPED, "nothing owed")

        amount = abs(transaction.change)
        entry = add_ledger_entry(
            contact_id=transaction.customer_id,
            amount=amount,
            type=LEDGER_DEBIT,
            description=f"Piutang Transaksi #{transaction.id}",
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            commit=False,
        )
        _record(transaction.id, EFFECT_LEDGER, f"debit {amount}")
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Debt posting failed for transaction %s", transaction.id)
        return StepResult(EFFECT_LEDGER, STATUS_FAILED, errors=[str(e)])

    sync_service.queue_action(sync_service.CREATE_LEDGER, entry.to_dict())
    return StepResult(EFFECT_LEDGER, STATUS_APPLIED, f"debit {amount}")


def decrement_stock(transaction: Transaction) -> StepResult:
    """
    Decrement stock for every line, one commit per line.

    Unlimited units are skipped without a history entry. A sale may drive
    tracked stock negative (stale cart data); that is logged, not blocked.
    """
    applied = 0
    errors = []

    for item in transaction.items or []:
        key = stock_effect_key(item)
        try:
            if is_applied(transaction.id, key):
                continue

            product = db.session.get(Product, item.get("productId"))
            if product is None:
                raise NotFoundError(f"Product {item.get('productId')} not found")

            entry = apply_stock_delta(
                product,
                -int(item.get("quantity") or 0),
                variation_index=item.get("variationIndex"),
                type=STOCK_SALE,
                reason=f"Penjualan #{transaction.id}",
                user_id=transaction.user_id,
                user_name=transaction.user_name,
            )
            _record(transaction.id, key, "unlimited" if entry is None else f"{entry.change_amount}")
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception(
                "Stock decrement failed for transaction %s line %s", transaction.id, line_key(item)
            )
            errors.append(f"line {line_key(item)}: {e}")
            continue

        if entry is not None:
            queue_stock_sync(product, entry)
        applied += 1

    if errors:
        status = STATUS_PARTIAL if applied else STATUS_FAILED
        return StepResult(EFFECT_STOCK, status, f"{applied} line(s) applied", errors)
    if not applied:
        return StepResult(EFFECT_STOCK, STATUS_SKIPPED, "already applied")
    return StepResult(EFFECT_STOCK, STATUS_APPLIED, f"{applied} line(s) applied")


PIPELINE = (
    (EFFECT_POINTS, accrue_points),
    (EFFECT_LEDGER, post_debt),
    (EFFECT_STOCK, decrement_stock),
)


def apply_post_settlement_effects(transaction: Transaction) -> EffectsReport:
    """Run every step in order. Never raises for a failing step."""
    report = EffectsReport(transaction_id=transaction.id)
    for name, step in PIPELINE:
        try:
            result = step(transaction)
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Effect step %s crashed for transaction %s", name, transaction.id)
            result = StepResult(name, STATUS_FAILED, errors=[str(e)])
        report.steps.append(result)

    if not report.ok:
        current_app.logger.warning(
            "Transaction %s settled with failed effects: %s",
            transaction.id,
            ", ".join(report.failed_steps),
        )
    return report


def retry_effects(transaction_id: int) -> EffectsReport:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return apply_post_settlement_effects(transaction)
