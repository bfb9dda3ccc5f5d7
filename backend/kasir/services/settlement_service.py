# Overview: Settlement state machine; payment method, amount, donation rounding and confirmation.

"""
Settlement Engine

STATES:
- SELECTING_METHOD: no payment method chosen yet
- AWAITING_AMOUNT: TUNAI underpaid, or PIUTANG without a customer
- READY: payment is valid, confirm is allowed
- SETTLED: terminal; the transaction is persisted

The state is re-derived from the session's cart and settlement inputs on
every call, so cart edits while the settlement is open are always reflected.

PAYMENT RULES:
- TUNAI: READY iff cashPaid >= grandTotal; change = cashPaid - grandTotal
- QRIS: always READY, cashPaid = grandTotal, change = 0
- PIUTANG: requires a customer; any cashPaid >= 0 is valid (down payment);
  negative change is the amount owed

DONATION: when the store setting is on and the per-transaction toggle is on
(it defaults to the setting), a total that is not a multiple of the unit is
rounded up; donation = grandTotal - total.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Transaction
from kasir.money import round_half_up, round_up_to_unit
from kasir.time_utils import utcnow
from . import cart_service, settings_service, sync_service
from .effects_service import EffectsReport, apply_post_settlement_effects
from .errors import ValidationError

if TYPE_CHECKING:
    from kasir.pos_session import PosSession


SELECTING_METHOD = "SELECTING_METHOD"
AWAITING_AMOUNT = "AWAITING_AMOUNT"
READY = "READY"
SETTLED = "SETTLED"

METHOD_CASH = "TUNAI"
METHOD_QRIS = "QRIS"
METHOD_DEBT = "PIUTANG"
VALID_METHODS = (METHOD_CASH, METHOD_QRIS, METHOD_DEBT)

METHOD_ALIASES = {
    "cash": METHOD_CASH,
    "tunai": METHOD_CASH,
    "qris": METHOD_QRIS,
    "debt": METHOD_DEBT,
    "piutang": METHOD_DEBT,
}

GENERIC_FAILURE = "Transaksi gagal. Silakan coba lagi."
CUSTOMER_REQUIRED = "Harap pilih pelanggan untuk transaksi piutang."


class SettlementError(ValidationError):
    pass


@dataclass
class Settlement:
    method: str | None = None
    cash_paid: float | None = None
    donation_enabled: bool = False
    state: str = SELECTING_METHOD
    transaction_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "cashPaid": self.cash_paid,
            "donationEnabled": self.donation_enabled,
            "state": self.state,
            "transactionId": self.transaction_id,
        }


@dataclass(frozen=True)
class Quote:
    totals: cart_service.CartTotals
    donation: int
    grand_total: int
    cash_paid: float
    change: float
    state: str
    blocking_reason: str | None = None

    @property
    def shortfall(self) -> float:
        return max(0, self.grand_total - self.cash_paid)

    def to_dict(self) -> dict:
        return {
            **self.totals.to_dict(),
            "donation": self.donation,
            "grandTotal": self.grand_total,
            "cashPaid": self.cash_paid,
            "change": self.change,
            "shortfall": self.shortfall,
            "state": self.state,
            "blockingReason": self.blocking_reason,
        }


@dataclass(frozen=True)
class SettlementOutcome:
    transaction: Transaction
    effects: EffectsReport

    def to_dict(self) -> dict:
        return {"transaction": self.transaction.to_dict(), "effects": self.effects.to_dict()}


def normalize_method(method: str) -> str:
    if not method:
        raise SettlementError("Payment method is required")
    normalized = METHOD_ALIASES.get(method.strip().lower(), method.strip().upper())
    if normalized not in VALID_METHODS:
        raise SettlementError(f"Invalid payment method: {method}. Must be one of {list(VALID_METHODS)}")
    return normalized


def donation_for(total: int, enabled: bool, unit: int | None = None) -> int:
    """Amount added to reach the next multiple of unit; 0 when not applicable."""
    if unit is None:
        unit = current_app.config.get("KASIR_DONATION_UNIT", 1000)
    if not enabled or total <= 0 or total % unit == 0:
        return 0
    return round_up_to_unit(total, unit) - total


def _require_settlement(session: "PosSession") -> Settlement:
    if session.settlement is None:
        raise SettlementError("No settlement in progress")
    if session.settlement.state == SETTLED:
        raise SettlementError("Settlement already completed", details={"transactionId": session.settlement.transaction_id})
    return session.settlement


def quote(session: "PosSession") -> Quote:
    """Evaluate the open settlement against the current cart and update its state."""
    settlement = session.settlement
    if settlement is None:
        raise SettlementError("No settlement in progress")

    totals = cart_service.compute_totals(session.cart)
    rounding_on = settings_service.is_donation_rounding_enabled() and settlement.donation_enabled
    donation = donation_for(totals.total, rounding_on)
    grand_total = totals.total + donation

    blocking_reason = None
    if settlement.state == SETTLED:
        cash_paid = settlement.cash_paid or 0
        state = SETTLED
    elif settlement.method is None:
        cash_paid = settlement.cash_paid or 0
        state = SELECTING_METHOD
    elif settlement.method == METHOD_QRIS:
        cash_paid = grand_total
        state = READY
    elif settlement.method == METHOD_CASH:
        cash_paid = settlement.cash_paid or 0
        if cash_paid >= grand_total:
            state = READY
        else:
            state, blocking_reason = AWAITING_AMOUNT, "underpaid"
    else:
        cash_paid = settlement.cash_paid or 0
        if not session.cart.customer_id:
            state, blocking_reason = AWAITING_AMOUNT, "customer required"
        else:
            state = READY

    if session.cart.is_empty and state == READY:
        state, blocking_reason = AWAITING_AMOUNT, "empty cart"

    settlement.state = state
    return Quote(
        totals=totals,
        donation=donation,
        grand_total=grand_total,
        cash_paid=cash_paid,
        change=cash_paid - grand_total,
        state=state,
        blocking_reason=blocking_reason,
    )


# =============================================================================
# Transitions
# =============================================================================

def open_settlement(session: "PosSession") -> Quote:
    if session.cart.is_empty:
        raise SettlementError("Keranjang kosong.")
    session.settlement = Settlement(donation_enabled=settings_service.is_donation_rounding_enabled())
    return quote(session)


def select_method(session: "PosSession", method: str) -> Quote:
    settlement = _require_settlement(session)
    settlement.method = normalize_method(method)
    if settlement.method == METHOD_QRIS:
        settlement.cash_paid = None
    return quote(session)


def set_amount(session: "PosSession", cash_paid) -> Quote:
    settlement = _require_settlement(session)
    if settlement.method is None:
        raise SettlementError("Choose a payment method first")
    if settlement.method == METHOD_QRIS:
        raise SettlementError("QRIS payments are always for the exact amount")
    try:
        amount = float(cash_paid)
    except (TypeError, ValueError):
        raise SettlementError("Amount must be a number")
    if amount < 0:
        raise SettlementError("Amount must be >= 0")
    settlement.cash_paid = round_half_up(amount)
    return quote(session)


def toggle_donation(session: "PosSession", enabled: bool | None = None) -> Quote:
    """Flip (or set) the per-transaction donation toggle."""
    settlement = _require_settlement(session)
    settlement.donation_enabled = (not settlement.donation_enabled) if enabled is None else bool(enabled)
    return quote(session)


def cancel_settlement(session: "PosSession") -> None:
    """Abandon the settlement in progress. Nothing is persisted."""
    session.settlement = None


def build_transaction(session: "PosSession", q: Quote) -> Transaction:
    cart = session.cart
    return Transaction(
        items=[{**line.to_dict(), "lineKey": line.line_id} for line in cart.items],
        fees=q.totals.fees,
        subtotal=q.totals.gross_subtotal,
        total_discount=q.totals.total_discount,
        total=q.totals.total,
        donation=q.donation,
        grand_total=q.grand_total,
        cash_paid=q.cash_paid,
        change=q.change,
        payment_method=session.settlement.method,
        customer_id=cart.customer_id,
        customer_name=cart.customer_name,
        user_id=session.user_id,
        user_name=session.user_name or "N/A",
        points_earned=0,
        date=utcnow(),
    )


def confirm(session: "PosSession") -> SettlementOutcome:
    """
    Complete the sale.

    Validation failures raise before anything is written. A persistence
    failure while writing the transaction is rolled back and surfaces as a
    generic retryable SettlementError; the session is left as it was.
    After the write, effects run best-effort and are reported in the outcome.
    """
    settlement = _require_settlement(session)
    if session.cart.is_empty:
        raise SettlementError("Keranjang kosong.")
    if settlement.method == METHOD_DEBT and not session.cart.customer_id:
        raise SettlementError(CUSTOMER_REQUIRED)

    q = quote(session)
    if q.state != READY:
        raise SettlementError(
            "Payment is not complete",
            details={"state": q.state, "shortfall": q.shortfall, "reason": q.blocking_reason},
        )

    try:
        transaction = build_transaction(session, q)
        db.session.add(transaction)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to persist transaction")
        raise SettlementError(GENERIC_FAILURE) from e

    sync_service.queue_action(sync_service.CREATE_TRANSACTION, transaction.to_dict())
    effects = apply_post_settlement_effects(transaction)

    settlement.state = SETTLED
    settlement.cash_paid = q.cash_paid
    settlement.transaction_id = transaction.id
    session.last_transaction_id = transaction.id
    cart_service.clear_cart(session.cart)

    current_app.logger.info(
        "Transaction %s settled: %s grandTotal=%s change=%s",
        transaction.id, transaction.payment_method, transaction.grand_total, transaction.change,
    )
    return SettlementOutcome(transaction=transaction, effects=effects)
