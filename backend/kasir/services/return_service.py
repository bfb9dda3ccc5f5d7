# Overview: Return and reversal of settled transactions; line returns, whole voids and record normalization.

"""
Returns

WHY: A return is the only controlled mutation of a settled transaction.
It removes one line, recomputes every derived field with the same per-line
rounding as the cart, and puts the stock back.

RULES:
- records are normalized first (legacy lines may lack basePrice or
  effectivePrice, or carry a composite "productId-variationIndex" id)
- removing the last line deletes the transaction (DELETE_TRANSACTION)
- percentage fees are re-applied to the new rounded subtotal; fixed fees
  keep their recorded amount
- donation is kept as recorded; grandTotal = total + donation
- loyalty points and ledger entries already posted are never reversed
- unlimited-stock units are not restocked and leave no history entry
- only lines whose sale decremented stock are restocked; a line whose
  stock effect never applied goes back without a stock entry
"""

from __future__ import annotations

import copy
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Transaction
from kasir import money
from . import sync_service
from .cart_service import fee_amount
from .effects_service import stock_was_decremented
from .errors import NotFoundError, ValidationError
from .fee_service import FEE_PERCENTAGE
from .inventory_service import STOCK_RETURN, apply_stock_delta, queue_stock_sync
from .pricing_service import apply_discount, normalize_discount


GENERIC_FAILURE = "Gagal memproses pengembalian. Silakan coba lagi."


class ReturnError(ValidationError):
    pass


@dataclass(frozen=True)
class ReturnOutcome:
    transaction_id: int
    returned_line: dict
    transaction: Transaction | None  # None when the last line was returned
    restocked: bool

    @property
    def deleted(self) -> bool:
        return self.transaction is None

    def to_dict(self) -> dict:
        return {
            "transactionId": self.transaction_id,
            "returnedLine": self.returned_line,
            "transaction": self.transaction.to_dict() if self.transaction else None,
            "deleted": self.deleted,
            "restocked": self.restocked,
        }


# =============================================================================
# Normalization
# =============================================================================

def _split_legacy_id(raw_id) -> tuple[int | None, int | None]:
    if raw_id is None:
        return None, None
    text = str(raw_id)
    if "-" in text:
        product_part, _, variation_part = text.partition("-")
        try:
            return int(product_part), int(variation_part)
        except ValueError:
            return None, None
    try:
        return int(text), None
    except ValueError:
        return None, None


def normalize_item(item: dict) -> dict:
    line = copy.deepcopy(item)

    if line.get("productId") is None:
        product_id, variation_index = _split_legacy_id(line.get("id"))
        line["productId"] = product_id
        if line.get("variationIndex") is None:
            line["variationIndex"] = variation_index
    line.setdefault("variationIndex", None)

    if line.get("basePrice") is None:
        line["basePrice"] = line.get("price") or 0
    if line.get("effectivePrice") is None:
        discount = normalize_discount(line.get("discount"), line.get("discountPercentage"))
        line["effectivePrice"] = apply_discount(line["basePrice"], discount)
    line["isWholesale"] = bool(line.get("isWholesale"))
    line["quantity"] = int(line.get("quantity") or 0)
    return line


def normalize_transaction(record: dict) -> dict:
    """
    Canonical copy of a stored transaction dict.

    Backfills basePrice from price, effectivePrice by re-applying the line's
    (possibly legacy) discount, isWholesale as False, productId and
    variationIndex from a composite id, and fee amounts.
    """
    canonical = copy.deepcopy(record)
    canonical["items"] = [normalize_item(item) for item in record.get("items") or []]

    subtotal = sum(money.line_total(i["effectivePrice"], i["quantity"]) for i in canonical["items"])
    fees = []
    for fee in record.get("fees") or []:
        fee = dict(fee)
        if fee.get("amount") is None:
            fee["amount"] = fee_amount(fee, subtotal)
        fees.append(fee)
    canonical["fees"] = fees
    canonical["donation"] = canonical.get("donation") or 0
    return canonical


def recompute_totals(items: list[dict], fees: list[dict], donation: int, cash_paid: float) -> dict:
    """Derived fields of a transaction for the given (normalized) lines."""
    subtotal_after_discount = sum(money.line_total(i["effectivePrice"], i["quantity"]) for i in items)

    new_fees = []
    for fee in fees:
        fee = dict(fee)
        if fee.get("type") == FEE_PERCENTAGE:
            fee["amount"] = fee_amount(fee, subtotal_after_discount)
        new_fees.append(fee)

    total = subtotal_after_discount + sum(fee.get("amount") or 0 for fee in new_fees)
    grand_total = total + donation
    return {
        "subtotal": sum(i["basePrice"] * i["quantity"] for i in items),
        "total_discount": sum((i["basePrice"] - i["effectivePrice"]) * i["quantity"] for i in items),
        "fees": new_fees,
        "total": total,
        "grand_total": grand_total,
        "change": cash_paid - grand_total,
    }


# =============================================================================
# Stock restoration
# =============================================================================

def _restock(item: dict, reason: str, user_id: int | None, user_name: str | None):
    """Stage the stock increment for one returned line. Returns (product, entry) or (None, None)."""
    product = db.session.get(Product, item.get("productId"))
    if product is None:
        return None, None
    variation_index = item.get("variationIndex")
    if variation_index is not None and not (0 <= variation_index < len(product.variations or [])):
        return None, None
    entry = apply_stock_delta(
        product,
        item["quantity"],
        variation_index=variation_index,
        type=STOCK_RETURN,
        reason=reason,
        user_id=user_id,
        user_name=user_name,
    )
    return product, entry


# =============================================================================
# Operations
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError(f"Transaksi {transaction_id} tidak ditemukan.")
    return transaction


def return_line(
    transaction_id: int,
    line_index: int,
    user_id: int | None = None,
    user_name: str | None = None,
) -> ReturnOutcome:
    """
    Return one line of a settled transaction.

    A line whose sale never took stock (failed stock effect) is removed
    without a restock. A persistence failure is rolled back and leaves the
    transaction and stock untouched.

    Raises:
        NotFoundError: transaction or line index does not exist
        ReturnError: the change could not be written
    """
    transaction = get_transaction(transaction_id)
    canonical = normalize_transaction(transaction.to_dict())
    items = canonical["items"]
    if not isinstance(line_index, int) or line_index < 0 or line_index >= len(items):
        raise NotFoundError(
            "Item tidak ditemukan dalam transaksi.",
            details={"transactionId": transaction_id, "lineIndex": line_index},
        )

    returned = items.pop(line_index)
    deleted_payload = None
    product, entry = None, None

    try:
        decremented = stock_was_decremented(transaction_id, returned)

        if not items:
            deleted_payload = canonical
            db.session.delete(transaction)
        else:
            derived = recompute_totals(items, canonical["fees"], canonical["donation"], transaction.cash_paid or 0)
            transaction.items = items
            transaction.fees = derived["fees"]
            transaction.subtotal = derived["subtotal"]
            transaction.total_discount = derived["total_discount"]
            transaction.total = derived["total"]
            transaction.grand_total = derived["grand_total"]
            transaction.change = derived["change"]

        if decremented:
            product, entry = _restock(returned, f"Retur Transaksi #{transaction_id}", user_id, user_name)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to return line %s of transaction %s", line_index, transaction_id)
        raise ReturnError(GENERIC_FAILURE) from e

    if not decremented:
        current_app.logger.info(
            "Returned line %s of transaction %s was never decremented; stock left as is",
            line_index, transaction_id,
        )

    if deleted_payload is not None:
        sync_service.queue_action(sync_service.DELETE_TRANSACTION, deleted_payload)
    else:
        sync_service.queue_action(sync_service.UPDATE_TRANSACTION, transaction.to_dict())
    if product is not None:
        queue_stock_sync(product, entry)

    return ReturnOutcome(
        transaction_id=transaction_id,
        returned_line=returned,
        transaction=None if deleted_payload is not None else transaction,
        restocked=entry is not None,
    )


def void_transaction(transaction_id: int, user_id: int | None = None, user_name: str | None = None) -> dict:
    """Delete a transaction outright, restoring the stock of every decremented line at once."""
    transaction = get_transaction(transaction_id)
    canonical = normalize_transaction(transaction.to_dict())

    restocked = []
    reason = f"Batal Transaksi #{transaction_id}"
    try:
        for item in canonical["items"]:
            if not stock_was_decremented(transaction_id, item):
                continue
            product, entry = _restock(item, reason, user_id, user_name)
            if product is not None:
                restocked.append((product, entry))

        db.session.delete(transaction)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Failed to void transaction %s", transaction_id)
        raise ReturnError(GENERIC_FAILURE) from e

    sync_service.queue_action(sync_service.DELETE_TRANSACTION, canonical)
    for product, entry in restocked:
        queue_stock_sync(product, entry)

    return {
        "transactionId": transaction_id,
        "deleted": True,
        "restockedLines": sum(1 for _, entry in restocked if entry is not None),
    }
