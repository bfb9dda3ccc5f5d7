# Overview: Service-layer operations for sales reports; omzet, HPP, profit and top sellers over a date range.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from ..extensions import db
from ..models import Contact, LedgerEntry, Product, Transaction
from kasir.time_utils import parse_range_bound, to_utc_z
from .errors import ValidationError
from .ledger_service import LEDGER_CREDIT
from .return_service import normalize_transaction


class ReportError(ValidationError):
    pass


def _parse_range(date_from: str | None, date_to: str | None) -> tuple[datetime | None, datetime | None]:
    """
    Inclusive range. A bare date (YYYY-MM-DD) as the upper bound covers
    the whole day.
    """
    try:
        start = parse_range_bound(date_from)
        end = parse_range_bound(date_to, upper=True)
    except ValueError:
        raise ReportError("Dates must be ISO-8601")
    if start and end and start > end:
        raise ReportError("date_from must be before date_to")
    return start, end


def _transactions_in_range(start: datetime | None, end: datetime | None) -> list[dict]:
    q = db.session.query(Transaction)
    if start:
        q = q.filter(Transaction.date >= start)
    if end:
        q = q.filter(Transaction.date <= end)
    return [normalize_transaction(t.to_dict()) for t in q.order_by(Transaction.date.asc()).all()]


def summarize_sales(date_from: str | None = None, date_to: str | None = None) -> dict:
    """
    Sales summary for a date range.

    - omzet: sum(total - fee amounts), i.e. sales after discount before fees
    - hpp: sum(purchasePrice * qty) using current product master data
    - netProfit: grossProfit - transaction fees
    - cashFlow: netProfit + receivable payments - debt payments
    """
    start, end = _parse_range(date_from, date_to)
    transactions = _transactions_in_range(start, end)
    products = {p.id: p for p in db.session.query(Product).all()}

    omzet = 0
    hpp = 0.0
    transaction_fees = 0
    total_discount = 0.0
    wholesale_sales = 0.0
    donation = 0

    for t in transactions:
        fee_sum = sum(fee.get("amount") or 0 for fee in t["fees"])
        omzet += (t.get("total") or 0) - fee_sum
        transaction_fees += fee_sum
        total_discount += t.get("totalDiscount") or 0
        donation += t.get("donation") or 0
        for item in t["items"]:
            product = products.get(item["productId"])
            purchase_price = (product.purchase_price or 0) if product else 0
            if product and item.get("variationIndex") is not None:
                variations = product.variations or []
                if 0 <= item["variationIndex"] < len(variations):
                    purchase_price = variations[item["variationIndex"]].get("purchasePrice") or 0
            hpp += purchase_price * item["quantity"]
            if item["isWholesale"]:
                wholesale_sales += item["effectivePrice"] * item["quantity"]

    q = (
        db.session.query(LedgerEntry, Contact.type)
        .join(Contact, Contact.id == LedgerEntry.contact_id)
        .filter(LedgerEntry.type == LEDGER_CREDIT)
    )
    if start:
        q = q.filter(LedgerEntry.date >= start)
    if end:
        q = q.filter(LedgerEntry.date <= end)

    receivable_payments = 0.0
    debt_payments = 0.0
    for entry, contact_type in q.all():
        if contact_type == "customer":
            receivable_payments += entry.amount
        elif contact_type == "supplier":
            debt_payments += entry.amount

    gross_profit = omzet - hpp
    net_profit = gross_profit - transaction_fees
    count = len(transactions)

    return {
        "dateFrom": to_utc_z(start),
        "dateTo": to_utc_z(end),
        "omzet": omzet,
        "hpp": hpp,
        "grossProfit": gross_profit,
        "transactionFees": transaction_fees,
        "totalDiscount": total_discount,
        "wholesaleSales": wholesale_sales,
        "donation": donation,
        "receivablePayments": receivable_payments,
        "debtPayments": debt_payments,
        "netProfit": net_profit,
        "cashFlow": net_profit + receivable_payments - debt_payments,
        "transactionCount": count,
        "averageTransaction": omzet / count if count else 0,
    }


def top_selling_products(date_from: str | None = None, date_to: str | None = None, limit: int = 5) -> list[dict]:
    start, end = _parse_range(date_from, date_to)
    quantities: dict[str, int] = defaultdict(int)
    revenue: dict[str, float] = defaultdict(float)

    for t in _transactions_in_range(start, end):
        for item in t["items"]:
            name = item.get("name") or f"#{item['productId']}"
            quantities[name] += item["quantity"]
            revenue[name] += item["effectivePrice"] * item["quantity"]

    ranked = sorted(quantities.items(), key=lambda kv: kv[1], reverse=True)[:limit]
    return [{"name": name, "quantity": qty, "revenue": revenue[name]} for name, qty in ranked]
