# Overview: Cart aggregator; line mutations, fee snapshots, totals and hold/resume of carts.

"""
Cart Aggregator

The cart lives in memory on a PosSession; only the functions here mutate it.

RULES:
- a line is keyed by product id, or product id + variation index
- every quantity change re-resolves pricing (wholesale tiers are
  quantity-dependent)
- stock None is unlimited; stock 0 cannot be added; increments past tracked
  stock are rejected; a quantity reaching 0 removes the line
- totals round per line: subtotal = sum(round(effectivePrice * qty))
- fees are value snapshots; percentage fees apply to the rounded subtotal
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from ..extensions import db
from ..models import Contact, Fee, PendingTransaction, Product
from kasir.money import round_half_up
from kasir import money
from kasir.time_utils import utcnow
from .errors import InsufficientStockError, NotFoundError, ValidationError
from .fee_service import FEE_PERCENTAGE, fee_snapshot, list_default_fees
from .pricing_service import PricingError, SellableUnit, VariationUnit, resolve_price, unit_for


class CartError(ValidationError):
    pass


def make_line_id(product_id: int, variation_index: int | None = None) -> str:
    if variation_index is None:
        return str(product_id)
    return f"{product_id}:{variation_index}"


@dataclass
class CartLine:
    product_id: int
    name: str
    quantity: int
    price: float
    base_price: float
    effective_price: float
    is_wholesale: bool = False
    discount: dict | None = None
    variation_index: int | None = None
    variation_name: str | None = None

    @property
    def line_id(self) -> str:
        return make_line_id(self.product_id, self.variation_index)

    @property
    def line_total(self) -> int:
        return money.line_total(self.effective_price, self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.line_id,
            "productId": self.product_id,
            "variationIndex": self.variation_index,
            "variationName": self.variation_name,
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price,
            "basePrice": self.base_price,
            "effectivePrice": self.effective_price,
            "isWholesale": self.is_wholesale,
            "discount": copy.deepcopy(self.discount),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            product_id=int(data["productId"]),
            variation_index=data.get("variationIndex"),
            variation_name=data.get("variationName"),
            name=data.get("name") or "",
            quantity=int(data.get("quantity") or 1),
            price=data.get("price", data.get("basePrice", 0)),
            base_price=data.get("basePrice", data.get("price", 0)),
            effective_price=data.get("effectivePrice", data.get("basePrice", 0)),
            is_wholesale=bool(data.get("isWholesale")),
            discount=copy.deepcopy(data.get("discount")),
        )


@dataclass
class Cart:
    items: list[CartLine] = field(default_factory=list)
    fees: list[dict] = field(default_factory=list)
    customer_id: int | None = None
    customer_name: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find_line(self, line_id: str) -> CartLine | None:
        for line in self.items:
            if line.line_id == line_id:
                return line
        return None

    def to_dict(self) -> dict:
        return {
            "items": [line.to_dict() for line in self.items],
            "fees": copy.deepcopy(self.fees),
            "customerId": self.customer_id,
            "customerName": self.customer_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Cart":
        return cls(
            items=[CartLine.from_dict(item) for item in data.get("items") or []],
            fees=copy.deepcopy(data.get("fees") or []),
            customer_id=data.get("customerId"),
            customer_name=data.get("customerName"),
        )


@dataclass(frozen=True)
class CartTotals:
    subtotal: int  # sum of rounded lines, after discount
    fees: list[dict]  # fee snapshots with computed amount
    total: int
    gross_subtotal: float  # sum(basePrice * qty), before discount
    total_discount: float

    @property
    def fee_total(self) -> int:
        return sum(fee["amount"] for fee in self.fees)

    def to_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "fees": self.fees,
            "feeTotal": self.fee_total,
            "total": self.total,
            "grossSubtotal": self.gross_subtotal,
            "totalDiscount": self.total_discount,
        }


# =============================================================================
# Pricing and totals
# =============================================================================

def fee_amount(fee: dict, subtotal: int | float) -> int:
    if fee.get("type") == FEE_PERCENTAGE:
        return round_half_up(subtotal * (fee.get("value") or 0) / 100)
    return round_half_up(fee.get("value") or 0)


def apply_fee_amounts(fees: list[dict], subtotal: int | float) -> list[dict]:
    """Copy of fees, each with its computed amount for this subtotal."""
    return [{**fee, "amount": fee_amount(fee, subtotal)} for fee in fees]


def compute_totals(cart: Cart) -> CartTotals:
    subtotal = sum(line.line_total for line in cart.items)
    fees = apply_fee_amounts(cart.fees, subtotal)
    return CartTotals(
        subtotal=subtotal,
        fees=fees,
        total=subtotal + sum(fee["amount"] for fee in fees),
        gross_subtotal=sum(line.base_price * line.quantity for line in cart.items),
        total_discount=sum((line.base_price - line.effective_price) * line.quantity for line in cart.items),
    )


def _reprice(line: CartLine, unit: SellableUnit) -> None:
    info = resolve_price(unit, line.quantity)
    line.price = unit.price
    line.base_price = info.base_price
    line.effective_price = info.effective_price
    line.is_wholesale = info.is_wholesale
    line.discount = unit.discount


def _load_unit(product_id: int, variation_index: int | None) -> SellableUnit | None:
    """Current sellable unit, or None if the product or variation is gone."""
    product = db.session.get(Product, product_id)
    if product is None:
        return None
    try:
        return unit_for(product, variation_index)
    except PricingError:
        return None


def _check_stock(unit: SellableUnit, quantity: int) -> None:
    if unit.stock is not None and quantity > unit.stock:
        raise InsufficientStockError(
            f"Stok {unit.name} tidak mencukupi. Sisa {unit.stock}.",
            available=unit.stock,
            details={"productId": unit.product_id, "variationIndex": unit.variation_index},
        )


# =============================================================================
# Line mutations
# =============================================================================

def add_line(cart: Cart, product_id: int, variation_index: int | None = None, quantity: int = 1) -> CartLine:
    """
    Add a unit to the cart, merging into an existing line for the same unit.

    Raises:
        NotFoundError: product or variation does not exist
        CartError: product has variations and none was chosen; bad quantity
        InsufficientStockError: out of stock, or the merged quantity exceeds stock
    """
    if quantity < 1:
        raise CartError("Quantity must be at least 1")

    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Produk tidak ditemukan.", details={"productId": product_id})
    try:
        unit = unit_for(product, variation_index)
    except PricingError as e:
        if variation_index is None:
            raise CartError("Pilih variasi produk terlebih dahulu.", details={"productId": product_id}) from e
        raise NotFoundError(
            "Variasi produk tidak ditemukan.",
            details={"productId": product_id, "variationIndex": variation_index},
        ) from e

    if unit.stock is not None and unit.stock <= 0:
        raise InsufficientStockError(f"{unit.name} habis.", available=unit.stock)

    line = cart.find_line(make_line_id(product_id, variation_index))
    new_quantity = (line.quantity if line else 0) + quantity
    _check_stock(unit, new_quantity)

    if line is None:
        line = CartLine(
            product_id=product.id,
            name=unit.name,
            quantity=new_quantity,
            price=unit.price,
            base_price=unit.price,
            effective_price=unit.price,
            variation_index=variation_index,
            variation_name=unit.variation_name if isinstance(unit, VariationUnit) else None,
        )
        cart.items.append(line)
    else:
        line.quantity = new_quantity
    _reprice(line, unit)
    return line


def update_quantity(cart: Cart, line_id: str, delta: int) -> CartLine | None:
    """
    Change a line's quantity by delta and re-resolve its price.

    Returns the updated line, or None when the line was removed because its
    quantity reached zero.

    Raises:
        NotFoundError: line not in cart, or its product/variation vanished
            (the stale line is dropped before raising)
        InsufficientStockError: new quantity exceeds tracked stock (cart unchanged)
    """
    line = cart.find_line(line_id)
    if line is None:
        raise NotFoundError(f"Line {line_id} not in cart", details={"lineId": line_id})

    unit = _load_unit(line.product_id, line.variation_index)
    if unit is None:
        cart.items.remove(line)
        raise NotFoundError(
            f"{line.name} tidak ditemukan lagi, dihapus dari keranjang.",
            details={"line": line.to_dict()},
        )

    new_quantity = line.quantity + delta
    if new_quantity <= 0:
        cart.items.remove(line)
        return None
    _check_stock(unit, new_quantity)

    line.quantity = new_quantity
    _reprice(line, unit)
    return line


def remove_line(cart: Cart, line_id: str) -> CartLine:
    line = cart.find_line(line_id)
    if line is None:
        raise NotFoundError(f"Line {line_id} not in cart", details={"lineId": line_id})
    cart.items.remove(line)
    return line


def clear_cart(cart: Cart) -> Cart:
    """Empty the cart, detach the customer and re-apply default fees."""
    cart.items = []
    cart.customer_id = None
    cart.customer_name = None
    apply_default_fees(cart)
    return cart


# =============================================================================
# Fees and customer
# =============================================================================

def apply_default_fees(cart: Cart) -> list[dict]:
    cart.fees = [fee_snapshot(fee) for fee in list_default_fees()]
    return cart.fees


def set_fees(cart: Cart, fee_ids: list[int]) -> list[dict]:
    """Replace the cart fees with snapshots of the given fee definitions."""
    snapshots = []
    for fee_id in fee_ids or []:
        fee = db.session.get(Fee, fee_id)
        if fee is None:
            raise NotFoundError(f"Fee {fee_id} not found", details={"feeId": fee_id})
        if any(s["id"] == fee.id for s in snapshots):
            continue
        snapshots.append(fee_snapshot(fee))
    cart.fees = snapshots
    return cart.fees


def reconcile_fees(cart: Cart) -> list[dict]:
    """
    Bring cart fees in line with the master list: fees deleted since they
    were applied are dropped, kept fees get a fresh snapshot, and missing
    default fees are added.
    """
    current = {fee.id: fee for fee in db.session.query(Fee).all()}
    reconciled = []
    for snapshot in cart.fees:
        fee = current.get(snapshot.get("id"))
        if fee is not None:
            reconciled.append(fee_snapshot(fee))
    present = {s["id"] for s in reconciled}
    for fee in current.values():
        if fee.is_default and fee.id not in present:
            reconciled.append(fee_snapshot(fee))
    cart.fees = reconciled
    return cart.fees


def attach_customer(cart: Cart, contact_id: int) -> Contact:
    contact = db.session.get(Contact, contact_id)
    if contact is None:
        raise NotFoundError(f"Contact {contact_id} not found")
    if contact.type != "customer":
        raise CartError("Only customers can be attached to a cart")
    cart.customer_id = contact.id
    cart.customer_name = contact.name
    return contact


def detach_customer(cart: Cart) -> None:
    cart.customer_id = None
    cart.customer_name = None


# =============================================================================
# Hold / resume
# =============================================================================

def hold_cart(cart: Cart) -> PendingTransaction:
    """Snapshot the cart into pending_transactions and start a fresh cart."""
    if cart.is_empty:
        raise CartError("Keranjang kosong, tidak ada yang bisa ditahan.")

    pending = PendingTransaction(cart=cart.to_dict(), timestamp=utcnow())
    db.session.add(pending)
    db.session.commit()
    clear_cart(cart)
    return pending


def pending_summary(pending: PendingTransaction) -> dict:
    totals = compute_totals(Cart.from_dict(pending.cart or {}))
    return {
        **pending.to_dict(),
        "itemCount": len((pending.cart or {}).get("items") or []),
        "total": totals.total,
    }


def list_pending() -> list[dict]:
    """Held carts, newest first, each with its computed total."""
    rows = (
        db.session.query(PendingTransaction)
        .order_by(PendingTransaction.timestamp.desc(), PendingTransaction.id.desc())
        .all()
    )
    return [pending_summary(row) for row in rows]


def resume_pending(cart: Cart, pending_id: int, replace: bool = False) -> Cart:
    """
    Replace the cart wholesale with a held snapshot and consume the snapshot.

    A cart that still has items is only overwritten when `replace` is set;
    otherwise CartError is raised and nothing changes.
    """
    pending = db.session.get(PendingTransaction, pending_id)
    if pending is None:
        raise NotFoundError("Transaksi tertahan tidak ditemukan.", details={"pendingId": pending_id})
    if not cart.is_empty and not replace:
        raise CartError(
            "Keranjang masih berisi item. Tahan atau kosongkan dulu.",
            details={"pendingId": pending_id, "itemCount": len(cart.items)},
        )

    restored = Cart.from_dict(pending.cart or {})
    db.session.delete(pending)
    db.session.commit()

    cart.items = restored.items
    cart.fees = restored.fees
    cart.customer_id = restored.customer_id
    cart.customer_name = restored.customer_name
    return cart


def delete_pending(pending_id: int) -> None:
    pending = db.session.get(PendingTransaction, pending_id)
    if pending is None:
        raise NotFoundError("Transaksi tertahan tidak ditemukan.", details={"pendingId": pending_id})
    db.session.delete(pending)
    db.session.commit()
