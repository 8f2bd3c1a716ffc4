"""
Billing-session cart engine.

A Cart is an immutable value owned by one billing session. Every operation is
a plain function that takes a cart and returns the next one, so the session
holding it decides when to re-render:

    cart = Cart()
    cart = add_or_increment(cart, product)
    cart = set_quantity(cart, product["id"], 4)
    view = render(cart)
    payload = snapshot(cart, customer_mobile="9876543210")

Lines are keyed by product id. Removing a line does not drop it from the
backing tuple: its state becomes REMOVED and it disappears from rendering
and totals until the product is added again.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from config import DEFAULT_PAYMENT_METHOD, MAX_LINE_QTY
from pricing import as_float, bill_totals, format_currency, line_total, to_money


# ---------------------------------------------------------------------
# Line state
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Active:
    quantity: int


@dataclass(frozen=True)
class Removed:
    pass


REMOVED = Removed()

LineState = Union[Active, Removed]


def _clamp(qty: int) -> int:
    return max(1, min(MAX_LINE_QTY, qty))


@dataclass(frozen=True)
class LineItem:
    product_id: str
    name: str
    batch: str
    unit_price: Decimal
    state: LineState = Active(1)

    @property
    def is_active(self) -> bool:
        return isinstance(self.state, Active)

    @property
    def quantity(self) -> int:
        return self.state.quantity if isinstance(self.state, Active) else 0

    @property
    def line_total(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)


@dataclass(frozen=True)
class Cart:
    items: Tuple[LineItem, ...] = ()

    def get(self, product_id) -> Optional[LineItem]:
        key = str(product_id)
        for it in self.items:
            if it.product_id == key:
                return it
        return None

    def active_items(self) -> Tuple[LineItem, ...]:
        return tuple(it for it in self.items if it.is_active)

    def totals(self):
        return bill_totals((it.unit_price, it.quantity) for it in self.active_items())

    def __len__(self) -> int:
        return len(self.active_items())


def _with_line(cart: Cart, product_id: str, new_state: LineState) -> Cart:
    return Cart(tuple(
        replace(it, state=new_state) if it.product_id == product_id else it
        for it in cart.items
    ))


def _product_field(product: Any, name: str, default=None):
    if isinstance(product, dict):
        return product.get(name, default)
    return getattr(product, name, default)


# ---------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------

def add_or_increment(cart: Cart, product: Any) -> Cart:
    """Add one unit of `product`; an existing line is incremented (capped at MAX_LINE_QTY)."""
    product_id = str(_product_field(product, "id"))
    existing = cart.get(product_id)
    if existing is not None:
        return _with_line(cart, product_id, Active(_clamp(existing.quantity + 1)))

    line = LineItem(
        product_id=product_id,
        name=_product_field(product, "name", "") or "",
        batch=_product_field(product, "sku") or "N/A",
        unit_price=to_money(_product_field(product, "unit_price") or 0),
    )
    return Cart(cart.items + (line,))


def set_quantity(cart: Cart, product_id, new_qty) -> Cart:
    """Set an active line's quantity, clamped to [1, MAX_LINE_QTY]."""
    line = cart.get(product_id)
    if line is None or not line.is_active:
        return cart
    try:
        qty = int(new_qty)
    except (TypeError, ValueError):
        qty = 1
    return _with_line(cart, line.product_id, Active(_clamp(qty)))


def increment(cart: Cart, product_id) -> Cart:
    line = cart.get(product_id)
    if line is None or not line.is_active:
        return cart
    return _with_line(cart, line.product_id, Active(_clamp(line.quantity + 1)))


def decrement(cart: Cart, product_id) -> Cart:
    line = cart.get(product_id)
    if line is None or not line.is_active:
        return cart
    return _with_line(cart, line.product_id, Active(_clamp(line.quantity - 1)))


def remove(cart: Cart, product_id) -> Cart:
    line = cart.get(product_id)
    if line is None:
        return cart
    return _with_line(cart, line.product_id, REMOVED)


def clear_all(cart: Cart) -> Cart:
    return Cart(tuple(replace(it, state=REMOVED) for it in cart.items))


# ---------------------------------------------------------------------
# Snapshot (bill payload)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class PayloadItem:
    product_id: str
    name: str
    batch: str
    price: Decimal
    qty: int
    line_total: Decimal

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.product_id,
            "name": self.name,
            "batch": self.batch,
            "price": float(self.price),
            "qty": self.qty,
            "lineTotal": as_float(self.line_total),
        }


@dataclass(frozen=True)
class BillPayload:
    items: Tuple[PayloadItem, ...]
    subtotal: Decimal
    gst: Decimal
    grand_total: Decimal
    created_at: datetime
    customer_mobile: str = ""
    customer_name: str = ""
    payment_method: str = DEFAULT_PAYMENT_METHOD
    org_id: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        body = {
            "customerMobile": self.customer_mobile,
            "customerName": self.customer_name,
            "items": [it.to_json() for it in self.items],
            "subtotal": as_float(self.subtotal),
            "gst": as_float(self.gst),
            "grandTotal": as_float(self.grand_total),
            "paymentMethod": self.payment_method,
            "createdAt": self.created_at.isoformat(),
        }
        if self.org_id:
            body["orgId"] = self.org_id
        return body


def snapshot(
    cart: Cart,
    customer_mobile: str = "",
    customer_name: str = "",
    now: Optional[datetime] = None,
    payment_method: str = DEFAULT_PAYMENT_METHOD,
    org_id: Optional[str] = None,
) -> BillPayload:
    active = cart.active_items()
    totals = cart.totals()
    return BillPayload(
        items=tuple(
            PayloadItem(
                product_id=it.product_id,
                name=it.name,
                batch=it.batch,
                price=it.unit_price,
                qty=it.quantity,
                line_total=it.line_total,
            )
            for it in active
        ),
        subtotal=totals.subtotal,
        gst=totals.tax,
        grand_total=totals.grand_total,
        created_at=now or datetime.now(timezone.utc),
        customer_mobile=(customer_mobile or "").strip(),
        customer_name=(customer_name or "").strip(),
        payment_method=payment_method,
        org_id=org_id,
    )


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CartRow:
    product_id: str
    name: str
    batch: str
    quantity: int
    price: str
    total: str


@dataclass(frozen=True)
class CartSummary:
    items: int
    subtotal: str
    gst: str
    grand_total: str


@dataclass(frozen=True)
class CartView:
    rows: Tuple[CartRow, ...]
    summary: CartSummary


def render(cart: Cart) -> CartView:
    """Visible rows and summary for a cart. Same cart in, same view out."""
    active = cart.active_items()
    totals = cart.totals()
    rows = tuple(
        CartRow(
            product_id=it.product_id,
            name=it.name,
            batch=it.batch,
            quantity=it.quantity,
            price=format_currency(it.unit_price),
            total=format_currency(it.line_total),
        )
        for it in active
    )
    return CartView(
        rows=rows,
        summary=CartSummary(
            items=len(active),
            subtotal=format_currency(totals.subtotal),
            gst=format_currency(totals.tax),
            grand_total=format_currency(totals.grand_total),
        ),
    )
