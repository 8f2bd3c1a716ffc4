"""
Billing screen controller.

Owns the cart and customer lookup for one billing session and talks to the
API. Every cart change is pushed to `on_render` with a fresh CartView, so a
UI only has to draw what it is handed.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import cart as carts
from billing import PostedBill
from cart import Cart, CartView
from customer_lookup import CustomerLookup
from customers import validate_mobile
from errors import InsufficientStock, NotFoundError, RemoteFailure, ValidationError
from loggers import get_logger
from receipt import render_receipt, time_ago
from stock import Shortfall

log = get_logger("pharmacy_pos.client.billing")

MIN_SEARCH_CHARS = 3
RECENT_BILLS_SHOWN = 5


def _out_of_stock(product: Dict[str, Any]) -> InsufficientStock:
    available = int(product.get("available_stock") or 0)
    return InsufficientStock(
        [Shortfall(product_id=str(product.get("id")), name=product.get("name", ""), requested=1, available=available, shortfall=1 - available)],
        f"{product.get('name')} is out of stock",
    )


class BillingScreen:
    def __init__(
        self,
        api,
        on_render: Optional[Callable[[CartView], None]] = None,
        on_receipt: Optional[Callable[[str], None]] = None,
        max_workers: int = 8,
    ):
        self.api = api
        self.on_render = on_render
        self.on_receipt = on_receipt
        self.max_workers = max_workers
        self.cart = Cart()
        self.customer = CustomerLookup(api)
        self.recent_bills: List[Dict[str, Any]] = []
        self.last_receipt: Optional[str] = None

    # ---------------------------------------------------------------------
    # Rendering
    # ---------------------------------------------------------------------
    def _apply(self, op, *args) -> CartView:
        self.cart = op(self.cart, *args)
        return self.refresh()

    def refresh(self) -> CartView:
        view = carts.render(self.cart)
        if self.on_render:
            self.on_render(view)
        return view

    # ---------------------------------------------------------------------
    # Products
    # ---------------------------------------------------------------------
    def scan(self, barcode: str) -> CartView:
        barcode = (barcode or "").strip()
        res = self.api.search_products(barcode=barcode)
        product = res.get("product")
        if not product:
            raise NotFoundError(f"Product not found for barcode: {barcode}")
        return self.add(product)

    def search(self, query: str) -> List[Dict[str, Any]]:
        query = (query or "").strip()
        if len(query) < MIN_SEARCH_CHARS:
            return []
        return self.api.search_products(name=query).get("products", [])

    def add(self, product: Dict[str, Any]) -> CartView:
        if product.get("available_stock") is not None and product["available_stock"] <= 0:
            raise _out_of_stock(product)
        return self._apply(carts.add_or_increment, product)

    # ---------------------------------------------------------------------
    # Cart edits
    # ---------------------------------------------------------------------
    def increment(self, product_id: str) -> CartView:
        return self._apply(carts.increment, product_id)

    def decrement(self, product_id: str) -> CartView:
        return self._apply(carts.decrement, product_id)

    def set_quantity(self, product_id: str, qty) -> CartView:
        return self._apply(carts.set_quantity, product_id, qty)

    def remove(self, product_id: str) -> CartView:
        return self._apply(carts.remove, product_id)

    def clear_all(self) -> CartView:
        return self._apply(carts.clear_all)

    # ---------------------------------------------------------------------
    # Customer
    # ---------------------------------------------------------------------
    def set_mobile(self, mobile: str) -> None:
        self.customer.mobile_changed(mobile)

    def submit_customer(self, name: str = "") -> Optional[Dict[str, Any]]:
        return self.customer.submit(name=name)

    # ---------------------------------------------------------------------
    # Bill
    # ---------------------------------------------------------------------
    def check_stock(self, payload: carts.BillPayload) -> List[Shortfall]:
        """
        One product lookup per line, issued together. A failed lookup raises;
        availability is never guessed.
        """
        if not payload.items:
            return []
        workers = min(len(payload.items), self.max_workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            products = list(pool.map(lambda it: self.api.get_product(it.product_id), payload.items))

        shortfalls = []
        for it, product in zip(payload.items, products):
            available = int(product.get("available_stock") or 0)
            if available < it.qty:
                shortfalls.append(Shortfall(
                    product_id=it.product_id,
                    name=it.name,
                    requested=it.qty,
                    available=available,
                    shortfall=it.qty - available,
                ))
        return shortfalls

    def submit(self, customer_name: str = "") -> PostedBill:
        """
        Post the cart as a bill. `customer_name` is the name typed on the
        screen; a looked-up customer's name takes precedence. An unknown
        mobile with a typed name is registered by the server with the bill.
        """
        payload = carts.snapshot(
            self.cart,
            customer_mobile=self.customer.mobile,
            customer_name=self.customer.resolved_name or customer_name,
        )
        if not payload.items:
            raise ValidationError("Please add items to the bill")
        if payload.customer_mobile:
            validate_mobile(payload.customer_mobile)

        shortfalls = self.check_stock(payload)
        if shortfalls:
            raise InsufficientStock(shortfalls)

        posted = self.api.post_bill(payload)
        log.info("Bill saved: %s total=%s", posted.bill_number, posted.total)

        self.last_receipt = render_receipt(payload, posted.bill_number)
        self.cart = Cart()
        self.customer.reset()
        self.refresh()
        self.reload_recent_bills()
        if self.on_receipt:
            self.on_receipt(self.last_receipt)
        return posted

    def reload_recent_bills(self) -> List[Dict[str, Any]]:
        try:
            bills = self.api.list_recent_bills(RECENT_BILLS_SHOWN)
            self.recent_bills = [
                {**b, "when": time_ago(b["created_at"]) if b.get("created_at") else ""}
                for b in bills
            ]
        except RemoteFailure as e:
            # the list keeps its previous contents; the bill itself is already saved
            log.warning("Error loading recent bills: %s", e)
        return self.recent_bills
