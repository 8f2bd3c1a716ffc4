import threading
from decimal import Decimal

import pytest

from billing import PostedBill
from billing_screen import BillingScreen
from errors import InsufficientStock, NotFoundError, RemoteFailure, ValidationError

PARA = {"id": "p1", "name": "Paracetamol 500mg", "sku": "PCM2401", "unit_price": 4.5, "available_stock": 100}
AZI = {"id": "p2", "name": "Azithromycin 500mg", "sku": "AZT2402", "unit_price": 24.0, "available_stock": 5}
AMOX = {"id": "p3", "name": "Amoxicillin 250mg", "sku": "AMX2403", "unit_price": 8.5, "available_stock": 0}


class FakeApi:
    def __init__(self, products=(PARA, AZI, AMOX)):
        self.products = {p["id"]: dict(p) for p in products}
        self.posted = []
        self.lookups = []
        self.recent_fails = False
        self._lock = threading.Lock()
        self._barrier = None

    def wait_for_lookups(self, n):
        """Make get_product block until n lookups are in flight at once."""
        self._barrier = threading.Barrier(n, timeout=5)

    def search_products(self, barcode=None, name=None, sku=None):
        if barcode:
            hits = [p for p in self.products.values() if p["sku"] == barcode]
        else:
            hits = [p for p in self.products.values() if name.lower() in p["name"].lower()]
        return {"product": hits[0] if hits else None, "products": hits}

    def get_product(self, product_id):
        if self._barrier:
            self._barrier.wait()
        with self._lock:
            self.lookups.append(product_id)
        if product_id not in self.products:
            raise NotFoundError("Product not found")
        return self.products[product_id]

    def search_customer(self, mobile):
        return {"customer": None, "found": False}

    def create_customer(self, mobile, name):
        return {"id": "c1", "mobile": mobile, "name": name}

    def post_bill(self, payload):
        self.posted.append(payload)
        return PostedBill(bill_number=f"BILL-20261019-{len(self.posted):06d}", bill_id="b1", total=payload.grand_total)

    def list_recent_bills(self, limit=5):
        if self.recent_fails:
            raise RemoteFailure("Failed to list bills")
        return [{"bill_number": p, "total": 0} for p in ("BILL-A", "BILL-B")][:limit]


@pytest.fixture()
def fake():
    return FakeApi()


@pytest.fixture()
def rendered():
    return []


@pytest.fixture()
def screen(fake, rendered):
    return BillingScreen(fake, on_render=rendered.append)


def test_scan_adds_and_renders(screen, rendered):
    screen.scan("PCM2401")
    screen.scan(" PCM2401 ")
    assert len(rendered) == 2
    assert rendered[-1].rows[0].quantity == 2
    assert rendered[-1].summary.grand_total == "₹10.08"


def test_scan_unknown_barcode(screen):
    with pytest.raises(NotFoundError, match="Product not found for barcode: 000"):
        screen.scan("000")


def test_out_of_stock_product_is_not_added(screen, rendered):
    with pytest.raises(InsufficientStock, match="out of stock"):
        screen.add(AMOX)
    assert len(screen.cart) == 0
    assert rendered == []


def test_search_needs_three_characters(screen):
    assert screen.search("pa") == []
    assert [p["id"] for p in screen.search("para")] == ["p1"]


def test_edits_render_each_time(screen, rendered):
    screen.add(PARA)
    screen.increment("p1")
    screen.set_quantity("p1", "7")
    screen.decrement("p1")
    assert rendered[-1].rows[0].quantity == 6
    screen.remove("p1")
    assert rendered[-1].rows == ()
    assert len(rendered) == 5


def test_submit_empty_cart(screen, fake):
    with pytest.raises(ValidationError, match="Please add items"):
        screen.submit()
    screen.add(PARA)
    screen.clear_all()
    with pytest.raises(ValidationError):
        screen.submit()
    assert fake.posted == []


def test_submit_checks_every_line_concurrently(screen, fake):
    screen.add(PARA)
    screen.add(AZI)
    fake.wait_for_lookups(2)
    posted = screen.submit()
    assert sorted(fake.lookups) == ["p1", "p2"]
    assert posted.total == Decimal("31.92")


def test_submit_rejects_shortfall_without_posting(screen, fake):
    screen.add(AZI)
    screen.set_quantity("p2", 8)
    with pytest.raises(InsufficientStock) as ei:
        screen.submit()
    s = ei.value.shortfalls[0]
    assert (s.name, s.requested, s.available, s.shortfall) == ("Azithromycin 500mg", 8, 5, 3)
    assert "Short by: 3" in ei.value.describe()
    assert fake.posted == []
    assert len(screen.cart) == 1


def test_failed_stock_lookup_blocks_submit(screen, fake):
    screen.add(PARA)
    del fake.products["p1"]
    with pytest.raises(NotFoundError):
        screen.submit()
    assert fake.posted == []


def test_successful_submit_resets_session(fake, rendered):
    receipts = []
    screen = BillingScreen(fake, on_render=rendered.append, on_receipt=receipts.append)
    screen.add(PARA)
    screen.set_mobile("9876543210")
    assert screen.submit_customer() is None
    screen.submit_customer(name="Ravi")

    posted = screen.submit()

    payload = fake.posted[0]
    assert payload.customer_mobile == "9876543210"
    assert payload.customer_name == "Ravi"
    assert posted.bill_number == "BILL-20261019-000001"
    assert len(screen.cart) == 0
    assert rendered[-1].rows == ()
    assert screen.customer.mobile == ""
    assert screen.recent_bills[0]["bill_number"] == "BILL-A"
    assert receipts == [screen.last_receipt]
    assert "Customer: Ravi" in screen.last_receipt
    assert "Bill No: BILL-20261019-000001" in screen.last_receipt


def test_recent_bills_failure_keeps_the_posted_bill(screen, fake):
    screen.reload_recent_bills()
    fake.recent_fails = True
    screen.add(PARA)
    posted = screen.submit()
    assert posted.bill_number
    assert [b["bill_number"] for b in screen.recent_bills] == ["BILL-A", "BILL-B"]


def test_end_to_end_against_the_api(api, products, db):
    screen = BillingScreen(api, max_workers=1)
    screen.scan("8901234567890")
    screen.set_quantity(products["para"], 4)
    screen.add(api.get_product(products["azi"]))

    posted = screen.submit()

    assert posted.total == Decimal("47.04")
    assert db["bill"].find_one({"bill_number": posted.bill_number})["grand_total"] == 47.04
    assert api.get_product(products["para"])["available_stock"] == 96
    assert screen.recent_bills[0]["bill_number"] == posted.bill_number
    assert screen.recent_bills[0]["when"] == "Just now"
    assert "GRAND TOTAL:" in screen.last_receipt


def test_end_to_end_conflict_surfaces_shortfalls(api, products):
    screen = BillingScreen(api, max_workers=1)
    screen.add(api.get_product(products["azi"]))
    screen.set_quantity(products["azi"], 9)
    with pytest.raises(InsufficientStock) as ei:
        screen.submit()
    assert ei.value.shortfalls[0].shortfall == 4


def test_invalid_mobile_is_rejected_before_any_lookup(screen, fake):
    screen.add(PARA)
    screen.set_mobile("123")
    with pytest.raises(ValidationError, match="valid 10-digit"):
        screen.submit()
    assert fake.lookups == []
    assert fake.posted == []


def test_typed_name_is_sent_when_customer_was_not_added(screen, fake):
    screen.add(PARA)
    screen.set_mobile("9123456780")
    assert screen.submit_customer() is None

    screen.submit(customer_name="Meera")

    assert fake.posted[0].customer_mobile == "9123456780"
    assert fake.posted[0].customer_name == "Meera"


def test_looked_up_name_wins_over_typed_name(fake):
    fake.search_customer = lambda mobile: {"customer": {"id": "c1", "mobile": mobile, "name": "Asha"}, "found": True}
    screen = BillingScreen(fake)
    screen.add(PARA)
    screen.set_mobile("9876543210")
    screen.submit_customer()

    screen.submit(customer_name="Someone Else")

    assert fake.posted[0].customer_name == "Asha"


def test_end_to_end_unknown_mobile_with_typed_name_registers_customer(api, products, db):
    screen = BillingScreen(api, max_workers=1)
    screen.scan("8901234567890")
    screen.set_mobile("9123456780")
    assert screen.submit_customer() is None

    posted = screen.submit(customer_name="Meera")

    customer = db["customer"].find_one({"mobile": "9123456780"})
    assert customer["name"] == "Meera"
    bill = db["bill"].find_one({"bill_number": posted.bill_number})
    assert bill["customer_id"] == str(customer["_id"])
    assert bill["customer_name"] == "Meera"
