from datetime import datetime, timedelta, timezone

import pytest

import cart as carts
from cart import Cart
from receipt import RECEIPT_WIDTH, render_receipt, time_ago

NOW = datetime(2026, 10, 19, 10, 30, tzinfo=timezone.utc)


def payload(mobile="", name=""):
    c = Cart()
    c = carts.add_or_increment(c, {"id": "p1", "name": "Paracetamol 500mg", "sku": "PCM2401", "unit_price": 4.5})
    c = carts.set_quantity(c, "p1", 4)
    c = carts.add_or_increment(c, {"id": "p2", "name": "Azithromycin 500mg Tablets Strip of 3", "unit_price": 24.0})
    return carts.snapshot(c, customer_mobile=mobile, customer_name=name, now=NOW)


def test_receipt_from_payload():
    text = render_receipt(payload("9876543210", "Asha"), "BILL-20261019-000001", shop_name="TEST PHARMACY", shop_phone="123")
    lines = text.splitlines()

    assert lines[0].strip() == "TEST PHARMACY"
    assert "Tel: 123" in text
    assert "Bill No: BILL-20261019-000001" in lines
    assert "Date: 19/10/2026 10:30" in lines
    assert "Customer: Asha" in lines
    assert "Mobile: 9876543210" in lines
    assert lines[-1].strip() == "*** COMPUTER GENERATED BILL ***"
    assert all(len(line) <= RECEIPT_WIDTH for line in lines)

    totals = {line.split(":")[0]: line.split()[-1] for line in lines if line.startswith(("Subtotal", "GST", "GRAND"))}
    assert totals == {"Subtotal": "₹42.00", "GST (12%)": "₹5.04", "GRAND TOTAL": "₹47.04"}


def test_long_item_names_are_truncated():
    text = render_receipt(payload(), "BILL-1")
    row = next(line for line in text.splitlines() if line.startswith("Azithromycin"))
    assert "…" in row
    assert row.rstrip().endswith("₹24.00")
    assert len(row) == RECEIPT_WIDTH


def test_walk_in_receipt_has_no_mobile_line():
    text = render_receipt(payload(), "BILL-1")
    assert "Customer: Walk-in" in text
    assert "Mobile:" not in text


def test_receipt_from_stored_bill():
    bill = {
        "bill_number": "BILL-20261019-000007",
        "created_at": datetime(2026, 10, 19, 9, 5),
        "customer_name": "Walk-in Customer",
        "customer_mobile": None,
        "subtotal": 18.0,
        "tax_amount": 2.16,
        "grand_total": 20.16,
        "items": [{"product_name": "Paracetamol 500mg", "qty": 4, "unit_price": 4.5, "line_total": 18.0}],
    }
    text = render_receipt(bill)
    assert "Bill No: BILL-20261019-000007" in text
    assert "Date: 19/10/2026 09:05" in text
    assert "₹20.16" in text
    item = next(line for line in text.splitlines() if line.startswith("Paracetamol"))
    assert item.split()[-3:] == ["4", "₹4.50", "₹18.00"]


@pytest.mark.parametrize("delta, expected", [
    (timedelta(seconds=30), "Just now"),
    (timedelta(minutes=5), "5 mins ago"),
    (timedelta(hours=3, minutes=59), "3 hours ago"),
    (timedelta(days=2), "2 days ago"),
    (timedelta(days=10), "09/10/2026"),
])
def test_time_ago(delta, expected):
    assert time_ago(NOW - delta, now=NOW) == expected


def test_time_ago_accepts_iso_strings_and_naive_utc():
    assert time_ago("2026-10-19T10:00:00Z", now=NOW) == "30 mins ago"
    assert time_ago("2026-10-19T10:29:00", now=NOW) == "1 mins ago"
    assert time_ago(datetime(2026, 10, 19, 8, 30), now=NOW) == "2 hours ago"
