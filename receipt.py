"""Plain-text receipts for an 80 mm thermal printer."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from cart import BillPayload
from config import GST_PERCENT, SHOP_NAME, SHOP_PHONE, SHOP_SUBTITLE
from pricing import format_currency

RECEIPT_WIDTH = 42


def _row(left: str, right: str, width: int) -> str:
    space = max(width - len(left) - len(right), 1)
    return f"{left}{' ' * space}{right}"


def _item_row(name: str, qty: Any, price: str, total: str, width: int) -> str:
    # qty 5, price 10, total 11 columns; the name gets the rest
    name_w = width - 26
    if len(name) > name_w:
        name = name[: name_w - 1] + "…"
    return f"{name:<{name_w}}{str(qty):>5}{price:>10}{total:>11}"


def _normalize(bill: Union[BillPayload, Dict[str, Any]], bill_number: Optional[str]) -> Dict[str, Any]:
    """Common view over a client payload and a stored bill document."""
    if isinstance(bill, BillPayload):
        return {
            "bill_number": bill_number or "",
            "created_at": bill.created_at,
            "customer_name": bill.customer_name,
            "customer_mobile": bill.customer_mobile,
            "items": [
                {"name": it.name, "qty": it.qty, "price": it.price, "total": it.line_total}
                for it in bill.items
            ],
            "subtotal": bill.subtotal,
            "tax": bill.gst,
            "grand_total": bill.grand_total,
        }
    return {
        "bill_number": bill_number or bill.get("bill_number", ""),
        "created_at": bill.get("created_at"),
        "customer_name": bill.get("customer_name"),
        "customer_mobile": bill.get("customer_mobile"),
        "items": [
            {"name": it.get("product_name"), "qty": it.get("qty"), "price": it.get("unit_price"), "total": it.get("line_total")}
            for it in bill.get("items", [])
        ],
        "subtotal": bill.get("subtotal"),
        "tax": bill.get("tax_amount"),
        "grand_total": bill.get("grand_total"),
    }


def render_receipt(
    bill: Union[BillPayload, Dict[str, Any]],
    bill_number: Optional[str] = None,
    shop_name: str = SHOP_NAME,
    shop_phone: str = SHOP_PHONE,
    width: int = RECEIPT_WIDTH,
) -> str:
    b = _normalize(bill, bill_number)
    created = b["created_at"] or datetime.now(timezone.utc)
    if isinstance(created, str):
        created = datetime.fromisoformat(created)

    dashed = "-" * width
    lines: List[str] = [
        shop_name.center(width).rstrip(),
        SHOP_SUBTITLE.center(width).rstrip(),
        f"Tel: {shop_phone}".center(width).rstrip(),
        "=" * width,
        f"Bill No: {b['bill_number']}",
        f"Date: {created.strftime('%d/%m/%Y %H:%M')}",
        f"Customer: {b['customer_name'] or 'Walk-in'}",
    ]
    if b["customer_mobile"]:
        lines.append(f"Mobile: {b['customer_mobile']}")

    lines.append(dashed)
    lines.append(_item_row("Item", "Qty", "Price", "Total", width))
    lines.append(dashed)
    for it in b["items"]:
        lines.append(_item_row(
            it["name"] or "",
            it["qty"],
            format_currency(it["price"]),
            format_currency(it["total"]),
            width,
        ))
    lines.append(dashed)
    lines.append(_row("Subtotal:", format_currency(b["subtotal"]), width))
    lines.append(_row(f"GST ({GST_PERCENT}%):", format_currency(b["tax"]), width))
    lines.append("=" * width)
    lines.append(_row("GRAND TOTAL:", format_currency(b["grand_total"]), width))
    lines.append("=" * width)
    lines.append("Thank you for your business!".center(width).rstrip())
    lines.append("*** COMPUTER GENERATED BILL ***".center(width).rstrip())
    return "\n".join(lines) + "\n"


def time_ago(when: Union[datetime, str], now: Optional[datetime] = None) -> str:
    """Short relative label for the recent-bills list."""
    if isinstance(when, str):
        when = datetime.fromisoformat(when.replace("Z", "+00:00"))
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = int((now - when).total_seconds())

    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{seconds // 60} mins ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 604800:
        return f"{seconds // 86400} days ago"
    return when.strftime("%d/%m/%Y")
