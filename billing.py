"""
Bill posting workflow.

Posting a bill writes three dependent things: the bill header, its line
items and one inventory movement per line. MongoDB gives no transaction
across those writes here, so the workflow is all-or-nothing by compensation:
if items or movements fail, everything already written for the bill is
deleted again and the original error is reported. Only when that clean-up
also fails is the bill left orphaned, and PartialBillFailure says so.

The stock pre-check before any write is advisory (another till can sell the
same units in between). The authoritative guard is the floor check run after
the movements are written: a product that went below zero rolls the whole
bill back.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import (
    DEFAULT_PAYMENT_METHOD,
    DEFAULT_RECENT_BILLS,
    GST_PERCENT,
    WALK_IN_NAME,
)
from customers import resolve_customer, validate_mobile
from database import oid, to_str_id
from errors import InsufficientStock, NotFoundError, PartialBillFailure, RemoteFailure, ValidationError
from loggers import get_logger
from pricing import CENT, as_float, bill_totals, line_tax, line_total
from schemas import Bill, BillItem, InventoryMovement
from stock import Shortfall, find_shortfalls, stock_levels

log = get_logger("pharmacy_pos.billing")


# -----------------------------
# Request / result
# -----------------------------
class BillLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="id")
    name: str
    batch: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    qty: int
    line_total: Optional[Decimal] = Field(None, alias="lineTotal")


class BillRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_mobile: Optional[str] = Field(None, alias="customerMobile")
    customer_name: Optional[str] = Field(None, alias="customerName")
    items: List[BillLine] = []
    subtotal: Optional[Decimal] = None
    gst: Optional[Decimal] = None
    grand_total: Optional[Decimal] = Field(None, alias="grandTotal")
    payment_method: str = Field(DEFAULT_PAYMENT_METHOD, alias="paymentMethod")
    org_id: Optional[str] = Field(None, alias="orgId")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


@dataclass
class PostedBill:
    bill_number: str
    bill_id: str
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "bill_number": self.bill_number,
            "bill_id": self.bill_id,
            "total": as_float(self.total),
        }


# -----------------------------
# Helpers
# -----------------------------

def generate_bill_number(db: Database, now: Optional[datetime] = None) -> str:
    """
    Next bill number from an atomic per-day counter, e.g. BILL-20261019-000042.
    Concurrent callers each get a distinct sequence value.
    """
    today = (now or datetime.now(timezone.utc)).strftime("%Y%m%d")
    try:
        counter = db["counters"].find_one_and_update(
            {"_id": f"bill-{today}"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        raise RemoteFailure("Could not allocate a bill number") from e
    return f"BILL-{today}-{int(counter['seq']):06d}"


def _validate(req: BillRequest) -> None:
    if not req.items:
        raise ValidationError("No items in bill")
    for it in req.items:
        if it.qty < 1:
            raise ValidationError(f"Quantity for {it.name} must be at least 1")
    if req.customer_mobile:
        req.customer_mobile = validate_mobile(req.customer_mobile)


def _check_client_totals(req: BillRequest, subtotal: Decimal, tax: Decimal, grand: Decimal) -> None:
    sent = (("subtotal", req.subtotal, subtotal), ("gst", req.gst, tax), ("grandTotal", req.grand_total, grand))
    for label, client_value, server_value in sent:
        if client_value is not None and abs(client_value - server_value) > CENT:
            raise ValidationError(
                f"{label} {client_value} does not match the items (expected {server_value.quantize(CENT)})"
            )


def _precheck_stock(db: Database, req: BillRequest) -> None:
    product_ids = list(dict.fromkeys(it.product_id for it in req.items))
    object_ids = [oid(pid) for pid in product_ids]
    missing = [pid for pid, _id in zip(product_ids, object_ids) if _id is None]
    try:
        found = {str(d["_id"]) for d in db["product"].find({"_id": {"$in": [i for i in object_ids if i]}}, {"_id": 1})}
    except PyMongoError as e:
        raise RemoteFailure("Could not verify products") from e
    missing += [pid for pid in product_ids if oid(pid) is not None and pid not in found]
    if missing:
        raise NotFoundError(f"Product not found: {', '.join(missing)}")

    levels = stock_levels(db, product_ids, req.org_id)
    shortfalls = find_shortfalls(
        ({"product_id": it.product_id, "name": it.name, "qty": it.qty} for it in req.items), levels
    )
    if shortfalls:
        log.info("Bill rejected, insufficient stock for %s", ", ".join(s.name for s in shortfalls))
        raise InsufficientStock(shortfalls)


def _floor_check(db: Database, req: BillRequest) -> None:
    requested: Dict[str, int] = {}
    names: Dict[str, str] = {}
    for it in req.items:
        requested[it.product_id] = requested.get(it.product_id, 0) + it.qty
        names.setdefault(it.product_id, it.name)

    levels = stock_levels(db, requested.keys(), req.org_id)
    oversold = [
        Shortfall(
            product_id=pid,
            name=names[pid],
            requested=qty,
            available=max(levels[pid] + qty, 0),
            shortfall=min(-levels[pid], qty),
        )
        for pid, qty in requested.items()
        if levels[pid] < 0
    ]
    if oversold:
        raise InsufficientStock(oversold, "Stock changed while the bill was being saved")


def _compensate(db: Database, bill_id: ObjectId, bill_number: str) -> None:
    try:
        db["inventory_movement"].delete_many({"reference": bill_number})
        db["bill_item"].delete_many({"bill_id": str(bill_id)})
        db["bill"].delete_one({"_id": bill_id})
    except PyMongoError as e:
        log.error("Bill %s is orphaned, rollback failed: %s", bill_number, e)
        raise PartialBillFailure(bill_number) from e
    log.warning("Bill %s rolled back", bill_number)


# -----------------------------
# Workflow
# -----------------------------

def post_bill(db: Database, req: BillRequest, now: Optional[datetime] = None) -> PostedBill:
    _validate(req)

    subtotal, tax, grand = bill_totals((it.price, it.qty) for it in req.items)
    _check_client_totals(req, subtotal, tax, grand)

    # 1. advisory stock check, nothing written yet
    _precheck_stock(db, req)

    # 2. customer
    customer = resolve_customer(db, req.customer_mobile, req.customer_name)
    customer_name = (req.customer_name or "").strip() or (customer or {}).get("name") or WALK_IN_NAME

    # 3. header
    now = now or datetime.now(timezone.utc)
    bill_number = generate_bill_number(db, now)
    header = Bill(
        bill_number=bill_number,
        org_id=req.org_id,
        customer_id=customer["id"] if customer else None,
        customer_name=customer_name,
        customer_mobile=req.customer_mobile or None,
        subtotal=as_float(subtotal),
        tax_amount=as_float(tax),
        grand_total=as_float(grand),
        payment_method=req.payment_method or DEFAULT_PAYMENT_METHOD,
        created_at=now,
    )
    try:
        bill_id = db["bill"].insert_one(header.model_dump()).inserted_id
    except PyMongoError as e:
        raise RemoteFailure("Failed to create bill") from e

    # 4 + 5. items and stock debits, rolled back together on failure
    try:
        items = [
            BillItem(
                bill_id=str(bill_id),
                product_id=it.product_id,
                product_name=it.name,
                batch_number=it.batch or "N/A",
                qty=it.qty,
                unit_price=float(it.price),
                tax_rate=GST_PERCENT,
                tax_amount=as_float(line_tax(it.price, it.qty)),
                line_total=as_float(line_total(it.price, it.qty)),
            ).model_dump()
            for it in req.items
        ]
        db["bill_item"].insert_many(items)

        movements = [
            InventoryMovement(
                org_id=req.org_id,
                product_id=it.product_id,
                change_qty=-it.qty,
                movement_type="sale",
                reference=bill_number,
                unit_cost=float(it.price),
                created_at=now,
            ).model_dump()
            for it in req.items
        ]
        db["inventory_movement"].insert_many(movements)
        _floor_check(db, req)
    except InsufficientStock:
        _compensate(db, bill_id, bill_number)
        raise
    except (PyMongoError, RemoteFailure) as e:
        log.error("Bill %s failed after header was written: %s", bill_number, e)
        _compensate(db, bill_id, bill_number)
        raise RemoteFailure("Failed to save bill items") from e

    log.info("Bill saved: %s items=%d total=%s", bill_number, len(req.items), grand)
    return PostedBill(bill_number=bill_number, bill_id=str(bill_id), total=grand)


# -----------------------------
# Reads
# -----------------------------

def get_bill(db: Database, identifier: str, org_id: Optional[str] = None) -> Dict[str, Any]:
    """Bill header plus items, looked up by bill id or bill number."""
    filt: Dict[str, Any] = {"_id": ObjectId(identifier)} if ObjectId.is_valid(identifier) else {"bill_number": identifier}
    if org_id:
        filt["org_id"] = org_id
    try:
        bill = db["bill"].find_one(filt)
        if not bill:
            raise NotFoundError("Bill not found")
        items = list(db["bill_item"].find({"bill_id": str(bill["_id"])}))
    except PyMongoError as e:
        raise RemoteFailure("Failed to fetch bill") from e
    return {**to_str_id(bill), "items": [to_str_id(i) for i in items]}


def list_recent_bills(db: Database, limit: int = DEFAULT_RECENT_BILLS, org_id: Optional[str] = None) -> List[Dict[str, Any]]:
    filt: Dict[str, Any] = {"org_id": org_id} if org_id else {}
    try:
        cursor = db["bill"].find(filt).sort("created_at", DESCENDING).limit(limit)
        docs = list(cursor)
    except PyMongoError as e:
        raise RemoteFailure("Failed to list bills") from e
    return [
        {
            "bill_number": d["bill_number"],
            "customer_name": d.get("customer_name"),
            "total": d.get("grand_total"),
            "created_at": d.get("created_at"),
        }
        for d in docs
    ]
