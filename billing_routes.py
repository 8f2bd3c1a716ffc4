"""Billing API: product lookup, bills and customers under /api/billing."""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from pymongo.database import Database
from pymongo.errors import PyMongoError

from billing import BillRequest, get_bill, list_recent_bills, post_bill
from config import DEFAULT_RECENT_BILLS
from customers import create_customer, find_by_mobile
from database import get_db, get_documents, oid, to_str_id
from errors import NotFoundError, RemoteFailure, ValidationError
from loggers import get_logger
from receipt import render_receipt
from stock import attach_stock

log = get_logger("pharmacy_pos.api.billing")

router = APIRouter(prefix="/api/billing", tags=["billing"])


# -----------------------------
# API Schemas
# -----------------------------
class ProductOut(BaseModel):
    id: str
    name: str
    sku: Optional[str] = None
    barcode: Optional[str] = None
    unit_price: float = 0.0
    reorder_threshold: Optional[int] = None
    active: bool = True
    org_id: Optional[str] = None
    available_stock: int = 0


class ProductSearchOut(BaseModel):
    product: Optional[ProductOut] = None
    products: List[ProductOut]


class PostBillOut(BaseModel):
    success: bool
    bill_number: str
    bill_id: str
    total: float


class RecentBillOut(BaseModel):
    bill_number: str
    customer_name: Optional[str] = None
    total: float
    created_at: datetime


class RecentBillsOut(BaseModel):
    bills: List[RecentBillOut]


class CustomerIn(BaseModel):
    mobile: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


class CustomerOut(BaseModel):
    id: str
    mobile: str
    name: str
    email: Optional[str] = None
    address: Optional[str] = None


class CustomerSearchOut(BaseModel):
    customer: Optional[CustomerOut] = None
    found: bool


class CustomerCreatedOut(BaseModel):
    customer: CustomerOut
    created: bool = True


class ReceiptOut(BaseModel):
    bill_number: str
    receipt: str


# -----------------------------
# Products
# -----------------------------
@router.get("/products/search", response_model=ProductSearchOut)
def search_products(
    barcode: Optional[str] = None,
    name: Optional[str] = None,
    sku: Optional[str] = None,
    org_id: Optional[str] = Query(None, alias="orgId"),
    db: Database = Depends(get_db),
):
    if not barcode and not name and not sku:
        raise ValidationError("Please provide barcode, name, or sku")

    if barcode:
        filt: Dict[str, Any] = {"barcode": barcode}
    elif sku:
        filt = {"sku": sku}
    else:
        filt = {"name": {"$regex": re.escape(name), "$options": "i"}}

    try:
        docs = get_documents(db, "product", filt, limit=10)
    except PyMongoError as e:
        raise RemoteFailure("Product search failed") from e

    products = attach_stock(db, docs, org_id)
    log.info("Product search barcode=%s name=%s sku=%s found=%d", barcode, name, sku, len(products))
    return {"product": products[0] if products else None, "products": products}


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str, org_id: Optional[str] = Query(None, alias="orgId"), db: Database = Depends(get_db)):
    _id = oid(product_id)
    if not _id:
        raise NotFoundError("Product not found")
    try:
        doc = db["product"].find_one({"_id": _id})
    except PyMongoError as e:
        raise RemoteFailure("Product lookup failed") from e
    if not doc:
        raise NotFoundError("Product not found")
    return attach_stock(db, [to_str_id(doc)], org_id)[0]


# -----------------------------
# Bills
# -----------------------------
@router.post("/bills", response_model=PostBillOut)
def create_bill(payload: BillRequest, db: Database = Depends(get_db)):
    return post_bill(db, payload).to_dict()


@router.get("/bills/recent", response_model=RecentBillsOut)
def recent_bills(
    limit: int = Query(DEFAULT_RECENT_BILLS, ge=1, le=100),
    org_id: Optional[str] = Query(None, alias="orgId"),
    db: Database = Depends(get_db),
):
    return {"bills": list_recent_bills(db, limit, org_id)}


@router.get("/bills/{identifier}")
def bill_detail(identifier: str, org_id: Optional[str] = Query(None, alias="orgId"), db: Database = Depends(get_db)):
    return get_bill(db, identifier, org_id)


@router.get("/bills/{identifier}/receipt", response_model=ReceiptOut)
def bill_receipt(identifier: str, org_id: Optional[str] = Query(None, alias="orgId"), db: Database = Depends(get_db)):
    bill = get_bill(db, identifier, org_id)
    return {"bill_number": bill["bill_number"], "receipt": render_receipt(bill)}


# -----------------------------
# Customers
# -----------------------------
@router.get("/customers/search", response_model=CustomerSearchOut)
def search_customer(mobile: Optional[str] = None, db: Database = Depends(get_db)):
    customer = find_by_mobile(db, mobile)
    return {"customer": customer, "found": customer is not None}


@router.post("/customers", response_model=CustomerCreatedOut)
def add_customer(payload: CustomerIn, db: Database = Depends(get_db)):
    if not payload.mobile or not payload.name:
        raise ValidationError("Mobile and name are required")
    customer = create_customer(db, payload.mobile, payload.name, payload.email, payload.address)
    return {"customer": customer, "created": True}
