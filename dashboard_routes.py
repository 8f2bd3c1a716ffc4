"""Read-only dashboard aggregates under /api/dashboard."""
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import (
    DEFAULT_RECENT_ORDERS,
    DEFAULT_REORDER_THRESHOLD,
    LOW_STOCK_SHOWN,
    PENDING_DELIVERY_STATUSES,
)
from database import get_db, to_str_id
from errors import RemoteFailure
from loggers import get_logger
from stock import low_stock_items, stock_levels

log = get_logger("pharmacy_pos.api.dashboard")

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


class TotalOrdersOut(BaseModel):
    total: int
    percentage_change: int
    last_month_total: int


class RecentOrderOut(BaseModel):
    order_number: str
    company_name: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None


class RecentOrdersOut(BaseModel):
    orders: List[RecentOrderOut]


class LowStockItemOut(BaseModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    current_qty: int
    reorder_threshold: int
    shortage: int


class LowStockOut(BaseModel):
    items: List[LowStockItemOut]
    total_count: int


class PendingDeliveriesOut(BaseModel):
    total: int
    arriving_today: int


# -----------------------------
# Helpers
# -----------------------------

def _utcnow() -> datetime:
    # naive UTC, the form MongoDB hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _org_filter(org_id: Optional[str]) -> Dict[str, Any]:
    return {"org_id": org_id} if org_id else {}


def previous_month_range(now: datetime):
    """[first day of last month, first day of this month)"""
    this_month = datetime(now.year, now.month, 1)
    last_month = (this_month - timedelta(days=1)).replace(day=1)
    return last_month, this_month


def percentage_change(current: int, previous: int) -> int:
    if not previous:
        return 0
    return round((current - previous) / previous * 100)


# -----------------------------
# Endpoints
# -----------------------------
@router.get("/total-orders", response_model=TotalOrdersOut)
def total_orders(
    org_id: Optional[str] = Query(None, alias="orgId"),
    include_cancelled: Optional[str] = Query(None, alias="includeCancelled"),
    db: Database = Depends(get_db),
):
    filt = _org_filter(org_id)
    if include_cancelled not in ("true", "1"):
        filt["status"] = {"$ne": "cancelled"}

    start, end = previous_month_range(_utcnow())
    try:
        total = db["order"].count_documents(filt)
        last_month_total = db["order"].count_documents({**filt, "created_at": {"$gte": start, "$lt": end}})
    except PyMongoError as e:
        raise RemoteFailure("Could not count orders") from e

    change = percentage_change(total, last_month_total)
    log.info("Total orders org=%s total=%d last_month=%d change=%d", org_id, total, last_month_total, change)
    return {"total": total, "percentage_change": change, "last_month_total": last_month_total}


@router.get("/recent-orders", response_model=RecentOrdersOut)
def recent_orders(
    org_id: Optional[str] = Query(None, alias="orgId"),
    limit: int = Query(DEFAULT_RECENT_ORDERS, ge=1, le=50),
    db: Database = Depends(get_db),
):
    try:
        docs = list(db["order"].find(_org_filter(org_id)).sort("created_at", DESCENDING).limit(limit))
    except PyMongoError as e:
        raise RemoteFailure("Could not load recent orders") from e
    return {"orders": [to_str_id(d) for d in docs]}


@router.get("/low-stock", response_model=LowStockOut)
def low_stock(org_id: Optional[str] = Query(None, alias="orgId"), db: Database = Depends(get_db)):
    try:
        products = [to_str_id(p) for p in db["product"].find({}, {"name": 1, "sku": 1, "reorder_threshold": 1})]
    except PyMongoError as e:
        raise RemoteFailure("Could not load products") from e

    levels = stock_levels(db, [p["id"] for p in products], org_id)
    items = low_stock_items(products, levels, DEFAULT_REORDER_THRESHOLD)
    log.info("Low stock items total=%d showing=%d", len(items), min(len(items), LOW_STOCK_SHOWN))
    return {"items": items[:LOW_STOCK_SHOWN], "total_count": len(items)}


@router.get("/pending-deliveries", response_model=PendingDeliveriesOut)
def pending_deliveries(org_id: Optional[str] = Query(None, alias="orgId"), db: Database = Depends(get_db)):
    filt = {**_org_filter(org_id), "status": {"$in": PENDING_DELIVERY_STATUSES}}
    today = datetime.combine(_utcnow().date(), time.min)
    try:
        total = db["order"].count_documents(filt)
        arriving_today = db["order"].count_documents(
            {**filt, "expected_delivery": {"$gte": today, "$lt": today + timedelta(days=1)}}
        )
    except PyMongoError as e:
        raise RemoteFailure("Could not count pending deliveries") from e
    return {"total": total, "arriving_today": arriving_today}
