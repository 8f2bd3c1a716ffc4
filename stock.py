"""
Stock ledger queries.

Current stock is never stored: it is the sum of every InventoryMovement's
change_qty for a product, optionally scoped to one organization.
"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from errors import RemoteFailure
from loggers import get_logger

log = get_logger("pharmacy_pos.stock")


@dataclass
class Shortfall:
    product_id: str
    name: str
    requested: int
    available: int
    shortfall: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def stock_levels(db: Database, product_ids: Iterable[str], org_id: Optional[str] = None) -> Dict[str, int]:
    """
    Net movement total per product in one aggregation. Products without
    movements map to 0. Values are not floored, so a negative balance is
    visible to callers that need it.
    """
    ids = [str(p) for p in product_ids]
    match: Dict[str, Any] = {"product_id": {"$in": ids}}
    if org_id:
        match["org_id"] = org_id
    pipeline = [
        {"$match": match},
        {"$group": {"_id": "$product_id", "qty": {"$sum": "$change_qty"}}},
    ]
    try:
        rows = list(db["inventory_movement"].aggregate(pipeline))
    except PyMongoError as e:
        log.error("Stock query failed for %d products: %s", len(ids), e)
        raise RemoteFailure("Could not read stock levels") from e

    levels = {pid: 0 for pid in ids}
    for r in rows:
        levels[str(r["_id"])] = int(r.get("qty") or 0)
    return levels


def available_stock(db: Database, product_id: str, org_id: Optional[str] = None) -> int:
    return max(stock_levels(db, [product_id], org_id).get(str(product_id), 0), 0)


def attach_stock(db: Database, products: List[Dict[str, Any]], org_id: Optional[str] = None) -> List[Dict[str, Any]]:
    levels = stock_levels(db, [p["id"] for p in products], org_id)
    return [{**p, "available_stock": max(levels.get(p["id"], 0), 0)} for p in products]


def find_shortfalls(lines: Iterable[Mapping[str, Any]], levels: Mapping[str, int]) -> List[Shortfall]:
    """
    Lines asking for more than their product's level. `lines` are mappings
    with product_id, name and qty; the same product on several lines is
    checked against its combined quantity.
    """
    requested: Dict[str, int] = {}
    names: Dict[str, str] = {}
    for ln in lines:
        pid = str(ln["product_id"])
        requested[pid] = requested.get(pid, 0) + int(ln["qty"])
        names.setdefault(pid, ln.get("name") or pid)

    out: List[Shortfall] = []
    for pid, qty in requested.items():
        available = max(levels.get(pid, 0), 0)
        if available < qty:
            out.append(Shortfall(
                product_id=pid,
                name=names[pid],
                requested=qty,
                available=available,
                shortfall=qty - available,
            ))
    return out


def low_stock_items(products: List[Dict[str, Any]], levels: Mapping[str, int], default_threshold: int) -> List[Dict[str, Any]]:
    """Products at or below their reorder threshold, biggest shortage first."""
    items = []
    for p in products:
        current = levels.get(p["id"], 0)
        threshold = p.get("reorder_threshold") or default_threshold
        if current <= threshold:
            items.append({
                "name": p.get("name"),
                "sku": p.get("sku"),
                "current_qty": current,
                "reorder_threshold": threshold,
                "shortage": threshold - current,
            })
    items.sort(key=lambda it: it["shortage"], reverse=True)
    return items
