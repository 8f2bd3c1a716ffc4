# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - mongomock stands in for MongoDB; every test gets a fresh database
# - the FastAPI app reads that database through a get_db override
# - the lifespan hook is not run (no real MongoDB is contacted)
# - seed data: three products and their opening stock
# ---------------------------------------------------------------------
import mongomock
import pytest
from fastapi.testclient import TestClient

from api_client import BillingApi
from database import create_document, ensure_indexes, get_db
from main import app
from schemas import InventoryMovement, Product


@pytest.fixture()
def db():
    client = mongomock.MongoClient()
    database = client["pharmacy_pos_test"]
    ensure_indexes(database)
    yield database
    client.close()


def receive_stock(db, product_id: str, qty: int, org_id=None):
    create_document(db, "inventory_movement", InventoryMovement(
        org_id=org_id,
        product_id=product_id,
        change_qty=qty,
        movement_type="purchase",
        reference="OPENING",
    ))


@pytest.fixture()
def products(db) -> dict:
    """Seeded product ids by short name: para (100 in stock), azi (5), amox (0)."""
    seed = [
        ("para", {"name": "Paracetamol 500mg", "sku": "PCM2401", "barcode": "8901234567890", "unit_price": 4.5}, 100),
        ("azi", {"name": "Azithromycin 500mg", "sku": "AZT2402", "barcode": "8901234567891", "unit_price": 24.0}, 5),
        ("amox", {"name": "Amoxicillin 250mg", "sku": "AMX2403", "barcode": "8901234567892", "unit_price": 8.5,
                  "reorder_threshold": 20}, 0),
    ]
    ids = {}
    for key, doc, qty in seed:
        pid = create_document(db, "product", Product(**doc))
        if qty:
            receive_stock(db, pid, qty)
        ids[key] = pid
    return ids


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api(client):
    return BillingApi(client=client)


def bill_body(*lines, mobile="", name="", **extra):
    """POST /bills body for (product_id, name, price, qty) tuples."""
    items = [
        {"id": pid, "name": nm, "batch": "N/A", "price": price, "qty": qty, "lineTotal": price * qty}
        for pid, nm, price, qty in lines
    ]
    return {"customerMobile": mobile, "customerName": name, "items": items, **extra}
