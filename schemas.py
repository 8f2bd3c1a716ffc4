"""
Database Schemas for the Pharmacy POS (MongoDB)

Each Pydantic model represents a collection in MongoDB. Collection name is the
snake_case of the class name by convention (InventoryMovement ->
"inventory_movement").
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

# Core Master Data
class Product(BaseModel):
    name: str = Field(..., min_length=1)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    unit_price: float = Field(0.0, ge=0)
    reorder_threshold: Optional[int] = None
    active: bool = True
    org_id: Optional[str] = None

class Customer(BaseModel):
    mobile: str = Field(..., pattern=r"^\d{10}$")
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None

# Billing
class Bill(BaseModel):
    bill_number: str
    org_id: Optional[str] = None
    customer_id: Optional[str] = None  # ObjectId string
    customer_name: str
    customer_mobile: Optional[str] = None
    subtotal: float
    tax_amount: float
    discount_amount: float = 0.0
    grand_total: float
    payment_method: str = "cash"
    payment_status: str = "paid"
    created_at: datetime

class BillItem(BaseModel):
    bill_id: str  # ObjectId string of the owning bill
    product_id: str
    product_name: str
    batch_number: str = "N/A"
    qty: int = Field(..., ge=1)
    unit_price: float
    tax_rate: float = 12
    tax_amount: float
    line_total: float

# Stock ledger (append-only)
class InventoryMovement(BaseModel):
    org_id: Optional[str] = None
    product_id: str
    location_id: Optional[str] = None
    change_qty: int
    movement_type: str = "sale"
    reference: Optional[str] = None
    unit_cost: float = 0.0
    created_at: Optional[datetime] = None

# Vendor purchase orders (dashboard)
class Order(BaseModel):
    order_number: str
    company_name: Optional[str] = None
    status: str = "pending"
    org_id: Optional[str] = None
    expected_delivery: Optional[datetime] = None
    created_at: Optional[datetime] = None