"""
Runtime configuration for the Pharmacy POS API.

Values come from the environment so the same build runs locally and in a
hosted container. Business constants live here too so the server and the
client agree on them.
"""
import os
from decimal import Decimal

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "pharmacy_pos")

# HTTP
PORT = int(os.getenv("PORT", 8000))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
POS_API_URL = os.getenv("POS_API_URL", f"http://localhost:{PORT}")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Receipt header
SHOP_NAME = os.getenv("SHOP_NAME", "LIGIMED PHARMACY")
SHOP_SUBTITLE = os.getenv("SHOP_SUBTITLE", "Pharmacy Portal")
SHOP_PHONE = os.getenv("SHOP_PHONE", "+91-XXXXXXXXXX")

# Billing rules
GST_RATE = Decimal("0.12")
GST_PERCENT = 12
MAX_LINE_QTY = 9999
MOBILE_LENGTH = 10
WALK_IN_NAME = "Walk-in Customer"
DEFAULT_PAYMENT_METHOD = "cash"
DEFAULT_RECENT_BILLS = 10

# Dashboard
DEFAULT_REORDER_THRESHOLD = 100
LOW_STOCK_SHOWN = 3
DEFAULT_RECENT_ORDERS = 3
PENDING_DELIVERY_STATUSES = ["confirmed", "packed", "in_transit"]
