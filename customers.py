"""Customer lookup and creation, keyed by 10-digit mobile number."""
import re
from typing import Any, Dict, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import MOBILE_LENGTH
from database import create_document, to_str_id
from errors import RemoteFailure, ValidationError
from loggers import get_logger
from schemas import Customer

log = get_logger("pharmacy_pos.customers")

_MOBILE_RE = re.compile(r"^\d{%d}$" % MOBILE_LENGTH)


def validate_mobile(mobile: Optional[str]) -> str:
    mobile = (mobile or "").strip()
    if not mobile:
        raise ValidationError("Mobile number required")
    if not _MOBILE_RE.match(mobile):
        raise ValidationError(f"Please enter a valid {MOBILE_LENGTH}-digit mobile number")
    return mobile


def find_by_mobile(db: Database, mobile: str) -> Optional[Dict[str, Any]]:
    mobile = validate_mobile(mobile)
    try:
        doc = db["customer"].find_one({"mobile": mobile})
    except PyMongoError as e:
        raise RemoteFailure("Could not search customers") from e
    log.info("Customer search %s: %s", mobile, "found" if doc else "not found")
    return to_str_id(doc) if doc else None


def create_customer(
    db: Database,
    mobile: str,
    name: str,
    email: Optional[str] = None,
    address: Optional[str] = None,
) -> Dict[str, Any]:
    mobile = validate_mobile(mobile)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Mobile and name are required")

    customer = Customer(mobile=mobile, name=name, email=email or None, address=address or None)
    try:
        customer_id = create_document(db, "customer", customer)
    except DuplicateKeyError:
        raise ValidationError(f"A customer with mobile {mobile} already exists")
    except PyMongoError as e:
        raise RemoteFailure("Could not create customer") from e

    log.info("Customer created: %s", customer_id)
    return {"id": customer_id, **customer.model_dump(exclude={"created_at"})}


def resolve_customer(db: Database, mobile: Optional[str], name: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Customer to attach to a bill: existing by mobile, else created when a
    name is supplied, else None (anonymous bill).
    """
    if not mobile:
        return None
    existing = find_by_mobile(db, mobile)
    if existing:
        return existing
    if name and name.strip():
        return create_customer(db, mobile, name)
    return None
