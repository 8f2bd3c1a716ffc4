"""
Customer field on the billing screen.

Two modes share one button: FETCH looks the mobile number up; on a miss the
field switches to ADD and the next submit creates the customer with the
typed name, then returns to FETCH. Editing the mobile number while in ADD
abandons the add.
"""
from typing import Any, Dict, Optional

from customers import validate_mobile
from errors import ValidationError
from loggers import get_logger

log = get_logger("pharmacy_pos.client.customer")

FETCH = "fetch"
ADD = "add"


class CustomerLookup:
    def __init__(self, api):
        self.api = api
        self.mode = FETCH
        self.mobile = ""
        self.resolved_name = ""
        self.customer: Optional[Dict[str, Any]] = None

    def mobile_changed(self, mobile: str = "") -> None:
        self.mobile = (mobile or "").strip()
        if self.mode == ADD:
            self.mode = FETCH
        self.resolved_name = ""
        self.customer = None

    def submit(self, mobile: Optional[str] = None, name: str = "") -> Optional[Dict[str, Any]]:
        """
        Fetch or add, depending on the mode. Returns the customer, or None
        when a fetch missed and the lookup is now waiting for a name.
        """
        if mobile is not None and mobile.strip() != self.mobile:
            self.mobile_changed(mobile)
        mobile = validate_mobile(self.mobile)

        if self.mode == ADD:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Please enter customer name")
            customer = self.api.create_customer(mobile, name)
            log.info("New customer created: %s", customer.get("id"))
            return self._resolved(customer)

        res = self.api.search_customer(mobile)
        if res.get("found") and res.get("customer"):
            return self._resolved(res["customer"])

        log.info("Customer %s not found, switching to add mode", mobile)
        self.mode = ADD
        self.resolved_name = ""
        self.customer = None
        return None

    def _resolved(self, customer: Dict[str, Any]) -> Dict[str, Any]:
        self.mode = FETCH
        self.customer = customer
        self.resolved_name = customer.get("name") or ""
        return customer

    def reset(self) -> None:
        self.mode = FETCH
        self.mobile = ""
        self.resolved_name = ""
        self.customer = None
