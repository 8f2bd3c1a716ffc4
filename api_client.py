"""
HTTP client for the Pharmacy POS API.

Wraps an httpx.Client; any httpx-compatible client works, including
FastAPI's TestClient. Error bodies come back as the same PosError classes
the server raised. There is no retry: a failed call raises and the clerk
decides whether to try again.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from billing import PostedBill
from cart import BillPayload
from config import POS_API_URL
from errors import RemoteFailure, error_from_response
from loggers import get_logger

log = get_logger("pharmacy_pos.client")


class BillingApi:
    def __init__(self, base_url: str = POS_API_URL, client: Optional[httpx.Client] = None, org_id: Optional[str] = None):
        self.client = client or httpx.Client(base_url=base_url)
        self.org_id = org_id

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        self.client.close()

    def _params(self, **params) -> Dict[str, Any]:
        if self.org_id:
            params["orgId"] = self.org_id
        return {k: v for k, v in params.items() if v is not None}

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log.error("%s %s failed: %s", method, path, e)
            raise RemoteFailure(f"Could not reach the POS server: {e}") from e
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.is_error:
            raise error_from_response(resp.status_code, body if isinstance(body, dict) else {})
        return body

    # ----- billing -----
    def search_products(self, barcode: Optional[str] = None, name: Optional[str] = None, sku: Optional[str] = None) -> Dict[str, Any]:
        return self._request("GET", "/api/billing/products/search", params=self._params(barcode=barcode, name=name, sku=sku))

    def get_product(self, product_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/billing/products/{product_id}", params=self._params())

    def search_customer(self, mobile: str) -> Dict[str, Any]:
        return self._request("GET", "/api/billing/customers/search", params={"mobile": mobile})

    def create_customer(self, mobile: str, name: str, email: Optional[str] = None, address: Optional[str] = None) -> Dict[str, Any]:
        body = self._request(
            "POST",
            "/api/billing/customers",
            json={"mobile": mobile, "name": name, "email": email, "address": address},
        )
        return body["customer"]

    def post_bill(self, payload: BillPayload) -> PostedBill:
        body = payload.to_json()
        if self.org_id and "orgId" not in body:
            body["orgId"] = self.org_id
        res = self._request("POST", "/api/billing/bills", json=body)
        return PostedBill(bill_number=res["bill_number"], bill_id=res["bill_id"], total=Decimal(str(res["total"])))

    def list_recent_bills(self, limit: int = 5) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/billing/bills/recent", params=self._params(limit=limit))["bills"]

    def get_bill(self, identifier: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/billing/bills/{identifier}", params=self._params())

    def get_receipt(self, identifier: str) -> str:
        return self._request("GET", f"/api/billing/bills/{identifier}/receipt", params=self._params())["receipt"]

    # ----- dashboard -----
    def total_orders(self, include_cancelled: bool = False) -> Dict[str, Any]:
        params = self._params(includeCancelled="true" if include_cancelled else None)
        return self._request("GET", "/api/dashboard/total-orders", params=params)

    def recent_orders(self, limit: int = 3) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/dashboard/recent-orders", params=self._params(limit=limit))["orders"]

    def low_stock(self) -> Dict[str, Any]:
        return self._request("GET", "/api/dashboard/low-stock", params=self._params())

    def pending_deliveries(self) -> Dict[str, Any]:
        return self._request("GET", "/api/dashboard/pending-deliveries", params=self._params())
