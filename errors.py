"""
Error taxonomy shared by the API and the client.

Every failure the billing workflow can report is a PosError subclass with an
HTTP status; the API renders them as ``{"error": message, ...}`` bodies and
the client turns those bodies back into the same classes.
"""
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from loggers import get_logger

log = get_logger("pharmacy_pos.errors")


class PosError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(PosError):
    """Bad input shape; rejected before any store access."""
    status_code = 400


class NotFoundError(PosError):
    status_code = 404


class InsufficientStock(PosError):
    """One or more lines ask for more units than the ledger holds."""
    status_code = 409

    def __init__(self, shortfalls: List[Any], message: str = "Insufficient stock"):
        super().__init__(message)
        self.shortfalls = list(shortfalls)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "shortfalls": [s.to_dict() if hasattr(s, "to_dict") else dict(s) for s in self.shortfalls],
        }

    def describe(self) -> str:
        lines = ["Insufficient Stock!", ""]
        for s in self.shortfalls:
            d = s.to_dict() if hasattr(s, "to_dict") else dict(s)
            lines.append(f"{d['name']}:")
            lines.append(f"  Requested: {d['requested']}")
            lines.append(f"  Available: {d['available']}")
            lines.append(f"  Short by: {d['shortfall']}")
            lines.append("")
        lines.append("Please adjust quantities and try again.")
        return "\n".join(lines)


class RemoteFailure(PosError):
    """Store or network failure; the operation did not complete and may be retried."""
    status_code = 502


class PartialBillFailure(PosError):
    """
    The bill header was written but its items or stock debits could not be
    completed, and removing the header failed too. Needs manual
    reconciliation.
    """
    status_code = 500

    def __init__(self, bill_number: str, message: Optional[str] = None):
        super().__init__(message or f"Bill {bill_number} was saved incompletely and needs reconciliation")
        self.bill_number = bill_number

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "bill_number": self.bill_number, "partial": True}


# -----------------------------
# FastAPI wiring
# -----------------------------

async def _pos_error_handler(request: Request, exc: PosError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    if errs:
        first = errs[0]
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
    else:
        msg = "Invalid request"
    return JSONResponse(status_code=400, content={"error": msg})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PosError, _pos_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)


def error_from_response(status_code: int, body: Dict[str, Any]) -> PosError:
    """Rebuild a PosError from an API error body (client side)."""
    message = body.get("error") or f"Request failed with status {status_code}"
    if body.get("partial"):
        return PartialBillFailure(body.get("bill_number", ""), message)
    if status_code == 409 and "shortfalls" in body:
        return InsufficientStock(body["shortfalls"], message)
    if status_code == 404:
        return NotFoundError(message)
    if 400 <= status_code < 500:
        return ValidationError(message)
    return RemoteFailure(message)
