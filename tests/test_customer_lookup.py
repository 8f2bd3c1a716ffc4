import pytest

from customer_lookup import ADD, FETCH, CustomerLookup
from errors import ValidationError


class FakeApi:
    def __init__(self, customers=None):
        self.customers = dict(customers or {})
        self.calls = []

    def search_customer(self, mobile):
        self.calls.append(("search", mobile))
        c = self.customers.get(mobile)
        return {"customer": c, "found": c is not None}

    def create_customer(self, mobile, name):
        self.calls.append(("create", mobile, name))
        c = {"id": f"c-{mobile}", "mobile": mobile, "name": name}
        self.customers[mobile] = c
        return c


def test_invalid_mobile_never_reaches_the_api():
    api = FakeApi()
    lookup = CustomerLookup(api)
    with pytest.raises(ValidationError, match="valid 10-digit"):
        lookup.submit("98765")
    with pytest.raises(ValidationError, match="required"):
        lookup.submit("")
    assert api.calls == []
    assert lookup.mode == FETCH


def test_known_customer_resolves_name():
    api = FakeApi({"9876543210": {"id": "c1", "mobile": "9876543210", "name": "Asha"}})
    lookup = CustomerLookup(api)
    customer = lookup.submit("9876543210")
    assert customer["id"] == "c1"
    assert lookup.resolved_name == "Asha"
    assert lookup.mode == FETCH


def test_miss_switches_to_add_then_creates():
    api = FakeApi()
    lookup = CustomerLookup(api)
    assert lookup.submit("9876543210") is None
    assert lookup.mode == ADD

    with pytest.raises(ValidationError, match="customer name"):
        lookup.submit(name="  ")
    assert lookup.mode == ADD

    customer = lookup.submit(name="Ravi")
    assert customer["name"] == "Ravi"
    assert lookup.mode == FETCH
    assert lookup.resolved_name == "Ravi"
    assert api.calls == [("search", "9876543210"), ("create", "9876543210", "Ravi")]


def test_changing_mobile_abandons_add():
    api = FakeApi()
    lookup = CustomerLookup(api)
    lookup.submit("9876543210")
    assert lookup.mode == ADD

    lookup.mobile_changed("9876543211")
    assert lookup.mode == FETCH
    assert lookup.resolved_name == ""

    # a submit with a different number also counts as an edit
    lookup.submit("9876543211")
    assert lookup.mode == ADD
    lookup.submit("9876543212", name="Ravi")
    assert lookup.mode == ADD
    assert ("create", "9876543212", "Ravi") not in api.calls


def test_reset_clears_everything():
    api = FakeApi({"9876543210": {"id": "c1", "mobile": "9876543210", "name": "Asha"}})
    lookup = CustomerLookup(api)
    lookup.submit("9876543210")
    lookup.reset()
    assert (lookup.mode, lookup.mobile, lookup.resolved_name, lookup.customer) == (FETCH, "", "", None)


def test_unregistered_mobile_is_added_and_then_found(api):
    lookup = CustomerLookup(api)
    assert lookup.submit("9123456780") is None
    assert lookup.mode == ADD
    created = lookup.submit(name="Meera")
    assert created["mobile"] == "9123456780"

    again = CustomerLookup(api)
    found = again.submit("9123456780")
    assert found["id"] == created["id"]
    assert again.resolved_name == "Meera"
