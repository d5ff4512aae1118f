from __future__ import annotations

import pytest

from billing.customers import CustomerDeleted, get_customer_details


def test_customer_details_are_flattened(gateway):
    gateway.customer = {"id": "cus_1", "name": "Ada", "email": "ada@example.com", "created": 1720000000, "metadata": {"plan": "superai_pro_plan"}}

    details = get_customer_details(gateway, " cus_1 ")

    assert details == {
        "id": "cus_1",
        "name": "Ada",
        "email": "ada@example.com",
        "created": 1720000000,
        "metadata": {"plan": "superai_pro_plan"},
    }
    assert gateway.names() == ["retrieve_customer"]


def test_deleted_customer_raises(gateway):
    gateway.customer = {"id": "cus_1", "deleted": True}
    with pytest.raises(CustomerDeleted):
        get_customer_details(gateway, "cus_1")


def test_blank_customer_id(gateway):
    with pytest.raises(ValueError):
        get_customer_details(gateway, None)
    assert gateway.calls == []
