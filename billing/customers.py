"""Customer lookups for the status page."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .stripe_client import StripeGateway


class CustomerDeleted(LookupError):
    pass


def get_customer_details(gateway: StripeGateway, customer_id: Optional[str]) -> Dict[str, Any]:
    customer_key = str(customer_id or "").strip()
    if not customer_key:
        raise ValueError("Customer ID is required")

    customer = gateway.retrieve_customer(customer_key)
    if customer.get("deleted"):
        raise CustomerDeleted("Customer has been deleted")

    return {
        "id": customer.get("id"),
        "name": customer.get("name"),
        "email": customer.get("email"),
        "created": customer.get("created"),
        "metadata": dict(customer.get("metadata") or {}),
    }
