"""Invoice and credit-grant building blocks shared by the provisioning and top-up flows."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .plans import CREDIT_TOP_UP_PRODUCT_ID, SUPERAI_CUSTOM_UNIT_ID
from .stripe_client import CREDIT_GRANT_API_VERSION, StripeGateway

logger = logging.getLogger(__name__)

CREDIT_GRANT_NAME = "Purchased Credits"


def add_invoice_line(
    gateway: StripeGateway,
    *,
    customer_id: str,
    invoice_id: str,
    unit_amount_cents: int,
    description: str,
    currency: str = "usd",
    product_id: str = CREDIT_TOP_UP_PRODUCT_ID,
) -> Dict[str, Any]:
    item = gateway.create_invoice_item(
        {
            "customer": customer_id,
            "price_data[currency]": currency,
            "price_data[product]": product_id,
            "price_data[unit_amount]": str(unit_amount_cents),
            "quantity": "1",
            "description": description,
            "invoice": invoice_id,
        }
    )
    logger.info("Invoice item %s added to %s (%s minor units)", item.get("id"), invoice_id, unit_amount_cents)
    return item


def grant_custom_units(
    gateway: StripeGateway,
    *,
    customer_id: str,
    units: Any,
    priority: Optional[int] = None,
    stripe_version: str = CREDIT_GRANT_API_VERSION,
) -> Dict[str, Any]:
    """Grant ``units`` of the SuperAI custom pricing unit, usable against metered prices."""

    form = [
        ("amount[custom_pricing_unit][id]", SUPERAI_CUSTOM_UNIT_ID),
        ("amount[custom_pricing_unit][value]", str(units)),
        ("amount[type]", "custom_pricing_unit"),
        ("applicability_config[scope][price_type]", "metered"),
        ("category", "paid"),
        ("customer", customer_id),
        ("name", CREDIT_GRANT_NAME),
    ]
    if priority is not None:
        form.append(("priority", str(priority)))

    grant = gateway.create_credit_grant(form, stripe_version=stripe_version)
    logger.info("Credit grant %s: %s custom units for %s", grant.get("id"), units, customer_id)
    return grant


def grant_monetary(
    gateway: StripeGateway,
    *,
    customer_id: str,
    amount_cents: int,
    currency: str,
) -> Dict[str, Any]:
    grant = gateway.create_credit_grant(
        [
            ("amount[monetary][currency]", currency),
            ("amount[monetary][value]", str(amount_cents)),
            ("amount[type]", "monetary"),
            ("applicability_config[scope][price_type]", "metered"),
            ("category", "paid"),
            ("customer", customer_id),
            ("name", CREDIT_GRANT_NAME),
        ]
    )
    logger.info("Credit grant %s: %s %s minor units for %s", grant.get("id"), amount_cents, currency, customer_id)
    return grant
