"""Manual credit top-up: invoice the customer, then grant custom units."""

from __future__ import annotations

import logging
from typing import Any, Dict

from core.numeric_utils import finite_number, format_grouped

from .credits import add_invoice_line, grant_custom_units
from .stripe_client import TOP_UP_CREDIT_GRANT_API_VERSION, StripeGateway

logger = logging.getLogger(__name__)

TOP_UP_DESCRIPTION = "Stability Core Subscription Top Up"
TOP_UP_PRIORITY = 60


def create_invoice_and_credit(
    gateway: StripeGateway,
    *,
    customer_id: Any,
    invoice_amount: Any,
    credit_amount: Any,
) -> Dict[str, Any]:
    """Invoice ``invoice_amount`` dollars, pay it, then grant ``credit_amount`` units.

    Both amounts must be positive numbers; anything else is rejected before
    Stripe is called. The invoice is paid with the customer's default payment
    method. A failure at any step leaves the earlier steps applied.
    """

    customer = str(customer_id or "").strip()
    dollars = finite_number(invoice_amount)
    units = finite_number(credit_amount)
    if not customer or dollars is None or dollars <= 0 or units is None or units <= 0:
        raise ValueError("Missing required fields: customerId, invoiceAmount, and creditAmount are required")

    unit_amount_cents = int(round(dollars * 100))
    if unit_amount_cents <= 0:
        raise ValueError("invoiceAmount must be at least one cent")
    units_value = int(units) if units.is_integer() else units

    logger.info("Top-up for %s: $%s and %s units", customer, dollars, units_value)

    invoice = gateway.create_invoice(
        customer=customer,
        collection_method="charge_automatically",
        auto_advance=False,
    )
    add_invoice_line(
        gateway,
        customer_id=customer,
        invoice_id=invoice["id"],
        unit_amount_cents=unit_amount_cents,
        description=TOP_UP_DESCRIPTION,
    )
    finalized = gateway.finalize_invoice(invoice["id"])
    paid = gateway.pay_invoice(invoice["id"])
    logger.info("Top-up invoice %s status=%s", paid.get("id"), paid.get("status"))

    credit_grant = grant_custom_units(
        gateway,
        customer_id=customer,
        units=units_value,
        priority=TOP_UP_PRIORITY,
        stripe_version=TOP_UP_CREDIT_GRANT_API_VERSION,
    )

    return {
        "invoiceId": finalized.get("id"),
        "creditGrantId": credit_grant.get("id"),
        "message": (
            f"Invoice for ${format_grouped(dollars, 2)} and credit grant of "
            f"{format_grouped(units)} custom units created successfully"
        ),
    }
