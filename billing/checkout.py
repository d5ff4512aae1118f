"""Checkout initiation for the SuperAI plans."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from core.datetime_utils import start_of_day_utc, utc_now_iso

from .plans import PlanDefinition, get_plan
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)

CHECKOUT_CREATED_VIA = "superai_custom_credits_flow"
SUCCESS_PATH = "/superai/success"
CANCEL_PATH = "/superai"


def create_day_start_test_clock(gateway: StripeGateway, *, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Create a test clock frozen at the start of today in the reference timezone."""

    frozen_at = start_of_day_utc(now)
    clock = gateway.create_test_clock(frozen_time=int(frozen_at.timestamp()))
    logger.info("Test clock %s frozen at %s", clock.get("id"), frozen_at.isoformat())
    return clock


def build_checkout_metadata(plan: PlanDefinition, *, name: str, email: str, test_clock_id: str) -> Dict[str, str]:
    metadata = {
        "customer_name": name,
        "customer_email": email,
        "plan": plan.metadata_plan,
        "pricing_plan_id": plan.pricing_plan_id,
        "test_clock_id": test_clock_id,
        "flow_type": plan.flow_type,
    }
    if plan.invoice_amount_cents is not None:
        metadata["invoice_amount"] = str(plan.invoice_amount_cents)
    if plan.credit_units is not None:
        metadata["credit_units"] = str(plan.credit_units)
    return metadata


def create_checkout_flow(
    gateway: StripeGateway,
    *,
    name: str,
    email: str,
    base_url: str,
    plan_slug: str = "core",
) -> Dict[str, Any]:
    """Create test clock, customer and setup-mode checkout session for a plan.

    Raises ``ValueError`` before any Stripe call when name or email is blank
    or the plan is unknown.
    """

    name = name.strip() if isinstance(name, str) else ""
    email = email.strip() if isinstance(email, str) else ""
    if not name or not email:
        raise ValueError("Missing required fields: name and email are required")
    plan = get_plan(plan_slug)

    logger.info("Starting %s checkout flow for %s", plan.name, email)

    test_clock = create_day_start_test_clock(gateway)
    test_clock_id = test_clock["id"]

    customer = gateway.create_customer(
        name=name,
        email=email,
        test_clock=test_clock_id,
        metadata={
            "created_via": CHECKOUT_CREATED_VIA,
            "plan": plan.metadata_plan,
            "pricing_plan_id": plan.pricing_plan_id,
            "test_clock_id": test_clock_id,
            "timestamp": utc_now_iso(),
        },
        invoice_settings={"custom_fields": [{"name": "PO Number", "value": "PO1"}]},
    )
    logger.info("Customer %s created on test clock %s", customer["id"], test_clock_id)

    base = base_url.rstrip("/")
    session = gateway.create_checkout_session(
        mode="setup",
        payment_method_types=["card"],
        customer=customer["id"],
        success_url=f"{base}{SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base}{CANCEL_PATH}?checkout=cancelled",
        metadata=build_checkout_metadata(plan, name=name, email=email, test_clock_id=test_clock_id),
        custom_text={
            "submit": {"message": f"Complete payment setup to activate your {plan.name} Plan subscription."}
        },
    )
    logger.info("Checkout session %s created for customer %s", session["id"], customer["id"])

    return {
        "checkoutUrl": session.get("url"),
        "sessionId": session["id"],
        "customerId": customer["id"],
        "testClockId": test_clock_id,
    }
