"""Checkout-success orchestration.

Once Stripe redirects back with a completed session, the customer is
provisioned through a fixed sequence of Stripe calls. Steps run strictly in
order and nothing is rolled back: when step N fails, the effects of steps
1..N-1 stay on Stripe. :class:`ProvisioningRun` records which steps finished
so the failure report says exactly what persisted.

Replaying the same session id is not safe. Every call creates a fresh test
clock, cadence, billing intent and (for core) invoice and credit grant.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from core.datetime_utils import REFERENCE_TIMEZONE, utc_now_iso
from core.numeric_utils import safe_float

from .checkout import create_day_start_test_clock
from .credits import add_invoice_line, grant_custom_units, grant_monetary
from .errors import PreconditionError, ProvisioningError
from .plans import (
    FLOW_STARTER_INVOICE,
    FLOW_SUPERAI_CORE,
    FLOW_SUPERAI_PRO,
    MINIMUM_CHARGE_CENTS,
    STARTER_CREDIT_GRANT_CENTS,
    STARTER_CREDIT_GRANT_CURRENCY,
    STARTER_DEFAULT_RATE_CARD_ID,
    STARTER_INVOICE_PRICE_ID,
    STARTER_SUBSCRIPTION_PRICE_IDS,
    SUPERAI_FLOW_TYPES,
    plan_for_flow,
)
from .pricing import resolve_pricing_plan_version
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)

SESSION_EXPANSIONS = (
    "customer",
    "setup_intent.payment_method",
    "payment_intent.payment_method",
    "subscription",
    "subscription.default_payment_method",
)

TEST_CLOCK_NOTE = f"Test clock created at beginning of current day in {REFERENCE_TIMEZONE} timezone (BST/GMT)"


class ProvisioningRun:
    """Step ledger for a single checkout-success call."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.completed: List[str] = []

    @contextmanager
    def step(self, name: str) -> Iterator[None]:
        logger.info("Session %s: %s", self.session_id, name)
        try:
            yield
        except ProvisioningError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Session %s: step '%s' failed after %s: %s",
                self.session_id,
                name,
                self.completed or "no completed steps",
                exc,
            )
            raise ProvisioningError(name, self.completed, exc) from exc
        self.completed.append(name)


def _object_id(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        return value.get("id")
    return value or None


def _expanded(session: Mapping[str, Any], field: str, label: str) -> Mapping[str, Any]:
    value = session.get(field)
    if not isinstance(value, Mapping):
        raise PreconditionError(f"{label} must be expanded object")
    return value


def resolve_customer_and_payment_method(session: Mapping[str, Any]) -> Tuple[Mapping[str, Any], Mapping[str, Any]]:
    """Return the expanded customer and the payment method collected by ``session``.

    The payment method comes from the payment intent in ``payment`` mode, the
    setup intent in ``setup`` mode and the subscription's default method in
    ``subscription`` mode.
    """

    if not session.get("customer"):
        raise PreconditionError("Invalid checkout session: missing customer")
    if not (session.get("setup_intent") or session.get("payment_intent") or session.get("subscription")):
        raise PreconditionError("Invalid checkout session: missing setup intent, payment intent, or subscription")

    customer = _expanded(session, "customer", "Customer")
    mode = session.get("mode")

    if mode == "payment" and session.get("payment_intent"):
        source = _expanded(session, "payment_intent", "Payment intent")
        payment_method = source.get("payment_method")
        missing = "No payment method found in payment intent"
    elif mode == "setup" and session.get("setup_intent"):
        source = _expanded(session, "setup_intent", "Setup intent")
        payment_method = source.get("payment_method")
        missing = "No payment method found in setup intent"
    elif mode == "subscription" and session.get("subscription"):
        source = _expanded(session, "subscription", "Subscription")
        payment_method = source.get("default_payment_method")
        missing = "No payment method found in subscription"
    else:
        raise PreconditionError("Invalid session mode or missing intent/subscription")

    if not payment_method:
        raise PreconditionError(missing)
    if not isinstance(payment_method, Mapping):
        payment_method = {"id": payment_method}

    return customer, payment_method


def _test_clock_payload(clock: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if not clock:
        return None
    return {
        "id": clock.get("id"),
        "name": clock.get("name") or f"Test Clock {clock.get('id')}",
        "frozenTime": clock.get("frozen_time"),
        "status": clock.get("status") or "active",
        "note": TEST_CLOCK_NOTE,
    }


def _customer_payload(
    customer: Mapping[str, Any],
    *,
    name: Optional[str],
    email: Optional[str],
    payment_method_id: str,
    test_clock_id: Optional[str],
) -> Dict[str, Any]:
    return {
        "id": customer.get("id"),
        "name": name or customer.get("name"),
        "email": email or customer.get("email"),
        "paymentMethodId": payment_method_id,
        "testClockId": test_clock_id,
    }


def _total_amount(reserved_intent: Mapping[str, Any]) -> int:
    details = reserved_intent.get("amount_details") or {}
    total = safe_float(details.get("total"))
    if total is None:
        raise PreconditionError(f"Reserved billing intent {reserved_intent.get('id')} has no amount_details.total")
    return int(total)


def process_checkout_success(
    gateway: StripeGateway,
    session_id: str,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Provision the customer behind a completed checkout session.

    Raises ``ValueError`` for a blank session id and
    :class:`~billing.errors.ProvisioningError` when any Stripe step fails.
    """

    session_id = session_id.strip() if isinstance(session_id, str) else ""
    if not session_id:
        raise ValueError("Session ID is required")

    run = ProvisioningRun(session_id)

    with run.step("retrieve checkout session"):
        session = gateway.retrieve_checkout_session(session_id, expand=SESSION_EXPANSIONS)

    with run.step("resolve payment method"):
        customer, payment_method = resolve_customer_and_payment_method(session)

    metadata: Mapping[str, Any] = session.get("metadata") or {}
    flow_type = metadata.get("flow_type")
    logger.info(
        "Session %s: flow=%s mode=%s customer=%s payment_method=%s",
        session_id,
        flow_type,
        session.get("mode"),
        customer.get("id"),
        payment_method.get("id"),
    )

    if flow_type == FLOW_STARTER_INVOICE:
        return _run_starter_flow(gateway, run, session, customer, payment_method, now=now)
    if flow_type in SUPERAI_FLOW_TYPES:
        return _run_superai_flow(gateway, run, session, customer, payment_method, now=now)

    with run.step("select flow"):
        raise PreconditionError(f"Unsupported flow type: {flow_type}")


def _set_default_payment_method(
    gateway: StripeGateway, run: ProvisioningRun, customer_id: str, payment_method_id: str
) -> None:
    with run.step("set default payment method"):
        gateway.update_customer(
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )


def _run_starter_flow(
    gateway: StripeGateway,
    run: ProvisioningRun,
    session: Mapping[str, Any],
    customer: Mapping[str, Any],
    payment_method: Mapping[str, Any],
    *,
    now: Optional[datetime],
) -> Dict[str, Any]:
    metadata = session.get("metadata") or {}
    customer_id = customer["id"]
    payment_method_id = payment_method["id"]
    customer_name = metadata.get("customer_name") or customer.get("name")
    customer_email = metadata.get("customer_email") or customer.get("email")

    with run.step("create test clock"):
        test_clock = create_day_start_test_clock(gateway, now=now)

    with run.step("update customer"):
        gateway.update_customer(
            customer_id,
            name=customer_name or "Customer",
            preferred_locales=["en-GB"],
            metadata={
                **(customer.get("metadata") or {}),
                "plan": "starter_invoice_flow",
                "created_via": "starter_invoice_flow",
                "timestamp": utc_now_iso(),
                "test_clock_id": test_clock["id"],
                "preferred_currency": "gbp",
            },
        )

    _set_default_payment_method(gateway, run, customer_id, payment_method_id)

    with run.step("create invoice"):
        invoice = gateway.create_invoice(
            customer=customer_id,
            automatic_tax={"enabled": True},
            default_payment_method=payment_method_id,
            auto_advance=True,
        )
        if not invoice.get("id"):
            raise PreconditionError("Invoice ID is missing for invoice item creation")

    with run.step("add invoice item"):
        gateway.create_invoice_item(
            {"customer": customer_id, "invoice": invoice["id"], "price": STARTER_INVOICE_PRICE_ID}
        )

    with run.step("finalize invoice"):
        finalized = gateway.finalize_invoice(invoice["id"])

    with run.step("create credit grant"):
        credit_grant = grant_monetary(
            gateway,
            customer_id=customer_id,
            amount_cents=STARTER_CREDIT_GRANT_CENTS,
            currency=STARTER_CREDIT_GRANT_CURRENCY,
        )

    with run.step("create subscription"):
        subscription = gateway.create_subscription(
            customer=customer_id,
            default_payment_method=payment_method_id,
            items=[{"price": price_id} for price_id in STARTER_SUBSCRIPTION_PRICE_IDS],
            payment_settings={"save_default_payment_method": "on_subscription"},
            automatic_tax={"enabled": True},
        )

    with run.step("retrieve account"):
        account = gateway.retrieve_account()

    return {
        "message": "Starter Plan activated successfully!",
        "customerId": customer_id,
        "subscriptionId": subscription.get("id"),
        "account": {"id": account.get("id"), "business_profile": account.get("business_profile")},
        "customer": _customer_payload(
            customer,
            name=customer_name,
            email=customer_email,
            payment_method_id=payment_method_id,
            test_clock_id=test_clock.get("id"),
        ),
        "invoice": {
            "id": finalized.get("id"),
            "number": finalized.get("number"),
            "amount": finalized.get("amount_due"),
            "currency": finalized.get("currency"),
        },
        "creditGrant": {
            "id": credit_grant.get("id"),
            "name": credit_grant.get("name"),
            "amount": credit_grant.get("amount"),
        },
        "subscription": {"id": subscription.get("id"), "status": subscription.get("status")},
        "testClock": _test_clock_payload(test_clock),
        "session": {
            "id": session.get("id"),
            "setupIntentId": _object_id(session.get("setup_intent")),
            "mode": session.get("mode"),
        },
        "completedSteps": list(run.completed),
    }


def _run_superai_flow(
    gateway: StripeGateway,
    run: ProvisioningRun,
    session: Mapping[str, Any],
    customer: Mapping[str, Any],
    payment_method: Mapping[str, Any],
    *,
    now: Optional[datetime],
) -> Dict[str, Any]:
    metadata = session.get("metadata") or {}
    flow_type = metadata.get("flow_type")
    plan = plan_for_flow(flow_type)
    is_core = flow_type == FLOW_SUPERAI_CORE
    customer_id = customer["id"]
    payment_method_id = payment_method["id"]
    customer_name = metadata.get("customer_name") or customer.get("name")
    customer_email = metadata.get("customer_email") or customer.get("email")
    pricing_plan_id = metadata.get("pricing_plan_id") or plan.pricing_plan_id

    with run.step("create test clock"):
        test_clock = create_day_start_test_clock(gateway, now=now)

    with run.step("update customer"):
        update: Dict[str, Any] = {
            "metadata": {
                **(customer.get("metadata") or {}),
                "plan": metadata.get("plan") or plan.metadata_plan,
                "pricing_plan_id": pricing_plan_id,
                "rate_card_id": metadata.get("rate_card_id") or STARTER_DEFAULT_RATE_CARD_ID,
                "created_via": "checkout_flow",
                "timestamp": utc_now_iso(),
                "test_clock_id": test_clock["id"],
            }
        }
        if customer_name and customer_name != customer.get("name"):
            update["name"] = customer_name
        gateway.update_customer(customer_id, **update)

    _set_default_payment_method(gateway, run, customer_id, payment_method_id)

    with run.step("create cadence"):
        cadence = gateway.create_cadence(
            {
                "payer": {"type": "customer", "customer": customer_id},
                "billing_cycle": {"type": "month", "interval_count": 1},
            }
        )
        if not cadence.get("id"):
            raise PreconditionError(f"Cadence creation failed: No ID returned. Response: {cadence}")

    with run.step("fetch pricing plan"):
        pricing_plan = gateway.retrieve_pricing_plan(pricing_plan_id)
        plan_version = resolve_pricing_plan_version(pricing_plan)
        logger.info("Pricing plan %s resolved to version %s", pricing_plan_id, plan_version)

    with run.step("create billing intent"):
        billing_intent = gateway.create_billing_intent(
            {
                "currency": "usd",
                "cadence": cadence["id"],
                "actions": [
                    {
                        "type": "subscribe",
                        "subscribe": {
                            "type": "pricing_plan_subscription_details",
                            "pricing_plan_subscription_details": {
                                "pricing_plan": pricing_plan_id,
                                "pricing_plan_version": plan_version,
                                "component_configurations": [],
                            },
                        },
                    }
                ],
            }
        )
        if not billing_intent.get("id"):
            raise PreconditionError(f"Billing intent creation failed: No ID returned. Response: {billing_intent}")

    with run.step("reserve billing intent"):
        reserved = gateway.reserve_billing_intent(billing_intent["id"])
        total = _total_amount(reserved)

    payment_intent_id: Optional[str] = None
    if is_core:
        logger.info("SuperAI Core bills by invoice; skipping PaymentIntent")
    elif total <= 0:
        logger.info("Billing intent %s totals 0; no payment required", reserved.get("id"))
    elif reserved.get("payment_intent"):
        payment_intent_id = _object_id(reserved["payment_intent"])
        logger.info("Reusing PaymentIntent %s from reserved billing intent", payment_intent_id)
    else:
        with run.step("create payment intent"):
            payment_intent = gateway.create_payment_intent(
                amount=max(total, MINIMUM_CHARGE_CENTS),
                currency=reserved.get("currency") or "usd",
                customer=customer_id,
                payment_method=payment_method_id,
                confirm=True,
                off_session=True,
                description="Advanced Plan Payment",
            )
            if payment_intent.get("status") == "requires_action":
                raise PreconditionError("Payment requires additional authentication. Please complete 3DS.")
            payment_intent_id = payment_intent["id"]

    with run.step("commit billing intent"):
        commit_body = {"payment_intent": payment_intent_id} if total > 0 and payment_intent_id else {}
        committed = gateway.commit_billing_intent(reserved.get("id") or billing_intent["id"], commit_body)

    billing: Dict[str, Any] = {
        "cadenceId": cadence["id"],
        "pricingPlanId": pricing_plan_id,
        "billingIntentId": committed.get("id"),
        "status": committed.get("status"),
    }

    if is_core:
        invoice_amount = int(metadata.get("invoice_amount") or plan.invoice_amount_cents)
        credit_units = metadata.get("credit_units") or str(plan.credit_units)

        with run.step("create invoice"):
            invoice = gateway.create_invoice(customer=customer_id, collection_method="charge_automatically")

        with run.step("add invoice item"):
            add_invoice_line(
                gateway,
                customer_id=customer_id,
                invoice_id=invoice["id"],
                unit_amount_cents=invoice_amount,
                description="Credit Grant",
            )

        with run.step("finalize invoice"):
            gateway.finalize_invoice(invoice["id"])

        with run.step("pay invoice"):
            paid = gateway.pay_invoice(invoice["id"])

        with run.step("create credit grant"):
            credit_grant = grant_custom_units(gateway, customer_id=customer_id, units=credit_units)

        billing["invoiceId"] = paid.get("id")
        billing["creditGrantId"] = credit_grant.get("id")

    plan_label = "Pro" if flow_type == FLOW_SUPERAI_PRO else "Core"
    intent_source = session.get("payment_intent") if session.get("mode") == "payment" else session.get("setup_intent")

    return {
        "message": f"Customer {customer_name} successfully subscribed to SuperAI {plan_label} Plan!",
        "customer": _customer_payload(
            customer,
            name=customer_name,
            email=customer_email,
            payment_method_id=payment_method_id,
            test_clock_id=test_clock.get("id"),
        ),
        "billing": billing,
        "customerId": customer_id,
        "subscriptionId": committed.get("id"),
        "testClock": _test_clock_payload(test_clock),
        "session": {
            "id": session.get("id"),
            "intentId": _object_id(intent_source),
            "mode": session.get("mode"),
        },
        "completedSteps": list(run.completed),
    }
