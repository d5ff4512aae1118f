from __future__ import annotations

import pytest

from billing.errors import PreconditionError, ProvisioningError
from billing.plans import (
    FLOW_STARTER_INVOICE,
    FLOW_SUPERAI_CORE,
    FLOW_SUPERAI_PRO,
    STARTER_SUBSCRIPTION_PRICE_IDS,
    SUPERAI_CUSTOM_UNIT_ID,
    get_plan,
)
from billing.provisioning import process_checkout_success, resolve_customer_and_payment_method

from .fakes import setup_session, stripe_failure

SUPERAI_STEPS = [
    "retrieve checkout session",
    "resolve payment method",
    "create test clock",
    "update customer",
    "set default payment method",
    "create cadence",
    "fetch pricing plan",
    "create billing intent",
    "reserve billing intent",
]


def test_blank_session_id_is_a_validation_error(gateway):
    with pytest.raises(ValueError, match="Session ID is required"):
        process_checkout_success(gateway, "  ")
    assert gateway.calls == []


def test_starter_flow_runs_every_step_in_order(gateway):
    gateway.session = setup_session(FLOW_STARTER_INVOICE)

    result = process_checkout_success(gateway, "cs_starter")

    assert result["completedSteps"] == [
        "retrieve checkout session",
        "resolve payment method",
        "create test clock",
        "update customer",
        "set default payment method",
        "create invoice",
        "add invoice item",
        "finalize invoice",
        "create credit grant",
        "create subscription",
        "retrieve account",
    ]
    assert result["message"] == "Starter Plan activated successfully!"
    assert result["customerId"] == "cus_1"
    assert result["session"] == {"id": "cs_starter", "setupIntentId": "seti_1", "mode": "setup"}

    (_, sub_kwargs), = gateway.calls_to("create_subscription")
    assert [item["price"] for item in sub_kwargs["items"]] == list(STARTER_SUBSCRIPTION_PRICE_IDS)

    (grant_args, _), = gateway.calls_to("create_credit_grant")
    form = dict(grant_args[0])
    assert form["amount[monetary][value]"] == "10000"
    assert form["amount[monetary][currency]"] == "usd"


def test_pro_flow_with_zero_total_skips_payment_and_commits_empty(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)
    gateway.reserved_intent = {"amount_details": {"total": "0"}}

    result = process_checkout_success(gateway, "cs_pro")

    assert gateway.calls_to("create_payment_intent") == []
    (commit_args, _), = gateway.calls_to("commit_billing_intent")
    assert commit_args[1] == {}
    assert result["completedSteps"] == SUPERAI_STEPS + ["commit billing intent"]
    assert result["message"] == "Customer Ada successfully subscribed to SuperAI Pro Plan!"
    assert "invoiceId" not in result["billing"]


def test_pro_flow_with_positive_total_creates_exactly_one_payment_intent(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)
    gateway.reserved_intent = {"amount_details": {"total": "2500"}, "currency": "usd"}
    gateway.payment_intent = {"id": "pi_new", "status": "succeeded"}

    result = process_checkout_success(gateway, "cs_pro")

    (_, pi_kwargs), = gateway.calls_to("create_payment_intent")
    assert pi_kwargs["amount"] == 2500
    assert pi_kwargs["payment_method"] == "pm_1"
    assert pi_kwargs["confirm"] is True
    assert pi_kwargs["off_session"] is True

    (commit_args, _), = gateway.calls_to("commit_billing_intent")
    assert commit_args[1] == {"payment_intent": "pi_new"}
    assert "create payment intent" in result["completedSteps"]


def test_small_totals_are_raised_to_the_minimum_charge(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)
    gateway.reserved_intent = {"amount_details": {"total": "20"}}

    process_checkout_success(gateway, "cs_pro")

    (_, pi_kwargs), = gateway.calls_to("create_payment_intent")
    assert pi_kwargs["amount"] == 50


def test_payment_intent_on_reserved_intent_is_reused(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)
    gateway.reserved_intent = {"amount_details": {"total": "2500"}, "payment_intent": "pi_existing"}

    process_checkout_success(gateway, "cs_pro")

    assert gateway.calls_to("create_payment_intent") == []
    (commit_args, _), = gateway.calls_to("commit_billing_intent")
    assert commit_args[1] == {"payment_intent": "pi_existing"}


def test_payment_requiring_authentication_fails_before_commit(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)
    gateway.reserved_intent = {"amount_details": {"total": "2500"}}
    gateway.payment_intent = {"status": "requires_action"}

    with pytest.raises(ProvisioningError) as excinfo:
        process_checkout_success(gateway, "cs_pro")

    assert excinfo.value.step == "create payment intent"
    assert isinstance(excinfo.value.cause, PreconditionError)
    assert "3DS" in str(excinfo.value)
    assert gateway.calls_to("commit_billing_intent") == []


def test_core_flow_invoices_and_grants_custom_units(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_CORE, metadata={"invoice_amount": "10000000", "credit_units": "500000"})
    gateway.reserved_intent = {"amount_details": {"total": "9900"}}

    result = process_checkout_success(gateway, "cs_core")

    assert gateway.calls_to("create_payment_intent") == []
    (commit_args, _), = gateway.calls_to("commit_billing_intent")
    assert commit_args[1] == {}

    assert result["completedSteps"][len(SUPERAI_STEPS):] == [
        "commit billing intent",
        "create invoice",
        "add invoice item",
        "finalize invoice",
        "pay invoice",
        "create credit grant",
    ]
    (item_args, _), = gateway.calls_to("create_invoice_item")
    assert item_args[0]["price_data[unit_amount]"] == "10000000"
    assert item_args[0]["description"] == "Credit Grant"

    (grant_args, _), = gateway.calls_to("create_credit_grant")
    form = dict(grant_args[0])
    assert form["amount[custom_pricing_unit][id]"] == SUPERAI_CUSTOM_UNIT_ID
    assert form["amount[custom_pricing_unit][value]"] == "500000"
    assert result["billing"]["creditGrantId"].startswith("credgr_")
    assert result["billing"]["invoiceId"].startswith("in_")


def test_core_flow_falls_back_to_plan_amounts(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_CORE)

    process_checkout_success(gateway, "cs_core")

    plan = get_plan("core")
    (item_args, _), = gateway.calls_to("create_invoice_item")
    assert item_args[0]["price_data[unit_amount]"] == str(plan.invoice_amount_cents)
    (grant_args, _), = gateway.calls_to("create_credit_grant")
    assert dict(grant_args[0])["amount[custom_pricing_unit][value]"] == str(plan.credit_units)


def test_billing_intent_subscribes_to_resolved_plan_version(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)
    gateway.pricing_plan = {"id": "bpp_x", "versions": [{"id": "bppv_live", "status": "active"}]}

    process_checkout_success(gateway, "cs_pro")

    (intent_args, _), = gateway.calls_to("create_billing_intent")
    details = intent_args[0]["actions"][0]["subscribe"]["pricing_plan_subscription_details"]
    assert details["pricing_plan_version"] == "bppv_live"
    assert details["pricing_plan"] == get_plan("pro").pricing_plan_id


def test_failed_step_reports_what_already_persisted(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)
    gateway.fail_on["create_cadence"] = stripe_failure("Cadence creation", 400, "bad payer")

    with pytest.raises(ProvisioningError) as excinfo:
        process_checkout_success(gateway, "cs_pro")

    error = excinfo.value
    assert error.step == "create cadence"
    assert error.completed_steps == (
        "retrieve checkout session",
        "resolve payment method",
        "create test clock",
        "update customer",
        "set default payment method",
    )
    assert "bad payer" in str(error)
    assert gateway.calls_to("create_billing_intent") == []


def test_replaying_a_session_creates_duplicate_objects(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO)

    first = process_checkout_success(gateway, "cs_pro")
    second = process_checkout_success(gateway, "cs_pro")

    assert len(gateway.calls_to("create_test_clock")) == 2
    assert len(gateway.calls_to("create_cadence")) == 2
    assert len(gateway.calls_to("create_billing_intent")) == 2
    assert first["billing"]["cadenceId"] != second["billing"]["cadenceId"]


def test_unsupported_flow_type_fails_after_resolving_payment_method(gateway):
    gateway.session = setup_session("something_else")

    with pytest.raises(ProvisioningError) as excinfo:
        process_checkout_success(gateway, "cs_x")

    assert excinfo.value.step == "select flow"
    assert "Unsupported flow type: something_else" in str(excinfo.value)
    assert excinfo.value.completed_steps == ("retrieve checkout session", "resolve payment method")


def test_missing_payment_method_stops_before_any_write(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO, payment_method=None)

    with pytest.raises(ProvisioningError) as excinfo:
        process_checkout_success(gateway, "cs_x")

    assert excinfo.value.step == "resolve payment method"
    assert "No payment method found in setup intent" in str(excinfo.value)
    assert gateway.names() == ["retrieve_checkout_session"]


def test_payment_method_from_each_session_mode():
    customer = {"id": "cus_1"}
    _, pm = resolve_customer_and_payment_method(
        {"mode": "payment", "customer": customer, "payment_intent": {"payment_method": "pm_pay"}}
    )
    assert pm == {"id": "pm_pay"}

    _, pm = resolve_customer_and_payment_method(
        {"mode": "subscription", "customer": customer, "subscription": {"default_payment_method": {"id": "pm_sub"}}}
    )
    assert pm == {"id": "pm_sub"}


def test_unexpanded_customer_is_rejected():
    with pytest.raises(PreconditionError, match="Customer must be expanded object"):
        resolve_customer_and_payment_method({"mode": "setup", "customer": "cus_1", "setup_intent": {"payment_method": "pm"}})


def test_session_without_intent_is_rejected():
    with pytest.raises(PreconditionError, match="missing setup intent, payment intent, or subscription"):
        resolve_customer_and_payment_method({"mode": "setup", "customer": {"id": "cus_1"}})


def test_superai_flow_creates_its_own_clock_despite_checkout_clock(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_PRO, metadata={"test_clock_id": "clock_from_checkout"})

    result = process_checkout_success(gateway, "cs_pro")

    assert len(gateway.calls_to("create_test_clock")) == 1
    assert result["testClock"]["id"] != "clock_from_checkout"
    (_, update_kwargs), = [
        call for call in gateway.calls_to("update_customer") if "metadata" in call[1]
    ]
    assert update_kwargs["metadata"]["test_clock_id"] == result["testClock"]["id"]


def test_replaying_a_core_session_invoices_and_grants_twice(gateway):
    gateway.session = setup_session(FLOW_SUPERAI_CORE)

    first = process_checkout_success(gateway, "cs_core")
    second = process_checkout_success(gateway, "cs_core")

    assert len(gateway.calls_to("create_test_clock")) == 2
    assert len(gateway.calls_to("create_cadence")) == 2
    assert len(gateway.calls_to("create_invoice")) == 2
    assert len(gateway.calls_to("pay_invoice")) == 2
    assert len(gateway.calls_to("create_credit_grant")) == 2
    assert first["billing"]["creditGrantId"] != second["billing"]["creditGrantId"]
    assert first["billing"]["invoiceId"] != second["billing"]["invoiceId"]


@pytest.mark.parametrize("session_id", [None, 123, ["cs_1"], {"id": "cs_1"}])
def test_non_string_session_id_is_a_validation_error(gateway, session_id):
    with pytest.raises(ValueError, match="Session ID is required"):
        process_checkout_success(gateway, session_id)
    assert gateway.calls == []
