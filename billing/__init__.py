"""Stripe billing orchestration for the SuperAI plans."""

from .balances import read_credit_balance, summarize_balances
from .checkout import create_checkout_flow
from .customers import CustomerDeleted, get_customer_details
from .errors import BillingError, PreconditionError, ProvisioningError, StripeAPIError
from .metering import (
    AI1_EVENT_NAME,
    SUPERAI_EVENT_NAME,
    normalize_system_label,
    record_fixed_meter_event,
    record_meter_event,
)
from .plans import PLAN_DEFINITIONS, PlanDefinition, get_plan, get_plan_definitions
from .pricing import resolve_pricing_plan_version
from .provisioning import process_checkout_success
from .stripe_client import StripeGateway, get_stripe_gateway
from .topup import create_invoice_and_credit

__all__ = [
    "AI1_EVENT_NAME",
    "SUPERAI_EVENT_NAME",
    "PLAN_DEFINITIONS",
    "PlanDefinition",
    "BillingError",
    "CustomerDeleted",
    "PreconditionError",
    "ProvisioningError",
    "StripeAPIError",
    "StripeGateway",
    "create_checkout_flow",
    "create_invoice_and_credit",
    "get_customer_details",
    "get_plan",
    "get_plan_definitions",
    "get_stripe_gateway",
    "normalize_system_label",
    "process_checkout_success",
    "read_credit_balance",
    "record_fixed_meter_event",
    "record_meter_event",
    "resolve_pricing_plan_version",
    "summarize_balances",
]
