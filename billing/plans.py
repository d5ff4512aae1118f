"""Static SuperAI plan catalogue and the Stripe identifiers each flow relies on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

FLOW_STARTER_INVOICE = "starter_invoice_custom_flow"
FLOW_SUPERAI_PRO = "superai_pro_custom_credits_flow"
FLOW_SUPERAI_CORE = "superai_core_custom_credits_flow"

SUPERAI_FLOW_TYPES = frozenset({FLOW_SUPERAI_PRO, FLOW_SUPERAI_CORE})

# Custom pricing unit that SuperAI credit grants are denominated in.
SUPERAI_CUSTOM_UNIT_ID = "cpu_test_61TT5XePmbXQBegOk16T5kls95SQJJF9DR1pbaQwq4ye"
# Product used for ad hoc invoice items (core invoices and manual top-ups).
CREDIT_TOP_UP_PRODUCT_ID = "prod_T9SJrht8qO7y5t"

STARTER_INVOICE_PRICE_ID = "price_1RlR4wCxTX20iupG3WdVATtj"
STARTER_SUBSCRIPTION_PRICE_IDS = ("price_1RqaNwCxTX20iupGRkZ0298p", "price_1RY2c5CxTX20iupGsNnlQCz5")
STARTER_CREDIT_GRANT_CENTS = 10000
STARTER_CREDIT_GRANT_CURRENCY = "usd"
STARTER_DEFAULT_RATE_CARD_ID = "rcd_test_61SslDUf5TEQBs1ED16SJ793MpE9vspyGN7Wv6Auu0XQ"

# Stripe refuses USD charges below $0.50.
MINIMUM_CHARGE_CENTS = 50


@dataclass(frozen=True)
class PlanDefinition:
    slug: str
    name: str
    flow_type: str
    metadata_plan: str
    pricing_plan_id: str
    description: str
    invoice_amount_cents: Optional[int] = None
    credit_units: Optional[int] = None
    features: tuple = ()
    purchasable: bool = True


PLAN_DEFINITIONS: Dict[str, PlanDefinition] = {
    "core": PlanDefinition(
        slug="core",
        name="SuperAI Core",
        flow_type=FLOW_SUPERAI_CORE,
        metadata_plan="superai_core_plan",
        pricing_plan_id="bpp_test_61TT5XipfJUNx6zyd16T5kls95SQJJF9DR1pbaQwqFmK",
        description="500,000 prepaid credits billed by invoice.",
        invoice_amount_cents=10_000_000,
        credit_units=500_000,
        features=(
            "500,000 prepaid SuperAI credits",
            "Invoice billing, no card charge at signup",
            "OpenAI, Claude and Grok usage metering",
        ),
    ),
    "pro": PlanDefinition(
        slug="pro",
        name="SuperAI Pro",
        flow_type=FLOW_SUPERAI_PRO,
        metadata_plan="superai_pro_plan",
        pricing_plan_id="bpp_test_61TT60NzJkaRemjh216T5kls95SQJJF9DR1pbaQwq7rc",
        description="Monthly pricing plan charged to the saved card.",
        features=(
            "Pay-as-you-go pricing plan",
            "Card charged when the plan is committed",
            "Usage metering across all systems",
        ),
    ),
    "enterprise": PlanDefinition(
        slug="enterprise",
        name="SuperAI Enterprise",
        flow_type="",
        metadata_plan="superai_enterprise_plan",
        pricing_plan_id="",
        description="Custom contracts. Contact sales.",
        features=("Dedicated capacity", "Custom credit pools"),
        purchasable=False,
    ),
}

_PLAN_BY_FLOW: Dict[str, PlanDefinition] = {
    plan.flow_type: plan for plan in PLAN_DEFINITIONS.values() if plan.flow_type
}


def get_plan_definitions() -> Iterable[PlanDefinition]:
    """Return the plans in display order."""

    return tuple(PLAN_DEFINITIONS.values())


def get_plan(slug: str) -> PlanDefinition:
    """Look up a purchasable plan by slug, raising ``ValueError`` when unknown."""

    key = slug.strip().lower() if isinstance(slug, str) else ""
    plan = PLAN_DEFINITIONS.get(key)
    if plan is None or not plan.purchasable:
        raise ValueError(f"Unknown plan '{slug}'. Expected one of: core, pro")
    return plan


def plan_for_flow(flow_type: Optional[str]) -> Optional[PlanDefinition]:
    return _PLAN_BY_FLOW.get(flow_type or "")
