"""Credit balance aggregation across a customer's credit grants."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from core.numeric_utils import format_grouped, safe_float

from .errors import StripeAPIError
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)


def balance_amount(balance: Optional[Mapping[str, Any]]) -> float:
    """Read one ledger or available balance as a float.

    Custom pricing unit values count as units; monetary values are minor
    units and are converted to the major unit.
    """

    if not isinstance(balance, Mapping):
        return 0.0

    custom_unit = balance.get("custom_pricing_unit")
    if custom_unit:
        return safe_float(custom_unit.get("value")) or 0.0

    monetary = balance.get("monetary")
    if monetary:
        return (safe_float(monetary.get("value")) or 0.0) / 100

    return 0.0


def summarize_balances(summaries: Iterable[Mapping[str, Any]]) -> Tuple[float, float]:
    """Sum granted (ledger) and available balances over every summary entry."""

    granted = 0.0
    available = 0.0
    for summary in summaries:
        for entry in summary.get("balances") or []:
            granted += balance_amount(entry.get("ledger_balance"))
            available += balance_amount(entry.get("available_balance"))
    return granted, available


def read_credit_balance(gateway: StripeGateway, customer_id: Any) -> Dict[str, Any]:
    """Return formatted granted and available totals for ``customer_id``.

    A grant whose balance summary cannot be fetched is skipped; a failure to
    list the grants is not.
    """

    customer = str(customer_id or "").strip()
    if not customer:
        raise ValueError("Customer ID is required")

    grants = gateway.list_credit_grants(customer)
    logger.info("Found %s credit grants for %s", len(grants), customer)

    summaries = []
    for grant in grants:
        grant_id = grant.get("id")
        try:
            summaries.append(gateway.get_credit_balance_summary(customer, grant_id))
        except StripeAPIError as exc:
            logger.warning("Skipping balance for grant %s: %s", grant_id, exc)
            continue

    granted, available = summarize_balances(summaries)
    logger.info("Credit totals for %s: granted=%s available=%s", customer, granted, available)

    return {
        "grantedUnits": format_grouped(granted),
        "availableUnits": format_grouped(available),
        "customerId": customer,
    }
