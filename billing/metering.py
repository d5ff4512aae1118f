"""Usage metering: forwards usage values to Stripe billing meter events."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from core.datetime_utils import parse_iso_datetime
from core.numeric_utils import finite_number

from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)

DEFAULT_EVENT_NAME = "SyseventSA2"
DEFAULT_TYPE = "default"
SUPERAI_EVENT_NAME = "Event SuperAI"
AI1_EVENT_NAME = "Event AI-1"

# normalized label -> (system tag, event name override)
_SYSTEM_LABELS: Dict[str, Tuple[str, Optional[str]]] = {
    "open ai": ("openai", None),
    "openai": ("openai", None),
    "claude": ("claude", None),
    "grok": ("grok", None),
    "eventtest 19": ("eventtest_19", "EventTest 19"),
}


def normalize_system_label(label: Optional[str]) -> Tuple[Optional[str], str]:
    """Map a free-form system label to ``(system, event_name)``.

    Unrecognised or empty labels give ``(None, "SyseventSA2")``.
    """

    if not label:
        return None, DEFAULT_EVENT_NAME

    normalized = str(label).strip().lower()
    system, event_override = _SYSTEM_LABELS.get(normalized, (None, None))
    return system, event_override or DEFAULT_EVENT_NAME


def _validated(customer_id: Any, value: Any) -> Tuple[str, float]:
    customer = str(customer_id or "").strip()
    number = finite_number(value)
    if not customer or number is None:
        raise ValueError("customerId and numeric value are required")
    return customer, number


def _stringify(number: float) -> str:
    if number.is_integer():
        return str(int(number))
    return repr(number)


def record_meter_event(
    gateway: StripeGateway,
    *,
    customer_id: Any,
    value: Any,
    system: Optional[str] = None,
    date: Optional[str] = None,
) -> Dict[str, Any]:
    """Post a usage value tagged with its system label.

    Stripe is not sent a timestamp and records the event at receipt time.
    ``date`` is the day the usage happened according to the caller; when it
    parses it is logged with the event and echoed back as ``usageDate``.
    """

    customer, number = _validated(customer_id, value)
    system_tag, event_name = normalize_system_label(system)

    payload: Dict[str, Any] = {
        "stripe_customer_id": customer,
        "value": _stringify(number),
        "type": system_tag or DEFAULT_TYPE,
    }
    if system_tag:
        payload["system"] = system_tag

    usage_at = parse_iso_datetime(date)
    usage_date = usage_at.date().isoformat() if usage_at else None

    response = gateway.create_meter_event(event_name, payload)
    logger.info(
        "Meter event %s recorded for %s (value=%s, usage date=%s)",
        event_name,
        customer,
        payload["value"],
        usage_date or "not given",
    )

    return {
        "message": f'Meter event has been registered under "{event_name}" for the customer "{customer}"',
        "event_name": event_name,
        "customerId": customer,
        "usageDate": usage_date,
        "stripe_response": response,
    }


def record_fixed_meter_event(
    gateway: StripeGateway,
    *,
    event_name: str,
    customer_id: Any,
    value: Any,
) -> Dict[str, Any]:
    """Post a usage value under a fixed event name without a type tag."""

    customer, number = _validated(customer_id, value)
    payload = {"stripe_customer_id": customer, "value": _stringify(number)}

    response = gateway.create_meter_event(event_name, payload)
    logger.info("Meter event %s recorded for %s (value=%s)", event_name, customer, payload["value"])

    return {
        "message": f'Meter event has been registered under "{event_name}" for the customer "{customer}"',
        "event_name": event_name,
        "customerId": customer,
        "stripe_response": response,
    }
