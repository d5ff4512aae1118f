"""Pricing-plan version lookup for billing intents.

The preview pricing-plan resource has not settled on one field for its live
version, so the lookup walks a fixed list of candidates before falling back
to the plan id.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

__all__ = ["VERSION_FIELDS", "VERSION_OBJECT_FIELDS", "resolve_pricing_plan_version"]

VERSION_FIELDS = ("version", "current_version", "latest_version", "active_version")
VERSION_OBJECT_FIELDS = ("version", "id", "number", "name")
DEFAULT_VERSION = "1"


def _first_truthy(source: Mapping[str, Any], fields) -> Optional[Any]:
    for field in fields:
        value = source.get(field)
        if value:
            return value
    return None


def _from_versions_list(versions: Any) -> Optional[Any]:
    if not isinstance(versions, list) or not versions:
        return None

    entries = [entry for entry in versions if isinstance(entry, Mapping)]
    if not entries:
        return None

    active = next(
        (entry for entry in entries if entry.get("status") == "active" or entry.get("active") is True),
        None,
    )
    chosen = active or entries[0]
    return chosen.get("id") or chosen.get("version")


def resolve_pricing_plan_version(pricing_plan: Mapping[str, Any]) -> str:
    """Return the version identifier to subscribe to for ``pricing_plan``.

    Order of precedence:

    1. the first truthy of ``version``, ``current_version``, ``latest_version``,
       ``active_version``; a mapping is reduced to its ``version``, ``id``,
       ``number`` or ``name``;
    2. the ``versions`` list: the entry marked active (``status == "active"``
       or ``active is True``), otherwise the first entry, read as ``id`` then
       ``version``;
    3. the plan's own ``id``;
    4. ``"1"``.
    """

    version = _first_truthy(pricing_plan, VERSION_FIELDS)
    if isinstance(version, Mapping):
        version = _first_truthy(version, VERSION_OBJECT_FIELDS)

    if not version:
        version = _from_versions_list(pricing_plan.get("versions"))

    if not version:
        version = pricing_plan.get("id") or DEFAULT_VERSION

    return str(version)
