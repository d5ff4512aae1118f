from __future__ import annotations

import pytest

from billing.pricing import resolve_pricing_plan_version


@pytest.mark.parametrize(
    "plan, expected",
    [
        ({"id": "bpp_1", "version": "v7", "current_version": "v8"}, "v7"),
        ({"id": "bpp_1", "version": "", "current_version": "v8"}, "v8"),
        ({"id": "bpp_1", "latest_version": "v9", "active_version": "v10"}, "v9"),
        ({"id": "bpp_1", "active_version": "v10"}, "v10"),
        ({"id": "bpp_1", "version": 3}, "3"),
    ],
)
def test_scalar_version_fields_in_precedence_order(plan, expected):
    assert resolve_pricing_plan_version(plan) == expected


@pytest.mark.parametrize(
    "version_object, expected",
    [
        ({"version": "v2", "id": "bppv_2", "number": 2, "name": "two"}, "v2"),
        ({"id": "bppv_2", "number": 2, "name": "two"}, "bppv_2"),
        ({"number": 2, "name": "two"}, "2"),
        ({"name": "two"}, "two"),
    ],
)
def test_version_object_is_reduced(version_object, expected):
    assert resolve_pricing_plan_version({"id": "bpp_1", "current_version": version_object}) == expected


def test_active_entry_of_versions_list_wins():
    plan = {
        "id": "bpp_1",
        "versions": [
            {"id": "bppv_old", "status": "inactive"},
            {"id": "bppv_live", "status": "active"},
        ],
    }
    assert resolve_pricing_plan_version(plan) == "bppv_live"


def test_active_flag_is_honoured():
    plan = {"id": "bpp_1", "versions": [{"id": "a"}, {"version": "b", "active": True}]}
    assert resolve_pricing_plan_version(plan) == "b"


def test_first_versions_entry_when_none_active():
    plan = {"id": "bpp_1", "versions": [{"id": "first"}, {"id": "second"}]}
    assert resolve_pricing_plan_version(plan) == "first"


def test_versions_entry_without_identifier_falls_back_to_plan_id():
    plan = {"id": "bpp_1", "versions": [{"status": "active"}]}
    assert resolve_pricing_plan_version(plan) == "bpp_1"


def test_empty_versions_list_falls_back_to_plan_id():
    assert resolve_pricing_plan_version({"id": "bpp_1", "versions": []}) == "bpp_1"


def test_default_when_nothing_identifies_the_plan():
    assert resolve_pricing_plan_version({}) == "1"


def test_scalar_field_beats_versions_list():
    plan = {"id": "bpp_1", "latest_version": "v3", "versions": [{"id": "bppv_live", "status": "active"}]}
    assert resolve_pricing_plan_version(plan) == "v3"
