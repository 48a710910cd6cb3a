from __future__ import annotations

import pytest

from directory_backend.app.entitlements import (
    PLAN_CATALOG,
    AddonKey,
    AddonPlanKey,
    CapabilityKind,
    InvalidAddon,
    InvalidPlan,
    PlanKey,
    ResourceKind,
    addon_quota,
    get_add_on_definition,
    get_plan_definition,
    limits_for,
    parse_plan_key,
)


@pytest.mark.parametrize("raw", ["pro", "PRO", " Pro "])
def test_plan_identifiers_are_case_insensitive(raw):
    assert parse_plan_key(raw) == PlanKey.PRO


def test_unknown_plan_identifier_raises():
    with pytest.raises(InvalidPlan) as excinfo:
        get_plan_definition("platinum")

    assert excinfo.value.payload["error"] == "invalid_plan"
    assert excinfo.value.payload["plan"] == "platinum"


def test_catalog_covers_every_plan():
    assert set(PLAN_CATALOG) == set(PlanKey)


def test_basic_plan_limits():
    limits = limits_for(PlanKey.BASIC)

    assert limits.bound_for(ResourceKind.PLACES) == 30
    assert limits.bound_for(ResourceKind.EVENTS_PER_MONTH) == 30
    assert limits.bound_for(ResourceKind.FEATURED_PLACES) == 3
    assert limits.allows(CapabilityKind.FEATURED_PLACEMENT)
    assert not limits.allows(CapabilityKind.CUSTOM_DOMAIN)


def test_free_plan_excludes_paid_capabilities():
    limits = limits_for("free")

    assert limits.bound_for(ResourceKind.FEATURED_PLACES) == 0
    assert not limits.allows(CapabilityKind.FEATURED_PLACEMENT)
    assert not limits.allows(CapabilityKind.EVENTS)
    assert get_plan_definition(PlanKey.FREE).supports_add_ons == ()


def test_business_plan_is_unbounded():
    limits = limits_for(PlanKey.BUSINESS)

    for resource in ResourceKind:
        if resource == ResourceKind.FLOORPLANS_PER_PLACE:
            continue
        assert limits.bound_for(resource) is None


def test_floorplans_are_never_a_plan_capability():
    for plan in PlanKey:
        limits = limits_for(plan)
        assert not limits.allows(CapabilityKind.FLOORPLANS)
        assert limits.bound_for(ResourceKind.FLOORPLANS_PER_PLACE) == 0


def test_addon_quota_by_plan_key():
    assert addon_quota(AddonKey.FLOORPLANS, AddonPlanKey.FP_1) == 1
    assert addon_quota("floorplans", "fp_5") == 5


def test_unknown_addon_inputs_raise():
    with pytest.raises(InvalidAddon):
        get_add_on_definition("virtual_tour")
    with pytest.raises(InvalidAddon):
        addon_quota(AddonKey.FLOORPLANS, "FP_99")


def test_plan_limits_serialise_every_resource():
    payload = limits_for(PlanKey.PRO).to_dict()

    assert set(payload["limits"]) == {resource.value for resource in ResourceKind}
    assert payload["limits"]["galleries"] is None
    assert "custom_domain" in payload["capabilities"]
