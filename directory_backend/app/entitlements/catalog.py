"""Static catalog of plans, features and add-ons.

This is the only place plan limits are defined; pricing displays and
enforcement both read from here.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple, Union

from .exceptions import InvalidAddon, InvalidPlan
from .models import (
    AddonKey,
    AddonPlanKey,
    BillingPeriod,
    CapabilityKind,
    FeatureKey,
    PlanKey,
    PlanLimits,
    ResourceKind,
)

UNBOUNDED: Optional[int] = None

CATALOG_VERSION = "2026-01"


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a plan tier and its entitlement mapping."""

    key: PlanKey
    display_name: str
    limits: PlanLimits
    billing_periods: Tuple[BillingPeriod, ...] = (BillingPeriod.MONTHLY, BillingPeriod.YEARLY)
    supports_add_ons: Tuple[AddonKey, ...] = ()


@dataclass(frozen=True)
class FeatureDefinition:
    """Binds a gate-able feature to a capability flag and/or a quota."""

    key: FeatureKey
    capability: Optional[CapabilityKind] = None
    resource: Optional[ResourceKind] = None
    addon_key: Optional[AddonKey] = None


@dataclass(frozen=True)
class AddOnDefinition:
    """Describes an add-on and which capability and quota it grants."""

    addon_key: AddonKey
    display_name: str
    capability: CapabilityKind
    resource: Optional[ResourceKind] = None
    plan_quotas: Mapping[AddonPlanKey, int] = field(default_factory=dict)
    billing_periods: Tuple[BillingPeriod, ...] = (BillingPeriod.MONTHLY, BillingPeriod.YEARLY)

    def quota_for(self, plan_key: AddonPlanKey) -> int:
        try:
            return self.plan_quotas[plan_key]
        except KeyError as exc:
            raise InvalidAddon(
                f"Unknown plan key {plan_key} for add-on {self.addon_key.value}",
                detail={"addon_key": self.addon_key.value, "plan_key": str(plan_key)},
            ) from exc


def _limits(
    *,
    places: Optional[int],
    featured_places: Optional[int],
    gallery_images_per_place: Optional[int],
    events_per_month: Optional[int],
    site_members: Optional[int],
    domain_aliases: Optional[int],
    languages: Optional[int],
    galleries: Optional[int],
    capabilities: Tuple[CapabilityKind, ...],
) -> PlanLimits:
    return PlanLimits(
        resource_limits={
            ResourceKind.PLACES: places,
            ResourceKind.FEATURED_PLACES: featured_places,
            ResourceKind.GALLERY_IMAGES_PER_PLACE: gallery_images_per_place,
            ResourceKind.EVENTS_PER_MONTH: events_per_month,
            ResourceKind.SITE_MEMBERS: site_members,
            ResourceKind.DOMAIN_ALIASES: domain_aliases,
            ResourceKind.LANGUAGES: languages,
            ResourceKind.GALLERIES: galleries,
            # Floorplans are only ever sold through the add-on.
            ResourceKind.FLOORPLANS_PER_PLACE: 0,
        },
        capabilities=frozenset(capabilities),
    )


_PAID_CAPABILITIES = (
    CapabilityKind.EVENTS,
    CapabilityKind.PLACE_SEO,
    CapabilityKind.EXTRAS,
    CapabilityKind.EVENT_LOG,
    CapabilityKind.FEATURED_PLACEMENT,
)

PLAN_CATALOG: Dict[PlanKey, PlanDefinition] = {
    PlanKey.FREE: PlanDefinition(
        key=PlanKey.FREE,
        display_name="Free",
        billing_periods=(BillingPeriod.MONTHLY,),
        limits=_limits(
            places=3,
            featured_places=0,
            gallery_images_per_place=3,
            events_per_month=0,
            site_members=2,
            domain_aliases=0,
            languages=1,
            galleries=5,
            capabilities=(),
        ),
    ),
    PlanKey.BASIC: PlanDefinition(
        key=PlanKey.BASIC,
        display_name="Basic",
        limits=_limits(
            places=30,
            featured_places=3,
            gallery_images_per_place=10,
            events_per_month=30,
            site_members=5,
            domain_aliases=0,
            languages=2,
            galleries=20,
            capabilities=_PAID_CAPABILITIES,
        ),
        supports_add_ons=(AddonKey.FLOORPLANS,),
    ),
    PlanKey.PRO: PlanDefinition(
        key=PlanKey.PRO,
        display_name="Pro",
        limits=_limits(
            places=150,
            featured_places=15,
            gallery_images_per_place=30,
            events_per_month=200,
            site_members=20,
            domain_aliases=5,
            languages=3,
            galleries=UNBOUNDED,
            capabilities=_PAID_CAPABILITIES + (CapabilityKind.CUSTOM_DOMAIN,),
        ),
        supports_add_ons=(AddonKey.FLOORPLANS,),
    ),
    PlanKey.BUSINESS: PlanDefinition(
        key=PlanKey.BUSINESS,
        display_name="Business",
        limits=_limits(
            places=UNBOUNDED,
            featured_places=UNBOUNDED,
            gallery_images_per_place=UNBOUNDED,
            events_per_month=UNBOUNDED,
            site_members=UNBOUNDED,
            domain_aliases=UNBOUNDED,
            languages=UNBOUNDED,
            galleries=UNBOUNDED,
            capabilities=_PAID_CAPABILITIES + (CapabilityKind.CUSTOM_DOMAIN,),
        ),
        supports_add_ons=(AddonKey.FLOORPLANS,),
    ),
}

FEATURE_CATALOG: Dict[FeatureKey, FeatureDefinition] = {
    FeatureKey.ADDITIONAL_PLACE: FeatureDefinition(
        key=FeatureKey.ADDITIONAL_PLACE,
        resource=ResourceKind.PLACES,
    ),
    FeatureKey.ADDITIONAL_EVENT: FeatureDefinition(
        key=FeatureKey.ADDITIONAL_EVENT,
        capability=CapabilityKind.EVENTS,
        resource=ResourceKind.EVENTS_PER_MONTH,
    ),
    FeatureKey.FEATURED_PLACEMENT: FeatureDefinition(
        key=FeatureKey.FEATURED_PLACEMENT,
        capability=CapabilityKind.FEATURED_PLACEMENT,
        resource=ResourceKind.FEATURED_PLACES,
    ),
    FeatureKey.GALLERY_IMAGE: FeatureDefinition(
        key=FeatureKey.GALLERY_IMAGE,
        resource=ResourceKind.GALLERY_IMAGES_PER_PLACE,
    ),
    FeatureKey.SITE_MEMBER: FeatureDefinition(
        key=FeatureKey.SITE_MEMBER,
        resource=ResourceKind.SITE_MEMBERS,
    ),
    FeatureKey.DOMAIN_ALIAS: FeatureDefinition(
        key=FeatureKey.DOMAIN_ALIAS,
        capability=CapabilityKind.CUSTOM_DOMAIN,
        resource=ResourceKind.DOMAIN_ALIASES,
    ),
    FeatureKey.LANGUAGE: FeatureDefinition(
        key=FeatureKey.LANGUAGE,
        resource=ResourceKind.LANGUAGES,
    ),
    FeatureKey.GALLERY: FeatureDefinition(
        key=FeatureKey.GALLERY,
        resource=ResourceKind.GALLERIES,
    ),
    FeatureKey.PLACE_SEO: FeatureDefinition(
        key=FeatureKey.PLACE_SEO,
        capability=CapabilityKind.PLACE_SEO,
    ),
    FeatureKey.EXTRAS: FeatureDefinition(
        key=FeatureKey.EXTRAS,
        capability=CapabilityKind.EXTRAS,
    ),
    FeatureKey.EVENT_LOG: FeatureDefinition(
        key=FeatureKey.EVENT_LOG,
        capability=CapabilityKind.EVENT_LOG,
    ),
    FeatureKey.FLOORPLAN: FeatureDefinition(
        key=FeatureKey.FLOORPLAN,
        capability=CapabilityKind.FLOORPLANS,
        resource=ResourceKind.FLOORPLANS_PER_PLACE,
        addon_key=AddonKey.FLOORPLANS,
    ),
}

ADD_ON_CATALOG: Dict[AddonKey, AddOnDefinition] = {
    AddonKey.FLOORPLANS: AddOnDefinition(
        addon_key=AddonKey.FLOORPLANS,
        display_name="Floorplans",
        capability=CapabilityKind.FLOORPLANS,
        resource=ResourceKind.FLOORPLANS_PER_PLACE,
        plan_quotas={AddonPlanKey.FP_1: 1, AddonPlanKey.FP_5: 5},
    ),
}


def parse_plan_key(value: Union[PlanKey, str]) -> PlanKey:
    """Return the plan for an identifier, accepting either letter case."""

    if isinstance(value, PlanKey):
        return value
    try:
        return PlanKey(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidPlan(f"Unknown plan identifier: {value!r}", detail={"plan": str(value)}) from exc


def parse_addon_key(value: Union[AddonKey, str]) -> AddonKey:
    if isinstance(value, AddonKey):
        return value
    try:
        return AddonKey(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidAddon(f"Unknown add-on identifier: {value!r}", detail={"addon_key": str(value)}) from exc


def parse_addon_plan_key(value: Union[AddonPlanKey, str]) -> AddonPlanKey:
    if isinstance(value, AddonPlanKey):
        return value
    try:
        return AddonPlanKey(str(value).strip().upper())
    except ValueError as exc:
        raise InvalidAddon(f"Unknown add-on plan key: {value!r}", detail={"plan_key": str(value)}) from exc


def get_plan_definition(plan_key: Union[PlanKey, str]) -> PlanDefinition:
    """Return a plan definition, raising :class:`InvalidPlan` if unsupported."""

    key = parse_plan_key(plan_key)
    try:
        return PLAN_CATALOG[key]
    except KeyError as exc:  # pragma: no cover - guarded by static catalog
        raise InvalidPlan(f"Plan {key.value} is missing from the catalog") from exc


def limits_for(plan_key: Union[PlanKey, str]) -> PlanLimits:
    return get_plan_definition(plan_key).limits


def get_feature_definition(feature: Union[FeatureKey, str]) -> FeatureDefinition:
    try:
        return FEATURE_CATALOG[FeatureKey(feature)]
    except (KeyError, ValueError) as exc:
        raise KeyError(f"Unknown feature key: {feature}") from exc


def get_add_on_definition(addon_key: Union[AddonKey, str]) -> AddOnDefinition:
    """Return an add-on definition, raising :class:`InvalidAddon` if unsupported."""

    key = parse_addon_key(addon_key)
    try:
        return ADD_ON_CATALOG[key]
    except KeyError as exc:  # pragma: no cover - guarded by static catalog
        raise InvalidAddon(f"Add-on {key.value} is missing from the catalog") from exc


def addon_quota(addon_key: Union[AddonKey, str], plan_key: Union[AddonPlanKey, str]) -> int:
    return get_add_on_definition(addon_key).quota_for(parse_addon_plan_key(plan_key))
