"""Pure gate resolution over plan limits, usage and add-on state."""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from .catalog import get_add_on_definition, get_feature_definition
from .expiry import addon_is_current, current_time, select_current_addon
from .models import (
    EntitlementSnapshot,
    FeatureAddonSubscription,
    FeatureGate,
    FeatureKey,
    GateEnabled,
    GateLimitReached,
    GateLocked,
    PlanLimits,
    UpgradeCta,
    UsageSnapshot,
)

NOT_INCLUDED_REASON = "not included in plan"
SUBSCRIPTION_INACTIVE_REASON = "subscription not active"


def _grants_feature(addon: Optional[FeatureAddonSubscription], feature: FeatureKey, now: datetime) -> bool:
    if not addon_is_current(addon, now):
        return False
    definition = get_feature_definition(feature)
    return definition.addon_key is not None and definition.addon_key == addon.addon_key


def resolve_gate(
    feature: Union[FeatureKey, str],
    limits: PlanLimits,
    usage: UsageSnapshot,
    addon: Optional[FeatureAddonSubscription] = None,
    *,
    now: Optional[datetime] = None,
    limit_extension: int = 0,
) -> FeatureGate:
    """Decide whether ``feature`` is usable.

    The capability lock is checked before the quantity limit: a feature the
    plan does not include is never reported as ``limit_reached``. An add-on
    only counts while it is current; a lapsed one is treated as absent.
    ``limit_extension`` raises a bounded limit for one listing and leaves an
    unbounded one unbounded.
    """

    moment = now or current_time()
    definition = get_feature_definition(feature)
    granted_by_addon = _grants_feature(addon, definition.key, moment)

    if definition.capability is not None and not limits.allows(definition.capability) and not granted_by_addon:
        return GateLocked(reason=NOT_INCLUDED_REASON, upgrade_cta=UpgradeCta.VIEW_PLANS)

    if definition.resource is not None:
        limit = limits.bound_for(definition.resource)
        if granted_by_addon:
            addon_definition = get_add_on_definition(addon.addon_key)
            if addon_definition.resource == definition.resource:
                limit = addon_definition.quota_for(addon.plan_key)
        if limit is not None:
            limit += max(limit_extension, 0)
        current_count = usage.count(definition.resource)
        if limit is not None and current_count >= limit:
            return GateLimitReached(
                reason=f"limit reached ({current_count}/{limit})",
                current_count=current_count,
                limit=limit,
            )

    return GateEnabled()


def suspended_gate() -> GateLocked:
    return GateLocked(reason=SUBSCRIPTION_INACTIVE_REASON, upgrade_cta=UpgradeCta.CONTACT_ADMIN)


def describe_gate(gate: FeatureGate) -> str:
    """Render a one-line summary; raises on an unknown gate variant."""

    if isinstance(gate, GateEnabled):
        return "enabled"
    if isinstance(gate, GateLocked):
        return f"locked: {gate.reason}"
    if isinstance(gate, GateLimitReached):
        return f"limit_reached: {gate.current_count}/{gate.limit}"
    raise TypeError(f"Unhandled feature gate variant: {type(gate).__name__}")


def gate_for_snapshot(
    snapshot: EntitlementSnapshot,
    feature: Union[FeatureKey, str],
    *,
    now: Optional[datetime] = None,
) -> FeatureGate:
    """Resolve ``feature`` against a snapshot; a suspended subscription locks everything."""

    definition = get_feature_definition(feature)
    if snapshot.is_suspended:
        return suspended_gate()
    moment = now or current_time()
    addon = select_current_addon(snapshot.addons, definition.addon_key, moment) if definition.addon_key else None
    extension = snapshot.extension_for(definition.resource) if definition.resource is not None else 0
    return resolve_gate(
        definition.key,
        snapshot.plan_limits(),
        snapshot.usage,
        addon,
        now=moment,
        limit_extension=extension,
    )
