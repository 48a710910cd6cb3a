"""Entitlements domain models and services."""

from .catalog import (
    ADD_ON_CATALOG,
    FEATURE_CATALOG,
    PLAN_CATALOG,
    addon_quota,
    get_add_on_definition,
    get_feature_definition,
    get_plan_definition,
    limits_for,
    parse_plan_key,
)
from .cache import EntitlementCache, EntitlementInvalidator, InMemoryEntitlementCache
from .exceptions import (
    ConcurrentModification,
    DataUnavailable,
    EntitlementError,
    Forbidden,
    InvalidAddon,
    InvalidPlan,
    SubscriptionNotFound,
    TransitionNotAllowed,
)
from .expiry import classify_expiry, effective_status, grants_access
from .models import (
    FEATURE_GATE_ADAPTER,
    Actor,
    ActorRole,
    AddonKey,
    AddonPlanKey,
    AddonStatus,
    BillingPeriod,
    CapabilityKind,
    EntitlementSnapshot,
    ExpiryProximity,
    FeatureAddonSubscription,
    FeatureGate,
    FeatureKey,
    GateEnabled,
    GateLimitReached,
    GateLocked,
    OwnerRef,
    OwnerScope,
    PlanKey,
    PlanLimits,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
    UpgradeCta,
    UsageSnapshot,
)
from .resolver import describe_gate, gate_for_snapshot, resolve_gate
from .service import AddonReader, EntitlementService, ListingQuotaReader, SubscriptionReader, UsageCounter

__all__ = [
    "ADD_ON_CATALOG",
    "FEATURE_CATALOG",
    "PLAN_CATALOG",
    "addon_quota",
    "get_add_on_definition",
    "get_feature_definition",
    "get_plan_definition",
    "limits_for",
    "parse_plan_key",
    "EntitlementCache",
    "EntitlementInvalidator",
    "InMemoryEntitlementCache",
    "ConcurrentModification",
    "DataUnavailable",
    "EntitlementError",
    "Forbidden",
    "InvalidAddon",
    "InvalidPlan",
    "SubscriptionNotFound",
    "TransitionNotAllowed",
    "classify_expiry",
    "effective_status",
    "grants_access",
    "FEATURE_GATE_ADAPTER",
    "Actor",
    "ActorRole",
    "AddonKey",
    "AddonPlanKey",
    "AddonStatus",
    "BillingPeriod",
    "CapabilityKind",
    "EntitlementSnapshot",
    "ExpiryProximity",
    "FeatureAddonSubscription",
    "FeatureGate",
    "FeatureKey",
    "GateEnabled",
    "GateLimitReached",
    "GateLocked",
    "OwnerRef",
    "OwnerScope",
    "PlanKey",
    "PlanLimits",
    "ResourceKind",
    "Subscription",
    "SubscriptionStatus",
    "UpgradeCta",
    "UsageSnapshot",
    "describe_gate",
    "gate_for_snapshot",
    "resolve_gate",
    "AddonReader",
    "EntitlementService",
    "ListingQuotaReader",
    "SubscriptionReader",
    "UsageCounter",
]
