"""Domain models for plans, subscriptions, usage and feature gates."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, FrozenSet, Literal, Mapping, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class PlanKey(str, Enum):
    """Canonical identifiers for plan tiers."""

    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    BUSINESS = "business"


class ResourceKind(str, Enum):
    """Countable resources whose creation is limited by plan."""

    PLACES = "places"
    FEATURED_PLACES = "featured_places"
    GALLERY_IMAGES_PER_PLACE = "gallery_images_per_place"
    EVENTS_PER_MONTH = "events_per_month"
    SITE_MEMBERS = "site_members"
    DOMAIN_ALIASES = "domain_aliases"
    LANGUAGES = "languages"
    GALLERIES = "galleries"
    FLOORPLANS_PER_PLACE = "floorplans_per_place"


class CapabilityKind(str, Enum):
    """Boolean capabilities a plan either includes or not."""

    EVENTS = "events"
    PLACE_SEO = "place_seo"
    EXTRAS = "extras"
    CUSTOM_DOMAIN = "custom_domain"
    EVENT_LOG = "event_log"
    FEATURED_PLACEMENT = "featured_placement"
    FLOORPLANS = "floorplans"


class FeatureKey(str, Enum):
    """Features the UI asks a gate for."""

    ADDITIONAL_PLACE = "additional_place"
    ADDITIONAL_EVENT = "additional_event"
    FEATURED_PLACEMENT = "featured_placement"
    GALLERY_IMAGE = "gallery_image"
    SITE_MEMBER = "site_member"
    DOMAIN_ALIAS = "domain_alias"
    LANGUAGE = "language"
    GALLERY = "gallery"
    PLACE_SEO = "place_seo"
    EXTRAS = "extras"
    EVENT_LOG = "event_log"
    FLOORPLAN = "floorplan"


class AddonKey(str, Enum):
    """Independently billed add-on products."""

    FLOORPLANS = "floorplans"


class AddonPlanKey(str, Enum):
    """Quota levels sold within an add-on."""

    FP_1 = "FP_1"
    FP_5 = "FP_5"


class BillingPeriod(str, Enum):
    """Supported billing cycles."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for primary subscriptions."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class AddonStatus(str, Enum):
    """Lifecycle state for add-on subscriptions."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ExpiryProximity(str, Enum):
    """Presentation classification of an add-on's remaining period."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring-soon"
    EXPIRED = "expired"


class OwnerScope(str, Enum):
    """Shape of a subscription owner."""

    TENANT = "tenant"
    LISTING = "listing"


class ActorRole(str, Enum):
    """Privilege tiers, lowest first."""

    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class UpgradeCta(str, Enum):
    """Call to action shown next to a non-enabled gate."""

    VIEW_PLANS = "view_plans"
    CONTACT_ADMIN = "contact_admin"
    UPGRADE_PLAN = "upgrade_plan"


@dataclass(frozen=True)
class PlanLimits:
    """Numeric limits and capability flags of one plan.

    A resource limit of ``None`` means the resource is unbounded.
    """

    resource_limits: Mapping[ResourceKind, Optional[int]]
    capabilities: FrozenSet[CapabilityKind]

    def bound_for(self, resource: ResourceKind) -> Optional[int]:
        return self.resource_limits.get(resource, 0)

    def allows(self, capability: CapabilityKind) -> bool:
        return capability in self.capabilities

    def to_dict(self) -> Dict[str, object]:
        return {
            "limits": {kind.value: self.bound_for(kind) for kind in ResourceKind},
            "capabilities": sorted(capability.value for capability in self.capabilities),
        }


class Actor(BaseModel):
    """The user performing a read or mutation."""

    user_id: str
    role: ActorRole = ActorRole.VIEWER

    model_config = ConfigDict(frozen=True)


class OwnerRef(BaseModel):
    """A tenant (site) or a single listing (place) holding a subscription."""

    scope: OwnerScope
    owner_id: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def tenant(cls, owner_id: str) -> "OwnerRef":
        return cls(scope=OwnerScope.TENANT, owner_id=owner_id)

    @classmethod
    def listing(cls, owner_id: str) -> "OwnerRef":
        return cls(scope=OwnerScope.LISTING, owner_id=owner_id)

    def cache_key(self) -> str:
        return f"{self.scope.value}:{self.owner_id}"

    def tags(self) -> Set[str]:
        return {f"owner:{self.cache_key()}", f"scope:{self.scope.value}"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Subscription(BaseModel):
    """Primary subscription of a tenant or listing."""

    id: str
    owner: OwnerRef
    plan: PlanKey
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    status_changed_at: datetime = Field(default_factory=_utcnow)
    valid_until: Optional[datetime] = None
    billing_period: Optional[BillingPeriod] = None
    price_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = Field(default=1, ge=1)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class FeatureAddonSubscription(BaseModel):
    """An add-on bought for one listing, billed on its own cycle."""

    id: str
    listing_id: str
    addon_key: AddonKey
    plan_key: AddonPlanKey
    billing_period: BillingPeriod
    status: AddonStatus = AddonStatus.ACTIVE
    current_period_end: datetime
    replaced_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class UsageSnapshot(BaseModel):
    """Current resource counts of an owner at one point in time."""

    owner: OwnerRef
    counts: Dict[ResourceKind, int] = Field(default_factory=dict)
    measured_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    def count(self, resource: ResourceKind) -> int:
        return int(self.counts.get(resource, 0))


class GateEnabled(BaseModel):
    state: Literal["enabled"] = "enabled"

    model_config = ConfigDict(frozen=True)

    @property
    def is_enabled(self) -> bool:
        return True


class GateLocked(BaseModel):
    state: Literal["locked"] = "locked"
    reason: str
    upgrade_cta: UpgradeCta = UpgradeCta.VIEW_PLANS

    model_config = ConfigDict(frozen=True)

    @property
    def is_enabled(self) -> bool:
        return False


class GateLimitReached(BaseModel):
    state: Literal["limit_reached"] = "limit_reached"
    reason: str
    current_count: int = Field(ge=0)
    limit: int = Field(ge=0)
    upgrade_cta: UpgradeCta = UpgradeCta.UPGRADE_PLAN

    model_config = ConfigDict(frozen=True)

    @property
    def is_enabled(self) -> bool:
        return False


FeatureGate = Annotated[
    Union[GateEnabled, GateLocked, GateLimitReached],
    Field(discriminator="state"),
]

FEATURE_GATE_ADAPTER: TypeAdapter = TypeAdapter(FeatureGate)


class EntitlementSnapshot(BaseModel):
    """Usage-vs-limit view of one owner, as shown in admin panels."""

    owner: OwnerRef
    listing_id: Optional[str] = None
    plan: PlanKey
    status: Optional[SubscriptionStatus] = None
    valid_until: Optional[datetime] = None
    limits: Dict[ResourceKind, Optional[int]]
    capabilities: FrozenSet[CapabilityKind] = Field(default_factory=frozenset)
    usage: UsageSnapshot
    addons: Tuple[FeatureAddonSubscription, ...] = ()
    limit_extensions: Dict[ResourceKind, int] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @property
    def is_suspended(self) -> bool:
        return self.status == SubscriptionStatus.SUSPENDED

    def extension_for(self, resource: ResourceKind) -> int:
        """Extra quota granted to this listing on top of its plan limit."""

        return max(int(self.limit_extensions.get(resource, 0)), 0)

    def plan_limits(self) -> PlanLimits:
        return PlanLimits(resource_limits=dict(self.limits), capabilities=frozenset(self.capabilities))
