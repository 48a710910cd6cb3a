"""Service responsible for computing and caching entitlement snapshots."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Mapping, Optional, Protocol, Sequence, Set, Tuple, Union

from .cache import EntitlementCache
from .catalog import get_plan_definition
from .exceptions import DataUnavailable
from .expiry import current_time, effective_status
from .models import (
    EntitlementSnapshot,
    FeatureAddonSubscription,
    FeatureGate,
    FeatureKey,
    OwnerRef,
    OwnerScope,
    PlanKey,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
    UsageSnapshot,
)
from .resolver import gate_for_snapshot

logger = logging.getLogger(__name__)

MIN_CACHE_TTL_SECONDS = 60


class SubscriptionReader(Protocol):
    """Read access to primary subscriptions."""

    def get_for_owner(self, owner: OwnerRef) -> Optional[Subscription]:
        ...


class AddonReader(Protocol):
    """Read access to add-on subscriptions of a listing."""

    def list_for_listing(self, listing_id: str) -> Sequence[FeatureAddonSubscription]:
        ...


class UsageCounter(Protocol):
    """Measures current resource counts for an owner."""

    def usage_for(self, owner: OwnerRef, *, listing_id: Optional[str] = None) -> UsageSnapshot:
        ...


class ListingQuotaReader(Protocol):
    """Per-listing extensions added on top of plan limits."""

    def limit_extensions_for(self, listing_id: str) -> Mapping[ResourceKind, int]:
        ...


class EntitlementService:
    """Coordinates plan resolution, usage measurement, gate resolution and caching.

    Only the plan side of a snapshot is cached (subscription, add-ons and
    listing extensions). Usage is measured again on every read.
    """

    def __init__(
        self,
        subscription_reader: SubscriptionReader,
        addon_reader: AddonReader,
        usage_counter: UsageCounter,
        cache: EntitlementCache,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_seconds: int = 300,
        quota_reader: Optional[ListingQuotaReader] = None,
    ) -> None:
        self._subscription_reader = subscription_reader
        self._addon_reader = addon_reader
        self._usage_counter = usage_counter
        self._cache = cache
        self._clock = clock
        self._ttl_seconds = max(ttl_seconds, MIN_CACHE_TTL_SECONDS)
        self._quota_reader = quota_reader

    def get_entitlements(self, owner: OwnerRef, *, listing_id: Optional[str] = None) -> EntitlementSnapshot:
        """Return the usage-vs-limit snapshot for ``owner``.

        ``listing_id`` narrows the per-place resources (gallery images,
        floorplans), the add-ons and the quota extensions to one listing of a
        tenant. For listing owners it defaults to the owner itself.
        """

        listing = self._listing_for(owner, listing_id)
        now = current_time(self._clock)
        cache_key = self._cache_key(owner, listing)
        entitlements = self._cache.get(cache_key)
        if entitlements is None:
            entitlements, expires_at = self._load(owner, listing, now)
            self._cache.set(cache_key, entitlements, expires_at, self._tags(owner, listing))

        try:
            usage = self._usage_counter.usage_for(owner, listing_id=listing)
        except DataUnavailable:
            logger.warning("Usage unavailable for %s", owner.cache_key())
            raise
        return entitlements.model_copy(update={"usage": usage, "generated_at": now})

    def get_feature_gate(
        self,
        owner: OwnerRef,
        feature: Union[FeatureKey, str],
        *,
        listing_id: Optional[str] = None,
    ) -> FeatureGate:
        snapshot = self.get_entitlements(owner, listing_id=listing_id)
        return gate_for_snapshot(snapshot, feature, now=current_time(self._clock))

    def get_feature_gates(
        self,
        owner: OwnerRef,
        features: Optional[Iterable[Union[FeatureKey, str]]] = None,
        *,
        listing_id: Optional[str] = None,
    ) -> Dict[FeatureKey, FeatureGate]:
        """Resolve several gates against a single snapshot."""

        snapshot = self.get_entitlements(owner, listing_id=listing_id)
        now = current_time(self._clock)
        keys = list(FeatureKey) if features is None else [FeatureKey(feature) for feature in features]
        return {key: gate_for_snapshot(snapshot, key, now=now) for key in keys}

    def entitlements_changed(self, owner: OwnerRef) -> None:
        tags = {f"owner:{owner.cache_key()}"}
        if owner.scope == OwnerScope.LISTING:
            tags.add(f"listing:{owner.owner_id}")
        logger.debug("Invalidating entitlement cache for %s", owner.cache_key())
        self._cache.invalidate(tags)

    invalidate_owner = entitlements_changed

    def _load(self, owner: OwnerRef, listing: Optional[str], now: datetime) -> Tuple[EntitlementSnapshot, datetime]:
        subscription = self._subscription_reader.get_for_owner(owner)
        plan_key, status = self._effective_plan(subscription, now)
        definition = get_plan_definition(plan_key)

        addons: Sequence[FeatureAddonSubscription] = ()
        listing_subscription: Optional[Subscription] = None
        if listing is not None:
            addon_plan, listing_subscription = self._addon_plan(owner, listing, subscription, plan_key, now)
            supported = set(get_plan_definition(addon_plan).supports_add_ons)
            if supported:
                addons = tuple(
                    addon
                    for addon in self._addon_reader.list_for_listing(listing)
                    if addon.addon_key in supported
                )
        extensions: Dict[ResourceKind, int] = {}
        if listing is not None and self._quota_reader is not None:
            extensions = dict(self._quota_reader.limit_extensions_for(listing))

        snapshot = EntitlementSnapshot(
            owner=owner,
            listing_id=listing,
            plan=definition.key,
            status=status,
            valid_until=subscription.valid_until if subscription else None,
            limits=dict(definition.limits.resource_limits),
            capabilities=definition.limits.capabilities,
            usage=UsageSnapshot(owner=owner),
            addons=tuple(addons),
            limit_extensions=extensions,
            generated_at=now,
        )
        return snapshot, self._expires_at(now, subscription, listing_subscription)

    def _addon_plan(
        self,
        owner: OwnerRef,
        listing: str,
        subscription: Optional[Subscription],
        plan_key: PlanKey,
        now: datetime,
    ) -> Tuple[PlanKey, Optional[Subscription]]:
        """Plan deciding which add-ons of ``listing`` count: always the listing's own."""

        if owner.scope == OwnerScope.LISTING:
            return plan_key, subscription
        listing_subscription = self._subscription_reader.get_for_owner(OwnerRef.listing(listing))
        listing_plan, listing_status = self._effective_plan(listing_subscription, now)
        if listing_status == SubscriptionStatus.SUSPENDED:
            return PlanKey.FREE, listing_subscription
        return listing_plan, listing_subscription

    @staticmethod
    def _effective_plan(
        subscription: Optional[Subscription], now: datetime
    ) -> Tuple[PlanKey, Optional[SubscriptionStatus]]:
        if subscription is None:
            return PlanKey.FREE, None
        status = effective_status(subscription.status, subscription.valid_until, now)
        if status == SubscriptionStatus.EXPIRED:
            return PlanKey.FREE, status
        return subscription.plan, status

    @staticmethod
    def _listing_for(owner: OwnerRef, listing_id: Optional[str]) -> Optional[str]:
        if listing_id:
            return listing_id
        if owner.scope == OwnerScope.LISTING:
            return owner.owner_id
        return None

    @staticmethod
    def _cache_key(owner: OwnerRef, listing_id: Optional[str]) -> str:
        if listing_id and owner.scope == OwnerScope.TENANT:
            return f"{owner.cache_key()}|listing:{listing_id}"
        return owner.cache_key()

    @staticmethod
    def _tags(owner: OwnerRef, listing_id: Optional[str]) -> Set[str]:
        tags = owner.tags()
        if listing_id:
            tags.add(f"listing:{listing_id}")
        return tags

    def _expires_at(self, now: datetime, *subscriptions: Optional[Subscription]) -> datetime:
        expires_at = now + timedelta(seconds=self._ttl_seconds)
        for subscription in subscriptions:
            if subscription and subscription.valid_until and now < subscription.valid_until < expires_at:
                expires_at = subscription.valid_until
        return expires_at
