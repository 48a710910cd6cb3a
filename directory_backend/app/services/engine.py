"""Application wiring for the entitlement engine."""
from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from ..addons import AddonRepository, FeatureAddonManager, PostgresAddonRepository
from ..config import EngineConfig, load_engine_config
from ..entitlements import (
    Actor,
    AddonKey,
    AddonPlanKey,
    BillingPeriod,
    EntitlementInvalidator,
    EntitlementService,
    EntitlementSnapshot,
    FeatureAddonSubscription,
    FeatureGate,
    FeatureKey,
    InMemoryEntitlementCache,
    InvalidAddon,
    ListingQuotaReader,
    OwnerRef,
    OwnerScope,
    PlanKey,
    Subscription,
    SubscriptionStatus,
    UsageCounter,
    get_add_on_definition,
    get_plan_definition,
)
from ..entitlements.permissions import require_billing_privilege
from ..feature_gates import EntitlementContext
from ..subscriptions import (
    PostgresSubscriptionHistoryRecorder,
    PostgresSubscriptionRepository,
    SubscriptionHistoryEntry,
    SubscriptionHistoryRecorder,
    SubscriptionLifecycleManager,
    SubscriptionRepository,
)
from ..usage import PostgresListingQuotaReader, PostgresUsageCounter

logger = logging.getLogger("billing")


class LoggingEntitlementInvalidator(EntitlementInvalidator):
    """Logs every ``entitlements_changed`` signal and forwards it to the registered listeners."""

    def __init__(self, *listeners: EntitlementInvalidator) -> None:
        self._listeners: List[EntitlementInvalidator] = list(listeners)

    def subscribe(self, listener: EntitlementInvalidator) -> None:
        self._listeners.append(listener)

    def entitlements_changed(self, owner: OwnerRef) -> None:
        logger.debug("Entitlements changed for %s", owner.cache_key())
        for listener in self._listeners:
            listener.entitlements_changed(owner)


class LoggingHistoryRecorder(SubscriptionHistoryRecorder):
    """History recorder that writes entries to the application logger."""

    def record(self, entry: SubscriptionHistoryEntry) -> None:
        logger.info(
            "Subscription history %s subscription=%s plan=%s->%s status=%s->%s by=%s",
            entry.change_type.value,
            entry.subscription_id,
            entry.old_plan.value if entry.old_plan else None,
            entry.new_plan.value if entry.new_plan else None,
            entry.old_status.value if entry.old_status else None,
            entry.new_status.value if entry.new_status else None,
            entry.changed_by,
        )


class EntitlementEngine:
    """Single entry point for gate reads and billing mutations."""

    def __init__(
        self,
        entitlements: EntitlementService,
        subscriptions: SubscriptionLifecycleManager,
        addons: FeatureAddonManager,
    ) -> None:
        self.entitlements = entitlements
        self.subscriptions = subscriptions
        self.addons = addons

    # Gates

    def get_entitlements(self, owner: OwnerRef, *, listing_id: Optional[str] = None) -> EntitlementSnapshot:
        return self.entitlements.get_entitlements(owner, listing_id=listing_id)

    def get_feature_gate(
        self,
        owner: OwnerRef,
        feature: Union[FeatureKey, str],
        *,
        listing_id: Optional[str] = None,
    ) -> FeatureGate:
        return self.entitlements.get_feature_gate(owner, feature, listing_id=listing_id)

    def get_feature_gates(
        self,
        owner: OwnerRef,
        features: Optional[Iterable[Union[FeatureKey, str]]] = None,
        *,
        listing_id: Optional[str] = None,
    ) -> Dict[FeatureKey, FeatureGate]:
        return self.entitlements.get_feature_gates(owner, features, listing_id=listing_id)

    def context_for(self, owner: OwnerRef, *, listing_id: Optional[str] = None) -> EntitlementContext:
        """Gate and quota helpers bound to the owner's current snapshot."""

        return EntitlementContext(self.get_entitlements(owner, listing_id=listing_id))

    # Subscriptions

    def get_subscription(self, owner: OwnerRef) -> Optional[Subscription]:
        return self.subscriptions.get_subscription(owner)

    def create_subscription(self, owner: OwnerRef, plan: Union[PlanKey, str], actor: Actor, **details) -> Subscription:
        return self.subscriptions.create_subscription(owner, plan, actor, **details)

    def change_plan(self, owner: OwnerRef, new_plan: Union[PlanKey, str], actor: Actor) -> Subscription:
        return self.subscriptions.change_plan(owner, new_plan, actor)

    def suspend(self, subscription_id: str, actor: Actor) -> Subscription:
        return self.subscriptions.suspend(subscription_id, actor)

    def activate(self, subscription_id: str, actor: Actor) -> Subscription:
        return self.subscriptions.activate(subscription_id, actor)

    def cancel(self, subscription_id: str, actor: Actor) -> Subscription:
        return self.subscriptions.cancel(subscription_id, actor)

    def resume(self, subscription_id: str, actor: Actor) -> Subscription:
        return self.subscriptions.resume(subscription_id, actor)

    def extend(self, subscription_id: str, actor: Actor) -> Subscription:
        return self.subscriptions.extend(subscription_id, actor)

    def update_billing_details(self, subscription_id: str, actor: Actor, **details) -> Subscription:
        return self.subscriptions.update_billing_details(subscription_id, actor, **details)

    def list_expiring(
        self,
        scope: Optional[OwnerScope] = None,
        within_days: Optional[int] = None,
    ) -> Sequence[Subscription]:
        return self.subscriptions.list_expiring(scope, within_days)

    # Add-ons

    def purchase_addon(
        self,
        listing_id: str,
        addon_key: Union[AddonKey, str],
        plan_key: Union[AddonPlanKey, str],
        billing_period: Union[BillingPeriod, str],
        actor: Actor,
        *,
        current_period_end: Optional[datetime] = None,
    ) -> FeatureAddonSubscription:
        """Buy an add-on for a listing whose own plan supports it.

        Reads honour add-ons under the same rule, also when a tenant reads one
        of its listings.
        """

        require_billing_privilege(actor, "purchase an add-on")
        definition = get_add_on_definition(addon_key)
        subscription = self.subscriptions.get_subscription(OwnerRef.listing(listing_id))
        plan = PlanKey.FREE
        if subscription is not None and subscription.status != SubscriptionStatus.EXPIRED:
            plan = subscription.plan
        if definition.addon_key not in get_plan_definition(plan).supports_add_ons:
            raise InvalidAddon(
                f"Add-on {definition.addon_key.value} is not available on the {plan.value} plan",
                detail={"addon_key": definition.addon_key.value, "plan": plan.value, "listing_id": listing_id},
            )
        return self.addons.purchase(
            listing_id,
            definition.addon_key,
            plan_key,
            billing_period,
            actor,
            current_period_end=current_period_end,
        )

    def cancel_addon(self, addon_subscription_id: str, actor: Actor) -> FeatureAddonSubscription:
        return self.addons.cancel(addon_subscription_id, actor)

    def resume_addon(self, addon_subscription_id: str, actor: Actor) -> FeatureAddonSubscription:
        return self.addons.resume(addon_subscription_id, actor)

    def list_addons(self, listing_id: str) -> List[FeatureAddonSubscription]:
        return self.addons.list_for_listing(listing_id)


def build_engine(
    *,
    subscription_repository: SubscriptionRepository,
    addon_repository: AddonRepository,
    usage_counter: UsageCounter,
    history: Optional[SubscriptionHistoryRecorder] = None,
    config: Optional[EngineConfig] = None,
    clock: Optional[Callable[[], datetime]] = None,
    listing_quotas: Optional[ListingQuotaReader] = None,
) -> EntitlementEngine:
    config = config or load_engine_config()
    entitlements = EntitlementService(
        subscription_reader=subscription_repository,
        addon_reader=addon_repository,
        usage_counter=usage_counter,
        cache=InMemoryEntitlementCache(clock=clock),
        clock=clock,
        ttl_seconds=config.cache_ttl_seconds,
        quota_reader=listing_quotas,
    )
    invalidator = LoggingEntitlementInvalidator(entitlements)
    subscriptions = SubscriptionLifecycleManager(
        repository=subscription_repository,
        invalidator=invalidator,
        history=history or LoggingHistoryRecorder(),
        clock=clock,
        default_currency=config.default_currency,
        expiring_within_days=config.subscription_expiring_within_days,
    )
    addons = FeatureAddonManager(
        repository=addon_repository,
        invalidator=invalidator,
        clock=clock,
        monthly_threshold_days=config.addon_monthly_expiring_days,
        yearly_threshold_days=config.addon_yearly_expiring_days,
    )
    return EntitlementEngine(entitlements, subscriptions, addons)


@lru_cache(maxsize=1)
def get_engine() -> EntitlementEngine:
    return build_engine(
        subscription_repository=PostgresSubscriptionRepository(),
        addon_repository=PostgresAddonRepository(),
        usage_counter=PostgresUsageCounter(),
        history=PostgresSubscriptionHistoryRecorder(),
        listing_quotas=PostgresListingQuotaReader(),
    )


__all__ = [
    "EntitlementEngine",
    "LoggingEntitlementInvalidator",
    "LoggingHistoryRecorder",
    "build_engine",
    "get_engine",
]
