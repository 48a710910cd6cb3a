"""Lifecycle of per-listing feature add-ons."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Sequence, Union
from uuid import uuid4

from ..entitlements.cache import EntitlementInvalidator
from ..entitlements.catalog import get_add_on_definition, parse_addon_plan_key
from ..entitlements.exceptions import InvalidAddon, SubscriptionNotFound, TransitionNotAllowed
from ..entitlements.expiry import (
    MONTHLY_EXPIRING_SOON_DAYS,
    YEARLY_EXPIRING_SOON_DAYS,
    classify_expiry,
    current_time,
    effective_addon_status,
    period_end,
    select_current_addon,
)
from ..entitlements.models import (
    Actor,
    AddonKey,
    AddonPlanKey,
    AddonStatus,
    BillingPeriod,
    ExpiryProximity,
    FeatureAddonSubscription,
    OwnerRef,
)
from ..entitlements.permissions import require_billing_privilege
from ..subscriptions.locks import KeyedLocks

logger = logging.getLogger(__name__)


class AddonRepository(Protocol):
    """Persistence operations required by the add-on manager."""

    def get(self, addon_subscription_id: str) -> Optional[FeatureAddonSubscription]:
        ...

    def list_for_listing(
        self,
        listing_id: str,
        addon_key: Optional[AddonKey] = None,
    ) -> Sequence[FeatureAddonSubscription]:
        ...

    def insert(self, addon: FeatureAddonSubscription) -> FeatureAddonSubscription:
        ...

    def update(self, addon: FeatureAddonSubscription) -> FeatureAddonSubscription:
        ...


_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class FeatureAddonManager:
    """Purchases, cancels and resumes add-ons; at most one is active per listing and add-on."""

    repository: AddonRepository
    invalidator: EntitlementInvalidator
    clock: Optional[Callable[[], datetime]] = None
    monthly_threshold_days: int = MONTHLY_EXPIRING_SOON_DAYS
    yearly_threshold_days: int = YEARLY_EXPIRING_SOON_DAYS
    locks: KeyedLocks = field(default_factory=KeyedLocks, repr=False)

    def _now(self) -> datetime:
        return current_time(self.clock)

    def get(self, addon_subscription_id: str) -> FeatureAddonSubscription:
        return self._normalise(self._reload(addon_subscription_id), self._now())

    def list_for_listing(self, listing_id: str) -> List[FeatureAddonSubscription]:
        now = self._now()
        return [self._normalise(addon, now) for addon in self.repository.list_for_listing(listing_id)]

    def current_for(
        self,
        listing_id: str,
        addon_key: Union[AddonKey, str],
    ) -> Optional[FeatureAddonSubscription]:
        """The add-on record granting ``addon_key`` right now, preferring an active one."""

        key = get_add_on_definition(addon_key).addon_key
        return select_current_addon(self.repository.list_for_listing(listing_id, key), key, self._now())

    def expiry_of(self, addon: FeatureAddonSubscription) -> ExpiryProximity:
        return classify_expiry(
            addon.current_period_end,
            addon.billing_period,
            self._now(),
            monthly_threshold_days=self.monthly_threshold_days,
            yearly_threshold_days=self.yearly_threshold_days,
        )

    def purchase(
        self,
        listing_id: str,
        addon_key: Union[AddonKey, str],
        plan_key: Union[AddonPlanKey, str],
        billing_period: Union[BillingPeriod, str],
        actor: Actor,
        *,
        current_period_end: Optional[datetime] = None,
    ) -> FeatureAddonSubscription:
        require_billing_privilege(actor, "purchase an add-on")
        definition = get_add_on_definition(addon_key)
        addon_plan = parse_addon_plan_key(plan_key)
        definition.quota_for(addon_plan)
        try:
            period = BillingPeriod(billing_period)
        except ValueError as exc:
            raise InvalidAddon(
                f"Unknown billing period: {billing_period!r}",
                detail={"billing_period": str(billing_period)},
            ) from exc
        if period not in definition.billing_periods:
            raise InvalidAddon(
                f"Add-on {definition.addon_key.value} is not sold {period.value}",
                detail={"addon_key": definition.addon_key.value, "billing_period": period.value},
            )

        now = self._now()
        if current_period_end is not None and current_period_end <= now:
            raise ValueError("current_period_end must be in the future")
        end = current_period_end or period_end(now, period)
        new_id = f"fas_{uuid4().hex}"

        with self.locks.hold((listing_id, definition.addon_key)):
            for existing in self.repository.list_for_listing(listing_id, definition.addon_key):
                if effective_addon_status(existing, now) != AddonStatus.ACTIVE:
                    continue
                self.repository.update(
                    existing.model_copy(
                        update={
                            "status": AddonStatus.CANCELLED,
                            "replaced_by": new_id,
                            "current_period_end": min(existing.current_period_end, now),
                            "updated_at": now,
                        }
                    )
                )
                logger.info("Add-on %s superseded by %s", existing.id, new_id)

            stored = self.repository.insert(
                FeatureAddonSubscription(
                    id=new_id,
                    listing_id=listing_id,
                    addon_key=definition.addon_key,
                    plan_key=addon_plan,
                    billing_period=period,
                    status=AddonStatus.ACTIVE,
                    current_period_end=end,
                    created_at=now,
                    updated_at=now,
                )
            )

        logger.info(
            "Purchased %s/%s for listing %s until %s",
            definition.addon_key.value,
            addon_plan.value,
            listing_id,
            end.isoformat(),
        )
        self._announce(listing_id)
        return stored

    def cancel(self, addon_subscription_id: str, actor: Actor) -> FeatureAddonSubscription:
        """Stop renewal; the add-on keeps granting its feature until the period end."""

        require_billing_privilege(actor, "cancel an add-on")
        located = self._reload(addon_subscription_id)
        with self.locks.hold((located.listing_id, located.addon_key)):
            existing = self._reload(addon_subscription_id)
            now = self._now()
            status = effective_addon_status(existing, now)
            if status == AddonStatus.CANCELLED:
                return self._normalise(existing, now)
            if status == AddonStatus.EXPIRED:
                raise TransitionNotAllowed(
                    f"Add-on {existing.id} has already expired",
                    detail={"addon_subscription_id": existing.id, "status": status.value},
                )
            stored = self.repository.update(
                existing.model_copy(update={"status": AddonStatus.CANCELLED, "updated_at": now})
            )

        logger.info("Cancelled add-on %s for listing %s", stored.id, stored.listing_id)
        self._announce(stored.listing_id)
        return stored

    def resume(self, addon_subscription_id: str, actor: Actor) -> FeatureAddonSubscription:
        require_billing_privilege(actor, "resume an add-on")
        located = self._reload(addon_subscription_id)
        with self.locks.hold((located.listing_id, located.addon_key)):
            existing = self._reload(addon_subscription_id)
            now = self._now()
            status = effective_addon_status(existing, now)
            if status == AddonStatus.ACTIVE:
                return existing
            if status == AddonStatus.EXPIRED or existing.replaced_by:
                raise TransitionNotAllowed(
                    f"Add-on {existing.id} can no longer be resumed",
                    detail={"addon_subscription_id": existing.id, "status": status.value},
                )
            for other in self.repository.list_for_listing(existing.listing_id, existing.addon_key):
                if other.id != existing.id and effective_addon_status(other, now) == AddonStatus.ACTIVE:
                    raise TransitionNotAllowed(
                        f"Listing {existing.listing_id} already has an active {existing.addon_key.value} add-on",
                        detail={"addon_subscription_id": existing.id, "active_id": other.id},
                    )
            stored = self.repository.update(
                existing.model_copy(update={"status": AddonStatus.ACTIVE, "updated_at": now})
            )

        logger.info("Resumed add-on %s for listing %s", stored.id, stored.listing_id)
        self._announce(stored.listing_id)
        return stored

    def _reload(self, addon_subscription_id: str) -> FeatureAddonSubscription:
        addon = self.repository.get(addon_subscription_id)
        if addon is None:
            raise SubscriptionNotFound(
                f"Add-on subscription {addon_subscription_id} not found",
                detail={"addon_subscription_id": addon_subscription_id},
            )
        return addon

    @staticmethod
    def _normalise(addon: FeatureAddonSubscription, now: datetime) -> FeatureAddonSubscription:
        status = effective_addon_status(addon, now)
        if status == addon.status:
            return addon
        return addon.model_copy(update={"status": status})

    def _announce(self, listing_id: str) -> None:
        self.invalidator.entitlements_changed(OwnerRef.listing(listing_id))
