"""Lifecycle management for tenant and listing subscriptions."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol, Sequence, Union
from uuid import uuid4

from ..entitlements.cache import EntitlementInvalidator
from ..entitlements.catalog import parse_plan_key
from ..entitlements.exceptions import ConcurrentModification, SubscriptionNotFound, TransitionNotAllowed
from ..entitlements.expiry import add_months, current_time, effective_status, first_day_of_next_month, period_end
from ..entitlements.models import (
    Actor,
    BillingPeriod,
    OwnerRef,
    OwnerScope,
    PlanKey,
    Subscription,
    SubscriptionStatus,
)
from ..entitlements.permissions import require_billing_privilege
from .lifecycle import Transition, ensure_extension_allowed, ensure_plan_change_allowed, plan_transition
from .locks import KeyedLocks
from .models import ChangeType, SubscriptionHistoryEntry

logger = logging.getLogger(__name__)


class SubscriptionRepository(Protocol):
    """Persistence operations required by the lifecycle manager."""

    def get(self, subscription_id: str) -> Optional[Subscription]:
        ...

    def get_for_owner(self, owner: OwnerRef) -> Optional[Subscription]:
        ...

    def insert(self, subscription: Subscription) -> Subscription:
        ...

    def compare_and_set(self, subscription: Subscription, *, expected_version: int) -> Subscription:
        """Persist ``subscription`` only if the stored version still equals ``expected_version``."""

    def list_expiring(
        self,
        *,
        scope: Optional[OwnerScope],
        now: datetime,
        until: datetime,
    ) -> Sequence[Subscription]:
        ...


class SubscriptionHistoryRecorder(Protocol):
    """Appends committed changes to the subscription audit trail."""

    def record(self, entry: SubscriptionHistoryEntry) -> None:
        ...


_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class SubscriptionLifecycleManager:
    """Validates and applies transitions, then announces entitlement changes."""

    repository: SubscriptionRepository
    invalidator: EntitlementInvalidator
    history: SubscriptionHistoryRecorder
    clock: Optional[Callable[[], datetime]] = None
    default_currency: str = "HUF"
    expiring_within_days: int = 7
    locks: KeyedLocks = field(default_factory=KeyedLocks, repr=False)

    def _now(self) -> datetime:
        return current_time(self.clock)

    # Reads -----------------------------------------------------------------

    def get(self, subscription_id: str) -> Subscription:
        subscription = self.repository.get(subscription_id)
        if subscription is None:
            raise SubscriptionNotFound(
                f"Subscription {subscription_id} not found",
                detail={"subscription_id": subscription_id},
            )
        return self._normalise(subscription, self._now())

    def get_subscription(self, owner: OwnerRef) -> Optional[Subscription]:
        subscription = self.repository.get_for_owner(owner)
        if subscription is None:
            return None
        return self._normalise(subscription, self._now())

    def list_expiring(
        self,
        scope: Optional[OwnerScope] = None,
        within_days: Optional[int] = None,
    ) -> Sequence[Subscription]:
        """Subscriptions still granting access whose ``valid_until`` falls inside the window."""

        days = self.expiring_within_days if within_days is None else within_days
        if days < 0:
            raise ValueError("within_days must be >= 0")
        now = self._now()
        candidates = self.repository.list_expiring(scope=scope, now=now, until=now + timedelta(days=days))
        normalised = [self._normalise(candidate, now) for candidate in candidates]
        return [
            subscription
            for subscription in normalised
            if subscription.status in {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}
        ]

    # Mutations -------------------------------------------------------------

    def create_subscription(
        self,
        owner: OwnerRef,
        plan: Union[PlanKey, str],
        actor: Actor,
        *,
        valid_until: Optional[datetime] = None,
        billing_period: Optional[BillingPeriod] = None,
        price_cents: Optional[int] = None,
        currency: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Subscription:
        require_billing_privilege(actor, "create a subscription")
        plan_key = parse_plan_key(plan)
        now = self._now()
        if price_cents is not None and price_cents < 0:
            raise ValueError("price_cents must be >= 0")
        if valid_until is None and billing_period is not None:
            valid_until = period_end(now, billing_period)
        if valid_until is not None and valid_until <= now:
            raise ValueError("valid_until must be in the future")
        if price_cents is not None and not currency:
            currency = self.default_currency
        if currency:
            currency = currency.upper()

        with self.locks.hold(("owner", owner.cache_key())):
            existing = self.repository.get_for_owner(owner)
            fields = {
                "plan": plan_key,
                "status": SubscriptionStatus.ACTIVE,
                "status_changed_at": now,
                "valid_until": valid_until,
                "billing_period": billing_period,
                "price_cents": price_cents,
                "currency": currency,
                "note": note,
                "updated_at": now,
            }
            if existing is None:
                stored = self.repository.insert(
                    Subscription(id=f"sub_{uuid4().hex}", owner=owner, created_at=now, **fields)
                )
                old_plan = old_status = old_valid_until = None
            else:
                current = effective_status(existing.status, existing.valid_until, now)
                if current != SubscriptionStatus.EXPIRED:
                    raise TransitionNotAllowed(
                        f"{owner.cache_key()} already has a {current.value} subscription",
                        detail={"subscription_id": existing.id, "status": current.value},
                    )
                stored = self._write(existing, existing.model_copy(update=fields))
                old_plan, old_status, old_valid_until = existing.plan, current, existing.valid_until

        logger.info("Created %s subscription %s for %s", plan_key.value, stored.id, owner.cache_key())
        self._record(
            SubscriptionHistoryEntry(
                subscription_id=stored.id,
                scope=owner.scope,
                change_type=ChangeType.CREATED,
                old_plan=old_plan,
                new_plan=stored.plan,
                old_status=old_status,
                new_status=stored.status,
                old_valid_until=old_valid_until,
                new_valid_until=stored.valid_until,
                amount_cents=stored.price_cents,
                currency=stored.currency,
                note=note,
                changed_by=actor.user_id,
                occurred_at=now,
            )
        )
        self._announce(stored.owner)
        return stored

    def suspend(self, subscription_id: str, actor: Actor) -> Subscription:
        return self._transition(subscription_id, actor, Transition.SUSPEND)

    def activate(self, subscription_id: str, actor: Actor) -> Subscription:
        return self._transition(subscription_id, actor, Transition.ACTIVATE)

    def cancel(self, subscription_id: str, actor: Actor) -> Subscription:
        """Stop renewal; access continues until ``valid_until``."""

        return self._transition(subscription_id, actor, Transition.CANCEL)

    def resume(self, subscription_id: str, actor: Actor) -> Subscription:
        return self._transition(subscription_id, actor, Transition.RESUME)

    def change_plan(self, owner: OwnerRef, new_plan: Union[PlanKey, str], actor: Actor) -> Subscription:
        require_billing_privilege(actor, "change the plan")
        plan_key = parse_plan_key(new_plan)
        located = self.repository.get_for_owner(owner)
        if located is None:
            raise SubscriptionNotFound(
                f"No subscription for {owner.cache_key()}",
                detail={"owner": owner.cache_key()},
            )

        with self.locks.hold(located.id):
            existing = self._reload(located.id)
            now = self._now()
            current = effective_status(existing.status, existing.valid_until, now)
            ensure_plan_change_allowed(current)
            if existing.plan == plan_key:
                return self._normalise(existing, now)
            stored = self._write(existing, existing.model_copy(update={"plan": plan_key, "updated_at": now}))

        logger.info(
            "Changed plan of subscription %s from %s to %s",
            stored.id,
            existing.plan.value,
            plan_key.value,
        )
        self._record(
            SubscriptionHistoryEntry(
                subscription_id=stored.id,
                scope=stored.owner.scope,
                change_type=ChangeType.PLAN_CHANGE,
                old_plan=existing.plan,
                new_plan=stored.plan,
                old_status=current,
                new_status=stored.status,
                changed_by=actor.user_id,
                occurred_at=now,
            )
        )
        self._announce(stored.owner)
        return stored

    def extend(self, subscription_id: str, actor: Actor) -> Subscription:
        """Move ``valid_until`` one calendar month forward."""

        require_billing_privilege(actor, "extend a subscription")
        with self.locks.hold(subscription_id):
            existing = self._reload(subscription_id)
            now = self._now()
            current = effective_status(existing.status, existing.valid_until, now)
            ensure_extension_allowed(current)
            if existing.valid_until is None:
                new_valid_until = first_day_of_next_month(now)
            else:
                new_valid_until = add_months(existing.valid_until, 1)
            stored = self._write(
                existing,
                existing.model_copy(update={"valid_until": new_valid_until, "updated_at": now}),
            )

        logger.info("Extended subscription %s until %s", stored.id, new_valid_until.isoformat())
        self._record(
            SubscriptionHistoryEntry(
                subscription_id=stored.id,
                scope=stored.owner.scope,
                change_type=ChangeType.EXTENSION,
                old_plan=existing.plan,
                new_plan=stored.plan,
                old_valid_until=existing.valid_until,
                new_valid_until=stored.valid_until,
                changed_by=actor.user_id,
                occurred_at=now,
            )
        )
        self._announce(stored.owner)
        return stored

    def update_billing_details(
        self,
        subscription_id: str,
        actor: Actor,
        *,
        price_cents: Optional[int] = None,
        currency: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Subscription:
        """Update the administrative price fields."""

        require_billing_privilege(actor, "update billing details")
        if price_cents is not None and price_cents < 0:
            raise ValueError("price_cents must be >= 0")

        with self.locks.hold(subscription_id):
            existing = self._reload(subscription_id)
            now = self._now()
            update: Dict[str, object] = {}
            if price_cents is not None:
                update["price_cents"] = price_cents
                if not (currency or existing.currency):
                    update["currency"] = self.default_currency
            if currency is not None:
                update["currency"] = currency.upper()
            if note is not None:
                update["note"] = note
            if not update:
                return self._normalise(existing, now)
            update["updated_at"] = now
            stored = self._write(existing, existing.model_copy(update=update))

        self._record(
            SubscriptionHistoryEntry(
                subscription_id=stored.id,
                scope=stored.owner.scope,
                change_type=ChangeType.UPDATE,
                amount_cents=stored.price_cents,
                currency=stored.currency,
                note=stored.note,
                changed_by=actor.user_id,
                occurred_at=now,
            )
        )
        self._announce(stored.owner)
        return self._normalise(stored, now)

    # Internals -------------------------------------------------------------

    def _transition(self, subscription_id: str, actor: Actor, transition: Transition) -> Subscription:
        require_billing_privilege(actor, f"{transition.value} a subscription")
        with self.locks.hold(subscription_id):
            existing = self._reload(subscription_id)
            now = self._now()
            current = effective_status(existing.status, existing.valid_until, now)
            target = plan_transition(current, transition)
            if target is None:
                return self._normalise(existing, now)
            stored = self._write(
                existing,
                existing.model_copy(
                    update={"status": target, "status_changed_at": now, "updated_at": now}
                ),
            )

        logger.info(
            "Subscription %s: %s -> %s by %s",
            stored.id,
            current.value,
            target.value,
            actor.user_id,
        )
        self._record(
            SubscriptionHistoryEntry(
                subscription_id=stored.id,
                scope=stored.owner.scope,
                change_type=ChangeType.STATUS_CHANGE,
                old_status=current,
                new_status=target,
                changed_by=actor.user_id,
                occurred_at=now,
            )
        )
        self._announce(stored.owner)
        return stored

    def _reload(self, subscription_id: str) -> Subscription:
        subscription = self.repository.get(subscription_id)
        if subscription is None:
            raise SubscriptionNotFound(
                f"Subscription {subscription_id} not found",
                detail={"subscription_id": subscription_id},
            )
        return subscription

    def _write(self, existing: Subscription, updated: Subscription) -> Subscription:
        candidate = updated.model_copy(update={"version": existing.version + 1})
        try:
            return self.repository.compare_and_set(candidate, expected_version=existing.version)
        except ConcurrentModification:
            logger.warning(
                "Lost compare-and-set on subscription %s at version %s",
                existing.id,
                existing.version,
            )
            raise

    @staticmethod
    def _normalise(subscription: Subscription, now: datetime) -> Subscription:
        status = effective_status(subscription.status, subscription.valid_until, now)
        if status == subscription.status:
            return subscription
        return subscription.model_copy(update={"status": status})

    def _record(self, entry: SubscriptionHistoryEntry) -> None:
        try:
            self.history.record(entry)
        except Exception:
            logger.exception("Failed to record history for subscription %s", entry.subscription_id)

    def _announce(self, owner: OwnerRef) -> None:
        self.invalidator.entitlements_changed(owner)
