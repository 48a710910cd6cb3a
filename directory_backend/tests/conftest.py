from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from directory_backend.app.config import load_engine_config
from directory_backend.app.entitlements import (
    Actor,
    ActorRole,
    AddonKey,
    ConcurrentModification,
    FeatureAddonSubscription,
    OwnerRef,
    OwnerScope,
    Subscription,
    SubscriptionStatus,
)
from directory_backend.app.services.engine import build_engine
from directory_backend.app.subscriptions import SubscriptionHistoryEntry
from directory_backend.app.usage import StaticListingQuotaReader, StaticUsageCounter

FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemorySubscriptionRepository:
    def __init__(self) -> None:
        self.records: Dict[str, Subscription] = {}
        self.writes = 0
        self.before_write: Optional[Callable[[], None]] = None

    def add(self, subscription: Subscription) -> Subscription:
        self.records[subscription.id] = subscription
        return subscription

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self.records.get(subscription_id)

    def get_for_owner(self, owner: OwnerRef) -> Optional[Subscription]:
        for record in self.records.values():
            if record.owner == owner:
                return record
        return None

    def insert(self, subscription: Subscription) -> Subscription:
        self.records[subscription.id] = subscription
        self.writes += 1
        return subscription

    def compare_and_set(self, subscription: Subscription, *, expected_version: int) -> Subscription:
        if self.before_write is not None:
            hook, self.before_write = self.before_write, None
            hook()
        stored = self.records.get(subscription.id)
        if stored is None or stored.version != expected_version:
            raise ConcurrentModification(
                f"Subscription {subscription.id} changed",
                detail={"subscription_id": subscription.id},
            )
        self.records[subscription.id] = subscription
        self.writes += 1
        return subscription

    def list_expiring(self, *, scope: Optional[OwnerScope], now: datetime, until: datetime) -> List[Subscription]:
        return sorted(
            (
                record
                for record in self.records.values()
                if record.status in {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}
                and record.valid_until is not None
                and now < record.valid_until <= until
                and (scope is None or record.owner.scope == scope)
            ),
            key=lambda record: record.valid_until,
        )


class InMemoryAddonRepository:
    def __init__(self) -> None:
        self.records: Dict[str, FeatureAddonSubscription] = {}

    def add(self, addon: FeatureAddonSubscription) -> FeatureAddonSubscription:
        self.records[addon.id] = addon
        return addon

    def get(self, addon_subscription_id: str) -> Optional[FeatureAddonSubscription]:
        return self.records.get(addon_subscription_id)

    def list_for_listing(
        self,
        listing_id: str,
        addon_key: Optional[AddonKey] = None,
    ) -> List[FeatureAddonSubscription]:
        matches = [
            record
            for record in self.records.values()
            if record.listing_id == listing_id and (addon_key is None or record.addon_key == addon_key)
        ]
        return sorted(matches, key=lambda record: record.created_at, reverse=True)

    def insert(self, addon: FeatureAddonSubscription) -> FeatureAddonSubscription:
        self.records[addon.id] = addon
        return addon

    def update(self, addon: FeatureAddonSubscription) -> FeatureAddonSubscription:
        if addon.id not in self.records:
            raise LookupError(addon.id)
        self.records[addon.id] = addon
        return addon

    def active(self, listing_id: str) -> List[FeatureAddonSubscription]:
        return [record for record in self.list_for_listing(listing_id) if record.status.value == "active"]


class RecordingInvalidator:
    def __init__(self) -> None:
        self.owners: List[OwnerRef] = []

    def entitlements_changed(self, owner: OwnerRef) -> None:
        self.owners.append(owner)


class RecordingHistory:
    def __init__(self, *, fail: bool = False) -> None:
        self.entries: List[SubscriptionHistoryEntry] = []
        self.fail = fail

    def record(self, entry: SubscriptionHistoryEntry) -> None:
        if self.fail:
            raise RuntimeError("history store offline")
        self.entries.append(entry)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def subscription_repo() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


@pytest.fixture
def addon_repo() -> InMemoryAddonRepository:
    return InMemoryAddonRepository()


@pytest.fixture
def usage() -> StaticUsageCounter:
    return StaticUsageCounter()


@pytest.fixture
def listing_quotas() -> StaticListingQuotaReader:
    return StaticListingQuotaReader()


@pytest.fixture
def invalidator() -> RecordingInvalidator:
    return RecordingInvalidator()


@pytest.fixture
def history() -> RecordingHistory:
    return RecordingHistory()


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=ActorRole.ADMIN)


@pytest.fixture
def editor() -> Actor:
    return Actor(user_id="editor-1", role=ActorRole.EDITOR)


@pytest.fixture
def engine(subscription_repo, addon_repo, usage, history, clock, invalidator, listing_quotas):
    built = build_engine(
        subscription_repository=subscription_repo,
        addon_repository=addon_repo,
        usage_counter=usage,
        history=history,
        config=load_engine_config({}),
        clock=clock,
        listing_quotas=listing_quotas,
    )
    built.subscriptions.invalidator.subscribe(invalidator)
    return built


@pytest.fixture
def failing_history() -> RecordingHistory:
    return RecordingHistory(fail=True)
