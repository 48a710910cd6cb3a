from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from directory_backend.app.entitlements import (
    BillingPeriod,
    ConcurrentModification,
    Forbidden,
    InvalidPlan,
    OwnerRef,
    OwnerScope,
    PlanKey,
    Subscription,
    SubscriptionNotFound,
    SubscriptionStatus,
    TransitionNotAllowed,
)
from directory_backend.app.subscriptions import ChangeType, SubscriptionLifecycleManager

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
TENANT = OwnerRef.tenant("site-1")


def _seed(repo, **overrides) -> Subscription:
    fields = {
        "id": "sub-1",
        "owner": TENANT,
        "plan": PlanKey.BASIC,
        "status": SubscriptionStatus.ACTIVE,
        "status_changed_at": NOW - timedelta(days=10),
        "valid_until": NOW + timedelta(days=30),
        "created_at": NOW - timedelta(days=10),
        "updated_at": NOW - timedelta(days=10),
    }
    fields.update(overrides)
    return repo.add(Subscription(**fields))


@pytest.fixture
def manager(subscription_repo, invalidator, history, clock):
    return SubscriptionLifecycleManager(
        repository=subscription_repo,
        invalidator=invalidator,
        history=history,
        clock=clock,
    )


def test_create_subscription_records_history_and_announces(manager, subscription_repo, invalidator, history, admin):
    created = manager.create_subscription(TENANT, "Pro", admin, price_cents=990000, note="annual deal")

    assert created.id.startswith("sub_")
    assert created.plan == PlanKey.PRO
    assert created.status == SubscriptionStatus.ACTIVE
    assert created.currency == "HUF"
    assert subscription_repo.get_for_owner(TENANT) == created
    assert invalidator.owners == [TENANT]
    assert [entry.change_type for entry in history.entries] == [ChangeType.CREATED]
    assert history.entries[0].changed_by == admin.user_id


def test_create_with_billing_period_sets_period_end(manager, admin):
    created = manager.create_subscription(TENANT, PlanKey.BASIC, admin, billing_period=BillingPeriod.MONTHLY)

    assert created.valid_until == datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)


def test_create_rejects_valid_until_in_the_past(manager, admin):
    with pytest.raises(ValueError):
        manager.create_subscription(TENANT, PlanKey.BASIC, admin, valid_until=NOW - timedelta(days=1))


def test_create_rejects_second_live_subscription(manager, subscription_repo, admin):
    _seed(subscription_repo, status=SubscriptionStatus.CANCELLED)

    with pytest.raises(TransitionNotAllowed):
        manager.create_subscription(TENANT, PlanKey.PRO, admin)


def test_create_restarts_an_expired_subscription(manager, subscription_repo, history, admin):
    _seed(subscription_repo, valid_until=NOW - timedelta(days=2))

    restarted = manager.create_subscription(TENANT, PlanKey.PRO, admin, valid_until=NOW + timedelta(days=365))

    assert restarted.id == "sub-1"
    assert restarted.status == SubscriptionStatus.ACTIVE
    assert restarted.plan == PlanKey.PRO
    assert restarted.version == 2
    assert history.entries[-1].old_status == SubscriptionStatus.EXPIRED


def test_editor_cannot_mutate(manager, subscription_repo, invalidator, editor):
    _seed(subscription_repo)

    with pytest.raises(Forbidden) as excinfo:
        manager.cancel("sub-1", editor)
    with pytest.raises(Forbidden):
        manager.create_subscription(OwnerRef.listing("place-9"), "not-a-plan", editor)

    assert excinfo.value.status_code == 403
    assert subscription_repo.writes == 0
    assert invalidator.owners == []


def test_cancel_is_idempotent(manager, subscription_repo, invalidator, clock, admin):
    _seed(subscription_repo)

    first = manager.cancel("sub-1", admin)
    clock.advance(hours=2)
    second = manager.cancel("sub-1", admin)

    assert first.status == SubscriptionStatus.CANCELLED
    assert second.status == SubscriptionStatus.CANCELLED
    assert second.status_changed_at == first.status_changed_at == NOW
    assert subscription_repo.writes == 1
    assert invalidator.owners == [TENANT]


def test_cancel_then_resume_restores_the_subscription(manager, subscription_repo, admin):
    original = _seed(subscription_repo)

    manager.cancel("sub-1", admin)
    resumed = manager.resume("sub-1", admin)

    assert resumed.status == SubscriptionStatus.ACTIVE
    assert resumed.plan == original.plan
    assert resumed.valid_until == original.valid_until
    assert resumed.version == original.version + 2


def test_resume_after_valid_until_is_rejected(manager, subscription_repo, clock, admin):
    _seed(subscription_repo, valid_until=NOW + timedelta(days=1))
    manager.cancel("sub-1", admin)

    clock.advance(days=2)
    with pytest.raises(TransitionNotAllowed) as excinfo:
        manager.resume("sub-1", admin)

    assert excinfo.value.payload["status"] == "EXPIRED"
    assert manager.get("sub-1").status == SubscriptionStatus.EXPIRED


def test_suspend_and_activate(manager, subscription_repo, history, admin):
    _seed(subscription_repo)

    suspended = manager.suspend("sub-1", admin)
    activated = manager.activate("sub-1", admin)

    assert suspended.status == SubscriptionStatus.SUSPENDED
    assert activated.status == SubscriptionStatus.ACTIVE
    assert [(entry.old_status, entry.new_status) for entry in history.entries] == [
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.SUSPENDED),
        (SubscriptionStatus.SUSPENDED, SubscriptionStatus.ACTIVE),
    ]


def test_cancelled_subscription_cannot_be_suspended(manager, subscription_repo, admin):
    _seed(subscription_repo, status=SubscriptionStatus.CANCELLED)

    with pytest.raises(TransitionNotAllowed):
        manager.suspend("sub-1", admin)


def test_unknown_subscription_raises_not_found(manager, admin):
    with pytest.raises(SubscriptionNotFound):
        manager.cancel("missing", admin)
    with pytest.raises(SubscriptionNotFound):
        manager.change_plan(TENANT, PlanKey.PRO, admin)


def test_change_plan_keeps_status_and_period(manager, subscription_repo, history, admin):
    original = _seed(subscription_repo, status=SubscriptionStatus.CANCELLED)

    changed = manager.change_plan(TENANT, "business", admin)

    assert changed.plan == PlanKey.BUSINESS
    assert changed.status == SubscriptionStatus.CANCELLED
    assert changed.valid_until == original.valid_until
    assert history.entries[-1].change_type == ChangeType.PLAN_CHANGE
    assert history.entries[-1].old_plan == PlanKey.BASIC


def test_change_plan_to_same_plan_is_a_no_op(manager, subscription_repo, invalidator, admin):
    _seed(subscription_repo)

    result = manager.change_plan(TENANT, PlanKey.BASIC, admin)

    assert result.version == 1
    assert invalidator.owners == []


def test_change_plan_rejects_unknown_plan_and_expired_subscription(manager, subscription_repo, admin):
    _seed(subscription_repo, valid_until=NOW - timedelta(hours=1))

    with pytest.raises(InvalidPlan):
        manager.change_plan(TENANT, "platinum", admin)
    with pytest.raises(TransitionNotAllowed):
        manager.change_plan(TENANT, PlanKey.PRO, admin)


def test_extend_moves_valid_until_one_month(manager, subscription_repo, history, admin):
    _seed(subscription_repo, valid_until=datetime(2026, 3, 31, tzinfo=timezone.utc))

    extended = manager.extend("sub-1", admin)

    assert extended.valid_until == datetime(2026, 4, 30, tzinfo=timezone.utc)
    assert history.entries[-1].change_type == ChangeType.EXTENSION


def test_extend_without_period_starts_next_month(manager, subscription_repo, admin):
    _seed(subscription_repo, valid_until=None)

    extended = manager.extend("sub-1", admin)

    assert extended.valid_until == datetime(2026, 4, 1, tzinfo=timezone.utc)


def test_extend_expired_subscription_is_rejected(manager, subscription_repo, admin):
    _seed(subscription_repo, valid_until=NOW - timedelta(days=1))

    with pytest.raises(TransitionNotAllowed):
        manager.extend("sub-1", admin)


def test_update_billing_details(manager, subscription_repo, invalidator, history, admin):
    _seed(subscription_repo)

    updated = manager.update_billing_details("sub-1", admin, price_cents=4900, note="promo")

    assert updated.price_cents == 4900
    assert updated.currency == "HUF"
    assert updated.note == "promo"
    assert history.entries[-1].change_type == ChangeType.UPDATE
    assert invalidator.owners == [TENANT]

    with pytest.raises(ValueError):
        manager.update_billing_details("sub-1", admin, price_cents=-1)


def test_get_reports_lazy_expiry_without_writing(manager, subscription_repo):
    _seed(subscription_repo, valid_until=NOW - timedelta(minutes=5))

    assert manager.get("sub-1").status == SubscriptionStatus.EXPIRED
    assert subscription_repo.get("sub-1").status == SubscriptionStatus.ACTIVE
    assert subscription_repo.writes == 0


def test_list_expiring_window(manager, subscription_repo):
    _seed(subscription_repo, id="soon", owner=OwnerRef.tenant("a"), valid_until=NOW + timedelta(days=3))
    _seed(
        subscription_repo,
        id="soon-cancelled",
        owner=OwnerRef.listing("b"),
        status=SubscriptionStatus.CANCELLED,
        valid_until=NOW + timedelta(days=6),
    )
    _seed(subscription_repo, id="later", owner=OwnerRef.tenant("c"), valid_until=NOW + timedelta(days=30))
    _seed(
        subscription_repo,
        id="suspended",
        owner=OwnerRef.tenant("d"),
        status=SubscriptionStatus.SUSPENDED,
        valid_until=NOW + timedelta(days=2),
    )

    assert [sub.id for sub in manager.list_expiring()] == ["soon", "soon-cancelled"]
    assert [sub.id for sub in manager.list_expiring(OwnerScope.LISTING)] == ["soon-cancelled"]
    assert [sub.id for sub in manager.list_expiring(within_days=60)] == ["soon", "soon-cancelled", "later"]
    with pytest.raises(ValueError):
        manager.list_expiring(within_days=-1)


def test_history_failure_does_not_undo_the_change(subscription_repo, invalidator, failing_history, clock, admin):
    manager = SubscriptionLifecycleManager(
        repository=subscription_repo,
        invalidator=invalidator,
        history=failing_history,
        clock=clock,
    )
    _seed(subscription_repo)

    cancelled = manager.cancel("sub-1", admin)

    assert cancelled.status == SubscriptionStatus.CANCELLED
    assert subscription_repo.get("sub-1").status == SubscriptionStatus.CANCELLED
    assert invalidator.owners == [TENANT]


def test_lost_compare_and_set_surfaces_concurrent_modification(manager, subscription_repo, invalidator, admin):
    original = _seed(subscription_repo)

    def concurrent_writer():
        subscription_repo.records["sub-1"] = original.model_copy(
            update={"plan": PlanKey.PRO, "version": original.version + 1}
        )

    subscription_repo.before_write = concurrent_writer

    with pytest.raises(ConcurrentModification):
        manager.suspend("sub-1", admin)

    stored = subscription_repo.get("sub-1")
    assert stored.plan == PlanKey.PRO
    assert stored.status == SubscriptionStatus.ACTIVE
    assert invalidator.owners == []


def test_concurrent_cancels_write_once(manager, subscription_repo, admin):
    _seed(subscription_repo)
    results = []
    errors = []

    def worker():
        try:
            results.append(manager.cancel("sub-1", admin))
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(results) == 8
    assert all(result.status == SubscriptionStatus.CANCELLED for result in results)
    assert subscription_repo.writes == 1
