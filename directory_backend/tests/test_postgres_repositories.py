from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from directory_backend.app.addons import PostgresAddonRepository
from directory_backend.app.entitlements import (
    AddonKey,
    AddonStatus,
    ConcurrentModification,
    OwnerRef,
    OwnerScope,
    PlanKey,
    ResourceKind,
    Subscription,
    SubscriptionStatus,
)
from directory_backend.app.subscriptions import (
    ChangeType,
    PostgresSubscriptionHistoryRecorder,
    PostgresSubscriptionRepository,
    SubscriptionHistoryEntry,
)
from directory_backend.app.usage import PostgresListingQuotaReader

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class RecordingCursor:
    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None) -> None:
        self.rows = list(rows or [])
        self.executed: List[tuple] = []

    def execute(self, sql, params=None) -> None:
        self.executed.append((" ".join(sql.split()), params))

    def fetchone(self):
        return self.rows.pop(0) if self.rows else None

    def fetchall(self):
        rows, self.rows = self.rows, []
        return rows

    def close(self) -> None:
        pass


class RecordingConnection:
    def __init__(self, cursor: RecordingCursor) -> None:
        self._cursor = cursor

    def cursor(self, cursor_factory=None) -> RecordingCursor:
        return self._cursor


def _subscription_row(**overrides) -> Dict[str, Any]:
    row = {
        "id": "sub-1",
        "scope": "listing",
        "owner_id": "place-1",
        "plan": "PRO",
        "status": "CANCELLED",
        "status_changed_at": NOW,
        "valid_until": NOW + timedelta(days=12),
        "billing_period": "monthly",
        "price_cents": 12900,
        "currency": "HUF",
        "note": None,
        "created_at": NOW - timedelta(days=30),
        "updated_at": NOW,
        "version": 4,
    }
    row.update(overrides)
    return row


def test_rows_map_to_subscriptions():
    cursor = RecordingCursor([_subscription_row()])
    repository = PostgresSubscriptionRepository(conn=RecordingConnection(cursor))

    subscription = repository.get_for_owner(OwnerRef.listing("place-1"))

    assert subscription.owner == OwnerRef.listing("place-1")
    assert subscription.plan == PlanKey.PRO
    assert subscription.status == SubscriptionStatus.CANCELLED
    assert subscription.version == 4
    assert cursor.executed[0][1] == ("listing", "place-1")


def test_compare_and_set_guards_on_expected_version():
    cursor = RecordingCursor([])
    repository = PostgresSubscriptionRepository(conn=RecordingConnection(cursor))
    subscription = Subscription(
        id="sub-1",
        owner=OwnerRef.tenant("site-1"),
        plan=PlanKey.BASIC,
        status=SubscriptionStatus.SUSPENDED,
        version=3,
    )

    with pytest.raises(ConcurrentModification) as excinfo:
        repository.compare_and_set(subscription, expected_version=2)

    sql, params = cursor.executed[0]
    assert "WHERE id = %(id)s AND version = %(expected_version)s" in sql
    assert params["expected_version"] == 2
    assert params["version"] == 3
    assert excinfo.value.payload["expected_version"] == 2


def test_list_expiring_passes_scope_filter():
    cursor = RecordingCursor([_subscription_row(), _subscription_row(id="sub-2", owner_id="place-2")])
    repository = PostgresSubscriptionRepository(conn=RecordingConnection(cursor))

    found = repository.list_expiring(scope=OwnerScope.LISTING, now=NOW, until=NOW + timedelta(days=7))

    assert [subscription.id for subscription in found] == ["sub-1", "sub-2"]
    assert cursor.executed[0][1]["scope"] == "listing"


def test_history_recorder_writes_enum_values():
    cursor = RecordingCursor()
    recorder = PostgresSubscriptionHistoryRecorder(conn=RecordingConnection(cursor))

    recorder.record(
        SubscriptionHistoryEntry(
            subscription_id="sub-1",
            scope=OwnerScope.TENANT,
            change_type=ChangeType.PLAN_CHANGE,
            old_plan=PlanKey.BASIC,
            new_plan=PlanKey.PRO,
            changed_by="admin-1",
            occurred_at=NOW,
        )
    )

    sql, params = cursor.executed[0]
    assert sql.startswith("INSERT INTO subscription_history")
    assert params[:5] == ("sub-1", "tenant", "PLAN_CHANGE", "basic", "pro")


def test_addon_repository_filters_by_key():
    cursor = RecordingCursor(
        [
            {
                "id": "fas-1",
                "listing_id": "place-1",
                "addon_key": "floorplans",
                "plan_key": "FP_1",
                "billing_period": "yearly",
                "status": "cancelled",
                "current_period_end": NOW + timedelta(days=90),
                "replaced_by": "fas-2",
                "created_at": NOW - timedelta(days=200),
                "updated_at": NOW,
            }
        ]
    )
    repository = PostgresAddonRepository(conn=RecordingConnection(cursor))

    addons = repository.list_for_listing("place-1", AddonKey.FLOORPLANS)

    assert addons[0].status == AddonStatus.CANCELLED
    assert addons[0].replaced_by == "fas-2"
    assert "floorplans" in str(cursor.executed[0][1])


@pytest.mark.parametrize(
    "row, expected",
    [
        ({"gallery_limit_override": 5}, {ResourceKind.GALLERY_IMAGES_PER_PLACE: 5}),
        ({"gallery_limit_override": None}, {}),
        ({"gallery_limit_override": 0}, {}),
        (None, {}),
    ],
)
def test_listing_quota_reader_maps_gallery_override(row, expected):
    cursor = RecordingCursor([row] if row is not None else [])
    reader = PostgresListingQuotaReader(conn=RecordingConnection(cursor))

    assert reader.limit_extensions_for("place-1") == expected
    assert cursor.executed[0][1] == {"listing_id": "place-1"}
