"""Persistence layer for primary subscriptions and their history."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from ..entitlements.exceptions import ConcurrentModification
from ..entitlements.models import (
    BillingPeriod,
    OwnerRef,
    OwnerScope,
    PlanKey,
    Subscription,
    SubscriptionStatus,
)
from .models import SubscriptionHistoryEntry

logger = logging.getLogger(__name__)

_STORE = "subscription store"


def _row_to_subscription(row: dict) -> Subscription:
    billing_period = row.get("billing_period")
    return Subscription(
        id=row["id"],
        owner=OwnerRef(scope=OwnerScope(row["scope"]), owner_id=row["owner_id"]),
        plan=PlanKey(str(row["plan"]).lower()),
        status=SubscriptionStatus(row["status"]),
        status_changed_at=row["status_changed_at"],
        valid_until=row.get("valid_until"),
        billing_period=BillingPeriod(billing_period) if billing_period else None,
        price_cents=row.get("price_cents"),
        currency=row.get("currency"),
        note=row.get("note"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        version=int(row["version"]),
    )


def _subscription_params(subscription: Subscription) -> dict:
    return {
        "id": subscription.id,
        "scope": subscription.owner.scope.value,
        "owner_id": subscription.owner.owner_id,
        "plan": subscription.plan.value,
        "status": subscription.status.value,
        "status_changed_at": subscription.status_changed_at,
        "valid_until": subscription.valid_until,
        "billing_period": subscription.billing_period.value if subscription.billing_period else None,
        "price_cents": subscription.price_cents,
        "currency": subscription.currency,
        "note": subscription.note,
        "created_at": subscription.created_at,
        "updated_at": subscription.updated_at,
        "version": subscription.version,
    }


class PostgresSubscriptionRepository:
    """Stores tenant and listing subscriptions in one table keyed by ``(scope, owner_id)``."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def get(self, subscription_id: str) -> Optional[Subscription]:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE id = %s
                LIMIT 1
                """,
                (subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get_for_owner(self, owner: OwnerRef) -> Optional[Subscription]:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE scope = %s AND owner_id = %s
                LIMIT 1
                """,
                (owner.scope.value, owner.owner_id),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def insert(self, subscription: Subscription) -> Subscription:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                INSERT INTO subscriptions (
                    id,
                    scope,
                    owner_id,
                    plan,
                    status,
                    status_changed_at,
                    valid_until,
                    billing_period,
                    price_cents,
                    currency,
                    note,
                    created_at,
                    updated_at,
                    version
                )
                VALUES (%(id)s, %(scope)s, %(owner_id)s, %(plan)s, %(status)s,
                        %(status_changed_at)s, %(valid_until)s, %(billing_period)s,
                        %(price_cents)s, %(currency)s, %(note)s, %(created_at)s,
                        %(updated_at)s, %(version)s)
                RETURNING *
                """,
                _subscription_params(subscription),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row)

    def compare_and_set(self, subscription: Subscription, *, expected_version: int) -> Subscription:
        params = _subscription_params(subscription)
        params["expected_version"] = expected_version
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                UPDATE subscriptions SET
                    plan = %(plan)s,
                    status = %(status)s,
                    status_changed_at = %(status_changed_at)s,
                    valid_until = %(valid_until)s,
                    billing_period = %(billing_period)s,
                    price_cents = %(price_cents)s,
                    currency = %(currency)s,
                    note = %(note)s,
                    updated_at = %(updated_at)s,
                    version = %(version)s
                WHERE id = %(id)s AND version = %(expected_version)s
                RETURNING *
                """,
                params,
            )
            row = cursor.fetchone()
            if not row:
                raise ConcurrentModification(
                    f"Subscription {subscription.id} changed since version {expected_version}",
                    detail={"subscription_id": subscription.id, "expected_version": expected_version},
                )
            return _row_to_subscription(row)

    def list_expiring(
        self,
        *,
        scope: Optional[OwnerScope],
        now: datetime,
        until: datetime,
    ) -> List[Subscription]:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE status IN ('ACTIVE', 'CANCELLED')
                  AND valid_until > %(now)s
                  AND valid_until <= %(until)s
                  AND (%(scope)s IS NULL OR scope = %(scope)s)
                ORDER BY valid_until ASC
                """,
                {"now": now, "until": until, "scope": scope.value if scope else None},
            )
            rows = cursor.fetchall() or []
            return [_row_to_subscription(row) for row in rows]


class PostgresSubscriptionHistoryRecorder:
    """Appends history entries to ``subscription_history``."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def record(self, entry: SubscriptionHistoryEntry) -> None:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                INSERT INTO subscription_history (
                    subscription_id,
                    scope,
                    change_type,
                    old_plan,
                    new_plan,
                    old_status,
                    new_status,
                    old_valid_until,
                    new_valid_until,
                    amount_cents,
                    currency,
                    note,
                    changed_by,
                    occurred_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    entry.subscription_id,
                    entry.scope.value,
                    entry.change_type.value,
                    entry.old_plan.value if entry.old_plan else None,
                    entry.new_plan.value if entry.new_plan else None,
                    entry.old_status.value if entry.old_status else None,
                    entry.new_status.value if entry.new_status else None,
                    entry.old_valid_until,
                    entry.new_valid_until,
                    entry.amount_cents,
                    entry.currency,
                    entry.note,
                    entry.changed_by,
                    entry.occurred_at,
                ),
            )
        logger.debug("Recorded %s for subscription %s", entry.change_type.value, entry.subscription_id)
