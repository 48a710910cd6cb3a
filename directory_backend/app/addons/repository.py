"""Persistence layer for feature add-on subscriptions."""
from __future__ import annotations

from typing import List, Optional

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from ..entitlements.models import (
    AddonKey,
    AddonPlanKey,
    AddonStatus,
    BillingPeriod,
    FeatureAddonSubscription,
)

_STORE = "add-on store"


def _row_to_addon(row: dict) -> FeatureAddonSubscription:
    return FeatureAddonSubscription(
        id=row["id"],
        listing_id=row["listing_id"],
        addon_key=AddonKey(row["addon_key"]),
        plan_key=AddonPlanKey(row["plan_key"]),
        billing_period=BillingPeriod(row["billing_period"]),
        status=AddonStatus(row["status"]),
        current_period_end=row["current_period_end"],
        replaced_by=row.get("replaced_by"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresAddonRepository:
    """Concrete repository persisting add-on subscriptions in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def get(self, addon_subscription_id: str) -> Optional[FeatureAddonSubscription]:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                SELECT *
                FROM feature_addon_subscriptions
                WHERE id = %s
                LIMIT 1
                """,
                (addon_subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_addon(row) if row else None

    def list_for_listing(
        self,
        listing_id: str,
        addon_key: Optional[AddonKey] = None,
    ) -> List[FeatureAddonSubscription]:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                SELECT *
                FROM feature_addon_subscriptions
                WHERE listing_id = %(listing_id)s
                  AND (%(addon_key)s IS NULL OR addon_key = %(addon_key)s)
                ORDER BY created_at DESC
                """,
                {"listing_id": listing_id, "addon_key": addon_key.value if addon_key else None},
            )
            rows = cursor.fetchall() or []
            return [_row_to_addon(row) for row in rows]

    def insert(self, addon: FeatureAddonSubscription) -> FeatureAddonSubscription:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                INSERT INTO feature_addon_subscriptions (
                    id,
                    listing_id,
                    addon_key,
                    plan_key,
                    billing_period,
                    status,
                    current_period_end,
                    replaced_by,
                    created_at,
                    updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    addon.id,
                    addon.listing_id,
                    addon.addon_key.value,
                    addon.plan_key.value,
                    addon.billing_period.value,
                    addon.status.value,
                    addon.current_period_end,
                    addon.replaced_by,
                    addon.created_at,
                    addon.updated_at,
                ),
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist add-on subscription")
            return _row_to_addon(row)

    def update(self, addon: FeatureAddonSubscription) -> FeatureAddonSubscription:
        with dict_cursor(self._conn, store=_STORE) as cursor:
            cursor.execute(
                """
                UPDATE feature_addon_subscriptions
                SET status = %s,
                    current_period_end = %s,
                    replaced_by = %s,
                    updated_at = %s
                WHERE id = %s
                RETURNING *
                """,
                (
                    addon.status.value,
                    addon.current_period_end,
                    addon.replaced_by,
                    addon.updated_at,
                    addon.id,
                ),
            )
            row = cursor.fetchone()
            if not row:
                raise LookupError(f"Add-on subscription {addon.id} disappeared during update")
            return _row_to_addon(row)
