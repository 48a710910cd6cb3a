"""Usage measurement for tenants and listings."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Mapping, Optional, Tuple

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from ..entitlements.exceptions import DataUnavailable
from ..entitlements.expiry import add_months, current_time
from ..entitlements.models import OwnerRef, OwnerScope, ResourceKind, UsageSnapshot

logger = logging.getLogger(__name__)

_TENANT_COUNTS_SQL = """
    SELECT
        (SELECT COUNT(*) FROM places
          WHERE site_id = %(owner_id)s AND is_active) AS places,
        (SELECT COUNT(*) FROM places
          WHERE site_id = %(owner_id)s AND is_active AND is_featured
            AND (featured_until IS NULL OR featured_until > %(now)s)) AS featured_places,
        (SELECT COUNT(*) FROM events
          WHERE site_id = %(owner_id)s AND is_active
            AND start_date >= %(month_start)s AND start_date < %(month_end)s) AS events_per_month,
        (SELECT COUNT(*) FROM site_memberships
          WHERE site_id = %(owner_id)s) AS site_members,
        (SELECT COUNT(*) FROM site_domains
          WHERE site_id = %(owner_id)s AND is_active) AS domain_aliases,
        (SELECT COUNT(DISTINCT lang) FROM site_instances
          WHERE site_id = %(owner_id)s) AS languages,
        (SELECT COUNT(*) FROM galleries
          WHERE site_id = %(owner_id)s) AS galleries
"""

_LISTING_COUNTS_SQL = """
    SELECT
        (SELECT COUNT(*) FROM places
          WHERE id = %(listing_id)s AND is_active) AS places,
        (SELECT COUNT(*) FROM places
          WHERE id = %(listing_id)s AND is_active AND is_featured
            AND (featured_until IS NULL OR featured_until > %(now)s)) AS featured_places,
        (SELECT COUNT(*) FROM events
          WHERE place_id = %(listing_id)s AND is_active
            AND start_date >= %(month_start)s AND start_date < %(month_end)s) AS events_per_month,
        (SELECT COUNT(*) FROM place_memberships
          WHERE place_id = %(listing_id)s) AS site_members,
        0 AS domain_aliases,
        (SELECT COUNT(DISTINCT si.lang) FROM site_instances AS si
           JOIN places AS p ON p.site_id = si.site_id
          WHERE p.id = %(listing_id)s) AS languages,
        (SELECT COUNT(*) FROM galleries
          WHERE place_id = %(listing_id)s) AS galleries
"""

_PER_PLACE_COUNTS_SQL = """
    SELECT
        (SELECT COUNT(*) FROM gallery_images AS gi
           JOIN galleries AS g ON g.id = gi.gallery_id
          WHERE g.place_id = %(listing_id)s) AS gallery_images_per_place,
        (SELECT COUNT(*) FROM floorplans
          WHERE place_id = %(listing_id)s) AS floorplans_per_place
"""


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """Return ``[start, end)`` of the calendar month containing ``now``."""

    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start, add_months(start, 1)


def _to_counts(row: Optional[Mapping[str, object]]) -> Dict[ResourceKind, int]:
    counts: Dict[ResourceKind, int] = {}
    for kind in ResourceKind:
        value = (row or {}).get(kind.value)
        if value is not None:
            counts[kind] = int(value)
    return counts


class PostgresUsageCounter:
    """Counts live resources straight from the directory tables."""

    def __init__(
        self,
        *,
        conn: Optional[PgConnection] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._conn = conn
        self._clock = clock

    def usage_for(self, owner: OwnerRef, *, listing_id: Optional[str] = None) -> UsageSnapshot:
        now = current_time(self._clock)
        month_start, month_end = month_bounds(now)
        listing = listing_id or (owner.owner_id if owner.scope == OwnerScope.LISTING else None)
        params = {
            "owner_id": owner.owner_id,
            "listing_id": listing,
            "now": now,
            "month_start": month_start,
            "month_end": month_end,
        }
        base_sql = _TENANT_COUNTS_SQL if owner.scope == OwnerScope.TENANT else _LISTING_COUNTS_SQL

        with dict_cursor(self._conn, store="usage store") as cursor:
            cursor.execute(base_sql, params)
            counts = _to_counts(cursor.fetchone())
            if listing is not None:
                cursor.execute(_PER_PLACE_COUNTS_SQL, params)
                counts.update(_to_counts(cursor.fetchone()))
            else:
                counts[ResourceKind.GALLERY_IMAGES_PER_PLACE] = 0
                counts[ResourceKind.FLOORPLANS_PER_PLACE] = 0

        logger.debug("Measured usage for %s: %s", owner.cache_key(), counts)
        return UsageSnapshot(owner=owner, counts=counts, measured_at=now)


class StaticUsageCounter:
    """Serves pre-built usage snapshots, e.g. for previews and tests."""

    def __init__(self, snapshots: Optional[Mapping[str, Mapping[ResourceKind, int]]] = None) -> None:
        self._snapshots: Dict[str, Dict[ResourceKind, int]] = {
            key: dict(value) for key, value in (snapshots or {}).items()
        }
        self._unavailable = False

    def set_counts(self, owner: OwnerRef, counts: Mapping[ResourceKind, int]) -> None:
        self._snapshots[owner.cache_key()] = dict(counts)

    def mark_unavailable(self, unavailable: bool = True) -> None:
        self._unavailable = unavailable

    def usage_for(self, owner: OwnerRef, *, listing_id: Optional[str] = None) -> UsageSnapshot:
        if self._unavailable:
            raise DataUnavailable("usage store is unreachable", detail={"store": "usage store"})
        counts = dict(self._snapshots.get(owner.cache_key(), {}))
        if listing_id and owner.scope == OwnerScope.TENANT:
            per_place = self._snapshots.get(OwnerRef.listing(listing_id).cache_key(), {})
            for kind in (ResourceKind.GALLERY_IMAGES_PER_PLACE, ResourceKind.FLOORPLANS_PER_PLACE):
                if kind in per_place:
                    counts[kind] = per_place[kind]
        return UsageSnapshot(owner=owner, counts=counts)
