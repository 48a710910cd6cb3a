"""Per-listing quota extensions granted by admins on top of the plan limit."""
from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from ..entitlements.models import ResourceKind

logger = logging.getLogger(__name__)

_EXTENSIONS_SQL = """
    SELECT gallery_limit_override
      FROM places
     WHERE id = %(listing_id)s
"""

# column -> resource it extends
_EXTENSION_COLUMNS = {
    "gallery_limit_override": ResourceKind.GALLERY_IMAGES_PER_PLACE,
}


class PostgresListingQuotaReader:
    """Reads the override columns stored on a place."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    def limit_extensions_for(self, listing_id: str) -> Dict[ResourceKind, int]:
        with dict_cursor(self._conn, store="listing store") as cursor:
            cursor.execute(_EXTENSIONS_SQL, {"listing_id": listing_id})
            row = cursor.fetchone()
        extensions: Dict[ResourceKind, int] = {}
        for column, resource in _EXTENSION_COLUMNS.items():
            value = (row or {}).get(column)
            if value is not None and int(value) > 0:
                extensions[resource] = int(value)
        if extensions:
            logger.debug("Listing %s has quota extensions %s", listing_id, extensions)
        return extensions


class StaticListingQuotaReader:
    def __init__(self, extensions: Optional[Mapping[str, Mapping[ResourceKind, int]]] = None) -> None:
        self._extensions: Dict[str, Dict[ResourceKind, int]] = {
            listing_id: dict(values) for listing_id, values in (extensions or {}).items()
        }

    def set_extension(self, listing_id: str, resource: ResourceKind, amount: int) -> None:
        self._extensions.setdefault(listing_id, {})[resource] = amount

    def limit_extensions_for(self, listing_id: str) -> Dict[ResourceKind, int]:
        return dict(self._extensions.get(listing_id, {}))
