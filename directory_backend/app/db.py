"""Connection and cursor helpers shared by the PostgreSQL adapters."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .entitlements.exceptions import DataUnavailable

logger = logging.getLogger(__name__)

_UNAVAILABLE_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


def _open_connection(store: str) -> PgConnection:
    from ..app_context import get_conn

    try:
        return get_conn()
    except _UNAVAILABLE_ERRORS as exc:
        logger.warning("Database connection for %s failed: %s", store, exc)
        raise DataUnavailable(f"{store} is unreachable", detail={"store": store}) from exc


@contextmanager
def managed_connection(
    conn: Optional[PgConnection] = None, *, store: str = "database"
) -> Iterator[Tuple[PgConnection, bool]]:
    """Yield ``(connection, managed)``; managed connections are committed and closed here."""

    if conn is not None:
        yield conn, False
        return

    connection = _open_connection(store)
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


@contextmanager
def dict_cursor(conn: Optional[PgConnection] = None, *, store: str = "database") -> Iterator[PgCursor]:
    """Cursor returning dict rows; driver-level outages surface as :class:`DataUnavailable`."""

    try:
        with managed_connection(conn, store=store) as (connection, _managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()
    except _UNAVAILABLE_ERRORS as exc:
        logger.warning("%s unreachable: %s", store, exc)
        raise DataUnavailable(f"{store} is unreachable", detail={"store": store}) from exc
