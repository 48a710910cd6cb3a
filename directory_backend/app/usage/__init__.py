"""Usage counters and listing quota extensions feeding the entitlement resolver."""

from .counter import PostgresUsageCounter, StaticUsageCounter, month_bounds
from .listing_quotas import PostgresListingQuotaReader, StaticListingQuotaReader

__all__ = [
    "PostgresListingQuotaReader",
    "PostgresUsageCounter",
    "StaticListingQuotaReader",
    "StaticUsageCounter",
    "month_bounds",
]
