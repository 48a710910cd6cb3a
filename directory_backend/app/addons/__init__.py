"""Per-listing feature add-ons."""

from .repository import PostgresAddonRepository
from .service import AddonRepository, FeatureAddonManager

__all__ = ["AddonRepository", "FeatureAddonManager", "PostgresAddonRepository"]
