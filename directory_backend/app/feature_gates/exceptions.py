"""Custom exceptions used for feature gating enforcement."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import status

from ..entitlements.exceptions import EntitlementError


@dataclass(eq=False)
class FeatureGateError(EntitlementError):
    """Represents an actionable gating failure surfaced to API callers."""

    code: str = "feature_locked"
    status_code: int = status.HTTP_403_FORBIDDEN
