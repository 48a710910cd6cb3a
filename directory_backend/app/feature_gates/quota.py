"""Quantity quota evaluation for requests that create several resources at once."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

from ..entitlements.models import PlanLimits, ResourceKind, UsageSnapshot
from .exceptions import FeatureGateError


@dataclass(frozen=True)
class QuotaEvaluation:
    """Represents the outcome of a quota check for ``requested`` new items."""

    resource: ResourceKind
    current_count: int
    requested: int
    limit: Optional[int]
    allowed: bool

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.current_count, 0)

    def to_dict(self) -> Dict[str, Union[str, int, bool, None]]:
        """Serialize the evaluation for logging or error details."""

        return {
            "resource": self.resource.value,
            "current_count": self.current_count,
            "requested": self.requested,
            "limit": self.limit,
            "remaining": self.remaining,
            "allowed": self.allowed,
        }


def evaluate_quota(
    *,
    resource: ResourceKind,
    limits: PlanLimits,
    usage: UsageSnapshot,
    requested: int = 1,
    limit_override: Optional[int] = None,
    limit_extension: int = 0,
) -> QuotaEvaluation:
    """Determine whether ``requested`` more items fit under the plan limit.

    ``limit_override`` replaces the plan limit (an add-on quota) and
    ``limit_extension`` is added on top of whichever bounded limit applies.
    """

    if requested < 0:
        raise ValueError("requested must be >= 0")
    limit = limit_override if limit_override is not None else limits.bound_for(resource)
    if limit is not None:
        limit += max(limit_extension, 0)
    current = usage.count(resource)
    allowed = limit is None or current + requested <= limit
    return QuotaEvaluation(
        resource=resource,
        current_count=current,
        requested=requested,
        limit=limit,
        allowed=allowed,
    )


def assert_quota(
    *,
    resource: ResourceKind,
    limits: PlanLimits,
    usage: UsageSnapshot,
    requested: int = 1,
    limit_override: Optional[int] = None,
    limit_extension: int = 0,
) -> QuotaEvaluation:
    """Raise when the request would push usage over the limit."""

    evaluation = evaluate_quota(
        resource=resource,
        limits=limits,
        usage=usage,
        requested=requested,
        limit_override=limit_override,
        limit_extension=limit_extension,
    )
    if not evaluation.allowed:
        raise FeatureGateError(
            f"Quota for {resource.value} exceeded.",
            detail=evaluation.to_dict(),
            code="quota_exceeded",
        )
    return evaluation
