"""API schemas for entitlement and gate endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements import (
    CapabilityKind,
    EntitlementSnapshot,
    FeatureGate,
    FeatureKey,
    OwnerScope,
    PlanKey,
    PlanLimits,
    ResourceKind,
    SubscriptionStatus,
)


class UsageLine(BaseModel):
    resource: ResourceKind
    used: int
    limit: Optional[int] = None
    extension: int = 0

    model_config = ConfigDict(populate_by_name=True)


def _usage_line(snapshot: EntitlementSnapshot, limits: PlanLimits, kind: ResourceKind) -> UsageLine:
    bound = limits.bound_for(kind)
    extension = snapshot.extension_for(kind)
    return UsageLine(
        resource=kind,
        used=snapshot.usage.count(kind),
        limit=None if bound is None else bound + extension,
        extension=extension,
    )


class EntitlementsResponse(BaseModel):
    scope: OwnerScope
    owner_id: str = Field(alias="ownerId")
    listing_id: Optional[str] = Field(alias="listingId", default=None)
    plan: PlanKey
    status: Optional[SubscriptionStatus] = None
    valid_until: Optional[datetime] = Field(alias="validUntil", default=None)
    capabilities: List[CapabilityKind] = Field(default_factory=list)
    usage: List[UsageLine] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, snapshot: EntitlementSnapshot) -> "EntitlementsResponse":
        limits = snapshot.plan_limits()
        return cls(
            scope=snapshot.owner.scope,
            owner_id=snapshot.owner.owner_id,
            listing_id=snapshot.listing_id,
            plan=snapshot.plan,
            status=snapshot.status,
            valid_until=snapshot.valid_until,
            capabilities=sorted(snapshot.capabilities, key=lambda capability: capability.value),
            usage=[_usage_line(snapshot, limits, kind) for kind in ResourceKind],
        )


class FeatureGateResponse(BaseModel):
    feature: FeatureKey
    gate: FeatureGate

    model_config = ConfigDict(populate_by_name=True)


class FeatureGatesResponse(BaseModel):
    gates: Dict[FeatureKey, FeatureGate]

    model_config = ConfigDict(populate_by_name=True)
