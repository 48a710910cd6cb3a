"""Convenience wrapper around an entitlement snapshot for feature gating."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Union

from ..entitlements.catalog import get_add_on_definition
from ..entitlements.expiry import current_time, select_current_addon
from ..entitlements.models import (
    AddonKey,
    EntitlementSnapshot,
    FeatureGate,
    FeatureKey,
    PlanKey,
    ResourceKind,
)
from ..entitlements.resolver import gate_for_snapshot
from .enforcement import require_gate
from .exceptions import FeatureGateError
from .quota import QuotaEvaluation, assert_quota, evaluate_quota


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating-centric helpers for an owner's entitlements."""

    snapshot: EntitlementSnapshot
    now: Optional[datetime] = None

    @property
    def plan(self) -> PlanKey:
        return self.snapshot.plan

    def _moment(self) -> datetime:
        return self.now or current_time()

    def gate(self, feature: Union[FeatureKey, str]) -> FeatureGate:
        return gate_for_snapshot(self.snapshot, feature, now=self._moment())

    def gates(self) -> Dict[FeatureKey, FeatureGate]:
        moment = self._moment()
        return {feature: gate_for_snapshot(self.snapshot, feature, now=moment) for feature in FeatureKey}

    def has(self, feature: Union[FeatureKey, str]) -> bool:
        """Return whether the feature's gate is enabled."""

        return self.gate(feature).is_enabled

    def require(self, feature: Union[FeatureKey, str], *, message: Optional[str] = None) -> None:
        """Raise :class:`FeatureGateError` unless the feature is enabled."""

        require_gate(self.gate(feature), feature, message=message)

    def _limit_override(self, resource: ResourceKind) -> Optional[int]:
        moment = self._moment()
        for addon_key in AddonKey:
            definition = get_add_on_definition(addon_key)
            if definition.resource != resource:
                continue
            addon = select_current_addon(self.snapshot.addons, addon_key, moment)
            if addon is not None:
                return definition.quota_for(addon.plan_key)
        return None

    def evaluate_quota(self, resource: ResourceKind, *, requested: int = 1) -> QuotaEvaluation:
        return evaluate_quota(
            resource=resource,
            limits=self.snapshot.plan_limits(),
            usage=self.snapshot.usage,
            requested=requested,
            limit_override=self._limit_override(resource),
            limit_extension=self.snapshot.extension_for(resource),
        )

    def assert_quota(self, resource: ResourceKind, *, requested: int = 1) -> QuotaEvaluation:
        """Raise when adding ``requested`` items would exceed the limit."""

        if self.snapshot.is_suspended:
            raise FeatureGateError(
                "Subscription is not active.",
                detail={"resource": resource.value, "upgrade_cta": "contact_admin"},
                code="feature_locked",
            )
        return assert_quota(
            resource=resource,
            limits=self.snapshot.plan_limits(),
            usage=self.snapshot.usage,
            requested=requested,
            limit_override=self._limit_override(resource),
            limit_extension=self.snapshot.extension_for(resource),
        )
