"""Helpers for enforcing feature gates on API and service layers."""
from __future__ import annotations

from typing import Any, Dict, Optional, Union

from ..entitlements.models import FeatureGate, FeatureKey, GateEnabled, GateLimitReached, GateLocked
from .exceptions import FeatureGateError


def require_gate(
    gate: FeatureGate,
    feature: Union[FeatureKey, str],
    *,
    message: Optional[str] = None,
) -> None:
    """Ensure a resolved gate is ``enabled`` before proceeding.

    Parameters
    ----------
    gate:
        The gate returned by the entitlement service for ``feature``.
    feature:
        The feature being attempted, echoed back in the error detail.
    message:
        Optional human-friendly message. If omitted, the gate's own reason is
        used.
    """

    if isinstance(gate, GateEnabled):
        return
    if not isinstance(gate, (GateLocked, GateLimitReached)):
        raise TypeError(f"Unhandled feature gate variant: {type(gate).__name__}")

    feature_key = FeatureKey(feature)
    detail: Dict[str, Any] = {
        "feature": feature_key.value,
        "state": gate.state,
        "reason": gate.reason,
        "upgrade_cta": gate.upgrade_cta.value,
    }
    if isinstance(gate, GateLimitReached):
        detail.update({"current_count": gate.current_count, "limit": gate.limit})
        code = "limit_reached"
    else:
        code = "feature_locked"

    raise FeatureGateError(
        message or f"Feature '{feature_key.value}' is unavailable: {gate.reason}",
        detail=detail,
        code=code,
    )
