"""API routes exposing entitlement snapshots and feature gates."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..entitlements import Actor, EntitlementError, FeatureKey, OwnerRef, OwnerScope
from ..schemas.entitlements import EntitlementsResponse, FeatureGateResponse, FeatureGatesResponse
from ..services.engine import get_engine
from .dependencies import get_current_actor, raise_http_error

router = APIRouter(prefix="/api/entitlements", tags=["entitlements"])


@router.get("/{scope}/{owner_id}", response_model=EntitlementsResponse)
def get_entitlements(
    scope: OwnerScope,
    owner_id: str,
    listing_id: Optional[str] = Query(default=None, alias="listingId"),
    *,
    actor: Actor = Depends(get_current_actor),
) -> EntitlementsResponse:
    engine = get_engine()
    try:
        snapshot = engine.get_entitlements(OwnerRef(scope=scope, owner_id=owner_id), listing_id=listing_id)
    except EntitlementError as exc:
        raise_http_error(exc)
    return EntitlementsResponse.from_snapshot(snapshot)


@router.get("/{scope}/{owner_id}/gates", response_model=FeatureGatesResponse)
def get_feature_gates(
    scope: OwnerScope,
    owner_id: str,
    features: Optional[List[FeatureKey]] = Query(default=None, alias="feature"),
    listing_id: Optional[str] = Query(default=None, alias="listingId"),
    *,
    actor: Actor = Depends(get_current_actor),
) -> FeatureGatesResponse:
    engine = get_engine()
    try:
        gates = engine.get_feature_gates(
            OwnerRef(scope=scope, owner_id=owner_id),
            features or None,
            listing_id=listing_id,
        )
    except EntitlementError as exc:
        raise_http_error(exc)
    return FeatureGatesResponse(gates=gates)


@router.get("/{scope}/{owner_id}/gates/{feature}", response_model=FeatureGateResponse)
def get_feature_gate(
    scope: OwnerScope,
    owner_id: str,
    feature: FeatureKey,
    listing_id: Optional[str] = Query(default=None, alias="listingId"),
    *,
    actor: Actor = Depends(get_current_actor),
) -> FeatureGateResponse:
    engine = get_engine()
    try:
        gate = engine.get_feature_gate(OwnerRef(scope=scope, owner_id=owner_id), feature, listing_id=listing_id)
    except EntitlementError as exc:
        raise_http_error(exc)
    return FeatureGateResponse(feature=feature, gate=gate)
