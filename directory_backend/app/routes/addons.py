"""API routes for per-listing feature add-ons."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..entitlements import Actor, EntitlementError, FeatureAddonSubscription
from ..schemas.subscriptions import AddonListResponse, AddonResponse, PurchaseAddonRequest
from ..services.engine import EntitlementEngine, get_engine
from .dependencies import get_current_actor, raise_http_error

router = APIRouter(prefix="/api/addons", tags=["addons"])


def _to_response(engine: EntitlementEngine, addon: FeatureAddonSubscription) -> AddonResponse:
    return AddonResponse(addon=addon, expiry=engine.addons.expiry_of(addon))


@router.post("", response_model=AddonResponse, status_code=status.HTTP_201_CREATED)
def purchase_addon(
    payload: PurchaseAddonRequest,
    *,
    actor: Actor = Depends(get_current_actor),
) -> AddonResponse:
    engine = get_engine()
    try:
        addon = engine.purchase_addon(
            payload.listing_id,
            payload.addon_key,
            payload.plan_key,
            payload.billing_period,
            actor,
            current_period_end=payload.current_period_end,
        )
    except (EntitlementError, ValueError) as exc:
        raise_http_error(exc)
    return _to_response(engine, addon)


@router.post("/{addon_subscription_id}/cancel", response_model=AddonResponse)
def cancel_addon(
    addon_subscription_id: str,
    *,
    actor: Actor = Depends(get_current_actor),
) -> AddonResponse:
    engine = get_engine()
    try:
        addon = engine.cancel_addon(addon_subscription_id, actor)
    except EntitlementError as exc:
        raise_http_error(exc)
    return _to_response(engine, addon)


@router.post("/{addon_subscription_id}/resume", response_model=AddonResponse)
def resume_addon(
    addon_subscription_id: str,
    *,
    actor: Actor = Depends(get_current_actor),
) -> AddonResponse:
    engine = get_engine()
    try:
        addon = engine.resume_addon(addon_subscription_id, actor)
    except EntitlementError as exc:
        raise_http_error(exc)
    return _to_response(engine, addon)


@router.get("/listing/{listing_id}", response_model=AddonListResponse)
def list_addons(
    listing_id: str,
    *,
    actor: Actor = Depends(get_current_actor),
) -> AddonListResponse:
    engine = get_engine()
    try:
        addons = engine.list_addons(listing_id)
    except EntitlementError as exc:
        raise_http_error(exc)
    return AddonListResponse(addons=[_to_response(engine, addon) for addon in addons])
