"""API routes for the subscription lifecycle."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..entitlements import Actor, EntitlementError, OwnerRef, OwnerScope, Subscription
from ..schemas.subscriptions import (
    BillingDetailsRequest,
    ChangePlanRequest,
    CreateSubscriptionRequest,
    SubscriptionListResponse,
)
from ..services.engine import get_engine
from .dependencies import get_current_actor, raise_http_error

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("/expiring", response_model=SubscriptionListResponse)
def list_expiring(
    scope: Optional[OwnerScope] = Query(default=None),
    within_days: Optional[int] = Query(default=None, alias="withinDays", ge=0),
    *,
    actor: Actor = Depends(get_current_actor),
) -> SubscriptionListResponse:
    engine = get_engine()
    try:
        subscriptions = engine.list_expiring(scope, within_days)
    except (EntitlementError, ValueError) as exc:
        raise_http_error(exc)
    return SubscriptionListResponse(subscriptions=list(subscriptions))


@router.get("/{scope}/{owner_id}", response_model=Subscription)
def get_subscription(
    scope: OwnerScope,
    owner_id: str,
    *,
    actor: Actor = Depends(get_current_actor),
) -> Subscription:
    engine = get_engine()
    try:
        subscription = engine.get_subscription(OwnerRef(scope=scope, owner_id=owner_id))
    except EntitlementError as exc:
        raise_http_error(exc)
    if subscription is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return subscription


@router.post("", response_model=Subscription, status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: CreateSubscriptionRequest,
    *,
    actor: Actor = Depends(get_current_actor),
) -> Subscription:
    engine = get_engine()
    try:
        return engine.create_subscription(
            OwnerRef(scope=payload.scope, owner_id=payload.owner_id),
            payload.plan,
            actor,
            valid_until=payload.valid_until,
            billing_period=payload.billing_period,
            price_cents=payload.price_cents,
            currency=payload.currency,
            note=payload.note,
        )
    except (EntitlementError, ValueError) as exc:
        raise_http_error(exc)


@router.post("/change-plan", response_model=Subscription)
def change_plan(
    payload: ChangePlanRequest,
    *,
    actor: Actor = Depends(get_current_actor),
) -> Subscription:
    engine = get_engine()
    try:
        return engine.change_plan(OwnerRef(scope=payload.scope, owner_id=payload.owner_id), payload.plan, actor)
    except EntitlementError as exc:
        raise_http_error(exc)


@router.post("/{subscription_id}/suspend", response_model=Subscription)
def suspend_subscription(subscription_id: str, *, actor: Actor = Depends(get_current_actor)) -> Subscription:
    try:
        return get_engine().suspend(subscription_id, actor)
    except EntitlementError as exc:
        raise_http_error(exc)


@router.post("/{subscription_id}/activate", response_model=Subscription)
def activate_subscription(subscription_id: str, *, actor: Actor = Depends(get_current_actor)) -> Subscription:
    try:
        return get_engine().activate(subscription_id, actor)
    except EntitlementError as exc:
        raise_http_error(exc)


@router.post("/{subscription_id}/cancel", response_model=Subscription)
def cancel_subscription(subscription_id: str, *, actor: Actor = Depends(get_current_actor)) -> Subscription:
    try:
        return get_engine().cancel(subscription_id, actor)
    except EntitlementError as exc:
        raise_http_error(exc)


@router.post("/{subscription_id}/resume", response_model=Subscription)
def resume_subscription(subscription_id: str, *, actor: Actor = Depends(get_current_actor)) -> Subscription:
    try:
        return get_engine().resume(subscription_id, actor)
    except EntitlementError as exc:
        raise_http_error(exc)


@router.post("/{subscription_id}/extend", response_model=Subscription)
def extend_subscription(subscription_id: str, *, actor: Actor = Depends(get_current_actor)) -> Subscription:
    try:
        return get_engine().extend(subscription_id, actor)
    except EntitlementError as exc:
        raise_http_error(exc)


@router.patch("/{subscription_id}/billing", response_model=Subscription)
def update_billing_details(
    subscription_id: str,
    payload: BillingDetailsRequest,
    *,
    actor: Actor = Depends(get_current_actor),
) -> Subscription:
    try:
        return get_engine().update_billing_details(
            subscription_id,
            actor,
            price_cents=payload.price_cents,
            currency=payload.currency,
            note=payload.note,
        )
    except (EntitlementError, ValueError) as exc:
        raise_http_error(exc)
