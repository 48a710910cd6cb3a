"""API schemas for subscription and add-on endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements import (
    AddonKey,
    AddonPlanKey,
    BillingPeriod,
    ExpiryProximity,
    FeatureAddonSubscription,
    OwnerScope,
    Subscription,
)


class CreateSubscriptionRequest(BaseModel):
    scope: OwnerScope
    owner_id: str = Field(alias="ownerId")
    plan: str
    valid_until: Optional[datetime] = Field(alias="validUntil", default=None)
    billing_period: Optional[BillingPeriod] = Field(alias="billingPeriod", default=None)
    price_cents: Optional[int] = Field(alias="priceCents", default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    note: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class ChangePlanRequest(BaseModel):
    scope: OwnerScope
    owner_id: str = Field(alias="ownerId")
    plan: str

    model_config = ConfigDict(populate_by_name=True)


class BillingDetailsRequest(BaseModel):
    price_cents: Optional[int] = Field(alias="priceCents", default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    note: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionListResponse(BaseModel):
    subscriptions: List[Subscription]

    model_config = ConfigDict(populate_by_name=True)


class PurchaseAddonRequest(BaseModel):
    listing_id: str = Field(alias="listingId")
    addon_key: AddonKey = Field(alias="addonKey")
    plan_key: AddonPlanKey = Field(alias="planKey")
    billing_period: BillingPeriod = Field(alias="billingPeriod")
    current_period_end: Optional[datetime] = Field(alias="currentPeriodEnd", default=None)

    model_config = ConfigDict(populate_by_name=True)


class AddonResponse(BaseModel):
    addon: FeatureAddonSubscription
    expiry: ExpiryProximity

    model_config = ConfigDict(populate_by_name=True)


class AddonListResponse(BaseModel):
    addons: List[AddonResponse]

    model_config = ConfigDict(populate_by_name=True)
