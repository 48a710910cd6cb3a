"""Records describing changes made to primary subscriptions."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import OwnerScope, PlanKey, SubscriptionStatus


class ChangeType(str, Enum):
    """Kinds of subscription history entries."""

    CREATED = "CREATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    PLAN_CHANGE = "PLAN_CHANGE"
    EXTENSION = "EXTENSION"
    UPDATE = "UPDATE"


class SubscriptionHistoryEntry(BaseModel):
    """One committed change of a subscription, for the admin audit trail."""

    subscription_id: str
    scope: OwnerScope
    change_type: ChangeType
    old_plan: Optional[PlanKey] = None
    new_plan: Optional[PlanKey] = None
    old_status: Optional[SubscriptionStatus] = None
    new_status: Optional[SubscriptionStatus] = None
    old_valid_until: Optional[datetime] = None
    new_valid_until: Optional[datetime] = None
    amount_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = None
    note: Optional[str] = None
    changed_by: Optional[str] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)
