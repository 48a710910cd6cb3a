"""Lazy expiry: status derived from stored state and the wall clock.

Nothing here writes. EXPIRED is computed whenever a record is read or a
transition is attempted, so no scheduled job is needed.
"""
from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from .models import (
    AddonKey,
    AddonStatus,
    BillingPeriod,
    ExpiryProximity,
    FeatureAddonSubscription,
    SubscriptionStatus,
)

MONTHLY_EXPIRING_SOON_DAYS = 5
YEARLY_EXPIRING_SOON_DAYS = 45

_ACCESS_GRANTING = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED})


def current_time(clock: Optional[Callable[[], datetime]] = None) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(value: datetime, months: int) -> datetime:
    """Shift ``value`` by calendar months, clamping the day to the month's end."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def first_day_of_next_month(now: datetime) -> datetime:
    return add_months(now.replace(day=1, hour=0, minute=0, second=0, microsecond=0), 1)


def period_end(start: datetime, billing_period: BillingPeriod) -> datetime:
    if billing_period == BillingPeriod.YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


def effective_status(
    stored: SubscriptionStatus,
    valid_until: Optional[datetime],
    now: datetime,
) -> SubscriptionStatus:
    """Return the status a subscription has at ``now``."""

    if valid_until is not None and now >= valid_until:
        return SubscriptionStatus.EXPIRED
    return stored


def grants_access(
    stored: SubscriptionStatus,
    valid_until: Optional[datetime],
    now: datetime,
) -> bool:
    """CANCELLED keeps access until ``valid_until``; SUSPENDED and EXPIRED never do."""

    return effective_status(stored, valid_until, now) in _ACCESS_GRANTING


def effective_addon_status(addon: FeatureAddonSubscription, now: datetime) -> AddonStatus:
    if now >= addon.current_period_end:
        return AddonStatus.EXPIRED
    return addon.status


def addon_is_current(addon: Optional[FeatureAddonSubscription], now: datetime) -> bool:
    """Whether an add-on grants its feature at ``now``."""

    if addon is None:
        return False
    return effective_addon_status(addon, now) in {AddonStatus.ACTIVE, AddonStatus.CANCELLED}


def select_current_addon(
    addons: Iterable[FeatureAddonSubscription],
    addon_key: AddonKey,
    now: datetime,
) -> Optional[FeatureAddonSubscription]:
    """The record granting ``addon_key`` at ``now``.

    Lapsed records are skipped whatever their stored status. Among the rest an
    active record wins over a cancelled one, then the newest.
    """

    current = [addon for addon in addons if addon.addon_key == addon_key and addon_is_current(addon, now)]
    if not current:
        return None
    return max(current, key=lambda addon: (addon.status == AddonStatus.ACTIVE, addon.created_at))


def days_remaining(current_period_end: datetime, now: datetime) -> int:
    return (current_period_end - now).days


def classify_expiry(
    current_period_end: datetime,
    billing_period: BillingPeriod,
    now: datetime,
    *,
    monthly_threshold_days: int = MONTHLY_EXPIRING_SOON_DAYS,
    yearly_threshold_days: int = YEARLY_EXPIRING_SOON_DAYS,
) -> ExpiryProximity:
    """Classify how close a period end is, for display only."""

    remaining = days_remaining(current_period_end, now)
    if remaining < 0 or now >= current_period_end:
        return ExpiryProximity.EXPIRED
    threshold = yearly_threshold_days if billing_period == BillingPeriod.YEARLY else monthly_threshold_days
    if remaining <= threshold:
        return ExpiryProximity.EXPIRING_SOON
    return ExpiryProximity.ACTIVE
