"""Entitlement engine configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

MIN_CACHE_TTL_SECONDS = 60


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for caching, expiry classification and billing defaults."""

    cache_ttl_seconds: int
    addon_monthly_expiring_days: int
    addon_yearly_expiring_days: int
    subscription_expiring_within_days: int
    default_currency: str


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_currency(value: Optional[str], *, default: str) -> str:
    code = (value or "").strip().upper() or default
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Expected a 3-letter currency code, got {value!r}")
    return code


def load_engine_config(env: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Load :class:`EngineConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    cache_ttl_seconds = max(
        MIN_CACHE_TTL_SECONDS,
        _to_int(env_mapping.get("ENTITLEMENT_CACHE_TTL_SECONDS"), default=300),
    )
    monthly_days = max(0, _to_int(env_mapping.get("ADDON_MONTHLY_EXPIRING_DAYS"), default=5))
    yearly_days = max(0, _to_int(env_mapping.get("ADDON_YEARLY_EXPIRING_DAYS"), default=45))
    expiring_within = max(0, _to_int(env_mapping.get("SUBSCRIPTION_EXPIRING_WITHIN_DAYS"), default=7))
    currency = _to_currency(env_mapping.get("BILLING_DEFAULT_CURRENCY"), default="HUF")

    return EngineConfig(
        cache_ttl_seconds=cache_ttl_seconds,
        addon_monthly_expiring_days=monthly_days,
        addon_yearly_expiring_days=yearly_days,
        subscription_expiring_within_days=expiring_within,
        default_currency=currency,
    )
