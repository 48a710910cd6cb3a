"""Error taxonomy raised by the entitlement and lifecycle services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass(eq=False)
class EntitlementError(Exception):
    """Base class for deterministic, caller-facing engine failures."""

    message: str
    detail: Optional[Mapping[str, Any]] = None
    code: str = "entitlement_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


@dataclass(eq=False)
class Forbidden(EntitlementError):
    """The actor's privilege tier may not mutate billing state."""

    code: str = "forbidden"
    status_code: int = status.HTTP_403_FORBIDDEN


@dataclass(eq=False)
class InvalidPlan(EntitlementError):
    code: str = "invalid_plan"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass(eq=False)
class InvalidAddon(EntitlementError):
    code: str = "invalid_addon"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass(eq=False)
class TransitionNotAllowed(EntitlementError):
    """The requested lifecycle transition is illegal for the current state or time."""

    code: str = "transition_not_allowed"
    status_code: int = status.HTTP_409_CONFLICT


@dataclass(eq=False)
class SubscriptionNotFound(EntitlementError):
    code: str = "subscription_not_found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass(eq=False)
class ConcurrentModification(EntitlementError):
    """A concurrent writer committed first; the caller should re-read and retry."""

    code: str = "concurrent_modification"
    status_code: int = status.HTTP_409_CONFLICT


@dataclass(eq=False)
class DataUnavailable(EntitlementError):
    """Usage or persistence storage could not be reached; never reported as zero usage."""

    code: str = "data_unavailable"
    status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE


__all__ = [
    "ConcurrentModification",
    "DataUnavailable",
    "EntitlementError",
    "Forbidden",
    "InvalidAddon",
    "InvalidPlan",
    "SubscriptionNotFound",
    "TransitionNotAllowed",
]
