"""Transition table for primary subscriptions.

Every check runs against the *effective* status, so a record whose
``valid_until`` has passed is treated as EXPIRED even if the stored value
still says ACTIVE or CANCELLED.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from ..entitlements.exceptions import TransitionNotAllowed
from ..entitlements.models import SubscriptionStatus


class Transition(str, Enum):
    SUSPEND = "suspend"
    ACTIVATE = "activate"
    CANCEL = "cancel"
    RESUME = "resume"


@dataclass(frozen=True)
class TransitionRule:
    source: SubscriptionStatus
    target: SubscriptionStatus


TRANSITIONS: Dict[Transition, TransitionRule] = {
    Transition.SUSPEND: TransitionRule(SubscriptionStatus.ACTIVE, SubscriptionStatus.SUSPENDED),
    Transition.ACTIVATE: TransitionRule(SubscriptionStatus.SUSPENDED, SubscriptionStatus.ACTIVE),
    Transition.CANCEL: TransitionRule(SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED),
    Transition.RESUME: TransitionRule(SubscriptionStatus.CANCELLED, SubscriptionStatus.ACTIVE),
}

PLAN_CHANGE_STATUSES: FrozenSet[SubscriptionStatus] = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}
)


def plan_transition(current: SubscriptionStatus, transition: Transition) -> Optional[SubscriptionStatus]:
    """Return the status to write, or ``None`` when the record is already there.

    Raises :class:`TransitionNotAllowed` for every other starting state.
    """

    rule = TRANSITIONS[transition]
    if current == rule.target:
        return None
    if current == rule.source:
        return rule.target
    raise TransitionNotAllowed(
        f"Cannot {transition.value} a subscription that is {current.value}",
        detail={"transition": transition.value, "status": current.value},
    )


def ensure_plan_change_allowed(current: SubscriptionStatus) -> None:
    if current not in PLAN_CHANGE_STATUSES:
        raise TransitionNotAllowed(
            f"Cannot change the plan of a subscription that is {current.value}",
            detail={"transition": "change_plan", "status": current.value},
        )


def ensure_extension_allowed(current: SubscriptionStatus) -> None:
    if current == SubscriptionStatus.EXPIRED:
        raise TransitionNotAllowed(
            "Cannot extend an expired subscription; purchase a new one instead",
            detail={"transition": "extend", "status": current.value},
        )
