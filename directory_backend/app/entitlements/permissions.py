"""Privilege checks for billing mutations."""
from __future__ import annotations

from .exceptions import Forbidden
from .models import Actor, ActorRole

ROLE_HIERARCHY = {
    ActorRole.VIEWER: 1,
    ActorRole.EDITOR: 2,
    ActorRole.ADMIN: 3,
    ActorRole.SUPERADMIN: 4,
}

BILLING_MUTATION_MIN_ROLE = ActorRole.ADMIN


def can_mutate_billing(actor: Actor) -> bool:
    return ROLE_HIERARCHY[actor.role] >= ROLE_HIERARCHY[BILLING_MUTATION_MIN_ROLE]


def require_billing_privilege(actor: Actor, action: str) -> None:
    """Raise :class:`Forbidden` unless the actor holds one of the two highest tiers."""

    if not can_mutate_billing(actor):
        raise Forbidden(
            f"Role {actor.role.value} may not {action}",
            detail={"actor_id": actor.user_id, "role": actor.role.value, "action": action},
        )
