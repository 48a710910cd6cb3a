"""Subscription lifecycle domain."""

from .lifecycle import Transition, plan_transition
from .locks import KeyedLocks
from .models import ChangeType, SubscriptionHistoryEntry
from .repository import PostgresSubscriptionHistoryRecorder, PostgresSubscriptionRepository
from .service import SubscriptionHistoryRecorder, SubscriptionLifecycleManager, SubscriptionRepository

__all__ = [
    "Transition",
    "plan_transition",
    "KeyedLocks",
    "ChangeType",
    "SubscriptionHistoryEntry",
    "PostgresSubscriptionHistoryRecorder",
    "PostgresSubscriptionRepository",
    "SubscriptionHistoryRecorder",
    "SubscriptionLifecycleManager",
    "SubscriptionRepository",
]
