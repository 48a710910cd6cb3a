"""Snapshot cache keyed by owner, invalidated by tag."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Protocol, Set

from .expiry import current_time
from .models import EntitlementSnapshot, OwnerRef


class EntitlementCache(Protocol):
    """Storage used by the entitlement service for computed snapshots."""

    def get(self, key: str) -> Optional[EntitlementSnapshot]:
        ...

    def set(self, key: str, value: EntitlementSnapshot, expires_at: datetime, tags: Set[str]) -> None:
        ...

    def invalidate(self, tags: Iterable[str]) -> None:
        ...


class EntitlementInvalidator(Protocol):
    """Receives the ``entitlements_changed`` signal after every committed mutation."""

    def entitlements_changed(self, owner: OwnerRef) -> None:
        ...


@dataclass
class _Slot:
    snapshot: EntitlementSnapshot
    expires_at: datetime
    tags: Set[str] = field(default_factory=set)


class InMemoryEntitlementCache:
    """Process-local cache; safe to share between request threads."""

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._slots: Dict[str, _Slot] = {}
        self._keys_by_tag: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def get(self, key: str) -> Optional[EntitlementSnapshot]:
        now = current_time(self._clock)
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                return None
            if now >= slot.expires_at:
                self._drop(key)
                return None
            return slot.snapshot

    def set(
        self,
        key: str,
        value: EntitlementSnapshot,
        expires_at: datetime,
        tags: Set[str],
    ) -> None:
        if expires_at <= current_time(self._clock):
            return
        with self._lock:
            self._drop(key)
            self._slots[key] = _Slot(snapshot=value, expires_at=expires_at, tags=set(tags))
            for tag in tags:
                self._keys_by_tag.setdefault(tag, set()).add(key)

    def invalidate(self, tags: Iterable[str]) -> None:
        with self._lock:
            doomed: Set[str] = set()
            for tag in tags:
                doomed.update(self._keys_by_tag.get(tag, ()))
            for key in doomed:
                self._drop(key)

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()
            self._keys_by_tag.clear()

    def _drop(self, key: str) -> None:
        slot = self._slots.pop(key, None)
        if slot is None:
            return
        for tag in slot.tags:
            keys = self._keys_by_tag.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._keys_by_tag[tag]
