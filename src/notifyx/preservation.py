"""Preservation cache — keep render artifacts across parent rebuilds.

keep(artifact, key) returns the artifact cached under key, storing the
given one on a miss. A parent that rebuilds can therefore hand back the
same child object instead of rebuilding a subtree that does not depend
on the state that changed.

Keys: an explicit key always wins. Without one, the key is derived from
the artifact's type plus a signature of its content identity: its ``key``
attribute when it has one, else its repr, else (for classes that keep the
address-bearing default repr) its instance attributes. Structurally equal
artifacts therefore land in the same slot on every call. id()-based keys
are never used: object identity is not stable once the original is
collected.

Eviction runs when the cache is full: first every entry idle for longer
than idle_seconds, then, if still full, the least recently used half.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Callable, Hashable, Sequence, TypeVar

A = TypeVar("A")

logger = logging.getLogger("notifyx.preservation")

DEFAULT_CAPACITY = 1000
DEFAULT_IDLE_SECONDS = 5 * 60

_MISSING = object()


class CacheEntry:
    __slots__ = ("key", "artifact", "last_accessed", "build_count")

    def __init__(self, key: Hashable, artifact: object, now: float) -> None:
        self.key = key
        self.artifact = artifact
        self.last_accessed = now
        self.build_count = 0

    def __repr__(self) -> str:
        return f"CacheEntry({self.key!r}, builds={self.build_count})"


def _fields(obj: object) -> dict[str, object]:
    fields: dict[str, object] = dict(getattr(obj, "__dict__", {}))
    for cls in type(obj).__mro__:
        slots = cls.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name in ("__dict__", "__weakref__") or name in fields:
                continue
            value = getattr(obj, name, _MISSING)
            if value is not _MISSING:
                fields[name] = value
    return fields


def _signature(obj: object, seen: frozenset[int] = frozenset()) -> str:
    # A class without its own __repr__ would print its address, so fall
    # back to the instance's attributes instead.
    if type(obj).__repr__ is not object.__repr__:
        return repr(obj)
    if id(obj) in seen:
        return "<cycle>"
    seen = seen | {id(obj)}
    parts = (f"{name}={_signature(value, seen)}" for name, value in sorted(_fields(obj).items()))
    return f"{type(obj).__qualname__}({', '.join(parts)})"


def structural_key(artifact: object) -> str:
    """Deterministic key from the artifact's type and content identity."""
    kind = type(artifact).__qualname__
    identity = getattr(artifact, "key", None)
    content = repr(identity) if identity is not None else _signature(artifact)
    digest = hashlib.blake2b(f"{kind}:{content}".encode(), digest_size=8).hexdigest()
    return f"{kind}_{digest}"


class PreservationCache:
    """Bounded, key-addressed cache of retained artifacts."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        idle_seconds: float = DEFAULT_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.capacity = capacity
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}

    def keep(self, artifact: A, key: Hashable | None = None) -> A:
        """Return the artifact preserved under key, preserving this one on a miss.

        Usage:
            header = cache.keep(HeaderWidget(title), "header")
        """
        effective = key if key is not None else structural_key(artifact)
        now = self._clock()
        entry = self._entries.get(effective)
        if entry is not None:
            entry.last_accessed = now
            entry.build_count += 1
            logger.debug("Reusing preserved artifact %r (hit #%d)", effective, entry.build_count)
            return entry.artifact

        if len(self._entries) >= self.capacity:
            self._evict(now)
        self._entries[effective] = CacheEntry(effective, artifact, now)
        logger.debug("Preserved new artifact %r", effective)
        return artifact

    def keep_all(self, artifacts: Sequence[A], base_key: Hashable | None = None) -> list[A]:
        """keep() each artifact under f"{base_key}_{index}".

        Without base_key the base is a structural signature of the whole batch.
        """
        if base_key is None:
            signature = "|".join(structural_key(a) for a in artifacts)
            base_key = "batch_" + hashlib.blake2b(signature.encode(), digest_size=8).hexdigest()
        return [self.keep(artifact, f"{base_key}_{i}") for i, artifact in enumerate(artifacts)]

    def get(self, key: Hashable) -> CacheEntry | None:
        return self._entries.get(key)

    def _evict(self, now: float) -> None:
        cutoff = now - self.idle_seconds
        idle = [k for k, e in self._entries.items() if e.last_accessed < cutoff]
        for k in idle:
            del self._entries[k]

        lru = 0
        if len(self._entries) >= self.capacity:
            by_age = sorted(self._entries.values(), key=lambda e: e.last_accessed)
            for entry in by_age[: self.capacity // 2]:
                del self._entries[entry.key]
                lru += 1
        logger.debug(
            "Evicted %d idle and %d LRU entries, size now %d", len(idle), lru, len(self._entries)
        )

    def statistics(self) -> dict:
        entries = list(self._entries.values())
        return {
            "total": len(entries),
            "average_build_count": (
                sum(e.build_count for e in entries) / len(entries) if entries else 0
            ),
            "oldest_access": min((e.last_accessed for e in entries), default=None),
            "utilization": f"{len(entries) / self.capacity * 100:.1f}%",
        }

    def cleanup(self) -> None:
        self._entries.clear()
        logger.debug("Preservation cache cleared")

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


_default_cache = PreservationCache()


def keep(artifact: A, key: Hashable | None = None) -> A:
    return _default_cache.keep(artifact, key)


def keep_all(artifacts: Sequence[A], base_key: Hashable | None = None) -> list[A]:
    return _default_cache.keep_all(artifacts, base_key)


def get_preservation_statistics() -> dict:
    return _default_cache.statistics()


def cleanup_preserved() -> None:
    _default_cache.cleanup()
