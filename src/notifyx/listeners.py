"""listen_vm — ownership-bound subscriptions from a view-model to another source.

A source is anything with add_listener/remove_listener and a ``current``
value: a Container or a view-model. Any number of subscriptions may target
the same source.

The registry, not the owner, remembers which subscriptions an owner made.
When the owner disposes, cancel_owner() stops all of them, so owners never
unsubscribe by hand.

No cycle detection: if A listens to B and B listens to A and both mutate
on receipt, the notifications loop forever. Don't do that.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from notifyx.errors import LifecycleError

logger = logging.getLogger("notifyx.listeners")


class Source(Protocol):
    @property
    def current(self) -> object: ...

    def add_listener(self, callback: Callable[[object], None]) -> None: ...

    def remove_listener(self, callback: Callable[[object], None]) -> None: ...


class Subscription:
    """One owner's subscription to one source."""

    __slots__ = ("_registry", "owner_id", "source", "callback", "_active")

    def __init__(self, registry: ListenerRegistry, owner_id: int, source: Source, callback) -> None:
        self._registry = registry
        self.owner_id = owner_id
        self.source = source
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._registry.cancel(self)

    def _deliver(self, value: object) -> None:
        if self._active:
            self.callback(value)

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"Subscription(owner={self.owner_id}, source={self.source!r}, {state})"


class ListenerRegistry:
    """Tracks which owner created which subscription."""

    def __init__(self) -> None:
        self._by_owner: dict[int, list[Subscription]] = {}

    def listen(
        self,
        owner,
        source: Source,
        callback: Callable[[object], None],
        *,
        call_on_init: bool = False,
    ) -> object:
        """Subscribe owner to source. Returns the source's current value.

        With call_on_init, callback also fires once right away with that value.
        """
        if owner.is_disposed:
            raise LifecycleError(f"{type(owner).__name__} is disposed and cannot listen")
        sub = Subscription(self, owner.id, source, callback)
        source.add_listener(sub._deliver)
        self._by_owner.setdefault(owner.id, []).append(sub)
        logger.debug("View-model #%d listening to %r", owner.id, source)
        current = source.current
        if call_on_init:
            callback(current)
        return current

    def cancel(self, sub: Subscription) -> None:
        if not sub._active:
            return
        sub._active = False
        sub.source.remove_listener(sub._deliver)
        subs = self._by_owner.get(sub.owner_id)
        if subs is not None:
            if sub in subs:
                subs.remove(sub)
            if not subs:
                del self._by_owner[sub.owner_id]

    def cancel_owner(self, owner_id: int) -> int:
        """Cancel every subscription owner_id created. Returns how many."""
        subs = self._by_owner.pop(owner_id, [])
        for sub in subs:
            sub._active = False
            sub.source.remove_listener(sub._deliver)
        if subs:
            logger.debug("Cancelled %d subscriptions of view-model #%d", len(subs), owner_id)
        return len(subs)

    def subscriptions_for(self, owner_id: int) -> list[Subscription]:
        return list(self._by_owner.get(owner_id, ()))

    def clear(self) -> None:
        for owner_id in list(self._by_owner):
            self.cancel_owner(owner_id)

    def __len__(self) -> int:
        return sum(len(subs) for subs in self._by_owner.values())
