"""Context attachment — the seam to the rendering layer.

The rendering layer signals that a mount point has a context with
attach(owner_id, context) and withdraws it with detach(owner_id).
View-models register as consumers of an owner's context; a consumer
resolves to its owner's context, falling back to the most recently
attached one.

Consumers that must wait for a context (wait_for_context) park here via
await_context() and are signalled through on_context_attached(context)
on the next attach.

A consumer that raises from on_context_attached() is logged; the other
consumers are still signalled.
"""

from __future__ import annotations

import logging
from typing import Hashable, Protocol

from notifyx.errors import ContextUnavailableError

logger = logging.getLogger("notifyx.context")


class ContextConsumer(Protocol):
    def on_context_attached(self, context: object) -> None: ...


class ContextService:
    """Tracks attached contexts and the consumers that read them."""

    def __init__(self) -> None:
        # Insertion order is attach order; the last entry is the most recent.
        self._contexts: dict[Hashable, object] = {}
        self._consumers: dict[Hashable, list[ContextConsumer]] = {}
        self._waiting: list[ContextConsumer] = []

    # --- Rendering-layer signal ---

    def attach(self, owner_id: Hashable, context: object) -> None:
        self._contexts.pop(owner_id, None)
        self._contexts[owner_id] = context
        logger.debug("Context attached for %r", owner_id)
        targets = list(self._consumers.get(owner_id, ()))
        waiting, self._waiting = self._waiting, []
        for consumer in waiting:
            if consumer not in targets:
                targets.append(consumer)
        for consumer in targets:
            self._signal(consumer, context)

    def detach(self, owner_id: Hashable) -> None:
        if self._contexts.pop(owner_id, None) is not None:
            logger.debug("Context detached for %r", owner_id)

    @property
    def current(self) -> object | None:
        """The most recently attached context, if any."""
        if not self._contexts:
            return None
        return next(reversed(self._contexts.values()))

    # --- Consumers ---

    def register_context_consumer(self, owner_id: Hashable, consumer: ContextConsumer) -> None:
        consumers = self._consumers.setdefault(owner_id, [])
        if consumer not in consumers:
            consumers.append(consumer)
        context = self._contexts.get(owner_id)
        if context is not None:
            self._discard_waiting(consumer)
            self._signal(consumer, context)

    def unregister_context_consumer(self, owner_id: Hashable, consumer: ContextConsumer) -> None:
        consumers = self._consumers.get(owner_id)
        if not consumers:
            return
        if consumer in consumers:
            consumers.remove(consumer)
        if not consumers:
            del self._consumers[owner_id]

    def await_context(self, consumer: ContextConsumer) -> None:
        """Park consumer until the next attach() of any owner."""
        if consumer not in self._waiting:
            self._waiting.append(consumer)

    def forget(self, consumer: ContextConsumer) -> None:
        """Drop every registration of consumer. Called when it disposes."""
        for owner_id in [o for o, cs in self._consumers.items() if consumer in cs]:
            self.unregister_context_consumer(owner_id, consumer)
        self._discard_waiting(consumer)

    def context_for(self, consumer: ContextConsumer) -> object | None:
        for owner_id in reversed(list(self._contexts)):
            if consumer in self._consumers.get(owner_id, ()):
                return self._contexts[owner_id]
        return self.current

    def has_context(self, consumer: ContextConsumer) -> bool:
        return self.context_for(consumer) is not None

    def require_context(self, consumer: ContextConsumer) -> object:
        context = self.context_for(consumer)
        if context is None:
            raise ContextUnavailableError(
                f"No context has been attached for {type(consumer).__name__}"
            )
        return context

    def clear(self) -> None:
        self._contexts.clear()
        self._consumers.clear()
        self._waiting.clear()

    def _signal(self, consumer: ContextConsumer, context: object) -> None:
        # One failing consumer must not strand the others still waiting.
        try:
            consumer.on_context_attached(context)
        except Exception:
            logger.exception("Context consumer %r failed on attach", consumer)

    def _discard_waiting(self, consumer: ContextConsumer) -> None:
        if consumer in self._waiting:
            self._waiting.remove(consumer)
