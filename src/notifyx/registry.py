"""Registry — key → Container map with create-or-get and teardown.

A Registry is an explicit object: tests construct their own instead of
sharing process-wide state. The module keeps one default registry for
application code, swappable with set_registry().

While a Registry runs a factory it is the active registry (a contextvar),
so view-models constructed inside the factory bind to it rather than to
the default.

All register/unregister/lookup sequences hold a single lock, so a dispose
racing a lookup can never hand out a disposed or doubly-initialized
container.
"""

from __future__ import annotations

import contextvars
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Hashable, Iterable, TypeVar

from notifyx.container import Container
from notifyx.context import ContextService
from notifyx.errors import LifecycleError
from notifyx.listeners import ListenerRegistry

T = TypeVar("T")

logger = logging.getLogger("notifyx.registry")


class Registry:
    """Owns the containers, the listen_vm subscriptions and the context service."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._containers: dict[Hashable, Container] = {}
        self.subscriptions = ListenerRegistry()
        self.contexts = ContextService()

    def create_or_get(
        self,
        key: Hashable,
        factory: Callable[[], T],
        *,
        auto_dispose: bool = False,
        related: Iterable[Container] | None = None,
    ) -> Container[T]:
        """Return the live container for key, or build one by calling factory once.

        A raising factory raises InitializationError and registers nothing.

        Usage:
            counter = registry.create_or_get("counter", lambda: 0)
            counter.update_state(counter.value + 1)
        """
        with self._lock:
            existing = self._containers.get(key)
            if existing is not None and not existing.disposed:
                return existing
            container = Container(
                key, factory, registry=self, auto_dispose=auto_dispose, related=related
            )
            self._containers[key] = container
        logger.debug("Created container %r", key)
        return container

    def get(self, key: Hashable) -> Container | None:
        with self._lock:
            return self._containers.get(key)

    def clean(self, key: Hashable) -> bool:
        """Dispose the container under key. Returns False if there was none."""
        container = self.get(key)
        if container is None:
            return False
        container.dispose()
        return True

    def cleanup_all(self) -> None:
        """Dispose every container and drop all subscriptions and contexts."""
        with self._lock:
            containers = list(self._containers.values())
            self._containers.clear()
        for container in containers:
            container.dispose()
        self.subscriptions.clear()
        self.contexts.clear()
        logger.debug("Registry cleaned up (%d containers)", len(containers))

    @property
    def instances(self) -> list[Container]:
        with self._lock:
            return list(self._containers.values())

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._containers

    def __len__(self) -> int:
        with self._lock:
            return len(self._containers)

    # --- Called by Container ---

    @contextmanager
    def _building(self):
        """Make this the active registry while a factory runs."""
        token = _active.set(self)
        try:
            yield
        finally:
            _active.reset(token)

    def _register(self, container: Container) -> None:
        with self._lock:
            existing = self._containers.get(container.key)
            if existing is not None and existing is not container and not existing.disposed:
                raise LifecycleError(
                    f"Another live container is already registered under {container.key!r}"
                )
            self._containers[container.key] = container

    def _unregister(self, container: Container) -> None:
        with self._lock:
            if self._containers.get(container.key) is container:
                del self._containers[container.key]

    def __repr__(self) -> str:
        return f"Registry({len(self)} containers)"


_default = Registry()

# The registry whose factory is currently running, if any.
_active: contextvars.ContextVar[Registry | None] = contextvars.ContextVar(
    "active_registry", default=None
)


def get_registry() -> Registry:
    """The registry new view-models bind to."""
    active = _active.get()
    return active if active is not None else _default


def set_registry(registry: Registry) -> None:
    """Replace the default registry. Existing containers are left alone."""
    global _default
    _default = registry


def create_or_get(
    key: Hashable,
    factory: Callable[[], T],
    *,
    auto_dispose: bool = False,
    related: Iterable[Container] | None = None,
) -> Container[T]:
    return get_registry().create_or_get(key, factory, auto_dispose=auto_dispose, related=related)


def cleanup_all() -> None:
    get_registry().cleanup_all()
