"""Container — singleton holder of a value, its listeners and its owners.

Containers are created through a Registry (one live container per key).
Mutations notify listeners synchronously, in registration order, before
returning. Silent mutations notify nobody.

Reference counting: rendering-layer mount points call add_reference() and
remove_reference(). When the last owner leaves an auto_dispose container,
the container disposes itself and, if it holds a view-model, disposes that
too.

Thread safety: call set_scheduler() once from the main thread. After that,
any mutation from a background thread is auto-marshaled. Main-thread
mutations remain synchronous.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Generic, Hashable, Iterable, TypeVar

from notifyx._tracking import deliver
from notifyx.errors import InitializationError, LifecycleError

if TYPE_CHECKING:
    from notifyx.registry import Registry

T = TypeVar("T")

logger = logging.getLogger("notifyx.container")

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for cross-thread container mutations.

    Call once from the main/UI thread:
        notifyx.set_scheduler(app.call_from_thread)

    Pass None to go back to running every mutation inline.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def _marshal(fn: Callable[[], None]) -> None:
    if _scheduler is not None and threading.current_thread() != _scheduler_thread:
        _scheduler(fn)
    else:
        fn()


class Container(Generic[T]):
    """A keyed, reference-counted holder of a single value."""

    def __init__(
        self,
        key: Hashable,
        factory: Callable[[], T],
        *,
        registry: Registry,
        auto_dispose: bool = False,
        related: Iterable[Container] | None = None,
    ) -> None:
        self._key = key
        self._factory = factory
        self._registry = registry
        self._auto_dispose = auto_dispose
        self._related: tuple[Container, ...] = tuple(related or ())
        self._lock = threading.RLock()
        self._listeners: list[Callable[[object], None]] = []
        self._owners: set[Hashable] = set()
        self._disposed = False
        self._version = 0
        self._value: T = self._build()
        self._holds_viewmodel = False
        self._bind_value()
        self._bind_related()

    # --- Introspection ---

    @property
    def key(self) -> Hashable:
        return self._key

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def value(self) -> T:
        return self._value

    @property
    def current(self) -> object:
        """What listeners receive: the view-model's current value, or the raw value."""
        if self._holds_viewmodel:
            return self._value.current
        return self._value

    @property
    def holds_viewmodel(self) -> bool:
        return self._holds_viewmodel

    @property
    def version(self) -> int:
        return self._version

    @property
    def ref_count(self) -> int:
        return len(self._owners)

    @property
    def owners(self) -> frozenset:
        return frozenset(self._owners)

    @property
    def auto_dispose(self) -> bool:
        return self._auto_dispose

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def related(self) -> tuple[Container, ...]:
        return self._related

    @property
    def has_listeners(self) -> bool:
        return bool(self._listeners)

    # --- Listeners ---

    def add_listener(self, callback: Callable[[object], None]) -> None:
        self._ensure_alive()
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[object], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass  # already removed

    # --- Mutation ---

    def update_state(self, value: T) -> None:
        """Replace the value and notify every listener before returning."""
        self._ensure_mutable()
        _marshal(lambda: self._set(value, notify=True))

    def update_silently(self, value: T) -> None:
        self._ensure_mutable()
        _marshal(lambda: self._set(value, notify=False))

    def transform_state(self, fn: Callable[[T], T]) -> None:
        self._ensure_mutable()
        _marshal(lambda: self._set(fn(self._value), notify=True))

    def transform_state_silently(self, fn: Callable[[T], T]) -> None:
        self._ensure_mutable()
        _marshal(lambda: self._set(fn(self._value), notify=False))

    def _set(self, value: T, *, notify: bool) -> None:
        self._ensure_alive()
        self._value = value
        if notify:
            self._version += 1
            self._notify()

    def _notify(self) -> None:
        deliver(list(self._listeners), self.current, source=self)

    # --- Reference counting ---

    def add_reference(self, owner_id: Hashable) -> None:
        with self._lock:
            self._ensure_alive()
            self._owners.add(owner_id)
        logger.debug("Container %r referenced by %r (count=%d)", self._key, owner_id, self.ref_count)

    def remove_reference(self, owner_id: Hashable) -> None:
        """Drop an owner. The last owner out of an auto_dispose container disposes it."""
        with self._lock:
            self._owners.discard(owner_id)
            if not self._owners and self._auto_dispose and not self._disposed:
                logger.debug("Container %r lost its last reference, auto-disposing", self._key)
                self.dispose()

    # --- Lifecycle ---

    def dispose(self) -> None:
        """Tear the container down. Idempotent."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._owners.clear()
        self._registry._unregister(self)
        self._listeners.clear()
        self._unbind_related()
        if self._holds_viewmodel:
            self._value.remove_listener(self._forward)
            self._value.dispose()
        logger.debug("Container %r disposed", self._key)

    def recreate(self) -> T:
        """Re-run the factory with a clean slate. Works on live and disposed containers."""
        with self._lock:
            fresh = self._build()
            try:
                self._registry._register(self)
            except LifecycleError:
                if getattr(fresh, "_notifyx_viewmodel", False):
                    fresh.dispose()
                raise
            was_disposed = self._disposed
            if self._holds_viewmodel and not was_disposed:
                self._value.remove_listener(self._forward)
                self._value.dispose()
            self._value = fresh
            self._owners.clear()
            self._disposed = False
            self._bind_value()
            if was_disposed:
                self._bind_related()
        logger.debug("Container %r recreated", self._key)
        if not was_disposed:
            self._version += 1
            self._notify()
        return fresh

    # --- Internals ---

    def _build(self) -> T:
        try:
            with self._registry._building():
                return self._factory()
        except InitializationError:
            raise
        except Exception as exc:
            raise InitializationError(
                f"Factory for container {self._key!r} raised {type(exc).__name__}",
                key=self._key,
            ) from exc

    def _bind_value(self) -> None:
        # Capability tag, resolved once per value.
        self._holds_viewmodel = bool(getattr(self._value, "_notifyx_viewmodel", False))
        if self._holds_viewmodel:
            self._value.add_listener(self._forward)

    def _forward(self, value: object) -> None:
        if self._disposed:
            return
        self._version += 1
        deliver(list(self._listeners), value, source=self)

    def _bind_related(self) -> None:
        for other in self._related:
            if not other.disposed:
                other.add_listener(self._on_related_changed)

    def _unbind_related(self) -> None:
        for other in self._related:
            other.remove_listener(self._on_related_changed)

    def _on_related_changed(self, _value: object) -> None:
        if not self._disposed:
            self._notify()

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise LifecycleError(f"Container {self._key!r} is disposed")

    def _ensure_mutable(self) -> None:
        self._ensure_alive()
        if self._holds_viewmodel:
            raise TypeError(
                f"Container {self._key!r} holds a view-model; mutate it through the view-model"
            )

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"refs={len(self._owners)}"
        return f"Container({self._key!r}, {self._value!r}, {state})"
