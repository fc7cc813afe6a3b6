"""View-models — values that own a lifecycle on top of a container.

Lifecycle:

    CONSTRUCTED → INITIALIZING → LISTENERS_READY → ACTIVE → DISPOSED

DISPOSED is terminal and reachable from any other state.

Construction runs init(), then setup_listeners(), then on_resume(data).
A synchronous init() failure propagates as InitializationError: there is
no safe default state to fall back to. With wait_for_context the sequence
is deferred until the rendering layer attaches a context.

Every mutation calls on_state_changed(previous, current) before listeners
are notified. Calling a mutator on the same view-model from inside that
hook is rejected with StateHookReentryError.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Generic, TypeVar

from notifyx._tracking import check_not_in_hook, deliver, new_id, run_state_hook
from notifyx.errors import InitializationError, LifecycleError
from notifyx.registry import Registry, get_registry

T = TypeVar("T")

logger = logging.getLogger("notifyx.viewmodel")


class Lifecycle(enum.Enum):
    CONSTRUCTED = "constructed"
    INITIALIZING = "initializing"
    LISTENERS_READY = "listeners_ready"
    ACTIVE = "active"
    DISPOSED = "disposed"


class ViewModelCore(Generic[T]):
    """Lifecycle, listeners, context access and listen_vm shared by both flavors."""

    # Capability tag read once by Container when it takes this value.
    _notifyx_viewmodel = True

    def __init__(self, *, wait_for_context: bool = False, registry: Registry | None = None) -> None:
        self._id = new_id()
        self._registry = registry if registry is not None else get_registry()
        self._listeners: list[Callable[[object], None]] = []
        self._lifecycle = Lifecycle.CONSTRUCTED
        self._version = 0
        self.wait_for_context = wait_for_context

    @property
    def id(self) -> int:
        return self._id

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def is_disposed(self) -> bool:
        return self._lifecycle is Lifecycle.DISPOSED

    @property
    def version(self) -> int:
        return self._version

    @property
    def current(self) -> object:
        raise NotImplementedError

    # --- Hooks for subclasses ---

    def setup_listeners(self) -> None:
        """Register listen_vm subscriptions and other listeners. Runs after init()."""

    def remove_listeners(self) -> None:
        """Undo setup_listeners(). Runs on reload() and dispose()."""

    def on_resume(self, data) -> None:
        """Called once per successful init cycle, after setup_listeners()."""

    def on_state_changed(self, previous, current) -> None:
        """Called synchronously on every mutation, before listeners."""

    def on_context_attached(self, context: object) -> None:
        pass

    # --- Listeners ---

    def add_listener(self, callback: Callable[[object], None]) -> None:
        self._ensure_alive()
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[object], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    @property
    def has_listeners(self) -> bool:
        return bool(self._listeners)

    # --- Cross-container listening ---

    def listen_vm(self, source, callback: Callable[[object], None], *, call_on_init: bool = False):
        """Subscribe to another container or view-model until this one disposes.

        Returns the source's current value.

        Usage:
            def setup_listeners(self):
                self.listen_vm(
                    registry.create_or_get("user", UserViewModel),
                    self._on_user_changed,
                    call_on_init=True,
                )
        """
        return self._registry.subscriptions.listen(self, source, callback, call_on_init=call_on_init)

    # --- Context ---

    @property
    def has_context(self) -> bool:
        return self._registry.contexts.has_context(self)

    @property
    def context(self) -> object | None:
        return self._registry.contexts.context_for(self)

    def require_context(self) -> object:
        return self._registry.contexts.require_context(self)

    # --- Disposal ---

    def dispose(self) -> None:
        """Remove listeners and subscriptions, then become DISPOSED. Idempotent."""
        if self._lifecycle is Lifecycle.DISPOSED:
            return
        try:
            self.remove_listeners()
        finally:
            self._registry.subscriptions.cancel_owner(self._id)
            self._registry.contexts.forget(self)
            self._listeners.clear()
            self._set_lifecycle(Lifecycle.DISPOSED)

    # --- Internals ---

    def _release(self) -> None:
        self.remove_listeners()
        self._registry.subscriptions.cancel_owner(self._id)

    def _commit(self, previous, current, *, notify: bool) -> None:
        run_state_hook(self._id, self.on_state_changed, previous, current)
        if notify:
            self._version += 1
            deliver(list(self._listeners), self.current, source=self)

    def _ensure_mutable(self) -> None:
        self._ensure_alive()
        check_not_in_hook(self._id)

    def _ensure_alive(self) -> None:
        if self._lifecycle is Lifecycle.DISPOSED:
            raise LifecycleError(f"{type(self).__name__} #{self._id} is disposed")

    def _set_lifecycle(self, state: Lifecycle) -> None:
        logger.debug("%s #%d: %s -> %s", type(self).__name__, self._id, self._lifecycle.name, state.name)
        self._lifecycle = state


class ViewModel(ViewModelCore[T]):
    """Synchronous view-model holding ``data``.

    Usage:
        class CounterViewModel(ViewModel[int]):
            def __init__(self):
                super().__init__(0)

            def init(self):
                self.update_silently(load_saved_count())

            def increment(self):
                self.transform_state(lambda n: n + 1)

        counter = registry.create_or_get("counter", CounterViewModel)
    """

    def __init__(
        self,
        initial: T,
        *,
        wait_for_context: bool = False,
        registry: Registry | None = None,
    ) -> None:
        super().__init__(wait_for_context=wait_for_context, registry=registry)
        self._data = initial
        if wait_for_context and not self.has_context:
            logger.debug("%s #%d waiting for context before init()", type(self).__name__, self._id)
            self._registry.contexts.await_context(self)
        else:
            self._initialize()

    @property
    def data(self) -> T:
        return self._data

    @property
    def current(self) -> T:
        return self._data

    def init(self) -> None:
        """Load the initial state. Override; use the silent mutators here."""

    def reload(self) -> None:
        """Tear down listeners and run init → setup_listeners → on_resume again."""
        self._ensure_alive()
        self._release()
        self._initialize()

    def reinitialize_with_context(self) -> None:
        """Run an init() that was deferred by wait_for_context, once a context exists."""
        if self._lifecycle is Lifecycle.CONSTRUCTED and self.has_context:
            self._initialize()

    def on_context_attached(self, context: object) -> None:
        if self._lifecycle is Lifecycle.CONSTRUCTED and self.wait_for_context:
            self._initialize()

    # --- Mutation ---

    def update_state(self, value: T) -> None:
        self._ensure_mutable()
        self._apply(value, notify=True)

    def update_silently(self, value: T) -> None:
        self._ensure_mutable()
        self._apply(value, notify=False)

    def transform_state(self, fn: Callable[[T], T]) -> None:
        self._ensure_mutable()
        self._apply(fn(self._data), notify=True)

    def transform_state_silently(self, fn: Callable[[T], T]) -> None:
        self._ensure_mutable()
        self._apply(fn(self._data), notify=False)

    def _apply(self, value: T, *, notify: bool) -> None:
        previous = self._data
        self._data = value
        self._commit(previous, value, notify=notify)

    def _initialize(self) -> None:
        self._set_lifecycle(Lifecycle.INITIALIZING)
        try:
            self.init()
        except Exception as exc:
            raise InitializationError(f"{type(self).__name__}.init() raised {type(exc).__name__}") from exc
        self.setup_listeners()
        self._set_lifecycle(Lifecycle.LISTENERS_READY)
        self.on_resume(self._data)
        self._set_lifecycle(Lifecycle.ACTIVE)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r}, {self._lifecycle.name})"
