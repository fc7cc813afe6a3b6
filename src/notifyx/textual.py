"""Textual integration for notifyx. Opt-in — requires textual.

bind() is the mount/unmount seam between a Textual app and a container:
mounting adds a reference and attaches the app as context; disposing the
binding removes both, which may auto-dispose the container.

// [LAW:single-enforcer] Guard + NoMatches + thread-marshal enforced here, not at callsites.
// [LAW:locality-or-seam] Textual coupling isolated in this module — core notifyx stays agnostic.
// [LAW:no-shared-mutable-globals] _paused_apps has single owner (this module), explicit API
//   (pause/is_safe), documented invariant (id present ↔ inside pause context).
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Hashable

from textual.css.query import NoMatches

from notifyx._tracking import new_id
from notifyx.container import Container

logger = logging.getLogger("notifyx.textual")

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound callbacks during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


class Binding:
    """A mounted consumer of one container. Call dispose() on unmount."""

    __slots__ = ("app", "container", "owner_id", "_listener", "_disposed")

    def __init__(self, app, container: Container, owner_id: Hashable, listener) -> None:
        self.app = app
        self.container = container
        self.owner_id = owner_id
        self._listener = listener
        self._disposed = False

    @property
    def value(self) -> object:
        return self.container.current

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.container.remove_listener(self._listener)
        contexts = self.container.registry.contexts
        if self.container.holds_viewmodel:
            contexts.unregister_context_consumer(self.owner_id, self.container.value)
        contexts.detach(self.owner_id)
        self.container.remove_reference(self.owner_id)


def bind(app, container: Container, on_change: Callable[[object], None], *, owner_id: Hashable | None = None) -> Binding:
    """Mount on_change as a consumer of container.

    Guards against firing during pause/not-running, catches NoMatches
    from widget queries, and marshals cross-thread calls via call_from_thread.

    Usage:
        class CounterLabel(Static):
            def on_mount(self):
                container = registry.create_or_get("counter", lambda: 0, auto_dispose=True)
                self._binding = bind(self.app, container, lambda n: self.update(str(n)))

            def on_unmount(self):
                self._binding.dispose()
    """
    if owner_id is None:
        owner_id = f"textual_{new_id()}"
    _main = threading.get_ident()

    def _guarded(value):
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, value)
        else:
            _safe(value)

    def _safe(value):
        try:
            on_change(value)
        except NoMatches:
            pass

    container.add_reference(owner_id)
    container.add_listener(_guarded)
    contexts = container.registry.contexts
    contexts.attach(owner_id, app)
    if container.holds_viewmodel:
        contexts.register_context_consumer(owner_id, container.value)
    logger.debug("Bound %r to container %r", owner_id, container.key)
    return Binding(app, container, owner_id, _guarded)
