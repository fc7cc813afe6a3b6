"""Delivery engine shared by containers and view-models.

Listener delivery is synchronous and sequential. Each callback is isolated:
a failing listener is logged and the remaining listeners for the same
mutation still run.

The state-change hook guard uses a contextvar holding the ids of the
view-models whose on_state_changed() is currently running, so a hook that
tries to mutate its own view-model is rejected instead of recursing.
"""

from __future__ import annotations

import contextvars
import itertools
import logging
from contextlib import contextmanager
from typing import Callable, Iterable

from notifyx.errors import StateHookReentryError

logger = logging.getLogger("notifyx.delivery")

# ids of view-models whose on_state_changed() is on the current call stack.
_active_hooks: contextvars.ContextVar[frozenset[int]] = contextvars.ContextVar(
    "active_state_hooks", default=frozenset()
)

# itertools.count is thread-safe (C-level GIL atomic)
_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def deliver(listeners: Iterable[Callable], value: object, *, source: object = None) -> int:
    """Call every listener with value. Returns the number that raised."""
    failures = 0
    for listener in listeners:
        try:
            listener(value)
        except Exception:
            failures += 1
            logger.exception("Listener %r failed while notifying %r", listener, source)
    return failures


def check_not_in_hook(owner_id: int) -> None:
    """Reject a mutation issued from the owner's own state hook."""
    if owner_id in _active_hooks.get():
        raise StateHookReentryError(
            "on_state_changed() must not mutate its own view-model"
        )


@contextmanager
def state_hook(owner_id: int):
    """Mark owner_id's on_state_changed() as running for the duration."""
    token = _active_hooks.set(_active_hooks.get() | {owner_id})
    try:
        yield
    finally:
        _active_hooks.reset(token)


def run_state_hook(owner_id: int, hook: Callable[[object, object], None], previous, current) -> None:
    """Run on_state_changed() under the reentrancy guard, isolating failures."""
    with state_hook(owner_id):
        try:
            hook(previous, current)
        except Exception:
            logger.exception("on_state_changed() failed for view-model #%d", owner_id)
