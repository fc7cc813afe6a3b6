"""Error taxonomy for notifyx."""

from __future__ import annotations


class NotifyxError(Exception):
    """Base class for every error raised by notifyx."""


class InitializationError(NotifyxError):
    """A container factory or a view-model init() raised."""

    def __init__(self, message: str, *, key: object = None) -> None:
        super().__init__(message)
        self.key = key


class LifecycleError(NotifyxError):
    """A mutation was attempted on a disposed container or view-model."""


class StateHookReentryError(LifecycleError):
    """on_state_changed() tried to mutate its own view-model."""


class ContextUnavailableError(NotifyxError):
    """require_context() was called before any context was attached."""


class AsyncOperationError(NotifyxError):
    """Wraps a failure from an async init()/reload(), awaited value or stream.

    Never raised by the runtime. It is stored in the Error variant of
    AsyncState or StreamState so UI code sees the failure through normal
    state inspection.
    The original exception is kept as ``original`` and as ``__cause__``.
    """

    def __init__(self, original: BaseException) -> None:
        super().__init__(f"{type(original).__name__}: {original}")
        self.original = original
        self.__cause__ = original
