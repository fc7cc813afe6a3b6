"""Async sources — stream and awaitable results mirrored as observable state.

StreamWatcher follows a container whose value is an async iterable. It
subscribes on construction and moves through StreamState: Loading on
subscribe, Data for every item, Error when iteration raises, Done when it
ends. Replacing the container's value with update_state() drops the old
subscription and subscribes to the new iterable. dispose() cancels the
subscription and releases the watcher's reference on the container.

FutureWatcher awaits one awaitable and exposes the outcome as an
AsyncState. With default_data it shows Success(default_data) while the
awaitable is still pending. With a target container, each data value
(the default and the result) is mirrored into it, through update_state()
when notify_target is true and update_silently() otherwise. dispose()
ignores a result that has not arrived yet and disposes the target.

Both need a running event loop and deliver to their own listeners through
the isolated delivery engine. Failures are wrapped in AsyncOperationError,
as for AsyncViewModel.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import AsyncIterable, Awaitable, Callable, Generic, Hashable, TypeVar

from notifyx._tracking import deliver, new_id
from notifyx.async_state import AsyncState, StreamState
from notifyx.container import Container
from notifyx.errors import AsyncOperationError

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger("notifyx.sources")


class StreamWatcher(Generic[T]):
    """Subscription to the async iterable held by a container.

    Usage:
        prices = registry.create_or_get("prices", lambda: ticker.stream("ACME"))
        watcher = StreamWatcher(prices)
        watcher.add_listener(lambda state: state.when(
            initial=lambda: None,
            loading=lambda: show_spinner(),
            data=lambda price: show(price),
            error=lambda err: show_error(err),
            done=lambda: show_closed(),
        ))
        ...
        watcher.dispose()
    """

    def __init__(self, container: Container, *, owner_id: Hashable | None = None) -> None:
        self._loop = asyncio.get_running_loop()
        self.container = container
        self.owner_id = owner_id if owner_id is not None else f"stream_{new_id()}"
        self._state: StreamState[T] = StreamState.initial()
        self._listeners: list[Callable[[StreamState[T]], None]] = []
        self._task: asyncio.Task | None = None
        self._generation = 0
        self._disposed = False
        container.add_reference(self.owner_id)
        container.add_listener(self._on_stream_replaced)
        self._subscribe(container.value)

    @property
    def state(self) -> StreamState[T]:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._disposed

    def when(self, **handlers) -> R:
        return self._state.when(**handlers)

    def add_listener(self, callback: Callable[[StreamState[T]], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[StreamState[T]], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._unsubscribe()
        self._listeners.clear()
        self.container.remove_listener(self._on_stream_replaced)
        self.container.remove_reference(self.owner_id)
        logger.debug("Stream watcher %r disposed", self.owner_id)

    def _on_stream_replaced(self, stream: AsyncIterable[T]) -> None:
        if self._disposed:
            return
        logger.debug("Container %r replaced its stream, resubscribing", self.container.key)
        self._unsubscribe()
        self._subscribe(stream)

    def _subscribe(self, stream: AsyncIterable[T]) -> None:
        self._set(StreamState.loading())
        self._task = self._loop.create_task(self._consume(stream, self._generation))

    def _unsubscribe(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _consume(self, stream: AsyncIterable[T], generation: int) -> None:
        try:
            async for item in stream:
                if generation != self._generation:
                    return
                self._set(StreamState.data(item))
        except Exception as exc:
            if generation == self._generation:
                logger.warning("Stream of %r failed: %r", self.container.key, exc)
                self._set(StreamState.error(AsyncOperationError(exc)))
            return
        if generation == self._generation:
            self._set(StreamState.done())

    def _set(self, state: StreamState[T]) -> None:
        self._state = state
        deliver(list(self._listeners), state, source=self)

    def __repr__(self) -> str:
        return f"StreamWatcher({self.container.key!r}, {self._state!r})"


class FutureWatcher(Generic[T]):
    """One awaited result, exposed as an AsyncState.

    Usage:
        profile = FutureWatcher(api.fetch_profile(), default_data=cached,
                                target=profile_container)
        await profile.wait()
    """

    def __init__(
        self,
        awaitable: Awaitable[T],
        *,
        default_data: T | None = None,
        target: Container | None = None,
        notify_target: bool = False,
    ) -> None:
        loop = asyncio.get_running_loop()
        self.target = target
        self.notify_target = notify_target
        self._listeners: list[Callable[[AsyncState[T]], None]] = []
        self._disposed = False
        self._pending = True
        if default_data is not None:
            self._state: AsyncState[T] = AsyncState.success(default_data)
            self._mirror(default_data)
        else:
            self._state = AsyncState.loading()
        self._task = loop.create_task(self._resolve(awaitable))

    @property
    def state(self) -> AsyncState[T]:
        return self._state

    @property
    def is_loading(self) -> bool:
        """True until the awaitable settles, even while default data is shown."""
        return self._pending

    @property
    def disposed(self) -> bool:
        return self._disposed

    def when(self, **handlers) -> R:
        return self._state.when(**handlers)

    def add_listener(self, callback: Callable[[AsyncState[T]], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[AsyncState[T]], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    async def wait(self) -> AsyncState[T]:
        """Wait for the awaitable to settle and return the resulting state."""
        await self._task
        return self._state

    def dispose(self) -> None:
        # The awaitable is not cancelled; a late result is just ignored.
        if self._disposed:
            return
        self._disposed = True
        self._listeners.clear()
        if self.target is not None and not self.target.disposed:
            self.target.dispose()

    async def _resolve(self, awaitable: Awaitable[T]) -> None:
        try:
            value = await awaitable
        except Exception as exc:
            self._pending = False
            if self._disposed:
                return
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            logger.warning("Awaited value failed: %r", exc)
            self._set(AsyncState.error(AsyncOperationError(exc), stack))
            return
        self._pending = False
        if self._disposed:
            return
        self._set(AsyncState.success(value))
        self._mirror(value)

    def _mirror(self, value: T) -> None:
        if self.target is None or self.target.disposed:
            return
        if self.notify_target:
            self.target.update_state(value)
        else:
            self.target.update_silently(value)

    def _set(self, state: AsyncState[T]) -> None:
        self._state = state
        deliver(list(self._listeners), state, source=self)

    def __repr__(self) -> str:
        return f"FutureWatcher({self._state!r})"
