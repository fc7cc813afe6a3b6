"""AsyncViewModel — a view-model whose data comes from an awaited init().

The state is an AsyncState. A load cycle moves it to Loading, awaits init(),
then either:

- Success(data), followed by setup_listeners() and on_resume(data), or
- Error(AsyncOperationError, stack), skipping setup_listeners/on_resume.

init() failures never escape: UI code sees them as the Error variant.

Overlapping reloads: every cycle carries a generation number. A cycle whose
generation is no longer current when init() resolves is discarded, so the
latest reload wins and the state stays Loading until it resolves.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Callable, TypeVar

from notifyx.async_state import AsyncState
from notifyx.errors import AsyncOperationError
from notifyx.registry import Registry
from notifyx.viewmodel import Lifecycle, ViewModelCore

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger("notifyx.async_viewmodel")


class AsyncViewModel(ViewModelCore[T]):
    """Asynchronous view-model holding ``state: AsyncState[T]``.

    With load_on_init (the default), constructing inside a running event loop
    schedules the first cycle right away. Outside a loop, the first cycle
    starts at ``await vm.initialize()``.

    Usage:
        class OrdersViewModel(AsyncViewModel[list[Order]]):
            async def init(self):
                return await api.fetch_orders()

        orders = registry.create_or_get("orders", OrdersViewModel)
        await orders.value.initialize()
        orders.value.when(
            initial=lambda: ...,
            loading=lambda: ...,
            success=lambda rows: ...,
            error=lambda err, stack: ...,
        )
    """

    def __init__(
        self,
        *,
        load_on_init: bool = True,
        wait_for_context: bool = False,
        registry: Registry | None = None,
    ) -> None:
        super().__init__(wait_for_context=wait_for_context, registry=registry)
        self._state: AsyncState[T] = AsyncState.initial()
        self._generation = 0
        self._task: asyncio.Future | None = None
        self._context_ready: asyncio.Event | None = None
        self.load_on_init = load_on_init
        if load_on_init:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._task = loop.create_task(self._run_cycle(self._generation))
                self._task.add_done_callback(self._report_cycle_failure)

    # --- Reading ---

    @property
    def state(self) -> AsyncState[T]:
        return self._state

    @property
    def current(self) -> AsyncState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def has_data(self) -> bool:
        return self._state.is_success

    @property
    def error(self) -> BaseException | None:
        return self._state.error_value

    @property
    def stack_trace(self) -> str | None:
        return self._state.stack_trace

    def when(
        self,
        *,
        initial: Callable[[], R],
        loading: Callable[[], R],
        success: Callable[[T], R],
        error: Callable[[BaseException | None, str | None], R],
    ) -> R:
        return self._state.when(initial=initial, loading=loading, success=success, error=error)

    def match(self, *, otherwise: Callable[[], R], **handlers) -> R:
        return self._state.match(otherwise=otherwise, **handlers)

    # --- Lifecycle ---

    async def init(self) -> T:
        """Produce the data. Override."""
        raise NotImplementedError

    async def initialize(self) -> None:
        """Run (or join) the first load cycle. Safe to await more than once."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._run_cycle(self._generation))
            self._task.add_done_callback(self._report_cycle_failure)
        await self._task

    async def reload(self) -> None:
        """Drop listeners, go to Loading, and run a fresh cycle.

        An earlier cycle still in flight is not cancelled; its result is
        ignored when it resolves.
        """
        self._ensure_alive()
        self._release()
        self._generation += 1
        generation = self._generation
        self.loading_state()
        await self._run_cycle(generation)

    def on_context_attached(self, context: object) -> None:
        if self._context_ready is not None:
            self._context_ready.set()

    def dispose(self) -> None:
        if self.is_disposed:
            return
        self._generation += 1
        if self._context_ready is not None:
            self._context_ready.set()
        super().dispose()

    async def _run_cycle(self, generation: int) -> None:
        if self.wait_for_context and not self.has_context:
            logger.debug("%s #%d waiting for context before init()", type(self).__name__, self._id)
            if self._context_ready is None:
                self._context_ready = asyncio.Event()
            self._registry.contexts.await_context(self)
            await self._context_ready.wait()
        if self._is_stale(generation):
            return

        self._set_lifecycle(Lifecycle.INITIALIZING)
        if not self._state.is_loading:
            self.loading_state()
        try:
            data = await self.init()
        except Exception as exc:
            if self._is_stale(generation):
                logger.debug("Discarding failed stale cycle %d of #%d", generation, self._id)
                return
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            logger.warning("%s #%d init() failed: %r", type(self).__name__, self._id, exc)
            self.error_state(AsyncOperationError(exc), stack)
            return

        if self._is_stale(generation):
            logger.debug("Discarding stale cycle %d of #%d", generation, self._id)
            return
        self.update_state(data)
        self.setup_listeners()
        self._set_lifecycle(Lifecycle.LISTENERS_READY)
        self.on_resume(data)
        self._set_lifecycle(Lifecycle.ACTIVE)

    def _is_stale(self, generation: int) -> bool:
        return self.is_disposed or generation != self._generation

    def _report_cycle_failure(self, task: asyncio.Future) -> None:
        # init() failures are already captured as Error; this catches the hooks.
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "%s #%d first load cycle failed", type(self).__name__, self._id, exc_info=exc
            )

    # --- Mutation ---

    def loading_state(self) -> None:
        self._transition(AsyncState.loading(), notify=True)

    def update_state(self, data: T) -> None:
        self._transition(AsyncState.success(data), notify=True)

    def update_silently(self, data: T) -> None:
        self._transition(AsyncState.success(data), notify=False)

    def error_state(self, error: BaseException, stack: str | None = None) -> None:
        self._transition(AsyncState.error(error, stack), notify=True)

    def transform_data_state(self, fn: Callable[[T], T]) -> None:
        """Apply fn to the data when the state is Success. Otherwise do nothing."""
        self._ensure_mutable()
        if self._state.is_success:
            self._transition(AsyncState.success(fn(self._state.data)), notify=True)

    def transform_data_state_silently(self, fn: Callable[[T], T]) -> None:
        self._ensure_mutable()
        if self._state.is_success:
            self._transition(AsyncState.success(fn(self._state.data)), notify=False)

    def _transition(self, state: AsyncState[T], *, notify: bool) -> None:
        self._ensure_mutable()
        previous = self._state
        self._state = state
        self._commit(previous, state, notify=notify)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._state!r}, {self._lifecycle.name})"
