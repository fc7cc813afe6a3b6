"""AsyncState — the four-variant state of an asynchronously produced value.

Exactly one variant is active at a time:

    Initial | Loading | Success(data) | Error(error, stack)

Instances are immutable. View-models move between variants by replacing
their state with a new AsyncState.

StreamState is the five-variant counterpart for values that arrive as a
stream:

    Initial | Loading | Data(data) | Error(error) | Done
"""

from __future__ import annotations

import enum
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class Status(enum.Enum):
    INITIAL = "initial"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class AsyncState(Generic[T]):
    """Tagged union over Status. Build with the classmethods, not __init__."""

    __slots__ = ("_status", "_data", "_error", "_stack")

    def __init__(
        self,
        status: Status,
        data: T | None = None,
        error: BaseException | None = None,
        stack: str | None = None,
    ) -> None:
        self._status = status
        self._data = data
        self._error = error
        self._stack = stack

    @classmethod
    def initial(cls) -> AsyncState[T]:
        return cls(Status.INITIAL)

    @classmethod
    def loading(cls) -> AsyncState[T]:
        return cls(Status.LOADING)

    @classmethod
    def success(cls, data: T) -> AsyncState[T]:
        return cls(Status.SUCCESS, data=data)

    @classmethod
    def error(cls, error: BaseException, stack: str | None = None) -> AsyncState[T]:
        return cls(Status.ERROR, error=error, stack=stack)

    @property
    def status(self) -> Status:
        return self._status

    @property
    def data(self) -> T | None:
        return self._data

    @property
    def error_value(self) -> BaseException | None:
        return self._error

    @property
    def stack_trace(self) -> str | None:
        return self._stack

    @property
    def is_initial(self) -> bool:
        return self._status is Status.INITIAL

    @property
    def is_loading(self) -> bool:
        return self._status is Status.LOADING

    @property
    def is_success(self) -> bool:
        return self._status is Status.SUCCESS

    @property
    def is_error(self) -> bool:
        return self._status is Status.ERROR

    def when(
        self,
        *,
        initial: Callable[[], R],
        loading: Callable[[], R],
        success: Callable[[T], R],
        error: Callable[[BaseException | None, str | None], R],
    ) -> R:
        """Exhaustive dispatch: calls exactly the handler for the active variant.

        Usage:
            label = state.when(
                initial=lambda: "",
                loading=lambda: "Loading...",
                success=lambda data: f"{len(data)} rows",
                error=lambda err, stack: f"Error: {err}",
            )
        """
        if self._status is Status.INITIAL:
            return initial()
        if self._status is Status.LOADING:
            return loading()
        if self._status is Status.SUCCESS:
            return success(self._data)
        return error(self._error, self._stack)

    def match(
        self,
        *,
        initial: Callable[[], R] | None = None,
        loading: Callable[[], R] | None = None,
        success: Callable[[T], R] | None = None,
        error: Callable[[BaseException | None, str | None], R] | None = None,
        otherwise: Callable[[], R],
    ) -> R:
        """Partial dispatch: missing handlers fall through to ``otherwise``."""
        if self._status is Status.INITIAL and initial is not None:
            return initial()
        if self._status is Status.LOADING and loading is not None:
            return loading()
        if self._status is Status.SUCCESS and success is not None:
            return success(self._data)
        if self._status is Status.ERROR and error is not None:
            return error(self._error, self._stack)
        return otherwise()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AsyncState):
            return NotImplemented
        return (
            self._status is other._status
            and self._data == other._data
            and self._error is other._error
        )

    def __hash__(self) -> int:
        return hash((self._status, id(self._error)))

    def __repr__(self) -> str:
        if self._status is Status.SUCCESS:
            return f"AsyncState.success({self._data!r})"
        if self._status is Status.ERROR:
            return f"AsyncState.error({self._error!r})"
        return f"AsyncState.{self._status.value}()"


class StreamStatus(enum.Enum):
    INITIAL = "initial"
    LOADING = "loading"
    DATA = "data"
    ERROR = "error"
    DONE = "done"


class StreamState(Generic[T]):
    """Tagged union over StreamStatus. Data carries the latest item only."""

    __slots__ = ("_status", "_data", "_error")

    def __init__(
        self,
        status: StreamStatus,
        data: T | None = None,
        error: BaseException | None = None,
    ) -> None:
        self._status = status
        self._data = data
        self._error = error

    @classmethod
    def initial(cls) -> StreamState[T]:
        return cls(StreamStatus.INITIAL)

    @classmethod
    def loading(cls) -> StreamState[T]:
        return cls(StreamStatus.LOADING)

    @classmethod
    def data(cls, item: T) -> StreamState[T]:
        return cls(StreamStatus.DATA, data=item)

    @classmethod
    def error(cls, error: BaseException) -> StreamState[T]:
        return cls(StreamStatus.ERROR, error=error)

    @classmethod
    def done(cls) -> StreamState[T]:
        return cls(StreamStatus.DONE)

    @property
    def status(self) -> StreamStatus:
        return self._status

    @property
    def value(self) -> T | None:
        return self._data

    @property
    def error_value(self) -> BaseException | None:
        return self._error

    @property
    def is_initial(self) -> bool:
        return self._status is StreamStatus.INITIAL

    @property
    def is_loading(self) -> bool:
        return self._status is StreamStatus.LOADING

    @property
    def has_data(self) -> bool:
        return self._status is StreamStatus.DATA

    @property
    def is_error(self) -> bool:
        return self._status is StreamStatus.ERROR

    @property
    def is_done(self) -> bool:
        return self._status is StreamStatus.DONE

    def when(
        self,
        *,
        initial: Callable[[], R],
        loading: Callable[[], R],
        data: Callable[[T], R],
        error: Callable[[BaseException | None], R],
        done: Callable[[], R],
    ) -> R:
        if self._status is StreamStatus.INITIAL:
            return initial()
        if self._status is StreamStatus.LOADING:
            return loading()
        if self._status is StreamStatus.DATA:
            return data(self._data)
        if self._status is StreamStatus.ERROR:
            return error(self._error)
        return done()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StreamState):
            return NotImplemented
        return (
            self._status is other._status
            and self._data == other._data
            and self._error is other._error
        )

    def __hash__(self) -> int:
        return hash((self._status, id(self._error)))

    def __repr__(self) -> str:
        if self._status is StreamStatus.DATA:
            return f"StreamState.data({self._data!r})"
        if self._status is StreamStatus.ERROR:
            return f"StreamState.error({self._error!r})"
        return f"StreamState.{self._status.value}()"
