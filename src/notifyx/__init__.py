"""notifyx: singleton state containers and view-models for component-tree UIs."""

from importlib.metadata import version as _version

__version__ = _version("notifyx")

from notifyx.errors import (
    NotifyxError,
    InitializationError,
    LifecycleError,
    StateHookReentryError,
    ContextUnavailableError,
    AsyncOperationError,
)
from notifyx.async_state import AsyncState, Status, StreamState, StreamStatus
from notifyx.container import Container, set_scheduler
from notifyx.registry import Registry, get_registry, set_registry, create_or_get, cleanup_all
from notifyx.context import ContextService
from notifyx.listeners import ListenerRegistry, Subscription
from notifyx.viewmodel import Lifecycle, ViewModel
from notifyx.async_viewmodel import AsyncViewModel
from notifyx.sources import StreamWatcher, FutureWatcher
from notifyx.preservation import (
    PreservationCache,
    CacheEntry,
    structural_key,
    keep,
    keep_all,
    get_preservation_statistics,
    cleanup_preserved,
)
# textual NOT auto-imported — opt-in only

__all__ = [
    "NotifyxError",
    "InitializationError",
    "LifecycleError",
    "StateHookReentryError",
    "ContextUnavailableError",
    "AsyncOperationError",
    "AsyncState",
    "Status",
    "StreamState",
    "StreamStatus",
    "Container",
    "set_scheduler",
    "Registry",
    "get_registry",
    "set_registry",
    "create_or_get",
    "cleanup_all",
    "ContextService",
    "ListenerRegistry",
    "Subscription",
    "Lifecycle",
    "ViewModel",
    "AsyncViewModel",
    "StreamWatcher",
    "FutureWatcher",
    "PreservationCache",
    "CacheEntry",
    "structural_key",
    "keep",
    "keep_all",
    "get_preservation_statistics",
    "cleanup_preserved",
]
