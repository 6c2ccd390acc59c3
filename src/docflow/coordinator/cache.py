"""Cache consistency layer — invalidates dependent views on store changes."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypeVar

from docflow.events import VIEWS_INVALIDATED, NullPublisher, ViewsInvalidated
from docflow.models.execution import ExecutionStatus
from docflow.store.executions import StoreEventKind

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from docflow.events import EventPublisher
    from docflow.store.executions import ExecutionStore, StoreEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class View(StrEnum):
    """Derived views that depend on execution and section data."""

    CONTENT = "content"
    VERSIONS = "versions"
    SECTIONS = "sections"
    DOCUMENT = "document"


ALL_VIEWS = frozenset(View)

# Statuses after which content and the document summary must be reloaded.
_CONTENT_STATUSES = frozenset(
    {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
        ExecutionStatus.APPROVED,
        ExecutionStatus.APPROVING,
        ExecutionStatus.DRAFT,
    }
)


def dependent_views(event: StoreEvent) -> frozenset[View]:
    """Return the views that must be invalidated for a store change."""
    if event.kind == StoreEventKind.CREATED:
        return frozenset({View.VERSIONS, View.DOCUMENT})
    if event.kind == StoreEventKind.REMOVED:
        return ALL_VIEWS
    if event.kind == StoreEventKind.CONTENT_CHANGED:
        return frozenset({View.CONTENT, View.SECTIONS})
    views = {View.VERSIONS}
    if event.status in _CONTENT_STATUSES:
        views |= {View.CONTENT, View.DOCUMENT}
    return frozenset(views)


class CacheConsistencyLayer:
    """Keeps cached views per document and drops them when their inputs change.

    Every invalidation bumps a per-view generation counter. A load that started
    before an invalidation does not populate the cache with its stale result.
    """

    def __init__(
        self,
        store: ExecutionStore,
        *,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._entries: dict[tuple[str, View], Any] = {}
        self._generations: dict[tuple[str, View], int] = {}
        self._listeners: list[Callable[[str, frozenset[View]], Awaitable[None]]] = []
        self._publisher = publisher or NullPublisher()
        self._unsubscribe = store.subscribe(self.on_store_event)

    def subscribe(
        self, listener: Callable[[str, frozenset[View]], Awaitable[None]]
    ) -> Callable[[], None]:
        """Register an invalidation listener and return a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def peek(self, document_id: str, view: View) -> Any | None:
        return self._entries.get((document_id, view))

    def is_cached(self, document_id: str, view: View) -> bool:
        return (document_id, view) in self._entries

    async def get(
        self,
        document_id: str,
        view: View,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached view or load it, caching the result if still current."""
        key = (document_id, view)
        if key in self._entries:
            return self._entries[key]
        generation = self._generations.get(key, 0)
        value = await loader()
        if self._generations.get(key, 0) == generation:
            self._entries[key] = value
        else:
            logger.debug("Discarding stale view load — document=%s view=%s", document_id, view)
        return value

    async def invalidate(
        self,
        document_id: str,
        views: Iterable[View],
        *,
        execution_id: str | None = None,
    ) -> frozenset[View]:
        """Drop the given views and notify listeners."""
        dropped = frozenset(views)
        if not dropped:
            return dropped
        for view in dropped:
            key = (document_id, view)
            self._entries.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1
        logger.debug(
            "Views invalidated — document=%s views=%s execution=%s",
            document_id,
            sorted(dropped),
            execution_id,
        )
        for listener in list(self._listeners):
            try:
                await listener(document_id, dropped)
            except Exception:
                logger.exception("Invalidation listener failed — document=%s", document_id)
        payload = ViewsInvalidated(
            document_id=document_id,
            views=sorted(dropped),
            execution_id=execution_id,
        )
        await self._publisher.publish(VIEWS_INVALIDATED, payload.model_dump(mode="json"))
        return dropped

    async def on_store_event(self, event: StoreEvent) -> None:
        await self.invalidate(
            event.document_id, dependent_views(event), execution_id=event.execution_id
        )

    def close(self) -> None:
        self._unsubscribe()
        self._listeners.clear()
