"""Completion poller — watches in-flight executions until a terminal status.

Each watch runs in its own background task and polls the generation service at
a fixed interval. Snapshots are applied through a callback that receives the
status the store held *before* the request went out, so a response that
arrives after a newer write is discarded by the store's compare-and-swap.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from docflow.errors import (
    CoordinatorError,
    ExecutionNotFound,
    UnknownOutcome,
)
from docflow.models.execution import (
    NON_TERMINAL_STATUSES,
    ExecutionMode,
    ExecutionStatus,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from docflow.config import PollingConfig
    from docflow.models.execution import ExecutionSnapshot
    from docflow.services.generation import GenerationService
    from docflow.store.executions import ExecutionStore

    SnapshotHandler = Callable[
        [ExecutionSnapshot, ExecutionStatus | None], Awaitable[None]
    ]
    CompletionCallback = Callable[["CompletionEvent | None"], Awaitable[None]]

logger = logging.getLogger(__name__)

_FAILED_OUTCOMES = frozenset(
    {ExecutionStatus.FAILED, ExecutionStatus.CANCELLED, ExecutionStatus.UNKNOWN}
)


class WatchKind(StrEnum):
    EXECUTION = "execution"
    SECTION = "section"
    APPROVAL = "approval"


@dataclass(frozen=True)
class CompletionEvent:
    """Emitted exactly once when a watch observes its terminal condition."""

    execution_id: str
    kind: WatchKind
    final_status: ExecutionStatus
    mode: ExecutionMode | None = None
    error: CoordinatorError | None = None

    @property
    def succeeded(self) -> bool:
        if self.kind == WatchKind.APPROVAL:
            return self.final_status == ExecutionStatus.APPROVED
        return self.final_status not in _FAILED_OUTCOMES


class CompletionWatch:
    """A live watch on one execution.

    ``wait`` resolves with the completion event, or ``None`` when the watch
    was cancelled before completing.
    """

    def __init__(
        self,
        execution_id: str,
        kind: WatchKind,
        *,
        interval: float,
        retry_budget: int,
        mode: ExecutionMode | None = None,
        on_snapshot: SnapshotHandler | None = None,
    ) -> None:
        self.execution_id = execution_id
        self.kind = kind
        self.mode = mode
        self.interval = interval
        self.retry_budget = retry_budget
        self.failures = 0
        self._on_snapshot = on_snapshot
        self._callbacks: list[CompletionCallback] = []
        self._result: asyncio.Future[CompletionEvent | None] = (
            asyncio.get_running_loop().create_future()
        )
        self._lock = asyncio.Lock()
        self._settled = False
        self._cancelled = False
        self._task: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self._settled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def result(self) -> CompletionEvent | None:
        return self._result.result() if self._result.done() else None

    def is_terminal(self, status: ExecutionStatus) -> bool:
        if self.kind == WatchKind.APPROVAL:
            return status != ExecutionStatus.APPROVING
        return status not in NON_TERMINAL_STATUSES

    def add_done_callback(self, callback: CompletionCallback) -> None:
        """Register a coroutine run once with the event (or None on cancel)."""
        self._callbacks.append(callback)

    async def wait(self) -> CompletionEvent | None:
        return await asyncio.shield(self._result)

    async def events(self) -> AsyncIterator[CompletionEvent]:
        """Yield the completion event once; ends without yielding on cancel."""
        event = await self.wait()
        if event is not None:
            yield event

    def cancel(self) -> None:
        """Stop polling. Any response still in flight is discarded."""
        if self.done:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _resolve(self, event: CompletionEvent | None) -> None:
        if self._settled:
            return
        self._settled = True
        # Waiters wake after every callback has run.
        try:
            for callback in self._callbacks:
                try:
                    await callback(event)
                except Exception:
                    logger.exception(
                        "Completion callback failed — execution=%s kind=%s",
                        self.execution_id,
                        self.kind,
                    )
        finally:
            self._result.set_result(event)


class CompletionPoller:
    """Owns every live watch and the loops that drive them."""

    def __init__(
        self,
        service: GenerationService,
        store: ExecutionStore,
        config: PollingConfig,
    ) -> None:
        self._service = service
        self._store = store
        self._config = config
        self._watches: dict[tuple[str, WatchKind], CompletionWatch] = {}

    @property
    def live_count(self) -> int:
        return sum(1 for watch in self._watches.values() if not watch.done)

    def interval_for(self, kind: WatchKind) -> float:
        if kind == WatchKind.SECTION:
            return self._config.section_interval
        if kind == WatchKind.APPROVAL:
            return self._config.approval_interval
        return self._config.execution_interval

    def get(self, execution_id: str, kind: WatchKind | None = None) -> CompletionWatch | None:
        """Return the live watch for an execution, optionally of a given kind."""
        kinds = [kind] if kind else list(WatchKind)
        for candidate in kinds:
            watch = self._watches.get((execution_id, candidate))
            if watch is not None and not watch.done:
                return watch
        return None

    def watch(
        self,
        execution_id: str,
        kind: WatchKind,
        *,
        mode: ExecutionMode | None = None,
        on_snapshot: SnapshotHandler | None = None,
    ) -> CompletionWatch:
        """Start watching an execution, or return the watch already running."""
        existing = self.get(execution_id, kind)
        if existing is not None:
            return existing
        watch = CompletionWatch(
            execution_id,
            kind,
            interval=self.interval_for(kind),
            retry_budget=self._config.retry_budget,
            mode=mode,
            on_snapshot=on_snapshot,
        )
        self._watches[(execution_id, kind)] = watch
        watch._task = asyncio.create_task(self._run(watch))  # noqa: SLF001
        logger.info(
            "Watch started — execution=%s kind=%s interval=%.1fs",
            execution_id,
            kind,
            watch.interval,
        )
        return watch

    async def refresh(self, execution_id: str) -> CompletionEvent | None:
        """Poll a live watch immediately, e.g. after its outcome became unknown."""
        watch = self.get(execution_id)
        if watch is None:
            return None
        await self._poll_once(watch)
        return watch.result

    async def cancel(self, execution_id: str, kind: WatchKind | None = None) -> None:
        kinds = [kind] if kind else list(WatchKind)
        for candidate in kinds:
            watch = self._watches.get((execution_id, candidate))
            if watch is not None:
                watch.cancel()
                await self._settle(watch)

    async def close(self) -> None:
        """Cancel every watch and wait for its loop to exit."""
        watches = list(self._watches.values())
        for watch in watches:
            watch.cancel()
        for watch in watches:
            await self._settle(watch)
        logger.info("Completion poller stopped — watches=%d", len(watches))

    async def _settle(self, watch: CompletionWatch) -> None:
        task = watch._task  # noqa: SLF001
        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await watch._resolve(None)  # noqa: SLF001
        key = (watch.execution_id, watch.kind)
        if self._watches.get(key) is watch:
            del self._watches[key]

    async def _run(self, watch: CompletionWatch) -> None:
        try:
            while not watch.done and not watch.cancelled:
                await self._poll_once(watch)
                if watch.done:
                    break
                await asyncio.sleep(watch.interval)
        except asyncio.CancelledError:
            logger.info(
                "Watch cancelled — execution=%s kind=%s", watch.execution_id, watch.kind
            )
            await watch._resolve(None)  # noqa: SLF001
            raise
        except Exception as exc:
            logger.exception(
                "Watch loop failed — execution=%s kind=%s", watch.execution_id, watch.kind
            )
            await self._give_up(watch, exc)
        finally:
            if self._watches.get((watch.execution_id, watch.kind)) is watch:
                del self._watches[(watch.execution_id, watch.kind)]

    async def _poll_once(self, watch: CompletionWatch) -> None:
        async with watch._lock:  # noqa: SLF001
            if watch.done or watch.cancelled:
                return
            expected = self._store.status_of(watch.execution_id)
            try:
                snapshot = await self._service.get_execution_status(watch.execution_id)
            except ExecutionNotFound as exc:
                logger.warning("Watched execution disappeared — execution=%s", watch.execution_id)
                await self._emit(watch, ExecutionStatus.CANCELLED, error=exc)
                return
            except (CoordinatorError, ValidationError) as exc:
                await self._record_failure(watch, exc)
                return

            if watch.cancelled:
                logger.debug("Dropping response for cancelled watch — execution=%s", watch.execution_id)
                return
            if watch._on_snapshot is not None:  # noqa: SLF001
                try:
                    await watch._on_snapshot(snapshot, expected)  # noqa: SLF001
                except CoordinatorError as exc:
                    await self._record_failure(watch, exc)
                    return
            watch.failures = 0
            if watch.is_terminal(snapshot.status):
                await self._emit(watch, snapshot.status)

    async def _record_failure(self, watch: CompletionWatch, exc: Exception) -> None:
        watch.failures += 1
        logger.warning(
            "Poll failed — execution=%s attempt=%d/%d: %s",
            watch.execution_id,
            watch.failures,
            watch.retry_budget,
            _describe(exc),
        )
        if watch.failures >= watch.retry_budget:
            await self._give_up(watch, exc)

    async def _give_up(self, watch: CompletionWatch, cause: Exception) -> None:
        logger.error(
            "Watch exhausted retry budget — execution=%s kind=%s; outcome unknown",
            watch.execution_id,
            watch.kind,
        )
        error = UnknownOutcome(
            f"Could not confirm the outcome of execution {watch.execution_id} "
            f"after {watch.failures} attempts: {_describe(cause)}",
            execution_id=watch.execution_id,
            document_id=getattr(cause, "document_id", None),
            transition=str(watch.kind),
        )
        await self._emit(watch, ExecutionStatus.UNKNOWN, error=error)

    async def _emit(
        self,
        watch: CompletionWatch,
        status: ExecutionStatus,
        *,
        error: CoordinatorError | None = None,
    ) -> None:
        event = CompletionEvent(
            execution_id=watch.execution_id,
            kind=watch.kind,
            final_status=status,
            mode=watch.mode,
            error=error,
        )
        logger.info(
            "Watch completed — execution=%s kind=%s status=%s",
            watch.execution_id,
            watch.kind,
            status,
        )
        await watch._resolve(event)  # noqa: SLF001


def _describe(exc: Exception) -> str:
    return exc.message if isinstance(exc, CoordinatorError) else str(exc)
