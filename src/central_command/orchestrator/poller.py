"""Work queue poller for Central Command.

The poller is the driving loop: fetch every queued item, order the batch
by priority, dispatch the items one at a time, then idle until the next
cycle. It is the single place where per-item failures are suppressed, so
no one item can take the service down.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable

import structlog

from central_command.errors import FetchError
from central_command.logging import begin_cycle, end_cycle, work_item_context
from central_command.models import WorkItem
from central_command.orchestrator.dispatcher import Dispatcher, DispatchOutcome
from central_command.store.base import QueueStore

logger = structlog.get_logger(__name__)


@dataclass
class FetchResult:
    """Outcome of one pending read. ``error`` is set when the read failed."""

    items: list[WorkItem] = field(default_factory=list)
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def order_by_priority(items: Iterable[WorkItem]) -> list[WorkItem]:
    """Sort items P0 first. Equal priorities keep their fetch order."""
    return sorted(items, key=lambda item: item.priority.rank)


class Poller:
    """Single-worker polling loop over the work queue.

    Attributes:
        store: Work queue store to read from.
        dispatcher: Processes each item.
        poll_interval: Seconds to idle between cycles.
        inter_item_delay: Seconds to wait between items of one batch.
        history: Append-only list of outcomes, for observability only.
    """

    def __init__(
        self,
        store: QueueStore,
        dispatcher: Dispatcher,
        poll_interval: float = 30.0,
        inter_item_delay: float = 1.0,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self.inter_item_delay = inter_item_delay
        self.history: list[DispatchOutcome] = []

        self._running: bool = False
        self._stop_event = asyncio.Event()
        self._poll_task: asyncio.Task[None] | None = None
        self._current_task_id: str | None = None
        self._cycles = 0
        self._last_fetch_error: str | None = None
        self._logger = logger.bind(component="Poller")

    @property
    def is_running(self) -> bool:
        """Whether the poll loop is currently active."""
        return self._running

    @property
    def current_task_id(self) -> str | None:
        """Task id of the item being dispatched, if any."""
        return self._current_task_id

    async def start(self) -> None:
        """Start the poll loop as a background task.

        Calling start while the loop is already running is a no-op.
        """
        if self._running:
            self._logger.info("poller_already_running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._logger.info(
            "poller_starting",
            poll_interval=self.poll_interval,
            inter_item_delay=self.inter_item_delay,
        )
        self._poll_task = asyncio.create_task(self._poll_loop(), name="central-command-poller")

    async def stop(self) -> None:
        """Stop the poll loop at the next loop boundary.

        An in-flight item is never interrupted: this waits for it to finish,
        then for the loop to exit. Idle sleeps are cut short. Safe to call
        if the poller is not running.
        """
        if not self._running:
            self._logger.debug("poller_stop_noop", reason="not running")
            return

        self._logger.info("poller_stopping", current_task_id=self._current_task_id)
        self._running = False
        self._stop_event.set()

        if self._poll_task is not None:
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            finally:
                self._poll_task = None

        self._logger.info("poller_stopped")

    async def _poll_loop(self) -> None:
        """Run cycles until stopped, idling poll_interval after each."""
        self._logger.info("poll_loop_started")

        while self._running:
            try:
                await self.run_cycle()
            except Exception:
                self._logger.exception("poll_loop_error")

            if self._running:
                await self._idle(self.poll_interval)

        self._logger.info("poll_loop_exited", cycles=self._cycles)

    async def _idle(self, seconds: float) -> None:
        """Sleep for ``seconds`` or until stop() is called."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def fetch_pending(self) -> FetchResult:
        """Read all queued items in creation order.

        A failed read is logged and reported through ``FetchResult.error``
        with an empty item list.
        """
        try:
            items = await self.store.fetch_queued()
        except FetchError as e:
            self._last_fetch_error = str(e)
            self._logger.warning("fetch_pending_failed", error=str(e))
            return FetchResult(items=[], error=e)

        self._last_fetch_error = None
        return FetchResult(items=items)

    async def run_cycle(self) -> list[DispatchOutcome]:
        """Run one fetch, order and dispatch cycle.

        Returns:
            Outcomes of the items dispatched in this cycle.
        """
        self._cycles += 1
        begin_cycle()
        try:
            result = await self.fetch_pending()
            if not result.items:
                self._logger.debug("no_pending_items", fetch_ok=result.ok)
                return []

            batch = order_by_priority(result.items)
            self._logger.info(
                "pending_items_found",
                count=len(batch),
                task_ids=[item.task_id for item in batch],
            )

            outcomes: list[DispatchOutcome] = []
            for index, item in enumerate(batch):
                if self._stop_event.is_set():
                    self._logger.info(
                        "poller_stop_between_items",
                        remaining=len(batch) - index,
                    )
                    break
                if index > 0:
                    await self._idle(self.inter_item_delay)
                outcomes.append(await self._process_item(item))
            return outcomes
        finally:
            end_cycle()

    async def _process_item(self, item: WorkItem) -> DispatchOutcome:
        """Dispatch one item, converting any escaped error into an outcome."""
        self._current_task_id = item.task_id
        with work_item_context(item.task_id, item.record_id, item.priority.value):
            self._logger.info("work_item_processing")
            try:
                outcome = await self.dispatcher.route_task(item)
            except Exception as e:
                self._logger.exception("work_item_failed")
                outcome = DispatchOutcome(
                    record_id=item.record_id,
                    task_id=item.task_id,
                    agent=item.assigned_agent or "",
                    system_target=item.system_target or "",
                    status=item.status,
                    error=str(e),
                )
            finally:
                self._current_task_id = None

        self.history.append(outcome)
        return outcome

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the poller for health checks and the CLI."""
        return {
            "is_running": self._running,
            "poll_interval": self.poll_interval,
            "inter_item_delay": self.inter_item_delay,
            "cycles": self._cycles,
            "current_task_id": self._current_task_id,
            "processed": len(self.history),
            "done": sum(1 for outcome in self.history if outcome.succeeded),
            "failed": sum(1 for outcome in self.history if not outcome.succeeded),
            "last_fetch_error": self._last_fetch_error,
        }
