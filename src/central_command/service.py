"""Wiring of the orchestrator components from configuration."""

from __future__ import annotations

from dataclasses import dataclass

from central_command.config import CentralCommandConfig
from central_command.executor.base import Executor
from central_command.executor.intake import HttpExecutor
from central_command.orchestrator.classifier import RoutingPolicy
from central_command.orchestrator.cost_model import CostRates
from central_command.orchestrator.dispatcher import Dispatcher
from central_command.orchestrator.ledger import ExecutionLedger
from central_command.orchestrator.poller import Poller
from central_command.orchestrator.state_machine import StatusUpdater
from central_command.store.airtable import AirtableRecordStore
from central_command.store.base import LedgerStore, QueueStore


@dataclass
class Service:
    """A fully wired poller plus the collaborators it owns."""

    poller: Poller
    queue_store: QueueStore
    ledger_store: LedgerStore
    executor: Executor

    async def close(self) -> None:
        """Close every collaborator that holds an HTTP client."""
        seen: set[int] = set()
        for collaborator in (self.queue_store, self.ledger_store, self.executor):
            close = getattr(collaborator, "close", None)
            if close is not None and id(collaborator) not in seen:
                seen.add(id(collaborator))
                await close()


def build_service(
    config: CentralCommandConfig,
    queue_store: QueueStore | None = None,
    ledger_store: LedgerStore | None = None,
    executor: Executor | None = None,
) -> Service:
    """Build the poller and its collaborators.

    Collaborators that are not passed in are created from configuration:
    one AirtableRecordStore serves as both queue and ledger store, and an
    HttpExecutor talks to the configured intake endpoint.
    """
    if queue_store is None or ledger_store is None:
        airtable = AirtableRecordStore(config.store)
        queue_store = queue_store or airtable
        ledger_store = ledger_store or airtable
    if executor is None:
        executor = HttpExecutor(config.executor)

    dispatcher = Dispatcher(
        status_updater=StatusUpdater(queue_store),
        executor=executor,
        ledger=ExecutionLedger(ledger_store),
        routing_policy=RoutingPolicy.from_config(config.routing),
        cost_rates=CostRates.from_config(config.cost, fallback_agent=config.routing.default_agent),
        executor_timeout=config.executor.timeout_seconds,
    )
    poller = Poller(
        store=queue_store,
        dispatcher=dispatcher,
        poll_interval=config.poller.poll_interval_seconds,
        inter_item_delay=config.poller.inter_item_delay_seconds,
    )
    return Service(
        poller=poller,
        queue_store=queue_store,
        ledger_store=ledger_store,
        executor=executor,
    )
