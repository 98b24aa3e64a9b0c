"""Pytest fixtures for E2E tests.

Provides a fully wired Central Command service over the in-memory record
store and a scriptable executor, so whole poll cycles run without any
network access.
"""

from __future__ import annotations

from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio

from central_command.config import CentralCommandConfig, PollerConfig
from central_command.models import ExecutorResult, TaskDescriptor
from central_command.service import Service, build_service
from central_command.store.memory import InMemoryRecordStore


class ScriptedExecutor:
    """Executor double driven by a per-descriptor handler.

    Attributes:
        calls: Every descriptor received, in order.
    """

    def __init__(self) -> None:
        self.calls: list[TaskDescriptor] = []
        self.handler: Callable[[TaskDescriptor], ExecutorResult] = lambda d: ExecutorResult(
            status="completed", tokensUsed=100, confidence=0.9, summary=f"Finished {d.id}"
        )

    async def execute(self, descriptor: TaskDescriptor) -> ExecutorResult:
        self.calls.append(descriptor)
        return self.handler(descriptor)


@pytest.fixture
def e2e_config() -> CentralCommandConfig:
    """Configuration with no delays between items or cycles."""
    return CentralCommandConfig(
        poller=PollerConfig(poll_interval_seconds=0.01, inter_item_delay_seconds=0),
    )


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def executor() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest_asyncio.fixture
async def service(
    e2e_config: CentralCommandConfig,
    memory_store: InMemoryRecordStore,
    executor: ScriptedExecutor,
) -> AsyncGenerator[Service, None]:
    """Service wired to the in-memory store and the scripted executor.

    Yields:
        The service; the poller is stopped on teardown.
    """
    svc = build_service(
        e2e_config,
        queue_store=memory_store,
        ledger_store=memory_store,
        executor=executor,
    )
    yield svc
    await svc.poller.stop()
    await svc.close()
