"""Shared fixtures for integration tests."""

from __future__ import annotations

import pytest

from central_command.config import ExecutorConfig, StoreConfig

API_URL = "https://airtable.test/v0"
BASE_ID = "appTEST"
INTAKE_URL = "https://intake.test/api/intake"


@pytest.fixture
def store_config() -> StoreConfig:
    return StoreConfig(
        api_url=API_URL,
        base_id=BASE_ID,
        api_token="pat-test",
        work_queue_table="WorkQueue",
        ledger_table="Ledger",
        page_size=2,
    )


@pytest.fixture
def executor_config() -> ExecutorConfig:
    return ExecutorConfig(url=INTAKE_URL, auth_header="Bearer intake-token", timeout_seconds=5)
