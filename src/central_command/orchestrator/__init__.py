"""Orchestrator subsystem for Central Command.

This module implements the work queue poller, the per-item dispatcher,
the status state machine, the keyword classifier, the cost model and the
execution ledger.
"""

from __future__ import annotations

from central_command.orchestrator.classifier import (
    AgentAssignment,
    RoutingPolicy,
    analyze_task,
)
from central_command.orchestrator.cost_model import CostRates, calculate_cost
from central_command.orchestrator.dispatcher import Dispatcher, DispatchOutcome
from central_command.orchestrator.ledger import AttemptData, ExecutionLedger
from central_command.orchestrator.poller import FetchResult, Poller, order_by_priority
from central_command.orchestrator.state_machine import (
    InvalidTransitionError,
    StatusUpdater,
    validate_transition,
)

__all__ = [
    "AgentAssignment",
    "AttemptData",
    "CostRates",
    "DispatchOutcome",
    "Dispatcher",
    "ExecutionLedger",
    "FetchResult",
    "InvalidTransitionError",
    "Poller",
    "RoutingPolicy",
    "StatusUpdater",
    "analyze_task",
    "calculate_cost",
    "order_by_priority",
    "validate_transition",
]
