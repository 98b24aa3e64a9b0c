"""Processing cost estimation.

``calculate_cost`` is pure: a per-agent base charge plus a token charge
plus a time charge, rounded half-up to cents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Mapping

from central_command.config import CostConfig

DEFAULT_BASE_COSTS: Mapping[str, float] = MappingProxyType(
    {
        "claude": 0.015,  # per request
        "gpt4": 0.03,
        "copilot": 0.008,
        "multi_agent": 0.05,  # coordination overhead
    }
)

# Applied to len(goal) * 4 when the executor does not report usage.
TOKEN_MULTIPLIERS: Mapping[str, float] = MappingProxyType(
    {
        "claude": 1.5,
        "gpt4": 1.8,
        "copilot": 1.0,
        "multi_agent": 2.5,
    }
)
DEFAULT_TOKEN_MULTIPLIER = 1.2

_CENT = Decimal("0.01")
_SECOND = Decimal("1")


@dataclass(frozen=True)
class CostRates:
    """Rates used by the cost model.

    Attributes:
        base_costs: Per-request base cost by agent.
        per_token_rate: USD per token.
        per_second_rate: USD per second of execution.
        fallback_agent: Agent whose base cost applies to unknown agents.
    """

    base_costs: Mapping[str, float] = field(default_factory=lambda: DEFAULT_BASE_COSTS)
    per_token_rate: float = 0.000002
    per_second_rate: float = 0.001
    fallback_agent: str = "claude"

    @classmethod
    def from_config(cls, config: CostConfig, fallback_agent: str = "claude") -> CostRates:
        """Build rates from cost configuration."""
        return cls(
            base_costs=MappingProxyType(dict(config.base_costs)),
            per_token_rate=config.per_token_rate,
            per_second_rate=config.per_second_rate,
            fallback_agent=fallback_agent,
        )

    def base_cost(self, agent: str) -> float:
        """Base cost for ``agent``, or the fallback agent's for unknown agents."""
        if agent in self.base_costs:
            return self.base_costs[agent]
        return self.base_costs.get(self.fallback_agent, 0.0)


DEFAULT_RATES = CostRates()


def calculate_cost(
    agent: str,
    exec_seconds: float,
    tokens_used: int | None = 0,
    rates: CostRates = DEFAULT_RATES,
) -> float:
    """Estimate the cost of one processing attempt.

    Args:
        agent: Agent that processed the attempt.
        exec_seconds: Wall-clock execution time in seconds.
        tokens_used: Tokens consumed; None counts as zero.
        rates: Rates to apply.

    Returns:
        ``base + tokens * per_token + seconds * per_second`` rounded to cents.

    Example:
        >>> calculate_cost("claude", 30, 100)
        0.05
    """
    amount = (
        Decimal(str(rates.base_cost(agent)))
        + Decimal(tokens_used or 0) * Decimal(str(rates.per_token_rate))
        + Decimal(str(exec_seconds)) * Decimal(str(rates.per_second_rate))
    )
    return float(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def whole_seconds(elapsed: float) -> int:
    """Round an elapsed time to whole seconds, halves away from zero."""
    return int(Decimal(str(elapsed)).quantize(_SECOND, rounding=ROUND_HALF_UP))


def estimate_token_usage(goal: str, agent: str) -> int:
    """Rough token estimate for executors that do not report usage."""
    multiplier = TOKEN_MULTIPLIERS.get(agent, DEFAULT_TOKEN_MULTIPLIER)
    return round(len(goal) * 4 * multiplier)
