"""Keyword-based agent assignment for work items.

Scores free text against an immutable table of per-agent category
keywords, then applies an ordered list of override rules. Everything here
is a pure function of the input text and the routing policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from central_command.config import RoutingConfig


@dataclass(frozen=True)
class AgentProfile:
    """Category keywords that route text to one agent."""

    agent: str
    category: str
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class OverrideRule:
    """Trigger terms that force an agent regardless of category scores."""

    name: str
    terms: tuple[str, ...]
    reasoning: str


# Declaration order is the tie-break order.
AGENT_PROFILES: tuple[AgentProfile, ...] = (
    AgentProfile("claude", "architecture", ("architect", "design", "technical", "system")),
    AgentProfile("gpt4", "creative", ("creative", "content", "marketing", "copy")),
    AgentProfile("multi_agent", "analysis", ("analysis", "data", "report", "research")),
    AgentProfile("copilot", "business", ("invoice", "business", "finance")),
)

# Evaluated in order after scoring; the first match wins.
OVERRIDE_RULES: tuple[OverrideRule, ...] = (
    OverrideRule(
        "communication",
        (
            "email",
            "message",
            "send",
            "contact",
            "calendar",
            "meeting",
            "follow up",
            "follow-up",
            "draft",
        ),
        "Email/calendar task routed to the default agent for direct mail and calendar access",
    ),
)


@dataclass(frozen=True)
class RoutingPolicy:
    """Constants that parameterize the classifier."""

    default_agent: str = "claude"
    default_target: str = "superchase"
    default_confidence: float = 0.6
    override_confidence: float = 0.9
    profiles: tuple[AgentProfile, ...] = AGENT_PROFILES
    overrides: tuple[OverrideRule, ...] = OVERRIDE_RULES

    @classmethod
    def from_config(cls, config: RoutingConfig) -> RoutingPolicy:
        """Build a policy from routing configuration."""
        return cls(
            default_agent=config.default_agent,
            default_target=config.default_target,
            default_confidence=config.default_confidence,
            override_confidence=config.override_confidence,
        )


DEFAULT_POLICY = RoutingPolicy()


@dataclass(frozen=True)
class AgentAssignment:
    """Classifier output for one piece of text.

    Attributes:
        agent: Primary agent.
        target: System target paired with the agent.
        confidence: Confidence in [0, 1].
        reasoning: Why the agent was picked.
        scores: Category score per agent, in declaration order.
        override: Name of the override rule that fired, if any.
    """

    agent: str
    target: str
    confidence: float
    reasoning: str
    scores: dict[str, int] = field(default_factory=dict)
    override: str | None = None


def score_agents(
    text: str, profiles: tuple[AgentProfile, ...] = AGENT_PROFILES
) -> dict[str, int]:
    """Count each agent's keywords found as substrings of ``text``.

    Matching is case-insensitive. The returned dict preserves profile order.
    """
    content = text.lower()
    return {
        profile.agent: sum(1 for keyword in profile.keywords if keyword in content)
        for profile in profiles
    }


def match_override(
    text: str, overrides: tuple[OverrideRule, ...] = OVERRIDE_RULES
) -> OverrideRule | None:
    """Return the first override rule with a trigger term in ``text``."""
    content = text.lower()
    for rule in overrides:
        if any(term in content for term in rule.terms):
            return rule
    return None


def analyze_task(text: str, policy: RoutingPolicy = DEFAULT_POLICY) -> AgentAssignment:
    """Pick an agent for ``text``.

    The agent with the highest keyword score wins, earlier profiles winning
    ties. Confidence is the winning score divided by the word count. When no
    keyword matches, the default agent is used with the default confidence.
    Override rules are checked after scoring and replace the score result.

    Args:
        text: Free text to classify, usually task id plus routing payload.
        policy: Routing constants.

    Returns:
        The resulting AgentAssignment.
    """
    scores = score_agents(text, policy.profiles)

    rule = match_override(text, policy.overrides)
    if rule is not None:
        return AgentAssignment(
            agent=policy.default_agent,
            target=policy.default_target,
            confidence=policy.override_confidence,
            reasoning=rule.reasoning,
            scores=scores,
            override=rule.name,
        )

    best_agent = None
    best_score = 0
    for agent, score in scores.items():
        if score > best_score:
            best_agent, best_score = agent, score

    if best_agent is None:
        return AgentAssignment(
            agent=policy.default_agent,
            target=policy.default_target,
            confidence=policy.default_confidence,
            reasoning="No category keywords matched; using the default agent",
            scores=scores,
        )

    word_count = len(text.split())
    confidence = min(1.0, best_score / word_count)
    return AgentAssignment(
        agent=best_agent,
        target=policy.default_target,
        confidence=confidence,
        reasoning=f"Primary trigger: {best_agent} ({best_score} matching keywords)",
        scores=scores,
    )


def classification_text(task_id: str, routing_payload: str | None) -> str:
    """Concatenate the fields the classifier looks at."""
    return f"{task_id} {routing_payload or ''}".strip()
