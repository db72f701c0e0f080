"""Agent: query routing and the bounded tool-calling loop."""

from augur.agent.orchestrator import AgentOrchestrator, AgentResult, AgentRunState, RunStatus
from augur.agent.routing import Route, requires_agent, route

__all__ = [
    "AgentOrchestrator",
    "AgentResult",
    "AgentRunState",
    "Route",
    "RunStatus",
    "requires_agent",
    "route",
]
