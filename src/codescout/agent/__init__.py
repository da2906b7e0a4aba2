"""Per-query exploration agents."""

from codescout.agent.loop import QueryAgent
from codescout.agent.models import AgentResult, AgentState, AgentStatus, ScoutMetadata, ScoutResult

__all__ = ["AgentResult", "AgentState", "AgentStatus", "QueryAgent", "ScoutMetadata", "ScoutResult"]
