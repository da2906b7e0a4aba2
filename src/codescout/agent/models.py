"""Agent state, agent results and the final scout result."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from codescout.context.models import FileSelection, FileSelectionMeta
from codescout.llm.base import UsageStats


class AgentStatus(str, Enum):
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class ToolExecution(BaseModel):
    """One tool invocation in an agent's log."""

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = 0


class AgentState(BaseModel):
    """Progress snapshot of one QueryAgent. Only the owning agent mutates it."""

    query: str
    hints: str | None = None
    model: str = ""
    iterations: int = 0
    max_iterations: int = 15
    tool_calls: list[ToolExecution] = Field(default_factory=list)
    usage: UsageStats = Field(default_factory=UsageStats)
    status: AgentStatus = AgentStatus.RUNNING
    start_time: float = Field(default_factory=time.time)
    end_time: float | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != AgentStatus.RUNNING

    @property
    def elapsed_s(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    def finalize(self, status: AgentStatus, error: str | None = None) -> bool:
        """Move to a terminal status. Returns False if already terminal."""
        if self.is_terminal or status == AgentStatus.RUNNING:
            return False
        self.status = status
        self.error = error
        self.end_time = time.time()
        return True


class AgentResult(BaseModel):
    """What one agent hands back to the orchestrator."""

    summary: list[str] = Field(default_factory=list)
    files: list[FileSelection] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)
    usage: UsageStats = Field(default_factory=UsageStats)
    iterations: int = 0
    tool_calls: list[ToolExecution] = Field(default_factory=list)
    error: str | None = None


class ScoutMetadata(BaseModel):
    """Structured companion to the rendered output, also used for progress."""

    agents: list[AgentState] = Field(default_factory=list)
    total_usage: UsageStats = Field(default_factory=UsageStats)
    status: AgentStatus = AgentStatus.RUNNING
    file_count: int = 0
    candidate_file_count: int = 0
    omitted_file_count: int = 0
    symbol_count: int = 0
    range_count: int = 0
    loc_count: int = 0
    token_count: int = 0
    token_budget_soft: int = 0
    token_budget_hard: int = 0
    file_selections: list[FileSelectionMeta] = Field(default_factory=list)


class ScoutResult(BaseModel):
    """One text artifact plus its metadata."""

    text: str
    metadata: ScoutMetadata = Field(default_factory=ScoutMetadata)

    @property
    def is_error(self) -> bool:
        return self.metadata.status == AgentStatus.ERROR
