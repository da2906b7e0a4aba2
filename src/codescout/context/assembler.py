"""Render the final text artifact and its metadata."""

from __future__ import annotations

from codescout.agent.models import AgentResult, AgentState, AgentStatus, ScoutMetadata, ScoutResult
from codescout.context.models import Budget, MergedSelection, Query
from codescout.context.packer import PackResult
from codescout.context.tokens import format_tokens
from codescout.llm.base import UsageStats

OMITTED_HEADING = "## Additional relevant files (not inlined due budget)"


def render_summaries(queries: list[Query], results: list[AgentResult]) -> list[str]:
    return [f"### {q.query}\n" + "\n".join(r.summary) for q, r in zip(queries, results)]


def collect_not_found(results: list[AgentResult]) -> list[str]:
    """All not-found notes, de-duplicated in first-seen order."""
    seen: list[str] = []
    for result in results:
        for item in result.not_found:
            if item not in seen:
                seen.append(item)
    return seen


def assemble(
    queries: list[Query],
    results: list[AgentResult],
    agents: list[AgentState],
    candidates: list[MergedSelection],
    packed: PackResult,
    budget: Budget,
    preview_limit: int = 40,
) -> ScoutResult:
    """Build the output text and metadata for a completed invocation.

    `candidates` is every merged selection; anything not included (whether
    packed out or unreadable) is listed as omitted.
    """
    included = packed.included
    resolved_files = {c.file for c in [*included, *packed.omitted]}
    # Packed-out chunks in rank order, then selections that never resolved
    omitted = [c.selection for c in packed.omitted] + [
        s for s in candidates if s.file not in resolved_files
    ]

    metas = [c.to_meta() for c in included]
    total_tokens = sum(m.estimated_tokens for m in metas)

    summary = "## Summary\n" + "\n\n".join(render_summaries(queries, results))
    not_found = collect_not_found(results)
    if not_found:
        summary += f"\n\n**Not found:** {', '.join(not_found)}"

    budget_line = (
        f"_Surfaced {len(included)}/{len(candidates)} files · "
        f"~{format_tokens(total_tokens)} tokens "
        f"(budget soft {format_tokens(budget.soft)}, hard {format_tokens(budget.hard)})_"
    )
    text = f"{summary}\n\n---\n{budget_line}\n\n" + "\n\n".join(c.content for c in included)

    if omitted:
        lines = []
        for selection in omitted[:preview_limit]:
            conf = f" · {selection.confidence.value}" if selection.confidence else ""
            lines.append(f"- {selection.file}{conf} · {selection.reason}")
        if len(omitted) > preview_limit:
            lines.append(f"- ... +{len(omitted) - preview_limit} more")
        text += f"\n\n---\n{OMITTED_HEADING}\n" + "\n".join(lines)

    metadata = ScoutMetadata(
        agents=agents,
        total_usage=UsageStats.total([r.usage for r in results]),
        status=AgentStatus.DONE,
        file_count=len(included),
        candidate_file_count=len(candidates),
        omitted_file_count=len(candidates) - len(included),
        symbol_count=sum(len(m.symbols) for m in metas),
        range_count=sum(len(m.ranges) for m in metas),
        loc_count=packed.used_loc,
        token_count=total_tokens,
        token_budget_soft=budget.soft,
        token_budget_hard=budget.hard,
        file_selections=metas,
    )
    return ScoutResult(text=text, metadata=metadata)
