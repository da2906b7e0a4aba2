"""Top-level retrieval run: agents, merge, resolve, pack, assemble."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

from codescout.agent.loop import QueryAgent
from codescout.agent.models import AgentResult, AgentState, AgentStatus, ScoutMetadata, ScoutResult
from codescout.config import ProjectConfig
from codescout.context.assembler import assemble, render_summaries
from codescout.context.merger import merge_selections
from codescout.context.models import Query
from codescout.context.packer import compute_budget, pack
from codescout.context.resolver import RangeResolver
from codescout.exceptions import ScoutError
from codescout.intel.context import get_intel_context
from codescout.llm.base import LLMProvider, UsageStats
from codescout.scanner.relevance import RelevanceScanner
from codescout.search.ripgrep import RipgrepSearch
from codescout.tools.definitions import get_scout_tools

logger = logging.getLogger("codescout.orchestrator")

HOME_DIR_ERROR = (
    "[codescout disabled at home directory] Run codescout from a project "
    "directory (e.g. ~/src/myproject), not from ~/."
)

QueryInput = Query | dict[str, Any] | str


def normalize_queries(queries: list[QueryInput], max_queries: int = 5) -> list[Query]:
    """Validate raw query input into Query objects.

    Raises:
        ScoutError: On an empty list, too many queries, or a blank query.
    """
    if not queries:
        raise ScoutError("At least one query is required")
    if len(queries) > max_queries:
        raise ScoutError(f"At most {max_queries} queries are allowed, got {len(queries)}")

    parsed: list[Query] = []
    for item in queries:
        if isinstance(item, Query):
            query = item
        elif isinstance(item, str):
            query = Query(query=item)
        elif isinstance(item, dict):
            hints = item.get("hints")
            query = Query(
                query=str(item.get("query") or ""),
                hints=hints if isinstance(hints, str) and hints.strip() else None,
            )
        else:
            raise ScoutError(f"Invalid query: {item!r}")
        if not query.query.strip():
            raise ScoutError("Queries must not be empty")
        parsed.append(query)
    return parsed


def is_home_directory(path: Path) -> bool:
    return path.resolve() == Path.home().resolve()


def error_result(
    text: str,
    agents: list[AgentState] | None = None,
    results: list[AgentResult] | None = None,
) -> ScoutResult:
    metadata = ScoutMetadata(
        agents=agents or [],
        total_usage=UsageStats.total([r.usage for r in results or []]),
        status=AgentStatus.ERROR,
    )
    return ScoutResult(text=text, metadata=metadata)


class Scout:
    """Runs one retrieval invocation for a project root.

    Usage:
        scout = Scout(root, load_config(root))
        result = await scout.run([Query(query="where is auth handled")])
        print(result.text)
    """

    def __init__(
        self,
        root: Path,
        config: ProjectConfig | None = None,
        provider: LLMProvider | None = None,
    ) -> None:
        self.root = root.resolve()
        self.config = config or ProjectConfig()
        self._provider = provider
        self.searcher = RipgrepSearch(self.root, self.config.scanner)
        self.scanner = RelevanceScanner(self.root, self.searcher, self.config.scanner)

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            from codescout.llm.factory import create_provider

            self._provider = create_provider(self.config.llm)
        return self._provider

    async def run(
        self,
        queries: list[QueryInput],
        on_update: Callable[[ScoutMetadata], None] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ScoutResult:
        """Answer up to five queries with one budgeted text artifact. Never raises."""
        try:
            return await self._run(queries, on_update, cancel)
        except ScoutError as e:
            return error_result(f"[codescout error] {e}")
        except Exception as e:
            logger.exception("Scout run failed")
            return error_result(f"[codescout fatal error] {e}")

    async def _run(
        self,
        queries: list[QueryInput],
        on_update: Callable[[ScoutMetadata], None] | None,
        cancel: asyncio.Event | None,
    ) -> ScoutResult:
        if is_home_directory(self.root):
            return error_result(HOME_DIR_ERROR)

        parsed = normalize_queries(queries, self.config.max_queries)

        intel = get_intel_context(self.root, self.config.intel, self.searcher)
        intel.start()
        tools = get_scout_tools(self.root, self.searcher, intel, self.config)
        provider = self.provider

        agents: list[QueryAgent] = []

        def report(_: AgentState) -> None:
            if on_update is None:
                return
            states = [a.state.model_copy(deep=True) for a in agents]
            on_update(
                ScoutMetadata(
                    agents=states,
                    total_usage=UsageStats.total([s.usage for s in states]),
                    status=AgentStatus.RUNNING,
                )
            )

        for query in parsed:
            agents.append(
                QueryAgent(
                    provider=provider,
                    tools=tools,
                    scanner=self.scanner,
                    searcher=self.searcher,
                    query=query,
                    config=self.config.agent,
                    llm_config=self.config.llm,
                    on_update=report,
                    cancel=cancel,
                )
            )

        logger.info("Running %d agent(s) in %s", len(agents), self.root)
        results = list(await asyncio.gather(*(agent.run() for agent in agents)))
        states = [agent.state for agent in agents]

        candidates = merge_selections([(q, r.files) for q, r in zip(parsed, results)])
        summaries = "\n\n".join(render_summaries(parsed, results))
        if not candidates:
            result = error_result(f"No relevant code found.\n\n{summaries}", states, results)
            return self._report(result, on_update)

        resolver = RangeResolver(self.root, intel, self.config.resolver)
        chunks, unreadable = await resolver.resolve(candidates)
        if unreadable:
            logger.info("%d selected file(s) could not be read", len(unreadable))
        if not chunks:
            result = error_result(f"No readable code surfaced.\n\n{summaries}", states, results)
            return self._report(result, on_update)

        budget = compute_budget(len(parsed), self.config.budget)
        packed = pack(chunks, budget)
        result = assemble(
            parsed,
            results,
            states,
            candidates,
            packed,
            budget,
            preview_limit=self.config.budget.omitted_preview_limit,
        )
        return self._report(result, on_update)

    @staticmethod
    def _report(
        result: ScoutResult, on_update: Callable[[ScoutMetadata], None] | None
    ) -> ScoutResult:
        if on_update is not None:
            on_update(result.metadata)
        return result
