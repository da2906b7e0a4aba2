"""Rich-powered console output for codescout."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.console import Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from codescout import __version__
from codescout.agent.models import AgentState, AgentStatus, ScoutMetadata
from codescout.context.tokens import format_tokens
from codescout.llm.base import UsageStats
from codescout.tools.definitions import format_tool_call
from codescout.ui.paths import minimal_paths

_STATUS_ICONS = {
    AgentStatus.RUNNING: "[yellow]⏳[/yellow]",
    AgentStatus.DONE: "[green]✓[/green]",
    AgentStatus.ERROR: "[red]✗[/red]",
}

# Tool calls shown per agent while it runs
_RECENT_CALLS = 3


def format_usage(usage: UsageStats, model: str = "") -> str:
    """Compact usage line: ↑input ↓output R cache-read W cache-write $cost model."""
    parts = []
    if usage.input:
        parts.append(f"↑{format_tokens(usage.input)}")
    if usage.output:
        parts.append(f"↓{format_tokens(usage.output)}")
    if usage.cache_read:
        parts.append(f"R{format_tokens(usage.cache_read)}")
    if usage.cache_write:
        parts.append(f"W{format_tokens(usage.cache_write)}")
    if usage.cost:
        parts.append(f"${usage.cost:.4f}")
    if model:
        parts.append(model)
    return " ".join(parts)


def format_deliverables(metadata: ScoutMetadata) -> str:
    """One line describing what the run surfaced against its budget."""
    line = (
        f"{metadata.file_count}/{metadata.candidate_file_count} files "
        f"({metadata.range_count} ranges, {metadata.loc_count} lines, "
        f"{metadata.symbol_count} sym, {format_tokens(metadata.token_count)} tokens, "
        f"budget ≤{format_tokens(metadata.token_budget_hard)})"
    )
    if metadata.omitted_file_count:
        line += f" +{metadata.omitted_file_count} omitted"
    return line


def render_agent(state: AgentState) -> Text:
    icon = _STATUS_ICONS[state.status]
    header = f"{icon} [bold]{escape(state.query)}[/bold] [dim]{state.iterations}/{state.max_iterations}"
    header += f" · {state.elapsed_s:.1f}s[/dim]"
    lines = [header]
    for call in state.tool_calls[-_RECENT_CALLS:]:
        lines.append(f"  [dim]→ {escape(format_tool_call(call.name, call.args))}[/dim]")
    if state.error:
        lines.append(f"  [red]{escape(state.error)}[/red]")
    usage = format_usage(state.usage, state.model)
    if usage:
        lines.append(f"  [dim]{usage}[/dim]")
    return Text.from_markup("\n".join(lines))


def render_progress(metadata: ScoutMetadata) -> Group:
    """Live view of every agent, used with rich.live.Live."""
    parts = [render_agent(state) for state in metadata.agents]
    total = format_usage(metadata.total_usage)
    if total and len(metadata.agents) > 1:
        parts.append(Text.from_markup(f"[dim]Σ {total}[/dim]"))
    return Group(*parts)


class Console:
    """Terminal output for codescout using Rich."""

    def __init__(self, stderr: bool = False) -> None:
        self.console = RichConsole(stderr=stderr)

    def banner(self) -> None:
        self.console.print(
            Panel(
                f"[bold cyan]codescout[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Budgeted multi-agent code retrieval[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def show_tree(self, tree: str, patterns: list[str]) -> None:
        self.console.print(f"[dim]patterns:[/dim] {', '.join(patterns) or '(none)'}")
        self.console.print(Text(tree))

    def show_deliverables(self, metadata: ScoutMetadata) -> None:
        """Final summary line plus a per-file breakdown."""
        style = "red" if metadata.status == AgentStatus.ERROR else "green"
        self.console.print(f"[{style}]{format_deliverables(metadata)}[/{style}]")
        if not metadata.file_selections:
            return

        table = Table(border_style="dim", show_header=True, header_style="bold")
        table.add_column("File", style="cyan")
        table.add_column("Lines", justify="right")
        table.add_column("Tokens", justify="right")
        table.add_column("Conf")
        table.add_column("Notes", style="dim")

        names = minimal_paths([m.file for m in metadata.file_selections])
        for name, meta in zip(names, metadata.file_selections):
            notes = []
            if meta.symbols:
                notes.append(f"{len(meta.symbols)} sym")
            if meta.shared:
                notes.append(f"shared:{meta.query_count}q")
            if meta.fallback_used:
                notes.append("fallback")
            if meta.full_file:
                notes.append("full")
            table.add_row(
                name,
                f"{meta.selected_lines}/{meta.total_lines}",
                format_tokens(meta.estimated_tokens),
                meta.confidence.value if meta.confidence else "",
                ", ".join(notes),
            )
        self.console.print(table)
        total = format_usage(metadata.total_usage)
        if total:
            self.console.print(f"[dim]{total}[/dim]")
