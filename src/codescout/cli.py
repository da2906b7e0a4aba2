"""Command-line interface for codescout."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click
from rich.live import Live

from codescout import __version__
from codescout.config import (
    ProjectConfig,
    find_project_root,
    load_config,
    save_config,
    set_config_value,
)
from codescout.context.models import Query
from codescout.exceptions import ConfigError
from codescout.logger import setup_logging
from codescout.ui.console import Console, render_progress
from codescout.ui.paths import shorten_path

console = Console()
err_console = Console(stderr=True)


def _get_project_root(path: str | None = None) -> Path:
    """Explicit path, else the nearest initialized project, else the cwd."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root
    return find_project_root() or Path.cwd().resolve()


def _load_config(root: Path) -> ProjectConfig:
    try:
        return load_config(root)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)


def _parse_queries(
    queries: tuple[str, ...],
    hints: str | None,
    queries_json: str | None,
    queries_file: str | None,
) -> list[Query]:
    """Collect queries from positional args, --queries and --queries-file."""
    parsed = [Query(query=q, hints=hints) for q in queries]

    raw_items: list = []
    for source, label in ((queries_json, "--queries"), (queries_file, "--queries-file")):
        if source is None:
            continue
        text = Path(source).read_text() if label == "--queries-file" else source
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"invalid JSON: {e}", param_hint=label)
        if not isinstance(data, list):
            raise click.BadParameter("expected a JSON array", param_hint=label)
        raw_items.extend(data)

    for item in raw_items:
        if isinstance(item, str):
            parsed.append(Query(query=item))
        elif isinstance(item, dict) and isinstance(item.get("query"), str):
            item_hints = item.get("hints")
            parsed.append(
                Query(query=item["query"], hints=item_hints if isinstance(item_hints, str) else None)
            )
        else:
            raise click.BadParameter(f"invalid query entry: {item!r}")
    return parsed


@click.group()
@click.version_option(version=__version__, prog_name="codescout")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr.")
@click.option("--log-file", type=click.Path(), default=None, help="Also write logs to a file.")
def main(verbose: bool, log_file: str | None):
    """codescout - budgeted multi-agent code retrieval."""
    setup_logging(verbose=verbose, log_file=Path(log_file) if log_file else None)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--provider", default=None, help="LLM provider (anthropic, openai, cerebras, local).")
@click.option("--model", default=None, help="LLM model name.")
def init(path: str | None, provider: str | None, model: str | None):
    """Create .codescout/config.json for a repository."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    config = _load_config(root)
    config.name = root.name
    config.root_path = str(root)
    if provider:
        config.llm.provider = provider
    if model:
        config.llm.model = model

    save_config(root, config)
    console.success(f"Configuration saved for {shorten_path(str(root))}")
    if not config.llm.api_key:
        console.warning(
            f"No API key found for provider '{config.llm.provider}'. "
            "Set it in the environment or with 'codescout config set llm.api_key_env VAR'."
        )


@main.command()
@click.argument("queries", nargs=-1)
@click.option("--hints", default=None, help="Comma-separated keywords for positional queries.")
@click.option("--queries", "queries_json", default=None, help='JSON array: [{"query": ..., "hints": ...}].')
@click.option(
    "--queries-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File containing a JSON array of queries.",
)
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--json", "as_json", is_flag=True, help="Print text and metadata as JSON.")
@click.option("--out", "-o", type=click.Path(dir_okay=False), default=None, help="Write the result text to a file.")
@click.option("--no-progress", is_flag=True, help="Disable the live progress display.")
def scout(
    queries: tuple[str, ...],
    hints: str | None,
    queries_json: str | None,
    queries_file: str | None,
    path: str | None,
    as_json: bool,
    out: str | None,
    no_progress: bool,
):
    """Find the code relevant to one or more QUERIES.

    Example:
        codescout scout "where are sessions validated" --hints session,token
    """
    from codescout.orchestrator import Scout

    parsed = _parse_queries(queries, hints, queries_json, queries_file)
    if not parsed:
        console.error("Provide at least one query (positional, --queries or --queries-file).")
        sys.exit(1)

    root = _get_project_root(path)
    config = _load_config(root)
    runner = Scout(root, config)

    show_progress = not (as_json or no_progress) and err_console.console.is_terminal

    async def run():
        if not show_progress:
            return await runner.run(parsed)
        with Live(console=err_console.console, refresh_per_second=8, transient=True) as live:
            return await runner.run(parsed, on_update=lambda m: live.update(render_progress(m)))

    result = asyncio.run(run())

    if as_json:
        click.echo(json.dumps({"text": result.text, "metadata": result.metadata.model_dump(mode="json")}, indent=2))
    elif out:
        Path(out).write_text(result.text)
        console.success(f"Wrote {out}")
    else:
        click.echo(result.text)

    if not as_json:
        err_console.show_deliverables(result.metadata)
    if result.is_error:
        sys.exit(1)


@main.command()
@click.argument("query")
@click.option("--hints", default=None, help="Comma-separated keywords.")
@click.option("--path", "-p", default=None, help="Path to the project root.")
def tree(query: str, hints: str | None, path: str | None):
    """Show the relevance-scored file tree an agent would start from."""
    from codescout.scanner.relevance import RelevanceScanner
    from codescout.search.ripgrep import RipgrepSearch

    root = _get_project_root(path)
    config = _load_config(root)
    searcher = RipgrepSearch(root, config.scanner)
    scanner = RelevanceScanner(root, searcher, config.scanner)
    result = scanner.scan(query, Query(query=query, hints=hints).hint_list())
    console.show_tree(result.tree, result.patterns)


@main.command()
@click.argument("file")
@click.option("--path", "-p", default=None, help="Path to the project root.")
def symbols(file: str, path: str | None):
    """List the symbols declared in FILE (relative to the project root)."""
    from codescout.intel.context import get_intel_context
    from codescout.search.ripgrep import RipgrepSearch

    root = _get_project_root(path)
    config = _load_config(root)
    intel = get_intel_context(root, config.intel, RipgrepSearch(root, config.scanner))

    async def run() -> str:
        await intel.wait_ready()
        return await intel.get_symbols(file)

    click.echo(asyncio.run(run()))


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option(
    "--transport", "-t",
    type=click.Choice(["stdio"]),
    default="stdio",
    help="Transport protocol (default: stdio).",
)
@click.option("--generate-config", type=click.Choice(["claude", "cursor"]),
              default=None, help="Generate MCP config for a client.")
def serve(path: str | None, transport: str, generate_config: str | None):
    """Start the MCP server exposing the `scout` tool over stdio."""
    from codescout.mcp.server import MCPServer

    if generate_config:
        root_path = str(Path(path or ".").resolve())
        if generate_config == "claude":
            config = MCPServer.generate_claude_config(root_path)
        else:
            config = MCPServer.generate_cursor_config(root_path)
        click.echo(json.dumps(config, indent=2))
        return

    server = MCPServer(_get_project_root(path))
    if transport == "stdio":
        asyncio.run(server.run_stdio())


@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage codescout configuration."""
    root = _get_project_root(path)
    config = _load_config(root)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: codescout config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: codescout config set <key> <value>")
            sys.exit(1)
        # Try to parse as JSON for non-string values
        try:
            parsed_value = json.loads(value)
        except json.JSONDecodeError:
            parsed_value = value
        try:
            config = set_config_value(config, key, parsed_value)
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ValueError as e:
            console.error(f"Invalid value for {key}: {e}")
            sys.exit(1)
        save_config(root, config)
        console.success(f"Set {key} = {parsed_value}")


if __name__ == "__main__":
    main()
