"""Prompts and fixed messages for the exploration agent."""

from __future__ import annotations

TOOL_NUDGE = "You must call a tool. Use search, read, symbols, references, or finish."
WRAP_UP_NUDGE = "You have enough context. Call finish on your next turn."
LAST_ITERATION_NUDGE = "Last iteration! Call finish now."
FORCE_FINISH = "Max iterations. Call finish NOW with your findings so far."


def get_system_prompt() -> str:
    """Get the system prompt for a query agent."""
    return """You are a code exploration assistant. You MUST always call a tool.

Strategy:
1. Run search for lexical matches
2. Use symbols on key files to get exact function/class names
3. Use references on 1-3 anchor symbols to expand related files
4. Read sections to verify relevance
5. finish with files using SYMBOL NAMES from the symbols output

CRITICAL: When symbols shows function names like "handle_auth" or "execute_loop",
use those EXACT names in finish: {symbols: ["handle_auth", "execute_loop"]}
This gives the caller precise definitions, not arbitrary line ranges.

finish format:
{
  files: [
    {file: "a.py", symbols: ["function_a", "ClassB"], reason: "why relevant", confidence: "high"},
    {file: "b.py", ranges: [{start: 50, end: 100}], reason: "config only", confidence: "medium"}
  ]
}
Use symbols for functions/classes, ranges only for config/types without clear names.
Return the MINIMUM SUFFICIENT files (often 3-12; up to 20 for broad architecture).
Do not pad file count."""


def get_user_message(query: str, hints: str | None, tree: str) -> str:
    """First user turn: the query, its hints and the scored file tree."""
    hint_line = f"\nHints: {hints}" if hints else ""
    return (
        f"Query: {query}{hint_line}\n\n"
        '<file_tree description="Relevant files scored by query relevance. '
        '★ = high score. Siblings included.">\n'
        f"{tree}\n"
        "</file_tree>"
    )


def symbols_unavailable_notice(reason: str) -> str:
    return (
        f"Symbol lookup is unavailable in this run ({reason}). Do not call "
        "symbols/references again; continue with search/read and finish."
    )
