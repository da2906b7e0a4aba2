"""Project-relative file access shared by tools, symbol lookup and the resolver."""

from __future__ import annotations

from pathlib import Path


def resolve_in_root(root: Path, file_path: str) -> Path | None:
    """Resolve a project-relative path, or None if it escapes the root."""
    full_path = (root / file_path).resolve()
    try:
        full_path.relative_to(root.resolve())
    except ValueError:
        return None
    return full_path


def read_lines(path: Path) -> list[str]:
    """Read a text file as lines (no line terminators). Raises OSError."""
    return path.read_text(encoding="utf-8", errors="replace").splitlines()


def number_lines(lines: list[str], start_line: int = 1, max_lines: int = 800) -> str:
    """Render `N: text` lines from `start_line`, with a trailer if more remain."""
    start = max(0, start_line - 1)
    end = min(len(lines), start + max_lines)
    output = "\n".join(f"{start + i + 1}: {line}" for i, line in enumerate(lines[start:end]))
    if end < len(lines):
        output += f"\n[...{len(lines) - end} more lines]"
    return output
