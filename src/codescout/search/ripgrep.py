"""Ripgrep-backed content search."""

from __future__ import annotations

import errno
import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from codescout.config import ScannerConfig

logger = logging.getLogger("codescout.search")

# Exec failures of the bundled binary that are worth retrying with PATH rg
RETRYABLE_EXEC_ERRNOS = frozenset({errno.ENOENT, errno.EACCES, errno.ENOTDIR, errno.EPERM})

# Extra ignores when scanning directly from $HOME to avoid giant system trees
HOME_IGNORE_GLOBS = [
    "!Library/**",
    "!Downloads/**",
    "!Pictures/**",
    "!Movies/**",
    "!Music/**",
    "!Applications/**",
    "!.Trash/**",
    "!.cache/**",
]


@dataclass
class SearchOutcome:
    """Files matching one pattern, or the reason the search failed."""

    files: list[str] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


@dataclass
class WordMatch:
    """A whole-word occurrence: 1-based line, 1-based column."""

    file: str
    line: int
    column: int


def get_home_ignore_globs(cwd: Path) -> list[str]:
    if cwd.resolve() != Path.home().resolve():
        return []
    return list(HOME_IGNORE_GLOBS)


def resolve_rg_binary(bundled_path: str) -> str:
    """Prefer the bundled rg if present and executable, otherwise PATH."""
    bundled = Path(bundled_path).expanduser()
    if bundled.is_file() and os.access(bundled, os.X_OK):
        return str(bundled)
    return "rg"


class RipgrepSearch:
    """Thin wrapper around the `rg` binary scoped to a project root.

    All methods are synchronous (callers on the event loop push them to a
    thread) and never raise for ordinary search failures.
    """

    def __init__(self, root: Path, config: ScannerConfig | None = None) -> None:
        self.root = root
        self.config = config or ScannerConfig()

    # ------------------------------------------------------------------
    # Process plumbing
    # ------------------------------------------------------------------

    def _glob_args(self) -> list[str]:
        args: list[str] = []
        for glob in [*self.config.exclude_globs, *get_home_ignore_globs(self.root)]:
            args += ["-g", glob]
        return args

    def _exec(self, binary: str, args: list[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            [binary, *args],
            shell=False,
            cwd=str(self.root),
            capture_output=True,
            text=True,
            errors="replace",
            timeout=self.config.search_timeout_s,
        )

    def _run(self, args: list[str]) -> tuple[str, str]:
        """Run rg and return (stdout, error). Exit codes 0 and 1 are success."""
        binary = resolve_rg_binary(self.config.rg_path)
        try:
            try:
                result = self._exec(binary, args)
            except OSError as e:
                if binary == "rg" or e.errno not in RETRYABLE_EXEC_ERRNOS:
                    raise
                logger.debug("Bundled rg failed (%s), retrying with PATH rg", e)
                result = self._exec("rg", args)
        except subprocess.TimeoutExpired:
            return "", f"timed out after {self.config.search_timeout_s:g}s"
        except OSError as e:
            return "", str(e)

        if result.returncode not in (0, 1):
            detail = [f"exit {result.returncode}"]
            stderr = (result.stderr or "").strip()[:400]
            if stderr:
                detail.append(stderr)
            return "", "; ".join(detail)
        return result.stdout or "", ""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def count_matches(self, pattern: str) -> dict[str, int]:
        """Per-file case-insensitive match counts. Empty on failure."""
        stdout, error = self._run(
            ["-c", "-i", "--no-heading", "--no-messages", *self._glob_args(), pattern, "."]
        )
        if error:
            logger.warning("rg count for %r failed: %s", pattern, error)
            return {}

        counts: dict[str, int] = {}
        for line in stdout.strip().splitlines():
            idx = line.rfind(":")
            if idx <= 0:
                continue
            file = line[:idx].removeprefix("./")
            try:
                count = int(line[idx + 1:])
            except ValueError:
                count = 1
            counts[file] = count or 1
        return counts

    def list_files(self, pattern: str) -> SearchOutcome:
        """Files containing `pattern` (case-insensitive)."""
        stdout, error = self._run(
            [
                "-l", "-i", "--no-messages",
                *self._glob_args(),
                "-m", str(self.config.max_matches_per_file),
                pattern, ".",
            ]
        )
        if error:
            return SearchOutcome(error=error)
        files = [line.strip().removeprefix("./") for line in stdout.splitlines() if line.strip()]
        return SearchOutcome(files=files)

    def find_word(self, word: str) -> list[WordMatch]:
        """Whole-word, fixed-string occurrences of an identifier."""
        stdout, error = self._run(
            [
                "--vimgrep", "-w", "-F", "--no-messages",
                *self._glob_args(),
                "--", word, ".",
            ]
        )
        if error:
            logger.warning("rg word search for %r failed: %s", word, error)
            return []

        matches: list[WordMatch] = []
        for line in stdout.splitlines():
            parts = line.split(":", 3)
            if len(parts) < 4:
                continue
            try:
                matches.append(
                    WordMatch(
                        file=parts[0].removeprefix("./"),
                        line=int(parts[1]),
                        column=int(parts[2]),
                    )
                )
            except ValueError:
                continue
        return matches

    def search_multi(self, patterns: list[str]) -> str:
        """Run several patterns and format the file lists for the agent.

        Output is capped at `max_output_chars`; later patterns are skipped
        once the cap is reached.
        """
        max_chars = self.config.max_output_chars
        sections: list[str] = []
        unique: set[str] = set()
        total_chars = 0

        for pattern in patterns:
            outcome = self.list_files(pattern)
            if not outcome.ok:
                sections.append(f"### {pattern}\n[search error: {outcome.error}]")
                continue
            if not outcome.files:
                sections.append(f"### {pattern}\nNo matches")
                continue

            allowed = max_chars - total_chars
            if allowed <= 0:
                sections.append(f"### {pattern}\n[skipped - context budget reached]")
                continue

            text = ""
            shown = 0
            for file in outcome.files:
                if len(text) + len(file) + 1 > allowed:
                    text += f"\n[...{len(outcome.files) - shown} more files]"
                    break
                text += ("\n" if text else "") + file
                shown += 1
                unique.add(file)
            sections.append(f"### {pattern}\n{text}")
            total_chars += len(text)

        return "\n\n".join(sections) + f"\n\n**Total: {len(unique)} unique files**"
