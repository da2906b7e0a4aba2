"""Relevance scanner: score repository files against a query and render a seed tree."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Protocol

from codescout.config import ScannerConfig

logger = logging.getLogger("codescout.scanner")

_SUFFIXES = (
    "ational", "ization", "fulness", "iveness", "ousness",
    "ation", "ement", "ment", "ness", "ence", "ance", "able", "ible", "ling",
    "ing", "ion", "ity", "ous", "ive", "ful", "ess", "ist", "ism",
    "ed", "er", "ly", "al", "en", "es", "s",
)

STOPWORDS = frozenset({
    # Common English
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "need", "dare", "ought",
    "used", "using", "use", "uses", "get", "gets", "got", "go", "goes", "gone",
    "make", "makes", "made", "take", "takes", "took", "come", "comes", "came",
    "want", "wants", "wanted", "look", "looks", "looked", "give", "gives", "gave",
    "think", "thinks", "thought", "know", "knows", "knew", "see", "sees", "saw",
    "find", "finds", "found", "tell", "tells", "told", "ask", "asks", "asked",
    "work", "works", "worked", "working", "seem", "seems", "seemed", "feel",
    "try", "tries", "tried", "leave", "leaves", "left", "call", "calls", "called",
    "it", "its", "this", "that", "these", "those", "what", "which", "who", "whom",
    "how", "when", "where", "why", "all", "each", "every", "both", "few", "more",
    "most", "other", "some", "such", "no", "not", "only", "same", "so", "than",
    "too", "very", "just", "also", "now", "here", "there", "then", "once",
    # Code-specific
    "function", "class", "const", "let", "var", "type", "interface",
    "export", "import", "return", "async", "await", "new",
    "file", "files", "code", "data", "value", "values", "list", "item",
    "create", "update", "delete", "run", "runs", "running",
    "exist", "exists", "available", "different", "specific", "actually",
})

HOT_DIRS = frozenset({
    "src", "lib", "core", "pkg", "internal", "cmd", "app",
    "services", "components", "hooks", "utils", "api", "routes",
    "handlers", "controllers", "models", "views", "templates",
})

COLD_DIRS = frozenset({
    "test", "tests", "__tests__", "spec", "specs", "testing",
    "fixtures", "mocks", "__mocks__", "e2e", "integration",
    "testdata", "vendor", "third_party", "examples", "docs",
})

KEY_FILE_BASES = frozenset({
    "index", "main", "mod", "lib", "init", "__init__",
    "types", "schema", "config", "constants", "utils", "helpers",
    "common", "base", "core", "app", "server", "client",
})

SOURCE_EXTS = frozenset({
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
    ".py", ".pyx", ".pyi",
    ".go", ".rs",
    ".java", ".kt", ".scala",
    ".c", ".cpp", ".cc", ".h", ".hpp",
    ".rb", ".php", ".swift", ".cs",
    ".ex", ".exs", ".hs", ".lua",
    ".sh", ".bash", ".zsh",
})

SKIP_SUFFIXES = (".lock", ".map", ".min.js", ".d.ts", ".pyc", ".o", ".a", ".so", ".dylib")
SKIP_FILES = frozenset({".ds_store", "thumbs.db", ".gitkeep"})

SIBLING_SCORE = 5.0


class MatchCounter(Protocol):
    """Anything that can count per-file matches of a pattern."""

    def count_matches(self, pattern: str) -> dict[str, int]: ...


@dataclass
class FileScore:
    file: str
    score: float = 0.0
    match_count: int = 0
    pattern_matches: list[str] = field(default_factory=list)


@dataclass
class SmartTree:
    """Seed context for one query: rendered tree, ranked files, patterns used."""

    tree: str
    files: list[str] = field(default_factory=list)
    patterns: list[str] = field(default_factory=list)


@dataclass
class _TreeNode:
    name: str
    path: str
    is_dir: bool = False
    score: float = 0.0
    children: list[_TreeNode] = field(default_factory=list)
    hidden_files: int = 0
    hidden_dirs: int = 0

    @property
    def is_hidden_count(self) -> bool:
        return not self.name and (self.hidden_files > 0 or self.hidden_dirs > 0)


def stem(word: str) -> str:
    """Strip one common English suffix, keeping at least three characters."""
    w = word.lower()
    for suf in _SUFFIXES:
        if len(w) > len(suf) + 2 and w.endswith(suf):
            return w[: -len(suf)]
    return w


def extract_patterns(query: str, hints: list[str] | None = None) -> list[str]:
    """Build the ordered, de-duplicated search pattern list for a query."""
    patterns: list[str] = []
    seen: set[str] = set()

    for hint in hints or []:
        clean = hint.strip().lower()
        if len(clean) >= 3 and clean not in seen:
            seen.add(clean)
            patterns.append(clean)

    for word in query.lower().split():
        clean = re.sub(r"[^a-z0-9]", "", word)
        if len(clean) < 3 or clean in STOPWORDS or clean in seen:
            continue
        seen.add(clean)
        patterns.append(clean)

        stemmed = stem(clean)
        if stemmed != clean and len(stemmed) >= 3 and stemmed not in seen:
            seen.add(stemmed)
            patterns.append(stemmed)

    return patterns


class RelevanceScanner:
    """Ranks repository files against a query using lexical counts and path heuristics."""

    def __init__(
        self,
        root: Path,
        searcher: MatchCounter,
        config: ScannerConfig | None = None,
    ) -> None:
        self.root = root
        self.searcher = searcher
        self.config = config or ScannerConfig()

    def scan(self, query: str, hints: list[str] | None = None) -> SmartTree:
        """Build the seed tree. Never raises; failures come back as a labelled tree."""
        patterns: list[str] = []
        try:
            patterns = extract_patterns(query, hints)
            if not patterns:
                return SmartTree(tree="(no patterns extracted)")

            scored = self.score_files(patterns)
            if not scored:
                return SmartTree(tree="(no files found)", patterns=patterns)

            nodes = self._build_tree(scored)
            return SmartTree(
                tree=self._render(nodes),
                files=[s.file for s in scored],
                patterns=patterns,
            )
        except Exception as e:
            logger.warning("Relevance scan failed for %r: %s", query, e)
            return SmartTree(tree=f"(smart tree failed: {e})", patterns=patterns)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_files(self, patterns: list[str]) -> list[FileScore]:
        scores: dict[str, FileScore] = {}

        for pattern in patterns:
            counts = self.searcher.count_matches(pattern)
            if len(counts) > self.config.generic_match_limit:
                logger.debug("Skipping generic pattern %r (%d files)", pattern, len(counts))
                continue

            for file, count in counts.items():
                s = scores.setdefault(file, FileScore(file=file))
                s.match_count += count
                s.pattern_matches.append(pattern)
                s.score += min(50.0, math.log2(count + 1) * 10)
                if pattern in file.lower():
                    s.score += 50
                if pattern in PurePosixPath(file).name.lower():
                    s.score += 80

        for s in scores.values():
            s.score += self._structural_bonus(s)

        ranked = sorted(scores.values(), key=lambda s: s.score, reverse=True)
        top = ranked[: self.config.max_files]

        merged = top + self._siblings(top, scores)
        merged.sort(key=lambda s: s.score, reverse=True)
        return merged[: self.config.max_files]

    def _structural_bonus(self, s: FileScore) -> float:
        path = PurePosixPath(s.file)
        parts = s.file.split("/")
        bonus = 0.0

        if len(s.pattern_matches) > 1:
            bonus += 30 * (len(s.pattern_matches) - 1)
        if path.name.rsplit(".", 1)[0].lower() in KEY_FILE_BASES:
            bonus += 25
        if any(part in HOT_DIRS for part in parts):
            bonus += 15
        if any(part in COLD_DIRS for part in parts):
            bonus -= 20
        bonus += max(0, 10 - len(parts) * 2)
        if path.suffix in SOURCE_EXTS:
            bonus += 3
        return bonus

    def _siblings(self, top: list[FileScore], known: dict[str, FileScore]) -> list[FileScore]:
        """Unscored neighbours of the best files, to keep local context visible."""
        dirs: list[str] = []
        for s in top[: self.config.sibling_source_files]:
            parent = str(PurePosixPath(s.file).parent)
            parent = "" if parent == "." else parent
            if parent not in dirs:
                dirs.append(parent)

        siblings: list[FileScore] = []
        for rel_dir in dirs:
            full_dir = self.root / rel_dir if rel_dir else self.root
            try:
                entries = sorted(full_dir.iterdir())
            except OSError:
                continue
            for entry in entries:
                name = entry.name
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if rel in known:
                    continue
                lowered = name.lower()
                if name.startswith(".") or lowered in SKIP_FILES:
                    continue
                if lowered.endswith(SKIP_SUFFIXES):
                    continue
                try:
                    if not entry.is_file():
                        continue
                except OSError:
                    continue
                siblings.append(FileScore(file=rel, score=SIBLING_SCORE))
        return siblings

    # ------------------------------------------------------------------
    # Tree rendering
    # ------------------------------------------------------------------

    def _build_tree(self, files: list[FileScore]) -> list[_TreeNode]:
        score_map = {f.file: f.score for f in files}
        dirs: set[str] = set()
        for f in files:
            parent = PurePosixPath(f.file).parent
            while str(parent) not in ("", "."):
                dirs.add(str(parent))
                parent = parent.parent

        dir_counts: dict[str, tuple[int, int]] = {}

        def count_contents(rel_dir: str) -> tuple[int, int]:
            if rel_dir in dir_counts:
                return dir_counts[rel_dir]
            n_files = n_dirs = 0
            try:
                for entry in (self.root / rel_dir).iterdir():
                    if entry.name.startswith("."):
                        continue
                    try:
                        if entry.is_dir():
                            n_dirs += 1
                        else:
                            n_files += 1
                    except OSError:
                        continue
            except OSError:
                pass
            dir_counts[rel_dir] = (n_files, n_dirs)
            return dir_counts[rel_dir]

        def build_level(parent: str) -> list[_TreeNode]:
            prefix = f"{parent}/" if parent else ""
            names: set[str] = set()
            for path in [*score_map, *dirs]:
                if path.startswith(prefix):
                    names.add(path[len(prefix):].split("/")[0])

            nodes: list[_TreeNode] = []
            shown_files = shown_dirs = 0
            for name in sorted(names):
                path = f"{prefix}{name}"
                if path in score_map:
                    shown_files += 1
                    nodes.append(_TreeNode(name=name, path=path, score=score_map[path]))
                elif path in dirs:
                    shown_dirs += 1
                    nodes.append(
                        _TreeNode(name=name, path=path, is_dir=True, children=build_level(path))
                    )

            if parent:
                total_files, total_dirs = count_contents(parent)
                hidden = _TreeNode(
                    name="",
                    path="",
                    hidden_files=max(0, total_files - shown_files),
                    hidden_dirs=max(0, total_dirs - shown_dirs),
                )
                if hidden.is_hidden_count:
                    nodes.append(hidden)
            return nodes

        return build_level("")

    def _render(self, nodes: list[_TreeNode], depth: int = 0) -> str:
        lines: list[str] = []
        indent = "  " * depth
        for node in nodes:
            if node.is_hidden_count:
                parts = []
                if node.hidden_files:
                    parts.append(f"{node.hidden_files} file{'s' if node.hidden_files > 1 else ''}")
                if node.hidden_dirs:
                    parts.append(f"{node.hidden_dirs} folder{'s' if node.hidden_dirs > 1 else ''}")
                lines.append(f"{indent}...{', '.join(parts)}")
                continue

            if node.is_dir:
                lines.append(f"{indent}{node.name}/")
            elif node.score > self.config.high_score_marker:
                lines.append(f"{indent}{node.name} ★")
            else:
                lines.append(f"{indent}{node.name}")

            if node.children:
                lines.append(self._render(node.children, depth + 1))
        return "\n".join(lines)
