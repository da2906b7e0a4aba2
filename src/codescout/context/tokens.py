"""Approximate token cost model for source code."""

from __future__ import annotations

import math
import re

_CHUNK = re.compile(
    r"\"[^\"]*\"|'[^']*'|`[^`]*`|[a-zA-Z_$][a-zA-Z0-9_$]*|[0-9]+\.?[0-9]*|[^\s]"
)
_HUMPS = re.compile(r"[A-Z][a-z]+|[a-z]+|[A-Z]+(?=[A-Z][a-z]|\b)")
_INDENT = re.compile(r"^\s*")


def estimate_tokens(text: str) -> int:
    """Estimate the token count of code text.

    Calibrated against BPE tokenizers of the cl100k/o200k family rather
    than a flat chars/4:

    - newlines cost about half a token, indentation about one per 4 spaces
    - punctuation characters cost one token each
    - words up to 10 characters are usually a single token
    - longer identifiers cost one token per camelCase/snake_case hump
    - string literals cost roughly one token per 4 characters

    Deterministic for identical input.
    """
    if not text:
        return 0

    tokens = 0.0
    for line in text.split("\n"):
        tokens += 0.5
        indent = len(_INDENT.match(line).group(0))
        tokens += math.ceil(indent / 4)

        content = line[indent:]
        if not content:
            continue

        for chunk in _CHUNK.findall(content):
            if chunk[0] in "\"'`" and len(chunk) > 2:
                tokens += max(2, math.ceil(len(chunk) / 4))
            elif chunk[0].isdigit():
                tokens += 1 if len(chunk) <= 4 else math.ceil(len(chunk) / 3)
            elif len(chunk) == 1 and not chunk.isalnum():
                tokens += 1
            elif len(chunk) <= 10:
                tokens += 1
            else:
                humps = _HUMPS.findall(chunk)
                tokens += max(2, len(humps)) if humps else math.ceil(len(chunk) / 6)

    return math.floor(tokens + 0.5)


def format_tokens(count: int) -> str:
    """Compact token count: 999, 1.2k, 45k, 1.2M."""
    if count < 1000:
        return str(count)
    if count < 10_000:
        return f"{count / 1000:.1f}k"
    if count < 1_000_000:
        return f"{math.floor(count / 1000 + 0.5)}k"
    return f"{count / 1_000_000:.1f}M"
