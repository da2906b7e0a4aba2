"""Tolerant coercion of model-produced tool arguments.

Smaller models regularly stringify array arguments, and sometimes emit JSON
that no strict parser accepts. Everything here degrades to an empty value
instead of raising, so a malformed field never takes down a run.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

import json_repair

from codescout.context.models import (
    DEFAULT_REASON,
    FileSelection,
    LineRange,
    SelectionConfidence,
)

logger = logging.getLogger("codescout.tools")

_SPLIT_CALL = re.compile(r"\"([^\"]+)\"\.split\s*\(\s*[\"'][,;|]?[\"']\s*\)")

# Known malformation shapes, applied in order before a second repair attempt
_FIXUPS: list[tuple[re.Pattern[str], str]] = [
    # {"start", "end": 29} -> {"start": 1, "end": 29}
    (re.compile(r"\{(\s*\"?\w+\"?\s*),"), r"{\1: 1,"),
    # "end:" or "end:}" -> "end"
    (re.compile(r"\"(\w+):+\"(\s*[},:\]])"), r'"\1"\2'),
    (re.compile(r"\"(\w+):+\}+:?\s*"), r'"\1": '),
    # "start": "33,": "end" -> "start": 33, "end"
    (re.compile(r"\"(\w+)\":\s*\"(\d+),?\":\s*\"(\w+)\""), r'"\1": \2, "\3"'),
    # "start": "96,": {"end": 108} -> "start": 96, "end": 108
    (
        re.compile(r"\"(start|end)\":\s*\"(\d+),?\":\s*\{\"(end|start)\":\s*(\d+)\}"),
        r'"\1": \2, "\3": \4',
    ),
    # "": "150" -> 150
    (re.compile(r"\"\":\s*\"(\d+)\""), r"\1"),
    (re.compile(r"\"(start|end)\":\s*\"\":\s*\"?(\d+)\"?"), r'"\1": \2'),
    # "file": "script": "path" -> "file": "path"
    (re.compile(r"\"file\":\s*\"script\":\s*\""), r'"file": "'),
    # [{68", {"end": ... -> [{"start": 68, "end": ...
    (re.compile(r"\[\{(\d+)\",\s*\{\"end\""), r'[{"start": \1, "end"'),
    (
        re.compile(r"\{\{(\d+)\"\},\s*\{\"end\":\s*\"(\d+)\"\}\}"),
        r'{"start": \1, "end": \2}',
    ),
    # [{68", "end": "157}]} -> [{"start": 68, "end": 157}]
    (
        re.compile(r"\[\{(\d+)\",\s*\"end\":\s*\"(\d+)\}?\]"),
        r'[{"start": \1, "end": \2}]',
    ),
    # "end": "58}] -> "end": 58}]
    (re.compile(r"\"(start|end)\":\s*\"(\d+)(\}?\])"), r'"\1": \2\3'),
    # trailing "}}]}] garbage
    (re.compile(r"\"\}\}\]\}?\]$"), r'"}]'),
    # [{1, "end": 143}] and [{1}, {"end": 80}]
    (
        re.compile(r"\[\{(\d+),\s*\"end\":\s*(\d+)\}\]"),
        r'[{"start": \1, "end": \2}]',
    ),
    (
        re.compile(r"\[\{(\d+)\},\s*\{\"end\":\s*(\d+)\}\]"),
        r'[{"start": \1, "end": \2}]',
    ),
    # "end": "67}]}" -> "end": 67
    (re.compile(r"\"end\":\s*\"(\d+)\}?\]?\}?\""), r'"end": \1'),
    # {"start": "1}, {"end": "203}"} -> {"start": 1, "end": 203}
    (
        re.compile(r"\{\"start\":\s*\"?(\d+)\}?,\s*\{\"end\":\s*\"?(\d+)\}?\"\}"),
        r'{"start": \1, "end": \2}',
    ),
    # dangling commas
    (re.compile(r",\s*([\]\}])"), r"\1"),
]

_MISSING_FILE_KEY = re.compile(r"\{\"([^\"]+/[^\"]+)\"")


def preprocess_malformed_json(text: str) -> str:
    """Rewrite known model-specific malformations into repairable JSON."""

    def split_call(match: re.Match[str]) -> str:
        parts = [p.strip() for p in re.split(r"[,;|]", match.group(1)) if p.strip()]
        return json.dumps(parts)

    result = _SPLIT_CALL.sub(split_call, text)
    for pattern, replacement in _FIXUPS:
        result = pattern.sub(replacement, result)
    return result


def _repair(text: str) -> Any:
    try:
        return json_repair.loads(text)
    except Exception as e:
        logger.debug("json repair failed: %s", e)
        return None


def coerce_array(raw: Any) -> list:
    """Coerce a possibly-stringified array argument into a list.

    Layers: strict parse, generic repair, model-specific fixups plus
    repair, then an empty list.
    """
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, str):
        return []

    trimmed = raw.strip()
    if not trimmed.startswith(("[", "{")):
        return []

    try:
        parsed = json.loads(trimmed)
        if isinstance(parsed, list):
            return parsed
    except ValueError:
        pass

    parsed = _repair(trimmed)
    if isinstance(parsed, list):
        return parsed

    parsed = _repair(preprocess_malformed_json(trimmed))
    if isinstance(parsed, list):
        return parsed

    return []


def coerce_object(arguments: dict[str, Any]) -> dict[str, Any]:
    """Recover tool arguments a provider could not decode (kept under `_raw`)."""
    if set(arguments) != {"_raw"}:
        return arguments
    raw = arguments["_raw"]
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return {}
    parsed = _repair(raw)
    if not isinstance(parsed, dict):
        parsed = _repair(preprocess_malformed_json(raw))
    return parsed if isinstance(parsed, dict) else {}


def coerce_summary(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [s for s in raw if isinstance(s, str) and s]
    if isinstance(raw, str) and raw:
        items = [s for s in coerce_array(raw) if isinstance(s, str) and s]
        return items or [raw]
    return []


def coerce_string(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        return "\n".join(str(item) for item in raw)
    return "" if raw is None else str(raw)


def coerce_integer(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return math.trunc(raw) if math.isfinite(raw) else None
    if isinstance(raw, str):
        match = re.match(r"\s*([+-]?\d+)", raw)
        if match:
            return int(match.group(1))
    return None


def coerce_files_arg(raw: Any) -> list:
    """Read-tool file list, with an extra fix for a missing `"file":` key."""
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, str):
        return []

    generic = coerce_array(raw)
    if generic:
        return generic

    parsed = _repair(_MISSING_FILE_KEY.sub(r'{"file": "\1"', raw))
    return parsed if isinstance(parsed, list) else []


def coerce_confidence(raw: Any) -> SelectionConfidence | None:
    if not isinstance(raw, str):
        return None
    try:
        return SelectionConfidence(raw.strip().lower())
    except ValueError:
        return None


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return max(1, math.trunc(number))


def normalize_ranges(raw: Any) -> list[LineRange]:
    """Keep ranges whose bounds are positive integers with end >= start."""
    ranges: list[LineRange] = []
    for item in coerce_array(raw):
        if not isinstance(item, dict):
            continue
        start = _to_int(item.get("start"))
        end = _to_int(item.get("end"))
        if start is None or end is None or end < start:
            continue
        ranges.append(LineRange(start=start, end=end))
    return ranges


def normalize_selection(raw: Any) -> FileSelection | None:
    """Validate one raw selection from a finish payload. None if unusable."""
    if not isinstance(raw, dict):
        return None
    file = raw.get("file").strip() if isinstance(raw.get("file"), str) else ""
    if not file:
        return None

    symbols: list[str] = []
    for symbol in coerce_array(raw.get("symbols")):
        if isinstance(symbol, str) and symbol.strip() and symbol.strip() not in symbols:
            symbols.append(symbol.strip())

    reason = raw.get("reason")
    reason = reason.strip() if isinstance(reason, str) and reason.strip() else DEFAULT_REASON

    return FileSelection(
        file=file,
        ranges=normalize_ranges(raw.get("ranges")),
        symbols=symbols,
        reason=reason,
        confidence=coerce_confidence(raw.get("confidence")),
    )
