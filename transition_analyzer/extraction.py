"""Best-effort recovery of structured values from LLM and search text.

`extract` tries, in order: a direct JSON parse, a parse after textual repairs,
the contents of a ```json fence, each bracketed region in turn, and finally
line-oriented label scanning ("Skill: X" / "Level: Y"). It never raises; a
failed extraction returns an empty value of the requested shape with ok=False.
"""
from __future__ import annotations
import copy
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

ARRAY = "array"
OBJECT = "object"

_CONTROL_CHARS = re.compile(r"[\ufeff\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_SINGLE_QUOTED = re.compile(r"([{\[,:]\s*)'((?:[^'\\\n]|\\.)*)'(?=\s*[:,}\]])")
_TRAILING_COMMA = re.compile(r",\s*([\]}])")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_TRUNCATION = re.compile(
    r"(?:\.\.\.|…)?\s*[\[(<]\s*(?:output\s+|response\s+)?truncated\s*[\])>]",
    re.IGNORECASE,
)
_DANGLING_KEY = re.compile(r'([,{])\s*"[^"]*"\s*:\s*$')
_FENCE = re.compile(r"```(?:json|JSON)?[ \t]*\n?([\s\S]*?)```")
_OPEN_FENCE = re.compile(r"```(?:json|JSON)?[ \t]*\n?([\s\S]*)$")
_REGIONS = {
    ARRAY: re.compile(r"\[[\s\S]*\]"),
    OBJECT: re.compile(r"\{[\s\S]*\}"),
}
MAX_SPANS = 20

# Skeletons returned when nothing could be recovered, keyed by caller intent.
_EMPTY_OBJECTS: Dict[str, Dict[str, Any]] = {
    "plan": {"milestones": []},
    "insights": {"keyObservations": [], "commonChallenges": []},
}

# intent -> ordered (field, label pattern, required)
_LABELS: Dict[str, List[Tuple[str, str, bool]]] = {
    "skill_gaps": [
        ("skillName", r"skill(?:\s*name)?", True),
        ("gapLevel", r"(?:gap\s*)?level", True),
        ("confidenceScore", r"confidence(?:\s*score)?", False),
        ("mentionCount", r"(?:number\s+of\s+)?mentions?(?:\s*count)?", False),
        ("contextSummary", r"context(?:\s*summary)?|summary", False),
    ],
    "stories": [
        ("source", r"source|from|posted\s+on", True),
        ("content", r"content|story(?:\s*\d+)?|example(?:\s*\d+)?", True),
        ("url", r"url|link", False),
        ("date", r"date|published", False),
    ],
}


def _normalize_shape(shape: str) -> str:
    return ARRAY if shape == ARRAY else OBJECT


def empty_value(shape: str, intent: Optional[str] = None) -> Any:
    if _normalize_shape(shape) == ARRAY:
        return []
    return copy.deepcopy(_EMPTY_OBJECTS.get(intent or "", {}))


def _coerce_shape(value: Any, shape: str) -> Tuple[Any, bool]:
    if shape == ARRAY:
        if isinstance(value, list):
            return value, True
        # {"skillGaps": [...]} style wrappers around the array we asked for
        if isinstance(value, dict):
            lists = [v for v in value.values() if isinstance(v, list)]
            if len(lists) == 1:
                return lists[0], True
        return None, False
    if isinstance(value, dict):
        return value, True
    return None, False


def _parse(text: str, shape: str) -> Tuple[Any, bool]:
    try:
        value = json.loads(text, strict=False)
    except (ValueError, TypeError):
        return None, False
    return _coerce_shape(value, shape)


def _balance(text: str) -> str:
    """Close an unterminated string and any unmatched brackets, innermost first."""
    stack: List[str] = []
    in_string = False
    escape = False
    for ch in text:
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            if (ch == "}" and stack[-1] == "{") or (ch == "]" and stack[-1] == "["):
                stack.pop()
    out = text + '"' if in_string else text
    out = out.rstrip().rstrip(",").rstrip()
    out = _DANGLING_KEY.sub(lambda m: "" if m.group(1) == "," else "{", out)
    return out + "".join("}" if c == "{" else "]" for c in reversed(stack))


def _quote_single(match: "re.Match[str]") -> str:
    inner = match.group(2).replace("\\'", "'").replace('"', '\\"')
    return f'{match.group(1)}"{inner}"'


def sanitize_json_text(raw: str) -> str:
    s = _CONTROL_CHARS.sub("", raw or "").strip()
    if _TRUNCATION.search(s):
        s = _balance(_TRUNCATION.sub("", s))
    s = _SINGLE_QUOTED.sub(_quote_single, s)
    s = _BARE_KEY.sub(r'\1"\2"\3', s)
    s = _TRAILING_COMMA.sub(r"\1", s)
    return s


def _parse_repaired(text: str, shape: str) -> Tuple[Any, bool]:
    value, ok = _parse(text, shape)
    if ok:
        return value, True
    return _parse(sanitize_json_text(text), shape)


def _span_end(text: str, start: int, opener: str) -> Optional[int]:
    closer = "]" if opener == "[" else "}"
    depth = 0
    in_string = False
    escape = False
    for j in range(start, len(text)):
        ch = text[j]
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return j + 1
    return None


def _balanced_spans(text: str, opener: str) -> Iterator[str]:
    """Top-level balanced spans left to right, e.g. "[note]" then "[1, 2]"."""
    start = text.find(opener)
    found = 0
    while start >= 0 and found < MAX_SPANS:
        end = _span_end(text, start, opener)
        if end is None:
            # unclosed opener; a later one may still balance
            start = text.find(opener, start + 1)
            continue
        yield text[start:end]
        found += 1
        start = text.find(opener, end)


def _candidates(text: str, shape: str) -> Iterator[str]:
    yield text
    fenced = _FENCE.findall(text)
    if fenced:
        yield from fenced
    else:
        m = _OPEN_FENCE.search(text)
        if m:
            yield m.group(1)
    other = OBJECT if shape == ARRAY else ARRAY
    for kind in (shape, other):
        m = _REGIONS[kind].search(text)
        if m:
            yield m.group(0)
        yield from _balanced_spans(text, "[" if kind == ARRAY else "{")


def extract_labeled_records(text: str, intent: str) -> List[Dict[str, str]]:
    """Assemble records from "Label: value" lines; incomplete records are dropped."""
    fields = _LABELS.get(intent)
    if not fields:
        return []
    patterns = [
        (name, re.compile(
            rf"^\s*(?:[-*•]\s*|\d+[.)]\s*)?\**\s*(?:{label})\s*\**\s*:\s*\**\s*(.+?)\s*\**\s*,?\s*$",
            re.IGNORECASE,
        ))
        for name, label, _ in fields
    ]
    required = [name for name, _, req in fields if req]

    records: List[Dict[str, str]] = []
    current: Dict[str, str] = {}

    def flush() -> None:
        if current and all(current.get(r) for r in required):
            records.append(dict(current))
        current.clear()

    for line in text.splitlines():
        for name, pat in patterns:
            m = pat.match(line)
            if not m:
                continue
            if name in current:
                flush()
            current[name] = m.group(1).strip().strip("\"'")
            break
    flush()
    return records


def _cascade(text: str, shape: str, intent: Optional[str]) -> Tuple[Any, bool]:
    for candidate in _candidates(text, shape):
        value, ok = _parse_repaired(candidate, shape)
        if ok:
            return value, True
    if shape == ARRAY and intent:
        records = extract_labeled_records(text, intent)
        if records:
            return records, True
    return None, False


def extract(raw: Any, shape: str, intent: Optional[str] = None) -> Tuple[Any, bool]:
    """Recover a list (shape="array") or dict (shape="object") from `raw`.

    Returns (value, ok). On failure value is the typed empty value for
    `intent` (e.g. {"milestones": []} for "plan") and ok is False.
    """
    shape = _normalize_shape(shape)
    if isinstance(raw, (list, dict)):
        value, ok = _coerce_shape(raw, shape)
        if ok:
            return value, True
        raw = json.dumps(raw)
    text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    try:
        value, ok = _cascade(text, shape, intent)
    except Exception as e:
        logger.warning(f"Extraction of {shape} ({intent or 'generic'}) aborted: {e}")
        value, ok = None, False
    if ok:
        return value, True
    return empty_value(shape, intent), False
