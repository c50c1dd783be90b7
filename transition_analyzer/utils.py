from __future__ import annotations
import math
import re
from typing import Any, Dict, Iterable, List, Optional
from .models import GapLevel

_HIGH_WORDS = ("high", "major", "significant", "critical")
_LOW_WORDS = ("low", "minor", "small")
_INT = re.compile(r"-?\d+(?:\.\d+)?")


def first_present(record: Dict[str, Any], *keys: str) -> Any:
    """First non-empty value among `keys` (camelCase and snake_case variants)."""
    for k in keys:
        v = record.get(k)
        if v is not None and v != "":
            return v
    return None


def to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        # NaN and Infinity are valid to json.loads
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        m = _INT.search(value)
        if m:
            number = float(m.group(0))
            return int(number) if math.isfinite(number) else None
    return None


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def level_from_text(value: Any) -> GapLevel:
    text = str(value or "").strip().lower()
    if any(w in text for w in _HIGH_WORDS):
        return GapLevel.HIGH
    if any(w in text for w in _LOW_WORDS):
        return GapLevel.LOW
    return GapLevel.MEDIUM


def clean_strings(values: Any) -> List[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, Iterable):
        return []
    out: List[str] = []
    for v in values:
        if isinstance(v, dict):
            v = first_present(v, "content", "text", "description", "title")
        s = str(v or "").strip()
        if s:
            out.append(s)
    return out


def truncate(text: str, limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[:limit].rstrip() + "..."
