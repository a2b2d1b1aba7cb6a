"""
Lenient JSON recovery for model output.

Local models wrap JSON in prose or code fences, use Python literals and
leave trailing commas. These helpers pull the first structured payload out
of such text.
"""

import ast
import json
import re
from typing import Any

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")

_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})

# Applied in order after fences and smart quotes are gone.
_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r",(\s*[}\]])"), r"\1"),
    (re.compile(r"\bNone\b"), "null"),
    (re.compile(r"\bTrue\b"), "true"),
    (re.compile(r"\bFalse\b"), "false"),
    # bare keys, only directly after { or , so string values stay intact
    (re.compile(r"([\{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)"), r'\1"\2"\3'),
)

_PAIRS = {"{": "}", "[": "]"}


def repair(text: str) -> str:
    """Rewrite near-JSON into something ``json.loads`` has a chance with."""
    text = (text or "").strip()
    if not text:
        return ""
    text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text))
    text = text.translate(_SMART_QUOTES)
    for pattern, replacement in _REWRITES:
        text = pattern.sub(replacement, text)
    if "'" in text and '"' not in text:
        text = text.replace("'", '"')
    return text


def _jsonable(value: Any) -> Any:
    if value is ...:
        return None
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _literal(candidates: tuple[str, ...]) -> Any:
    for candidate in candidates:
        try:
            return ast.literal_eval(candidate)
        except (ValueError, SyntaxError):
            continue
    return None


def parse_json_loose(raw: str) -> dict[str, Any] | list[Any] | None:
    """Parse JSON with best-effort repair. Returns a dict/list on success, else None."""
    if not raw:
        return None

    cleaned = repair(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    value = _literal((raw.strip(), cleaned))
    if not isinstance(value, (dict, list, tuple, set)):
        return None
    converted = _jsonable(value)
    return converted if isinstance(converted, (dict, list)) else None


def _balanced_span(text: str, start: int) -> str:
    """Slice from ``start`` to its matching bracket, or to the end if unbalanced."""
    opener = text[start]
    closer = _PAIRS[opener]
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return text[start:]


def extract_json_object(content: str) -> dict[str, Any] | None:
    """
    Find and parse the first JSON object or array in model output.

    Arrays are wrapped as ``{"items": [...]}``. Returns None when nothing
    parseable is present.
    """
    content = (content or "").strip()
    if not content:
        return None

    start = content.find("{")
    if start == -1:
        start = content.find("[")
    parsed = parse_json_loose(_balanced_span(content, start) if start != -1 else content)

    if isinstance(parsed, list):
        return {"items": parsed}
    return parsed if isinstance(parsed, dict) else None
