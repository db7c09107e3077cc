# veritas/tools/json_extract.py
"""
Recover a JSON object from free-form model output.

Models under token pressure wrap JSON in prose or code fences, drop
commas, leave trailing commas, put raw quotes inside strings, or stop
mid-array. Each pass below handles one of those and returns the parsed
value or None; extract_json() runs them strictest first and keeps the
first success.
"""
import json
import re
from typing import Any, List, Optional

_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")
_MISSING_COMMA = re.compile(r"([}\]])(\s*)(?=[{\[])")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_INNER_QUOTE = re.compile(r'(?<=\w)"(?=\w)')
_GREEDY_OBJECT = re.compile(r"\{[\s\S]*\}")
_CLAIM_VALUE = re.compile(r'"claim"\s*:\s*"((?:[^"\\]|\\.)*)"')

_CLOSERS = {"{": "}", "[": "]"}


def _loads(text: str) -> Optional[Any]:
    try:
        value = json.loads(text)
    except (ValueError, TypeError):
        return None
    if isinstance(value, (dict, list)):
        return value
    return None


def _first_parse(*candidates: str) -> Optional[Any]:
    for candidate in candidates:
        value = _loads(candidate)
        if value is not None:
            return value
    return None


def strip_fences(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def fix_delimiters(text: str) -> str:
    """Insert missing commas between adjacent literals and drop trailing commas."""
    fixed = _MISSING_COMMA.sub(r"\1,\2", text)
    return _TRAILING_COMMA.sub(r"\1", fixed)


def fix_inner_quotes(text: str) -> str:
    """Escape quotes flanked by word characters, e.g. He said "hi"there -> He said \\"hi\\"there."""
    return _INNER_QUOTE.sub(r'\\"', text)


def _scan(text: str):
    """
    Walk `text` tracking string state and open delimiters.

    Yields (index, char, stack) for each structural character outside strings.
    """
    stack = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
            yield i, ch, stack
        elif ch in "}]":
            if stack:
                stack.pop()
            yield i, ch, stack


def _open_stack(text: str) -> Optional[List[str]]:
    """Delimiters left open at the end of `text`, or None if it ends inside a string."""
    stack = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if not stack or _CLOSERS[stack[-1]] != ch:
                return None
            stack.pop()
    if in_string:
        return None
    return stack


def parse_direct(text: str) -> Optional[Any]:
    cleaned = strip_fences(text)
    return _first_parse(cleaned, fix_delimiters(cleaned))


def _first_opener(text: str) -> int:
    """
    Where the payload starts: the first '[' when it precedes every '{' and
    only whitespace comes before it, otherwise the first '{'.

    Bracketed prose ("see [1]") ahead of an object is not taken for an array.
    """
    brace = text.find("{")
    bracket = text.find("[")
    if bracket != -1 and (brace == -1 or bracket < brace) and not text[:bracket].strip():
        return bracket
    return brace


def _balanced_span(text: str) -> Optional[str]:
    start = _first_opener(text)
    if start == -1:
        return None
    body = text[start:]
    for i, ch, stack in _scan(body):
        if ch in "}]" and not stack:
            return body[: i + 1]
    return None


def balanced_extract(text: str) -> Optional[Any]:
    """Parse the span from the first '{' or '[' to the bracket that closes it."""
    cleaned = fix_delimiters(strip_fences(text))
    # A stray inner quote flips string state, so the span is searched again after escaping.
    for candidate in (cleaned, fix_inner_quotes(cleaned)):
        span = _balanced_span(candidate)
        if span is not None:
            value = _loads(span)
            if value is not None:
                return value
    return None


def _close_and_parse(fragment: str) -> Optional[Any]:
    fragment = fragment.rstrip().rstrip(",").rstrip()
    stack = _open_stack(fragment)
    if stack is None:
        return None
    closed = fragment + "".join(_CLOSERS[c] for c in reversed(stack))
    return _loads(fix_delimiters(closed))


def repair_truncated(text: str, max_attempts: int = 50) -> Optional[Any]:
    """
    Recover output that stops mid-structure.

    First cut after the last complete array element ('}') and close what is
    still open; failing that, cut at the last comma or opening brace.

    Text whose outer structure already closes is not truncated, so it is
    left to the later passes rather than chopped into a partial object.
    """
    cleaned = strip_fences(text)
    start = _first_opener(cleaned)
    if start == -1:
        return None
    body = cleaned[start:]
    if _balanced_span(body) is not None or _open_stack(body) == []:
        return None

    idx = body.rfind("}")
    attempts = 0
    while idx > 0 and attempts < max_attempts:
        parsed = _close_and_parse(body[: idx + 1])
        if parsed is not None:
            return parsed
        idx = body.rfind("}", 0, idx)
        attempts += 1

    cut = max(body.rfind(","), body.rfind("{", 1), body.rfind("["))
    attempts = 0
    while cut > 0 and attempts < max_attempts:
        fragment = body[:cut] if body[cut] == "," else body[: cut + 1]
        parsed = _close_and_parse(fragment)
        if parsed is not None:
            return parsed
        cut = max(body.rfind(",", 0, cut), body.rfind("{", 1, cut), body.rfind("[", 0, cut))
        attempts += 1
    return None


def regex_fallback(text: str) -> Optional[Any]:
    m = _GREEDY_OBJECT.search(text or "")
    if not m:
        return None
    raw = m.group(0)
    return _first_parse(raw, fix_inner_quotes(raw))


PASSES = [parse_direct, balanced_extract, repair_truncated, regex_fallback]


def extract_json(text: str) -> Optional[Any]:
    """
    First JSON object or array recoverable from `text`, or None.

    Never raises.
    """
    if not text or not text.strip():
        return None
    for step in PASSES:
        try:
            value = step(text)
        except (ValueError, RecursionError):
            value = None
        if value is not None:
            return value
    return None


def salvage_claims(text: str) -> List[str]:
    """Pull individual "claim": "..." string values out of unparseable output."""
    out = []
    for m in _CLAIM_VALUE.finditer(text or ""):
        try:
            value = json.loads(f'"{m.group(1)}"')
        except ValueError:
            value = m.group(1)
        value = value.strip()
        if value:
            out.append(value)
    return out
