import json
import re
import unicodedata
from typing import Any, Callable, List, Literal, Optional

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"```\s*$")
_FIRST_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")

ParseStrategy = Callable[[str], Optional[Any]]


def clean_control_chars(s: str) -> str:
    return "".join(ch for ch in s if ch in "\n\t" or unicodedata.category(ch)[0] != "C")


def strip_code_fences(s: str) -> str:
    s = (s or "").strip()
    s = _FENCE_OPEN.sub("", s)
    s = _FENCE_CLOSE.sub("", s)
    return s.strip()


def fix_trailing_commas(text: str) -> str:
    # ,} -> }   ,] -> ]
    return _TRAILING_COMMA.sub(r"\1", text)


def extract_first_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} span in text, or None.

    Braces inside JSON string values are ignored, including escaped quotes.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        c = text[i]
        if escape:
            escape = False
            continue
        if in_string:
            if c == "\\":
                escape = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def parse_candidates(raw: str) -> List[str]:
    """Ordered, de-duplicated list of substrings worth trying to parse."""
    # drops a leading BOM too (category Cf)
    s = clean_control_chars((raw or "").replace("\r\n", "\n")).strip()
    candidates = [s, strip_code_fences(s)]

    m = _FIRST_FENCED_BLOCK.search(s)
    if m:
        candidates.append(m.group(1).strip())

    extracted = extract_first_json_object(s)
    if extracted:
        candidates.append(extracted)

    out: List[str] = []
    for c in candidates:
        if c and c not in out:
            out.append(c)
    return out


def parse_plain(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def parse_with_trailing_comma_fix(text: str) -> Optional[Any]:
    fixed = fix_trailing_commas(text)
    if fixed == text:
        return None
    return parse_plain(fixed)


PARSE_STRATEGIES: List[ParseStrategy] = [parse_plain, parse_with_trailing_comma_fix]


def parse_json_safe(
    raw: str,
    expect: Literal["object", "any"] = "object",
    strategies: Optional[List[ParseStrategy]] = None,
) -> Optional[Any]:
    """
    Try every candidate with every strategy, first success wins.
    Returns None when nothing parses (callers own the fallback policy).
    """
    chain = strategies or PARSE_STRATEGIES
    for candidate in parse_candidates(raw):
        for strategy in chain:
            value = strategy(candidate)
            if value is None:
                continue
            if expect == "object" and not isinstance(value, dict):
                continue
            return value
    return None
