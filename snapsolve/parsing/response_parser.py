"""Heuristic parsing of free-form model responses.

Providers return unstructured text. The functions here pull out the first
code block, the reasoning bullets and the complexity annotations. Parsing
never fails: a missing piece yields a fixed default, and the field is
recorded in ParsedResponse.degraded so consumers can tell a real value from
a fallback.

Example:
    >>> result = parse("Time Complexity: linear scan")
    >>> result.time_complexity
    'O(n) - linear scan'
    >>> result.code
    ''
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from snapsolve.models.results import ContentKind, ParseDegraded

DEFAULT_THOUGHT = "Analysis based on your screenshots"
DEBUG_DEFAULT_THOUGHT = "Additional analysis based on your screenshots"
NOT_APPLICABLE = "N/A - Not applicable for this content"
DEBUG_COMPLEXITY = "N/A - Debug analysis mode"

MAX_DEBUG_THOUGHTS = 5

_FENCE_RE = re.compile(r"```(?:[\w+#.-]+)?[ \t]*\n?(.*?)```", re.DOTALL)

_BOLD = r"(?:\*\*|__)?"

_THOUGHTS_LABEL_RE = re.compile(
    r"^[ \t]*(?:#{1,6}[ \t]+)?" + _BOLD
    + r"(?:key[ \t]+insights|thoughts|insights|reasoning|approach|analysis)"
    + _BOLD + r"[ \t]*(?::" + _BOLD + r"[ \t]*(?P<inline>[^\n]*)|" + _BOLD + r"[ \t]*$)",
    re.IGNORECASE | re.MULTILINE,
)

# A thoughts section ends at a heading, a code fence, a complexity label or a
# Code label.
_THOUGHTS_END_RE = re.compile(
    r"^[ \t]*(?:#{1,6}[ \t]|```|" + _BOLD + r"(?:time|space)[ \t]+complexity\b|"
    + _BOLD + r"code" + _BOLD + r"[ \t]*:)",
    re.IGNORECASE | re.MULTILINE,
)

_BULLET_RE = re.compile(r"^[ \t]*(?:[-*•]|\d+\.)[ \t]+(.+?)[ \t]*$", re.MULTILINE)

# A label either starts its line (optionally as heading, bullet or bold) or is
# followed by a colon.
_COMPLEXITY_LABEL_RE = {
    kind: re.compile(
        r"(?:^[ \t]*(?:#{1,6}[ \t]+)?(?:[-*•][ \t]+)?" + _BOLD + kind + r"[ \t]+complexity\b" + _BOLD
        + r"[ \t]*:?|\b" + kind + r"[ \t]+complexity" + _BOLD + r"[ \t]*:)" + _BOLD + r"[ \t]*",
        re.IGNORECASE | re.MULTILINE,
    )
    for kind in ("time", "space")
}

# Captured complexity text stops at a blank line, a heading or another label.
_COMPLEXITY_END_RE = re.compile(
    r"^[ \t]*\n|\n[ \t]*\n|\n[ \t]*#|\n[ \t]*(?:[-*•][ \t]+)?" + _BOLD + r"(?:time|space)[ \t]+complexity\b|"
    r"\b(?:time|space)[ \t]+complexity" + _BOLD + r"[ \t]*:",
    re.IGNORECASE,
)

_BIG_O_RE = re.compile(r"O\([^)]+\)")

_DEBUG_HEADINGS: tuple[tuple[str, str], ...] = (
    ("New Elements Identified", r"new[ \t]+elements(?:[ \t]+identified)?|elements[ \t]+identified|issues[ \t]+found"),
    (
        "Specific Improvements and Corrections",
        r"(?:specific[ \t]+)?improvements(?:[ \t]+and[ \t]+corrections)?|corrections|suggested[ \t]+changes",
    ),
    ("Explanation of Changes", r"explanation(?:[ \t]+of[ \t]+(?:the[ \t]+)?changes)?|detailed[ \t]+analysis"),
    ("Key Points", r"key[ \t]+(?:points|takeaways)"),
)

_HEADING_RE = re.compile(r"^[ \t]*#{1,6}[ \t]", re.MULTILINE)

_CODE_SIGNALS = re.compile(
    r"\b(?:def|class|function|return|algorithm|array|linked list|binary tree|integer|"
    r"constraints?|input|output|example \d|leetcode|runtime|complexity|implement)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ParsedResponse:
    """Structured fields pulled from one model response."""

    code: str
    thoughts: list[str]
    time_complexity: str
    space_complexity: str
    degraded: frozenset[ParseDegraded] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ParsedDebugResponse(ParsedResponse):
    """Parsed debug response; debug_analysis is the normalized narrative."""

    debug_analysis: str = ""


def extract_code(text: str) -> str:
    """Return the first fenced code block, trimmed, or an empty string."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else ""


def _section_lines(body: str) -> list[str]:
    bullets = [item.strip() for item in _BULLET_RE.findall(body) if item.strip()]
    if bullets:
        return bullets
    return [line.strip() for line in body.splitlines() if line.strip()]


def extract_thoughts(text: str) -> list[str]:
    """Return the items of the labeled reasoning section.

    Returns an empty list when there is no section or it is empty.
    """
    # Comments inside code blocks are not section labels; an empty fence
    # stays behind so a section still ends where a block started.
    prose = _FENCE_RE.sub("\n```\n", text)
    label = _THOUGHTS_LABEL_RE.search(prose)
    if label is None:
        return []

    rest = prose[label.end():]
    end = _THOUGHTS_END_RE.search(rest)
    body = rest[: end.start()] if end else rest

    items = _section_lines(body)
    inline = (label.group("inline") or "").strip()
    if inline:
        items.insert(0, inline)
    return items


def _normalize_complexity(value: str) -> str:
    if _BIG_O_RE.search(value):
        return value
    return f"O(n) - {value}"


def extract_complexity(text: str, kind: str) -> str | None:
    """Return the normalized time or space complexity, or None if absent.

    Args:
        text: Model response.
        kind: "time" or "space".
    """
    # Complexity comments inside code blocks are not annotations.
    prose = _FENCE_RE.sub("\n\n", text)
    label = _COMPLEXITY_LABEL_RE[kind].search(prose)
    if label is None:
        return None

    rest = prose[label.end():]
    # Allow the value to start on the line after a heading-style label.
    if rest.startswith("\n"):
        rest = rest[1:]
    end = _COMPLEXITY_END_RE.search(rest)
    captured = rest[: end.start()] if end else rest

    value = " ".join(line.strip() for line in captured.splitlines() if line.strip())
    value = value.strip(" \t*_").rstrip(",;-").strip()
    if not value:
        return None
    return _normalize_complexity(value)


def parse(raw_text: str) -> ParsedResponse:
    """Parse a solution response.

    Args:
        raw_text: Full model text.

    Returns:
        ParsedResponse. Missing fields get defaults and are listed in
        degraded.
    """
    degraded: set[ParseDegraded] = set()

    code = extract_code(raw_text)
    if not code:
        degraded.add(ParseDegraded.CODE)

    thoughts = extract_thoughts(raw_text)
    if not thoughts:
        thoughts = [DEFAULT_THOUGHT]
        degraded.add(ParseDegraded.THOUGHTS)

    time_complexity = extract_complexity(raw_text, "time")
    if time_complexity is None:
        time_complexity = NOT_APPLICABLE
        degraded.add(ParseDegraded.TIME_COMPLEXITY)

    space_complexity = extract_complexity(raw_text, "space")
    if space_complexity is None:
        space_complexity = NOT_APPLICABLE
        degraded.add(ParseDegraded.SPACE_COMPLEXITY)

    return ParsedResponse(
        code=code,
        thoughts=thoughts,
        time_complexity=time_complexity,
        space_complexity=space_complexity,
        degraded=frozenset(degraded),
    )


def normalize_debug_headings(text: str) -> str:
    """Turn plain debug section labels into markdown headings.

    Text that already uses markdown headings is returned unchanged. Otherwise
    the first label line for each debug section becomes a "## " heading;
    content after the label's colon moves to the next line.
    """
    if _HEADING_RE.search(_FENCE_RE.sub("", text)):
        return text

    for heading, keywords in _DEBUG_HEADINGS:
        pattern = re.compile(
            r"^[ \t]*" + _BOLD + r"(?:" + keywords + r")" + _BOLD
            + r"[ \t]*(?::" + _BOLD + r"[ \t]*(?P<tail>[^\n]*))?$",
            re.IGNORECASE | re.MULTILINE,
        )

        def _replace(match: re.Match[str], heading: str = heading) -> str:
            tail = (match.group("tail") or "").strip()
            return f"## {heading}\n{tail}" if tail else f"## {heading}"

        text = pattern.sub(_replace, text, count=1)
    return text


def parse_debug(raw_text: str) -> ParsedDebugResponse:
    """Parse a debug response.

    The narrative is heading-normalized, thoughts are the first bullets
    anywhere in it, and complexity is not analyzed in debug mode.

    Args:
        raw_text: Full model text.

    Returns:
        ParsedDebugResponse.
    """
    degraded: set[ParseDegraded] = {ParseDegraded.TIME_COMPLEXITY, ParseDegraded.SPACE_COMPLEXITY}

    code = extract_code(raw_text)
    if not code:
        degraded.add(ParseDegraded.CODE)

    narrative = normalize_debug_headings(raw_text)

    prose = _FENCE_RE.sub("\n", narrative)
    thoughts = [item.strip() for item in _BULLET_RE.findall(prose) if item.strip()][:MAX_DEBUG_THOUGHTS]
    if not thoughts:
        thoughts = [DEBUG_DEFAULT_THOUGHT]
        degraded.add(ParseDegraded.THOUGHTS)

    return ParsedDebugResponse(
        code=code,
        thoughts=thoughts,
        time_complexity=DEBUG_COMPLEXITY,
        space_complexity=DEBUG_COMPLEXITY,
        degraded=frozenset(degraded),
        debug_analysis=narrative,
    )


def infer_content_kind(text: str) -> ContentKind:
    """Guess whether extracted text describes a programming problem.

    A fenced code block settles it; otherwise at least two distinct
    programming signal words are required.
    """
    if _FENCE_RE.search(text):
        return ContentKind.CODE_PROBLEM
    signals = {match.lower() for match in _CODE_SIGNALS.findall(text)}
    if len(signals) >= 2:
        return ContentKind.CODE_PROBLEM
    return ContentKind.GENERAL_TEXT
