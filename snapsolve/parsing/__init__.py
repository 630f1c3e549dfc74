"""Response parsing for free-form model output."""

from snapsolve.parsing.response_parser import (
    DEBUG_COMPLEXITY,
    DEBUG_DEFAULT_THOUGHT,
    DEFAULT_THOUGHT,
    NOT_APPLICABLE,
    ParsedDebugResponse,
    ParsedResponse,
    extract_code,
    extract_complexity,
    extract_thoughts,
    infer_content_kind,
    normalize_debug_headings,
    parse,
    parse_debug,
)

__all__ = [
    "DEBUG_COMPLEXITY",
    "DEBUG_DEFAULT_THOUGHT",
    "DEFAULT_THOUGHT",
    "NOT_APPLICABLE",
    "ParsedDebugResponse",
    "ParsedResponse",
    "extract_code",
    "extract_complexity",
    "extract_thoughts",
    "infer_content_kind",
    "normalize_debug_headings",
    "parse",
    "parse_debug",
]
