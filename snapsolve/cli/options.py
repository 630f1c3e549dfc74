"""CLI option models and parser helpers."""

from __future__ import annotations

import argparse
from enum import StrEnum


class LogFormat(StrEnum):
    """CLI log formatter mode."""

    READABLE = "readable"
    JSON = "json"


class OutputFormat(StrEnum):
    """How solve results are printed."""

    TEXT = "text"
    JSON = "json"


def _common_options() -> argparse.ArgumentParser:
    """Options shared by every subcommand."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    common.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=[fmt.value for fmt in LogFormat],
        help="Terminal log format (defaults to logging.format from config)",
    )
    return common


def build_arg_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    common = _common_options()
    parser = argparse.ArgumentParser(prog="snapsolve", description="Screenshot-driven LLM problem solver")
    subparsers = parser.add_subparsers(dest="command")

    solve_parser = subparsers.add_parser(
        "solve",
        parents=[common],
        help="Extract and solve the content of screenshot files",
    )
    solve_parser.add_argument("images", nargs="+", help="PNG screenshots, in order")
    solve_parser.add_argument(
        "--provider",
        type=str,
        default=None,
        choices=["openai", "gemini", "anthropic"],
        help="Provider override",
    )
    solve_parser.add_argument("--language", type=str, default=None, help="Preferred programming language")
    solve_parser.add_argument(
        "--output-format",
        type=str,
        default=OutputFormat.TEXT.value,
        choices=[fmt.value for fmt in OutputFormat],
        help="Result output format",
    )

    capture_parser = subparsers.add_parser("capture", parents=[common], help="Capture the screen once")
    capture_parser.add_argument("--output", type=str, default=None, help="Where to write the PNG")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Run the HTTP/WebSocket bridge")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind host override")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port override")

    return parser
