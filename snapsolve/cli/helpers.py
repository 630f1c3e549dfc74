"""CLI helpers: logging setup and result rendering."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from snapsolve.cli.options import LogFormat

if TYPE_CHECKING:
    from snapsolve.interfaces.provider import ProviderError
    from snapsolve.models.results import Solution

# Third-party loggers that are noisy at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "google_genai")


class _JSONLogFormatter(logging.Formatter):
    """Compact JSON formatter for machine-readable logs."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def _configure_logging(
    level: str = "INFO",
    log_format: str = LogFormat.READABLE.value,
    quiet_uvicorn: bool = True,
) -> None:
    """Configure process-wide logging."""
    normalized_level = level.upper()
    resolved_level = getattr(logging, normalized_level, logging.INFO)
    root = logging.getLogger()
    root.handlers = [h for h in root.handlers if not getattr(h, "_snapsolve_handler", False)]

    handler = logging.StreamHandler()
    handler._snapsolve_handler = True  # type: ignore[attr-defined]
    if log_format == LogFormat.JSON.value:
        formatter: logging.Formatter = _JSONLogFormatter(datefmt="%Y-%m-%dT%H:%M:%S")
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(resolved_level)

    if quiet_uvicorn:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def render_solution(solution: Solution) -> str:
    """Render a solution for the terminal."""
    lines = ["Thoughts:"]
    lines.extend(f"  - {thought}" for thought in solution.thoughts)
    lines.append("")
    if solution.code:
        lines.extend(["Code:", solution.code, ""])
    lines.append(f"Time complexity: {solution.time_complexity}")
    lines.append(f"Space complexity: {solution.space_complexity}")
    if not solution.code:
        lines.extend(["", solution.content])
    return "\n".join(lines)


def render_error(error: ProviderError) -> str:
    """Render a provider error with its suggestion."""
    text = f"Error ({error.kind.value}): {error.message}"
    if error.suggestion:
        text += f"\n{error.suggestion}"
    return text
