"""CLI entrypoint for snapsolve."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from snapsolve.capture.service import CaptureService, validate_image
from snapsolve.cli.helpers import _configure_logging, render_error, render_solution
from snapsolve.cli.options import LogFormat, OutputFormat, build_arg_parser
from snapsolve.config.loader import Config, ConfigManager, load_config
from snapsolve.config.secrets import load_environment_secrets
from snapsolve.core.orchestrator import RunStatus
from snapsolve.core.session import SessionController

logger = logging.getLogger(__name__)


def _load(args: argparse.Namespace) -> Config:
    """Load config and reconfigure logging from it."""
    config = load_config(args.config)
    _configure_logging(
        level=config.logging.level,
        log_format=args.log_format or config.logging.format,
    )
    return config


async def _solve(manager: ConfigManager, image_paths: list[Path], output_format: str) -> int:
    session = SessionController.from_config(manager)
    try:
        for path in image_paths:
            data = path.read_bytes()
            validate_image(data)
            await session.queues.primary.enqueue(data)

        outcome = await session.orchestrator.solve()
    finally:
        await session.queues.clear_all()
        await session.aclose()

    if outcome.status is RunStatus.SOLVED and outcome.solution is not None:
        if output_format == OutputFormat.JSON.value:
            print(json.dumps(outcome.solution.to_payload(), indent=2))
        else:
            print(render_solution(outcome.solution))
        return 0

    if outcome.error is not None:
        print(render_error(outcome.error), file=sys.stderr)
    else:
        print(f"Error: {outcome.message or outcome.status.value}", file=sys.stderr)
    return 1


def solve_command(args: argparse.Namespace) -> int:
    """Run extract and analyze over screenshot files and print the solution."""
    config = _load(args)
    manager = ConfigManager(config)

    overrides: dict[str, dict[str, str]] = {}
    if args.provider:
        overrides.setdefault("llm", {})["provider"] = args.provider
    if args.language:
        overrides.setdefault("llm", {})["language"] = args.language
    if overrides:
        manager.update(overrides)

    image_paths = [Path(p) for p in args.images]
    missing = [str(p) for p in image_paths if not p.is_file()]
    if missing:
        raise FileNotFoundError(f"Screenshot file(s) not found: {', '.join(missing)}")

    return asyncio.run(_solve(manager, image_paths, args.output_format))


def capture_command(args: argparse.Namespace) -> int:
    """Capture the screen once and write it to a PNG file."""
    config = _load(args)
    service = CaptureService.from_config(config.capture)
    data = asyncio.run(service.capture())

    output = Path(args.output) if args.output else Path(f"screenshot-{datetime.now():%Y%m%d-%H%M%S}.png")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    logger.info(f"Saved screenshot to {output} ({len(data)} bytes)")
    print(output)
    return 0


def serve_command(args: argparse.Namespace) -> int:
    """Run the HTTP/WebSocket bridge until interrupted."""
    import uvicorn

    from snapsolve.bridge.server import create_app

    config = _load(args)
    session = SessionController.from_config(ConfigManager(config))
    app = create_app(session)

    host = args.host or config.bridge.host
    port = args.port or config.bridge.port
    logger.info(f"Starting bridge on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint function."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    # Bootstrap logger before config loading.
    _configure_logging(
        level="INFO",
        log_format=str(args.log_format or LogFormat.READABLE.value),
    )

    try:
        load_environment_secrets()
        if args.command == "solve":
            return solve_command(args)
        if args.command == "capture":
            return capture_command(args)
        if args.command == "serve":
            return serve_command(args)
        raise ValueError(f"Unsupported command: {args.command}")
    except Exception as exc:
        logger.error(f"CLI execution failed: {exc}")
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
