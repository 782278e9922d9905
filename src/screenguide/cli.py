"""Command-line interface for screenguide.

Provides the main entry point for running the guidance server and for
checking individual components (gateway connectivity, frame differ).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="screenguide",
        description="Real-time screen guidance relay",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/screenguide.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the websocket guidance server")
    serve_parser.add_argument("--host", type=str, default=None, help="Override server.host")
    serve_parser.add_argument("--port", type=int, default=None, help="Override server.port")

    subparsers.add_parser("check", help="Verify the configured AI gateway is reachable")

    diff_parser = subparsers.add_parser(
        "diff",
        help="Compare two image files with the frame differ",
    )
    diff_parser.add_argument("first", type=Path)
    diff_parser.add_argument("second", type=Path)

    return parser.parse_args(argv)


async def _check_gateway(settings) -> bool:
    """Run a single health check against the configured gateway."""
    from screenguide.gateway import build_gateway

    gateway = build_gateway(settings)
    try:
        ok = await gateway.health_check()
    finally:
        await gateway.aclose()
    status = "reachable" if ok else "UNREACHABLE"
    print(f"Gateway {gateway.provider} ({gateway.model}): {status}")
    return ok


def _diff_files(settings, first: Path, second: Path) -> bool:
    """Print the differ's verdict for two image files."""
    from screenguide.domain.errors import ImageDecodeError
    from screenguide.utils.imaging import load_pixels
    from screenguide.vision.differ import diff_frames

    try:
        prev = load_pixels(first.read_bytes())
        curr = load_pixels(second.read_bytes())
    except ImageDecodeError as e:
        print(f"Cannot compare {first} and {second}: {e.detail}", file=sys.stderr)
        sys.exit(2)

    result = diff_frames(
        prev,
        curr,
        pixel_threshold=settings.differ.pixel_threshold,
        min_diff_pixels=settings.differ.min_diff_pixels,
    )
    verdict = "different" if result.is_different else "same"
    print(f"{verdict}: {result.diff_pixels} pixels changed ({result.reason})")
    return result.is_different


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the screenguide CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from screenguide.config.settings import load_settings
    from screenguide.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        if args.host:
            settings.server.host = args.host
        if args.port:
            settings.server.port = args.port
        logger.info("Starting server on %s:%d", settings.server.host, settings.server.port)
        from screenguide.server.app import main as serve
        serve(settings)

    elif args.command == "check":
        ok = asyncio.run(_check_gateway(settings))
        sys.exit(0 if ok else 1)

    elif args.command == "diff":
        _diff_files(settings, args.first, args.second)


if __name__ == "__main__":
    main()
