"""
main.py — WebPilot Entry Point

Usage:
    webpilot                                # CLI REPL, default settings
    webpilot --log-level DEBUG              # verbose logging
    webpilot --config path/to/config.yaml
    python -m webpilot
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="webpilot",
        description="WebPilot: autonomous browser agent",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $WEBPILOT_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        default=False,
        help="Run the browser without a window (overrides browser.headless)",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - config.yaml has invalid values (Pydantic ValidationError)
      - cross-field problems are found (ConfigError from validate_all())
    """
    from pydantic import ValidationError

    from webpilot.config.settings import ConfigError, load_settings
    from webpilot.observability.logger import get_logger, setup_logging

    # -- Load and parse -------------------------------------------------------
    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except OSError as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    if args.headless:
        settings.browser.headless = True

    # -- Cross-field validation -----------------------------------------------
    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # -- Logging --------------------------------------------------------------
    setup_logging(
        level=args.log_level or settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("webpilot.main")
    return settings, log


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings, log = bootstrap(args)

    log.info(
        "webpilot.starting",
        version=settings.agent.version,
        llm_provider=settings.default_llm_provider,
        llm_model=settings.default_llm_model,
        headless=settings.browser.headless,
    )

    for path in (settings.log_dir, settings.user_data_dir):
        Path(path).expanduser().mkdir(parents=True, exist_ok=True)
    if settings.browser.screenshot_dir:
        Path(settings.browser.screenshot_dir).expanduser().mkdir(parents=True, exist_ok=True)

    from webpilot.interfaces.cli import run_cli
    await run_cli(settings, log)

    log.info("webpilot.stopped")
    return 0


def run() -> None:
    """Console-script entry point."""
    load_dotenv()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
