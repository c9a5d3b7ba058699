"""
Processor entry point.

`lcr-processor -c processor.yaml` runs until SIGINT/SIGTERM.
`lcr-processor -c processor.yaml --check` opens every connection once, reports
reachability as JSON and exits non-zero when the bus or the legacy store is
down.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

import structlog

from .config import ProcessorConfig, load_config
from .processor import LegacyProcessor


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.get_level_from_name(level)
        ),
    )


async def check_connections(config: ProcessorConfig) -> dict[str, bool]:
    processor = LegacyProcessor(config)
    await processor.open()
    try:
        return {
            "bus_reachable": await processor.bus.ping(),
            "legacy_store_reachable": await processor.store.ping(),
            "challenge_api_reachable": await processor.api.check_health(),
        }
    finally:
        await processor.close()


async def _serve(config: ProcessorConfig) -> None:
    await LegacyProcessor(config).run_forever()


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Legacy challenge resource processor")
    parser.add_argument(
        "-c", "--config",
        default="processor.yaml",
        help="Path to configuration file (default: processor.yaml)",
    )
    parser.add_argument(
        "--log-level",
        help="Override logging.level from the configuration file",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check bus, legacy store and challenge API connectivity, then exit",
    )
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> None:
    """CLI entry point for the processor."""
    args = _parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(args.log_level or config.logging.level, config.logging.format)
    log = structlog.get_logger()
    log.info(
        "processor.config_loaded",
        config_path=args.config,
        topics=config.topics.inbound,
        max_attempts=config.retry.max_attempts,
    )

    if args.check:
        status = asyncio.run(check_connections(config))
        print(json.dumps(status, indent=2))
        sys.exit(0 if status["bus_reachable"] and status["legacy_store_reachable"] else 1)

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
