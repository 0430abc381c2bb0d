"""ccui CLI — main application entry point."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_DIR = Path.home() / ".ccui" / "logs"


def _configure_logging(*, to_stderr: bool) -> Path:
    """Root logger: rotating file under ~/.ccui/logs, plus stderr when asked."""
    log_level = os.getenv("CCUI_LOG_LEVEL", "INFO").upper()
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "ccui.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level, logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    if to_stderr:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
    return log_file


async def _watch(config) -> None:
    """Run the coordinator without a UI, logging every notification."""
    from ccui.engine.coordinator import Coordinator

    logger = logging.getLogger("ccui.watch")
    coordinator = Coordinator(config)
    await coordinator.start()
    try:
        async for event in coordinator.event_bus.consume():
            logger.info("%s %s", event.event_type, _summarize(event))
    finally:
        await coordinator.shutdown()


def _summarize(event) -> str:
    from ccui.adapters.events import ProjectsChanged

    if isinstance(event, ProjectsChanged):
        sessions = sum(len(p.sessions) for p in event.projects)
        return f"source={event.source} projects={len(event.projects)} sessions={sessions}"
    fields = {
        k: v for k, v in vars(event).items() if k != "event_type"
    }
    return " ".join(f"{k}={v!r}" for k, v in fields.items())


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="ccui",
        description="ccui — terminal client for the coding-assistant web backend",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (default: .ccui/ccui.yaml or ccui.yaml in cwd)",
    )
    parser.add_argument(
        "--server-url", metavar="URL",
        help="Backend base URL, e.g. http://localhost:3001 (overrides config)",
    )
    parser.add_argument(
        "--watch", action="store_true",
        help="Run headless and log coordinator notifications to stderr",
    )
    args = parser.parse_args()

    log_file = _configure_logging(to_stderr=args.watch)
    logger = logging.getLogger(__name__)

    from ccui.engine.config import ws_url_for
    from ccui.engine.errors import ConfigError
    from ccui.engine.yaml_config import resolve_config

    try:
        config = resolve_config(args.config, Path.cwd())
    except (ConfigError, FileNotFoundError) as exc:
        logger.error("Configuration error: %s", exc)
        print(f"ccui: {exc}", file=sys.stderr)
        sys.exit(2)

    if args.server_url:
        config.api_base = args.server_url.rstrip("/")
        config.channel.url = ws_url_for(config.api_base)
        try:
            config.validate()
        except ConfigError as exc:
            print(f"ccui: {exc}", file=sys.stderr)
            sys.exit(2)

    logger.info(
        "Starting ccui cwd=%s api=%s watch=%s log=%s",
        Path.cwd(), config.api_base, args.watch, log_file,
    )

    if args.watch:
        try:
            asyncio.run(_watch(config))
        except KeyboardInterrupt:
            logger.info("Interrupted")
        sys.exit(0)

    # TUI mode
    from ccui.tui.app import CcuiApp

    app = CcuiApp(config=config)
    app.run()


if __name__ == "__main__":
    main()
