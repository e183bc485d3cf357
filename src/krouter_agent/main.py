"""Entry point for the krouter agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from functools import partial
from pathlib import Path
from queue import Queue
from threading import Event

from krouter.exceptions import ConfigError, ConfigSourceError
from krouter.netctl import IPRouteNetworkControl
from krouter.reconciler import Reconciler

from .config import DEFAULT_CONFIG_PATH
from .logging_config import configure_logging, setup_bootstrap_logging
from .loop import AgentContext, WatchLoop
from .watchers import ConfigFileWatcher

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reconcile GRE tunnels and routes from a YAML description"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to the krouter configuration file",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Seconds between checks of the configuration file",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Apply the configuration once and exit",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_bootstrap_logging(args.verbose)

    stop_event = Event()
    events: Queue = Queue()
    context = AgentContext(config_path=args.config)
    loop = WatchLoop(
        context,
        Reconciler(IPRouteNetworkControl()),
        events,
        stop_event,
        on_settings_change=partial(configure_logging, verbose=args.verbose),
    )

    watcher = ConfigFileWatcher(args.config, events, args.interval, stop_event)
    watcher.prime()

    try:
        report = loop.initial_pass()
    except (ConfigSourceError, ConfigError) as exc:
        LOG.error("Error loading initial config: %s", exc)
        return 1

    if args.once:
        return 0 if report.ok else 1

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    watcher.start()
    loop.start()
    LOG.info("watching %s for changes", args.config)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    watcher.join()
    loop.join()

    LOG.info("krouter agent stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
