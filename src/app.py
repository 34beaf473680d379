"""Application entry point for dualprobe.

``probe`` scans a handle directory and reports which servers answered on
which channel. ``serve`` runs one server session that publishes a handle,
serves at most one client, and shuts down.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import text2art

import settings
from adapters.handle_files import HandleFileStore
from adapters.sysv_segment import SysVSegments
from adapters.tcp_channel import TcpNetwork
from core.collector import MessageCollector
from core.config import ProbeConfig, ServeConfig
from core.connector import ChannelConnector
from core.errors import DualProbeError
from core.models import ServerSetupInfo
from core.registry import ServerRegistry
from core.reporter import render_summary, summarize
from core.session import ServerSession

NAME = "DUALPROBE"
FONT = "tarty-1"
SYSTEM_ERROR = "system error: "


def _print_banner() -> None:
    print(text2art(NAME, font=FONT, space=1), file=sys.stderr)


def _configure_logging(verbose: bool = False) -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False) and not verbose:
        return

    level_name = "DEBUG" if verbose else str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/dualprobe.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _install_cancel_handlers(cancel_event: threading.Event) -> None:
    def _cancel(signum, _frame) -> None:
        logging.getLogger(__name__).info("Received signal %s, shutting down", signum)
        cancel_event.set()

    signal.signal(signal.SIGINT, _cancel)
    signal.signal(signal.SIGTERM, _cancel)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def _probe_config(args: argparse.Namespace) -> ProbeConfig:
    return ProbeConfig(
        handle_directory=args.directory or settings.PROBE_HANDLE_DIRECTORY,
        connect_timeout=settings.PROBE_CONNECT_TIMEOUT if args.connect_timeout is None else args.connect_timeout,
        max_workers=settings.PROBE_MAX_WORKERS if args.workers is None else args.workers,
        segment_capacity=settings.SEGMENT_CAPACITY,
    )


def _probe(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    config = _probe_config(args)
    cancel_event = threading.Event()
    _install_cancel_handlers(cancel_event)

    connector = ChannelConnector(
        network=TcpNetwork(),
        segments=SysVSegments(),
        connect_timeout=config.connect_timeout,
        cancel_event=cancel_event,
    )
    registry = ServerRegistry(HandleFileStore(), connector, max_workers=config.max_workers)

    logger.info("Scanning %s", config.handle_directory)
    results = registry.scan(config.handle_directory)
    try:
        if results:
            summary = summarize(results, MessageCollector(config.segment_capacity))
            print(render_summary(summary))
        else:
            logger.info("No servers discovered")
    finally:
        # Every result is released, even if collecting messages failed midway.
        for result in results:
            result.release()
    return 0


def _serve(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    setup = ServerSetupInfo(
        listen_port_hint=settings.SERVE_LISTEN_PORT if args.port is None else args.port,
        shm_key_path=args.shm_path or settings.SERVE_SHM_KEY_PATH,
        shm_project_id=settings.SERVE_SHM_PROJECT_ID if args.shm_id is None else args.shm_id,
        handle_output_directory=args.directory or settings.SERVE_HANDLE_DIRECTORY,
        handle_output_name=args.name or settings.SERVE_HANDLE_NAME,
    )
    config = ServeConfig(
        shm_message=settings.SERVE_SHM_MESSAGE if args.shm_message is None else args.shm_message,
        socket_message=settings.SERVE_SOCKET_MESSAGE if args.socket_message is None else args.socket_message,
        accept_timeout=settings.SERVE_ACCEPT_TIMEOUT if args.accept_timeout is None else args.accept_timeout,
        linger_seconds=settings.SERVE_LINGER_SECONDS if args.linger is None else args.linger,
        segment_capacity=settings.SEGMENT_CAPACITY,
    )
    cancel_event = threading.Event()
    _install_cancel_handlers(cancel_event)

    session = ServerSession(
        setup=setup,
        config=config,
        network=TcpNetwork(),
        segments=SysVSegments(),
        handles=HandleFileStore(),
        cancel_event=cancel_event,
    )
    outcome = session.run()
    logger.info(
        "Session finished: client_accepted=%s, bytes_sent=%s",
        outcome.client_accepted,
        outcome.bytes_sent,
    )
    if outcome.teardown_errors:
        for error in outcome.teardown_errors:
            print(SYSTEM_ERROR + error, file=sys.stderr)
        return 1
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dualprobe")
    parser.add_argument("--no-banner", action="store_true", help="Do not print the banner")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    probe = subparsers.add_parser("probe", help="Scan handle files and report server reachability")
    probe.add_argument("--directory", help="Directory holding handle files")
    probe.add_argument("--workers", type=_positive_int, help="Number of servers probed in parallel")
    probe.add_argument("--connect-timeout", type=float, help="Seconds to wait for a TCP connect")

    serve = subparsers.add_parser("serve", help="Run one server session")
    serve.add_argument("--port", type=int, help="Listen port (0 picks an ephemeral port)")
    serve.add_argument("--shm-path", help="Existing path used to derive the segment key")
    serve.add_argument("--shm-id", type=int, help="Project id used to derive the segment key")
    serve.add_argument("--directory", help="Directory the handle file is written to")
    serve.add_argument("--name", help="Handle file name")
    serve.add_argument("--shm-message", help="Message written to shared memory")
    serve.add_argument("--socket-message", help="Message sent to the accepted client")
    serve.add_argument("--accept-timeout", type=float, help="Seconds to wait for a client")
    serve.add_argument("--linger", type=float, help="Seconds to keep resources before teardown")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    if not args.no_banner:
        _print_banner()
    _configure_logging(verbose=args.verbose)

    try:
        if args.command == "serve":
            return _serve(args)
        return _probe(args)
    except DualProbeError as exc:
        logging.getLogger(__name__).debug("Fatal error", exc_info=True)
        print(SYSTEM_ERROR + str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
