"""Command line entry point: ``python -m salesboard`` / ``salesboard``."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from aiohttp import web

from salesboard._constants import STORE_BACKENDS
from salesboard.config import BoardConfig
from salesboard.exceptions import BoardConfigError
from salesboard.server import build_app

_logger = logging.getLogger("salesboard")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="salesboard",
        description="Serve the unit sale status board (WebSocket sync + snapshot API).",
    )
    parser.add_argument("--host", help="Bind address (env BOARD_HOST, default 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Bind port (env PORT, default 3000)")
    parser.add_argument("--store", choices=sorted(STORE_BACKENDS), help="Durable store backend (env BOARD_STORE)")
    parser.add_argument("--data-file", help="JSON document for the file backend (env BOARD_DATA_FILE)")
    parser.add_argument("--static-dir", help="Directory with the admin/display pages (env BOARD_STATIC_DIR)")
    parser.add_argument("--log-level", help="Logging level (env BOARD_LOG_LEVEL, default INFO)")
    return parser


def config_from_args(args: argparse.Namespace) -> BoardConfig:
    """Environment configuration overridden by explicit command line flags."""
    overrides = {
        "host": args.host,
        "port": args.port,
        "store_backend": args.store,
        "data_file": args.data_file,
        "static_dir": args.static_dir,
        "log_level": args.log_level,
    }
    return BoardConfig.from_env(**{k: v for k, v in overrides.items() if v is not None}).validate()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except BoardConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logger.info(
        "Starting on %s:%s with %s store",
        config.host,
        config.port,
        config.store_backend,
    )
    web.run_app(build_app(config), host=config.host, port=config.port, print=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
