#!/usr/bin/env python
"""
livedoc/cli.py  –  command line entry point

    livedoc [ROOT] [--package NAME] [--bind HOST:PORT] [--open]

Builds the documentation, serves it, rebuilds when sources change and
reloads open browser tabs after every successful build.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib
import signal
import sys
from typing import List, Optional, Tuple

from livedoc import __version__
from livedoc.config import ConfigManager
from livedoc.errors import LiveDocError
from livedoc.service import LiveDocService

logger = logging.getLogger("livedoc")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def parse_bind(value: str) -> Tuple[str, int]:
    """
    Parse ``HOST:PORT`` (or ``[V6HOST]:PORT``) into a tuple.

    Raises:
        argparse.ArgumentTypeError: On malformed input
    """
    host, sep, port = value.rpartition(":")
    if not sep or not host:
        raise argparse.ArgumentTypeError(f"expected HOST:PORT, got {value!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port_num = int(port)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port in {value!r}") from None
    if not 0 <= port_num <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range in {value!r}")
    return host, port_num


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="livedoc",
        description="A minimal live-reload HTTP server for generated documentation.",
    )
    parser.add_argument(
        "root",
        nargs="?",
        default=".",
        help="Project root (the directory holding Cargo.toml). Default: current directory.",
    )
    parser.add_argument("-p", "--package", help="The package to generate and serve documentation for.")
    parser.add_argument(
        "-b",
        "--bind",
        type=parse_bind,
        default=None,
        metavar="HOST:PORT",
        help="The address to bind the documentation server to. Default: 0.0.0.0:8000.",
    )
    parser.add_argument("-o", "--open", action="store_true", help="Open the documentation in a browser on start.")
    parser.add_argument("-c", "--config", help="YAML configuration file. Default: ROOT/livedoc.yaml if present.")
    parser.add_argument("--command", help="Build command for non-cargo projects, e.g. 'mkdocs build'.")
    parser.add_argument("--artifacts", help="Directory the build command writes the site to.")
    parser.add_argument("--debounce", type=float, help="Seconds of quiet before a rebuild starts.")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log compiler output and every change.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(max(level, logging.INFO))


def load_config(args: argparse.Namespace) -> ConfigManager:
    """Merge defaults, the YAML file and command line flags, in that order."""
    config = ConfigManager(config_path=args.config, project_root=args.root)
    if args.bind is not None:
        config.set("server.host", args.bind[0])
        config.set("server.port", args.bind[1])
    if args.open:
        config.set("server.open", True)
    if args.package:
        config.set("build.package", args.package)
    if args.command:
        config.set("build.command", args.command)
    if args.artifacts:
        config.set("build.artifacts", args.artifacts)
    if args.debounce is not None:
        config.set("watch.debounce", args.debounce)
    # Re-run validation so CLI values go through the same checks
    config.validate()
    return config


def _interrupt(signum, frame):
    raise KeyboardInterrupt


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments and run the server until interrupted.

    Returns:
        Process exit code: 0 on interrupt, 1 on a fatal error
    """
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet)

    config = load_config(args)
    service = LiveDocService(config, pathlib.Path(args.root))

    # SIGTERM gets the same clean shutdown as Ctrl+C
    previous = signal.signal(signal.SIGTERM, _interrupt)
    try:
        asyncio.run(service.serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
    except LiveDocError as e:
        logger.error("%s", e)
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous)
    return 0


if __name__ == "__main__":
    sys.exit(main())
