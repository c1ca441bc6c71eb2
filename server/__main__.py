"""Entry point: python -m server

Loads the server config, scrapes all configured services on an interval and
serves the collated OpenAPI versions.

Usage:
    python -m server --config-file config.default.json
    python -m server --config-file base.json --config-file prod.yaml --overlay-file overlay.yaml
"""

from __future__ import annotations

import argparse
import functools
import logging
import re
import sys

import uvicorn

from aggregator.collator import Collator
from aggregator.errors import ConfigInvalid
from aggregator.excludes import Excluder
from aggregator.scheduler import ScrapeScheduler
from aggregator.scraper import Scraper
from aggregator.storage import new_storage
from server.config import load_overlay, load_server_config, settings
from server.main import create_app

logger = logging.getLogger("server")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> float:
    """Parse a duration such as ``15s``, ``1m`` or ``1h30m`` into seconds.

    A bare number is taken as seconds.
    """
    value = value.strip()
    try:
        return float(value)
    except ValueError:
        pass
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value) or not value:
        raise argparse.ArgumentTypeError(f"invalid duration {value!r}")
    return total


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openapi-aggregator",
        description="Scrape, collate and serve the OpenAPI versions of many services",
    )
    parser.add_argument(
        "--config-file",
        action="append",
        dest="config_files",
        help="Server config file, JSON or YAML; repeat to merge later files over earlier ones "
             "(default: config.default.json)",
    )
    parser.add_argument(
        "--overlay-file",
        help="OpenAPI fragment merged into every collated version",
    )
    parser.add_argument(
        "--scrape-interval",
        type=parse_duration,
        default=settings.scrape_interval,
        help="Time between scrapes, e.g. 60s or 5m",
    )
    parser.add_argument(
        "--graceful-timeout",
        type=parse_duration,
        default=settings.graceful_timeout,
        help="Time allowed for the in-flight scrape to finish on shutdown",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = load_server_config(*(args.config_files or ["config.default.json"]))
        overlay = load_overlay(args.overlay_file) if args.overlay_file else None
        excluder = Excluder(
            path_patterns=cfg.merging.exclude_patterns,
            extension_patterns=cfg.merging.extension_patterns,
            header_patterns=cfg.merging.header_patterns,
        )
        store = new_storage(cfg, functools.partial(Collator, excluder=excluder, overlay=overlay))
    except ConfigInvalid as exc:
        logger.error("invalid configuration: %s", exc)
        return 1
    except Exception:
        logger.exception("unable to initialize storage")
        return 1

    scraper = Scraper(cfg, store, timeout=settings.request_timeout)
    scheduler = ScrapeScheduler(scraper, store, args.scrape_interval, cfg.service_filter())
    app = create_app(cfg, store, scheduler=scheduler, graceful_timeout=args.graceful_timeout)

    logger.info("starting server on %s:%d", cfg.host, settings.port)
    uvicorn.run(
        app,
        host=cfg.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=int(args.graceful_timeout) or None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
