"""Command line entry point: python -m dock [--config FILE] [--log-level LEVEL]."""
from __future__ import annotations

import argparse
import logging
import os
import sys

from .config import load_config
from .daemon import DockDaemon
from .errors import ConfigError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
CONFIG_ENV = "WEARABLE_DOCK_CONFIG"
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wearable-dock",
        description="Flash, extract and publish data from docked wearables.",
    )
    parser.add_argument(
        "--config",
        default=os.environ.get(CONFIG_ENV),
        help=f"YAML configuration file (default: ${CONFIG_ENV}, else built-in defaults)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity (DEBUG echoes every published payload)",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR

    logger.info(f"Wearable dock starting for USB {config.identity}")
    return DockDaemon(config).run()


if __name__ == "__main__":
    sys.exit(main())
