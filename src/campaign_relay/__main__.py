"""Command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

from dotenv import load_dotenv

from .app import RelayBotApp
from .config import ConfigError, load_settings


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Relay Kickstarter links and archive inactive thread channels"
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file to load")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level. Can also be set through LOG_LEVEL",
    )
    args = parser.parse_args()

    load_dotenv(args.env_file)

    level_name = args.log_level or os.getenv("LOG_LEVEL") or "INFO"
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = load_settings()
    except ConfigError as exc:
        parser.error(str(exc))

    app = RelayBotApp(settings)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Stopped by user")


if __name__ == "__main__":
    main()
