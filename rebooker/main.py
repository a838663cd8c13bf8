"""
Command line entry point for the appointment rebooker.

Credentials and portal settings come from the environment (or a ``.env``
file); the only argument is the appointment date currently held.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
import sys
from datetime import date

from pydantic import ValidationError

from rebooker.amain import main_async
from rebooker.config import LoginDetails, PortalDetails

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
NOISY_LOGGERS = ["httpx", "httpcore"]


def configure_logging(*, debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )
    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


def parse_booked_date(value: str) -> date:
    """Argparse type for the held appointment date (``YYYY-MM-DD``)."""
    if not DATE_PATTERN.fullmatch(value):
        raise argparse.ArgumentTypeError(
            f"Invalid date format: {value}. Please use YYYY-MM-DD format."
        )
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date: {value} ({e})") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="visa-rebooker",
        description="Rebook a held appointment to the earliest earlier date",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  EMAIL, PASSWORD          Portal credentials
  SCHEDULE_ID              Schedule id from the appointment URL
  FACILITY_ID              Facility id, or comma-separated ids
  LOCALE                   Portal locale, e.g. pt-br
  REFRESH_DELAY            Seconds between polls (default 3)
  LEAD_TIME_DAYS           Minimum days ahead of today (default 2)
  BACKGROUND_BOOKING       Book without pausing the poll loop (default true)

Examples:
  %(prog)s 2025-06-01
  %(prog)s --debug 2025-06-01
        """,
    )

    parser.add_argument(
        "current_booked_date",
        type=parse_booked_date,
        help="Currently held appointment date (YYYY-MM-DD)",
    )

    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point with argument parsing."""
    args = build_parser().parse_args(argv)

    try:
        login_details = LoginDetails()
        portal = PortalDetails()
    except ValidationError as e:
        print(f"❌ Invalid configuration:\n{e}", file=sys.stderr)
        return 1

    configure_logging(debug=args.debug)

    try:
        asyncio.run(main_async(args.current_booked_date, login_details, portal))
    except KeyboardInterrupt:
        print("\n👋 Cancelled by user", file=sys.stderr)
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
