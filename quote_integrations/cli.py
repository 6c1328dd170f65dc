"""Command-line access to the location lookups.

Example:
    $ GEONAMES_USERNAME=demo python -m quote_integrations.cli states US
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from typing import Any, Sequence

from . import services
from .errors import IntegrationError
from .logger import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quote-integrations", description="Query the location lookups."
    )
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("countries", help="Supported countries")

    p = sub.add_parser("states", help="States/provinces of a country")
    p.add_argument("country")

    p = sub.add_parser("cities", help="Cities of a state, largest first")
    p.add_argument("country")
    p.add_argument("state")

    p = sub.add_parser("postal-codes", help="Postal codes of a city")
    p.add_argument("country")
    p.add_argument("state")
    p.add_argument("city")

    p = sub.add_parser("lookup", help="Reverse lookup of a postal code")
    p.add_argument("country")
    p.add_argument("postal_code")
    return parser


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


async def run_command(args: argparse.Namespace) -> Any:
    async with services.build_integrations() as integrations:
        if args.command == "countries":
            return await services.countries(integrations)
        if args.command == "states":
            return await services.states(integrations, args.country)
        if args.command == "cities":
            return await services.cities(integrations, args.country, args.state)
        if args.command == "postal-codes":
            return await services.postal_codes(
                integrations, args.country, args.state, args.city
            )
        if args.command == "lookup":
            return await services.lookup_postal_code(
                integrations, args.country, args.postal_code
            )
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        result = asyncio.run(run_command(args))
    except IntegrationError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    json.dump(_jsonable(result), sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
