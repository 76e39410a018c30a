"""One-shot price comparison from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json

from dotenv import load_dotenv

from pricehub.services import build_services
from pricehub.settings import Settings
from pricehub.utils.log import configure_logging


async def run_compare(search_term: str, country: str | None) -> dict:
    services = build_services(Settings.from_env())
    try:
        result = await services.aggregator.compare(search_term, country=country)
    finally:
        await services.shutdown()
    return result.to_dict()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="pricehub-compare", description="Compare a product across retailers")
    parser.add_argument("search_term")
    parser.add_argument("--country", choices=["US", "BR"])
    args = parser.parse_args(argv)

    load_dotenv()
    configure_logging(Settings.from_env().log_level)
    result = asyncio.run(run_compare(args.search_term, args.country))
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
