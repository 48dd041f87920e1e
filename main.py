"""
Gateway entry point.
Runs one or more GDELT queries through the shared gateway and prints stats.
"""

import argparse
import asyncio
import json
import sys

from loguru import logger

from gateway.datasource import GdeltSource
from gateway.services import close_gateway, get_gateway
from gateway.settings import global_settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query GDELT through the shared gateway")
    parser.add_argument("queries", nargs="+", help="search expressions")
    parser.add_argument("--mode", default="ArtList")
    parser.add_argument("--timespan", default="7d")
    parser.add_argument("--max-records", type=int, default=75)
    parser.add_argument("--caller", default="cli")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """Main function"""
    args = parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level.upper())

    gdelt = GdeltSource(get_gateway())
    try:
        results = await asyncio.gather(
            *(
                gdelt.fetch(
                    query,
                    max_records=args.max_records,
                    timespan=args.timespan,
                    mode=args.mode,
                    caller=args.caller,
                )
                for query in args.queries
            )
        )

        for query, result in zip(args.queries, results):
            if isinstance(result, list):
                logger.info(f"{query!r}: {len(result)} articles")
                for article in result[:10]:
                    print(f"  [{article.source}] {article.title}")
            else:
                print(json.dumps(result, indent=2)[:2000])

        logger.info(f"Gateway stats: {gdelt.get_stats()}")
    finally:
        await close_gateway()


if __name__ == "__main__":
    asyncio.run(main())
