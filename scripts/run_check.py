#!/usr/bin/env python3
"""Run a single check from the command line and print the result as JSON."""

import argparse
import asyncio

from monithq.checks import http_check, regions, security_headers
from monithq.models.schemas import CheckTarget, RegionCheckResponse
from monithq.utils.logging import setup_logging


async def main(kind: str, url: str, method: str, region_names: list[str] | None, expected: list[int]):
    setup_logging("WARNING")

    if kind == "api":
        result = await http_check.execute(CheckTarget(url=url, method=method, expected_status=expected))
    elif kind == "regions":
        results = await regions.check_all_regions(url, region_names)
        result = RegionCheckResponse(results=results, statistics=regions.summarize_regions(results))
    else:
        result = await security_headers.check_security_headers(url)

    print(result.model_dump_json(indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run an API, regional or security check")
    parser.add_argument("kind", choices=["api", "regions", "security"])
    parser.add_argument("url")
    parser.add_argument("--method", default="GET")
    parser.add_argument("--region", action="append", dest="regions", help="Repeat for several regions")
    parser.add_argument("--expect", action="append", type=int, dest="expected", help="Accepted status code")
    args = parser.parse_args()
    asyncio.run(main(args.kind, args.url, args.method.upper(), args.regions, args.expected or [200]))
