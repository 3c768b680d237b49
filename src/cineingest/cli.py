"""Command-line entry point: run scrapes, health checks and cleanup by hand."""

import argparse
import asyncio
import sys

from cineingest.config import settings
from cineingest.exceptions import UnknownVenueError
from cineingest.logging_config import configure_logging
from cineingest.scrapers import get_scraper
from cineingest.tasks.cleanup import run_cleanup
from cineingest.tasks.scrape_job import VenueRunResult, run_scrape_all
from cineingest.venues import all_venues, get_venue


def _print_results(results: list[VenueRunResult], dry_run: bool) -> None:
    header = "Dry run" if dry_run else "Scrape"
    print(f"\n{header} results:\n")
    for r in results:
        status = "✓" if r.success else ("!" if r.blocked else "✗")
        print(
            f"  {status}  {r.venue_id:<20} found {r.found:>4}  added {r.added:>4}  "
            f"updated {r.updated:>4}  failed {r.failed:>3}  rejected {r.rejected:>3}  "
            f"review {r.review:>3}  {r.duration_ms / 1000:.1f}s"
        )
        if r.health and r.health.recommendation:
            print(f"       {r.health.recommendation}")
        if r.error:
            print(f"       error: {r.error}")
    print()


async def scrape(venue_ids: list[str] | None, dry_run: bool) -> bool:
    for venue_id in venue_ids or []:
        get_venue(venue_id)
    results = await run_scrape_all(venue_ids, triggered_by="cli", dry_run=dry_run)
    _print_results(results, dry_run)
    return all(r.success for r in results)


async def health_check(venue_ids: list[str] | None) -> bool:
    venues = [get_venue(v) for v in venue_ids] if venue_ids else all_venues()
    checks = await asyncio.gather(
        *(get_scraper(venue).health_check() for venue in venues), return_exceptions=True
    )

    print("\nVenue health:\n")
    ok = True
    for venue, healthy in zip(venues, checks):
        if isinstance(healthy, BaseException):
            print(f"  ✗  {venue.name:<35} {healthy}")
            ok = False
            continue
        print(f"  {'✓' if healthy else '✗'}  {venue.name:<35} {venue.base_url}")
        ok = ok and healthy
    print()
    return ok


async def cleanup() -> bool:
    result = await run_cleanup()
    print(
        f"Deleted {result.screenings_deleted} past screenings and "
        f"{result.films_deleted} orphaned films"
    )
    for error in result.errors:
        print(f"  error: {error}")
    return not result.errors


def list_venues() -> bool:
    for venue in all_venues():
        print(f"{venue.id:<20} {venue.strategy.value:<8} {venue.name}  ({venue.base_url})")
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cineingest", description="Cinema screening ingestion pipeline."
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help=f"Logging level (default: {settings.log_level})",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    scrape_parser = commands.add_parser("scrape", help="Scrape venues and store screenings")
    scrape_parser.add_argument(
        "--venue",
        action="append",
        dest="venues",
        metavar="ID",
        help="Venue id to scrape; repeat for several (default: all)",
    )
    scrape_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scrape and match without writing to the database",
    )

    health_parser = commands.add_parser(
        "health-check", help="Check that venue sites are reachable"
    )
    health_parser.add_argument(
        "--venue", action="append", dest="venues", metavar="ID", help="Venue id (default: all)"
    )

    commands.add_parser("cleanup", help="Delete past screenings and orphaned films")
    commands.add_parser("venues", help="List configured venues")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, settings.log_format)

    try:
        if args.command == "scrape":
            ok = asyncio.run(scrape(args.venues, args.dry_run))
        elif args.command == "health-check":
            ok = asyncio.run(health_check(args.venues))
        elif args.command == "cleanup":
            ok = asyncio.run(cleanup())
        else:
            ok = list_venues()
    except UnknownVenueError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(2)

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
