"""CLI entry point for scraping, registry loading, enrichment and reporting."""

import argparse
import json
import logging
import sys

from cpa_intel.config import AppConfig, load_config, validate_config
from cpa_intel.enrichment.enricher import EnrichmentPipeline
from cpa_intel.registry.bulk_loader import BusinessRegistryLoader
from cpa_intel.registry.search_scraper import RegistrySearchScraper
from cpa_intel.scrapers.errors import ScraperError, UnknownSourceError
from cpa_intel.scrapers.jurisdictions import JURISDICTIONS
from cpa_intel.scrapers.orchestrator import ScraperOrchestrator
from cpa_intel.storage.database import IntelDatabase
from cpa_intel.utils.logging_config import setup_logging

logger = logging.getLogger("cpa_intel")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="CPA Intel - Canadian CPA directory and business registry collector",
    )
    parser.add_argument(
        "--config", default="config.yaml",
        help="Path to config file (default: config.yaml)",
    )
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--scrape", metavar="NAME", help="Scrape one directory, or 'all'")
    action.add_argument("--rescrape", metavar="NAME", help="Purge a source's records, then scrape it again")
    action.add_argument(
        "--load-registry", metavar="URL", nargs="?", const="",
        help="Bulk-load the business register (default URL from config)",
    )
    action.add_argument(
        "--search-registry", action="store_true",
        help="Walk the business registry's search form",
    )
    action.add_argument("--enrich", action="store_true", help="Run the daily contact-enrichment batch")
    action.add_argument("--stats", action="store_true", help="Print database statistics and exit")
    action.add_argument("--jobs", action="store_true", help="List recent scrape jobs and exit")
    action.add_argument("--list-sources", action="store_true", help="List registered directories and exit")
    action.add_argument("--serve", action="store_true", help="Run the JSON API")
    parser.add_argument("--host", default="127.0.0.1", help="API bind address (with --serve)")
    parser.add_argument("--port", type=int, default=8000, help="API port (with --serve)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def print_stats(db: IntelDatabase):
    """Print database statistics."""
    stats = db.get_stats()
    print("\n=== CPA Intel Statistics ===")
    print(f"Professionals: {stats['total_professionals']}")
    print(f"Businesses: {stats['total_businesses']}")
    print(f"Scrape jobs: {stats['total_jobs']}")

    for key, title in (("by_province", "province"), ("by_source", "source"), ("by_status", "status")):
        if stats.get(key):
            print(f"\nProfessionals by {title}:")
            for value, count in sorted(stats[key].items(), key=lambda item: str(item[0])):
                print(f"  {value or 'unknown'}: {count}")

    if stats.get("last_job"):
        job = stats["last_job"]
        print(f"\nLast job: #{job['id']} {job['source']} ({job['status']})")
        print(f"  Started: {job['started_at']}")
        print(f"  Found: {job['found']}  Inserted: {job['inserted']}  Skipped: {job['skipped']}")
        if job["error_message"]:
            print(f"  Error [{job['failure_kind']}]: {job['error_message']}")
        if job["notes"]:
            print(f"  Notes: {job['notes']}")
    print()


def print_jobs(db: IntelDatabase, limit: int = 20):
    jobs = db.list_jobs(limit=limit)
    if not jobs:
        print("No scrape jobs recorded yet.")
        return
    for job in jobs:
        line = (
            f"#{job['id']:<5} {job['source']:<20} {job['status']:<10} "
            f"found={job['found']} inserted={job['inserted']} skipped={job['skipped']}"
        )
        if job["failure_kind"]:
            line += f" [{job['failure_kind']}] {job['error_message']}"
        print(line)


def print_sources():
    for name, directory in JURISDICTIONS.items():
        print(f"{name:<20} {directory.province}  {directory.strategy:<13} {directory.description}")


def run_command(args: argparse.Namespace, config: AppConfig) -> int:
    with IntelDatabase(config.database.url) as db:
        if args.stats:
            print_stats(db)
            return 0
        if args.jobs:
            print_jobs(db)
            return 0

        if args.scrape or args.rescrape:
            orchestrator = ScraperOrchestrator(db, config)
            try:
                if args.rescrape:
                    results = {args.rescrape: orchestrator.rescrape(args.rescrape)}
                elif args.scrape == "all":
                    results = orchestrator.run_all()
                else:
                    results = {args.scrape: orchestrator.run_single(args.scrape)}
            except UnknownSourceError as e:
                logger.error("%s", e)
                return 1
            print(json.dumps(results, indent=2))
            return 1 if any("error" in r for r in results.values()) else 0

        if args.load_registry is not None:
            loader = BusinessRegistryLoader(db, config.registry)
            result = loader.load(args.load_registry or None)
        elif args.search_registry:
            result = RegistrySearchScraper(db, config.registry).run()
        elif args.enrich:
            result = EnrichmentPipeline(db, config.enrichment).run()
        else:
            return 1
        print(json.dumps(result, indent=2))
        return 0


def main(argv=None):
    args = parse_args(argv)

    if args.list_sources:
        print_sources()
        return

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    for warning in validate_config(config):
        logger.warning("Config: %s", warning)

    if args.serve:
        import uvicorn
        from cpa_intel.web.app import create_app
        uvicorn.run(create_app(config), host=args.host, port=args.port)
        return

    try:
        code = run_command(args, config)
    except ScraperError as e:
        logger.error("Failed [%s]: %s", e.failure_kind, e)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
