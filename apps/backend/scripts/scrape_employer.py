#!/usr/bin/env python3
"""
Scrape one employer's career site and upsert its nursing jobs.

Usage:
    python scripts/scrape_employer.py <employer-slug> [--no-save] [--max-pages=N] [--max-jobs=N]
    python scripts/scrape_employer.py --list

Exit status is 0 when the run completes, even with per-job failures,
and 1 on configuration errors or an unreachable source.
"""

import sys
import asyncio
import logging
import argparse
from pathlib import Path

# Add backend to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from app.config import ScraperSettings
from app.db_config import DBConfig
from core.employer_config import get_employer_config, list_employer_slugs
from core.errors import ConfigError, FetchError
from crawler.plugins import create_connector
from orchestrator import RunController, print_dry_run_summary, print_run_summary
from pipeline.db_insert import JobStore

logger = logging.getLogger(__name__)

# Load .env from apps/backend if present
env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Scrape an employer career site')
    parser.add_argument('employer', nargs='?', help='Employer slug from config/employers.yaml')
    parser.add_argument('--no-save', action='store_true', help='Dry run: print a sample instead of saving')
    parser.add_argument('--max-pages', type=int, default=None, help='Maximum listing pages to fetch')
    parser.add_argument('--max-jobs', type=int, default=None, help='Maximum jobs to process')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--list', action='store_true', help='List configured employers and exit')
    return parser


async def run_scrape(args) -> int:
    config = get_employer_config(args.employer)
    settings = ScraperSettings(config.delays)
    logger.debug(f"Scraper settings for {config.slug}: {settings.as_dict()}")

    store = None
    if not args.no_save:
        db_config = DBConfig()
        if not db_config.is_db_enabled:
            raise ConfigError("SUPABASE_DB_URL or DATABASE_URL must be set (or use --no-save)")
        store = JobStore(db_config.db_url)

    connector = create_connector(config, settings=settings)
    controller = RunController(config, connector, store=store, settings=settings)
    result = await controller.run(dry_run=args.no_save, max_pages=args.max_pages, max_jobs=args.max_jobs)

    if args.no_save:
        print_dry_run_summary(result)
    else:
        print_run_summary(result)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.list:
            for slug in list_employer_slugs():
                print(slug)
            return 0

        if not args.employer:
            logger.error("Employer slug is required (use --list to see configured employers)")
            return 1

        for flag in ('max_pages', 'max_jobs'):
            value = getattr(args, flag)
            if value is not None and value < 1:
                raise ConfigError(f"--{flag.replace('_', '-')} must be a positive integer")

        return asyncio.run(run_scrape(args))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except FetchError as e:
        logger.error(f"Source unreachable: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 1


if __name__ == "__main__":
    sys.exit(main())
