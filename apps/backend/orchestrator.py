"""
Run controller: drives one employer scrape end to end.

connector pages -> dedupe -> role filter -> detail fetch -> normalize
-> validate -> upsert. Per-listing failures are counted and the run
continues; only configuration errors and an unreachable source abort it.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

from app.config import ScraperSettings
from core.errors import FetchError, IngestError, PersistenceError, ValidationError
from core.pre_upsert_validator import get_validator
from pipeline.canonical import (
    CanonicalJob,
    RawListing,
    build_canonical_job,
    location_breakdown,
    specialty_breakdown,
)
from pipeline.sections import has_complete_description

logger = logging.getLogger(__name__)

DRY_RUN_SAMPLE_SIZE = 5


class RunResult:
    """Counts and records from one run"""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.created = 0
        self.updated = 0
        self.skipped = 0
        self.failed = 0
        self.total = 0
        self.details_fetched = 0
        self.details_reused = 0
        self.errors: List[Dict[str, Any]] = []
        self.jobs: List[CanonicalJob] = []

    def add_error(self, source_id: Optional[str], stage: str, message: str):
        self.errors.append({'source_job_id': source_id, 'stage': stage, 'error': message})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dry_run': self.dry_run,
            'created': self.created,
            'updated': self.updated,
            'skipped': self.skipped,
            'failed': self.failed,
            'total': self.total,
            'details_fetched': self.details_fetched,
            'details_reused': self.details_reused,
            'errors': self.errors,
        }

    def __repr__(self):
        return (
            f"RunResult(created={self.created}, updated={self.updated}, skipped={self.skipped}, "
            f"failed={self.failed}, total={self.total})"
        )


class RunController:
    """Runs one employer's connector through normalization and persistence"""

    def __init__(self, config, connector, store=None, settings: Optional[ScraperSettings] = None):
        """
        Args:
            config: EmployerConfig
            connector: SourceConnector for the employer
            store: JobStore; may be None for dry runs
            settings: Delay/timeout settings
        """
        self.config = config
        self.connector = connector
        self.store = store
        self.settings = settings or ScraperSettings(config.delays)

    async def _collect(self, result: RunResult, max_pages: Optional[int], max_jobs: Optional[int]) -> List[RawListing]:
        """Page through the connector, dropping duplicates and filtered roles."""
        listings: List[RawListing] = []
        seen = set()
        cursor = None
        pages = 0

        while True:
            try:
                page_listings, cursor = await self.connector.list_page(cursor)
            except FetchError as e:
                if pages == 0:
                    # Nothing collected: the source is unreachable
                    raise
                logger.warning(f"[run] Listing page {pages + 1} failed, stopping pagination: {e}")
                result.add_error(None, 'list', str(e))
                break
            pages += 1

            for listing in page_listings:
                result.total += 1
                if listing.source_id in seen:
                    result.skipped += 1
                    logger.debug(f"[run] Duplicate listing {listing.source_id}")
                    continue
                seen.add(listing.source_id)

                accepted, reason = self.connector.accepts(listing)
                if not accepted:
                    result.skipped += 1
                    logger.debug(f"[run] Filtered {listing.source_id} '{listing.title}': {reason}")
                    continue
                listings.append(listing)

            if cursor is None:
                break
            if max_pages and pages >= max_pages:
                logger.info(f"[run] Reached max pages ({max_pages})")
                break
            if max_jobs and len(listings) >= max_jobs:
                break

        if max_jobs and len(listings) > max_jobs:
            listings = listings[:max_jobs]
        logger.info(f"[run] {len(listings)} listings to process ({result.skipped} skipped) over {pages} page(s)")
        return listings

    async def _process(self, listing: RawListing, result: RunResult, employer_id: Any,
                       scraped_at: datetime, dry_run: bool):
        existing = None
        if not dry_run and employer_id is not None:
            try:
                existing = self.store.get_existing_job(employer_id, listing.source_id)
            except PersistenceError as e:
                logger.warning(f"[run] Could not look up {listing.source_id}: {e}")

        if existing and has_complete_description(existing.get('raw_description')):
            listing.update(raw_detail_text=existing['raw_description'])
            result.details_reused += 1
            logger.debug(f"[run] {listing.source_id}: stored description complete, skipping detail fetch")
        else:
            try:
                listing = await self.connector.fetch_detail(listing)
            except IngestError as e:
                logger.warning(f"[run] Detail fetch failed for {listing.source_id}: {e}")
                result.add_error(listing.source_id, 'detail', str(e))
            if listing.detail_fetched:
                result.details_fetched += 1

        job = build_canonical_job(
            listing, self.config,
            employer_id=employer_id,
            scraped_at=scraped_at,
            existing=existing,
        )

        try:
            get_validator().ensure_valid(job.to_dict())
        except ValidationError as e:
            result.failed += 1
            result.add_error(listing.source_id, 'validate', str(e))
            logger.warning(f"[run] Invalid {listing.source_id}: {', '.join(e.errors)}")
            return

        result.jobs.append(job)
        if dry_run:
            return

        status = self.store.upsert_job(job)
        if status['action'] == 'created':
            result.created += 1
        elif status['action'] == 'updated':
            result.updated += 1
        else:
            result.failed += 1
            result.add_error(listing.source_id, 'persist', status.get('error') or 'unknown error')

    async def run(self, dry_run: bool = False, max_pages: Optional[int] = None,
                  max_jobs: Optional[int] = None) -> RunResult:
        """
        Execute the run.

        Args:
            dry_run: Normalize and validate only; the store is never touched
            max_pages: Stop after this many listing pages
            max_jobs: Stop after this many accepted listings

        Returns:
            RunResult

        Raises:
            ConfigError: on configuration problems
            FetchError: when the source cannot be reached at all
        """
        result = RunResult(dry_run=dry_run)
        scraped_at = datetime.now(timezone.utc)
        logger.info(f"[run] Starting {self.config.slug} ({self.config.connector}, dry_run={dry_run})")

        employer_id = None
        store_ready = dry_run
        if not dry_run:
            try:
                employer_id = self.store.get_or_create_employer(self.config)['id']
                store_ready = True
            except PersistenceError as e:
                logger.error(f"[run] Employer setup failed, jobs will not be saved: {e}")
                result.add_error(None, 'employer', str(e))

        self.connector.set_limits(max_pages=max_pages, max_jobs=max_jobs)
        async with self.connector:
            listings = await self._collect(result, max_pages, max_jobs)

            for i, listing in enumerate(listings, 1):
                logger.info(f"[run] [{i}/{len(listings)}] {listing.title} ({listing.source_id})")
                if not store_ready:
                    result.failed += 1
                    continue
                try:
                    await self._process(listing, result, employer_id, scraped_at, dry_run)
                except IngestError as e:
                    result.failed += 1
                    result.add_error(listing.source_id, 'process', str(e))
                    logger.warning(f"[run] Failed {listing.source_id}: {e}")

        logger.info(f"[run] Finished {self.config.slug}: {result}")
        return result


def print_dry_run_summary(result: RunResult, sample_size: int = DRY_RUN_SAMPLE_SIZE):
    """Print sample jobs and location/specialty breakdowns."""
    print("\n" + "=" * 70)
    print(f"DRY RUN: {len(result.jobs)} valid jobs (nothing saved)")
    print("=" * 70)

    for i, job in enumerate(result.jobs[:sample_size], 1):
        print(f"\n{i}. {job.title}")
        print(f"   ID: {job.source_job_id}  Slug: {job.slug}")
        print(f"   Location: {job.location}  Type: {job.job_type}  Shift: {job.shift_type or '-'}")
        print(f"   Specialty: {job.specialty}  Experience: {job.experience_level or '-'}")
        if job.salary_min:
            print(f"   Salary: ${job.salary_min:,} - ${job.salary_max:,} ({job.salary_type})")
        print(f"   URL: {job.source_url}")

    print("\nBy location:")
    for location, count in location_breakdown(result.jobs).items():
        print(f"   {location}: {count}")

    print("\nBy specialty:")
    for specialty, count in specialty_breakdown(result.jobs).items():
        print(f"   {specialty}: {count}")

    print(f"\nSkipped: {result.skipped}  Failed: {result.failed}  Total seen: {result.total}")


def print_run_summary(result: RunResult):
    """Print created/updated/skipped/failed counts."""
    print("\n" + "=" * 70)
    print("RUN COMPLETE")
    print("=" * 70)
    print(f"   Created: {result.created}")
    print(f"   Updated: {result.updated}")
    print(f"   Skipped: {result.skipped}")
    print(f"   Failed:  {result.failed}")
    print(f"   Total:   {result.total}")
    print(f"   Details fetched: {result.details_fetched}  reused: {result.details_reused}")
    for error in result.errors[:10]:
        print(f"   ! {error['source_job_id'] or '-'} [{error['stage']}]: {error['error']}")
