"""
PeopleSoft Candidate Gateway connector.

PeopleSoft search results have no usable API and no stable per-row
markup, so listings are parsed from the rendered page text (one block
per "Select" button) and details are read through the browser driver.
"""
import re
import logging
from typing import Any, Dict, List, Optional, Tuple

from crawler.browser_driver import BrowserDriver, Session
from pipeline.canonical import RawListing
from pipeline.sections import (
    SectionKind,
    build_description,
    classify_blocks,
    extract_sections_from_text,
)
from core.normalize import parse_salary
from .base import SourceConnector

logger = logging.getLogger(__name__)

LISTING_SEPARATOR = re.compile(r'\bSelect\b')
MAX_LINES_PER_BLOCK = 15
MIN_DESCRIPTION_LENGTH = 200
BODY_FALLBACK_LENGTH = 8000

JOB_ID = re.compile(r'Job\s*ID\s*(\d{6})', re.I)
BARE_JOB_ID = re.compile(r'^(\d{6})$')
LOCATION_LINE = re.compile(r'^Location\s*(.+)$', re.I)
DEPARTMENT_LINE = re.compile(r'Department\s*([A-Z\s/\-]+)', re.I)
BUSINESS_UNIT_LINE = re.compile(r'Business\s*Unit\s*([A-Z\s]+)', re.I)
POSTED_DATE_LINE = re.compile(r'Posted\s*Date\s*(\d{2}/\d{2}/\d{4})', re.I)
NOT_A_TITLE = re.compile(r'^(Job ID|Location|Department|Business Unit|Posted|Close|Select|Title)', re.I)

SALARY_LINE = re.compile(r'(?:Salary\s*Range|Hire\s*In\s*Rate)[^\n]*(?:\n[^\n]*\$[^\n]*)?', re.I)
PAY_FREQUENCY = re.compile(r'Pay\s*Frequency\s*(Year|Hour|Annual|Hourly|Bi-?Weekly|Weekly)', re.I)
FULL_PART_TIME = re.compile(r'Full[/\s]?Part\s*Time\s*(Full-?Time|Part-?Time|Per\s*Diem)', re.I)
REGULAR_SHIFT = re.compile(r'Regular\s*Shift\s*(Day|Night|Evening|Rotating|Variable)', re.I)
WORK_SHIFTS = re.compile(r'Work\s*Shifts?\s*([\d:]+\s*[AP]\.?M\.?\s*[–-]\s*[\d:]+\s*[AP]\.?M\.?)', re.I)
DETAIL_DEPARTMENT = re.compile(
    r'Department\s+([A-Z][A-Z0-9\s/\-]+?)(?=\s*(?:Location|Hire|Salary|Job ID|Civil|$))',
    re.I
)
DETAIL_LOCATION = re.compile(r'Location\s+([A-Z][A-Za-z .\'-]+?)(?=\s*(?:\n|Job ID|Department|$))')


def parse_listing_text(body_text: str, known_locations: Optional[List[str]] = None) -> List[RawListing]:
    """
    Parse search-result listings from rendered page text.

    Each result follows a "Select" button and carries the title, "Job ID",
    "Location", "Department", "Business Unit" and "Posted Date" lines.

    Args:
        body_text: document body innerText
        known_locations: Location names that may appear on a bare line

    Returns:
        Listings with a title and job id; dom_index is the block position
    """
    known = {name.lower() for name in (known_locations or [])}
    listings = []

    for dom_index, block in enumerate(LISTING_SEPARATOR.split(body_text or '')[1:]):
        lines = [line.strip() for line in block.split('\n') if line.strip()]
        if len(lines) < 3:
            continue

        fields: Dict[str, Optional[str]] = {
            'title': None, 'job_id': None, 'location': None,
            'department': None, 'business_unit': None, 'posted_date': None,
        }

        for i, line in enumerate(lines[:MAX_LINES_PER_BLOCK]):
            match = JOB_ID.search(line) or BARE_JOB_ID.match(line)
            if match and not fields['job_id']:
                fields['job_id'] = match.group(1)
                continue

            match = LOCATION_LINE.match(line)
            if match and not fields['location']:
                fields['location'] = match.group(1).strip()
                continue
            if line.lower() in known and not fields['location']:
                fields['location'] = line
                continue

            match = DEPARTMENT_LINE.search(line)
            if match and not fields['department']:
                fields['department'] = match.group(1).strip()
                continue

            match = BUSINESS_UNIT_LINE.search(line)
            if match and not fields['business_unit']:
                fields['business_unit'] = match.group(1).strip()
                continue

            match = POSTED_DATE_LINE.search(line)
            if match and not fields['posted_date']:
                fields['posted_date'] = match.group(1)
                continue

            if not fields['title'] and i < 3 and 5 < len(line) < 100 and not NOT_A_TITLE.match(line):
                fields['title'] = line

        if fields['title'] and fields['job_id']:
            listings.append(RawListing(
                source_id=fields['job_id'],
                title=fields['title'],
                location_text=fields['location'],
                dom_index=dom_index,
                department=fields['department'],
                business_unit=fields['business_unit'],
                posted_text=fields['posted_date'],
                listing_text=block[:500],
            ))

    return listings


def extract_detail_fields(body_text: str) -> Dict[str, Optional[str]]:
    """
    Pull labelled fields from a detail view.

    Returns:
        Dict with salary_text, pay_frequency, job_type_text, shift_text,
        work_shifts, department and location (None when absent)
    """
    text = body_text or ''

    def first(pattern):
        match = pattern.search(text)
        return match.group(1).strip() if match else None

    salary_match = SALARY_LINE.search(text)
    regular_shift = first(REGULAR_SHIFT)
    work_shifts = first(WORK_SHIFTS)

    if regular_shift and work_shifts:
        shift_text = f"{regular_shift} ({work_shifts})"
    else:
        shift_text = regular_shift or work_shifts

    return {
        'salary_text': salary_match.group(0).strip() if salary_match else None,
        'pay_frequency': first(PAY_FREQUENCY),
        'job_type_text': first(FULL_PART_TIME),
        'shift_text': shift_text,
        'work_shifts': work_shifts,
        'department': first(DETAIL_DEPARTMENT),
        'location': first(DETAIL_LOCATION),
    }


def format_pay(salary: Optional[Dict[str, Any]]) -> Optional[str]:
    if not salary:
        return None
    unit = 'hour' if salary['salary_type'] == 'hourly' else 'year'
    return f"${salary['salary_min']:,} - ${salary['salary_max']:,}/{unit}"


def body_fallback(body_text: str) -> str:
    """Raw page text from the "About" heading on, for views with no classified sections."""
    index = body_text.find('About')
    return (body_text[index:] if index >= 0 else body_text)[:BODY_FALLBACK_LENGTH].strip()


class PeopleSoftConnector(SourceConnector):
    """Browser-driven PeopleSoft connector"""

    def __init__(self, config, settings=None, driver: Optional[BrowserDriver] = None):
        super().__init__('peoplesoft', config, settings=settings, priority=50)
        self.driver = driver or BrowserDriver(self.settings, getattr(config, 'selectors', None))
        self.session: Optional[Session] = None
        self.max_results: Optional[int] = None
        self.max_scrolls: Optional[int] = None

    def set_limits(self, max_pages: Optional[int] = None, max_jobs: Optional[int] = None):
        # Roughly two scrolls per result page of ~50 listings
        self.max_scrolls = max_pages * 2 if max_pages else None
        self.max_results = max_jobs

    async def open(self):
        if self.session is None:
            self.session = await self.driver.open_session(self.config.career_page_url)

    async def close(self):
        if self.session is not None:
            await self.driver.close_session(self.session)
            self.session = None

    def parse_listings(self, body_text: str) -> List[RawListing]:
        return parse_listing_text(body_text, list(self.config.city_aliases))

    async def list_page(self, cursor: Optional[Any] = None) -> Tuple[List[RawListing], Optional[Any]]:
        """
        Collect every listing in one pass; the result list is a single
        infinite-scroll page, so there is never a next cursor.
        """
        await self.open()
        if self.config.filter_label:
            await self.driver.apply_filter(self.session, self.config.filter_label)

        self.total = await self.driver.get_total_count(self.session)
        logger.info(f"[peoplesoft] {self.config.slug}: {self.total or 'unknown'} results reported")

        listings = await self.driver.collect_listings(
            self.session, self.parse_listings, max_results=self.max_results, max_scrolls=self.max_scrolls
        )
        return listings, None

    def to_raw_fields(self, record: str) -> Optional[RawListing]:
        listings = parse_listing_text(f"Select\n{record}", list(self.config.city_aliases))
        return listings[0] if listings else None

    async def fetch_detail(self, listing: RawListing) -> RawListing:
        """
        Open the listing's detail view and merge its fields.

        Replays the result list first; a failed replay or a view that
        never loads leaves the listing with listing-level data only.

        Raises:
            ExtractionError: if the opened view belongs to another job
        """
        if listing.dom_index is None or self.session is None:
            return listing

        if not await self.driver.replay_to(self.session, listing.dom_index):
            logger.warning(f"[peoplesoft] Could not return to listing {listing.source_id}, using listing data")
            return listing

        detail = await self.driver.fetch_detail(self.session, listing)
        if detail is None:
            logger.warning(f"[peoplesoft] No detail view for {listing.source_id}, using listing data")
            return listing

        fields = extract_detail_fields(detail.body_text)
        about_pattern = re.escape(self.config.facility_name) if self.config.facility_name else None

        sections = classify_blocks(detail.blocks, about_pattern)
        for kind, text in extract_sections_from_text(detail.body_text).items():
            sections.setdefault(kind, text)

        salary = parse_salary(fields['salary_text'], unit_hint=fields['pay_frequency']) if fields['salary_text'] else None
        location = fields['location'] or listing.location_text
        description = build_description({
            'facility': self.config.facility_name,
            'schedule': fields['shift_text'],
            'pay': format_pay(salary),
            'location': location,
            'department': fields['department'] or listing.department,
        }, sections)

        if not any(kind in sections for kind in (SectionKind.DUTIES, SectionKind.QUALIFICATIONS)) \
                and len(description) < MIN_DESCRIPTION_LENGTH:
            description = body_fallback(detail.body_text)

        listing.update(
            raw_detail_text=description or None,
            location_text=location,
            salary_text=fields['salary_text'],
            pay_frequency=fields['pay_frequency'],
            job_type_text=fields['job_type_text'],
            shift_text=fields['shift_text'],
            department=fields['department'],
            sections={kind.value: text for kind, text in sections.items()},
        )
        listing.detail_fetched = bool(description)
        logger.info(f"[peoplesoft] {listing.source_id}: {len(sections)} sections, {len(description)} chars")

        await self.pause(self.settings.between_jobs_delay_ms)
        return listing
