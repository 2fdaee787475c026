"""
Raw listing and canonical job records.

Connectors emit RawListing objects in their source's vocabulary;
build_canonical_job() runs the field normalizers over them and produces
the CanonicalJob shape written by the persistence gate.
"""

import re
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Any, List

from core.normalize import (
    normalize_state,
    normalize_city,
    normalize_zip,
    normalize_job_type,
    normalize_shift_type,
    parse_salary,
    parse_posted_date,
    generate_job_slug,
    get_state_code,
)
from core.job_categorizer import detect_specialty, detect_experience_level
from core.errors import ExtractionError

logger = logging.getLogger(__name__)

EXPIRY_DAYS = 60
DEFAULT_JOB_TYPE = 'full-time'

# Fields carried for validation only; they are not jobs table columns
EMPLOYER_FIELDS = ('employer_name', 'employer_slug', 'career_page_url')

# Detail-derived columns kept from a stored record when a sighting brings no fresh detail
STORED_DETAIL_FIELDS = (
    'raw_description', 'description', 'job_type', 'shift_type', 'department', 'experience_level',
    'salary_min', 'salary_max', 'salary_type',
    'salary_min_hourly', 'salary_max_hourly', 'salary_min_annual', 'salary_max_annual',
)

CITY_STATE_PATTERN = re.compile(r'^\s*([A-Za-z .\'-]+?)\s*,\s*([A-Za-z .]+?)(?:\s+\d{5}(?:-\d{4})?)?\s*$')
ZIP_PATTERN = re.compile(r'\b(\d{5})(?:-\d{4})?\b')


class RawListing:
    """
    A listing as seen by a connector, before normalization.

    Core fields are fixed; vendor extras (department, posted_text,
    salary_text, pay_frequency, job_type_text, shift_text, city, state,
    source_url, sections, business_unit, ...) are kept in `extras` and
    read through attribute access.
    """

    def __init__(
        self,
        source_id: str,
        title: str,
        location_text: Optional[str] = None,
        raw_detail_text: Optional[str] = None,
        dom_index: Optional[int] = None,
        **extras: Any
    ):
        self.source_id = str(source_id) if source_id is not None else None
        self.title = (title or '').strip()
        self.location_text = location_text
        self.raw_detail_text = raw_detail_text
        self.dom_index = dom_index
        self.extras: Dict[str, Any] = extras
        self.detail_fetched = False

    def __getattr__(self, name):
        # Only reached for attributes not set in __init__
        extras = self.__dict__.get('extras', {})
        return extras.get(name)

    def update(self, **fields: Any):
        """Merge detail-page values into the listing."""
        for key, value in fields.items():
            if key in ('source_id', 'title', 'location_text', 'raw_detail_text', 'dom_index'):
                if value:
                    setattr(self, key, value)
            elif value is not None:
                self.extras[key] = value

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'source_id': self.source_id,
            'title': self.title,
            'location_text': self.location_text,
            'raw_detail_text': self.raw_detail_text,
            'dom_index': self.dom_index,
        }
        data.update(self.extras)
        return data

    def __repr__(self):
        return f"<RawListing(source_id={self.source_id}, title={self.title[:40]!r})>"


class CanonicalJob:
    """Normalized job record, one row of the jobs table."""

    COLUMNS = (
        'title', 'slug', 'source_job_id', 'employer_id', 'city', 'state', 'zip_code',
        'location', 'department', 'job_type', 'shift_type', 'specialty', 'experience_level',
        'salary_min', 'salary_max', 'salary_type', 'salary_min_hourly', 'salary_max_hourly',
        'salary_min_annual', 'salary_max_annual', 'description', 'raw_description',
        'source_url', 'posted_at', 'scraped_at', 'expires_at',
    )

    def __init__(self, **fields: Any):
        for column in self.COLUMNS + EMPLOYER_FIELDS:
            setattr(self, column, fields.get(column))

    def to_dict(self, include_employer: bool = True) -> Dict[str, Any]:
        """
        Args:
            include_employer: Include employer_name/slug/career_page_url
                (needed by the validator, dropped for SQL)
        """
        data = {column: getattr(self, column) for column in self.COLUMNS}
        if include_employer:
            for field in EMPLOYER_FIELDS:
                data[field] = getattr(self, field)
        return data

    def __repr__(self):
        return f"<CanonicalJob(source_job_id={self.source_job_id}, slug={self.slug})>"


def calculate_expiry(scraped_at: Optional[datetime] = None, explicit: Optional[datetime] = None) -> datetime:
    """Explicit expiry date if the source gives one, else scrape time + 60 days."""
    if explicit:
        return explicit
    return (scraped_at or datetime.now(timezone.utc)) + timedelta(days=EXPIRY_DAYS)


def split_location(location_text: Optional[str]) -> Dict[str, Optional[str]]:
    """
    Split "City, ST 12345" style text.

    Returns:
        Dict with city, state (unnormalized) and zip_code, any of which may be None
    """
    result = {'city': None, 'state': None, 'zip_code': None}
    if not location_text:
        return result

    zip_match = ZIP_PATTERN.search(location_text)
    if zip_match:
        result['zip_code'] = zip_match.group(1)

    match = CITY_STATE_PATTERN.match(location_text)
    if match:
        result['city'] = match.group(1).strip()
        result['state'] = match.group(2).strip()
    return result


def _resolve_location(raw: RawListing, config) -> Dict[str, Optional[str]]:
    parsed = split_location(raw.location_text)
    aliases = getattr(config, 'city_aliases', {}) or {}

    city = raw.city or parsed['city']
    alias_key = (city or raw.location_text or '').strip().lower()
    if alias_key in aliases:
        city = aliases[alias_key]
    if not city and raw.location_text and ',' not in raw.location_text:
        city = raw.location_text.strip()
    city = normalize_city(city or config.default_city)

    state = raw.state or parsed['state']
    if state and len(state.strip()) > 2:
        # Full names resolve exactly; anything else falls through to the fallback
        state = get_state_code(state) or state
    if not state and city:
        state = (getattr(config, 'city_states', {}) or {}).get(city)
    state = normalize_state(state or config.default_state)

    zip_code = normalize_zip(raw.zip_code or parsed['zip_code'])
    return {'city': city, 'state': state, 'zip_code': zip_code}


def _build_source_url(raw: RawListing, config) -> Optional[str]:
    if raw.source_url:
        return raw.source_url
    if config.job_url_template and raw.source_id:
        return config.job_url_template.format(job_id=raw.source_id)
    return config.career_page_url


def _fallback_description(raw: RawListing, config, city: Optional[str], state: Optional[str]) -> str:
    parts = [f"{raw.title} position at {config.name} in {city}, {state}."]
    if raw.department:
        parts.append(f"Department: {raw.department}.")
    if raw.business_unit:
        parts.append(f"Facility: {raw.business_unit}.")
    parts.append("Apply now for this nursing opportunity.")
    return ' '.join(parts)


def build_canonical_job(
    raw: RawListing,
    config,
    employer_id: Optional[Any] = None,
    scraped_at: Optional[datetime] = None,
    existing_slug: Optional[str] = None,
    existing: Optional[Dict[str, Any]] = None
) -> CanonicalJob:
    """
    Normalize a raw listing into a CanonicalJob.

    Args:
        raw: Listing from a connector (with detail fields merged when fetched)
        config: EmployerConfig for the run
        employer_id: Employer row id, None in dry runs
        scraped_at: Time of this sighting (defaults to now, UTC)
        existing_slug: Stored slug for a re-sighted job; reused as-is
        existing: Stored row for a re-sighted job; when the listing carries no
            freshly fetched detail, its detail-derived columns are kept

    Returns:
        CanonicalJob; validity is checked later by the persistence gate

    Raises:
        ExtractionError: if the listing has no title or source id
    """
    if not raw.title or not raw.source_id:
        raise ExtractionError(f"Listing has no usable title/id: {raw!r}")

    scraped_at = scraped_at or datetime.now(timezone.utc)
    location = _resolve_location(raw, config)
    city, state = location['city'], location['state']

    raw_description = (raw.raw_detail_text or '').strip()
    description = raw_description or _fallback_description(raw, config, city, state)

    salary = None
    if raw.salary_text:
        salary = parse_salary(raw.salary_text, unit_hint=raw.pay_frequency)
    if salary is None and raw_description:
        salary = parse_salary(raw_description, unit_hint=raw.pay_frequency)
    salary = salary or {}

    posted_at = raw.posted_at or parse_posted_date(raw.posted_text, now=scraped_at)
    shift_type = normalize_shift_type(raw.shift_text) or normalize_shift_type(raw.title)
    job_type = (
        normalize_job_type(raw.job_type_text)
        or normalize_job_type(config.default_job_type)
        or DEFAULT_JOB_TYPE
    )

    existing = existing or {}
    slug = existing_slug or existing.get('slug') or generate_job_slug(raw.title, city, state, raw.source_id)
    employer = config.to_employer_record()

    job = CanonicalJob(
        title=raw.title,
        slug=slug,
        source_job_id=raw.source_id,
        employer_id=employer_id,
        city=city,
        state=state,
        zip_code=location['zip_code'],
        location=f"{city}, {state}" if city and state else (city or raw.location_text),
        department=raw.department,
        job_type=job_type,
        shift_type=shift_type,
        specialty=detect_specialty(raw.title, description),
        experience_level=detect_experience_level(raw.title, description),
        salary_min=salary.get('salary_min'),
        salary_max=salary.get('salary_max'),
        salary_type=salary.get('salary_type'),
        salary_min_hourly=salary.get('salary_min_hourly'),
        salary_max_hourly=salary.get('salary_max_hourly'),
        salary_min_annual=salary.get('salary_min_annual'),
        salary_max_annual=salary.get('salary_max_annual'),
        description=description,
        raw_description=raw_description or None,
        source_url=_build_source_url(raw, config),
        posted_at=posted_at,
        scraped_at=scraped_at,
        expires_at=calculate_expiry(scraped_at, raw.expires_at),
        employer_name=employer['name'],
        employer_slug=employer['slug'],
        career_page_url=employer['career_page_url'],
    )
    if existing and not raw.detail_fetched:
        _keep_stored_detail(job, existing)

    logger.debug(f"[canonical] {job.source_job_id}: {job.title} ({job.location}, {job.specialty})")
    return job


def _keep_stored_detail(job: CanonicalJob, existing: Dict[str, Any]):
    kept = [name for name in STORED_DETAIL_FIELDS if existing.get(name) is not None]
    for name in kept:
        setattr(job, name, existing[name])
    if kept:
        logger.debug(f"[canonical] {job.source_job_id}: kept stored {', '.join(kept)}")


def location_breakdown(jobs: List[CanonicalJob]) -> Dict[str, int]:
    """Count jobs per "City, ST", most common first."""
    counts: Dict[str, int] = {}
    for job in jobs:
        key = job.location or 'Unknown'
        counts[key] = counts.get(key, 0) + 1
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def specialty_breakdown(jobs: List[CanonicalJob]) -> Dict[str, int]:
    """Count jobs per specialty, most common first."""
    counts: Dict[str, int] = {}
    for job in jobs:
        key = job.specialty or 'Unknown'
        counts[key] = counts.get(key, 0) + 1
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))
