"""
Workday connector.

Polls the Workday CXS JSON API behind *.myworkdayjobs.com career sites:
a paged POST search for listings, then a GET per job for the full
posting. Job descriptions arrive as HTML and are flattened to text.
"""
import re
import logging
from typing import Any, Dict, List, Optional, Tuple

from core.net import HTTPClient
from pipeline.canonical import RawListing
from .base import SourceConnector

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20

REMOTE_LOCATION = re.compile(r'^Remote-([A-Z]{2})\b', re.I)
REMOTE_PATH = re.compile(r'/job/Remote-([A-Z]{2})/', re.I)
MULTI_LOCATION = re.compile(r'\d+\s*Locations?', re.I)
CITY_STATE = re.compile(r'^([A-Za-z .\'-]+?),\s*([A-Z]{2})\b')
CITY_PREFIX = re.compile(r'^([A-Za-z\s]+?)[\s-]+')
SOURCE_ID = re.compile(r'_([A-Za-z]*\d+)(?:-\d+)?$')
PAY_RANGE = re.compile(
    r'Pay\s*Range:\s*\$?([\d,]+(?:\.\d{2})?)\s*-\s*\$?([\d,]+(?:\.\d{2})?)\s*per\s*(year|hour)',
    re.I
)


def parse_location(locations_text: Optional[str], city_states: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Parse a Workday locationsText value.

    Formats: "Rochester, NY", "Remote-CA", "2 Locations", "Newark-750 Prides Crossing".

    Returns:
        Dict with city, state and is_remote; city/state may be None
    """
    city_states = city_states or {}
    result = {'city': None, 'state': None, 'is_remote': False}
    if not locations_text:
        return result
    text = locations_text.strip()

    match = CITY_STATE.match(text)
    if match:
        result['city'] = match.group(1).strip()
        result['state'] = match.group(2).upper()
        return result

    match = REMOTE_LOCATION.match(text)
    if match:
        return {'city': 'Remote', 'state': match.group(1).upper(), 'is_remote': True}

    if MULTI_LOCATION.search(text):
        result['is_remote'] = True
        return result

    match = CITY_PREFIX.match(text)
    city = match.group(1).strip() if match else (text if re.fullmatch(r'[A-Za-z .\'-]+', text) else None)
    if city:
        result['city'] = city
        result['state'] = city_states.get(city)
    return result


class WorkdayConnector(SourceConnector):
    """Workday CXS API connector"""

    def __init__(self, config, settings=None, client: Optional[HTTPClient] = None):
        super().__init__('workday', config, settings=settings, priority=60)
        api = config.api
        self.tenant = api['tenant']
        self.site = api['site']
        self.subdomain = api['subdomain']
        self.page_size = int(api.get('page_size') or DEFAULT_PAGE_SIZE)
        self.facet = api.get('facet')
        self.facet_values = api.get('facet_values') or []
        self.search_text = api.get('search_text', '')
        self.base_url = api.get('base_url') or f"https://{self.tenant}.{self.subdomain}.myworkdayjobs.com"
        self.client = client or HTTPClient(
            timeout=self.settings.request_timeout_s,
            requests_per_minute=api.get('requests_per_minute'),
        )

    @property
    def jobs_url(self) -> str:
        return f"{self.base_url}/wday/cxs/{self.tenant}/{self.site}/jobs"

    def detail_url(self, external_path: str) -> str:
        return f"{self.base_url}/wday/cxs/{self.tenant}/{self.site}{external_path}"

    def job_url(self, external_path: str) -> str:
        return f"{self.base_url}/en-US/{self.site}{external_path}"

    async def open(self):
        await self.client.open()

    async def close(self):
        await self.client.close()

    def build_search_payload(self, offset: int) -> Dict[str, Any]:
        applied_facets = {self.facet: list(self.facet_values)} if self.facet and self.facet_values else {}
        return {
            'appliedFacets': applied_facets,
            'limit': self.page_size,
            'offset': offset,
            'searchText': self.search_text,
        }

    async def list_page(self, cursor: Optional[Any] = None) -> Tuple[List[RawListing], Optional[Any]]:
        """
        Fetch one search page; the cursor is the result offset.

        Raises:
            FetchError: when the search endpoint fails after retries
        """
        offset = int(cursor or 0)
        if offset > 0:
            await self.pause(self.settings.between_pages_delay_ms)

        data = await self.client.fetch_json(self.jobs_url, method='POST', json_data=self.build_search_payload(offset))
        postings = data.get('jobPostings') or []

        # Workday reports the total on the first page only
        if data.get('total'):
            self.total = int(data['total'])
        logger.info(f"[workday] {self.config.slug}: offset {offset}, {len(postings)} postings (total {self.total})")

        listings = [listing for listing in (self.to_raw_fields(p) for p in postings) if listing]

        next_offset = offset + self.page_size
        if not postings or (self.total is not None and next_offset >= self.total):
            return listings, None
        return listings, next_offset

    def to_raw_fields(self, record: Dict[str, Any]) -> Optional[RawListing]:
        external_path = record.get('externalPath') or ''
        title = (record.get('title') or '').strip()
        if not external_path or not title:
            logger.debug(f"[workday] Skipping posting without path/title: {record}")
            return None

        match = SOURCE_ID.search(external_path)
        bullets = record.get('bulletFields') or []
        source_id = match.group(1) if match else (bullets[0] if bullets else None)
        if not source_id:
            return None

        locations_text = record.get('locationsText')
        location = parse_location(locations_text, self.config.city_states)
        if not location['state']:
            path_match = REMOTE_PATH.search(external_path)
            if path_match:
                location = {'city': 'Remote', 'state': path_match.group(1).upper(), 'is_remote': True}

        return RawListing(
            source_id=source_id,
            title=title,
            location_text=locations_text,
            city=location['city'],
            state=location['state'],
            is_remote=location['is_remote'],
            posted_text=record.get('postedOn'),
            external_path=external_path,
            source_url=self.job_url(external_path),
        )

    async def fetch_detail(self, listing: RawListing) -> RawListing:
        """
        GET the posting and merge its description, salary and time type.

        Raises:
            FetchError: when the posting cannot be fetched; the caller
                records it and keeps listing-level data
        """
        data = await self.client.fetch_json(self.detail_url(listing.external_path))

        info = data.get('jobPostingInfo') or {}
        description = self.html_to_text(info.get('jobDescription'))

        if not listing.state:
            for extra in info.get('additionalLocations') or []:
                match = REMOTE_LOCATION.search(extra)
                if match:
                    listing.update(city='Remote', state=match.group(1).upper(), is_remote=True)
                    break

        salary_text = info.get('salary')
        if not salary_text and description:
            match = PAY_RANGE.search(description)
            if match:
                salary_text = f"${match.group(1)} - ${match.group(2)} per {match.group(3)}"

        listing.update(
            title=info.get('title'),
            raw_detail_text=description or None,
            salary_text=salary_text,
            job_type_text=info.get('timeType'),
            source_url=info.get('externalUrl'),
        )
        listing.detail_fetched = bool(description)

        await self.pause(self.settings.between_jobs_delay_ms)
        return listing
