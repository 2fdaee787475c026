"""
Base connector interface for job sources.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple
from bs4 import BeautifulSoup

from app.config import ScraperSettings
from core.job_categorizer import JobCategorizer
from pipeline.canonical import RawListing

logger = logging.getLogger(__name__)


class SourceConnector(ABC):
    """
    Base class for source connectors.

    A connector turns one employer's career site into RawListing objects.
    Each connector should:
    1. Page through listings with list_page(cursor)
    2. Enrich a listing from its detail view with fetch_detail(listing)
    3. Map source records into RawListing fields with to_raw_fields()

    Connectors are async context managers; open() acquires the HTTP client
    or browser session and close() releases it.
    """

    def __init__(self, name: str, config, settings: Optional[ScraperSettings] = None, priority: int = 50):
        """
        Initialize connector.

        Args:
            name: Connector name (e.g., 'workday', 'peoplesoft')
            config: EmployerConfig for the employer being scraped
            settings: Delay/timeout settings (employer delays applied on top)
            priority: Priority (higher = listed first in the registry)
        """
        self.name = name
        self.config = config
        self.settings = settings or ScraperSettings(getattr(config, 'delays', None))
        self.priority = priority
        self.total: Optional[int] = None
        self.logger = logging.getLogger(f"{__name__}.{name}")

    async def __aenter__(self) -> 'SourceConnector':
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def set_limits(self, max_pages: Optional[int] = None, max_jobs: Optional[int] = None):
        """Run bounds; API connectors page by cursor and ignore them."""
        self.max_pages = max_pages
        self.max_jobs = max_jobs

    async def open(self):
        """Acquire resources (optional override)."""

    async def close(self):
        """Release resources (optional override)."""

    @abstractmethod
    async def list_page(self, cursor: Optional[Any] = None) -> Tuple[List[RawListing], Optional[Any]]:
        """
        Fetch one page of listings.

        Args:
            cursor: Opaque position returned by the previous call, None for the first page

        Returns:
            Tuple of (listings, next_cursor); next_cursor is None when exhausted
        """
        pass

    @abstractmethod
    async def fetch_detail(self, listing: RawListing) -> RawListing:
        """
        Merge detail-view fields into a listing.

        Sets listing.detail_fetched when detail data was captured; on
        failure the listing is returned unchanged.
        """
        pass

    @abstractmethod
    def to_raw_fields(self, record: Any) -> Optional[RawListing]:
        """Map one source record into a RawListing (None if unusable)."""
        pass

    def accepts(self, listing: RawListing) -> Tuple[bool, Optional[str]]:
        """
        Apply the employer's role policy to a listing title.

        Returns:
            Tuple of (accepted, reason); reason is set on rejection
        """
        if not self.config.role_filter:
            return True, None
        return JobCategorizer.is_rn_role(
            listing.title, self.config.include_patterns, self.config.exclude_patterns
        )

    async def pause(self, ms: int):
        """Politeness delay between requests."""
        if ms > 0:
            await asyncio.sleep(ms / 1000)

    def get_soup(self, html: str) -> BeautifulSoup:
        """Helper to create BeautifulSoup instance"""
        return BeautifulSoup(html, 'lxml')

    def html_to_text(self, html: Optional[str]) -> str:
        """Flatten an HTML fragment to newline-separated text."""
        if not html:
            return ''
        return self.get_soup(html).get_text('\n', strip=True)

    def __repr__(self):
        return f"<{self.__class__.__name__}(name={self.name}, employer={self.config.slug})>"
