"""
Browser automation driver for legacy career portals.

Drives a single Playwright page through a search-results workflow:
apply a category filter, collect listings by infinite scroll, open
detail views, and recover the result list after a detail view.

Every operation takes an explicit Session and holds its lock, so only
one operation is ever in flight on a page.
"""
import re
import math
import asyncio
import hashlib
import logging
from enum import Enum
from contextlib import asynccontextmanager
from typing import Optional, List, Dict, Callable, Any, Set

from playwright.async_api import async_playwright, Error as PlaywrightError

from app.config import ScraperSettings
from core.errors import ExtractionError, FetchError

logger = logging.getLogger(__name__)

STALL_THRESHOLD = 4
READY_POLLS = 3
MAX_REPLAY_ATTEMPTS = 2
DEFAULT_MAX_SCROLLS = 15
LISTINGS_PER_SCROLL = 50

# Fixed waits (ms)
EMPTY_SCROLL_WAIT_MS = 2000
FAILED_SCROLL_WAIT_MS = 3000
SCROLL_SETTLE_MS = 4000
READY_POLL_WAIT_MS = 4000
REPLAY_SCROLL_WAIT_MS = 2000

# PeopleSoft Candidate Gateway defaults; overridable per employer
DEFAULT_SELECTORS = {
    'results_container': 'win0divHRS_AGNT_RSLT_I$grid$0',
    'detail_button_prefix': 'HRS_VIEW_DETAILSPB',
    'title_links': 'a[id*="JOBTITLE"], a[id*="POSTINGTITLE"]',
    'description_block_prefix': 'HRS_SCH_PSTDSC_DESCRLONG',
    'listing_separator': r'\bSelect\b',
    'search_page_markers': ['Search Jobs', 'jobs found', 'Apply for Job'],
}

BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9'
}

READY_DUTIES = re.compile(r'Duties|Responsibilities')
READY_QUALIFICATIONS = re.compile(r'Qualifications|Requirements|Minimum')
TOTAL_COUNT = re.compile(r'(\d+)\s+jobs?\s+found', re.I)
DETAIL_JOB_ID = re.compile(r'Job\s*ID\s*:?\s*(\d+)', re.I)


class SessionState(Enum):
    IDLE = "idle"
    FILTER_APPLIED = "filter_applied"
    COLLECTING = "collecting"
    COLLECTED = "collected"
    DETAIL_FETCH = "detail_fetch"
    RECOVERING = "recovering"
    DONE = "done"


class Session:
    """
    State of one browser scrape.

    Holds the page handle, the filter to re-apply after reloads, the
    set of listing ids already collected and per-listing retry counters.
    filter_lost marks a filter that could not be re-applied after a reload;
    the page then shows unfiltered results and indexes are not trusted.
    Never persisted.
    """

    def __init__(self, page, url: str, browser=None, playwright=None):
        self.page = page
        self.url = url
        self.browser = browser
        self.playwright = playwright
        self.state = SessionState.IDLE
        self.filter_label: Optional[str] = None
        self.filter_applied = False
        self.filter_lost = False
        self.seen_ids: Set[str] = set()
        self.retry_counts: Dict[str, int] = {}
        self.current_index: Optional[int] = None
        self.lock = asyncio.Lock()

    def transition(self, state: SessionState):
        if state != self.state:
            logger.debug(f"[driver] Session {self.state.value} -> {state.value}")
        self.state = state

    def __repr__(self):
        return f"<Session(url={self.url}, state={self.state.value}, seen={len(self.seen_ids)})>"


class DetailPage:
    """Text captured from a loaded detail view."""

    def __init__(self, body_text: str, blocks: List[str], url: Optional[str] = None):
        self.body_text = body_text
        self.blocks = blocks
        self.url = url

    def __repr__(self):
        return f"<DetailPage(blocks={len(self.blocks)}, chars={len(self.body_text)})>"


def replay_scroll_count(index: int) -> int:
    """Scrolls needed to bring the listing at index back into the DOM."""
    return max(2, math.ceil((index + 10) / LISTINGS_PER_SCROLL) + 1)


# Filter strategies, tried in order; each returns {clicked, text, method}
FILTER_EXACT_JS = """
(label) => {
    const pattern = new RegExp('^' + label + '\\\\s*\\\\(\\\\d+\\\\)$');
    for (const el of Array.from(document.querySelectorAll('*'))) {
        const text = (el.textContent || '').trim();
        if (!pattern.test(text)) continue;
        const checkbox = el.querySelector('input[type="checkbox"]') ||
            (el.closest('label') && el.closest('label').querySelector('input[type="checkbox"]'));
        if (checkbox && !checkbox.checked) {
            checkbox.click();
            return {clicked: true, text: text, method: 'checkbox'};
        }
        if (el.click) {
            el.click();
            return {clicked: true, text: text, method: 'element'};
        }
    }
    return {clicked: false};
}
"""

FILTER_LABEL_JS = """
(label) => {
    const pattern = new RegExp('^' + label + '\\\\s*\\\\(\\\\d+\\\\)$');
    for (const el of Array.from(document.querySelectorAll('label, span, a'))) {
        const text = (el.textContent || '').trim();
        if (!pattern.test(text)) continue;
        const checkbox = el.querySelector('input[type="checkbox"]') ||
            document.querySelector(`input[id="${el.getAttribute('for')}"]`);
        if (checkbox && !checkbox.checked) {
            checkbox.click();
            return {clicked: true, text: text, method: 'label-checkbox'};
        }
        el.click();
        return {clicked: true, text: text, method: 'label'};
    }
    return {clicked: false};
}
"""

FILTER_CATEGORY_JS = """
(label) => {
    const pattern = new RegExp('^' + label + '\\\\s*\\\\(\\\\d+\\\\)$');
    const section = Array.from(document.querySelectorAll('*')).find(
        el => (el.textContent || '').includes('Category'));
    if (!section) return {clicked: false};
    const match = Array.from(section.querySelectorAll('*')).find(
        el => pattern.test((el.textContent || '').trim()));
    if (!match) return {clicked: false};
    match.click();
    return {clicked: true, text: match.textContent.trim(), method: 'category-section'};
}
"""

FILTER_CHECKBOX_JS = """
(label) => {
    const pattern = new RegExp(label + '\\\\s*\\\\(\\\\d+\\\\)', 'i');
    for (const cb of Array.from(document.querySelectorAll('input[type="checkbox"]'))) {
        const owner = cb.closest('label') || document.querySelector(`label[for="${cb.id}"]`) || cb.parentElement;
        if (!owner) continue;
        const text = owner.textContent || '';
        if (pattern.test(text) && !text.includes('Director') && !cb.checked) {
            cb.click();
            return {clicked: true, text: text.trim(), method: 'checkbox-label'};
        }
    }
    return {clicked: false};
}
"""

SCROLL_METRICS_JS = """
(containerId) => {
    const c = document.getElementById(containerId);
    if (!c) return {found: false, scrollTop: window.scrollY, scrollHeight: document.body.scrollHeight};
    return {found: true, scrollTop: c.scrollTop, scrollHeight: c.scrollHeight, clientHeight: c.clientHeight};
}
"""

SCROLL_WHEEL_JS = """
(containerId) => {
    const c = document.getElementById(containerId);
    if (c) {
        c.focus();
        c.dispatchEvent(new WheelEvent('wheel', {deltaY: 1000, bubbles: true}));
    }
}
"""

SCROLL_STEP_JS = """
(containerId) => {
    const c = document.getElementById(containerId);
    if (c) c.scrollTop += 500;
}
"""

SCROLL_BOTTOM_JS = """
(containerId) => {
    const c = document.getElementById(containerId);
    if (c) c.scrollTo({top: c.scrollHeight});
    window.scrollTo(0, document.body.scrollHeight);
}
"""

SCROLL_LAST_ROW_JS = """
(prefix) => {
    const rows = document.querySelectorAll(`[id^="${prefix}"]`);
    if (rows.length > 0) rows[rows.length - 1].scrollIntoView({block: 'end'});
}
"""

CLICK_DETAIL_JS = """
([prefix, titleLinks, index]) => {
    if (typeof submitAction_win0 === 'function') {
        try {
            submitAction_win0(document.win0, `${prefix}$${index}`);
            return {success: true, method: 'row-action'};
        } catch (e) {}
    }
    const buttons = document.querySelectorAll(`[id^="${prefix}"]`);
    if (buttons[index]) {
        buttons[index].click();
        return {success: true, method: 'detail-link'};
    }
    const titles = document.querySelectorAll(titleLinks);
    if (titles[index]) {
        titles[index].click();
        return {success: true, method: 'title-link'};
    }
    return {success: false};
}
"""

RECLICK_DETAIL_JS = """
([prefix, index]) => {
    const btn = document.getElementById(`${prefix}$${index}`);
    if (btn) btn.click();
}
"""

DETAIL_BLOCKS_JS = """
(prefix) => Array.from(document.querySelectorAll(`[id^="${prefix}"]`)).map(el => (el.innerText || '').trim())
"""


class BrowserDriver:
    """Playwright driver for filter, scroll, detail and replay operations"""

    def __init__(self, settings: Optional[ScraperSettings] = None, selectors: Optional[Dict[str, Any]] = None):
        self.settings = settings or ScraperSettings()
        self.selectors = dict(DEFAULT_SELECTORS)
        self.selectors.update(selectors or {})
        self._separator = re.compile(self.selectors['listing_separator'])

    async def _sleep(self, ms: int):
        if ms > 0:
            await asyncio.sleep(ms / 1000)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def open_session(self, url: str) -> Session:
        """
        Launch a browser and load the search page.

        Raises:
            FetchError: if the browser cannot launch or the page cannot load
        """
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=self.settings.headless)
        except PlaywrightError as e:
            await playwright.stop()
            raise FetchError(f"Browser launch failed: {e}", url=url) from e

        page = await browser.new_page()
        await page.set_extra_http_headers(BROWSER_HEADERS)
        page.set_default_timeout(self.settings.navigation_timeout_ms)
        session = Session(page, url, browser=browser, playwright=playwright)

        try:
            logger.info(f"[driver] Loading {url}")
            await page.goto(url, wait_until='networkidle', timeout=self.settings.navigation_timeout_ms)
        except PlaywrightError as e:
            await self.capture_screenshot(session, 'load')
            await self.close_session(session)
            raise FetchError(f"Search page failed to load: {e}", url=url) from e

        await self._sleep(self.settings.page_load_delay_ms)
        return session

    async def close_session(self, session: Session):
        session.transition(SessionState.DONE)
        try:
            if session.browser:
                await session.browser.close()
        finally:
            if session.playwright:
                await session.playwright.stop()

    @asynccontextmanager
    async def session(self, url: str):
        """Async context manager around open_session/close_session."""
        session = await self.open_session(url)
        try:
            yield session
        except Exception:
            await self.capture_screenshot(session, 'error')
            raise
        finally:
            await self.close_session(session)

    async def capture_screenshot(self, session: Session, tag: str) -> Optional[str]:
        """Save a full-page screenshot for debugging; never raises."""
        path = f"{self.settings.screenshot_dir}/browser_{tag}_{hashlib.sha256(session.url.encode()).hexdigest()[:8]}.png"
        try:
            await session.page.screenshot(path=path, full_page=True)
            logger.info(f"[driver] Screenshot saved: {path}")
            return path
        except PlaywrightError as e:
            logger.debug(f"[driver] Failed to capture screenshot: {e}")
            return None

    # ------------------------------------------------------------------
    # Page reads
    # ------------------------------------------------------------------

    async def _body_text(self, session: Session) -> str:
        return await session.page.inner_text('body')

    async def _listing_count(self, session: Session) -> int:
        try:
            text = await self._body_text(session)
        except PlaywrightError:
            return 0
        return len(self._separator.split(text)) - 1

    async def get_total_count(self, session: Session) -> Optional[int]:
        """Total results reported by the page ("N jobs found"), if shown."""
        try:
            match = TOTAL_COUNT.search(await self._body_text(session))
        except PlaywrightError:
            return None
        return int(match.group(1)) if match else None

    # ------------------------------------------------------------------
    # Filter
    # ------------------------------------------------------------------

    async def apply_filter(self, session: Session, label: str) -> bool:
        """
        Apply a category filter such as "Nursing (387)".

        Strategies: exact label text (clicking its checkbox), label/span/
        anchor text, a "Category" section search, then a checkbox whose
        label mentions the category. Failure leaves results unfiltered.

        Returns:
            True if a strategy clicked the filter
        """
        async with session.lock:
            return await self._apply_filter(session, label)

    async def _apply_filter(self, session: Session, label: str) -> bool:
        session.filter_label = label
        escaped = re.escape(label)

        for script in (FILTER_EXACT_JS, FILTER_LABEL_JS, FILTER_CATEGORY_JS, FILTER_CHECKBOX_JS):
            try:
                result = await session.page.evaluate(script, escaped)
            except PlaywrightError as e:
                logger.debug(f"[driver] Filter strategy failed: {e}")
                continue
            if result and result.get('clicked'):
                logger.info(f"[driver] Filter applied: \"{result.get('text')}\" (method: {result.get('method')})")
                session.filter_applied = True
                session.transition(SessionState.FILTER_APPLIED)
                await self._sleep(self.settings.page_load_delay_ms)
                return True

        logger.warning(f"[driver] Could not apply filter '{label}', continuing with unfiltered results")
        session.filter_applied = False
        session.transition(SessionState.FILTER_APPLIED)
        return False

    # ------------------------------------------------------------------
    # Scrolling and collection
    # ------------------------------------------------------------------

    async def scroll_to_load_more(self, session: Session) -> bool:
        """
        Trigger the portal's infinite scroll.

        Returns:
            True if listings grew or the container grew/moved
        """
        async with session.lock:
            return await self._scroll_to_load_more(session)

    async def _scroll_to_load_more(self, session: Session) -> bool:
        page = session.page
        container = self.selectors['results_container']
        try:
            before_count = await self._listing_count(session)
            before = await page.evaluate(SCROLL_METRICS_JS, container)

            await page.evaluate(SCROLL_WHEEL_JS, container)
            await page.mouse.wheel(0, 2000)
            await self._sleep(500)
            for _ in range(3):
                await page.evaluate(SCROLL_STEP_JS, container)
                await self._sleep(300)
            await page.evaluate(SCROLL_BOTTOM_JS, container)
            await page.keyboard.press('End')
            await self._sleep(200)
            await page.keyboard.press('PageDown')
            await page.evaluate(SCROLL_LAST_ROW_JS, self.selectors['detail_button_prefix'])

            await self._sleep(SCROLL_SETTLE_MS)

            after_count = await self._listing_count(session)
            after = await page.evaluate(SCROLL_METRICS_JS, container)
        except PlaywrightError as e:
            logger.warning(f"[driver] Scroll error: {e}")
            return False

        if after_count > before_count:
            logger.info(f"[driver] Scrolled: {before_count} -> {after_count} listings")
            return True
        if after.get('scrollHeight', 0) > before.get('scrollHeight', 0):
            logger.info(f"[driver] Container expanded: {before.get('scrollHeight')} -> {after.get('scrollHeight')}px")
            return True
        if after.get('scrollTop', 0) > before.get('scrollTop', 0):
            logger.debug("[driver] Scroll position changed, content may still load")
            return True

        logger.info(f"[driver] No new content after scroll ({before_count} listings)")
        return False

    async def collect_listings(
        self,
        session: Session,
        parse_fn: Callable[[str], List[Any]],
        max_results: Optional[int] = None,
        max_scrolls: Optional[int] = None
    ) -> List[Any]:
        """
        Collect listings by repeatedly parsing and scrolling.

        Stops at max_results, at max_scrolls, or after STALL_THRESHOLD
        consecutive rounds that produce no unseen ids.

        Args:
            session: Open session, filter already applied
            parse_fn: Turns page body text into listings with a source_id
            max_results: Optional cap on listings returned
            max_scrolls: Optional cap on scroll rounds

        Returns:
            Newly seen listings in page order
        """
        max_scrolls = max_scrolls or DEFAULT_MAX_SCROLLS
        async with session.lock:
            session.transition(SessionState.COLLECTING)
            collected: List[Any] = []
            stalls = 0

            for round_number in range(1, max_scrolls + 1):
                try:
                    listings = parse_fn(await self._body_text(session))
                except PlaywrightError as e:
                    logger.warning(f"[driver] Could not read listings: {e}")
                    listings = []

                new_listings = []
                for listing in listings:
                    if listing.source_id and listing.source_id not in session.seen_ids:
                        session.seen_ids.add(listing.source_id)
                        new_listings.append(listing)

                if not new_listings:
                    stalls += 1
                    logger.info(f"[driver] Round {round_number}: no new listings ({stalls}/{STALL_THRESHOLD})")
                    if stalls >= STALL_THRESHOLD:
                        logger.info("[driver] Reached end of results")
                        break
                    await self._sleep(EMPTY_SCROLL_WAIT_MS)
                else:
                    stalls = 0
                    collected.extend(new_listings)
                    logger.info(f"[driver] Round {round_number}: +{len(new_listings)} listings (total {len(collected)})")
                    if max_results and len(collected) >= max_results:
                        collected = collected[:max_results]
                        break

                if await self._scroll_to_load_more(session):
                    await self._sleep(self.settings.between_pages_delay_ms)
                else:
                    await self._sleep(FAILED_SCROLL_WAIT_MS)

            session.transition(SessionState.COLLECTED)
            logger.info(f"[driver] Collected {len(collected)} unique listings")
            return collected

    # ------------------------------------------------------------------
    # Detail fetch and recovery
    # ------------------------------------------------------------------

    async def _detail_ready(self, session: Session) -> Dict[str, bool]:
        text = await self._body_text(session)
        is_search_page = all(marker in text for marker in self.selectors['search_page_markers'])
        has_detail = bool(READY_DUTIES.search(text)) and bool(READY_QUALIFICATIONS.search(text))
        return {'is_search_page': is_search_page, 'has_detail': has_detail}

    async def _row_index(self, session: Session, listing) -> int:
        """Row holding the listing's job id in the live result list; dom_index when not found."""
        fallback = listing.dom_index or 0
        try:
            text = await self._body_text(session)
        except PlaywrightError:
            return fallback

        job_id = re.compile(rf'\b{re.escape(listing.source_id)}\b')
        for i, block in enumerate(self._separator.split(text)[1:]):
            if job_id.search(block):
                if i != fallback:
                    logger.info(f"[driver] {listing.source_id} moved from index {fallback} to {i}")
                return i
        return fallback

    async def fetch_detail(self, session: Session, listing) -> Optional[DetailPage]:
        """
        Open a listing's detail view and capture its text.

        The row is found by the listing's job id, using dom_index only
        when the id is not visible.

        Returns:
            DetailPage, or None when the view never loaded (callers fall
            back to listing-level data)

        Raises:
            ExtractionError: if the loaded view shows a different job id
        """
        async with session.lock:
            session.transition(SessionState.DETAIL_FETCH)
            index = await self._row_index(session, listing)
            session.current_index = index
            prefix = self.selectors['detail_button_prefix']

            try:
                clicked = await session.page.evaluate(
                    CLICK_DETAIL_JS, [prefix, self.selectors['title_links'], index]
                )
                if not clicked or not clicked.get('success'):
                    logger.warning(f"[driver] Could not open detail for {listing.source_id} (index {index})")
                    return None
                logger.debug(f"[driver] Opened {listing.source_id} via {clicked.get('method')}")

                await self._sleep(self.settings.page_load_delay_ms)

                loaded = False
                reclicked = False
                for attempt in range(READY_POLLS):
                    state = await self._detail_ready(session)
                    if state['has_detail'] and not state['is_search_page']:
                        loaded = True
                        break
                    logger.info(f"[driver] Detail not ready for {listing.source_id} ({attempt + 1}/{READY_POLLS})")
                    if state['is_search_page'] and not reclicked:
                        await session.page.evaluate(RECLICK_DETAIL_JS, [prefix, index])
                        reclicked = True
                    await self._sleep(READY_POLL_WAIT_MS)

                if not loaded:
                    session.retry_counts[listing.source_id] = session.retry_counts.get(listing.source_id, 0) + 1
                    return None

                body_text = await self._body_text(session)
                shown = DETAIL_JOB_ID.search(body_text)
                if shown and shown.group(1) != listing.source_id:
                    session.retry_counts[listing.source_id] = session.retry_counts.get(listing.source_id, 0) + 1
                    raise ExtractionError(
                        f"Detail view for {listing.source_id} shows job {shown.group(1)} (index {index})"
                    )
                blocks = await session.page.evaluate(DETAIL_BLOCKS_JS, self.selectors['description_block_prefix'])
                return DetailPage(body_text, [b for b in (blocks or []) if b], url=session.page.url)

            except PlaywrightError as e:
                logger.warning(f"[driver] Detail fetch failed for {listing.source_id}: {e}")
                session.retry_counts[listing.source_id] = session.retry_counts.get(listing.source_id, 0) + 1
                return None

    async def replay_to(self, session: Session, index: int) -> bool:
        """
        Bring the result list back so the listing at index is present.

        Reloads the search page, re-applies the session's filter and
        scrolls replay_scroll_count(index) times. Calling it when the
        listing is already present changes nothing. An attempt whose
        filter could not be re-applied counts as failed.

        Returns:
            True if the listing at index is present in the filtered list
        """
        async with session.lock:
            if not session.filter_lost and await self._listing_count(session) > index:
                session.transition(SessionState.FILTER_APPLIED)
                return True

            session.transition(SessionState.RECOVERING)
            scrolls = replay_scroll_count(index)
            refilter = bool(session.filter_label) and (session.filter_applied or session.filter_lost)

            for attempt in range(1, MAX_REPLAY_ATTEMPTS + 1):
                try:
                    await session.page.goto(
                        session.url, wait_until='networkidle', timeout=self.settings.navigation_timeout_ms
                    )
                    await self._sleep(self.settings.between_pages_delay_ms)
                    if refilter:
                        if not await self._apply_filter(session, session.filter_label):
                            session.filter_lost = True
                            session.transition(SessionState.RECOVERING)
                            logger.warning(f"[driver] Replay attempt {attempt}: filter '{session.filter_label}' not re-applied")
                            continue
                        session.filter_lost = False
                    session.transition(SessionState.RECOVERING)

                    for _ in range(scrolls):
                        if await self._listing_count(session) > index:
                            break
                        await session.page.evaluate(SCROLL_BOTTOM_JS, self.selectors['results_container'])
                        await self._sleep(REPLAY_SCROLL_WAIT_MS)

                    if await self._listing_count(session) > index:
                        logger.info(f"[driver] Replayed to index {index} (attempt {attempt})")
                        session.transition(SessionState.FILTER_APPLIED)
                        return True
                except PlaywrightError as e:
                    logger.warning(f"[driver] Replay attempt {attempt} failed: {e}")

            logger.warning(f"[driver] Could not replay to index {index} after {MAX_REPLAY_ATTEMPTS} attempts")
            session.transition(SessionState.RECOVERING if session.filter_lost else SessionState.FILTER_APPLIED)
            return False
