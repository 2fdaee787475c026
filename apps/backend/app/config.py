"""
Scraper runtime settings.

Delays and timeouts are politeness/robustness policy, read from the
environment with defaults tuned for legacy career portals.
"""
import os
from typing import Dict, Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class ScraperSettings:
    """Delay/timeout settings shared by connectors and the browser driver"""

    def __init__(self, overrides: Optional[Dict[str, int]] = None):
        self.page_load_delay_ms = _env_int("SCRAPER_PAGE_LOAD_DELAY_MS", 5000)
        self.between_pages_delay_ms = _env_int("SCRAPER_BETWEEN_PAGES_DELAY_MS", 3000)
        self.between_jobs_delay_ms = _env_int("SCRAPER_BETWEEN_JOBS_DELAY_MS", 3000)
        self.navigation_timeout_ms = _env_int("SCRAPER_NAV_TIMEOUT_MS", 60000)
        self.request_timeout_s = _env_int("SCRAPER_REQUEST_TIMEOUT_S", 30)
        self.headless = os.getenv("SCRAPER_HEADLESS", "true").lower() == "true"
        self.screenshot_dir = os.getenv("SCRAPER_SCREENSHOT_DIR", "/tmp")

        # Per-employer overrides from config/employers.yaml
        for key, value in (overrides or {}).items():
            attr = f"{key}_ms" if hasattr(self, f"{key}_ms") else key
            if hasattr(self, attr):
                setattr(self, attr, value)

    def as_dict(self) -> Dict:
        return {
            'page_load_delay_ms': self.page_load_delay_ms,
            'between_pages_delay_ms': self.between_pages_delay_ms,
            'between_jobs_delay_ms': self.between_jobs_delay_ms,
            'navigation_timeout_ms': self.navigation_timeout_ms,
            'request_timeout_s': self.request_timeout_s,
            'headless': self.headless,
        }
