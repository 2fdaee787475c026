"""
Employer configuration loader.
Reads config/employers.yaml and resolves a per-employer connector config.
"""
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, List, Optional, Any

from core.errors import ConfigError
from core.normalize import generate_employer_slug

logger = logging.getLogger(__name__)

SUPPORTED_CONNECTORS = ('workday', 'peoplesoft')

OPTIONAL_KEYS = (
    'name', 'career_page_url', 'ats_platform', 'default_state', 'default_city',
    'default_job_type', 'filter_label', 'job_url_template', 'facility_name',
    'city_aliases', 'city_states', 'role_filter', 'include_patterns',
    'exclude_patterns', 'api', 'delays', 'selectors',
)

# Cache for loaded config, keyed by path
_config_cache: Dict[str, Dict] = {}


def _default_config_path() -> Path:
    return Path(os.getenv(
        'EMPLOYER_CONFIG_PATH',
        str(Path(__file__).parent.parent / 'config' / 'employers.yaml')
    ))


class EmployerConfig:
    """Resolved configuration for one employer"""

    def __init__(
        self,
        slug: str,
        name: str,
        career_page_url: str,
        connector: str,
        ats_platform: Optional[str] = None,
        default_state: Optional[str] = None,
        default_city: Optional[str] = None,
        default_job_type: Optional[str] = None,
        filter_label: Optional[str] = None,
        job_url_template: Optional[str] = None,
        facility_name: Optional[str] = None,
        city_aliases: Optional[Dict[str, str]] = None,
        city_states: Optional[Dict[str, str]] = None,
        role_filter: bool = True,
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None,
        api: Optional[Dict[str, Any]] = None,
        delays: Optional[Dict[str, int]] = None,
        selectors: Optional[Dict[str, Any]] = None
    ):
        self.slug = slug
        self.name = name
        self.career_page_url = career_page_url
        self.connector = connector
        self.ats_platform = ats_platform or 'custom'
        self.default_state = default_state
        self.default_city = default_city
        self.default_job_type = default_job_type
        self.filter_label = filter_label
        self.job_url_template = job_url_template
        self.facility_name = facility_name or name
        self.city_aliases = {k.lower(): v for k, v in (city_aliases or {}).items()}
        self.city_states = city_states or {}
        self.role_filter = role_filter
        self.include_patterns = include_patterns
        self.exclude_patterns = exclude_patterns
        self.api = api or {}
        self.delays = delays or {}
        self.selectors = selectors or {}

    @classmethod
    def from_dict(cls, slug: str, data: Dict[str, Any]) -> 'EmployerConfig':
        """
        Build a config from a YAML entry.

        Raises:
            ConfigError: if required keys are missing or the connector is unknown
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Employer config for '{slug}' must be a mapping")

        missing = [key for key in ('name', 'career_page_url', 'connector') if not data.get(key)]
        if missing:
            raise ConfigError(f"Employer config for '{slug}' missing: {', '.join(missing)}")

        connector = str(data['connector']).lower()
        if connector not in SUPPORTED_CONNECTORS:
            raise ConfigError(f"Employer '{slug}' uses unknown connector: {connector}")

        if connector == 'workday':
            api = data.get('api') or {}
            missing_api = [key for key in ('tenant', 'site', 'subdomain') if not api.get(key)]
            if missing_api:
                raise ConfigError(f"Workday employer '{slug}' missing api settings: {', '.join(missing_api)}")
            rpm = api.get('requests_per_minute')
            if rpm is not None and (not isinstance(rpm, int) or rpm < 1):
                raise ConfigError(f"Workday employer '{slug}' has invalid requests_per_minute: {rpm!r}")

        kwargs = {k: v for k, v in data.items() if k in OPTIONAL_KEYS}
        return cls(slug=slug, connector=connector, **kwargs)

    def to_employer_record(self) -> Dict[str, Any]:
        """Fields used for employer get-or-create."""
        return {
            'name': self.name,
            'slug': self.slug or generate_employer_slug(self.name),
            'career_page_url': self.career_page_url,
            'ats_platform': self.ats_platform,
        }

    def __repr__(self):
        return f"<EmployerConfig(slug={self.slug}, connector={self.connector})>"


def load_employer_configs(path: Optional[Path] = None) -> Dict:
    """Load the employers YAML file (cached per path)."""
    config_path = Path(path) if path else _default_config_path()
    key = str(config_path)

    if key in _config_cache:
        return _config_cache[key]

    if not config_path.exists():
        raise ConfigError(f"Employer config file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid employer config {config_path}: {e}") from e

    employers = data.get('employers', {}) if isinstance(data, dict) else {}
    logger.info(f"[employer_config] Loaded {len(employers)} employer configs from {config_path}")
    _config_cache[key] = employers
    return employers


def get_employer_config(slug: str, path: Optional[Path] = None) -> EmployerConfig:
    """
    Get the configuration for an employer slug.

    Raises:
        ConfigError: for unknown slugs or malformed entries
    """
    employers = load_employer_configs(path)
    if slug not in employers:
        known = ', '.join(sorted(employers)) or 'none'
        raise ConfigError(f"Unknown employer slug: {slug} (configured: {known})")
    return EmployerConfig.from_dict(slug, employers[slug])


def list_employer_slugs(path: Optional[Path] = None) -> List[str]:
    return sorted(load_employer_configs(path))
