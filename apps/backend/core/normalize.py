"""
Field normalization module for scraped job postings.

Normalizes raw listing fields to the canonical job schema:
- US state names/abbreviations to 2-letter codes
- City capitalization
- ZIP codes, job types, shift types
- Salary parsing with hourly/annual conversion
- Stable URL slugs for jobs and employers

Every function here is pure: no I/O. The clock is only read for the
slug fallback suffix and for relative posted dates without a reference time.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timedelta, timezone
import re
import time

from dateutil import parser as date_parser


HOURS_PER_YEAR = 2080

# Full state names -> USPS code
STATE_NAMES = {
    'alabama': 'AL', 'alaska': 'AK', 'arizona': 'AZ', 'arkansas': 'AR',
    'california': 'CA', 'colorado': 'CO', 'connecticut': 'CT', 'delaware': 'DE',
    'florida': 'FL', 'georgia': 'GA', 'hawaii': 'HI', 'idaho': 'ID',
    'illinois': 'IL', 'indiana': 'IN', 'iowa': 'IA', 'kansas': 'KS',
    'kentucky': 'KY', 'louisiana': 'LA', 'maine': 'ME', 'maryland': 'MD',
    'massachusetts': 'MA', 'michigan': 'MI', 'minnesota': 'MN', 'mississippi': 'MS',
    'missouri': 'MO', 'montana': 'MT', 'nebraska': 'NE', 'nevada': 'NV',
    'new hampshire': 'NH', 'new jersey': 'NJ', 'new mexico': 'NM', 'new york': 'NY',
    'north carolina': 'NC', 'north dakota': 'ND', 'ohio': 'OH', 'oklahoma': 'OK',
    'oregon': 'OR', 'pennsylvania': 'PA', 'rhode island': 'RI', 'south carolina': 'SC',
    'south dakota': 'SD', 'tennessee': 'TN', 'texas': 'TX', 'utah': 'UT',
    'vermont': 'VT', 'virginia': 'VA', 'washington': 'WA', 'west virginia': 'WV',
    'wisconsin': 'WI', 'wyoming': 'WY', 'district of columbia': 'DC',
}

# Common non-USPS abbreviations seen on job boards
STATE_ABBREVIATIONS = {
    'calif': 'CA', 'cal': 'CA', 'conn': 'CT', 'del': 'DE', 'fla': 'FL',
    'ill': 'IL', 'ind': 'IN', 'kan': 'KS', 'ken': 'KY',
    'mass': 'MA', 'mich': 'MI', 'minn': 'MN', 'miss': 'MS',
    'neb': 'NE', 'nev': 'NV', 'ore': 'OR',
    'tenn': 'TN', 'tex': 'TX', 'wash': 'WA',
    'wva': 'WV', 'wisc': 'WI', 'wyo': 'WY',
}

STATE_CODES = {code: name.title() for name, code in STATE_NAMES.items()}
STATE_CODES['DC'] = 'District of Columbia'

CITY_PREFIXES = {
    'st': 'St.',
    'ft': 'Ft.',
    'mt': 'Mt.',
}

JOB_TYPE_SYNONYMS = {
    'full-time': 'full-time',
    'fulltime': 'full-time',
    'full time': 'full-time',
    'ft': 'full-time',
    'f/t': 'full-time',
    'f.t.': 'full-time',
    'part-time': 'part-time',
    'parttime': 'part-time',
    'part time': 'part-time',
    'pt': 'part-time',
    'p/t': 'part-time',
    'p.t.': 'part-time',
    'prn': 'per-diem',
    'per diem': 'per-diem',
    'per-diem': 'per-diem',
    'perdiem': 'per-diem',
    'contract': 'contract',
    'temporary': 'contract',
    'temp': 'contract',
    'seasonal': 'contract',
}

SHIFT_PATTERNS = [
    ('rotating', re.compile(r'\brotating\b', re.I)),
    ('variable', re.compile(r'\bvariable\b|\bvaries\b', re.I)),
    ('night', re.compile(r'\bnights?\b|\bovernight\b|\bnoc\b', re.I)),
    ('evening', re.compile(r'\bevenings?\b', re.I)),
    ('day', re.compile(r'\bdays?\b', re.I)),
]

SALARY_PATTERNS = [
    re.compile(
        r'(?:Compensation\s+Range|Pay\s+Range|Salary\s+Range|Compensation|Pay|Salary)[:\s]+'
        r'(?:USD\s+)?\$?([\d,]+(?:\.\d+)?)\s*(?:-|–|—|to)\s*\$?([\d,]+(?:\.\d+)?)',
        re.I
    ),
    re.compile(r'Hire\s*In\s*Rate\s*\$?([\d,]+(?:\.\d{2})?)', re.I),
    re.compile(r'\$([\d,]+(?:\.\d+)?)\s*(?:-|–|—|to)\s*\$?([\d,]+(?:\.\d+)?)'),
]


def normalize_state(state: Optional[str]) -> Optional[str]:
    """
    Normalize a US state name or abbreviation to its 2-letter code.

    Args:
        state: Raw state (e.g., "Ohio", "ohio", "OH", "Calif")

    Returns:
        Uppercase 2-letter code, or None for empty input or fewer than two
        letters. Unknown values fall back to their first two letters uppercased.
    """
    if not state or not isinstance(state, str):
        return None

    normalized = state.strip().lower()
    if not normalized:
        return None

    if len(normalized) == 2 and normalized.isalpha():
        return normalized.upper()

    if normalized in STATE_NAMES:
        return STATE_NAMES[normalized]
    if normalized in STATE_ABBREVIATIONS:
        return STATE_ABBREVIATIONS[normalized]

    # Last resort
    letters = re.sub(r'[^a-z]', '', normalized)
    return letters[:2].upper() if len(letters) >= 2 else None


def normalize_city(city: Optional[str]) -> Optional[str]:
    """
    Normalize city capitalization.

    "st"/"ft"/"mt" expand to "St."/"Ft."/"Mt."; every other word
    (including suffixes like Heights, Beach, Haven) is capitalized.
    """
    if not city or not isinstance(city, str):
        return None

    words = city.strip().split()
    if not words:
        return None

    result = []
    for word in words:
        lower = word.lower()
        if lower in CITY_PREFIXES:
            result.append(CITY_PREFIXES[lower])
        else:
            result.append(word[:1].upper() + word[1:].lower())
    return ' '.join(result)


def normalize_zip(zip_code: Optional[Any]) -> Optional[str]:
    """Return the first 5 digits of a ZIP code, or None if fewer than 5."""
    if zip_code is None:
        return None

    digits = re.sub(r'\D', '', str(zip_code))
    if len(digits) < 5:
        return None
    return digits[:5]


def normalize_job_type(job_type: Optional[str]) -> Optional[str]:
    """
    Normalize employment type.

    Valid values: full-time, part-time, per-diem, contract

    Args:
        job_type: Raw type string (e.g., "PRN", "F/T", "Full Time")

    Returns:
        Canonical job type or None if the value is not recognized
    """
    if not job_type or not isinstance(job_type, str):
        return None

    return JOB_TYPE_SYNONYMS.get(job_type.strip().lower())


def normalize_shift_type(shift: Optional[str]) -> Optional[str]:
    """Map free-text shift descriptions to day/night/evening/rotating/variable."""
    if not shift or not isinstance(shift, str):
        return None

    for shift_type, pattern in SHIFT_PATTERNS:
        if pattern.search(shift):
            return shift_type
    return None


def _to_amount(raw: Optional[str]) -> Optional[float]:
    if not raw:
        return None
    try:
        return float(raw.replace(',', ''))
    except ValueError:
        return None


def parse_salary(text: Optional[str], unit_hint: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Parse a salary range out of free text.

    Recognizes "Salary Range $X - $Y", "Pay Range: $X - $Y per year",
    "Hire In Rate $X" and bare "$X - $Y" ranges. The unit comes from
    unit_hint, then keywords in the text, then magnitude (> 500 is annual).

    Args:
        text: Text containing the salary
        unit_hint: Optional unit from a structured field ("Hour", "Annual", ...)

    Returns:
        Dict with salary_min, salary_max, salary_type and the derived
        hourly/annual pairs, or None if no plausible amount was found
    """
    if not text or not isinstance(text, str):
        return None

    salary_min = salary_max = None
    matched = None
    for pattern in SALARY_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        low = _to_amount(match.group(1))
        high = _to_amount(match.group(2)) if match.lastindex and match.lastindex >= 2 else low
        # Ignore stray numbers like "$1 - $2"
        if low is None or low <= 10:
            continue
        salary_min, salary_max = low, high if high is not None else low
        matched = match
        break

    if salary_min is None:
        return None
    if salary_max < salary_min:
        salary_min, salary_max = salary_max, salary_min

    hint = (unit_hint or '').lower()
    context = text[matched.start():matched.end() + 40].lower()
    if re.search(r'hour', hint) or re.search(r'per\s*hour|hourly|/\s*hr\b', context):
        salary_type = 'hourly'
    elif re.search(r'year|annual', hint) or re.search(r'per\s*year|annual|/\s*yr\b', context):
        salary_type = 'annual'
    else:
        salary_type = 'annual' if salary_min > 500 else 'hourly'

    if salary_type == 'hourly':
        return {
            'salary_min': round(salary_min),
            'salary_max': round(salary_max),
            'salary_type': 'hourly',
            'salary_min_hourly': round(salary_min),
            'salary_max_hourly': round(salary_max),
            'salary_min_annual': round(salary_min * HOURS_PER_YEAR),
            'salary_max_annual': round(salary_max * HOURS_PER_YEAR),
        }
    return {
        'salary_min': round(salary_min),
        'salary_max': round(salary_max),
        'salary_type': 'annual',
        'salary_min_hourly': round(salary_min / HOURS_PER_YEAR),
        'salary_max_hourly': round(salary_max / HOURS_PER_YEAR),
        'salary_min_annual': round(salary_min),
        'salary_max_annual': round(salary_max),
    }


def _slug_part(value: str) -> str:
    value = re.sub(r'[^a-z0-9]+', '-', value.lower())
    return re.sub(r'-+', '-', value).strip('-')


def generate_job_slug(
    title: Optional[str],
    city: Optional[str],
    state: Optional[str],
    source_id: Optional[Any] = None
) -> str:
    """
    Generate a URL slug for a job.

    Bracketed/braced fragments (leaked markup such as "[Night Shift]" or
    "{color: red}") are dropped. Output is deterministic for a fixed input
    tuple when source_id is given; without one a time-derived suffix is used.

    Returns:
        Slug of at most 100 characters with no leading, trailing or
        consecutive hyphens
    """
    clean_title = (title or '').lower()
    clean_title = re.sub(r'\[[^\]]*\]', '', clean_title)
    clean_title = re.sub(r'\{[^}]*\}', '', clean_title)
    clean_title = _slug_part(clean_title)[:50].strip('-')

    clean_city = _slug_part(city or '')[:50].strip('-')
    clean_state = _slug_part(state or '')

    if source_id is not None and str(source_id).strip():
        suffix = re.sub(r'[^a-z0-9]', '', str(source_id).lower())
    else:
        suffix = str(int(time.time() * 1000))[-6:]

    parts = [p for p in (clean_title, clean_city, clean_state, suffix) if p]
    slug = re.sub(r'-+', '-', '-'.join(parts)).strip('-')
    return slug[:100].strip('-')


def generate_employer_slug(name: Optional[str]) -> Optional[str]:
    """Generate a URL slug for an employer name (e.g., "cleveland-clinic")."""
    if not name:
        return None
    return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')


def get_state_full_name(code: Optional[str]) -> Optional[str]:
    """Return the full state name for a 2-letter code."""
    if not code:
        return None
    return STATE_CODES.get(code.strip().upper())


def get_state_code(name: Optional[str]) -> Optional[str]:
    """Return the 2-letter code for a full state name, or None if unknown."""
    if not name:
        return None
    return STATE_NAMES.get(name.strip().lower())


def parse_posted_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a posted date from listing text.

    Handles relative forms ("Posted Today", "Posted 3 Days Ago",
    "Posted 30+ Days Ago") and absolute dates ("01/15/2025").

    Returns:
        Timezone-aware datetime, or None if the text has no date
    """
    if not text or not isinstance(text, str):
        return None

    now = now or datetime.now(timezone.utc)
    lowered = text.strip().lower()

    if 'today' in lowered:
        return now
    if 'yesterday' in lowered:
        return now - timedelta(days=1)

    days_match = re.search(r'(\d+)\+?\s*days?\s*ago', lowered)
    if days_match:
        return now - timedelta(days=int(days_match.group(1)))

    date_match = re.search(r'\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2}', text)
    candidate = date_match.group(0) if date_match else text
    try:
        parsed = date_parser.parse(candidate, fuzzy=True)
    except (ValueError, OverflowError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
