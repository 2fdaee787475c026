"""
Detail-page section classification.

Legacy career portals render the posting body as a run of anonymous
text blocks whose order and numbering shift when optional sections are
missing. Blocks are therefore classified by what they say, never by
where they sit, and the classified sections are reassembled into a
marker-structured description.
"""

import re
import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

MIN_BLOCK_LENGTH = 30

# Section length caps (characters)
SECTION_LIMITS = {
    'duties': 5000,
    'qualifications': 3000,
    'benefits': 2000,
    'compensation': 1500,
    'about': 1500,
    'schedule': 1000,
    'preferences': 1000,
}

# Markers written into raw descriptions; also used to detect complete records
DUTIES_MARKER = "Duties & Responsibilities:"
QUALIFICATIONS_MARKER = "Minimum Qualifications:"
COMPLETE_DESCRIPTION_MIN_LENGTH = 500


class SectionKind(Enum):
    """Kinds of detail-page sections"""
    DUTIES = "duties"
    QUALIFICATIONS = "qualifications"
    BENEFITS = "benefits"
    SCHEDULE = "schedule"
    ABOUT = "about"
    PREFERENCES = "preferences"
    COMPENSATION = "compensation"


class DetailSection:
    """A classified block of detail-page text."""

    def __init__(self, kind: SectionKind, text: str):
        self.kind = kind
        self.text = text

    def to_dict(self) -> Dict:
        return {'kind': self.kind.value, 'text': self.text}

    def __eq__(self, other):
        return isinstance(other, DetailSection) and self.kind == other.kind and self.text == other.text

    def __repr__(self):
        return f"DetailSection(kind={self.kind.value}, chars={len(self.text)})"


QUALIFICATION_HINTS = re.compile(
    r'valid.*(?:license|registration)|current.*(?:license|registration)|certification.*(?:BLS|ACLS|required)'
    r'|holds.*(?:obtains|certification)|years?\s*(?:of\s*)?experience\s*as\s*a|ability\s*to\s*travel'
    r'|demonstrated\s*commitment',
    re.I
)
QUALIFICATIONS = re.compile(
    r'licensed.*registered.*nurse|bachelor.*degree.*nursing|minimum.*qualifications|education.*required'
    r'|years.*experience.*nursing|RN\s*license|currently\s*registered\s*to\s*practice',
    re.I
)
DUTIES_HEADINGS = re.compile(r'purpose\s*of\s*position|examples\s*of\s*typical\s*tasks', re.I)
DUTIES = re.compile(
    r'purpose\s*of\s*position|examples\s*of\s*typical\s*tasks|essential\s*functions'
    r'|under\s*(?:the\s*)?(?:general\s*)?(?:direction|supervision)',
    re.I
)
PREFERENCES = re.compile(
    r'department\s*preferences?|experience\s*in\s*long\s*term\s*care|preferred\s*qualifications',
    re.I
)
PREFERENCE_YEARS = re.compile(
    r'^(?:five|six|three|two|one|\d+)\s*(?:to\s*(?:five|six|three|two|one|\d+)\s*)?years?\s*(?:of\s*)?.*experience',
    re.I
)
BENEFITS = re.compile(
    r'benefits\s*package|retirement|health\s*benefits|vacation|paid\s*time|dental|vision|pension|401k'
    r'|competitive\s*benefits',
    re.I
)
COMPENSATION = re.compile(
    r'differential|additional.*compensation|education.*differential|salary.*addition|BSN.*differential',
    re.I
)
SCHEDULE = re.compile(
    r'\d+:\d+\s*[AP]\.?M|work\s*shifts?|hours\s*per\s*week|on-call|rotating\s*weekends|alternating\s*weekends',
    re.I
)
ABOUT = re.compile(
    r'about\s*(?:us|our|the\s*(?:hospital|facility|organization))|public\s*hospital\s*system|rich\s*legacy'
    r'|teaching\s*hospital|health\s*system\s*(?:is|serves)|our\s*mission',
    re.I
)
NUMBERED_LIST = re.compile(r'^\d+\.\s+', re.M)


def classify_section(text: Optional[str], about_pattern: Optional[str] = None) -> Optional[DetailSection]:
    """
    Classify a free-text block by its content.

    Checked most specific first: qualifications, department preferences,
    duties, benefits, additional compensation, schedule, about.

    Args:
        text: Block text
        about_pattern: Extra regex identifying the employer's "about" blurb

    Returns:
        DetailSection, or None for short or unrecognized blocks
    """
    if not text:
        return None
    text = text.strip()
    if len(text) < MIN_BLOCK_LENGTH:
        return None

    numbered = bool(NUMBERED_LIST.search(text))
    qualification_like = bool(QUALIFICATION_HINTS.search(text))

    if (QUALIFICATIONS.search(text) and not re.search(r'purpose\s*of\s*position', text, re.I)) or \
            (numbered and qualification_like and not DUTIES_HEADINGS.search(text)):
        return DetailSection(SectionKind.QUALIFICATIONS, text)

    if (PREFERENCES.search(text) or PREFERENCE_YEARS.search(text)) and len(text) < 500:
        return DetailSection(SectionKind.PREFERENCES, text)

    if DUTIES.search(text) or (numbered and not qualification_like):
        return DetailSection(SectionKind.DUTIES, text)

    if BENEFITS.search(text):
        return DetailSection(SectionKind.BENEFITS, text)

    if COMPENSATION.search(text):
        return DetailSection(SectionKind.COMPENSATION, text)

    if SCHEDULE.search(text):
        return DetailSection(SectionKind.SCHEDULE, text)

    if ABOUT.search(text) or (about_pattern and re.search(about_pattern, text, re.I)):
        return DetailSection(SectionKind.ABOUT, text)

    return None


def classify_blocks(blocks: Iterable[str], about_pattern: Optional[str] = None) -> Dict[SectionKind, str]:
    """Classify blocks and merge repeated kinds in page order."""
    merged: Dict[SectionKind, List[str]] = {}
    for block in blocks:
        section = classify_section(block, about_pattern)
        if section is None:
            continue
        merged.setdefault(section.kind, []).append(section.text)

    result = {}
    for kind, texts in merged.items():
        joined = "\n\n".join(texts)
        result[kind] = joined[:SECTION_LIMITS[kind.value]]
    logger.debug(f"[sections] Classified {sum(len(t) for t in merged.values())} blocks into {[k.value for k in result]}")
    return result


# Heading-based fallback when the DOM blocks could not be classified
HEADING_PATTERNS = {
    SectionKind.DUTIES: re.compile(
        r'Duties\s*(?:&|and)?\s*Responsibilities\s*([\s\S]*?)'
        r'(?=Minimum\s*Qualifications|Requirements|Knowledge|Skills|Education|How\s*To\s*Apply|$)',
        re.I
    ),
    SectionKind.QUALIFICATIONS: re.compile(
        r'Minimum\s*Qualifications\s*([\s\S]*?)(?=Additional\s*Salary|How\s*To\s*Apply|Benefits|About|Department|$)',
        re.I
    ),
    SectionKind.BENEFITS: re.compile(r'Benefits\s*([\s\S]*?)(?=How\s*To\s*Apply|$)', re.I),
    SectionKind.COMPENSATION: re.compile(
        r'Additional\s*Salary\s*Compensation\s*([\s\S]*?)(?=Benefits|How\s*To\s*Apply|$)',
        re.I
    ),
    SectionKind.SCHEDULE: re.compile(
        r'Work\s*Shifts?\s*([\s\S]*?)(?=Duties|About|Minimum\s*Qualifications|$)',
        re.I
    ),
}


def extract_sections_from_text(body_text: Optional[str]) -> Dict[SectionKind, str]:
    """Extract sections by their visible headings from a flat page body."""
    result: Dict[SectionKind, str] = {}
    if not body_text:
        return result

    for kind, pattern in HEADING_PATTERNS.items():
        match = pattern.search(body_text)
        if match and len(match.group(1).strip()) > MIN_BLOCK_LENGTH:
            result[kind] = match.group(1).strip()[:SECTION_LIMITS[kind.value]]
    return result


def _merge_schedule(value: Optional[str], section: Optional[str]) -> Optional[str]:
    if not section:
        return value
    if not value or value in section:
        return section
    return f"{value}\n{section}"


def build_description(fields: Dict[str, Optional[str]], sections: Dict[SectionKind, str]) -> str:
    """
    Assemble a marker-structured description.

    Args:
        fields: Listing-level values: facility, schedule, pay, location, department
        sections: Classified sections; SCHEDULE text is merged under "Schedule:"

    Returns:
        Description text with "Label:" markers, empty when nothing is known
    """
    parts = []

    for label, key in (('Facility', 'facility'), ('Schedule', 'schedule'), ('Pay', 'pay'),
                       ('Location', 'location'), ('Department', 'department')):
        value = fields.get(key)
        if key == 'schedule':
            value = _merge_schedule(value, sections.get(SectionKind.SCHEDULE))
        if value:
            parts.append(f"{label}: {value}")

    for marker, kind in (
        ("About the Facility:", SectionKind.ABOUT),
        (DUTIES_MARKER, SectionKind.DUTIES),
        (QUALIFICATIONS_MARKER, SectionKind.QUALIFICATIONS),
        ("Preferred Requirements:", SectionKind.PREFERENCES),
        ("Additional Salary Compensation:", SectionKind.COMPENSATION),
        ("Benefits:", SectionKind.BENEFITS),
    ):
        text = sections.get(kind)
        if text:
            parts.append(f"{marker}\n{text}")

    return "\n\n".join(parts).strip()


def has_complete_description(raw_description: Optional[str]) -> bool:
    """True when a stored raw description already holds a full detail fetch."""
    if not raw_description or len(raw_description) <= COMPLETE_DESCRIPTION_MIN_LENGTH:
        return False
    return DUTIES_MARKER in raw_description or QUALIFICATIONS_MARKER in raw_description
