"""
Rule-based job categorization for nursing postings.

Provides:
- Specialty detection (float/multi-specialty override, then title, then full text)
- Conservative experience-level detection (prefers None over a wrong guess)
- RN role filtering with explicit include/exclude patterns
"""
import re
import logging
from typing import Optional, List, Tuple
from enum import Enum

logger = logging.getLogger(__name__)


class ExperienceLevel(Enum):
    """Standardized experience levels"""
    NEW_GRAD = "new-grad"
    EXPERIENCED = "experienced"
    SENIOR = "senior"


FLOAT_POOL = "Float Pool"
GENERAL_NURSING = "General Nursing"

# Override tier: a float / all-units role wins over any unit named elsewhere
FLOAT_PHRASES = [
    'float', 'floating', 'all specialties', 'all-specialties', 'all specialities',
    'all speciality', 'all specialty', 'multi-specialty', 'multiple specialties',
    'various specialties',
]

# Format: (specialty, substrings, regexes). Order matters: specific before generic.
TITLE_SPECIALTY_RULES: List[Tuple[str, List[str], List[str]]] = [
    ('Labor & Delivery', ['labor and delivery', 'labor & delivery', 'l&d', 'l & d'], [r'\bl\s*&\s*d\b']),
    ('Maternity', ['maternity', 'postpartum', 'mother baby', 'newborn nursery'], []),
    ('NICU', ['nicu', 'neonatal intensive care'], []),
    ('PACU', ['pacu', 'post-anesthesia', 'post anesthesia', 'recovery room'], []),
    # OR only from the title; descriptions mention "the operating room" too often
    ('OR', ['operating room', 'perioperative', 'or nurse'], [r'\bor\s+registered\s+nurse', r'\bor\s+rn\b']),
    ('Progressive Care', ['progressive care', 'stepdown', 'step down', 'step-down', 'pcu'], []),
    ('ICU', ['intensive care', 'icu'], []),
    ('ER', ['emergency', 'er nurse'], [r'\ber\s+rn\b']),
    ('Radiology', ['radiology'], []),
    ('Oncology', ['oncology', 'cancer'], []),
    ('Cardiac', ['cardiac', 'cardiology'], []),
    ('Telemetry', ['telemetry'], []),
    ('Med-Surg', ['med-surg', 'medical surgical', 'med surg', 'medsurg'], []),
    ('Pediatrics', ['pediatric', 'peds'], []),
    ('Geriatrics', ['geriatric'], []),
    ('Mental Health', ['mental health', 'psychiatric', 'psych', 'behavioral health'], []),
    ('Rehabilitation', ['rehab'], []),
    ('Ambulatory', ['ambulatory'], []),
    ('Home Care', ['home care', 'homecare'], []),
    ('Home Health', ['home health'], []),
    ('Hospice', ['hospice', 'palliative'], []),
    ('Travel', ['travel'], []),
]

# ER/ICU come first here: an ER posting mentioning "NICU transfers" is still ER
TEXT_SPECIALTY_RULES: List[Tuple[str, List[str], List[str]]] = [
    ('ER', ['emergency room', 'emergency department', 'emergency dept', 'emergency nursing'], []),
    ('ICU', ['intensive care unit', 'intensive care', 'icu', 'critical care unit'], []),
    ('Labor & Delivery', ['labor and delivery', 'labor & delivery'], [r'\bl\s*&\s*d\b']),
    ('Maternity', ['maternity', 'postpartum', 'newborn nursery'], []),
    ('NICU', ['nicu', 'neonatal intensive care'], []),
    ('PACU', ['pacu', 'post-anesthesia', 'recovery room'], []),
    ('Progressive Care', ['progressive care', 'stepdown', 'step down', 'pcu'], []),
    ('Radiology', ['radiology'], []),
    ('Oncology', ['oncology', 'cancer care'], []),
    ('Cardiac', ['cardiac', 'cardiology'], []),
    ('Telemetry', ['telemetry'], []),
    ('Med-Surg', ['med-surg', 'medical surgical', 'med surg'], []),
    ('Pediatrics', ['pediatric'], []),
    ('Geriatrics', ['geriatric'], []),
    ('Mental Health', ['mental health', 'psychiatric', 'behavioral health'], []),
    ('Rehabilitation', ['rehab'], []),
    ('Ambulatory', ['ambulatory'], []),
    ('Home Care', ['home care', 'homecare'], []),
    ('Home Health', ['home health'], []),
    ('Hospice', ['hospice', 'palliative'], []),
    ('Travel', ['travel'], []),
]

SENIOR_TITLE_KEYWORDS = [
    'senior', 'sr.', 'lead rn', 'lead nurse', 'manager', 'supervisor', 'director',
    'chief', 'head nurse', 'nurse manager', 'clinical coordinator', 'charge nurse',
]

NEW_GRAD_TITLE_KEYWORDS = [
    'new grad', 'new graduate', 'new-grad', 'entry level', 'entry-level',
    'graduate nurse', 'gn ', 'newly licensed',
]

NEW_GRAD_TEXT_PHRASES = [
    'new grad', 'new graduate', 'new-grad', 'no experience required',
    'no prior experience required', 'newly licensed rn', 'new rn graduate',
    'graduate nurse',
]

YEARS_OF_EXPERIENCE = re.compile(r'\d+\s*years?\s+(?:of\s+)?experience', re.I)

REQUIRED_YEARS = re.compile(
    r'\b(?:requires?|must\s+have|needed)\s+(?:a\s+minimum\s+of\s+)?(\d+)[\s\+\-]?\s*years?\s+'
    r'(?:of\s+)?(?:rn\s+)?(?:nursing\s+)?experience\b',
    re.I
)

MINIMUM_REQUIRED_YEARS = re.compile(
    r'\bminimum\s+(?:of\s+)?(\d+)[\s\+\-]?\s*years?\s+(?:of\s+)?(?:rn\s+)?(?:nursing\s+)?'
    r'experience\s+(?:required|needed|necessary)\b',
    re.I
)

RN_EXCLUDE_PATTERNS = [
    r'\blpn\b',
    r'\blvn\b',
    r'\bcna\b',
    r'\bpatient care (tech|assistant|aide|associate)\b',
    r'\bnursing assistant\b',
    r'\bnurse aide\b',
    r'\bhealth aide\b',
    r'\bmedical assistant\b',
    r'\bsurgical tech',
    r'\bradiol.*tech',
    r'\bpharmac',
    r'\bsocial worker',
    r'\bphysician\b',
    r'\bphysician assistant\b',
    r'\bpa\-c\b',
]

RN_INCLUDE_PATTERNS = [
    r'\brn\b',
    r'\bregistered nurse\b',
    r'\bstaff nurse\b',
    r'\bcharge nurse\b',
    r'\bnurse manager\b',
    r'\bdirector.*nurs',
    r'\bassistant director.*nurs',
    r'\bnurse supervisor\b',
    r'\bnurse coordinator\b',
    r'\bnurse educator\b',
    r'\bclinical nurse\b',
    r'\bnurse practitioner\b',
    r'\bnp\b',
    r'\baprn\b',
]


def _matches_rule(text: str, phrases: List[str], patterns: List[str]) -> bool:
    if any(phrase in text for phrase in phrases):
        return True
    return any(re.search(pattern, text, re.I) for pattern in patterns)


def _bucket_years(years: int) -> Optional[str]:
    # 1 / 2-4 / 5-20; anything else is left unclassified
    if years == 1:
        return ExperienceLevel.NEW_GRAD.value
    if 2 <= years < 5:
        return ExperienceLevel.EXPERIENCED.value
    if 5 <= years <= 20:
        return ExperienceLevel.SENIOR.value
    return None


class JobCategorizer:
    """
    Rule-based categorizer for nursing job postings.

    All methods are static and deterministic; they only look at the
    title and description strings passed in.
    """

    @staticmethod
    def detect_specialty(title: Optional[str], description: Optional[str] = None) -> str:
        """
        Detect the unit specialty of a posting.

        Priority:
        1. Float / multi-specialty phrases (title, then full text) -> Float Pool
        2. Title rules, most specific first
        3. Full-text rules
        4. General Nursing

        Args:
            title: Job title
            description: Job description

        Returns:
            Specialty name, never None
        """
        title_lower = (title or '').lower()
        text = f"{title_lower} {(description or '').lower()}"

        if any(phrase in title_lower for phrase in FLOAT_PHRASES):
            return FLOAT_POOL
        if any(phrase in text for phrase in FLOAT_PHRASES):
            return FLOAT_POOL

        for specialty, phrases, patterns in TITLE_SPECIALTY_RULES:
            if _matches_rule(title_lower, phrases, patterns):
                return specialty

        for specialty, phrases, patterns in TEXT_SPECIALTY_RULES:
            if _matches_rule(text, phrases, patterns):
                return specialty

        return GENERAL_NURSING

    @staticmethod
    def detect_experience_level(title: Optional[str], description: Optional[str] = None) -> Optional[str]:
        """
        Detect experience level only from unambiguous signals.

        - Leadership/seniority keywords in the title -> senior
        - New-grad phrases -> new-grad, unless a years-of-experience
          phrase appears near the match
        - "requires N years" style phrasing (never "preferred") is
          bucketed 1 -> new-grad, 2-4 -> experienced, 5-20 -> senior

        Returns:
            'new-grad', 'experienced', 'senior', or None when unclear
        """
        title_lower = (title or '').lower()
        text = f"{title_lower} {(description or '').lower()}"

        if any(keyword in title_lower for keyword in SENIOR_TITLE_KEYWORDS):
            return ExperienceLevel.SENIOR.value

        if any(keyword in title_lower for keyword in NEW_GRAD_TITLE_KEYWORDS):
            return ExperienceLevel.NEW_GRAD.value

        positions = [text.find(phrase) for phrase in NEW_GRAD_TEXT_PHRASES if phrase in text]
        if positions:
            index = min(positions)
            window = text[max(0, index - 50):index + 100]
            if not YEARS_OF_EXPERIENCE.search(window):
                return ExperienceLevel.NEW_GRAD.value
            logger.debug("[categorizer] New-grad phrase next to years requirement, leaving unclassified")

        match = REQUIRED_YEARS.search(text)
        if match:
            window = text[max(0, match.start() - 30):match.start() + 50]
            if 'preferred' not in window and 'preferably' not in window:
                level = _bucket_years(int(match.group(1)))
                if level:
                    return level

        match = MINIMUM_REQUIRED_YEARS.search(text)
        if match:
            level = _bucket_years(int(match.group(1)))
            if level:
                return level

        return None

    @staticmethod
    def is_rn_role(
        title: Optional[str],
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None
    ) -> Tuple[bool, Optional[str]]:
        """
        Decide whether a title is a registered-nurse role.

        Exclusions are checked first so "LPN Charge Nurse" stays out.

        Args:
            title: Job title
            include_patterns: Regexes overriding RN_INCLUDE_PATTERNS
            exclude_patterns: Regexes overriding RN_EXCLUDE_PATTERNS

        Returns:
            Tuple of (is_rn, reason); reason is set when the title is rejected
        """
        if not title:
            return False, 'empty title'

        for pattern in exclude_patterns if exclude_patterns is not None else RN_EXCLUDE_PATTERNS:
            if re.search(pattern, title, re.I):
                return False, f"excluded pattern: {pattern}"

        for pattern in include_patterns if include_patterns is not None else RN_INCLUDE_PATTERNS:
            if re.search(pattern, title, re.I):
                return True, None

        return False, 'no RN pattern match'


def detect_specialty(title: Optional[str], description: Optional[str] = None) -> str:
    return JobCategorizer.detect_specialty(title, description)


def detect_experience_level(title: Optional[str], description: Optional[str] = None) -> Optional[str]:
    return JobCategorizer.detect_experience_level(title, description)


def is_rn_role(title: Optional[str], include_patterns: Optional[List[str]] = None,
               exclude_patterns: Optional[List[str]] = None) -> bool:
    """Convenience wrapper returning only the decision."""
    is_rn, _ = JobCategorizer.is_rn_role(title, include_patterns, exclude_patterns)
    return is_rn
