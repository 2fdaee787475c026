"""
Pre-Upsert Validation Module
Validates normalized jobs before database insertion to prevent bad data.

Validations:
- Missing required fields
- State code shape
- Minimum description length
- Source URL format

validate_job() never raises; ensure_valid() raises ValidationError.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from core.errors import ValidationError

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 50


class PreUpsertValidator:
    """
    Validates canonical job records before database insertion.
    """

    REQUIRED_FIELDS = [
        'title',
        'location',
        'city',
        'state',
        'description',
        'source_url',
        'employer_name',
        'employer_slug',
        'career_page_url',
    ]

    VALID_URL_SCHEMES = ['http', 'https']
    INVALID_URL_PATTERNS = [
        r'^#',
        r'^javascript:',
        r'^mailto:',
        r'^tel:',
        r'^data:',
    ]

    def validate_job(self, job: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a single job.

        Args:
            job: Job dictionary to validate

        Returns:
            Dict with 'valid' (bool) and 'errors' (itemized list of reasons)
        """
        errors: List[str] = []

        if not isinstance(job, dict):
            return {'valid': False, 'errors': ['Job record must be a mapping']}

        for field in self.REQUIRED_FIELDS:
            value = job.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(f"Missing required field: {field}")

        state = job.get('state')
        if state and len(str(state)) != 2:
            errors.append(f"State must be 2-letter code, got: {state}")

        description = job.get('description')
        if description and len(str(description)) < MIN_DESCRIPTION_LENGTH:
            errors.append(
                f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters, got: {len(str(description))}"
            )

        source_url = job.get('source_url')
        if source_url:
            url_valid, url_error = self._validate_url(str(source_url))
            if not url_valid:
                errors.append(url_error)

        return {'valid': not errors, 'errors': errors}

    def ensure_valid(self, job: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a job and return it unchanged.

        Raises:
            ValidationError: carrying every reason the record is invalid
        """
        result = self.validate_job(job)
        if not result['valid']:
            raise ValidationError(result['errors'])
        return job

    def _validate_url(self, url: str) -> Tuple[bool, Optional[str]]:
        """
        Validate URL format.

        Args:
            url: URL string to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        for pattern in self.INVALID_URL_PATTERNS:
            if re.match(pattern, url.strip(), re.IGNORECASE):
                return False, "Source URL must be absolute URL starting with http/https"

        try:
            parsed = urlparse(url.strip())
        except ValueError as e:
            return False, f"URL parsing error: {str(e)}"

        if parsed.scheme not in self.VALID_URL_SCHEMES or not parsed.netloc:
            return False, "Source URL must be absolute URL starting with http/https"

        if len(url) > 2000:
            return False, f"URL too long (max 2000 chars): {len(url)} chars"

        return True, None


# Global instance (lazy initialization)
_validator: Optional[PreUpsertValidator] = None


def get_validator() -> PreUpsertValidator:
    """Get or create the global validator instance"""
    global _validator

    if _validator is None:
        _validator = PreUpsertValidator()

    return _validator


def validate_job_data(job: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a job record; returns {'valid': bool, 'errors': [...]}."""
    return get_validator().validate_job(job)
