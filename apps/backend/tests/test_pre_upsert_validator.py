"""
Tests for pre-upsert validation.
"""

import pytest

from core.errors import ValidationError
from core.pre_upsert_validator import PreUpsertValidator, get_validator, validate_job_data


class TestValidateJob:
    """Test single-record validation."""

    def test_valid_job(self, valid_job):
        result = validate_job_data(valid_job)
        assert result == {'valid': True, 'errors': []}

    def test_missing_employer_slug(self, valid_job):
        valid_job['employer_slug'] = None
        result = validate_job_data(valid_job)
        assert result['valid'] is False
        assert "Missing required field: employer_slug" in result['errors']

    def test_blank_string_is_missing(self, valid_job):
        valid_job['city'] = '   '
        assert "Missing required field: city" in validate_job_data(valid_job)['errors']

    def test_state_length(self, valid_job):
        valid_job['state'] = 'NY'
        assert validate_job_data(valid_job)['valid'] is True

        valid_job['state'] = 'NYC'
        result = validate_job_data(valid_job)
        assert result['valid'] is False
        assert "State must be 2-letter code, got: NYC" in result['errors']

    def test_short_description(self, valid_job):
        valid_job['description'] = 'Too short.'
        result = validate_job_data(valid_job)
        assert "Description must be at least 50 characters, got: 10" in result['errors']

    def test_relative_source_url(self, valid_job):
        valid_job['source_url'] = '/jobs/123456'
        result = validate_job_data(valid_job)
        assert "Source URL must be absolute URL starting with http/https" in result['errors']

    def test_javascript_url(self, valid_job):
        valid_job['source_url'] = 'javascript:void(0)'
        assert validate_job_data(valid_job)['valid'] is False

    def test_errors_are_itemized(self, valid_job):
        valid_job['title'] = ''
        valid_job['state'] = 'New York'
        result = validate_job_data(valid_job)
        assert len(result['errors']) == 2

    def test_non_mapping(self):
        assert validate_job_data(None)['valid'] is False


class TestValidator:
    """Test the shared validator."""

    def test_singleton(self):
        assert get_validator() is get_validator()

    def test_ensure_valid(self, valid_job):
        assert PreUpsertValidator().ensure_valid(valid_job) is valid_job

        valid_job['state'] = 'NYC'
        with pytest.raises(ValidationError) as exc_info:
            PreUpsertValidator().ensure_valid(valid_job)
        assert exc_info.value.errors == ["State must be 2-letter code, got: NYC"]
