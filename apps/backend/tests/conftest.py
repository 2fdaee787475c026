"""
Shared fixtures for backend tests.
"""

import pytest
from datetime import datetime, timezone

from core.employer_config import EmployerConfig


@pytest.fixture
def valid_job():
    """A job record that passes pre-upsert validation."""
    return {
        'title': 'Registered Nurse - Emergency Department',
        'slug': 'registered-nurse-emergency-department-brooklyn-ny-123456',
        'source_job_id': '123456',
        'employer_id': 7,
        'city': 'Brooklyn',
        'state': 'NY',
        'location': 'Brooklyn, NY',
        'job_type': 'full-time',
        'specialty': 'ER',
        'description': 'Provide direct patient care in a busy Level 1 trauma emergency department.',
        'raw_description': None,
        'source_url': 'https://careers.example.org/jobs/123456',
        'scraped_at': datetime(2025, 3, 10, tzinfo=timezone.utc),
        'employer_name': 'NYC Health and Hospitals',
        'employer_slug': 'nyc-health-hospitals',
        'career_page_url': 'https://careers.example.org/search',
    }


@pytest.fixture
def peoplesoft_config():
    return EmployerConfig.from_dict('nyc-health-hospitals', {
        'name': 'NYC Health and Hospitals',
        'career_page_url': 'https://careers.example.org/search',
        'connector': 'peoplesoft',
        'ats_platform': 'peoplesoft',
        'default_state': 'NY',
        'default_city': 'New York',
        'filter_label': 'Nursing',
        'job_url_template': 'https://careers.example.org/job?JobOpeningId={job_id}',
        'facility_name': 'NYC Health + Hospitals',
        'city_aliases': {'Manhattan': 'New York', 'brooklyn': 'Brooklyn', 'queens': 'Queens'},
        'role_filter': True,
        'delays': {'page_load_delay': 0, 'between_pages_delay': 0, 'between_jobs_delay': 0},
    })


@pytest.fixture
def workday_config():
    return EmployerConfig.from_dict('centene', {
        'name': 'Centene',
        'career_page_url': 'https://centene.wd5.myworkdayjobs.com/Centene_External',
        'connector': 'workday',
        'ats_platform': 'workday',
        'role_filter': False,
        'default_job_type': 'full-time',
        'api': {
            'tenant': 'centene',
            'site': 'Centene_External',
            'subdomain': 'wd5',
            'page_size': 2,
            'facet': 'jobFamilyGroup',
            'facet_values': ['abc123'],
        },
        'city_states': {'Tampa': 'FL', 'St. Louis': 'MO'},
        'delays': {'between_pages_delay': 0, 'between_jobs_delay': 0},
    })
