"""
Tests for rule-based specialty, experience-level and RN-role detection.
"""

import pytest

from core.job_categorizer import (
    JobCategorizer,
    detect_specialty,
    detect_experience_level,
    is_rn_role,
)


class TestDetectSpecialty:
    """Test specialty detection."""

    def test_float_override_beats_title_unit(self):
        assert detect_specialty("Float Pool RN - ICU") == "Float Pool"

    def test_float_override_from_description(self):
        assert detect_specialty("Registered Nurse - ICU", "Rotates across all specialties") == "Float Pool"

    def test_title_rules(self):
        assert detect_specialty("Staff RN - Labor & Delivery") == "Labor & Delivery"
        assert detect_specialty("Registered Nurse NICU") == "NICU"
        assert detect_specialty("RN Emergency Department") == "ER"
        assert detect_specialty("Med-Surg Nurse") == "Med-Surg"

    def test_title_wins_over_description(self):
        assert detect_specialty("Oncology RN", "Float to the emergency department when needed") == "Float Pool"
        assert detect_specialty("Oncology RN", "Supports the emergency department") == "Oncology"

    def test_description_rules(self):
        assert detect_specialty("Registered Nurse", "Join our intensive care unit team") == "ICU"

    def test_default(self):
        assert detect_specialty("Registered Nurse", "Great team") == "General Nursing"
        assert detect_specialty(None) == "General Nursing"


class TestDetectExperienceLevel:
    """Test experience level detection."""

    def test_senior_title(self):
        assert detect_experience_level("Nurse Manager - Telemetry") == "senior"

    def test_new_grad_title(self):
        assert detect_experience_level("New Grad RN Residency") == "new-grad"

    def test_new_grad_phrase(self):
        assert detect_experience_level("Staff RN", "New graduates welcome to apply.") == "new-grad"

    def test_new_grad_phrase_near_years_is_unclear(self):
        description = "New graduates considered; 2 years experience preferred."
        assert detect_experience_level("Staff RN", description) is None

    def test_required_years(self):
        assert detect_experience_level("Staff RN", "Requires 3 years of nursing experience.") == "experienced"
        assert detect_experience_level("Staff RN", "Must have 6 years experience.") == "senior"
        assert detect_experience_level("Staff RN", "Requires 1 year experience.") == "new-grad"

    def test_preferred_years_ignored(self):
        assert detect_experience_level("Staff RN", "Requires 3 years experience preferred.") is None

    def test_minimum_required(self):
        assert detect_experience_level("Staff RN", "Minimum 2 years experience required.") == "experienced"

    def test_out_of_range_years(self):
        assert detect_experience_level("Staff RN", "Requires 25 years experience.") is None

    def test_no_signal(self):
        assert detect_experience_level("Registered Nurse", "Join our team.") is None


class TestIsRnRole:
    """Test RN role filtering."""

    @pytest.mark.parametrize("title", [
        "Registered Nurse - ICU",
        "Staff Nurse",
        "RN Charge Nurse",
        "Nurse Practitioner - Cardiology",
        "Director of Nursing",
    ])
    def test_included(self, title):
        assert is_rn_role(title) is True

    @pytest.mark.parametrize("title", [
        "LPN Charge Nurse",
        "Patient Care Technician",
        "CNA - Nights",
        "Physician Assistant",
        "Pharmacy Technician",
    ])
    def test_excluded(self, title):
        assert is_rn_role(title) is False

    def test_reason_on_rejection(self):
        accepted, reason = JobCategorizer.is_rn_role("LPN Charge Nurse")
        assert accepted is False
        assert 'lpn' in reason

    def test_no_match(self):
        accepted, reason = JobCategorizer.is_rn_role("Food Service Worker")
        assert accepted is False
        assert reason == 'no RN pattern match'

    def test_custom_patterns(self):
        assert is_rn_role("Care Manager", include_patterns=[r'care manager']) is True
        assert is_rn_role("RN Case Manager", exclude_patterns=[r'case manager']) is False
