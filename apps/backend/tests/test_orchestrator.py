"""
Tests for the run controller with a scripted connector and a mocked store.
"""

import pytest
from unittest.mock import MagicMock

from core.errors import ExtractionError, FetchError, PersistenceError
from crawler.plugins.base import SourceConnector
from orchestrator import RunController, RunResult, print_dry_run_summary, print_run_summary
from pipeline.canonical import RawListing

COMPLETE_DESCRIPTION = "Duties & Responsibilities:\n" + "Provide direct patient care. " * 30


class ScriptedConnector(SourceConnector):
    """Serves fixed pages of listings; page numbers are the cursor."""

    def __init__(self, config, pages, fail_at=None, detail_errors=()):
        super().__init__('scripted', config)
        self.pages = pages
        self.fail_at = fail_at
        self.detail_errors = set(detail_errors)
        self.detail_calls = []
        self.opened = False
        self.closed = False

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True

    async def list_page(self, cursor=None):
        index = cursor or 0
        if index == self.fail_at:
            raise FetchError("search endpoint unreachable", url="https://careers.example.org/search")
        next_cursor = index + 1 if index + 1 < len(self.pages) else None
        return self.pages[index], next_cursor

    async def fetch_detail(self, listing):
        self.detail_calls.append(listing.source_id)
        if listing.source_id in self.detail_errors:
            raise ExtractionError("detail layout not recognized")
        listing.update(raw_detail_text=f"Under general supervision, provides nursing care. {COMPLETE_DESCRIPTION}")
        listing.detail_fetched = True
        return listing

    def to_raw_fields(self, record):
        return None


def rn(source_id, title="Registered Nurse - ICU", **extras):
    return RawListing(source_id, title, location_text='Queens', **extras)


def status(action):
    return {'success': action in ('created', 'updated'), 'job_id': '1', 'action': action,
            'error': None if action in ('created', 'updated') else 'Job 1: boom', 'errors': []}


@pytest.fixture
def store():
    store = MagicMock()
    store.get_or_create_employer.return_value = {'id': 7, 'name': 'NYC Health and Hospitals',
                                                 'slug': 'nyc-health-hospitals'}
    store.get_existing_job.return_value = None
    return store


class TestDryRun:
    """Test dry runs."""

    @pytest.mark.asyncio
    async def test_dry_run_never_touches_store(self, peoplesoft_config, store):
        pages = [[
            rn('100001'),
            rn('100002', 'LPN Charge Nurse'),
            rn('100001'),
            rn('100003', source_url='javascript:void(0)'),
        ]]
        connector = ScriptedConnector(peoplesoft_config, pages)

        result = await RunController(peoplesoft_config, connector, store).run(dry_run=True)

        assert store.method_calls == []
        assert result.total == 4
        assert result.skipped == 2
        assert result.failed == 1
        assert [job.source_job_id for job in result.jobs] == ['100001']
        assert result.jobs[0].employer_id is None
        assert connector.opened and connector.closed

    @pytest.mark.asyncio
    async def test_dry_run_summary(self, peoplesoft_config, capsys):
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001'), rn('100004', 'Staff Nurse - NICU')]])
        result = await RunController(peoplesoft_config, connector).run(dry_run=True)

        print_dry_run_summary(result, sample_size=1)
        out = capsys.readouterr().out

        assert "DRY RUN: 2 valid jobs" in out
        assert "1. Registered Nurse - ICU" in out
        assert "Staff Nurse - NICU" not in out
        assert "Queens, NY: 2" in out
        assert "ICU: 1" in out and "NICU: 1" in out


class TestRun:
    """Test persisted runs."""

    @pytest.mark.asyncio
    async def test_counts(self, peoplesoft_config, store):
        store.upsert_job.side_effect = [status('created'), status('updated'), status('failed')]
        pages = [[rn('100001'), rn('100002', 'Patient Care Technician')], [rn('100003'), rn('100004')]]

        result = await RunController(peoplesoft_config, ScriptedConnector(peoplesoft_config, pages), store).run()

        assert (result.created, result.updated, result.skipped, result.failed) == (1, 1, 1, 1)
        assert result.total == 4
        assert result.details_fetched == 3
        assert result.errors == [{'source_job_id': '100004', 'stage': 'persist', 'error': 'Job 1: boom'}]
        upserted = store.upsert_job.call_args_list[0][0][0]
        assert upserted.employer_id == 7

    @pytest.mark.asyncio
    async def test_complete_description_reused(self, peoplesoft_config, store):
        store.get_existing_job.return_value = {'id': 1, 'slug': 'stored-slug', 'raw_description': COMPLETE_DESCRIPTION}
        store.upsert_job.return_value = status('updated')
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001')]])

        result = await RunController(peoplesoft_config, connector, store).run()

        assert connector.detail_calls == []
        assert result.details_reused == 1
        job = store.upsert_job.call_args[0][0]
        assert job.slug == 'stored-slug'
        assert job.raw_description == COMPLETE_DESCRIPTION

    @pytest.mark.asyncio
    async def test_reuse_keeps_stored_detail_fields(self, peoplesoft_config, store):
        stored_description = "Schedule: Night\n" + COMPLETE_DESCRIPTION
        store.get_existing_job.return_value = {
            'id': 1, 'slug': 'stored-slug', 'raw_description': stored_description,
            'description': stored_description, 'job_type': 'part-time', 'shift_type': 'night',
            'department': 'Critical Care', 'experience_level': 'senior',
            'salary_min': 48, 'salary_max': 62, 'salary_type': 'hourly',
            'salary_min_hourly': 48, 'salary_max_hourly': 62,
            'salary_min_annual': 99840, 'salary_max_annual': 128960,
        }
        store.upsert_job.return_value = status('updated')
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001')]])

        await RunController(peoplesoft_config, connector, store).run()

        assert connector.detail_calls == []
        job = store.upsert_job.call_args[0][0]
        assert (job.job_type, job.shift_type) == ('part-time', 'night')
        assert (job.salary_min, job.salary_max, job.salary_type) == (48, 62, 'hourly')
        assert job.salary_max_annual == 128960
        assert job.experience_level == 'senior'
        assert job.department == 'Critical Care'

    @pytest.mark.asyncio
    async def test_detail_failure_keeps_stored_description(self, peoplesoft_config, store):
        stored = "Registered Nurse for the ICU. Duties include patient assessment and care planning."
        store.get_existing_job.return_value = {
            'id': 1, 'slug': 'stored-slug', 'raw_description': stored, 'description': stored,
        }
        store.upsert_job.return_value = status('updated')
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001')]], detail_errors=['100001'])

        result = await RunController(peoplesoft_config, connector, store).run()

        assert connector.detail_calls == ['100001']
        assert result.errors[0]['stage'] == 'detail'
        job = store.upsert_job.call_args[0][0]
        assert job.raw_description == stored
        assert job.description == stored

    @pytest.mark.asyncio
    async def test_detail_error_falls_back_to_listing(self, peoplesoft_config, store):
        store.upsert_job.return_value = status('created')
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001')]], detail_errors=['100001'])

        result = await RunController(peoplesoft_config, connector, store).run()

        assert result.created == 1
        assert result.errors[0]['stage'] == 'detail'
        job = store.upsert_job.call_args[0][0]
        assert job.description.endswith("Apply now for this nursing opportunity.")

    @pytest.mark.asyncio
    async def test_first_page_failure_is_fatal(self, peoplesoft_config, store):
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001')]], fail_at=0)
        with pytest.raises(FetchError):
            await RunController(peoplesoft_config, connector, store).run()
        assert connector.closed

    @pytest.mark.asyncio
    async def test_later_page_failure_stops_pagination(self, peoplesoft_config, store):
        store.upsert_job.return_value = status('created')
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001')], [rn('100002')]], fail_at=1)

        result = await RunController(peoplesoft_config, connector, store).run()

        assert result.created == 1
        assert result.errors[0]['stage'] == 'list'

    @pytest.mark.asyncio
    async def test_employer_failure_counts_listings_failed(self, peoplesoft_config, store):
        store.get_or_create_employer.side_effect = PersistenceError("connection refused")
        connector = ScriptedConnector(peoplesoft_config, [[rn('100001'), rn('100002')]])

        result = await RunController(peoplesoft_config, connector, store).run()

        assert result.failed == 2
        store.upsert_job.assert_not_called()

    @pytest.mark.asyncio
    async def test_limits(self, peoplesoft_config, store):
        store.upsert_job.return_value = status('created')
        pages = [[rn('100001'), rn('100002')], [rn('100003')], [rn('100004')]]
        connector = ScriptedConnector(peoplesoft_config, pages)

        result = await RunController(peoplesoft_config, connector, store).run(max_pages=2, max_jobs=2)

        assert result.created == 2
        assert connector.max_pages == 2 and connector.max_jobs == 2

    def test_run_summary(self, capsys):
        result = RunResult()
        result.created, result.failed = 3, 1
        result.add_error('100004', 'persist', 'Job 100004: boom')

        print_run_summary(result)
        out = capsys.readouterr().out

        assert "Created: 3" in out
        assert "100004 [persist]: Job 100004: boom" in out
