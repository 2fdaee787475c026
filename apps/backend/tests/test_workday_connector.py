"""
Tests for the Workday API connector against a mocked transport.
"""

import json
import httpx
import pytest
from unittest.mock import MagicMock

from core.errors import FetchError
from core.net import HTTPClient
from crawler.plugins.workday import WorkdayConnector, parse_location
from orchestrator import RunController
from pipeline.canonical import RawListing

BASE = "https://centene.wd5.myworkdayjobs.com"

PAGES = {
    0: {
        'total': 3,
        'jobPostings': [
            {
                'title': 'Registered Nurse - Care Management',
                'externalPath': '/job/Tampa/Registered-Nurse---Care-Management_1556789',
                'locationsText': 'Tampa',
                'postedOn': 'Posted Today',
                'bulletFields': ['1556789'],
            },
            {
                'title': 'Case Manager RN',
                'externalPath': '/job/Remote-MO/Case-Manager-RN_R1234567-1',
                'locationsText': '2 Locations',
                'postedOn': 'Posted 3 Days Ago',
            },
        ],
    },
    2: {
        'total': 0,
        'jobPostings': [
            {
                'title': 'Utilization Review Nurse',
                'externalPath': '/job/St-Louis/Utilization-Review-Nurse_1559999',
                'locationsText': 'St. Louis, MO',
            },
        ],
    },
}

DETAIL = {
    'jobPostingInfo': {
        'title': 'Registered Nurse - Care Management',
        'jobDescription': (
            '<p><b>Position Purpose:</b> Perform care management for members.</p>'
            '<ul><li>Current RN license in good standing</li></ul>'
            '<p>Pay Range: $65,000.00 - $110,000.00 per year</p>'
        ),
        'timeType': 'Full time',
        'externalUrl': f"{BASE}/en-US/Centene_External/job/Tampa/Registered-Nurse---Care-Management_1556789",
    }
}


class FakeWorkday:
    """Records requests and serves canned search/detail responses."""

    def __init__(self, detail_status=200):
        self.requests = []
        self.detail_status = detail_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == 'POST':
            payload = json.loads(request.content)
            return httpx.Response(200, json=PAGES.get(payload['offset'], {'jobPostings': []}))
        if self.detail_status != 200:
            return httpx.Response(self.detail_status)
        return httpx.Response(200, json=DETAIL)


def make_connector(config, fake):
    client = HTTPClient(transport=httpx.MockTransport(fake))
    return WorkdayConnector(config, client=client)


class TestParseLocation:
    """Test locationsText parsing."""

    def test_city_state(self):
        assert parse_location("Rochester, NY") == {'city': 'Rochester', 'state': 'NY', 'is_remote': False}

    def test_remote_state(self):
        assert parse_location("Remote-CA") == {'city': 'Remote', 'state': 'CA', 'is_remote': True}

    def test_multiple_locations(self):
        assert parse_location("3 Locations") == {'city': None, 'state': None, 'is_remote': True}

    def test_city_prefix_with_table(self):
        result = parse_location("Tampa-5401 W Kennedy Blvd", {'Tampa': 'FL'})
        assert (result['city'], result['state']) == ('Tampa', 'FL')

    def test_empty(self):
        assert parse_location(None)['city'] is None


class TestListPage:
    """Test paged search."""

    @pytest.mark.asyncio
    async def test_pages_until_total(self, workday_config):
        fake = FakeWorkday()
        async with make_connector(workday_config, fake) as connector:
            first, cursor = await connector.list_page(None)
            assert cursor == 2
            second, cursor = await connector.list_page(cursor)
            assert cursor is None

        assert connector.total == 3
        assert [listing.source_id for listing in first + second] == ['1556789', 'R1234567', '1559999']

        payload = json.loads(fake.requests[0].content)
        assert payload == {
            'appliedFacets': {'jobFamilyGroup': ['abc123']},
            'limit': 2,
            'offset': 0,
            'searchText': '',
        }
        assert str(fake.requests[0].url) == f"{BASE}/wday/cxs/centene/Centene_External/jobs"

    @pytest.mark.asyncio
    async def test_listing_fields(self, workday_config):
        async with make_connector(workday_config, FakeWorkday()) as connector:
            listings, _ = await connector.list_page(None)

        tampa, remote = listings
        assert (tampa.city, tampa.state) == ('Tampa', 'FL')
        assert tampa.posted_text == 'Posted Today'
        assert tampa.source_url == f"{BASE}/en-US/Centene_External/job/Tampa/Registered-Nurse---Care-Management_1556789"
        assert (remote.city, remote.state, remote.is_remote) == ('Remote', 'MO', True)

    @pytest.mark.asyncio
    async def test_empty_page_ends(self, workday_config):
        async with make_connector(workday_config, FakeWorkday()) as connector:
            listings, cursor = await connector.list_page(40)
        assert listings == []
        assert cursor is None

    def test_posting_without_path_skipped(self, workday_config):
        connector = WorkdayConnector(workday_config)
        assert connector.to_raw_fields({'title': 'Registered Nurse'}) is None


class TestFetchDetail:
    """Test detail enrichment."""

    @pytest.mark.asyncio
    async def test_detail_merged(self, workday_config):
        fake = FakeWorkday()
        async with make_connector(workday_config, fake) as connector:
            listings, _ = await connector.list_page(None)
            listing = await connector.fetch_detail(listings[0])

        assert listing.detail_fetched is True
        assert 'Current RN license in good standing' in listing.raw_detail_text
        assert '<' not in listing.raw_detail_text
        assert listing.salary_text == '$65,000.00 - $110,000.00 per year'
        assert listing.job_type_text == 'Full time'
        assert str(fake.requests[-1].url) == (
            f"{BASE}/wday/cxs/centene/Centene_External/job/Tampa/Registered-Nurse---Care-Management_1556789"
        )

    @pytest.mark.asyncio
    async def test_detail_failure_raises(self, workday_config):
        listing = RawListing('1556789', 'Registered Nurse', external_path='/job/Tampa/RN_1556789')
        async with make_connector(workday_config, FakeWorkday(detail_status=404)) as connector:
            with pytest.raises(FetchError) as exc_info:
                await connector.fetch_detail(listing)

        assert exc_info.value.status_code == 404
        assert listing.detail_fetched is False
        assert listing.raw_detail_text is None


class TestThrottle:
    """Test the configured request rate."""

    def test_rate_limiter_from_config(self, workday_config):
        workday_config.api['requests_per_minute'] = 30
        connector = WorkdayConnector(workday_config)
        assert connector.client.rate_limiter.requests_per_minute == 30

    def test_unthrottled_by_default(self, workday_config):
        assert WorkdayConnector(workday_config).client.rate_limiter is None


class TestRunAccounting:
    """Test detail failures as seen by a run."""

    @pytest.mark.asyncio
    async def test_detail_failures_recorded(self, workday_config):
        store = MagicMock()
        store.get_or_create_employer.return_value = {'id': 7}
        store.get_existing_job.return_value = None
        store.upsert_job.return_value = {'success': True, 'job_id': 1, 'action': 'created', 'error': None}
        connector = make_connector(workday_config, FakeWorkday(detail_status=404))

        result = await RunController(workday_config, connector, store).run()

        assert result.details_fetched == 0
        assert [error['stage'] for error in result.errors] == ['detail'] * 3
        assert all('HTTP 404' in error['error'] for error in result.errors)
