"""Unit tests for SheetsFeedClient."""
import pytest
import responses
from requests.exceptions import RequestException, Timeout

from processor.errors import NetworkError
from scraper.sheets_feed import SheetsFeedClient

FEED_URL = "https://docs.example.com/spreadsheets/d/e/test-sheet/pub?output=csv"


class TestSheetsFeedClient:
    """Test cases for SheetsFeedClient class."""

    @responses.activate
    def test_fetch_raw_success(self, sample_feed):
        """Test successful feed fetching."""
        responses.add(
            responses.GET,
            FEED_URL,
            body=sample_feed,
            status=200,
            content_type='text/csv; charset=utf-8'
        )

        client = SheetsFeedClient(feed_url=FEED_URL, timeout=30, base_delay=0)
        raw = client.fetch_raw()

        assert raw == sample_feed
        assert len(responses.calls) == 1

    @responses.activate
    def test_fetch_raw_with_retry_success(self, sample_feed):
        """Test retry logic succeeds after initial failures."""
        responses.add(responses.GET, FEED_URL, body="Server Error", status=500)
        responses.add(responses.GET, FEED_URL, body="Server Error", status=503)
        responses.add(responses.GET, FEED_URL, body=sample_feed, status=200)

        client = SheetsFeedClient(feed_url=FEED_URL, base_delay=0)
        raw = client.fetch_raw()

        assert raw == sample_feed
        assert len(responses.calls) == 3

    @responses.activate
    def test_fetch_raw_all_retries_fail(self):
        """Test that NetworkError is raised when all retries fail."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body="Server Error", status=500)

        client = SheetsFeedClient(feed_url=FEED_URL, base_delay=0)

        with pytest.raises(NetworkError) as exc_info:
            client.fetch_raw()

        assert isinstance(exc_info.value.__cause__, RequestException)
        assert len(responses.calls) == 3

    @responses.activate
    def test_fetch_raw_timeout(self):
        """Test timeout handling."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body=Timeout("Request timed out"))

        client = SheetsFeedClient(feed_url=FEED_URL, base_delay=0)

        with pytest.raises(NetworkError) as exc_info:
            client.fetch_raw()

        assert isinstance(exc_info.value.__cause__, Timeout)
        assert len(responses.calls) == 3

    @responses.activate
    def test_fetch_raw_single_attempt(self):
        """Test that max_retries bounds the number of requests."""
        responses.add(responses.GET, FEED_URL, body="Not Found", status=404)

        client = SheetsFeedClient(feed_url=FEED_URL, max_retries=1, base_delay=0)

        with pytest.raises(NetworkError):
            client.fetch_raw()

        assert len(responses.calls) == 1

    def test_max_retries_is_at_least_one(self):
        client = SheetsFeedClient(feed_url=FEED_URL, max_retries=0)

        assert client.max_retries == 1
