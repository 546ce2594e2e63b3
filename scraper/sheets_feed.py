"""Client for the published travel plans spreadsheet."""
import logging
import time

import requests

from processor.errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = (
    "https://docs.google.com/spreadsheets/d/e/"
    "2PACX-1vT9OJdZugEF4Snu9cAGK3OqLxXv9BJnbXL1ccvg9mhvIkaMR4qn2o7t7isYTSgW92GRec8CDbzCFbgY"
    "/pub?output=csv"
)


class SheetsFeedClient:
    """Fetches the raw CSV export of the travel plans sheet."""

    def __init__(
        self,
        feed_url: str = DEFAULT_FEED_URL,
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1
    ):
        """
        Initialize the feed client.

        Args:
            feed_url: URL of the published CSV export
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Number of attempts before giving up (default: 3)
            base_delay: Initial retry delay in seconds, doubled per attempt
        """
        self.feed_url = feed_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay

    def fetch_raw(self) -> str:
        """
        Fetch the raw feed text with retry logic.

        Returns:
            CSV text as published

        Raises:
            NetworkError: If all retry attempts fail
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching travel feed (attempt {attempt + 1}/{self.max_retries})")
                response = requests.get(self.feed_url, timeout=self.timeout)
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise NetworkError(f"Failed to fetch travel feed: {e}") from e
