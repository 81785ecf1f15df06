"""HTTP access to upstream transit data sources."""

import logging
from typing import List, Optional, Sequence

import requests

from .config import OVERPASS_TIMEOUT, OVERPASS_URLS, REQUEST_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)


class TransitClient:
    """Fetches raw JSON, text and bytes from upstream sources."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        overpass_urls: Sequence[str] = OVERPASS_URLS,
        overpass_timeout: float = OVERPASS_TIMEOUT,
    ):
        """
        Initialize the client.

        Args:
            session: Optional requests session to reuse (one is created otherwise).
            timeout: Timeout in seconds for plain GET requests.
            overpass_urls: Overpass interpreter endpoints, tried in order.
            overpass_timeout: Timeout in seconds for Overpass queries.
        """
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.timeout = timeout
        self.overpass_urls = list(overpass_urls)
        self.overpass_timeout = overpass_timeout

    def _get(self, url: str) -> requests.Response:
        logger.debug(f"Fetching {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {url}: {e}")
            raise

    def get_json(self, url: str):
        """GET a URL and decode the JSON body."""
        return self._get(url).json()

    def get_bytes(self, url: str) -> bytes:
        """GET a URL and return the raw body."""
        return self._get(url).content

    def get_text(self, url: str) -> str:
        """GET a URL and return the body as UTF-8 text."""
        return self._get(url).content.decode("utf-8", errors="replace")

    def overpass(self, query: str) -> List[dict]:
        """
        Run an Overpass QL query, falling back through mirrors.

        Returns:
            The `elements` list of the JSON response.

        Raises:
            requests.RequestException: Every endpoint failed.
        """
        last_error: Optional[Exception] = None
        for url in self.overpass_urls:
            try:
                logger.debug(f"Querying Overpass at {url}")
                response = self.session.post(url, data={"data": query}, timeout=self.overpass_timeout)
                response.raise_for_status()
                return response.json().get("elements", [])
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Overpass endpoint {url} failed: {e}")
                last_error = e

        if isinstance(last_error, requests.RequestException):
            raise last_error
        raise requests.RequestException(f"All Overpass endpoints failed: {last_error}")

    def close(self) -> None:
        self.session.close()
