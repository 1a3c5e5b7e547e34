"""DataCite API Client for fetching DOI metadata."""

import logging
from typing import Any, Dict, Iterator, Optional

import requests
from requests.auth import HTTPBasicAuth

logger = logging.getLogger(__name__)


class DataCiteAPIError(Exception):
    """Base exception for DataCite API errors."""
    pass


class AuthenticationError(DataCiteAPIError):
    """Raised when authentication fails."""
    pass


class NetworkError(DataCiteAPIError):
    """Raised when network connection fails."""
    pass


class DataCiteClient:
    """Client for reading DOI records from the DataCite REST API v2."""

    PRODUCTION_ENDPOINT = "https://api.datacite.org"
    TEST_ENDPOINT = "https://api.test.datacite.org"
    PAGE_SIZE = 100  # Maximum page size supported by DataCite API
    TIMEOUT = 30  # Request timeout in seconds

    def __init__(self, username: str, password: str, use_test_api: bool = False):
        """
        Initialize DataCite API client.

        Args:
            username: DataCite username (client-id)
            password: DataCite password
            use_test_api: If True, use test API endpoint instead of production
        """
        self.username = username
        self.password = password
        self.base_url = self.TEST_ENDPOINT if use_test_api else self.PRODUCTION_ENDPOINT
        self.auth = HTTPBasicAuth(username, password)

        logger.info(f"DataCite client initialized for {'TEST' if use_test_api else 'PRODUCTION'} API")

    @classmethod
    def from_settings(cls, settings) -> 'DataCiteClient':
        return cls(settings.username, settings.password, settings.use_test_api)

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            return requests.get(
                url,
                auth=self.auth,
                params=params,
                timeout=self.TIMEOUT,
                headers={"Accept": "application/vnd.api+json"}
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout requesting {url}")
            raise NetworkError("The request to the DataCite API timed out. Please try again.") from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error: {e}")
            raise NetworkError("Connection to the DataCite API failed. Please check your internet connection.") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request exception: {e}")
            raise NetworkError(f"Network error while communicating with DataCite: {e}") from e

    def _check_response(self, response: requests.Response, context: str) -> Dict[str, Any]:
        """Raise for error status codes and return the parsed JSON body."""
        if response.status_code == 401:
            logger.error(f"Authentication failed for user: {self.username}")
            raise AuthenticationError("Authentication failed. Please check your username and password.")

        if response.status_code == 429:
            logger.error("Rate limit exceeded")
            raise DataCiteAPIError("Too many requests. Please wait a moment and try again.")

        if response.status_code != 200:
            logger.error(f"API error for {context}: {response.status_code} - {response.text}")
            raise DataCiteAPIError(f"DataCite API error (HTTP {response.status_code}): {response.text}")

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON response for {context}: {e}")
            raise DataCiteAPIError(f"Invalid response from the DataCite API for {context} (not valid JSON).") from e

    def get_doi_metadata(self, doi: str) -> Optional[Dict[str, Any]]:
        """
        Fetch complete metadata for a specific DOI.

        Args:
            doi: The DOI identifier (e.g., "10.5880/GFZ.1.1.2021.001")

        Returns:
            The DOI record (``data`` object of the response), or None if not found

        Raises:
            AuthenticationError: If credentials are invalid
            NetworkError: If connection to API fails
            DataCiteAPIError: For other API errors
        """
        logger.info(f"Fetching metadata for DOI: {doi}")
        response = self._get(f"{self.base_url}/dois/{doi}")

        if response.status_code == 404:
            logger.warning(f"DOI not found: {doi}")
            return None

        data = self._check_response(response, f"DOI {doi}")
        logger.info(f"Successfully fetched metadata for DOI {doi}")
        return data.get("data")

    def iter_dois(self, prefix: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        """
        Iterate over all DOI records of this client using cursor pagination.

        Args:
            prefix: Restrict to one DOI prefix (e.g. "10.5880")

        Yields:
            DOI records (each with ``id`` and ``attributes``)

        Raises:
            AuthenticationError: If credentials are invalid
            NetworkError: If connection to API fails
            DataCiteAPIError: For other API errors
        """
        # DataCite requires page[cursor]=1 for the first page
        url = f"{self.base_url}/dois"
        params: Optional[Dict[str, Any]] = {
            "client-id": self.username,
            "page[size]": self.PAGE_SIZE,
            "page[cursor]": 1,
        }
        if prefix:
            params["prefix"] = prefix

        page_count = 0
        total = 0
        while url:
            page_count += 1
            data = self._check_response(self._get(url, params), f"page {page_count}")

            records = data.get("data") or []
            for record in records:
                if isinstance(record, dict) and record.get("id"):
                    total += 1
                    yield record
                else:
                    logger.warning(f"Skipping malformed DOI entry on page {page_count}")

            logger.info(f"Fetched page {page_count}: {len(records)} DOIs (Total: {total})")

            # The next link carries all query parameters
            url = (data.get("links") or {}).get("next")
            params = None

        logger.info(f"Successfully fetched {total} DOIs in total")
