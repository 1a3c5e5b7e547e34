"""
ROR (Research Organization Registry) lookup client.

Resolves organization names from ROR identifiers. Lookup failures never
raise to the caller of ``resolve_organization_name``; they are logged and
yield None, leaving it to the caller to keep the name it already has.
"""

import logging
import re
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class RorAPIError(Exception):
    """Raised when the ROR API returns an unusable response."""
    pass


# Bare ROR id: "0" + 6 characters + 2 check digits
ROR_ID_PATTERN = re.compile(r'^0[a-z0-9]{6}[0-9]{2}$', re.IGNORECASE)
ROR_URL_PATTERN = re.compile(r'^https?://(?:www\.)?ror\.org/(0[a-z0-9]{6}[0-9]{2})/?$', re.IGNORECASE)


class RorClient:
    """Client for the ROR REST API v2."""

    DEFAULT_ENDPOINT = "https://api.ror.org/v2/organizations"
    TIMEOUT = 10

    def __init__(self, endpoint: Optional[str] = None):
        self.endpoint = (endpoint or self.DEFAULT_ENDPOINT).rstrip('/')

    @staticmethod
    def is_identifier_url(text: Optional[str]) -> bool:
        """Return True if text is a ROR URL (https://ror.org/0xxxxxx00)."""
        return bool(text) and bool(ROR_URL_PATTERN.match(text.strip()))

    @staticmethod
    def canonicalise(text: Optional[str]) -> Optional[str]:
        """
        Normalize a ROR id or URL to the canonical "https://ror.org/<id>" form.

        Returns:
            Canonical URL, or None if text is not a ROR identifier
        """
        if not text:
            return None
        text = text.strip()
        match = ROR_URL_PATTERN.match(text)
        if match:
            return f"https://ror.org/{match.group(1).lower()}"
        if ROR_ID_PATTERN.match(text):
            return f"https://ror.org/{text.lower()}"
        return None

    def _fetch(self, ror_id: str) -> dict:
        try:
            response = requests.get(
                f"{self.endpoint}/{ror_id}",
                timeout=self.TIMEOUT,
                headers={"Accept": "application/json"}
            )
        except requests.exceptions.RequestException as e:
            raise RorAPIError(f"ROR request failed: {e}") from e

        if response.status_code != 200:
            raise RorAPIError(f"ROR API error (HTTP {response.status_code}) for {ror_id}")
        try:
            return response.json()
        except ValueError as e:
            raise RorAPIError(f"Invalid JSON from ROR for {ror_id}") from e

    @staticmethod
    def _display_name(data: dict) -> Optional[str]:
        # v2: names[] with types ["ror_display", ...]; v1: name
        for entry in data.get('names') or []:
            if 'ror_display' in (entry.get('types') or []):
                return entry.get('value')
        return data.get('name')

    def resolve_organization_name(self, identifier: Optional[str]) -> Optional[str]:
        """
        Look up the display name of an organization.

        Args:
            identifier: ROR id or ROR URL

        Returns:
            Organization name, or None if unknown or the lookup failed
        """
        canonical = self.canonicalise(identifier)
        if canonical is None:
            return None
        ror_id = canonical.rsplit('/', 1)[-1]

        try:
            name = self._display_name(self._fetch(ror_id))
        except RorAPIError as e:
            logger.warning(f"Could not resolve ROR {identifier}: {e}")
            return None

        logger.debug(f"Resolved ROR {ror_id} to '{name}'")
        return name
