"""Detect the funderIdentifierType of a funder identifier from its form."""

import re
from typing import Optional


class FunderIdentifierTypeDetector:
    """Pattern-based classification of funder identifiers."""

    TYPE_ROR = 'ROR'
    TYPE_CROSSREF = 'Crossref Funder ID'
    TYPE_ISNI = 'ISNI'
    TYPE_GRID = 'GRID'
    TYPE_OTHER = 'Other'

    ROR_URL_PATTERN = re.compile(r'^(?:https?://)?(?:www\.)?ror\.org/', re.IGNORECASE)
    ROR_ID_PATTERN = re.compile(r'^0[a-z0-9]{6}[0-9]{2}$', re.IGNORECASE)
    CROSSREF_PATTERN = re.compile(r'^(?:(?:https?://)?(?:www\.)?(?:dx\.)?doi\.org/)?10\.13039/', re.IGNORECASE)
    ISNI_URL_PATTERN = re.compile(r'^(?:https?://)?(?:www\.)?isni\.org/', re.IGNORECASE)
    # 16 characters, last one may be the X check character; spaces or hyphens between groups
    ISNI_PATTERN = re.compile(r'^\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{3}[\dX]$', re.IGNORECASE)
    GRID_PATTERN = re.compile(r'^(?:(?:https?://)?(?:www\.)?grid\.ac/|grid\.)', re.IGNORECASE)

    @classmethod
    def detect(cls, identifier: Optional[str]) -> Optional[str]:
        """
        Return the funder identifier type, or None for empty input.

        Examples:
            >>> FunderIdentifierTypeDetector.detect('https://ror.org/02t274463')
            'ROR'
            >>> FunderIdentifierTypeDetector.detect('https://doi.org/10.13039/501100000780')
            'Crossref Funder ID'
            >>> FunderIdentifierTypeDetector.detect('FUNDER-12345')
            'Other'
        """
        if identifier is None:
            return None
        identifier = identifier.strip()
        if not identifier:
            return None

        if cls.ROR_URL_PATTERN.match(identifier) or cls.ROR_ID_PATTERN.match(identifier):
            return cls.TYPE_ROR
        if cls.CROSSREF_PATTERN.match(identifier):
            return cls.TYPE_CROSSREF
        if cls.ISNI_URL_PATTERN.match(identifier) or cls.ISNI_PATTERN.match(identifier):
            return cls.TYPE_ISNI
        if cls.GRID_PATTERN.match(identifier):
            return cls.TYPE_GRID
        return cls.TYPE_OTHER
