"""
Read-through cache for the controlled vocabulary tables.

Lookup tables (resource_types, title_types, date_types, ...) are tiny and
change only when the vocabulary is reseeded, so each table is loaded once
per cache instance on first use instead of being queried per row.
"""

import logging
import re
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)


LOOKUP_TABLES = (
    'resource_types',
    'title_types',
    'date_types',
    'description_types',
    'contributor_types',
    'identifier_types',
    'relation_types',
    'funder_identifier_types',
    'languages',
)

# PascalCase word boundary, e.g. "JournalArticle" -> "Journal-Article", "XMLSchema" -> "XML-Schema"
_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z][a-z])|(?<=[a-z])(?=[A-Z])')
_SEPARATORS = re.compile(r'[\s_]+')


def kebab_case(value: Optional[str]) -> str:
    """
    Convert a vocabulary value to its kebab-case form.

    Examples:
        >>> kebab_case("JournalArticle")
        'journal-article'
        >>> kebab_case("Main Title")
        'main-title'
        >>> kebab_case("alternative-title")
        'alternative-title'
    """
    if not value:
        return ''
    text = _CAMEL_BOUNDARY.sub('-', value.strip())
    text = _SEPARATORS.sub('-', text)
    text = re.sub(r'-{2,}', '-', text)
    return text.lower()


class LookupCache:
    """
    Lazily loaded lookup rows keyed by table.

    The source only needs ``fetch_lookup_rows(table)`` returning dicts with
    ``id``, ``slug`` and ``name`` (for ``languages`` the ISO code is the slug).
    """

    def __init__(self, source):
        self._source = source
        self._rows: Dict[str, List[Dict[str, Any]]] = {}

    def rows(self, table: str) -> List[Dict[str, Any]]:
        if table not in LOOKUP_TABLES:
            raise ValueError(f"Unknown lookup table: {table}")
        if table not in self._rows:
            self._rows[table] = list(self._source.fetch_lookup_rows(table))
            logger.debug(f"Loaded {len(self._rows[table])} rows from {table}")
        return self._rows[table]

    def by_slug(self, table: str, slug: Optional[str]) -> Optional[Dict[str, Any]]:
        """Exact slug match."""
        if slug is None:
            return None
        for row in self.rows(table):
            if row['slug'] == slug:
                return row
        return None

    def by_id(self, table: str, row_id: Optional[int]) -> Optional[Dict[str, Any]]:
        if row_id is None:
            return None
        for row in self.rows(table):
            if row['id'] == row_id:
                return row
        return None

    def find(self, table: str, value: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Tolerant match on slug or display name.

        Tries the exact slug first, then case-insensitive slug/name, then the
        kebab-case form (so "main-title", "Main Title" and "MainTitle" all
        resolve to the same row).
        """
        if value is None or not str(value).strip():
            return None
        value = str(value).strip()

        row = self.by_slug(table, value)
        if row:
            return row

        lowered = value.lower()
        for row in self.rows(table):
            if row['slug'].lower() == lowered or (row.get('name') or '').lower() == lowered:
                return row

        kebab = kebab_case(value)
        for row in self.rows(table):
            if kebab_case(row['slug']) == kebab or kebab_case(row.get('name')) == kebab:
                return row
        return None

    def id_for(self, table: str, value: Optional[str]) -> Optional[int]:
        row = self.find(table, value)
        return row['id'] if row else None

    def slug_for(self, table: str, value: Optional[str]) -> Optional[str]:
        row = self.find(table, value)
        return row['slug'] if row else None

    def invalidate(self, table: Optional[str] = None):
        """Drop one table (or everything) so the next access reloads it."""
        if table is None:
            self._rows.clear()
        else:
            self._rows.pop(table, None)
