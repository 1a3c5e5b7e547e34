"""
XSD validation of exported DataCite XML documents.

The schema is loaded lazily from a local file (DATACITE_XSD_PATH). When it
cannot be loaded, SchemaUnavailableError is raised so callers can degrade
to a warning instead of blocking the export.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from lxml import etree

logger = logging.getLogger(__name__)


class SchemaUnavailableError(Exception):
    """Raised when the XSD cannot be read or compiled."""
    pass


class XsdValidator:
    """Validate XML documents against an XSD."""

    def __init__(self, schema_path: Optional[Union[str, Path]]):
        self.schema_path = Path(schema_path) if schema_path else None
        self._schema = None

    def _load_schema(self):
        if self._schema is not None:
            return self._schema
        if self.schema_path is None:
            raise SchemaUnavailableError("No XSD path configured")
        if not self.schema_path.exists():
            raise SchemaUnavailableError(f"XSD not found: {self.schema_path}")
        try:
            with self.schema_path.open('rb') as f:
                schema_doc = etree.parse(f)
            self._schema = etree.XMLSchema(schema_doc)
        except (etree.XMLSyntaxError, etree.XMLSchemaParseError, OSError) as e:
            logger.error(f"Failed to load XSD {self.schema_path}: {e}")
            raise SchemaUnavailableError(f"Failed to load XSD: {e}") from e
        logger.info(f"Loaded XSD from {self.schema_path}")
        return self._schema

    def validate(self, document: Union[str, bytes]) -> List[Dict[str, str]]:
        """
        Validate an XML document.

        Args:
            document: XML as string or bytes

        Returns:
            List of violations as {path, message, keyword}; empty when valid

        Raises:
            SchemaUnavailableError: If the schema cannot be loaded
        """
        schema = self._load_schema()
        if isinstance(document, str):
            document = document.encode('utf-8')

        try:
            doc = etree.fromstring(document)
        except etree.XMLSyntaxError as e:
            return [{'path': '/', 'message': str(e), 'keyword': 'syntax'}]

        if schema.validate(doc):
            return []

        return [
            {
                'path': error.path or '/',
                'message': error.message,
                'keyword': error.type_name,
            }
            for error in schema.error_log
        ]
