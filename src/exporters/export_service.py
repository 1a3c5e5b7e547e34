"""
Export entry point used by the CLI.

Picks the exporter for the requested format and, for XML, runs the XSD
validator when one is configured. Validation problems never block the
export; they are returned as warnings next to the document.
"""

import json
import logging
from typing import List, Optional, Tuple

from src.exporters.json_exporter import DataCiteJsonExporter
from src.exporters.xml_exporter import DataCiteXmlExporter
from src.models import Publisher, Resource
from src.utils.xml_validator import SchemaUnavailableError

logger = logging.getLogger(__name__)


SUPPORTED_FORMATS = ('json', 'xml')


class ExportService:
    """Export resources to DataCite JSON or XML."""

    def __init__(self, default_publisher: Optional[Publisher] = None, validator=None):
        """
        Args:
            default_publisher: Publisher used when a resource has none
            validator: Optional object with ``validate(document) -> list`` (XML only)
        """
        self.json_exporter = DataCiteJsonExporter(default_publisher)
        self.xml_exporter = DataCiteXmlExporter(default_publisher)
        self.validator = validator

    @classmethod
    def for_session(cls, session, validator=None) -> 'ExportService':
        """Create a service using the session's default publisher."""
        return cls(default_publisher=session.get_default_publisher(), validator=validator)

    def export(self, resource: Resource, fmt: str = 'json') -> Tuple[str, List[str]]:
        """
        Export a resource.

        Args:
            resource: Loaded resource aggregate
            fmt: "json" or "xml"

        Returns:
            Tuple of (document text, warnings)

        Raises:
            ValueError: If the format is not supported
        """
        fmt = (fmt or '').lower()
        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")

        warnings: List[str] = []
        if fmt == 'json':
            document = json.dumps(self.json_exporter.export(resource), indent=2, ensure_ascii=False)
            return document, warnings

        document = self.xml_exporter.export(resource)
        if self.validator is not None:
            try:
                violations = self.validator.validate(document)
            except SchemaUnavailableError as e:
                logger.warning(f"Schema validation skipped: {e}")
                warnings.append(f"Schema validation could not be performed: {e}")
            else:
                for violation in violations:
                    warnings.append(f"{violation['path']}: {violation['message']}")
                if violations:
                    logger.warning(f"Resource {resource.id}: {len(violations)} schema violation(s)")
        return document, warnings
