"""Utility functions for parsing publisher metadata from DataCite documents."""

import logging
from typing import Any, Dict, Optional

from src.models import Publisher

logger = logging.getLogger(__name__)


def parse_publisher_from_metadata(publisher_raw: Any) -> Dict[str, str]:
    """
    Parse publisher data from a DataCite document.

    Publisher can be a string (legacy format) or dict (DataCite Schema 4.5+
    extended format). Both are normalized into the same dictionary.

    Args:
        publisher_raw: Publisher value from the DataCite attributes

    Returns:
        Dictionary with name, publisherIdentifier, publisherIdentifierScheme,
        schemeUri and lang (missing values are empty strings)
    """
    if isinstance(publisher_raw, dict):
        return {
            "name": (publisher_raw.get("name") or "").strip(),
            "publisherIdentifier": publisher_raw.get("publisherIdentifier") or "",
            "publisherIdentifierScheme": publisher_raw.get("publisherIdentifierScheme") or "",
            "schemeUri": publisher_raw.get("schemeUri") or "",
            "lang": publisher_raw.get("lang") or "",
        }

    name = ""
    if isinstance(publisher_raw, str):
        name = publisher_raw.strip()
    elif publisher_raw:
        logger.warning(f"Unexpected publisher type: {type(publisher_raw)}")
        name = str(publisher_raw)

    return {
        "name": name,
        "publisherIdentifier": "",
        "publisherIdentifierScheme": "",
        "schemeUri": "",
        "lang": "",
    }


def publisher_from_metadata(publisher_raw: Any) -> Optional[Publisher]:
    """
    Build an unsaved Publisher from DataCite publisher data.

    New publishers are always recorded with language "en".

    Returns:
        Publisher, or None if no name is present
    """
    parsed = parse_publisher_from_metadata(publisher_raw)
    if not parsed["name"]:
        return None
    return Publisher(
        name=parsed["name"],
        identifier=parsed["publisherIdentifier"] or None,
        identifier_scheme=parsed["publisherIdentifierScheme"] or None,
        scheme_uri=parsed["schemeUri"] or None,
        language='en',
        is_default=False,
    )
