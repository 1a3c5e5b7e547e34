"""IGSN CSV ingestion: parsing and storage of physical sample records."""

from src.igsn.csv_parser import (
    IgsnCsvParser,
    IgsnParseError,
    normalize_identifier,
    parse_collection_dates,
    parse_description_json,
    parse_unit_string,
)
from src.igsn.funder_identifier import FunderIdentifierTypeDetector
from src.igsn.storage import IgsnStorageService

__all__ = [
    'IgsnCsvParser', 'IgsnParseError', 'normalize_identifier', 'parse_collection_dates',
    'parse_description_json', 'parse_unit_string', 'FunderIdentifierTypeDetector', 'IgsnStorageService',
]
