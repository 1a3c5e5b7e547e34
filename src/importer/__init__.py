"""DataCite JSON import pipeline."""

from src.importer.datacite_transformer import DataCiteToResourceTransformer, extract_name_identifier
from src.importer.date_parser import parse_date, parse_date_range
from src.importer.import_service import DataCiteImportService
from src.importer.name_parser import NAME_SUFFIXES, is_name_suffix, parse_person_name

__all__ = [
    'DataCiteToResourceTransformer',
    'DataCiteImportService',
    'extract_name_identifier',
    'parse_date',
    'parse_date_range',
    'parse_person_name',
    'is_name_suffix',
    'NAME_SUFFIXES',
]
