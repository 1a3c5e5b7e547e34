"""
CSV Parser for IGSN physical sample uploads.

Files are pipe-delimited with a header row. Each data row becomes one dict
keyed by header name, with multi-value columns split into lists and the
derived structures (creator, contributors, related identifiers, funding
references, geo location, sizes) stored under underscore-prefixed keys.
"""

import csv
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from src.igsn.funder_identifier import FunderIdentifierTypeDetector
from src.importer.name_parser import parse_person_name

logger = logging.getLogger(__name__)


class IgsnParseError(Exception):
    """Raised when an IGSN CSV file cannot be read."""
    pass


DELIMITER = '|'

REQUIRED_FIELDS = ('igsn', 'title', 'name')

# Missing values only produce warnings
RECOMMENDED_FIELDS = ('latitude', 'longitude', 'collector', 'collection_start_date')

SEMICOLON_MULTI_VALUE_FIELDS = (
    'sample_other_names',
    'classification',
    'contributor',
    'contributorType',
    'identifier',
    'identifierType',
    'relatedIdentifier',
    'relatedIdentifierType',
    'relationtype',
    'relatedidentifierType',  # lowercase variant used by some exports
    'funderName',
    'funderIdentifier',
    'size',
    'size_unit',
)

COMMA_MULTI_VALUE_FIELDS = (
    'geological_age',
    'geological_unit',
)

ORCID_PATTERN = re.compile(r'^\d{4}-\d{4}-\d{4}-\d{3}[\dX]$', re.IGNORECASE)
UNIT_PATTERN = re.compile(r'^(.+?)\s*\[([^\]]+)\]$')
PARTIAL_DATE_PATTERN = re.compile(r'^\d{4}(?:-\d{2}(?:-\d{2})?)?$')

# Fallback formats for collection dates that are not ISO
_DATE_FORMATS = ('%d.%m.%Y', '%d/%m/%Y', '%Y/%m/%d', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%d %H:%M:%S')


def split_multi_value(value: Any, delimiter: str) -> List[str]:
    """Split a cell on the delimiter, dropping empty parts."""
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    if not value:
        return []
    return [part.strip() for part in str(value).split(delimiter) if part.strip()]


def normalize_identifier(identifier: Optional[str]) -> Optional[str]:
    """
    Normalize an identifier cell.

    URLs are kept; a bare ORCID becomes ``https://orcid.org/<orcid>``;
    anything else is returned stripped. Empty input gives None.
    """
    if identifier is None:
        return None
    identifier = identifier.strip()
    if not identifier:
        return None
    if identifier.startswith(('http://', 'https://')):
        return identifier
    if ORCID_PATTERN.match(identifier):
        return f"https://orcid.org/{identifier}"
    return identifier


def parse_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_description_json(text: Optional[str]) -> Optional[Union[Dict, List]]:
    """Decode the JSON description cell; invalid or scalar JSON gives None."""
    if not text:
        return None
    try:
        decoded = json.loads(text)
    except ValueError:
        logger.debug(f"Description is not valid JSON: {text[:50]}")
        return None
    return decoded if isinstance(decoded, (dict, list)) else None


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Keep YYYY, YYYY-MM and YYYY-MM-DD as they are; convert other known formats to YYYY-MM-DD."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if PARTIAL_DATE_PATTERN.match(value):
        return value
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).strftime('%Y-%m-%d')
        except ValueError:
            continue
    logger.warning(f"Unrecognized date format: {value}")
    return None


def parse_collection_dates(start: Optional[str], end: Optional[str]) -> Dict[str, Optional[str]]:
    return {'start': normalize_date(start), 'end': normalize_date(end)}


def parse_unit_string(unit_string: str) -> Dict[str, Optional[str]]:
    """
    Split "Drilled Length [m]" into type and unit.

    Without brackets the whole string is the type.
    """
    unit_string = (unit_string or '').strip()
    if not unit_string:
        return {'type': None, 'unit': None}
    match = UNIT_PATTERN.match(unit_string)
    if match:
        return {'type': match.group(1).strip(), 'unit': match.group(2).strip()}
    return {'type': unit_string, 'unit': None}


class IgsnCsvParser:
    """Parser and validator for IGSN CSV content."""

    def parse_file(self, filepath: Union[str, Path]) -> Dict[str, Any]:
        """
        Read and parse an IGSN CSV file.

        Raises:
            FileNotFoundError: If the file does not exist
            IgsnParseError: If the file is not UTF-8 text
        """
        file_path = Path(filepath)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found: {filepath}")
        if not file_path.is_file():
            raise IgsnParseError(f"Path is not a file: {filepath}")

        logger.info(f"Parsing IGSN CSV file: {filepath}")
        try:
            content = file_path.read_text(encoding='utf-8-sig')
        except UnicodeDecodeError:
            raise IgsnParseError("CSV file could not be read. Make sure the file is UTF-8 encoded.")
        return self.parse(content)

    def parse(self, content: str) -> Dict[str, Any]:
        """
        Parse CSV content.

        Args:
            content: Raw file content

        Returns:
            Dict with ``rows`` (parsed row dicts), ``warnings``
            ([{row, field, message}]), ``errors`` ([{row, message}]) and
            ``headers``. Row numbers are 1-indexed file lines.
        """
        lines = content.replace('\r\n', '\n').replace('\r', '\n').split('\n')
        if lines and not lines[-1].strip():
            lines = lines[:-1]

        if len(lines) < 2:
            return {
                'rows': [],
                'warnings': [],
                'errors': [{'row': 0, 'message': 'CSV file must contain a header row and at least one data row.'}],
                'headers': [],
            }

        headers = self._parse_headers(lines[0])
        missing = [field for field in REQUIRED_FIELDS if field not in headers]
        if missing:
            return {
                'rows': [],
                'warnings': [],
                'errors': [{'row': 1, 'message': f"Missing required columns: {', '.join(missing)}"}],
                'headers': headers,
            }

        rows = []
        warnings = []
        errors = []
        for index, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue

            result = self._parse_row(line, headers, index)
            if result['errors']:
                errors.extend(result['errors'])
                continue
            rows.append(result['data'])
            warnings.extend(result['warnings'])

        logger.info(f"Parsed {len(rows)} IGSN rows ({len(errors)} errors, {len(warnings)} warnings)")
        return {'rows': rows, 'warnings': warnings, 'errors': errors, 'headers': headers}

    @staticmethod
    def _split_line(line: str) -> List[str]:
        return next(csv.reader([line], delimiter=DELIMITER, quotechar='"'))

    def _parse_headers(self, line: str) -> List[str]:
        # Required columns match case-insensitively and are keyed in lower case
        headers = []
        for header in self._split_line(line):
            header = header.strip()
            headers.append(header.lower() if header.lower() in REQUIRED_FIELDS else header)
        return headers

    def _parse_row(self, line: str, headers: List[str], row_number: int) -> Dict[str, Any]:
        values = self._split_line(line)
        values += [''] * (len(headers) - len(values))
        data = {header: values[i].strip() for i, header in enumerate(headers)}

        errors = [
            {'row': row_number, 'message': f"Missing required field: {field}"}
            for field in REQUIRED_FIELDS if not data.get(field)
        ]
        if errors:
            return {'data': {}, 'warnings': [], 'errors': errors}

        warnings = [
            {'row': row_number, 'field': field, 'message': f"Recommended field '{field}' is empty."}
            for field in RECOMMENDED_FIELDS if not data.get(field)
        ]

        parsed = self._parse_multi_value_fields(data)
        parsed['_contributors'] = self._parse_contributors(data)
        parsed['_related_identifiers'] = self._parse_related_identifiers(data)
        parsed['_funding_references'] = self._parse_funding_references(data)
        parsed['_creator'] = self._parse_creator(data)
        parsed['_geo_location'] = self._parse_geo_location(data)
        parsed['_sizes'] = self._parse_sizes(parsed)
        parsed['_row_number'] = row_number
        return {'data': parsed, 'warnings': warnings, 'errors': []}

    @staticmethod
    def _parse_multi_value_fields(data: Dict[str, str]) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(data)
        for field in SEMICOLON_MULTI_VALUE_FIELDS:
            if field in data:
                result[field] = split_multi_value(data[field], '; ')
        for field in COMMA_MULTI_VALUE_FIELDS:
            if field in data:
                result[field] = split_multi_value(data[field], ', ')
        return result

    @staticmethod
    def _parse_contributors(data: Dict[str, str]) -> List[Dict[str, Optional[str]]]:
        names = split_multi_value(data.get('contributor'), '; ')
        types = split_multi_value(data.get('contributorType'), '; ')
        identifiers = split_multi_value(data.get('identifier'), '; ')
        identifier_types = split_multi_value(data.get('identifierType') or data.get('identifiertype'), '; ')

        contributors = []
        for i, name in enumerate(names):
            contributors.append({
                'name': name,
                'type': types[i] if i < len(types) else 'Other',
                'identifier': normalize_identifier(identifiers[i]) if i < len(identifiers) else None,
                'identifierType': identifier_types[i] if i < len(identifier_types) else None,
            })
        return contributors

    @staticmethod
    def _parse_related_identifiers(data: Dict[str, str]) -> List[Dict[str, str]]:
        result = []

        # Parent sample is recorded as an IsPartOf relation
        parent_igsn = (data.get('parent_igsn') or '').strip()
        if parent_igsn:
            result.append({'identifier': parent_igsn, 'type': 'IGSN', 'relationType': 'IsPartOf'})

        identifiers = split_multi_value(data.get('relatedIdentifier'), '; ')
        types = split_multi_value(data.get('relatedIdentifierType') or data.get('relatedidentifierType'), '; ')
        relation_types = split_multi_value(data.get('relationtype'), '; ')

        for i, identifier in enumerate(identifiers):
            normalized = normalize_identifier(identifier)
            if normalized is None:
                continue
            result.append({
                'identifier': normalized,
                'type': types[i] if i < len(types) else 'DOI',
                'relationType': relation_types[i] if i < len(relation_types) else 'IsRelatedTo',
            })
        return result

    @staticmethod
    def _parse_funding_references(data: Dict[str, str]) -> List[Dict[str, Optional[str]]]:
        names = split_multi_value(data.get('funderName'), '; ')
        identifiers = split_multi_value(data.get('funderIdentifier'), '; ')

        funders = []
        for i, name in enumerate(names):
            identifier = normalize_identifier(identifiers[i]) if i < len(identifiers) else None
            funders.append({
                'name': name,
                'identifier': identifier,
                'identifierType': FunderIdentifierTypeDetector.detect(identifier),
            })
        return funders

    @staticmethod
    def _parse_creator(data: Dict[str, str]) -> Dict[str, Optional[str]]:
        """
        Collector of the sample.

        Dedicated givenName/familyName columns win over the combined
        ``collector`` column ("Family, Given" or "Given Family").
        """
        given_name = (data.get('givenName') or '').strip() or None
        family_name = (data.get('familyName') or '').strip() or None

        if given_name is None and family_name is None:
            family_name, given_name = parse_person_name(data.get('collector'))

        orcid = data.get('orcid') or data.get('collector_identifier') or ''
        affiliation = data.get('affiliation') or data.get('collector_affiliation') or ''
        ror = data.get('ror') or data.get('collector_affiliation_identifier') or ''

        return {
            'familyName': family_name,
            'givenName': given_name,
            'orcid': normalize_identifier(orcid),
            'affiliation': affiliation.strip() or None,
            'ror': normalize_identifier(ror),
        }

    @staticmethod
    def _parse_geo_location(data: Dict[str, str]) -> Dict[str, Any]:
        place_parts = [
            part for part in (
                data.get('locality') or data.get('primary_location_name'),
                data.get('city'),
                data.get('province'),
                data.get('country'),
                data.get('location_description'),
            ) if part
        ]
        elevation_unit = data.get('elevationUnit') or data.get('elevation_unit')

        return {
            'latitude': parse_float(data.get('latitude')),
            'longitude': parse_float(data.get('longitude')),
            'elevation': parse_float(data.get('elevation')),
            'elevationUnit': elevation_unit or None,
            'place': ', '.join(place_parts) if place_parts else None,
        }

    @staticmethod
    def _parse_sizes(parsed: Dict[str, Any]) -> List[Dict[str, Optional[str]]]:
        """
        Pair size values with their units.

        Example:
            size="0.9; 146", size_unit="Drilled Length [m]; Core Diameter [mm]" gives
            [{'numeric_value': '0.9', 'unit': 'm', 'type': 'Drilled Length'},
             {'numeric_value': '146', 'unit': 'mm', 'type': 'Core Diameter'}]
        """
        sizes = split_multi_value(parsed.get('size'), '; ')
        units = split_multi_value(parsed.get('size_unit'), '; ')

        result = []
        for i, value in enumerate(sizes):
            unit = parse_unit_string(units[i] if i < len(units) else '')
            result.append({'numeric_value': value, 'unit': unit['unit'], 'type': unit['type']})
        return result
