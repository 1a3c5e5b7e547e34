"""Unit tests for the IGSN CSV parser and funder identifier detection."""

import pytest

from src.igsn import (
    FunderIdentifierTypeDetector,
    IgsnCsvParser,
    IgsnParseError,
    normalize_identifier,
    parse_collection_dates,
    parse_description_json,
    parse_unit_string,
)


HEADER = (
    "igsn|title|name|sample_other_names|sample_type|material|collector|orcid|affiliation|ror|"
    "latitude|longitude|locality|country|collection_start_date|collection_end_date|"
    "contributor|contributorType|identifier|identifierType|parent_igsn|relatedIdentifier|"
    "relatedIdentifierType|relationtype|funderName|funderIdentifier|size|size_unit|"
    "classification|geological_age|description"
)

ROW = (
    "10.58052/ICDP5054ESYI201|Core sample 201|ICDP5054ESYI201|Core A; Core A2|Core|Basalt|"
    "Müller, Anna|0000-0001-2345-6789|GFZ|https://ror.org/04z8jg394|"
    "52.38|13.06|Potsdam|Germany|2020-01-15|2020-02-01|"
    "Schmidt, Jan; Weber, Lena|DataCollector|0000-0002-1111-2222|ORCID|"
    "10.58052/ICDP5054EHW1001|10.5880/GFZ.1.2.2023.001|DOI|IsSupplementTo|"
    "DFG; ERC|https://doi.org/10.13039/501100001659; grid.1234.5|0.9; 146|Drilled Length [m]; Core Diameter [mm]|"
    "Igneous; Volcanic|Miocene, Pliocene|{\"note\": \"fresh\"}"
)


def parse(*lines):
    return IgsnCsvParser().parse('\n'.join(lines) + '\n')


class TestParseStructure:
    """Test file-level validation."""

    def test_header_only(self):
        """Test that a file needs at least one data row."""
        result = parse(HEADER)
        assert result['rows'] == []
        assert result['errors'] == [
            {'row': 0, 'message': 'CSV file must contain a header row and at least one data row.'}
        ]

    def test_missing_required_columns(self):
        """Test the header check."""
        result = parse("igsn|latitude", "X|1")
        assert result['errors'] == [{'row': 1, 'message': 'Missing required columns: title, name'}]

    def test_required_headers_case_insensitive(self):
        """Test that IGSN/Title/Name headers are accepted in any case."""
        result = parse("IGSN|Title|NAME", "X|T|N")
        assert result['errors'] == []
        assert result['rows'][0]['igsn'] == 'X'

    def test_missing_required_field(self):
        """Test that a row without igsn is rejected while others succeed."""
        result = parse("igsn|title|name", "|T1|N1", "B|T2|N2")

        assert result['errors'] == [{'row': 2, 'message': 'Missing required field: igsn'}]
        assert [row['igsn'] for row in result['rows']] == ['B']
        assert result['rows'][0]['_row_number'] == 3

    def test_recommended_field_warnings(self):
        """Test warnings for empty recommended fields."""
        result = parse("igsn|title|name|latitude", "A|T|N|")
        fields = [w['field'] for w in result['warnings']]
        assert fields == ['latitude', 'longitude', 'collector', 'collection_start_date']
        assert result['warnings'][0]['message'] == "Recommended field 'latitude' is empty."

    def test_blank_lines_skipped(self):
        """Test that blank lines between rows are ignored."""
        result = IgsnCsvParser().parse("igsn|title|name\r\nA|T|N\r\n\r\nB|T|N\r\n")
        assert len(result['rows']) == 2


class TestParseRow:
    """Test the derived row structures."""

    @pytest.fixture
    def row(self):
        result = parse(HEADER, ROW)
        assert result['errors'] == []
        return result['rows'][0]

    def test_multi_value_fields(self, row):
        """Test semicolon and comma separated columns."""
        assert row['sample_other_names'] == ['Core A', 'Core A2']
        assert row['classification'] == ['Igneous', 'Volcanic']
        assert row['geological_age'] == ['Miocene', 'Pliocene']

    def test_creator(self, row):
        """Test the collector with ORCID and ROR affiliation."""
        assert row['_creator'] == {
            'familyName': 'Müller',
            'givenName': 'Anna',
            'orcid': 'https://orcid.org/0000-0001-2345-6789',
            'affiliation': 'GFZ',
            'ror': 'https://ror.org/04z8jg394',
        }

    def test_contributors(self, row):
        """Test contributor lists padded with defaults."""
        assert row['_contributors'] == [
            {'name': 'Schmidt, Jan', 'type': 'DataCollector',
             'identifier': 'https://orcid.org/0000-0002-1111-2222', 'identifierType': 'ORCID'},
            {'name': 'Weber, Lena', 'type': 'Other', 'identifier': None, 'identifierType': None},
        ]

    def test_related_identifiers(self, row):
        """Test parent IGSN and related identifiers."""
        assert row['_related_identifiers'] == [
            {'identifier': '10.58052/ICDP5054EHW1001', 'type': 'IGSN', 'relationType': 'IsPartOf'},
            {'identifier': '10.5880/GFZ.1.2.2023.001', 'type': 'DOI', 'relationType': 'IsSupplementTo'},
        ]

    def test_funding_references(self, row):
        """Test funder identifier type detection."""
        assert row['_funding_references'] == [
            {'name': 'DFG', 'identifier': 'https://doi.org/10.13039/501100001659',
             'identifierType': 'Crossref Funder ID'},
            {'name': 'ERC', 'identifier': 'grid.1234.5', 'identifierType': 'GRID'},
        ]

    def test_geo_location(self, row):
        """Test coordinates and place."""
        assert row['_geo_location'] == {
            'latitude': 52.38,
            'longitude': 13.06,
            'elevation': None,
            'elevationUnit': None,
            'place': 'Potsdam, Germany',
        }

    def test_sizes(self, row):
        """Test pairing of sizes and units."""
        assert row['_sizes'] == [
            {'numeric_value': '0.9', 'unit': 'm', 'type': 'Drilled Length'},
            {'numeric_value': '146', 'unit': 'mm', 'type': 'Core Diameter'},
        ]

    def test_given_and_family_columns_win(self):
        """Test that dedicated name columns override the collector column."""
        result = parse("igsn|title|name|collector|givenName|familyName", "A|T|N|Someone Else|Anna|Müller")
        creator = result['rows'][0]['_creator']
        assert (creator['familyName'], creator['givenName']) == ('Müller', 'Anna')


class TestParseFile:
    """Test reading files."""

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            IgsnCsvParser().parse_file(tmp_path / 'missing.csv')

    def test_non_utf8_file(self, tmp_path):
        """Test that non-UTF-8 files raise IgsnParseError."""
        path = tmp_path / 'latin1.csv'
        path.write_bytes("igsn|title|name\nA|Gestein aus Köln|N\n".encode('latin-1'))
        with pytest.raises(IgsnParseError, match="UTF-8"):
            IgsnCsvParser().parse_file(path)

    def test_utf8_bom(self, tmp_path):
        """Test that a byte order mark does not break the igsn header."""
        path = tmp_path / 'bom.csv'
        path.write_text("igsn|title|name\nA|T|N\n", encoding='utf-8-sig')
        assert IgsnCsvParser().parse_file(path)['rows'][0]['igsn'] == 'A'


class TestHelpers:
    """Test module-level helpers."""

    @pytest.mark.parametrize("value,expected", [
        ("0000-0001-2345-678X", "https://orcid.org/0000-0001-2345-678X"),
        ("https://orcid.org/0000-0001-2345-6789", "https://orcid.org/0000-0001-2345-6789"),
        ("  local-id ", "local-id"),
        ("", None),
        (None, None),
    ])
    def test_normalize_identifier(self, value, expected):
        """Test ORCID expansion and passthrough."""
        assert normalize_identifier(value) == expected

    def test_collection_dates(self):
        """Test partial ISO dates are kept and other formats converted."""
        assert parse_collection_dates("2020-05", "17.06.2020") == {'start': '2020-05', 'end': '2020-06-17'}
        assert parse_collection_dates("", "whenever") == {'start': None, 'end': None}

    def test_description_json(self):
        """Test that only JSON objects and arrays are kept."""
        assert parse_description_json('{"a": 1}') == {'a': 1}
        assert parse_description_json('42') is None
        assert parse_description_json('not json') is None

    def test_unit_string(self):
        """Test bracketed and plain units."""
        assert parse_unit_string("Core Diameter [mm]") == {'type': 'Core Diameter', 'unit': 'mm'}
        assert parse_unit_string("pieces") == {'type': 'pieces', 'unit': None}
        assert parse_unit_string("") == {'type': None, 'unit': None}


class TestFunderIdentifierTypeDetector:
    """Test funder identifier classification."""

    @pytest.mark.parametrize("identifier,expected", [
        ("https://ror.org/018mejw64", "ROR"),
        ("www.ror.org/018mejw64", "ROR"),
        ("018mejw64", "ROR"),
        ("https://doi.org/10.13039/501100001659", "Crossref Funder ID"),
        ("10.13039/501100001659", "Crossref Funder ID"),
        ("https://isni.org/isni/0000000123456789", "ISNI"),
        ("0000 0001 2345 678X", "ISNI"),
        ("0000-0001-2345-6789", "ISNI"),
        ("https://www.grid.ac/institutes/grid.1234.5", "GRID"),
        ("grid.1234.5", "GRID"),
        ("FUNDER-12345", "Other"),
    ])
    def test_detect(self, identifier, expected):
        """Test each identifier family."""
        assert FunderIdentifierTypeDetector.detect(identifier) == expected

    @pytest.mark.parametrize("identifier", [None, "", "   "])
    def test_empty(self, identifier):
        """Test that empty input has no type."""
        assert FunderIdentifierTypeDetector.detect(identifier) is None
