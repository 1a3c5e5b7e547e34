"""Tests for the command line entry point."""

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from src.config import AppSettings, DataCiteSettings
from src.main import _load_records, build_parser, main


RECORD = {
    'id': '10.5880/GFZ.CLI.001',
    'type': 'dois',
    'attributes': {
        'doi': '10.5880/GFZ.CLI.001',
        'publicationYear': 2024,
        'language': 'en',
        'types': {'resourceTypeGeneral': 'Dataset'},
        'titles': [{'title': 'Command line import', 'lang': 'en'}],
        'creators': [{'name': 'Doe, Jane', 'nameType': 'Personal', 'givenName': 'Jane', 'familyName': 'Doe'}],
    },
}

IGSN_CSV = (
    "igsn|title|name|sample_type|material|collector\n"
    "IGSN-CLI-1|Core 1|Sample 1|Core|Basalt|Doe, Jane\n"
)


@pytest.fixture
def run(db_client):
    """Run main() with in-memory storage and no file logging."""

    def _run(argv, settings=None):
        with patch('src.main.setup_logging'), \
                patch('src.main.AppSettings.from_env', return_value=settings or AppSettings()), \
                patch('src.main.ErnieDatabaseClient.from_settings', return_value=db_client):
            return main(argv)

    return _run


class TestBuildParser:
    """Test argument parsing."""

    def test_export_arguments(self):
        """Test export defaults and options."""
        args = build_parser().parse_args(['export', '42'])
        assert (args.command, args.resource_id, args.fmt, args.validate, args.output) == ('export', 42, 'json', False, None)

        args = build_parser().parse_args(['-v', 'export', '7', '--format', 'xml', '--validate', '-o', 'out.xml'])
        assert args.verbose and args.fmt == 'xml' and args.validate and args.output == 'out.xml'

    def test_export_rejects_unknown_format(self):
        """Test that only json and xml are accepted."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(['export', '1', '--format', 'csv'])

    def test_import_datacite_sources(self):
        """Test the three mutually exclusive sources."""
        parser = build_parser()

        assert parser.parse_args(['import-datacite', 'records.json']).json_file == 'records.json'
        assert parser.parse_args(['import-datacite', '--doi', '10.1/a', '--doi', '10.1/b']).dois == ['10.1/a', '10.1/b']
        args = parser.parse_args(['import-datacite', '--all', '--prefix', '10.5880', '--user-id', '3'])
        assert (args.import_all, args.prefix, args.user_id) == (True, '10.5880', 3)

    def test_import_datacite_requires_source(self):
        """Test that a source is required and sources are exclusive."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(['import-datacite'])
        with pytest.raises(SystemExit):
            build_parser().parse_args(['import-datacite', '--all', '--doi', '10.1/a'])

    def test_command_required(self):
        """Test that a subcommand must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestLoadRecords:
    """Test reading JSON record files."""

    @pytest.mark.parametrize("content", [RECORD, {'data': RECORD}, [RECORD], {'data': [RECORD]}])
    def test_shapes(self, tmp_path, content):
        """Test bare records, API responses and lists."""
        path = tmp_path / 'records.json'
        path.write_text(json.dumps(content), encoding='utf-8')
        assert _load_records(str(path)) == [RECORD]


class TestMain:
    """Test command execution."""

    def test_import_then_export(self, run, session, tmp_path, capsys):
        """Test importing a JSON file and exporting the stored resource."""
        path = tmp_path / 'record.json'
        path.write_text(json.dumps({'data': RECORD}), encoding='utf-8')

        assert run(['import-datacite', str(path), '--user-id', '2']) == 0
        assert json.loads(capsys.readouterr().out) == {'imported': 1, 'skipped': 0, 'failed': []}

        resource_id = session.find_resource_id_by_doi('10.5880/GFZ.CLI.001')
        assert run(['export', str(resource_id)]) == 0
        attributes = json.loads(capsys.readouterr().out)['data']['attributes']
        assert attributes['titles'] == [{'title': 'Command line import', 'lang': 'en'}]
        assert attributes['publisher']['name'] == 'GFZ Data Services'

    def test_export_to_file(self, run, session, tmp_path):
        """Test writing XML to an output file."""
        path = tmp_path / 'record.json'
        path.write_text(json.dumps(RECORD), encoding='utf-8')
        run(['import-datacite', str(path)])
        resource_id = session.find_resource_id_by_doi('10.5880/GFZ.CLI.001')
        output = tmp_path / 'out.xml'

        assert run(['export', str(resource_id), '--format', 'xml', '-o', str(output)]) == 0
        assert '<title xml:lang="en">Command line import</title>' in output.read_text(encoding='utf-8')

    def test_export_not_found(self, run):
        """Test that a missing resource returns exit code 1."""
        assert run(['export', '999']) == 1

    def test_doi_import_requires_credentials(self, run):
        """Test that fetching DOIs without DataCite credentials fails early."""
        with patch('src.main.DataCiteClient') as client_class:
            assert run(['import-datacite', '--doi', '10.1/a']) == 1
        client_class.from_settings.assert_not_called()

    def test_doi_import_with_credentials(self, run, session, capsys):
        """Test that --doi uses the configured DataCite client."""
        settings = AppSettings(datacite=DataCiteSettings('TIB.GFZ', 'pw'))
        api_client = MagicMock()
        api_client.get_doi_metadata.return_value = RECORD

        with patch('src.main.DataCiteClient.from_settings', return_value=api_client):
            assert run(['import-datacite', '--doi', '10.5880/GFZ.CLI.001'], settings) == 0

        api_client.get_doi_metadata.assert_called_once_with('10.5880/GFZ.CLI.001')
        assert session.find_resource_id_by_doi('10.5880/GFZ.CLI.001') is not None
        assert json.loads(capsys.readouterr().out)['imported'] == 1

    def test_missing_json_file(self, run, tmp_path):
        """Test that a missing input file returns exit code 1."""
        assert run(['import-datacite', str(tmp_path / 'missing.json')]) == 1

    def test_import_igsn(self, run, session, tmp_path, capsys):
        """Test the IGSN CSV command."""
        path = tmp_path / 'samples.csv'
        path.write_text(IGSN_CSV, encoding='utf-8')

        assert run(['import-igsn', str(path), '--user-id', '5']) == 0

        summary = json.loads(capsys.readouterr().out)
        assert summary['created'] == 1
        assert summary['errors'] == []
        resource = session.load_resource(session.find_resource_id_by_doi('IGSN-CLI-1'))
        assert resource.igsn_metadata.csv_filename == 'samples.csv'

    def test_import_igsn_row_errors(self, run, tmp_path, capsys):
        """Test that row errors give exit code 1."""
        path = tmp_path / 'samples.csv'
        path.write_text("igsn|title|name\n|T|N\n", encoding='utf-8')

        assert run(['import-igsn', str(path)]) == 1
        assert json.loads(capsys.readouterr().out)['errors'] == [{'row': 2, 'message': 'Missing required field: igsn'}]

    def test_verbose_sets_debug_level(self, db_client):
        """Test that -v configures debug logging."""
        with patch('src.main.setup_logging') as setup, \
                patch('src.main.AppSettings.from_env', return_value=AppSettings()), \
                patch('src.main.ErnieDatabaseClient.from_settings', return_value=db_client):
            main(['-v', 'export', '1'])
        setup.assert_called_once_with(logging.DEBUG)
