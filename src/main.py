"""Main entry point for the ERNIE curation command line."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from src.api import DataCiteClient, DataCiteAPIError, RorClient
from src.config import AppSettings
from src.db import ErnieDatabaseClient, DatabaseError
from src.exporters import ExportService, SUPPORTED_FORMATS
from src.igsn import IgsnCsvParser, IgsnParseError, IgsnStorageService
from src.importer import DataCiteImportService
from src.utils.xml_validator import XsdValidator

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO):
    """Configure logging for the application."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('ernie.log', encoding='utf-8'),
            logging.StreamHandler()
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ernie',
        description='Curate research metadata: DataCite export, DataCite import and IGSN CSV ingestion.'
    )
    parser.add_argument('--env-file', help='Path to a .env file with ERNIE_DB_* / DATACITE_* settings')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    export = subparsers.add_parser('export', help='Export a resource as DataCite JSON or XML')
    export.add_argument('resource_id', type=int, help='ID of the resource')
    export.add_argument('--format', dest='fmt', choices=SUPPORTED_FORMATS, default='json')
    export.add_argument('--validate', action='store_true', help='Validate XML against DATACITE_XSD_PATH')
    export.add_argument('--output', '-o', help='Write the document to this file instead of stdout')

    import_datacite = subparsers.add_parser('import-datacite', help='Import DataCite records')
    source = import_datacite.add_mutually_exclusive_group(required=True)
    source.add_argument('json_file', nargs='?', help='JSON file with one DOI record or a list of records')
    source.add_argument('--doi', action='append', dest='dois', help='DOI to fetch from DataCite (repeatable)')
    source.add_argument('--all', action='store_true', dest='import_all', help='Import all DOIs of the DataCite client')
    import_datacite.add_argument('--prefix', help='Restrict --all to one DOI prefix')
    import_datacite.add_argument('--user-id', type=int, help='Acting user id')

    import_igsn = subparsers.add_parser('import-igsn', help='Import physical samples from an IGSN CSV file')
    import_igsn.add_argument('csv_file', help='Pipe-delimited IGSN CSV file')
    import_igsn.add_argument('--user-id', type=int, help='Acting user id')

    return parser


def _load_records(path: str) -> List[dict]:
    with open(path, 'r', encoding='utf-8') as f:
        content = json.load(f)
    # Accept a bare record, an API response ({"data": ...}) or a list
    if isinstance(content, dict) and 'data' in content:
        content = content['data']
    return content if isinstance(content, list) else [content]


def run_export(args, settings: AppSettings, db_client: ErnieDatabaseClient) -> int:
    validator = XsdValidator(settings.xsd_path) if args.validate else None

    with db_client.session() as session:
        resource = session.load_resource(args.resource_id)
        if resource is None:
            logger.error(f"Resource {args.resource_id} not found")
            return 1
        document, warnings = ExportService.for_session(session, validator).export(resource, args.fmt)

    for warning in warnings:
        logger.warning(warning)

    if args.output:
        Path(args.output).write_text(document, encoding='utf-8')
        logger.info(f"Exported resource {args.resource_id} to {args.output}")
    else:
        sys.stdout.write(document + '\n')
    return 0


def run_import_datacite(args, settings: AppSettings, db_client: ErnieDatabaseClient) -> int:
    ror_client = RorClient(settings.ror_api_endpoint)
    api_client = None
    if args.dois or args.import_all:
        if not settings.datacite.is_configured:
            logger.error("DATACITE_USERNAME and DATACITE_PASSWORD must be set to fetch DOIs")
            return 1
        api_client = DataCiteClient.from_settings(settings.datacite)

    service = DataCiteImportService(db_client, api_client, ror_client)
    if args.import_all:
        result = service.import_all(args.user_id, args.prefix)
    elif args.dois:
        result = service.import_dois(args.dois, args.user_id)
    else:
        result = service.import_records(_load_records(args.json_file), args.user_id)

    sys.stdout.write(json.dumps(result, indent=2) + '\n')
    return 1 if result['failed'] else 0


def run_import_igsn(args, settings: AppSettings, db_client: ErnieDatabaseClient) -> int:
    parsed = IgsnCsvParser().parse_file(args.csv_file)
    for warning in parsed['warnings']:
        logger.warning(f"Row {warning['row']}: {warning['message']}")
    for error in parsed['errors']:
        logger.error(f"Row {error['row']}: {error['message']}")

    result = {'created': 0, 'errors': []}
    if parsed['rows']:
        with db_client.transaction() as session:
            storage = IgsnStorageService(session, RorClient(settings.ror_api_endpoint))
            result = storage.store(parsed['rows'], Path(args.csv_file).name, args.user_id)

    summary = {
        'created': result['created'],
        'errors': parsed['errors'] + result['errors'],
        'warnings': parsed['warnings'],
    }
    sys.stdout.write(json.dumps(summary, indent=2, ensure_ascii=False) + '\n')
    return 1 if summary['errors'] else 0


COMMANDS = {
    'export': run_export,
    'import-datacite': run_import_datacite,
    'import-igsn': run_import_igsn,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger.info(f"Starting ERNIE command: {args.command}")

    settings = AppSettings.from_env(args.env_file)
    db_client = ErnieDatabaseClient.from_settings(settings.database)

    try:
        return COMMANDS[args.command](args, settings, db_client)
    except (DatabaseError, DataCiteAPIError, IgsnParseError, FileNotFoundError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
