"""
Batch import of DataCite records.

Each DOI is imported in its own transaction so one broken record does not
roll back the records imported before it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from src.importer.datacite_transformer import DataCiteToResourceTransformer
from src.models import Resource

logger = logging.getLogger(__name__)


class DataCiteImportService:
    """
    Fetch DOI records from DataCite and store them as resources.

    Args:
        db_client: ErnieDatabaseClient providing ``transaction()``
        api_client: DataCiteClient, required only for ``import_dois``/``import_all``
        ror_client: Optional RorClient passed to the transformer
    """

    def __init__(self, db_client, api_client=None, ror_client=None):
        self.db_client = db_client
        self.api_client = api_client
        self.ror_client = ror_client

    def import_record(self, doi_data: Dict[str, Any], user_id: Optional[int]) -> Optional[Resource]:
        """
        Store one already fetched DOI record.

        Returns:
            The new Resource, or None if a resource with this DOI already exists
        """
        attributes = doi_data.get('attributes', doi_data)
        doi = attributes.get('doi') or doi_data.get('id')

        with self.db_client.transaction() as session:
            if doi and session.find_resource_id_by_doi(doi) is not None:
                logger.info(f"DOI {doi} already exists, skipping")
                return None
            return DataCiteToResourceTransformer(session, self.ror_client).transform(doi_data, user_id)

    def import_dois(self, dois: Iterable[str], user_id: Optional[int]) -> Dict[str, Any]:
        """
        Fetch and import a list of DOIs.

        Args:
            dois: DOIs to import
            user_id: Acting user

        Returns:
            {'imported': int, 'skipped': int, 'failed': [{'doi', 'message'}]}
        """
        if self.api_client is None:
            raise ValueError("import_dois requires a DataCite API client")

        return self._import_all(((doi, None) for doi in dois), user_id)

    def import_records(self, records: Iterable[Dict[str, Any]], user_id: Optional[int]) -> Dict[str, Any]:
        """Import already fetched records (e.g. read from a JSON file)."""
        items = (((record.get('attributes') or record).get('doi') or record.get('id'), record) for record in records)
        return self._import_all(items, user_id)

    def import_all(self, user_id: Optional[int], prefix: Optional[str] = None) -> Dict[str, Any]:
        """Import every DOI of the configured DataCite client (optionally one prefix)."""
        if self.api_client is None:
            raise ValueError("import_all requires a DataCite API client")

        records = ((record.get('id'), record) for record in self.api_client.iter_dois(prefix))
        return self._import_all(records, user_id)

    def _import_all(self, items, user_id: Optional[int]) -> Dict[str, Any]:
        imported = 0
        skipped = 0
        failed: List[Dict[str, str]] = []

        for doi, record in items:
            try:
                if record is None:
                    record = self.api_client.get_doi_metadata(doi)
                    if record is None:
                        failed.append({'doi': doi, 'message': 'DOI not found at DataCite'})
                        continue

                if self.import_record(record, user_id) is None:
                    skipped += 1
                else:
                    imported += 1
            except Exception as e:
                logger.error(f"Failed to import DOI {doi}: {e}")
                failed.append({'doi': doi, 'message': str(e)})

        logger.info(f"DataCite import finished: {imported} imported, {skipped} skipped, {len(failed)} failed")
        return {'imported': imported, 'skipped': skipped, 'failed': failed}
