"""
Store parsed IGSN CSV rows as Physical Object resources.

All rows of one file are written inside the caller's transaction. Each row
runs in its own savepoint, so a failing row is rolled back and reported
while the other rows are kept.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from src.db.ernie_client import ConfigurationError
from src.exporters.helpers import IGSN_ALTERNATE_IDENTIFIER_TYPE, IGSN_OTHER_NAME_IDENTIFIER_TYPE
from src.igsn.csv_parser import parse_collection_dates, parse_description_json, parse_float
from src.importer.name_parser import parse_person_name
from src.models import (
    Affiliation,
    AlternateIdentifier,
    Contributor,
    Creator,
    FundingReference,
    GeoLocation,
    IgsnMetadata,
    RelatedIdentifier,
    Resource,
    ResourceDate,
    Title,
    MAIN_TITLE,
)
from src.resolver import EntityResolver, ROR_SCHEME

logger = logging.getLogger(__name__)


PHYSICAL_OBJECT_SLUG = 'physical-object'
OTHER = 'Other'
COLLECTED = 'Collected'

_YEAR_PATTERN = re.compile(r'^(\d{4})')


def extract_year(value: Optional[str]) -> Optional[int]:
    match = _YEAR_PATTERN.match((value or '').strip())
    return int(match.group(1)) if match else None


def format_size(size: Dict[str, Optional[str]]) -> str:
    """
    Render a parsed size as a DataCite size string.

    Examples:
        {'numeric_value': '0.9', 'unit': 'm', 'type': 'Drilled Length'} -> "Drilled Length: 0.9 m"
        {'numeric_value': '3', 'unit': None, 'type': 'pieces'} -> "3 pieces"
    """
    value = size['numeric_value']
    if size.get('unit'):
        text = f"{value} {size['unit']}"
        return f"{size['type']}: {text}" if size.get('type') else text
    if size.get('type'):
        return f"{value} {size['type']}"
    return value


class IgsnStorageService:
    """
    Map parsed IGSN rows to resources.

    Args:
        session: Database session inside an open transaction
        ror_client: Optional RorClient used to name institutions known only by ROR id
    """

    def __init__(self, session, ror_client=None):
        self.session = session
        self.lookups = session.lookups
        self.resolver = EntityResolver(session, ror_client)

    def _check_vocabulary(self):
        """The resource type and title types every IGSN row needs."""
        if self.lookups.by_slug('resource_types', PHYSICAL_OBJECT_SLUG) is None:
            raise ConfigurationError('Resource type "physical-object" not found. Seed the resource_types table first.')
        if self.lookups.by_slug('title_types', MAIN_TITLE) is None or self.lookups.by_slug('title_types', OTHER) is None:
            raise ConfigurationError('Required title types (MainTitle, Other) not found. Seed the title_types table first.')

    def store(self, rows: List[Dict[str, Any]], filename: str, user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Store parsed rows.

        Args:
            rows: ``rows`` of IgsnCsvParser.parse()
            filename: Original CSV file name, recorded per sample
            user_id: Acting user

        Returns:
            {'created': int, 'errors': [{'row', 'igsn', 'message'}]}

        Raises:
            ConfigurationError: If required vocabulary rows are missing
        """
        self._check_vocabulary()

        created = 0
        errors = []
        for row in rows:
            try:
                with self.session.savepoint():
                    self.create_resource(row, filename, user_id)
                created += 1
            except ConfigurationError:
                raise
            except Exception as e:
                logger.error(f"IGSN storage failed for {row.get('igsn', 'unknown')} "
                             f"(row {row.get('_row_number', 0)}): {e}")
                errors.append({
                    'row': row.get('_row_number', 0),
                    'igsn': row.get('igsn', 'unknown'),
                    'message': str(e),
                })

        logger.info(f"Stored {created} IGSN resources from {filename} ({len(errors)} failed)")
        return {'created': created, 'errors': errors}

    def create_resource(self, data: Dict[str, Any], filename: str, user_id: Optional[int]) -> Resource:
        """Build and insert the resource for one row."""
        resource_type = self.lookups.by_slug('resource_types', PHYSICAL_OBJECT_SLUG)
        resource = Resource(
            doi=data['igsn'],
            publication_year=extract_year(data.get('collection_start_date')),
            resource_type_slug=resource_type['slug'],
            resource_type_name=resource_type['name'],
            publisher=self.session.get_default_publisher(),
            created_by_user_id=user_id,
            updated_by_user_id=user_id,
        )

        self._titles(resource, data)
        resource.igsn_metadata = self._metadata(data, filename)
        self._creator(resource, data)
        self._contributors(resource, data)
        self._geo_location(resource, data)
        self._collection_date(resource, data)
        self._related_identifiers(resource, data)
        self._funding_references(resource, data)
        resource.sizes = [format_size(size) for size in data.get('_sizes') or []]
        resource.classifications = list(data.get('classification') or [])
        resource.geological_ages = list(data.get('geological_age') or [])
        resource.geological_units = list(data.get('geological_unit') or [])

        self.session.insert_resource(resource)
        logger.debug(f"Created IGSN resource {resource.id} for {resource.doi}")
        return resource

    @staticmethod
    def _titles(resource: Resource, data: Dict[str, Any]):
        # Sample names are kept as "Other" titles and exported as alternate identifiers
        resource.titles.append(Title(value=data['title'], title_type=MAIN_TITLE))
        if data.get('name'):
            resource.titles.append(Title(value=data['name'], title_type=OTHER))
            resource.alternate_identifiers.append(
                AlternateIdentifier(value=data['name'], identifier_type=IGSN_ALTERNATE_IDENTIFIER_TYPE)
            )
        for other_name in data.get('sample_other_names') or []:
            resource.titles.append(Title(value=other_name, title_type=OTHER))
            resource.alternate_identifiers.append(
                AlternateIdentifier(value=other_name, identifier_type=IGSN_OTHER_NAME_IDENTIFIER_TYPE)
            )

    @staticmethod
    def _metadata(data: Dict[str, Any], filename: str) -> IgsnMetadata:
        sizes = data.get('_sizes') or []
        first_size = sizes[0] if sizes else {}

        return IgsnMetadata(
            sample_type=data.get('sample_type') or None,
            material=data.get('material') or None,
            is_private=data.get('is_private') == '1',
            size=parse_float(first_size.get('numeric_value')),
            size_unit=first_size.get('unit') or first_size.get('type'),
            depth_min=parse_float(data.get('depth_min')),
            depth_max=parse_float(data.get('depth_max')),
            depth_scale=data.get('depth_scale') or None,
            sample_purpose=data.get('sample_purpose') or None,
            collection_method=data.get('collection_method') or None,
            collection_method_description=data.get('collection_method_descr') or None,
            collection_date_precision=data.get('collection_date_precision') or None,
            cruise_field_program=data.get('cruise_field_prgrm') or None,
            platform_type=data.get('platform_type') or None,
            platform_name=data.get('platform_name') or None,
            platform_description=data.get('platform_descr') or None,
            current_archive=data.get('current_archive') or None,
            current_archive_contact=data.get('current_archive_contact') or None,
            sample_access=data.get('sampleAccess') or None,
            operator=data.get('operator') or None,
            coordinate_system=data.get('coordinate_system') or None,
            user_code=data.get('user_code') or None,
            description_json=parse_description_json(data.get('description')),
            csv_filename=filename,
            csv_row_number=data.get('_row_number'),
        )

    def _creator(self, resource: Resource, data: Dict[str, Any]):
        creator = data.get('_creator') or {}
        if not creator.get('familyName') and not creator.get('givenName'):
            return

        person = self.resolver.resolve_person(creator.get('familyName'), creator.get('givenName'), creator.get('orcid'))
        affiliations = []
        if creator.get('affiliation'):
            ror = creator.get('ror')
            affiliations.append(Affiliation(
                name=creator['affiliation'],
                identifier=ror,
                identifier_scheme=ROR_SCHEME if ror else None,
            ))
        resource.creators.append(Creator(agent=person, position=0, affiliations=affiliations))

    def _contributors(self, resource: Resource, data: Dict[str, Any]):
        other = self.lookups.slug_for('contributor_types', OTHER) or OTHER
        for position, contributor in enumerate(data.get('_contributors') or []):
            family_name, given_name = parse_person_name(contributor['name'])
            person = self.resolver.resolve_person(family_name, given_name, contributor.get('identifier'))
            contributor_type = self.lookups.slug_for('contributor_types', contributor.get('type')) or other
            resource.contributors.append(Contributor(
                agent=person,
                contributor_type=contributor_type,
                position=position,
            ))

    @staticmethod
    def _geo_location(resource: Resource, data: Dict[str, Any]):
        geo = data.get('_geo_location') or {}
        if geo.get('latitude') is None and geo.get('longitude') is None and not geo.get('place'):
            return
        resource.geo_locations.append(GeoLocation(
            place=geo.get('place'),
            point_latitude=geo.get('latitude'),
            point_longitude=geo.get('longitude'),
            elevation=geo.get('elevation'),
            elevation_unit=geo.get('elevationUnit'),
        ))

    def _collection_date(self, resource: Resource, data: Dict[str, Any]):
        dates = parse_collection_dates(data.get('collection_start_date'), data.get('collection_end_date'))
        if dates['start'] is None:
            return
        collected = self.lookups.slug_for('date_types', COLLECTED)
        if collected is None:
            logger.warning("Date type 'Collected' not found, skipping collection date")
            return
        # Without an end date this is an open-ended range
        resource.dates.append(ResourceDate(date_type=collected, start_date=dates['start'], end_date=dates['end']))

    def _related_identifiers(self, resource: Resource, data: Dict[str, Any]):
        for entry in data.get('_related_identifiers') or []:
            identifier_type = self.lookups.slug_for('identifier_types', entry['type'])
            relation_type = self.lookups.slug_for('relation_types', entry['relationType'])
            if identifier_type is None or relation_type is None:
                logger.warning(f"Unknown identifier or relation type ({entry['type']}, {entry['relationType']}), "
                               f"skipping related identifier {entry['identifier']}")
                continue
            resource.related_identifiers.append(RelatedIdentifier(
                identifier=entry['identifier'],
                identifier_type=identifier_type,
                relation_type=relation_type,
                position=len(resource.related_identifiers),
            ))

    def _funding_references(self, resource: Resource, data: Dict[str, Any]):
        for position, funder in enumerate(data.get('_funding_references') or []):
            identifier_type = None
            if funder.get('identifierType'):
                row = self.lookups.find('funder_identifier_types', funder['identifierType'])
                identifier_type = row['name'] if row else None
            resource.funding_references.append(FundingReference(
                funder_name=funder['name'],
                funder_identifier=funder.get('identifier'),
                funder_identifier_type=identifier_type,
                position=position,
            ))
