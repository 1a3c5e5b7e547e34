"""
Transform DataCite JSON records into stored Resource aggregates.

Child collections are imported in a fixed order (titles, creators,
contributors, descriptions, subjects, dates, geo locations, related
identifiers, funding references, rights, sizes, formats). A child entry
whose required vocabulary value cannot be resolved is skipped with a
warning; it never aborts the import. The caller owns the transaction.
"""

import logging
from typing import Any, Dict, List, Optional

from src.db.lookup_cache import kebab_case
from src.importer.date_parser import parse_date_range
from src.importer.name_parser import parse_person_name
from src.models import (
    AlternateIdentifier,
    Contributor,
    Creator,
    Description,
    FundingReference,
    GeoLocation,
    PolygonPoint,
    RelatedIdentifier,
    Resource,
    ResourceDate,
    Subject,
    Title,
    MAIN_TITLE,
)
from src.resolver import (
    EntityResolver,
    affiliation_from_datacite,
    ORCID_SCHEME,
    ORCID_SCHEME_URI,
    ROR_SCHEME,
    ROR_SCHEME_URI,
)
from src.utils.publisher_parser import publisher_from_metadata

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def extract_name_identifier(name_identifiers: List[Dict[str, Any]], scheme: str):
    """Return (identifier, schemeUri) of the first name identifier of the given scheme."""
    for entry in name_identifiers or []:
        if not isinstance(entry, dict):
            continue
        if (entry.get('nameIdentifierScheme') or '').upper() == scheme.upper():
            identifier = entry.get('nameIdentifier')
            if identifier:
                return identifier, entry.get('schemeUri') or entry.get('schemeURI')
    return None, None


class DataCiteToResourceTransformer:
    """
    Create a Resource from a DataCite DOI record.

    Args:
        session: Database session (see MySQLSession)
        ror_client: Optional RorClient used to name institutions known only by ROR id
    """

    def __init__(self, session, ror_client=None):
        self.session = session
        self.lookups = session.lookups
        self.resolver = EntityResolver(session, ror_client)

    def transform(self, doi_data: Dict[str, Any], user_id: Optional[int]) -> Resource:
        """
        Transform and store one DataCite record.

        Args:
            doi_data: DOI record (with or without the ``attributes`` wrapper)
            user_id: Acting user stored as creator/updater

        Returns:
            The stored Resource (with id)
        """
        attributes = doi_data.get('attributes', doi_data)

        resource = self._create_resource(attributes, user_id)
        self._transform_titles(attributes.get('titles') or [], resource)
        self._transform_creators(attributes.get('creators') or [], resource)
        self._transform_contributors(attributes.get('contributors') or [], resource)
        self._transform_descriptions(attributes.get('descriptions') or [], resource)
        self._transform_subjects(attributes.get('subjects') or [], resource)
        self._transform_dates(attributes.get('dates') or [], resource)
        self._transform_geo_locations(attributes.get('geoLocations') or [], resource)
        self._transform_alternate_identifiers(attributes.get('alternateIdentifiers') or [], resource)
        self._transform_related_identifiers(attributes.get('relatedIdentifiers') or [], resource)
        self._transform_funding_references(attributes.get('fundingReferences') or [], resource)
        self._transform_rights(attributes.get('rightsList') or [], resource)
        resource.sizes = [str(size) for size in attributes.get('sizes') or [] if size]
        resource.formats = [str(fmt) for fmt in attributes.get('formats') or [] if fmt]

        self.session.insert_resource(resource)
        logger.info(f"Imported DataCite record {resource.doi or '(no DOI)'} as resource {resource.id}")
        return resource

    # =========================================================================
    # Resource shell
    # =========================================================================

    def _create_resource(self, attributes: Dict[str, Any], user_id: Optional[int]) -> Resource:
        resource_type = self._resolve_resource_type(attributes.get('types') or {})
        language = attributes.get('language')
        if language and not self.lookups.by_slug('languages', language):
            logger.warning(f"Unknown language code '{language}', ignoring")
            language = None

        return Resource(
            doi=attributes.get('doi') or None,
            publication_year=_to_int(attributes.get('publicationYear')),
            version=attributes.get('version') or None,
            resource_type_slug=resource_type['slug'] if resource_type else None,
            resource_type_name=resource_type['name'] if resource_type else None,
            language=language or None,
            publisher=self._resolve_publisher(attributes.get('publisher')),
            created_by_user_id=user_id,
            updated_by_user_id=user_id,
        )

    def _resolve_resource_type(self, types: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Map resourceTypeGeneral (PascalCase) to the kebab-case slug, falling back to "other"."""
        general = types.get('resourceTypeGeneral')
        row = self.lookups.by_slug('resource_types', kebab_case(general)) if general else None
        return row or self.lookups.by_slug('resource_types', 'other')

    def _resolve_publisher(self, publisher_raw: Any):
        candidate = publisher_from_metadata(publisher_raw)
        if candidate is None:
            return self.session.get_default_publisher()

        existing = self.session.find_publisher_by_name(candidate.name)
        if existing:
            return existing
        logger.info(f"Creating publisher '{candidate.name}'")
        return self.session.insert_publisher(candidate)

    # =========================================================================
    # Titles, agents
    # =========================================================================

    def _transform_titles(self, titles: List[Dict[str, Any]], resource: Resource):
        for title_data in titles:
            value = title_data.get('title')
            if value is None:
                continue

            title_type = self.lookups.slug_for('title_types', title_data.get('titleType') or MAIN_TITLE)
            if title_type is None:
                title_type = (self.lookups.slug_for('title_types', MAIN_TITLE)
                              or self.lookups.slug_for('title_types', 'Other'))

            resource.titles.append(Title(value=value, title_type=title_type, language=title_data.get('lang')))

    def _resolve_agent(self, data: Dict[str, Any]):
        if data.get('nameType') == 'Organizational':
            ror, scheme_uri = extract_name_identifier(data.get('nameIdentifiers'), ROR_SCHEME)
            return self.resolver.resolve_institution(
                data.get('name'),
                identifier=ror,
                scheme=ROR_SCHEME if ror else None,
                scheme_uri=(scheme_uri or ROR_SCHEME_URI) if ror else None,
            )

        family_name = data.get('familyName')
        given_name = data.get('givenName')
        if family_name is None and data.get('name'):
            family_name, given_name = parse_person_name(data['name'])

        orcid, scheme_uri = extract_name_identifier(data.get('nameIdentifiers'), ORCID_SCHEME)
        return self.resolver.resolve_person(
            family_name,
            given_name,
            orcid=orcid,
            scheme_uri=(scheme_uri or ORCID_SCHEME_URI) if orcid else None,
        )

    @staticmethod
    def _affiliations(data: Dict[str, Any]):
        raw = data.get('affiliation') or []
        if not isinstance(raw, list):
            raw = [raw]
        return [a for a in (affiliation_from_datacite(entry) for entry in raw) if a is not None]

    def _transform_creators(self, creators: List[Dict[str, Any]], resource: Resource):
        for index, creator_data in enumerate(creators):
            resource.creators.append(Creator(
                agent=self._resolve_agent(creator_data),
                position=index + 1,
                affiliations=self._affiliations(creator_data),
            ))

    def _transform_contributors(self, contributors: List[Dict[str, Any]], resource: Resource):
        for index, contributor_data in enumerate(contributors):
            contributor_type = None
            if contributor_data.get('contributorType'):
                contributor_type = self.lookups.slug_for('contributor_types', contributor_data['contributorType'])
            if contributor_type is None:
                contributor_type = self.lookups.slug_for('contributor_types', 'Other')
            if contributor_type is None:
                logger.warning(
                    f"Skipping contributor without valid type "
                    f"'{contributor_data.get('contributorType')}' ({resource.doi})"
                )
                continue

            resource.contributors.append(Contributor(
                agent=self._resolve_agent(contributor_data),
                contributor_type=contributor_type,
                position=index + 1,
                affiliations=self._affiliations(contributor_data),
            ))

    # =========================================================================
    # Other child collections
    # =========================================================================

    def _transform_descriptions(self, descriptions: List[Dict[str, Any]], resource: Resource):
        for description_data in descriptions:
            value = description_data.get('description')
            if value is None or not str(value).strip():
                continue

            description_type = self.lookups.slug_for('description_types', description_data.get('descriptionType'))
            if description_type is None:
                logger.warning(
                    f"Skipping description without valid type "
                    f"'{description_data.get('descriptionType')}' ({resource.doi})"
                )
                continue

            resource.descriptions.append(Description(
                value=value,
                description_type=description_type,
                language=description_data.get('lang'),
            ))

    @staticmethod
    def _transform_subjects(subjects: List[Dict[str, Any]], resource: Resource):
        for subject_data in subjects:
            value = subject_data.get('subject')
            if value is None:
                continue
            resource.subjects.append(Subject(
                value=value,
                language=subject_data.get('lang') or 'en',
                subject_scheme=subject_data.get('subjectScheme'),
                scheme_uri=subject_data.get('schemeUri') or subject_data.get('schemeURI'),
                value_uri=subject_data.get('valueUri') or subject_data.get('valueURI'),
                classification_code=subject_data.get('classificationCode'),
            ))

    def _transform_dates(self, dates: List[Dict[str, Any]], resource: Resource):
        for date_data in dates:
            value = date_data.get('date')
            if value is None:
                continue

            date_type = self.lookups.slug_for('date_types', date_data.get('dateType'))
            if date_type is None:
                logger.warning(f"Skipping date without valid type '{date_data.get('dateType')}' ({resource.doi})")
                continue

            date_value, start_date, end_date = parse_date_range(value)
            if date_value is None and start_date is None:
                logger.warning(f"Skipping unparseable date '{value}' ({resource.doi})")
                continue

            resource.dates.append(ResourceDate(
                date_type=date_type,
                date_value=date_value,
                start_date=start_date,
                end_date=end_date,
                date_information=date_data.get('dateInformation'),
            ))

    @staticmethod
    def _polygon(raw: Any):
        """
        Read a polygon in either shape DataCite uses.

        Accepts ``{"polygonPoints": [...], "inPolygonPoint": {...}}`` or a list
        of ``{"polygonPoint": {...}}`` / ``{"inPolygonPoint": {...}}`` entries.
        """
        points: List[PolygonPoint] = []
        in_point = None

        def add_point(point):
            longitude = _to_float((point or {}).get('pointLongitude'))
            latitude = _to_float((point or {}).get('pointLatitude'))
            if longitude is not None and latitude is not None:
                points.append(PolygonPoint(longitude=longitude, latitude=latitude))

        if isinstance(raw, dict):
            for point in raw.get('polygonPoints') or []:
                add_point(point)
            in_point = raw.get('inPolygonPoint')
        elif isinstance(raw, list):
            for entry in raw:
                if not isinstance(entry, dict):
                    continue
                if 'polygonPoint' in entry:
                    add_point(entry['polygonPoint'])
                elif 'inPolygonPoint' in entry:
                    in_point = entry['inPolygonPoint']
                else:
                    add_point(entry)
        return points, in_point

    def _transform_geo_locations(self, geo_locations: List[Dict[str, Any]], resource: Resource):
        for geo_data in geo_locations:
            point = geo_data.get('geoLocationPoint') or {}
            box = geo_data.get('geoLocationBox') or {}
            polygon_raw = geo_data.get('geoLocationPolygon')
            if isinstance(polygon_raw, list) and polygon_raw and isinstance(polygon_raw[0], dict) \
                    and 'polygonPoints' in polygon_raw[0]:
                # DataCite allows several polygons; only the first is kept
                polygon_raw = polygon_raw[0]
            points, in_point = self._polygon(polygon_raw)

            resource.geo_locations.append(GeoLocation(
                place=geo_data.get('geoLocationPlace'),
                point_longitude=_to_float(point.get('pointLongitude')),
                point_latitude=_to_float(point.get('pointLatitude')),
                west_bound_longitude=_to_float(box.get('westBoundLongitude')),
                east_bound_longitude=_to_float(box.get('eastBoundLongitude')),
                south_bound_latitude=_to_float(box.get('southBoundLatitude')),
                north_bound_latitude=_to_float(box.get('northBoundLatitude')),
                polygon_points=points if len(points) >= 3 else [],
                in_polygon_point_longitude=_to_float((in_point or {}).get('pointLongitude')) if points else None,
                in_polygon_point_latitude=_to_float((in_point or {}).get('pointLatitude')) if points else None,
            ))

    @staticmethod
    def _transform_alternate_identifiers(alternates: List[Dict[str, Any]], resource: Resource):
        for alternate in alternates:
            value = alternate.get('alternateIdentifier')
            identifier_type = alternate.get('alternateIdentifierType')
            if value and identifier_type:
                resource.alternate_identifiers.append(
                    AlternateIdentifier(value=value, identifier_type=identifier_type)
                )

    def _transform_related_identifiers(self, related_identifiers: List[Dict[str, Any]], resource: Resource):
        for index, related_data in enumerate(related_identifiers):
            identifier = related_data.get('relatedIdentifier')
            if identifier is None:
                continue

            identifier_type = self.lookups.slug_for('identifier_types', related_data.get('relatedIdentifierType'))
            relation_type = self.lookups.slug_for('relation_types', related_data.get('relationType'))
            if identifier_type is None or relation_type is None:
                logger.warning(
                    f"Skipping related identifier {identifier}: unresolved type "
                    f"'{related_data.get('relatedIdentifierType')}'/'{related_data.get('relationType')}'"
                )
                continue

            resource.related_identifiers.append(RelatedIdentifier(
                identifier=identifier,
                identifier_type=identifier_type,
                relation_type=relation_type,
                resource_type_general=related_data.get('resourceTypeGeneral'),
                related_metadata_scheme=related_data.get('relatedMetadataScheme'),
                scheme_uri=related_data.get('schemeUri') or related_data.get('schemeURI'),
                scheme_type=related_data.get('schemeType'),
                position=index + 1,
            ))

    def _transform_funding_references(self, funding_references: List[Dict[str, Any]], resource: Resource):
        for index, funding_data in enumerate(funding_references):
            funder_name = funding_data.get('funderName')
            if not funder_name:
                continue

            funder_type = None
            if funding_data.get('funderIdentifierType'):
                row = self.lookups.find('funder_identifier_types', funding_data['funderIdentifierType'])
                funder_type = row['name'] if row else None

            resource.funding_references.append(FundingReference(
                funder_name=funder_name,
                funder_identifier=funding_data.get('funderIdentifier'),
                funder_identifier_type=funder_type,
                scheme_uri=funding_data.get('schemeUri') or funding_data.get('schemeURI'),
                award_number=funding_data.get('awardNumber'),
                award_uri=funding_data.get('awardUri') or funding_data.get('awardURI'),
                award_title=funding_data.get('awardTitle'),
                position=index,
            ))

    def _transform_rights(self, rights_list: List[Dict[str, Any]], resource: Resource):
        identifiers = [r['rightsIdentifier'] for r in rights_list if r.get('rightsIdentifier')]
        known = self.session.find_rights_by_identifiers(identifiers)

        attached = set()
        for rights_data in rights_list:
            identifier = rights_data.get('rightsIdentifier')
            if identifier:
                right = known.get(identifier)
            elif rights_data.get('rights'):
                right = self.session.find_right_by_name(rights_data['rights'])
            else:
                right = None

            if right is None:
                logger.debug(f"Unknown rights entry skipped: {rights_data}")
                continue
            if right.id not in attached:
                attached.add(right.id)
                resource.rights.append(right)
