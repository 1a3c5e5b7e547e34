"""
Create or update a Resource from the editor payload.

The payload is the editing form's shape (``titles``, ``authors``,
``contributors``, ``mslLaboratories``, ``descriptions``, ``dates``,
``freeKeywords``, ``gcmdKeywords``, ``spatialTemporalCoverages``,
``relatedIdentifiers``, ``fundingReferences``, ``licenses``), not DataCite.

Owned collections are rebuilt from the payload on every save. The Created
date is set once and preserved; Updated is replaced on every update. User
data that cannot be stored as submitted (unknown vocabulary values, short
polygons, unknown licenses) fails the whole request with ValidationError.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from src.db.ernie_client import ConfigurationError
from src.db.lookup_cache import kebab_case
from src.models import (
    Affiliation,
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
    DATE_TYPE_CREATED,
    DATE_TYPE_UPDATED,
)
from src.resolver import EntityResolver, parse_affiliations_from_data, ROR_SCHEME

logger = logging.getLogger(__name__)


SYSTEM_DATE_TYPES = (DATE_TYPE_CREATED, DATE_TYPE_UPDATED)
HOSTING_INSTITUTION = 'HostingInstitution'
MAX_REPORTED_POINTS = 5


class ValidationError(Exception):
    """Raised when the payload cannot be stored without losing data."""

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        messages = '; '.join(f"{field}: {', '.join(msgs)}" for field, msgs in errors.items())
        super().__init__(messages)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    """Numeric coordinate or None; accepts 0 and "0"."""
    if value is None or value == '' or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _position(entry: Dict[str, Any]) -> int:
    value = entry.get('position')
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class ResourceStorageService:
    """
    Upsert engine for the editing UI.

    Args:
        session: Database session inside an open transaction
        ror_client: Optional RorClient used to name institutions known only by ROR id
    """

    def __init__(self, session, ror_client=None):
        self.session = session
        self.lookups = session.lookups
        self.resolver = EntityResolver(session, ror_client)

    def store(self, data: Dict[str, Any], user_id: Optional[int] = None) -> Tuple[Resource, bool]:
        """
        Store or update a resource.

        Args:
            data: Editor payload; ``resourceId`` selects update mode
            user_id: Acting user

        Returns:
            Tuple of (stored Resource, is_update)

        Raises:
            ValidationError: If submitted data would be lost or is unknown
            ConfigurationError: If the MainTitle title type is not seeded
        """
        resource_id = data.get('resourceId')
        is_update = bool(resource_id)
        existing = None

        if is_update:
            existing = self.session.lock_resource(resource_id)
            if existing is None:
                raise ValidationError({'resourceId': [f"Resource {resource_id} not found."]})

        resource = self._build_shell(data, existing, user_id)
        resource.titles = self._titles(data)
        resource.rights = self._licenses(data)
        resource.creators = self._creators(data)
        resource.contributors = self._contributors(data) + self._msl_laboratories(data)
        resource.descriptions = self._descriptions(data)
        resource.dates = self._dates(data, is_update)
        resource.subjects = self._subjects(data)
        resource.geo_locations = self._geo_locations(data)
        resource.related_identifiers = self._related_identifiers(data)
        resource.funding_references = self._funding_references(data)

        if is_update:
            self.session.update_resource(resource, keep_date_types=(DATE_TYPE_CREATED,))
        else:
            self.session.insert_resource(resource)

        logger.info(f"{'Updated' if is_update else 'Created'} resource {resource.id} by user {user_id}")
        return self.session.load_resource(resource.id), is_update

    # =========================================================================
    # Resource row
    # =========================================================================

    def _build_shell(self, data: Dict[str, Any], existing: Optional[Resource], user_id: Optional[int]) -> Resource:
        resource_type = self._resource_type(data.get('resourceType'))

        language = _text(data.get('language'))
        if language and not self.lookups.by_slug('languages', language):
            logger.warning(f"Unknown language code '{language}', storing resource without language")
            language = None

        year = data.get('year')
        try:
            year = int(year) if year not in (None, '') else None
        except (TypeError, ValueError):
            raise ValidationError({'year': [f"Invalid publication year: {year}"]})

        if existing is not None:
            publisher = existing.publisher
            created_by = existing.created_by_user_id
        else:
            publisher = self.session.get_default_publisher()
            created_by = user_id

        return Resource(
            id=existing.id if existing is not None else None,
            doi=_text(data.get('doi')),
            publication_year=year,
            version=_text(data.get('version')),
            resource_type_slug=resource_type['slug'],
            resource_type_name=resource_type['name'],
            language=language,
            publisher=publisher,
            created_by_user_id=created_by,
            updated_by_user_id=user_id,
        )

    def _resource_type(self, value: Any) -> Dict[str, Any]:
        if isinstance(value, int) and not isinstance(value, bool):
            row = self.lookups.by_id('resource_types', value)
        else:
            row = self.lookups.find('resource_types', _text(value))
        if row is None:
            raise ValidationError({'resourceType': [f"Unknown resource type: {value}"]})
        return row

    # =========================================================================
    # Titles, licenses
    # =========================================================================

    def _titles(self, data: Dict[str, Any]) -> List[Title]:
        main_title = self.lookups.by_slug('title_types', MAIN_TITLE)
        if main_title is None:
            raise ConfigurationError(
                'Title type "MainTitle" not found in database. Seed the title_types table first.'
            )

        titles = []
        for index, entry in enumerate(data.get('titles') or []):
            type_value = _text(entry.get('titleType'))
            if type_value is None or kebab_case(type_value) == 'main-title':
                slug = main_title['slug']
            else:
                slug = self.lookups.slug_for('title_types', type_value)
            if slug is None:
                raise ValidationError({
                    f"titles.{index}.titleType": ['Unknown title type. Please select a valid title type.']
                })
            titles.append(Title(value=entry.get('title'), title_type=slug, language=_text(entry.get('language'))))
        return titles

    def _licenses(self, data: Dict[str, Any]):
        identifiers = [i for i in (_text(v) for v in data.get('licenses') or []) if i]
        identifiers = list(dict.fromkeys(identifiers))
        found = self.session.find_rights_by_identifiers(identifiers)

        missing = [i for i in identifiers if i not in found]
        if missing:
            raise ValidationError({'licenses': [f"Some provided licenses are unknown: {', '.join(missing)}"]})
        return [found[i] for i in identifiers]

    # =========================================================================
    # Creators, contributors, laboratories
    # =========================================================================

    @staticmethod
    def _affiliations(entry: Dict[str, Any]) -> List[Affiliation]:
        return [
            Affiliation(
                name=parsed['name'],
                identifier=parsed['identifier'],
                identifier_scheme=parsed['identifier_scheme'],
            )
            for parsed in parse_affiliations_from_data(entry)
        ]

    def _person(self, entry: Dict[str, Any]):
        return self.resolver.resolve_person(entry.get('lastName'), entry.get('firstName'), entry.get('orcid'))

    def _creators(self, data: Dict[str, Any]) -> List[Creator]:
        creators = []
        for entry in data.get('authors') or []:
            if entry.get('type', 'person') == 'institution':
                ror_id = _text(entry.get('rorId'))
                agent = self.resolver.resolve_institution(
                    entry.get('institutionName'), ror_id, ROR_SCHEME if ror_id else None
                )
            else:
                agent = self._person(entry)

            creators.append(Creator(
                agent=agent,
                position=_position(entry),
                affiliations=self._affiliations(entry),
                email=_text(entry.get('email')),
                website=_text(entry.get('website')),
            ))
        return creators

    def _contributor_type(self, entry: Dict[str, Any]) -> str:
        """First role of the entry, falling back to "Other"."""
        roles = entry.get('roles') or []
        if isinstance(roles, list) and roles and isinstance(roles[0], str) and roles[0].strip():
            slug = self.lookups.slug_for('contributor_types', roles[0])
            if slug:
                return slug
            logger.warning(f"Unknown contributor role '{roles[0]}', using Other")
        return self.lookups.slug_for('contributor_types', 'Other') or 'Other'

    def _contributors(self, data: Dict[str, Any]) -> List[Contributor]:
        contributors = []
        for entry in data.get('contributors') or []:
            if entry.get('type', 'person') == 'institution':
                agent = self.resolver.resolve_institution(
                    entry.get('institutionName'), entry.get('identifier'), entry.get('identifierType')
                )
            else:
                agent = self._person(entry)

            contributors.append(Contributor(
                agent=agent,
                contributor_type=self._contributor_type(entry),
                position=_position(entry),
                affiliations=self._affiliations(entry),
            ))
        return contributors

    def _msl_laboratories(self, data: Dict[str, Any]) -> List[Contributor]:
        hosting = self.lookups.slug_for('contributor_types', HOSTING_INSTITUTION) or HOSTING_INSTITUTION
        laboratories = []
        for entry in data.get('mslLaboratories') or []:
            laboratory = self.resolver.resolve_laboratory(entry.get('identifier'), entry.get('name'))

            affiliations = []
            host_name = _text(entry.get('affiliation_name'))
            if host_name:
                host_ror = _text(entry.get('affiliation_ror'))
                affiliations.append(Affiliation(
                    name=host_name,
                    identifier=host_ror,
                    identifier_scheme=ROR_SCHEME if host_ror else None,
                ))

            try:
                position = int(entry.get('position') or 0)
            except (TypeError, ValueError):
                position = 0

            laboratories.append(Contributor(
                agent=laboratory,
                contributor_type=hosting,
                position=position,
                affiliations=affiliations,
            ))
        return laboratories

    # =========================================================================
    # Descriptions, dates, subjects
    # =========================================================================

    def _descriptions(self, data: Dict[str, Any]) -> List[Description]:
        descriptions = []
        for entry in data.get('descriptions') or []:
            type_value = entry.get('descriptionType')
            slug = self.lookups.slug_for('description_types', type_value)
            if slug is None:
                logger.warning(f"Unknown description type: {type_value or 'empty'}")
                raise ValidationError({
                    'descriptions': [f"Unknown description type: {type_value}. Please select a valid description type."]
                })
            # Per-description language is not part of the form; the resource language applies
            descriptions.append(Description(value=entry.get('description'), description_type=slug))
        return descriptions

    def _dates(self, data: Dict[str, Any], is_update: bool) -> List[ResourceDate]:
        dates = []
        for entry in data.get('dates') or []:
            type_value = _text(entry.get('dateType'))
            if kebab_case(type_value) in ('created', 'updated'):
                continue

            slug = self.lookups.slug_for('date_types', type_value)
            if slug is None:
                logger.warning(f"Unknown date type: {type_value}")
                raise ValidationError({'dates': [f"Unknown date type: {type_value}. Please select a valid date type."]})

            start = _text(entry.get('startDate'))
            end = _text(entry.get('endDate'))
            if start and end:
                resource_date = ResourceDate(date_type=slug, start_date=start, end_date=end)
            else:
                resource_date = ResourceDate(date_type=slug, date_value=start or end)
            resource_date.date_information = _text(entry.get('dateInformation'))
            dates.append(resource_date)

        system_type = DATE_TYPE_UPDATED if is_update else DATE_TYPE_CREATED
        system_slug = self.lookups.slug_for('date_types', system_type)
        if system_slug is not None:
            dates.append(ResourceDate(date_type=system_slug, date_value=date.today().isoformat()))
        return dates

    @staticmethod
    def _subjects(data: Dict[str, Any]) -> List[Subject]:
        subjects = []
        for keyword in data.get('freeKeywords') or []:
            value = _text(keyword)
            if value:
                subjects.append(Subject(value=value))

        for keyword in data.get('gcmdKeywords') or []:
            if keyword.get('id') and keyword.get('text') and keyword.get('scheme'):
                subjects.append(Subject(
                    value=keyword['text'],
                    subject_scheme=keyword['scheme'],
                    scheme_uri=keyword.get('schemeURI'),
                    value_uri=keyword['id'],
                ))
        return subjects

    # =========================================================================
    # Geo locations
    # =========================================================================

    @staticmethod
    def _polygon_points(raw_points: List[Any]) -> List[PolygonPoint]:
        valid = []
        rejected = []
        for index, point in enumerate(raw_points, start=1):
            if not isinstance(point, dict):
                rejected.append(f"Point {index}: not a valid coordinate pair")
                continue

            lon = _number(point.get('longitude', point.get('lon')))
            lat = _number(point.get('latitude', point.get('lat')))
            if lon is None or lat is None:
                rejected.append(f"Point {index}: missing or non-numeric coordinates")
                continue

            if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
                rejected.append(f"Point {index}: coordinates out of range (lat: {lat:.6f}, lon: {lon:.6f})")
                continue

            valid.append(PolygonPoint(longitude=lon, latitude=lat))

        if len(valid) < 3:
            message = f"Polygon requires at least 3 valid points, but only {len(valid)} valid point(s) found."
            if rejected:
                message += ' Rejected points: ' + '; '.join(rejected[:MAX_REPORTED_POINTS])
                if len(rejected) > MAX_REPORTED_POINTS:
                    message += f" and {len(rejected) - MAX_REPORTED_POINTS} more."
            raise ValidationError({'coverages': [message]})
        return valid

    def _geo_locations(self, data: Dict[str, Any]) -> List[GeoLocation]:
        geo_locations = []
        for coverage in data.get('spatialTemporalCoverages') or []:
            shape = coverage.get('type') or 'point'
            has_data = (
                _number(coverage.get('latMin')) is not None
                or _number(coverage.get('lonMin')) is not None
                or bool(coverage.get('polygonPoints'))
                or bool(coverage.get('description'))
            )
            if not has_data:
                continue

            geo = GeoLocation(place=_text(coverage.get('description')))
            if shape == 'polygon' and isinstance(coverage.get('polygonPoints'), list) and coverage['polygonPoints']:
                geo.polygon_points = self._polygon_points(coverage['polygonPoints'])
            elif shape == 'point':
                geo.point_longitude = _number(coverage.get('lonMin'))
                geo.point_latitude = _number(coverage.get('latMin'))
            elif shape != 'polygon':
                geo.west_bound_longitude = _number(coverage.get('lonMin'))
                geo.east_bound_longitude = _number(coverage.get('lonMax'))
                geo.south_bound_latitude = _number(coverage.get('latMin'))
                geo.north_bound_latitude = _number(coverage.get('latMax'))
            geo_locations.append(geo)
        return geo_locations

    # =========================================================================
    # Related identifiers, funding
    # =========================================================================

    def _related_identifiers(self, data: Dict[str, Any]) -> List[RelatedIdentifier]:
        related = []
        for index, entry in enumerate(data.get('relatedIdentifiers') or []):
            identifier = _text(entry.get('identifier'))
            if not identifier:
                continue

            identifier_type = self.lookups.slug_for('identifier_types', entry.get('identifierType'))
            relation_type = self.lookups.slug_for('relation_types', entry.get('relationType'))
            errors = {}
            if identifier_type is None:
                errors[f"relatedIdentifiers.{index}.identifierType"] = [
                    f"Unknown identifier type: {entry.get('identifierType')}"
                ]
            if relation_type is None:
                errors[f"relatedIdentifiers.{index}.relationType"] = [
                    f"Unknown relation type: {entry.get('relationType')}"
                ]
            if errors:
                raise ValidationError(errors)

            related.append(RelatedIdentifier(
                identifier=identifier,
                identifier_type=identifier_type,
                relation_type=relation_type,
                position=index,
            ))
        return related

    def _funding_references(self, data: Dict[str, Any]) -> List[FundingReference]:
        references = []
        for index, entry in enumerate(data.get('fundingReferences') or []):
            funder_name = _text(entry.get('funderName'))
            if not funder_name:
                continue

            identifier_type = None
            type_value = _text(entry.get('funderIdentifierType'))
            if type_value:
                row = self.lookups.find('funder_identifier_types', type_value)
                if row is None:
                    logger.warning(f"Unknown funder identifier type '{type_value}'")
                else:
                    identifier_type = row['name']

            references.append(FundingReference(
                funder_name=funder_name,
                funder_identifier=_text(entry.get('funderIdentifier')),
                funder_identifier_type=identifier_type,
                award_number=_text(entry.get('awardNumber')),
                award_uri=_text(entry.get('awardUri')),
                award_title=_text(entry.get('awardTitle')),
                position=index,
            ))
        return references
