"""
DataCite JSON exporter (Metadata Schema 4.5 with 4.6 extensions).

Produces the REST API shape ``{"data": {"type": "dois", "attributes": {...}}}``.
Optional properties are only emitted when they carry data; draft resources
without a DOI export without ``doi`` and ``identifiers``.
"""

import logging
from typing import Any, Dict, List, Optional

from src.exporters.helpers import (
    DEFAULT_PUBLISHER_NAME,
    build_types,
    convert_title_type,
    creator_entries,
    export_subjects,
    format_date_value,
    resolve_publisher,
    resource_language,
)
from src.models import (
    Affiliation,
    AgentKind,
    FundingReference,
    GeoLocation,
    Institution,
    Person,
    Publisher,
    Resource,
)

logger = logging.getLogger(__name__)


SCHEMA_VERSION = 'http://datacite.org/schema/kernel-4'


class DataCiteJsonExporter:
    """Export a Resource aggregate to DataCite JSON."""

    def __init__(self, default_publisher: Optional[Publisher] = None):
        """
        Args:
            default_publisher: Publisher used when a resource has none
        """
        self.default_publisher = default_publisher

    def export(self, resource: Resource) -> Dict[str, Any]:
        """
        Export a resource.

        Args:
            resource: Loaded resource aggregate (not modified)

        Returns:
            DataCite JSON document as a dict
        """
        return {
            'data': {
                'type': 'dois',
                'attributes': self._build_attributes(resource),
            }
        }

    def _build_attributes(self, resource: Resource) -> Dict[str, Any]:
        attributes: Dict[str, Any] = {
            'titles': self._build_titles(resource),
            'publisher': self._build_publisher(resource),
            'publicationYear': str(resource.publication_year) if resource.publication_year is not None else '',
            'types': self._build_types(resource),
            'creators': self._build_creators(resource),
            'schemaVersion': SCHEMA_VERSION,
        }

        if resource.doi:
            attributes['identifiers'] = [{'identifier': resource.doi, 'identifierType': 'DOI'}]
            attributes['doi'] = resource.doi

        optional = (
            ('contributors', self._build_contributors(resource)),
            ('subjects', self._build_subjects(resource)),
            ('descriptions', self._build_descriptions(resource)),
            ('dates', self._build_dates(resource)),
            ('language', resource_language(resource)),
            ('version', resource.version),
            ('rightsList', self._build_rights_list(resource)),
            ('geoLocations', self._build_geo_locations(resource)),
            ('alternateIdentifiers', self._build_alternate_identifiers(resource)),
            ('relatedIdentifiers', self._build_related_identifiers(resource)),
            ('sizes', list(resource.sizes)),
            ('formats', list(resource.formats)),
            ('fundingReferences', [self._build_funding_reference(f) for f in resource.funding_references]),
        )
        for key, value in optional:
            if value:
                attributes[key] = value

        return attributes

    # =========================================================================
    # Required properties
    # =========================================================================

    def _build_titles(self, resource: Resource) -> List[Dict[str, str]]:
        lang = resource_language(resource)
        titles = []
        for title in resource.titles:
            data = {'title': title.value}
            # Main titles carry no titleType
            if not title.is_main_title:
                data['titleType'] = convert_title_type(title.title_type)
            if lang:
                data['lang'] = lang
            titles.append(data)
        return titles

    def _build_publisher(self, resource: Resource) -> Dict[str, str]:
        publisher = resolve_publisher(resource, self.default_publisher)
        if publisher is None:
            return {'name': DEFAULT_PUBLISHER_NAME}

        data = {'name': publisher.name}
        if publisher.identifier:
            data['publisherIdentifier'] = publisher.identifier
            data['publisherIdentifierScheme'] = publisher.identifier_scheme or 'ROR'
            if publisher.scheme_uri:
                data['schemeUri'] = publisher.scheme_uri
        if publisher.language:
            data['lang'] = publisher.language
        return data

    @staticmethod
    def _build_types(resource: Resource) -> Dict[str, str]:
        general, specific = build_types(resource)
        return {'resourceTypeGeneral': general, 'resourceType': specific}

    def _build_creators(self, resource: Resource) -> List[Dict[str, Any]]:
        creators = [self._build_agent(agent, affiliations) for agent, affiliations in creator_entries(resource)]
        if not creators:
            creators.append({'name': 'Unknown', 'nameType': 'Personal'})
        return creators

    # =========================================================================
    # Agents
    # =========================================================================

    @staticmethod
    def _name_identifier(agent, default_scheme: str) -> Optional[Dict[str, str]]:
        if not agent.name_identifier:
            return None
        data = {
            'nameIdentifier': agent.name_identifier,
            'nameIdentifierScheme': agent.name_identifier_scheme or default_scheme,
        }
        if agent.scheme_uri:
            data['schemeUri'] = agent.scheme_uri
        return data

    @staticmethod
    def _build_affiliation(affiliation: Affiliation) -> Dict[str, str]:
        data = {'name': affiliation.name}
        if affiliation.identifier:
            data['affiliationIdentifier'] = affiliation.identifier
            data['affiliationIdentifierScheme'] = affiliation.identifier_scheme or 'ROR'
            if affiliation.scheme_uri:
                data['schemeUri'] = affiliation.scheme_uri
        return data

    def _build_agent(self, agent, affiliations: List[Affiliation]) -> Dict[str, Any]:
        if agent.kind is AgentKind.PERSON:
            data = self._build_person(agent)
        elif agent.kind is AgentKind.INSTITUTION:
            data = self._build_institution(agent)
        else:
            raise ValueError(f"Unsupported agent kind: {agent.kind}")

        if affiliations:
            data['affiliation'] = [self._build_affiliation(a) for a in affiliations]
        return data

    def _build_person(self, person: Person) -> Dict[str, Any]:
        data: Dict[str, Any] = {'name': person.display_name, 'nameType': 'Personal'}
        if person.given_name:
            data['givenName'] = person.given_name
        if person.family_name:
            data['familyName'] = person.family_name
        identifier = self._name_identifier(person, 'ORCID')
        if identifier:
            data['nameIdentifiers'] = [identifier]
        return data

    def _build_institution(self, institution: Institution) -> Dict[str, Any]:
        data: Dict[str, Any] = {'name': institution.display_name, 'nameType': 'Organizational'}
        identifier = self._name_identifier(institution, 'ROR')
        if identifier:
            data['nameIdentifiers'] = [identifier]
        return data

    def _build_contributors(self, resource: Resource) -> List[Dict[str, Any]]:
        contributors = []
        for contributor in resource.contributors:
            agent = contributor.agent
            if agent.kind is AgentKind.INSTITUTION and agent.is_laboratory:
                data = {
                    'name': agent.name or 'Unknown Laboratory',
                    'nameType': 'Organizational',
                    'contributorType': 'HostingInstitution',
                }
                if agent.name_identifier:
                    data['nameIdentifiers'] = [{
                        'nameIdentifier': agent.name_identifier,
                        'nameIdentifierScheme': agent.name_identifier_scheme,
                    }]
                if contributor.affiliations:
                    data['affiliation'] = [self._build_affiliation(a) for a in contributor.affiliations]
                contributors.append(data)
                continue

            data = self._build_agent(agent, contributor.affiliations)
            data['contributorType'] = contributor.contributor_type or 'Other'
            contributors.append(data)
        return contributors

    # =========================================================================
    # Optional properties
    # =========================================================================

    @staticmethod
    def _build_subjects(resource: Resource) -> List[Dict[str, str]]:
        subjects = []
        for subject in export_subjects(resource):
            data = {'subject': subject.value}
            if subject.subject_scheme:
                data['subjectScheme'] = subject.subject_scheme
            if subject.scheme_uri:
                data['schemeUri'] = subject.scheme_uri
            if subject.value_uri:
                data['valueUri'] = subject.value_uri
            if subject.classification_code:
                data['classificationCode'] = subject.classification_code
            if subject.language:
                data['lang'] = subject.language
            subjects.append(data)
        return subjects

    @staticmethod
    def _build_descriptions(resource: Resource) -> List[Dict[str, str]]:
        lang = resource_language(resource)
        descriptions = []
        for description in resource.descriptions:
            data = {
                'description': description.value,
                'descriptionType': description.description_type or 'Other',
            }
            if lang:
                data['lang'] = lang
            descriptions.append(data)
        return descriptions

    @staticmethod
    def _build_dates(resource: Resource) -> List[Dict[str, str]]:
        dates = []
        for resource_date in resource.dates:
            if not resource_date.date_type:
                continue
            value = format_date_value(resource_date)
            if value is None:
                continue
            data = {'dateType': resource_date.date_type, 'date': value}
            if resource_date.date_information:
                data['dateInformation'] = resource_date.date_information
            dates.append(data)
        return dates

    @staticmethod
    def _build_rights_list(resource: Resource) -> List[Dict[str, str]]:
        lang = resource_language(resource)
        rights_list = []
        for right in resource.rights:
            data = {'rights': right.name}
            if right.uri:
                data['rightsUri'] = right.uri
            if right.identifier:
                data['rightsIdentifier'] = right.identifier
                data['rightsIdentifierScheme'] = 'SPDX'
                if right.scheme_uri:
                    data['schemeUri'] = right.scheme_uri
            if lang:
                data['lang'] = lang
            rights_list.append(data)
        return rights_list

    @staticmethod
    def _build_geo_location(geo: GeoLocation) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if geo.place:
            data['geoLocationPlace'] = geo.place
        if geo.has_point:
            data['geoLocationPoint'] = {
                'pointLongitude': geo.point_longitude,
                'pointLatitude': geo.point_latitude,
            }
        if geo.has_box:
            data['geoLocationBox'] = {
                'westBoundLongitude': geo.west_bound_longitude,
                'eastBoundLongitude': geo.east_bound_longitude,
                'southBoundLatitude': geo.south_bound_latitude,
                'northBoundLatitude': geo.north_bound_latitude,
            }
        if geo.has_polygon:
            polygon: Dict[str, Any] = {
                'polygonPoints': [
                    {'pointLongitude': p.longitude, 'pointLatitude': p.latitude}
                    for p in geo.polygon_points
                ]
            }
            if geo.has_in_polygon_point:
                polygon['inPolygonPoint'] = {
                    'pointLongitude': geo.in_polygon_point_longitude,
                    'pointLatitude': geo.in_polygon_point_latitude,
                }
            data['geoLocationPolygon'] = polygon
        return data

    def _build_geo_locations(self, resource: Resource) -> List[Dict[str, Any]]:
        geo_locations = []
        for geo in resource.geo_locations:
            data = self._build_geo_location(geo)
            if data:
                geo_locations.append(data)
        return geo_locations

    @staticmethod
    def _build_alternate_identifiers(resource: Resource) -> List[Dict[str, str]]:
        return [
            {'alternateIdentifier': a.value, 'alternateIdentifierType': a.identifier_type}
            for a in resource.alternate_identifiers
        ]

    @staticmethod
    def _build_related_identifiers(resource: Resource) -> List[Dict[str, str]]:
        related_identifiers = []
        for related in resource.related_identifiers:
            data = {
                'relatedIdentifier': related.identifier,
                'relatedIdentifierType': related.identifier_type or 'DOI',
                'relationType': related.relation_type or 'References',
            }
            if related.resource_type_general:
                data['resourceTypeGeneral'] = related.resource_type_general
            if related.related_metadata_scheme:
                data['relatedMetadataScheme'] = related.related_metadata_scheme
            if related.scheme_uri:
                data['schemeUri'] = related.scheme_uri
            if related.scheme_type:
                data['schemeType'] = related.scheme_type
            related_identifiers.append(data)
        return related_identifiers

    @staticmethod
    def _build_funding_reference(funding: FundingReference) -> Dict[str, str]:
        data = {'funderName': funding.funder_name}
        if funding.funder_identifier:
            data['funderIdentifier'] = funding.funder_identifier
            data['funderIdentifierType'] = funding.funder_identifier_type or 'Other'
            if funding.scheme_uri:
                data['schemeUri'] = funding.scheme_uri
        if funding.award_number:
            data['awardNumber'] = funding.award_number
        if funding.award_uri:
            data['awardUri'] = funding.award_uri
        if funding.award_title:
            data['awardTitle'] = funding.award_title
        return data
