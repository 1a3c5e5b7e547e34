"""
DataCite XML exporter (Metadata Schema 4.6).

Builds the document with lxml and serializes it as pretty-printed UTF-8.
Element order follows the kernel-4 XSD. Required containers (creators,
titles) always get at least one child so the document stays schema-valid.
"""

import logging
from typing import List, Optional

from lxml import etree

from src.exporters.helpers import (
    DATACITE_NAMESPACE,
    DEFAULT_PUBLISHER_NAME,
    SCHEMA_LOCATION,
    XML_NAMESPACE,
    XSI_NAMESPACE,
    build_types,
    convert_title_type,
    creator_entries,
    export_subjects,
    format_date_value,
    get_scheme_uri,
    resolve_publisher,
    resource_language,
)
from src.models import Affiliation, AgentKind, GeoLocation, Publisher, Resource

logger = logging.getLogger(__name__)


_NSMAP = {None: DATACITE_NAMESPACE, 'xsi': XSI_NAMESPACE}
_XML_LANG = f'{{{XML_NAMESPACE}}}lang'


def _format_number(value) -> str:
    """Render coordinates without a trailing ".0" for integral values."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class DataCiteXmlExporter:
    """Export a Resource aggregate to DataCite XML."""

    def __init__(self, default_publisher: Optional[Publisher] = None):
        self.default_publisher = default_publisher

    @staticmethod
    def _sub(parent, tag: str, text: Optional[str] = None, **attributes):
        """Append a namespaced child element; attributes with None values are skipped."""
        element = etree.SubElement(parent, f'{{{DATACITE_NAMESPACE}}}{tag}')
        if text is not None:
            element.text = str(text)
        for name, value in attributes.items():
            if value is not None and value != '':
                element.set(_XML_LANG if name == 'lang' else name, str(value))
        return element

    def build_tree(self, resource: Resource):
        """Build the <resource> element tree."""
        root = etree.Element(f'{{{DATACITE_NAMESPACE}}}resource', nsmap=_NSMAP)
        root.set(f'{{{XSI_NAMESPACE}}}schemaLocation', SCHEMA_LOCATION)

        self._sub(root, 'identifier', resource.doi or '', identifierType='DOI')
        self._build_creators(root, resource)
        self._build_titles(root, resource)
        self._build_publisher(root, resource)
        self._sub(root, 'publicationYear',
                  str(resource.publication_year) if resource.publication_year is not None else '')
        general, specific = build_types(resource)
        self._sub(root, 'resourceType', specific, resourceTypeGeneral=general)

        self._build_subjects(root, resource)
        self._build_contributors(root, resource)
        self._build_dates(root, resource)
        language = resource_language(resource)
        if language:
            self._sub(root, 'language', language)
        self._build_alternate_identifiers(root, resource)
        self._build_related_identifiers(root, resource)
        self._build_simple_list(root, 'sizes', 'size', resource.sizes)
        self._build_simple_list(root, 'formats', 'format', resource.formats)
        if resource.version:
            self._sub(root, 'version', resource.version)
        self._build_rights_list(root, resource)
        self._build_descriptions(root, resource)
        self._build_geo_locations(root, resource)
        self._build_funding_references(root, resource)
        return root

    def export(self, resource: Resource) -> str:
        """
        Export a resource.

        Args:
            resource: Loaded resource aggregate (not modified)

        Returns:
            XML document as a UTF-8 string with XML declaration
        """
        root = self.build_tree(resource)
        xml_bytes = etree.tostring(root, pretty_print=True, xml_declaration=True, encoding='UTF-8')
        return xml_bytes.decode('utf-8')

    # =========================================================================
    # Agents
    # =========================================================================

    def _append_affiliations(self, element, affiliations: List[Affiliation]):
        for affiliation in affiliations:
            attributes = {}
            if affiliation.identifier:
                attributes = {
                    'affiliationIdentifier': affiliation.identifier,
                    'affiliationIdentifierScheme': affiliation.identifier_scheme or 'ROR',
                    'schemeURI': affiliation.scheme_uri,
                }
            self._sub(element, 'affiliation', affiliation.name, **attributes)

    def _append_name_identifier(self, element, agent, default_scheme: str, with_scheme_uri: bool = True):
        if not agent.name_identifier:
            return
        scheme = agent.name_identifier_scheme or default_scheme
        scheme_uri = None
        if with_scheme_uri:
            scheme_uri = agent.scheme_uri or get_scheme_uri(scheme)
        self._sub(element, 'nameIdentifier', agent.name_identifier,
                  nameIdentifierScheme=scheme, schemeURI=scheme_uri)

    def _append_agent(self, element, name_tag: str, agent):
        if agent.kind is AgentKind.PERSON:
            self._sub(element, name_tag, agent.display_name, nameType='Personal')
            if agent.given_name:
                self._sub(element, 'givenName', agent.given_name)
            if agent.family_name:
                self._sub(element, 'familyName', agent.family_name)
            self._append_name_identifier(element, agent, 'ORCID')
        elif agent.kind is AgentKind.INSTITUTION:
            self._sub(element, name_tag, agent.display_name, nameType='Organizational')
            self._append_name_identifier(element, agent, 'ROR')
        else:
            raise ValueError(f"Unsupported agent kind: {agent.kind}")

    def _build_creators(self, root, resource: Resource):
        creators = self._sub(root, 'creators')
        entries = creator_entries(resource)
        for agent, affiliations in entries:
            creator = self._sub(creators, 'creator')
            self._append_agent(creator, 'creatorName', agent)
            self._append_affiliations(creator, affiliations)

        if not entries:
            creator = self._sub(creators, 'creator')
            self._sub(creator, 'creatorName', 'Unknown', nameType='Personal')

    def _build_contributors(self, root, resource: Resource):
        if not resource.contributors:
            return
        contributors = self._sub(root, 'contributors')
        for contributor in resource.contributors:
            agent = contributor.agent
            if agent.kind is AgentKind.INSTITUTION and agent.is_laboratory:
                element = self._sub(contributors, 'contributor', contributorType='HostingInstitution')
                self._sub(element, 'contributorName', agent.name or 'Unknown Laboratory', nameType='Organizational')
                self._append_name_identifier(element, agent, 'labid', with_scheme_uri=False)
            else:
                element = self._sub(contributors, 'contributor',
                                    contributorType=contributor.contributor_type or 'Other')
                self._append_agent(element, 'contributorName', agent)
            self._append_affiliations(element, contributor.affiliations)

    # =========================================================================
    # Required properties
    # =========================================================================

    def _build_titles(self, root, resource: Resource):
        titles = self._sub(root, 'titles')
        lang = resource_language(resource)
        for title in resource.titles:
            title_type = None if title.is_main_title else convert_title_type(title.title_type)
            self._sub(titles, 'title', title.value, lang=lang, titleType=title_type)
        if not resource.titles:
            self._sub(titles, 'title', 'Untitled')

    def _build_publisher(self, root, resource: Resource):
        publisher = resolve_publisher(resource, self.default_publisher)
        if publisher is None:
            self._sub(root, 'publisher', DEFAULT_PUBLISHER_NAME)
            return

        attributes = {}
        if publisher.identifier:
            attributes = {
                'publisherIdentifier': publisher.identifier,
                'publisherIdentifierScheme': publisher.identifier_scheme or 'ROR',
                'schemeURI': publisher.scheme_uri,
            }
        self._sub(root, 'publisher', publisher.name, lang=publisher.language, **attributes)

    # =========================================================================
    # Optional properties
    # =========================================================================

    def _build_subjects(self, root, resource: Resource):
        subjects = export_subjects(resource)
        if not subjects:
            return
        container = self._sub(root, 'subjects')
        for subject in subjects:
            self._sub(
                container, 'subject', subject.value,
                subjectScheme=subject.subject_scheme,
                schemeURI=subject.scheme_uri,
                valueURI=subject.value_uri,
                classificationCode=subject.classification_code,
                lang=subject.language,
            )

    def _build_dates(self, root, resource: Resource):
        entries = []
        for resource_date in resource.dates:
            if not resource_date.date_type:
                continue
            value = format_date_value(resource_date)
            if value is None:
                continue
            entries.append((resource_date, value))
        if not entries:
            return

        container = self._sub(root, 'dates')
        for resource_date, value in entries:
            self._sub(container, 'date', value, dateType=resource_date.date_type,
                      dateInformation=resource_date.date_information)

    def _build_alternate_identifiers(self, root, resource: Resource):
        if not resource.alternate_identifiers:
            return
        container = self._sub(root, 'alternateIdentifiers')
        for alternate in resource.alternate_identifiers:
            self._sub(container, 'alternateIdentifier', alternate.value,
                      alternateIdentifierType=alternate.identifier_type)

    def _build_related_identifiers(self, root, resource: Resource):
        if not resource.related_identifiers:
            return
        container = self._sub(root, 'relatedIdentifiers')
        for related in resource.related_identifiers:
            self._sub(
                container, 'relatedIdentifier', related.identifier,
                relatedIdentifierType=related.identifier_type or 'DOI',
                relationType=related.relation_type or 'References',
                resourceTypeGeneral=related.resource_type_general,
                relatedMetadataScheme=related.related_metadata_scheme,
                schemeURI=related.scheme_uri,
                schemeType=related.scheme_type,
            )

    def _build_simple_list(self, root, container_tag: str, item_tag: str, values: List[str]):
        if not values:
            return
        container = self._sub(root, container_tag)
        for value in values:
            self._sub(container, item_tag, value)

    def _build_rights_list(self, root, resource: Resource):
        if not resource.rights:
            return
        container = self._sub(root, 'rightsList')
        lang = resource_language(resource)
        for right in resource.rights:
            attributes = {'rightsURI': right.uri, 'lang': lang}
            if right.identifier:
                attributes.update({
                    'rightsIdentifier': right.identifier,
                    'rightsIdentifierScheme': 'SPDX',
                    'schemeURI': right.scheme_uri,
                })
            self._sub(container, 'rights', right.name, **attributes)

    def _build_descriptions(self, root, resource: Resource):
        if not resource.descriptions:
            return
        lang = resource_language(resource)
        container = self._sub(root, 'descriptions')
        for description in resource.descriptions:
            self._sub(container, 'description', description.value,
                      descriptionType=description.description_type or 'Abstract', lang=lang)

    def _append_point(self, parent, tag: str, longitude, latitude):
        point = self._sub(parent, tag)
        self._sub(point, 'pointLongitude', _format_number(longitude))
        self._sub(point, 'pointLatitude', _format_number(latitude))

    def _build_geo_location(self, container, geo: GeoLocation) -> bool:
        if not (geo.place or geo.has_point or geo.has_box or geo.has_polygon):
            return False

        element = self._sub(container, 'geoLocation')
        if geo.place:
            self._sub(element, 'geoLocationPlace', geo.place)
        if geo.has_point:
            self._append_point(element, 'geoLocationPoint', geo.point_longitude, geo.point_latitude)
        if geo.has_box:
            box = self._sub(element, 'geoLocationBox')
            self._sub(box, 'westBoundLongitude', _format_number(geo.west_bound_longitude))
            self._sub(box, 'eastBoundLongitude', _format_number(geo.east_bound_longitude))
            self._sub(box, 'southBoundLatitude', _format_number(geo.south_bound_latitude))
            self._sub(box, 'northBoundLatitude', _format_number(geo.north_bound_latitude))
        if geo.has_polygon:
            polygon = self._sub(element, 'geoLocationPolygon')
            for point in geo.polygon_points:
                self._append_point(polygon, 'polygonPoint', point.longitude, point.latitude)
            if geo.has_in_polygon_point:
                self._append_point(polygon, 'inPolygonPoint',
                                   geo.in_polygon_point_longitude, geo.in_polygon_point_latitude)
        return True

    def _build_geo_locations(self, root, resource: Resource):
        if not resource.geo_locations:
            return
        container = etree.Element(f'{{{DATACITE_NAMESPACE}}}geoLocations')
        has_content = False
        for geo in resource.geo_locations:
            has_content = self._build_geo_location(container, geo) or has_content
        if has_content:
            root.append(container)

    def _build_funding_references(self, root, resource: Resource):
        if not resource.funding_references:
            return
        container = self._sub(root, 'fundingReferences')
        for funding in resource.funding_references:
            element = self._sub(container, 'fundingReference')
            self._sub(element, 'funderName', funding.funder_name)
            if funding.funder_identifier:
                self._sub(element, 'funderIdentifier', funding.funder_identifier,
                          funderIdentifierType=funding.funder_identifier_type or 'Other',
                          schemeURI=funding.scheme_uri)
            if funding.award_number or funding.award_uri:
                # awardURI is an attribute of awardNumber, which may stay empty
                self._sub(element, 'awardNumber', funding.award_number or '', awardURI=funding.award_uri)
            if funding.award_title:
                self._sub(element, 'awardTitle', funding.award_title)
