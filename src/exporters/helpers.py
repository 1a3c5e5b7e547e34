"""
Shared building blocks for the DataCite JSON and XML exporters.

Everything here is read-only over the Resource aggregate: vocabulary
mappings, the publisher fallback chain, date formatting and the creator
list construction (including IGSN contributor promotion).
"""

import logging
from typing import List, Optional, Set, Tuple

from src.db.lookup_cache import kebab_case
from src.models import (
    AgentKind,
    Affiliation,
    IgsnMetadata,
    Person,
    Publisher,
    Resource,
    ResourceDate,
    Subject,
)

logger = logging.getLogger(__name__)


DATACITE_NAMESPACE = 'http://datacite.org/schema/kernel-4'
XSI_NAMESPACE = 'http://www.w3.org/2001/XMLSchema-instance'
XML_NAMESPACE = 'http://www.w3.org/XML/1998/namespace'
SCHEMA_LOCATION = 'http://datacite.org/schema/kernel-4 https://schema.datacite.org/meta/kernel-4.6/metadata.xsd'

DEFAULT_PUBLISHER_NAME = 'GFZ Data Services'
DEFAULT_LANGUAGE = 'en'

# Internal resource type names -> DataCite resourceTypeGeneral (4.6)
RESOURCE_TYPE_GENERAL_MAP = {
    'Audiovisual': 'Audiovisual',
    'Award': 'Award',
    'Book': 'Book',
    'Book Chapter': 'BookChapter',
    'Collection': 'Collection',
    'Computational Notebook': 'ComputationalNotebook',
    'Conference Paper': 'ConferencePaper',
    'Conference Proceeding': 'ConferenceProceeding',
    'Data Paper': 'DataPaper',
    'Dataset': 'Dataset',
    'Dissertation': 'Dissertation',
    'Event': 'Event',
    'Image': 'Image',
    'Interactive Resource': 'InteractiveResource',
    'Instrument': 'Instrument',
    'Journal': 'Journal',
    'Journal Article': 'JournalArticle',
    'Model': 'Model',
    'Output Management Plan': 'OutputManagementPlan',
    'Peer Review': 'PeerReview',
    'Physical Object': 'PhysicalObject',
    'Preprint': 'Preprint',
    'Project': 'Project',
    'Report': 'Report',
    'Service': 'Service',
    'Software': 'Software',
    'Sound': 'Sound',
    'Standard': 'Standard',
    'Study Registration': 'StudyRegistration',
    'Text': 'Text',
    'Workflow': 'Workflow',
    'Other': 'Other',
}

# Title type slugs (kebab-case) -> DataCite titleType
TITLE_TYPE_MAP = {
    'subtitle': 'Subtitle',
    'alternative-title': 'AlternativeTitle',
    'translated-title': 'TranslatedTitle',
    'other': 'Other',
}

SCHEME_URIS = {
    'ORCID': 'https://orcid.org',
    'ROR': 'https://ror.org',
    'ISNI': 'https://isni.org',
    'GRID': 'https://www.grid.ac',
}

IGSN_ALTERNATE_IDENTIFIER_TYPE = 'Local accession number'
IGSN_OTHER_NAME_IDENTIFIER_TYPE = 'Local sample name'

# Subject schemes used for IGSN sample vocabularies
IGSN_SUBJECT_SCHEMES = (
    ('classifications', 'Classification'),
    ('geological_ages', 'Geological age'),
    ('geological_units', 'Geological unit'),
)


def convert_title_type(title_type: Optional[str]) -> str:
    """Map a stored title type to DataCite, falling back to "Other"."""
    return TITLE_TYPE_MAP.get(kebab_case(title_type), 'Other')


def resource_type_name(resource: Resource) -> str:
    return resource.resource_type_name or 'Other'


def resource_type_general(type_name: Optional[str]) -> str:
    """Map a resource type display name to resourceTypeGeneral (unmapped: spaces stripped)."""
    type_name = type_name or 'Other'
    return RESOURCE_TYPE_GENERAL_MAP.get(type_name, type_name.replace(' ', ''))


def igsn_resource_type(metadata: IgsnMetadata) -> str:
    """Build the specific resourceType of a sample: "sample_type: material"."""
    parts = [part for part in (metadata.sample_type, metadata.material) if part]
    if not parts:
        return 'Physical Object'
    return ': '.join(parts)


def build_types(resource: Resource) -> Tuple[str, str]:
    """Return (resourceTypeGeneral, resourceType) for a resource."""
    type_name = resource_type_name(resource)
    general = resource_type_general(type_name)
    specific = type_name
    if general == 'PhysicalObject' and resource.igsn_metadata is not None:
        specific = igsn_resource_type(resource.igsn_metadata)
    return general, specific


def get_scheme_uri(scheme: Optional[str]) -> Optional[str]:
    if not scheme:
        return None
    return SCHEME_URIS.get(scheme.upper())


def resolve_publisher(resource: Resource, default_publisher: Optional[Publisher]) -> Optional[Publisher]:
    """Resource publisher, else the default publisher; None means use DEFAULT_PUBLISHER_NAME."""
    return resource.publisher or default_publisher


def resource_language(resource: Resource) -> Optional[str]:
    """Language code, defaulting to "en" for IGSN resources (their CSV carries none)."""
    if resource.language:
        return resource.language
    if resource.is_igsn:
        return DEFAULT_LANGUAGE
    return None


def format_date_value(resource_date: ResourceDate) -> Optional[str]:
    """
    Format a date for DataCite.

    Closed ranges become "start/end". Open-ended ranges are exported as the
    start date alone, since DataCite has no trailing open-range marker.
    """
    if resource_date.is_range:
        return f"{resource_date.start_date}/{resource_date.end_date}"
    if resource_date.is_open_ended_range:
        return resource_date.start_date
    value = resource_date.date_value or resource_date.start_date
    return value or None


def person_identity_keys(person: Person) -> List[str]:
    """Normalized name key plus ORCID key (if any) used to deduplicate creators."""
    name = f"{person.family_name or ''},{person.given_name or ''}".strip().lower()
    keys = [f"name:{name}"]
    if person.orcid:
        keys.append(f"orcid:{person.name_identifier}")
    return keys


def creator_entries(resource: Resource) -> List[Tuple[object, List[Affiliation]]]:
    """
    Build the ordered list of (agent, affiliations) exported as creators.

    For IGSN resources, person contributors are promoted to creators unless
    their normalized name or ORCID collides with a creator already listed.
    Two different people sharing a normalized name without ORCID are
    treated as one.
    """
    entries = []
    seen: Set[str] = set()

    for creator in resource.creators:
        agent = creator.agent
        if agent.kind is AgentKind.PERSON:
            seen.update(person_identity_keys(agent))
        entries.append((agent, creator.affiliations))

    if resource.is_igsn:
        for contributor in resource.contributors:
            agent = contributor.agent
            if agent.kind is not AgentKind.PERSON:
                continue
            keys = person_identity_keys(agent)
            if any(key in seen for key in keys):
                logger.debug(f"Skipping duplicate IGSN contributor {agent.display_name}")
                continue
            seen.update(keys)
            entries.append((agent, contributor.affiliations))

    return entries


def export_subjects(resource: Resource) -> List[Subject]:
    """Stored subjects plus IGSN classifications and geological ages/units."""
    subjects = list(resource.subjects)
    if resource.is_igsn:
        for attribute, scheme in IGSN_SUBJECT_SCHEMES:
            for value in getattr(resource, attribute):
                subjects.append(Subject(value=value, subject_scheme=scheme, language=None))
    return subjects
