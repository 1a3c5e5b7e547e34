"""Resource aggregate and agent records."""

from src.models.agents import Agent, AgentKind, Institution, Person, LABORATORY_SCHEME
from src.models.resource import (
    Affiliation,
    AlternateIdentifier,
    Contributor,
    Creator,
    Description,
    FundingReference,
    GeoLocation,
    IgsnMetadata,
    PolygonPoint,
    Publisher,
    RelatedIdentifier,
    Resource,
    ResourceDate,
    Right,
    Subject,
    Title,
    MAIN_TITLE,
    DATE_TYPE_CREATED,
    DATE_TYPE_UPDATED,
)

__all__ = [
    'Agent', 'AgentKind', 'Institution', 'Person', 'LABORATORY_SCHEME',
    'Affiliation', 'AlternateIdentifier', 'Contributor', 'Creator', 'Description',
    'FundingReference', 'GeoLocation', 'IgsnMetadata', 'PolygonPoint', 'Publisher',
    'RelatedIdentifier', 'Resource', 'ResourceDate', 'Right', 'Subject', 'Title',
    'MAIN_TITLE', 'DATE_TYPE_CREATED', 'DATE_TYPE_UPDATED',
]
