"""Find-or-create resolution for persons, institutions and affiliations."""

from src.resolver.entity_resolver import (
    EntityResolver,
    parse_affiliations_from_data,
    affiliation_from_datacite,
    ORCID_SCHEME,
    ROR_SCHEME,
    ORCID_SCHEME_URI,
    ROR_SCHEME_URI,
)

__all__ = [
    'EntityResolver', 'parse_affiliations_from_data', 'affiliation_from_datacite',
    'ORCID_SCHEME', 'ROR_SCHEME', 'ORCID_SCHEME_URI', 'ROR_SCHEME_URI',
]
