"""
Entity resolution (find-or-create) for persons, institutions and affiliations.

Persons are matched by ORCID first, then by (family_name, given_name) where a
missing given name only matches records that also lack one. Institutions are
matched by (identifier, scheme), then identifier alone, then by name among
records that carry no identifier. Matched records are never overwritten;
the only mutation is attaching an identifier to a record that has none.
"""

import logging
from typing import Any, Dict, List, Optional

from src.models import Affiliation, Institution, Person, LABORATORY_SCHEME

logger = logging.getLogger(__name__)


ORCID_SCHEME = 'ORCID'
ROR_SCHEME = 'ROR'
ORCID_SCHEME_URI = 'https://orcid.org'
ROR_SCHEME_URI = 'https://ror.org'


def _clean(value: Any) -> Optional[str]:
    """Strip strings and turn empty values into None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class EntityResolver:
    """
    Find-or-create logic on top of a session.

    The session must provide the person/institution finders and inserts of
    ``MySQLSession``. Lookups are not locked; concurrent first-time
    submissions of the same new author may create two rows.

    An optional ``ror_client`` (see RorClient) supplies the name of an
    institution submitted with a ROR identifier but without a name.
    """

    def __init__(self, session, ror_client=None):
        self.session = session
        self.ror_client = ror_client

    def resolve_person(
        self,
        family_name: Optional[str],
        given_name: Optional[str] = None,
        orcid: Optional[str] = None,
        scheme_uri: Optional[str] = None
    ) -> Person:
        """
        Find or create a person.

        Args:
            family_name: Family name (may be None for ORCID-only candidates)
            given_name: Given name; None only matches records without one
            orcid: ORCID identifier (bare or URL form, stored as given)
            scheme_uri: Scheme URI stored with a new or backfilled ORCID

        Returns:
            Existing or newly created Person
        """
        family_name = _clean(family_name)
        given_name = _clean(given_name)
        orcid = _clean(orcid)

        if orcid:
            existing = self.session.find_person_by_identifier(orcid, ORCID_SCHEME)
            if existing:
                logger.debug(f"Matched person {existing.id} by ORCID {orcid}")
                return existing

        if family_name:
            existing = self.session.find_person_by_name(family_name, given_name)
            if existing:
                if orcid and not existing.name_identifier:
                    self.session.update_person_identifier(existing.id, orcid, ORCID_SCHEME, scheme_uri)
                    existing.name_identifier = orcid
                    existing.name_identifier_scheme = ORCID_SCHEME
                    existing.scheme_uri = scheme_uri
                    logger.info(f"Attached ORCID {orcid} to person {existing.id}")
                return existing

        person = Person(
            family_name=family_name,
            given_name=given_name,
            name_identifier=orcid,
            name_identifier_scheme=ORCID_SCHEME if orcid else None,
            scheme_uri=scheme_uri if orcid else None,
        )
        return self.session.insert_person(person)

    def resolve_institution(
        self,
        name: Optional[str],
        identifier: Optional[str] = None,
        scheme: Optional[str] = None,
        scheme_uri: Optional[str] = None
    ) -> Institution:
        """
        Find or create an institution.

        Args:
            name: Institution name; when missing it is looked up by ROR id,
                else "Unknown Institution"
            identifier: External identifier (ROR id, lab id, ...)
            scheme: Identifier scheme
            scheme_uri: Scheme URI

        Returns:
            Existing or newly created Institution
        """
        identifier = _clean(identifier)
        scheme = _clean(scheme)
        name = _clean(name)
        if name is None and identifier and self.ror_client is not None and (scheme or ROR_SCHEME).upper() == ROR_SCHEME:
            name = self.ror_client.resolve_organization_name(identifier)
        name = name or 'Unknown Institution'

        if identifier:
            if scheme:
                existing = self.session.find_institution_by_identifier(identifier, scheme)
                if existing:
                    return existing
            existing = self.session.find_institution_by_identifier(identifier)
            if existing:
                return existing

        existing = self.session.find_institution_by_name_without_identifier(name)
        if existing:
            if identifier:
                self.session.update_institution_identifier(existing.id, identifier, scheme, scheme_uri)
                existing.name_identifier = identifier
                existing.name_identifier_scheme = scheme
                existing.scheme_uri = scheme_uri
                logger.info(f"Attached identifier {identifier} to institution {existing.id}")
            return existing

        institution = Institution(
            name=name,
            name_identifier=identifier,
            name_identifier_scheme=scheme if identifier else None,
            scheme_uri=scheme_uri if identifier else None,
        )
        return self.session.insert_institution(institution)

    def resolve_laboratory(self, identifier: Optional[str], name: Optional[str]) -> Institution:
        """Find or create an MSL laboratory (institution with scheme "labid")."""
        return self.resolve_institution(name, identifier, LABORATORY_SCHEME)


def parse_affiliations_from_data(data: Dict[str, Any]) -> List[Dict[str, Optional[str]]]:
    """
    Parse the affiliation list of an edit-form author or contributor.

    Args:
        data: Payload entry with an ``affiliations`` list of {value, rorId}

    Returns:
        List of {name, identifier, identifier_scheme}; scheme is "ROR" when
        an identifier is present. Empty and non-dict entries are dropped.
    """
    result = []
    for entry in data.get('affiliations') or []:
        if not isinstance(entry, dict):
            continue
        name = _clean(entry.get('value'))
        if not name:
            continue
        identifier = _clean(entry.get('rorId'))
        result.append({
            'name': name,
            'identifier': identifier,
            'identifier_scheme': ROR_SCHEME if identifier else None,
        })
    return result


def affiliation_from_datacite(raw: Any) -> Optional[Affiliation]:
    """
    Build an Affiliation from a DataCite affiliation entry.

    DataCite returns affiliations either as plain strings or as objects with
    ``name``, ``affiliationIdentifier``, ``affiliationIdentifierScheme`` and
    ``schemeUri``.
    """
    if isinstance(raw, str):
        name = _clean(raw)
        return Affiliation(name=name) if name else None
    if isinstance(raw, dict):
        name = _clean(raw.get('name'))
        if not name:
            return None
        return Affiliation(
            name=name,
            identifier=_clean(raw.get('affiliationIdentifier')),
            identifier_scheme=_clean(raw.get('affiliationIdentifierScheme')),
            scheme_uri=_clean(raw.get('schemeUri')),
        )
    return None
