"""Shared fixtures: an in-memory stand-in for MySQLSession."""

import copy
import itertools
from contextlib import contextmanager

import pytest

from src.db.lookup_cache import LookupCache, LOOKUP_TABLES
from src.models import AgentKind, Publisher, Right


def _rows(*entries):
    """Build lookup rows from (slug, name) pairs, numbering ids from 1."""
    return [{'id': i, 'slug': slug, 'name': name} for i, (slug, name) in enumerate(entries, start=1)]


LOOKUP_ROWS = {
    'resource_types': _rows(
        ('dataset', 'Dataset'),
        ('physical-object', 'Physical Object'),
        ('book-chapter', 'Book Chapter'),
        ('text', 'Text'),
        ('software', 'Software'),
        ('other', 'Other'),
    ),
    'title_types': _rows(
        ('MainTitle', 'Main Title'),
        ('Subtitle', 'Subtitle'),
        ('AlternativeTitle', 'Alternative Title'),
        ('TranslatedTitle', 'Translated Title'),
        ('Other', 'Other'),
    ),
    'date_types': _rows(
        ('Accepted', 'Accepted'),
        ('Available', 'Available'),
        ('Collected', 'Collected'),
        ('Created', 'Created'),
        ('Issued', 'Issued'),
        ('Updated', 'Updated'),
        ('Coverage', 'Coverage'),
        ('Other', 'Other'),
    ),
    'description_types': _rows(
        ('Abstract', 'Abstract'),
        ('Methods', 'Methods'),
        ('SeriesInformation', 'Series Information'),
        ('TableOfContents', 'Table of Contents'),
        ('TechnicalInfo', 'Technical Info'),
        ('Other', 'Other'),
    ),
    'contributor_types': _rows(
        ('ContactPerson', 'Contact Person'),
        ('DataCollector', 'Data Collector'),
        ('DataCurator', 'Data Curator'),
        ('Editor', 'Editor'),
        ('HostingInstitution', 'Hosting Institution'),
        ('ProjectLeader', 'Project Leader'),
        ('Researcher', 'Researcher'),
        ('Sponsor', 'Sponsor'),
        ('Other', 'Other'),
    ),
    'identifier_types': _rows(
        ('DOI', 'DOI'),
        ('URL', 'URL'),
        ('IGSN', 'IGSN'),
        ('Handle', 'Handle'),
    ),
    'relation_types': _rows(
        ('IsPartOf', 'Is Part Of'),
        ('References', 'References'),
        ('IsRelatedTo', 'Is Related To'),
        ('Cites', 'Cites'),
        ('IsCitedBy', 'Is Cited By'),
        ('HasPart', 'Has Part'),
        ('IsSupplementTo', 'Is Supplement To'),
    ),
    'funder_identifier_types': _rows(
        ('crossref-funder-id', 'Crossref Funder ID'),
        ('ror', 'ROR'),
        ('isni', 'ISNI'),
        ('grid', 'GRID'),
        ('other', 'Other'),
    ),
    'languages': _rows(
        ('en', 'English'),
        ('de', 'German'),
    ),
}


class InMemorySession:
    """
    Dict-backed implementation of the MySQLSession query surface.

    Stored objects are deep copies, so services only see changes made through
    the session methods, as with a real database.
    """

    def __init__(self, lookup_rows=None):
        self.lookup_rows = copy.deepcopy(lookup_rows if lookup_rows is not None else LOOKUP_ROWS)
        self.lookups = LookupCache(self)
        self.persons = {}
        self.institutions = {}
        self.publishers = {}
        self.rights = {}
        self.resources = {}
        self.locked = []
        self._ids = itertools.count(1)

    def _next_id(self):
        return next(self._ids)

    @contextmanager
    def savepoint(self, name='row'):
        snapshot = copy.deepcopy((self.persons, self.institutions, self.publishers, self.resources))
        try:
            yield self
        except Exception:
            self.persons, self.institutions, self.publishers, self.resources = snapshot
            raise

    def fetch_lookup_rows(self, table):
        if table not in LOOKUP_TABLES:
            raise ValueError(f"Unknown lookup table: {table}")
        return [dict(row) for row in self.lookup_rows.get(table, [])]

    # Persons

    def get_person(self, person_id):
        person = self.persons.get(person_id)
        return copy.deepcopy(person) if person else None

    def find_person_by_identifier(self, identifier, scheme=None):
        for person in sorted(self.persons.values(), key=lambda p: p.id):
            if person.name_identifier == identifier and (not scheme or person.name_identifier_scheme == scheme):
                return copy.deepcopy(person)
        return None

    def find_person_by_name(self, family_name, given_name):
        for person in sorted(self.persons.values(), key=lambda p: p.id):
            if person.family_name == family_name and person.given_name == given_name:
                return copy.deepcopy(person)
        return None

    def insert_person(self, person):
        person.id = self._next_id()
        self.persons[person.id] = copy.deepcopy(person)
        return person

    def update_person_identifier(self, person_id, identifier, scheme, scheme_uri):
        person = self.persons[person_id]
        person.name_identifier = identifier
        person.name_identifier_scheme = scheme
        person.scheme_uri = scheme_uri

    # Institutions

    def get_institution(self, institution_id):
        institution = self.institutions.get(institution_id)
        return copy.deepcopy(institution) if institution else None

    def find_institution_by_identifier(self, identifier, scheme=None):
        for institution in sorted(self.institutions.values(), key=lambda i: i.id):
            if institution.name_identifier == identifier and (
                not scheme or institution.name_identifier_scheme == scheme
            ):
                return copy.deepcopy(institution)
        return None

    def find_institution_by_name_without_identifier(self, name):
        for institution in sorted(self.institutions.values(), key=lambda i: i.id):
            if institution.name == name and institution.name_identifier is None:
                return copy.deepcopy(institution)
        return None

    def insert_institution(self, institution):
        institution.id = self._next_id()
        self.institutions[institution.id] = copy.deepcopy(institution)
        return institution

    def update_institution_identifier(self, institution_id, identifier, scheme, scheme_uri):
        institution = self.institutions[institution_id]
        institution.name_identifier = identifier
        institution.name_identifier_scheme = scheme
        institution.scheme_uri = scheme_uri

    # Publishers and rights

    def get_publisher(self, publisher_id):
        publisher = self.publishers.get(publisher_id)
        return copy.deepcopy(publisher) if publisher else None

    def find_publisher_by_name(self, name):
        for publisher in sorted(self.publishers.values(), key=lambda p: p.id):
            if publisher.name == name:
                return copy.deepcopy(publisher)
        return None

    def get_default_publisher(self):
        for publisher in sorted(self.publishers.values(), key=lambda p: p.id):
            if publisher.is_default:
                return copy.deepcopy(publisher)
        return None

    def insert_publisher(self, publisher):
        publisher.id = self._next_id()
        self.publishers[publisher.id] = copy.deepcopy(publisher)
        return publisher

    def add_right(self, identifier, name, uri=None):
        right = Right(identifier=identifier, name=name, uri=uri, id=self._next_id())
        self.rights[right.id] = right
        return right

    def find_rights_by_identifiers(self, identifiers):
        wanted = set(identifiers)
        return {r.identifier: copy.deepcopy(r) for r in self.rights.values() if r.identifier in wanted}

    def find_right_by_name(self, name):
        for right in self.rights.values():
            if right.name == name:
                return copy.deepcopy(right)
        return None

    # Resources

    def find_resource_id_by_doi(self, doi):
        for resource in self.resources.values():
            if resource.doi == doi:
                return resource.id
        return None

    def lock_resource(self, resource_id):
        if resource_id not in self.resources:
            return None
        self.locked.append(resource_id)
        return self.load_resource(resource_id)

    def _persist_agents(self, resource):
        for link in resource.creators + resource.contributors:
            agent = link.agent
            if agent.id is not None:
                continue
            if agent.kind is AgentKind.PERSON:
                self.insert_person(agent)
            else:
                self.insert_institution(agent)

    def insert_resource(self, resource):
        self._persist_agents(resource)
        resource.id = self._next_id()
        self.resources[resource.id] = copy.deepcopy(resource)
        return resource.id

    def update_resource(self, resource, keep_date_types=()):
        self._persist_agents(resource)
        stored = self.resources[resource.id]
        kept = [d for d in stored.dates if d.date_type in keep_date_types]

        updated = copy.deepcopy(resource)
        updated.dates = kept + [d for d in updated.dates if d.date_type not in keep_date_types]
        updated.created_by_user_id = stored.created_by_user_id
        updated.alternate_identifiers = stored.alternate_identifiers
        updated.sizes = stored.sizes
        updated.formats = stored.formats
        updated.igsn_metadata = stored.igsn_metadata
        updated.classifications = stored.classifications
        updated.geological_ages = stored.geological_ages
        updated.geological_units = stored.geological_units
        self.resources[resource.id] = updated

    def load_resource(self, resource_id):
        stored = self.resources.get(resource_id)
        if stored is None:
            return None
        resource = copy.deepcopy(stored)
        # Agents are shared rows; reflect backfilled identifiers
        for link in resource.creators + resource.contributors:
            source = self.persons if link.agent.kind is AgentKind.PERSON else self.institutions
            if link.agent.id in source:
                link.agent = copy.deepcopy(source[link.agent.id])
        return resource


@pytest.fixture
def session():
    """In-memory session with seeded vocabularies, a default publisher and CC-BY-4.0."""
    db = InMemorySession()
    db.insert_publisher(Publisher(name='GFZ Data Services', is_default=True))
    db.add_right('CC-BY-4.0', 'Creative Commons Attribution 4.0 International',
                 'https://creativecommons.org/licenses/by/4.0/legalcode')
    db.add_right('MIT', 'MIT License', 'https://opensource.org/licenses/MIT')
    return db


@pytest.fixture
def db_client(session):
    """Object with the ErnieDatabaseClient context managers, yielding the in-memory session."""

    class _Client:
        def __init__(self):
            self.transactions = 0

        @contextmanager
        def transaction(self):
            self.transactions += 1
            with session.savepoint():
                yield session

        @contextmanager
        def session(self):
            yield session

    return _Client()
