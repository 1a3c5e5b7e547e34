"""
ERNIE Database Client - PyMySQL Version.

This module provides access to the normalized metadata store. All SQL of
the application lives here; services receive a session object and never
build queries themselves.

Table Structure:
- resources: aggregate root (doi, publication_year, version, type, language, publisher)
- titles, descriptions, dates, subjects, geo_locations, related_identifiers,
  alternate_identifiers, funding_references, sizes, formats: owned child rows
- resource_creators / resource_contributors: ordered links to persons or
  institutions (agent_type = 'person' | 'institution')
- affiliations: owned by one creator or contributor link
  (affiliatable_type = 'creator' | 'contributor')
- persons, institutions, publishers, rights: shared records
- resource_rights: many-to-many between resources and rights
- igsn_metadata, igsn_classifications, igsn_geological_ages,
  igsn_geological_units: physical sample details
- *_types, languages: controlled vocabularies
"""

import dataclasses
import json
import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pymysql
from pymysql.cursors import DictCursor

from src.db.lookup_cache import LookupCache, LOOKUP_TABLES
from src.models import (
    Affiliation,
    AgentKind,
    AlternateIdentifier,
    Contributor,
    Creator,
    Description,
    FundingReference,
    GeoLocation,
    IgsnMetadata,
    Institution,
    Person,
    PolygonPoint,
    Publisher,
    RelatedIdentifier,
    Resource,
    ResourceDate,
    Right,
    Subject,
    Title,
)

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base exception for database operations."""
    pass


class ConnectionError(DatabaseError):
    """Exception raised when database connection fails."""
    pass


class TransactionError(DatabaseError):
    """Exception raised when a transaction fails and cannot be rolled back."""
    pass


class ConfigurationError(DatabaseError):
    """Exception raised when a required vocabulary row is missing (seed data not loaded)."""
    pass


# Owned collections removed by full delete-and-recreate on update.
# alternate_identifiers, sizes and formats are written on insert only.
_OWNED_TABLES = (
    'titles',
    'descriptions',
    'subjects',
    'geo_locations',
    'related_identifiers',
    'funding_references',
)

_IGSN_LIST_TABLES = {
    'classifications': 'igsn_classifications',
    'geological_ages': 'igsn_geological_ages',
    'geological_units': 'igsn_geological_units',
}


def _iso(value: Any) -> Optional[str]:
    """Normalize DATE/DATETIME column values to ISO strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _date_from_row(row: Dict[str, Any]) -> ResourceDate:
    """Build a ResourceDate, repairing legacy rows that mix a single value and a range."""
    value = _iso(row.get('date_value'))
    start = _iso(row.get('start_date'))
    end = _iso(row.get('end_date'))

    if value and (start or end):
        logger.warning(f"Date row {row.get('id')} has both a value and a range; keeping the range")
        start = start or value
        value = None
    elif end and not start:
        logger.warning(f"Date row {row.get('id')} has an end but no start; using it as single date")
        value, end = end, None

    return ResourceDate(
        date_type=row.get('date_type'),
        date_value=value,
        start_date=start,
        end_date=end,
        date_information=row.get('date_information'),
    )


def _float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return float(value)


class ErnieDatabaseClient:
    """
    Client for the ERNIE metadata database.

    Connections are created on demand. Use ``transaction()`` for anything
    that writes and ``session()`` for read-only access (exports).
    """

    def __init__(self, host: str, database: str, username: str, password: str, port: int = 3306):
        """
        Initialize database client with connection parameters.

        Args:
            host: Database host
            database: Database name
            username: Database username
            password: Database password
            port: Database port (default 3306)
        """
        self.host = host
        self.database = database
        self.username = username
        self.password = password
        self.port = port

        logger.info(f"ErnieDatabaseClient initialized for {self.host}:{self.port}/{self.database} using PyMySQL")

    @classmethod
    def from_settings(cls, settings) -> 'ErnieDatabaseClient':
        """Create a client from a DatabaseSettings instance."""
        return cls(
            host=settings.host,
            database=settings.database,
            username=settings.username,
            password=settings.password,
            port=settings.port,
        )

    @contextmanager
    def get_connection(self):
        """
        Context manager for getting database connection.

        Yields:
            connection: PyMySQL connection

        Raises:
            ConnectionError: If connection cannot be established
        """
        connection = None
        try:
            connection = pymysql.connect(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self.password,
                connect_timeout=10,
                charset='utf8mb4',
                cursorclass=DictCursor
            )
        except pymysql.Error as e:
            logger.error(f"Failed to connect to database: {e}")
            raise ConnectionError(f"Database connection failed: {e}") from e

        try:
            yield connection
        finally:
            if connection:
                connection.close()

    @contextmanager
    def transaction(self):
        """
        Run a unit of work inside one database transaction.

        Commits when the block finishes, rolls back on any exception.
        pymysql errors are re-raised as DatabaseError; other exceptions
        (e.g. validation errors) propagate unchanged after the rollback.

        Yields:
            MySQLSession bound to the transaction's connection

        Raises:
            DatabaseError: If a query fails
            TransactionError: If the transaction fails and rollback fails too
        """
        with self.get_connection() as connection:
            try:
                connection.begin()
                yield MySQLSession(connection)
                connection.commit()
            except Exception as e:
                try:
                    connection.rollback()
                    logger.warning(f"Transaction rolled back: {e}")
                except pymysql.Error as rollback_error:
                    logger.error(f"CRITICAL: Rollback failed: {rollback_error}")
                    raise TransactionError(f"Transaction failed AND rollback failed: {rollback_error}") from e

                if isinstance(e, pymysql.Error):
                    logger.error(f"Database transaction failed: {e}")
                    raise DatabaseError(f"Database transaction failed: {e}") from e
                raise

    @contextmanager
    def session(self):
        """Read-only session without an explicit transaction."""
        with self.get_connection() as connection:
            try:
                yield MySQLSession(connection)
            except pymysql.Error as e:
                logger.error(f"Database error: {e}")
                raise DatabaseError(f"Database query failed: {e}") from e

    def test_connection(self) -> Tuple[bool, str]:
        """
        Test database connection.

        Returns:
            Tuple of (success: bool, message: str)
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT VERSION()")
                    result = cursor.fetchone()
                    message = f"Connected to MySQL {result['VERSION()']}"
                    logger.info(message)
                    return True, message
        except (DatabaseError, pymysql.Error) as e:
            message = f"Connection failed: {e}"
            logger.error(message)
            return False, message


class MySQLSession:
    """
    Query surface used by the resolver, importer, upsert engine and IGSN storage.

    A session is bound to one connection; it neither begins nor commits
    transactions itself.
    """

    def __init__(self, connection):
        self._connection = connection
        self.lookups = LookupCache(self)

    # =========================================================================
    # Low-level helpers
    # =========================================================================

    def _fetchone(self, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._connection.cursor() as cursor:
            cursor.execute(query, tuple(params))
            return cursor.fetchone()

    def _fetchall(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._connection.cursor() as cursor:
            cursor.execute(query, tuple(params))
            return list(cursor.fetchall() or [])

    def _execute(self, query: str, params: Sequence[Any] = ()) -> Optional[int]:
        """Execute a statement and return the generated id (if any)."""
        with self._connection.cursor() as cursor:
            cursor.execute(query, tuple(params))
            return cursor.lastrowid

    def _lookup_id(self, table: str, slug: Optional[str]) -> Optional[int]:
        return self.lookups.id_for(table, slug) if slug else None

    @contextmanager
    def savepoint(self, name: str = 'row'):
        """
        Nested unit of work inside the open transaction.

        On exception the writes since the savepoint are rolled back and the
        exception propagates; the outer transaction stays usable.
        """
        self._execute(f"SAVEPOINT {name}")
        try:
            yield self
        except Exception:
            self._execute(f"ROLLBACK TO SAVEPOINT {name}")
            raise
        self._execute(f"RELEASE SAVEPOINT {name}")

    # =========================================================================
    # Vocabularies
    # =========================================================================

    def fetch_lookup_rows(self, table: str) -> List[Dict[str, Any]]:
        """Return all rows of a lookup table as {id, slug, name}."""
        if table not in LOOKUP_TABLES:
            raise ValueError(f"Unknown lookup table: {table}")
        if table == 'languages':
            return self._fetchall("SELECT id, code AS slug, name FROM languages")
        return self._fetchall(f"SELECT id, slug, name FROM {table}")

    # =========================================================================
    # Persons
    # =========================================================================

    @staticmethod
    def _person_from_row(row: Dict[str, Any]) -> Person:
        return Person(
            id=row['id'],
            family_name=row.get('family_name'),
            given_name=row.get('given_name'),
            name_identifier=row.get('name_identifier'),
            name_identifier_scheme=row.get('name_identifier_scheme'),
            scheme_uri=row.get('scheme_uri'),
        )

    def get_person(self, person_id: int) -> Optional[Person]:
        row = self._fetchone("SELECT * FROM persons WHERE id = %s", (person_id,))
        return self._person_from_row(row) if row else None

    def find_person_by_identifier(self, identifier: str, scheme: Optional[str] = None) -> Optional[Person]:
        query = "SELECT * FROM persons WHERE name_identifier = %s"
        params: List[Any] = [identifier]
        if scheme:
            query += " AND name_identifier_scheme = %s"
            params.append(scheme)
        row = self._fetchone(query + " ORDER BY id LIMIT 1", params)
        return self._person_from_row(row) if row else None

    def find_person_by_name(self, family_name: str, given_name: Optional[str]) -> Optional[Person]:
        """Null-safe name match: a missing given name only matches NULL given names."""
        if given_name is None:
            row = self._fetchone(
                "SELECT * FROM persons WHERE family_name = %s AND given_name IS NULL ORDER BY id LIMIT 1",
                (family_name,)
            )
        else:
            row = self._fetchone(
                "SELECT * FROM persons WHERE family_name = %s AND given_name = %s ORDER BY id LIMIT 1",
                (family_name, given_name)
            )
        return self._person_from_row(row) if row else None

    def insert_person(self, person: Person) -> Person:
        person.id = self._execute(
            """
            INSERT INTO persons
                (family_name, given_name, name_identifier, name_identifier_scheme, scheme_uri,
                 created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, NOW(), NOW())
            """,
            (person.family_name, person.given_name, person.name_identifier,
             person.name_identifier_scheme, person.scheme_uri)
        )
        logger.debug(f"Created person {person.id}: {person.display_name}")
        return person

    def update_person_identifier(self, person_id: int, identifier: str, scheme: Optional[str],
                                 scheme_uri: Optional[str]):
        self._execute(
            """
            UPDATE persons
            SET name_identifier = %s, name_identifier_scheme = %s, scheme_uri = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (identifier, scheme, scheme_uri, person_id)
        )

    # =========================================================================
    # Institutions
    # =========================================================================

    @staticmethod
    def _institution_from_row(row: Dict[str, Any]) -> Institution:
        return Institution(
            id=row['id'],
            name=row.get('name'),
            name_identifier=row.get('name_identifier'),
            name_identifier_scheme=row.get('name_identifier_scheme'),
            scheme_uri=row.get('scheme_uri'),
        )

    def get_institution(self, institution_id: int) -> Optional[Institution]:
        row = self._fetchone("SELECT * FROM institutions WHERE id = %s", (institution_id,))
        return self._institution_from_row(row) if row else None

    def find_institution_by_identifier(self, identifier: str, scheme: Optional[str] = None) -> Optional[Institution]:
        query = "SELECT * FROM institutions WHERE name_identifier = %s"
        params: List[Any] = [identifier]
        if scheme:
            query += " AND name_identifier_scheme = %s"
            params.append(scheme)
        row = self._fetchone(query + " ORDER BY id LIMIT 1", params)
        return self._institution_from_row(row) if row else None

    def find_institution_by_name_without_identifier(self, name: str) -> Optional[Institution]:
        row = self._fetchone(
            "SELECT * FROM institutions WHERE name = %s AND name_identifier IS NULL ORDER BY id LIMIT 1",
            (name,)
        )
        return self._institution_from_row(row) if row else None

    def insert_institution(self, institution: Institution) -> Institution:
        institution.id = self._execute(
            """
            INSERT INTO institutions
                (name, name_identifier, name_identifier_scheme, scheme_uri, created_at, updated_at)
            VALUES (%s, %s, %s, %s, NOW(), NOW())
            """,
            (institution.name, institution.name_identifier,
             institution.name_identifier_scheme, institution.scheme_uri)
        )
        logger.debug(f"Created institution {institution.id}: {institution.name}")
        return institution

    def update_institution_identifier(self, institution_id: int, identifier: str, scheme: Optional[str],
                                      scheme_uri: Optional[str]):
        self._execute(
            """
            UPDATE institutions
            SET name_identifier = %s, name_identifier_scheme = %s, scheme_uri = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (identifier, scheme, scheme_uri, institution_id)
        )

    # =========================================================================
    # Publishers and rights
    # =========================================================================

    @staticmethod
    def _publisher_from_row(row: Dict[str, Any]) -> Publisher:
        return Publisher(
            id=row['id'],
            name=row['name'],
            identifier=row.get('identifier'),
            identifier_scheme=row.get('identifier_scheme'),
            scheme_uri=row.get('scheme_uri'),
            language=row.get('language'),
            is_default=bool(row.get('is_default')),
        )

    def get_publisher(self, publisher_id: int) -> Optional[Publisher]:
        row = self._fetchone("SELECT * FROM publishers WHERE id = %s", (publisher_id,))
        return self._publisher_from_row(row) if row else None

    def find_publisher_by_name(self, name: str) -> Optional[Publisher]:
        row = self._fetchone("SELECT * FROM publishers WHERE name = %s ORDER BY id LIMIT 1", (name,))
        return self._publisher_from_row(row) if row else None

    def get_default_publisher(self) -> Optional[Publisher]:
        row = self._fetchone("SELECT * FROM publishers WHERE is_default = 1 ORDER BY id LIMIT 1")
        return self._publisher_from_row(row) if row else None

    def insert_publisher(self, publisher: Publisher) -> Publisher:
        publisher.id = self._execute(
            """
            INSERT INTO publishers
                (name, identifier, identifier_scheme, scheme_uri, language, is_default, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, NOW(), NOW())
            """,
            (publisher.name, publisher.identifier, publisher.identifier_scheme,
             publisher.scheme_uri, publisher.language or 'en', publisher.is_default)
        )
        return publisher

    @staticmethod
    def _right_from_row(row: Dict[str, Any]) -> Right:
        return Right(
            id=row['id'],
            identifier=row['identifier'],
            name=row['name'],
            uri=row.get('uri'),
            scheme_uri=row.get('scheme_uri'),
        )

    def find_rights_by_identifiers(self, identifiers: Iterable[str]) -> Dict[str, Right]:
        identifiers = list(identifiers)
        if not identifiers:
            return {}
        placeholders = ', '.join(['%s'] * len(identifiers))
        rows = self._fetchall(f"SELECT * FROM rights WHERE identifier IN ({placeholders})", identifiers)
        return {row['identifier']: self._right_from_row(row) for row in rows}

    def find_right_by_name(self, name: str) -> Optional[Right]:
        row = self._fetchone("SELECT * FROM rights WHERE name = %s ORDER BY id LIMIT 1", (name,))
        return self._right_from_row(row) if row else None

    # =========================================================================
    # Resources
    # =========================================================================

    def find_resource_id_by_doi(self, doi: str) -> Optional[int]:
        row = self._fetchone("SELECT id FROM resources WHERE doi = %s LIMIT 1", (doi,))
        return row['id'] if row else None

    def lock_resource(self, resource_id: int) -> Optional[Resource]:
        """Take a row lock on the resource (SELECT ... FOR UPDATE) and load it."""
        row = self._fetchone("SELECT id FROM resources WHERE id = %s FOR UPDATE", (resource_id,))
        if not row:
            return None
        logger.debug(f"Locked resource {resource_id}")
        return self.load_resource(resource_id)

    def _resource_row_values(self, resource: Resource) -> Tuple:
        publisher_id = resource.publisher.id if resource.publisher else None
        return (
            resource.doi,
            resource.identifier_type or 'DOI',
            publisher_id,
            resource.publication_year,
            self.lookups.id_for('resource_types', resource.resource_type_slug),
            resource.version,
            self.lookups.id_for('languages', resource.language) if resource.language else None,
        )

    def insert_resource(self, resource: Resource) -> int:
        """Insert the resource row and every owned child row."""
        resource.id = self._execute(
            """
            INSERT INTO resources
                (doi, identifier_type, publisher_id, publication_year, resource_type_id, version,
                 language_id, created_by_user_id, updated_by_user_id, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
            """,
            self._resource_row_values(resource) + (resource.created_by_user_id, resource.updated_by_user_id)
        )
        self._insert_children(resource)
        self._insert_record_details(resource)
        self._sync_rights(resource.id, resource.rights)
        if resource.igsn_metadata is not None:
            self._insert_igsn(resource)
        logger.info(f"Inserted resource {resource.id} (DOI: {resource.doi or 'draft'})")
        return resource.id

    def update_resource(self, resource: Resource, keep_date_types: Sequence[str] = ()):
        """
        Replace the stored state of an existing resource.

        Owned collections are deleted and recreated; dates whose type is in
        ``keep_date_types`` are left untouched in storage. Rights are synced.
        Alternate identifiers, sizes, formats and IGSN details are kept.
        """
        self._execute(
            """
            UPDATE resources
            SET doi = %s, identifier_type = %s, publisher_id = %s, publication_year = %s,
                resource_type_id = %s, version = %s, language_id = %s,
                updated_by_user_id = %s, updated_at = NOW()
            WHERE id = %s
            """,
            self._resource_row_values(resource) + (resource.updated_by_user_id, resource.id)
        )
        self._delete_children(resource.id, keep_date_types)
        self._insert_children(resource, skip_date_types=keep_date_types)
        self._sync_rights(resource.id, resource.rights)
        logger.info(f"Updated resource {resource.id}")

    def _delete_children(self, resource_id: int, keep_date_types: Sequence[str] = ()):
        # Affiliations hang off the link rows, so snapshot the link ids first
        for link_table, owner_type in (('resource_creators', 'creator'), ('resource_contributors', 'contributor')):
            link_ids = [row['id'] for row in self._fetchall(
                f"SELECT id FROM {link_table} WHERE resource_id = %s", (resource_id,)
            )]
            if link_ids:
                placeholders = ', '.join(['%s'] * len(link_ids))
                self._execute(
                    f"DELETE FROM affiliations WHERE affiliatable_type = %s AND affiliatable_id IN ({placeholders})",
                    [owner_type] + link_ids
                )
            self._execute(f"DELETE FROM {link_table} WHERE resource_id = %s", (resource_id,))

        for table in _OWNED_TABLES:
            self._execute(f"DELETE FROM {table} WHERE resource_id = %s", (resource_id,))

        keep_ids = [i for i in (self.lookups.id_for('date_types', t) for t in keep_date_types) if i is not None]
        if keep_ids:
            placeholders = ', '.join(['%s'] * len(keep_ids))
            self._execute(
                f"DELETE FROM dates WHERE resource_id = %s AND date_type_id NOT IN ({placeholders})",
                [resource_id] + keep_ids
            )
        else:
            self._execute("DELETE FROM dates WHERE resource_id = %s", (resource_id,))

    def _agent_reference(self, agent) -> Tuple[str, int]:
        """Return (agent_type, agent_id), persisting the agent if it is new."""
        if agent.kind is AgentKind.PERSON:
            if agent.id is None:
                self.insert_person(agent)
        elif agent.kind is AgentKind.INSTITUTION:
            if agent.id is None:
                self.insert_institution(agent)
        else:
            raise ValueError(f"Unsupported agent kind: {agent.kind}")
        return agent.kind.value, agent.id

    def _insert_affiliations(self, owner_type: str, owner_id: int, affiliations: List[Affiliation]):
        for affiliation in affiliations:
            self._execute(
                """
                INSERT INTO affiliations
                    (affiliatable_type, affiliatable_id, name, identifier, identifier_scheme, scheme_uri,
                     created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (owner_type, owner_id, affiliation.name, affiliation.identifier,
                 affiliation.identifier_scheme, affiliation.scheme_uri)
            )

    def _insert_children(self, resource: Resource, skip_date_types: Sequence[str] = ()):
        resource_id = resource.id

        for title in resource.titles:
            self._execute(
                "INSERT INTO titles (resource_id, title_type_id, value, language, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, NOW(), NOW())",
                (resource_id, self._lookup_id('title_types', title.title_type), title.value, title.language)
            )

        for creator in resource.creators:
            agent_type, agent_id = self._agent_reference(creator.agent)
            link_id = self._execute(
                """
                INSERT INTO resource_creators
                    (resource_id, agent_type, agent_id, position, email, website, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (resource_id, agent_type, agent_id, creator.position, creator.email, creator.website)
            )
            self._insert_affiliations('creator', link_id, creator.affiliations)

        for contributor in resource.contributors:
            agent_type, agent_id = self._agent_reference(contributor.agent)
            link_id = self._execute(
                """
                INSERT INTO resource_contributors
                    (resource_id, agent_type, agent_id, contributor_type_id, position, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (resource_id, agent_type, agent_id,
                 self._lookup_id('contributor_types', contributor.contributor_type), contributor.position)
            )
            self._insert_affiliations('contributor', link_id, contributor.affiliations)

        for description in resource.descriptions:
            self._execute(
                "INSERT INTO descriptions (resource_id, description_type_id, value, language, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, NOW(), NOW())",
                (resource_id, self._lookup_id('description_types', description.description_type),
                 description.value, description.language)
            )

        for resource_date in resource.dates:
            if resource_date.date_type in skip_date_types:
                continue
            self._execute(
                """
                INSERT INTO dates
                    (resource_id, date_type_id, date_value, start_date, end_date, date_information,
                     created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (resource_id, self._lookup_id('date_types', resource_date.date_type), resource_date.date_value,
                 resource_date.start_date, resource_date.end_date, resource_date.date_information)
            )

        for subject in resource.subjects:
            self._execute(
                """
                INSERT INTO subjects
                    (resource_id, value, language, subject_scheme, scheme_uri, value_uri, classification_code,
                     created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (resource_id, subject.value, subject.language or 'en', subject.subject_scheme,
                 subject.scheme_uri, subject.value_uri, subject.classification_code)
            )

        for geo in resource.geo_locations:
            polygon = None
            if geo.polygon_points:
                polygon = json.dumps([{'longitude': p.longitude, 'latitude': p.latitude} for p in geo.polygon_points])
            self._execute(
                """
                INSERT INTO geo_locations
                    (resource_id, place, point_longitude, point_latitude,
                     west_bound_longitude, east_bound_longitude, south_bound_latitude, north_bound_latitude,
                     polygon_points, in_polygon_point_longitude, in_polygon_point_latitude,
                     elevation, elevation_unit, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (resource_id, geo.place, geo.point_longitude, geo.point_latitude,
                 geo.west_bound_longitude, geo.east_bound_longitude, geo.south_bound_latitude,
                 geo.north_bound_latitude, polygon, geo.in_polygon_point_longitude,
                 geo.in_polygon_point_latitude, geo.elevation, geo.elevation_unit)
            )

        for related in resource.related_identifiers:
            self._execute(
                """
                INSERT INTO related_identifiers
                    (resource_id, identifier, identifier_type_id, relation_type_id, resource_type_general,
                     related_metadata_scheme, scheme_uri, scheme_type, position, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (resource_id, related.identifier,
                 self._lookup_id('identifier_types', related.identifier_type),
                 self._lookup_id('relation_types', related.relation_type),
                 related.resource_type_general, related.related_metadata_scheme,
                 related.scheme_uri, related.scheme_type, related.position)
            )

        for funding in resource.funding_references:
            self._execute(
                """
                INSERT INTO funding_references
                    (resource_id, funder_name, funder_identifier, funder_identifier_type_id, scheme_uri,
                     award_number, award_uri, award_title, position, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                """,
                (resource_id, funding.funder_name, funding.funder_identifier,
                 self._lookup_id('funder_identifier_types', funding.funder_identifier_type),
                 funding.scheme_uri, funding.award_number, funding.award_uri, funding.award_title,
                 funding.position)
            )

    def _insert_record_details(self, resource: Resource):
        resource_id = resource.id

        for position, alternate in enumerate(resource.alternate_identifiers):
            self._execute(
                "INSERT INTO alternate_identifiers (resource_id, value, type, position, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, NOW(), NOW())",
                (resource_id, alternate.value, alternate.identifier_type, position)
            )

        for size in resource.sizes:
            self._execute(
                "INSERT INTO sizes (resource_id, value, created_at, updated_at) VALUES (%s, %s, NOW(), NOW())",
                (resource_id, size)
            )

        for format_value in resource.formats:
            self._execute(
                "INSERT INTO formats (resource_id, value, created_at, updated_at) VALUES (%s, %s, NOW(), NOW())",
                (resource_id, format_value)
            )

    def _sync_rights(self, resource_id: int, rights: List[Right]):
        """Make resource_rights match exactly the given rights."""
        wanted = {right.id for right in rights if right.id is not None}
        current = {row['rights_id'] for row in self._fetchall(
            "SELECT rights_id FROM resource_rights WHERE resource_id = %s", (resource_id,)
        )}

        for rights_id in current - wanted:
            self._execute(
                "DELETE FROM resource_rights WHERE resource_id = %s AND rights_id = %s",
                (resource_id, rights_id)
            )
        for rights_id in sorted(wanted - current):
            self._execute(
                "INSERT INTO resource_rights (resource_id, rights_id, created_at, updated_at) "
                "VALUES (%s, %s, NOW(), NOW())",
                (resource_id, rights_id)
            )

    def _insert_igsn(self, resource: Resource):
        values = dataclasses.asdict(resource.igsn_metadata)
        if values.get('description_json') is not None:
            values['description_json'] = json.dumps(values['description_json'])
        columns = ['resource_id'] + list(values.keys())
        placeholders = ', '.join(['%s'] * len(columns))
        self._execute(
            f"INSERT INTO igsn_metadata ({', '.join(columns)}, created_at, updated_at) "
            f"VALUES ({placeholders}, NOW(), NOW())",
            [resource.id] + list(values.values())
        )

        for attribute, table in _IGSN_LIST_TABLES.items():
            for position, value in enumerate(getattr(resource, attribute)):
                self._execute(
                    f"INSERT INTO {table} (resource_id, value, position, created_at, updated_at) "
                    f"VALUES (%s, %s, %s, NOW(), NOW())",
                    (resource.id, value, position)
                )

    # =========================================================================
    # Loading
    # =========================================================================

    def _load_agent(self, agent_type: str, agent_id: int):
        if agent_type == AgentKind.PERSON.value:
            return self.get_person(agent_id)
        if agent_type == AgentKind.INSTITUTION.value:
            return self.get_institution(agent_id)
        logger.warning(f"Unknown agent type '{agent_type}' (id {agent_id})")
        return None

    def _load_affiliations(self, owner_type: str, owner_id: int) -> List[Affiliation]:
        rows = self._fetchall(
            "SELECT * FROM affiliations WHERE affiliatable_type = %s AND affiliatable_id = %s ORDER BY id",
            (owner_type, owner_id)
        )
        return [
            Affiliation(
                name=row['name'],
                identifier=row.get('identifier'),
                identifier_scheme=row.get('identifier_scheme'),
                scheme_uri=row.get('scheme_uri'),
            )
            for row in rows
        ]

    def load_resource(self, resource_id: int) -> Optional[Resource]:
        """
        Load the full aggregate for a resource.

        Returns:
            Resource or None if no row exists
        """
        row = self._fetchone(
            """
            SELECT r.*, rt.slug AS resource_type_slug, rt.name AS resource_type_name, l.code AS language_code
            FROM resources r
            LEFT JOIN resource_types rt ON rt.id = r.resource_type_id
            LEFT JOIN languages l ON l.id = r.language_id
            WHERE r.id = %s
            """,
            (resource_id,)
        )
        if not row:
            return None

        resource = Resource(
            id=row['id'],
            doi=row.get('doi'),
            identifier_type=row.get('identifier_type') or 'DOI',
            publication_year=row.get('publication_year'),
            version=row.get('version'),
            resource_type_slug=row.get('resource_type_slug'),
            resource_type_name=row.get('resource_type_name'),
            language=row.get('language_code'),
            created_by_user_id=row.get('created_by_user_id'),
            updated_by_user_id=row.get('updated_by_user_id'),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )
        if row.get('publisher_id'):
            resource.publisher = self.get_publisher(row['publisher_id'])

        resource.titles = [
            Title(value=t['value'], title_type=t.get('title_type'), language=t.get('language'))
            for t in self._fetchall(
                "SELECT t.value, t.language, tt.slug AS title_type FROM titles t "
                "LEFT JOIN title_types tt ON tt.id = t.title_type_id WHERE t.resource_id = %s ORDER BY t.id",
                (resource_id,)
            )
        ]

        for link in self._fetchall(
            "SELECT * FROM resource_creators WHERE resource_id = %s ORDER BY position, id", (resource_id,)
        ):
            agent = self._load_agent(link['agent_type'], link['agent_id'])
            if agent is None:
                continue
            resource.creators.append(Creator(
                agent=agent,
                position=link['position'],
                affiliations=self._load_affiliations('creator', link['id']),
                email=link.get('email'),
                website=link.get('website'),
            ))

        for link in self._fetchall(
            "SELECT rc.*, ct.slug AS contributor_type FROM resource_contributors rc "
            "LEFT JOIN contributor_types ct ON ct.id = rc.contributor_type_id "
            "WHERE rc.resource_id = %s ORDER BY rc.position, rc.id",
            (resource_id,)
        ):
            agent = self._load_agent(link['agent_type'], link['agent_id'])
            if agent is None:
                continue
            resource.contributors.append(Contributor(
                agent=agent,
                contributor_type=link.get('contributor_type') or 'Other',
                position=link['position'],
                affiliations=self._load_affiliations('contributor', link['id']),
            ))

        resource.descriptions = [
            Description(value=d['value'], description_type=d.get('description_type'), language=d.get('language'))
            for d in self._fetchall(
                "SELECT d.value, d.language, dt.slug AS description_type FROM descriptions d "
                "LEFT JOIN description_types dt ON dt.id = d.description_type_id "
                "WHERE d.resource_id = %s ORDER BY d.id",
                (resource_id,)
            )
        ]

        resource.dates = [
            _date_from_row(d)
            for d in self._fetchall(
                "SELECT d.*, dt.slug AS date_type FROM dates d "
                "LEFT JOIN date_types dt ON dt.id = d.date_type_id WHERE d.resource_id = %s ORDER BY d.id",
                (resource_id,)
            )
        ]

        resource.subjects = [
            Subject(
                value=s['value'],
                subject_scheme=s.get('subject_scheme'),
                scheme_uri=s.get('scheme_uri'),
                value_uri=s.get('value_uri'),
                classification_code=s.get('classification_code'),
                language=s.get('language'),
            )
            for s in self._fetchall("SELECT * FROM subjects WHERE resource_id = %s ORDER BY id", (resource_id,))
        ]

        for g in self._fetchall("SELECT * FROM geo_locations WHERE resource_id = %s ORDER BY id", (resource_id,)):
            points = []
            if g.get('polygon_points'):
                raw_points = g['polygon_points']
                if isinstance(raw_points, str):
                    raw_points = json.loads(raw_points)
                points = [PolygonPoint(longitude=float(p['longitude']), latitude=float(p['latitude']))
                          for p in raw_points]
            resource.geo_locations.append(GeoLocation(
                place=g.get('place'),
                point_longitude=_float(g.get('point_longitude')),
                point_latitude=_float(g.get('point_latitude')),
                west_bound_longitude=_float(g.get('west_bound_longitude')),
                east_bound_longitude=_float(g.get('east_bound_longitude')),
                south_bound_latitude=_float(g.get('south_bound_latitude')),
                north_bound_latitude=_float(g.get('north_bound_latitude')),
                polygon_points=points,
                in_polygon_point_longitude=_float(g.get('in_polygon_point_longitude')),
                in_polygon_point_latitude=_float(g.get('in_polygon_point_latitude')),
                elevation=_float(g.get('elevation')),
                elevation_unit=g.get('elevation_unit'),
            ))

        resource.alternate_identifiers = [
            AlternateIdentifier(value=a['value'], identifier_type=a['type'])
            for a in self._fetchall(
                "SELECT * FROM alternate_identifiers WHERE resource_id = %s ORDER BY position, id", (resource_id,)
            )
        ]

        resource.related_identifiers = [
            RelatedIdentifier(
                identifier=r['identifier'],
                identifier_type=r.get('identifier_type'),
                relation_type=r.get('relation_type'),
                resource_type_general=r.get('resource_type_general'),
                related_metadata_scheme=r.get('related_metadata_scheme'),
                scheme_uri=r.get('scheme_uri'),
                scheme_type=r.get('scheme_type'),
                position=r.get('position') or 0,
            )
            for r in self._fetchall(
                "SELECT ri.*, it.slug AS identifier_type, rt.slug AS relation_type FROM related_identifiers ri "
                "LEFT JOIN identifier_types it ON it.id = ri.identifier_type_id "
                "LEFT JOIN relation_types rt ON rt.id = ri.relation_type_id "
                "WHERE ri.resource_id = %s ORDER BY ri.position, ri.id",
                (resource_id,)
            )
        ]

        resource.funding_references = [
            FundingReference(
                funder_name=f['funder_name'],
                funder_identifier=f.get('funder_identifier'),
                funder_identifier_type=f.get('funder_identifier_type'),
                scheme_uri=f.get('scheme_uri'),
                award_number=f.get('award_number'),
                award_uri=f.get('award_uri'),
                award_title=f.get('award_title'),
                position=f.get('position') or 0,
            )
            for f in self._fetchall(
                "SELECT fr.*, fit.name AS funder_identifier_type FROM funding_references fr "
                "LEFT JOIN funder_identifier_types fit ON fit.id = fr.funder_identifier_type_id "
                "WHERE fr.resource_id = %s ORDER BY fr.position, fr.id",
                (resource_id,)
            )
        ]

        resource.rights = [
            self._right_from_row(r)
            for r in self._fetchall(
                "SELECT ri.* FROM rights ri JOIN resource_rights rr ON rr.rights_id = ri.id "
                "WHERE rr.resource_id = %s ORDER BY rr.id",
                (resource_id,)
            )
        ]
        resource.sizes = [s['value'] for s in self._fetchall(
            "SELECT value FROM sizes WHERE resource_id = %s ORDER BY id", (resource_id,)
        )]
        resource.formats = [f['value'] for f in self._fetchall(
            "SELECT value FROM formats WHERE resource_id = %s ORDER BY id", (resource_id,)
        )]

        self._load_igsn(resource)
        return resource

    def _load_igsn(self, resource: Resource):
        row = self._fetchone("SELECT * FROM igsn_metadata WHERE resource_id = %s", (resource.id,))
        if not row:
            return
        known = {f.name for f in dataclasses.fields(IgsnMetadata)}
        values = {key: value for key, value in row.items() if key in known}
        for key in ('size', 'depth_min', 'depth_max'):
            values[key] = _float(values.get(key))
        values['is_private'] = bool(values.get('is_private'))
        if isinstance(values.get('description_json'), str):
            values['description_json'] = json.loads(values['description_json'])
        resource.igsn_metadata = IgsnMetadata(**values)

        for attribute, table in _IGSN_LIST_TABLES.items():
            setattr(resource, attribute, [r['value'] for r in self._fetchall(
                f"SELECT value FROM {table} WHERE resource_id = %s ORDER BY position, id", (resource.id,)
            )])
