"""Unit tests for the DataCite record transformer and batch import service."""

import pytest
from unittest.mock import Mock

from src.importer import DataCiteImportService, DataCiteToResourceTransformer
from src.models import AgentKind, Institution, Person


@pytest.fixture
def record():
    """A DataCite DOI record as returned by the REST API."""
    return {
        'id': '10.5880/GFZ.1.2.2023.001',
        'type': 'dois',
        'attributes': {
            'doi': '10.5880/GFZ.1.2.2023.001',
            'publicationYear': 2023,
            'language': 'en',
            'version': '1.0',
            'types': {'resourceTypeGeneral': 'Dataset', 'resourceType': 'Seismic data'},
            'publisher': {'name': 'GFZ Data Services', 'lang': 'en'},
            'titles': [
                {'title': 'Seismic records of Potsdam', 'lang': 'en'},
                {'title': 'Records', 'titleType': 'AlternativeTitle'},
                {'title': 'Unknown typed', 'titleType': 'Slogan'},
            ],
            'creators': [
                {
                    'name': 'Müller, Anna',
                    'nameType': 'Personal',
                    'givenName': 'Anna',
                    'familyName': 'Müller',
                    'nameIdentifiers': [{
                        'nameIdentifier': 'https://orcid.org/0000-0001-2345-6789',
                        'nameIdentifierScheme': 'ORCID',
                        'schemeUri': 'https://orcid.org',
                    }],
                    'affiliation': [{
                        'name': 'GFZ',
                        'affiliationIdentifier': 'https://ror.org/04z8jg394',
                        'affiliationIdentifierScheme': 'ROR',
                    }],
                },
                {'name': 'Schmidt, Jan', 'affiliation': ['University of Potsdam']},
                {
                    'name': 'GFZ German Research Centre for Geosciences',
                    'nameType': 'Organizational',
                    'nameIdentifiers': [{'nameIdentifier': 'https://ror.org/04z8jg394', 'nameIdentifierScheme': 'ROR'}],
                },
            ],
            'contributors': [
                {'name': 'Weber, Lena', 'contributorType': 'DataCurator'},
                {'name': 'Fischer, Tom', 'contributorType': 'Wizard'},
            ],
            'descriptions': [
                {'description': 'Abstract text', 'descriptionType': 'Abstract'},
                {'description': 'Strange', 'descriptionType': 'Poem'},
                {'description': '   ', 'descriptionType': 'Methods'},
            ],
            'subjects': [
                {'subject': 'seismology'},
                {'subject': 'EARTH SCIENCE', 'subjectScheme': 'GCMD', 'valueUri': 'https://gcmd/123'},
            ],
            'dates': [
                {'date': '2019/2020', 'dateType': 'Collected'},
                {'date': '2023-05-01', 'dateType': 'Issued'},
                {'date': '2023', 'dateType': 'Unknown'},
                {'date': 'not a date', 'dateType': 'Available'},
            ],
            'geoLocations': [
                {'geoLocationPlace': 'Potsdam', 'geoLocationPoint': {'pointLongitude': '13.06', 'pointLatitude': 52.38}},
                {'geoLocationPolygon': [
                    {'polygonPoint': {'pointLongitude': 1, 'pointLatitude': 1}},
                    {'polygonPoint': {'pointLongitude': 2, 'pointLatitude': 1}},
                    {'polygonPoint': {'pointLongitude': 2, 'pointLatitude': 2}},
                    {'inPolygonPoint': {'pointLongitude': 1.5, 'pointLatitude': 1.2}},
                ]},
            ],
            'relatedIdentifiers': [
                {'relatedIdentifier': '10.1234/abc', 'relatedIdentifierType': 'DOI', 'relationType': 'Cites'},
                {'relatedIdentifier': 'xyz', 'relatedIdentifierType': 'ARK', 'relationType': 'Cites'},
            ],
            'fundingReferences': [{
                'funderName': 'DFG',
                'funderIdentifier': 'https://doi.org/10.13039/501100001659',
                'funderIdentifierType': 'Crossref Funder ID',
                'awardNumber': 'ABC-1',
            }],
            'rightsList': [
                {'rights': 'CC BY 4.0', 'rightsIdentifier': 'CC-BY-4.0'},
                {'rights': 'Creative Commons Attribution 4.0 International'},
                {'rights': 'Proprietary'},
            ],
            'sizes': ['12 MB'],
            'formats': ['application/zip'],
        },
    }


def transform(session, record, ror_client=None):
    return DataCiteToResourceTransformer(session, ror_client).transform(record, user_id=3)


class TestResourceShell:
    """Test the resource row."""

    def test_basic_attributes(self, session, record):
        """Test DOI, year, language, version and type."""
        resource = session.load_resource(transform(session, record).id)

        assert resource.doi == '10.5880/GFZ.1.2.2023.001'
        assert resource.publication_year == 2023
        assert resource.language == 'en'
        assert resource.version == '1.0'
        assert resource.resource_type_slug == 'dataset'
        assert resource.created_by_user_id == 3

    def test_existing_publisher_reused(self, session, record):
        """Test that the publisher is matched by name."""
        resource = transform(session, record)
        assert resource.publisher.is_default
        assert len(session.publishers) == 1

    def test_new_publisher_created(self, session, record):
        """Test that unknown publishers are created."""
        record['attributes']['publisher'] = 'Alfred Wegener Institute'
        resource = transform(session, record)
        assert resource.publisher.name == 'Alfred Wegener Institute'
        assert len(session.publishers) == 2

    def test_unknown_resource_type_falls_back(self, session, record):
        """Test the "other" fallback."""
        record['attributes']['types'] = {'resourceTypeGeneral': 'Hologram'}
        assert transform(session, record).resource_type_slug == 'other'

    def test_physical_object_type(self, session, record):
        """Test PascalCase to kebab-case slug mapping."""
        record['attributes']['types'] = {'resourceTypeGeneral': 'PhysicalObject'}
        assert transform(session, record).resource_type_slug == 'physical-object'

    def test_unknown_language_dropped(self, session, record):
        """Test that unseeded languages are ignored."""
        record['attributes']['language'] = 'tlh'
        assert transform(session, record).language is None

    def test_record_without_wrapper(self, session, record):
        """Test that bare attribute dicts are accepted."""
        resource = transform(session, record['attributes'])
        assert resource.doi == '10.5880/GFZ.1.2.2023.001'


class TestChildCollections:
    """Test the imported child collections."""

    def test_titles(self, session, record):
        """Test title types with MainTitle fallback."""
        titles = transform(session, record).titles
        assert [(t.value, t.title_type) for t in titles] == [
            ('Seismic records of Potsdam', 'MainTitle'),
            ('Records', 'AlternativeTitle'),
            ('Unknown typed', 'MainTitle'),
        ]

    def test_creators(self, session, record):
        """Test persons, name parsing, institutions and positions."""
        creators = transform(session, record).creators

        assert [c.position for c in creators] == [1, 2, 3]
        anna = creators[0].agent
        assert anna.orcid == 'https://orcid.org/0000-0001-2345-6789'
        assert anna.scheme_uri == 'https://orcid.org'
        assert creators[0].affiliations[0].identifier == 'https://ror.org/04z8jg394'

        jan = creators[1].agent
        assert (jan.family_name, jan.given_name) == ('Schmidt', 'Jan')
        assert creators[1].affiliations[0].name == 'University of Potsdam'

        gfz = creators[2].agent
        assert gfz.kind is AgentKind.INSTITUTION
        assert gfz.name_identifier_scheme == 'ROR'
        assert gfz.scheme_uri == 'https://ror.org'

    def test_existing_person_reused(self, session, record):
        """Test that a known ORCID is resolved to the stored person."""
        existing = session.insert_person(Person(
            family_name='Mueller', given_name='A.', name_identifier='https://orcid.org/0000-0001-2345-6789',
            name_identifier_scheme='ORCID'
        ))
        assert transform(session, record).creators[0].agent.id == existing.id

    def test_contributor_type_fallback(self, session, record):
        """Test that unknown contributor types become Other."""
        contributors = transform(session, record).contributors
        assert [c.contributor_type for c in contributors] == ['DataCurator', 'Other']

    def test_descriptions(self, session, record):
        """Test that unknown types and blank texts are skipped."""
        descriptions = transform(session, record).descriptions
        assert [(d.value, d.description_type) for d in descriptions] == [('Abstract text', 'Abstract')]

    def test_subjects(self, session, record):
        """Test subject defaults and schemes."""
        subjects = transform(session, record).subjects
        assert subjects[0].language == 'en'
        assert subjects[0].is_free_keyword
        assert subjects[1].value_uri == 'https://gcmd/123'

    def test_dates(self, session, record):
        """Test ranges, single dates and skipped entries."""
        dates = transform(session, record).dates
        assert len(dates) == 2
        assert (dates[0].start_date, dates[0].end_date) == ('2019-01-01', '2020-12-31')
        assert dates[1].date_value == '2023-05-01'

    def test_geo_locations(self, session, record):
        """Test point coercion and the list polygon shape."""
        point, polygon = transform(session, record).geo_locations
        assert point.place == 'Potsdam'
        assert (point.point_longitude, point.point_latitude) == (13.06, 52.38)
        assert len(polygon.polygon_points) == 3
        assert (polygon.in_polygon_point_longitude, polygon.in_polygon_point_latitude) == (1.5, 1.2)

    def test_short_polygon_dropped(self, session, record):
        """Test that polygons with fewer than 3 points are not kept."""
        record['attributes']['geoLocations'] = [{'geoLocationPolygon': {'polygonPoints': [
            {'pointLongitude': 1, 'pointLatitude': 1},
            {'pointLongitude': 2, 'pointLatitude': 2},
        ]}}]
        geo = transform(session, record).geo_locations[0]
        assert geo.polygon_points == []
        assert geo.in_polygon_point_longitude is None

    def test_related_identifiers(self, session, record):
        """Test that unresolved identifier types are skipped."""
        related = transform(session, record).related_identifiers
        assert [(r.identifier, r.relation_type) for r in related] == [('10.1234/abc', 'Cites')]

    def test_funding_references(self, session, record):
        """Test funder identifier type mapping to the lookup name."""
        funding = transform(session, record).funding_references[0]
        assert funding.funder_identifier_type == 'Crossref Funder ID'
        assert funding.award_number == 'ABC-1'

    def test_rights(self, session, record):
        """Test rights matched by identifier or name, deduplicated."""
        rights = transform(session, record).rights
        assert [r.identifier for r in rights] == ['CC-BY-4.0']

    def test_sizes_and_formats(self, session, record):
        """Test plain string lists."""
        resource = transform(session, record)
        assert resource.sizes == ['12 MB']
        assert resource.formats == ['application/zip']

    def test_ror_lookup_for_unnamed_institution(self, session, record):
        """Test that the ROR client names organizations given only by identifier."""
        record['attributes']['creators'] = [{
            'nameType': 'Organizational',
            'nameIdentifiers': [{'nameIdentifier': 'https://ror.org/04z8jg394', 'nameIdentifierScheme': 'ROR'}],
        }]
        ror_client = Mock()
        ror_client.resolve_organization_name.return_value = 'GFZ Helmholtz Centre for Geosciences'

        agent = transform(session, record, ror_client).creators[0].agent

        assert agent.name == 'GFZ Helmholtz Centre for Geosciences'


class TestImportService:
    """Test batch import with per-record transactions."""

    def test_import_records(self, db_client, session, record):
        """Test that new records are imported and known DOIs skipped."""
        service = DataCiteImportService(db_client)

        first = service.import_records([record], user_id=1)
        second = service.import_records([record], user_id=1)

        assert first == {'imported': 1, 'skipped': 0, 'failed': []}
        assert second == {'imported': 0, 'skipped': 1, 'failed': []}
        assert len(session.resources) == 1

    def test_failed_record_does_not_stop_batch(self, db_client, session, record):
        """Test that one broken record is reported and others continue."""
        broken = {'id': '10.1/broken', 'attributes': {'doi': '10.1/broken', 'creators': 'oops'}}

        result = DataCiteImportService(db_client).import_records([broken, record], user_id=1)

        assert result['imported'] == 1
        assert result['failed'][0]['doi'] == '10.1/broken'
        assert len(session.resources) == 1
        assert db_client.transactions == 2

    def test_import_dois(self, db_client, record):
        """Test fetching records through the API client."""
        api_client = Mock()
        api_client.get_doi_metadata.side_effect = lambda doi: record if doi == record['id'] else None

        result = DataCiteImportService(db_client, api_client).import_dois([record['id'], '10.1/missing'], 1)

        assert result['imported'] == 1
        assert result['failed'] == [{'doi': '10.1/missing', 'message': 'DOI not found at DataCite'}]

    def test_import_all(self, db_client, record):
        """Test importing every DOI of the client."""
        api_client = Mock()
        api_client.iter_dois.return_value = iter([record])

        result = DataCiteImportService(db_client, api_client).import_all(1, prefix='10.5880')

        api_client.iter_dois.assert_called_once_with('10.5880')
        assert result['imported'] == 1

    def test_api_client_required(self, db_client):
        """Test that fetching without API client is rejected."""
        with pytest.raises(ValueError):
            DataCiteImportService(db_client).import_dois(['10.1/x'], 1)
        with pytest.raises(ValueError):
            DataCiteImportService(db_client).import_all(1)

    def test_institution_is_shared(self, db_client, session, record):
        """Test that a second record reuses the stored institution."""
        session.insert_institution(Institution(
            name='GFZ', name_identifier='https://ror.org/04z8jg394', name_identifier_scheme='ROR'
        ))
        DataCiteImportService(db_client).import_records([record], 1)
        assert len(session.institutions) == 1
