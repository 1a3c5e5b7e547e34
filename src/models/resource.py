"""
Resource aggregate.

One Resource owns ordered child collections (titles, creators,
contributors, descriptions, dates, subjects, geo locations, related
identifiers, funding references, rights, sizes, formats). IGSN resources
additionally carry an IgsnMetadata record plus classification and
geological age/unit lists.

Lookup references (title type, date type, ...) are held as the slug of
the lookup row, which is also the DataCite vocabulary value, except for
resource types whose slugs are kebab-case (``physical-object``) and whose
display name is mapped to resourceTypeGeneral on export.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.models.agents import Agent


MAIN_TITLE = 'MainTitle'

# Date types maintained by the system, never taken from user input
DATE_TYPE_CREATED = 'Created'
DATE_TYPE_UPDATED = 'Updated'


@dataclass
class Publisher:
    """Publisher record (DataCite 4.5+ extended publisher)."""
    name: str
    identifier: Optional[str] = None
    identifier_scheme: Optional[str] = None
    scheme_uri: Optional[str] = None
    language: Optional[str] = 'en'
    is_default: bool = False
    id: Optional[int] = None


@dataclass
class Right:
    """License entry, identified by its SPDX identifier."""
    identifier: str
    name: str
    uri: Optional[str] = None
    scheme_uri: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Title:
    value: str
    # None only occurs in legacy data
    title_type: Optional[str] = MAIN_TITLE
    language: Optional[str] = None

    @property
    def is_main_title(self) -> bool:
        return self.title_type == MAIN_TITLE


@dataclass
class Affiliation:
    """Affiliation owned by exactly one creator or contributor."""
    name: str
    identifier: Optional[str] = None
    identifier_scheme: Optional[str] = None
    scheme_uri: Optional[str] = None


@dataclass
class Creator:
    agent: Agent
    position: int = 0
    affiliations: List[Affiliation] = field(default_factory=list)
    email: Optional[str] = None
    website: Optional[str] = None


@dataclass
class Contributor:
    agent: Agent
    contributor_type: str = 'Other'
    position: int = 0
    affiliations: List[Affiliation] = field(default_factory=list)


@dataclass
class Description:
    value: str
    description_type: str = 'Abstract'
    language: Optional[str] = None


@dataclass
class ResourceDate:
    """
    A dated event of the resource.

    Either ``date_value`` is set (single date) or ``start_date`` is set
    (range). A range with ``end_date`` None is open-ended. All values are
    ISO dates (YYYY-MM-DD) stored as strings.
    """
    date_type: Optional[str]
    date_value: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    date_information: Optional[str] = None

    def __post_init__(self):
        if self.date_value and (self.start_date or self.end_date):
            raise ValueError("A date is either a single value or a range, not both")
        if self.end_date and not self.start_date:
            raise ValueError("A date range needs a start date")

    @property
    def is_range(self) -> bool:
        """Closed range with both ends."""
        return bool(self.start_date) and bool(self.end_date)

    @property
    def is_open_ended_range(self) -> bool:
        return bool(self.start_date) and not self.end_date and not self.date_value


@dataclass
class Subject:
    """Keyword; without a scheme it is a free keyword."""
    value: str
    subject_scheme: Optional[str] = None
    scheme_uri: Optional[str] = None
    value_uri: Optional[str] = None
    classification_code: Optional[str] = None
    language: Optional[str] = 'en'

    @property
    def is_free_keyword(self) -> bool:
        return not self.subject_scheme


@dataclass
class PolygonPoint:
    longitude: float
    latitude: float


@dataclass
class GeoLocation:
    """Place, point, box and polygon may all be present at once."""
    place: Optional[str] = None
    point_longitude: Optional[float] = None
    point_latitude: Optional[float] = None
    west_bound_longitude: Optional[float] = None
    east_bound_longitude: Optional[float] = None
    south_bound_latitude: Optional[float] = None
    north_bound_latitude: Optional[float] = None
    polygon_points: List[PolygonPoint] = field(default_factory=list)
    in_polygon_point_longitude: Optional[float] = None
    in_polygon_point_latitude: Optional[float] = None
    elevation: Optional[float] = None
    elevation_unit: Optional[str] = None

    @property
    def has_point(self) -> bool:
        return self.point_longitude is not None and self.point_latitude is not None

    @property
    def has_box(self) -> bool:
        return None not in (
            self.west_bound_longitude,
            self.east_bound_longitude,
            self.south_bound_latitude,
            self.north_bound_latitude,
        )

    @property
    def has_polygon(self) -> bool:
        return len(self.polygon_points) >= 3

    @property
    def has_in_polygon_point(self) -> bool:
        return self.in_polygon_point_longitude is not None and self.in_polygon_point_latitude is not None


@dataclass
class RelatedIdentifier:
    identifier: str
    identifier_type: Optional[str] = 'DOI'
    relation_type: Optional[str] = 'References'
    resource_type_general: Optional[str] = None
    related_metadata_scheme: Optional[str] = None
    scheme_uri: Optional[str] = None
    scheme_type: Optional[str] = None
    position: int = 0


@dataclass
class AlternateIdentifier:
    value: str
    identifier_type: str


@dataclass
class FundingReference:
    funder_name: str
    funder_identifier: Optional[str] = None
    funder_identifier_type: Optional[str] = None
    scheme_uri: Optional[str] = None
    award_number: Optional[str] = None
    award_uri: Optional[str] = None
    award_title: Optional[str] = None
    position: int = 0


@dataclass
class IgsnMetadata:
    """Physical sample details recorded for IGSN resources."""
    sample_type: Optional[str] = None
    material: Optional[str] = None
    is_private: bool = False
    size: Optional[float] = None
    size_unit: Optional[str] = None
    depth_min: Optional[float] = None
    depth_max: Optional[float] = None
    depth_scale: Optional[str] = None
    sample_purpose: Optional[str] = None
    collection_method: Optional[str] = None
    collection_method_description: Optional[str] = None
    collection_date_precision: Optional[str] = None
    cruise_field_program: Optional[str] = None
    platform_type: Optional[str] = None
    platform_name: Optional[str] = None
    platform_description: Optional[str] = None
    current_archive: Optional[str] = None
    current_archive_contact: Optional[str] = None
    sample_access: Optional[str] = None
    operator: Optional[str] = None
    coordinate_system: Optional[str] = None
    user_code: Optional[str] = None
    description_json: Optional[Dict[str, Any]] = None
    upload_status: str = 'uploaded'
    upload_error_message: Optional[str] = None
    csv_filename: Optional[str] = None
    csv_row_number: Optional[int] = None


@dataclass
class Resource:
    """Aggregate root of a curated metadata record."""
    publication_year: Optional[int] = None
    doi: Optional[str] = None
    identifier_type: str = 'DOI'
    version: Optional[str] = None
    resource_type_slug: Optional[str] = None
    resource_type_name: Optional[str] = None
    language: Optional[str] = None
    publisher: Optional[Publisher] = None
    created_by_user_id: Optional[int] = None
    updated_by_user_id: Optional[int] = None
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None
    id: Optional[int] = None

    titles: List[Title] = field(default_factory=list)
    creators: List[Creator] = field(default_factory=list)
    contributors: List[Contributor] = field(default_factory=list)
    descriptions: List[Description] = field(default_factory=list)
    dates: List[ResourceDate] = field(default_factory=list)
    subjects: List[Subject] = field(default_factory=list)
    geo_locations: List[GeoLocation] = field(default_factory=list)
    alternate_identifiers: List[AlternateIdentifier] = field(default_factory=list)
    related_identifiers: List[RelatedIdentifier] = field(default_factory=list)
    funding_references: List[FundingReference] = field(default_factory=list)
    rights: List[Right] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    formats: List[str] = field(default_factory=list)

    # IGSN only
    igsn_metadata: Optional[IgsnMetadata] = None
    classifications: List[str] = field(default_factory=list)
    geological_ages: List[str] = field(default_factory=list)
    geological_units: List[str] = field(default_factory=list)

    @property
    def is_igsn(self) -> bool:
        return self.igsn_metadata is not None

    @property
    def main_title(self) -> Optional[str]:
        for title in self.titles:
            if title.is_main_title:
                return title.value
        return self.titles[0].value if self.titles else None

    def dates_of_type(self, date_type: str) -> List[ResourceDate]:
        return [d for d in self.dates if d.date_type == date_type]
