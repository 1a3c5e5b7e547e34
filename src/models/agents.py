"""
Agent records shared between resources.

A Creator or Contributor points at exactly one agent, which is either a
Person or an Institution. The variant is carried by the ``kind`` tag so
consumers can dispatch on it without isinstance checks against concrete
classes:

    if agent.kind is AgentKind.PERSON: ...
    elif agent.kind is AgentKind.INSTITUTION: ...

Persons and institutions are never deleted by resource edits. They are
only created, or backfilled with an identifier they did not have yet.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union


# Scheme used for MSL laboratory records stored as institutions
LABORATORY_SCHEME = 'labid'


class AgentKind(Enum):
    """Tag for the Person | Institution variant."""
    PERSON = 'person'
    INSTITUTION = 'institution'


@dataclass
class Person:
    """A natural person (DataCite nameType "Personal")."""
    family_name: Optional[str] = None
    given_name: Optional[str] = None
    name_identifier: Optional[str] = None
    name_identifier_scheme: Optional[str] = None
    scheme_uri: Optional[str] = None
    id: Optional[int] = None

    kind: ClassVar[AgentKind] = AgentKind.PERSON

    @property
    def orcid(self) -> Optional[str]:
        """Return the identifier if it is an ORCID (a missing scheme counts as ORCID)."""
        if not self.name_identifier:
            return None
        scheme = self.name_identifier_scheme or 'ORCID'
        return self.name_identifier if scheme.upper() == 'ORCID' else None

    @property
    def display_name(self) -> str:
        """Return "Family, Given", falling back to whichever part exists."""
        if self.family_name and self.given_name:
            return f"{self.family_name}, {self.given_name}"
        if self.family_name:
            return self.family_name
        if self.given_name:
            return self.given_name
        return 'Unknown'


@dataclass
class Institution:
    """An organisation (DataCite nameType "Organizational") or MSL laboratory."""
    name: str
    name_identifier: Optional[str] = None
    name_identifier_scheme: Optional[str] = None
    scheme_uri: Optional[str] = None
    id: Optional[int] = None

    kind: ClassVar[AgentKind] = AgentKind.INSTITUTION

    @property
    def is_laboratory(self) -> bool:
        return self.name_identifier_scheme == LABORATORY_SCHEME

    @property
    def display_name(self) -> str:
        return self.name or 'Unknown Institution'


Agent = Union[Person, Institution]
