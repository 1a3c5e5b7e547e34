"""Split free-text person names into family and given name."""

import re
from typing import Optional, Tuple

# Tokens after a comma that are name suffixes, not given names
NAME_SUFFIXES = ('jr', 'sr', 'ii', 'iii', 'phd', 'md')

_SUFFIX_PATTERN = re.compile(r'^(?:' + '|'.join(NAME_SUFFIXES) + r')\.?$', re.IGNORECASE)


def is_name_suffix(text: str) -> bool:
    """Return True if text is one of the known suffixes (Jr., Sr., II, III, PhD, MD)."""
    return bool(_SUFFIX_PATTERN.match(text.strip()))


def parse_person_name(name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Parse a person name into (family_name, given_name).

    "Family, Given" splits on the first comma unless the part after the
    comma is a name suffix, in which case the whole string is the family
    name. "Given Family" takes the last token as family name. A single
    token is the family name.

    Examples:
        >>> parse_person_name("Müller, Anna")
        ('Müller', 'Anna')
        >>> parse_person_name("Anna Maria Müller")
        ('Müller', 'Anna Maria')
        >>> parse_person_name("Smith, Jr.")
        ('Smith, Jr.', None)
    """
    if name is None:
        return None, None
    name = name.strip()
    if not name:
        return None, None

    if ',' in name:
        family, given = name.split(',', 1)
        given = given.strip()
        if is_name_suffix(given):
            return name, None
        return family.strip() or None, given or None

    parts = name.split()
    if len(parts) > 1:
        return parts[-1], ' '.join(parts[:-1])

    return name, None
