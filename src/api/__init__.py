"""HTTP clients for DataCite and ROR."""

from src.api.datacite_client import DataCiteClient, DataCiteAPIError, AuthenticationError, NetworkError
from src.api.ror_client import RorClient, RorAPIError

__all__ = [
    'DataCiteClient', 'DataCiteAPIError', 'AuthenticationError', 'NetworkError',
    'RorClient', 'RorAPIError',
]
