"""Database access for the ERNIE metadata store."""

from src.db.ernie_client import (
    ErnieDatabaseClient,
    MySQLSession,
    DatabaseError,
    ConnectionError,
    TransactionError,
    ConfigurationError,
)
from src.db.lookup_cache import LookupCache, LOOKUP_TABLES, kebab_case

__all__ = [
    'ErnieDatabaseClient', 'MySQLSession', 'DatabaseError', 'ConnectionError',
    'TransactionError', 'ConfigurationError', 'LookupCache', 'LOOKUP_TABLES', 'kebab_case',
]
