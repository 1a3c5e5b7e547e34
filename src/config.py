"""
Application settings read from the environment.

Values come from process environment variables, optionally loaded from a
``.env`` file in the working directory via python-dotenv.
"""

import logging
import os
from dataclasses import dataclass, asdict, field
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


_TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class DatabaseSettings:
    """Connection settings for the ERNIE MySQL database."""

    host: str = 'localhost'
    database: str = 'ernie'
    username: str = ''
    password: str = ''
    port: int = 3306

    @classmethod
    def from_env(cls) -> 'DatabaseSettings':
        port = os.getenv('ERNIE_DB_PORT', '3306')
        try:
            port = int(port)
        except ValueError:
            raise ValueError(f"Invalid ERNIE_DB_PORT: {port}")

        return cls(
            host=os.getenv('ERNIE_DB_HOST', cls.host),
            database=os.getenv('ERNIE_DB_NAME', cls.database),
            username=os.getenv('ERNIE_DB_USER', ''),
            password=os.getenv('ERNIE_DB_PASSWORD', ''),
            port=port,
        )

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'DatabaseSettings':
        return cls(**data)


@dataclass
class DataCiteSettings:
    """Credentials for the DataCite REST API."""

    username: str = ''
    password: str = ''
    use_test_api: bool = False

    @classmethod
    def from_env(cls) -> 'DataCiteSettings':
        return cls(
            username=os.getenv('DATACITE_USERNAME', ''),
            password=os.getenv('DATACITE_PASSWORD', ''),
            use_test_api=_env_bool('DATACITE_USE_TEST_API'),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'DataCiteSettings':
        return cls(**data)


@dataclass
class AppSettings:
    """All settings of the application."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    datacite: DataCiteSettings = field(default_factory=DataCiteSettings)
    xsd_path: Optional[str] = None
    ror_api_endpoint: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'AppSettings':
        """
        Load settings from the environment.

        Args:
            dotenv_path: Explicit .env file; by default ``.env`` is searched
                from the current directory upwards. Existing environment
                variables are not overridden.
        """
        load_dotenv(dotenv_path)
        settings = cls(
            database=DatabaseSettings.from_env(),
            datacite=DataCiteSettings.from_env(),
            xsd_path=os.getenv('DATACITE_XSD_PATH') or None,
            ror_api_endpoint=os.getenv('ROR_API_ENDPOINT') or None,
        )
        logger.debug(f"Loaded settings for database {settings.database.database}@{settings.database.host}")
        return settings

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'AppSettings':
        return cls(
            database=DatabaseSettings.from_dict(data.get('database') or {}),
            datacite=DataCiteSettings.from_dict(data.get('datacite') or {}),
            xsd_path=data.get('xsd_path'),
            ror_api_endpoint=data.get('ror_api_endpoint'),
        )
