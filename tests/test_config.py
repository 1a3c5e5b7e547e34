"""Unit tests for environment based settings."""

import pytest

from src.config import AppSettings, DatabaseSettings, DataCiteSettings


ENV_VARS = [
    'ERNIE_DB_HOST', 'ERNIE_DB_NAME', 'ERNIE_DB_USER', 'ERNIE_DB_PASSWORD', 'ERNIE_DB_PORT',
    'DATACITE_USERNAME', 'DATACITE_PASSWORD', 'DATACITE_USE_TEST_API',
    'DATACITE_XSD_PATH', 'ROR_API_ENDPOINT',
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all settings variables; values written by load_dotenv are undone too."""
    for name in ENV_VARS:
        monkeypatch.setenv(name, '')
        monkeypatch.delenv(name)
    return monkeypatch


class TestDatabaseSettings:
    """Test database settings."""

    def test_defaults(self, clean_env):
        """Test defaults without any environment variables."""
        settings = DatabaseSettings.from_env()
        assert settings == DatabaseSettings('localhost', 'ernie', '', '', 3306)

    def test_from_env(self, clean_env):
        """Test reading all variables."""
        clean_env.setenv('ERNIE_DB_HOST', 'db.example.org')
        clean_env.setenv('ERNIE_DB_NAME', 'ernie_test')
        clean_env.setenv('ERNIE_DB_USER', 'curator')
        clean_env.setenv('ERNIE_DB_PASSWORD', 'secret')
        clean_env.setenv('ERNIE_DB_PORT', '3307')

        settings = DatabaseSettings.from_env()

        assert settings.host == 'db.example.org'
        assert settings.database == 'ernie_test'
        assert settings.username == 'curator'
        assert settings.password == 'secret'
        assert settings.port == 3307

    def test_invalid_port(self, clean_env):
        """Test that a non-numeric port is rejected."""
        clean_env.setenv('ERNIE_DB_PORT', 'abc')
        with pytest.raises(ValueError, match='ERNIE_DB_PORT'):
            DatabaseSettings.from_env()


class TestDataCiteSettings:
    """Test DataCite credentials."""

    @pytest.mark.parametrize("value,expected", [
        ('1', True), ('true', True), ('YES', True), (' on ', True),
        ('0', False), ('false', False), ('', False),
    ])
    def test_use_test_api(self, clean_env, value, expected):
        """Test boolean parsing of DATACITE_USE_TEST_API."""
        clean_env.setenv('DATACITE_USE_TEST_API', value)
        assert DataCiteSettings.from_env().use_test_api is expected

    def test_is_configured(self):
        """Test that both username and password are required."""
        assert DataCiteSettings('TIB.GFZ', 'pw').is_configured
        assert not DataCiteSettings('TIB.GFZ', '').is_configured
        assert not DataCiteSettings().is_configured


class TestAppSettings:
    """Test the combined settings."""

    def test_from_dotenv_file(self, clean_env, tmp_path):
        """Test loading an explicit .env file."""
        env_file = tmp_path / '.env'
        env_file.write_text(
            "ERNIE_DB_HOST=mysql.local\n"
            "DATACITE_USERNAME=TIB.GFZ\n"
            "DATACITE_PASSWORD=pw\n"
            "DATACITE_XSD_PATH=/schemas/metadata.xsd\n",
            encoding='utf-8'
        )

        settings = AppSettings.from_env(str(env_file))

        assert settings.database.host == 'mysql.local'
        assert settings.datacite.is_configured
        assert settings.xsd_path == '/schemas/metadata.xsd'
        assert settings.ror_api_endpoint is None

    def test_environment_wins_over_dotenv(self, clean_env, tmp_path):
        """Test that existing variables are not overridden by the file."""
        env_file = tmp_path / '.env'
        env_file.write_text("ERNIE_DB_HOST=from-file\n", encoding='utf-8')
        clean_env.setenv('ERNIE_DB_HOST', 'from-env')

        assert AppSettings.from_env(str(env_file)).database.host == 'from-env'

    def test_dict_round_trip(self):
        """Test to_dict/from_dict."""
        settings = AppSettings(
            database=DatabaseSettings(host='h', port=3310),
            datacite=DataCiteSettings('u', 'p', True),
            xsd_path='/x.xsd',
        )

        data = settings.to_dict()

        assert data['database']['port'] == 3310
        assert data['datacite']['use_test_api'] is True
        assert AppSettings.from_dict(data) == settings

    def test_from_empty_dict(self):
        """Test that missing sections fall back to defaults."""
        assert AppSettings.from_dict({}) == AppSettings()
