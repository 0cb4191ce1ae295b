"""Parsing of the MaxMind `GeoIP.conf` updater configuration file."""
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gipman.durations import parse_duration
from gipman.exceptions import ConfigurationError
from gipman.logging_setup import get_logger

DEFAULT_HOST = 'updates.maxmind.com'
DEFAULT_RETRY_FOR = timedelta(minutes=5)
LOCK_FILE_NAME = '.geoipupdate.lock'

_LEGACY_KEYS = {
    'UserId': 'AccountID',
    'ProductIds': 'EditionIDs',
}
_KNOWN_KEYS = frozenset({
    'AccountID',
    'DatabaseDirectory',
    'EditionIDs',
    'Host',
    'LicenseKey',
    'LockFile',
    'PreserveFileTimes',
    'Proxy',
    'ProxyUserPassword',
    'RetryFor',
})

logger = get_logger(__name__)


class UpdaterConfig(BaseModel):
    """Validated updater configuration."""

    model_config = ConfigDict(frozen=True)

    account_id: int
    license_key: str = Field(min_length=1)
    edition_ids: tuple[str, ...] = Field(min_length=1)
    database_directory: Path
    host: str = DEFAULT_HOST
    proxy: str | None = None
    proxy_user_password: str | None = None
    lock_file: Path
    preserve_file_times: bool = False
    retry_for: timedelta = DEFAULT_RETRY_FOR

    @field_validator('host')
    @classmethod
    def _strip_scheme(cls, value: str) -> str:
        return value.removeprefix('https://').removeprefix('http://').rstrip('/')

    @property
    def proxies(self) -> dict[str, str] | None:
        """Return a `requests` compatible proxy mapping, if a proxy is configured."""
        if not self.proxy:
            return None

        proxy = self.proxy if '://' in self.proxy else f'http://{self.proxy}'
        if self.proxy_user_password:
            scheme, _, address = proxy.partition('://')
            proxy = f'{scheme}://{self.proxy_user_password}@{address}'
        return {'http': proxy, 'https': proxy}


def parse_config_text(text: str, /) -> dict[str, str]:
    """Split `GeoIP.conf` text into a key -> raw value mapping.

    Raises:
        ConfigurationError: On malformed lines, unknown keys or repeated keys.
    """
    values: dict[str, str] = {}

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.split('#', 1)[0].strip()
        if not line:
            continue

        parts = line.split(None, 1)
        if len(parts) != 2:  # noqa: PLR2004
            raise ConfigurationError(f'invalid format on line {line_number} of updater config: "{raw_line.strip()}"')

        key, value = parts
        key = _LEGACY_KEYS.get(key, key)
        if key not in _KNOWN_KEYS:
            raise ConfigurationError(f'unknown option "{key}" on line {line_number} of updater config')
        if key in values:
            raise ConfigurationError(f'"{key}" is in the updater config multiple times')

        values[key] = value

    return values


def build_updater_config(values: dict[str, str], *, database_directory: Path | str | None = None) -> UpdaterConfig:
    """Build an `UpdaterConfig` from raw values; `database_directory` overrides the file's value."""
    if database_directory is not None:
        directory = Path(database_directory)
    elif 'DatabaseDirectory' in values:
        directory = Path(values['DatabaseDirectory'])
    else:
        raise ConfigurationError('database directory is not configured')

    missing = [key for key in ('AccountID', 'LicenseKey', 'EditionIDs') if key not in values]
    if missing:
        raise ConfigurationError(f'updater config is missing required option(s): {", ".join(missing)}')

    try:
        return UpdaterConfig(
            account_id=values['AccountID'],
            license_key=values['LicenseKey'],
            edition_ids=tuple(values['EditionIDs'].split()),
            database_directory=directory,
            host=values.get('Host', DEFAULT_HOST),
            proxy=values.get('Proxy'),
            proxy_user_password=values.get('ProxyUserPassword'),
            lock_file=Path(values['LockFile']) if 'LockFile' in values else directory / LOCK_FILE_NAME,
            preserve_file_times=values.get('PreserveFileTimes', '0') == '1',
            retry_for=parse_duration(values['RetryFor'], name='RetryFor') if 'RetryFor' in values else DEFAULT_RETRY_FOR,
        )
    except ValidationError as e:
        raise ConfigurationError(f'invalid updater config: {e}') from e


def load_updater_config(config_path: Path | str, *, database_directory: Path | str | None = None) -> UpdaterConfig:
    """Read and validate the updater configuration file at `config_path`."""
    path = Path(config_path)
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ConfigurationError(f'error reading updater config "{path}": {e}') from e

    config = build_updater_config(parse_config_text(text), database_directory=database_directory)
    logger.debug('Loaded updater config from %s (editions: %s)', path, ', '.join(config.edition_ids))
    return config
