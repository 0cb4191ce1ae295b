"""Shared fakes for the database, reader and updater layers."""
from pathlib import Path
from threading import Event
from types import SimpleNamespace

import geoip2.errors
import pytest

from gipman.exceptions import DownloadError, IndexBuildError
from gipman.networking.geolite2.manager import GeoIndexManager
from gipman.networking.geolite2.readers import GeoIndex

US_NAMES = {
    'de': 'USA',
    'en': 'United States',
    'es': 'Estados Unidos',
    'fr': 'États Unis',
    'ja': 'アメリカ',
    'pt-BR': 'EUA',
    'ru': 'США',
    'zh-CN': '美国',
}
CA_NAMES = {
    'de': 'Kanada',
    'en': 'Canada',
    'es': 'Canadá',
    'fr': 'Canada',
    'ru': 'Канада',
}


def make_country(geoname_id: int, iso_code: str, names: dict[str, str], confidence: int | None = None) -> SimpleNamespace:
    """Build an object shaped like `geoip2.records.Country`."""
    return SimpleNamespace(geoname_id=geoname_id, iso_code=iso_code, names=names, confidence=confidence)


US = make_country(6252001, 'US', US_NAMES)
CA = make_country(6251999, 'CA', CA_NAMES)


class FakeReader:
    """Stand-in for `geoip2.database.Reader` backed by a dict of IP -> country."""

    def __init__(self, countries: dict[str, SimpleNamespace], *, database_type: str = 'GeoLite2-Country', build_epoch: int = 1_700_000_000) -> None:
        self.countries = countries
        self._metadata = SimpleNamespace(database_type=database_type, build_epoch=build_epoch)

    def country(self, ip: str) -> SimpleNamespace:
        if ip not in self.countries:
            raise geoip2.errors.AddressNotFoundError(f'The address {ip} is not in the database.')
        return SimpleNamespace(country=self.countries[ip])

    def metadata(self) -> SimpleNamespace:
        return self._metadata


def make_index(countries: dict[str, SimpleNamespace], **kwargs: object) -> GeoIndex:
    """Wrap a `FakeReader` in a `GeoIndex`."""
    return GeoIndex(FakeReader(countries, **kwargs))


class FakeUpdater:
    """Records updater calls; failures are injected per edition."""

    def __init__(self, edition_ids: tuple[str, ...] = ('GeoLite2-Country',), directory: Path = Path('/srv/geoip')) -> None:
        self.edition_ids = edition_ids
        self.directory = directory
        self.stop_event = Event()
        self.ensure_calls: list[str] = []
        self.refresh_calls: list[tuple[str, ...]] = []
        self.fail_ensure: set[str] = set()
        self.fail_refresh = False

    def edition_path(self, edition_id: str) -> Path:
        return self.directory / f'{edition_id}.mmdb'

    def ensure_local(self, edition_id: str) -> Path:
        self.ensure_calls.append(edition_id)
        if edition_id in self.fail_ensure:
            raise DownloadError(edition_id, 'connection refused')
        return self.edition_path(edition_id)

    def refresh(self, *edition_ids: str) -> None:
        self.refresh_calls.append(edition_ids)
        if self.fail_refresh:
            raise DownloadError(edition_ids[0], 'HTTP 503')


class IndexLoader:
    """Index factory for the manager: returns the queued indexes in order, or fails."""

    def __init__(self, *indexes: GeoIndex) -> None:
        self.indexes = list(indexes)
        self.loaded_paths: list[Path] = []
        self.fail = False

    def __call__(self, path: Path) -> GeoIndex:
        self.loaded_paths.append(path)
        if self.fail or not self.indexes:
            raise IndexBuildError(path, 'not a valid MaxMind DB file')
        if len(self.indexes) == 1:
            return self.indexes[0]
        return self.indexes.pop(0)


@pytest.fixture
def updater() -> FakeUpdater:
    return FakeUpdater()


@pytest.fixture
def us_index() -> GeoIndex:
    return make_index({'8.8.8.8': US, '2001:4860:4860::8888': US, '99.224.0.1': CA})


@pytest.fixture
def ready_manager(updater: FakeUpdater, us_index: GeoIndex) -> GeoIndexManager:
    manager = GeoIndexManager(updater, update_interval='168h', index_loader=IndexLoader(us_index))  # pyright: ignore[reportArgumentType]
    manager.bootstrap()
    return manager
