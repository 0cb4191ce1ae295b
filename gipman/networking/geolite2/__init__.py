"""GeoLite2 module - updater, country index, whitelist matching and lifecycle manager."""

from gipman.networking.geolite2.config import UpdaterConfig, load_updater_config
from gipman.networking.geolite2.manager import GeoIndexManager, IndexStatus, ManagerState
from gipman.networking.geolite2.readers import CountryRecord, GeoIndex, open_country_index
from gipman.networking.geolite2.updater import DatabaseUpdater

__all__ = [
    'CountryRecord',
    'DatabaseUpdater',
    'GeoIndex',
    'GeoIndexManager',
    'IndexStatus',
    'ManagerState',
    'UpdaterConfig',
    'load_updater_config',
    'open_country_index',
]
