"""GeoLite2 orchestration: bootstrap, periodic refresh and hot-swapped country index.

The refresh loop runs on a single thread and re-arms its timer only after a cycle
finishes, so cycles never overlap. Lookups read whichever index is currently
published; a refresh builds the new index completely before swapping it in.
"""

import queue
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum, auto
from pathlib import Path
from threading import Lock

from gipman.constants.standalone import COUNTRY_EDITION_ID
from gipman.durations import MAX_DURATION, format_duration, parse_duration
from gipman.exceptions import ConfigurationError, DownloadError, GipmanError, IndexBuildError, IndexUnavailableError
from gipman.logging_setup import get_logger
from gipman.models import LookupMatch, LookupRequest
from gipman.networking.geolite2.matching import match_countries, validate_request
from gipman.networking.geolite2.readers import GeoIndex, open_country_index
from gipman.networking.geolite2.updater import DatabaseUpdater

# Upper bound of a single Event.wait call while sleeping between refresh cycles
MAX_WAIT_SLICE_SECONDS = 3600.0

logger = get_logger(__name__)


class ManagerState(Enum):
    """Lifecycle of the index manager."""

    UNINITIALIZED = auto()
    BOOTSTRAPPING = auto()
    READY = auto()
    REFRESHING = auto()
    FAILED = auto()


@dataclass(kw_only=True, slots=True)
class IndexStatus:
    """Point-in-time view of the manager, for diagnostics."""

    state: ManagerState
    edition_ids: tuple[str, ...]
    update_interval: timedelta | None
    index_loaded: bool
    database_type: str | None = None
    build_time: datetime | None = None
    last_refresh: datetime | None = None
    last_refresh_error: str | None = None


class IndexCell:
    """Holds the currently published index; the lock only guards the reference swap."""

    def __init__(self) -> None:
        """Start with no published index."""
        self._lock = Lock()
        self._index: GeoIndex | None = None

    def get(self) -> GeoIndex | None:
        """Return the index published at the time of the call."""
        with self._lock:
            return self._index

    def publish(self, index: GeoIndex) -> GeoIndex | None:
        """Make `index` visible to future readers and return the one it replaces."""
        with self._lock:
            previous, self._index = self._index, index
        return previous


class GeoIndexManager:
    """Own the database refresh cadence and serve lookups from the current index."""

    def __init__(
        self,
        updater: DatabaseUpdater,
        *,
        update_interval: str | timedelta,
        index_edition: str = COUNTRY_EDITION_ID,
        index_loader: Callable[[Path], GeoIndex] = open_country_index,
    ) -> None:
        """Initialize the manager.

        Args:
            updater: Keeps the local database files up to date.
            update_interval: Time between refresh cycles (`168h` style string or timedelta).
            index_edition: Edition the lookup index is built from.
            index_loader: Turns a database file into a `GeoIndex`.
        """
        self.updater = updater
        self.index_edition = index_edition
        self._raw_update_interval = update_interval
        self._update_interval: timedelta | None = None
        self._index_loader = index_loader
        self._cell = IndexCell()
        self._stop_event = updater.stop_event
        self._state = ManagerState.UNINITIALIZED
        self._last_refresh: datetime | None = None
        self._last_refresh_error: str | None = None

    @property
    def state(self) -> ManagerState:
        """Current lifecycle state."""
        return self._state

    @property
    def edition_ids(self) -> tuple[str, ...]:
        """Editions kept up to date by this manager."""
        return self.updater.edition_ids

    def _validate_interval(self) -> timedelta:
        if isinstance(self._raw_update_interval, timedelta):
            if self._raw_update_interval <= timedelta(0):
                raise ConfigurationError(f'update interval "{self._raw_update_interval}" must be a positive duration')
            if self._raw_update_interval > MAX_DURATION:
                raise ConfigurationError(f'update interval "{self._raw_update_interval}" exceeds the maximum duration of {format_duration(MAX_DURATION)}')
            return self._raw_update_interval
        return parse_duration(self._raw_update_interval)

    def _build_index(self) -> GeoIndex:
        return self._index_loader(self.updater.edition_path(self.index_edition))

    def bootstrap(self) -> timedelta:
        """Validate the interval, make sure every edition exists locally and build the first index.

        Raises:
            ConfigurationError: If the update interval is invalid.
            DownloadError: If a missing edition cannot be downloaded.
        """
        logger.info('Starting GeoLite manager...')
        self._state = ManagerState.BOOTSTRAPPING

        try:
            self._update_interval = self._validate_interval()

            if self.index_edition not in self.edition_ids:
                logger.warning('Index edition %s is not listed in the updater EditionIDs; it will not be refreshed', self.index_edition)

            logger.info('Checking for db files...')
            for edition_id in self.edition_ids:
                self.updater.ensure_local(edition_id)
        except (ConfigurationError, DownloadError):
            self._state = ManagerState.FAILED
            raise

        try:
            self._cell.publish(self._build_index())
        except IndexBuildError:
            logger.exception('Error opening db, lookups are unavailable until the next successful refresh')

        self._state = ManagerState.READY
        logger.debug('GeoLite manager initialization completed (update interval: %s)', format_duration(self._update_interval))
        return self._update_interval

    def start(self) -> None:
        """Bootstrap, then refresh every update interval until `stop()` is called.

        Raises:
            ConfigurationError: If the update interval is invalid.
            DownloadError: If the initial download of a missing edition fails.
        """
        update_interval = self.bootstrap()

        logger.debug('Entering GeoLite manager refresh loop...')
        while not self._wait_for_next_cycle(update_interval):
            self.refresh_once()

        logger.info('GeoLite manager stopped')

    def run(self, errors: queue.Queue[BaseException]) -> None:
        """Thread target: run `start()` and report a fatal error on `errors`."""
        try:
            self.start()
        except GipmanError as e:
            self._state = ManagerState.FAILED
            errors.put(e)
        except Exception as e:  # noqa: BLE001
            logger.exception('GeoLite manager stopped unexpectedly')
            self._state = ManagerState.FAILED
            errors.put(e)

    def _wait_for_next_cycle(self, interval: timedelta) -> bool:
        """Sleep for `interval`; return whether `stop()` was requested meanwhile."""
        deadline = time.monotonic() + interval.total_seconds()
        while (remaining := deadline - time.monotonic()) > 0:
            if self._stop_event.wait(min(remaining, MAX_WAIT_SLICE_SECONDS)):
                return True
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the refresh loop to exit; an in-flight download is abandoned and the old index kept."""
        self._stop_event.set()

    def refresh_once(self) -> bool:
        """Run one refresh cycle; return whether a new index was published."""
        self._state = ManagerState.REFRESHING
        try:
            return self._refresh()
        finally:
            self._state = ManagerState.READY

    def _refresh(self) -> bool:
        logger.info('Running geo ip update...')

        try:
            self.updater.refresh(*self.edition_ids)
        except DownloadError as e:
            logger.error('Error updating GeoLite 2 databases: %s', e)  # noqa: TRY400
            self._last_refresh_error = str(e)
            return False

        logger.info('GeoLite 2 databases updated successfully')
        self._last_refresh = datetime.now(UTC)

        try:
            index = self._build_index()
        except IndexBuildError as e:
            logger.error('Error reconstructing country index: %s', e)  # noqa: TRY400
            self._last_refresh_error = str(e)
            return False

        # Previous index stays open for lookups still holding it.
        self._cell.publish(index)
        self._last_refresh_error = None
        logger.info('Country index reconstructed')
        return True

    def lookup(self, request: LookupRequest) -> list[LookupMatch]:
        """Resolve the request's source IP and match it against its whitelist.

        Raises:
            InvalidRequestError: If the request is missing its source IP or whitelist, or the IP is invalid.
            IndexUnavailableError: If no index has been built yet.
            LookupFailedError: If the IP cannot be resolved against the current index.
        """
        source_ip = validate_request(request)

        index = self._cell.get()
        if index is None:
            raise IndexUnavailableError

        record = index.resolve(source_ip)
        logger.debug('Resolved %s to %s (%s)', source_ip, record.iso_code, record.geo_name_id)

        return match_countries(request, record)

    def status(self) -> IndexStatus:
        """Return a snapshot of the manager state and the published index."""
        index = self._cell.get()
        return IndexStatus(
            state=self._state,
            edition_ids=self.edition_ids,
            update_interval=self._update_interval,
            index_loaded=index is not None,
            database_type=index.database_type if index is not None else None,
            build_time=index.build_time if index is not None else None,
            last_refresh=self._last_refresh,
            last_refresh_error=self._last_refresh_error,
        )
