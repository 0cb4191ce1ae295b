"""GeoLite2 database updater: downloads editions from the MaxMind update service.

Downloads follow the `geoipupdate` protocol: each edition is fetched gzip compressed from
`https://<host>/geoip/databases/<edition>/update`, checked against the `X-Database-MD5`
header and atomically moved over `<DatabaseDirectory>/<edition>.mmdb` while holding the
configured lock file.
"""

import gzip
import hashlib
import os
import tempfile
import time
import zlib
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from http import HTTPStatus
from pathlib import Path
from threading import Event

import requests
from filelock import FileLock, Timeout

from gipman.constants.standalone import DATABASE_FILE_SUFFIX
from gipman.exceptions import DownloadError
from gipman.logging_setup import get_logger
from gipman.networking.geolite2.config import UpdaterConfig
from gipman.networking.http_session import build_session

ZERO_MD5 = '0' * 32
REQUEST_TIMEOUT_SECONDS = 60
LOCK_TIMEOUT_SECONDS = 0
INITIAL_RETRY_DELAY_SECONDS = 1.0
MAX_RETRY_DELAY_SECONDS = 60.0

logger = get_logger(__name__)


@dataclass(kw_only=True, slots=True)
class FetchedDatabase:
    """Decompressed database bytes returned by the update service."""

    content: bytes
    md5: str
    last_modified: datetime | None = None


def _parse_last_modified(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning('Ignoring unparseable Last-Modified header: %r', value)
        return None


def _is_retryable(exception: requests.exceptions.RequestException) -> bool:
    if isinstance(exception, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    status_code = getattr(exception.response, 'status_code', None)
    return status_code is not None and status_code >= HTTPStatus.INTERNAL_SERVER_ERROR


class DatabaseUpdater:
    """Keep local copies of the configured database editions."""

    def __init__(
        self,
        config: UpdaterConfig,
        *,
        session: requests.Session | None = None,
        stop_event: Event | None = None,
    ) -> None:
        """Initialize the updater.

        Args:
            config: The validated updater configuration.
            session: HTTP session to use; one is built from `config` when omitted.
            stop_event: When set, pending retries stop and in-flight downloads are abandoned.
        """
        self.config = config
        self.session = session if session is not None else build_session(
            auth=(str(config.account_id), config.license_key),
            proxies=config.proxies,
        )
        self.stop_event = stop_event if stop_event is not None else Event()

    @property
    def edition_ids(self) -> tuple[str, ...]:
        """Editions listed in the updater configuration."""
        return self.config.edition_ids

    def edition_path(self, edition_id: str) -> Path:
        """Return the local file path of `edition_id`."""
        return self.config.database_directory / f'{edition_id}{DATABASE_FILE_SUFFIX}'

    def ensure_local(self, edition_id: str) -> Path:
        """Download `edition_id` if it has no local copy yet and return its path.

        Raises:
            DownloadError: If the download or the local write fails.
        """
        path = self.edition_path(edition_id)
        if path.is_file():
            return path

        logger.warning('Database %s missing on boot, downloading...', path)
        return self._download(edition_id)

    def refresh(self, *edition_ids: str) -> None:
        """Re-download every listed edition, overwriting the local copies.

        The first failing edition aborts the batch; editions written before it stay updated.

        Raises:
            DownloadError: For the first edition that could not be refreshed.
        """
        for edition_id in edition_ids:
            self._download(edition_id)

    def _download(self, edition_id: str) -> Path:
        fetched = self._fetch_with_retries(edition_id)
        if self.stop_event.is_set():
            raise DownloadError(edition_id, 'download abandoned, shutdown requested')
        return self._persist(edition_id, fetched)

    def _update_url(self, edition_id: str) -> str:
        return f'https://{self.config.host}/geoip/databases/{edition_id}/update'

    def _fetch_with_retries(self, edition_id: str) -> FetchedDatabase:
        deadline = time.monotonic() + self.config.retry_for.total_seconds()
        delay = INITIAL_RETRY_DELAY_SECONDS

        while True:
            try:
                return self._fetch(edition_id)
            except requests.exceptions.RequestException as e:
                if not _is_retryable(e) or time.monotonic() + delay >= deadline:
                    raise DownloadError(edition_id, f'{type(e).__name__}: {e}') from e

                logger.warning('Transient error fetching %s, retrying in %.0fs: %s', edition_id, delay, e)
                if self.stop_event.wait(delay):
                    raise DownloadError(edition_id, 'download abandoned, shutdown requested') from e
                delay = min(delay * 2, MAX_RETRY_DELAY_SECONDS)

    def _fetch(self, edition_id: str) -> FetchedDatabase:
        url = self._update_url(edition_id)
        logger.debug('Requesting %s', url)

        response = self.session.get(url, params={'db_md5': ZERO_MD5}, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()

        try:
            content = gzip.decompress(response.content)
        except (OSError, EOFError, zlib.error) as e:
            raise DownloadError(edition_id, f'invalid gzip response: {e}') from e

        expected_md5 = response.headers.get('X-Database-MD5')
        actual_md5 = hashlib.md5(content).hexdigest()  # noqa: S324  # MD5 is what the update service publishes
        if not expected_md5:
            raise DownloadError(edition_id, 'response is missing the X-Database-MD5 header')
        if expected_md5.lower() != actual_md5:
            raise DownloadError(edition_id, f'md5 of new database ({actual_md5}) does not match expected md5 ({expected_md5})')

        return FetchedDatabase(
            content=content,
            md5=actual_md5,
            last_modified=_parse_last_modified(response.headers.get('Last-Modified')),
        )

    def _persist(self, edition_id: str, fetched: FetchedDatabase) -> Path:
        destination_file_path = self.edition_path(edition_id)
        lock = FileLock(self.config.lock_file, timeout=LOCK_TIMEOUT_SECONDS)

        try:
            destination_file_path.parent.mkdir(parents=True, exist_ok=True)
            self.config.lock_file.parent.mkdir(parents=True, exist_ok=True)
            with lock:
                self._replace_file(destination_file_path, fetched.content)
                if self.config.preserve_file_times and fetched.last_modified is not None:
                    timestamp = fetched.last_modified.timestamp()
                    os.utime(destination_file_path, (timestamp, timestamp))
        except Timeout as e:
            raise DownloadError(edition_id, f'database directory is locked by another process ({self.config.lock_file})') from e
        except OSError as e:
            raise DownloadError(edition_id, f'error writing {destination_file_path}: {e}') from e

        logger.info('Database %s updated (md5 %s)', destination_file_path, fetched.md5)
        return destination_file_path

    @staticmethod
    def _replace_file(destination_file_path: Path, file_bytes: bytes) -> None:
        if (
            destination_file_path.is_file()
            and destination_file_path.stat().st_size == len(file_bytes)
            and hashlib.sha256(destination_file_path.read_bytes()).digest() == hashlib.sha256(file_bytes).digest()
        ):
            return

        tmp = tempfile.NamedTemporaryFile(dir=destination_file_path.parent, suffix='.tmp', delete=False)  # noqa: SIM115
        temp_path = Path(tmp.name)

        try:
            with tmp:
                tmp.write(file_bytes)
            temp_path.replace(destination_file_path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
