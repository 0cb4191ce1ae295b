"""GeoLite2 country index: database reader initialization, sanity checks and lookups."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Self

import geoip2.database
import geoip2.errors
import maxminddb

from gipman.exceptions import IndexBuildError, LookupFailedError
from gipman.logging_setup import get_logger

SANITY_CHECK_IP = '1.1.1.1'

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CountryRecord:
    """Country attributes resolved for an IP address."""

    geo_name_id: int
    iso_code: str
    names: dict[str, str] = field(default_factory=dict)  # pyright: ignore[reportUnknownVariableType]
    confidence: int = 0

    @classmethod
    def from_geoip2(cls, country: Any) -> Self:  # noqa: ANN401
        """Build a record from a `geoip2.records.Country` (or any object with the same attributes)."""
        return cls(
            geo_name_id=country.geoname_id or 0,
            iso_code=country.iso_code or '',
            names=dict(country.names or {}),
            confidence=getattr(country, 'confidence', None) or 0,
        )


class GeoIndex:
    """Immutable, queryable view over one opened country database."""

    def __init__(self, reader: Any, *, source: Path | None = None) -> None:  # noqa: ANN401
        """Wrap an opened reader exposing `country(ip)` and `metadata()`."""
        self._reader = reader
        self.source = source

        metadata = reader.metadata()
        self.database_type: str = metadata.database_type
        self.build_time = datetime.fromtimestamp(metadata.build_epoch, tz=UTC)

    def resolve(self, ip: str) -> CountryRecord:
        """Return the country record for `ip`.

        Raises:
            LookupFailedError: If the address is not in the database or the database cannot be read.
        """
        try:
            response = self._reader.country(ip)
        except geoip2.errors.AddressNotFoundError as e:
            raise LookupFailedError(ip, 'address not found in database') from e
        except (geoip2.errors.GeoIP2Error, maxminddb.InvalidDatabaseError, ValueError) as e:
            raise LookupFailedError(ip, str(e)) from e

        return CountryRecord.from_geoip2(response.country)


def open_country_index(database_path: Path) -> GeoIndex:
    """Load the country database fully into memory and sanity-check it with a known IP.

    Raises:
        IndexBuildError: If the file cannot be opened or is not a country-capable database.
    """
    try:
        reader = geoip2.database.Reader(database_path, mode=geoip2.database.MODE_MEMORY)
    except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
        raise IndexBuildError(database_path, str(e)) from e

    try:
        reader.country(SANITY_CHECK_IP)
    except geoip2.errors.AddressNotFoundError:
        logger.debug('Sanity check address %s is not present in %s', SANITY_CHECK_IP, database_path)
    except (TypeError, geoip2.errors.GeoIP2Error, maxminddb.InvalidDatabaseError) as e:
        reader.close()
        raise IndexBuildError(database_path, str(e)) from e

    index = GeoIndex(reader, source=database_path)
    logger.info('Loaded %s database built %s from %s', index.database_type, index.build_time.isoformat(), database_path)
    return index
