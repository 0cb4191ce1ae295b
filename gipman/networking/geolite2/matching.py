"""Whitelist matching of a resolved country record against the requested country identifiers.

Every distinct whitelist entry is compared independently against the record's localized
names (case-insensitive), its ISO code (case-sensitive) and its numeric geoname id, so a
single entry can produce several matches.
"""

import ipaddress
from collections.abc import Iterable, Iterator, MutableSet
from typing import TypeVar

from gipman.exceptions import InvalidRequestError
from gipman.models import LookupMatch, LookupRequest
from gipman.networking.geolite2.readers import CountryRecord

MAX_GEO_NAME_ID = 2**32 - 1

T = TypeVar('T')


class OrderedSet(MutableSet[T]):
    """Set that iterates in first-insertion order."""

    def __init__(self, iterable: Iterable[T] = ()) -> None:
        """Build the set from `iterable`, keeping the first occurrence of each item."""
        self._items: dict[T, None] = dict.fromkeys(iterable)

    def __contains__(self, item: object) -> bool:
        """Return whether `item` is in the set."""
        return item in self._items

    def __iter__(self) -> Iterator[T]:
        """Iterate in insertion order."""
        return iter(self._items)

    def __len__(self) -> int:
        """Return the number of items."""
        return len(self._items)

    def add(self, value: T) -> None:
        """Add `value`, keeping its original position if already present."""
        self._items.setdefault(value, None)

    def discard(self, value: T) -> None:
        """Remove `value` if present."""
        self._items.pop(value, None)

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f'{type(self).__name__}({list(self._items)!r})'


def validate_request(request: LookupRequest) -> str:
    """Check the request fields and return the normalized source IP.

    Raises:
        InvalidRequestError: If `source_ip` is missing or invalid, or the whitelist is empty.
    """
    source_ip = request.source_ip
    if not source_ip:
        raise InvalidRequestError('"source_ip" must be provided')

    if not request.whitelist_countries:
        raise InvalidRequestError('"whitelist_countries" must have at least one entry')

    try:
        address = ipaddress.ip_address(source_ip)
    except ValueError as e:
        raise InvalidRequestError('invalid "source_ip" value provided') from e

    # No zone-scoped IPv6 literals (`fe80::1%eth0`)
    if getattr(address, 'scope_id', None) is not None:
        raise InvalidRequestError('invalid "source_ip" value provided')

    return str(address)


def _parse_geo_name_id(target: str) -> int | None:
    if not target.isascii() or not target.isdigit():
        return None
    value = int(target)
    return value if value <= MAX_GEO_NAME_ID else None


def _match_target(target: str, record: CountryRecord) -> Iterator[LookupMatch]:
    lowered_target = target.casefold()

    for name in record.names.values():
        if name.casefold() == lowered_target:
            yield LookupMatch(
                geo_name_id=record.geo_name_id,
                matched_type='country_name',
                matched_value=name,
                confidence=record.confidence,
            )

    if record.iso_code and record.iso_code == target:
        yield LookupMatch(
            geo_name_id=record.geo_name_id,
            matched_type='iso_code',
            matched_value=record.iso_code,
            confidence=record.confidence,
        )

    if (geo_name_id := _parse_geo_name_id(target)) is not None and geo_name_id == record.geo_name_id:
        yield LookupMatch(
            geo_name_id=record.geo_name_id,
            matched_type='geo_name_id',
            matched_value=target,
            confidence=record.confidence,
        )


def match_countries(request: LookupRequest, record: CountryRecord) -> list[LookupMatch]:
    """Return every match between the request's whitelist and `record`, in whitelist order."""
    if request.minimum_confidence is not None and record.confidence < request.minimum_confidence:
        return []

    matches: list[LookupMatch] = []
    for target in OrderedSet(request.whitelist_countries):
        matches.extend(_match_target(target, record))
    return matches
