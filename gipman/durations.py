"""Duration strings in the `1h30m` / `168h` / `500ms` notation used by the service flags."""
import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from gipman.exceptions import ConfigurationError

RE_DURATION_PART_PATTERN = re.compile(r'(?P<VALUE>\d+(?:\.\d*)?|\.\d+)(?P<UNIT>ns|us|µs|μs|ms|s|m|h)')

_UNIT_MICROSECONDS = {
    'ns': Decimal('0.001'),
    'us': Decimal(1),
    'µs': Decimal(1),
    'μs': Decimal(1),
    'ms': Decimal(1_000),
    's': Decimal(1_000_000),
    'm': Decimal(60_000_000),
    'h': Decimal(3_600_000_000),
}

# Largest duration the flags accept (2562047h47m16.854775807s), in microseconds
MAX_DURATION_MICROSECONDS = Decimal(2**63 - 1) / 1_000
MAX_DURATION = timedelta(microseconds=int(MAX_DURATION_MICROSECONDS))


def parse_duration(text: str, *, name: str = 'update interval') -> timedelta:
    """Parse a positive duration such as `168h`, `1h30m` or `1.5s`.

    Raises:
        ConfigurationError: If the value is empty, malformed, too large or not strictly positive.
    """
    value = text.strip()
    if not value:
        raise ConfigurationError(f'{name} must not be empty')

    if value.startswith('-'):
        raise ConfigurationError(f'{name} "{text}" must be a positive duration')
    value = value.removeprefix('+')

    total = Decimal(0)
    position = 0
    while position < len(value):
        match = RE_DURATION_PART_PATTERN.match(value, position)
        if match is None:
            raise ConfigurationError(f'provided {name} value "{text}" is not a valid duration')
        try:
            total += Decimal(match.group('VALUE')) * _UNIT_MICROSECONDS[match.group('UNIT')]
        except InvalidOperation as e:
            raise ConfigurationError(f'provided {name} value "{text}" is not a valid duration') from e
        position = match.end()

    if total > MAX_DURATION_MICROSECONDS:
        raise ConfigurationError(f'{name} "{text}" exceeds the maximum duration of {format_duration(MAX_DURATION)}')

    interval = timedelta(microseconds=int(total))
    if interval <= timedelta(0):
        raise ConfigurationError(f'{name} "{text}" must be a positive duration')
    return interval


def format_duration(interval: timedelta) -> str:
    """Render a duration the same way it is written on the command line (`168h0m0s`)."""
    total_seconds = interval.total_seconds()
    hours, remainder = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    fraction = total_seconds - int(total_seconds)
    seconds_text = f'{seconds + fraction:g}' if fraction else str(seconds)
    if hours:
        return f'{hours}h{minutes}m{seconds_text}s'
    if minutes:
        return f'{minutes}m{seconds_text}s'
    return f'{seconds_text}s'
