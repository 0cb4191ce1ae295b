"""Command line flags, with environment variable fallbacks."""
import argparse
import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from gipman.constants.standalone import DESCRIPTION, TITLE
from gipman.exceptions import ConfigurationError

DEFAULT_BIND_HTTP = ':8283'
DEFAULT_GEOLITE_CONF = '/tmp/GeoIP.conf'  # noqa: S108
DEFAULT_GEOLITE_DB_DIR = '/tmp/db/'  # noqa: S108
DEFAULT_UPDATE_INTERVAL = '168h'
DEFAULT_LOG_LEVEL = 'INFO'

ENV_PREFIX = 'GIPMAN_'


@dataclass(kw_only=True, slots=True, frozen=True)
class ServiceSettings:
    """Process-level settings."""

    bind_host: str
    bind_port: int
    geolite_conf: Path
    geolite_db_dir: Path
    update_interval: str
    log_level: int
    log_file: Path | None = None


def parse_bind_address(value: str) -> tuple[str, int]:
    """Split `host:port` (or `:port` for every interface) into its parts.

    Raises:
        ConfigurationError: If the port is missing or not a valid TCP port.
    """
    host, separator, port_text = value.rpartition(':')
    if not separator or not port_text.isdigit():
        raise ConfigurationError(f'bind address "{value}" must look like "host:port" or ":port"')

    port = int(port_text)
    if not 0 < port <= 65535:  # noqa: PLR2004
        raise ConfigurationError(f'bind address "{value}" has an invalid port')

    return host.strip('[]') or '0.0.0.0', port  # noqa: S104


def _parse_log_level(value: str) -> int:
    level = logging.getLevelNamesMapping().get(value.upper())
    if level is None:
        raise ConfigurationError(f'unknown log level "{value}"')
    return level


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    """Return the argument parser; defaults come from `GIPMAN_*` variables in `environ`."""
    def default(name: str, fallback: str | None) -> str | None:
        return environ.get(f'{ENV_PREFIX}{name}', fallback)

    parser = argparse.ArgumentParser(prog=TITLE, description=DESCRIPTION)
    parser.add_argument('--bind-http', default=default('BIND_HTTP', DEFAULT_BIND_HTTP),
                        help='Address and port to bind http')
    parser.add_argument('--geolite-conf', default=default('GEOLITE_CONF', DEFAULT_GEOLITE_CONF),
                        help='GeoLite 2 updater conf file')
    parser.add_argument('--geolite-db-dir', default=default('GEOLITE_DB_DIR', DEFAULT_GEOLITE_DB_DIR),
                        help='Directory to store GeoLite 2 binary databases')
    parser.add_argument('--update-interval', default=default('UPDATE_INTERVAL', DEFAULT_UPDATE_INTERVAL),
                        help='Rate at which to update GeoLite 2 databases [default=7 days]')
    parser.add_argument('--log-level', default=default('LOG_LEVEL', DEFAULT_LOG_LEVEL),
                        help='Console log level (DEBUG, INFO, WARNING, ERROR)')
    parser.add_argument('--log-file', default=default('LOG_FILE', None),
                        help='Optional file receiving WARNING and ERROR records')
    return parser


def parse_args(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> ServiceSettings:
    """Parse flags into `ServiceSettings`.

    Raises:
        SystemExit: On `--help` or unparseable flags (argparse behavior).
        ConfigurationError: If a flag value is semantically invalid.
    """
    args = build_parser(os.environ if environ is None else environ).parse_args(argv)
    bind_host, bind_port = parse_bind_address(args.bind_http)

    return ServiceSettings(
        bind_host=bind_host,
        bind_port=bind_port,
        geolite_conf=Path(args.geolite_conf),
        geolite_db_dir=Path(args.geolite_db_dir),
        update_interval=args.update_interval,
        log_level=_parse_log_level(args.log_level),
        log_file=Path(args.log_file) if args.log_file else None,
    )
