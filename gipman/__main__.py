"""Process entry point: run the database manager and the web service until a fatal error or a signal."""
import queue
import signal
import sys
from threading import Thread
from types import FrameType

import uvicorn

from gipman.constants.standalone import TITLE
from gipman.exceptions import ConfigurationError, GipmanError
from gipman.logging_setup import get_logger, setup_logging
from gipman.networking.geolite2 import DatabaseUpdater, GeoIndexManager, load_updater_config
from gipman.settings import ServiceSettings, parse_args
from gipman.webservice import create_app

logger = get_logger(TITLE)


class ShutdownRequestedError(Exception):
    """Raised in the main thread when a termination signal is received."""

    def __init__(self, signum: int) -> None:
        """Initialize the exception with the received signal."""
        self.signal = signal.Signals(signum)
        super().__init__(f'received {self.signal.name}')


def _raise_shutdown(signum: int, _frame: FrameType | None) -> None:
    raise ShutdownRequestedError(signum)


def _serve(server: uvicorn.Server, errors: queue.Queue[BaseException]) -> None:
    logger.info('Initializing webservice...')
    try:
        server.run()
    except SystemExit as e:  # uvicorn exits this way when it cannot bind
        errors.put(GipmanError(f'web service failed to start (exit code {e.code})'))
        return

    if not server.should_exit:
        errors.put(GipmanError('web service stopped unexpectedly'))


def run(settings: ServiceSettings) -> int:
    """Start both workers and block until one of them fails or the process is signalled."""
    try:
        config = load_updater_config(settings.geolite_conf, database_directory=settings.geolite_db_dir)
    except ConfigurationError as e:
        logger.error('Error constructing updater config: %s', e)  # noqa: TRY400
        return 1

    manager = GeoIndexManager(DatabaseUpdater(config), update_interval=settings.update_interval)
    server = uvicorn.Server(uvicorn.Config(
        create_app(manager),
        host=settings.bind_host,
        port=settings.bind_port,
        log_config=None,
    ))

    errors: queue.Queue[BaseException] = queue.Queue()
    signal.signal(signal.SIGINT, _raise_shutdown)
    signal.signal(signal.SIGTERM, _raise_shutdown)

    Thread(target=manager.run, args=(errors,), name='GeoIndexManager', daemon=True).start()
    Thread(target=_serve, args=(server, errors), name='WebService', daemon=True).start()
    logger.info('Webservice starting at "%s:%d"', settings.bind_host, settings.bind_port)

    try:
        error = errors.get()
    except ShutdownRequestedError as e:
        logger.warning('Process exiting (signal: %s)', e.signal.name)
        exit_code = 0
    else:
        logger.error('Abnormal exit: %s', error)
        exit_code = 1

    manager.stop()
    server.should_exit = True
    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Parse settings, configure logging and run the service."""
    try:
        settings = parse_args(argv)
    except ConfigurationError as e:
        setup_logging()
        logger.error('Error parsing flags: %s', e)  # noqa: TRY400
        return 1

    setup_logging(console_level=settings.log_level, log_file=settings.log_file)
    return run(settings)


if __name__ == '__main__':
    sys.exit(main())
