"""HTTP session factory for talking to the database update service."""
import requests

from gipman.constants.local import USER_AGENT

HEADERS = {
    'User-Agent': USER_AGENT,
}


def build_session(*, auth: tuple[str, str] | None = None, proxies: dict[str, str] | None = None) -> requests.Session:
    """Return a `requests.Session` carrying the product User-Agent, credentials and proxies."""
    session = requests.Session()
    session.headers.update(HEADERS)
    if auth is not None:
        session.auth = auth
    if proxies:
        session.proxies.update(proxies)
    return session
