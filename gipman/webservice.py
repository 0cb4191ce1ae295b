"""FastAPI web service exposing the country whitelist lookup."""

from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from gipman.constants.local import VERSION
from gipman.constants.standalone import DESCRIPTION, TITLE
from gipman.durations import format_duration
from gipman.exceptions import InvalidRequestError, RequestError
from gipman.logging_setup import get_logger
from gipman.models import ErrorResponse, IndexStatusResponse, LookupMatch, LookupRequest
from gipman.networking.geolite2.manager import GeoIndexManager

HELP_TEXT = """Simple IP geolocation service

Example request:

curl --location --request POST '{address}lookup' \\
--header 'Accept: application/json' \\
--header 'Content-Type: application/json' \\
--data-raw '{{
    "source_ip": "8.8.8.8",
    "whitelist_countries": [
        "United States"
    ],
    "minimum_confidence": 0
}}'

Example response:

[
    {{
        "geo_name_id": 6252001,
        "matched_type": "country_name",
        "matched_value": "United States",
        "confidence": 0
    }}
]
"""

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    HTTPStatus.BAD_REQUEST.value: {'model': ErrorResponse, 'description': 'Invalid lookup request'},
    HTTPStatus.INTERNAL_SERVER_ERROR.value: {'model': ErrorResponse, 'description': 'The source IP could not be resolved'},
    HTTPStatus.SERVICE_UNAVAILABLE.value: {'model': ErrorResponse, 'description': 'The geolocation database is not loaded yet'},
}

logger = get_logger(__name__)


def _format_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = '.'.join(str(part) for part in first.get('loc', ()))
    return f'invalid request body: {location}: {first["msg"]}' if location else f'invalid request body: {first["msg"]}'


def parse_lookup_body(body: bytes) -> LookupRequest:
    """Decode a raw `POST /lookup` body.

    Raises:
        InvalidRequestError: If the body is empty or is not a valid lookup request document.
    """
    if not body.strip():
        raise InvalidRequestError('request body cannot be empty')

    try:
        return LookupRequest.model_validate_json(body)
    except ValidationError as e:
        raise InvalidRequestError(_format_validation_error(e)) from e


def create_app(manager: GeoIndexManager) -> FastAPI:
    """Build the FastAPI application serving lookups from `manager`."""
    app = FastAPI(
        title=TITLE,
        description=DESCRIPTION,
        version=VERSION,
        license_info={'name': 'Apache-2.0'},
        docs_url='/docs',
        openapi_url='/docs/spec.json',
        redoc_url=None,
    )
    app.state.manager = manager

    @app.exception_handler(RequestError)
    async def handle_request_error(_request: Request, exc: RequestError) -> JSONResponse:
        if exc.status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
            logger.error('Lookup failed: %s', exc.message)
        else:
            logger.warning('Rejected lookup request: %s', exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.get('/', response_class=PlainTextResponse, summary='Help!')
    async def get_help(request: Request) -> str:
        return HELP_TEXT.format(address=request.base_url)

    @app.post(
        '/lookup',
        response_model=list[LookupMatch],
        responses=_ERROR_RESPONSES,
        summary='Determines whether the Source IP is within the white listed countries',
        openapi_extra={
            'requestBody': {
                'required': True,
                'content': {'application/json': {'schema': LookupRequest.model_json_schema()}},
            },
        },
    )
    async def post_lookup(request: Request) -> list[LookupMatch]:
        lookup_request = parse_lookup_body(await request.body())
        logger.info('Handling lookup request: %s', lookup_request.model_dump())

        matches = manager.lookup(lookup_request)
        logger.debug('Lookup for %s produced %d match(es)', lookup_request.source_ip, len(matches))
        return matches

    @app.get('/status', response_model=IndexStatusResponse, summary='Database and refresh status')
    async def get_status() -> IndexStatusResponse:
        status = manager.status()
        return IndexStatusResponse(
            state=status.state.name.lower(),
            edition_ids=list(status.edition_ids),
            update_interval=format_duration(status.update_interval) if status.update_interval is not None else '',
            index_loaded=status.index_loaded,
            database_type=status.database_type,
            build_time=status.build_time,
            last_refresh=status.last_refresh,
            last_refresh_error=status.last_refresh_error,
        )

    return app
