"""Pydantic models for the HTTP API.

This module contains pydantic models for validating and serializing:
- Lookup requests and matches (`POST /lookup`)
- Error responses
- Database status snapshots (`GET /status`)
"""

from .lookup import ErrorResponse, LookupMatch, LookupRequest, MatchedType
from .status import IndexStatusResponse

__all__ = [
    'ErrorResponse',
    'IndexStatusResponse',
    'LookupMatch',
    'LookupRequest',
    'MatchedType',
]
