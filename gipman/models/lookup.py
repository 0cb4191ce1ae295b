"""Pydantic models for lookup requests and responses.

Missing request fields default to empty values: an empty `source_ip` or an
empty `whitelist_countries` is reported by the match engine with a dedicated message.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MatchedType = Literal['country_name', 'iso_code', 'geo_name_id']


class LookupRequest(BaseModel):
    """Body of a `POST /lookup` request."""

    model_config = ConfigDict(frozen=True, extra='ignore')

    source_ip: str = ''
    minimum_confidence: int | None = Field(default=None, ge=0, le=100)
    whitelist_countries: list[str] = Field(default_factory=list)


class LookupMatch(BaseModel):
    """A single whitelist entry that matched the source IP's country."""

    model_config = ConfigDict(frozen=True)

    geo_name_id: int
    matched_type: MatchedType
    matched_value: str
    confidence: int


class ErrorResponse(BaseModel):
    """Machine-readable error returned for failed lookups."""

    code: int
    message: str
