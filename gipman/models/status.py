"""Pydantic model for the database status endpoint."""

from datetime import datetime  # noqa: TC003  # Pydantic needs this import at runtime for datetime parsing

from pydantic import BaseModel


class IndexStatusResponse(BaseModel):
    """Snapshot of the database manager exposed by `GET /status`."""

    state: str
    edition_ids: list[str]
    update_interval: str
    index_loaded: bool
    database_type: str | None = None
    build_time: datetime | None = None
    last_refresh: datetime | None = None
    last_refresh_error: str | None = None
