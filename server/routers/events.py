"""Event log read API."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import ORJSONResponse

from core.cache import CacheService
from core.config import Settings
from core.container import container
from core.errors import InvalidFilterError
from core.logging import get_logger
from services.cache_tiers import response_tier, with_api_cache
from services.event_log import EventLog

logger = get_logger(__name__)
router = APIRouter(prefix="/api/events", tags=["events"])


def invalid_filter_response(error: InvalidFilterError) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid parameter", "message": str(error)},
    )


@router.get("")
async def list_events(
    source: Optional[str] = None,
    severity: Optional[str] = None,
    entity_name: Optional[str] = None,
    resolved: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    event_log: EventLog = Depends(lambda: container.event_log()),
    cache: CacheService = Depends(lambda: container.cache()),
    settings: Settings = Depends(lambda: container.settings()),
):
    """Paged event list with filters, total and a trailing-window summary."""
    try:
        event_filter = event_log.build_filter(
            source=source,
            severity=severity,
            entity_name=entity_name,
            resolved=resolved,
            limit=limit,
            offset=offset,
        )
    except InvalidFilterError as e:
        return invalid_filter_response(e)

    return await with_api_cache(
        cache,
        response_tier(settings),
        f"events:{event_filter.cache_key()}",
        lambda: event_log.query(event_filter),
    )


@router.get("/summary")
async def event_summary(
    days: int = Query(default=7, ge=1, le=90),
    event_log: EventLog = Depends(lambda: container.event_log()),
    cache: CacheService = Depends(lambda: container.cache()),
    settings: Settings = Depends(lambda: container.settings()),
):
    """Severity and source counts over the last ``days`` days."""
    return await with_api_cache(
        cache,
        response_tier(settings),
        f"events:summary:{days}",
        lambda: event_log.summary(days),
    )
