"""Current status and history read API."""

from datetime import timedelta

from fastapi import APIRouter, Depends, Query

from constants import CHANGE_DOMAINS
from core.cache import CacheService
from core.config import Settings
from core.container import container
from core.database import Database
from core.errors import InvalidFilterError
from core.logging import get_logger
from models.database import utc_now
from models.snapshots import calculate_uptime, most_severe_status
from routers.events import invalid_filter_response
from services.cache_tiers import response_tier, with_api_cache

logger = get_logger(__name__)
router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("/{domain}")
async def get_domain_status(
    domain: str,
    database: Database = Depends(lambda: container.database()),
    cache: CacheService = Depends(lambda: container.cache()),
    settings: Settings = Depends(lambda: container.settings()),
):
    """Current-status rows for one dashboard domain."""
    sources = CHANGE_DOMAINS.get(domain)
    if sources is None:
        return invalid_filter_response(InvalidFilterError("domain", CHANGE_DOMAINS))

    async def load():
        rows = await database.get_current_statuses(sources)
        return {
            "domain": domain,
            "overall_status": most_severe_status([r.status for r in rows]),
            "statuses": [r.to_dict() for r in rows],
            "last_updated": utc_now().isoformat(),
        }

    return await with_api_cache(cache, response_tier(settings), domain, load)


@router.get("/{domain}/{entity_id}/history")
async def get_entity_history(
    domain: str,
    entity_id: str,
    days: int = Query(default=7, ge=1, le=30),
    database: Database = Depends(lambda: container.database()),
    cache: CacheService = Depends(lambda: container.cache()),
    settings: Settings = Depends(lambda: container.settings()),
):
    """Observation history and uptime for one entity."""
    sources = CHANGE_DOMAINS.get(domain)
    if sources is None:
        return invalid_filter_response(InvalidFilterError("domain", CHANGE_DOMAINS))

    async def load():
        since = utc_now() - timedelta(days=days)
        history = []
        for source in sorted(sources):
            history.extend(await database.get_observation_history(source, entity_id, since))
        history.sort(key=lambda o: o.checked_at)
        return {
            "domain": domain,
            "entity_id": entity_id,
            "days": days,
            "uptime": round(calculate_uptime([o.status for o in history]), 2),
            "history": [o.to_dict() for o in history],
        }

    return await with_api_cache(cache, response_tier(settings),
                                f"{domain}:{entity_id}:history:{days}", load)
