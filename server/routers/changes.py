"""Change polling API."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends

from core.config import Settings
from core.container import container
from core.errors import InvalidFilterError
from core.logging import get_logger
from routers.events import invalid_filter_response
from services.change_notifier import ChangeNotifier

logger = get_logger(__name__)
router = APIRouter(prefix="/api/changes", tags=["changes"])


def parse_checkpoint(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp into naive UTC; empty means "from the beginning"."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@router.get("")
async def poll_changes(
    since: Optional[str] = None,
    notifier: ChangeNotifier = Depends(lambda: container.change_notifier()),
    settings: Settings = Depends(lambda: container.settings()),
):
    """Domains written after ``since``, plus the next checkpoint."""
    try:
        checkpoint = parse_checkpoint(since)
    except ValueError:
        return invalid_filter_response(InvalidFilterError("since", ["ISO 8601 timestamp"]))
    result = await notifier.poll_with_checkpoint(checkpoint)
    result["poll_interval"] = settings.change_poll_interval
    return result
