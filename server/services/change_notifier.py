"""Per-domain change polling.

Clients keep a checkpoint and ask which dashboard domains have been written
since. Every domain is reported, with ``updated`` true when its newest
observation is later than the checkpoint. The returned checkpoint is the
newest timestamp seen.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from constants import CHANGE_DOMAINS
from core.database import Database
from core.logging import get_logger
from models.database import utc_now

logger = get_logger(__name__)


class ChangeNotifier:
    """Poll-since-checkpoint change detection over the observation history."""

    def __init__(self, database: Database):
        self.database = database

    async def _latest_by_domain(self, since: datetime) -> Dict[str, datetime]:
        latest = {}
        for domain, sources in CHANGE_DOMAINS.items():
            timestamp = await self.database.latest_observation_time(sources, since)
            if timestamp is not None:
                latest[domain] = timestamp
        return latest

    @staticmethod
    def _changes(latest: Dict[str, datetime]) -> List[Dict[str, Any]]:
        return [
            {
                "domain": domain,
                "updated": domain in latest,
                "timestamp": latest[domain].isoformat() if domain in latest else None,
            }
            for domain in CHANGE_DOMAINS
        ]

    async def poll(self, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Return ``{domain, updated, timestamp}`` for every domain.

        ``timestamp`` is the newest write after ``since``, or None when the
        domain has not been written since.
        """
        latest = await self._latest_by_domain(since or datetime.min)
        if latest:
            logger.debug("Domains changed", domains=sorted(latest))
        return self._changes(latest)

    async def poll_with_checkpoint(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Changes plus the checkpoint the client should send next time."""
        latest = await self._latest_by_domain(since or datetime.min)
        if latest:
            checkpoint = max(latest.values())
        else:
            checkpoint = since or utc_now()
        return {
            "changes": self._changes(latest),
            "checkpoint": checkpoint.isoformat(),
        }
