"""Retention sweep for the event log, history and cache.

Scheduled daily by the ``retention`` cron job. All windows come from Settings.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional, TYPE_CHECKING

from constants import INCIDENT_SOURCES
from core.logging import get_logger
from models.database import utc_now

if TYPE_CHECKING:
    from core.config import Settings
    from core.database import Database
    from core.cache import CacheService

logger = get_logger(__name__)

TRACKING_ENTITY_TYPES = sorted({config["entity_type"] for config in INCIDENT_SOURCES.values()})


class CleanupService:
    """Deletes rows that have aged out.

    Each run removes:
    - Events created before the retention window, or past their expires_at
    - Expired cache entries (SQLite backend; Redis expires its own keys)
    - Status observations before the retention window
    - Scalar alert-state rows not checked within the retention window.
      Incident tracking rows are only removed by the differ when the
      incident resolves.
    """

    def __init__(
        self,
        database: "Database",
        cache: "CacheService",
        settings: "Settings"
    ):
        self.database = database
        self.cache = cache
        self.settings = settings

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run every retention step once and return the per-step row counts.

        A failing step is logged and counted as zero; the others still run.
        """
        now = now or utc_now()
        cutoff = now - timedelta(days=self.settings.event_retention_days)

        steps = {
            "events": lambda: self.database.delete_events_older_than(cutoff, now),
            "expired_cache": self.cache.cleanup_expired,
            "observations": lambda: self.database.delete_observations_older_than(cutoff),
            "alert_states": lambda: self.database.delete_alert_states_older_than(
                cutoff, exclude_types=TRACKING_ENTITY_TYPES),
        }

        results = {}
        for name, step in steps.items():
            try:
                results[name] = await step()
            except Exception as e:
                logger.warning("Retention step failed", step=name, error=str(e))
                results[name] = 0

        if sum(results.values()) > 0:
            logger.info("Retention sweep completed", cutoff=cutoff.isoformat(), **results)
        return results
