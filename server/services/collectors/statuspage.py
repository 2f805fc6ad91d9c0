"""Atlassian Statuspage summary checks."""

from typing import Optional

import httpx

from constants import (
    SOURCE_SERVICE,
    STATUS_DEGRADED,
    STATUS_OPERATIONAL,
    STATUS_OUTAGE,
    STATUS_UNKNOWN,
)
from core.errors import CollectorError
from models.snapshots import ScalarSnapshot
from .base import Collector

INDICATOR_STATUS = {
    "none": STATUS_OPERATIONAL,
    "minor": STATUS_DEGRADED,
    "major": STATUS_OUTAGE,
    "critical": STATUS_OUTAGE,
}


def map_indicator(indicator: str) -> str:
    return INDICATOR_STATUS.get((indicator or "").lower(), STATUS_UNKNOWN)


class StatuspageCollector(Collector):
    """Reads ``/api/v2/status.json`` from a Statuspage-hosted status site."""

    def __init__(self, entity_id: str, entity_name: str, base_url: str,
                 client: httpx.AsyncClient, cache_ttl: Optional[int] = None,
                 source: str = SOURCE_SERVICE):
        super().__init__(f"statuspage:{entity_id}", source, entity_id, entity_name, cache_ttl)
        self.base_url = base_url.rstrip("/")
        self.client = client

    async def fetch(self) -> ScalarSnapshot:
        url = f"{self.base_url}/api/v2/status.json"
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            body = response.json()
            indicator = body["status"]["indicator"]
            description = body["status"].get("description")
        except httpx.HTTPError as e:
            raise CollectorError(self.name, f"request failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise CollectorError(self.name, f"unexpected response: {e}") from e

        return ScalarSnapshot(
            entity_id=self.entity_id,
            entity_name=self.entity_name,
            status=map_indicator(indicator),
            message=description,
        )
