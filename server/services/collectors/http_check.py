"""Direct HTTP reachability checks."""

import time
from typing import Optional

import httpx

from constants import (
    SOURCE_SERVICE,
    STATUS_DEGRADED,
    STATUS_OPERATIONAL,
    STATUS_OUTAGE,
    STATUS_UNKNOWN,
)
from core.logging import get_logger
from models.snapshots import ScalarSnapshot
from .base import Collector

logger = get_logger(__name__)


def status_from_http_code(status_code: int) -> str:
    """Map an HTTP status code to a service status."""
    if 200 <= status_code < 300:
        return STATUS_OPERATIONAL
    if status_code >= 500:
        return STATUS_OUTAGE
    if status_code >= 400:
        return STATUS_DEGRADED
    return STATUS_UNKNOWN


class HttpCheckCollector(Collector):
    """GET a URL and classify the response.

    A timeout or connection failure is an outage observation, not an error:
    an unreachable endpoint is itself the signal.
    """

    def __init__(self, entity_id: str, entity_name: str, url: str,
                 client: httpx.AsyncClient, timeout: float = 10.0,
                 source: str = SOURCE_SERVICE):
        # Live checks are never served from cache
        super().__init__(f"http:{entity_id}", source, entity_id, entity_name, cache_ttl=0)
        self.url = url
        self.client = client
        self.timeout = timeout

    async def fetch(self) -> ScalarSnapshot:
        start = time.monotonic()
        try:
            response = await self.client.get(self.url, timeout=self.timeout)
        except httpx.TimeoutException:
            return self._snapshot(STATUS_OUTAGE, "Request timeout", int(self.timeout * 1000))
        except httpx.HTTPError as e:
            elapsed = int((time.monotonic() - start) * 1000)
            return self._snapshot(STATUS_OUTAGE, str(e) or "Connection failed", elapsed)

        elapsed = int((time.monotonic() - start) * 1000)
        status = status_from_http_code(response.status_code)
        if status == STATUS_OPERATIONAL:
            message = f"HTTP {response.status_code} - {elapsed}ms"
        elif status == STATUS_OUTAGE:
            message = f"HTTP {response.status_code} - Server Error"
        elif status == STATUS_DEGRADED:
            message = f"HTTP {response.status_code} - Client Error"
        else:
            # 1xx/3xx that were not followed
            status = STATUS_DEGRADED
            message = f"HTTP {response.status_code}"
        return self._snapshot(status, message, elapsed)

    def _snapshot(self, status: str, message: Optional[str], response_time_ms: int) -> ScalarSnapshot:
        return ScalarSnapshot(
            entity_id=self.entity_id,
            entity_name=self.entity_name,
            status=status,
            message=message,
            response_time_ms=response_time_ms,
        )
