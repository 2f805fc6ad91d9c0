"""Collectors: thin adapters that produce normalized snapshots.

Source-specific fetchers (cloud RSS, Graph API, Radar) plug in through
FunctionCollector; the generic HTTP and Statuspage checks ship here.
"""

from typing import List

import httpx

from core.logging import get_logger
from models.database import Service
from .base import Collector, FunctionCollector
from .http_check import HttpCheckCollector, status_from_http_code
from .statuspage import StatuspageCollector, map_indicator

logger = get_logger(__name__)


def build_service_collectors(services: List[Service], client: httpx.AsyncClient,
                             timeout: float = 10.0) -> List[Collector]:
    """Build one collector per catalog service according to its check type."""
    collectors: List[Collector] = []
    for service in services:
        entity_id = str(service.id)
        if service.check_type == "statuspage" and service.check_url:
            collectors.append(StatuspageCollector(entity_id, service.name, service.check_url, client))
        elif service.check_type == "http" and service.check_url:
            collectors.append(HttpCheckCollector(entity_id, service.name, service.check_url,
                                                 client, timeout=timeout))
        else:
            logger.warning("Service has no usable check", service_id=service.id,
                           check_type=service.check_type)
    return collectors


__all__ = [
    "Collector",
    "FunctionCollector",
    "HttpCheckCollector",
    "StatuspageCollector",
    "build_service_collectors",
    "map_indicator",
    "status_from_http_code",
]
