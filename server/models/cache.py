"""SQLite-backed cache model for key-value storage with TTL.

Both cache tiers (collector snapshots and API responses) share this table;
they differ only in key prefix, TTL and the ``source`` label.
"""

import time
from sqlmodel import SQLModel, Field


class CacheEntry(SQLModel, table=True):
    """Key-value cache row with explicit expiration.

    Timestamps are Unix epoch seconds. ``expires_at`` is never earlier
    than ``fetched_at``.
    """

    __tablename__ = "api_cache"

    key: str = Field(primary_key=True, max_length=512)
    source: str = Field(default="", max_length=100, index=True)
    value: str = Field(max_length=1000000)  # JSON serialized, up to 1MB
    fetched_at: float = Field(default_factory=time.time)
    expires_at: float = Field(index=True)
