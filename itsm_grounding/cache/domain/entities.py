"""
Cache Domain Entities
======================

Pure Python domain entities for the persistent response cache.
"""

from dataclasses import dataclass, asdict, field
from numbers import Real
from typing import Any, Mapping, Optional


@dataclass
class CacheEntry:
    """
    A stored cache payload with its age and lifetime.

    Times are epoch seconds; ``ttl`` is a duration in seconds.
    """

    data: Any
    timestamp: float
    ttl: float
    key: str

    def __post_init__(self):
        """Validate entry on initialization."""
        if not self.key:
            raise ValueError("key must not be empty")
        if self.timestamp <= 0:
            raise ValueError("timestamp must be positive")
        if self.ttl <= 0:
            raise ValueError("ttl must be positive")

    def is_valid(self, now: float) -> bool:
        """An entry is live while its age is below its TTL."""
        return now - self.timestamp < self.ttl

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_stored(cls, raw: Any) -> Optional["CacheEntry"]:
        """
        Rebuild an entry from its stored form.

        Returns None for anything that is not a well-formed entry: a mapping
        with positive numeric timestamp and ttl, a non-empty string key and a
        data member.
        """
        if not isinstance(raw, Mapping) or "data" not in raw:
            return None

        timestamp = raw.get("timestamp")
        ttl = raw.get("ttl")
        key = raw.get("key")

        for number in (timestamp, ttl):
            if isinstance(number, bool) or not isinstance(number, Real) or number <= 0:
                return None
        if not isinstance(key, str) or not key:
            return None

        return cls(data=raw["data"], timestamp=float(timestamp), ttl=float(ttl), key=key)


@dataclass
class CacheStats:
    """Point-in-time summary of the response cache."""

    total_entries: int = 0
    entries_by_type: dict = field(default_factory=dict)
    oldest_entry: Optional[float] = None
    newest_entry: Optional[float] = None

    def record(self, cache_type: str, timestamp: float) -> None:
        """Account for one stored entry."""
        self.total_entries += 1
        self.entries_by_type[cache_type] = self.entries_by_type.get(cache_type, 0) + 1
        if self.oldest_entry is None or timestamp < self.oldest_entry:
            self.oldest_entry = timestamp
        if self.newest_entry is None or timestamp > self.newest_entry:
            self.newest_entry = timestamp
