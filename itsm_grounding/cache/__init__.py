"""
Response Cache Module
=====================

Bounded Context for the durable, TTL-bounded response cache.

Responsibilities:
- Derive deterministic keys from a type and parameter set
- Sanitize payloads before they are stored and after they are read
- Expire entries lazily and evict the oldest entries per type at capacity
- Recover from storage quota errors by purging expired entries
- Own the key/value store the snapshot and sync marks live in
"""

__version__ = "1.0.0"
