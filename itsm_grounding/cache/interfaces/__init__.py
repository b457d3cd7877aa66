"""
Cache Interfaces Layer
======================

Interface adapters (controllers) for the cache module.

Contains:
- Controllers: FastAPI route handlers
"""

from itsm_grounding.cache.interfaces.controllers import cache_router

__all__ = ["cache_router"]
